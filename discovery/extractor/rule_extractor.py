"""
Rule-based Entity Extractor

Fast, deterministic extraction of structured filters from query text.

Rules run in a fixed order. Each rule may claim a span of the text only if no
earlier rule has claimed any part of it, so a phrase is never counted twice
("1995 batch" is a year, not a year plus a stray number). Every claim carries
the confidence of the rule that made it; claims below the extractor threshold
are tentative and may be replaced by the LLM stage.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Dict, List, Optional, Pattern, Set, Tuple

from ..common import vocabulary
from ..common.schemas import (
    BranchFilter,
    CityFilter,
    DegreeFilter,
    DesignationFilter,
    FilterSet,
    NameFilter,
    SkillFilter,
    TurnoverBracket,
    TurnoverFilter,
    YearFilter,
    CRORE,
)

logger = logging.getLogger("discovery.extractor.rule_extractor")

EARLIEST_YEAR = 1950
LAKH = 100_000

# Phrases that usually mean the query needs more than pattern matching
CONVERSATIONAL_KEYWORDS = [
    "can you", "could you", "please", "i want", "i need", "help me",
    "looking for", "interested in", "recommend", "suggest",
]
COMPLEX_MARKERS = [" or ", " either ", " neither ", "compare", "versus", " vs "]


def _alternation(forms) -> str:
    unique = sorted(set(forms), key=len, reverse=True)
    return "|".join(re.escape(f).replace(r"\ ", r"\s+") for f in unique)


_CITY_ALT = _alternation(f for forms in vocabulary.CITY_SYNONYMS.values() for f in forms)
_BRANCH_ALT = _alternation(f for forms in vocabulary.BRANCH_SYNONYMS.values() for f in forms)
_DESIGNATION_ALT = _alternation(
    f for forms in vocabulary.DESIGNATION_SYNONYMS.values() for f in forms
)
_SKILL_ALT = _alternation(f for forms in vocabulary.SKILL_SYNONYMS.values() for f in forms)

_DEGREE_RE = (
    r"\b(MBA|MCA|Ph\.?\s?D|B\.\s?Tech|BTech|M\.\s?Tech|MTech|B\.\s?E|M\.\s?E|"
    r"B\.\s?Sc|M\.\s?Sc|BSc|MSc|bachelor\s+of\s+engineering|bachelor\s+of\s+technology|"
    r"master\s+of\s+engineering|master\s+of\s+technology|"
    r"master\s+of\s+business\s+administration|master\s+of\s+computer\s+applications)"
    r"(?![\w])\.?"
)

_NAME_WORDS = r"([A-Za-z][A-Za-z'.-]*(?:\s+[A-Za-z][A-Za-z'.-]*){0,2})"


@dataclass
class Claim:
    """A span of query text attributed to one filter kind."""
    rule: str
    kind: str
    span: Tuple[int, int]
    text: str
    value: object
    confidence: float

    def overlaps(self, span: Tuple[int, int]) -> bool:
        return self.span[0] < span[1] and span[0] < self.span[1]


@dataclass
class Rule:
    """One ordered extraction rule."""
    name: str
    kind: str
    pattern: Pattern
    confidence: float
    convert: Callable[[re.Match], object]


@dataclass
class RuleExtraction:
    """Output of the deterministic stage"""
    text: str
    filters: FilterSet
    claims: List[Claim] = field(default_factory=list)
    kind_confidence: Dict[str, float] = field(default_factory=dict)
    confidence: float = 0.0
    unclaimed_text: str = ""
    llm_reasons: List[str] = field(default_factory=list)

    @property
    def needs_llm(self) -> bool:
        return bool(self.llm_reasons)

    @property
    def matched_kinds(self) -> List[str]:
        return list(self.kind_confidence)

    def tentative_kinds(self, threshold: float) -> Set[str]:
        return {k for k, c in self.kind_confidence.items() if c < threshold}


def normalize_year(value: int) -> Optional[int]:
    """Expand two-digit years: 00-30 are 20xx, 50-99 are 19xx."""
    if 0 <= value <= 30:
        return 2000 + value
    if 50 <= value <= 99:
        return 1900 + value
    if EARLIEST_YEAR <= value <= 2099:
        return value
    return None


def _name_tokens(raw: str) -> Optional[str]:
    """Keep leading tokens of a captured name until one is directory vocabulary."""
    kept = []
    for token in raw.split():
        if vocabulary.is_known_term(token.strip(".'")):
            break
        kept.append(token)
    if not kept:
        return None
    return " ".join(t.strip(".") for t in kept)


def _turnover_from_amount(amount: float, unit: str, direction: str) -> Optional[Tuple]:
    unit = unit.lower()
    rupees = amount * (LAKH if unit.startswith("l") else CRORE)
    if direction == "at_least":
        if rupees >= 10 * CRORE:
            return TurnoverBracket.HIGH, "at_least"
        if rupees >= 2 * CRORE:
            return TurnoverBracket.MEDIUM, "at_least"
        return TurnoverBracket.LOW, "at_least"
    if rupees <= 2 * CRORE:
        return TurnoverBracket.LOW, "at_most"
    if rupees <= 10 * CRORE:
        return TurnoverBracket.MEDIUM, "at_most"
    return TurnoverBracket.HIGH, "at_most"


_AT_LEAST_WORDS = ("above", "over", "more", "greater", "least", "min")


def _prefix_end(raw: str, n_tokens: int) -> int:
    """Offset just past the first ``n_tokens`` whitespace-separated tokens."""
    tokens = list(re.finditer(r"\S+", raw))
    return tokens[min(n_tokens, len(tokens)) - 1].end()


class RuleExtractor:
    """
    Ordered pattern rules over raw query text.

    Rule order (earlier rules claim first):
    1. Personal names ("named X", "contact of X", "find <Capitalised Name>")
    2. Graduation years (ranges, batch/passout context, two-digit, bare)
    3. Cities (with preposition, with suffix, bare)
    4. Degrees, branches, designations
    5. Turnover phrases
    6. Skills and services
    """

    def __init__(
        self,
        confidence_threshold: float = 0.5,
        current_year: Optional[int] = None,
    ):
        self.confidence_threshold = confidence_threshold
        self._current_year = current_year
        self._rules = self._build_rules()

    @property
    def current_year(self) -> int:
        return self._current_year or date.today().year

    def _build_rules(self) -> List[Rule]:
        I = re.IGNORECASE
        return [
            Rule("name_named", "name",
                 re.compile(r"\b(?:named|called|name\s+is)\s+" + _NAME_WORDS, I),
                 0.9, lambda m: _name_tokens(m.group(1))),
            Rule("name_contact", "name",
                 re.compile(r"\b(?:contact|phone|number|details|email)\s+(?:of|for)\s+" + _NAME_WORDS, I),
                 0.85, lambda m: _name_tokens(m.group(1))),
            Rule("name_lookup", "name",
                 re.compile(
                     r"^\s*(?i:find|where\s+is|who\s+is|search\s+for|show\s+me|get\s+me)\s+"
                     r"([A-Z][a-z'.-]{2,}(?:\s+[A-Z][a-z'.-]{2,})?)(?=$|[\s?,.!])"
                 ),
                 0.6, lambda m: _name_tokens(m.group(1))),
            Rule("year_range", "year",
                 re.compile(r"\b(19\d{2}|20\d{2})\s*(?:-|–|to|and|till|through)\s*(19\d{2}|20\d{2})\b", I),
                 0.95, self._year_range),
            Rule("year_batch", "year",
                 re.compile(
                     r"\b(19\d{2}|20\d{2})\s*(?:pass\s*outs?|batch(?:es)?|grads?|graduates?|graduated)\b", I),
                 0.95, self._year),
            Rule("year_batch_of", "year",
                 re.compile(
                     r"\b(?:batch|pass\s*out|graduated|graduating|class)\s*(?:of|in)?\s*'?(19\d{2}|20\d{2})\b", I),
                 0.95, self._year),
            Rule("year_short_batch", "year",
                 re.compile(r"(?<![\w'])'?(\d{2})\s*(?:pass\s*outs?|batch)\b", I),
                 0.85, self._year),
            Rule("year_short_batch_of", "year",
                 re.compile(r"\b(?:batch|pass\s*out|class)\s*(?:of)?\s*'?(\d{2})\b", I),
                 0.85, self._year),
            Rule("year_bare", "year",
                 re.compile(r"\b(19[5-9]\d|20\d{2})\b"),
                 0.7, self._year),
            Rule("city_preposition", "city",
                 re.compile(
                     r"\b(?:in|at|from|near|around|based\s+(?:in|at|out\s+of)|located\s+in|"
                     r"living\s+in|working\s+in)\s+(" + _CITY_ALT + r")\b", I),
                 0.9, lambda m: vocabulary.normalize_city(m.group(1))),
            Rule("city_suffix", "city",
                 re.compile(
                     r"\b(" + _CITY_ALT + r")\s*-?\s*(?:based|people|members|folks|guys|graduates|alumni)\b", I),
                 0.9, lambda m: vocabulary.normalize_city(m.group(1))),
            Rule("city_bare", "city",
                 re.compile(r"\b(" + _CITY_ALT + r")\b", I),
                 0.75, lambda m: vocabulary.normalize_city(m.group(1))),
            Rule("degree", "degree",
                 re.compile(_DEGREE_RE, I),
                 0.85, lambda m: vocabulary.normalize_degree(m.group(1))),
            Rule("branch", "branch",
                 re.compile(
                     r"\b(" + _BRANCH_ALT + r")(?:\s+(?:engineering|engineers?|dept\.?|department|"
                     r"branch|stream|students|graduates))?\b", I),
                 0.85, lambda m: vocabulary.normalize_branch(m.group(1))),
            Rule("branch_it", "branch",
                 re.compile(
                     r"\bIT\b(?!\s+(?:consult\w*|services?|compan\w*|firms?|startups?|support|"
                     r"solutions?|professionals?|jobs?))"),
                 0.45, lambda m: "IT"),
            Rule("designation", "designation",
                 re.compile(r"\b(" + _DESIGNATION_ALT + r")s?\b", I),
                 0.8, lambda m: vocabulary.normalize_designation(m.group(1))),
            Rule("turnover_amount", "turnover",
                 re.compile(
                     r"\b(above|over|more\s+than|greater\s+than|at\s+least|minimum|min|"
                     r"below|under|less\s+than|within|at\s+most|up\s*to)\s*"
                     r"(?:rs\.?|inr|₹)?\s*(\d+(?:\.\d+)?)\s*(cr|crs|crores?|lakhs?|lacs?)\b"
                     r"(?:\s+(?:turnover|revenue))?", I),
                 0.85, self._turnover_amount),
            Rule("turnover_high", "turnover",
                 re.compile(
                     r"\b(?:high|large|big|huge|top|multi[- ]?crore|crore)\s+(?:turnover|revenue|"
                     r"business(?:es)?|compan(?:y|ies)|enterprises?)\b", I),
                 0.8, lambda m: (TurnoverBracket.HIGH, "at_least")),
            Rule("turnover_medium", "turnover",
                 re.compile(
                     r"\b(?:medium|mid[- ]?size[d]?|mid[- ]?level)\s+(?:turnover|revenue|"
                     r"business(?:es)?|compan(?:y|ies)|enterprises?)\b", I),
                 0.8, lambda m: (TurnoverBracket.MEDIUM, "exact")),
            Rule("turnover_low", "turnover",
                 re.compile(
                     r"\b(?:small|low|tiny)\s+(?:turnover|revenue|business(?:es)?|"
                     r"compan(?:y|ies)|enterprises?|scale)\b", I),
                 0.8, lambda m: (TurnoverBracket.LOW, "at_most")),
            Rule("skill", "skill",
                 re.compile(r"\b(" + _SKILL_ALT + r")s?\b", I),
                 0.8, lambda m: vocabulary.normalize_skill(m.group(1))),
            Rule("skill_phrase", "skill",
                 re.compile(
                     r"\b(?:provides?|providing|offers?|offering|doing|experts?\s+in|"
                     r"speciali[sz]\w*\s+in|works?\s+in|into)\s+"
                     r"([a-z][a-z/&-]*(?:\s+[a-z][a-z/&-]*){0,3}?)"
                     r"(?=\s+(?:services?|business|work|solutions?)\b|\s*[,.?!]|\s*$)", I),
                 0.55, self._skill_phrase),
        ]

    def _year(self, match: re.Match) -> Optional[List[int]]:
        year = normalize_year(int(match.group(1)))
        if year is None or not EARLIEST_YEAR <= year <= self.current_year:
            return None
        return [year]

    def _year_range(self, match: re.Match) -> Optional[List[int]]:
        first = normalize_year(int(match.group(1)))
        last = normalize_year(int(match.group(2)))
        if first is None or last is None:
            return None
        start, end = min(first, last), max(first, last)
        if end - start > 30:
            return None
        years = [y for y in range(start, end + 1) if EARLIEST_YEAR <= y <= self.current_year]
        return years or None

    def _turnover_amount(self, match: re.Match):
        word = match.group(1).lower()
        direction = "at_least" if any(w in word for w in _AT_LEAST_WORDS) else "at_most"
        return _turnover_from_amount(float(match.group(2)), match.group(3), direction)

    def _skill_phrase(self, match: re.Match) -> Optional[str]:
        words = vocabulary.content_words(match.group(1))
        if not words or any(vocabulary.is_known_term(w) for w in words):
            return None
        phrase = " ".join(words)
        if not 3 <= len(phrase) <= 50:
            return None
        return vocabulary.normalize_skill(phrase)

    def extract(self, text: str) -> RuleExtraction:
        """
        Run every rule over ``text`` and combine claims into filters.

        Args:
            text: Raw query text

        Returns:
            RuleExtraction with filters, claims, confidence and the reasons
            (if any) the LLM stage should also run
        """
        claims: List[Claim] = []
        for rule in self._rules:
            for match in rule.pattern.finditer(text):
                value = rule.convert(match)
                if value is None:
                    continue
                span = match.span()
                if rule.kind == "name":
                    # Claim only the name, not vocabulary captured after it
                    span = (span[0], match.start(1) + _prefix_end(match.group(1), len(value.split())))
                if span[0] == span[1] or any(c.overlaps(span) for c in claims):
                    continue
                claims.append(Claim(
                    rule=rule.name,
                    kind=rule.kind,
                    span=span,
                    text=text[span[0]:span[1]],
                    value=value,
                    confidence=rule.confidence,
                ))

        filters, kind_confidence = self._combine(claims)
        unclaimed = self._unclaimed(text, claims)
        confidence = self._confidence(list(kind_confidence), text)
        reasons = self._llm_reasons(text, unclaimed, confidence, kind_confidence)

        logger.debug(
            "Rules matched %s (confidence=%.2f, llm=%s)",
            ", ".join(kind_confidence) or "nothing", confidence, ",".join(reasons) or "no",
        )

        return RuleExtraction(
            text=text,
            filters=filters,
            claims=sorted(claims, key=lambda c: c.span),
            kind_confidence=kind_confidence,
            confidence=confidence,
            unclaimed_text=unclaimed,
            llm_reasons=reasons,
        )

    def _combine(self, claims: List[Claim]) -> Tuple[FilterSet, Dict[str, float]]:
        by_kind: Dict[str, List[Claim]] = {}
        for claim in claims:
            by_kind.setdefault(claim.kind, []).append(claim)

        built = []
        kind_confidence = {}
        for kind, group in by_kind.items():
            best = max(group, key=lambda c: c.confidence)
            kind_confidence[kind] = best.confidence
            if kind == "year":
                years = sorted({y for c in group for y in c.value})
                built.append(YearFilter(years=tuple(years)))
            elif kind == "skill":
                terms = []
                for c in sorted(group, key=lambda c: c.span):
                    if c.value not in terms:
                        terms.append(c.value)
                built.append(SkillFilter(terms=tuple(terms)))
            elif kind == "city":
                built.append(CityFilter(city=best.value))
            elif kind == "branch":
                built.append(BranchFilter(branch=best.value))
            elif kind == "degree":
                built.append(DegreeFilter(degree=best.value))
            elif kind == "designation":
                built.append(DesignationFilter(designation=best.value))
            elif kind == "turnover":
                bracket, direction = best.value
                built.append(TurnoverFilter(bracket=bracket, direction=direction))
            elif kind == "name":
                built.append(NameFilter(token=best.value))

        return FilterSet(filters=tuple(built)), kind_confidence

    @staticmethod
    def _unclaimed(text: str, claims: List[Claim]) -> str:
        chars = list(text)
        for claim in claims:
            for i in range(claim.span[0], claim.span[1]):
                chars[i] = " "
        return re.sub(r"\s+", " ", "".join(chars)).strip()

    @staticmethod
    def _confidence(kinds: List[str], text: str) -> float:
        confidence = min(len(kinds) * 0.25, 0.75)

        if "year" in kinds:
            confidence += 0.1
        if "city" in kinds:
            confidence += 0.05
        if "branch" in kinds or "degree" in kinds:
            confidence += 0.1

        # Very short queries are easy to misread
        if len(text.strip()) < 15:
            confidence -= 0.1
        if len(text.split()) < 3:
            confidence -= 0.1

        return max(0.0, min(1.0, confidence))

    def _llm_reasons(
        self,
        text: str,
        unclaimed: str,
        confidence: float,
        kind_confidence: Dict[str, float],
    ) -> List[str]:
        reasons = []
        lowered = f" {text.lower()} "

        if confidence < self.confidence_threshold:
            reasons.append("low_confidence")
        if any(c < self.confidence_threshold for c in kind_confidence.values()):
            reasons.append("tentative_claim")
        if vocabulary.content_words(unclaimed):
            reasons.append("unclaimed_text")
        if any(k in lowered for k in CONVERSATIONAL_KEYWORDS):
            reasons.append("conversational")
        if any(m in lowered for m in COMPLEX_MARKERS):
            reasons.append("complex")
        return reasons
