"""
Entity Extractor

Turns free text plus recent conversation into structured filters, canonical
search text and an intent tag.

Pipeline:
1. Rule stage: ordered patterns, each claim tagged with a confidence
2. Intent classification (keyword scoring)
3. LLM stage, only when the rules leave something unread or uncertain
4. Merge: rule fields win over LLM fields, except tentative rule claims
5. Carry-over: a sparse follow-up inherits the previous turn's filters
6. Nothing usable anywhere: the intent is ``ambiguous``
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, Optional, Sequence

from ..common import vocabulary
from ..common.config import DiscoveryConfig
from ..common.llm_client import LLMClient
from ..common.schemas import ConversationTurn, FilterSet, Intent
from .intent_classifier import IntentClassifier
from .llm_extractor import LLMExtractor
from .rule_extractor import RuleExtraction, RuleExtractor

logger = logging.getLogger("discovery.extractor.entity_extractor")

# Words that point back at an earlier result set
REFERENCE_WORDS = {"them", "those", "these", "they", "their", "ones", "same"}

# Openers that mark a follow-up rather than a fresh query
REFINEMENT_OPENERS = (
    "in ", "from ", "at ", "only ", "also ", "and ", "but ", "with ", "just ",
    "among ", "what about ", "how about ", "now ", "same ", "filter ",
    "narrow ", "who are ", "who is ", "which ",
)

# Follow-ups with more free words than this are treated as new queries
MAX_SPARSE_CONTENT_WORDS = 2
MAX_FRAGMENT_WORDS = 4


@dataclass
class Extraction:
    """Result of entity extraction for one turn"""
    text: str
    filters: FilterSet
    canonical_text: str
    intent: Intent
    confidence: float
    sources: Dict[str, str] = field(default_factory=dict)  # filter kind -> rule | llm | context
    llm_used: bool = False
    carried_over: bool = False

    @property
    def is_ambiguous(self) -> bool:
        return self.intent == Intent.AMBIGUOUS


def clean_text(text: str) -> str:
    """Lowercase, drop punctuation that carries no meaning, collapse whitespace."""
    cleaned = (text or "").lower().strip()
    cleaned = re.sub(r"[^\w\s/+#&.'-]", " ", cleaned)
    cleaned = re.sub(r"(?<!\w)[.'-]+|[.'-]+(?!\w)", " ", cleaned)
    return re.sub(r"\s+", " ", cleaned).strip()


def _with_llm_words(cleaned: str, llm_text: str) -> str:
    """Append words the LLM used to restate the request that the query itself lacks."""
    words = cleaned.split()
    extra = [w for w in vocabulary.content_words(clean_text(llm_text)) if w not in words]
    return " ".join(words + list(dict.fromkeys(extra)))


class EntityExtractor:
    """
    Ordered extraction strategies merged by a fixed precedence policy.

    The LLM stage is optional. Without it every query is handled by the
    rules alone, which is also what happens when the LLM call fails.
    """

    def __init__(
        self,
        rule_extractor: Optional[RuleExtractor] = None,
        intent_classifier: Optional[IntentClassifier] = None,
        llm_extractor: Optional[LLMExtractor] = None,
        confidence_threshold: float = 0.5,
        intent_threshold: float = 0.6,
    ):
        self.confidence_threshold = confidence_threshold
        self.intent_threshold = intent_threshold
        self._rules = rule_extractor or RuleExtractor(confidence_threshold=confidence_threshold)
        self._classifier = intent_classifier or IntentClassifier()
        self._llm = llm_extractor

    @classmethod
    def from_config(cls, config: DiscoveryConfig, llm_client: Optional[LLMClient] = None):
        """Build an extractor, with the LLM stage only if enabled and a client is given."""
        threshold = config.extractor.confidence_threshold
        llm_extractor = None
        if config.extractor.llm_enabled and llm_client is not None:
            llm_extractor = LLMExtractor(llm_client, timeout=config.llm.timeout)
        return cls(
            rule_extractor=RuleExtractor(confidence_threshold=threshold),
            llm_extractor=llm_extractor,
            confidence_threshold=threshold,
        )

    def extract(
        self,
        text: str,
        recent_turns: Sequence[ConversationTurn] = (),
    ) -> Extraction:
        """
        Extract filters, canonical text and intent from one query.

        Args:
            text: Raw query text
            recent_turns: Session history, oldest first

        Returns:
            Extraction (intent is AMBIGUOUS when nothing usable was found)
        """
        rule_result = self._rules.extract(text or "")
        intent_result = self._classifier.classify(text or "")

        filters_by_kind = rule_result.filters.as_dict()
        sources = {kind: "rule" for kind in filters_by_kind}
        intent = intent_result.primary
        confidence = rule_result.confidence
        llm_used = False
        llm_text = ""

        if rule_result.needs_llm and self._llm is not None and self._llm.is_available:
            llm_result = self._llm.extract(text)
            if llm_result is not None:
                llm_used = True
                llm_text = llm_result.search_text
                tentative = rule_result.tentative_kinds(self.confidence_threshold)
                for kind, llm_filter in llm_result.filters.as_dict().items():
                    if kind not in filters_by_kind or kind in tentative:
                        filters_by_kind[kind] = llm_filter
                        sources[kind] = "llm"
                if llm_result.intent and intent_result.confidence < self.intent_threshold:
                    intent = llm_result.intent
                confidence = 0.4 * rule_result.confidence + 0.6 * llm_result.confidence
                logger.debug(
                    "LLM stage (%s) contributed %s",
                    ",".join(rule_result.llm_reasons),
                    [k for k, s in sources.items() if s == "llm"] or "nothing",
                )

        filters = FilterSet(filters=tuple(filters_by_kind.values()))
        cleaned = clean_text(text)
        canonical_text = _with_llm_words(cleaned, llm_text)

        if "name" in filters_by_kind and intent_result.confidence < self.intent_threshold:
            intent = Intent.FIND_SPECIFIC_PERSON

        previous = self._carry_over_source(cleaned, rule_result, filters, recent_turns)
        carried_over = previous is not None
        if carried_over:
            prior = previous.specification
            for kind in prior.filters.kinds:
                if kind not in filters_by_kind:
                    sources[kind] = "context"
            filters = prior.filters.overlay(filters)
            canonical_text = " ".join(t for t in (prior.canonical_text, canonical_text) if t)
            inherit_intent = (
                prior.intent not in (None, Intent.AMBIGUOUS)
                and intent_result.confidence < self.intent_threshold
            )
            if inherit_intent:
                intent = prior.intent
            logger.debug("Carried over %s from previous turn", prior.filters.kinds)

        if filters.is_empty and not vocabulary.content_words(canonical_text):
            logger.info("Ambiguous query: %r", (text or "")[:80])
            return Extraction(
                text=text,
                filters=FilterSet(),
                canonical_text="",
                intent=Intent.AMBIGUOUS,
                confidence=0.0,
                llm_used=llm_used,
            )

        return Extraction(
            text=text,
            filters=filters,
            canonical_text=canonical_text,
            intent=intent,
            confidence=round(confidence, 4),
            sources=sources,
            llm_used=llm_used,
            carried_over=carried_over,
        )

    def _carry_over_source(
        self,
        cleaned: str,
        rule_result: RuleExtraction,
        filters: FilterSet,
        recent_turns: Sequence[ConversationTurn],
    ) -> Optional[ConversationTurn]:
        """Previous turn to inherit from, or None if this is a fresh query."""
        if not recent_turns:
            return None

        previous = None
        for turn in reversed(recent_turns):
            spec = turn.specification
            if not spec.filters.is_empty or spec.canonical_text:
                previous = turn
                break
        if previous is None:
            return None

        free_words = vocabulary.content_words(rule_result.unclaimed_text)
        if len(filters.kinds) > 1 or len(free_words) > MAX_SPARSE_CONTENT_WORDS:
            return None

        words = cleaned.split()
        has_reference = any(w in REFERENCE_WORDS for w in words)
        has_opener = f"{cleaned} ".startswith(REFINEMENT_OPENERS)
        is_fragment = (
            not filters.is_empty
            and filters.kinds != ["name"]
            and not free_words
            and len(words) <= MAX_FRAGMENT_WORDS
        )

        if has_reference or has_opener or is_fragment:
            return previous
        return None
