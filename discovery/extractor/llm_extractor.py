"""
LLM-based Entity Extractor

Fallback stage for queries the rules cannot fully read: conversational
phrasing, multi-clause requests, unfamiliar vocabulary. The model returns an
intent from a closed set plus entities in the same shape the rules produce.

This stage never raises. An unavailable client, a timeout or unparseable
output all mean "contributed nothing", and the rule result stands alone.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from pydantic import ValidationError

from ..common import vocabulary
from ..common.llm_client import LLMClient
from ..common.llm_utils import as_str_list, parse_llm_json
from ..common.schemas import (
    BranchFilter,
    CityFilter,
    DegreeFilter,
    DesignationFilter,
    FilterSet,
    Intent,
    NameFilter,
    SkillFilter,
    TurnoverBracket,
    TurnoverFilter,
    YearFilter,
)

logger = logging.getLogger("discovery.extractor.llm_extractor")


EXTRACTION_SYSTEM = (
    "You extract search criteria from requests to an alumni and business "
    "community directory. Respond with JSON only."
)

EXTRACTION_PROMPT = """Read this directory search request and extract structured criteria.

Respond with a valid JSON object with these keys:
- "intent": one of ["find_business", "find_peers", "find_specific_person", "find_alumni_business"]
- "graduation_years": list of 4-digit graduation years (empty list if none)
- "branch": engineering branch such as "Mechanical", "Civil", "ECE", "EEE", "CSE", "IT" (or null)
- "degree": degree such as "B.E", "B.Tech", "MBA", "MCA" (or null)
- "city": city name (or null)
- "skills": list of skills or services the member should offer (empty list if none)
- "designation": job title such as "CEO", "founder", "director" (or null)
- "turnover": one of "high", "medium", "low" for business turnover (or null)
- "name": a person's name if the request looks for a specific person (or null)
- "search_text": the remaining descriptive part of the request in plain English
- "confidence": number between 0 and 1 for how sure you are

Rules:
- Only include criteria the request actually states; never guess
- Turnover brackets: high is above 10 crore, medium is 2 to 10 crore, low is below 2 crore
- Two-digit years like "95 batch" mean 1995; "05 batch" means 2005

Request:
{text}

JSON:"""


@dataclass
class LLMExtraction:
    """Entities and intent proposed by the LLM"""
    filters: FilterSet
    intent: Optional[Intent] = None
    search_text: str = ""
    confidence: float = 0.0
    dropped: List[str] = field(default_factory=list)  # fields that failed validation


class LLMExtractor:
    """Wraps an LLMClient with the extraction prompt and output validation."""

    INTENTS = {
        Intent.FIND_BUSINESS.value: Intent.FIND_BUSINESS,
        Intent.FIND_PEERS.value: Intent.FIND_PEERS,
        Intent.FIND_SPECIFIC_PERSON.value: Intent.FIND_SPECIFIC_PERSON,
        Intent.FIND_ALUMNI_BUSINESS.value: Intent.FIND_ALUMNI_BUSINESS,
    }

    def __init__(self, llm_client: Optional[LLMClient] = None, timeout: float = 10.0):
        self._client = llm_client
        self._timeout = timeout

    @property
    def is_available(self) -> bool:
        return self._client is not None and self._client.is_available

    def extract(self, text: str) -> Optional[LLMExtraction]:
        """
        Ask the LLM for intent and entities.

        Args:
            text: Raw query text

        Returns:
            LLMExtraction, or None if the LLM is unavailable or failed
        """
        if not self.is_available:
            return None

        try:
            raw = self._client.generate(
                EXTRACTION_PROMPT.format(text=text),
                system=EXTRACTION_SYSTEM,
                max_tokens=400,
                timeout=self._timeout,
            )
        except Exception as e:
            logger.warning("LLM extraction failed: %s", e)
            return None

        data = parse_llm_json(raw)
        if not data:
            logger.warning("LLM extraction returned no JSON object")
            return None

        return self._to_extraction(data)

    def _to_extraction(self, data: dict) -> LLMExtraction:
        built = []
        dropped = []

        def _add(name, factory):
            try:
                f = factory()
            except (ValidationError, ValueError, TypeError) as e:
                logger.debug("Dropping LLM field %s: %s", name, e)
                dropped.append(name)
                return
            if f is not None:
                built.append(f)

        years = []
        for value in as_str_list(data.get("graduation_years") or data.get("graduation_year")):
            if value.isdigit() and 1950 <= int(value) <= 2100:
                years.append(int(value))
        if years:
            _add("graduation_years", lambda: YearFilter(years=tuple(years)))

        branch = _scalar(data.get("branch"))
        if branch:
            _add("branch", lambda: BranchFilter(branch=branch))

        degree = _scalar(data.get("degree"))
        if degree:
            _add("degree", lambda: DegreeFilter(degree=degree))

        city = _scalar(data.get("city") or data.get("location"))
        if city:
            _add("city", lambda: CityFilter(city=city))

        skills = as_str_list(data.get("skills"))
        if skills:
            _add("skills", lambda: SkillFilter(terms=tuple(s.lower() for s in skills)))

        designation = _scalar(data.get("designation"))
        if designation:
            _add("designation", lambda: DesignationFilter(designation=designation))

        turnover = _scalar(data.get("turnover"))
        if turnover:
            _add("turnover", lambda: _turnover_filter(turnover))

        name = _scalar(data.get("name"))
        if name and not vocabulary.is_known_term(name):
            _add("name", lambda: NameFilter(token=name))

        intent = self.INTENTS.get(str(data.get("intent", "")).lower())

        try:
            confidence = float(data.get("confidence", 0.7))
        except (TypeError, ValueError):
            confidence = 0.7
        confidence = max(0.0, min(1.0, confidence))

        return LLMExtraction(
            filters=FilterSet(filters=tuple(built)),
            intent=intent,
            search_text=_scalar(data.get("search_text")) or "",
            confidence=confidence,
            dropped=dropped,
        )


def _scalar(value) -> Optional[str]:
    if value is None or isinstance(value, (dict, list)):
        return None
    text = str(value).strip()
    if not text or text.lower() in ("null", "none", "n/a"):
        return None
    return text


def _turnover_filter(value: str) -> TurnoverFilter:
    bracket = TurnoverBracket(value.lower())
    direction = {
        TurnoverBracket.HIGH: "at_least",
        TurnoverBracket.MEDIUM: "exact",
        TurnoverBracket.LOW: "at_most",
    }[bracket]
    return TurnoverFilter(bracket=bracket, direction=direction)
