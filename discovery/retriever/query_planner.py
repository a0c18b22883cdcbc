"""
Query Planner

Builds the immutable, tenant-scoped SearchSpecification from extracted
filters and text. Validation happens here so that nothing downstream ever
sees a search without a tenant.
"""

import logging
import re
from typing import Optional

from ..common.config import PlannerConfig
from ..common.errors import InvalidSpecification
from ..common.schemas import FilterSet, Intent, SearchSpecification, render_filter_description
from ..common.vocabulary import FILLER_WORDS, STOP_WORDS

logger = logging.getLogger("discovery.retriever.query_planner")


class QueryPlanner:
    """
    Validates inputs and normalises text into a SearchSpecification.

    Responsibilities:
    1. Reject a missing tenant, non-positive limit or negative offset
    2. Clamp the limit to the configured maximum
    3. Strip request filler and phrases already captured as filters
    4. Describe the filters in words when no free text remains
    """

    def __init__(self, config: Optional[PlannerConfig] = None):
        self._config = config or PlannerConfig()

    @property
    def max_limit(self) -> int:
        return self._config.max_limit

    def plan(
        self,
        tenant_id: str,
        filters: FilterSet,
        canonical_text: str,
        limit: Optional[int] = None,
        offset: int = 0,
        intent: Optional[Intent] = None,
    ) -> SearchSpecification:
        """
        Produce the specification for one search.

        Args:
            tenant_id: Community the caller is bound to (required)
            filters: Hard predicates from extraction
            canonical_text: Text from extraction, before normalisation
            limit: Page size; None uses the configured default
            offset: Results to skip
            intent: Intent tag carried for callers and later turns

        Returns:
            SearchSpecification

        Raises:
            InvalidSpecification: tenant missing, limit or offset out of range
        """
        if tenant_id is None or not str(tenant_id).strip():
            raise InvalidSpecification("tenant_id is required")
        if limit is None:
            limit = self._config.default_limit
        if isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0:
            raise InvalidSpecification(f"limit must be a positive integer, got {limit!r}")
        if not isinstance(offset, int) or offset < 0:
            raise InvalidSpecification(f"offset must be a non-negative integer, got {offset!r}")

        if limit > self._config.max_limit:
            logger.debug("Clamping limit %d to %d", limit, self._config.max_limit)
            limit = self._config.max_limit

        filters = filters or FilterSet()
        text = self.normalize_text(canonical_text, filters)
        if not text:
            text = render_filter_description(filters) if not filters.is_empty else ""

        return SearchSpecification(
            tenant_id=str(tenant_id).strip(),
            canonical_text=text,
            filters=filters,
            limit=limit,
            offset=offset,
            intent=intent,
        )

    def normalize_text(self, text: str, filters: FilterSet) -> str:
        """Lowercase, drop punctuation, captured filter phrases, filler and repeats."""
        cleaned = (text or "").lower()
        cleaned = re.sub(r"[^\w\s/+#&.-]", " ", cleaned)

        # longest first so "mechanical engineering" goes before "mechanical"
        for form in sorted(set(filters.surface_forms()), key=len, reverse=True):
            form = form.lower().strip()
            if not form:
                continue
            pattern = r"(?<![\w])" + re.escape(form).replace(r"\ ", r"\s+") + r"s?(?![\w])"
            cleaned = re.sub(pattern, " ", cleaned)

        tokens = []
        for token in cleaned.split():
            token = token.strip(".-/&")
            if not token or token in STOP_WORDS or token in FILLER_WORDS:
                continue
            if token not in tokens:
                tokens.append(token)
        return " ".join(tokens)
