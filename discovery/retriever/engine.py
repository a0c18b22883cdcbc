"""
Hybrid Search Engine

Runs one SearchSpecification against the lexical and vector indexes and
merges the two candidate lists into a single ranked page.

State machine per call:
    PLANNED -> EMBEDDING -> RETRIEVING -> MERGING -> DONE | FAILED

The lexical sub-search starts as soon as the call begins; only the vector
sub-search waits for the query embedding. Either source may fail on its own
and the call still answers from the other one. Both failing is the only
case that raises.
"""

import asyncio
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional

from ..common.config import RetrievalConfig
from ..common.embedding_service import EmbeddingClient
from ..common.errors import (
    InvalidSpecification,
    PartialRetrievalFailure,
    TotalRetrievalFailure,
)
from ..common.schemas import (
    MemberRecord,
    RankedResult,
    ResultExplanation,
    SearchSpecification,
    render_filter_description,
)
from .adapters import IndexHit, LexicalIndex, MemberStore, VectorIndex

logger = logging.getLogger("discovery.retriever.engine")

LEXICAL = "lexical"
VECTOR = "vector"

# Member fields reported in ResultExplanation.matched_fields
EXPLAINED_FIELDS = ("name", "degree", "branch", "city", "skill_text", "organization", "designation")


class RetrievalState(str, Enum):
    PLANNED = "planned"
    EMBEDDING = "embedding"
    RETRIEVING = "retrieving"
    MERGING = "merging"
    DONE = "done"
    FAILED = "failed"


@dataclass
class SearchOutcome:
    """Results of one engine call plus what happened along the way"""
    results: List[RankedResult]
    state: RetrievalState
    history: List[RetrievalState] = field(default_factory=list)
    failures: List[PartialRetrievalFailure] = field(default_factory=list)

    @property
    def degraded_sources(self) -> List[str]:
        return sorted({f.source for f in self.failures})

    @property
    def is_degraded(self) -> bool:
        return bool(self.failures)


class HybridSearchEngine:
    """
    Concurrent lexical + vector retrieval with weighted score fusion.

    Both sub-searches receive the spec's tenant and filters. The engine
    re-checks every merged member against both anyway, so a misbehaving
    index can never leak another community's members or relax a filter.

    Single-source hits are scaled by ``single_source_dampening``. That keeps a
    lone hit below any dual match scoring at least as high in the same source;
    a dual match with weak sub-scores on both sides can still rank lower.
    """

    def __init__(
        self,
        lexical_index: LexicalIndex,
        vector_index: VectorIndex,
        member_store: MemberStore,
        embedding_client: Optional[EmbeddingClient] = None,
        config: Optional[RetrievalConfig] = None,
    ):
        """
        Initialize engine.

        Args:
            lexical_index: Full-text index
            vector_index: Embedding similarity index
            member_store: Source of truth for member records
            embedding_client: Query embedder; None means lexical-only
            config: Merge weights, dampening, overfetch and timeouts
        """
        self._lexical = lexical_index
        self._vector = vector_index
        self._store = member_store
        self._embedding = embedding_client
        self._config = config or RetrievalConfig()
        self._config.validate()

    @property
    def config(self) -> RetrievalConfig:
        return self._config

    async def search(self, spec: SearchSpecification) -> List[RankedResult]:
        """Ranked page for ``spec``. See execute() for the full outcome."""
        outcome = await self.execute(spec)
        return outcome.results

    async def execute(self, spec: SearchSpecification) -> SearchOutcome:
        """
        Run both sub-searches, merge, and return the requested page.

        Args:
            spec: Planned search specification

        Returns:
            SearchOutcome with results, final state, state history and the
            partial failures that were absorbed

        Raises:
            InvalidSpecification: tenant missing, limit or offset out of range
            TotalRetrievalFailure: neither source produced an answer
        """
        self._check_spec(spec)
        history = [RetrievalState.PLANNED]
        failures: List[PartialRetrievalFailure] = []

        text = spec.canonical_text.strip() or render_filter_description(spec.filters)
        bound = (spec.offset + spec.limit) * self._config.overfetch_factor

        tasks: List[asyncio.Task] = []
        try:
            lexical_task = asyncio.create_task(
                self._guarded(
                    LEXICAL,
                    lambda: self._lexical.search_text(spec.tenant_id, text, spec.filters, bound),
                    failures,
                )
            )
            tasks.append(lexical_task)

            history.append(RetrievalState.EMBEDDING)
            embed_task = asyncio.create_task(self._embed(text, failures))
            tasks.append(embed_task)
            vector = await embed_task

            history.append(RetrievalState.RETRIEVING)
            vector_hits = None
            if vector is not None:
                vector_task = asyncio.create_task(
                    self._guarded(
                        VECTOR,
                        lambda: self._vector.search_vector(spec.tenant_id, vector, spec.filters, bound),
                        failures,
                    )
                )
                tasks.append(vector_task)
                vector_hits = await vector_task
            lexical_hits = await lexical_task
        finally:
            pending = [t for t in tasks if not t.done()]
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

        failures.sort(key=lambda f: f.source)
        if lexical_hits is None and vector_hits is None:
            history.append(RetrievalState.FAILED)
            logger.error(
                "All retrieval sources failed for community %s: %s",
                spec.tenant_id, "; ".join(str(f) for f in failures),
            )
            raise TotalRetrievalFailure("Both lexical and vector retrieval failed", failures=failures)

        history.append(RetrievalState.MERGING)
        merged = await self._merge(spec, lexical_hits or [], vector_hits or [])
        page = merged[spec.offset:spec.offset + spec.limit]

        history.append(RetrievalState.DONE)
        logger.info(
            "Search in %s: %d candidates, %d returned%s",
            spec.tenant_id,
            len(merged),
            len(page),
            f" (degraded: {', '.join(sorted({f.source for f in failures}))})" if failures else "",
        )
        return SearchOutcome(
            results=page,
            state=RetrievalState.DONE,
            history=history,
            failures=failures,
        )

    def _check_spec(self, spec: SearchSpecification) -> None:
        if not spec.tenant_id or not spec.tenant_id.strip():
            raise InvalidSpecification("tenant_id is required")
        if spec.limit <= 0:
            raise InvalidSpecification(f"limit must be positive, got {spec.limit}")
        if spec.offset < 0:
            raise InvalidSpecification(f"offset must be non-negative, got {spec.offset}")

    async def _embed(self, text: str, failures: List[PartialRetrievalFailure]) -> Optional[List[float]]:
        if self._embedding is None:
            failures.append(PartialRetrievalFailure(VECTOR, "no embedding client configured"))
            return None
        try:
            return await self._embedding.embed(text)
        except Exception as e:
            logger.warning("Embedding unavailable, continuing lexical-only: %s", e)
            failures.append(PartialRetrievalFailure(VECTOR, f"embedding unavailable: {e}"))
            return None

    async def _guarded(
        self,
        source: str,
        call: Callable,
        failures: List[PartialRetrievalFailure],
    ) -> Optional[List[IndexHit]]:
        """Run one sub-search under its timeout. None means the source failed."""
        timeout = self._config.subsearch_timeout
        try:
            return list(await asyncio.wait_for(call(), timeout=timeout))
        except asyncio.TimeoutError:
            failure = PartialRetrievalFailure(source, f"timed out after {timeout:.1f}s")
        except Exception as e:
            failure = PartialRetrievalFailure(source, str(e) or type(e).__name__)
        logger.warning("%s", failure)
        failures.append(failure)
        return None

    async def _merge(
        self,
        spec: SearchSpecification,
        lexical_hits: List[IndexHit],
        vector_hits: List[IndexHit],
    ) -> List[RankedResult]:
        lexical_scores = _normalize_lexical(lexical_hits)
        vector_scores = _clamp_vector(vector_hits)
        candidate_ids = sorted(set(lexical_scores) | set(vector_scores))
        if not candidate_ids:
            return []

        try:
            members = await self._store.get_members(spec.tenant_id, candidate_ids)
        except Exception as e:
            failure = PartialRetrievalFailure("member_store", str(e) or type(e).__name__)
            logger.error("%s", failure)
            raise TotalRetrievalFailure("Member records could not be loaded", failures=[failure]) from e

        query_tokens = _tokens(spec.canonical_text)
        cfg = self._config
        results = []
        for member_id in candidate_ids:
            member = members.get(member_id)
            if member is None:
                logger.debug("Dropping %s: not in member store", member_id)
                continue
            if member.community_id != spec.tenant_id:
                logger.warning(
                    "Dropping %s: belongs to community %s, not %s",
                    member_id, member.community_id, spec.tenant_id,
                )
                continue
            if not spec.filters.matches(member):
                logger.debug("Dropping %s: fails filters", member_id)
                continue

            in_lexical = member_id in lexical_scores
            in_vector = member_id in vector_scores
            lex = lexical_scores.get(member_id, 0.0)
            vec = vector_scores.get(member_id, 0.0)
            if in_lexical and in_vector:
                combined = cfg.lexical_weight * lex + cfg.vector_weight * vec
            elif in_lexical:
                combined = cfg.lexical_weight * lex * cfg.single_source_dampening
            else:
                combined = cfg.vector_weight * vec * cfg.single_source_dampening

            sources = tuple(s for s, hit in ((LEXICAL, in_lexical), (VECTOR, in_vector)) if hit)
            results.append(
                RankedResult(
                    member=member,
                    lexical_score=round(lex, 6),
                    vector_score=round(vec, 6),
                    combined_score=round(min(1.0, max(0.0, combined)), 6),
                    explanation=ResultExplanation(
                        sources=sources,
                        matched_filters=[f.describe() for f in spec.filters.filters],
                        matched_filter_count=spec.filters.matched_terms(member),
                        matched_fields=_matched_fields(member, query_tokens),
                    ),
                )
            )

        results.sort(key=_rank_key)
        return results


def _normalize_lexical(hits: List[IndexHit]) -> Dict[str, float]:
    """Scale lexical scores into [0, 1] by the batch maximum."""
    best: Dict[str, float] = {}
    for hit in hits:
        score = max(0.0, float(hit.score))
        if score > best.get(hit.member_id, -1.0):
            best[hit.member_id] = score
    top = max(best.values(), default=0.0)
    if top <= 0:
        return {member_id: 0.0 for member_id in best}
    return {member_id: score / top for member_id, score in best.items()}


def _clamp_vector(hits: List[IndexHit]) -> Dict[str, float]:
    best: Dict[str, float] = {}
    for hit in hits:
        score = min(1.0, max(0.0, float(hit.score)))
        if score > best.get(hit.member_id, -1.0):
            best[hit.member_id] = score
    return best


def _rank_key(result: RankedResult):
    # combined desc, matched filter terms desc, updated_at desc (missing last), id asc
    updated = result.member.updated_at
    recency = (0, -updated.timestamp()) if updated is not None else (1, 0.0)
    return (
        -result.combined_score,
        -result.explanation.matched_filter_count,
        recency,
        result.member.id,
    )


def _tokens(text: str) -> List[str]:
    return [t for t in re.split(r"[\W_]+", (text or "").lower()) if len(t) > 1]


def _matched_fields(member: MemberRecord, tokens: List[str]) -> List[str]:
    matched = []
    for name in EXPLAINED_FIELDS:
        value = getattr(member, name, None)
        if not value:
            continue
        words = set(_tokens(str(value)))
        if any(t in words for t in tokens):
            matched.append(name)
    return matched
