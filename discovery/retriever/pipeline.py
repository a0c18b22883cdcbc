"""
Discovery Pipeline

Entry point for one conversational search turn:

    context -> extract -> plan -> retrieve -> record turn -> respond

Turns of the same session are serialised; distinct sessions run in
parallel. A cancelled or failed turn is never written to the context.
"""

import asyncio
import logging
import time
from enum import Enum
from typing import Callable, List, Optional

import httpx
from pydantic import BaseModel, Field

from ..common.config import DiscoveryConfig
from ..common.embedding_service import EmbeddingClient
from ..common.errors import AmbiguousQuery, InvalidSpecification
from ..common.llm_client import LLMClient
from ..common.schemas import ConversationTurn, Intent, RankedResult, SearchSpecification
from ..extractor.entity_extractor import EntityExtractor, Extraction
from .adapters import LexicalIndex, MemberStore, VectorIndex
from .context_store import ConversationContextStore
from .engine import HybridSearchEngine
from .query_planner import QueryPlanner

logger = logging.getLogger("discovery.retriever.pipeline")


CLARIFICATION_SUGGESTIONS = [
    'Find members with specific skills (e.g., "AI expert", "software developer")',
    'Search by location (e.g., "members in Chennai")',
    "Look for members with consulting services",
    "Find members with high annual turnover",
]

CLARIFICATION_MESSAGE = (
    'I\'m not quite sure what you\'re looking for with "{query}". Could you be more '
    "specific? For example, are you looking for someone with particular skills, in a "
    "specific location, or with certain services?"
)


class QueryStatus(str, Enum):
    OK = "ok"
    CLARIFICATION_NEEDED = "clarification_needed"


class QueryResponse(BaseModel):
    """What a caller gets back for one turn"""
    status: QueryStatus
    query: str
    intent: Intent
    confidence: float = 0.0
    specification: Optional[SearchSpecification] = None
    results: List[RankedResult] = Field(default_factory=list)
    degraded_sources: List[str] = Field(default_factory=list)
    llm_used: bool = False
    carried_over: bool = False
    message: str = ""
    suggestions: List[str] = Field(default_factory=list)

    @property
    def needs_clarification(self) -> bool:
        return self.status == QueryStatus.CLARIFICATION_NEEDED

    @property
    def result_ids(self) -> List[str]:
        return [r.member_id for r in self.results]


class DiscoveryPipeline:
    """
    Wires extractor, planner, engine and context store together.

    The extractor may call a synchronous LLM SDK, so it runs in a worker
    thread to keep the event loop free.
    """

    def __init__(
        self,
        extractor: EntityExtractor,
        planner: QueryPlanner,
        engine: HybridSearchEngine,
        context_store: ConversationContextStore,
        clock: Callable[[], float] = time.time,
    ):
        self._extractor = extractor
        self._planner = planner
        self._engine = engine
        self._context = context_store
        self._clock = clock

    @classmethod
    def from_config(
        cls,
        config: DiscoveryConfig,
        lexical_index: LexicalIndex,
        vector_index: Optional[VectorIndex] = None,
        member_store: Optional[MemberStore] = None,
        llm_client: Optional[LLMClient] = None,
        embedding_client: Optional[EmbeddingClient] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> "DiscoveryPipeline":
        """
        Build a pipeline from configuration.

        ``lexical_index`` may implement all three index interfaces (as
        InMemoryMemberIndex does); the vector index and member store then
        default to it. Clients not passed in are built from ``config``.
        """
        if llm_client is None and config.extractor.llm_enabled:
            llm_client = LLMClient.from_config(config.llm)
        if embedding_client is None:
            embedding_client = EmbeddingClient.from_config(config.embedding, http_client=http_client)

        engine = HybridSearchEngine(
            lexical_index=lexical_index,
            vector_index=vector_index or lexical_index,
            member_store=member_store or lexical_index,
            embedding_client=embedding_client,
            config=config.retrieval,
        )
        return cls(
            extractor=EntityExtractor.from_config(config, llm_client=llm_client),
            planner=QueryPlanner(config.planner),
            engine=engine,
            context_store=ConversationContextStore.from_config(config.context),
        )

    @property
    def context_store(self) -> ConversationContextStore:
        return self._context

    async def run_query(
        self,
        tenant_id: str,
        session_id: str,
        raw_text: str,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> QueryResponse:
        """
        Handle one conversational search turn.

        Args:
            tenant_id: Community the caller is bound to
            session_id: Conversation the turn belongs to
            raw_text: The user's query as typed
            limit: Page size (None uses the configured default)
            offset: Results to skip

        Returns:
            QueryResponse with status ``ok``, or ``clarification_needed``
            when nothing usable could be extracted

        Raises:
            InvalidSpecification: tenant or session missing, bad limit/offset
            TotalRetrievalFailure: both retrieval sources failed (retryable)
        """
        if not tenant_id or not str(tenant_id).strip():
            raise InvalidSpecification("tenant_id is required")
        if not session_id or not str(session_id).strip():
            raise InvalidSpecification("session_id is required")

        async with self._context.session(session_id):
            # a session never borrows context across communities
            recent = tuple(t for t in self._context.get(session_id) if t.tenant_id == tenant_id)

            try:
                extraction, spec = await self._interpret(tenant_id, raw_text, recent, limit, offset)
            except AmbiguousQuery as e:
                logger.info("Asking for clarification in session %s", session_id)
                return QueryResponse(
                    status=QueryStatus.CLARIFICATION_NEEDED,
                    query=raw_text,
                    intent=Intent.AMBIGUOUS,
                    message=str(e),
                    suggestions=e.suggestions,
                )

            outcome = await self._engine.execute(spec)

            turn = ConversationTurn(
                session_id=session_id,
                tenant_id=tenant_id,
                timestamp=self._clock(),
                raw_text=raw_text,
                specification=spec,
                result_ids=tuple(r.member_id for r in outcome.results),
            )
            self._context.append(session_id, turn)

        logger.info(
            "Query %r -> %d results (intent=%s, confidence=%.2f)",
            raw_text[:80], len(outcome.results), extraction.intent.value, extraction.confidence,
        )
        return QueryResponse(
            status=QueryStatus.OK,
            query=raw_text,
            intent=extraction.intent,
            confidence=extraction.confidence,
            specification=spec,
            results=outcome.results,
            degraded_sources=outcome.degraded_sources,
            llm_used=extraction.llm_used,
            carried_over=extraction.carried_over,
        )

    async def _interpret(self, tenant_id, raw_text, recent, limit, offset):
        extraction: Extraction = await asyncio.to_thread(self._extractor.extract, raw_text, recent)
        if extraction.is_ambiguous:
            raise AmbiguousQuery(
                CLARIFICATION_MESSAGE.format(query=raw_text),
                suggestions=list(CLARIFICATION_SUGGESTIONS),
            )
        spec = self._planner.plan(
            tenant_id,
            extraction.filters,
            extraction.canonical_text,
            limit=limit,
            offset=offset,
            intent=extraction.intent,
        )
        return extraction, spec
