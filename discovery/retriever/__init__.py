"""
Retriever - Tenant-scoped Hybrid Member Search

Plans a search from extracted filters, runs it against lexical and vector
indexes, and remembers each turn for follow-up queries.

Key Components:
- QueryPlanner: validates and normalises into a SearchSpecification
- HybridSearchEngine: concurrent sub-searches, score fusion, ordering
- ConversationContextStore: bounded per-session history with idle expiry
- DiscoveryPipeline: one conversational turn end to end

Pipeline:
1. Read recent turns for the session
2. Extract filters, text and intent
3. Plan the specification
4. Retrieve and merge (lexical-only if embeddings are down)
5. Record the turn and respond
"""

from .adapters import IndexHit, LexicalIndex, VectorIndex, MemberStore, InMemoryMemberIndex
from .query_planner import QueryPlanner
from .engine import HybridSearchEngine, SearchOutcome, RetrievalState
from .context_store import ConversationContextStore
from .pipeline import DiscoveryPipeline, QueryResponse, QueryStatus

__all__ = [
    "IndexHit",
    "LexicalIndex",
    "VectorIndex",
    "MemberStore",
    "InMemoryMemberIndex",
    "QueryPlanner",
    "HybridSearchEngine",
    "SearchOutcome",
    "RetrievalState",
    "ConversationContextStore",
    "DiscoveryPipeline",
    "QueryResponse",
    "QueryStatus",
]
