"""
Index Adapters

Interfaces the retrieval engine talks to, and an in-memory implementation of
all three for local runs and tests.

- LexicalIndex: full-text search scoped to one community
- VectorIndex: similarity search over stored member embeddings
- MemberStore: fetch member records by id

Every call takes the tenant id and the FilterSet; an implementation must
never return members of another community or members failing a filter.
"""

from __future__ import annotations

import json
import logging
import math
import re
from collections import Counter, defaultdict
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Protocol, Sequence, Set

import numpy as np

from ..common.embedding_service import EmbeddingClient, batch_cosine_similarity
from ..common.schemas import (
    EmbeddingKind,
    FilterSet,
    MemberRecord,
    render_embedding_texts,
    render_search_document,
)
from ..common.vocabulary import STOP_WORDS

logger = logging.getLogger("discovery.retriever.adapters")


@dataclass(frozen=True)
class IndexHit:
    """One candidate from a sub-search. Score semantics depend on the source."""
    member_id: str
    score: float


class LexicalIndex(Protocol):
    async def search_text(
        self, tenant_id: str, text: str, filters: FilterSet, limit: int
    ) -> List[IndexHit]:
        ...


class VectorIndex(Protocol):
    async def search_vector(
        self, tenant_id: str, vector: Sequence[float], filters: FilterSet, limit: int
    ) -> List[IndexHit]:
        """Scores are cosine similarities in [0, 1]."""
        ...


class MemberStore(Protocol):
    async def get_members(
        self, tenant_id: str, member_ids: Sequence[str]
    ) -> Dict[str, MemberRecord]:
        ...


def default_tokenizer(text: str, *, stopwords: Optional[Set[str]] = None) -> List[str]:
    tokens = [t for t in re.split(r"[\W_]+", text.lower()) if t]
    if stopwords:
        tokens = [t for t in tokens if t not in stopwords]
    return tokens


class BM25Index:
    """Minimal BM25 over documents keyed by id."""

    def __init__(self, *, k1: float = 1.5, b: float = 0.75, stopwords: Optional[Set[str]] = None):
        self.k1 = k1
        self.b = b
        self._stopwords = stopwords
        self._term_freqs: Dict[str, Counter] = {}
        self._doc_lengths: Dict[str, int] = {}
        self._doc_freqs: Dict[str, int] = defaultdict(int)
        self._total_doc_len = 0

    def __len__(self) -> int:
        return len(self._term_freqs)

    def add(self, doc_id: str, text: str) -> None:
        if doc_id in self._term_freqs:
            self.remove(doc_id)
        tokens = default_tokenizer(text, stopwords=self._stopwords)
        term_freq = Counter(tokens)
        self._term_freqs[doc_id] = term_freq
        self._doc_lengths[doc_id] = len(tokens)
        self._total_doc_len += len(tokens)
        for token in term_freq:
            self._doc_freqs[token] += 1

    def remove(self, doc_id: str) -> None:
        term_freq = self._term_freqs.pop(doc_id, None)
        if term_freq is None:
            return
        self._total_doc_len -= self._doc_lengths.pop(doc_id)
        for token in term_freq:
            self._doc_freqs[token] -= 1
            if self._doc_freqs[token] <= 0:
                del self._doc_freqs[token]

    def score(self, query: str, doc_ids: Optional[Iterable[str]] = None) -> Dict[str, float]:
        """Positive BM25 scores for ``doc_ids`` (default: every document)."""
        if not query or not self._term_freqs:
            return {}
        query_tokens = set(default_tokenizer(query, stopwords=self._stopwords))
        avg_doc_len = self._total_doc_len / len(self._term_freqs) or 1.0
        n_docs = len(self._term_freqs)

        scores = {}
        for doc_id in (doc_ids if doc_ids is not None else self._term_freqs):
            term_freq = self._term_freqs.get(doc_id)
            if term_freq is None:
                continue
            score = 0.0
            for token in query_tokens:
                tf = term_freq.get(token, 0)
                if tf == 0:
                    continue
                df = self._doc_freqs[token]
                idf = math.log(1 + (n_docs - df + 0.5) / (df + 0.5))
                denom = tf + self.k1 * (1 - self.b + self.b * self._doc_lengths[doc_id] / avg_doc_len)
                score += idf * (tf * (self.k1 + 1)) / denom
            if score > 0:
                scores[doc_id] = score
        return scores


class InMemoryMemberIndex:
    """
    Lexical index, vector index and member store over in-process data.

    Members are partitioned by community; every lookup starts from the
    requested tenant's partition, so cross-tenant results are impossible.
    """

    def __init__(self, k1: float = 1.5, b: float = 0.75):
        self._k1 = k1
        self._b = b
        self._members: Dict[str, Dict[str, MemberRecord]] = defaultdict(dict)
        self._bm25: Dict[str, BM25Index] = {}
        self._embeddings: Dict[str, Dict[str, Dict[EmbeddingKind, List[float]]]] = defaultdict(dict)

    def add_members(self, members: Iterable[MemberRecord]) -> int:
        count = 0
        for member in members:
            tenant = member.community_id
            self._members[tenant][member.id] = member
            if tenant not in self._bm25:
                self._bm25[tenant] = BM25Index(k1=self._k1, b=self._b, stopwords=STOP_WORDS)
            self._bm25[tenant].add(member.id, render_search_document(member))
            count += 1
        return count

    def set_embedding(
        self, tenant_id: str, member_id: str, kind: EmbeddingKind, vector: Sequence[float]
    ) -> None:
        if member_id not in self._members.get(tenant_id, {}):
            raise KeyError(f"Unknown member {member_id} in community {tenant_id}")
        array = np.asarray(vector, dtype=np.float64)
        norm = float(np.linalg.norm(array))
        if norm > 0:
            array = array / norm
        self._embeddings[tenant_id].setdefault(member_id, {})[EmbeddingKind(kind)] = array.tolist()

    async def embed_members(self, client: EmbeddingClient, tenant_id: Optional[str] = None) -> int:
        """Compute profile, skills and contextual embeddings for stored members."""
        tenants = [tenant_id] if tenant_id else list(self._members)
        embedded = 0
        for tenant in tenants:
            for member in self._members.get(tenant, {}).values():
                texts = render_embedding_texts(member)
                kinds = [k for k, t in texts.items() if t.strip()]
                vectors = await client.embed_many([texts[k] for k in kinds])
                for kind, vector in zip(kinds, vectors):
                    self.set_embedding(tenant, member.id, kind, vector)
                embedded += 1
        logger.info("Embedded %d members", embedded)
        return embedded

    def members(self, tenant_id: str) -> List[MemberRecord]:
        return sorted(self._members.get(tenant_id, {}).values(), key=lambda m: m.id)

    def _eligible(self, tenant_id: str, filters: FilterSet) -> List[MemberRecord]:
        return [m for m in self.members(tenant_id) if filters.matches(m)]

    async def search_text(
        self, tenant_id: str, text: str, filters: FilterSet, limit: int
    ) -> List[IndexHit]:
        index = self._bm25.get(tenant_id)
        if index is None or limit <= 0:
            return []
        eligible = [m.id for m in self._eligible(tenant_id, filters)]
        scores = index.score(text, eligible)
        ranked = sorted(scores.items(), key=lambda item: (-item[1], item[0]))
        return [IndexHit(member_id=i, score=s) for i, s in ranked[:limit]]

    async def search_vector(
        self, tenant_id: str, vector: Sequence[float], filters: FilterSet, limit: int
    ) -> List[IndexHit]:
        if limit <= 0:
            return []
        stored = self._embeddings.get(tenant_id, {})
        hits = []
        for member in self._eligible(tenant_id, filters):
            by_kind = stored.get(member.id)
            if not by_kind:
                continue
            # best of the member's renderings
            similarity = max(batch_cosine_similarity(vector, list(by_kind.values())))
            hits.append(IndexHit(member_id=member.id, score=similarity))
        hits.sort(key=lambda h: (-h.score, h.member_id))
        return hits[:limit]

    async def get_members(
        self, tenant_id: str, member_ids: Sequence[str]
    ) -> Dict[str, MemberRecord]:
        partition = self._members.get(tenant_id, {})
        return {i: partition[i] for i in member_ids if i in partition}

    @classmethod
    def from_json(cls, path: Path) -> "InMemoryMemberIndex":
        """Load members from a JSON list (or {"members": [...]}) file."""
        with open(path) as f:
            data = json.load(f)
        if isinstance(data, dict):
            data = data.get("members", [])
        index = cls()
        index.add_members(MemberRecord.model_validate(item) for item in data)
        return index
