"""
Tests for HybridSearchEngine

Tenant isolation, hard filters, score fusion, ordering, degradation when a
source fails, total failure, and cancellation of in-flight sub-searches.
"""

import asyncio
import logging
from datetime import datetime
from typing import Dict, List

import pytest
from unittest.mock import AsyncMock, Mock

from discovery.common.config import RetrievalConfig
from discovery.common.errors import (
    EmbeddingUnavailable,
    InvalidSpecification,
    TotalRetrievalFailure,
)
from discovery.common.schemas import (
    BranchFilter,
    EmbeddingKind,
    FilterSet,
    MemberRecord,
    SearchSpecification,
    SkillFilter,
    YearFilter,
)
from discovery.retriever.adapters import IndexHit, InMemoryMemberIndex
from discovery.retriever.engine import HybridSearchEngine, RetrievalState


def member(id, community="c1", **fields):
    fields.setdefault("name", id.title())
    return MemberRecord(id=id, community_id=community, **fields)


def embedder(vector=None, error=None):
    client = Mock()
    if error is not None:
        client.embed = AsyncMock(side_effect=error)
    else:
        client.embed = AsyncMock(return_value=vector or [1.0, 0.0, 0.0, 0.0])
    return client


class ScriptedIndex:
    """
    Index double with fixed hits. get_members ignores the tenant on purpose
    so the engine's own isolation checks are what the tests exercise.
    """

    def __init__(self, members, lexical=(), vector=(), lexical_delay=0.0, vector_delay=0.0,
                 lexical_error=None, vector_error=None):
        self.members = {m.id: m for m in members}
        self.lexical = list(lexical)
        self.vector = list(vector)
        self.lexical_delay = lexical_delay
        self.vector_delay = vector_delay
        self.lexical_error = lexical_error
        self.vector_error = vector_error
        self.calls: List[tuple] = []
        self.cancelled: List[str] = []

    async def _wait(self, source, delay):
        try:
            await asyncio.sleep(delay)
        except asyncio.CancelledError:
            self.cancelled.append(source)
            raise

    async def search_text(self, tenant_id, text, filters, limit):
        self.calls.append(("lexical", tenant_id, text, limit))
        if self.lexical_delay:
            await self._wait("lexical", self.lexical_delay)
        if self.lexical_error:
            raise self.lexical_error
        return [IndexHit(member_id=i, score=s) for i, s in self.lexical]

    async def search_vector(self, tenant_id, vector, filters, limit):
        self.calls.append(("vector", tenant_id, tuple(vector), limit))
        if self.vector_delay:
            await self._wait("vector", self.vector_delay)
        if self.vector_error:
            raise self.vector_error
        return [IndexHit(member_id=i, score=s) for i, s in self.vector]

    async def get_members(self, tenant_id, member_ids) -> Dict[str, MemberRecord]:
        return {i: self.members[i] for i in member_ids if i in self.members}


def engine_for(index, embedding_client=None, **config):
    return HybridSearchEngine(
        lexical_index=index,
        vector_index=index,
        member_store=index,
        embedding_client=embedding_client,
        config=RetrievalConfig(**config),
    )


def spec(tenant="c1", text="query", filters=None, limit=10, offset=0):
    return SearchSpecification(
        tenant_id=tenant,
        canonical_text=text,
        filters=filters or FilterSet(),
        limit=limit,
        offset=offset,
    )


@pytest.fixture
def directory():
    idx = InMemoryMemberIndex()
    idx.add_members([
        member("m1", name="Arun", graduation_year=1995, branch="Mechanical", city="Chennai",
               skill_text="precision manufacturing"),
        member("m2", name="Bala", graduation_year=1995, branch="Mechanical", city="Coimbatore",
               skill_text="packaging machines"),
        member("m3", name="Chitra", graduation_year=1998, branch="CSE", city="Chennai",
               skill_text="web development and seo"),
        member("m4", name="Divya", graduation_year=1995, branch="Civil", city="Chennai",
               skill_text="construction projects"),
        member("x1", community="c2", name="Arjun", graduation_year=1995, branch="Mechanical",
               city="Chennai", skill_text="precision manufacturing"),
    ])
    vectors = {
        ("c1", "m1"): [1.0, 0.0, 0.0, 0.0],
        ("c1", "m2"): [0.6, 0.8, 0.0, 0.0],
        ("c1", "m3"): [0.0, 0.0, 1.0, 0.0],
        ("c1", "m4"): [1.0, 0.0, 0.0, 0.0],
        ("c2", "x1"): [1.0, 0.0, 0.0, 0.0],
    }
    for (tenant, member_id), vector in vectors.items():
        idx.set_embedding(tenant, member_id, EmbeddingKind.PROFILE, vector)
    return idx


MECH_1995 = FilterSet.of(YearFilter(years=(1995,)), BranchFilter(branch="Mechanical"))


class TestIsolationAndFilters:
    @pytest.mark.asyncio
    async def test_only_tenant_members(self, directory):
        engine = engine_for(directory, embedder())
        results = await engine.search(spec(text="precision manufacturing"))
        assert "x1" not in [r.member_id for r in results]
        assert all(r.member.community_id == "c1" for r in results)

    @pytest.mark.asyncio
    async def test_hard_filters(self, directory):
        engine = engine_for(directory, embedder())
        results = await engine.search(
            spec(text="mechanical engineering members graduated in 1995", filters=MECH_1995)
        )
        assert [r.member_id for r in results] == ["m1", "m2"]
        assert all(MECH_1995.matches(r.member) for r in results)

    @pytest.mark.asyncio
    async def test_engine_drops_leaked_members(self, caplog):
        index = ScriptedIndex(
            members=[
                member("m1", graduation_year=1995, branch="Mechanical"),
                member("m3", graduation_year=1998, branch="CSE"),
                member("x1", community="c2", graduation_year=1995, branch="Mechanical"),
            ],
            lexical=[("m1", 3.0), ("m3", 9.0), ("x1", 8.0)],
            vector=[("x1", 0.99), ("m3", 0.95)],
        )
        engine = engine_for(index, embedder())

        with caplog.at_level(logging.WARNING, logger="discovery.retriever.engine"):
            results = await engine.search(spec(filters=MECH_1995))

        assert [r.member_id for r in results] == ["m1"]
        assert "belongs to community c2" in caplog.text

    @pytest.mark.asyncio
    async def test_zero_matches_is_empty_not_error(self, directory):
        engine = engine_for(directory, embedder())
        filters = FilterSet.of(YearFilter(years=(1970,)))
        outcome = await engine.execute(spec(filters=filters))
        assert outcome.results == []
        assert outcome.state == RetrievalState.DONE

    @pytest.mark.asyncio
    async def test_blank_tenant_rejected(self, directory):
        engine = engine_for(directory, embedder())
        with pytest.raises(InvalidSpecification):
            await engine.search(spec(tenant="  "))


class TestFusion:
    @pytest.mark.asyncio
    async def test_weights_and_dampening(self):
        index = ScriptedIndex(
            members=[member("a"), member("b"), member("c")],
            lexical=[("a", 10.0), ("b", 5.0)],
            vector=[("a", 0.9), ("c", 0.8)],
        )
        engine = engine_for(index, embedder())

        results = await engine.search(spec())

        scores = {r.member_id: r.combined_score for r in results}
        assert scores["a"] == pytest.approx(0.4 * 1.0 + 0.6 * 0.9)
        assert scores["b"] == pytest.approx(0.4 * 0.5 * 0.5)
        assert scores["c"] == pytest.approx(0.6 * 0.8 * 0.5)
        assert [r.member_id for r in results] == ["a", "c", "b"]
        assert results[0].explanation.sources == ("lexical", "vector")
        assert results[1].explanation.sources == ("vector",)

    @pytest.mark.asyncio
    async def test_lone_hit_stays_below_equal_dual_match(self):
        index = ScriptedIndex(
            members=[member("dual"), member("lone"), member("other")],
            lexical=[("lone", 4.0), ("dual", 4.0), ("other", 8.0)],
            vector=[("dual", 0.05)],
        )
        engine = engine_for(index, embedder(), single_source_dampening=1.0)

        results = await engine.search(spec())

        ids = [r.member_id for r in results]
        assert ids.index("dual") < ids.index("lone")

    @pytest.mark.asyncio
    async def test_weak_dual_match_can_rank_below_strong_lone_hit(self):
        index = ScriptedIndex(
            members=[member("weak"), member("strong")],
            lexical=[("strong", 10.0), ("weak", 1.0)],
            vector=[("weak", 0.2)],
        )
        engine = engine_for(index, embedder())

        results = await engine.search(spec())

        scores = {r.member_id: r.combined_score for r in results}
        assert scores["weak"] == pytest.approx(0.4 * 0.1 + 0.6 * 0.2)
        assert scores["strong"] == pytest.approx(0.4 * 1.0 * 0.5)
        assert [r.member_id for r in results] == ["strong", "weak"]

    @pytest.mark.asyncio
    async def test_vector_scores_clamped(self):
        index = ScriptedIndex(members=[member("a")], vector=[("a", 1.7)])
        engine = engine_for(index, embedder())
        results = await engine.search(spec())
        assert results[0].vector_score == 1.0

    @pytest.mark.asyncio
    async def test_duplicate_hits_collapse(self):
        index = ScriptedIndex(
            members=[member("a"), member("b")],
            lexical=[("a", 2.0), ("a", 4.0), ("b", 1.0)],
        )
        engine = engine_for(index, embedder())
        results = await engine.search(spec())
        assert [r.member_id for r in results] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_tuned_weights(self):
        index = ScriptedIndex(
            members=[member("a"), member("b")],
            lexical=[("a", 1.0), ("b", 1.0)],
            vector=[("a", 1.0), ("b", 1.0)],
        )
        engine = engine_for(index, embedder(), lexical_weight=0.5, vector_weight=0.5)
        results = await engine.search(spec())
        assert results[0].combined_score == pytest.approx(1.0)


class TestOrdering:
    @pytest.mark.asyncio
    async def test_tie_breaks(self):
        members = [
            member("u", skill_text="seo"),
            member("t", skill_text="seo"),
            member("s", skill_text="seo", updated_at=datetime(2024, 1, 1)),
            member("r", skill_text="seo", updated_at=datetime(2024, 5, 1)),
            member("p", skill_text="seo and web development"),
        ]
        index = ScriptedIndex(members=members, lexical=[(m.id, 1.0) for m in members])
        engine = engine_for(index, embedder())
        filters = FilterSet.of(SkillFilter(terms=("seo", "web development")))

        results = await engine.search(spec(filters=filters))

        assert [r.member_id for r in results] == ["p", "r", "s", "t", "u"]
        assert results[0].explanation.matched_filter_count == 2

    @pytest.mark.asyncio
    async def test_deterministic(self, directory):
        engine = engine_for(directory, embedder())
        query = spec(text="mechanical 1995 chennai")

        first = await engine.search(query)
        second = await engine.search(query)

        assert [(r.member_id, r.combined_score) for r in first] == \
            [(r.member_id, r.combined_score) for r in second]

    @pytest.mark.asyncio
    async def test_paging_and_overfetch(self):
        members = [member(f"m{i}") for i in range(6)]
        index = ScriptedIndex(
            members=members,
            lexical=[(m.id, 6.0 - i) for i, m in enumerate(members)],
        )
        engine = engine_for(index, embedder())

        results = await engine.search(spec(limit=2, offset=2))

        assert [r.member_id for r in results] == ["m2", "m3"]
        lexical_call = [c for c in index.calls if c[0] == "lexical"][0]
        assert lexical_call[3] == (2 + 2) * 3


class TestDegradation:
    @pytest.mark.asyncio
    async def test_embedding_outage_is_lexical_only(self, directory, caplog):
        engine = engine_for(directory, embedder(error=EmbeddingUnavailable("All embedding providers failed")))

        with caplog.at_level(logging.WARNING, logger="discovery.retriever.engine"):
            outcome = await engine.execute(
                spec(text="mechanical engineering members graduated in 1995", filters=MECH_1995)
            )

        assert [r.member_id for r in outcome.results] == ["m1", "m2"]
        assert outcome.degraded_sources == ["vector"]
        assert all(r.explanation.sources == ("lexical",) for r in outcome.results)
        assert "continuing lexical-only" in caplog.text

    @pytest.mark.asyncio
    async def test_no_embedding_client(self, directory):
        outcome = await engine_for(directory).execute(spec(text="precision manufacturing"))
        assert outcome.is_degraded
        assert [r.member_id for r in outcome.results] == ["m1"]

    @pytest.mark.asyncio
    async def test_lexical_timeout(self):
        index = ScriptedIndex(
            members=[member("a")],
            lexical=[("a", 1.0)],
            vector=[("a", 0.8)],
            lexical_delay=1.0,
        )
        engine = engine_for(index, embedder(), subsearch_timeout=0.05)

        outcome = await engine.execute(spec())

        assert [r.member_id for r in outcome.results] == ["a"]
        assert outcome.failures[0].source == "lexical"
        assert "timed out" in outcome.failures[0].reason
        assert outcome.results[0].combined_score == pytest.approx(0.6 * 0.8 * 0.5)

    @pytest.mark.asyncio
    async def test_vector_error(self):
        index = ScriptedIndex(
            members=[member("a")],
            lexical=[("a", 1.0)],
            vector_error=ConnectionError("index offline"),
        )
        outcome = await engine_for(index, embedder()).execute(spec())
        assert outcome.degraded_sources == ["vector"]
        assert "index offline" in str(outcome.failures[0])

    @pytest.mark.asyncio
    async def test_state_history(self, directory):
        outcome = await engine_for(directory, embedder()).execute(spec(text="seo"))
        assert outcome.history == [
            RetrievalState.PLANNED,
            RetrievalState.EMBEDDING,
            RetrievalState.RETRIEVING,
            RetrievalState.MERGING,
            RetrievalState.DONE,
        ]


class TestTotalFailure:
    @pytest.mark.asyncio
    async def test_both_sources_fail(self):
        index = ScriptedIndex(members=[member("a")], lexical_error=RuntimeError("search down"))
        engine = engine_for(index, embedder(error=EmbeddingUnavailable("All embedding providers failed")))

        with pytest.raises(TotalRetrievalFailure) as exc_info:
            await engine.search(spec())

        assert exc_info.value.retryable
        assert [f.source for f in exc_info.value.failures] == ["lexical", "vector"]


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancel_stops_sub_searches(self):
        index = ScriptedIndex(
            members=[member("a")],
            lexical=[("a", 1.0)],
            vector=[("a", 0.5)],
            lexical_delay=10.0,
            vector_delay=10.0,
        )
        engine = engine_for(index, embedder(), subsearch_timeout=30.0)

        task = asyncio.create_task(engine.search(spec()))
        await asyncio.sleep(0.05)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        assert sorted(index.cancelled) == ["lexical", "vector"]
