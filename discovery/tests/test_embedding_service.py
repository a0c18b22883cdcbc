"""
Tests for EmbeddingClient

Primary/fallback ordering, per-attempt timeouts, validation, caching and
the DeepInfra HTTP provider (via httpx.MockTransport).
"""

import asyncio
import json
import logging
import math
import pytest

import httpx

from discovery.common.embedding_service import (
    DeepInfraEmbeddingProvider,
    EmbeddingCache,
    EmbeddingClient,
    EmbeddingProvider,
    batch_cosine_similarity,
    cosine_similarity,
)
from discovery.common.errors import EmbeddingUnavailable


class FakeProvider(EmbeddingProvider):
    def __init__(self, name, vector=None, error=None, delay=0.0, available=True):
        self.name = name
        self._vector = vector
        self._error = error
        self._delay = delay
        self._available = available
        self.calls = 0

    @property
    def is_available(self):
        return self._available

    async def embed(self, text):
        self.calls += 1
        if self._delay:
            await asyncio.sleep(self._delay)
        if self._error:
            raise self._error
        return self._vector


class TestEmbeddingClient:
    @pytest.mark.asyncio
    async def test_primary_result_is_normalised(self):
        primary = FakeProvider("primary", vector=[3.0, 4.0, 0.0, 0.0])
        client = EmbeddingClient(primary, dimension=4)

        vector = await client.embed("web developers")

        assert vector == pytest.approx([0.6, 0.8, 0.0, 0.0])

    @pytest.mark.asyncio
    async def test_fallback_after_primary_error(self, caplog):
        primary = FakeProvider("primary", error=RuntimeError("quota"))
        fallback = FakeProvider("fallback", vector=[1.0, 0.0, 0.0, 0.0])
        client = EmbeddingClient(primary, fallback, dimension=4)

        with caplog.at_level(logging.WARNING, logger="discovery.common.embedding_service"):
            vector = await client.embed("web developers")

        assert vector == [1.0, 0.0, 0.0, 0.0]
        assert fallback.calls == 1
        assert "primary failed" in caplog.text

    @pytest.mark.asyncio
    async def test_fallback_after_primary_timeout(self):
        primary = FakeProvider("primary", vector=[1.0, 0.0, 0.0, 0.0], delay=1.0)
        fallback = FakeProvider("fallback", vector=[0.0, 1.0, 0.0, 0.0])
        client = EmbeddingClient(primary, fallback, dimension=4, attempt_timeout=0.05)

        assert await client.embed("web developers") == [0.0, 1.0, 0.0, 0.0]

    @pytest.mark.asyncio
    async def test_both_fail_raises(self):
        primary = FakeProvider("primary", error=RuntimeError("down"))
        fallback = FakeProvider("fallback", available=False)
        client = EmbeddingClient(primary, fallback, dimension=4)

        with pytest.raises(EmbeddingUnavailable) as exc_info:
            await client.embed("web developers")

        assert exc_info.value.attempts == ["primary: down", "fallback: not configured"]
        assert fallback.calls == 0

    @pytest.mark.asyncio
    async def test_wrong_dimension_counts_as_failure(self):
        primary = FakeProvider("primary", vector=[1.0, 0.0])
        client = EmbeddingClient(primary, dimension=4)

        with pytest.raises(EmbeddingUnavailable):
            await client.embed("web developers")

    @pytest.mark.asyncio
    async def test_non_finite_counts_as_failure(self):
        primary = FakeProvider("primary", vector=[math.nan, 0.0, 0.0, 1.0])
        client = EmbeddingClient(primary, dimension=4)

        with pytest.raises(EmbeddingUnavailable):
            await client.embed("web developers")

    @pytest.mark.asyncio
    async def test_blank_text_rejected(self):
        client = EmbeddingClient(FakeProvider("primary", vector=[1.0, 0, 0, 0]), dimension=4)
        with pytest.raises(ValueError):
            await client.embed("   ")

    @pytest.mark.asyncio
    async def test_cache_avoids_second_call(self):
        primary = FakeProvider("primary", vector=[1.0, 0.0, 0.0, 0.0])
        client = EmbeddingClient(primary, dimension=4, cache=EmbeddingCache(max_size=10))

        await client.embed("Web  Developers")
        await client.embed("web developers")

        assert primary.calls == 1

    def test_not_available_without_providers(self):
        client = EmbeddingClient(FakeProvider("primary", available=False), dimension=4)
        assert not client.is_available


class TestEmbeddingCache:
    def test_ttl_expiry(self):
        now = [0.0]
        cache = EmbeddingCache(max_size=10, ttl=300.0, clock=lambda: now[0])
        cache.put("q", [1.0])

        now[0] = 299.0
        assert cache.get("q") == [1.0]
        now[0] = 301.0
        assert cache.get("q") is None

    def test_lru_eviction(self):
        cache = EmbeddingCache(max_size=2)
        cache.put("a", [1.0])
        cache.put("b", [2.0])
        cache.get("a")
        cache.put("c", [3.0])

        assert cache.get("b") is None
        assert cache.get("a") == [1.0]
        assert len(cache) == 2


class TestDeepInfraProvider:
    @pytest.mark.asyncio
    async def test_posts_inputs_and_reads_embeddings(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"embeddings": [[0.1, 0.2, 0.3]]})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            provider = DeepInfraEmbeddingProvider(api_key="di-key", http_client=http)
            vector = await provider.embed("civil engineers")

        assert vector == [0.1, 0.2, 0.3]
        assert seen["url"] == "https://api.deepinfra.com/v1/inference/BAAI/bge-base-en-v1.5"
        assert seen["auth"] == "bearer di-key"
        assert seen["body"] == {"inputs": ["civil engineers"], "normalize": True}

    @pytest.mark.asyncio
    async def test_http_error_propagates(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(503))
        async with httpx.AsyncClient(transport=transport) as http:
            provider = DeepInfraEmbeddingProvider(api_key="di-key", http_client=http)
            with pytest.raises(httpx.HTTPStatusError):
                await provider.embed("civil engineers")

    def test_unavailable_without_key(self):
        assert not DeepInfraEmbeddingProvider(api_key="").is_available


class TestCosine:
    def test_identical(self):
        assert cosine_similarity([1.0, 0.0], [1.0, 0.0]) == pytest.approx(1.0)

    def test_opposite_is_clamped(self):
        assert cosine_similarity([1.0, 0.0], [-1.0, 0.0]) == 0.0

    def test_batch(self):
        scores = batch_cosine_similarity([1.0, 0.0], [[1.0, 0.0], [0.0, 1.0], [0.6, 0.8]])
        assert scores == pytest.approx([1.0, 0.0, 0.6])

    def test_dimension_mismatch(self):
        with pytest.raises(ValueError):
            cosine_similarity([1.0, 0.0], [1.0, 0.0, 0.0])
