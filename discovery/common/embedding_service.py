"""
Embedding Service

Turns query text into a fixed-dimension, L2-normalised vector. A primary
provider (Google Gemini) is tried first and an internal fallback (DeepInfra
hosted BGE) second; each attempt has its own timeout. Only when both fail does
the client raise EmbeddingUnavailable, which the retrieval engine absorbs by
degrading to lexical-only search.
"""

import asyncio
import logging
import time
from collections import OrderedDict
from typing import Callable, List, Optional, Tuple

import httpx
import numpy as np

from .config import EmbeddingConfig
from .errors import EmbeddingUnavailable

logger = logging.getLogger("discovery.common.embedding_service")


class EmbeddingProvider:
    """One remote embedding backend."""

    name = "base"

    @property
    def is_available(self) -> bool:
        return True

    async def embed(self, text: str) -> List[float]:
        raise NotImplementedError

    async def aclose(self) -> None:
        pass


class GeminiEmbeddingProvider(EmbeddingProvider):
    """Google text-embedding-004 through google-generativeai."""

    name = "google"

    def __init__(self, api_key: str = "", model: str = "models/text-embedding-004"):
        self.model = model if model.startswith("models/") else f"models/{model}"
        self._genai = None

        if not api_key:
            logger.info("google API key not provided, Gemini embeddings unavailable")
            return
        try:
            import google.generativeai as genai

            genai.configure(api_key=api_key)
            self._genai = genai
        except ImportError:
            logger.warning("google-generativeai package not installed")
        except Exception as e:
            logger.warning("Failed to initialize Gemini embeddings: %s", e)

    @property
    def is_available(self) -> bool:
        return self._genai is not None

    async def embed(self, text: str) -> List[float]:
        # SDK call is blocking
        result = await asyncio.to_thread(
            self._genai.embed_content,
            model=self.model,
            content=text,
            task_type="retrieval_query",
        )
        return result["embedding"]


class DeepInfraEmbeddingProvider(EmbeddingProvider):
    """Hosted BAAI/bge-base-en-v1.5 via the DeepInfra inference API."""

    name = "deepinfra"
    ENDPOINT = "https://api.deepinfra.com/v1/inference/{model}"

    def __init__(
        self,
        api_key: str = "",
        model: str = "BAAI/bge-base-en-v1.5",
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.model = model
        self._api_key = api_key
        self._http = http_client
        self._owns_http = http_client is None

        if not api_key:
            logger.info("deepinfra API key not provided, fallback embeddings unavailable")

    @property
    def is_available(self) -> bool:
        return bool(self._api_key)

    async def embed(self, text: str) -> List[float]:
        if self._http is None:
            self._http = httpx.AsyncClient()
        response = await self._http.post(
            self.ENDPOINT.format(model=self.model),
            json={"inputs": [text], "normalize": True},
            headers={"Authorization": f"bearer {self._api_key}"},
        )
        response.raise_for_status()
        data = response.json()
        embeddings = data.get("embeddings") or []
        if not embeddings:
            raise ValueError("DeepInfra response has no embeddings")
        return embeddings[0]

    async def aclose(self) -> None:
        if self._http is not None and self._owns_http:
            await self._http.aclose()
            self._http = None


class EmbeddingCache:
    """Small LRU cache with a time-to-live, keyed by normalised query text."""

    def __init__(
        self,
        max_size: int = 1000,
        ttl: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_size = max_size
        self.ttl = ttl
        self._clock = clock
        self._entries: "OrderedDict[str, Tuple[float, List[float]]]" = OrderedDict()

    @staticmethod
    def key_for(text: str) -> str:
        return " ".join(text.lower().split())

    def get(self, text: str) -> Optional[List[float]]:
        key = self.key_for(text)
        entry = self._entries.get(key)
        if entry is None:
            return None
        stored_at, vector = entry
        if self._clock() - stored_at > self.ttl:
            del self._entries[key]
            return None
        self._entries.move_to_end(key)
        return vector

    def put(self, text: str, vector: List[float]) -> None:
        if self.max_size <= 0:
            return
        key = self.key_for(text)
        self._entries[key] = (self._clock(), vector)
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_size:
            self._entries.popitem(last=False)

    def __len__(self) -> int:
        return len(self._entries)

    def clear(self) -> None:
        self._entries.clear()


class EmbeddingClient:
    """
    Query embedding with a primary provider and one fallback.

    Vectors are validated (dimension, finite values) and L2-normalised so
    that a dot product equals cosine similarity.
    """

    def __init__(
        self,
        primary: EmbeddingProvider,
        fallback: Optional[EmbeddingProvider] = None,
        dimension: int = 768,
        attempt_timeout: float = 1.5,
        cache: Optional[EmbeddingCache] = None,
    ):
        self._providers = [p for p in (primary, fallback) if p is not None]
        self.dimension = dimension
        self.attempt_timeout = attempt_timeout
        self._cache = cache

        available = [p.name for p in self._providers if p.is_available]
        if available:
            logger.info("Embedding providers ready: %s", ", ".join(available))
        else:
            logger.warning("No embedding provider available, searches will be lexical-only")

    @classmethod
    def from_config(
        cls,
        config: EmbeddingConfig,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> "EmbeddingClient":
        return cls(
            primary=_build_provider(
                config.primary_provider, config.primary_model, config, http_client
            ),
            fallback=_build_provider(
                config.fallback_provider, config.fallback_model, config, http_client
            ),
            dimension=config.dimension,
            attempt_timeout=config.attempt_timeout,
            cache=EmbeddingCache(max_size=config.cache_size, ttl=config.cache_ttl),
        )

    @property
    def is_available(self) -> bool:
        return any(p.is_available for p in self._providers)

    async def embed(self, text: str) -> List[float]:
        """
        Embed a single query.

        Args:
            text: Query text (must be non-blank)

        Returns:
            L2-normalised vector of ``self.dimension`` floats

        Raises:
            EmbeddingUnavailable: every provider failed or none is configured
        """
        if not text or not text.strip():
            raise ValueError("Cannot embed empty text")

        if self._cache is not None:
            cached = self._cache.get(text)
            if cached is not None:
                return cached

        attempts = []
        for provider in self._providers:
            if not provider.is_available:
                attempts.append(f"{provider.name}: not configured")
                continue
            try:
                raw = await asyncio.wait_for(provider.embed(text), timeout=self.attempt_timeout)
                vector = self._validate(raw)
            except asyncio.TimeoutError:
                logger.warning(
                    "Embedding provider %s timed out after %.1fs", provider.name, self.attempt_timeout
                )
                attempts.append(f"{provider.name}: timeout")
                continue
            except Exception as e:
                logger.warning("Embedding provider %s failed: %s", provider.name, e)
                attempts.append(f"{provider.name}: {e}")
                continue

            if self._cache is not None:
                self._cache.put(text, vector)
            return vector

        raise EmbeddingUnavailable("All embedding providers failed", attempts=attempts)

    async def embed_many(self, texts: List[str]) -> List[List[float]]:
        """Embed several texts concurrently. Any failure propagates."""
        if not texts:
            return []
        return list(await asyncio.gather(*(self.embed(t) for t in texts)))

    def _validate(self, raw) -> List[float]:
        vector = np.asarray(raw, dtype=np.float64)
        if vector.ndim != 1 or vector.shape[0] != self.dimension:
            raise ValueError(
                f"Embedding dimension mismatch: expected {self.dimension}, got {vector.shape}"
            )
        if not np.all(np.isfinite(vector)):
            raise ValueError("Embedding contains non-finite values")
        norm = float(np.linalg.norm(vector))
        if norm == 0.0:
            raise ValueError("Embedding is a zero vector")
        return (vector / norm).tolist()

    async def aclose(self) -> None:
        for provider in self._providers:
            await provider.aclose()


def _build_provider(
    name: str,
    model: str,
    config: EmbeddingConfig,
    http_client: Optional[httpx.AsyncClient],
) -> Optional[EmbeddingProvider]:
    name = (name or "").lower()
    if name in ("google", "gemini"):
        return GeminiEmbeddingProvider(api_key=config.google_api_key, model=model)
    if name == "deepinfra":
        return DeepInfraEmbeddingProvider(
            api_key=config.deepinfra_api_key, model=model, http_client=http_client
        )
    if name in ("", "none"):
        return None
    logger.warning("Unsupported embedding provider: %s", name)
    return None


def cosine_similarity(vec1: List[float], vec2: List[float]) -> float:
    """Cosine similarity of two normalised vectors, clamped to [0, 1]."""
    v1 = np.asarray(vec1, dtype=np.float64)
    v2 = np.asarray(vec2, dtype=np.float64)
    if v1.shape != v2.shape:
        raise ValueError(f"Vector dimension mismatch: {v1.shape} vs {v2.shape}")
    return max(0.0, min(1.0, float(np.dot(v1, v2))))


def batch_cosine_similarity(query_vec: List[float], vectors: List[List[float]]) -> List[float]:
    """
    Similarity between a query and many vectors in one matrix product.

    Args:
        query_vec: Normalised query embedding
        vectors: Normalised embeddings to compare against

    Returns:
        Scores clamped to [0, 1], in input order
    """
    if not vectors:
        return []
    query = np.asarray(query_vec, dtype=np.float64)
    matrix = np.asarray(vectors, dtype=np.float64)
    similarities = np.clip(matrix @ query, 0.0, 1.0)
    return similarities.tolist()
