"""
Community Discovery Common Module

Shared infrastructure for the extractor and retriever: configuration, error
types, vocabulary, provider clients and schemas.
"""

from .config import DiscoveryConfig, load_config
from .errors import (
    DiscoveryError,
    ConfigError,
    InvalidSpecification,
    EmbeddingUnavailable,
    PartialRetrievalFailure,
    TotalRetrievalFailure,
    AmbiguousQuery,
)
from .embedding_service import EmbeddingClient, EmbeddingCache
from .llm_client import LLMClient

__all__ = [
    "DiscoveryConfig",
    "load_config",
    "DiscoveryError",
    "ConfigError",
    "InvalidSpecification",
    "EmbeddingUnavailable",
    "PartialRetrievalFailure",
    "TotalRetrievalFailure",
    "AmbiguousQuery",
    "EmbeddingClient",
    "EmbeddingCache",
    "LLMClient",
]
