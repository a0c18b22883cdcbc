"""
Discovery error types.

Every failure the pipeline surfaces or absorbs is one of these. Callers catch
``DiscoveryError`` for the whole family.
"""

from typing import List, Optional


class DiscoveryError(Exception):
    """Base class for member discovery errors."""

    retryable = False


class ConfigError(DiscoveryError):
    """A configuration value could not be parsed or is out of range."""


class InvalidSpecification(DiscoveryError):
    """A search specification is malformed (missing tenant, bad limit)."""


class EmbeddingUnavailable(DiscoveryError):
    """Primary and fallback embedding providers both failed."""

    def __init__(self, message: str, attempts: Optional[List[str]] = None):
        super().__init__(message)
        self.attempts = attempts or []


class PartialRetrievalFailure(DiscoveryError):
    """One retrieval source failed; results come from the other source only."""

    def __init__(self, source: str, reason: str):
        super().__init__(f"{source} retrieval failed: {reason}")
        self.source = source
        self.reason = reason


class TotalRetrievalFailure(DiscoveryError):
    """Both retrieval sources failed. Distinct from an empty result."""

    retryable = True

    def __init__(self, message: str, failures: Optional[List[PartialRetrievalFailure]] = None):
        super().__init__(message)
        self.failures = failures or []


class AmbiguousQuery(DiscoveryError):
    """Neither extraction stage produced usable filters or text."""

    def __init__(self, message: str, suggestions: Optional[List[str]] = None):
        super().__init__(message)
        self.suggestions = suggestions or []
