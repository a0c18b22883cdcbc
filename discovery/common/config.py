"""
Configuration Management for Community Discovery

Loads configuration from ~/.discovery/config.json, a local .env file and
environment variables.
"""

import os
import json
import logging
from pathlib import Path
from dataclasses import dataclass, field

from dotenv import load_dotenv

from .errors import ConfigError

logger = logging.getLogger("discovery.common.config")

# Default config paths
CONFIG_DIR = Path.home() / ".discovery"
CONFIG_PATH = CONFIG_DIR / "config.json"

# Project paths (relative to this file)
PROJECT_ROOT = Path(__file__).parent.parent.parent


@dataclass
class EmbeddingConfig:
    """Query embedding providers. Each attempt has its own timeout."""
    primary_provider: str = "google"
    primary_model: str = "models/text-embedding-004"
    fallback_provider: str = "deepinfra"
    fallback_model: str = "BAAI/bge-base-en-v1.5"
    dimension: int = 768
    attempt_timeout: float = 1.5
    cache_size: int = 1000
    cache_ttl: float = 300.0
    google_api_key: str = ""
    deepinfra_api_key: str = ""


@dataclass
class LLMConfig:
    """LLM provider used by the probabilistic extraction stage"""
    provider: str = "google"
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-3-5-haiku-20241022"
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    google_api_key: str = ""
    google_model: str = "gemini-2.0-flash"
    timeout: float = 10.0


@dataclass
class ExtractorConfig:
    """Entity extractor configuration"""
    confidence_threshold: float = 0.5
    llm_enabled: bool = True


@dataclass
class PlannerConfig:
    """Query planner configuration"""
    default_limit: int = 10
    max_limit: int = 50


@dataclass
class RetrievalConfig:
    """Hybrid merge weights and sub-search bounds, shared by every tenant"""
    lexical_weight: float = 0.4
    vector_weight: float = 0.6
    single_source_dampening: float = 0.5
    overfetch_factor: int = 3
    subsearch_timeout: float = 2.0

    def validate(self) -> None:
        if self.lexical_weight < 0 or self.vector_weight < 0:
            raise ConfigError("retrieval weights must be non-negative")
        if self.lexical_weight + self.vector_weight <= 0:
            raise ConfigError("at least one retrieval weight must be positive")
        if not 0 < self.single_source_dampening <= 1:
            raise ConfigError("single_source_dampening must be in (0, 1]")
        if self.overfetch_factor < 1:
            raise ConfigError("overfetch_factor must be >= 1")
        if self.subsearch_timeout <= 0:
            raise ConfigError("subsearch_timeout must be positive")


@dataclass
class ContextConfig:
    """Conversation context window"""
    window_size: int = 5
    idle_ttl: float = 1800.0


@dataclass
class DiscoveryConfig:
    """Main discovery configuration"""
    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)
    extractor: ExtractorConfig = field(default_factory=ExtractorConfig)
    planner: PlannerConfig = field(default_factory=PlannerConfig)
    retrieval: RetrievalConfig = field(default_factory=RetrievalConfig)
    context: ContextConfig = field(default_factory=ContextConfig)
    _env_sourced_keys: set = field(default_factory=set, repr=False)


def _parse_embedding_config(data: dict) -> EmbeddingConfig:
    """Parse embedding section from config dict"""
    embedding_data = data.get("embedding", {})
    defaults = EmbeddingConfig()
    return EmbeddingConfig(
        primary_provider=embedding_data.get("primary_provider", defaults.primary_provider),
        primary_model=embedding_data.get("primary_model", defaults.primary_model),
        fallback_provider=embedding_data.get("fallback_provider", defaults.fallback_provider),
        fallback_model=embedding_data.get("fallback_model", defaults.fallback_model),
        dimension=embedding_data.get("dimension", defaults.dimension),
        attempt_timeout=embedding_data.get("attempt_timeout", defaults.attempt_timeout),
        cache_size=embedding_data.get("cache_size", defaults.cache_size),
        cache_ttl=embedding_data.get("cache_ttl", defaults.cache_ttl),
        google_api_key=embedding_data.get("google_api_key", ""),
        deepinfra_api_key=embedding_data.get("deepinfra_api_key", ""),
    )


def _parse_llm_config(data: dict) -> LLMConfig:
    """Parse llm section from config dict"""
    llm_data = data.get("llm", {})
    defaults = LLMConfig()
    return LLMConfig(
        provider=llm_data.get("provider", defaults.provider),
        anthropic_api_key=llm_data.get("anthropic_api_key", ""),
        anthropic_model=llm_data.get("anthropic_model", defaults.anthropic_model),
        openai_api_key=llm_data.get("openai_api_key", ""),
        openai_model=llm_data.get("openai_model", defaults.openai_model),
        google_api_key=llm_data.get("google_api_key", ""),
        google_model=llm_data.get("google_model", defaults.google_model),
        timeout=llm_data.get("timeout", defaults.timeout),
    )


def _parse_extractor_config(data: dict) -> ExtractorConfig:
    extractor_data = data.get("extractor", {})
    return ExtractorConfig(
        confidence_threshold=extractor_data.get("confidence_threshold", 0.5),
        llm_enabled=extractor_data.get("llm_enabled", True),
    )


def _parse_planner_config(data: dict) -> PlannerConfig:
    planner_data = data.get("planner", {})
    return PlannerConfig(
        default_limit=planner_data.get("default_limit", 10),
        max_limit=planner_data.get("max_limit", 50),
    )


def _parse_retrieval_config(data: dict) -> RetrievalConfig:
    retrieval_data = data.get("retrieval", {})
    defaults = RetrievalConfig()
    return RetrievalConfig(
        lexical_weight=retrieval_data.get("lexical_weight", defaults.lexical_weight),
        vector_weight=retrieval_data.get("vector_weight", defaults.vector_weight),
        single_source_dampening=retrieval_data.get(
            "single_source_dampening", defaults.single_source_dampening
        ),
        overfetch_factor=retrieval_data.get("overfetch_factor", defaults.overfetch_factor),
        subsearch_timeout=retrieval_data.get("subsearch_timeout", defaults.subsearch_timeout),
    )


def _parse_context_config(data: dict) -> ContextConfig:
    context_data = data.get("context", {})
    return ContextConfig(
        window_size=context_data.get("window_size", 5),
        idle_ttl=context_data.get("idle_ttl", 1800.0),
    )


def _env_number(name: str, cast):
    """Read a numeric environment variable, or None when unset."""
    raw = os.getenv(name)
    if not raw:
        return None
    try:
        return cast(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a {cast.__name__}, got {raw!r}") from None


def load_config(dotenv: bool = True) -> DiscoveryConfig:
    """
    Load configuration from file and environment variables.

    Priority (highest to lowest):
    1. Environment variables (including a local .env file)
    2. Config file (~/.discovery/config.json)
    3. Default values
    """
    if dotenv:
        load_dotenv()

    config = DiscoveryConfig()

    # Load from config file if exists
    if CONFIG_PATH.exists():
        try:
            with open(CONFIG_PATH) as f:
                data = json.load(f)

            config.embedding = _parse_embedding_config(data)
            config.llm = _parse_llm_config(data)
            config.extractor = _parse_extractor_config(data)
            config.planner = _parse_planner_config(data)
            config.retrieval = _parse_retrieval_config(data)
            config.context = _parse_context_config(data)
        except (json.JSONDecodeError, IOError) as e:
            logger.warning("Failed to load config file %s: %s", CONFIG_PATH, e)

    # Provider keys (track env-sourced keys so they are never persisted)
    _env_key_map = {
        "GOOGLE_API_KEY": [("embedding", "google_api_key"), ("llm", "google_api_key")],
        "GEMINI_API_KEY": [("embedding", "google_api_key"), ("llm", "google_api_key")],
        "DEEPINFRA_API_KEY": [("embedding", "deepinfra_api_key")],
        "ANTHROPIC_API_KEY": [("llm", "anthropic_api_key")],
        "OPENAI_API_KEY": [("llm", "openai_api_key")],
    }
    for env_var, targets in _env_key_map.items():
        val = os.getenv(env_var)
        if val:
            for section, attr in targets:
                setattr(getattr(config, section), attr, val)
                config._env_sourced_keys.add(f"{section}.{attr}")

    if os.getenv("DISCOVERY_LLM_PROVIDER"):
        config.llm.provider = os.getenv("DISCOVERY_LLM_PROVIDER")
    if os.getenv("DISCOVERY_EMBEDDING_PRIMARY"):
        config.embedding.primary_provider = os.getenv("DISCOVERY_EMBEDDING_PRIMARY")
    if os.getenv("DISCOVERY_EMBEDDING_FALLBACK"):
        config.embedding.fallback_provider = os.getenv("DISCOVERY_EMBEDDING_FALLBACK")

    _env_number_map = {
        "DISCOVERY_MAX_LIMIT": ("planner", "max_limit", int),
        "DISCOVERY_LEXICAL_WEIGHT": ("retrieval", "lexical_weight", float),
        "DISCOVERY_VECTOR_WEIGHT": ("retrieval", "vector_weight", float),
        "DISCOVERY_SINGLE_SOURCE_DAMPENING": ("retrieval", "single_source_dampening", float),
        "DISCOVERY_CONTEXT_WINDOW": ("context", "window_size", int),
        "DISCOVERY_SESSION_TTL": ("context", "idle_ttl", float),
    }
    for env_var, (section, attr, cast) in _env_number_map.items():
        val = _env_number(env_var, cast)
        if val is not None:
            setattr(getattr(config, section), attr, val)

    config.retrieval.validate()
    return config


def save_config(config: DiscoveryConfig) -> None:
    """Save configuration to file.

    API key fields that were sourced from environment variables are written
    as empty strings so that secrets are not persisted to disk.
    """
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)

    env_sourced = getattr(config, "_env_sourced_keys", set())

    def _secret(section: str, attr: str) -> str:
        if f"{section}.{attr}" in env_sourced:
            return ""
        return getattr(getattr(config, section), attr)

    data = {
        "embedding": {
            "primary_provider": config.embedding.primary_provider,
            "primary_model": config.embedding.primary_model,
            "fallback_provider": config.embedding.fallback_provider,
            "fallback_model": config.embedding.fallback_model,
            "dimension": config.embedding.dimension,
            "attempt_timeout": config.embedding.attempt_timeout,
            "cache_size": config.embedding.cache_size,
            "cache_ttl": config.embedding.cache_ttl,
            "google_api_key": _secret("embedding", "google_api_key"),
            "deepinfra_api_key": _secret("embedding", "deepinfra_api_key"),
        },
        "llm": {
            "provider": config.llm.provider,
            "anthropic_api_key": _secret("llm", "anthropic_api_key"),
            "anthropic_model": config.llm.anthropic_model,
            "openai_api_key": _secret("llm", "openai_api_key"),
            "openai_model": config.llm.openai_model,
            "google_api_key": _secret("llm", "google_api_key"),
            "google_model": config.llm.google_model,
            "timeout": config.llm.timeout,
        },
        "extractor": {
            "confidence_threshold": config.extractor.confidence_threshold,
            "llm_enabled": config.extractor.llm_enabled,
        },
        "planner": {
            "default_limit": config.planner.default_limit,
            "max_limit": config.planner.max_limit,
        },
        "retrieval": {
            "lexical_weight": config.retrieval.lexical_weight,
            "vector_weight": config.retrieval.vector_weight,
            "single_source_dampening": config.retrieval.single_source_dampening,
            "overfetch_factor": config.retrieval.overfetch_factor,
            "subsearch_timeout": config.retrieval.subsearch_timeout,
        },
        "context": {
            "window_size": config.context.window_size,
            "idle_ttl": config.context.idle_ttl,
        },
    }

    with open(CONFIG_PATH, "w") as f:
        json.dump(data, f, indent=2)

    # Set secure permissions
    CONFIG_PATH.chmod(0o600)
