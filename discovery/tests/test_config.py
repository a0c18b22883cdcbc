"""Tests for configuration loading -- file sections, env overrides, validation."""

import json
import os
import pytest
from unittest.mock import patch


class TestDefaults:
    def test_retrieval_defaults(self):
        from discovery.common.config import RetrievalConfig
        cfg = RetrievalConfig()
        assert cfg.lexical_weight == 0.4
        assert cfg.vector_weight == 0.6
        assert cfg.single_source_dampening == 0.5
        assert cfg.overfetch_factor == 3
        assert cfg.subsearch_timeout == 2.0

    def test_embedding_defaults(self):
        from discovery.common.config import EmbeddingConfig
        cfg = EmbeddingConfig()
        assert cfg.primary_provider == "google"
        assert cfg.fallback_provider == "deepinfra"
        assert cfg.dimension == 768
        assert cfg.cache_size == 1000
        assert cfg.cache_ttl == 300.0

    def test_context_defaults(self):
        from discovery.common.config import ContextConfig
        cfg = ContextConfig()
        assert cfg.window_size == 5
        assert cfg.idle_ttl == 1800.0


class TestLoadConfig:
    @pytest.fixture(autouse=True)
    def clean_env(self):
        keys = [k for k in os.environ if k.startswith("DISCOVERY_")] + [
            "GOOGLE_API_KEY", "GEMINI_API_KEY", "DEEPINFRA_API_KEY",
            "ANTHROPIC_API_KEY", "OPENAI_API_KEY",
        ]
        saved = {k: os.environ.pop(k) for k in keys if k in os.environ}
        yield
        os.environ.update(saved)

    def test_missing_file_gives_defaults(self, tmp_path):
        from discovery.common.config import load_config
        with patch("discovery.common.config.CONFIG_PATH", tmp_path / "missing.json"):
            cfg = load_config(dotenv=False)

        assert cfg.planner.max_limit == 50
        assert cfg.llm.provider == "google"

    def test_file_sections_are_read(self, tmp_path):
        from discovery.common.config import load_config
        config_file = tmp_path / "config.json"
        config_file.write_text(json.dumps({
            "llm": {"provider": "openai", "openai_api_key": "sk-file"},
            "retrieval": {"lexical_weight": 0.3, "vector_weight": 0.7},
            "context": {"window_size": 3},
        }))

        with patch("discovery.common.config.CONFIG_PATH", config_file):
            cfg = load_config(dotenv=False)

        assert cfg.llm.provider == "openai"
        assert cfg.llm.openai_api_key == "sk-file"
        assert cfg.retrieval.lexical_weight == 0.3
        assert cfg.retrieval.vector_weight == 0.7
        assert cfg.context.window_size == 3
        assert cfg.context.idle_ttl == 1800.0

    def test_broken_file_logs_warning(self, tmp_path, caplog):
        import logging
        from discovery.common.config import load_config
        config_file = tmp_path / "config.json"
        config_file.write_text("{not json")

        with caplog.at_level(logging.WARNING, logger="discovery.common.config"), \
             patch("discovery.common.config.CONFIG_PATH", config_file):
            cfg = load_config(dotenv=False)

        assert "Failed to load config file" in caplog.text
        assert cfg.retrieval.lexical_weight == 0.4

    def test_env_overrides_file(self, tmp_path):
        from discovery.common.config import load_config
        config_file = tmp_path / "config.json"
        config_file.write_text(json.dumps({"llm": {"provider": "openai"}}))

        env = {
            "GEMINI_API_KEY": "g-env",
            "DISCOVERY_LLM_PROVIDER": "google",
            "DISCOVERY_VECTOR_WEIGHT": "0.5",
            "DISCOVERY_CONTEXT_WINDOW": "7",
        }
        with patch("discovery.common.config.CONFIG_PATH", config_file), \
             patch.dict(os.environ, env, clear=False):
            cfg = load_config(dotenv=False)

        assert cfg.llm.provider == "google"
        assert cfg.llm.google_api_key == "g-env"
        assert cfg.embedding.google_api_key == "g-env"
        assert cfg.retrieval.vector_weight == 0.5
        assert cfg.context.window_size == 7

    def test_malformed_number_raises(self, tmp_path):
        from discovery.common.config import load_config
        from discovery.common.errors import ConfigError

        with patch("discovery.common.config.CONFIG_PATH", tmp_path / "missing.json"), \
             patch.dict(os.environ, {"DISCOVERY_MAX_LIMIT": "lots"}, clear=False):
            with pytest.raises(ConfigError, match="DISCOVERY_MAX_LIMIT"):
                load_config(dotenv=False)

    def test_invalid_dampening_rejected(self, tmp_path):
        from discovery.common.config import load_config
        from discovery.common.errors import ConfigError

        with patch("discovery.common.config.CONFIG_PATH", tmp_path / "missing.json"), \
             patch.dict(os.environ, {"DISCOVERY_SINGLE_SOURCE_DAMPENING": "1.5"}, clear=False):
            with pytest.raises(ConfigError):
                load_config(dotenv=False)


class TestSaveConfig:
    def test_save_config_omits_env_keys(self, tmp_path):
        from discovery.common.config import DiscoveryConfig, save_config
        config_file = tmp_path / "config.json"
        cfg = DiscoveryConfig()
        cfg.llm.anthropic_api_key = "sk-env"
        cfg.embedding.deepinfra_api_key = "di-file"
        cfg._env_sourced_keys.add("llm.anthropic_api_key")

        with patch("discovery.common.config.CONFIG_DIR", tmp_path), \
             patch("discovery.common.config.CONFIG_PATH", config_file):
            save_config(cfg)

        saved = json.loads(config_file.read_text())
        assert saved["llm"]["anthropic_api_key"] == ""
        assert saved["embedding"]["deepinfra_api_key"] == "di-file"
        assert oct(config_file.stat().st_mode & 0o777) == "0o600"

    def test_round_trip_keeps_tuning(self, tmp_path):
        from discovery.common.config import DiscoveryConfig, load_config, save_config
        config_file = tmp_path / "config.json"
        cfg = DiscoveryConfig()
        cfg.retrieval.single_source_dampening = 0.8
        cfg.planner.max_limit = 20

        with patch("discovery.common.config.CONFIG_DIR", tmp_path), \
             patch("discovery.common.config.CONFIG_PATH", config_file):
            save_config(cfg)
            loaded = load_config(dotenv=False)

        assert loaded.retrieval.single_source_dampening == 0.8
        assert loaded.planner.max_limit == 20
