"""Tests for configuration and environment loading."""

import dataclasses

import pytest

from marketlink.config import Config, config
from marketlink.env_loader import get_api_key, get_provider_key, load_environment_variables


class TestConfig:

    def test_defaults(self):
        assert config.rate_limit_per_minute == 100
        assert config.retry_max_attempts == 3
        assert config.ttl_by_class["quote"] == 10
        assert config.ttl_by_class["fundamentals"] == 3600
        assert config.quote_db_path.name == "quotes.db"

    def test_frozen(self):
        with pytest.raises(dataclasses.FrozenInstanceError):
            config.rate_limit_per_minute = 5

    def test_with_overrides(self):
        fast = config.with_overrides(retry_base_delay=0.0)
        assert fast.retry_base_delay == 0.0
        assert config.retry_base_delay == 1.0
        assert isinstance(fast, Config)


class TestEnvLoader:

    def test_missing_file(self, tmp_path):
        assert load_environment_variables(str(tmp_path / "absent.env")) is False

    def test_loads_without_overriding(self, tmp_path, monkeypatch):
        monkeypatch.setenv("GROQ_API_KEY", "from-shell")
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        env_file = tmp_path / "secrets.env"
        env_file.write_text("GROQ_API_KEY=from-file\nOPENAI_API_KEY=sk-test\n")

        assert load_environment_variables(str(env_file)) is True
        assert get_provider_key("groq") == "from-shell"
        assert get_provider_key("openai") == "sk-test"
        monkeypatch.delenv("OPENAI_API_KEY")

    def test_empty_key_counts_as_missing(self, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "")
        assert get_provider_key("anthropic") is None
        with pytest.raises(ValueError):
            get_api_key("ANTHROPIC_API_KEY", required=True)

    def test_unknown_provider(self):
        assert get_provider_key("ollama") is None
