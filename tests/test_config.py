"""Tests for application settings."""

import pytest
from pydantic import ValidationError

from phishlens.config import Settings


class TestSettings:
    def test_defaults(self):
        config = Settings(_env_file=None)

        assert config.log_level == "INFO"
        assert config.cache_backend in ("memory", "redis", "none")
        assert config.service_timeout_ms == 30000
        assert config.minimum_required_services == 2

    def test_log_level_is_upper_cased(self):
        assert Settings(_env_file=None, log_level="debug").log_level == "DEBUG"

    def test_invalid_log_level(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, log_level="chatty")

    def test_cache_backend_is_lower_cased(self):
        assert Settings(_env_file=None, cache_backend="Redis").cache_backend == "redis"

    def test_invalid_cache_backend(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, cache_backend="memcached")

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("AI_MODEL", "local-model")
        monkeypatch.setenv("MAX_RETRIES", "3")

        config = Settings(_env_file=None)

        assert config.ai_model == "local-model"
        assert config.max_retries == 3

    def test_only_declared_fields(self):
        fields = Settings.model_fields

        assert "environment" in fields
        assert "is_production" not in fields
        assert not hasattr(Settings, "is_production")
