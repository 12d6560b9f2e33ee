"""Unit tests for Hookwire configuration."""

import os
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from hookwire.config import RetryDefaults, Settings


class TestRetryDefaults:
    """Tests for RetryDefaults model."""

    def test_defaults(self):
        defaults = RetryDefaults()
        assert defaults.strategy == "EXPONENTIAL"
        assert defaults.max_retries == 5
        assert defaults.base_delay_seconds == 60
        assert defaults.timeout_seconds == 30

    def test_unknown_strategy(self):
        with pytest.raises(ValidationError):
            RetryDefaults(strategy="RANDOM")

    def test_bounds(self):
        with pytest.raises(ValidationError):
            RetryDefaults(max_retries=0)
        with pytest.raises(ValidationError):
            RetryDefaults(timeout_seconds=121)


class TestSettings:
    """Tests for Settings."""

    def test_defaults(self):
        settings = Settings(env="test")
        assert settings.storage_backend == "memory"
        assert settings.retain_history_on_delete is False
        assert settings.scheduler_enabled is True
        assert settings.retry_jitter_ratio == 0.0
        assert settings.health_window_hours == 24

    def test_env_prefix(self):
        env = {
            "HOOKWIRE_STORAGE_BACKEND": "qdrant",
            "HOOKWIRE_SCHEDULER_INTERVAL_SECONDS": "5",
            "HOOKWIRE_DEFAULT_RETRY_POLICY__MAX_RETRIES": "3",
        }
        with patch.dict(os.environ, env):
            settings = Settings(env="test")
        assert settings.storage_backend == "qdrant"
        assert settings.scheduler_interval_seconds == 5.0
        assert settings.default_retry_policy.max_retries == 3

    def test_unknown_backend_rejected(self):
        with pytest.raises(ValidationError):
            Settings(env="test", storage_backend="sqlite")

    def test_jitter_bounded(self):
        with pytest.raises(ValidationError):
            Settings(env="test", retry_jitter_ratio=0.9)

    def test_health_thresholds_ordered(self):
        with pytest.raises(ValidationError):
            Settings(env="test", health_down_threshold=0.9, health_healthy_threshold=0.8)


class TestSecuritySettings:
    """Tests for authentication defaults."""

    def test_auth_disabled_outside_production(self):
        settings = Settings(env="development")
        assert settings.is_auth_enabled is False
        assert len(settings.effective_auth_secret_key) == 64

    def test_production_requires_secret(self):
        with pytest.raises(ValidationError, match="AUTH_SECRET_KEY"):
            Settings(env="production")

    def test_production_enables_auth(self):
        settings = Settings(env="production", auth_secret_key="k" * 32)
        assert settings.is_auth_enabled is True
        assert settings.effective_auth_secret_key == "k" * 32

    def test_production_without_auth_warns(self):
        with pytest.warns(UserWarning, match="Authentication is disabled"):
            Settings(env="production", auth_secret_key="k" * 32, auth_enabled=False)
