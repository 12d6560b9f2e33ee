"""Configuration management for Hookwire."""

import logging
import secrets
import warnings
from typing import Literal

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


def _generate_dev_secret_key() -> str:
    """Generate a random token-signing key for development use.

    Tokens signed with it stop validating after a restart, which is fine
    outside production.
    """
    return secrets.token_hex(32)


class RetryDefaults(BaseModel):
    """Retry policy applied when an endpoint is registered without one.

    Attributes:
        strategy: Backoff strategy name.
        max_retries: Automatic attempts before an event is FAILED.
        base_delay_seconds: Base delay fed to the backoff formula.
        timeout_seconds: Per-attempt HTTP timeout.
    """

    strategy: Literal["FIXED", "LINEAR", "EXPONENTIAL"] = Field(
        default="EXPONENTIAL",
        description="Backoff strategy for new endpoints",
    )
    max_retries: int = Field(default=5, ge=1, le=20, description="Maximum automatic attempts")
    base_delay_seconds: int = Field(
        default=60,
        ge=1,
        le=86400,
        description="Base retry delay in seconds",
    )
    timeout_seconds: int = Field(
        default=30,
        ge=1,
        le=120,
        description="Per-attempt request timeout in seconds",
    )


class Settings(BaseSettings):
    """Hookwire configuration loaded from environment variables.

    All settings can be overridden via environment variables with the
    HOOKWIRE_ prefix. For example:
        HOOKWIRE_STORAGE_BACKEND=qdrant
        HOOKWIRE_DEFAULT_RETRY_POLICY__MAX_RETRIES=3

    Security Notes:
        - In production (HOOKWIRE_ENV=production), auth is enabled by default
        - A token-signing key must be provided explicitly in production
    """

    # Environment
    env: Literal["development", "production", "test"] = Field(
        default="development",
        description="Environment: development, production, or test",
    )

    # Storage
    storage_backend: Literal["memory", "qdrant"] = Field(
        default="memory",
        description="Persistence backend for endpoints, events, attempts and logs",
    )
    qdrant_url: str = Field(
        default="http://localhost:6333",
        description="Qdrant connection URL",
    )
    qdrant_api_key: str | None = Field(
        default=None,
        description="Qdrant API key (for cloud)",
    )
    collection_prefix: str = Field(
        default="hookwire",
        description="Prefix for Qdrant collection names",
    )
    retain_history_on_delete: bool = Field(
        default=False,
        description=(
            "Tombstone deleted endpoints and keep their events, attempts and logs. "
            "When False, deleting an endpoint cascades to its whole history."
        ),
    )

    # Delivery
    default_retry_policy: RetryDefaults = Field(
        default_factory=RetryDefaults,
        description="Retry policy for endpoints registered without one",
    )
    retry_jitter_ratio: float = Field(
        default=0.0,
        ge=0.0,
        le=0.5,
        description="Bounded jitter applied to retry delays (0.1 = +/-10%)",
    )
    delivery_max_concurrent: int = Field(
        default=10,
        ge=1,
        le=500,
        description="Maximum concurrent outbound deliveries",
    )
    response_body_max_chars: int = Field(
        default=1000,
        ge=0,
        le=65536,
        description="Response bodies are truncated to this length before being recorded",
    )

    # Retry scheduler
    scheduler_enabled: bool = Field(
        default=True,
        description="Run the periodic retry driver inside the API process",
    )
    scheduler_interval_seconds: float = Field(
        default=15.0,
        gt=0,
        le=3600,
        description="Seconds between sweeps for due retries",
    )
    scheduler_batch_size: int = Field(
        default=100,
        ge=1,
        le=10000,
        description="Maximum due events re-attempted per sweep",
    )

    # Monitoring
    health_window_hours: int = Field(
        default=24,
        ge=1,
        le=24 * 90,
        description="Trailing window used for health classification",
    )
    health_healthy_threshold: float = Field(
        default=0.95,
        ge=0.0,
        le=1.0,
        description="Attempt success rate at or above which an endpoint is HEALTHY",
    )
    health_down_threshold: float = Field(
        default=0.50,
        ge=0.0,
        le=1.0,
        description="Attempt success rate below which an endpoint is DOWN",
    )
    slow_response_ms: int = Field(
        default=5000,
        ge=1,
        description="Average latency above which a slow-endpoint recommendation is made",
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )
    log_format: Literal["json", "text"] = Field(
        default="json",
        description="Log output format",
    )

    # Authentication
    auth_enabled: bool | None = Field(
        default=None,
        description=(
            "Require Bearer tokens. If not set, defaults to True in production, "
            "False otherwise (identity is then taken from X-User-Id / X-User-Scopes)."
        ),
    )
    auth_secret_key: str | None = Field(
        default=None,
        description="Token-signing key. REQUIRED in production.",
    )
    auth_token_expire_minutes: int = Field(
        default=60,
        ge=1,
        description="Token expiration time in minutes",
    )

    # CORS
    cors_enabled: bool = Field(default=True, description="Enable CORS middleware")
    cors_allow_origins: list[str] = Field(
        default_factory=lambda: ["*"],
        description="Allowed CORS origins",
    )
    cors_allow_methods: list[str] = Field(
        default_factory=lambda: ["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        description="Allowed HTTP methods for CORS requests",
    )
    cors_allow_headers: list[str] = Field(
        default_factory=lambda: ["*"],
        description="Allowed headers for CORS requests",
    )

    _runtime_dev_secret: str | None = None

    model_config = {
        "env_prefix": "HOOKWIRE_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_nested_delimiter": "__",
    }

    @model_validator(mode="after")
    def validate_health_thresholds(self) -> "Settings":
        """DOWN threshold must sit strictly below the HEALTHY threshold."""
        if self.health_down_threshold >= self.health_healthy_threshold:
            raise ValueError(
                f"health_down_threshold ({self.health_down_threshold}) must be less than "
                f"health_healthy_threshold ({self.health_healthy_threshold})."
            )
        return self

    @model_validator(mode="after")
    def validate_security_settings(self) -> "Settings":
        """Resolve auth defaults and enforce an explicit key in production."""
        is_production = self.env == "production"

        if self.auth_enabled is None:
            object.__setattr__(self, "auth_enabled", is_production)

        if is_production:
            if self.auth_secret_key is None:
                raise ValueError(
                    "HOOKWIRE_AUTH_SECRET_KEY must be set in production. "
                    'Generate one with: python -c "import secrets; print(secrets.token_hex(32))"'
                )
            if not self.auth_enabled:
                warnings.warn(
                    "Authentication is disabled in production environment. "
                    "Set HOOKWIRE_AUTH_ENABLED=true to enable.",
                    UserWarning,
                    stacklevel=2,
                )
                logger.warning("Authentication disabled in production")
        elif self.auth_secret_key is None:
            object.__setattr__(self, "_runtime_dev_secret", _generate_dev_secret_key())
            logger.debug("Generated random auth secret for development")

        return self

    @property
    def is_auth_enabled(self) -> bool:
        """Resolved auth_enabled value (always bool, never None)."""
        if self.auth_enabled is None:
            return self.env == "production"
        return self.auth_enabled

    @property
    def effective_auth_secret_key(self) -> str:
        """The token-signing key in use.

        Raises:
            ValueError: If no key is available (should not happen after validation).
        """
        if self.auth_secret_key is not None:
            return self.auth_secret_key
        if self._runtime_dev_secret is not None:
            return self._runtime_dev_secret
        raise ValueError("No auth secret key available")


# Global settings instance
settings = Settings()
