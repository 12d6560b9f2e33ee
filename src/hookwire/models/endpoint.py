"""Endpoint registration models.

An endpoint is a destination URL plus its delivery configuration. The
signing secret is deliberately not a field here: it lives in a separate
secret store and is handed out once, in ``EndpointRegistration``.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict, Field, field_validator

from hookwire.events.types import EventType
from hookwire.retry import RetryStrategy

from .base import generate_id, utc_now

if TYPE_CHECKING:
    from hookwire.config import RetryDefaults

REDACTED_SECRET = "********"

# Header names the delivery engine owns; endpoints cannot set them.
RESERVED_HEADERS = frozenset({"content-type", "content-length", "host"})
RESERVED_HEADER_PREFIX = "x-webhook-"


def validate_https_url(url: str) -> str:
    """Return the URL unchanged if it is an absolute https URL.

    Raises:
        ValueError: For any other scheme or a URL without a host.
    """
    parts = urlsplit(url.strip())
    if parts.scheme.lower() != "https":
        raise ValueError("webhook URL must use https")
    if not parts.hostname:
        raise ValueError("webhook URL must include a host")
    return url.strip()


def reserved_header_names(headers: dict[str, str]) -> list[str]:
    """Names in ``headers`` that collide with engine-controlled headers."""
    return [
        name
        for name in headers
        if name.lower() in RESERVED_HEADERS or name.lower().startswith(RESERVED_HEADER_PREFIX)
    ]


def _dedupe_events(events: list[EventType]) -> list[EventType]:
    seen: list[EventType] = []
    for event in events:
        if event not in seen:
            seen.append(event)
    return seen


class RetryPolicy(BaseModel):
    """Spacing and count of automatic delivery attempts.

    Attributes:
        strategy: FIXED, LINEAR or EXPONENTIAL backoff.
        max_retries: Total automatic attempts before an event is FAILED.
        base_delay_seconds: Base delay fed to the strategy.
        timeout_seconds: Per-request HTTP timeout.
    """

    model_config = ConfigDict(extra="forbid")

    strategy: RetryStrategy = Field(
        default=RetryStrategy.EXPONENTIAL, description="Backoff strategy"
    )
    max_retries: int = Field(default=5, ge=1, le=20, description="Automatic attempts allowed")
    base_delay_seconds: int = Field(
        default=60, ge=1, le=86400, description="Base delay between attempts"
    )
    timeout_seconds: int = Field(default=30, ge=1, le=120, description="HTTP request timeout")

    @classmethod
    def from_defaults(cls, defaults: RetryDefaults) -> RetryPolicy:
        """Build a policy from the configured defaults."""
        return cls.model_validate(defaults.model_dump())


class Endpoint(BaseModel):
    """A registered webhook destination.

    Attributes:
        id: Unique identifier (``whk_`` prefix).
        owner_id: User who registered the endpoint.
        url: HTTPS URL receiving POST requests.
        events: Subscribed event types, without duplicates.
        active: Inactive endpoints receive nothing new.
        retry_policy: Delivery retry configuration.
        headers: Extra headers sent with every delivery.
        description: Optional human-readable label.
        deleted_at: Set when the endpoint was tombstoned.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=lambda: generate_id("whk"))
    owner_id: str = Field(description="User who owns this endpoint")
    url: str = Field(description="HTTPS endpoint to receive events")
    events: list[EventType] = Field(min_length=1, description="Subscribed event types")
    active: bool = Field(default=True, description="Whether deliveries are made")
    retry_policy: RetryPolicy = Field(default_factory=RetryPolicy)
    headers: dict[str, str] = Field(default_factory=dict, description="Custom request headers")
    description: str | None = Field(default=None, max_length=500)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    deleted_at: datetime | None = Field(default=None, description="Tombstone timestamp")

    @field_validator("url")
    @classmethod
    def _https_only(cls, v: str) -> str:
        return validate_https_url(v)

    @field_validator("events")
    @classmethod
    def _unique_events(cls, v: list[EventType]) -> list[EventType]:
        return _dedupe_events(v)

    @field_validator("headers")
    @classmethod
    def _no_reserved_headers(cls, v: dict[str, str]) -> dict[str, str]:
        reserved = reserved_header_names(v)
        if reserved:
            raise ValueError(f"reserved header names: {', '.join(sorted(reserved))}")
        return v

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def subscribes_to(self, event_type: EventType) -> bool:
        """Check whether a new event of this type should be delivered here."""
        return self.active and not self.is_deleted and event_type in self.events


class EndpointUpdate(BaseModel):
    """Partial update of an endpoint. Only fields that are set are applied."""

    model_config = ConfigDict(extra="forbid")

    url: str | None = None
    events: list[EventType] | None = Field(default=None, min_length=1)
    active: bool | None = None
    retry_policy: RetryPolicy | None = None
    headers: dict[str, str] | None = None
    description: str | None = Field(default=None, max_length=500)

    def changes(self) -> dict[str, Any]:
        """Fields explicitly set on this patch."""
        return self.model_dump(exclude_unset=True)


class EndpointRegistration(BaseModel):
    """Result of registering an endpoint.

    ``secret`` is the only time the signing secret is ever returned.
    """

    model_config = ConfigDict(extra="forbid")

    endpoint: Endpoint
    secret: str = Field(description="Signing secret, shown once")


__all__ = [
    "REDACTED_SECRET",
    "RESERVED_HEADERS",
    "RESERVED_HEADER_PREFIX",
    "Endpoint",
    "EndpointRegistration",
    "EndpointUpdate",
    "RetryPolicy",
    "reserved_header_names",
    "validate_https_url",
]
