"""Delivery attempt records."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from .base import generate_id, utc_now


class DeliveryOutcome(BaseModel):
    """Result of one HTTP delivery try, before it is recorded.

    Delivery failures are values, not exceptions: a timeout or a 500 is an
    outcome with ``success=False``.
    """

    model_config = ConfigDict(extra="forbid")

    success: bool
    status_code: int | None = None
    latency_ms: int = Field(default=0, ge=0)
    response_body: str | None = None
    error: str | None = None
    attempt_id: str | None = Field(default=None, description="Recorded attempt, once stored")


class DeliveryAttempt(BaseModel):
    """Immutable record of one HTTP delivery try.

    Attributes:
        id: Unique identifier (``att_`` prefix).
        event_id: Delivery event, or None for test deliveries.
        endpoint_id: Endpoint the request went to.
        status_code: HTTP status, None when no response was received.
        latency_ms: Wall time of the request.
        success: Whether the response was 2xx.
        response_body: Truncated response body.
        error: Network, timeout or signing error text.
        manual: True for operator retries and test deliveries.
        timestamp: When the attempt finished.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str = Field(default_factory=lambda: generate_id("att"))
    event_id: str | None = Field(default=None, description="Delivery event, if any")
    endpoint_id: str = Field(description="Target endpoint")
    status_code: int | None = Field(default=None, description="HTTP response status")
    latency_ms: int = Field(default=0, ge=0, description="Request latency")
    success: bool = Field(description="2xx response received")
    response_body: str | None = Field(default=None, description="Truncated response body")
    error: str | None = Field(default=None, description="Failure reason")
    manual: bool = Field(default=False, description="Operator retry or test delivery")
    timestamp: datetime = Field(default_factory=utc_now)

    @classmethod
    def from_outcome(
        cls,
        outcome: DeliveryOutcome,
        endpoint_id: str,
        event_id: str | None,
        timestamp: datetime,
        manual: bool = False,
    ) -> DeliveryAttempt:
        return cls(
            event_id=event_id,
            endpoint_id=endpoint_id,
            status_code=outcome.status_code,
            latency_ms=outcome.latency_ms,
            success=outcome.success,
            response_body=outcome.response_body,
            error=outcome.error,
            manual=manual,
            timestamp=timestamp,
        )


__all__ = ["DeliveryAttempt", "DeliveryOutcome"]
