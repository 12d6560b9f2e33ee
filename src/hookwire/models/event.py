"""Delivery event model: one endpoint being notified of one domain event."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from hookwire.events.types import EventType

from .base import generate_id, utc_now


class EventStatus(str, Enum):
    """Delivery state. PENDING moves to exactly one of the terminal states."""

    PENDING = "PENDING"
    DELIVERED = "DELIVERED"
    FAILED = "FAILED"


class DeliveryEvent(BaseModel):
    """Delivery unit tracked by the engine.

    Attributes:
        id: Unique identifier (``evt_`` prefix), sent as X-Webhook-Event-Id.
        endpoint_id: Destination endpoint.
        event_type: Domain event type.
        payload: Exact JSON object delivered.
        status: PENDING, DELIVERED or FAILED.
        attempts: Automatic attempts made so far.
        last_attempt_at: When the latest attempt finished.
        next_retry_at: When the next automatic attempt is due (PENDING only).
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=lambda: generate_id("evt"))
    endpoint_id: str = Field(description="Destination endpoint")
    event_type: EventType = Field(description="Domain event type")
    payload: dict[str, Any] = Field(default_factory=dict, description="Delivered JSON object")
    status: EventStatus = Field(default=EventStatus.PENDING)
    attempts: int = Field(default=0, ge=0, description="Automatic attempts made")
    last_attempt_at: datetime | None = None
    next_retry_at: datetime | None = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def is_terminal(self) -> bool:
        return self.status is not EventStatus.PENDING

    def is_due(self, now: datetime) -> bool:
        """Whether an automatic retry should run at ``now``."""
        return (
            self.status is EventStatus.PENDING
            and self.next_retry_at is not None
            and self.next_retry_at <= now
        )

    def mark_delivered(self, at: datetime) -> DeliveryEvent:
        self.status = EventStatus.DELIVERED
        self.last_attempt_at = at
        self.next_retry_at = None
        self.updated_at = at
        return self

    def mark_failed(self, at: datetime) -> DeliveryEvent:
        self.status = EventStatus.FAILED
        self.last_attempt_at = at
        self.next_retry_at = None
        self.updated_at = at
        return self

    def mark_retrying(self, at: datetime, next_retry_at: datetime) -> DeliveryEvent:
        self.last_attempt_at = at
        self.next_retry_at = next_retry_at
        self.updated_at = at
        return self


__all__ = ["DeliveryEvent", "EventStatus"]
