"""Result models for monitoring and analytics."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from hookwire.models import DeliveryAttempt, DeliveryEvent


class HealthStatus(str, Enum):
    """Endpoint health derived from recent attempt success rate."""

    HEALTHY = "HEALTHY"
    DEGRADED = "DEGRADED"
    DOWN = "DOWN"
    UNKNOWN = "UNKNOWN"


class ExportFormat(str, Enum):
    JSON = "json"
    CSV = "csv"


class EndpointStats(BaseModel):
    """Delivery statistics of one endpoint.

    Attributes:
        success_rate: delivered / (delivered + failed); None when no event
            has reached a terminal state.
        average_latency_ms: Mean latency of attempts that got a response.
        retry_schedule: Delays between automatic attempts under the
            endpoint's current policy.
    """

    model_config = ConfigDict(extra="forbid")

    endpoint_id: str
    window_start: datetime | None = Field(default=None, description="None means all time")
    window_end: datetime
    total_events: int = 0
    delivered: int = 0
    failed: int = 0
    pending: int = 0
    success_rate: float | None = None
    total_attempts: int = 0
    successful_attempts: int = 0
    manual_attempts: int = 0
    average_latency_ms: float | None = None
    events_by_type: dict[str, int] = Field(default_factory=dict)
    retry_schedule: list[int] = Field(default_factory=list)


class EndpointHealth(BaseModel):
    """Health classification of one endpoint over the trailing window.

    ``success_rate`` is the rate the status was classified from: the event
    success rate, or the attempt success rate while no event has settled.
    """

    model_config = ConfigDict(extra="forbid")

    endpoint_id: str
    status: HealthStatus
    success_rate: float | None = None
    event_success_rate: float | None = None
    attempt_success_rate: float | None = None
    attempts: int = 0
    failed_attempts: int = 0
    average_latency_ms: float | None = None
    window_hours: int
    last_success_at: datetime | None = None
    last_failure_at: datetime | None = None
    recommendations: list[str] = Field(default_factory=list)
    checked_at: datetime


class DeliveryRecord(BaseModel):
    """A delivery event with its attempts, newest attempt first.

    The payload is an audit copy with sensitive values redacted.
    """

    model_config = ConfigDict(extra="forbid")

    event: DeliveryEvent
    attempts: list[DeliveryAttempt] = Field(default_factory=list)


class DashboardSummary(BaseModel):
    """System-wide delivery overview for administrators."""

    model_config = ConfigDict(extra="forbid")

    total_endpoints: int = 0
    active_endpoints: int = 0
    total_events: int = 0
    delivered: int = 0
    failed: int = 0
    pending: int = 0
    success_rate: float | None = None
    attempts_in_window: int = 0
    average_latency_ms: float | None = None
    endpoints_by_health: dict[str, int] = Field(default_factory=dict)
    window_hours: int
    generated_at: datetime


class EndpointPerformance(BaseModel):
    model_config = ConfigDict(extra="forbid")

    endpoint_id: str
    url: str | None = None
    total_attempts: int = 0
    success_rate: float | None = None
    average_latency_ms: float | None = None


class PerformanceReport(BaseModel):
    """Delivery performance between two instants."""

    model_config = ConfigDict(extra="forbid")

    start: datetime
    end: datetime
    endpoint_id: str | None = None
    total_events: int = 0
    delivered: int = 0
    failed: int = 0
    pending: int = 0
    success_rate: float | None = None
    total_attempts: int = 0
    attempt_success_rate: float | None = None
    average_latency_ms: float | None = None
    p95_latency_ms: int | None = None
    status_codes: dict[str, int] = Field(default_factory=dict)
    events_by_type: dict[str, int] = Field(default_factory=dict)
    endpoints: list[EndpointPerformance] = Field(default_factory=list)


class FailedDelivery(BaseModel):
    """A FAILED delivery event with its last error."""

    model_config = ConfigDict(extra="forbid")

    event_id: str
    endpoint_id: str
    endpoint_url: str | None = None
    event_type: str
    attempts: int
    last_attempt_at: datetime | None = None
    last_status_code: int | None = None
    last_error: str | None = None


__all__ = [
    "DashboardSummary",
    "DeliveryRecord",
    "EndpointHealth",
    "EndpointPerformance",
    "EndpointStats",
    "ExportFormat",
    "FailedDelivery",
    "HealthStatus",
    "PerformanceReport",
]
