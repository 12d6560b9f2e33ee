"""Request and response schemas for the Hookwire API."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from hookwire.events import EventType
from hookwire.models import (
    REDACTED_SECRET,
    Endpoint,
    EndpointLog,
    EventStatus,
    RetryPolicy,
)
from hookwire.monitor import DeliveryRecord, FailedDelivery


class RegisterEndpointRequest(BaseModel):
    """Request body for POST /webhooks."""

    model_config = ConfigDict(extra="forbid")

    url: str = Field(description="HTTPS URL that receives deliveries")
    events: list[str] = Field(description="Event types to subscribe to")
    retry_policy: dict[str, Any] | None = Field(
        default=None, description="Retry policy; server defaults apply when omitted"
    )
    headers: dict[str, str] | None = Field(default=None, description="Custom request headers")
    description: str | None = Field(default=None, max_length=500)


class UpdateEndpointRequest(BaseModel):
    """Request body for PATCH /webhooks/{id}. Only fields present are changed."""

    model_config = ConfigDict(extra="forbid")

    url: str | None = None
    events: list[str] | None = None
    active: bool | None = None
    retry_policy: dict[str, Any] | None = None
    headers: dict[str, str] | None = None
    description: str | None = None


class EndpointResponse(BaseModel):
    """An endpoint as returned by the API. The secret is always masked."""

    model_config = ConfigDict(extra="forbid")

    id: str
    owner_id: str
    url: str
    events: list[EventType]
    active: bool
    retry_policy: RetryPolicy
    headers: dict[str, str]
    description: str | None = None
    secret: str = Field(default=REDACTED_SECRET, description="Always masked")
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_endpoint(cls, endpoint: Endpoint) -> EndpointResponse:
        return cls.model_validate(endpoint.model_dump(exclude={"deleted_at"}))


class RegisterEndpointResponse(BaseModel):
    """Response for POST /webhooks. Carries the only copy of the secret."""

    model_config = ConfigDict(extra="forbid")

    endpoint: EndpointResponse
    secret: str = Field(description="Signing secret; store it now, it is not shown again")


class EndpointListResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    endpoints: list[EndpointResponse]
    count: int


class RotateSecretResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    endpoint_id: str
    secret: str = Field(description="New signing secret; shown once")


class DeliveryHistoryResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    endpoint_id: str
    deliveries: list[DeliveryRecord]
    count: int


class EndpointLogsResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    endpoint_id: str
    logs: list[EndpointLog]
    count: int


class DeliveryTestRequest(BaseModel):
    """Request body for POST /webhooks/{id}/test. Both fields are optional."""

    model_config = ConfigDict(extra="forbid")

    event_type: EventType | None = Field(
        default=None, description="Event type; defaults to the first subscribed type"
    )
    payload: dict[str, Any] | None = Field(
        default=None, description="Payload validated against the event type's schema"
    )


class BulkRetryRequest(BaseModel):
    """Request body for POST /admin/retry."""

    model_config = ConfigDict(extra="forbid")

    event_ids: list[str] | None = Field(
        default=None, description="Specific events; when omitted events are selected by status"
    )
    status: EventStatus = Field(default=EventStatus.FAILED)
    limit: int = Field(default=100, ge=1, le=1000)


class FailedDeliveriesResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    deliveries: list[FailedDelivery]
    count: int


class HealthResponse(BaseModel):
    """Response for GET /health."""

    model_config = ConfigDict(extra="forbid")

    status: Literal["healthy", "unhealthy"]
    version: str
    storage_backend: str | None = None
    scheduler_running: bool = False


__all__ = [
    "BulkRetryRequest",
    "DeliveryHistoryResponse",
    "EndpointListResponse",
    "EndpointLogsResponse",
    "EndpointResponse",
    "FailedDeliveriesResponse",
    "HealthResponse",
    "RegisterEndpointRequest",
    "RegisterEndpointResponse",
    "RotateSecretResponse",
    "UpdateEndpointRequest",
    "DeliveryTestRequest",
]
