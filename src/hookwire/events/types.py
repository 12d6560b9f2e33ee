"""Domain event types and their payload schemas.

The set of event types is closed. Each type has its own payload model,
and the models are combined into a discriminated union so that a payload
is validated against the schema of its event type before anything is
delivered.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from collections.abc import Mapping
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, TypeAdapter
from pydantic import ValidationError as PydanticValidationError
from pydantic_core import to_jsonable_python

from hookwire.exceptions import ValidationError


class EventType(str, Enum):
    """Business occurrences an endpoint can subscribe to."""

    PAYMENT_SUCCESS = "payment.success"
    PAYMENT_FAILED = "payment.failed"
    BILL_CREATED = "bill.created"
    BILL_PAID = "bill.paid"
    BILL_OVERDUE = "bill.overdue"
    BILL_UPDATED = "bill.updated"
    USER_CREATED = "user.created"
    USER_UPDATED = "user.updated"
    DOCUMENT_UPLOADED = "document.uploaded"
    REPORT_GENERATED = "report.generated"


ALL_EVENT_TYPES: list[EventType] = list(EventType)


class _Payload(BaseModel):
    # Producers may attach extra business fields; the typed fields are required.
    model_config = ConfigDict(extra="allow")

    # The producer's own mapping, delivered unchanged once it has validated
    _source: dict[str, Any] | None = PrivateAttr(default=None)


class PaymentPayload(_Payload):
    """Payload for payment.success and payment.failed."""

    id: str = Field(description="Payment identifier")
    amount: int | float = Field(description="Payment amount")
    currency: str | None = Field(default=None, description="ISO 4217 currency code")
    bill_id: str | None = Field(default=None, description="Bill being paid")
    user_id: str | None = Field(default=None, description="Paying user")
    reason: str | None = Field(default=None, description="Failure reason (payment.failed)")


class BillPayload(_Payload):
    """Payload for the bill.* events."""

    id: str = Field(description="Bill identifier")
    amount: int | float | None = Field(default=None, description="Amount due")
    currency: str | None = Field(default=None, description="ISO 4217 currency code")
    user_id: str | None = Field(default=None, description="Billed user")
    due_date: datetime | None = Field(default=None, description="When the bill is due")
    status: str | None = Field(default=None, description="Bill status after the change")


class UserPayload(_Payload):
    """Payload for user.created and user.updated."""

    id: str = Field(description="User identifier")
    email: str | None = Field(default=None, description="User e-mail address")
    fields_changed: list[str] = Field(
        default_factory=list,
        description="Changed fields (user.updated)",
    )


class DocumentPayload(_Payload):
    """Payload for document.uploaded."""

    id: str = Field(description="Document identifier")
    user_id: str | None = Field(default=None, description="Uploading user")
    filename: str | None = Field(default=None, description="Original file name")
    content_type: str | None = Field(default=None, description="MIME type")
    size_bytes: int | None = Field(default=None, ge=0, description="File size")


class ReportPayload(_Payload):
    """Payload for report.generated."""

    id: str = Field(description="Report identifier")
    report_type: str | None = Field(default=None, description="Kind of report")
    period_start: datetime | None = Field(default=None, description="Reporting period start")
    period_end: datetime | None = Field(default=None, description="Reporting period end")
    url: str | None = Field(default=None, description="Where the report can be fetched")


class PaymentSucceeded(BaseModel):
    event_type: Literal[EventType.PAYMENT_SUCCESS]
    data: PaymentPayload


class PaymentFailed(BaseModel):
    event_type: Literal[EventType.PAYMENT_FAILED]
    data: PaymentPayload


class BillCreated(BaseModel):
    event_type: Literal[EventType.BILL_CREATED]
    data: BillPayload


class BillPaid(BaseModel):
    event_type: Literal[EventType.BILL_PAID]
    data: BillPayload


class BillOverdue(BaseModel):
    event_type: Literal[EventType.BILL_OVERDUE]
    data: BillPayload


class BillUpdated(BaseModel):
    event_type: Literal[EventType.BILL_UPDATED]
    data: BillPayload


class UserCreated(BaseModel):
    event_type: Literal[EventType.USER_CREATED]
    data: UserPayload


class UserUpdated(BaseModel):
    event_type: Literal[EventType.USER_UPDATED]
    data: UserPayload


class DocumentUploaded(BaseModel):
    event_type: Literal[EventType.DOCUMENT_UPLOADED]
    data: DocumentPayload


class ReportGenerated(BaseModel):
    event_type: Literal[EventType.REPORT_GENERATED]
    data: ReportPayload


DomainEvent = Annotated[
    PaymentSucceeded
    | PaymentFailed
    | BillCreated
    | BillPaid
    | BillOverdue
    | BillUpdated
    | UserCreated
    | UserUpdated
    | DocumentUploaded
    | ReportGenerated,
    Field(discriminator="event_type"),
]

_domain_event_adapter: TypeAdapter[DomainEvent] = TypeAdapter(DomainEvent)


def parse_event_type(value: EventType | str) -> EventType:
    """Coerce a string to an EventType.

    Raises:
        ValidationError: If the value is not one of the known event types.
    """
    try:
        return EventType(value)
    except ValueError as e:
        raise ValidationError("event_type", f"unknown event type {value!r}") from e


def parse_domain_event(event_type: EventType | str, payload: Any) -> DomainEvent:
    """Validate a payload against the schema of its event type.

    Args:
        event_type: One of the known event types.
        payload: Mapping or payload model instance.

    Returns:
        The typed domain event.

    Raises:
        ValidationError: Unknown event type or a payload that does not fit.
    """
    resolved = parse_event_type(event_type)
    if isinstance(payload, BaseModel):
        payload = payload.model_dump(mode="json", exclude_unset=True)
    try:
        event = _domain_event_adapter.validate_python({"event_type": resolved, "data": payload})
    except PydanticValidationError as e:
        raise ValidationError.from_pydantic(e, skip=("data", resolved.value, str(resolved))) from e
    if isinstance(payload, Mapping):
        event.data._source = to_jsonable_python(dict(payload))
    return event


def payload_to_json(event: DomainEvent) -> dict[str, Any]:
    """JSON-ready dict of the payload exactly as the producer supplied it.

    Explicit nulls and extra business fields are kept and typed fields are
    not re-rendered. Events built without going through
    ``parse_domain_event`` fall back to the fields that were set.
    """
    if event.data._source is not None:
        return dict(event.data._source)
    return event.data.model_dump(mode="json", exclude_unset=True)


__all__ = [
    "ALL_EVENT_TYPES",
    "BillPayload",
    "DocumentPayload",
    "DomainEvent",
    "EventType",
    "PaymentPayload",
    "ReportPayload",
    "UserPayload",
    "parse_domain_event",
    "parse_event_type",
    "payload_to_json",
]
