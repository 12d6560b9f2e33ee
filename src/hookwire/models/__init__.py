"""Data models for hookwire.

Registration:
    - Endpoint, EndpointUpdate, EndpointRegistration, RetryPolicy

Delivery:
    - DeliveryEvent: one endpoint being notified of one domain event
    - DeliveryAttempt: immutable record of one HTTP try
    - DeliveryOutcome: result of a try before it is stored

Audit:
    - EndpointLog: append-only activity log entry
"""

from .attempt import DeliveryAttempt, DeliveryOutcome
from .base import ensure_utc, generate_id, utc_now
from .endpoint import (
    REDACTED_SECRET,
    Endpoint,
    EndpointRegistration,
    EndpointUpdate,
    RetryPolicy,
    reserved_header_names,
    validate_https_url,
)
from .event import DeliveryEvent, EventStatus
from .log import EndpointLog, LogAction, LogOutcome

__all__ = [
    # Helpers
    "ensure_utc",
    "generate_id",
    "utc_now",
    # Registration
    "REDACTED_SECRET",
    "Endpoint",
    "EndpointRegistration",
    "EndpointUpdate",
    "RetryPolicy",
    "reserved_header_names",
    "validate_https_url",
    # Delivery
    "DeliveryAttempt",
    "DeliveryEvent",
    "DeliveryOutcome",
    "EventStatus",
    # Audit
    "EndpointLog",
    "LogAction",
    "LogOutcome",
]
