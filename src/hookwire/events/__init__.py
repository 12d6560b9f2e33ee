"""Domain events and the in-process event bus.

Example:
    ```python
    from hookwire.events import EventBus, EventType

    bus = EventBus()
    bus.subscribe(handler)
    bus.seal()
    bus.emit(EventType.BILL_CREATED, {"id": "bill_1", "amount": 42})
    ```
"""

from .bus import EventBus, EventHandler, HandlerResult
from .types import (
    ALL_EVENT_TYPES,
    BillPayload,
    DocumentPayload,
    DomainEvent,
    EventType,
    PaymentPayload,
    ReportPayload,
    UserPayload,
    parse_domain_event,
    parse_event_type,
    payload_to_json,
)

__all__ = [
    "ALL_EVENT_TYPES",
    "BillPayload",
    "DocumentPayload",
    "DomainEvent",
    "EventBus",
    "EventHandler",
    "EventType",
    "HandlerResult",
    "PaymentPayload",
    "ReportPayload",
    "UserPayload",
    "parse_domain_event",
    "parse_event_type",
    "payload_to_json",
]
