"""Webhook delivery engine.

Example:
    ```python
    from hookwire.delivery import DeliveryEngine

    engine = DeliveryEngine(store, settings)
    bus.subscribe(engine.handle_domain_event)
    ```
"""

from .engine import (
    EVENT_HEADER,
    EVENT_ID_HEADER,
    TIMESTAMP_HEADER,
    BulkRetryResult,
    DeliveryEngine,
)

__all__ = [
    "BulkRetryResult",
    "DeliveryEngine",
    "EVENT_HEADER",
    "EVENT_ID_HEADER",
    "TIMESTAMP_HEADER",
]
