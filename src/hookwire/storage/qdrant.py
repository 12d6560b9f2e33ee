"""Qdrant-backed WebhookStore.

Example:
    ```python
    from hookwire.storage import QdrantWebhookStore

    async with QdrantWebhookStore(url="http://localhost:6333") as store:
        await store.save_endpoint(endpoint)
    ```
"""

from __future__ import annotations

from typing import Any

from .base import WebhookStore
from .deliveries import DeliveryMixin
from .endpoints import EndpointMixin
from .logs import LogMixin
from .qdrant_base import QdrantStorageBase


class QdrantWebhookStore(EndpointMixin, DeliveryMixin, LogMixin, QdrantStorageBase, WebhookStore):
    """Async Qdrant storage for endpoints, secrets, events, attempts and logs.

    Combines:
    - EndpointMixin: endpoints, secrets, cascade delete
    - DeliveryMixin: delivery events, attempt counter, attempts
    - LogMixin: endpoint logs
    """

    async def __aenter__(self) -> QdrantWebhookStore:
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()


__all__ = ["QdrantWebhookStore"]
