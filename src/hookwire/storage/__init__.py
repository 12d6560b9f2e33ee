"""Storage backends for hookwire.

Example:
    ```python
    from hookwire.storage import create_store

    store = create_store(settings)
    await store.initialize()
    ```
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from hookwire.exceptions import ConfigurationError

from .base import WebhookStore
from .memory import InMemoryWebhookStore
from .qdrant import QdrantWebhookStore

if TYPE_CHECKING:
    from hookwire.config import Settings


def create_store(settings: Settings) -> WebhookStore:
    """Build the backend selected by ``settings.storage_backend``."""
    if settings.storage_backend == "memory":
        return InMemoryWebhookStore()
    if settings.storage_backend == "qdrant":
        return QdrantWebhookStore(
            url=settings.qdrant_url,
            api_key=settings.qdrant_api_key,
            prefix=settings.collection_prefix,
        )
    raise ConfigurationError(f"Unknown storage backend: {settings.storage_backend}")


__all__ = ["InMemoryWebhookStore", "QdrantWebhookStore", "WebhookStore", "create_store"]
