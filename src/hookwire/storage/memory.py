"""In-process storage backend.

Holds everything in dictionaries and hands out copies, so callers never
mutate stored state by accident. Suitable for tests and single-process
deployments; data does not survive a restart.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import TYPE_CHECKING

from hookwire.exceptions import NotFoundError

from .base import WebhookStore, in_window

if TYPE_CHECKING:
    from hookwire.models import (
        DeliveryAttempt,
        DeliveryEvent,
        Endpoint,
        EndpointLog,
        EventStatus,
    )

logger = logging.getLogger(__name__)


def _take(items: list, limit: int | None) -> list:
    return items if limit is None else items[:limit]


class InMemoryWebhookStore(WebhookStore):
    """Dictionary-backed WebhookStore.

    Example:
        ```python
        store = InMemoryWebhookStore()
        await store.save_endpoint(endpoint)
        await store.save_secret(endpoint.id, secret)
        ```
    """

    def __init__(self) -> None:
        self._endpoints: dict[str, Endpoint] = {}
        self._secrets: dict[str, str] = {}
        self._events: dict[str, DeliveryEvent] = {}
        self._attempts: dict[str, DeliveryAttempt] = {}
        self._logs: dict[str, EndpointLog] = {}
        self._lock = asyncio.Lock()

    async def save_endpoint(self, endpoint: Endpoint) -> str:
        self._endpoints[endpoint.id] = endpoint.model_copy(deep=True)
        return endpoint.id

    async def get_endpoint(self, endpoint_id: str) -> Endpoint | None:
        endpoint = self._endpoints.get(endpoint_id)
        return endpoint.model_copy(deep=True) if endpoint else None

    async def list_endpoints(
        self,
        owner_id: str | None = None,
        include_deleted: bool = False,
    ) -> list[Endpoint]:
        endpoints = [
            ep.model_copy(deep=True)
            for ep in self._endpoints.values()
            if (owner_id is None or ep.owner_id == owner_id)
            and (include_deleted or not ep.is_deleted)
        ]
        endpoints.sort(key=lambda ep: ep.created_at, reverse=True)
        return endpoints

    async def delete_endpoint(self, endpoint_id: str) -> bool:
        async with self._lock:
            existed = self._endpoints.pop(endpoint_id, None) is not None
            self._secrets.pop(endpoint_id, None)
            self._events = {
                k: v for k, v in self._events.items() if v.endpoint_id != endpoint_id
            }
            self._attempts = {
                k: v for k, v in self._attempts.items() if v.endpoint_id != endpoint_id
            }
            self._logs = {k: v for k, v in self._logs.items() if v.endpoint_id != endpoint_id}
        if existed:
            logger.debug("Cascade-deleted endpoint %s", endpoint_id)
        return existed

    async def save_secret(self, endpoint_id: str, secret: str) -> None:
        self._secrets[endpoint_id] = secret

    async def get_secret(self, endpoint_id: str) -> str | None:
        return self._secrets.get(endpoint_id)

    async def delete_secret(self, endpoint_id: str) -> None:
        self._secrets.pop(endpoint_id, None)

    async def add_event(self, event: DeliveryEvent) -> str:
        self._events[event.id] = event.model_copy(deep=True)
        return event.id

    async def get_event(self, event_id: str) -> DeliveryEvent | None:
        event = self._events.get(event_id)
        return event.model_copy(deep=True) if event else None

    async def update_event(self, event: DeliveryEvent) -> None:
        async with self._lock:
            stored = self._events.get(event.id)
            if stored is None:
                raise NotFoundError("event", event.id)
            updated = event.model_copy(deep=True)
            updated.attempts = max(stored.attempts, event.attempts)
            self._events[event.id] = updated

    async def increment_attempts(self, event_id: str) -> int:
        async with self._lock:
            stored = self._events.get(event_id)
            if stored is None:
                raise NotFoundError("event", event_id)
            stored.attempts += 1
            return stored.attempts

    async def list_events(
        self,
        endpoint_id: str | None = None,
        status: EventStatus | None = None,
        since: datetime | None = None,
        until: datetime | None = None,
        limit: int | None = None,
    ) -> list[DeliveryEvent]:
        events = [
            ev.model_copy(deep=True)
            for ev in self._events.values()
            if (endpoint_id is None or ev.endpoint_id == endpoint_id)
            and (status is None or ev.status == status)
            and in_window(ev.created_at, since, until)
        ]
        events.sort(key=lambda ev: ev.created_at, reverse=True)
        return _take(events, limit)

    async def due_events(self, now: datetime, limit: int | None = None) -> list[DeliveryEvent]:
        due = [ev.model_copy(deep=True) for ev in self._events.values() if ev.is_due(now)]
        due.sort(key=lambda ev: ev.next_retry_at or ev.created_at)
        return _take(due, limit)

    async def add_attempt(self, attempt: DeliveryAttempt) -> str:
        self._attempts[attempt.id] = attempt
        return attempt.id

    async def list_attempts(
        self,
        event_id: str | None = None,
        endpoint_id: str | None = None,
        since: datetime | None = None,
        until: datetime | None = None,
        limit: int | None = None,
    ) -> list[DeliveryAttempt]:
        attempts = [
            at
            for at in self._attempts.values()
            if (event_id is None or at.event_id == event_id)
            and (endpoint_id is None or at.endpoint_id == endpoint_id)
            and in_window(at.timestamp, since, until)
        ]
        attempts.sort(key=lambda at: at.timestamp, reverse=True)
        return _take(attempts, limit)

    async def add_log(self, entry: EndpointLog) -> str:
        self._logs[entry.id] = entry
        return entry.id

    async def list_logs(
        self, endpoint_id: str | None = None, limit: int | None = None
    ) -> list[EndpointLog]:
        logs = [
            entry
            for entry in self._logs.values()
            if endpoint_id is None or entry.endpoint_id == endpoint_id
        ]
        logs.sort(key=lambda entry: entry.timestamp, reverse=True)
        return _take(logs, limit)


__all__ = ["InMemoryWebhookStore"]
