"""Delivery event and attempt operations for the Qdrant backend.

The attempt counter is updated with a read-modify-write under a
striped ``asyncio.Lock`` keyed by event id. That makes it atomic within
one process; running several writer processes against the same
collections needs an external lock.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from hookwire.exceptions import NotFoundError
from hookwire.models import DeliveryAttempt, DeliveryEvent, EventStatus

if TYPE_CHECKING:
    import asyncio
    from collections.abc import Callable


class DeliveryMixin:
    """Delivery event and attempt storage."""

    _upsert: Any
    _retrieve: Any
    _scroll_all: Any
    _to_payload: Any
    _from_payload: Any
    _match: Any
    _window: Any
    _filter: Any
    _event_lock: Callable[[str], asyncio.Lock]

    async def add_event(self, event: DeliveryEvent) -> str:
        await self._upsert("events", event.id, self._to_payload(event))
        return event.id

    async def get_event(self, event_id: str) -> DeliveryEvent | None:
        payload = await self._retrieve("events", event_id)
        if payload is None:
            return None
        event: DeliveryEvent = self._from_payload(payload, DeliveryEvent)
        return event

    async def update_event(self, event: DeliveryEvent) -> None:
        async with self._event_lock(event.id):
            stored = await self._retrieve("events", event.id)
            if stored is None:
                raise NotFoundError("event", event.id)
            payload = self._to_payload(event)
            payload["attempts"] = max(int(stored.get("attempts", 0)), event.attempts)
            await self._upsert("events", event.id, payload)

    async def increment_attempts(self, event_id: str) -> int:
        async with self._event_lock(event_id):
            stored = await self._retrieve("events", event_id)
            if stored is None:
                raise NotFoundError("event", event_id)
            stored["attempts"] = int(stored.get("attempts", 0)) + 1
            await self._upsert("events", event_id, stored)
            return int(stored["attempts"])

    async def list_events(
        self,
        endpoint_id: str | None = None,
        status: EventStatus | None = None,
        since: datetime | None = None,
        until: datetime | None = None,
        limit: int | None = None,
    ) -> list[DeliveryEvent]:
        scroll_filter = self._filter(
            self._match("endpoint_id", endpoint_id) if endpoint_id is not None else None,
            self._match("status", EventStatus(status).value) if status is not None else None,
            self._window("created_at", since, until),
        )
        events: list[DeliveryEvent] = [
            self._from_payload(p, DeliveryEvent)
            for p in await self._scroll_all("events", scroll_filter)
        ]
        events.sort(key=lambda ev: ev.created_at, reverse=True)
        return events if limit is None else events[:limit]

    async def due_events(self, now: datetime, limit: int | None = None) -> list[DeliveryEvent]:
        scroll_filter = self._filter(
            self._match("status", EventStatus.PENDING.value),
        )
        events: list[DeliveryEvent] = [
            self._from_payload(p, DeliveryEvent)
            for p in await self._scroll_all("events", scroll_filter)
        ]
        due = [ev for ev in events if ev.is_due(now)]
        due.sort(key=lambda ev: ev.next_retry_at or ev.created_at)
        return due if limit is None else due[:limit]

    async def add_attempt(self, attempt: DeliveryAttempt) -> str:
        await self._upsert("attempts", attempt.id, self._to_payload(attempt))
        return attempt.id

    async def list_attempts(
        self,
        event_id: str | None = None,
        endpoint_id: str | None = None,
        since: datetime | None = None,
        until: datetime | None = None,
        limit: int | None = None,
    ) -> list[DeliveryAttempt]:
        scroll_filter = self._filter(
            self._match("event_id", event_id) if event_id is not None else None,
            self._match("endpoint_id", endpoint_id) if endpoint_id is not None else None,
            self._window("timestamp", since, until),
        )
        attempts: list[DeliveryAttempt] = [
            self._from_payload(p, DeliveryAttempt)
            for p in await self._scroll_all("attempts", scroll_filter)
        ]
        attempts.sort(key=lambda at: at.timestamp, reverse=True)
        return attempts if limit is None else attempts[:limit]


__all__ = ["DeliveryMixin"]
