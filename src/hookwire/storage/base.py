"""Persistence interface for endpoints, secrets, delivery events,
attempts and logs.

The delivery core only talks to ``WebhookStore``. Two backends ship with
hookwire: ``InMemoryWebhookStore`` (single process, tests and local
runs) and ``QdrantWebhookStore``.

All list operations return newest first unless noted otherwise.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from hookwire.events import EventType
    from hookwire.models import (
        DeliveryAttempt,
        DeliveryEvent,
        Endpoint,
        EndpointLog,
        EventStatus,
    )


def in_window(value: datetime, since: datetime | None, until: datetime | None) -> bool:
    """Half-open window check: ``since <= value < until``."""
    if since is not None and value < since:
        return False
    if until is not None and value >= until:
        return False
    return True


class WebhookStore(ABC):
    """Abstract persistence for the webhook subsystem."""

    async def initialize(self) -> None:
        """Prepare the backend. No-op by default."""

    async def close(self) -> None:
        """Release backend resources. No-op by default."""

    async def __aenter__(self) -> WebhookStore:
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    # Endpoints

    @abstractmethod
    async def save_endpoint(self, endpoint: Endpoint) -> str:
        """Insert or replace an endpoint. Returns its ID."""

    @abstractmethod
    async def get_endpoint(self, endpoint_id: str) -> Endpoint | None: ...

    @abstractmethod
    async def list_endpoints(
        self,
        owner_id: str | None = None,
        include_deleted: bool = False,
    ) -> list[Endpoint]:
        """Endpoints of one owner, or of everyone when owner_id is None."""

    @abstractmethod
    async def delete_endpoint(self, endpoint_id: str) -> bool:
        """Remove an endpoint with its secret, events, attempts and logs.

        Returns:
            True if the endpoint existed.
        """

    async def find_subscribed(self, event_type: EventType) -> list[Endpoint]:
        """Active, non-deleted endpoints subscribed to ``event_type``."""
        endpoints = await self.list_endpoints(owner_id=None)
        return [ep for ep in endpoints if ep.subscribes_to(event_type)]

    # Secrets

    @abstractmethod
    async def save_secret(self, endpoint_id: str, secret: str) -> None: ...

    @abstractmethod
    async def get_secret(self, endpoint_id: str) -> str | None: ...

    @abstractmethod
    async def delete_secret(self, endpoint_id: str) -> None: ...

    # Delivery events

    @abstractmethod
    async def add_event(self, event: DeliveryEvent) -> str: ...

    @abstractmethod
    async def get_event(self, event_id: str) -> DeliveryEvent | None: ...

    @abstractmethod
    async def update_event(self, event: DeliveryEvent) -> None:
        """Persist status and timestamps of an existing event.

        Implementations keep the stored ``attempts`` counter when it is
        higher than the one on ``event``, so a stale copy never rolls the
        counter back.
        """

    @abstractmethod
    async def increment_attempts(self, event_id: str) -> int:
        """Atomically add one to an event's attempt counter.

        Returns:
            The new counter value.

        Raises:
            NotFoundError: If the event does not exist.
        """

    @abstractmethod
    async def list_events(
        self,
        endpoint_id: str | None = None,
        status: EventStatus | None = None,
        since: datetime | None = None,
        until: datetime | None = None,
        limit: int | None = None,
    ) -> list[DeliveryEvent]:
        """Events filtered by endpoint, status and ``created_at`` window."""

    @abstractmethod
    async def due_events(self, now: datetime, limit: int | None = None) -> list[DeliveryEvent]:
        """PENDING events whose ``next_retry_at <= now``, oldest due first."""

    # Attempts

    @abstractmethod
    async def add_attempt(self, attempt: DeliveryAttempt) -> str: ...

    @abstractmethod
    async def list_attempts(
        self,
        event_id: str | None = None,
        endpoint_id: str | None = None,
        since: datetime | None = None,
        until: datetime | None = None,
        limit: int | None = None,
    ) -> list[DeliveryAttempt]:
        """Attempts filtered by event, endpoint and ``timestamp`` window."""

    # Logs

    @abstractmethod
    async def add_log(self, entry: EndpointLog) -> str: ...

    @abstractmethod
    async def list_logs(
        self, endpoint_id: str | None = None, limit: int | None = None
    ) -> list[EndpointLog]: ...


__all__ = ["WebhookStore", "in_window"]
