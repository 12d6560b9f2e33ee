"""Endpoint and secret operations for the Qdrant backend."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from hookwire.models import Endpoint

if TYPE_CHECKING:
    from hookwire.events import EventType

logger = logging.getLogger(__name__)


class EndpointMixin:
    """Endpoint and secret storage.

    Expects from the base class: ``_upsert``, ``_retrieve``,
    ``_scroll_all``, ``_delete_ids``, ``_delete_where``, ``_to_payload``,
    ``_from_payload``, ``_match`` and ``_filter``.
    """

    _upsert: Any
    _retrieve: Any
    _scroll_all: Any
    _delete_ids: Any
    _delete_where: Any
    _to_payload: Any
    _from_payload: Any
    _match: Any
    _filter: Any

    async def save_endpoint(self, endpoint: Endpoint) -> str:
        await self._upsert("endpoints", endpoint.id, self._to_payload(endpoint))
        return endpoint.id

    async def get_endpoint(self, endpoint_id: str) -> Endpoint | None:
        payload = await self._retrieve("endpoints", endpoint_id)
        if payload is None:
            return None
        endpoint: Endpoint = self._from_payload(payload, Endpoint)
        return endpoint

    async def list_endpoints(
        self,
        owner_id: str | None = None,
        include_deleted: bool = False,
    ) -> list[Endpoint]:
        scroll_filter = self._filter(
            self._match("owner_id", owner_id) if owner_id is not None else None
        )
        endpoints: list[Endpoint] = [
            self._from_payload(p, Endpoint)
            for p in await self._scroll_all("endpoints", scroll_filter)
        ]
        if not include_deleted:
            endpoints = [ep for ep in endpoints if not ep.is_deleted]
        endpoints.sort(key=lambda ep: ep.created_at, reverse=True)
        return endpoints

    async def find_subscribed(self, event_type: EventType) -> list[Endpoint]:
        scroll_filter = self._filter(
            self._match("active", True),
            self._match("events", event_type.value),
        )
        endpoints: list[Endpoint] = [
            self._from_payload(p, Endpoint)
            for p in await self._scroll_all("endpoints", scroll_filter)
        ]
        return [ep for ep in endpoints if ep.subscribes_to(event_type)]

    async def delete_endpoint(self, endpoint_id: str) -> bool:
        existed = await self._retrieve("endpoints", endpoint_id) is not None
        by_endpoint = self._filter(self._match("endpoint_id", endpoint_id))
        for kind in ("attempts", "events", "logs", "secrets"):
            await self._delete_where(kind, by_endpoint)
        await self._delete_ids("endpoints", [endpoint_id])
        if existed:
            logger.debug("Cascade-deleted endpoint %s", endpoint_id)
        return existed

    async def save_secret(self, endpoint_id: str, secret: str) -> None:
        await self._upsert("secrets", endpoint_id, {"endpoint_id": endpoint_id, "secret": secret})

    async def get_secret(self, endpoint_id: str) -> str | None:
        payload = await self._retrieve("secrets", endpoint_id)
        return payload.get("secret") if payload else None

    async def delete_secret(self, endpoint_id: str) -> None:
        await self._delete_ids("secrets", [endpoint_id])


__all__ = ["EndpointMixin"]
