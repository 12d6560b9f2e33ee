"""Endpoint log operations for the Qdrant backend."""

from __future__ import annotations

from typing import Any

from hookwire.models import EndpointLog


class LogMixin:
    """Append-only endpoint log storage."""

    _upsert: Any
    _scroll_all: Any
    _to_payload: Any
    _from_payload: Any
    _match: Any
    _filter: Any

    async def add_log(self, entry: EndpointLog) -> str:
        await self._upsert("logs", entry.id, self._to_payload(entry))
        return entry.id

    async def list_logs(
        self, endpoint_id: str | None = None, limit: int | None = None
    ) -> list[EndpointLog]:
        scroll_filter = self._filter(
            self._match("endpoint_id", endpoint_id) if endpoint_id is not None else None
        )
        logs: list[EndpointLog] = [
            self._from_payload(p, EndpointLog)
            for p in await self._scroll_all("logs", scroll_filter)
        ]
        logs.sort(key=lambda entry: entry.timestamp, reverse=True)
        return logs if limit is None else logs[:limit]


__all__ = ["LogMixin"]
