"""Qdrant client lifecycle, collection management and payload helpers.

Records are stored as payload-only points: every collection uses a
single-dimension vector that is always zero, since nothing here is
searched by similarity.
"""

from __future__ import annotations

import asyncio
import hashlib
from datetime import datetime
from typing import Any, TypeVar

from pydantic import BaseModel
from qdrant_client import AsyncQdrantClient, models

from hookwire.config import settings

from .retry import qdrant_retry

ModelT = TypeVar("ModelT", bound=BaseModel)

COLLECTION_NAMES = {
    "endpoints": "endpoints",
    "secrets": "secrets",
    "events": "events",
    "attempts": "attempts",
    "logs": "logs",
}

# Keyword fields filtered on, per collection
KEYWORD_INDEXES = {
    "endpoints": ["owner_id"],
    "secrets": ["endpoint_id"],
    "events": ["endpoint_id", "status"],
    "attempts": ["endpoint_id", "event_id"],
    "logs": ["endpoint_id"],
}

# Datetime fields mirrored as epoch seconds so they can be range-filtered
EPOCH_FIELDS = ("created_at", "next_retry_at", "timestamp")
EPOCH_SUFFIX = "_epoch"

PLACEHOLDER_VECTOR = [0.0]
SCROLL_PAGE_SIZE = 256

# Events hash onto a fixed pool of counter locks
EVENT_LOCK_STRIPES = 64


class QdrantStorageBase:
    """Connection handling and shared helpers for the Qdrant backend."""

    def __init__(
        self,
        url: str | None = None,
        api_key: str | None = None,
        prefix: str | None = None,
        location: str | None = None,
    ) -> None:
        """Configure the backend.

        Args:
            url: Qdrant server URL. Defaults to settings.qdrant_url.
            api_key: Qdrant API key. Defaults to settings.qdrant_api_key.
            prefix: Collection name prefix. Defaults to settings.collection_prefix.
            location: Local mode location, e.g. ":memory:". Overrides url.
        """
        self._url = url or settings.qdrant_url
        self._api_key = api_key or settings.qdrant_api_key
        self._prefix = prefix or settings.collection_prefix
        self._location = location
        self._client: AsyncQdrantClient | None = None
        # Serializes read-modify-write of one event's counter within this process
        self._event_locks = [asyncio.Lock() for _ in range(EVENT_LOCK_STRIPES)]

    @property
    def client(self) -> AsyncQdrantClient:
        """Get the Qdrant client, raising if not initialized."""
        if self._client is None:
            raise RuntimeError("Storage not initialized. Call initialize() first.")
        return self._client

    async def initialize(self) -> None:
        """Connect and ensure all collections exist."""
        if self._client is None:
            if self._location is not None:
                self._client = AsyncQdrantClient(location=self._location)
            else:
                self._client = AsyncQdrantClient(url=self._url, api_key=self._api_key)
        await self._ensure_collections()

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None

    def _collection_name(self, kind: str) -> str:
        return f"{self._prefix}_{COLLECTION_NAMES[kind]}"

    @staticmethod
    def _key_to_point_id(key: str) -> str:
        """Deterministic UUID-format point ID for a record key.

        Qdrant only accepts UUIDs or unsigned integers as point IDs.
        """
        h = hashlib.sha256(key.encode()).hexdigest()[:32]
        return f"{h[:8]}-{h[8:12]}-{h[12:16]}-{h[16:20]}-{h[20:32]}"

    def _point_id(self, kind: str, record_id: str) -> str:
        return self._key_to_point_id(f"{kind}/{record_id}")

    def _event_lock(self, event_id: str) -> asyncio.Lock:
        return self._event_locks[hash(event_id) % len(self._event_locks)]

    @qdrant_retry
    async def _ensure_collections(self) -> None:
        existing = {c.name for c in (await self.client.get_collections()).collections}
        for kind in COLLECTION_NAMES:
            name = self._collection_name(kind)
            if name in existing:
                continue
            await self.client.create_collection(
                collection_name=name,
                vectors_config=models.VectorParams(size=1, distance=models.Distance.DOT),
            )
            for field in KEYWORD_INDEXES[kind]:
                await self.client.create_payload_index(
                    collection_name=name,
                    field_name=field,
                    field_schema=models.PayloadSchemaType.KEYWORD,
                )

    @staticmethod
    def _to_payload(record: BaseModel) -> dict[str, Any]:
        data = record.model_dump(mode="json")
        for field in EPOCH_FIELDS:
            value = getattr(record, field, None)
            if isinstance(value, datetime):
                data[field + EPOCH_SUFFIX] = value.timestamp()
        return data

    @staticmethod
    def _from_payload(payload: dict[str, Any], model: type[ModelT]) -> ModelT:
        data = {k: v for k, v in payload.items() if not k.endswith(EPOCH_SUFFIX)}
        return model.model_validate(data)

    @staticmethod
    def _match(key: str, value: Any) -> models.FieldCondition:
        return models.FieldCondition(key=key, match=models.MatchValue(value=value))

    @staticmethod
    def _window(
        field: str, since: datetime | None, until: datetime | None
    ) -> models.FieldCondition | None:
        if since is None and until is None:
            return None
        return models.FieldCondition(
            key=field + EPOCH_SUFFIX,
            range=models.Range(
                gte=since.timestamp() if since else None,
                lt=until.timestamp() if until else None,
            ),
        )

    @staticmethod
    def _filter(*conditions: models.Condition | None) -> models.Filter | None:
        must = [c for c in conditions if c is not None]
        return models.Filter(must=must) if must else None

    @qdrant_retry
    async def _upsert(self, kind: str, record_id: str, payload: dict[str, Any]) -> None:
        await self.client.upsert(
            collection_name=self._collection_name(kind),
            points=[
                models.PointStruct(
                    id=self._point_id(kind, record_id),
                    vector=PLACEHOLDER_VECTOR,
                    payload=payload,
                )
            ],
        )

    @qdrant_retry
    async def _retrieve(self, kind: str, record_id: str) -> dict[str, Any] | None:
        results = await self.client.retrieve(
            collection_name=self._collection_name(kind),
            ids=[self._point_id(kind, record_id)],
            with_payload=True,
        )
        if not results or results[0].payload is None:
            return None
        return dict(results[0].payload)

    @qdrant_retry
    async def _scroll_all(
        self, kind: str, scroll_filter: models.Filter | None = None
    ) -> list[dict[str, Any]]:
        """Every matching payload, following scroll pages to the end."""
        payloads: list[dict[str, Any]] = []
        offset: Any = None
        while True:
            points, offset = await self.client.scroll(
                collection_name=self._collection_name(kind),
                scroll_filter=scroll_filter,
                limit=SCROLL_PAGE_SIZE,
                offset=offset,
                with_payload=True,
                with_vectors=False,
            )
            payloads.extend(dict(p.payload) for p in points if p.payload is not None)
            if offset is None:
                return payloads

    @qdrant_retry
    async def _delete_where(self, kind: str, scroll_filter: models.Filter) -> None:
        await self.client.delete(
            collection_name=self._collection_name(kind),
            points_selector=models.FilterSelector(filter=scroll_filter),
        )

    @qdrant_retry
    async def _delete_ids(self, kind: str, record_ids: list[str]) -> None:
        await self.client.delete(
            collection_name=self._collection_name(kind),
            points_selector=models.PointIdsList(
                points=[self._point_id(kind, rid) for rid in record_ids]
            ),
        )


__all__ = ["COLLECTION_NAMES", "QdrantStorageBase"]
