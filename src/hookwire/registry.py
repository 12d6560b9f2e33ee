"""Webhook registry: endpoint CRUD with ownership checks.

Every operation takes the requesting owner's ID. Administrators may act
on any endpoint; everyone else only on their own. A missing (or
tombstoned) endpoint is reported as NotFoundError before ownership is
considered.

Example:
    ```python
    registry = WebhookRegistry(store, settings)

    registration = await registry.register(
        owner_id="user_123",
        url="https://example.com/hooks",
        events=["payment.success", "bill.overdue"],
    )
    print(registration.secret)  # shown once
    ```
"""

from __future__ import annotations

import logging
import secrets
from collections.abc import Callable, Iterable
from datetime import datetime
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from hookwire.config import Settings
from hookwire.events import EventType, parse_event_type
from hookwire.exceptions import AuditTrailError, ForbiddenError, NotFoundError, ValidationError
from hookwire.models import (
    REDACTED_SECRET,
    Endpoint,
    EndpointLog,
    EndpointRegistration,
    EndpointUpdate,
    LogAction,
    RetryPolicy,
    reserved_header_names,
    utc_now,
    validate_https_url,
)
from hookwire.sanitize import sanitize
from hookwire.storage import WebhookStore

logger = logging.getLogger(__name__)

SECRET_BYTES = 32


def generate_secret() -> str:
    """New signing secret: 32 random bytes, hex encoded."""
    return secrets.token_hex(SECRET_BYTES)


async def load_owned_endpoint(
    store: WebhookStore,
    endpoint_id: str,
    owner_id: str,
    is_admin: bool = False,
) -> Endpoint:
    """Fetch an endpoint the requester may act on.

    Raises:
        NotFoundError: If the endpoint does not exist or was tombstoned.
        ForbiddenError: If the requester is neither owner nor admin.
    """
    endpoint = await store.get_endpoint(endpoint_id)
    if endpoint is None or endpoint.is_deleted:
        raise NotFoundError("endpoint", endpoint_id)
    if not is_admin and endpoint.owner_id != owner_id:
        raise ForbiddenError(f"endpoint {endpoint_id} belongs to another owner")
    return endpoint


def _validate_url(url: str) -> str:
    try:
        return validate_https_url(url)
    except ValueError as e:
        raise ValidationError("url", str(e)) from e


def _validate_events(events: Iterable[EventType | str] | None) -> list[EventType]:
    resolved = [parse_event_type(e) for e in events or []]
    if not resolved:
        raise ValidationError("events", "at least one event type is required")
    return resolved


def _validate_headers(headers: dict[str, str] | None) -> dict[str, str]:
    headers = dict(headers or {})
    reserved = reserved_header_names(headers)
    if reserved:
        raise ValidationError(
            "headers", f"reserved header names cannot be set: {', '.join(sorted(reserved))}"
        )
    for name, value in headers.items():
        if not isinstance(value, str):
            raise ValidationError(f"headers.{name}", "header values must be strings")
    return headers


def _validate_policy(
    policy: RetryPolicy | dict[str, Any] | None, default: RetryPolicy
) -> RetryPolicy:
    if policy is None:
        return default
    if isinstance(policy, RetryPolicy):
        return policy
    try:
        return RetryPolicy.model_validate(policy)
    except PydanticValidationError as e:
        raise ValidationError.from_pydantic(e, skip=()) from e


class WebhookRegistry:
    """Endpoint registration, listing, update, deletion and secret rotation."""

    def __init__(
        self,
        store: WebhookStore,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._settings = settings or Settings()
        self._clock = clock

    @property
    def default_policy(self) -> RetryPolicy:
        return RetryPolicy.from_defaults(self._settings.default_retry_policy)

    async def register(
        self,
        owner_id: str,
        url: str,
        events: Iterable[EventType | str],
        retry_policy: RetryPolicy | dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        description: str | None = None,
    ) -> EndpointRegistration:
        """Register a new endpoint.

        Nothing is persisted unless every field validates.

        Returns:
            The endpoint and its signing secret. The secret is never
            returned again.

        Raises:
            ValidationError: Non-HTTPS URL, no or unknown event types, a
                policy outside its bounds, or reserved custom headers.
        """
        now = self._clock()
        try:
            endpoint = Endpoint(
                owner_id=owner_id,
                url=_validate_url(url),
                events=_validate_events(events),
                retry_policy=_validate_policy(retry_policy, self.default_policy),
                headers=_validate_headers(headers),
                description=description,
                created_at=now,
                updated_at=now,
            )
        except PydanticValidationError as e:
            raise ValidationError.from_pydantic(e) from e

        secret = generate_secret()
        await self._store.save_endpoint(endpoint)
        await self._store.save_secret(endpoint.id, secret)

        logger.info("Registered endpoint %s for owner %s", endpoint.id, owner_id)
        await self._log(
            endpoint.id,
            LogAction.CREATED,
            {
                "url": endpoint.url,
                "events": [e.value for e in endpoint.events],
                "description": endpoint.description,
            },
        )
        return EndpointRegistration(endpoint=endpoint, secret=secret)

    async def list_endpoints(
        self,
        owner_id: str,
        is_admin: bool = False,
        include_all: bool = False,
    ) -> list[Endpoint]:
        """Endpoints of the requester, newest first.

        Args:
            owner_id: Requesting owner.
            is_admin: Whether the requester is an administrator.
            include_all: List every owner's endpoints (admins only).

        Raises:
            ForbiddenError: If include_all is requested by a non-admin.
        """
        if include_all:
            if not is_admin:
                raise ForbiddenError("listing all endpoints requires admin")
            return await self._store.list_endpoints(owner_id=None)
        return await self._store.list_endpoints(owner_id=owner_id)

    async def get(self, endpoint_id: str, owner_id: str, is_admin: bool = False) -> Endpoint:
        return await load_owned_endpoint(self._store, endpoint_id, owner_id, is_admin)

    async def update(
        self,
        endpoint_id: str,
        owner_id: str,
        patch: EndpointUpdate | dict[str, Any],
        is_admin: bool = False,
    ) -> Endpoint:
        """Apply a partial update, validated as on registration.

        Raises:
            ValidationError: If a patched field is invalid.
            NotFoundError: If the endpoint does not exist.
            ForbiddenError: If the requester may not modify it.
        """
        if not isinstance(patch, EndpointUpdate):
            try:
                patch = EndpointUpdate.model_validate(patch)
            except PydanticValidationError as e:
                raise ValidationError.from_pydantic(e) from e

        endpoint = await load_owned_endpoint(self._store, endpoint_id, owner_id, is_admin)
        changes = {
            key: value
            for key, value in patch.changes().items()
            if value is not None or key == "description"
        }
        if not changes:
            return endpoint

        if "url" in changes:
            changes["url"] = _validate_url(changes["url"])
        if "events" in changes:
            changes["events"] = _validate_events(changes["events"])
        if "headers" in changes:
            changes["headers"] = _validate_headers(changes["headers"])

        try:
            updated = Endpoint.model_validate(
                {**endpoint.model_dump(), **changes, "updated_at": self._clock()}
            )
        except PydanticValidationError as e:
            raise ValidationError.from_pydantic(e) from e

        await self._store.save_endpoint(updated)
        logger.info("Updated endpoint %s: %s", endpoint_id, ", ".join(sorted(changes)))
        await self._log(
            endpoint_id,
            LogAction.UPDATED,
            {"changed": sorted(changes), "url": updated.url, "active": updated.active},
        )
        return updated

    async def delete(self, endpoint_id: str, owner_id: str, is_admin: bool = False) -> None:
        """Delete an endpoint.

        By default the endpoint and its whole history are removed. With
        ``retain_history_on_delete`` the endpoint is tombstoned instead:
        deactivated, hidden, its secret destroyed and its history kept.
        """
        endpoint = await load_owned_endpoint(self._store, endpoint_id, owner_id, is_admin)

        if not self._settings.retain_history_on_delete:
            await self._store.delete_endpoint(endpoint_id)
            logger.info("Deleted endpoint %s with its history", endpoint_id)
            return

        now = self._clock()
        endpoint.active = False
        endpoint.deleted_at = now
        endpoint.updated_at = now
        await self._store.save_endpoint(endpoint)
        await self._store.delete_secret(endpoint_id)
        logger.info("Tombstoned endpoint %s", endpoint_id)
        await self._log(endpoint_id, LogAction.DELETED, {"url": endpoint.url, "retained": True})

    async def rotate_secret(self, endpoint_id: str, owner_id: str, is_admin: bool = False) -> str:
        """Replace the signing secret and return the new one, once."""
        await load_owned_endpoint(self._store, endpoint_id, owner_id, is_admin)
        secret = generate_secret()
        await self._store.save_secret(endpoint_id, secret)
        logger.info("Rotated signing secret of endpoint %s", endpoint_id)
        await self._log(endpoint_id, LogAction.UPDATED, {"changed": ["secret"]})
        return secret

    async def read_secret(self, endpoint_id: str, owner_id: str, is_admin: bool = False) -> str:
        """Existing secrets are never readable; this always returns a mask."""
        await load_owned_endpoint(self._store, endpoint_id, owner_id, is_admin)
        return REDACTED_SECRET

    async def _log(self, endpoint_id: str, action: LogAction, details: dict[str, Any]) -> None:
        entry = EndpointLog(
            endpoint_id=endpoint_id,
            action=action,
            details=sanitize(details),
            timestamp=self._clock(),
        )
        try:
            await self._store.add_log(entry)
        except Exception as e:
            logger.error(
                "Could not write %s log for endpoint %s: %s", action.value, endpoint_id, e
            )
            raise AuditTrailError(
                f"{action.value} log for endpoint {endpoint_id} was not recorded"
            ) from e


__all__ = ["WebhookRegistry", "generate_secret", "load_owned_endpoint"]
