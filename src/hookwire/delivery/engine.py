"""Signed, at-least-once webhook delivery with bounded retries.

Each (domain event, subscribed endpoint) pair becomes a ``DeliveryEvent``
that moves from PENDING to exactly one of DELIVERED or FAILED:

    PENDING --2xx--------------------------------> DELIVERED
    PENDING --failure, attempts < max_retries----> PENDING (next_retry_at set)
    PENDING --failure, attempts == max_retries---> FAILED

Every HTTP try is recorded as a ``DeliveryAttempt`` whatever its outcome.
Failed tries are values, never exceptions. The only exception the
delivery path raises on its own is ``AuditTrailError``, after the state
transition has been stored, when an attempt or log row could not be
written.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, Field

from hookwire.config import Settings
from hookwire.events import (
    DomainEvent,
    EventType,
    parse_domain_event,
    parse_event_type,
    payload_to_json,
)
from hookwire.exceptions import AuditTrailError, NotFoundError, ValidationError
from hookwire.models import (
    DeliveryAttempt,
    DeliveryEvent,
    DeliveryOutcome,
    Endpoint,
    EndpointLog,
    EventStatus,
    LogAction,
    LogOutcome,
    generate_id,
    utc_now,
)
from hookwire.registry import load_owned_endpoint
from hookwire.retry import apply_jitter, delay
from hookwire.sanitize import sanitize, sanitize_text
from hookwire.signing import SIGNATURE_HEADER, canonical_bytes, sign
from hookwire.storage import WebhookStore

logger = logging.getLogger(__name__)

EVENT_HEADER = "X-Webhook-Event"
EVENT_ID_HEADER = "X-Webhook-Event-Id"
TIMESTAMP_HEADER = "X-Webhook-Timestamp"
USER_AGENT = "hookwire/0.1"


class BulkRetryResult(BaseModel):
    """Summary of an administrative bulk retry."""

    model_config = ConfigDict(extra="forbid")

    requested: int = Field(default=0, ge=0, description="Events considered")
    delivered: int = Field(default=0, ge=0, description="Events delivered by the retry")
    failed: int = Field(default=0, ge=0, description="Retries that failed again")
    skipped: int = Field(default=0, ge=0, description="Missing, in-flight or unroutable events")
    event_ids: list[str] = Field(default_factory=list, description="Events actually retried")


class DeliveryEngine:
    """Delivers events to endpoints and drives the retry state machine.

    Example:
        ```python
        engine = DeliveryEngine(store, settings)
        bus.subscribe(engine.handle_domain_event)

        # periodically
        await engine.deliver_due_retries()
        ```

    Args:
        store: Persistence backend.
        settings: Delivery settings (concurrency, jitter, truncation).
        http_client: Client used for outbound requests. One is created and
            owned by the engine when omitted.
        clock: Source of "now", injectable for tests.
        rng: Random source for retry jitter.
    """

    def __init__(
        self,
        store: WebhookStore,
        settings: Settings | None = None,
        http_client: httpx.AsyncClient | None = None,
        clock: Callable[[], datetime] = utc_now,
        rng: random.Random | None = None,
    ) -> None:
        self._store = store
        self._settings = settings or Settings()
        self._client = http_client
        self._owns_client = http_client is None
        self._clock = clock
        self._rng = rng or random.Random()
        self._semaphore = asyncio.Semaphore(self._settings.delivery_max_concurrent)
        self._in_flight: set[str] = set()

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(headers={"User-Agent": USER_AGENT})
        return self._client

    @property
    def in_flight(self) -> frozenset[str]:
        """IDs of events with an attempt currently running."""
        return frozenset(self._in_flight)

    async def close(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    # Triggering

    async def handle_domain_event(self, event: DomainEvent) -> list[str]:
        """Bus handler: fan a domain event out to every subscribed endpoint.

        Creates one PENDING delivery event per active subscribed endpoint
        and makes the first attempt for each, concurrently.

        Returns:
            IDs of the delivery events created.

        Raises:
            AuditTrailError: If an attempt or log row could not be written.
                All deliveries have still been made.
        """
        endpoints = await self._store.find_subscribed(event.event_type)
        if not endpoints:
            logger.debug("No endpoints subscribed to %s", event.event_type.value)
            return []

        payload = payload_to_json(event)
        results = await asyncio.gather(
            *(self._trigger(endpoint, event.event_type, payload) for endpoint in endpoints),
            return_exceptions=True,
        )

        event_ids: list[str] = []
        errors: list[BaseException] = []
        for endpoint, result in zip(endpoints, results, strict=True):
            if isinstance(result, BaseException):
                logger.error(
                    "Delivery of %s to endpoint %s raised: %s",
                    event.event_type.value,
                    endpoint.id,
                    result,
                )
                errors.append(result)
            else:
                event_ids.append(result)

        if errors:
            raise errors[0]
        return event_ids

    async def _trigger(
        self, endpoint: Endpoint, event_type: EventType, payload: dict[str, Any]
    ) -> str:
        now = self._clock()
        delivery = DeliveryEvent(
            endpoint_id=endpoint.id,
            event_type=event_type,
            payload=payload,
            created_at=now,
            updated_at=now,
            # A first attempt that dies before it is recorded is swept once its timeout has passed
            next_retry_at=now + timedelta(seconds=endpoint.retry_policy.timeout_seconds),
        )
        await self._store.add_event(delivery)
        audit_error = await self._audit(
            self._write_log(
                endpoint.id,
                LogAction.TRIGGERED,
                {
                    "event_id": delivery.id,
                    "event_type": event_type.value,
                    "payload": payload,
                },
            )
        )
        await self._attempt(delivery, endpoint)
        if audit_error is not None:
            raise AuditTrailError(
                f"TRIGGERED log for event {delivery.id} was not recorded"
            ) from audit_error
        return delivery.id

    # Automatic attempts

    async def _attempt(self, event: DeliveryEvent, endpoint: Endpoint) -> DeliveryOutcome | None:
        """One automatic attempt, counted against the retry policy.

        Returns None when the event already has an attempt in flight.
        """
        if event.id in self._in_flight:
            logger.debug("Event %s already in flight, skipping", event.id)
            return None
        policy = endpoint.retry_policy
        if event.attempts >= policy.max_retries:
            await self._abandon(event, endpoint, self._clock(), "retry budget exhausted")
            return None

        self._in_flight.add(event.id)
        try:
            outcome = await self._send(endpoint, event.event_type.value, event.id, event.payload)
            now = self._clock()
            audit_error = await self._audit(
                self._record_attempt(outcome, endpoint.id, event.id, now)
            )

            attempts = await self._store.increment_attempts(event.id)
            event.attempts = attempts

            if outcome.success:
                event.mark_delivered(now)
                logger.info(
                    "Delivered %s to %s on attempt %d (HTTP %s)",
                    event.id,
                    endpoint.id,
                    attempts,
                    outcome.status_code,
                )
            elif attempts < policy.max_retries:
                wait = apply_jitter(
                    delay(attempts, policy.strategy, policy.base_delay_seconds),
                    self._settings.retry_jitter_ratio,
                    self._rng,
                )
                event.mark_retrying(now, now + timedelta(seconds=wait))
                logger.info(
                    "Attempt %d/%d of %s to %s failed (%s); retry at %s",
                    attempts,
                    policy.max_retries,
                    event.id,
                    endpoint.id,
                    outcome.error or f"HTTP {outcome.status_code}",
                    event.next_retry_at.isoformat() if event.next_retry_at else None,
                )
            else:
                event.mark_failed(now)
                logger.warning(
                    "Giving up on %s to %s after %d attempts",
                    event.id,
                    endpoint.id,
                    attempts,
                )
                audit_error = (
                    await self._audit(
                        self._write_log(
                            endpoint.id,
                            LogAction.FAILED,
                            {
                                "event_id": event.id,
                                "event_type": event.event_type.value,
                                "attempts": attempts,
                                "last_status_code": outcome.status_code,
                                "last_error": outcome.error,
                            },
                            LogOutcome.ERROR,
                        )
                    )
                    or audit_error
                )

            await self._store.update_event(event)
        finally:
            self._in_flight.discard(event.id)

        if audit_error is not None:
            raise AuditTrailError(
                f"audit trail for event {event.id} is incomplete"
            ) from audit_error
        return outcome

    async def deliver_due_retries(self, limit: int | None = None) -> int:
        """Re-attempt PENDING events whose retry time has come.

        Events whose endpoint was removed or deactivated are marked
        FAILED without an HTTP attempt.

        Args:
            limit: Maximum events to process. Defaults to
                settings.scheduler_batch_size.

        Returns:
            Number of due events processed without error. Events whose
            attempt raised stay due and are picked up by a later sweep.
        """
        now = self._clock()
        due = await self._store.due_events(now, limit or self._settings.scheduler_batch_size)
        if not due:
            return 0

        tasks: list[Awaitable[Any]] = []
        for event in due:
            if event.id in self._in_flight:
                continue
            endpoint = await self._store.get_endpoint(event.endpoint_id)
            if endpoint is None or not endpoint.active or endpoint.is_deleted:
                reason = "endpoint removed" if endpoint is None else "endpoint inactive"
                tasks.append(self._abandon(event, endpoint, now, reason))
            else:
                tasks.append(self._attempt(event, endpoint))

        results = await asyncio.gather(*tasks, return_exceptions=True)
        processed = 0
        for result in results:
            if isinstance(result, BaseException):
                logger.error("Retry sweep error: %s", result, exc_info=result)
            else:
                processed += 1

        logger.debug("Retry sweep processed %d of %d due events", processed, len(tasks))
        return processed

    async def _abandon(
        self, event: DeliveryEvent, endpoint: Endpoint | None, now: datetime, reason: str
    ) -> None:
        event.mark_failed(now)
        await self._store.update_event(event)
        logger.warning("Event %s marked FAILED: %s", event.id, reason)
        if endpoint is not None:
            await self._write_log(
                endpoint.id,
                LogAction.FAILED,
                {"event_id": event.id, "event_type": event.event_type.value, "reason": reason},
                LogOutcome.ERROR,
            )

    # Manual attempts

    async def retry_event(
        self, event_id: str, owner_id: str, is_admin: bool = False
    ) -> DeliveryOutcome:
        """Operator-triggered retry: exactly one extra attempt.

        The attempt is recorded as manual and never changes the automatic
        attempt counter. Success marks the event DELIVERED; failure leaves
        its status unchanged.

        Raises:
            NotFoundError: Unknown event or endpoint.
            ForbiddenError: Requester may not act on the endpoint.
            ValidationError: Endpoint inactive or event already in flight.
        """
        event = await self._store.get_event(event_id)
        if event is None:
            raise NotFoundError("event", event_id)
        endpoint = await load_owned_endpoint(self._store, event.endpoint_id, owner_id, is_admin)
        return await self._manual_attempt(event, endpoint)

    async def _manual_attempt(self, event: DeliveryEvent, endpoint: Endpoint) -> DeliveryOutcome:
        if not endpoint.active:
            raise ValidationError("endpoint", f"endpoint {endpoint.id} is inactive")
        if event.id in self._in_flight:
            raise ValidationError("event", f"event {event.id} has a delivery in progress")

        self._in_flight.add(event.id)
        try:
            outcome = await self._send(endpoint, event.event_type.value, event.id, event.payload)
            now = self._clock()
            audit_error = await self._audit(
                self._record_attempt(outcome, endpoint.id, event.id, now, manual=True)
            )
            if outcome.success:
                # Re-read so a concurrent automatic attempt's counter survives
                current = await self._store.get_event(event.id) or event
                current.mark_delivered(now)
                await self._store.update_event(current)
            logger.info(
                "Manual retry of %s to %s: %s",
                event.id,
                endpoint.id,
                "delivered" if outcome.success else outcome.error or f"HTTP {outcome.status_code}",
            )
        finally:
            self._in_flight.discard(event.id)

        if audit_error is not None:
            raise AuditTrailError(
                f"manual attempt for event {event.id} was not recorded"
            ) from audit_error
        return outcome

    async def bulk_retry(
        self,
        event_ids: list[str] | None = None,
        status: EventStatus = EventStatus.FAILED,
        limit: int = 100,
    ) -> BulkRetryResult:
        """Administrative retry of many events at once.

        Args:
            event_ids: Specific events to retry. When omitted, up to
                ``limit`` events in ``status`` are retried.
            status: Status to select when event_ids is omitted.
            limit: Maximum events selected by status.
        """
        if event_ids is not None:
            candidates = [await self._store.get_event(eid) for eid in event_ids]
            events = [ev for ev in candidates if ev is not None]
            result = BulkRetryResult(
                requested=len(event_ids), skipped=len(event_ids) - len(events)
            )
        else:
            events = await self._store.list_events(status=status, limit=limit)
            result = BulkRetryResult(requested=len(events))

        async def _one(event: DeliveryEvent) -> DeliveryOutcome | None:
            endpoint = await self._store.get_endpoint(event.endpoint_id)
            if endpoint is None or endpoint.is_deleted or not endpoint.active:
                return None
            if event.id in self._in_flight:
                return None
            return await self._manual_attempt(event, endpoint)

        outcomes = await asyncio.gather(*(_one(ev) for ev in events), return_exceptions=True)
        for event, outcome in zip(events, outcomes, strict=True):
            if isinstance(outcome, BaseException):
                logger.error("Bulk retry of %s raised: %s", event.id, outcome)
                result.failed += 1
                result.event_ids.append(event.id)
            elif outcome is None:
                result.skipped += 1
            else:
                result.event_ids.append(event.id)
                if outcome.success:
                    result.delivered += 1
                else:
                    result.failed += 1

        logger.info(
            "Bulk retry: %d requested, %d delivered, %d failed, %d skipped",
            result.requested,
            result.delivered,
            result.failed,
            result.skipped,
        )
        return result

    async def test_delivery(
        self,
        endpoint_id: str,
        owner_id: str,
        is_admin: bool = False,
        event_type: EventType | str | None = None,
        payload: dict[str, Any] | None = None,
    ) -> DeliveryOutcome:
        """Send a one-off delivery and return its outcome directly.

        No delivery event is stored; the attempt is recorded with no
        event ID and ``manual=True``. A supplied payload is validated
        against the schema of ``event_type``.
        """
        endpoint = await load_owned_endpoint(self._store, endpoint_id, owner_id, is_admin)
        now = self._clock()

        if payload is not None:
            if event_type is None:
                raise ValidationError("event_type", "required when a payload is supplied")
            domain_event = parse_domain_event(event_type, payload)
            resolved_type = domain_event.event_type
            body = payload_to_json(domain_event)
        else:
            resolved_type = parse_event_type(event_type) if event_type else endpoint.events[0]
            body = {
                "test": True,
                "endpoint_id": endpoint.id,
                "event_type": resolved_type.value,
                "sent_at": now.isoformat(),
            }

        outcome = await self._send(endpoint, resolved_type.value, generate_id("test"), body)
        audit_error = await self._audit(
            self._record_attempt(outcome, endpoint.id, None, self._clock(), manual=True)
        )
        if audit_error is not None:
            raise AuditTrailError(
                f"test attempt for endpoint {endpoint.id} was not recorded"
            ) from audit_error
        logger.info(
            "Test delivery to %s: %s",
            endpoint.id,
            "ok" if outcome.success else outcome.error or f"HTTP {outcome.status_code}",
        )
        return outcome

    # HTTP

    async def _send(
        self,
        endpoint: Endpoint,
        event_type: str,
        event_id: str,
        payload: dict[str, Any],
    ) -> DeliveryOutcome:
        """Sign and POST a payload. Never raises for delivery failures."""
        body = canonical_bytes(payload)
        secret = await self._store.get_secret(endpoint.id)
        signature = sign(secret, body) if secret else None
        if signature is None or not signature.ok:
            reason = signature.error if signature else "endpoint has no signing secret"
            logger.error("Cannot sign delivery %s to %s: %s", event_id, endpoint.id, reason)
            return DeliveryOutcome(success=False, error=f"signing failed: {reason}")

        headers = httpx.Headers(endpoint.headers)
        headers["Content-Type"] = "application/json"
        headers[SIGNATURE_HEADER] = signature.digest or ""
        headers[EVENT_HEADER] = event_type
        headers[EVENT_ID_HEADER] = event_id
        headers[TIMESTAMP_HEADER] = str(int(self._clock().timestamp()))

        timeout = endpoint.retry_policy.timeout_seconds
        started = time.perf_counter()
        async with self._semaphore:
            try:
                response = await self.client.post(
                    endpoint.url,
                    content=body,
                    headers=headers,
                    timeout=timeout,
                )
            except httpx.TimeoutException:
                return DeliveryOutcome(
                    success=False,
                    latency_ms=_elapsed_ms(started),
                    error=f"timeout after {timeout}s",
                )
            except httpx.HTTPError as e:
                return DeliveryOutcome(
                    success=False,
                    latency_ms=_elapsed_ms(started),
                    error=sanitize_text(f"{type(e).__name__}: {e}"),
                )

        limit = self._settings.response_body_max_chars
        text = response.text[:limit] if response.text else None
        return DeliveryOutcome(
            success=response.is_success,
            status_code=response.status_code,
            latency_ms=_elapsed_ms(started),
            response_body=sanitize_text(text),
            error=None if response.is_success else f"HTTP {response.status_code}",
        )

    # Audit trail

    async def _record_attempt(
        self,
        outcome: DeliveryOutcome,
        endpoint_id: str,
        event_id: str | None,
        timestamp: datetime,
        manual: bool = False,
    ) -> None:
        attempt = DeliveryAttempt.from_outcome(
            outcome, endpoint_id=endpoint_id, event_id=event_id, timestamp=timestamp, manual=manual
        )
        await self._store.add_attempt(attempt)
        outcome.attempt_id = attempt.id

    async def _write_log(
        self,
        endpoint_id: str,
        action: LogAction,
        details: dict[str, Any],
        outcome: LogOutcome = LogOutcome.SUCCESS,
    ) -> None:
        await self._store.add_log(
            EndpointLog(
                endpoint_id=endpoint_id,
                action=action,
                details=sanitize(details),
                outcome=outcome,
                timestamp=self._clock(),
            )
        )

    @staticmethod
    async def _audit(write: Awaitable[None]) -> Exception | None:
        """Run an audit write; return its error instead of raising it."""
        try:
            await write
        except Exception as e:
            logger.error("Audit trail write failed: %s", e, exc_info=e)
            return e
        return None


def _elapsed_ms(started: float) -> int:
    return max(0, int((time.perf_counter() - started) * 1000))


__all__ = ["BulkRetryResult", "DeliveryEngine"]
