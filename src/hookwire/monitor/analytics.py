"""Read-only analytics over delivery history.

Nothing here mutates state. Success rates come in two flavours:

- event success rate: delivered / (delivered + failed) over delivery
  events. Stats, reports and health classification use it.
- attempt success rate: successful / total attempts. Health reports it
  alongside, and falls back to it while no event in the window has
  settled.
"""

from __future__ import annotations

import logging
import math
from collections import Counter, defaultdict
from collections.abc import Callable, Iterable
from datetime import datetime, timedelta

from hookwire.config import Settings
from hookwire.exceptions import NotFoundError, ValidationError
from hookwire.models import (
    DeliveryAttempt,
    DeliveryEvent,
    Endpoint,
    EndpointLog,
    EventStatus,
    ensure_utc,
    utc_now,
)
from hookwire.retry import schedule
from hookwire.sanitize import sanitize
from hookwire.storage import WebhookStore

from .export import attempt_rows, rows_to_csv, rows_to_json
from .models import (
    DashboardSummary,
    DeliveryRecord,
    EndpointHealth,
    EndpointPerformance,
    EndpointStats,
    ExportFormat,
    FailedDelivery,
    HealthStatus,
    PerformanceReport,
)

logger = logging.getLogger(__name__)


def _ratio(numerator: int, denominator: int) -> float | None:
    if denominator == 0:
        return None
    return round(numerator / denominator, 4)


def _average_latency(attempts: Iterable[DeliveryAttempt]) -> float | None:
    latencies = [a.latency_ms for a in attempts if a.status_code is not None]
    if not latencies:
        return None
    return round(sum(latencies) / len(latencies), 1)


def _p95(attempts: Iterable[DeliveryAttempt]) -> int | None:
    latencies = sorted(a.latency_ms for a in attempts if a.status_code is not None)
    if not latencies:
        return None
    # nearest-rank
    return latencies[max(0, math.ceil(0.95 * len(latencies)) - 1)]


def _status_counts(events: Iterable[DeliveryEvent]) -> Counter[EventStatus]:
    return Counter(ev.status for ev in events)


def _event_rate(events: Iterable[DeliveryEvent]) -> float | None:
    counts = _status_counts(events)
    delivered = counts[EventStatus.DELIVERED]
    return _ratio(delivered, delivered + counts[EventStatus.FAILED])


def _attempt_rate(attempts: list[DeliveryAttempt]) -> float | None:
    return _ratio(sum(1 for a in attempts if a.success), len(attempts))


def _health_rate(
    events: Iterable[DeliveryEvent], attempts: list[DeliveryAttempt]
) -> float | None:
    """Rate a health status is classified from.

    Settled events in the window decide; with none settled yet the attempt
    rate stands in. No attempts at all gives None.
    """
    if not attempts:
        return None
    rate = _event_rate(events)
    return rate if rate is not None else _attempt_rate(attempts)


def _is_timeout(attempt: DeliveryAttempt) -> bool:
    return attempt.status_code is None and (attempt.error or "").startswith("timeout")


def recommendations(
    endpoint: Endpoint,
    attempts: list[DeliveryAttempt],
    pending_events: int = 0,
    slow_response_ms: int = 5000,
) -> list[str]:
    """Remediation hints for an endpoint based on its recent attempts."""
    hints: list[str] = []
    failed = [a for a in attempts if not a.success]

    if not endpoint.active and pending_events:
        hints.append(
            f"Endpoint is inactive with {pending_events} pending event(s); "
            "reactivate it or they will be marked FAILED at their next retry."
        )

    timeouts = sum(1 for a in failed if _is_timeout(a))
    if timeouts:
        hints.append(
            f"{timeouts} attempt(s) timed out after {endpoint.retry_policy.timeout_seconds}s; "
            "acknowledge quickly and process asynchronously, or raise timeout_seconds."
        )

    auth_rejections = sum(1 for a in failed if a.status_code in (401, 403))
    if auth_rejections:
        hints.append(
            f"{auth_rejections} attempt(s) were rejected with 401/403; check that the "
            "receiver verifies X-Webhook-Signature against the raw body with the current secret."
        )

    client_errors = sum(
        1 for a in failed if a.status_code is not None and 400 <= a.status_code < 500
    ) - auth_rejections
    if client_errors:
        hints.append(
            f"{client_errors} attempt(s) got other 4xx responses; check the endpoint URL "
            "and that the receiver accepts JSON POST requests."
        )

    server_errors = sum(1 for a in failed if a.status_code is not None and a.status_code >= 500)
    if server_errors:
        hints.append(
            f"{server_errors} attempt(s) got 5xx responses; the receiving service "
            "or something it depends on is failing."
        )

    connection_errors = sum(1 for a in failed if a.status_code is None and not _is_timeout(a))
    if connection_errors:
        hints.append(
            f"{connection_errors} attempt(s) could not connect; check DNS, TLS "
            "certificates and firewall rules for the endpoint host."
        )

    latency = _average_latency(attempts)
    if latency is not None and latency > slow_response_ms:
        hints.append(
            f"Average response time is {latency:.0f}ms; respond before doing heavy work."
        )

    return hints


class Monitor:
    """Delivery statistics, health and administrative reports.

    Example:
        ```python
        monitor = Monitor(store, settings)
        health = await monitor.health("whk_abc123")
        print(health.status, health.recommendations)
        ```
    """

    def __init__(
        self,
        store: WebhookStore,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._settings = settings or Settings()
        self._clock = clock

    async def _endpoint(self, endpoint_id: str) -> Endpoint:
        endpoint = await self._store.get_endpoint(endpoint_id)
        if endpoint is None:
            raise NotFoundError("endpoint", endpoint_id)
        return endpoint

    def classify(self, success_rate: float | None) -> HealthStatus:
        """Map an attempt success rate to a health status."""
        if success_rate is None:
            return HealthStatus.UNKNOWN
        if success_rate >= self._settings.health_healthy_threshold:
            return HealthStatus.HEALTHY
        if success_rate >= self._settings.health_down_threshold:
            return HealthStatus.DEGRADED
        return HealthStatus.DOWN

    async def endpoint_stats(
        self, endpoint_id: str, window: timedelta | None = None
    ) -> EndpointStats:
        """Totals, success rate and latency for one endpoint.

        Args:
            endpoint_id: Endpoint to summarize.
            window: Trailing window; None covers all history.
        """
        endpoint = await self._endpoint(endpoint_id)
        now = self._clock()
        since = now - window if window is not None else None

        events = await self._store.list_events(endpoint_id=endpoint_id, since=since)
        attempts = await self._store.list_attempts(endpoint_id=endpoint_id, since=since)
        counts = _status_counts(events)
        delivered = counts[EventStatus.DELIVERED]
        failed = counts[EventStatus.FAILED]

        return EndpointStats(
            endpoint_id=endpoint_id,
            window_start=since,
            window_end=now,
            total_events=len(events),
            delivered=delivered,
            failed=failed,
            pending=counts[EventStatus.PENDING],
            success_rate=_ratio(delivered, delivered + failed),
            total_attempts=len(attempts),
            successful_attempts=sum(1 for a in attempts if a.success),
            manual_attempts=sum(1 for a in attempts if a.manual),
            average_latency_ms=_average_latency(attempts),
            events_by_type=dict(Counter(ev.event_type.value for ev in events)),
            retry_schedule=schedule(endpoint.retry_policy),
        )

    async def health(self, endpoint_id: str) -> EndpointHealth:
        """Classify an endpoint from its deliveries in the health window.

        The event success rate decides, so an event delivered after a retry
        counts as a success. While no event in the window has settled the
        attempt success rate is used. No attempts in the window is UNKNOWN,
        never HEALTHY.
        """
        endpoint = await self._endpoint(endpoint_id)
        now = self._clock()
        window_hours = self._settings.health_window_hours
        since = now - timedelta(hours=window_hours)
        events = await self._store.list_events(endpoint_id=endpoint_id, since=since)
        attempts = await self._store.list_attempts(endpoint_id=endpoint_id, since=since)
        pending = await self._store.list_events(
            endpoint_id=endpoint_id, status=EventStatus.PENDING
        )
        successes = [a for a in attempts if a.success]
        failures = [a for a in attempts if not a.success]
        rate = _health_rate(events, attempts)

        return EndpointHealth(
            endpoint_id=endpoint_id,
            status=self.classify(rate),
            success_rate=rate,
            event_success_rate=_event_rate(events),
            attempt_success_rate=_attempt_rate(attempts),
            attempts=len(attempts),
            failed_attempts=len(failures),
            average_latency_ms=_average_latency(attempts),
            window_hours=window_hours,
            last_success_at=max((a.timestamp for a in successes), default=None),
            last_failure_at=max((a.timestamp for a in failures), default=None),
            recommendations=recommendations(
                endpoint,
                attempts,
                pending_events=len(pending),
                slow_response_ms=self._settings.slow_response_ms,
            ),
            checked_at=now,
        )

    async def delivery_history(self, endpoint_id: str, limit: int = 50) -> list[DeliveryRecord]:
        """Recent delivery events with their attempts; payloads redacted."""
        await self._endpoint(endpoint_id)
        events = await self._store.list_events(endpoint_id=endpoint_id, limit=limit)
        attempts = await self._store.list_attempts(endpoint_id=endpoint_id)

        by_event: defaultdict[str, list[DeliveryAttempt]] = defaultdict(list)
        for attempt in attempts:
            if attempt.event_id is not None:
                by_event[attempt.event_id].append(attempt)

        records = []
        for event in events:
            audit_copy = event.model_copy(update={"payload": sanitize(event.payload)})
            records.append(DeliveryRecord(event=audit_copy, attempts=by_event.get(event.id, [])))
        return records

    async def endpoint_logs(self, endpoint_id: str, limit: int = 100) -> list[EndpointLog]:
        await self._endpoint(endpoint_id)
        return await self._store.list_logs(endpoint_id=endpoint_id, limit=limit)

    async def dashboard_summary(self) -> DashboardSummary:
        """System-wide totals and health distribution."""
        now = self._clock()
        window_hours = self._settings.health_window_hours
        endpoints = await self._store.list_endpoints(owner_id=None)
        events = await self._store.list_events()
        since = now - timedelta(hours=window_hours)
        recent = await self._store.list_attempts(since=since)

        attempts_by_endpoint: defaultdict[str, list[DeliveryAttempt]] = defaultdict(list)
        for attempt in recent:
            attempts_by_endpoint[attempt.endpoint_id].append(attempt)
        events_by_endpoint: defaultdict[str, list[DeliveryEvent]] = defaultdict(list)
        for event in events:
            if event.created_at >= since:
                events_by_endpoint[event.endpoint_id].append(event)

        health_counts: Counter[str] = Counter({status.value: 0 for status in HealthStatus})
        for endpoint in endpoints:
            rate = _health_rate(
                events_by_endpoint.get(endpoint.id, []),
                attempts_by_endpoint.get(endpoint.id, []),
            )
            health_counts[self.classify(rate).value] += 1

        counts = _status_counts(events)
        delivered = counts[EventStatus.DELIVERED]
        failed = counts[EventStatus.FAILED]
        return DashboardSummary(
            total_endpoints=len(endpoints),
            active_endpoints=sum(1 for ep in endpoints if ep.active),
            total_events=len(events),
            delivered=delivered,
            failed=failed,
            pending=counts[EventStatus.PENDING],
            success_rate=_ratio(delivered, delivered + failed),
            attempts_in_window=len(recent),
            average_latency_ms=_average_latency(recent),
            endpoints_by_health=dict(health_counts),
            window_hours=window_hours,
            generated_at=now,
        )

    async def performance_report(
        self,
        start: datetime,
        end: datetime,
        endpoint_id: str | None = None,
    ) -> PerformanceReport:
        """Delivery performance for events and attempts in ``[start, end)``.

        Raises:
            ValidationError: If start is not before end.
        """
        start, end = ensure_utc(start), ensure_utc(end)
        if start >= end:
            raise ValidationError("start", "start must be before end")
        if endpoint_id is not None:
            await self._endpoint(endpoint_id)

        events = await self._store.list_events(endpoint_id=endpoint_id, since=start, until=end)
        attempts = await self._store.list_attempts(
            endpoint_id=endpoint_id, since=start, until=end
        )
        counts = _status_counts(events)
        delivered = counts[EventStatus.DELIVERED]
        failed = counts[EventStatus.FAILED]

        status_codes = Counter(
            str(a.status_code) if a.status_code is not None else "no_response" for a in attempts
        )

        by_endpoint: defaultdict[str, list[DeliveryAttempt]] = defaultdict(list)
        for attempt in attempts:
            by_endpoint[attempt.endpoint_id].append(attempt)
        endpoints = []
        for ep_id, ep_attempts in sorted(by_endpoint.items()):
            endpoint = await self._store.get_endpoint(ep_id)
            endpoints.append(
                EndpointPerformance(
                    endpoint_id=ep_id,
                    url=endpoint.url if endpoint else None,
                    total_attempts=len(ep_attempts),
                    success_rate=_ratio(sum(1 for a in ep_attempts if a.success), len(ep_attempts)),
                    average_latency_ms=_average_latency(ep_attempts),
                )
            )

        return PerformanceReport(
            start=start,
            end=end,
            endpoint_id=endpoint_id,
            total_events=len(events),
            delivered=delivered,
            failed=failed,
            pending=counts[EventStatus.PENDING],
            success_rate=_ratio(delivered, delivered + failed),
            total_attempts=len(attempts),
            attempt_success_rate=_ratio(sum(1 for a in attempts if a.success), len(attempts)),
            average_latency_ms=_average_latency(attempts),
            p95_latency_ms=_p95(attempts),
            status_codes=dict(status_codes),
            events_by_type=dict(Counter(ev.event_type.value for ev in events)),
            endpoints=endpoints,
        )

    async def failed_deliveries(self, limit: int = 50) -> list[FailedDelivery]:
        """Most recent FAILED events with their last error."""
        events = await self._store.list_events(status=EventStatus.FAILED, limit=limit)
        urls: dict[str, str | None] = {}
        results = []
        for event in events:
            if event.endpoint_id not in urls:
                endpoint = await self._store.get_endpoint(event.endpoint_id)
                urls[event.endpoint_id] = endpoint.url if endpoint else None
            last = await self._store.list_attempts(event_id=event.id, limit=1)
            results.append(
                FailedDelivery(
                    event_id=event.id,
                    endpoint_id=event.endpoint_id,
                    endpoint_url=urls[event.endpoint_id],
                    event_type=event.event_type.value,
                    attempts=event.attempts,
                    last_attempt_at=event.last_attempt_at,
                    last_status_code=last[0].status_code if last else None,
                    last_error=last[0].error if last else None,
                )
            )
        return results

    async def export(
        self,
        fmt: ExportFormat | str,
        start: datetime,
        end: datetime,
        endpoint_id: str | None = None,
    ) -> str:
        """Attempt history in ``[start, end)`` as JSON or CSV text.

        Raises:
            ValidationError: Unknown format, or start not before end.
        """
        try:
            fmt = ExportFormat(fmt.lower())
        except ValueError as e:
            raise ValidationError("format", "format must be json or csv") from e
        start, end = ensure_utc(start), ensure_utc(end)
        if start >= end:
            raise ValidationError("start", "start must be before end")

        attempts = await self._store.list_attempts(
            endpoint_id=endpoint_id, since=start, until=end
        )
        event_types: dict[str, str] = {}
        for event_id in {a.event_id for a in attempts if a.event_id}:
            event = await self._store.get_event(event_id)
            if event is not None:
                event_types[event_id] = event.event_type.value

        rows = attempt_rows(attempts, event_types)
        logger.info("Exporting %d attempts as %s", len(rows), fmt.value)
        if fmt is ExportFormat.CSV:
            return rows_to_csv(rows)
        return rows_to_json(rows, start, end, endpoint_id)


__all__ = ["Monitor", "recommendations"]
