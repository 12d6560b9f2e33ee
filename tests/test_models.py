"""Tests for Hookwire data models."""

from datetime import UTC, datetime, timedelta

import pytest
from pydantic import ValidationError as PydanticValidationError

from hookwire.config import RetryDefaults
from hookwire.events import EventType
from hookwire.models import (
    DeliveryAttempt,
    DeliveryEvent,
    DeliveryOutcome,
    Endpoint,
    EndpointLog,
    EndpointUpdate,
    EventStatus,
    LogAction,
    RetryPolicy,
    ensure_utc,
    generate_id,
    reserved_header_names,
    validate_https_url,
)
from hookwire.retry import RetryStrategy

NOW = datetime(2026, 1, 15, 12, 0, tzinfo=UTC)


class TestHelpers:
    """Tests for ID and time helpers."""

    def test_generate_id_prefix(self):
        value = generate_id("whk")
        assert value.startswith("whk_")
        assert len(value) == len("whk_") + 12

    def test_generate_id_unique(self):
        assert len({generate_id("evt") for _ in range(100)}) == 100

    def test_ensure_utc_naive(self):
        assert ensure_utc(datetime(2026, 1, 1)).tzinfo is UTC

    def test_ensure_utc_converts(self):
        from datetime import timezone

        plus_two = datetime(2026, 1, 1, 14, 0, tzinfo=timezone(timedelta(hours=2)))
        assert ensure_utc(plus_two) == datetime(2026, 1, 1, 12, 0, tzinfo=UTC)


class TestUrlAndHeaders:
    """Tests for URL and header validation helpers."""

    def test_https_accepted(self):
        assert validate_https_url(" https://example.com/hook ") == "https://example.com/hook"

    @pytest.mark.parametrize(
        "url", ["http://example.com/hook", "ftp://example.com", "example.com", "https://"]
    )
    def test_rejected(self, url):
        with pytest.raises(ValueError):
            validate_https_url(url)

    def test_reserved_header_names(self):
        headers = {"X-Tenant": "a", "Content-Type": "text/plain", "X-Webhook-Event": "x"}
        assert sorted(reserved_header_names(headers)) == ["Content-Type", "X-Webhook-Event"]


class TestRetryPolicy:
    """Tests for RetryPolicy."""

    def test_defaults(self):
        policy = RetryPolicy()
        assert policy.strategy is RetryStrategy.EXPONENTIAL
        assert policy.max_retries == 5
        assert policy.base_delay_seconds == 60
        assert policy.timeout_seconds == 30

    @pytest.mark.parametrize(
        "field,value",
        [
            ("max_retries", 0),
            ("max_retries", 21),
            ("base_delay_seconds", 0),
            ("base_delay_seconds", 86401),
            ("timeout_seconds", 0),
            ("timeout_seconds", 121),
        ],
    )
    def test_bounds(self, field, value):
        with pytest.raises(PydanticValidationError):
            RetryPolicy(**{field: value})

    def test_from_defaults(self):
        defaults = RetryDefaults(strategy="LINEAR", max_retries=3)
        policy = RetryPolicy.from_defaults(defaults)
        assert policy.strategy is RetryStrategy.LINEAR
        assert policy.max_retries == 3


class TestEndpoint:
    """Tests for Endpoint."""

    def test_create(self):
        endpoint = Endpoint(
            owner_id="user_1",
            url="https://example.com/hook",
            events=["payment.success"],
        )
        assert endpoint.id.startswith("whk_")
        assert endpoint.active
        assert endpoint.events == [EventType.PAYMENT_SUCCESS]
        assert not endpoint.is_deleted

    def test_http_rejected(self):
        with pytest.raises(PydanticValidationError):
            Endpoint(owner_id="u", url="http://example.com", events=["bill.paid"])

    def test_events_required(self):
        with pytest.raises(PydanticValidationError):
            Endpoint(owner_id="u", url="https://example.com", events=[])

    def test_events_deduplicated(self):
        endpoint = Endpoint(
            owner_id="u",
            url="https://example.com",
            events=["bill.paid", "bill.paid", "bill.created"],
        )
        assert endpoint.events == [EventType.BILL_PAID, EventType.BILL_CREATED]

    def test_reserved_headers_rejected(self):
        with pytest.raises(PydanticValidationError):
            Endpoint(
                owner_id="u",
                url="https://example.com",
                events=["bill.paid"],
                headers={"x-webhook-signature": "forged"},
            )

    def test_subscribes_to(self):
        endpoint = Endpoint(owner_id="u", url="https://example.com", events=["bill.paid"])
        assert endpoint.subscribes_to(EventType.BILL_PAID)
        assert not endpoint.subscribes_to(EventType.BILL_CREATED)

        endpoint.active = False
        assert not endpoint.subscribes_to(EventType.BILL_PAID)

    def test_tombstoned_does_not_subscribe(self):
        endpoint = Endpoint(
            owner_id="u", url="https://example.com", events=["bill.paid"], deleted_at=NOW
        )
        assert endpoint.is_deleted
        assert not endpoint.subscribes_to(EventType.BILL_PAID)

    def test_no_secret_field(self):
        with pytest.raises(PydanticValidationError):
            Endpoint(owner_id="u", url="https://example.com", events=["bill.paid"], secret="x")

    def test_update_changes_only_set_fields(self):
        patch = EndpointUpdate(active=False, description=None)
        assert patch.changes() == {"active": False, "description": None}


class TestDeliveryEvent:
    """Tests for DeliveryEvent transitions."""

    def make_event(self) -> DeliveryEvent:
        return DeliveryEvent(
            endpoint_id="whk_1",
            event_type=EventType.PAYMENT_SUCCESS,
            payload={"id": "pay_1"},
            created_at=NOW,
            updated_at=NOW,
        )

    def test_defaults(self):
        event = self.make_event()
        assert event.id.startswith("evt_")
        assert event.status is EventStatus.PENDING
        assert event.attempts == 0
        assert not event.is_terminal

    def test_mark_retrying_keeps_pending(self):
        event = self.make_event()
        event.mark_retrying(NOW, NOW + timedelta(seconds=60))
        assert event.status is EventStatus.PENDING
        assert not event.is_due(NOW)
        assert event.is_due(NOW + timedelta(seconds=60))

    def test_mark_delivered_clears_retry(self):
        event = self.make_event()
        event.mark_retrying(NOW, NOW + timedelta(seconds=60))
        event.mark_delivered(NOW + timedelta(seconds=61))
        assert event.status is EventStatus.DELIVERED
        assert event.next_retry_at is None
        assert event.is_terminal
        assert not event.is_due(NOW + timedelta(days=1))

    def test_mark_failed(self):
        event = self.make_event()
        event.mark_failed(NOW)
        assert event.status is EventStatus.FAILED
        assert event.last_attempt_at == NOW


class TestAttemptAndLog:
    """Tests for DeliveryAttempt and EndpointLog."""

    def test_attempt_from_outcome(self):
        outcome = DeliveryOutcome(success=False, status_code=503, latency_ms=12, error="HTTP 503")
        attempt = DeliveryAttempt.from_outcome(
            outcome, endpoint_id="whk_1", event_id="evt_1", timestamp=NOW, manual=True
        )
        assert attempt.id.startswith("att_")
        assert attempt.status_code == 503
        assert attempt.manual
        assert not attempt.success

    def test_attempt_is_immutable(self):
        attempt = DeliveryAttempt(endpoint_id="whk_1", success=True)
        with pytest.raises(PydanticValidationError):
            attempt.success = False

    def test_log_defaults(self):
        entry = EndpointLog(endpoint_id="whk_1", action=LogAction.CREATED)
        assert entry.id.startswith("log_")
        assert entry.outcome.value == "SUCCESS"
