"""Tests for domain event types and the event bus."""

import asyncio

import pytest

from hookwire.events import (
    ALL_EVENT_TYPES,
    EventBus,
    EventType,
    PaymentPayload,
    parse_domain_event,
    parse_event_type,
    payload_to_json,
)
from hookwire.exceptions import ValidationError


class TestEventTypes:
    """Tests for event type parsing and payload validation."""

    def test_closed_set(self):
        assert len(ALL_EVENT_TYPES) == 10
        assert EventType("bill.overdue") is EventType.BILL_OVERDUE

    def test_parse_event_type_unknown(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_event_type("payment.refunded")
        assert exc_info.value.field == "event_type"

    def test_parse_domain_event(self):
        event = parse_domain_event("payment.success", {"id": "pay_1", "amount": 10.5})
        assert event.event_type is EventType.PAYMENT_SUCCESS
        assert isinstance(event.data, PaymentPayload)
        assert event.data.amount == 10.5

    def test_payload_missing_required_field(self):
        """The error names the payload field, not the union branch."""
        with pytest.raises(ValidationError) as exc_info:
            parse_domain_event("payment.success", {"amount": 10})
        assert exc_info.value.field == "id"

    def test_payload_wrong_type(self):
        with pytest.raises(ValidationError):
            parse_domain_event("document.uploaded", {"id": "doc_1", "size_bytes": -1})

    def test_accepts_payload_model(self):
        event = parse_domain_event(EventType.PAYMENT_FAILED, PaymentPayload(id="p", amount=1))
        assert event.event_type is EventType.PAYMENT_FAILED

    def test_extra_fields_are_kept(self):
        event = parse_domain_event("user.created", {"id": "u1", "plan": "pro"})
        assert payload_to_json(event) == {"id": "u1", "plan": "pro"}

    def test_payload_to_json_drops_unset_optionals(self):
        event = parse_domain_event("bill.created", {"id": "bill_1", "amount": 50})
        assert payload_to_json(event) == {"id": "bill_1", "amount": 50}

    def test_payload_to_json_keeps_producer_values(self):
        payload = {"id": "b1", "amount": None, "note": None, "due_date": "2026-02-01"}
        event = parse_domain_event("bill.updated", payload)

        assert payload_to_json(event) == payload
        assert event.data.due_date.year == 2026

    def test_payload_model_keeps_explicit_nulls(self):
        event = parse_domain_event(
            EventType.PAYMENT_FAILED, PaymentPayload(id="p", amount=1, reason=None)
        )
        assert payload_to_json(event) == {"id": "p", "amount": 1, "reason": None}


class TestEventBus:
    """Tests for EventBus."""

    async def test_publish_runs_every_handler(self):
        bus = EventBus()
        seen = []

        async def first(event):
            seen.append(("first", event.data.id))
            return 1

        async def second(event):
            seen.append(("second", event.data.id))
            return 2

        bus.subscribe(first)
        bus.subscribe(second)

        results = await bus.publish("payment.success", {"id": "pay_1", "amount": 1})

        assert sorted(seen) == [("first", "pay_1"), ("second", "pay_1")]
        assert [r.value for r in results] == [1, 2]
        assert all(r.ok for r in results)

    async def test_handler_failure_is_isolated(self):
        """A raising handler neither reaches the publisher nor stops others."""
        bus = EventBus()
        calls = []

        async def broken(event):
            raise RuntimeError("boom")

        async def healthy(event):
            calls.append(event.event_type)

        bus.subscribe(broken)
        bus.subscribe(healthy)

        results = await bus.publish("bill.paid", {"id": "bill_1"})

        assert calls == [EventType.BILL_PAID]
        assert results[0].ok is False
        assert results[0].error == "boom"
        assert results[1].ok is True

    async def test_publish_without_handlers(self):
        assert await EventBus().publish("user.created", {"id": "u1"}) == []

    async def test_invalid_payload_raises_before_dispatch(self):
        bus = EventBus()
        calls = []

        async def handler(event):
            calls.append(event)

        bus.subscribe(handler)
        with pytest.raises(ValidationError):
            await bus.publish("payment.success", {"amount": 1})
        assert calls == []

    def test_subscribe_after_seal(self):
        bus = EventBus()
        bus.seal()

        async def handler(event):
            return None

        with pytest.raises(RuntimeError, match="sealed"):
            bus.subscribe(handler)
        assert bus.sealed
        assert bus.handlers == ()

    async def test_emit_is_fire_and_forget(self):
        bus = EventBus()
        started = asyncio.Event()
        release = asyncio.Event()

        async def slow(event):
            started.set()
            await release.wait()
            return "done"

        bus.subscribe(slow)
        task = bus.emit("report.generated", {"id": "rep_1"})

        await started.wait()
        assert not task.done()
        release.set()
        await bus.drain()
        assert task.result()[0].value == "done"

    async def test_emit_validates_synchronously(self):
        with pytest.raises(ValidationError):
            EventBus().emit("nope.event", {"id": "x"})

    def test_emit_requires_running_loop(self):
        with pytest.raises(RuntimeError):
            EventBus().emit("user.created", {"id": "u1"})
