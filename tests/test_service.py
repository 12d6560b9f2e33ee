"""Tests for HookwireService wiring and lifecycle."""

import pytest
from conftest import payment

from hookwire.events import EventBus
from hookwire.exceptions import ValidationError
from hookwire.models import EventStatus
from hookwire.service import HookwireService
from hookwire.storage import InMemoryWebhookStore


@pytest.fixture
def service(settings, store, http_client, clock):
    return HookwireService.create(settings, store=store, http_client=http_client, clock=clock)


async def subscribe(service, events=("payment.success",)):
    return await service.registry.register(
        owner_id="user_1", url="https://example.com/hooks", events=list(events)
    )


class TestCreate:
    """Tests for HookwireService.create()."""

    def test_engine_subscribed_and_bus_sealed(self, service):
        assert service.bus.sealed
        assert service.bus.handlers == (service.engine.handle_domain_event,)

    def test_components_share_store(self, service, store):
        assert service.store is store
        assert service.scheduler._engine is service.engine

    def test_store_built_from_settings(self, settings):
        service = HookwireService.create(settings)
        assert isinstance(service.store, InMemoryWebhookStore)

    async def test_extra_handlers_on_supplied_bus(self, settings, store, http_client, clock):
        seen = []

        async def audit(event):
            seen.append(event.event_type.value)

        bus = EventBus()
        bus.subscribe(audit)
        service = HookwireService.create(
            settings, store=store, bus=bus, http_client=http_client, clock=clock
        )

        results = await service.publish("payment.success", payment())

        assert seen == ["payment.success"]
        assert [r.ok for r in results] == [True, True]


class TestPublishing:
    """Tests for publish() and emit()."""

    async def test_publish_delivers(self, service, receiver):
        await subscribe(service)

        [result] = await service.publish("payment.success", payment())

        assert result.ok
        [event_id] = result.value
        event = await service.store.get_event(event_id)
        assert event.status is EventStatus.DELIVERED
        assert len(receiver.requests) == 1

    async def test_publish_rejects_invalid_payload(self, service, receiver):
        await subscribe(service)
        with pytest.raises(ValidationError):
            await service.publish("payment.success", {"id": "pay_1"})
        assert receiver.requests == []

    async def test_emit_then_drain(self, service, receiver):
        await subscribe(service)

        service.emit("payment.success", payment())
        await service.bus.drain()

        assert len(receiver.requests) == 1
        events = await service.store.list_events()
        assert [e.status for e in events] == [EventStatus.DELIVERED]

    async def test_emit_validates_synchronously(self, service):
        with pytest.raises(ValidationError):
            service.emit("invoice.sent", {})


class TestLifecycle:
    """Tests for initialize(), close() and the async context manager."""

    async def test_scheduler_follows_settings(self, service):
        await service.initialize()
        assert not service.scheduler.running
        await service.close()

    async def test_scheduler_override(self, service):
        await service.initialize(start_scheduler=True)
        assert service.scheduler.running
        await service.close()
        assert not service.scheduler.running

    async def test_context_manager(self, settings, store, http_client, clock):
        async with HookwireService.create(
            settings, store=store, http_client=http_client, clock=clock
        ) as service:
            await subscribe(service)
            service.emit("payment.success", payment())

        # close() drains in-flight emissions before returning
        assert len(await store.list_events()) == 1
