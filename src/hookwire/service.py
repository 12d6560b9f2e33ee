"""Composition root for the webhook subsystem.

Builds the store, bus, registry, delivery engine, monitor and retry
scheduler from one ``Settings`` object and wires the engine onto the bus.

Example:
    ```python
    from hookwire.service import HookwireService

    async with HookwireService.create() as hooks:
        registration = await hooks.registry.register(
            owner_id="user_123",
            url="https://example.com/hooks",
            events=["payment.success"],
        )
        hooks.emit("payment.success", {"id": "pay_1", "amount": 100})
    ```
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import httpx

from hookwire.config import Settings
from hookwire.delivery import DeliveryEngine
from hookwire.events import EventBus, EventType, HandlerResult
from hookwire.models import utc_now
from hookwire.monitor import Monitor
from hookwire.registry import WebhookRegistry
from hookwire.scheduler import RetryScheduler
from hookwire.storage import WebhookStore, create_store

logger = logging.getLogger(__name__)


@dataclass
class HookwireService:
    """Owns every webhook component and their lifecycle.

    The delivery engine is subscribed to the bus on construction and the
    bus is then sealed. Subscribe any additional handlers to a bus before
    passing it in.

    Attributes:
        store: Persistence backend.
        settings: Configuration.
        bus: Domain event bus.
        registry: Endpoint CRUD.
        engine: Delivery engine.
        monitor: Analytics.
        scheduler: Retry driver.
    """

    store: WebhookStore
    settings: Settings
    bus: EventBus
    registry: WebhookRegistry
    engine: DeliveryEngine
    monitor: Monitor
    scheduler: RetryScheduler
    _started: bool = field(default=False, init=False, repr=False)

    def __post_init__(self) -> None:
        if not self.bus.sealed:
            self.bus.subscribe(self.engine.handle_domain_event)
            self.bus.seal()

    @classmethod
    def create(
        cls,
        settings: Settings | None = None,
        store: WebhookStore | None = None,
        bus: EventBus | None = None,
        http_client: httpx.AsyncClient | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> HookwireService:
        """Create a service with default dependencies.

        Args:
            settings: Optional settings. Uses defaults if None.
            store: Storage backend. Built from settings if None.
            bus: Event bus, possibly with extra handlers already subscribed.
            http_client: Outbound HTTP client for the engine.
            clock: Source of "now" shared by all components.
        """
        if settings is None:
            settings = Settings()
        if store is None:
            store = create_store(settings)

        engine = DeliveryEngine(store, settings, http_client=http_client, clock=clock)
        return cls(
            store=store,
            settings=settings,
            bus=bus or EventBus(),
            registry=WebhookRegistry(store, settings, clock=clock),
            engine=engine,
            monitor=Monitor(store, settings, clock=clock),
            scheduler=RetryScheduler(
                engine,
                interval_seconds=settings.scheduler_interval_seconds,
                batch_size=settings.scheduler_batch_size,
            ),
        )

    async def initialize(self, start_scheduler: bool | None = None) -> None:
        """Prepare storage and, if enabled, start the retry scheduler."""
        await self.store.initialize()
        if start_scheduler is None:
            start_scheduler = self.settings.scheduler_enabled
        if start_scheduler:
            self.scheduler.start()
        self._started = True
        logger.info(
            "Hookwire service initialized (storage=%s, scheduler=%s)",
            self.settings.storage_backend,
            "on" if start_scheduler else "off",
        )

    async def close(self) -> None:
        """Stop the scheduler, finish in-flight emissions and release resources."""
        await self.scheduler.stop()
        await self.bus.drain()
        await self.engine.close()
        await self.store.close()
        self._started = False

    async def __aenter__(self) -> HookwireService:
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    def emit(self, event_type: EventType | str, payload: Any) -> None:
        """Fire-and-forget publication of a domain event."""
        self.bus.emit(event_type, payload)

    async def publish(self, event_type: EventType | str, payload: Any) -> list[HandlerResult]:
        """Publish a domain event and wait for delivery handlers to finish."""
        return await self.bus.publish(event_type, payload)


__all__ = ["HookwireService"]
