"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import random
import sys
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import httpx
import pytest

from hookwire.config import Settings
from hookwire.delivery import DeliveryEngine
from hookwire.monitor import Monitor
from hookwire.registry import WebhookRegistry
from hookwire.storage import InMemoryWebhookStore

# Add tests directory to path so helpers here can be imported by test modules
tests_dir = Path(__file__).parent
if str(tests_dir) not in sys.path:
    sys.path.insert(0, str(tests_dir))

START = datetime(2026, 1, 15, 12, 0, tzinfo=UTC)


class FakeClock:
    """Manually advanced clock, injected wherever components ask for "now"."""

    def __init__(self, start: datetime = START) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        """Move forward by a timedelta given as keyword arguments."""
        self.now += timedelta(**kwargs)
        return self.now


class Receiver:
    """Scripted webhook receiver for httpx.MockTransport.

    Each request consumes the next scripted response; the last one repeats.
    A response is an HTTP status code, or an httpx exception class which
    is raised as if the network failed.
    """

    def __init__(self, *responses: int | type[httpx.HTTPError]) -> None:
        self.responses: list[Any] = list(responses) or [200]
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        item = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(item, type) and issubclass(item, httpx.HTTPError):
            raise item("simulated failure", request=request)
        body = "ok" if 200 <= item < 300 else f"error {item}"
        return httpx.Response(item, text=body)


def payment(**overrides: Any) -> dict[str, Any]:
    """A valid payment.success payload."""
    return {"id": "pay_1", "amount": 100, "currency": "USD", **overrides}


@pytest.fixture
def settings() -> Settings:
    """Test settings: no scheduler, no jitter, plain-text logs."""
    return Settings(
        env="test",
        scheduler_enabled=False,
        retry_jitter_ratio=0.0,
        log_format="text",
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> InMemoryWebhookStore:
    return InMemoryWebhookStore()


@pytest.fixture
def receiver() -> Receiver:
    return Receiver(200)


@pytest.fixture
async def http_client(receiver: Receiver):
    """httpx client whose requests are answered by the receiver fixture."""
    client = httpx.AsyncClient(transport=httpx.MockTransport(receiver))
    yield client
    await client.aclose()


@pytest.fixture
def registry(store: InMemoryWebhookStore, settings: Settings, clock: FakeClock) -> WebhookRegistry:
    return WebhookRegistry(store, settings, clock=clock)


@pytest.fixture
def engine(
    store: InMemoryWebhookStore,
    settings: Settings,
    clock: FakeClock,
    http_client: httpx.AsyncClient,
) -> DeliveryEngine:
    return DeliveryEngine(
        store, settings, http_client=http_client, clock=clock, rng=random.Random(0)
    )


@pytest.fixture
def monitor(store: InMemoryWebhookStore, settings: Settings, clock: FakeClock) -> Monitor:
    return Monitor(store, settings, clock=clock)
