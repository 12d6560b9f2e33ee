"""In-process publish/subscribe bus for domain events.

The bus is an ordinary object owned by the composition root
(``HookwireService``) and passed to whatever needs it; tests build their
own instance. Handlers are registered at startup, after which the bus is
sealed and the handler list is only ever read.

Handler failures never reach the publishing business code: each handler
runs to completion or failure and produces a ``HandlerResult``, which the
bus logs.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from .types import DomainEvent, EventType, parse_domain_event

logger = logging.getLogger(__name__)

EventHandler = Callable[[DomainEvent], Awaitable[Any]]


@dataclass(frozen=True)
class HandlerResult:
    """Outcome of one handler processing one domain event.

    Attributes:
        handler: Handler name (qualified function name).
        ok: Whether the handler completed without raising.
        value: What the handler returned, when ok.
        error: Exception text, when not ok.
    """

    handler: str
    ok: bool
    value: Any = None
    error: str | None = None


def _handler_name(handler: EventHandler) -> str:
    return getattr(handler, "__qualname__", None) or repr(handler)


class EventBus:
    """Typed domain event bus.

    Example:
        ```python
        bus = EventBus()
        bus.subscribe(engine.handle_domain_event)
        bus.seal()

        # fire-and-forget from business code
        bus.emit("payment.success", {"id": "pay_1", "amount": 100})

        # or await the handler results
        results = await bus.publish("payment.success", {"id": "pay_1", "amount": 100})
        ```
    """

    def __init__(self) -> None:
        self._handlers: list[EventHandler] = []
        self._sealed = False
        self._pending: set[asyncio.Task[list[HandlerResult]]] = set()

    @property
    def handlers(self) -> tuple[EventHandler, ...]:
        """Registered handlers, in registration order."""
        return tuple(self._handlers)

    @property
    def sealed(self) -> bool:
        return self._sealed

    def subscribe(self, handler: EventHandler) -> None:
        """Register a handler for every domain event.

        Raises:
            RuntimeError: If the bus has already been sealed.
        """
        if self._sealed:
            raise RuntimeError("EventBus is sealed; subscribe handlers during startup")
        self._handlers.append(handler)
        logger.debug("Subscribed handler %s", _handler_name(handler))

    def seal(self) -> None:
        """Freeze the handler list."""
        self._sealed = True

    async def publish(self, event_type: EventType | str, payload: Any) -> list[HandlerResult]:
        """Validate a domain event and run every handler on it.

        Args:
            event_type: One of the known event types.
            payload: Payload mapping or payload model for that type.

        Returns:
            One HandlerResult per handler.

        Raises:
            ValidationError: If the event type or payload is invalid.
        """
        event = parse_domain_event(event_type, payload)
        return await self.dispatch(event)

    async def dispatch(self, event: DomainEvent) -> list[HandlerResult]:
        """Run every handler on an already validated event, concurrently."""
        if not self._handlers:
            logger.debug("No handlers for %s", event.event_type.value)
            return []

        outcomes = await asyncio.gather(
            *(handler(event) for handler in self._handlers),
            return_exceptions=True,
        )

        results: list[HandlerResult] = []
        for handler, outcome in zip(self._handlers, outcomes, strict=True):
            name = _handler_name(handler)
            if isinstance(outcome, BaseException):
                if isinstance(outcome, asyncio.CancelledError):
                    raise outcome
                logger.error(
                    "Handler %s failed on %s: %s",
                    name,
                    event.event_type.value,
                    outcome,
                    exc_info=outcome,
                )
                results.append(HandlerResult(handler=name, ok=False, error=str(outcome)))
            else:
                results.append(HandlerResult(handler=name, ok=True, value=outcome))
        return results

    def emit(self, event_type: EventType | str, payload: Any) -> asyncio.Task[list[HandlerResult]]:
        """Publish without waiting for handlers.

        The payload is validated synchronously, so a malformed event still
        raises at the call site; delivery work happens in a background task.
        Must be called from within a running event loop.

        Returns:
            The background task (callers normally ignore it).

        Raises:
            ValidationError: If the event type or payload is invalid.
        """
        event = parse_domain_event(event_type, payload)
        task = asyncio.get_running_loop().create_task(
            self.dispatch(event),
            name=f"hookwire-emit-{event.event_type.value}",
        )
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def drain(self) -> None:
        """Wait for all in-flight emissions to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)


__all__ = ["EventBus", "EventHandler", "HandlerResult"]
