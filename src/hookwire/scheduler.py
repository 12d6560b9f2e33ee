"""Periodic driver for due retries.

The delivery engine only re-attempts events when asked; this loop asks
every ``interval_seconds``. A full batch means more work is probably
waiting, so the next sweep starts immediately.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from hookwire.delivery import DeliveryEngine

logger = logging.getLogger(__name__)


class RetryScheduler:
    """Background asyncio task calling ``engine.deliver_due_retries``.

    Example:
        ```python
        scheduler = RetryScheduler(engine, interval_seconds=15)
        scheduler.start()
        ...
        await scheduler.stop()
        ```
    """

    def __init__(
        self,
        engine: DeliveryEngine,
        interval_seconds: float = 15.0,
        batch_size: int = 100,
    ) -> None:
        self._engine = engine
        self._interval = interval_seconds
        self._batch_size = batch_size
        self._task: asyncio.Task[None] | None = None
        self.sweeps = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> int:
        """Process one batch of due retries. Returns events processed."""
        processed = await self._engine.deliver_due_retries(limit=self._batch_size)
        self.sweeps += 1
        if processed:
            logger.info("Retry sweep processed %d events", processed)
        return processed

    async def _loop(self) -> None:
        while True:
            try:
                processed = await self.run_once()
            except Exception:
                # The loop outlives a failed sweep; the next one retries the same events
                logger.exception("Retry sweep failed")
                processed = 0
            if processed < self._batch_size:
                await asyncio.sleep(self._interval)

    def start(self) -> None:
        """Start the loop on the running event loop. Idempotent."""
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(
            self._loop(), name="hookwire-retry-scheduler"
        )
        logger.info("Retry scheduler started (interval %.1fs)", self._interval)

    async def stop(self) -> None:
        """Cancel the loop and wait for it to finish."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logger.info("Retry scheduler stopped")


__all__ = ["RetryScheduler"]
