"""Cancellable scheduled callbacks for the session controller.

Both timer kinds run their callback in a background asyncio task and
check a cancellation flag before every firing, so once ``cancel()``
has been called no further callback starts. ``cancel()`` also awaits
the task, so teardown does not complete while a firing is in flight.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

TimerCallback = Callable[[], Awaitable[None]]


class _ScheduledTask:
    def __init__(self, name: str) -> None:
        self._name = name
        self._task: asyncio.Task[None] | None = None
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self._task is not None:
            raise RuntimeError(f"{self._name} already started")
        self._task = asyncio.create_task(self._run(), name=self._name)

    async def cancel(self) -> None:
        """Stop the timer and wait for it to wind down. Idempotent."""
        self._cancelled = True
        task = self._task
        if task is None or task.done():
            return
        if task is asyncio.current_task():
            # Cancelled from inside its own callback; the flag is enough.
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _fire(self, callback: TimerCallback) -> None:
        try:
            await callback()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("%s callback failed", self._name)

    async def _run(self) -> None:
        raise NotImplementedError


class PeriodicTimer(_ScheduledTask):
    """Invoke ``callback`` every ``interval`` seconds until cancelled."""

    def __init__(
        self,
        interval: float,
        callback: TimerCallback,
        name: str = "periodic-timer",
    ) -> None:
        super().__init__(name)
        self.interval = interval
        self._callback = callback
        self.fire_count = 0

    async def _run(self) -> None:
        while not self._cancelled:
            await asyncio.sleep(self.interval)
            if self._cancelled:
                return
            self.fire_count += 1
            await self._fire(self._callback)


class DelayedCall(_ScheduledTask):
    """Invoke ``callback`` once after ``delay`` seconds unless cancelled."""

    def __init__(
        self,
        delay: float,
        callback: TimerCallback,
        name: str = "delayed-call",
    ) -> None:
        super().__init__(name)
        self.delay = delay
        self._callback = callback
        self.fired = False

    async def _run(self) -> None:
        await asyncio.sleep(self.delay)
        if self._cancelled:
            return
        self.fired = True
        await self._fire(self._callback)
