"""Async event bus serializing everything that mutates session state.

The transport receive loop, the mock driver, the health probe and the
reconnect timer all run as independent tasks. None of them touches the
timeline or agent status directly: they put decoded events and session
signals on the bus, and the controller's single consumer applies them
one at a time in arrival order.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Union

from window.adapters.events import ServerEvent
from window.shared.models.message import Message

logger = logging.getLogger(__name__)


# ── Session signals (never on the wire) ───────────────────────────


@dataclass
class TransportClosed:
    """The realtime channel dropped without the user asking for it."""
    reason: str = ""


@dataclass
class HistoryLoaded:
    """A page of history that replaces the whole timeline."""
    messages: list[Message] = field(default_factory=list)


@dataclass
class ProbeCompleted:
    """Result of one health probe."""
    reachable: bool


@dataclass
class ReconnectCompleted:
    """Outcome of the single delayed reconnect attempt."""
    success: bool
    error: str | None = None


SessionSignal = Union[TransportClosed, HistoryLoaded, ProbeCompleted, ReconnectCompleted]
BusItem = Union[ServerEvent, SessionSignal]

_CLOSE = object()


class EventBus:
    """Async queue bridging producers to the controller's consumer loop."""

    def __init__(self, maxsize: int = 1000) -> None:
        self._queue: asyncio.Queue[object] = asyncio.Queue(maxsize=maxsize)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def qsize(self) -> int:
        return self._queue.qsize()

    async def put(self, item: BusItem) -> None:
        """Queue an event or signal. Dropped once the bus is closed."""
        if self._closed:
            logger.debug("EventBus closed, dropping %s", type(item).__name__)
            return
        try:
            # Backpressure instead of dropping when the consumer lags
            await asyncio.wait_for(self._queue.put(item), timeout=30.0)
        except asyncio.TimeoutError:
            logger.error(
                "EventBus queue blocked for 30s, dropping: %s (queue size: %d)",
                type(item).__name__,
                self._queue.qsize(),
            )

    async def consume(self) -> AsyncIterator[BusItem]:
        """Yield items as they arrive. Stops on close().

        An item counts as processed once the consumer asks for the next
        one, which is what join() waits for.
        """
        while not self._closed:
            item = await self._queue.get()
            if item is _CLOSE:
                return
            try:
                yield item  # type: ignore[misc]
            finally:
                self._queue.task_done()

    async def join(self) -> None:
        """Wait until every queued item has been processed."""
        await self._queue.join()

    def close(self) -> None:
        """Stop the consumer loop permanently, discarding queued items."""
        if self._closed:
            return
        self._closed = True
        dropped = 0
        while True:
            try:
                self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            self._queue.task_done()
            dropped += 1
        if dropped:
            logger.debug("EventBus closed, discarding %d queued items", dropped)
        # Wakes a consumer blocked in get(); not counted as pending work
        self._queue.put_nowait(_CLOSE)
        self._queue.task_done()
