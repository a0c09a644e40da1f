"""Tests for the scripted mock agent."""
from __future__ import annotations

import asyncio

import pytest

from window.adapters.event_bus import EventBus, HistoryLoaded
from window.adapters.events import (
    ConnectedEvent,
    MessageCompleteEvent,
    MessageStreamEvent,
    StatusUpdateEvent,
    TaskCompletedEvent,
    TaskCreatedEvent,
    TaskUpdatedEvent,
)
from window.adapters.events import event_to_dict
from window.adapters.mock_driver import (
    CANNED_RESPONSES,
    MARKDOWN_CODE_DEMO,
    MARKDOWN_FULL_DEMO,
    MockDriver,
    canned_history,
    generate_response,
    should_show_progress,
)
from window.engine.config import MockTimings


class Recorder:
    def __init__(self, bus: EventBus) -> None:
        self.bus = bus
        self.items: list = []
        self._task = asyncio.create_task(self._run())

    async def _run(self) -> None:
        async for item in self.bus.consume():
            self.items.append(item)

    async def stop(self) -> list:
        await self.bus.join()
        self.bus.close()
        await self._task
        return self.items


@pytest.mark.asyncio
async def test_connect_script_emits_connected_then_history():
    bus = EventBus()
    recorder = Recorder(bus)
    driver = MockDriver(bus, MockTimings.instant())

    await driver.connect()
    items = await recorder.stop()

    assert len(items) == 2
    connected, history = items
    assert connected == ConnectedEvent(
        agent="mock-agent", status="idle", context_remaining=0.85, tokens_used=3200,
    )
    assert isinstance(history, HistoryLoaded)
    assert [m.id for m in history.messages] == ["msg_hist_001", "msg_hist_002", "msg_hist_003"]


@pytest.mark.asyncio
async def test_complex_request_runs_full_task_script():
    bus = EventBus()
    recorder = Recorder(bus)
    driver = MockDriver(bus, MockTimings.instant())
    content = "please analyze the deployment logs for errors"

    await driver.send("msg_abc12345", content)
    items = await recorder.stop()

    kinds = [type(item) for item in items]
    assert kinds[0] is StatusUpdateEvent
    assert kinds[1] is TaskCreatedEvent
    assert kinds[2] is TaskUpdatedEvent
    assert kinds[-4:] == [
        TaskUpdatedEvent, MessageCompleteEvent, TaskCompletedEvent, StatusUpdateEvent,
    ]

    created = items[1]
    assert created.title == f"Processing: {content[:30]}"
    assert created.should_display
    assert [s.name for s in created.steps] == [
        "Understanding request", "Generating response", "Finalizing",
    ]

    updates = [i for i in items if isinstance(i, TaskUpdatedEvent)]
    assert [u.progress for u in updates] == [0.33, 0.66]
    assert all(u.task_id == created.task_id for u in updates)

    deltas = [i for i in items if isinstance(i, MessageStreamEvent)]
    assert all(d.reply_to == "msg_abc12345" for d in deltas)
    assert "".join(d.delta for d in deltas) == generate_response(content)

    complete = next(i for i in items if isinstance(i, MessageCompleteEvent))
    assert complete.reply_to == "msg_abc12345"
    assert complete.content == generate_response(content)
    assert complete.id.startswith("msg_") and len(complete.id) == 12

    done = next(i for i in items if isinstance(i, TaskCompletedEvent))
    assert done.progress == 1.0
    assert done.result == "Response delivered"

    assert items[0].status == "busy"
    assert items[-1].status == "idle"
    assert items[-1].tokens_used == 5600


@pytest.mark.asyncio
async def test_short_request_has_no_task_events():
    bus = EventBus()
    recorder = Recorder(bus)
    driver = MockDriver(bus, MockTimings.instant())

    await driver.send("msg_1", "hi")
    items = await recorder.stop()

    kinds = {type(item) for item in items}
    assert TaskCreatedEvent not in kinds
    assert TaskUpdatedEvent not in kinds
    assert TaskCompletedEvent not in kinds
    assert MessageCompleteEvent in kinds


@pytest.mark.asyncio
async def test_disconnect_cancels_in_flight_scripts():
    bus = EventBus()
    recorder = Recorder(bus)
    timings = MockTimings(
        connect_delay=0.0, think_delay=0.0, step_delay=0.0,
        word_delay=0.05, finalize_delay=0.0,
    )
    driver = MockDriver(bus, timings)

    driver.send("msg_1", "hello there")
    driver.send("msg_2", "hi again")
    await asyncio.sleep(0.08)
    assert driver.active_scripts == 2

    await driver.disconnect()
    assert driver.active_scripts == 0
    await bus.join()
    count = len(recorder.items)
    await asyncio.sleep(0.2)
    items = await recorder.stop()

    assert len(items) == count
    assert not any(isinstance(i, MessageCompleteEvent) for i in items)


async def _reply_shape(content: str) -> list[tuple[str, dict]]:
    bus = EventBus()
    recorder = Recorder(bus)
    driver = MockDriver(bus, MockTimings.instant())
    await driver.send("msg_same0001", content)
    items = await recorder.stop()
    shape = []
    for item in items:
        data = event_to_dict(item)
        for volatile in ("id", "task_id", "timestamp"):
            data.pop(volatile, None)
        shape.append((type(item).__name__, data))
    return shape


@pytest.mark.asyncio
@pytest.mark.parametrize("content", ["hi", "please analyze the deployment logs"])
async def test_same_input_gives_same_event_sequence(content):
    first = await _reply_shape(content)
    second = await _reply_shape(content)
    assert first == second
    assert len(first) > 3


def test_progress_heuristic():
    assert should_show_progress("x" * 25)
    assert not should_show_progress("x" * 24)
    assert not should_show_progress("   short   ")
    assert should_show_progress("Debug it")
    assert should_show_progress("PLAN")


def test_response_selection_is_deterministic():
    assert generate_response("hello") == generate_response("hello")
    assert generate_response("hello") in CANNED_RESPONSES


def test_markdown_demos():
    assert generate_response("show me markdown") == MARKDOWN_FULL_DEMO
    assert generate_response("md demo with code") == MARKDOWN_CODE_DEMO


def test_canned_history_is_ordered():
    history = canned_history()
    assert [m.role.value for m in history] == ["user", "agent", "user"]
    assert history[0].timestamp < history[1].timestamp < history[2].timestamp
