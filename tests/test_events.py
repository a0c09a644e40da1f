"""Tests for the wire event codec and the task visibility gate."""
from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest

from window.adapters.events import (
    EVENT_TYPES,
    ConnectedEvent,
    MessageCompleteEvent,
    MessageStreamEvent,
    StatusUpdateEvent,
    TaskCompletedEvent,
    TaskCreatedEvent,
    TaskUpdatedEvent,
    encode_send,
    event_to_dict,
    parse_event,
    parse_timestamp,
    resolve_visibility,
    try_parse_timestamp,
)
from window.shared.models.task import StepStatus, TaskStep


def _frame(**fields) -> str:
    return json.dumps(fields)


class TestParseEvent:
    def test_connected(self):
        event = parse_event(_frame(
            type="connected", agent="ops-bot", status="idle",
            context_remaining=0.9, tokens_used=1200,
        ))
        assert event == ConnectedEvent(
            agent="ops-bot", status="idle", context_remaining=0.9, tokens_used=1200,
        )

    def test_connected_without_tokens(self):
        event = parse_event(_frame(
            type="connected", agent="a", status="busy", context_remaining=1,
        ))
        assert isinstance(event, ConnectedEvent)
        assert event.tokens_used is None
        assert event.context_remaining == 1.0

    def test_message_stream(self):
        event = parse_event(_frame(type="message.stream", reply_to="msg_1", delta="Hel"))
        assert event == MessageStreamEvent(reply_to="msg_1", delta="Hel")

    def test_message_complete(self):
        event = parse_event(_frame(
            type="message.complete", reply_to="msg_1", id="msg_final",
            content="Hello", timestamp="2024-05-01T12:00:00Z",
        ))
        assert isinstance(event, MessageCompleteEvent)
        assert event.id == "msg_final"
        assert event.sent_at == datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def test_task_created_with_steps(self):
        event = parse_event(_frame(
            type="task.created", task_id="t1", title="Processing: deploy",
            status="in_progress", progress=0,
            steps=[
                {"name": "Plan", "status": "completed"},
                {"name": "Run", "status": "exploding"},
            ],
            visibility="auto",
        ))
        assert isinstance(event, TaskCreatedEvent)
        assert event.steps == [
            TaskStep(name="Plan", status=StepStatus.COMPLETED),
            TaskStep(name="Run", status=StepStatus.PENDING),
        ]
        assert event.visibility == "auto"
        assert event.show_progress is None
        assert event.should_display is True

    def test_task_updated(self):
        event = parse_event(_frame(
            type="task.updated", task_id="t1", progress=0.5,
            steps=[{"name": "Plan", "status": "in_progress"}],
        ))
        assert event == TaskUpdatedEvent(
            task_id="t1", progress=0.5,
            steps=[TaskStep(name="Plan", status=StepStatus.IN_PROGRESS)],
        )

    def test_task_completed(self):
        event = parse_event(_frame(
            type="task.completed", task_id="t1", progress=1.0, result="ok",
        ))
        assert event == TaskCompletedEvent(task_id="t1", progress=1.0, result="ok")

    def test_status_update(self):
        event = parse_event(_frame(
            type="status.update", status="busy", context_remaining=0.5,
        ))
        assert event == StatusUpdateEvent(status="busy", context_remaining=0.5)

    def test_accepts_bytes_and_dicts(self):
        raw = {"type": "message.stream", "reply_to": "m", "delta": "x"}
        assert parse_event(raw) == parse_event(json.dumps(raw).encode("utf-8"))

    @pytest.mark.parametrize("raw", [
        "not json",
        "[1, 2, 3]",
        "42",
        _frame(reply_to="m", delta="x"),
        _frame(type=7, reply_to="m", delta="x"),
        _frame(type="message.unknown", reply_to="m"),
        _frame(type="message.stream", reply_to="m"),
        _frame(type="message.stream", reply_to="m", delta=5),
        _frame(type="status.update", status="idle", context_remaining="high"),
        _frame(type="status.update", status="idle", context_remaining=True),
        _frame(type="task.created", task_id="t", title="x", status="s", progress=0),
        _frame(type="task.updated", task_id="t", progress=0, steps=["Plan"]),
        _frame(type="task.updated", task_id="t", progress=0, steps=[{"name": "Plan"}]),
        _frame(type="connected", agent="a", status="idle",
               context_remaining=1.0, tokens_used="lots"),
        _frame(type="task.created", task_id="t", title="x", status="s",
               progress=0, steps=[], show_progress="yes"),
    ])
    def test_malformed_frames_yield_none(self, raw):
        assert parse_event(raw) is None

    def test_every_wire_type_is_known(self):
        assert EVENT_TYPES == {
            "connected", "message.stream", "message.complete", "task.created",
            "task.updated", "task.completed", "status.update",
        }


class TestVisibility:
    @pytest.mark.parametrize("show_progress, visibility, steps, expected", [
        (True, "hide", 0, True),
        (False, "show", 5, False),
        (None, "hide", 3, False),
        (None, "show", 0, True),
        (None, "auto", 1, False),
        (None, "auto", 2, True),
        (None, "AUTO", 3, True),
        (None, None, 0, True),
        (None, "sometimes", 0, True),
    ])
    def test_resolve_visibility(self, show_progress, visibility, steps, expected):
        assert resolve_visibility(show_progress, visibility, steps) is expected

    def test_auto_single_step_task_is_hidden(self):
        event = parse_event(_frame(
            type="task.created", task_id="t1", title="Quick", status="in_progress",
            progress=0, steps=[{"name": "Only", "status": "pending"}], visibility="auto",
        ))
        assert event.should_display is False


class TestTimestamps:
    def test_zulu_suffix(self):
        assert try_parse_timestamp("2024-01-02T03:04:05Z") == datetime(
            2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc,
        )

    def test_offset_converted_to_utc(self):
        parsed = try_parse_timestamp("2024-01-02T05:04:05+02:00")
        assert parsed == datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
        assert parsed.tzinfo == timezone.utc

    def test_naive_is_utc(self):
        parsed = try_parse_timestamp("2024-01-02T03:04:05")
        assert parsed.tzinfo == timezone.utc

    def test_garbage(self):
        assert try_parse_timestamp("yesterday") is None

    def test_parse_timestamp_falls_back_to_now(self):
        before = datetime.now(timezone.utc)
        parsed = parse_timestamp("not a time")
        assert before <= parsed <= datetime.now(timezone.utc)


class TestOutbound:
    def test_encode_send(self):
        assert json.loads(encode_send("msg_12345678", "hello")) == {
            "type": "message.send", "id": "msg_12345678", "content": "hello",
        }

    def test_event_to_dict_omits_none_and_flattens_steps(self):
        event = TaskCreatedEvent(
            task_id="t1", title="T", status="in_progress", progress=0.0,
            steps=[TaskStep(name="A", status=StepStatus.COMPLETED)],
            show_progress=True,
        )
        assert event_to_dict(event) == {
            "type": "task.created",
            "task_id": "t1",
            "title": "T",
            "status": "in_progress",
            "progress": 0.0,
            "steps": [{"name": "A", "status": "completed"}],
            "show_progress": True,
        }

    def test_event_to_dict_is_accepted_by_parse_event(self):
        event = StatusUpdateEvent(status="busy", context_remaining=0.4, tokens_used=10)
        assert parse_event(event_to_dict(event)) == event
