"""Wire events of the Window protocol.

Each inbound frame is a JSON object discriminated by its ``type`` field
and is decoded into one of seven typed dataclasses. Decoding is strict
per variant: a frame with an unknown type, or with a missing or
mistyped field, yields ``None`` instead of a partial event, so protocol
skew never reaches the timeline.
"""
from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from typing import Any, ClassVar, Union

from window.shared.models.task import StepStatus, TaskStep

logger = logging.getLogger(__name__)


class EventDecodeError(ValueError):
    """A recognized event is missing a field or has a mistyped one."""


# ── Inbound (server -> client) ────────────────────────────────────


@dataclass
class ConnectedEvent:
    event_type: ClassVar[str] = "connected"
    agent: str
    status: str
    context_remaining: float
    tokens_used: int | None = None


@dataclass
class MessageStreamEvent:
    event_type: ClassVar[str] = "message.stream"
    reply_to: str
    delta: str


@dataclass
class MessageCompleteEvent:
    event_type: ClassVar[str] = "message.complete"
    reply_to: str
    id: str
    content: str
    timestamp: str  # ISO-8601, parsed lazily via sent_at

    @property
    def sent_at(self) -> datetime:
        return parse_timestamp(self.timestamp)


@dataclass
class TaskCreatedEvent:
    event_type: ClassVar[str] = "task.created"
    task_id: str
    title: str
    status: str
    progress: float
    steps: list[TaskStep] = field(default_factory=list)
    visibility: str | None = None
    show_progress: bool | None = None

    @property
    def should_display(self) -> bool:
        return resolve_visibility(
            self.show_progress, self.visibility, len(self.steps),
        )


@dataclass
class TaskUpdatedEvent:
    event_type: ClassVar[str] = "task.updated"
    task_id: str
    progress: float
    steps: list[TaskStep] = field(default_factory=list)


@dataclass
class TaskCompletedEvent:
    event_type: ClassVar[str] = "task.completed"
    task_id: str
    progress: float
    result: str


@dataclass
class StatusUpdateEvent:
    event_type: ClassVar[str] = "status.update"
    status: str
    context_remaining: float
    tokens_used: int | None = None


ServerEvent = Union[
    ConnectedEvent,
    MessageStreamEvent,
    MessageCompleteEvent,
    TaskCreatedEvent,
    TaskUpdatedEvent,
    TaskCompletedEvent,
    StatusUpdateEvent,
]


# ── Outbound (client -> server) ───────────────────────────────────


@dataclass
class SendMessageEvent:
    """The only event the client sends."""
    event_type: ClassVar[str] = "message.send"
    id: str
    content: str

    def encode(self) -> str:
        return json.dumps(
            {"type": self.event_type, "id": self.id, "content": self.content}
        )


def encode_send(message_id: str, content: str) -> str:
    """Serialize a ``message.send`` frame."""
    return SendMessageEvent(id=message_id, content=content).encode()


# ── Visibility gate ───────────────────────────────────────────────


def resolve_visibility(
    show_progress: bool | None,
    visibility: str | None,
    step_count: int,
) -> bool:
    """Decide whether a newly created task is ever shown.

    An explicit ``show_progress`` flag wins. Otherwise the ``visibility``
    hint decides: ``hide`` and ``show`` are literal, ``auto`` shows only
    multi-step tasks, and a missing or unrecognized hint shows the task.
    """
    if show_progress is not None:
        return show_progress
    if visibility is None:
        return True
    hint = visibility.lower()
    if hint == "hide":
        return False
    if hint == "auto":
        return step_count > 1
    return True


def try_parse_timestamp(value: str) -> datetime | None:
    """Parse an ISO-8601 timestamp into an aware UTC datetime, or None.

    Naive timestamps are taken to be UTC.
    """
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def parse_timestamp(value: str) -> datetime:
    """Like try_parse_timestamp, but falls back to the current time."""
    parsed = try_parse_timestamp(value)
    if parsed is None:
        logger.debug("Unparseable timestamp %r, using now", value)
        return datetime.now(timezone.utc)
    return parsed


# ── Field decoding ────────────────────────────────────────────────


def _require(data: dict[str, Any], key: str) -> Any:
    if key not in data or data[key] is None:
        raise EventDecodeError(f"missing field '{key}'")
    return data[key]


def _str(data: dict[str, Any], key: str) -> str:
    value = _require(data, key)
    if not isinstance(value, str):
        raise EventDecodeError(f"field '{key}' is not a string")
    return value


def _float(data: dict[str, Any], key: str) -> float:
    value = _require(data, key)
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise EventDecodeError(f"field '{key}' is not a number")
    return float(value)


def _opt_int(data: dict[str, Any], key: str) -> int | None:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise EventDecodeError(f"field '{key}' is not an integer")
    return value


def _opt_str(data: dict[str, Any], key: str) -> str | None:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise EventDecodeError(f"field '{key}' is not a string")
    return value


def _opt_bool(data: dict[str, Any], key: str) -> bool | None:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, bool):
        raise EventDecodeError(f"field '{key}' is not a boolean")
    return value


def _steps(data: dict[str, Any], key: str = "steps") -> list[TaskStep]:
    raw_steps = _require(data, key)
    if not isinstance(raw_steps, list):
        raise EventDecodeError(f"field '{key}' is not a list")
    steps: list[TaskStep] = []
    for raw in raw_steps:
        if not isinstance(raw, dict):
            raise EventDecodeError(f"step entry is not an object: {raw!r}")
        steps.append(TaskStep(
            name=_str(raw, "name"),
            status=StepStatus.parse(_str(raw, "status")),
        ))
    return steps


# ── Per-variant decoders ──────────────────────────────────────────


def _decode_connected(data: dict[str, Any]) -> ConnectedEvent:
    return ConnectedEvent(
        agent=_str(data, "agent"),
        status=_str(data, "status"),
        context_remaining=_float(data, "context_remaining"),
        tokens_used=_opt_int(data, "tokens_used"),
    )


def _decode_message_stream(data: dict[str, Any]) -> MessageStreamEvent:
    return MessageStreamEvent(
        reply_to=_str(data, "reply_to"),
        delta=_str(data, "delta"),
    )


def _decode_message_complete(data: dict[str, Any]) -> MessageCompleteEvent:
    return MessageCompleteEvent(
        reply_to=_str(data, "reply_to"),
        id=_str(data, "id"),
        content=_str(data, "content"),
        timestamp=_str(data, "timestamp"),
    )


def _decode_task_created(data: dict[str, Any]) -> TaskCreatedEvent:
    return TaskCreatedEvent(
        task_id=_str(data, "task_id"),
        title=_str(data, "title"),
        status=_str(data, "status"),
        progress=_float(data, "progress"),
        steps=_steps(data),
        visibility=_opt_str(data, "visibility"),
        show_progress=_opt_bool(data, "show_progress"),
    )


def _decode_task_updated(data: dict[str, Any]) -> TaskUpdatedEvent:
    return TaskUpdatedEvent(
        task_id=_str(data, "task_id"),
        progress=_float(data, "progress"),
        steps=_steps(data),
    )


def _decode_task_completed(data: dict[str, Any]) -> TaskCompletedEvent:
    return TaskCompletedEvent(
        task_id=_str(data, "task_id"),
        progress=_float(data, "progress"),
        result=_str(data, "result"),
    )


def _decode_status_update(data: dict[str, Any]) -> StatusUpdateEvent:
    return StatusUpdateEvent(
        status=_str(data, "status"),
        context_remaining=_float(data, "context_remaining"),
        tokens_used=_opt_int(data, "tokens_used"),
    )


# Map of wire type strings to strict decoders
_EVENT_DECODERS: dict[str, Callable[[dict[str, Any]], ServerEvent]] = {
    ConnectedEvent.event_type: _decode_connected,
    MessageStreamEvent.event_type: _decode_message_stream,
    MessageCompleteEvent.event_type: _decode_message_complete,
    TaskCreatedEvent.event_type: _decode_task_created,
    TaskUpdatedEvent.event_type: _decode_task_updated,
    TaskCompletedEvent.event_type: _decode_task_completed,
    StatusUpdateEvent.event_type: _decode_status_update,
}

EVENT_TYPES: frozenset[str] = frozenset(_EVENT_DECODERS)


def parse_event(raw: str | bytes | dict[str, Any]) -> ServerEvent | None:
    """Decode one inbound frame into a typed event.

    Returns None for invalid JSON, non-object payloads, a missing or
    unrecognized ``type``, and any field-level decode failure. Never
    raises.
    """
    if isinstance(raw, dict):
        data: Any = raw
    else:
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError, TypeError):
            logger.debug("Frame is not valid JSON: %.80r", raw)
            return None

    if not isinstance(data, dict):
        return None
    event_type = data.get("type")
    if not isinstance(event_type, str):
        return None

    decoder = _EVENT_DECODERS.get(event_type)
    if decoder is None:
        logger.debug("Ignoring unrecognized event type %r", event_type)
        return None
    try:
        return decoder(data)
    except EventDecodeError as exc:
        logger.debug("Dropping malformed %s event: %s", event_type, exc)
        return None


def event_to_dict(event: ServerEvent) -> dict[str, Any]:
    """Convert a typed event back to its wire dict (None fields omitted)."""
    d: dict[str, Any] = {"type": event.event_type}
    for f in fields(event):
        name = f.name
        val = getattr(event, name)
        if val is None:
            continue
        if name == "steps":
            val = [{"name": s.name, "status": s.status.value} for s in val]
        d[name] = val
    return d
