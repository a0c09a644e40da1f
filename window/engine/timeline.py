"""Timeline reconciliation.

The timeline is the ordered list of conversation messages and background
tasks shown to the user. Entries are identified by ``message:<id>`` or
``task:<id>`` keys that stay unique at all times. Server events are
merged in arrival order with these rules:

- A user send is appended immediately (optimistic insert).
- Stream deltas accumulate into a placeholder keyed by the request they
  reply to (``message:reply_<reply_to>``), created on the first delta.
- A completion replaces that placeholder at the same position, or is
  appended when no delta preceded it.
- Task updates and completions only touch tasks that were created and
  displayed; anything else is dropped.

Lookups are linear scans. Timelines are session-scoped and bounded by
conversation length.
"""
from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from datetime import datetime, timezone
from typing import Union

from window.engine.errors import DuplicateEntryError
from window.shared.models.message import Message, MessageRole
from window.shared.models.task import AgentTask, StepStatus, TaskStatus, TaskStep

logger = logging.getLogger(__name__)

TimelineEntry = Union[Message, AgentTask]

PROCESSING_PREFIX = "Processing:"
COMPLETED_PREFIX = "Completed:"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def placeholder_id(reply_to: str) -> str:
    """Id of the streaming message that answers request ``reply_to``."""
    return f"reply_{reply_to}"


def message_key(message_id: str) -> str:
    return f"message:{message_id}"


def task_key(task_id: str) -> str:
    return f"task:{task_id}"


class Timeline:
    """Ordered, identity-keyed sequence of messages and tasks."""

    def __init__(self, entries: Iterable[TimelineEntry] = ()) -> None:
        self._entries: list[TimelineEntry] = []
        for entry in entries:
            self._append(entry)

    # ── Queries ──

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[TimelineEntry]:
        return iter(self._entries)

    def __getitem__(self, index: int) -> TimelineEntry:
        return self._entries[index]

    def keys(self) -> list[str]:
        return [entry.key for entry in self._entries]

    def index_of(self, key: str) -> int | None:
        for i, entry in enumerate(self._entries):
            if entry.key == key:
                return i
        return None

    def get(self, key: str) -> TimelineEntry | None:
        index = self.index_of(key)
        return self._entries[index] if index is not None else None

    @property
    def messages(self) -> list[Message]:
        return [e for e in self._entries if isinstance(e, Message)]

    @property
    def tasks(self) -> list[AgentTask]:
        """Tasks only, in timeline order (the activity view)."""
        return [e for e in self._entries if isinstance(e, AgentTask)]

    def snapshot(self) -> list[TimelineEntry]:
        return list(self._entries)

    # ── Mutation ──

    def clear(self) -> None:
        self._entries = []

    def _append(self, entry: TimelineEntry) -> None:
        if self.index_of(entry.key) is not None:
            raise DuplicateEntryError(entry.key)
        self._entries.append(entry)

    def _find_task(self, task_id: str) -> AgentTask | None:
        entry = self.get(task_key(task_id))
        return entry if isinstance(entry, AgentTask) else None

    def add_user_message(
        self,
        message_id: str,
        content: str,
        timestamp: datetime | None = None,
    ) -> Message:
        """Append the user's message before the server acknowledges it."""
        message = Message(
            id=message_id,
            role=MessageRole.USER,
            content=content,
            timestamp=timestamp or _utcnow(),
        )
        self._append(message)
        return message

    def apply_stream_delta(self, reply_to: str, delta: str) -> Message:
        """Grow the streaming reply to ``reply_to`` by ``delta``."""
        key = message_key(placeholder_id(reply_to))
        entry = self.get(key)
        if isinstance(entry, Message):
            entry.content += delta
            return entry

        message = Message(
            id=placeholder_id(reply_to),
            role=MessageRole.AGENT,
            content=delta,
            timestamp=_utcnow(),
            is_streaming=True,
        )
        self._entries.append(message)
        return message

    def apply_message_complete(
        self,
        reply_to: str,
        message_id: str,
        content: str,
        timestamp: datetime,
    ) -> Message:
        """Finalize the reply to ``reply_to`` under its server id.

        The streaming placeholder, if any, is replaced at its position.
        Otherwise the final message is appended, unless a message with
        the same final id is already present (re-delivered completion),
        in which case that entry is refreshed instead.
        """
        final = Message(
            id=message_id,
            role=MessageRole.AGENT,
            content=content,
            timestamp=timestamp,
        )
        placeholder_index = self.index_of(message_key(placeholder_id(reply_to)))
        existing_index = self.index_of(final.key)

        if existing_index is not None:
            self._entries[existing_index] = final
            if placeholder_index is not None and placeholder_index != existing_index:
                del self._entries[placeholder_index]
            return final

        if placeholder_index is not None:
            self._entries[placeholder_index] = final
        else:
            self._entries.append(final)
        return final

    def apply_task_created(
        self,
        task_id: str,
        title: str,
        progress: float,
        steps: list[TaskStep],
        should_display: bool = True,
    ) -> AgentTask | None:
        """Append a new in-progress task unless the visibility gate hides it."""
        if not should_display:
            logger.debug("Task %s hidden by visibility gate", task_id)
            return None

        existing = self._find_task(task_id)
        if existing is not None:
            # Re-delivered creation: refresh in place, keep identity unique
            existing.title = title
            existing.progress = progress
            existing.steps = list(steps)
            return existing

        task = AgentTask(
            id=task_id,
            title=title,
            status=TaskStatus.IN_PROGRESS,
            progress=progress,
            steps=list(steps),
        )
        self._entries.append(task)
        return task

    def apply_task_updated(
        self,
        task_id: str,
        progress: float,
        steps: list[TaskStep],
    ) -> AgentTask | None:
        task = self._find_task(task_id)
        if task is None:
            logger.debug("Dropping update for unknown task %s", task_id)
            return None
        task.progress = progress
        task.steps = list(steps)
        return task

    def apply_task_completed(
        self,
        task_id: str,
        progress: float,
        result: str,
    ) -> AgentTask | None:
        task = self._find_task(task_id)
        if task is None:
            logger.debug("Dropping completion for unknown task %s", task_id)
            return None
        task.status = TaskStatus.COMPLETED
        task.progress = progress
        task.result = result
        if task.title.startswith(PROCESSING_PREFIX):
            task.title = task.title.replace(PROCESSING_PREFIX, COMPLETED_PREFIX)
        task.steps = [TaskStep(name=s.name, status=StepStatus.COMPLETED) for s in task.steps]
        return task

    def load_history(self, messages: Iterable[Message]) -> None:
        """Replace the whole timeline with a page of history."""
        entries: list[TimelineEntry] = []
        seen: set[str] = set()
        for message in messages:
            if message.key in seen:
                logger.debug("Skipping duplicate history message %s", message.id)
                continue
            seen.add(message.key)
            entries.append(message)
        self._entries = entries
