"""Scripted stand-in for the agent server.

Emits the same events a live server would (status, task lifecycle,
word-by-word streaming, completion) on simulated timers, so the session
controller and timeline can be exercised without a network. Scripts are
asyncio tasks; ``disconnect()`` cancels them and a cancelled script
emits nothing further.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
import zlib
from datetime import datetime, timedelta, timezone

from window.adapters.event_bus import BusItem, EventBus, HistoryLoaded
from window.adapters.events import (
    ConnectedEvent,
    MessageCompleteEvent,
    MessageStreamEvent,
    StatusUpdateEvent,
    TaskCompletedEvent,
    TaskCreatedEvent,
    TaskUpdatedEvent,
)
from window.engine.config import MockTimings
from window.shared.models.message import Message, MessageRole
from window.shared.models.task import StepStatus, TaskStep

logger = logging.getLogger(__name__)

MOCK_AGENT_NAME = "mock-agent"

# Messages longer than this (after trimming) get a visible task.
PROGRESS_LENGTH_THRESHOLD = 24

COMPLEX_KEYWORDS = (
    "analyze", "plan", "build", "deploy", "search",
    "debug", "investigate", "compare", "write",
)

STEP_NAMES = ("Understanding request", "Generating response", "Finalizing")

CANNED_RESPONSES = (
    "I've looked into that for you. Here's what I found: the system is running "
    "smoothly with no issues detected. I'll keep monitoring and let you know if "
    "anything changes.",
    "Done! I've processed your request. Everything looks good on my end. The task "
    "completed successfully with no errors.",
    "Interesting question. Based on my analysis, I'd recommend proceeding with the "
    "current approach. The metrics look favorable and the risk is minimal.",
    "I've completed the task you requested. Here's a summary: all steps executed "
    "successfully, data was processed correctly, and the results have been saved.",
    "Working on it now. After analyzing the situation, I can confirm that everything "
    "is in order. No action needed from your side at this point.",
)

MARKDOWN_FULL_DEMO = """\
# Markdown Demo Playground

This tests **bold**, *italic*, ***bold italic***, ~~strikethrough~~, and `inline code`.

> Blockquote: This is a quoted line.
> Second quoted line with a [link](https://example.com).

## Lists

- Bullet one
- Bullet two
  - Nested bullet A
  - Nested bullet B
- Bullet three

1. Ordered item one
2. Ordered item two
3. Ordered item three

## Task List

- [x] Completed task
- [ ] Pending task

---

## Code Block

```python
@dataclass
class User:
    id: int
    name: str

print(f"Hello, {User(1, 'Sam').name}")
```

If this renders well, markdown support is working end-to-end."""

MARKDOWN_CODE_DEMO = """\
## Code Formatting Demo

Inline examples: `let x = 42`, `npm run build`, `POST /api/v1/message`

```json
{
  "type": "message.send",
  "id": "msg_123",
  "content": "hello"
}
```

```bash
curl -X GET http://127.0.0.1:8080/status
```"""


def should_show_progress(content: str) -> bool:
    """Heuristic for whether a request deserves a visible multi-step task."""
    trimmed = content.strip()
    if len(trimmed) > PROGRESS_LENGTH_THRESHOLD:
        return True
    lowered = trimmed.lower()
    return any(keyword in lowered for keyword in COMPLEX_KEYWORDS)


def generate_response(content: str) -> str:
    """Pick the canned reply for ``content``; stable across runs."""
    normalized = content.lower()
    if "markdown" in normalized or "md demo" in normalized:
        if "code" in normalized:
            return MARKDOWN_CODE_DEMO
        return MARKDOWN_FULL_DEMO
    index = zlib.crc32(content.encode("utf-8")) % len(CANNED_RESPONSES)
    return CANNED_RESPONSES[index]


def canned_history(now: datetime | None = None) -> list[Message]:
    now = now or datetime.now(timezone.utc)
    return [
        Message(
            id="msg_hist_001",
            role=MessageRole.USER,
            content="Hey, can you check the server status?",
            timestamp=now - timedelta(seconds=3600),
        ),
        Message(
            id="msg_hist_002",
            role=MessageRole.AGENT,
            content=(
                "All systems are running normally. CPU usage is at 23%, memory at "
                "4.2GB/16GB. No alerts in the last 24 hours."
            ),
            timestamp=now - timedelta(seconds=3550),
        ),
        Message(
            id="msg_hist_003",
            role=MessageRole.USER,
            content="Great, thanks!",
            timestamp=now - timedelta(seconds=3500),
        ),
    ]


def _steps(*statuses: StepStatus) -> list[TaskStep]:
    return [TaskStep(name=name, status=s) for name, s in zip(STEP_NAMES, statuses)]


class MockDriver:
    """Deterministic, time-delayed event script.

    Holds the EventBus only; the controller owns the driver and decides
    when it connects and disconnects.
    """

    def __init__(self, bus: EventBus, timings: MockTimings | None = None) -> None:
        self._bus = bus
        self.timings = timings or MockTimings()
        self._scripts: set[asyncio.Task[None]] = set()
        self._cancelled = False

    @property
    def active_scripts(self) -> int:
        return sum(1 for t in self._scripts if not t.done())

    def _spawn(self, coro, name: str) -> asyncio.Task[None]:
        task = asyncio.create_task(coro, name=name)
        self._scripts.add(task)
        task.add_done_callback(self._scripts.discard)
        return task

    async def _emit(self, item: BusItem) -> None:
        if self._cancelled:
            return
        await self._bus.put(item)

    def connect(self) -> asyncio.Task[None]:
        self._cancelled = False
        return self._spawn(self._connect_script(), "mock-connect")

    def send(self, message_id: str, content: str) -> asyncio.Task[None]:
        return self._spawn(self._reply_script(message_id, content), f"mock-reply-{message_id}")

    async def disconnect(self) -> None:
        """Cancel every in-flight script and wait for them to stop."""
        self._cancelled = True
        scripts = list(self._scripts)
        for task in scripts:
            task.cancel()
        for task in scripts:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._scripts.clear()

    async def _connect_script(self) -> None:
        await asyncio.sleep(self.timings.connect_delay)
        await self._emit(ConnectedEvent(
            agent=MOCK_AGENT_NAME,
            status="idle",
            context_remaining=0.85,
            tokens_used=3200,
        ))
        await self._emit(HistoryLoaded(messages=canned_history()))

    async def _reply_script(self, message_id: str, content: str) -> None:
        t = self.timings
        await asyncio.sleep(t.think_delay)
        await self._emit(StatusUpdateEvent(
            status="busy", context_remaining=0.78, tokens_used=4100,
        ))

        show_progress = should_show_progress(content)
        task_id = f"task_{uuid.uuid4().hex[:6]}"
        if show_progress:
            await self._emit(TaskCreatedEvent(
                task_id=task_id,
                title=f"Processing: {content[:30]}",
                status="in_progress",
                progress=0.0,
                steps=_steps(StepStatus.IN_PROGRESS, StepStatus.PENDING, StepStatus.PENDING),
                show_progress=True,
            ))

        await asyncio.sleep(t.step_delay)
        if show_progress:
            await self._emit(TaskUpdatedEvent(
                task_id=task_id,
                progress=0.33,
                steps=_steps(StepStatus.COMPLETED, StepStatus.IN_PROGRESS, StepStatus.PENDING),
            ))

        response = generate_response(content)
        words = [w for w in response.split(" ") if w]
        for i, word in enumerate(words):
            await asyncio.sleep(t.word_delay)
            delta = word if i == 0 else f" {word}"
            await self._emit(MessageStreamEvent(reply_to=message_id, delta=delta))

        if show_progress:
            await self._emit(TaskUpdatedEvent(
                task_id=task_id,
                progress=0.66,
                steps=_steps(StepStatus.COMPLETED, StepStatus.COMPLETED, StepStatus.IN_PROGRESS),
            ))

        await asyncio.sleep(t.finalize_delay)
        await self._emit(MessageCompleteEvent(
            reply_to=message_id,
            id=f"msg_{uuid.uuid4().hex[:8]}",
            content=response,
            timestamp=datetime.now(timezone.utc).isoformat(),
        ))

        if show_progress:
            await self._emit(TaskCompletedEvent(
                task_id=task_id, progress=1.0, result="Response delivered",
            ))

        await self._emit(StatusUpdateEvent(
            status="idle", context_remaining=0.72, tokens_used=5600,
        ))
        logger.debug("Mock reply to %s finished (%d words)", message_id, len(words))
