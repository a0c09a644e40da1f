"""Conversation message model."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
import uuid


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_message_id() -> str:
    """Client-side id for an outgoing message (``msg_`` + 8 hex chars)."""
    return f"msg_{uuid.uuid4().hex[:8]}"


class MessageRole(str, Enum):
    USER = "user"
    AGENT = "agent"


@dataclass
class Message:
    id: str
    role: MessageRole
    content: str
    timestamp: datetime = field(default_factory=_utcnow)
    # True while deltas are still arriving for this message.
    is_streaming: bool = False

    @property
    def key(self) -> str:
        return f"message:{self.id}"
