"""Agent status reported by the server."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class AgentState(str, Enum):
    IDLE = "idle"
    BUSY = "busy"

    @classmethod
    def parse(cls, value: str) -> AgentState:
        """Map a wire state string; anything unrecognized reads as idle."""
        try:
            return cls(value)
        except ValueError:
            return cls.IDLE


@dataclass
class AgentStatus:
    """Live status of the connected agent.

    Attributes:
        agent: Agent display name.
        status: Idle or busy.
        context_remaining: Fraction of the context window still free (0.0-1.0).
        tokens_used: Prompt tokens consumed so far.
        version: Server version, only reported by ``GET /status``.
    """
    agent: str
    status: AgentState = AgentState.IDLE
    context_remaining: float = 1.0
    tokens_used: int = 0
    version: str | None = None
