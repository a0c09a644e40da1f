"""Background task models shown alongside the conversation."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class TaskStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class StepStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"

    @classmethod
    def parse(cls, value: str) -> StepStatus:
        """Map a wire status string, treating unknown values as pending."""
        try:
            return cls(value)
        except ValueError:
            return cls.PENDING


@dataclass
class TaskStep:
    # The name doubles as the step's identity within its task.
    name: str
    status: StepStatus = StepStatus.PENDING


@dataclass
class AgentTask:
    id: str
    title: str
    status: TaskStatus = TaskStatus.IN_PROGRESS
    progress: float = 0.0
    steps: list[TaskStep] = field(default_factory=list)
    result: str | None = None

    @property
    def key(self) -> str:
        return f"task:{self.id}"
