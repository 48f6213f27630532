"""Persisted data model for the task graph and session history."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import NamedTuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


class TaskId(NamedTuple):
    """Hierarchical task identifier ordered by (phase, session, task)."""

    phase: int
    session: int
    task: int

    @classmethod
    def parse(cls, raw: str) -> "TaskId":
        parts = str(raw).strip().split(".")
        if len(parts) != 3 or not all(part.isdigit() for part in parts):
            raise ValueError(f"Task id must look like 'phase.session.task', got {raw!r}")
        phase, session, task = (int(part) for part in parts)
        if min(phase, session, task) < 1:
            raise ValueError(f"Task id components must be positive, got {raw!r}")
        return cls(phase, session, task)

    def __str__(self) -> str:
        return f"{self.phase}.{self.session}.{self.task}"


class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETE = "complete"
    BLOCKED = "blocked"


class SessionState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"
    ABORTED = "aborted"


class TerminationReason(str, Enum):
    BUDGET_EXHAUSTED = "budget-exhausted"
    GRAPH_EXHAUSTED = "graph-exhausted"
    MANUAL_STOP = "manual-stop"


class LimitReason(str, Enum):
    CONTEXT_CRITICAL = "context-critical"
    SOFT_LIMIT = "soft-limit"
    HARD_LIMIT = "hard-limit"


class CheckpointOutcome(str, Enum):
    COMMITTED = "committed"
    VERIFIED = "verified"
    VERIFICATION_FAILED = "verification-failed"
    COMMIT_FAILED = "commit-failed"
    GRAPH_BLOCKED = "graph-blocked"


class TaskCost(BaseModel):
    """Resource amounts: a task estimate, a realized cost, or session counters."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    files: int = Field(default=0, ge=0, description="Files touched.")
    lines: int = Field(default=0, ge=0, description="Lines changed.")
    tests: int = Field(default=0, ge=0, description="Tests added.")
    tokens: int = Field(default=0, ge=0, description="Estimated context tokens consumed.")

    def plus(self, other: "TaskCost") -> "TaskCost":
        return TaskCost(
            files=self.files + other.files,
            lines=self.lines + other.lines,
            tests=self.tests + other.tests,
            tokens=self.tokens + other.tokens,
        )


class Task(BaseModel):
    """A unit of work in the plan."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str = Field(..., description="Identifier in 'phase.session.task' form.")
    description: str = Field(default="", description="What the executor should do.")
    estimate: TaskCost = Field(default_factory=TaskCost, description="Declared cost estimate.")
    depends_on: tuple[str, ...] = Field(default=(), description="Prerequisite task ids.")
    status: TaskStatus = Field(default=TaskStatus.PENDING)
    blocked_reason: str | None = Field(default=None, description="Why the task is blocked.")
    blocked_by: str | None = Field(
        default=None, description="Task whose block propagated to this one."
    )
    updated_at: datetime | None = Field(default=None)

    @field_validator("id")
    @classmethod
    def _strip_id(cls, value: str) -> str:
        return value.strip()

    @field_validator("depends_on", mode="before")
    @classmethod
    def _ensure_sequence(cls, value):
        if value is None:
            return ()
        if isinstance(value, str):
            return (value,)
        return tuple(str(item).strip() for item in value)

    @property
    def task_id(self) -> TaskId:
        return TaskId.parse(self.id)


class SessionSummary(BaseModel):
    """What remains of a session once it has ended."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    ordinal: int = Field(..., ge=1)
    state: SessionState
    counters: TaskCost = Field(default_factory=TaskCost)
    completed: tuple[str, ...] = ()
    termination_reason: TerminationReason | None = None
    limit: LimitReason | None = None
    outcome: CheckpointOutcome | None = None
    commit_ref: str | None = None
    interrupted_task: str | None = None
    detail: str | None = None
    started_at: datetime | None = None
    ended_at: datetime | None = None


class VerificationHold(BaseModel):
    """Work whose verification failed and must pass before new tasks are dispatched."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    session: int = Field(..., ge=1)
    task_ids: tuple[str, ...] = ()
    detected_at: datetime | None = None


class ProgressRecord(BaseModel):
    """Persisted snapshot of the task graph plus session history."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    version: int = 1
    title: str | None = None
    tasks: tuple[Task, ...] = ()
    sessions: tuple[SessionSummary, ...] = ()
    verification_hold: VerificationHold | None = None
    updated_at: datetime | None = None

    @property
    def last_session(self) -> SessionSummary | None:
        return self.sessions[-1] if self.sessions else None

    @property
    def next_ordinal(self) -> int:
        return max((summary.ordinal for summary in self.sessions), default=0) + 1

    def status_counts(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for task in self.tasks:
            counts[task.status.value] = counts.get(task.status.value, 0) + 1
        return counts


__all__ = [
    "CheckpointOutcome",
    "LimitReason",
    "ProgressRecord",
    "SessionState",
    "SessionSummary",
    "Task",
    "TaskCost",
    "TaskId",
    "TaskStatus",
    "TerminationReason",
    "VerificationHold",
]
