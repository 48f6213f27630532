"""Transient session state and the report handed back to callers."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from ..graph.models import (
    CheckpointOutcome,
    LimitReason,
    SessionState,
    SessionSummary,
    TerminationReason,
)
from .budget import BudgetTracker


@dataclass(slots=True)
class Session:
    """One bounded execution window. Discarded once summarized."""

    ordinal: int
    started_at: datetime
    tracker: BudgetTracker = field(default_factory=BudgetTracker)
    completed: list[str] = field(default_factory=list)
    termination_reason: TerminationReason | None = None
    limit: LimitReason | None = None
    requeued_task: str | None = None
    notes: list[str] = field(default_factory=list)

    def summarize(
        self,
        *,
        state: SessionState,
        ended_at: datetime,
        outcome: CheckpointOutcome | None = None,
        commit_ref: str | None = None,
        interrupted_task: str | None = None,
        detail: str | None = None,
    ) -> SessionSummary:
        return SessionSummary(
            ordinal=self.ordinal,
            state=state,
            counters=self.tracker.counters,
            completed=tuple(self.completed),
            termination_reason=self.termination_reason,
            limit=self.limit,
            outcome=outcome,
            commit_ref=commit_ref,
            interrupted_task=interrupted_task,
            detail=self.describe(detail),
            started_at=self.started_at,
            ended_at=ended_at,
        )

    def describe(self, detail: str | None = None) -> str | None:
        """Join session notes with an outcome detail for summaries and reports."""

        parts = [*self.notes, detail] if detail else list(self.notes)
        return "; ".join(parts) or None


@dataclass(slots=True)
class CheckpointResult:
    outcome: CheckpointOutcome
    commit_ref: str | None = None
    detail: str | None = None

    @property
    def ok(self) -> bool:
        return self.outcome in (CheckpointOutcome.COMMITTED, CheckpointOutcome.VERIFIED)


@dataclass(slots=True)
class SessionReport:
    """What a caller learns when a session stops or aborts."""

    ordinal: int
    state: SessionState
    progress_path: Path
    termination_reason: TerminationReason | None = None
    limit: LimitReason | None = None
    outcome: CheckpointOutcome | None = None
    completed: list[str] = field(default_factory=list)
    in_progress_task: str | None = None
    commit_ref: str | None = None
    detail: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "ordinal": self.ordinal,
            "state": self.state.value,
            "progress_path": str(self.progress_path),
            "termination_reason": self.termination_reason.value if self.termination_reason else None,
            "limit": self.limit.value if self.limit else None,
            "outcome": self.outcome.value if self.outcome else None,
            "completed": list(self.completed),
            "in_progress_task": self.in_progress_task,
            "commit_ref": self.commit_ref,
            "detail": self.detail,
        }
