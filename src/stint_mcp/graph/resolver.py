"""Selection of the next task to dispatch."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from .models import Task, TaskStatus
from .store import TaskGraphStore


class ResolutionKind(str, Enum):
    ELIGIBLE = "eligible"
    GRAPH_COMPLETE = "graph-complete"
    GRAPH_BLOCKED = "graph-blocked"
    NO_ELIGIBLE_YET = "no-eligible-yet"


@dataclass(slots=True)
class Resolution:
    """Answer from the resolver: a task to run, or why there is none."""

    kind: ResolutionKind
    task: Task | None = None
    blocked: list[str] = field(default_factory=list)
    waiting: list[str] = field(default_factory=list)

    @property
    def eligible(self) -> bool:
        return self.kind == ResolutionKind.ELIGIBLE


class DependencyResolver:
    """Picks the pending task with the lowest id whose dependencies are complete.

    Lowest-id-first keeps the authored phase/session/task order as the execution
    order whenever several tasks are eligible at once.
    """

    def __init__(self, store: TaskGraphStore) -> None:
        self._store = store

    def next_eligible(self) -> Resolution:
        tasks = self._store.tasks()
        pending = [task for task in tasks if task.status == TaskStatus.PENDING]
        blocked = [task.id for task in tasks if task.status == TaskStatus.BLOCKED]

        for task in pending:
            if self._store.dependencies_complete(task.id):
                return Resolution(ResolutionKind.ELIGIBLE, task=task)

        in_progress = self._store.in_progress
        if not pending and in_progress is None:
            if blocked:
                return Resolution(ResolutionKind.GRAPH_BLOCKED, blocked=blocked)
            return Resolution(ResolutionKind.GRAPH_COMPLETE)

        waiting = [task.id for task in pending]
        if in_progress is None and blocked and all(self._has_blocked_ancestor(tid) for tid in waiting):
            return Resolution(ResolutionKind.GRAPH_BLOCKED, blocked=blocked, waiting=waiting)
        return Resolution(ResolutionKind.NO_ELIGIBLE_YET, blocked=blocked, waiting=waiting)

    def _has_blocked_ancestor(self, task_id: str) -> bool:
        return any(
            self._store.get(dep).status == TaskStatus.BLOCKED
            for dep in self._store.transitive_dependencies(task_id)
        )


__all__ = ["DependencyResolver", "Resolution", "ResolutionKind"]
