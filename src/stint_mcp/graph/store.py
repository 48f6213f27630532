"""In-memory task graph with validated status transitions.

The store is the only owner of task state. Callers hold task ids, never live task
objects: every accessor returns frozen models, and every transition replaces the
stored model. Callers persist ``snapshot()`` after each transition.
"""

from __future__ import annotations

from collections import deque
from datetime import datetime, timezone
from typing import Callable

from .models import (
    ProgressRecord,
    SessionSummary,
    Task,
    TaskId,
    TaskStatus,
    VerificationHold,
)


class CorruptGraphError(RuntimeError):
    """Raised when persisted state cannot be turned into a valid graph."""


class InvalidTransitionError(RuntimeError):
    """Raised when a status change would break a graph invariant."""


class TaskGraphStore:
    """Holds the phase/session/task graph, session history and verification hold."""

    def __init__(self, *, clock: Callable[[], datetime] | None = None) -> None:
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._tasks: dict[str, Task] = {}
        self._dependents: dict[str, set[str]] = {}
        self._title: str | None = None
        self._sessions: list[SessionSummary] = []
        self._hold: VerificationHold | None = None

    def load(self, record: ProgressRecord) -> None:
        """Rebuild the graph from a persisted record, validating every invariant."""

        parsed: dict[str, TaskId] = {}
        for task in record.tasks:
            try:
                task_id = TaskId.parse(task.id)
            except ValueError as exc:
                raise CorruptGraphError(str(exc)) from exc
            canonical = str(task_id)
            if canonical in parsed:
                raise CorruptGraphError(f"Duplicate task id: {canonical}")
            parsed[canonical] = task_id

        by_id: dict[str, Task] = {}
        for task in record.tasks:
            canonical = str(TaskId.parse(task.id))
            deps: list[str] = []
            for raw_dep in task.depends_on:
                try:
                    dep = str(TaskId.parse(raw_dep))
                except ValueError as exc:
                    raise CorruptGraphError(f"Task {canonical}: {exc}") from exc
                if dep == canonical:
                    raise CorruptGraphError(f"Task {canonical} depends on itself")
                if dep not in parsed:
                    raise CorruptGraphError(f"Task {canonical} depends on unknown task {dep}")
                if parsed[dep] > parsed[canonical]:
                    raise CorruptGraphError(
                        f"Task {canonical} depends on later task {dep}; dependencies must point backwards"
                    )
                if dep not in deps:
                    deps.append(dep)
            by_id[canonical] = task.model_copy(update={"id": canonical, "depends_on": tuple(deps)})

        in_progress = [task_id for task_id, task in by_id.items() if task.status == TaskStatus.IN_PROGRESS]
        if len(in_progress) > 1:
            raise CorruptGraphError(f"More than one task is in progress: {sorted(in_progress)}")

        for task_id, task in by_id.items():
            if task.status in (TaskStatus.COMPLETE, TaskStatus.IN_PROGRESS):
                unfinished = [dep for dep in task.depends_on if by_id[dep].status != TaskStatus.COMPLETE]
                if unfinished:
                    raise CorruptGraphError(
                        f"Task {task_id} is {task.status.value} but dependencies are not complete: {unfinished}"
                    )

        ordered = sorted(by_id.values(), key=lambda task: parsed[task.id])
        self._tasks = {task.id: task for task in ordered}
        self._dependents = {task_id: set() for task_id in self._tasks}
        for task in ordered:
            for dep in task.depends_on:
                self._dependents[dep].add(task.id)
        self._title = record.title
        self._sessions = list(record.sessions)
        self._hold = record.verification_hold

    @property
    def title(self) -> str | None:
        return self._title

    @property
    def sessions(self) -> list[SessionSummary]:
        return list(self._sessions)

    @property
    def verification_hold(self) -> VerificationHold | None:
        return self._hold

    @property
    def in_progress(self) -> Task | None:
        for task in self._tasks.values():
            if task.status == TaskStatus.IN_PROGRESS:
                return task
        return None

    def tasks(self) -> list[Task]:
        """Return tasks in identifier order."""

        return list(self._tasks.values())

    def get(self, task_id: str) -> Task:
        try:
            return self._tasks[task_id]
        except KeyError:
            raise KeyError(f"Task not found: {task_id}") from None

    def dependencies_complete(self, task_id: str) -> bool:
        return all(self._tasks[dep].status == TaskStatus.COMPLETE for dep in self.get(task_id).depends_on)

    def transitive_dependents(self, task_id: str) -> list[str]:
        """Every task that depends on ``task_id`` directly or through other tasks."""

        seen: set[str] = set()
        queue = deque(self._dependents.get(task_id, ()))
        while queue:
            current = queue.popleft()
            if current in seen:
                continue
            seen.add(current)
            queue.extend(self._dependents.get(current, ()))
        return [tid for tid in self._tasks if tid in seen]

    def transitive_dependencies(self, task_id: str) -> list[str]:
        seen: set[str] = set()
        queue = deque(self.get(task_id).depends_on)
        while queue:
            current = queue.popleft()
            if current in seen:
                continue
            seen.add(current)
            queue.extend(self._tasks[current].depends_on)
        return [tid for tid in self._tasks if tid in seen]

    def mark_in_progress(self, task_id: str) -> Task:
        task = self.get(task_id)
        active = self.in_progress
        if active is not None:
            raise InvalidTransitionError(
                f"Cannot start {task_id}: task {active.id} is already in progress"
            )
        if task.status != TaskStatus.PENDING:
            raise InvalidTransitionError(f"Cannot start {task_id}: status is {task.status.value}")
        if not self.dependencies_complete(task_id):
            raise InvalidTransitionError(f"Cannot start {task_id}: dependencies are not complete")
        return self._replace(task, status=TaskStatus.IN_PROGRESS)

    def mark_complete(self, task_id: str) -> Task:
        task = self.get(task_id)
        if task.status != TaskStatus.IN_PROGRESS:
            raise InvalidTransitionError(f"Cannot complete {task_id}: status is {task.status.value}")
        return self._replace(task, status=TaskStatus.COMPLETE)

    def mark_blocked(self, task_id: str, reason: str) -> list[str]:
        """Block ``task_id`` and every pending task downstream of it.

        Returns the ids that changed status, the originating task first.
        """

        task = self.get(task_id)
        if task.status not in (TaskStatus.PENDING, TaskStatus.IN_PROGRESS):
            raise InvalidTransitionError(f"Cannot block {task_id}: status is {task.status.value}")

        self._replace(task, status=TaskStatus.BLOCKED, blocked_reason=reason, blocked_by=None)
        changed = [task_id]
        for dependent_id in self.transitive_dependents(task_id):
            dependent = self._tasks[dependent_id]
            if dependent.status != TaskStatus.PENDING:
                continue
            self._replace(
                dependent,
                status=TaskStatus.BLOCKED,
                blocked_reason=f"dependency {task_id} blocked: {reason}",
                blocked_by=task_id,
            )
            changed.append(dependent_id)
        return changed

    def requeue_interrupted(self) -> str | None:
        """Return a task left in progress by an interrupted session to pending."""

        task = self.in_progress
        if task is None:
            return None
        self._replace(task, status=TaskStatus.PENDING)
        return task.id

    def unblock(self, task_id: str) -> list[str]:
        """Operator edit: release a blocked task and the tasks blocked because of it."""

        task = self.get(task_id)
        if task.status != TaskStatus.BLOCKED:
            raise InvalidTransitionError(f"Cannot unblock {task_id}: status is {task.status.value}")
        released = [task_id]
        self._replace(task, status=TaskStatus.PENDING, blocked_reason=None, blocked_by=None)
        for other in list(self._tasks.values()):
            if other.status == TaskStatus.BLOCKED and other.blocked_by == task_id:
                self._replace(other, status=TaskStatus.PENDING, blocked_reason=None, blocked_by=None)
                released.append(other.id)
        return released

    def remove(self, task_id: str) -> list[str]:
        """Plan edit: drop a task; pending tasks downstream of it become blocked.

        Direct dependents of the removed task are blocked on their own account.
        Anything further downstream, including tasks whose block had propagated
        from the removed task, is re-pointed at the direct dependent it descends
        from, so unblocking that dependent releases them.
        """

        task = self.get(task_id)
        if task.status == TaskStatus.IN_PROGRESS:
            raise InvalidTransitionError(f"Cannot remove {task_id}: it is in progress")

        affected = self.transitive_dependents(task_id)
        origins: dict[str, str] = {}
        for direct_id in affected:
            if task_id in self._tasks[direct_id].depends_on:
                for downstream_id in self.transitive_dependents(direct_id):
                    origins.setdefault(downstream_id, direct_id)

        blocked: list[str] = []
        for dependent_id in affected:
            dependent = self._tasks[dependent_id]
            if dependent.status == TaskStatus.PENDING:
                self._replace(
                    dependent,
                    status=TaskStatus.BLOCKED,
                    blocked_reason=f"dependency {task_id} removed",
                    blocked_by=origins.get(dependent_id),
                )
                blocked.append(dependent_id)
        for other in list(self._tasks.values()):
            if other.status == TaskStatus.BLOCKED and other.blocked_by == task_id:
                self._replace(other, blocked_by=origins.get(other.id))

        for dependent_id in self._dependents.pop(task_id, set()):
            dependent = self._tasks[dependent_id]
            self._tasks[dependent_id] = dependent.model_copy(
                update={"depends_on": tuple(dep for dep in dependent.depends_on if dep != task_id)}
            )
        for dep in task.depends_on:
            self._dependents[dep].discard(task_id)
        del self._tasks[task_id]
        return blocked

    def record_session(self, summary: SessionSummary) -> None:
        self._sessions.append(summary)

    def set_verification_hold(self, hold: VerificationHold | None) -> None:
        self._hold = hold

    def snapshot(self) -> ProgressRecord:
        return ProgressRecord(
            title=self._title,
            tasks=tuple(self._tasks.values()),
            sessions=tuple(self._sessions),
            verification_hold=self._hold,
            updated_at=self._clock(),
        )

    def _replace(self, task: Task, **changes) -> Task:
        updated = task.model_copy(update={**changes, "updated_at": self._clock()})
        self._tasks[task.id] = updated
        return updated


__all__ = [
    "CorruptGraphError",
    "InvalidTransitionError",
    "TaskGraphStore",
]
