"""Authored plan files.

A plan is a YAML document produced outside the scheduler::

    title: Port the billing service
    tasks:
      - id: 1.1.1
        description: Extract the invoice model
        estimate: {files: 2, lines: 120, tests: 1}
      - id: 1.1.2
        description: Add invoice persistence
        depends_on: [1.1.1]

Plans carry no runtime state: ``status`` and the blocked fields belong to the
scheduler and are rejected here. Converting a plan yields a fresh Progress Record;
merging a re-authored plan into an existing record keeps the runtime state of every
task that survives the edit.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .models import ProgressRecord, Task, TaskCost, TaskId
from .store import CorruptGraphError, InvalidTransitionError, TaskGraphStore


class PlanLoadError(RuntimeError):
    """Raised when a plan file cannot be parsed, validated or applied."""


class PlanTask(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str
    description: str = ""
    estimate: TaskCost = Field(default_factory=TaskCost)
    depends_on: list[str] = Field(default_factory=list)

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value):
        return str(value).strip()

    @field_validator("depends_on", mode="before")
    @classmethod
    def _coerce_deps(cls, value):
        if value is None:
            return []
        if isinstance(value, (list, tuple)):
            return [str(item).strip() for item in value]
        return [str(value).strip()]


class Plan(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: str | None = None
    tasks: list[PlanTask] = Field(default_factory=list)


def load_plan(path: Path) -> Plan:
    """Parse and validate a YAML plan file."""

    path = Path(path)
    try:
        document = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise PlanLoadError(f"Cannot read plan {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise PlanLoadError(f"Failed to parse YAML in {path}: {exc}") from exc

    if document is None:
        document = {}
    try:
        return Plan.model_validate(document)
    except ValidationError as exc:
        raise PlanLoadError(f"Plan validation error in {path}: {exc}") from exc


def record_from_plan(plan: Plan, *, clock: Callable[[], datetime] | None = None) -> ProgressRecord:
    """Build a validated Progress Record with every task pending."""

    record = ProgressRecord(
        title=plan.title,
        tasks=tuple(
            Task(
                id=item.id,
                description=item.description,
                estimate=item.estimate,
                depends_on=tuple(item.depends_on),
            )
            for item in plan.tasks
        ),
    )
    store = TaskGraphStore(clock=clock)
    try:
        store.load(record)
    except CorruptGraphError as exc:
        raise PlanLoadError(f"Plan is not a valid task graph: {exc}") from exc
    return store.snapshot()


def _canonical_id(raw: str) -> str:
    try:
        return str(TaskId.parse(raw))
    except ValueError as exc:
        raise PlanLoadError(str(exc)) from exc


def merge_plan(
    record: ProgressRecord,
    plan: Plan,
    *,
    clock: Callable[[], datetime] | None = None,
) -> tuple[ProgressRecord, list[str]]:
    """Apply a re-authored plan to an existing record.

    Tasks present in both keep their status; their description, estimate and
    dependencies follow the plan. Tasks missing from the plan are removed, which
    blocks anything still pending downstream of them. Returns the merged record and
    the ids that became blocked by removals.
    """

    clock = clock or (lambda: datetime.now(timezone.utc))
    store = TaskGraphStore(clock=clock)
    store.load(record)

    planned = {_canonical_id(item.id): item for item in plan.tasks}
    blocked: list[str] = []
    for task in store.tasks():
        if task.id not in planned:
            try:
                blocked.extend(store.remove(task.id))
            except InvalidTransitionError as exc:
                raise PlanLoadError(f"Cannot drop task {task.id}: {exc}") from exc

    existing = {task.id: task for task in store.tasks()}
    merged: list[Task] = []
    for item in plan.tasks:
        current = existing.get(_canonical_id(item.id))
        if current is None:
            merged.append(
                Task(
                    id=item.id,
                    description=item.description,
                    estimate=item.estimate,
                    depends_on=tuple(item.depends_on),
                    updated_at=clock(),
                )
            )
            continue
        merged.append(
            current.model_copy(
                update={
                    "description": item.description,
                    "estimate": item.estimate,
                    "depends_on": tuple(item.depends_on),
                }
            )
        )

    candidate = ProgressRecord(
        title=plan.title or record.title,
        tasks=tuple(merged),
        sessions=record.sessions,
        verification_hold=record.verification_hold,
    )
    result = TaskGraphStore(clock=clock)
    try:
        result.load(candidate)
    except CorruptGraphError as exc:
        raise PlanLoadError(f"Merged plan is not a valid task graph: {exc}") from exc
    return result.snapshot(), blocked


__all__ = ["Plan", "PlanLoadError", "PlanTask", "load_plan", "merge_plan", "record_from_plan"]
