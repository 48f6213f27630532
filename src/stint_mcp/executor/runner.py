"""Task executors.

``CommandExecutor`` runs an external command once per task::

    <command...> <task-id> <description>

Exit status 0 means success. The last non-empty stdout line may be a JSON object
reporting the realized cost and an optional note::

    {"files": 3, "lines": 120, "tests": 1, "tokens": 18000, "detail": "added parser"}

Fields the report omits fall back to the task's declared estimate; when neither
reports tokens, the count is estimated from the size of the command output.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Mapping, Protocol, Sequence

from pydantic import ValidationError

from ..graph.models import Task, TaskCost
from .utils import CommandResult, resolve_command, run_command, tail

logger = logging.getLogger(__name__)

CHARS_PER_TOKEN = 4


@dataclass(slots=True)
class ExecutionOutcome:
    """Realized cost and result of running one task."""

    task_id: str
    ok: bool
    cost: TaskCost
    detail: str | None = None


class Executor(Protocol):
    async def execute(self, task: Task) -> ExecutionOutcome:
        ...


class CommandExecutor:
    """Execute tasks through an external command."""

    def __init__(self, command: Sequence[str], *, cwd: Path | None = None) -> None:
        self._command = resolve_command(command)
        self._cwd = cwd

    @property
    def command(self) -> tuple[str, ...]:
        return self._command

    async def execute(self, task: Task) -> ExecutionOutcome:
        result = await self._invoke(task.id, task.description)
        report = _parse_report(result.stdout)
        cost = _realized_cost(task, report, result)
        detail = report.get("detail") if isinstance(report.get("detail"), str) else None

        if result.ok:
            return ExecutionOutcome(task_id=task.id, ok=True, cost=cost, detail=detail)

        failure = detail or tail(result.stderr) or tail(result.stdout)
        return ExecutionOutcome(
            task_id=task.id,
            ok=False,
            cost=cost,
            detail=failure or f"executor exited with status {result.returncode}",
        )

    async def _invoke(self, *args: str) -> CommandResult:
        return await run_command([*self._command, *args], cwd=self._cwd)


class FakeExecutor:
    """Test double that reports scripted outcomes per task id.

    ``results`` maps a task id to ``False`` (fail), a ``TaskCost`` (succeed with that
    cost) or a full ``ExecutionOutcome``. Unlisted tasks succeed at their estimate.
    """

    def __init__(
        self,
        results: Mapping[str, bool | TaskCost | ExecutionOutcome] | None = None,
        *,
        on_execute: Callable[[Task], None] | None = None,
    ) -> None:
        self._results = dict(results or {})
        self._on_execute = on_execute
        self._invocations: list[str] = []

    @property
    def invocations(self) -> list[str]:
        return self._invocations

    async def execute(self, task: Task) -> ExecutionOutcome:
        self._invocations.append(task.id)
        if self._on_execute is not None:
            self._on_execute(task)

        scripted = self._results.get(task.id, True)
        if isinstance(scripted, ExecutionOutcome):
            return scripted
        if isinstance(scripted, TaskCost):
            return ExecutionOutcome(task_id=task.id, ok=True, cost=scripted)
        if scripted:
            return ExecutionOutcome(task_id=task.id, ok=True, cost=task.estimate)
        return ExecutionOutcome(
            task_id=task.id, ok=False, cost=TaskCost(), detail=f"scripted failure for {task.id}"
        )


def _parse_report(stdout: str) -> dict[str, Any]:
    lines = [line.strip() for line in stdout.splitlines() if line.strip()]
    if not lines:
        return {}
    try:
        report = json.loads(lines[-1])
    except json.JSONDecodeError:
        return {}
    return report if isinstance(report, dict) else {}


def _realized_cost(task: Task, report: Mapping[str, Any], result: CommandResult) -> TaskCost:
    estimate = task.estimate
    tokens = report.get("tokens")
    if tokens is None:
        tokens = estimate.tokens or (len(result.stdout) + len(result.stderr)) // CHARS_PER_TOKEN
    try:
        return TaskCost(
            files=report.get("files", estimate.files),
            lines=report.get("lines", estimate.lines),
            tests=report.get("tests", estimate.tests),
            tokens=tokens,
        )
    except ValidationError as exc:
        logger.warning(
            "Executor reported an invalid cost; using the declared estimate",
            extra={"task_id": task.id, "error": str(exc)},
        )
        return estimate


def serialize_outcome(outcome: ExecutionOutcome) -> str:
    """Serialize an outcome for logs and tool responses."""

    return json.dumps(
        {
            "task_id": outcome.task_id,
            "ok": outcome.ok,
            "cost": outcome.cost.model_dump(),
            "detail": outcome.detail,
        }
    )
