"""Tool registration for Stint MCP."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from fastmcp import Context, FastMCP

from ..executor import Committer, Executor, Verifier
from ..graph import DependencyResolver, ProgressRecord, Task, TaskGraphStore
from ..policy import BudgetPolicy
from ..session import CheckpointCoordinator, SessionAbortedError, SessionController
from ..storage import ProgressFile


@dataclass(slots=True)
class ToolHandles:
    progress_status: Any
    next_task: Any
    run_session: Any
    request_stop: Any
    unblock_task: Any
    runtime: dict[str, Any]


def _task_summary(task: Task) -> dict[str, Any]:
    summary: dict[str, Any] = {
        "id": task.id,
        "description": task.description,
        "status": task.status.value,
        "depends_on": list(task.depends_on),
        "estimate": task.estimate.model_dump(),
    }
    if task.blocked_reason:
        summary["blocked_reason"] = task.blocked_reason
    if task.blocked_by:
        summary["blocked_by"] = task.blocked_by
    return summary


def summarize_record(record: ProgressRecord, progress_path: str) -> dict[str, Any]:
    in_progress = [task.id for task in record.tasks if task.status.value == "in-progress"]
    last = record.last_session
    return {
        "progress_path": progress_path,
        "title": record.title,
        "tasks": {"count": len(record.tasks), "status_counts": record.status_counts()},
        "in_progress": in_progress[0] if in_progress else None,
        "verification_hold": (
            record.verification_hold.model_dump(mode="json") if record.verification_hold else None
        ),
        "last_session": last.model_dump(mode="json", exclude_none=True) if last else None,
        "sessions_total": len(record.sessions),
    }


def register_tools(
    server: FastMCP,
    *,
    progress: ProgressFile,
    policy: BudgetPolicy,
    executor: Executor | None,
    verifier: Verifier | None,
    committer: Committer | None,
) -> ToolHandles:
    """Register Stint's MCP tools on the server."""

    runtime: dict[str, Any] = {"controller": None, "last_report": None}

    def _progress_status(context: Context | None = None) -> dict[str, Any]:
        """Summarize the persisted progress record and any running session."""

        if not progress.exists():
            return {"progress_path": str(progress.path), "initialized": False}

        payload = summarize_record(progress.read(), str(progress.path))
        payload["initialized"] = True
        controller: SessionController | None = runtime["controller"]
        payload["active_session"] = (
            {"state": controller.state.value, "active_task": controller.active_task}
            if controller is not None
            else None
        )
        payload["last_report"] = runtime["last_report"]
        _emit_log(context, "debug", "Progress status requested", extra={"path": str(progress.path)})
        return payload

    def _next_task(context: Context | None = None) -> dict[str, Any]:
        """Report which task the next session would dispatch first."""

        store = TaskGraphStore()
        store.load(progress.read())
        resolution = DependencyResolver(store).next_eligible()
        response: dict[str, Any] = {
            "kind": resolution.kind.value,
            "blocked": resolution.blocked,
            "waiting": resolution.waiting,
        }
        if resolution.task is not None:
            response["task"] = _task_summary(resolution.task)
        if store.verification_hold is not None:
            response["verification_hold"] = store.verification_hold.model_dump(mode="json")
        _emit_log(context, "debug", "Next task resolved", extra={"kind": resolution.kind.value})
        return response

    async def _run_session(context: Context | None = None) -> dict[str, Any]:
        """Run one bounded session: dispatch tasks until a stop condition, then checkpoint."""

        if executor is None or verifier is None:
            raise RuntimeError("Executor and verify commands must be configured to run a session")
        if runtime["controller"] is not None:
            raise RuntimeError("A session is already running in this server")

        coordinator = CheckpointCoordinator(verifier, committer, progress)
        controller = SessionController(progress, executor, coordinator, policy)
        runtime["controller"] = controller
        try:
            report = (await controller.run()).to_dict()
        except SessionAbortedError as exc:
            report = {
                "state": "aborted",
                "error": str(exc),
                "progress_path": str(exc.progress_path),
                "in_progress_task": exc.in_progress_task,
            }
        finally:
            runtime["controller"] = None

        runtime["last_report"] = report
        _emit_log(
            context,
            "info" if report["state"] == "stopped" else "warning",
            "Session finished",
            extra={"state": report["state"], "progress_path": report["progress_path"]},
        )
        return report

    def _request_stop(context: Context | None = None) -> dict[str, Any]:
        """Stop the running session after its in-flight task finishes."""

        controller: SessionController | None = runtime["controller"]
        if controller is None:
            return {"requested": False, "reason": "no active session"}
        controller.request_stop()
        _emit_log(context, "info", "Stop requested", extra={"active_task": controller.active_task})
        return {"requested": True, "active_task": controller.active_task}

    def _unblock_task(task_id: str, context: Context | None = None) -> dict[str, Any]:
        """Return a blocked task, and the tasks blocked because of it, to pending."""

        with progress.lock():
            store = TaskGraphStore()
            store.load(progress.read())
            released = store.unblock(task_id)
            progress.write(store.snapshot())
        _emit_log(context, "info", "Task unblocked", extra={"task_id": task_id, "released": released})
        return {"task_id": task_id, "released": released}

    tool_status = server.tool(
        name="progress_status",
        description="Summarize task statuses, the last session and any verification hold.",
    )(_progress_status)

    tool_next = server.tool(
        name="next_task",
        description="Show the task the scheduler would dispatch next, or why none is eligible.",
    )(_next_task)

    tool_run = server.tool(
        name="run_session",
        description="Run one budget-bounded session and checkpoint it.",
    )(_run_session)

    tool_stop = server.tool(
        name="request_stop",
        description="Cooperatively stop the running session before its next task.",
    )(_request_stop)

    tool_unblock = server.tool(
        name="unblock_task",
        description="Release a blocked task and its propagated blocks back to pending.",
    )(_unblock_task)

    return ToolHandles(
        progress_status=tool_status,
        next_task=tool_next,
        run_session=tool_run,
        request_stop=tool_stop,
        unblock_task=tool_unblock,
        runtime=runtime,
    )


__all__ = ["register_tools", "summarize_record", "ToolHandles"]

logger = logging.getLogger(__name__)


def _emit_log(
    context: Context | None,
    level: str,
    message: str,
    *,
    extra: dict[str, Any] | None = None,
) -> None:
    """Best-effort logging that prefers the MCP context logger when available."""

    payload = extra or {}

    if context is not None:
        ctx_logger = getattr(context, "logger", None)
        if ctx_logger is not None:
            log_method = getattr(ctx_logger, level, None)
            if callable(log_method):
                log_method(message, extra=payload)
                return

    fallback = getattr(logger, level, logger.info)
    fallback(message, extra=payload)
