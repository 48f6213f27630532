from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

import pytest

from stint_mcp.executor import FakeCommitter, FakeExecutor, FakeVerifier
from stint_mcp.graph import InvalidTransitionError, ProgressRecord, Task
from stint_mcp.policy import BudgetPolicy
from stint_mcp.storage import ProgressFile
from stint_mcp.tools import ToolHandles, _emit_log, register_tools


class StubTool:
    def __init__(self, fn, name):
        self.fn = fn
        self.name = name


class StubServer:
    def __init__(self) -> None:
        self._tools: dict[str, StubTool] = {}

    def tool(self, *args, **kwargs):
        provided_name = None
        if args and isinstance(args[0], str):
            provided_name = args[0]
        provided_name = kwargs.get("name", provided_name)

        def decorator(fn):
            tool_name = provided_name or fn.__name__
            tool = StubTool(fn, tool_name)
            self._tools[tool_name] = tool
            return tool

        return decorator


class StubLogger:
    def __init__(self) -> None:
        self.calls: list[tuple[str, str, dict[str, Any]]] = []

    def info(self, message: str, extra: dict[str, Any] | None = None) -> None:
        self.calls.append(("info", message, extra or {}))


class StubContext:
    def __init__(self) -> None:
        self.logger = StubLogger()


def write_graph(path: Path) -> ProgressFile:
    progress = ProgressFile(path)
    progress.write(
        ProgressRecord(
            title="demo",
            tasks=(
                Task(id="1.1.1", description="first"),
                Task(id="1.1.2", description="second", depends_on=("1.1.1",)),
                Task(id="1.2.1", description="third"),
            ),
        )
    )
    return progress


def register(
    progress: ProgressFile,
    *,
    executor=None,
    verifier=None,
    committer=None,
) -> tuple[StubServer, ToolHandles]:
    server = StubServer()
    handles = register_tools(
        server,  # type: ignore[arg-type]
        progress=progress,
        policy=BudgetPolicy(),
        executor=executor,
        verifier=verifier,
        committer=committer,
    )
    return server, handles


def test_register_tools_exposes_every_tool(tmp_path: Path) -> None:
    server, _ = register(ProgressFile(tmp_path / "progress.json"))

    assert sorted(server._tools) == [
        "next_task",
        "progress_status",
        "request_stop",
        "run_session",
        "unblock_task",
    ]


def test_progress_status_before_initialization(tmp_path: Path) -> None:
    _, handles = register(ProgressFile(tmp_path / "progress.json"))

    assert handles.progress_status.fn() == {
        "progress_path": str(tmp_path / "progress.json"),
        "initialized": False,
    }


def test_progress_status_summarizes_record(tmp_path: Path) -> None:
    _, handles = register(write_graph(tmp_path / "progress.json"))

    payload = handles.progress_status.fn()

    assert payload["initialized"] is True
    assert payload["title"] == "demo"
    assert payload["tasks"] == {"count": 3, "status_counts": {"pending": 3}}
    assert payload["active_session"] is None
    assert payload["last_session"] is None


def test_next_task_reports_lowest_eligible(tmp_path: Path) -> None:
    _, handles = register(write_graph(tmp_path / "progress.json"))

    payload = handles.next_task.fn()

    assert payload["kind"] == "eligible"
    assert payload["task"]["id"] == "1.1.1"
    assert payload["task"]["status"] == "pending"


def test_run_session_requires_collaborators(tmp_path: Path) -> None:
    _, handles = register(write_graph(tmp_path / "progress.json"))

    with pytest.raises(RuntimeError, match="must be configured"):
        asyncio.run(handles.run_session.fn())


def test_run_session_returns_report(tmp_path: Path) -> None:
    committer = FakeCommitter()
    _, handles = register(
        write_graph(tmp_path / "progress.json"),
        executor=FakeExecutor(),
        verifier=FakeVerifier(),
        committer=committer,
    )

    report = asyncio.run(handles.run_session.fn())

    assert report["state"] == "stopped"
    assert report["termination_reason"] == "graph-exhausted"
    assert report["completed"] == ["1.1.1", "1.1.2", "1.2.1"]
    assert report["commit_ref"] == "fake-0001"
    assert handles.runtime["controller"] is None
    assert handles.progress_status.fn()["last_report"] == report


def test_run_session_reports_graph_blocked_abort(tmp_path: Path) -> None:
    _, handles = register(
        write_graph(tmp_path / "progress.json"),
        executor=FakeExecutor({"1.1.1": False, "1.2.1": False}),
        verifier=FakeVerifier(),
        committer=FakeCommitter(),
    )

    report = asyncio.run(handles.run_session.fn())

    assert report["state"] == "aborted"
    assert report["outcome"] == "graph-blocked"
    assert handles.next_task.fn()["kind"] == "graph-blocked"


def test_run_session_reports_unexpected_abort(tmp_path: Path) -> None:
    def crash(task: Task) -> None:
        raise RuntimeError("agent vanished")

    _, handles = register(
        write_graph(tmp_path / "progress.json"),
        executor=FakeExecutor(on_execute=crash),
        verifier=FakeVerifier(),
        committer=FakeCommitter(),
    )

    report = asyncio.run(handles.run_session.fn())

    assert report["state"] == "aborted"
    assert "agent vanished" in report["error"]
    assert report["in_progress_task"] == "1.1.1"


def test_request_stop_without_session(tmp_path: Path) -> None:
    _, handles = register(write_graph(tmp_path / "progress.json"))

    assert handles.request_stop.fn() == {"requested": False, "reason": "no active session"}


def test_request_stop_ends_running_session(tmp_path: Path) -> None:
    holder: dict[str, ToolHandles] = {}
    executor = FakeExecutor(on_execute=lambda task: holder["handles"].request_stop.fn())
    _, handles = register(
        write_graph(tmp_path / "progress.json"),
        executor=executor,
        verifier=FakeVerifier(),
        committer=FakeCommitter(),
    )
    holder["handles"] = handles

    report = asyncio.run(handles.run_session.fn())

    assert report["termination_reason"] == "manual-stop"
    assert executor.invocations == ["1.1.1"]


def test_unblock_task_releases_blocked_work(tmp_path: Path) -> None:
    progress = write_graph(tmp_path / "progress.json")
    _, handles = register(
        progress,
        executor=FakeExecutor({"1.1.1": False}),
        verifier=FakeVerifier(),
        committer=FakeCommitter(),
    )
    asyncio.run(handles.run_session.fn())

    payload = handles.unblock_task.fn("1.1.1")

    assert payload == {"task_id": "1.1.1", "released": ["1.1.1", "1.1.2"]}
    assert progress.read().status_counts() == {"pending": 2, "complete": 1}
    with pytest.raises(InvalidTransitionError):
        handles.unblock_task.fn("1.1.1")


def test_emit_log_prefers_context_logger() -> None:
    context = StubContext()

    _emit_log(context, "info", "hello", extra={"task_id": "1.1.1"})  # type: ignore[arg-type]

    assert context.logger.calls == [("info", "hello", {"task_id": "1.1.1"})]


def test_emit_log_falls_back_to_module_logger(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level("INFO", logger="stint_mcp.tools")

    _emit_log(None, "info", "fallback", extra={"task_id": "1.1.1"})

    assert "fallback" in caplog.text
