from __future__ import annotations

import logging
from pathlib import Path

import pytest
from fastmcp import FastMCP

from stint_mcp.config import StintSettings
from stint_mcp.executor import FakeExecutor, FakeVerifier
from stint_mcp.graph import ProgressRecord, Task, TaskStatus, VerificationHold
from stint_mcp.policy import PolicyLoadError
from stint_mcp.server import build_collaborators, create_server
from stint_mcp.storage import ProgressFile


def make_settings(tmp_path: Path, **overrides) -> StintSettings:
    values = {
        "progress_path": tmp_path / "progress.json",
        "repo_path": tmp_path,
        "commit_enabled": False,
    }
    values.update(overrides)
    return StintSettings(**values)


def test_create_server_without_record(tmp_path: Path) -> None:
    server = create_server(make_settings(tmp_path))

    assert isinstance(server, FastMCP)
    payload = server.status_payload()
    assert payload["progress"]["error"] == "progress record not initialized"
    assert payload["session"]["active"] is False
    assert payload["policy"]["maxFilesPerSession"] == 10
    assert payload["collaborators"]["executor"]["available"] is False
    assert payload["collaborators"]["executor"]["error"] == "STINT_EXECUTOR_CMD is not set"
    assert server.startup_notices == []


def test_create_server_reports_interrupted_work(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    ProgressFile(tmp_path / "progress.json").write(
        ProgressRecord(
            tasks=(
                Task(id="1.1.1", status=TaskStatus.COMPLETE),
                Task(id="1.1.2", status=TaskStatus.IN_PROGRESS, depends_on=("1.1.1",)),
            ),
            verification_hold=VerificationHold(session=1, task_ids=("1.1.1",)),
        )
    )
    caplog.set_level(logging.WARNING, logger="stint_mcp.server")

    server = create_server(make_settings(tmp_path), executor=FakeExecutor(), verifier=FakeVerifier())

    kinds = [notice["kind"] for notice in server.startup_notices]
    assert kinds == ["interrupted-task", "verification-hold"]
    assert server.startup_notices[0]["task_id"] == "1.1.2"
    assert "it will be retried" in caplog.text
    payload = server.status_payload("req-1")
    assert payload["progress"]["in_progress"] == "1.1.2"
    assert payload["progress"]["error"] is None
    assert payload["collaborators"]["executor"]["available"] is True
    assert payload["request_id"] == "req-1"


def test_create_server_flags_corrupt_record(tmp_path: Path) -> None:
    (tmp_path / "progress.json").write_text("{broken", encoding="utf-8")

    server = create_server(make_settings(tmp_path))

    assert server.startup_notices[0]["kind"] == "corrupt-record"
    assert "not valid JSON" in server.status_payload()["progress"]["error"]


def test_create_server_rejects_missing_policy(tmp_path: Path) -> None:
    with pytest.raises(PolicyLoadError):
        create_server(make_settings(tmp_path, policy_path=tmp_path / "policy.yaml"))


def test_build_collaborators_reports_missing_commands(tmp_path: Path) -> None:
    settings = make_settings(
        tmp_path,
        executor_command=(str(tmp_path / "no-agent"),),
        verify_command=("sh", "-c", "exit 0"),
    )

    executor, verifier, committer, metadata = build_collaborators(settings)

    assert executor is None
    assert "Executable not found" in metadata["executor"]["error"]
    assert verifier is not None
    assert metadata["verifier"]["available"] is True
    assert committer is None
    assert metadata["committer"]["enabled"] is False
