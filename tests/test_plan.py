from __future__ import annotations

from pathlib import Path
import textwrap

import pytest

from stint_mcp.graph import (
    PlanLoadError,
    TaskGraphStore,
    TaskStatus,
    load_plan,
    merge_plan,
    record_from_plan,
)


def write_plan(path: Path, body: str) -> Path:
    path.write_text(textwrap.dedent(body).strip() + "\n", encoding="utf-8")
    return path


BASE_PLAN = """
title: Billing port
tasks:
  - id: 1.1.1
    description: Extract invoice model
    estimate: {files: 2, lines: 120, tests: 1}
  - id: 1.1.2
    description: Persist invoices
    depends_on: [1.1.1]
  - id: 1.2.1
    description: Invoice API
    depends_on: 1.1.2
"""


def test_load_plan_parses_tasks(tmp_path: Path) -> None:
    plan = load_plan(write_plan(tmp_path / "plan.yaml", BASE_PLAN))

    assert plan.title == "Billing port"
    assert [item.id for item in plan.tasks] == ["1.1.1", "1.1.2", "1.2.1"]
    assert plan.tasks[0].estimate.files == 2
    assert plan.tasks[2].depends_on == ["1.1.2"]


def test_plan_rejects_runtime_fields(tmp_path: Path) -> None:
    path = write_plan(
        tmp_path / "plan.yaml",
        """
        tasks:
          - id: 1.1.1
            status: complete
        """,
    )

    with pytest.raises(PlanLoadError, match="validation error"):
        load_plan(path)


def test_load_plan_reports_missing_file(tmp_path: Path) -> None:
    with pytest.raises(PlanLoadError, match="Cannot read plan"):
        load_plan(tmp_path / "missing.yaml")


def test_record_from_plan_starts_everything_pending(tmp_path: Path) -> None:
    record = record_from_plan(load_plan(write_plan(tmp_path / "plan.yaml", BASE_PLAN)))

    assert record.title == "Billing port"
    assert {task.status for task in record.tasks} == {TaskStatus.PENDING}
    assert record.sessions == ()


def test_record_from_plan_rejects_invalid_graph(tmp_path: Path) -> None:
    path = write_plan(
        tmp_path / "plan.yaml",
        """
        tasks:
          - id: 1.1.1
            depends_on: [1.1.5]
        """,
    )

    with pytest.raises(PlanLoadError, match="not a valid task graph"):
        record_from_plan(load_plan(path))


def _record_with_first_task_complete(tmp_path: Path):
    record = record_from_plan(load_plan(write_plan(tmp_path / "plan.yaml", BASE_PLAN)))
    store = TaskGraphStore()
    store.load(record)
    store.mark_in_progress("1.1.1")
    store.mark_complete("1.1.1")
    return store.snapshot()


def test_merge_keeps_status_and_adds_new_tasks(tmp_path: Path) -> None:
    record = _record_with_first_task_complete(tmp_path)
    edited = write_plan(
        tmp_path / "edited.yaml",
        """
        title: Billing port
        tasks:
          - id: 1.1.1
            description: Extract invoice and line-item models
          - id: 1.1.2
            description: Persist invoices
            depends_on: [1.1.1]
          - id: 1.1.3
            description: Backfill script
            depends_on: [1.1.1]
          - id: 1.2.1
            description: Invoice API
            depends_on: [1.1.2]
        """,
    )

    merged, blocked = merge_plan(record, load_plan(edited))

    by_id = {task.id: task for task in merged.tasks}
    assert blocked == []
    assert by_id["1.1.1"].status == TaskStatus.COMPLETE
    assert by_id["1.1.1"].description == "Extract invoice and line-item models"
    assert by_id["1.1.3"].status == TaskStatus.PENDING
    assert [task.id for task in merged.tasks] == ["1.1.1", "1.1.2", "1.1.3", "1.2.1"]


def test_merge_blocks_dependents_of_removed_tasks(tmp_path: Path) -> None:
    record = _record_with_first_task_complete(tmp_path)
    edited = write_plan(
        tmp_path / "edited.yaml",
        """
        tasks:
          - id: 1.1.1
            description: Extract invoice model
          - id: 1.2.1
            description: Invoice API
        """,
    )

    merged, blocked = merge_plan(record, load_plan(edited))

    by_id = {task.id: task for task in merged.tasks}
    assert blocked == ["1.2.1"]
    assert by_id["1.2.1"].status == TaskStatus.BLOCKED
    assert by_id["1.2.1"].blocked_reason == "dependency 1.1.2 removed"
    assert by_id["1.2.1"].blocked_by is None
    assert merged.title == "Billing port"


def test_merge_rejects_dangling_dependency_on_removed_task(tmp_path: Path) -> None:
    record = _record_with_first_task_complete(tmp_path)
    edited = write_plan(
        tmp_path / "edited.yaml",
        """
        tasks:
          - id: 1.1.1
          - id: 1.2.1
            depends_on: [1.1.2]
        """,
    )

    with pytest.raises(PlanLoadError, match="not a valid task graph"):
        merge_plan(record, load_plan(edited))


def test_merge_matches_ids_written_with_leading_zeros(tmp_path: Path) -> None:
    record = _record_with_first_task_complete(tmp_path)
    edited = write_plan(
        tmp_path / "edited.yaml",
        """
        tasks:
          - id: "01.1.1"
            description: Extract invoice model
          - id: 1.1.2
            depends_on: ["01.1.1"]
          - id: 1.2.1
            depends_on: [1.1.2]
        """,
    )

    merged, blocked = merge_plan(record, load_plan(edited))

    by_id = {task.id: task for task in merged.tasks}
    assert blocked == []
    assert by_id["1.1.1"].status == TaskStatus.COMPLETE
    assert by_id["1.1.2"].depends_on == ("1.1.1",)
