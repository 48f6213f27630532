"""Stint operator CLI: initialize, inspect and run sessions against a progress record."""

from __future__ import annotations

import argparse
import asyncio
import json
import signal
from pathlib import Path

from stint_mcp.config import StintSettings
from stint_mcp.executor import FakeCommitter, FakeExecutor, FakeVerifier
from stint_mcp.graph import (
    CorruptGraphError,
    InvalidTransitionError,
    PlanLoadError,
    TaskGraphStore,
    load_plan,
    merge_plan,
    record_from_plan,
)
from stint_mcp.policy import PolicyLoadError, PolicyLoader
from stint_mcp.server import build_collaborators, configure_logging
from stint_mcp.session import CheckpointCoordinator, SessionAbortedError, SessionController
from stint_mcp.storage import ProgressFile, ProgressFileError
from stint_mcp.tools import summarize_record


def load_settings(args: argparse.Namespace) -> StintSettings:
    settings = StintSettings()
    if getattr(args, "progress", None):
        settings.progress_path = Path(args.progress)
    return settings


def fail(message: str) -> None:
    print(message)
    raise SystemExit(1)


def cmd_init(args: argparse.Namespace) -> None:
    settings = load_settings(args)
    progress = ProgressFile(settings.progress_path)
    if progress.exists() and not args.force:
        fail(f"Progress record already exists at {progress.path}; use --force to replace it")

    try:
        record = record_from_plan(load_plan(Path(args.plan)))
        with progress.lock():
            archived = progress.archive() if args.force else None
            progress.write(record)
    except (PlanLoadError, ProgressFileError) as exc:
        fail(f"Init failed: {exc}")

    if archived is not None:
        print(f"Previous record archived to {archived}")
    print(f"Initialized {len(record.tasks)} task(s) at {progress.path}")


def cmd_replan(args: argparse.Namespace) -> None:
    settings = load_settings(args)
    progress = ProgressFile(settings.progress_path)
    try:
        plan = load_plan(Path(args.plan))
        with progress.lock():
            merged, blocked = merge_plan(progress.read(), plan)
            progress.write(merged)
    except (PlanLoadError, ProgressFileError, CorruptGraphError) as exc:
        fail(f"Replan failed: {exc}")

    print(json.dumps({"tasks_total": len(merged.tasks), "blocked_by_removal": blocked}, indent=2))


def cmd_status(args: argparse.Namespace) -> None:
    settings = load_settings(args)
    progress = ProgressFile(settings.progress_path)
    try:
        record = progress.read()
    except (ProgressFileError, CorruptGraphError) as exc:
        fail(f"Progress unavailable: {exc}")

    if args.json:
        print(json.dumps(summarize_record(record, str(progress.path)), indent=2))
        return
    for task in record.tasks:
        line = f"{task.id} [{task.status.value}] {task.description}"
        if task.blocked_reason:
            line += f" ({task.blocked_reason})"
        print(line)
    if record.verification_hold is not None:
        hold = record.verification_hold
        print(f"verification hold: session {hold.session} -> {', '.join(hold.task_ids) or '-'}")


def cmd_sessions(args: argparse.Namespace) -> None:
    settings = load_settings(args)
    progress = ProgressFile(settings.progress_path)
    try:
        sessions = list(progress.read().sessions)
    except (ProgressFileError, CorruptGraphError) as exc:
        fail(f"Progress unavailable: {exc}")

    if args.limit is not None and args.limit > 0:
        sessions = sessions[-args.limit :]
    print(json.dumps([summary.model_dump(mode="json", exclude_none=True) for summary in sessions], indent=2))


def cmd_run(args: argparse.Namespace) -> None:
    settings = load_settings(args)
    configure_logging(settings.log_level)
    progress = ProgressFile(settings.progress_path)

    try:
        policy = PolicyLoader(settings.policy_path).load()
    except PolicyLoadError as exc:
        fail(f"Policy unavailable: {exc}")

    if args.dry_run:
        executor = FakeExecutor({task_id: False for task_id in args.fail or ()})
        verifier = FakeVerifier()
        committer = FakeCommitter()
    else:
        executor, verifier, committer, metadata = build_collaborators(settings)
        if executor is None:
            fail(f"Executor unavailable: {metadata['executor']['error']}")
        if verifier is None:
            fail(f"Verifier unavailable: {metadata['verifier']['error']}")

    controller = SessionController(
        progress,
        executor,
        CheckpointCoordinator(verifier, committer, progress),
        policy,
    )
    previous_handler = signal.signal(signal.SIGINT, lambda *_: controller.request_stop())

    try:
        report = asyncio.run(controller.run())
    except SessionAbortedError as exc:
        fail(f"{exc} (progress: {exc.progress_path}, in progress: {exc.in_progress_task or '-'})")
    except ProgressFileError as exc:
        fail(f"Session refused: {exc}")
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    print(json.dumps(report.to_dict(), indent=2))
    if report.state.value != "stopped":
        raise SystemExit(2)


def cmd_unblock(args: argparse.Namespace) -> None:
    settings = load_settings(args)
    progress = ProgressFile(settings.progress_path)
    try:
        with progress.lock():
            store = TaskGraphStore()
            store.load(progress.read())
            released = store.unblock(args.task_id)
            progress.write(store.snapshot())
    except (ProgressFileError, CorruptGraphError, InvalidTransitionError) as exc:
        fail(f"Unblock failed: {exc}")
    except KeyError as exc:
        fail(f"Unblock failed: {exc.args[0]}")

    print(json.dumps({"released": released}, indent=2))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Stint task scheduler")
    parser.add_argument("--progress", help="Override STINT_PROGRESS_PATH")
    sub = parser.add_subparsers(dest="cmd")

    p_init = sub.add_parser("init", help="Create a progress record from a plan file")
    p_init.add_argument("plan")
    p_init.add_argument("--force", action="store_true", help="Archive and replace an existing record")
    p_init.set_defaults(func=cmd_init)

    p_replan = sub.add_parser("replan", help="Merge an edited plan into the progress record")
    p_replan.add_argument("plan")
    p_replan.set_defaults(func=cmd_replan)

    p_status = sub.add_parser("status", help="List tasks and their statuses")
    p_status.add_argument("--json", action="store_true", help="Output JSON summary")
    p_status.set_defaults(func=cmd_status)

    p_sessions = sub.add_parser("sessions", help="List recorded session summaries")
    p_sessions.add_argument(
        "--limit",
        type=int,
        default=None,
        help="If provided, show only the latest N sessions",
    )
    p_sessions.set_defaults(func=cmd_sessions)

    p_run = sub.add_parser("run", help="Run one bounded session")
    p_run.add_argument(
        "--dry-run",
        action="store_true",
        help="Use scripted collaborators; tasks succeed at their estimate",
    )
    p_run.add_argument("--fail", action="append", metavar="TASK_ID", help="With --dry-run, fail this task")
    p_run.set_defaults(func=cmd_run)

    p_unblock = sub.add_parser("unblock", help="Return a blocked task to pending")
    p_unblock.add_argument("task_id")
    p_unblock.set_defaults(func=cmd_unblock)

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not hasattr(args, "func"):
        parser.print_help()
        return
    args.func(args)


if __name__ == "__main__":
    main()
