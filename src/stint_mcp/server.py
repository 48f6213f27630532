"""FastMCP server bootstrap for Stint."""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from fastmcp import Context, FastMCP

from . import __version__
from .config import StintSettings, get_settings
from .executor import (
    CommandExecutor,
    CommandNotFoundError,
    CommandVerifier,
    Committer,
    Executor,
    GitCommitter,
    Verifier,
)
from .graph import CorruptGraphError
from .policy import PolicyLoader
from .storage import ProgressFile
from .tools import register_tools, summarize_record


def configure_logging(level: str) -> None:
    """Configure root logging for the Stint server."""

    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
    )


def build_collaborators(
    settings: StintSettings,
    *,
    executor: Executor | None = None,
    verifier: Verifier | None = None,
    committer: Committer | None = None,
) -> tuple[Executor | None, Verifier | None, Committer | None, dict[str, Any]]:
    """Create the executor, verifier and committer the settings describe.

    Collaborators passed in explicitly win over the configured commands. Missing
    executables are reported in the returned metadata instead of raising.
    """

    metadata: dict[str, Any] = {
        "executor": {"command": list(settings.executor_command), "available": False, "error": None},
        "verifier": {"command": list(settings.verify_command), "available": False, "error": None},
        "committer": {
            "repo_path": str(settings.repo_path),
            "enabled": settings.commit_enabled,
            "available": False,
            "error": None,
        },
    }

    if executor is None and settings.executor_command:
        try:
            executor = CommandExecutor(settings.executor_command, cwd=settings.repo_path)
        except CommandNotFoundError as exc:
            metadata["executor"]["error"] = str(exc)
    elif executor is None:
        metadata["executor"]["error"] = "STINT_EXECUTOR_CMD is not set"
    metadata["executor"]["available"] = executor is not None

    if verifier is None and settings.verify_command:
        try:
            verifier = CommandVerifier(settings.verify_command, cwd=settings.repo_path)
        except CommandNotFoundError as exc:
            metadata["verifier"]["error"] = str(exc)
    elif verifier is None:
        metadata["verifier"]["error"] = "STINT_VERIFY_CMD is not set"
    metadata["verifier"]["available"] = verifier is not None

    if committer is None and settings.commit_enabled:
        try:
            committer = GitCommitter(settings.repo_path)
        except CommandNotFoundError as exc:
            metadata["committer"]["error"] = str(exc)
    metadata["committer"]["available"] = committer is not None

    return executor, verifier, committer, metadata


def create_server(
    settings: Optional[StintSettings] = None,
    executor: Executor | None = None,
    verifier: Verifier | None = None,
    committer: Committer | None = None,
) -> FastMCP:
    """Instantiate the FastMCP server with the scheduler tools and status resource."""

    settings = settings or get_settings()
    logger = logging.getLogger(__name__)

    progress = ProgressFile(settings.progress_path)
    policy = PolicyLoader(settings.policy_path).load()
    executor, verifier, committer, collaborators = build_collaborators(
        settings, executor=executor, verifier=verifier, committer=committer
    )

    server = FastMCP(
        name="Stint MCP",
        version=__version__,
        instructions=(
            "Stint works through a dependency-ordered task plan in bounded sessions. "
            "Each session stops at its budget, verifies and commits its work, and "
            "records progress so the next session resumes where this one ended."
        ),
    )

    handles = register_tools(
        server,
        progress=progress,
        policy=policy,
        executor=executor,
        verifier=verifier,
        committer=committer,
    )

    startup_notices: list[dict[str, Any]] = []
    if progress.exists():
        try:
            record = progress.read()
        except CorruptGraphError as exc:
            startup_notices.append({"kind": "corrupt-record", "error": str(exc)})
            logger.error(
                "Progress record is unreadable; sessions will refuse to start",
                extra={"progress_path": str(progress.path), "error": str(exc)},
            )
        else:
            interrupted = [task.id for task in record.tasks if task.status.value == "in-progress"]
            if interrupted:
                startup_notices.append({"kind": "interrupted-task", "task_id": interrupted[0]})
                logger.warning(
                    "Task was in progress when the last session ended; it will be retried",
                    extra={"task_id": interrupted[0], "progress_path": str(progress.path)},
                )
            if record.verification_hold is not None:
                startup_notices.append(
                    {
                        "kind": "verification-hold",
                        "session": record.verification_hold.session,
                        "task_ids": list(record.verification_hold.task_ids),
                    }
                )
                logger.warning(
                    "Work from an earlier session failed verification and is held",
                    extra={
                        "held_session": record.verification_hold.session,
                        "held_tasks": list(record.verification_hold.task_ids),
                    },
                )

    def status_payload(request_id: str | None = None) -> dict[str, Any]:
        if progress.exists():
            try:
                progress_summary: dict[str, Any] = summarize_record(progress.read(), str(progress.path))
                progress_error: str | None = None
            except CorruptGraphError as exc:
                progress_summary = {"progress_path": str(progress.path)}
                progress_error = str(exc)
        else:
            progress_summary = {"progress_path": str(progress.path)}
            progress_error = "progress record not initialized"

        controller = handles.runtime["controller"]
        return {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "server_version": __version__,
            "log_level": settings.log_level,
            "policy": policy.model_dump(by_alias=True),
            "collaborators": collaborators,
            "progress": {**progress_summary, "error": progress_error},
            "session": {
                "active": controller is not None,
                "state": controller.state.value if controller is not None else None,
                "active_task": controller.active_task if controller is not None else None,
                "last_report": handles.runtime["last_report"],
            },
            "startup_notices": startup_notices,
            "request_id": request_id,
        }

    @server.resource(
        "resource://stint/progress",
        name="stint_progress",
        title="Stint Progress",
        description="Task statuses, session history and collaborator health for the Stint scheduler.",
        mime_type="application/json",
        tags={"status", "progress"},
    )
    def status_resource(context: Context) -> str:
        """Return a JSON string summarizing scheduler state."""

        return json.dumps(status_payload(getattr(context, "request_id", None)))

    setattr(server, "stint_settings", settings)
    setattr(server, "progress", progress)
    setattr(server, "policy", policy)
    setattr(server, "collaborators", collaborators)
    setattr(server, "startup_notices", startup_notices)
    setattr(server, "status_payload", status_payload)
    setattr(server, "tool_handles", handles)
    return server


def main() -> None:
    """Entry point for running the Stint MCP server via CLI."""

    settings = get_settings()
    configure_logging(settings.log_level)

    server = create_server(settings)
    collaborators = getattr(server, "collaborators", {})
    logging.getLogger(__name__).info(
        "Launching Stint MCP server",
        extra={
            "version": __version__,
            "log_level": settings.log_level,
            "progress_path": str(settings.progress_path),
            "executor_available": collaborators.get("executor", {}).get("available"),
            "verifier_available": collaborators.get("verifier", {}).get("available"),
        },
    )
    server.run()


if __name__ == "__main__":
    main()
