"""Verification and commit collaborators used at checkpoint time."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol, Sequence

from .utils import CommandResult, resolve_command, run_command, tail

logger = logging.getLogger(__name__)


class CommitError(RuntimeError):
    """Raised when the commit operation fails (for example conflicting history)."""


class Verifier(Protocol):
    async def verify(self) -> bool:
        ...


class Committer(Protocol):
    async def commit(self, message: str, task_ids: Sequence[str]) -> str:
        ...


class CommandVerifier:
    """Runs the project's build and test command; exit status 0 is a pass."""

    def __init__(self, command: Sequence[str], *, cwd: Path | None = None) -> None:
        self._command = resolve_command(command)
        self._cwd = cwd
        self.last_result: CommandResult | None = None

    async def verify(self) -> bool:
        result = await run_command(self._command, cwd=self._cwd)
        self.last_result = result
        if not result.ok:
            logger.warning(
                "Verification command failed",
                extra={"returncode": result.returncode, "stderr_tail": tail(result.stderr, 500)},
            )
        return result.ok


class GitCommitter:
    """Commits everything in the working tree of ``repo_path``."""

    def __init__(self, repo_path: Path) -> None:
        self._repo_path = Path(repo_path)
        self._git = resolve_command(["git"])

    async def commit(self, message: str, task_ids: Sequence[str]) -> str:
        await self._run("add", "-A")
        body = "\n".join(f"- {task_id}" for task_id in task_ids)
        full_message = f"{message}\n\n{body}" if body else message
        await self._run("commit", "--allow-empty", "-m", full_message)
        return (await self._run("rev-parse", "HEAD")).stdout.strip()

    async def _run(self, *args: str) -> CommandResult:
        result = await run_command([*self._git, *args], cwd=self._repo_path)
        if not result.ok:
            raise CommitError(f"git {args[0]} failed: {tail(result.stderr or result.stdout, 500)}")
        return result


class FakeVerifier:
    """Test double returning scripted verification results (last one repeats)."""

    def __init__(self, results: Sequence[bool] = (True,)) -> None:
        self._results = list(results) or [True]
        self.calls = 0

    async def verify(self) -> bool:
        index = min(self.calls, len(self._results) - 1)
        self.calls += 1
        return self._results[index]


class FakeCommitter:
    """Test double recording commits; optionally fails like a rejected push."""

    def __init__(self, *, fail: bool = False) -> None:
        self._fail = fail
        self.commits: list[tuple[str, tuple[str, ...]]] = []

    async def commit(self, message: str, task_ids: Sequence[str]) -> str:
        if self._fail:
            raise CommitError("scripted commit failure")
        self.commits.append((message, tuple(task_ids)))
        return f"fake-{len(self.commits):04d}"
