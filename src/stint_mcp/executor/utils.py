"""Subprocess helpers shared by the external collaborators."""

from __future__ import annotations

import asyncio
import os
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Sequence

_SANITIZED_VARS = {
    "PYTHONHOME",
    "PYTHONPATH",
    "VIRTUAL_ENV",
    "PIP_RESPECT_VIRTUALENV",
}


class CommandNotFoundError(RuntimeError):
    """Raised when an external command's executable cannot be located."""


@dataclass(slots=True)
class CommandResult:
    """Holds the outcome of an external command invocation."""

    args: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def sanitize_environment(additional: Mapping[str, str] | None = None) -> dict[str, str]:
    """Return a sanitized environment suitable for subprocess execution."""

    env = dict(os.environ)
    for key in _SANITIZED_VARS:
        env.pop(key, None)
    if additional:
        env.update(additional)
    return env


def resolve_command(command: Sequence[str]) -> tuple[str, ...]:
    """Resolve the executable of ``command`` to an absolute path."""

    if not command:
        raise CommandNotFoundError("No command configured")
    executable, *rest = command
    candidate = Path(executable)
    if candidate.is_absolute() or os.sep in executable:
        if candidate.exists() and candidate.is_file():
            return (str(candidate), *rest)
        raise CommandNotFoundError(f"Executable not found at {candidate}")

    binary = shutil.which(executable)
    if binary is None:
        raise CommandNotFoundError(f"Executable {executable!r} not found on PATH")
    return (binary, *rest)


async def run_command(
    args: Sequence[str],
    *,
    cwd: Path | None = None,
    env: Mapping[str, str] | None = None,
) -> CommandResult:
    process = await asyncio.create_subprocess_exec(
        *args,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        cwd=str(cwd) if cwd is not None else None,
        env=sanitize_environment(env),
    )
    stdout_bytes, stderr_bytes = await process.communicate()
    stdout = stdout_bytes.decode("utf-8", errors="replace")
    stderr = stderr_bytes.decode("utf-8", errors="replace")
    return CommandResult(args=tuple(args), returncode=process.returncode, stdout=stdout, stderr=stderr)


def tail(text: str, limit: int = 2000) -> str:
    text = text.strip()
    return text if len(text) <= limit else text[-limit:]
