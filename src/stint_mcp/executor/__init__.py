"""External collaborators: task executor, verification and commit."""

from .checks import (
    CommandVerifier,
    CommitError,
    Committer,
    FakeCommitter,
    FakeVerifier,
    GitCommitter,
    Verifier,
)
from .runner import CommandExecutor, ExecutionOutcome, Executor, FakeExecutor
from .utils import CommandNotFoundError, CommandResult

__all__ = [
    "CommandExecutor",
    "CommandNotFoundError",
    "CommandResult",
    "CommandVerifier",
    "CommitError",
    "Committer",
    "ExecutionOutcome",
    "Executor",
    "FakeCommitter",
    "FakeExecutor",
    "FakeVerifier",
    "GitCommitter",
    "Verifier",
]
