"""Storage abstractions for Stint MCP."""

from .progress_file import ProgressFile, ProgressFileError, ProgressLockError

__all__ = [
    "ProgressFile",
    "ProgressFileError",
    "ProgressLockError",
]
