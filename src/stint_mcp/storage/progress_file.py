"""Progress Record persistence.

The record lives in a single JSON document that is rewritten atomically (temporary
file in the same directory, fsync, ``os.replace``) so a crash never leaves a
truncated file behind. Sessions serialize through an advisory ``flock`` on a
sibling ``.lock`` file held for the whole session.
"""

from __future__ import annotations

import fcntl
import json
import logging
import os
import tempfile
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator

from pydantic import ValidationError

from ..graph.models import ProgressRecord
from ..graph.store import CorruptGraphError

logger = logging.getLogger(__name__)


class ProgressFileError(RuntimeError):
    """Raised when the progress file is missing or cannot be written."""


class ProgressLockError(ProgressFileError):
    """Raised when another session holds the progress lock."""


class ProgressFile:
    """Reads, writes and locks one Progress Record on disk."""

    def __init__(self, path: Path, *, lock_path: Path | None = None) -> None:
        self._path = Path(path)
        self._lock_path = Path(lock_path) if lock_path is not None else self._path.with_name(
            self._path.name + ".lock"
        )
        self._lock_fd: int | None = None

    @property
    def path(self) -> Path:
        return self._path

    @property
    def lock_path(self) -> Path:
        return self._lock_path

    @property
    def locked(self) -> bool:
        return self._lock_fd is not None

    def exists(self) -> bool:
        return self._path.exists()

    def read(self) -> ProgressRecord:
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError as exc:
            raise ProgressFileError(f"No progress record at {self._path}") from exc

        try:
            document = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise CorruptGraphError(f"Progress record {self._path} is not valid JSON: {exc}") from exc
        if not isinstance(document, dict):
            raise CorruptGraphError(f"Progress record {self._path} must be a JSON object")

        try:
            return ProgressRecord.model_validate(document)
        except ValidationError as exc:
            raise CorruptGraphError(f"Progress record {self._path} failed validation: {exc}") from exc

    def write(self, record: ProgressRecord) -> None:
        payload = record.model_dump(mode="json", exclude_none=True)
        text = json.dumps(payload, indent=2, ensure_ascii=True) + "\n"

        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_name: str | None = None
        try:
            with tempfile.NamedTemporaryFile(
                "w",
                delete=False,
                dir=str(self._path.parent),
                prefix=f".{self._path.name}.",
                suffix=".tmp",
                encoding="utf-8",
            ) as tmp:
                tmp_name = tmp.name
                tmp.write(text)
                tmp.flush()
                os.fsync(tmp.fileno())
            os.replace(tmp_name, self._path)
        except OSError as exc:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise ProgressFileError(f"Failed to write progress record {self._path}: {exc}") from exc

        logger.debug(
            "Progress record written",
            extra={"path": str(self._path), "tasks": len(record.tasks)},
        )

    def archive(self) -> Path | None:
        """Copy the current record next to it under ``history/`` and return the copy."""

        if not self._path.exists():
            return None
        history_dir = self._path.parent / "history"
        history_dir.mkdir(parents=True, exist_ok=True)
        stamp = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
        target = history_dir / f"{self._path.stem}-{stamp}{self._path.suffix}"
        target.write_text(self._path.read_text(encoding="utf-8"), encoding="utf-8")
        return target

    def acquire(self) -> None:
        if self._lock_fd is not None:
            raise ProgressLockError(f"Progress lock {self._lock_path} is already held by this process")

        self._lock_path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(str(self._lock_path), os.O_RDWR | os.O_CREAT, 0o644)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError as exc:
            os.close(fd)
            raise ProgressLockError(
                f"Another session holds the progress lock {self._lock_path}"
            ) from exc

        os.ftruncate(fd, 0)
        os.write(fd, f"{os.getpid()}\n".encode("utf-8"))
        self._lock_fd = fd
        logger.debug("Progress lock acquired", extra={"lock_path": str(self._lock_path)})

    def release(self) -> None:
        if self._lock_fd is None:
            return
        fd, self._lock_fd = self._lock_fd, None
        try:
            fcntl.flock(fd, fcntl.LOCK_UN)
        finally:
            os.close(fd)
        logger.debug("Progress lock released", extra={"lock_path": str(self._lock_path)})

    @contextmanager
    def lock(self) -> Iterator["ProgressFile"]:
        self.acquire()
        try:
            yield self
        finally:
            self.release()


__all__ = ["ProgressFile", "ProgressFileError", "ProgressLockError"]
