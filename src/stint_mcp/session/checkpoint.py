"""Verify-then-commit at the end of a session."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable

from ..executor.checks import CommitError, Committer, Verifier
from ..graph.models import CheckpointOutcome, SessionState, VerificationHold
from ..graph.store import TaskGraphStore
from ..storage import ProgressFile
from .models import CheckpointResult, Session

logger = logging.getLogger(__name__)


class CheckpointCoordinator:
    """Runs verification, commits verified work and persists the final record.

    The record is persisted whatever the verification result. Failed verification
    leaves a hold on the record that the next session has to clear before any new
    task is dispatched.
    """

    def __init__(
        self,
        verifier: Verifier,
        committer: Committer | None,
        progress: ProgressFile,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._verifier = verifier
        self._committer = committer
        self._progress = progress
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def checkpoint(self, session: Session, store: TaskGraphStore) -> CheckpointResult:
        passed = await self._verifier.verify()
        if not passed:
            held = tuple(session.completed)
            previous = store.verification_hold
            if previous is not None:
                held = tuple(dict.fromkeys(previous.task_ids + held))
            store.set_verification_hold(
                VerificationHold(session=session.ordinal, task_ids=held, detected_at=self._clock())
            )
            result = CheckpointResult(
                outcome=CheckpointOutcome.VERIFICATION_FAILED,
                detail="verification failed; commit skipped",
            )
            logger.warning(
                "Checkpoint verification failed",
                extra={"session": session.ordinal, "held_tasks": list(held)},
            )
        elif not session.completed:
            result = CheckpointResult(outcome=CheckpointOutcome.VERIFIED, detail="no completed tasks to commit")
        else:
            result = await self._commit(
                f"stint: session {session.ordinal} completed {len(session.completed)} task(s)",
                session.completed,
            )

        store.record_session(
            session.summarize(
                state=SessionState.STOPPED,
                ended_at=self._clock(),
                outcome=result.outcome,
                commit_ref=result.commit_ref,
                detail=result.detail,
            )
        )
        self._progress.write(store.snapshot())
        logger.info(
            "Checkpoint finished",
            extra={
                "session": session.ordinal,
                "outcome": result.outcome.value,
                "commit_ref": result.commit_ref,
                "progress_path": str(self._progress.path),
            },
        )
        return result

    async def resolve_hold(self, store: TaskGraphStore) -> CheckpointResult | None:
        """Re-run verification for work held by an earlier failed checkpoint.

        Returns ``None`` when there is no hold. On a pass the held tasks are
        committed and the hold is cleared; on a failure the hold stays.
        """

        hold = store.verification_hold
        if hold is None:
            return None

        if not await self._verifier.verify():
            logger.warning(
                "Verification hold still failing",
                extra={"held_session": hold.session, "held_tasks": list(hold.task_ids)},
            )
            return CheckpointResult(
                outcome=CheckpointOutcome.VERIFICATION_FAILED,
                detail=f"work from session {hold.session} still fails verification",
            )

        if hold.task_ids:
            result = await self._commit(
                f"stint: session {hold.session} verified {len(hold.task_ids)} task(s)",
                list(hold.task_ids),
            )
        else:
            result = CheckpointResult(outcome=CheckpointOutcome.VERIFIED)
        store.set_verification_hold(None)
        self._progress.write(store.snapshot())
        logger.info(
            "Verification hold cleared",
            extra={"held_session": hold.session, "outcome": result.outcome.value},
        )
        return result

    async def _commit(self, message: str, task_ids: list[str]) -> CheckpointResult:
        if self._committer is None:
            return CheckpointResult(outcome=CheckpointOutcome.VERIFIED, detail="commit disabled")
        try:
            commit_ref = await self._committer.commit(message, task_ids)
        except CommitError as exc:
            logger.error(
                "Commit failed; progress record remains valid, retry the commit manually",
                extra={"error": str(exc), "tasks": task_ids},
            )
            return CheckpointResult(outcome=CheckpointOutcome.COMMIT_FAILED, detail=str(exc))
        return CheckpointResult(outcome=CheckpointOutcome.COMMITTED, commit_ref=commit_ref)


__all__ = ["CheckpointCoordinator"]
