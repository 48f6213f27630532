"""Drives one bounded session from load to checkpoint."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

from ..executor.runner import Executor, serialize_outcome
from ..graph.models import CheckpointOutcome, SessionState, TerminationReason
from ..graph.resolver import DependencyResolver, ResolutionKind
from ..graph.store import TaskGraphStore
from ..policy import BudgetPolicy
from ..storage import ProgressFile
from .checkpoint import CheckpointCoordinator
from .models import Session, SessionReport

logger = logging.getLogger(__name__)


class SessionAbortedError(RuntimeError):
    """Raised when an unexpected error ends a session before its checkpoint."""

    def __init__(self, message: str, *, progress_path: Path, in_progress_task: str | None = None) -> None:
        super().__init__(message)
        self.progress_path = progress_path
        self.in_progress_task = in_progress_task


class SessionController:
    """Single-threaded control loop for one session.

    States move ``idle -> running -> stopping -> stopped`` or ``running -> aborted``.
    The progress lock is held from load until the checkpoint (or abort) finishes,
    and the record is persisted after every task transition.
    """

    def __init__(
        self,
        progress: ProgressFile,
        executor: Executor,
        coordinator: CheckpointCoordinator,
        policy: BudgetPolicy,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._progress = progress
        self._executor = executor
        self._coordinator = coordinator
        self._policy = policy
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._state = SessionState.IDLE
        self._stop_requested = False
        self._active_task: str | None = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def active_task(self) -> str | None:
        return self._active_task

    def request_stop(self) -> None:
        """Ask the session to stop before its next dispatch; the running task finishes."""

        self._stop_requested = True
        logger.info("Manual stop requested", extra={"active_task": self._active_task})

    async def run(self) -> SessionReport:
        if self._state != SessionState.IDLE:
            raise RuntimeError("SessionController runs exactly one session")

        with self._progress.lock():
            try:
                return await self._run_locked()
            except Exception as exc:
                self._state = SessionState.ABORTED
                logger.error(
                    "Session aborted",
                    extra={
                        "error": str(exc),
                        "progress_path": str(self._progress.path),
                        "in_progress_task": self._active_task,
                    },
                )
                raise SessionAbortedError(
                    f"Session aborted: {exc}",
                    progress_path=self._progress.path,
                    in_progress_task=self._active_task,
                ) from exc

    async def _run_locked(self) -> SessionReport:
        store = TaskGraphStore(clock=self._clock)
        store.load(self._progress.read())
        ordinal = max((summary.ordinal for summary in store.sessions), default=0) + 1
        session = Session(ordinal=ordinal, started_at=self._clock())
        self._state = SessionState.RUNNING
        logger.info(
            "Session started",
            extra={"session": ordinal, "progress_path": str(self._progress.path)},
        )

        requeued = store.requeue_interrupted()
        if requeued is not None:
            session.requeued_task = requeued
            self._persist(store)
            logger.warning(
                "Task interrupted by an earlier session returned to pending",
                extra={"session": ordinal, "task_id": requeued},
            )

        hold = await self._coordinator.resolve_hold(store)
        if hold is not None and hold.outcome == CheckpointOutcome.VERIFICATION_FAILED:
            return self._abort(store, session, outcome=hold.outcome, detail=hold.detail)
        if hold is not None and hold.outcome == CheckpointOutcome.COMMIT_FAILED:
            session.notes.append(f"commit of previously held work failed: {hold.detail}")

        resolver = DependencyResolver(store)
        retried = False
        while True:
            if self._stop_requested:
                session.termination_reason = TerminationReason.MANUAL_STOP
                break

            resolution = resolver.next_eligible()
            if resolution.kind == ResolutionKind.GRAPH_COMPLETE:
                session.termination_reason = TerminationReason.GRAPH_EXHAUSTED
                break
            if resolution.kind == ResolutionKind.NO_ELIGIBLE_YET and not retried:
                retried = True
                logger.debug("No eligible task yet; polling once more", extra={"waiting": resolution.waiting})
                continue
            if resolution.kind != ResolutionKind.ELIGIBLE:
                return self._abort(
                    store,
                    session,
                    outcome=CheckpointOutcome.GRAPH_BLOCKED,
                    detail=f"blocked={resolution.blocked} waiting={resolution.waiting}",
                )

            retried = False
            task = store.mark_in_progress(resolution.task.id)
            self._active_task = task.id
            self._persist(store)
            logger.info("Dispatching task", extra={"session": ordinal, "task_id": task.id})

            outcome = await self._executor.execute(task)
            logger.debug("Task finished: %s", serialize_outcome(outcome))

            if outcome.ok:
                store.mark_complete(task.id)
                session.completed.append(task.id)
            else:
                changed = store.mark_blocked(task.id, outcome.detail or "executor reported failure")
                logger.warning(
                    "Task failed and was blocked",
                    extra={"session": ordinal, "task_id": task.id, "blocked": changed, "detail": outcome.detail},
                )
            self._active_task = None
            session.tracker.record(outcome.cost)
            self._persist(store)

            limit = session.tracker.exceeded(self._policy)
            if limit is not None:
                session.termination_reason = TerminationReason.BUDGET_EXHAUSTED
                session.limit = limit
                logger.info(
                    "Session budget reached",
                    extra={"session": ordinal, "limit": limit.value, **session.tracker.counters.model_dump()},
                )
                break

        self._state = SessionState.STOPPING
        result = await self._coordinator.checkpoint(session, store)
        self._state = SessionState.STOPPED
        logger.info(
            "Session stopped",
            extra={
                "session": ordinal,
                "termination_reason": session.termination_reason.value,
                "outcome": result.outcome.value,
                "progress_path": str(self._progress.path),
            },
        )
        return SessionReport(
            ordinal=ordinal,
            state=self._state,
            progress_path=self._progress.path,
            termination_reason=session.termination_reason,
            limit=session.limit,
            outcome=result.outcome,
            completed=list(session.completed),
            commit_ref=result.commit_ref,
            detail=session.describe(result.detail),
        )

    def _abort(
        self,
        store: TaskGraphStore,
        session: Session,
        *,
        outcome: CheckpointOutcome,
        detail: str | None,
    ) -> SessionReport:
        self._state = SessionState.ABORTED
        in_progress = store.in_progress
        store.record_session(
            session.summarize(
                state=SessionState.ABORTED,
                ended_at=self._clock(),
                outcome=outcome,
                interrupted_task=in_progress.id if in_progress else None,
                detail=detail,
            )
        )
        self._persist(store)
        logger.error(
            "Session aborted",
            extra={
                "session": session.ordinal,
                "outcome": outcome.value,
                "detail": detail,
                "progress_path": str(self._progress.path),
                "in_progress_task": in_progress.id if in_progress else None,
            },
        )
        return SessionReport(
            ordinal=session.ordinal,
            state=self._state,
            progress_path=self._progress.path,
            outcome=outcome,
            completed=list(session.completed),
            in_progress_task=in_progress.id if in_progress else None,
            detail=session.describe(detail),
        )

    def _persist(self, store: TaskGraphStore) -> None:
        self._progress.write(store.snapshot())


__all__ = ["SessionAbortedError", "SessionController"]
