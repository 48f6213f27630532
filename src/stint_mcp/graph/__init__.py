"""Task graph model, store, resolver and plan loading."""

from .models import (
    CheckpointOutcome,
    LimitReason,
    ProgressRecord,
    SessionState,
    SessionSummary,
    Task,
    TaskCost,
    TaskId,
    TaskStatus,
    TerminationReason,
    VerificationHold,
)
from .plan import Plan, PlanLoadError, load_plan, merge_plan, record_from_plan
from .resolver import DependencyResolver, Resolution, ResolutionKind
from .store import CorruptGraphError, InvalidTransitionError, TaskGraphStore

__all__ = [
    "CheckpointOutcome",
    "CorruptGraphError",
    "DependencyResolver",
    "InvalidTransitionError",
    "LimitReason",
    "Plan",
    "PlanLoadError",
    "ProgressRecord",
    "Resolution",
    "ResolutionKind",
    "SessionState",
    "SessionSummary",
    "Task",
    "TaskCost",
    "TaskGraphStore",
    "TaskId",
    "TaskStatus",
    "TerminationReason",
    "VerificationHold",
    "load_plan",
    "merge_plan",
    "record_from_plan",
]
