"""Session control: budget tracking, the control loop and checkpoints."""

from .budget import BudgetTracker
from .checkpoint import CheckpointCoordinator
from .controller import SessionAbortedError, SessionController
from .models import CheckpointResult, Session, SessionReport

__all__ = [
    "BudgetTracker",
    "CheckpointCoordinator",
    "CheckpointResult",
    "Session",
    "SessionAbortedError",
    "SessionController",
    "SessionReport",
]
