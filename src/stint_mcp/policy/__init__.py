"""Budget policy model and loader exports."""

from .loader import PolicyLoadError, PolicyLoader, load_policy
from .models import BudgetPolicy

__all__ = [
    "BudgetPolicy",
    "PolicyLoadError",
    "PolicyLoader",
    "load_policy",
]
