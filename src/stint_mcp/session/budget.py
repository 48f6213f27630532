"""Per-session resource accounting."""

from __future__ import annotations

from ..graph.models import LimitReason, TaskCost
from ..policy import BudgetPolicy


class BudgetTracker:
    """Running totals for one session, compared against a :class:`BudgetPolicy`.

    Totals only grow. A new session starts from a new tracker.
    """

    def __init__(self) -> None:
        self._counters = TaskCost()

    @property
    def counters(self) -> TaskCost:
        return self._counters

    def record(self, cost: TaskCost) -> TaskCost:
        self._counters = self._counters.plus(cost)
        return self._counters

    def token_fraction(self, policy: BudgetPolicy) -> float:
        return self._counters.tokens / policy.context_window_tokens

    def exceeded(self, policy: BudgetPolicy) -> LimitReason | None:
        """Return the highest-priority threshold reached, if any.

        Order: context-critical, then soft-limit, then hard-limit.
        """

        fraction = self.token_fraction(policy)
        counters = self._counters
        if fraction >= policy.max_token_fraction:
            return LimitReason.CONTEXT_CRITICAL
        if fraction >= policy.soft_token_fraction and counters.files >= policy.max_files_per_session:
            return LimitReason.SOFT_LIMIT
        if (
            counters.files >= policy.max_files_per_session
            or counters.lines >= policy.max_lines_per_session
            or counters.tests >= policy.max_tests_per_session
        ):
            return LimitReason.HARD_LIMIT
        return None


__all__ = ["BudgetTracker"]
