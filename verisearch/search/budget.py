"""
Search Budget
==============

Bounds the number of generation calls one search run may issue.
Controllers reserve slots before every batch; once the budget is spent
``reserve`` raises BudgetExceeded, which controllers treat as a normal
stop (``stop_reason="budget_exhausted"``).
"""

from __future__ import annotations

import logging

from verisearch.errors import BudgetExceeded, InvalidConfiguration

logger = logging.getLogger("verisearch.search.budget")


class SearchBudget:
    """
    Generation-call budget for one search run.

    Args:
        max_generations: Total generation calls allowed.
    """

    def __init__(self, max_generations: int):
        if max_generations < 1:
            raise InvalidConfiguration(f"max_generations must be >= 1, got {max_generations}")
        self.max_generations = max_generations
        self.used = 0

    @property
    def remaining(self) -> int:
        return self.max_generations - self.used

    @property
    def exhausted(self) -> bool:
        return self.remaining <= 0

    def reserve(self, n: int) -> int:
        """
        Reserve up to ``n`` generation calls.

        Returns:
            Number of calls granted (``min(n, remaining)``).

        Raises:
            BudgetExceeded: if no calls remain.
        """
        if self.exhausted:
            raise BudgetExceeded(f"generation budget of {self.max_generations} exhausted")
        granted = min(n, self.remaining)
        if granted < n:
            logger.info(f"Budget: granting {granted} of {n} requested generations")
        self.used += granted
        return granted

    def __repr__(self) -> str:
        return f"SearchBudget(used={self.used}, max_generations={self.max_generations})"
