"""
Number caller: draws the 1-75 numbers in a uniformly random order.
"""

from __future__ import annotations

import random

from bingo.logic.cards import MAX_NUMBER, MIN_NUMBER


class NumberPool:
    """Remaining numbers plus the ordered history of numbers already called."""

    def __init__(self, rng: random.Random | None = None) -> None:
        self._rng = rng or random.Random()  # noqa: S311
        self._remaining: list[int] = list(range(MIN_NUMBER, MAX_NUMBER + 1))
        self._called: list[int] = []

    @property
    def called(self) -> tuple[int, ...]:
        return tuple(self._called)

    @property
    def remaining_count(self) -> int:
        return len(self._remaining)

    @property
    def is_exhausted(self) -> bool:
        return not self._remaining

    def draw(self) -> int | None:
        """Draw one number uniformly from the remaining pool, or None when empty."""
        if not self._remaining:
            return None
        index = self._rng.randrange(len(self._remaining))
        number = self._remaining.pop(index)
        self._called.append(number)
        return number
