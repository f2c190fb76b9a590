"""Mark grid helpers. Grids are immutable; every helper returns a new grid."""

from __future__ import annotations

from typing import TYPE_CHECKING

from bingo.logic.cards import CARD_SIZE, FREE

if TYPE_CHECKING:
    from collections.abc import Collection

    from bingo.logic.cards import BingoCard, MarkGrid


def empty_marks() -> MarkGrid:
    return tuple(tuple(False for _ in range(CARD_SIZE)) for _ in range(CARD_SIZE))


def initial_marks(card: BingoCard) -> MarkGrid:
    """Fresh grid for a newly assigned card: only the free space is marked."""
    return tuple(tuple(value == FREE for value in row) for row in card)


def mark_number(card: BingoCard, marks: MarkGrid, number: int) -> MarkGrid:
    """Mark every cell holding the called number, keeping existing marks."""
    return tuple(
        tuple(marked or value == number for value, marked in zip(card_row, mark_row, strict=True))
        for card_row, mark_row in zip(card, marks, strict=True)
    )


def rebuild_marks(card: BingoCard, called_numbers: Collection[int]) -> MarkGrid:
    """Derive a grid from scratch: the free space plus every called number on the card."""
    called = set(called_numbers)
    return tuple(tuple(value == FREE or value in called for value in row) for row in card)


def can_toggle(card: BingoCard, row: int, col: int, called_numbers: Collection[int]) -> bool:
    """A cell may be toggled by hand only if it holds a number that has been called."""
    if not (0 <= row < CARD_SIZE and 0 <= col < CARD_SIZE):
        return False
    value = card[row][col]
    return value != FREE and value in called_numbers


def toggle_cell(marks: MarkGrid, row: int, col: int) -> MarkGrid:
    return tuple(
        tuple(not marked if (r, c) == (row, col) else marked for c, marked in enumerate(mark_row))
        for r, mark_row in enumerate(marks)
    )
