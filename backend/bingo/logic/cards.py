"""
Bingo card generation and validation.

A card is a 5x5 grid indexed [row][col]. Column c (0=B .. 4=O) may only hold
numbers from its own sub-range of 1-75, the centre cell is always FREE, and
the 24 numbers on a card are pairwise distinct.
"""

from __future__ import annotations

import random
from typing import TYPE_CHECKING, Literal

from pydantic import BaseModel

from bingo.logic.enums import CellErrorCode
from bingo.logic.exceptions import CardValidationError

if TYPE_CHECKING:
    from collections.abc import Sequence

FREE: Literal["FREE"] = "FREE"

CARD_SIZE = 5
CENTER = 2
BINGO_LETTERS = ("B", "I", "N", "G", "O")

# Inclusive (low, high) per column
COLUMN_RANGES: tuple[tuple[int, int], ...] = (
    (1, 15),
    (16, 30),
    (31, 45),
    (46, 60),
    (61, 75),
)

MIN_NUMBER = 1
MAX_NUMBER = 75

type BingoNumber = int | Literal["FREE"]
type BingoCard = tuple[tuple[BingoNumber, ...], ...]
type MarkGrid = tuple[tuple[bool, ...], ...]
type Cell = tuple[int, int]


class CellError(BaseModel, frozen=True):
    """A single offending cell found while validating a card."""

    row: int
    col: int
    code: CellErrorCode


def letter_for_number(number: int) -> str:
    """Return the column letter (B/I/N/G/O) a called number belongs to."""
    for letter, (low, high) in zip(BINGO_LETTERS, COLUMN_RANGES, strict=True):
        if low <= number <= high:
            return letter
    raise ValueError(f"number out of range: {number}")


def generate_card(rng: random.Random | None = None) -> BingoCard:
    """Generate a random valid card.

    Each column draws without replacement from its own range: five numbers
    for B/I/G/O, four for N with FREE placed at the centre.
    """
    rng = rng or random.Random()  # noqa: S311
    columns: list[list[BingoNumber]] = []
    for col, (low, high) in enumerate(COLUMN_RANGES):
        count = CARD_SIZE - 1 if col == CENTER else CARD_SIZE
        drawn: list[BingoNumber] = list(rng.sample(range(low, high + 1), count))
        if col == CENTER:
            drawn.insert(CENTER, FREE)
        columns.append(drawn)
    return tuple(tuple(columns[col][row] for col in range(CARD_SIZE)) for row in range(CARD_SIZE))


def _cell_at(grid: Sequence[Sequence[object]], row: int, col: int) -> object:
    if row >= len(grid) or col >= len(grid[row]):
        return None
    return grid[row][col]


def _parse_cell(value: object) -> int | CellErrorCode:
    if value is None:
        return CellErrorCode.REQUIRED
    if isinstance(value, bool):
        return CellErrorCode.NOT_A_NUMBER
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            return CellErrorCode.REQUIRED
        try:
            return int(stripped)
        except ValueError:
            return CellErrorCode.NOT_A_NUMBER
    return CellErrorCode.NOT_A_NUMBER


def _check_grid(grid: Sequence[Sequence[object]], *, require_free_center: bool) -> BingoCard:
    """Validate every cell and collect all errors before raising."""
    errors: list[CellError] = []
    seen: set[int] = set()
    rows: list[list[BingoNumber]] = []

    for row in range(CARD_SIZE):
        cells: list[BingoNumber] = []
        for col in range(CARD_SIZE):
            raw = _cell_at(grid, row, col)
            if row == CENTER and col == CENTER:
                if require_free_center and raw != FREE:
                    errors.append(CellError(row=row, col=col, code=CellErrorCode.OUT_OF_RANGE))
                cells.append(FREE)
                continue

            parsed = _parse_cell(raw)
            if isinstance(parsed, CellErrorCode):
                errors.append(CellError(row=row, col=col, code=parsed))
                cells.append(0)
                continue

            low, high = COLUMN_RANGES[col]
            if not low <= parsed <= high:
                errors.append(CellError(row=row, col=col, code=CellErrorCode.OUT_OF_RANGE))
            elif parsed in seen:
                errors.append(CellError(row=row, col=col, code=CellErrorCode.DUPLICATE))
            seen.add(parsed)
            cells.append(parsed)
        rows.append(cells)

    if errors:
        raise CardValidationError(errors)
    return tuple(tuple(cells) for cells in rows)


def validate_manual_card(grid: Sequence[Sequence[object]]) -> BingoCard:
    """
    Validate a card typed in by hand.

    Cells may be ints or numeric strings; the centre is ignored and always
    becomes FREE. Raises CardValidationError listing every offending cell.
    """
    return _check_grid(grid, require_free_center=False)


def validate_card(card: Sequence[Sequence[object]]) -> BingoCard:
    """
    Validate a card received from a peer.

    Same rules as validate_manual_card, but the centre must already be FREE.
    """
    return _check_grid(card, require_free_center=True)


def cards_identical(a: Sequence[Sequence[object]], b: Sequence[Sequence[object]]) -> bool:
    """True iff all 25 cells are equal, FREE included."""
    return all(
        _cell_at(a, row, col) == _cell_at(b, row, col) for row in range(CARD_SIZE) for col in range(CARD_SIZE)
    )
