"""
Win pattern evaluation.

check_win is a pure function of a mark grid and a pattern. The host's
automatic checks and the client's advisory checks both rely on it reporting
the same verdict and the same cells for the same input, so line scan order is
fixed: rows top to bottom, columns left to right, the main diagonal, then the
anti-diagonal.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import BaseModel

from bingo.logic.cards import CARD_SIZE, Cell
from bingo.logic.enums import WinningPattern

if TYPE_CHECKING:
    from collections.abc import Sequence


_LAST = CARD_SIZE - 1

_ROWS: tuple[tuple[Cell, ...], ...] = tuple(tuple((r, c) for c in range(CARD_SIZE)) for r in range(CARD_SIZE))
_COLUMNS: tuple[tuple[Cell, ...], ...] = tuple(tuple((r, c) for r in range(CARD_SIZE)) for c in range(CARD_SIZE))
_MAIN_DIAGONAL: tuple[Cell, ...] = tuple((i, i) for i in range(CARD_SIZE))
_ANTI_DIAGONAL: tuple[Cell, ...] = tuple((i, _LAST - i) for i in range(CARD_SIZE))

LINES: tuple[tuple[Cell, ...], ...] = (*_ROWS, *_COLUMNS, _MAIN_DIAGONAL, _ANTI_DIAGONAL)

RECTANGLE_CELLS: tuple[Cell, ...] = tuple(
    (r, c) for r in range(CARD_SIZE) for c in range(CARD_SIZE) if r in (0, _LAST) or c in (0, _LAST)
)
FOUR_CORNER_CELLS: tuple[Cell, ...] = ((0, 0), (0, _LAST), (_LAST, 0), (_LAST, _LAST))
ALL_CELLS: tuple[Cell, ...] = tuple((r, c) for r in range(CARD_SIZE) for c in range(CARD_SIZE))


class WinCheck(BaseModel, frozen=True):
    """Verdict of check_win. winning_cells is empty when win is False."""

    win: bool
    winning_cells: tuple[Cell, ...] = ()


_NO_WIN = WinCheck(win=False)


def _is_marked(marks: Sequence[Sequence[bool]], row: int, col: int) -> bool:
    if row >= len(marks) or col >= len(marks[row]):
        return False
    return bool(marks[row][col])


def _all_marked(marks: Sequence[Sequence[bool]], cells: Sequence[Cell]) -> bool:
    return all(_is_marked(marks, r, c) for r, c in cells)


def _union(lines: Sequence[Sequence[Cell]]) -> tuple[Cell, ...]:
    """Concatenate lines in order, keeping the first occurrence of each cell."""
    return tuple(dict.fromkeys(cell for line in lines for cell in line))


_TWO_LINES_REQUIRED = 2

_FIXED_PATTERN_CELLS: dict[WinningPattern, tuple[Cell, ...]] = {
    WinningPattern.X_PATTERN: _union((_MAIN_DIAGONAL, _ANTI_DIAGONAL)),
    WinningPattern.RECTANGLE: RECTANGLE_CELLS,
    WinningPattern.FOUR_CORNERS: FOUR_CORNER_CELLS,
    WinningPattern.FULL_HOUSE: ALL_CELLS,
}


def check_win(marked_cells: Sequence[Sequence[bool]], pattern: WinningPattern) -> WinCheck:
    """Evaluate a mark grid against a winning pattern."""
    if pattern == WinningPattern.ANY_LINE:
        for line in LINES:
            if _all_marked(marked_cells, line):
                return WinCheck(win=True, winning_cells=line)
        return _NO_WIN
    if pattern == WinningPattern.TWO_LINES:
        complete = [line for line in LINES if _all_marked(marked_cells, line)]
        if len(complete) >= _TWO_LINES_REQUIRED:
            return WinCheck(win=True, winning_cells=_union(complete))
        return _NO_WIN
    required = _FIXED_PATTERN_CELLS.get(pattern)
    if required is None:
        raise ValueError(f"unknown winning pattern: {pattern}")
    if _all_marked(marked_cells, required):
        return WinCheck(win=True, winning_cells=required)
    return _NO_WIN
