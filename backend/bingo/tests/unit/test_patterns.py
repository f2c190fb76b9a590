import pytest

from bingo.logic.cards import CARD_SIZE
from bingo.logic.enums import WinningPattern
from bingo.logic.patterns import (
    ALL_CELLS,
    FOUR_CORNER_CELLS,
    LINES,
    RECTANGLE_CELLS,
    check_win,
)


def grid_with(cells) -> tuple[tuple[bool, ...], ...]:
    marked = set(cells)
    return tuple(tuple((r, c) in marked for c in range(CARD_SIZE)) for r in range(CARD_SIZE))


ROW_2 = tuple((2, c) for c in range(CARD_SIZE))
COLUMN_0 = tuple((r, 0) for r in range(CARD_SIZE))
MAIN_DIAGONAL = tuple((i, i) for i in range(CARD_SIZE))
ANTI_DIAGONAL = tuple((i, CARD_SIZE - 1 - i) for i in range(CARD_SIZE))
X_CELLS = MAIN_DIAGONAL + tuple(c for c in ANTI_DIAGONAL if c not in MAIN_DIAGONAL)


class TestExactPatternCells:
    @pytest.mark.parametrize(
        ("pattern", "cells"),
        [
            (WinningPattern.ANY_LINE, ROW_2),
            (WinningPattern.TWO_LINES, ROW_2 + COLUMN_0),
            (WinningPattern.X_PATTERN, X_CELLS),
            (WinningPattern.RECTANGLE, RECTANGLE_CELLS),
            (WinningPattern.FOUR_CORNERS, FOUR_CORNER_CELLS),
            (WinningPattern.FULL_HOUSE, ALL_CELLS),
        ],
    )
    def test_exact_cells_win_and_one_missing_loses(self, pattern, cells):
        result = check_win(grid_with(cells), pattern)

        assert result.win is True
        assert set(result.winning_cells) == set(cells)
        for missing in cells:
            assert check_win(grid_with(c for c in cells if c != missing), pattern).win is False

    @pytest.mark.parametrize("pattern", list(WinningPattern))
    def test_empty_grid_never_wins(self, pattern):
        result = check_win(grid_with(()), pattern)

        assert result.win is False
        assert result.winning_cells == ()


class TestAnyLine:
    def test_every_line_wins(self):
        for line in LINES:
            assert check_win(grid_with(line), WinningPattern.ANY_LINE).winning_cells == line

    def test_rows_are_scanned_before_columns(self):
        result = check_win(grid_with(ROW_2 + COLUMN_0), WinningPattern.ANY_LINE)

        assert result.winning_cells == ROW_2

    def test_columns_are_scanned_before_diagonals(self):
        result = check_win(grid_with(COLUMN_0 + MAIN_DIAGONAL), WinningPattern.ANY_LINE)

        assert result.winning_cells == COLUMN_0

    def test_main_diagonal_before_anti_diagonal(self):
        result = check_win(grid_with(X_CELLS), WinningPattern.ANY_LINE)

        assert result.winning_cells == MAIN_DIAGONAL


class TestTwoLines:
    def test_single_line_is_not_enough(self):
        assert check_win(grid_with(ROW_2), WinningPattern.TWO_LINES).win is False

    def test_union_keeps_discovery_order_without_duplicates(self):
        result = check_win(grid_with(ROW_2 + COLUMN_0), WinningPattern.TWO_LINES)

        assert result.winning_cells == ROW_2 + tuple(c for c in COLUMN_0 if c != (2, 0))
        assert len(result.winning_cells) == 9

    def test_diagonals_count_as_lines(self):
        result = check_win(grid_with(X_CELLS), WinningPattern.TWO_LINES)

        assert result.win is True
        assert len(result.winning_cells) == 9


class TestGridShapes:
    def test_missing_rows_are_unmarked(self):
        short = grid_with(ALL_CELLS)[:3]

        assert check_win(short, WinningPattern.ANY_LINE).winning_cells == tuple((0, c) for c in range(CARD_SIZE))
        assert check_win(short, WinningPattern.FULL_HOUSE).win is False

    def test_deterministic(self):
        grid = grid_with(RECTANGLE_CELLS)

        assert check_win(grid, WinningPattern.RECTANGLE) == check_win(grid, WinningPattern.RECTANGLE)

    def test_pattern_wire_values(self):
        assert [p.value for p in WinningPattern] == [
            "Any Line",
            "Two Lines",
            "X Pattern",
            "Rectangle",
            "Four Corners",
            "Full House",
        ]
