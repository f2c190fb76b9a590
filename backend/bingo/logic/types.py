"""
Pydantic models for card holders and roster views that cross component boundaries.
"""

from pydantic import BaseModel, Field

from bingo.logic.cards import BingoCard, Cell, MarkGrid
from bingo.logic.marks import empty_marks


class BingoPlayer(BaseModel, frozen=True):
    """
    A card holder in a hosted game.

    Remote players use their connection id; cards the host plays locally use
    a synthetic id and have is_human set. Instances are replaced, never
    mutated, and are kept after a disconnect so the audit record stays complete.
    """

    id: str
    name: str
    card: BingoCard | None = None
    marked_cells: MarkGrid = Field(default_factory=empty_marks)
    is_winner: bool = False
    winning_cells: tuple[Cell, ...] = ()
    is_human: bool = False
    is_visible: bool = True
    disconnected: bool = False

    @property
    def has_card(self) -> bool:
        return self.card is not None


class RosterEntry(BaseModel, frozen=True):
    """Public view of a roster member used in lobby messages."""

    id: str
    name: str
    disconnected: bool = False

    @classmethod
    def from_player(cls, player: BingoPlayer) -> "RosterEntry":
        return cls(id=player.id, name=player.name, disconnected=player.disconnected)
