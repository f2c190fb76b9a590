"""Persistence models for the data access layer."""

from enum import StrEnum

from pydantic import BaseModel, Field

type StoredCell = int | str
type StoredCard = tuple[tuple[StoredCell, ...], ...]


class RecordPeriod(StrEnum):
    """Time window for audit record queries."""

    LAST_7_DAYS = "7d"
    LAST_30_DAYS = "30d"
    ALL = "all"


class AuditSettings(BaseModel, frozen=True):
    """Snapshot of the frozen game settings taken when the game started."""

    pattern: str
    stake: float
    prize: float
    number_of_players: int
    player_card_ids: tuple[str, ...] = ()  # ids of every card in play at start
    language: str = "en"
    calling_mode: str = "AUTOMATIC"
    marking_mode: str = "AUTOMATIC"


class AuditedPlayer(BaseModel, frozen=True):
    """A card holder as it stood when the game ended."""

    name: str
    card: StoredCard
    final_marked_cells: tuple[tuple[bool, ...], ...]
    disconnected: bool = False


class AuditWinner(BaseModel, frozen=True):
    name: str
    winning_card: StoredCard
    winning_cells: tuple[tuple[int, int], ...]
    winning_number: int | None  # the call that completed the pattern


class GameAuditLog(BaseModel, frozen=True):
    """Sealed, append-only record of one complete game."""

    game_id: str
    start_time: str  # ISO-8601, UTC
    host_id: str
    host_name: str
    settings: AuditSettings
    players: tuple[AuditedPlayer, ...] = ()
    called_numbers: tuple[int, ...] = ()
    winner: AuditWinner | None = None  # None when the number pool ran out


class RecordFilter(BaseModel, frozen=True):
    """Criteria for listing audit records, newest first."""

    period: RecordPeriod = RecordPeriod.ALL
    host_id: str | None = None
    limit: int = Field(default=100, ge=1, le=1000)
