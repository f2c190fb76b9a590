"""Lobby and frozen game settings for a hosted bingo game."""

from __future__ import annotations

from typing import Final

from pydantic import BaseModel, Field

from bingo.logic.cards import BingoCard
from bingo.logic.enums import CallingMode, Language, MarkingMode, WinningPattern

MIN_STAKE: Final = 1
MIN_TOTAL_CARDS: Final = 2
DEFAULT_PRIZE_SHARE: Final = 0.7
DEFAULT_CALL_INTERVAL_SECONDS: Final = 3.0
CALL_INTERVAL_OPTIONS: Final = (4.0, 3.0, 2.0)

# When several cards satisfy the pattern on the same call, the earliest
# roster entry wins. Roster order is join order, host cards first.
WINNER_TIE_BREAK: Final = "roster_order"


class SelectedCard(BaseModel, frozen=True):
    """A card the host plays locally."""

    id: str
    card: BingoCard


class LobbySettings(BaseModel, frozen=True):
    """Settings the host may still change while the lobby is open."""

    pattern: WinningPattern = WinningPattern.ANY_LINE
    call_interval_seconds: float = Field(default=DEFAULT_CALL_INTERVAL_SECONDS, gt=0)
    stake: float = Field(default=10, ge=0)
    language: Language = Language.ENGLISH
    calling_mode: CallingMode = CallingMode.AUTOMATIC
    marking_mode: MarkingMode = MarkingMode.AUTOMATIC
    prize: float = 0
    total_players: int = 0


class GameSettings(BaseModel, frozen=True):
    """Settings frozen at game start. Never changes afterwards."""

    pattern: WinningPattern
    call_interval_seconds: float
    stake: float
    prize: float
    language: Language
    calling_mode: CallingMode
    marking_mode: MarkingMode
    host_cards: tuple[SelectedCard, ...] = ()
    total_players: int = 0


def compute_prize(stake: float, total_cards: int, prize_share: float) -> float:
    """Prize = stake per card x number of cards in play x winner's share."""
    return stake * total_cards * prize_share


def freeze_settings(lobby: LobbySettings, host_cards: tuple[SelectedCard, ...], total_cards: int) -> GameSettings:
    return GameSettings(
        pattern=lobby.pattern,
        call_interval_seconds=lobby.call_interval_seconds,
        stake=lobby.stake,
        prize=lobby.prize,
        language=lobby.language,
        calling_mode=lobby.calling_mode,
        marking_mode=lobby.marking_mode,
        host_cards=host_cards,
        total_players=total_cards,
    )
