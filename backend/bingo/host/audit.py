"""Audit record construction for a hosted game.

The record is drafted when the game starts, amended with every called
number, and sealed exactly once when the game ends (by a win or by the
number pool running out). Sealing builds an immutable GameAuditLog from
the final roster; persisting it is best effort, since an announced winner
is never rolled back.

Lifecycle per game:
1. open(...) - draft the record from the frozen settings and starting roster
2. record_call(number) - append each called number
3. seal(players, winner, winning_number) - build the immutable record
4. persist(record) - hand it to the audit repository
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

import structlog
from pydantic import BaseModel, Field

from shared.dal.models import AuditedPlayer, AuditSettings, AuditWinner, GameAuditLog

if TYPE_CHECKING:
    from collections.abc import Sequence

    from bingo.logic.settings import GameSettings
    from bingo.logic.types import BingoPlayer
    from shared.dal.audit_repository import AuditRepository

logger = structlog.get_logger()


class AuditDraft(BaseModel):
    """Record under construction. Owned by the recorder until sealed."""

    game_id: str
    start_time: str
    host_id: str
    host_name: str
    settings: AuditSettings
    called_numbers: list[int] = Field(default_factory=list)


def new_game_id(now: datetime | None = None) -> str:
    """Game ids are BINGO-<epoch milliseconds>."""
    now = now or datetime.now(UTC)
    return f"BINGO-{int(now.timestamp() * 1000)}"


def snapshot_settings(settings: GameSettings, players: Sequence[BingoPlayer]) -> AuditSettings:
    return AuditSettings(
        pattern=settings.pattern.value,
        stake=settings.stake,
        prize=settings.prize,
        number_of_players=len(players),
        player_card_ids=tuple(p.id for p in players),
        language=settings.language.value,
        calling_mode=settings.calling_mode.value,
        marking_mode=settings.marking_mode.value,
    )


def build_record(
    draft: AuditDraft,
    players: Sequence[BingoPlayer],
    winner: BingoPlayer | None,
    winning_number: int | None,
) -> GameAuditLog:
    """Pure transform from the final game state to the sealed record."""
    audited = tuple(
        AuditedPlayer(
            name=p.name,
            card=p.card or (),
            final_marked_cells=p.marked_cells,
            disconnected=p.disconnected,
        )
        for p in players
    )
    audit_winner = None
    if winner is not None:
        audit_winner = AuditWinner(
            name=winner.name,
            winning_card=winner.card or (),
            winning_cells=winner.winning_cells,
            winning_number=winning_number,
        )
    return GameAuditLog(
        game_id=draft.game_id,
        start_time=draft.start_time,
        host_id=draft.host_id,
        host_name=draft.host_name,
        settings=draft.settings,
        players=audited,
        called_numbers=tuple(draft.called_numbers),
        winner=audit_winner,
    )


class AuditRecorder:
    """Drafts, seals, and persists the audit record of a single game."""

    def __init__(self, repository: AuditRepository | None = None) -> None:
        self._repository = repository
        self._draft: AuditDraft | None = None
        self._sealed: GameAuditLog | None = None

    @property
    def draft(self) -> AuditDraft | None:
        return self._draft

    @property
    def sealed(self) -> GameAuditLog | None:
        return self._sealed

    def open(
        self,
        *,
        game_id: str,
        host_id: str,
        host_name: str,
        settings: GameSettings,
        players: Sequence[BingoPlayer],
        start_time: datetime | None = None,
    ) -> AuditDraft:
        if self._draft is not None:
            raise RuntimeError(f"audit record already opened for {self._draft.game_id}")
        self._draft = AuditDraft(
            game_id=game_id,
            start_time=(start_time or datetime.now(UTC)).isoformat(),
            host_id=host_id,
            host_name=host_name,
            settings=snapshot_settings(settings, players),
        )
        return self._draft

    def record_call(self, number: int) -> None:
        if self._draft is None or self._sealed is not None:
            return
        self._draft.called_numbers.append(number)

    def seal(
        self,
        players: Sequence[BingoPlayer],
        winner: BingoPlayer | None,
        winning_number: int | None,
    ) -> GameAuditLog:
        """Build the final record. A game is sealed exactly once."""
        if self._draft is None:
            raise RuntimeError("no audit record is open")
        if self._sealed is not None:
            raise RuntimeError(f"audit record {self._sealed.game_id} is already sealed")
        self._sealed = build_record(self._draft, players, winner, winning_number)
        return self._sealed

    async def persist(self, record: GameAuditLog) -> bool:
        """Best-effort save. Returns False when there is no repository or the save failed."""
        if self._repository is None:
            return False
        try:
            await self._repository.append_record(record)
        except Exception:
            logger.exception("failed to persist audit record", game_id=record.game_id)
            return False
        logger.info("audit record saved", game_id=record.game_id)
        return True
