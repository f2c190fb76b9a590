"""
Host-authoritative game coordinator.

The coordinator is the single owner of a lobby's authoritative state: the
roster, the lobby and frozen settings, the called-number pool, the winner
slot, and the audit draft. Every mutation runs under one asyncio.Lock, and
every handler either applies its whole effect or rejects without changing
anything. Peers only learn about state through the messages broadcast here.

Status transitions:

    WAITING -> RUNNING        start_game()
    RUNNING <-> PAUSED        advance(), automatic calling only
    RUNNING/PAUSED -> OVER    a confirmed win, or a call attempt on an empty pool

OVER is terminal. A new game needs a new coordinator.
"""

from __future__ import annotations

import asyncio
import contextlib
import random
import secrets
from typing import TYPE_CHECKING, Any

import structlog

from bingo.host.audit import AuditRecorder, new_game_id
from bingo.host.broadcast import broadcast_to_connections
from bingo.logic.caller import NumberPool
from bingo.logic.cards import cards_identical, validate_card
from bingo.logic.enums import CallingMode, GameStatus, MarkingMode
from bingo.logic.exceptions import CardValidationError, InvalidTransitionError
from bingo.logic.marks import can_toggle, initial_marks, mark_number, rebuild_marks, toggle_cell
from bingo.logic.patterns import check_win
from bingo.logic.preferences import HostPreferences
from bingo.logic.settings import (
    MIN_STAKE,
    MIN_TOTAL_CARDS,
    LobbySettings,
    SelectedCard,
    compute_prize,
    freeze_settings,
)
from bingo.logic.timer import CallTimer
from bingo.logic.types import BingoPlayer, RosterEntry
from bingo.messaging.types import (
    CardAcceptedMessage,
    CardRejectedDuplicateMessage,
    ConfigUpdateMessage,
    ErrorCode,
    ErrorMessage,
    GameStartMessage,
    LobbyUpdateMessage,
    NumberCallMessage,
    WelcomePlayerMessage,
    WinnerAnnouncedMessage,
)

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence

    from bingo.logic.cards import BingoCard, Cell
    from bingo.logic.enums import Language
    from bingo.logic.settings import GameSettings
    from bingo.messaging.protocol import ConnectionProtocol
    from shared.dal.models import GameAuditLog

    type Announcer = Callable[[int, Language], Awaitable[None]]

logger = structlog.get_logger()

LOBBY_ID_DIGITS = 6
HOST_CARD_ID_PREFIX = "host-card-"
DUPLICATE_CARD_MESSAGE = "This card is already taken by another player. Please choose another."

_ACTIVE_STATUSES = frozenset({GameStatus.RUNNING, GameStatus.PAUSED})


def generate_lobby_id() -> str:
    """Short numeric id players type in to reach this host."""
    return str(secrets.randbelow(9 * 10 ** (LOBBY_ID_DIGITS - 1)) + 10 ** (LOBBY_ID_DIGITS - 1))


class HostCoordinator:
    """Authoritative state machine for one hosted lobby and its single game."""

    def __init__(
        self,
        *,
        host_id: str,
        host_name: str,
        lobby_id: str | None = None,
        preferences: HostPreferences | None = None,
        lobby_settings: LobbySettings | None = None,
        audit_recorder: AuditRecorder | None = None,
        announcer: Announcer | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._host_id = host_id
        self._host_name = host_name
        self._lobby_id = lobby_id or generate_lobby_id()
        self._preferences = preferences or HostPreferences()
        self._recorder = audit_recorder or AuditRecorder()
        self._announcer = announcer
        self._lock: asyncio.Lock = asyncio.Lock()

        self._status = GameStatus.WAITING
        self._connections: dict[str, ConnectionProtocol] = {}
        # insertion order is roster order
        self._players: dict[str, BingoPlayer] = {}
        self._lobby = lobby_settings or LobbySettings()
        self._settings: GameSettings | None = None
        self._pool = NumberPool(rng)
        self._timer: CallTimer | None = None
        self._winner_id: str | None = None
        self._game_id: str | None = None
        self._log = logger.bind(lobby_id=self._lobby_id)
        self._refresh_lobby_totals()

    # --- read-only views ---

    @property
    def lobby_id(self) -> str:
        return self._lobby_id

    @property
    def game_id(self) -> str | None:
        return self._game_id

    @property
    def status(self) -> GameStatus:
        return self._status

    @property
    def players(self) -> tuple[BingoPlayer, ...]:
        return tuple(self._players.values())

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    @property
    def lobby_settings(self) -> LobbySettings:
        return self._lobby

    @property
    def settings(self) -> GameSettings | None:
        return self._settings

    @property
    def preferences(self) -> HostPreferences:
        return self._preferences

    @property
    def called_numbers(self) -> tuple[int, ...]:
        return self._pool.called

    @property
    def current_number(self) -> int | None:
        called = self._pool.called
        return called[-1] if called else None

    @property
    def winner(self) -> BingoPlayer | None:
        return self._players.get(self._winner_id) if self._winner_id is not None else None

    @property
    def audit_log(self) -> GameAuditLog | None:
        return self._recorder.sealed

    @property
    def is_calling(self) -> bool:
        return self._timer is not None and self._timer.is_running

    # --- helpers ---

    def _remote_players(self) -> list[BingoPlayer]:
        return [p for p in self._players.values() if not p.is_human]

    def _host_cards(self) -> list[BingoPlayer]:
        return [p for p in self._players.values() if p.is_human]

    def _lobby_roster(self) -> list[RosterEntry]:
        return [RosterEntry.from_player(p) for p in self._remote_players()]

    def _game_roster(self) -> list[RosterEntry]:
        return [RosterEntry.from_player(p) for p in self._players.values()]

    def _total_cards(self) -> int:
        return sum(1 for p in self._players.values() if p.has_card)

    def _refresh_lobby_totals(self) -> None:
        total = self._total_cards()
        self._lobby = self._lobby.model_copy(
            update={
                "total_players": total,
                "prize": compute_prize(self._lobby.stake, total, self._preferences.prize_share),
            },
        )

    def _is_card_taken(self, card: BingoCard, exclude_id: str | None = None) -> bool:
        """Compare against every card held by a connected player or by the host."""
        return any(
            p.card is not None and not p.disconnected and p.id != exclude_id and cards_identical(p.card, card)
            for p in self._players.values()
        )

    async def _broadcast(self, message: dict[str, Any], exclude_connection_id: str | None = None) -> None:
        await broadcast_to_connections(self._connections, message, exclude_connection_id)

    async def _send_error(self, connection: ConnectionProtocol, code: ErrorCode, message: str) -> None:
        self._log.warning("error sent to peer", connection_id=connection.connection_id, error_code=code.value)
        with contextlib.suppress(RuntimeError, OSError, ConnectionError):
            await connection.send_message(ErrorMessage(code=code, message=message).model_dump())

    @staticmethod
    async def _close_quietly(connection: ConnectionProtocol, code: int, reason: str) -> None:
        with contextlib.suppress(RuntimeError, OSError, ConnectionError):
            await connection.close(code=code, reason=reason)

    async def _announce(self, number: int) -> None:
        """Await the optional announcer. Failures are cosmetic and only logged."""
        if self._announcer is None or self._settings is None:
            return
        try:
            await self._announcer(number, self._settings.language)
        except Exception:
            self._log.exception("number announcement failed", number=number)

    # --- connection lifecycle ---

    async def register_connection(self, connection: ConnectionProtocol) -> None:
        """A peer opened a channel. Only accepted while the lobby is open."""
        async with self._lock:
            accepted = self._status == GameStatus.WAITING
            if accepted:
                self._connections[connection.connection_id] = connection
        if accepted:
            self._log.info("peer connected", connection_id=connection.connection_id)
            return
        await self._send_error(connection, ErrorCode.LOBBY_CLOSED, "Game has already started or is over. Cannot join.")
        await self._close_quietly(connection, code=4003, reason="lobby_closed")

    async def handle_disconnect(self, connection: ConnectionProtocol) -> None:
        """
        A peer's channel closed.

        In the lobby the player is removed from the roster. During play the
        player is only flagged as disconnected: they stay in the roster and
        the audit record but are skipped by win checks.
        """
        connection_id = connection.connection_id
        async with self._lock:
            self._connections.pop(connection_id, None)
            player = self._players.get(connection_id)
            if player is None or player.is_human:
                return
            if self._status == GameStatus.WAITING:
                del self._players[connection_id]
                had_card = player.has_card
                if had_card:
                    self._refresh_lobby_totals()
                self._log.info("player left lobby", player_id=connection_id)
                await self._broadcast(LobbyUpdateMessage(players=self._lobby_roster()).model_dump())
                if had_card:
                    await self._broadcast(ConfigUpdateMessage(settings=self._lobby).model_dump())
            elif self._status in _ACTIVE_STATUSES:
                self._players[connection_id] = player.model_copy(update={"disconnected": True})
                self._log.info("player disconnected during game", player_id=connection_id)
                await self._broadcast(LobbyUpdateMessage(players=self._game_roster()).model_dump())

    # --- lobby ---

    async def handle_join_request(self, connection: ConnectionProtocol, name: str) -> None:
        connection_id = connection.connection_id
        async with self._lock:
            lobby_open = self._status == GameStatus.WAITING
            if lobby_open:
                if connection_id in self._players:
                    await self._send_error(connection, ErrorCode.ALREADY_JOINED, "You have already joined this lobby")
                    return
                self._connections.setdefault(connection_id, connection)
                self._players[connection_id] = BingoPlayer(id=connection_id, name=name)
                roster = self._lobby_roster()
                self._log.info("player joined lobby", player_id=connection_id, player_name=name)
                with contextlib.suppress(RuntimeError, OSError, ConnectionError):
                    await connection.send_message(
                        WelcomePlayerMessage(your_id=connection_id, players=roster, settings=self._lobby).model_dump(),
                    )
                await self._broadcast(LobbyUpdateMessage(players=roster).model_dump(), connection_id)
                return
        await self._send_error(connection, ErrorCode.LOBBY_CLOSED, "Game has already started or is over. Cannot join.")
        await self._close_quietly(connection, code=4003, reason="lobby_closed")

    async def handle_card_selection(self, connection: ConnectionProtocol, card: Sequence[Sequence[object]]) -> None:
        """
        Store a player's card after re-validating it.

        The player's own mark grid is never used; a fresh grid is derived
        from the card.
        """
        connection_id = connection.connection_id
        async with self._lock:
            if self._status != GameStatus.WAITING:
                await self._send_error(connection, ErrorCode.LOBBY_CLOSED, "Cards can only be chosen in the lobby")
                return
            player = self._players.get(connection_id)
            if player is None:
                await self._send_error(connection, ErrorCode.NOT_JOINED, "Join the lobby before choosing a card")
                return
            try:
                valid_card = validate_card(card)
            except CardValidationError as e:
                await self._send_error(connection, ErrorCode.INVALID_CARD, str(e))
                return
            if self._is_card_taken(valid_card, exclude_id=connection_id):
                self._log.info("duplicate card rejected", player_id=connection_id)
                with contextlib.suppress(RuntimeError, OSError, ConnectionError):
                    await connection.send_message(CardRejectedDuplicateMessage(message=DUPLICATE_CARD_MESSAGE).model_dump())
                return

            self._players[connection_id] = player.model_copy(
                update={"card": valid_card, "marked_cells": initial_marks(valid_card)},
            )
            self._refresh_lobby_totals()
            self._log.info("card accepted", player_id=connection_id)
            with contextlib.suppress(RuntimeError, OSError, ConnectionError):
                await connection.send_message(CardAcceptedMessage().model_dump())
            await self._broadcast(ConfigUpdateMessage(settings=self._lobby).model_dump())

    async def update_lobby_settings(self, **changes: Any) -> LobbySettings:  # noqa: ANN401
        """Change lobby settings and broadcast them. Only legal while WAITING."""
        async with self._lock:
            if self._status != GameStatus.WAITING:
                raise InvalidTransitionError(f"settings are frozen once the game is {self._status}")
            updated = LobbySettings.model_validate({**self._lobby.model_dump(), **changes})
            if updated.pattern not in self._preferences.enabled_patterns:
                raise InvalidTransitionError(f"winning pattern {updated.pattern} is not enabled")
            self._lobby = updated
            self._refresh_lobby_totals()
            await self._broadcast(ConfigUpdateMessage(settings=self._lobby).model_dump())
            return self._lobby

    async def select_host_cards(self, cards: Sequence[Sequence[Sequence[object]]]) -> tuple[str, ...]:
        """
        Replace the set of cards the host plays locally.

        Raises CardValidationError for a malformed card, or
        InvalidTransitionError when a card is already in play.
        """
        async with self._lock:
            if self._status != GameStatus.WAITING:
                raise InvalidTransitionError("host cards can only be chosen in the lobby")
            valid = [validate_card(card) for card in cards]
            remote = self._remote_players()
            for i, card in enumerate(valid):
                if any(cards_identical(card, other) for other in valid[:i]):
                    raise InvalidTransitionError("the same card was selected twice")
                if any(p.card is not None and cards_identical(p.card, card) for p in remote):
                    raise InvalidTransitionError("card is already taken by a player")

            host_cards = [
                BingoPlayer(
                    id=f"{HOST_CARD_ID_PREFIX}{i}",
                    name=f"Host Card #{i}",
                    card=card,
                    marked_cells=initial_marks(card),
                    is_human=True,
                )
                for i, card in enumerate(valid, start=1)
            ]
            self._players = {p.id: p for p in host_cards} | {p.id: p for p in remote}
            self._refresh_lobby_totals()
            await self._broadcast(ConfigUpdateMessage(settings=self._lobby).model_dump())
            return tuple(p.id for p in host_cards)

    async def toggle_visibility(self, player_id: str) -> bool:
        """Flip a card's presentation flag. Returns the new value."""
        async with self._lock:
            player = self._players.get(player_id)
            if player is None:
                raise KeyError(player_id)
            self._players[player_id] = player.model_copy(update={"is_visible": not player.is_visible})
            return not player.is_visible

    # --- game start ---

    async def start_game(self) -> GameSettings:
        """
        WAITING -> RUNNING.

        Requires stake >= MIN_STAKE, the chosen pattern to be enabled, and at
        least MIN_TOTAL_CARDS cards in play. Joined players who never chose a
        card are dropped and their connections closed.
        """
        dropped: list[ConnectionProtocol] = []
        async with self._lock:
            if self._status != GameStatus.WAITING:
                raise InvalidTransitionError(f"cannot start a game that is {self._status}")
            if self._lobby.stake < MIN_STAKE:
                raise InvalidTransitionError(f"stake must be at least {MIN_STAKE}")
            if not self._preferences.enabled_patterns:
                raise InvalidTransitionError("no winning patterns are enabled")
            if self._lobby.pattern not in self._preferences.enabled_patterns:
                raise InvalidTransitionError(f"winning pattern {self._lobby.pattern} is not enabled")
            total_cards = self._total_cards()
            if total_cards < MIN_TOTAL_CARDS:
                raise InvalidTransitionError(f"at least {MIN_TOTAL_CARDS} cards are needed, have {total_cards}")

            for player in self._remote_players():
                if not player.has_card:
                    del self._players[player.id]
                    connection = self._connections.pop(player.id, None)
                    if connection is not None:
                        dropped.append(connection)

            host_cards = self._host_cards()
            ordered = host_cards + self._remote_players()
            self._players = {
                p.id: p.model_copy(update={"marked_cells": initial_marks(p.card)}) for p in ordered if p.card is not None
            }
            self._refresh_lobby_totals()
            selected = tuple(SelectedCard(id=p.id, card=p.card) for p in host_cards if p.card is not None)
            self._settings = freeze_settings(self._lobby, selected, self._lobby.total_players)
            self._game_id = new_game_id()
            self._log = self._log.bind(game_id=self._game_id)
            self._recorder.open(
                game_id=self._game_id,
                host_id=self._host_id,
                host_name=self._host_name,
                settings=self._settings,
                players=self.players,
            )
            self._status = GameStatus.RUNNING
            self._log.info(
                "game started",
                total_cards=self._settings.total_players,
                pattern=self._settings.pattern,
                calling_mode=self._settings.calling_mode,
                marking_mode=self._settings.marking_mode,
            )

            for connection in dropped:
                await self._send_error(connection, ErrorCode.NO_CARD_SELECTED, "The game started before you chose a card")
            await self._broadcast(GameStartMessage(settings=self._settings, players=list(self.players)).model_dump())
            if self._settings.calling_mode == CallingMode.AUTOMATIC:
                self._start_timer()
            settings = self._settings

        for connection in dropped:
            await self._close_quietly(connection, code=4003, reason="no_card_selected")
        return settings

    # --- calling ---

    def _start_timer(self) -> None:
        if self._settings is None:
            return
        if self._timer is None:
            self._timer = CallTimer(self._settings.call_interval_seconds)
        self._timer.start(self._on_timer_tick)

    def _stop_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()

    async def _on_timer_tick(self) -> None:
        async with self._lock:
            number = await self._call_locked()
        if number is not None:
            await self._announce(number)

    async def advance(self) -> GameStatus:
        """
        The host's single game-action button.

        Automatic calling toggles RUNNING and PAUSED; manual calling makes one
        call per press. No-op once the game is OVER.
        """
        number: int | None = None
        async with self._lock:
            if self._status == GameStatus.WAITING or self._settings is None:
                raise InvalidTransitionError("the game has not started")
            if self._status == GameStatus.OVER:
                return self._status
            if self._settings.calling_mode == CallingMode.AUTOMATIC:
                if self._status == GameStatus.RUNNING:
                    self._status = GameStatus.PAUSED
                    self._stop_timer()
                    self._log.info("calling paused")
                else:
                    self._status = GameStatus.RUNNING
                    self._start_timer()
                    self._log.info("calling resumed")
                return self._status
            number = await self._call_locked()
            status = self._status
        if number is not None:
            await self._announce(number)
        return status

    async def call_next_number(self) -> int | None:
        """Make one call immediately. Returns the number, or None if nothing was called."""
        async with self._lock:
            number = await self._call_locked()
        if number is not None:
            await self._announce(number)
        return number

    async def _call_locked(self) -> int | None:
        if self._status != GameStatus.RUNNING or self._winner_id is not None or self._settings is None:
            return None
        number = self._pool.draw()
        if number is None:
            await self._finish_without_winner()
            return None

        self._recorder.record_call(number)
        self._log.debug("number called", number=number, remaining=self._pool.remaining_count)
        await self._broadcast(NumberCallMessage(number=number, called_numbers=list(self._pool.called)).model_dump())

        if self._settings.marking_mode == MarkingMode.AUTOMATIC:
            self._auto_mark(number)
            for player in self._players.values():
                if player.disconnected or player.card is None:
                    continue
                result = check_win(player.marked_cells, self._settings.pattern)
                if result.win:
                    await self._finalize_win(player.id, result.winning_cells)
                    break
        return number

    def _auto_mark(self, number: int) -> None:
        for player_id, player in list(self._players.items()):
            if player.disconnected or player.card is None:
                continue
            marks = mark_number(player.card, player.marked_cells, number)
            if marks != player.marked_cells:
                self._players[player_id] = player.model_copy(update={"marked_cells": marks})

    # --- marking and claims ---

    async def toggle_host_mark(self, player_id: str, row: int, col: int) -> bool:
        """
        Toggle a cell on a card the host plays locally.

        Only in manual marking mode, and only cells holding a called number
        can change. Returns True when the grid changed.
        """
        async with self._lock:
            if self._settings is None or self._settings.marking_mode != MarkingMode.MANUAL:
                return False
            player = self._players.get(player_id)
            if player is None or not player.is_human or player.card is None:
                return False
            if self._status not in _ACTIVE_STATUSES or self._winner_id is not None:
                return False
            if not can_toggle(player.card, row, col, self._pool.called):
                return False
            self._players[player_id] = player.model_copy(
                update={"marked_cells": toggle_cell(player.marked_cells, row, col)},
            )
            return True

    def _evaluate_claim(self, player: BingoPlayer) -> tuple[BingoPlayer, tuple[Cell, ...]] | None:
        """Verify a claim against host-derived marks. Manual marking rebuilds the grid from the call history."""
        if self._settings is None or player.card is None or player.disconnected:
            return None
        if self._settings.marking_mode == MarkingMode.MANUAL:
            player = player.model_copy(update={"marked_cells": rebuild_marks(player.card, self._pool.called)})
        result = check_win(player.marked_cells, self._settings.pattern)
        if not result.win:
            return None
        return player, result.winning_cells

    async def handle_bingo_claim(self, connection: ConnectionProtocol) -> bool:
        """
        A remote player claims a win.

        Ignored once a winner exists. Invalid claims are dropped without a
        reply. Returns True when the claim won the game.
        """
        connection_id = connection.connection_id
        async with self._lock:
            if self._winner_id is not None or self._status not in _ACTIVE_STATUSES:
                self._log.info("bingo claim ignored", player_id=connection_id, status=self._status)
                return False
            player = self._players.get(connection_id)
            if player is None:
                return False
            verdict = self._evaluate_claim(player)
            if verdict is None:
                self._log.info("invalid bingo claim dropped", player_id=connection_id)
                return False
            verified, cells = verdict
            self._players[connection_id] = verified
            await self._finalize_win(connection_id, cells)
            return True

    async def claim_host_bingo(self) -> bool:
        """The host claims a win for its own cards, checked in roster order."""
        async with self._lock:
            if self._winner_id is not None or self._status not in _ACTIVE_STATUSES:
                return False
            for player in self._host_cards():
                verdict = self._evaluate_claim(player)
                if verdict is not None:
                    verified, cells = verdict
                    self._players[player.id] = verified
                    await self._finalize_win(player.id, cells)
                    return True
            self._log.info("host bingo claim did not verify")
            return False

    # --- game end ---

    def _stamp_final_marks(self) -> None:
        called = self._pool.called
        for player_id, player in list(self._players.items()):
            if player.disconnected or player.card is None:
                continue
            self._players[player_id] = player.model_copy(update={"marked_cells": rebuild_marks(player.card, called)})

    def _completing_number(self, player: BingoPlayer, winning_cells: tuple[Cell, ...]) -> int | None:
        """The latest call among the winning cells. A manual claim can come calls after the pattern was done."""
        if player.card is None:
            return self.current_number
        on_pattern = {player.card[row][col] for row, col in winning_cells}
        return next((n for n in reversed(self._pool.called) if n in on_pattern), self.current_number)

    async def _finalize_win(self, winner_id: str, winning_cells: tuple[Cell, ...]) -> None:
        if self._settings is None:
            return
        self._stamp_final_marks()
        winner = self._players[winner_id].model_copy(update={"is_winner": True, "winning_cells": winning_cells})
        self._players[winner_id] = winner
        self._winner_id = winner_id
        self._status = GameStatus.OVER
        self._stop_timer()
        self._log.info("winner declared", winner_id=winner_id, winner_name=winner.name, calls=len(self._pool.called))

        record = self._recorder.seal(self.players, winner, self._completing_number(winner, winning_cells))
        await self._recorder.persist(record)
        await self._broadcast(
            WinnerAnnouncedMessage(winner=winner, prize=self._settings.prize, audit_log=record).model_dump(),
        )

    async def _finish_without_winner(self) -> None:
        """Every number has been called and nobody won."""
        self._status = GameStatus.OVER
        self._stop_timer()
        self._log.info("number pool exhausted without a winner")
        record = self._recorder.seal(self.players, None, None)
        await self._recorder.persist(record)
        await self._broadcast(WinnerAnnouncedMessage(winner=None, prize=0, audit_log=record).model_dump())

    async def shutdown(self) -> None:
        """Tear down the lobby: stop calling and close every peer connection."""
        async with self._lock:
            self._stop_timer()
            connections = list(self._connections.values())
            self._connections.clear()
        for connection in connections:
            await self._close_quietly(connection, code=1001, reason="host_shutdown")
        self._log.info("host shut down", closed_connections=len(connections))
