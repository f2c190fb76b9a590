"""
Player-side replica of a hosted game.

The synchronizer mirrors the roster, settings, called numbers, and the
player's own card and marks by applying host messages in arrival order. It
never derives authoritative state on its own. The two exceptions are local
marking in manual marking mode and the advisory can_claim flag, which
re-runs the win evaluator after every mark change. The host still verifies
every claim.
"""

from __future__ import annotations

import asyncio
import contextlib
from typing import TYPE_CHECKING, Any

import structlog
from pydantic import ValidationError

from bingo.logic.cards import cards_identical, generate_card, validate_card, validate_manual_card
from bingo.logic.enums import ClientStep, ConnectivityFailure, MarkingMode
from bingo.logic.exceptions import ConnectivityError, ProtocolViolationError
from bingo.logic.marks import can_toggle, initial_marks, mark_number, toggle_cell
from bingo.logic.patterns import check_win
from bingo.messaging.types import (
    RECOVERABLE_ERROR_CODES,
    BingoClaimMessage,
    CardAcceptedMessage,
    CardRejectedDuplicateMessage,
    CardSelectionMessage,
    ConfigUpdateMessage,
    ErrorCode,
    ErrorMessage,
    GameStartMessage,
    LobbyUpdateMessage,
    NumberCallMessage,
    PlayerJoinRequestMessage,
    WelcomePlayerMessage,
    WinnerAnnouncedMessage,
    parse_host_message,
)
from shared.validators import is_valid_lobby_id

if TYPE_CHECKING:
    import random
    from collections.abc import Sequence

    from bingo.logic.cards import BingoCard, MarkGrid
    from bingo.logic.settings import GameSettings, LobbySettings
    from bingo.logic.types import BingoPlayer, RosterEntry
    from bingo.messaging.protocol import HostLink
    from shared.dal.models import GameAuditLog

logger = structlog.get_logger()


DEFAULT_JOIN_TIMEOUT_SECONDS = 15.0
SUGGESTED_CARD_COUNT = 6


class ClientSynchronizer:
    """Mirror of host state for one player, driven by host messages."""

    def __init__(
        self,
        name: str,
        *,
        join_timeout_seconds: float = DEFAULT_JOIN_TIMEOUT_SECONDS,
        last_used_card: BingoCard | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._name = name
        self._join_timeout_seconds = join_timeout_seconds
        self._last_used_card = last_used_card
        self._rng = rng
        self._link: HostLink | None = None
        self._lobby_id: str | None = None
        self._reset()

    def _reset(self) -> None:
        self._step = ClientStep.JOIN
        self._my_id: str | None = None
        self._roster: list[RosterEntry] = []
        self._lobby_settings: LobbySettings | None = None
        self._game_settings: GameSettings | None = None
        self._players: dict[str, BingoPlayer] = {}
        self._pending_card: BingoCard | None = None
        self._card: BingoCard | None = None
        self._card_accepted = False
        self._marked_cells: MarkGrid | None = None
        self._called_numbers: list[int] = []
        self._can_claim = False
        self._claim_sent = False
        self._frozen = False
        self._winner: BingoPlayer | None = None
        self._prize: float | None = None
        self._audit_log: GameAuditLog | None = None
        self._error: str | None = None

    # --- read-only views ---

    @property
    def step(self) -> ClientStep:
        return self._step

    @property
    def my_id(self) -> str | None:
        return self._my_id

    @property
    def lobby_id(self) -> str | None:
        return self._lobby_id

    @property
    def roster(self) -> list[RosterEntry]:
        return list(self._roster)

    @property
    def lobby_settings(self) -> LobbySettings | None:
        return self._lobby_settings

    @property
    def game_settings(self) -> GameSettings | None:
        return self._game_settings

    @property
    def players(self) -> list[BingoPlayer]:
        return list(self._players.values())

    @property
    def card(self) -> BingoCard | None:
        return self._card

    @property
    def card_accepted(self) -> bool:
        return self._card_accepted

    @property
    def marked_cells(self) -> MarkGrid | None:
        return self._marked_cells

    @property
    def called_numbers(self) -> list[int]:
        return list(self._called_numbers)

    @property
    def can_claim(self) -> bool:
        return self._can_claim

    @property
    def claim_sent(self) -> bool:
        return self._claim_sent

    @property
    def is_frozen(self) -> bool:
        return self._frozen

    @property
    def winner(self) -> BingoPlayer | None:
        return self._winner

    @property
    def prize(self) -> float | None:
        return self._prize

    @property
    def audit_log(self) -> GameAuditLog | None:
        return self._audit_log

    @property
    def error(self) -> str | None:
        return self._error

    @property
    def last_used_card(self) -> BingoCard | None:
        return self._last_used_card

    # --- connecting ---

    async def join(self, link: HostLink, lobby_id: str) -> None:
        """
        Connect to a host and ask to join its lobby.

        The lobby id is checked before any connection attempt. A connect that
        does not finish within the join timeout is abandoned and the link torn
        down. Raises ConnectivityError on every failure.
        """
        lobby_id = lobby_id.strip()
        if not is_valid_lobby_id(lobby_id):
            self._error = "Game ID must be numeric"
            raise ConnectivityError(ConnectivityFailure.INVALID_LOBBY_ID, lobby_id)
        if self._link is not None:
            await self._teardown_link()

        self._reset()
        self._lobby_id = lobby_id
        try:
            async with asyncio.timeout(self._join_timeout_seconds):
                await link.connect(lobby_id)
        except TimeoutError:
            await self._close_link(link)
            self._error = "Connection timed out. Please check the Game ID and try again."
            logger.warning("join timed out", lobby_id=lobby_id)
            raise ConnectivityError(ConnectivityFailure.TIMEOUT, lobby_id) from None
        except ConnectivityError as e:
            await self._close_link(link)
            self._error = str(e)
            logger.warning("join failed", lobby_id=lobby_id, reason=e.reason)
            raise

        self._link = link
        await self._send(PlayerJoinRequestMessage(name=self._name).model_dump())
        logger.info("join request sent", lobby_id=lobby_id)

    @staticmethod
    async def _close_link(link: HostLink) -> None:
        with contextlib.suppress(RuntimeError, OSError, ConnectionError):
            await link.close()

    async def _teardown_link(self) -> None:
        link, self._link = self._link, None
        if link is not None:
            await self._close_link(link)

    async def _send(self, message: dict[str, Any]) -> None:
        if self._link is None:
            raise ConnectivityError(ConnectivityFailure.CONNECTION_LOST, "not connected to a host")
        try:
            await self._link.send_message(message)
        except (RuntimeError, OSError, ConnectionError) as e:
            await self._return_to_join("Connection to the host was lost.")
            raise ConnectivityError(ConnectivityFailure.CONNECTION_LOST, str(e)) from e

    async def _return_to_join(self, error: str) -> None:
        """Drop the link and go back to the join step, keeping the error for display."""
        await self._teardown_link()
        self._reset()
        self._error = error

    async def handle_connection_lost(self) -> None:
        """The transport reported the host channel closed."""
        if self._step == ClientStep.POSTGAME:
            # the host tears down its transport after a finished game
            self._link = None
            return
        logger.warning("connection to host lost", step=self._step)
        await self._return_to_join("Connection to the host was lost.")

    async def handle_transport_error(self, error: BaseException) -> None:
        logger.warning("transport error", error=str(error), step=self._step)
        await self._return_to_join(f"Connection error: {error}")

    # --- lobby actions ---

    async def select_card(self, card: Sequence[Sequence[object]]) -> None:
        """Submit a card to the host. Raises CardValidationError before sending anything invalid."""
        if self._step != ClientStep.LOBBY:
            raise ProtocolViolationError("cards can only be chosen in the lobby")
        valid = validate_card(card)
        # the host keeps any earlier accepted card until this one is accepted
        self._pending_card = valid
        self._error = None
        await self._send(CardSelectionMessage(card=valid, marked_cells=initial_marks(valid)).model_dump())

    async def submit_custom_card(self, grid: Sequence[Sequence[object]]) -> None:
        """Validate a hand-typed grid and submit it."""
        await self.select_card(validate_manual_card(grid))

    def suggest_cards(self, count: int = SUGGESTED_CARD_COUNT) -> list[BingoCard]:
        """Cards to offer in the picker. The last card used is offered first."""
        cards: list[BingoCard] = []
        if self._last_used_card is not None:
            cards.append(self._last_used_card)
        while len(cards) < count:
            candidate = generate_card(self._rng)
            if not any(cards_identical(candidate, c) for c in cards):
                cards.append(candidate)
        return cards

    # --- game actions ---

    def toggle_mark(self, row: int, col: int) -> bool:
        """
        Toggle a cell on the player's own card.

        Only allowed in manual marking mode, before the game is decided, on a
        cell whose number has been called. Returns True when the grid changed.
        """
        if self._step != ClientStep.GAME or self._frozen or self._game_settings is None:
            return False
        if self._game_settings.marking_mode != MarkingMode.MANUAL:
            return False
        if self._card is None or self._marked_cells is None:
            return False
        if not can_toggle(self._card, row, col, self._called_numbers):
            return False
        self._marked_cells = toggle_cell(self._marked_cells, row, col)
        self._claim_sent = False
        self._refresh_can_claim()
        return True

    async def claim_bingo(self) -> bool:
        """
        Send a BINGO claim.

        A repeat claim is refused until the next call or mark change; the host
        drops invalid claims silently, so the player may claim again after that.
        """
        if self._step != ClientStep.GAME or self._frozen or self._claim_sent:
            return False
        self._claim_sent = True
        self._can_claim = False
        await self._send(BingoClaimMessage().model_dump())
        logger.info("bingo claimed", lobby_id=self._lobby_id)
        return True

    async def play_again(self) -> None:
        """Leave the finished game. The card just played is remembered for the next picker."""
        if self._card is not None:
            self._last_used_card = self._card
        await self._teardown_link()
        self._reset()

    def _refresh_can_claim(self) -> None:
        if self._marked_cells is None or self._game_settings is None or self._frozen or self._claim_sent:
            self._can_claim = False
            return
        self._can_claim = check_win(self._marked_cells, self._game_settings.pattern).win

    # --- inbound messages ---

    async def handle_message(self, raw_message: dict[str, Any]) -> None:
        try:
            message = parse_host_message(raw_message)
        except (ValidationError, KeyError, TypeError, ValueError) as e:
            logger.warning("invalid message from host", error=str(e))
            return

        if isinstance(message, WelcomePlayerMessage):
            self._on_welcome(message)
        elif isinstance(message, LobbyUpdateMessage):
            self._on_lobby_update(message)
        elif isinstance(message, ConfigUpdateMessage):
            self._on_config_update(message)
        elif isinstance(message, CardAcceptedMessage):
            self._on_card_accepted()
        elif isinstance(message, CardRejectedDuplicateMessage):
            self._on_card_rejected(message)
        elif isinstance(message, GameStartMessage):
            await self._on_game_start(message)
        elif isinstance(message, NumberCallMessage):
            self._on_number_call(message)
        elif isinstance(message, WinnerAnnouncedMessage):
            self._on_winner_announced(message)
        elif isinstance(message, ErrorMessage):
            await self._on_error(message)

    def _on_welcome(self, message: WelcomePlayerMessage) -> None:
        self._my_id = message.your_id
        self._roster = list(message.players)
        self._lobby_settings = message.settings
        self._step = ClientStep.LOBBY
        self._error = None

    def _on_lobby_update(self, message: LobbyUpdateMessage) -> None:
        if self._step == ClientStep.LOBBY:
            self._roster = list(message.players)
        elif self._step == ClientStep.GAME:
            flags = {entry.id: entry.disconnected for entry in message.players}
            for player_id, player in list(self._players.items()):
                disconnected = flags.get(player_id)
                if disconnected is not None and disconnected != player.disconnected:
                    self._players[player_id] = player.model_copy(update={"disconnected": disconnected})

    def _on_config_update(self, message: ConfigUpdateMessage) -> None:
        if self._step == ClientStep.LOBBY:
            self._lobby_settings = message.settings

    def _on_card_accepted(self) -> None:
        if self._pending_card is None:
            return
        self._card = self._pending_card
        self._card_accepted = True
        self._last_used_card = self._card
        self._error = None

    def _on_card_rejected(self, message: CardRejectedDuplicateMessage) -> None:
        self._pending_card = None
        self._error = message.message

    async def _on_game_start(self, message: GameStartMessage) -> None:
        me = next((p for p in message.players if p.id == self._my_id), None)
        if me is None or me.card is None:
            logger.warning("game started without an accepted card", lobby_id=self._lobby_id)
            await self._return_to_join("The game started before your card was accepted.")
            return
        self._game_settings = message.settings
        self._players = {p.id: p for p in message.players}
        self._card = me.card
        self._marked_cells = me.marked_cells
        self._called_numbers = []
        self._claim_sent = False
        self._frozen = False
        self._step = ClientStep.GAME
        self._refresh_can_claim()

    def _on_number_call(self, message: NumberCallMessage) -> None:
        if self._step != ClientStep.GAME or self._frozen or self._game_settings is None:
            return
        self._called_numbers = list(message.called_numbers)
        if self._game_settings.marking_mode == MarkingMode.AUTOMATIC:
            for player_id, player in list(self._players.items()):
                if player.card is None or player.disconnected:
                    continue
                self._players[player_id] = player.model_copy(
                    update={"marked_cells": mark_number(player.card, player.marked_cells, message.number)},
                )
            if self._card is not None and self._marked_cells is not None:
                self._marked_cells = mark_number(self._card, self._marked_cells, message.number)
        self._claim_sent = False
        self._refresh_can_claim()

    def _on_winner_announced(self, message: WinnerAnnouncedMessage) -> None:
        self._frozen = True
        self._can_claim = False
        self._winner = message.winner
        self._prize = message.prize
        self._audit_log = message.audit_log
        if message.winner is not None and message.winner.id in self._players:
            self._players[message.winner.id] = message.winner
        self._step = ClientStep.POSTGAME

    async def _on_error(self, message: ErrorMessage) -> None:
        if message.code in RECOVERABLE_ERROR_CODES:
            if message.code == ErrorCode.INVALID_CARD:
                self._pending_card = None
            self._error = message.message
            return
        logger.warning("host rejected this client", code=message.code, message=message.message)
        await self._return_to_join(message.message)
