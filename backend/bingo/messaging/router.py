from __future__ import annotations

import contextlib
import logging
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from bingo.logic.exceptions import GameRuleError
from bingo.messaging.types import (
    BingoClaimMessage,
    CardSelectionMessage,
    ErrorCode,
    ErrorMessage,
    PlayerJoinRequestMessage,
    parse_player_message,
)

if TYPE_CHECKING:
    from bingo.host.coordinator import HostCoordinator
    from bingo.messaging.protocol import ConnectionProtocol

logger = logging.getLogger(__name__)


class HostMessageRouter:
    """
    Turns transport events and decoded player frames into coordinator calls.

    A frame that fails validation or breaks a game rule is answered with an
    INVALID_MESSAGE error and the peer stays connected; anything else closes
    the peer with 1011.
    """

    def __init__(self, coordinator: HostCoordinator) -> None:
        self._coordinator = coordinator

    async def handle_connect(self, connection: ConnectionProtocol) -> None:
        await self._coordinator.register_connection(connection)

    async def handle_message(
        self,
        connection: ConnectionProtocol,
        raw_message: dict[str, Any],
    ) -> None:
        try:
            message = parse_player_message(raw_message)
        except (ValidationError, KeyError, TypeError, ValueError) as e:
            logger.warning("invalid message from %s: %s", connection.connection_id, e)
            await connection.send_message(
                ErrorMessage(code=ErrorCode.INVALID_MESSAGE, message=str(e)).model_dump(),
            )
            return

        try:
            if isinstance(message, PlayerJoinRequestMessage):
                await self._coordinator.handle_join_request(connection, message.name)
            elif isinstance(message, CardSelectionMessage):
                await self._coordinator.handle_card_selection(connection, message.card)
            elif isinstance(message, BingoClaimMessage):
                await self._coordinator.handle_bingo_claim(connection)
        except GameRuleError as e:
            logger.warning("message rejected for %s: %s", connection.connection_id, e)
            await connection.send_message(
                ErrorMessage(code=ErrorCode.INVALID_MESSAGE, message=str(e)).model_dump(),
            )
        except Exception:
            logger.exception("fatal error handling message from %s", connection.connection_id)
            with contextlib.suppress(RuntimeError, OSError):
                await connection.close(code=1011, reason="internal_error")

    async def handle_disconnect(self, connection: ConnectionProtocol) -> None:
        await self._coordinator.handle_disconnect(connection)

    async def handle_error(self, connection: ConnectionProtocol, error: BaseException) -> None:
        """A transport error on one connection is treated as that peer leaving."""
        logger.warning("transport error on %s: %s", connection.connection_id, error)
        await self._coordinator.handle_disconnect(connection)
