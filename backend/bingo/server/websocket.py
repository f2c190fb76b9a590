from __future__ import annotations

import contextlib
from typing import TYPE_CHECKING
from uuid import uuid4

import structlog
from starlette.websockets import WebSocket, WebSocketDisconnect

from bingo.messaging.encoder import DecodeError, decode
from bingo.messaging.protocol import ConnectionProtocol
from bingo.messaging.types import ErrorCode, ErrorMessage
from shared.validators import is_valid_lobby_id

if TYPE_CHECKING:
    from bingo.messaging.router import HostMessageRouter

logger = structlog.get_logger()

CLOSE_INVALID_LOBBY_ID = 4000
CLOSE_UNKNOWN_LOBBY = 4001
CLOSE_TOO_MANY_DECODE_ERRORS = 4004

# consecutive undecodable frames tolerated before the peer is dropped
_MAX_DECODE_ERRORS = 5


class WebSocketConnection(ConnectionProtocol):
    """Starlette WebSocket adapter; a fresh uuid4 becomes the player id."""

    def __init__(self, websocket: WebSocket, lobby_id: str, connection_id: str | None = None) -> None:
        self._ws = websocket
        self.lobby_id = lobby_id
        self._id = connection_id or str(uuid4())

    @property
    def connection_id(self) -> str:
        return self._id

    async def send_bytes(self, data: bytes) -> None:
        try:
            await self._ws.send_bytes(data)
        except WebSocketDisconnect as e:
            raise ConnectionError(f"peer {self._id} is gone") from e

    async def receive_bytes(self) -> bytes:
        try:
            return await self._ws.receive_bytes()
        except WebSocketDisconnect as e:
            raise ConnectionError(f"peer {self._id} is gone") from e

    async def close(self, code: int = 1000, reason: str = "") -> None:
        with contextlib.suppress(WebSocketDisconnect, RuntimeError):
            await self._ws.close(code=code, reason=reason)


async def _refuse(websocket: WebSocket, requested: str, hosted: str) -> bool:
    if not is_valid_lobby_id(requested):
        await websocket.close(code=CLOSE_INVALID_LOBBY_ID, reason="invalid_lobby_id")
        return True
    if requested != hosted:
        logger.info("refused peer for another lobby", requested=requested)
        await websocket.close(code=CLOSE_UNKNOWN_LOBBY, reason="unknown_lobby")
        return True
    return False


async def _pump(connection: WebSocketConnection, router: HostMessageRouter) -> None:
    strikes = 0
    while True:
        frame = await connection.receive_bytes()
        try:
            data = decode(frame)
        except DecodeError as e:
            strikes += 1
            logger.warning("undecodable frame", error=str(e), strikes=strikes)
            error = ErrorMessage(code=ErrorCode.INVALID_MESSAGE, message=str(e))
            await connection.send_message(error.model_dump())
            if strikes >= _MAX_DECODE_ERRORS:
                logger.info("dropping peer after repeated undecodable frames")
                await connection.close(code=CLOSE_TOO_MANY_DECODE_ERRORS, reason="too_many_decode_errors")
                return
            continue
        strikes = 0
        await router.handle_message(connection, data)


async def websocket_endpoint(websocket: WebSocket, router: HostMessageRouter, lobby_id: str) -> None:
    """
    Serve one player channel for the hosted lobby.

    Peers addressing a different lobby id than the one this host serves are
    turned away before the handshake completes.
    """
    if await _refuse(websocket, websocket.path_params["lobby_id"], lobby_id):
        return

    await websocket.accept()
    connection = WebSocketConnection(websocket, lobby_id=lobby_id)
    structlog.contextvars.bind_contextvars(lobby_id=lobby_id, connection_id=connection.connection_id)
    logger.info("peer connected")
    await router.handle_connect(connection)

    try:
        await _pump(connection, router)
    except (WebSocketDisconnect, RuntimeError, ConnectionError):  # fmt: skip
        pass
    finally:
        logger.info("peer disconnected")
        await router.handle_disconnect(connection)
        structlog.contextvars.clear_contextvars()
