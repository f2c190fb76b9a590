"""Shared broadcast utility for sending messages to every open peer connection."""

import contextlib
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from bingo.messaging.protocol import ConnectionProtocol


async def broadcast_to_connections(
    connections: dict[str, "ConnectionProtocol"],
    message: dict[str, Any],
    exclude_connection_id: str | None = None,
) -> None:
    """Broadcast a message to all connections, skipping one if excluded.

    Snapshot the dict values via list() to avoid RuntimeError if a
    concurrent disconnect mutates the dict while we yield on send_message.
    """
    for connection in list(connections.values()):
        if connection.connection_id != exclude_connection_id:
            with contextlib.suppress(RuntimeError, OSError, ConnectionError):
                await connection.send_message(message)
