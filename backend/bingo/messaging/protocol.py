"""Transport capability interfaces consumed by the host and the client.

The core never touches a concrete transport. The host sees one
ConnectionProtocol per connected peer; a player's client sees a single
HostLink to the lobby it joined. Adapters turn transport lifecycle events
into calls on the host message router or the client synchronizer.
"""

from abc import ABC, abstractmethod
from typing import Any

from bingo.messaging.encoder import encode


class ConnectionProtocol(ABC):
    """
    One peer as seen by the host.

    The connection id doubles as the player id for the whole session, so
    an adapter must keep it stable until the peer goes away. Frames are
    MessagePack maps; see bingo.messaging.encoder.
    """

    @property
    @abstractmethod
    def connection_id(self) -> str: ...

    @abstractmethod
    async def send_bytes(self, data: bytes) -> None:
        """Write one encoded frame. Raises ConnectionError once the peer is gone."""
        ...

    @abstractmethod
    async def receive_bytes(self) -> bytes: ...

    @abstractmethod
    async def close(self, code: int = 1000, reason: str = "") -> None:
        """Close with an application close code (4xxx for lobby refusals)."""
        ...

    async def send_message(self, data: dict[str, Any]) -> None:
        await self.send_bytes(encode(data))


class HostLink(ABC):
    """
    Player-side channel to a host.

    Inbound frames are delivered by the adapter to
    ClientSynchronizer.handle_message; a dropped link is reported through
    ClientSynchronizer.handle_connection_lost.
    """

    @abstractmethod
    async def connect(self, lobby_id: str) -> None:
        """
        Open the channel to the host addressed by lobby_id.

        Raises ConnectivityError when the host cannot be reached.
        """
        ...

    @abstractmethod
    async def send_message(self, data: dict[str, Any]) -> None: ...

    @abstractmethod
    async def close(self) -> None: ...
