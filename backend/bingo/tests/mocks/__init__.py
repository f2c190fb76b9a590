import asyncio
from typing import Any
from uuid import uuid4

from bingo.logic.enums import ConnectivityFailure
from bingo.logic.exceptions import ConnectivityError
from bingo.messaging.encoder import decode, encode
from bingo.messaging.protocol import ConnectionProtocol, HostLink
from shared.dal.audit_repository import AuditRepository
from shared.dal.errors import PersistenceError
from shared.dal.models import GameAuditLog, RecordFilter
from shared.dal.settings_repository import SettingsRepository


class MockConnection(ConnectionProtocol):
    """Peer double for the host: every outbound frame is decoded and kept in order."""

    def __init__(self, connection_id: str | None = None) -> None:
        self._connection_id = connection_id or str(uuid4())
        self._frames: list[dict[str, Any]] = []
        self.close_code: int | None = None

    @property
    def connection_id(self) -> str:
        return self._connection_id

    @property
    def sent_messages(self) -> list[dict[str, Any]]:
        return list(self._frames)

    @property
    def is_closed(self) -> bool:
        return self.close_code is not None

    def messages_of_type(self, message_type: str) -> list[dict[str, Any]]:
        return [frame for frame in self._frames if frame.get("type") == message_type]

    def clear(self) -> None:
        self._frames.clear()

    async def send_bytes(self, data: bytes) -> None:
        if self.is_closed:
            raise RuntimeError("Connection is closed")
        self._frames.append(decode(data))

    async def receive_bytes(self) -> bytes:
        # the host never reads from a peer directly; frames go through the router
        raise NotImplementedError

    async def close(self, code: int = 1000, reason: str = "") -> None:  # noqa: ARG002
        self.close_code = code


class MockHostLink(HostLink):
    """
    Player-side link double.

    connect() can be made to hang (for join timeouts) or to fail with a
    given reason; sends can be made to fail to simulate a dropped channel.
    """

    def __init__(
        self,
        *,
        hang: bool = False,
        fail_with: ConnectivityFailure | None = None,
    ) -> None:
        self._hang = hang
        self._fail_with = fail_with
        self.fail_sends = False
        self.connected_to: str | None = None
        self.closed = False
        self._outbox: list[dict[str, Any]] = []

    @property
    def sent_messages(self) -> list[dict[str, Any]]:
        return self._outbox.copy()

    async def connect(self, lobby_id: str) -> None:
        if self._hang:
            await asyncio.Event().wait()
        if self._fail_with is not None:
            raise ConnectivityError(self._fail_with, lobby_id)
        self.connected_to = lobby_id

    async def send_message(self, data: dict[str, Any]) -> None:
        if self.fail_sends or self.closed:
            raise ConnectionError("link is down")
        # round-trip through the wire codec like a real transport
        self._outbox.append(decode(encode(data)))

    async def close(self) -> None:
        self.closed = True


class InMemorySettingsRepository(SettingsRepository):
    def __init__(self, values: dict[str, str] | None = None) -> None:
        self.values = dict(values or {})

    async def get_setting(self, key: str) -> str | None:
        return self.values.get(key)

    async def set_setting(self, key: str, value: str) -> None:
        self.values[key] = value


class InMemoryAuditRepository(AuditRepository):
    """Audit store double. Set fail to make append_record raise PersistenceError."""

    def __init__(self, *, fail: bool = False) -> None:
        self.records: list[GameAuditLog] = []
        self.fail = fail

    async def append_record(self, record: GameAuditLog) -> None:
        if self.fail:
            raise PersistenceError("disk full")
        self.records.append(record)

    async def query_records(self, record_filter: RecordFilter) -> list[GameAuditLog]:
        matching = [r for r in self.records if record_filter.host_id in (None, r.host_id)]
        return list(reversed(matching))[: record_filter.limit]

    async def clear_records(self, older_than_days: int) -> int:  # noqa: ARG002
        removed = len(self.records)
        self.records.clear()
        return removed
