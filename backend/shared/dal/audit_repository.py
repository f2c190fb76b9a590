"""Abstract interface for audit record persistence."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from shared.dal.models import GameAuditLog, RecordFilter


class AuditRepository(ABC):
    """Append-only store of sealed game records.

    Implementations can use SQLite, PostgreSQL, etc.
    """

    @abstractmethod
    async def append_record(self, record: GameAuditLog) -> None: ...

    @abstractmethod
    async def query_records(self, record_filter: RecordFilter) -> list[GameAuditLog]: ...

    @abstractmethod
    async def clear_records(self, older_than_days: int) -> int:
        """Delete records started more than older_than_days ago. Returns the number removed."""
        ...
