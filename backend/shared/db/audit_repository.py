"""SQLite-backed audit record repository."""

from __future__ import annotations

import asyncio
import sqlite3
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

import structlog

from shared.dal.audit_repository import AuditRepository
from shared.dal.errors import PersistenceError
from shared.dal.models import GameAuditLog, RecordFilter, RecordPeriod

if TYPE_CHECKING:
    from shared.db.connection import Database

logger = structlog.get_logger()

_PERIOD_DAYS = {
    RecordPeriod.LAST_7_DAYS: 7,
    RecordPeriod.LAST_30_DAYS: 30,
}


def _epoch_seconds(iso_timestamp: str) -> float:
    parsed = datetime.fromisoformat(iso_timestamp)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.timestamp()


def _cutoff(days: int) -> float:
    return (datetime.now(UTC) - timedelta(days=days)).timestamp()


class SqliteAuditRepository(AuditRepository):
    """SQLite implementation of AuditRepository.

    Stores each sealed record as JSON with indexed columns for the
    start time and host id filters.
    """

    def __init__(self, db: Database) -> None:
        self._db = db
        self._lock = asyncio.Lock()

    async def append_record(self, record: GameAuditLog) -> None:
        """Insert a record. Logs a warning and returns on duplicate game_id."""
        async with self._lock:
            try:
                self._db.connection.execute(
                    "INSERT INTO game_logs (id, started_at, host_id, data) VALUES (?, ?, ?, ?)",
                    (record.game_id, _epoch_seconds(record.start_time), record.host_id, record.model_dump_json()),
                )
                self._db.connection.commit()
            except sqlite3.IntegrityError:
                self._db.connection.rollback()
                logger.warning("audit record already exists, ignoring duplicate", game_id=record.game_id)
            except sqlite3.Error as exc:
                self._db.connection.rollback()
                raise PersistenceError(f"failed to append audit record {record.game_id}") from exc

    async def query_records(self, record_filter: RecordFilter) -> list[GameAuditLog]:
        """Return matching records, newest first."""
        clauses: list[str] = []
        params: list[Any] = []
        days = _PERIOD_DAYS.get(record_filter.period)
        if days is not None:
            clauses.append("started_at >= ?")
            params.append(_cutoff(days))
        if record_filter.host_id is not None:
            clauses.append("host_id = ?")
            params.append(record_filter.host_id)
        where = f"WHERE {' AND '.join(clauses)} " if clauses else ""
        params.append(record_filter.limit)
        try:
            rows = self._db.connection.execute(
                f"SELECT data FROM game_logs {where}ORDER BY started_at DESC LIMIT ?",  # noqa: S608
                params,
            ).fetchall()
        except sqlite3.Error as exc:
            raise PersistenceError("failed to query audit records") from exc
        return [GameAuditLog.model_validate_json(row[0]) for row in rows]

    async def clear_records(self, older_than_days: int) -> int:
        async with self._lock:
            try:
                cursor = self._db.connection.execute(
                    "DELETE FROM game_logs WHERE started_at < ?",
                    (_cutoff(older_than_days),),
                )
                self._db.connection.commit()
            except sqlite3.Error as exc:
                self._db.connection.rollback()
                raise PersistenceError("failed to clear audit records") from exc
        removed = cursor.rowcount
        logger.info("cleared old audit records", removed=removed, older_than_days=older_than_days)
        return removed
