"""SQLite-backed settings repository."""

from __future__ import annotations

import asyncio
import sqlite3
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from shared.dal.errors import PersistenceError
from shared.dal.settings_repository import SettingsRepository

if TYPE_CHECKING:
    from shared.db.connection import Database


class SqliteSettingsRepository(SettingsRepository):
    """SQLite implementation of SettingsRepository."""

    def __init__(self, db: Database) -> None:
        self._db = db
        self._lock = asyncio.Lock()

    async def get_setting(self, key: str) -> str | None:
        try:
            row = self._db.connection.execute("SELECT value FROM settings WHERE key = ?", (key,)).fetchone()
        except sqlite3.Error as exc:
            raise PersistenceError(f"failed to read setting {key!r}") from exc
        return None if row is None else row[0]

    async def set_setting(self, key: str, value: str) -> None:
        """Insert or replace a setting value."""
        async with self._lock:
            try:
                self._db.connection.execute(
                    "INSERT INTO settings (key, value, updated_at) VALUES (?, ?, ?) "
                    "ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at",
                    (key, value, datetime.now(UTC).isoformat()),
                )
                self._db.connection.commit()
            except sqlite3.Error as exc:
                self._db.connection.rollback()
                raise PersistenceError(f"failed to write setting {key!r}") from exc
