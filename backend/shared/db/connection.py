"""SQLite storage for host preferences and sealed game audit records."""

import os
import sqlite3
from pathlib import Path

import structlog

from shared.dal.errors import PersistenceError

logger = structlog.get_logger()

# audit records carry every player's name and card, keep them owner-only
_OWNER_ONLY = 0o600

_PRAGMAS = ("journal_mode=WAL", "busy_timeout=5000")

# game_logs.data is the record's JSON; started_at (epoch seconds) and
# host_id are lifted out so the history filters can use the indexes.
_SCHEMA_SQL = """\
CREATE TABLE IF NOT EXISTS settings (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS game_logs (
    id TEXT PRIMARY KEY,
    started_at REAL NOT NULL,
    host_id TEXT NOT NULL,
    data TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_game_logs_started_at ON game_logs (started_at);
CREATE INDEX IF NOT EXISTS idx_game_logs_host_id ON game_logs (host_id);
"""


class Database:
    """
    Single shared sqlite3 connection for the host process.

    Both repositories borrow `connection`; the coordinator lock already
    serialises every write, so one connection is enough.
    """

    def __init__(self, path: str | Path) -> None:
        self._file = Path(path)
        self._conn: sqlite3.Connection | None = None

    @property
    def connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise RuntimeError("Database is not connected")
        return self._conn

    @property
    def is_connected(self) -> bool:
        return self._conn is not None

    def connect(self) -> None:
        """
        Open the file, creating parent directories and the schema as needed.

        Raises PersistenceError when the file cannot be opened or the schema
        cannot be created; the host cannot run without its storage.
        """
        try:
            self._file.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(self._file, check_same_thread=False)
            for pragma in _PRAGMAS:
                self._conn.execute(f"PRAGMA {pragma}")
            self._conn.executescript(_SCHEMA_SQL)
        except (sqlite3.Error, OSError) as exc:
            self.close()
            raise PersistenceError(f"failed to open database at {self._file}: {exc}") from exc

        if os.name == "posix":
            self._restrict_files()
        logger.info("database ready", path=str(self._file))

    def close(self) -> None:
        conn, self._conn = self._conn, None
        if conn is not None:
            conn.close()

    def _restrict_files(self) -> None:
        # WAL mode keeps recent writes in the -wal/-shm siblings
        siblings = [self._file.with_name(self._file.name + suffix) for suffix in ("", "-wal", "-shm")]
        for path in siblings:
            if not path.exists():
                continue
            try:
                path.chmod(_OWNER_ONLY)
            except OSError as exc:
                logger.warning("could not restrict database file", path=str(path), error=str(exc))
