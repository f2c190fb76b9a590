"""SQLite database layer: connection management and repository implementations."""

from shared.db.audit_repository import SqliteAuditRepository
from shared.db.connection import Database
from shared.db.settings_repository import SqliteSettingsRepository

__all__ = [
    "Database",
    "SqliteAuditRepository",
    "SqliteSettingsRepository",
]
