"""Data access layer: repository interfaces and shared persistence models."""

from shared.dal.audit_repository import AuditRepository
from shared.dal.errors import PersistenceError
from shared.dal.models import (
    AuditedPlayer,
    AuditSettings,
    AuditWinner,
    GameAuditLog,
    RecordFilter,
    RecordPeriod,
)
from shared.dal.settings_repository import SettingsRepository

__all__ = [
    "AuditRepository",
    "AuditSettings",
    "AuditWinner",
    "AuditedPlayer",
    "GameAuditLog",
    "PersistenceError",
    "RecordFilter",
    "RecordPeriod",
    "SettingsRepository",
]
