"""
Host preferences stored in the settings repository.

Two keys are read at host start-up: the winner's share of the pot and the
list of winning patterns the operator allows. Missing or unreadable values
fall back to the defaults; a storage failure propagates as PersistenceError.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

import structlog
from pydantic import BaseModel, Field

from bingo.logic.enums import WinningPattern
from bingo.logic.settings import DEFAULT_PRIZE_SHARE

if TYPE_CHECKING:
    from shared.dal.settings_repository import SettingsRepository

logger = structlog.get_logger()

PRIZE_SHARE_KEY = "winner_prize_percentage"
ENABLED_PATTERNS_KEY = "enabled_winning_patterns"


class HostPreferences(BaseModel, frozen=True):
    prize_share: float = Field(default=DEFAULT_PRIZE_SHARE, ge=0, le=1)
    enabled_patterns: tuple[WinningPattern, ...] = tuple(WinningPattern)


def _parse_prize_share(raw: str | None) -> float:
    if raw is None:
        return DEFAULT_PRIZE_SHARE
    try:
        value = float(raw)
    except ValueError:
        logger.warning("invalid prize share setting, using default", value=raw)
        return DEFAULT_PRIZE_SHARE
    if not 0 <= value <= 1:
        logger.warning("prize share setting out of range, using default", value=value)
        return DEFAULT_PRIZE_SHARE
    return value


def _parse_enabled_patterns(raw: str | None) -> tuple[WinningPattern, ...]:
    if raw is None:
        return tuple(WinningPattern)
    try:
        names = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("malformed enabled patterns setting, using default", value=raw)
        return tuple(WinningPattern)
    if not isinstance(names, list):
        logger.warning("enabled patterns setting is not a list, using default", value=raw)
        return tuple(WinningPattern)
    known = {p.value: p for p in WinningPattern}
    patterns: list[WinningPattern] = []
    for name in names:
        pattern = known.get(name) if isinstance(name, str) else None
        if pattern is None:
            logger.warning("ignoring unknown winning pattern in settings", pattern=name)
            continue
        if pattern not in patterns:
            patterns.append(pattern)
    return tuple(patterns)


async def load_host_preferences(repository: SettingsRepository) -> HostPreferences:
    prize_share = _parse_prize_share(await repository.get_setting(PRIZE_SHARE_KEY))
    enabled = _parse_enabled_patterns(await repository.get_setting(ENABLED_PATTERNS_KEY))
    return HostPreferences(prize_share=prize_share, enabled_patterns=enabled)


async def seed_default_settings(repository: SettingsRepository) -> None:
    """Write default values for any preference key that is not stored yet."""
    defaults = {
        PRIZE_SHARE_KEY: str(DEFAULT_PRIZE_SHARE),
        ENABLED_PATTERNS_KEY: json.dumps([p.value for p in WinningPattern]),
    }
    for key, value in defaults.items():
        if await repository.get_setting(key) is None:
            await repository.set_setting(key, value)
            logger.info("seeded default setting", key=key)
