"""Tests for DAL persistence models."""

import pytest
from pydantic import ValidationError

from shared.dal.models import AuditSettings, GameAuditLog, RecordFilter, RecordPeriod


def _log(**overrides) -> GameAuditLog:
    fields = {
        "game_id": "BINGO-1",
        "start_time": "2026-01-01T00:00:00+00:00",
        "host_id": "host-1",
        "host_name": "Host",
        "settings": AuditSettings(pattern="Full House", stake=10, prize=21, number_of_players=3),
    }
    fields.update(overrides)
    return GameAuditLog(**fields)


class TestGameAuditLog:
    def test_serialization_roundtrip(self):
        log = _log(called_numbers=(7, 22, 75))

        restored = GameAuditLog.model_validate_json(log.model_dump_json())

        assert restored == log

    def test_no_winner_when_pool_ran_out(self):
        assert _log().winner is None

    def test_is_immutable(self):
        log = _log()

        with pytest.raises(ValidationError):
            log.game_id = "BINGO-2"


class TestRecordFilter:
    def test_defaults(self):
        record_filter = RecordFilter()

        assert record_filter.period == RecordPeriod.ALL
        assert record_filter.host_id is None
        assert record_filter.limit == 100

    def test_period_from_query_value(self):
        assert RecordFilter(period="7d").period == RecordPeriod.LAST_7_DAYS

    @pytest.mark.parametrize("limit", [0, 1001])
    def test_limit_bounds(self, limit):
        with pytest.raises(ValidationError):
            RecordFilter(limit=limit)
