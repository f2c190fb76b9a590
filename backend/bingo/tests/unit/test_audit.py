from datetime import UTC, datetime

import pytest

from bingo.host.audit import AuditRecorder, build_record, new_game_id
from bingo.logic.enums import Language, WinningPattern
from bingo.logic.marks import initial_marks, rebuild_marks
from bingo.logic.settings import LobbySettings, freeze_settings
from bingo.logic.types import BingoPlayer
from bingo.tests.helpers.cards import make_card, row_numbers
from bingo.tests.mocks import InMemoryAuditRepository


def _players() -> list[BingoPlayer]:
    return [
        BingoPlayer(id="conn-a", name="Alice", card=make_card(0), marked_cells=initial_marks(make_card(0))),
        BingoPlayer(id="conn-b", name="Bob", card=make_card(5), marked_cells=initial_marks(make_card(5))),
    ]


def _settings():
    lobby = LobbySettings(pattern=WinningPattern.FOUR_CORNERS, stake=5, language=Language.AMHARIC, prize=7)
    return freeze_settings(lobby, (), 2)


def _open(recorder: AuditRecorder) -> None:
    recorder.open(
        game_id="BINGO-1",
        host_id="host-1",
        host_name="Host",
        settings=_settings(),
        players=_players(),
        start_time=datetime(2026, 1, 2, 3, 4, 5, tzinfo=UTC),
    )


class TestNewGameId:
    def test_uses_epoch_milliseconds(self):
        now = datetime(2026, 1, 1, tzinfo=UTC)

        assert new_game_id(now) == f"BINGO-{int(now.timestamp() * 1000)}"


class TestAuditRecorder:
    def test_open_snapshots_settings(self):
        recorder = AuditRecorder()
        _open(recorder)

        draft = recorder.draft
        assert draft.start_time == "2026-01-02T03:04:05+00:00"
        assert draft.settings.pattern == "Four Corners"
        assert draft.settings.language == "am"
        assert draft.settings.number_of_players == 2
        assert draft.settings.player_card_ids == ("conn-a", "conn-b")

    def test_open_twice_is_an_error(self):
        recorder = AuditRecorder()
        _open(recorder)

        with pytest.raises(RuntimeError, match="already opened"):
            _open(recorder)

    def test_calls_are_recorded_in_order(self):
        recorder = AuditRecorder()
        _open(recorder)

        for number in (5, 20, 34):
            recorder.record_call(number)

        assert recorder.draft.called_numbers == [5, 20, 34]

    def test_seal_with_winner(self):
        recorder = AuditRecorder()
        _open(recorder)
        calls = row_numbers(make_card(0), 0)
        for number in calls:
            recorder.record_call(number)
        players = [p.model_copy(update={"marked_cells": rebuild_marks(p.card, calls)}) for p in _players()]
        winner = players[0].model_copy(update={"is_winner": True, "winning_cells": ((0, 0), (0, 4))})

        record = recorder.seal(players, winner, calls[-1])

        assert record.winner.name == "Alice"
        assert record.winner.winning_number == calls[-1]
        assert record.winner.winning_cells == ((0, 0), (0, 4))
        assert record.called_numbers == tuple(calls)
        assert [p.name for p in record.players] == ["Alice", "Bob"]
        assert all(record.players[0].final_marked_cells[0])
        assert recorder.sealed is record

    def test_calls_after_seal_are_ignored(self):
        recorder = AuditRecorder()
        _open(recorder)
        recorder.seal(_players(), None, None)

        recorder.record_call(9)

        assert recorder.sealed.called_numbers == ()

    def test_seal_twice_is_an_error(self):
        recorder = AuditRecorder()
        _open(recorder)
        recorder.seal(_players(), None, None)

        with pytest.raises(RuntimeError, match="already sealed"):
            recorder.seal(_players(), None, None)

    def test_seal_without_open(self):
        with pytest.raises(RuntimeError, match="no audit record"):
            AuditRecorder().seal(_players(), None, None)

    def test_build_record_keeps_disconnected_players(self):
        recorder = AuditRecorder()
        _open(recorder)
        players = _players()
        players[1] = players[1].model_copy(update={"disconnected": True})

        record = build_record(recorder.draft, players, None, None)

        assert record.winner is None
        assert record.players[1].disconnected is True

    async def test_persist_saves_record(self):
        repository = InMemoryAuditRepository()
        recorder = AuditRecorder(repository)
        _open(recorder)
        record = recorder.seal(_players(), None, None)

        assert await recorder.persist(record) is True
        assert repository.records == [record]

    async def test_persist_failure_is_reported_not_raised(self):
        recorder = AuditRecorder(InMemoryAuditRepository(fail=True))
        _open(recorder)
        record = recorder.seal(_players(), None, None)

        assert await recorder.persist(record) is False

    async def test_persist_without_repository(self):
        recorder = AuditRecorder()
        _open(recorder)

        assert await recorder.persist(recorder.seal(_players(), None, None)) is False
