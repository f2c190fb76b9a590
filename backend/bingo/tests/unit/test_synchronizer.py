from typing import Any

import pytest

from bingo.client.synchronizer import ClientSynchronizer
from bingo.logic.cards import FREE
from bingo.logic.enums import ClientStep, ConnectivityFailure, MarkingMode, WinningPattern
from bingo.logic.exceptions import CardValidationError, ConnectivityError, ProtocolViolationError
from bingo.logic.marks import initial_marks
from bingo.logic.settings import LobbySettings, freeze_settings
from bingo.logic.types import BingoPlayer, RosterEntry
from bingo.messaging.encoder import decode, encode
from bingo.messaging.types import (
    CardAcceptedMessage,
    CardRejectedDuplicateMessage,
    ConfigUpdateMessage,
    ErrorCode,
    ErrorMessage,
    GameStartMessage,
    LobbyUpdateMessage,
    MessageType,
    NumberCallMessage,
    WelcomePlayerMessage,
    WinnerAnnouncedMessage,
)
from bingo.tests.helpers.cards import make_card, row_numbers
from bingo.tests.helpers.coordinator import TEST_LOBBY_ID
from bingo.tests.mocks import MockHostLink
from shared.dal.models import AuditSettings, GameAuditLog

MY_ID = "conn-alice"


def _wire(message) -> dict[str, Any]:
    return decode(encode(message.model_dump()))


def _player(player_id: str, name: str, offset: int) -> BingoPlayer:
    card = make_card(offset)
    return BingoPlayer(id=player_id, name=name, card=card, marked_cells=initial_marks(card))


def _game_start(marking_mode: MarkingMode = MarkingMode.AUTOMATIC, players=None) -> dict[str, Any]:
    lobby = LobbySettings(pattern=WinningPattern.ANY_LINE, marking_mode=marking_mode)
    players = players or [_player(MY_ID, "Alice", 0), _player("conn-bob", "Bob", 5)]
    return _wire(GameStartMessage(settings=freeze_settings(lobby, (), len(players)), players=players))


def _number_call(number: int, called: list[int]) -> dict[str, Any]:
    return _wire(NumberCallMessage(number=number, called_numbers=called))


def _audit_log() -> GameAuditLog:
    return GameAuditLog(
        game_id="BINGO-1",
        start_time="2026-01-01T00:00:00+00:00",
        host_id="host-1",
        host_name="Test Host",
        settings=AuditSettings(pattern="Any Line", stake=10, prize=14, number_of_players=2),
    )


async def _joined(**kwargs) -> tuple[ClientSynchronizer, MockHostLink]:
    sync = ClientSynchronizer("Alice", **kwargs)
    link = MockHostLink()
    await sync.join(link, TEST_LOBBY_ID)
    await sync.handle_message(
        _wire(
            WelcomePlayerMessage(
                your_id=MY_ID,
                players=[RosterEntry(id=MY_ID, name="Alice")],
                settings=LobbySettings(),
            ),
        ),
    )
    return sync, link


async def _in_game(marking_mode: MarkingMode = MarkingMode.AUTOMATIC) -> tuple[ClientSynchronizer, MockHostLink]:
    sync, link = await _joined()
    await sync.select_card(make_card(0))
    await sync.handle_message(_wire(CardAcceptedMessage()))
    await sync.handle_message(_game_start(marking_mode))
    return sync, link


async def _call(sync: ClientSynchronizer, numbers: list[int]) -> None:
    called: list[int] = []
    for number in numbers:
        called.append(number)
        await sync.handle_message(_number_call(number, list(called)))


class TestJoin:
    @pytest.mark.parametrize("lobby_id", ["", "12ab56", "123", "1234567890123"])
    async def test_invalid_lobby_id_never_connects(self, lobby_id):
        sync = ClientSynchronizer("Alice")
        link = MockHostLink()

        with pytest.raises(ConnectivityError) as exc_info:
            await sync.join(link, lobby_id)

        assert exc_info.value.reason == ConnectivityFailure.INVALID_LOBBY_ID
        assert link.connected_to is None
        assert sync.error == "Game ID must be numeric"

    async def test_join_sends_request(self):
        sync = ClientSynchronizer("Alice")
        link = MockHostLink()

        await sync.join(link, f" {TEST_LOBBY_ID} ")

        assert link.connected_to == TEST_LOBBY_ID
        assert link.sent_messages == [{"type": MessageType.PLAYER_JOIN_REQUEST, "name": "Alice"}]
        assert sync.step == ClientStep.JOIN

    async def test_hung_connect_times_out_and_closes_link(self):
        sync = ClientSynchronizer("Alice", join_timeout_seconds=0.01)
        link = MockHostLink(hang=True)

        with pytest.raises(ConnectivityError) as exc_info:
            await sync.join(link, TEST_LOBBY_ID)

        assert exc_info.value.reason == ConnectivityFailure.TIMEOUT
        assert link.closed
        assert "timed out" in sync.error

    async def test_connect_failure_propagates(self):
        sync = ClientSynchronizer("Alice")
        link = MockHostLink(fail_with=ConnectivityFailure.PEER_UNREACHABLE)

        with pytest.raises(ConnectivityError) as exc_info:
            await sync.join(link, TEST_LOBBY_ID)

        assert exc_info.value.reason == ConnectivityFailure.PEER_UNREACHABLE
        assert link.closed
        assert sync.step == ClientStep.JOIN

    async def test_welcome_moves_to_lobby(self):
        sync, _ = await _joined()

        assert sync.step == ClientStep.LOBBY
        assert sync.my_id == MY_ID
        assert [p.name for p in sync.roster] == ["Alice"]
        assert sync.lobby_settings == LobbySettings()


class TestLobby:
    async def test_lobby_update_replaces_roster(self):
        sync, _ = await _joined()
        roster = [RosterEntry(id=MY_ID, name="Alice"), RosterEntry(id="conn-bob", name="Bob")]

        await sync.handle_message(_wire(LobbyUpdateMessage(players=roster)))

        assert [p.name for p in sync.roster] == ["Alice", "Bob"]

    async def test_config_update_replaces_settings(self):
        sync, _ = await _joined()

        await sync.handle_message(_wire(ConfigUpdateMessage(settings=LobbySettings(stake=25))))

        assert sync.lobby_settings.stake == 25

    async def test_card_selection_waits_for_acceptance(self):
        sync, link = await _joined()

        await sync.select_card(make_card(0))

        assert sync.card is None
        assert not sync.card_accepted
        sent = link.sent_messages[-1]
        assert sent["type"] == MessageType.CARD_SELECTION
        assert sent["card"][2][2] == FREE

        await sync.handle_message(_wire(CardAcceptedMessage()))

        assert sync.card == make_card(0)
        assert sync.card_accepted
        assert sync.last_used_card == make_card(0)

    async def test_duplicate_rejection_leaves_no_card(self):
        sync, _ = await _joined()
        await sync.select_card(make_card(0))

        await sync.handle_message(_wire(CardRejectedDuplicateMessage(message="Card already taken")))
        await sync.handle_message(_wire(CardAcceptedMessage()))

        assert sync.card is None
        assert not sync.card_accepted
        assert sync.error == "Card already taken"

    async def test_rejected_change_keeps_accepted_card(self):
        sync, _ = await _joined()
        await sync.select_card(make_card(0))
        await sync.handle_message(_wire(CardAcceptedMessage()))

        await sync.select_card(make_card(5))
        await sync.handle_message(_wire(CardRejectedDuplicateMessage(message="Card already taken")))

        assert sync.card == make_card(0)
        assert sync.card_accepted
        assert sync.error == "Card already taken"

    async def test_invalid_card_is_not_sent(self):
        sync, link = await _joined()
        grid = [list(row) for row in make_card(0)]
        grid[0][0] = 99
        sent_before = len(link.sent_messages)

        with pytest.raises(CardValidationError):
            await sync.select_card(grid)

        assert len(link.sent_messages) == sent_before

    async def test_custom_card_gets_free_centre(self):
        sync, link = await _joined()
        grid = [list(row) for row in make_card(0)]
        grid[2][2] = None

        await sync.submit_custom_card(grid)

        assert link.sent_messages[-1]["card"][2][2] == FREE

    async def test_card_selection_outside_lobby(self):
        sync = ClientSynchronizer("Alice")

        with pytest.raises(ProtocolViolationError):
            await sync.select_card(make_card(0))

    def test_suggested_cards_start_with_last_used(self):
        sync = ClientSynchronizer("Alice", last_used_card=make_card(3))

        cards = sync.suggest_cards(4)

        assert len(cards) == 4
        assert cards[0] == make_card(3)
        assert len(set(cards)) == 4


class TestGame:
    async def test_game_start_adopts_host_state(self):
        sync, _ = await _in_game()

        assert sync.step == ClientStep.GAME
        assert sync.card == make_card(0)
        assert [p.name for p in sync.players] == ["Alice", "Bob"]
        assert sync.called_numbers == []
        assert not sync.can_claim

    async def test_game_start_without_card_returns_to_join(self):
        sync, link = await _joined()

        await sync.handle_message(_game_start(players=[_player("conn-bob", "Bob", 5)]))

        assert sync.step == ClientStep.JOIN
        assert link.closed
        assert sync.error is not None

    async def test_automatic_marking_follows_calls(self):
        sync, _ = await _in_game()

        await _call(sync, [1, 21])

        assert sync.called_numbers == [1, 21]
        assert sync.marked_cells[0][0] is True
        bob = next(p for p in sync.players if p.name == "Bob")
        assert bob.marked_cells[0][1] is True

    async def test_completed_line_enables_claim(self):
        sync, _ = await _in_game()

        await _call(sync, row_numbers(make_card(0), 0))

        assert sync.can_claim

    async def test_manual_marking_only_on_called_cells(self):
        sync, _ = await _in_game(MarkingMode.MANUAL)
        await _call(sync, [1])

        assert sync.marked_cells[0][0] is False
        assert sync.toggle_mark(0, 1) is False  # 16 not called
        assert sync.toggle_mark(2, 2) is False  # centre is fixed
        assert sync.toggle_mark(0, 0) is True
        assert sync.marked_cells[0][0] is True
        assert sync.toggle_mark(0, 0) is True
        assert sync.marked_cells[0][0] is False

    async def test_manual_marks_drive_can_claim(self):
        sync, _ = await _in_game(MarkingMode.MANUAL)
        numbers = row_numbers(make_card(0), 0)
        await _call(sync, numbers)

        for col in range(5):
            sync.toggle_mark(0, col)

        assert sync.can_claim

    async def test_toggle_ignored_in_automatic_mode(self):
        sync, _ = await _in_game()
        await _call(sync, [1])

        assert sync.toggle_mark(0, 0) is False

    async def test_claim_is_sent_once(self):
        sync, link = await _in_game()

        assert await sync.claim_bingo() is True
        assert await sync.claim_bingo() is False

        claims = [m for m in link.sent_messages if m["type"] == MessageType.BINGO]
        assert len(claims) == 1
        assert sync.claim_sent

    async def test_dropped_claim_does_not_block_a_later_one(self):
        sync, link = await _in_game(MarkingMode.MANUAL)
        assert await sync.claim_bingo() is True

        await _call(sync, row_numbers(make_card(0), 0))
        for col in range(5):
            sync.toggle_mark(0, col)

        assert sync.can_claim
        assert await sync.claim_bingo() is True
        claims = [m for m in link.sent_messages if m["type"] == MessageType.BINGO]
        assert len(claims) == 2

    async def test_next_call_allows_another_claim(self):
        sync, _ = await _in_game()
        await sync.claim_bingo()

        await _call(sync, [1])

        assert not sync.claim_sent
        assert await sync.claim_bingo() is True

    async def test_winner_announcement_freezes_game(self):
        sync, _ = await _in_game()
        await _call(sync, row_numbers(make_card(0), 0))
        winner = _player(MY_ID, "Alice", 0).model_copy(update={"is_winner": True})

        await sync.handle_message(_wire(WinnerAnnouncedMessage(winner=winner, prize=14, audit_log=_audit_log())))
        await sync.handle_message(_number_call(75, [*row_numbers(make_card(0), 0), 75]))

        assert sync.step == ClientStep.POSTGAME
        assert sync.is_frozen
        assert sync.winner.name == "Alice"
        assert sync.prize == 14
        assert sync.audit_log.game_id == "BINGO-1"
        assert 75 not in sync.called_numbers
        assert await sync.claim_bingo() is False

    async def test_pool_exhausted_without_winner(self):
        sync, _ = await _in_game()

        await sync.handle_message(_wire(WinnerAnnouncedMessage(winner=None, prize=0, audit_log=_audit_log())))

        assert sync.step == ClientStep.POSTGAME
        assert sync.winner is None

    async def test_disconnect_flag_mirrored_in_game(self):
        sync, _ = await _in_game()
        roster = [RosterEntry(id=MY_ID, name="Alice"), RosterEntry(id="conn-bob", name="Bob", disconnected=True)]

        await sync.handle_message(_wire(LobbyUpdateMessage(players=roster)))

        bob = next(p for p in sync.players if p.name == "Bob")
        assert bob.disconnected

    async def test_play_again_remembers_card(self):
        sync, link = await _in_game()
        await sync.handle_message(_wire(WinnerAnnouncedMessage(winner=None, prize=0, audit_log=_audit_log())))

        await sync.play_again()

        assert sync.step == ClientStep.JOIN
        assert sync.last_used_card == make_card(0)
        assert link.closed


class TestErrors:
    async def test_recoverable_error_keeps_state(self):
        sync, link = await _joined()
        await sync.select_card(make_card(0))

        await sync.handle_message(_wire(ErrorMessage(code=ErrorCode.INVALID_CARD, message="bad card")))
        await sync.handle_message(_wire(CardAcceptedMessage()))

        assert sync.step == ClientStep.LOBBY
        assert sync.error == "bad card"
        assert sync.card is None
        assert not link.closed

    async def test_fatal_error_returns_to_join(self):
        sync, link = await _joined()

        await sync.handle_message(_wire(ErrorMessage(code=ErrorCode.LOBBY_CLOSED, message="Game already started")))

        assert sync.step == ClientStep.JOIN
        assert sync.error == "Game already started"
        assert link.closed

    async def test_malformed_message_is_ignored(self):
        sync, _ = await _joined()

        await sync.handle_message({"type": "NUMBER_CALL", "number": "many"})

        assert sync.step == ClientStep.LOBBY

    async def test_connection_lost_mid_game(self):
        sync, _ = await _in_game()

        await sync.handle_connection_lost()

        assert sync.step == ClientStep.JOIN
        assert sync.error == "Connection to the host was lost."

    async def test_connection_lost_after_game_keeps_result(self):
        sync, _ = await _in_game()
        await sync.handle_message(_wire(WinnerAnnouncedMessage(winner=None, prize=0, audit_log=_audit_log())))

        await sync.handle_connection_lost()

        assert sync.step == ClientStep.POSTGAME
        assert sync.audit_log is not None

    async def test_send_failure_is_connection_lost(self):
        sync, link = await _joined()
        link.fail_sends = True

        with pytest.raises(ConnectivityError) as exc_info:
            await sync.select_card(make_card(0))

        assert exc_info.value.reason == ConnectivityFailure.CONNECTION_LOST
        assert sync.step == ClientStep.JOIN

    async def test_transport_error_returns_to_join(self):
        sync, _ = await _joined()

        await sync.handle_transport_error(OSError("reset"))

        assert sync.step == ClientStep.JOIN
        assert "reset" in sync.error
