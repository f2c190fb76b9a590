from unittest.mock import patch

import pytest

from bingo.logic.enums import GameStatus
from bingo.messaging.router import HostMessageRouter
from bingo.messaging.types import ErrorCode, MessageType
from bingo.tests.helpers.cards import card_to_wire, make_card
from bingo.tests.helpers.coordinator import build_coordinator
from bingo.tests.mocks import MockConnection


class TestHostMessageRouter:
    @pytest.fixture
    async def setup(self):
        coordinator = build_coordinator()
        router = HostMessageRouter(coordinator)
        connection = MockConnection("conn-alice")
        await router.handle_connect(connection)
        return router, connection, coordinator

    async def test_join_request_routes_to_coordinator(self, setup):
        router, connection, coordinator = setup

        await router.handle_message(connection, {"type": "PLAYER_JOIN_REQUEST", "name": "Alice"})

        assert [p.name for p in coordinator.players] == ["Alice"]
        assert connection.sent_messages[0]["type"] == MessageType.WELCOME_PLAYER

    async def test_card_selection_routes_to_coordinator(self, setup):
        router, connection, coordinator = setup
        await router.handle_message(connection, {"type": "PLAYER_JOIN_REQUEST", "name": "Alice"})
        connection.clear()

        await router.handle_message(connection, {"type": "CARD_SELECTION", "card": card_to_wire(make_card())})

        assert coordinator.players[0].card == make_card()
        assert connection.sent_messages[0]["type"] == MessageType.CARD_ACCEPTED

    async def test_invalid_message_returns_error_without_state_change(self, setup):
        router, connection, coordinator = setup

        await router.handle_message(connection, {"type": "NOT_A_MESSAGE"})

        assert len(connection.sent_messages) == 1
        response = connection.sent_messages[0]
        assert response["type"] == MessageType.ERROR
        assert response["code"] == ErrorCode.INVALID_MESSAGE
        assert coordinator.players == ()
        assert coordinator.status == GameStatus.WAITING

    async def test_bingo_before_start_is_dropped(self, setup):
        router, connection, coordinator = setup
        await router.handle_message(connection, {"type": "PLAYER_JOIN_REQUEST", "name": "Alice"})
        connection.clear()

        await router.handle_message(connection, {"type": "BINGO"})

        assert connection.sent_messages == []
        assert coordinator.winner is None

    async def test_unexpected_error_closes_connection(self, setup):
        router, connection, coordinator = setup

        with patch.object(coordinator, "handle_join_request", side_effect=KeyError("boom")):
            await router.handle_message(connection, {"type": "PLAYER_JOIN_REQUEST", "name": "Alice"})

        assert connection.is_closed
        assert connection.close_code == 1011

    async def test_disconnect_removes_lobby_player(self, setup):
        router, connection, coordinator = setup
        await router.handle_message(connection, {"type": "PLAYER_JOIN_REQUEST", "name": "Alice"})

        await router.handle_disconnect(connection)

        assert coordinator.players == ()
        assert coordinator.connection_count == 0

    async def test_transport_error_is_treated_as_disconnect(self, setup):
        router, connection, coordinator = setup
        await router.handle_message(connection, {"type": "PLAYER_JOIN_REQUEST", "name": "Alice"})

        await router.handle_error(connection, OSError("reset"))

        assert coordinator.players == ()
