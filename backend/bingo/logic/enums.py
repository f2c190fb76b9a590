"""
String enum definitions for bingo game concepts.
"""

from enum import StrEnum


class GameStatus(StrEnum):
    """Lifecycle of a hosted game."""

    WAITING = "WAITING"  # lobby phase
    RUNNING = "RUNNING"
    PAUSED = "PAUSED"
    OVER = "OVER"


class WinningPattern(StrEnum):
    """Patterns a card must complete to win. Values are the display names."""

    ANY_LINE = "Any Line"
    TWO_LINES = "Two Lines"
    X_PATTERN = "X Pattern"
    RECTANGLE = "Rectangle"
    FOUR_CORNERS = "Four Corners"
    FULL_HOUSE = "Full House"


class CallingMode(StrEnum):
    """Whether numbers are drawn on a timer or one at a time by the host."""

    AUTOMATIC = "AUTOMATIC"
    MANUAL = "MANUAL"


class MarkingMode(StrEnum):
    """Whether cards are daubed by the host or by each player."""

    AUTOMATIC = "AUTOMATIC"
    MANUAL = "MANUAL"


class Language(StrEnum):
    """Announcement language tag."""

    ENGLISH = "en"
    AMHARIC = "am"


class CellErrorCode(StrEnum):
    """Reasons a manually entered card cell is rejected."""

    REQUIRED = "required"
    NOT_A_NUMBER = "not_a_number"
    OUT_OF_RANGE = "out_of_range"
    DUPLICATE = "duplicate"


class ConnectivityFailure(StrEnum):
    """Why a client could not reach (or lost) the host."""

    TIMEOUT = "timeout"
    TRANSPORT_UNAVAILABLE = "transport_unavailable"
    PEER_UNREACHABLE = "peer_unreachable"
    PROTOCOL_UNSUPPORTED = "protocol_unsupported"
    CONNECTION_LOST = "connection_lost"
    INVALID_LOBBY_ID = "invalid_lobby_id"


class ClientStep(StrEnum):
    """Screen-level phase of a player's client."""

    JOIN = "join"
    LOBBY = "lobby"
    GAME = "game"
    POSTGAME = "postgame"
