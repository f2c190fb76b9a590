"""
Wire message models for the host <-> player protocol.

Every message is a MessagePack map with a "type" discriminator. Player->host
and host->player messages are parsed through separate adapters so each side
only accepts what its peer may legitimately send.
"""

from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, TypeAdapter, field_validator

from bingo.logic.settings import GameSettings, LobbySettings
from bingo.logic.types import BingoPlayer, RosterEntry
from shared.dal.models import GameAuditLog

# ASCII control character boundaries for input validation
_SPACE_ORD = 0x20
_DEL_ORD = 0x7F

MAX_NAME_LENGTH = 50


class MessageType(StrEnum):
    PLAYER_JOIN_REQUEST = "PLAYER_JOIN_REQUEST"
    WELCOME_PLAYER = "WELCOME_PLAYER"
    LOBBY_UPDATE = "LOBBY_UPDATE"
    CONFIG_UPDATE = "CONFIG_UPDATE"
    CARD_SELECTION = "CARD_SELECTION"
    CARD_ACCEPTED = "CARD_ACCEPTED"
    CARD_REJECTED_DUPLICATE = "CARD_REJECTED_DUPLICATE"
    GAME_START = "GAME_START"
    NUMBER_CALL = "NUMBER_CALL"
    BINGO = "BINGO"
    WINNER_ANNOUNCED = "WINNER_ANNOUNCED"
    ERROR = "ERROR"


class ErrorCode(StrEnum):
    INVALID_MESSAGE = "invalid_message"
    LOBBY_CLOSED = "lobby_closed"
    ALREADY_JOINED = "already_joined"
    NOT_JOINED = "not_joined"
    INVALID_CARD = "invalid_card"
    NO_CARD_SELECTED = "no_card_selected"
    INTERNAL_ERROR = "internal_error"


# Error codes a client treats as a rejected submission rather than a lost game.
RECOVERABLE_ERROR_CODES = frozenset({ErrorCode.INVALID_CARD, ErrorCode.INVALID_MESSAGE, ErrorCode.ALREADY_JOINED})

type RawCard = tuple[tuple[int | str, ...], ...]


# --- player -> host ---


class PlayerJoinRequestMessage(BaseModel):
    type: Literal[MessageType.PLAYER_JOIN_REQUEST] = MessageType.PLAYER_JOIN_REQUEST
    name: str = Field(min_length=1, max_length=MAX_NAME_LENGTH)

    @field_validator("name")
    @classmethod
    def _validate_name(cls, v: str) -> str:
        if any(ord(c) < _SPACE_ORD or ord(c) == _DEL_ORD for c in v):
            raise ValueError("name must not contain control characters")
        if not v.strip():
            raise ValueError("name must not be blank")
        return v.strip()


class CardSelectionMessage(BaseModel):
    """A player's chosen card. The mark grid is accepted for compatibility but never trusted."""

    type: Literal[MessageType.CARD_SELECTION] = MessageType.CARD_SELECTION
    card: RawCard
    marked_cells: tuple[tuple[bool, ...], ...] | None = None


class BingoClaimMessage(BaseModel):
    type: Literal[MessageType.BINGO] = MessageType.BINGO


PlayerMessage = Annotated[
    PlayerJoinRequestMessage | CardSelectionMessage | BingoClaimMessage,
    Field(discriminator="type"),
]


# --- host -> player ---


class WelcomePlayerMessage(BaseModel):
    type: Literal[MessageType.WELCOME_PLAYER] = MessageType.WELCOME_PLAYER
    your_id: str
    players: list[RosterEntry]
    settings: LobbySettings


class LobbyUpdateMessage(BaseModel):
    type: Literal[MessageType.LOBBY_UPDATE] = MessageType.LOBBY_UPDATE
    players: list[RosterEntry]


class ConfigUpdateMessage(BaseModel):
    type: Literal[MessageType.CONFIG_UPDATE] = MessageType.CONFIG_UPDATE
    settings: LobbySettings


class CardAcceptedMessage(BaseModel):
    type: Literal[MessageType.CARD_ACCEPTED] = MessageType.CARD_ACCEPTED


class CardRejectedDuplicateMessage(BaseModel):
    type: Literal[MessageType.CARD_REJECTED_DUPLICATE] = MessageType.CARD_REJECTED_DUPLICATE
    message: str


class GameStartMessage(BaseModel):
    type: Literal[MessageType.GAME_START] = MessageType.GAME_START
    settings: GameSettings
    players: list[BingoPlayer]


class NumberCallMessage(BaseModel):
    type: Literal[MessageType.NUMBER_CALL] = MessageType.NUMBER_CALL
    number: int = Field(ge=1, le=75)
    called_numbers: list[int]


class WinnerAnnouncedMessage(BaseModel):
    """Final verdict. winner is None when the number pool ran out."""

    type: Literal[MessageType.WINNER_ANNOUNCED] = MessageType.WINNER_ANNOUNCED
    winner: BingoPlayer | None
    prize: float
    audit_log: GameAuditLog


class ErrorMessage(BaseModel):
    type: Literal[MessageType.ERROR] = MessageType.ERROR
    code: ErrorCode
    message: str


HostMessage = Annotated[
    WelcomePlayerMessage
    | LobbyUpdateMessage
    | ConfigUpdateMessage
    | CardAcceptedMessage
    | CardRejectedDuplicateMessage
    | GameStartMessage
    | NumberCallMessage
    | WinnerAnnouncedMessage
    | ErrorMessage,
    Field(discriminator="type"),
]

_player_message_adapter = TypeAdapter(PlayerMessage)
_host_message_adapter = TypeAdapter(HostMessage)


def parse_player_message(data: dict[str, Any]) -> PlayerJoinRequestMessage | CardSelectionMessage | BingoClaimMessage:
    """Parse a raw dict received by the host into a typed player message."""
    return _player_message_adapter.validate_python(data)


def parse_host_message(
    data: dict[str, Any],
) -> (
    WelcomePlayerMessage
    | LobbyUpdateMessage
    | ConfigUpdateMessage
    | CardAcceptedMessage
    | CardRejectedDuplicateMessage
    | GameStartMessage
    | NumberCallMessage
    | WinnerAnnouncedMessage
    | ErrorMessage
):
    """Parse a raw dict received by a player's client into a typed host message."""
    return _host_message_adapter.validate_python(data)
