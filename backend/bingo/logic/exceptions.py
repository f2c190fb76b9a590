"""Typed domain exceptions for bingo rule violations.

Rule violations raised by the domain layer use subclasses of GameRuleError
so the host coordinator and the message router can catch them at one
boundary and convert them into ERROR messages. Connectivity and storage
failures have their own roots because they are handled by different layers
(the client synchronizer and the repositories respectively).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from shared.dal.errors import PersistenceError

if TYPE_CHECKING:
    from bingo.logic.cards import CellError
    from bingo.logic.enums import ConnectivityFailure


class GameRuleError(Exception):
    """Base exception for bingo rule violations."""


class CardValidationError(GameRuleError):
    """A card failed validation.

    Attributes:
        errors: One entry per offending cell, in row-major order.

    """

    def __init__(self, errors: list[CellError]) -> None:
        self.errors = errors
        cells = ", ".join(f"({e.row},{e.col}):{e.code}" for e in errors)
        super().__init__(f"invalid card: {cells}")


class ProtocolViolationError(GameRuleError):
    """A peer sent a message that is not legal in the current state."""


class InvalidTransitionError(GameRuleError):
    """A host action is not legal in the current game state."""


class ConnectivityError(Exception):
    """The client could not reach the host, or the link dropped.

    Attributes:
        reason: Which failure occurred.

    """

    def __init__(self, reason: ConnectivityFailure, detail: str = "") -> None:
        self.reason = reason
        self.detail = detail
        super().__init__(f"{reason}: {detail}" if detail else str(reason))


__all__ = [
    "CardValidationError",
    "ConnectivityError",
    "GameRuleError",
    "InvalidTransitionError",
    "PersistenceError",
    "ProtocolViolationError",
]
