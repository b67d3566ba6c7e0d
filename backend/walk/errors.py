# walk/errors.py
from __future__ import annotations

from enum import Enum


class WalkErrorCode(str, Enum):
    INVALID_STAKE = "INVALID_STAKE"
    ALREADY_ACTIVE = "ALREADY_ACTIVE"
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"
    SESSION_NOT_FOUND = "SESSION_NOT_FOUND"
    ALREADY_COMPLETED = "ALREADY_COMPLETED"
    INVALID_CASHOUT_TIME = "INVALID_CASHOUT_TIME"
    INCONSISTENT_STATE = "INCONSISTENT_STATE"


DEFAULT_MESSAGES = {
    WalkErrorCode.INVALID_STAKE: "Stake is outside the allowed range",
    WalkErrorCode.ALREADY_ACTIVE: "You already have an active game session",
    WalkErrorCode.INSUFFICIENT_BALANCE: "Insufficient balance",
    WalkErrorCode.SESSION_NOT_FOUND: "Game session not found",
    WalkErrorCode.ALREADY_COMPLETED: "Game session already completed",
    WalkErrorCode.INVALID_CASHOUT_TIME: "Invalid cashout time",
    WalkErrorCode.INCONSISTENT_STATE: "Game state could not be confirmed",
}


class WalkError(Exception):
    """
    The one error type the engine raises. Callers branch on ``code``;
    views map every code through ``walk.views.ERROR_STATUS``.
    """

    def __init__(self, code: WalkErrorCode, message: str | None = None, **details):
        self.code = WalkErrorCode(code)
        self.message = message or DEFAULT_MESSAGES[self.code]
        self.details = details
        super().__init__(self.message)

    def __repr__(self) -> str:
        return f"WalkError({self.code.value}, {self.message!r})"
