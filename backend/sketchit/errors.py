"""Errors raised by game operations.

Every error carries a short machine-readable ``code`` that socket handlers
forward to the client next to the human readable message.
"""

from __future__ import annotations


class GameError(Exception):
    code = "error"

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code:
            self.code = code

    def to_payload(self) -> dict:
        return {"code": self.code, "message": self.message}


class ValidationError(GameError):
    code = "invalid"


class AuthorizationError(GameError):
    code = "forbidden"


class StateError(GameError):
    code = "bad-state"


class NotFoundError(GameError):
    code = "not-found"


class InternalError(GameError):
    code = "internal"
