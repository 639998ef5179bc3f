"""
backend/golaco/errors.py

Purpose:
    Domain error taxonomy raised by game services and mapped to HTTP
    responses by the exception handler registered in golaco.main.

Dependencies:
    - fastapi.status
"""

from __future__ import annotations

from typing import Any

from fastapi import status


class GameError(Exception):
    """Base class for every business-rule failure surfaced to callers."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "game_error"

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def to_payload(self) -> dict[str, Any]:
        return {"detail": self.message, "code": self.code, **self.context}


class ValidationError(GameError):
    """Malformed input or a violated invariant (team counts, overlapping windows, guards)."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "validation_error"


class NotFoundError(GameError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class ConflictError(GameError):
    """A concurrent update won the race; surfaced after one internal retry."""

    status_code = status.HTTP_409_CONFLICT
    code = "conflict"


class NotEligibleError(GameError):
    """The user may not shoot right now. Not retryable until the condition changes."""

    status_code = status.HTTP_403_FORBIDDEN
    code = "not_eligible"


class NotEligibleYetError(NotEligibleError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    code = "cooldown_active"

    def __init__(self, seconds_remaining: int, message: str | None = None) -> None:
        super().__init__(
            message or f"Next shot available in {seconds_remaining} seconds.",
            seconds_remaining=seconds_remaining,
        )
        self.seconds_remaining = seconds_remaining


class NoActiveMatchError(NotEligibleError):
    code = "no_active_match"


class MatchNotActiveError(NotEligibleError):
    code = "match_not_active"
