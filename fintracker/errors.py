"""Error taxonomy shared by the stores, the auth gate and the HTTP layer."""

from __future__ import annotations

from enum import Enum

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

__all__ = [
    "AuthError",
    "AuthFailure",
    "ConflictError",
    "FinTrackerError",
    "InternalError",
    "NotFoundError",
    "ValidationError",
    "translate_store_error",
]

CATEGORY_NOT_OWNED = "category does not exist or does not belong to user"


class FinTrackerError(RuntimeError):
    """Base class carrying the user facing message and the HTTP status."""

    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(FinTrackerError):
    """Raised when input is malformed or out of range."""

    status_code = 400


class ConflictError(FinTrackerError):
    """Raised when a write collides with existing state."""

    status_code = 400


class NotFoundError(FinTrackerError):
    """Raised when an entity is missing or owned by another user."""

    status_code = 404


class InternalError(FinTrackerError):
    """Raised when the store fails in an unexpected way."""

    status_code = 500


class AuthFailure(str, Enum):
    MISSING = "authorization header required"
    INVALID_OR_EXPIRED = "invalid or expired token"
    MALFORMED_CLAIMS = "invalid user_id in token"
    INVALID_CREDENTIALS = "invalid credentials"


class AuthError(FinTrackerError):
    """Raised when a request cannot be tied to an authenticated user."""

    status_code = 401

    def __init__(self, reason: AuthFailure) -> None:
        super().__init__(reason.value)
        self.reason = reason


def translate_store_error(exc: SQLAlchemyError) -> FinTrackerError:
    """Map a driver level failure onto the closest taxonomy member."""

    text = str(getattr(exc, "orig", None) or exc).lower()
    if isinstance(exc, IntegrityError):
        if "unique" in text and "username" in text:
            return ConflictError("username already exists")
        if "foreign key" in text:
            return ValidationError(CATEGORY_NOT_OWNED)
    return InternalError("internal server error")
