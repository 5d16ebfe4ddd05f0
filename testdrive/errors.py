"""
Domain errors raised by the booking engine.

Each error carries a machine-readable ``code`` and a ``details`` dict so the
HTTP layer can report the conflicting slot or range back to the caller.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional

from fastapi import HTTPException, status


class ConflictKind(str, Enum):
    ALREADY_BOOKED = "ALREADY_BOOKED"
    CAR_UNAVAILABLE = "CAR_UNAVAILABLE"
    BOOKING_EXISTS_IN_RANGE = "BOOKING_EXISTS_IN_RANGE"


class BookingError(Exception):
    """Base exception for all booking engine errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_code: str = "BOOKING_ERROR"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}
        super().__init__(self.message)

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=self.status_code,
            detail={
                "message": self.message,
                "code": self.code,
                "details": self.details,
            },
        )


class ValidationError(BookingError):
    """Malformed input: unknown car model, slot or period."""

    status_code = 422
    default_code = "VALIDATION_ERROR"


class ConflictError(BookingError):
    """Well-formed request that collides with an existing claim."""

    status_code = status.HTTP_409_CONFLICT

    def __init__(
        self,
        kind: ConflictKind,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.kind = ConflictKind(kind)
        super().__init__(message, code=self.kind.value, details=details)


class NotFoundError(BookingError):
    status_code = status.HTTP_404_NOT_FOUND
    default_code = "NOT_FOUND"


class StoreTransientError(BookingError):
    """The store stayed unreachable, deadlocked or locked after a retry."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_code = "STORE_UNAVAILABLE"
