"""Booking error taxonomy

Raised inside the scheduling core and translated into typed JSON bodies by the
exception handler in main.py. Only ConcurrencyError is retryable.
"""

from typing import Any, Optional


class BookingError(Exception):
    kind = "error"
    status_code = 400
    retryable = False

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "error": self.kind,
            "message": self.message,
            "retryable": self.retryable,
            "details": self.details,
        }


class ValidationError(BookingError):
    kind = "validation"
    status_code = 422


class NotFoundError(BookingError):
    kind = "not_found"
    status_code = 404


class AuthorizationError(BookingError):
    kind = "not_authorized"
    status_code = 403


class ClosedDayError(BookingError):
    kind = "closed_day"
    status_code = 422


class ConflictError(BookingError):
    kind = "conflict"
    status_code = 409


class ExtensionConflictError(ConflictError):
    """Adding a service would run into the following appointment"""

    kind = "extension_conflict"

    def __init__(self, message: str, outcome):
        super().__init__(message, details=outcome.to_dict())
        self.outcome = outcome


class ConcurrencyError(BookingError):
    kind = "concurrency"
    status_code = 409
    retryable = True


class StaleStateError(BookingError):
    kind = "stale_state"
    status_code = 409
