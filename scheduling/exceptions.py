"""
Booking engine error taxonomy.

Every error carries a stable `error_code`, a user-facing `message` and a
`details` dict. None of them is retried by the engine:
- ValidationError: bad or missing input (client identity, service type, ...)
- NotFoundError: unknown calendar, service type or booking for the tenant
- ConflictError: the slot is no longer available, re-query fresh slots
- InvalidTransitionError: status change not allowed from the current state
- NoEligibleOwnerError: calendar has nobody who can receive bookings
"""

from typing import Any


class BookingEngineError(Exception):
    """Base exception for booking engine errors."""

    default_error_code = "BOOKING_ERROR"

    def __init__(
        self,
        message: str,
        *,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "error_code": self.error_code,
            "error_message": self.message,
            "details": self.details,
        }


class ValidationError(BookingEngineError):
    """Raised when a request is missing or has invalid data."""

    default_error_code = "VALIDATION_ERROR"


class NotFoundError(BookingEngineError):
    """Raised when a calendar, service type or booking does not exist for the tenant."""

    default_error_code = "NOT_FOUND"


class ConflictError(BookingEngineError):
    """Raised when the requested interval is no longer available."""

    default_error_code = "SLOT_TAKEN"


class InvalidTransitionError(BookingEngineError):
    """Raised when a booking status change is not allowed."""

    default_error_code = "INVALID_STATUS_TRANSITION"


class NoEligibleOwnerError(BookingEngineError):
    """Raised when no owner of the calendar can receive bookings."""

    default_error_code = "NO_ELIGIBLE_OWNER"
