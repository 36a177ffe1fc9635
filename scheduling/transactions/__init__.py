"""Atomic booking writes."""

from scheduling.transactions.booking_transaction import (
    BookingRequest,
    BookingTransaction,
    BookingUpdate,
)

__all__ = ["BookingRequest", "BookingTransaction", "BookingUpdate"]
