"""
Validators for booking business rules.

Exports:
    validate_slot_availability: Commit-time overlap check (capacity aware)
    validate_daily_limit: Service type max_per_day check
    validate_advance_notice: Min/max advance booking window
    validate_client_identity: Lead reference or client name
"""

from scheduling.validators.transaction_validators import (
    acquire_calendar_lock,
    validate_advance_notice,
    validate_client_identity,
    validate_daily_limit,
    validate_slot_availability,
)

__all__ = [
    "acquire_calendar_lock",
    "validate_advance_notice",
    "validate_client_identity",
    "validate_daily_limit",
    "validate_slot_availability",
]
