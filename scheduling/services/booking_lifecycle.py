"""
Booking lifecycle - Status transitions after a booking exists.

    pending   -> confirmed   (staff confirms a public request)
    pending   -> cancelled   (before the booking ends)
    confirmed -> cancelled   (before the booking ends)
    confirmed -> completed   (after the booking ends)
    confirmed -> no_show     (after the booking ends)

completed, cancelled and no_show are terminal.
"""

import logging
from datetime import UTC, datetime
from typing import Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError

from database.connection import get_async_session
from database.models import Booking, BookingStatus
from scheduling.context import TenantContext
from scheduling.exceptions import InvalidTransitionError
from scheduling.services.booking_query_service import load_booking

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[BookingStatus, set[BookingStatus]] = {
    BookingStatus.PENDING: {BookingStatus.CONFIRMED, BookingStatus.CANCELLED},
    BookingStatus.CONFIRMED: {
        BookingStatus.CANCELLED,
        BookingStatus.COMPLETED,
        BookingStatus.NO_SHOW,
    },
    BookingStatus.COMPLETED: set(),
    BookingStatus.CANCELLED: set(),
    BookingStatus.NO_SHOW: set(),
}


def can_transition(
    current: BookingStatus,
    target: BookingStatus,
    end_datetime: datetime,
    now: datetime,
) -> bool:
    """
    Whether `current -> target` is allowed for a booking ending at `end_datetime`.

    Cancelling needs the booking not to have ended yet; completing or marking
    a no-show needs it to have ended.
    """
    if target not in ALLOWED_TRANSITIONS.get(current, set()):
        return False
    if target == BookingStatus.CANCELLED:
        return end_datetime > now
    if target in (BookingStatus.COMPLETED, BookingStatus.NO_SHOW):
        return end_datetime <= now
    return True


def assert_transition(
    current: BookingStatus,
    target: BookingStatus,
    end_datetime: datetime,
    now: datetime,
) -> None:
    """
    Raises:
        InvalidTransitionError: If the transition is not allowed
    """
    if can_transition(current, target, end_datetime, now):
        return

    if target in ALLOWED_TRANSITIONS.get(current, set()):
        reason = (
            "booking has already ended"
            if target == BookingStatus.CANCELLED
            else "booking has not ended yet"
        )
    else:
        reason = f"{current.value} bookings cannot become {target.value}"

    raise InvalidTransitionError(
        f"Cannot change booking status: {reason}",
        details={"from": current.value, "to": target.value},
    )


async def _transition(
    ctx: TenantContext,
    booking_id: UUID,
    target: BookingStatus,
    now: Optional[datetime],
    cancellation_reason: Optional[str] = None,
) -> Booking:
    now = now or datetime.now(UTC)

    async with get_async_session() as session:
        try:
            booking = await load_booking(session, ctx, booking_id)
            previous = booking.status
            assert_transition(previous, target, booking.end_datetime, now)

            booking.status = target
            if target == BookingStatus.CANCELLED:
                booking.cancellation_reason = (cancellation_reason or "").strip() or None

            await session.commit()
            await session.refresh(booking)

        except SQLAlchemyError as e:
            logger.error(
                f"Database error changing booking status: {e}",
                extra={"booking_id": booking_id},
                exc_info=True,
            )
            raise

    logger.info(
        f"Booking status changed: {previous.value} -> {target.value}",
        extra={"booking_id": booking_id, "tenant_id": ctx.tenant_id},
    )
    return booking


async def cancel_booking(
    ctx: TenantContext,
    booking_id: UUID,
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Booking:
    """Cancel a pending or confirmed booking that has not ended."""
    return await _transition(ctx, booking_id, BookingStatus.CANCELLED, now, reason)


async def confirm_booking(
    ctx: TenantContext,
    booking_id: UUID,
    now: Optional[datetime] = None,
) -> Booking:
    return await _transition(ctx, booking_id, BookingStatus.CONFIRMED, now)


async def complete_booking(
    ctx: TenantContext,
    booking_id: UUID,
    now: Optional[datetime] = None,
) -> Booking:
    return await _transition(ctx, booking_id, BookingStatus.COMPLETED, now)


async def mark_no_show(
    ctx: TenantContext,
    booking_id: UUID,
    now: Optional[datetime] = None,
) -> Booking:
    return await _transition(ctx, booking_id, BookingStatus.NO_SHOW, now)
