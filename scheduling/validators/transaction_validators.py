"""
Transaction Validators for Booking Business Rules.

Checks run by BookingTransaction inside the same database transaction as
the write. The per-calendar advisory lock must be held before
`validate_slot_availability` runs, so two writers on one calendar can never
both see the same free interval.
"""

import logging
from datetime import datetime, timedelta
from uuid import UUID
from zoneinfo import ZoneInfo

from sqlalchemy import func, select, text
from sqlalchemy.ext.asyncio import AsyncSession

from database.models import ACTIVE_BOOKING_STATUSES, Booking, CalendarBlock
from scheduling.utils.date_parser import local_date_of, local_day_bounds
from scheduling.utils.intervals import find_overlapping, to_utc

logger = logging.getLogger(__name__)


async def acquire_calendar_lock(session: AsyncSession, calendar_id: UUID) -> None:
    """
    Take the transaction-scoped advisory lock of a calendar.

    Released automatically on commit or rollback. Slot queries never take it.
    """
    await session.execute(
        text("SELECT pg_advisory_xact_lock(hashtext(:calendar_key))").bindparams(
            calendar_key=str(calendar_id)
        )
    )


async def validate_slot_availability(
    session: AsyncSession,
    calendar_id: UUID,
    start_time: datetime,
    end_time: datetime,
    capacity: int = 1,
    exclude_booking_id: UUID | None = None,
) -> dict:
    """
    Validate that [start_time, end_time) is still free at commit time.

    Blocks always conflict. Active bookings conflict once `capacity` of
    them overlap the interval.

    Args:
        session: SQLAlchemy async session (must be in active transaction)
        calendar_id: Calendar UUID
        start_time: Proposed start (timezone-aware)
        end_time: Proposed end (timezone-aware)
        capacity: Calendar max_bookings_per_slot
        exclude_booking_id: Booking being rescheduled, ignored in the count

    Returns:
        dict with validation result:
            {
                "available": bool,
                "error_code": str | None,  # "SLOT_BLOCKED" or "SLOT_TAKEN"
                "error_message": str | None,
                "conflicting_booking_ids": list[UUID]
            }
    """
    block_result = await session.execute(
        select(CalendarBlock.id, CalendarBlock.start_datetime, CalendarBlock.end_datetime).where(
            CalendarBlock.calendar_id == calendar_id,
            CalendarBlock.start_datetime < end_time,
            CalendarBlock.end_datetime > start_time,
        )
    )
    blocks = find_overlapping(
        start_time,
        end_time,
        [{"id": r[0], "start": r[1], "end": r[2]} for r in block_result.all()],
    )
    if blocks:
        logger.warning(
            f"Slot blocked: {start_time.isoformat()} - {end_time.isoformat()}",
            extra={"calendar_id": calendar_id},
        )
        return {
            "available": False,
            "error_code": "SLOT_BLOCKED",
            "error_message": "The requested time is blocked on this calendar",
            "conflicting_booking_ids": [],
        }

    stmt = select(Booking.id, Booking.start_datetime, Booking.end_datetime).where(
        Booking.calendar_id == calendar_id,
        Booking.status.in_(ACTIVE_BOOKING_STATUSES),
        Booking.start_datetime < end_time,
        Booking.end_datetime > start_time,
    )
    if exclude_booking_id is not None:
        stmt = stmt.where(Booking.id != exclude_booking_id)

    booking_result = await session.execute(stmt)
    conflicts = find_overlapping(
        start_time,
        end_time,
        [{"id": r[0], "start": r[1], "end": r[2]} for r in booking_result.all()],
    )

    if len(conflicts) >= capacity:
        logger.warning(
            f"Slot conflict detected: {start_time.isoformat()} - {end_time.isoformat()} "
            f"({len(conflicts)} overlapping, capacity {capacity})",
            extra={"calendar_id": calendar_id, "booking_id": conflicts[0]["id"]},
        )
        return {
            "available": False,
            "error_code": "SLOT_TAKEN",
            "error_message": "The requested time is no longer available",
            "conflicting_booking_ids": [c["id"] for c in conflicts],
        }

    return {
        "available": True,
        "error_code": None,
        "error_message": None,
        "conflicting_booking_ids": [],
    }


async def count_daily_bookings(
    session: AsyncSession,
    calendar_id: UUID,
    service_type_id: UUID,
    day_start: datetime,
    day_end: datetime,
    exclude_booking_id: UUID | None = None,
) -> int:
    """Active bookings of a service type starting within one local day."""
    stmt = select(func.count(Booking.id)).where(
        Booking.calendar_id == calendar_id,
        Booking.service_type_id == service_type_id,
        Booking.status.in_(ACTIVE_BOOKING_STATUSES),
        Booking.start_datetime >= day_start,
        Booking.start_datetime < day_end,
    )
    if exclude_booking_id is not None:
        stmt = stmt.where(Booking.id != exclude_booking_id)
    result = await session.execute(stmt)
    return result.scalar() or 0


async def validate_daily_limit(
    session: AsyncSession,
    calendar_id: UUID,
    service_type_id: UUID,
    max_per_day: int | None,
    day_start: datetime,
    day_end: datetime,
    exclude_booking_id: UUID | None = None,
) -> dict:
    """
    Validate the service type's max_per_day limit for one local day.

    Returns:
        {"valid": bool, "error_code": "DAILY_LIMIT_REACHED" | None,
         "error_message": str | None, "count": int}
    """
    if max_per_day is None:
        return {"valid": True, "error_code": None, "error_message": None, "count": 0}

    count = await count_daily_bookings(
        session, calendar_id, service_type_id, day_start, day_end, exclude_booking_id
    )
    if count >= max_per_day:
        logger.warning(
            f"Daily limit reached: {count}/{max_per_day}",
            extra={"calendar_id": calendar_id, "service_type_id": service_type_id},
        )
        return {
            "valid": False,
            "error_code": "DAILY_LIMIT_REACHED",
            "error_message": f"This service accepts at most {max_per_day} bookings per day",
            "count": count,
        }
    return {"valid": True, "error_code": None, "error_message": None, "count": count}


def validate_advance_notice(
    start_time: datetime,
    now: datetime,
    min_advance_hours: int,
    max_advance_days: int | None = None,
    tz: ZoneInfo | None = None,
) -> dict:
    """
    Validate that a booking starts inside the advance-booking window.

    With `tz`, the far limit is the end of the local day `max_advance_days`
    after today, matching the public slot listing; otherwise it is
    `now + max_advance_days`.

    Returns:
        {"valid": bool, "error_code": "TOO_SOON" | "TOO_FAR" | None,
         "error_message": str | None, "earliest": datetime, "latest": datetime | None}
    """
    earliest = now + timedelta(hours=min_advance_hours)
    latest = None
    if max_advance_days is not None:
        if tz is not None:
            last_day = local_date_of(now, tz) + timedelta(days=max_advance_days)
            latest = local_day_bounds(last_day, tz)[1]
        else:
            latest = now + timedelta(days=max_advance_days)

    start_instant = to_utc(start_time)

    if start_instant < earliest:
        logger.info(f"Advance notice violation: {start_time.isoformat()} < {earliest.isoformat()}")
        return {
            "valid": False,
            "error_code": "TOO_SOON",
            "error_message": f"Bookings require at least {min_advance_hours} hours of notice",
            "earliest": earliest,
            "latest": latest,
        }

    if latest is not None and start_instant >= to_utc(latest):
        return {
            "valid": False,
            "error_code": "TOO_FAR",
            "error_message": f"Bookings can be made at most {max_advance_days} days ahead",
            "earliest": earliest,
            "latest": latest,
        }

    return {
        "valid": True,
        "error_code": None,
        "error_message": None,
        "earliest": earliest,
        "latest": latest,
    }


def validate_client_identity(lead_id: UUID | None, client_name: str | None) -> dict:
    """A booking needs a lead reference or a non-empty client name."""
    if lead_id is not None or (client_name and client_name.strip()):
        return {"valid": True, "error_code": None, "error_message": None}
    return {
        "valid": False,
        "error_code": "CLIENT_REQUIRED",
        "error_message": "A lead or a client name is required",
    }
