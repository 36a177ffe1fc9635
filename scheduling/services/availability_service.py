"""
Slot Generator - Bookable time slots for a calendar, service type and date.

Availability is derived entirely from PostgreSQL:
- weekly windows (booking_availability) give the opening times
- active bookings (pending/confirmed) occupy time up to the calendar capacity
- blocks (booking_blocks) remove time for the whole calendar

Slot walk, per window:
    cursor = window start
    while cursor + fit (duration + buffers) <= window end:
        slot = [cursor, cursor + duration)
        keep it if cursor >= min_start, no block overlaps it and fewer than
        `max_bookings_per_slot` active bookings overlap it
        cursor += duration

Buffers only decide whether a slot fits; slots are spaced by the service
duration. Generation is a pure read: calling it twice with the same data
returns the same slots.

Usage:
    from scheduling.services.availability_service import get_available_slots

    slots = await get_available_slots(ctx, calendar_id, service_type_id, "2025-11-10")
"""

import calendar as month_calendar
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta
from typing import Any, Optional
from uuid import UUID
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from database.connection import get_async_session
from database.models import (
    ACTIVE_BOOKING_STATUSES,
    Booking,
    Calendar,
    CalendarBlock,
    ServiceType,
)
from scheduling.context import TenantContext
from scheduling.exceptions import ValidationError
from scheduling.services.calendar_service import (
    get_calendar,
    get_public_calendar,
    get_service_type,
    list_eligible_owners,
)
from scheduling.utils.date_parser import (
    day_of_week,
    get_timezone,
    local_date_of,
    local_datetime,
    local_day_bounds,
    parse_local_date,
)
from scheduling.utils.intervals import (
    add_minutes,
    count_overlapping,
    find_overlapping,
    overlaps,
    to_utc,
)
from scheduling.validators.transaction_validators import count_daily_bookings
from shared.availability_windows import get_active_days, list_active_windows
from shared.config import get_settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AvailableSlot:
    """A candidate booking interval. `owner_name` is a label, not a reservation."""

    start: datetime
    end: datetime
    owner_id: UUID | None
    owner_name: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "time": self.start.strftime("%H:%M"),
            "owner_id": str(self.owner_id) if self.owner_id else None,
            "owner_name": self.owner_name,
        }


def coerce_local_date(value: date | str) -> date:
    """
    Accept a date or a "YYYY-MM-DD" string.

    Raises:
        ValidationError: If the string is not a valid date
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return parse_local_date(value)
    except ValueError as e:
        raise ValidationError(str(e), error_code="INVALID_DATE") from e


# ============================================================================
# Pure slot generation
# ============================================================================


def generate_slots(
    target_date: date,
    windows: Iterable[tuple[time, time]],
    tz: ZoneInfo,
    duration_minutes: int,
    fit_minutes: int | None = None,
    min_start: datetime | None = None,
    bookings: Iterable[dict[str, Any]] = (),
    blocks: Iterable[dict[str, Any]] = (),
    capacity: int = 1,
    owner_id: UUID | None = None,
    owner_name: str = "",
) -> list[AvailableSlot]:
    """
    Walk each window and return the free slots in chronological order.

    Window bounds come from the local date and wall-clock times; the walk
    itself runs on UTC instants, so on a DST change day every slot still
    lasts exactly `duration_minutes` and no two slots share an instant.

    Args:
        target_date: Calendar-local date
        windows: (start_time, end_time) wall-clock pairs for that weekday
        tz: Calendar timezone
        duration_minutes: Service duration (slot length and step)
        fit_minutes: Minutes a slot needs inside the window, buffers
            included (defaults to the duration)
        min_start: Earliest allowed slot start (None disables the check)
        bookings: Active bookings as {"start", "end"} dicts
        blocks: Blocks as {"start", "end"} dicts
        capacity: Overlapping active bookings allowed per interval
        owner_id / owner_name: Display label attached to every slot

    Returns:
        Non-overlapping slots in calendar-local time, sorted by start
    """
    if duration_minutes <= 0:
        return []

    fit_minutes = duration_minutes if fit_minutes is None else fit_minutes
    earliest = to_utc(min_start) if min_start is not None else None
    bookings = list(bookings)
    blocks = list(blocks)

    candidates: list[tuple[datetime, datetime]] = []
    for window_start, window_end in windows:
        cursor = to_utc(local_datetime(target_date, window_start, tz))
        window_close = to_utc(local_datetime(target_date, window_end, tz))

        while add_minutes(cursor, fit_minutes) <= window_close:
            slot_end = add_minutes(cursor, duration_minutes)

            is_free = (
                (earliest is None or cursor >= earliest)
                and not find_overlapping(cursor, slot_end, blocks)
                and count_overlapping(cursor, slot_end, bookings) < capacity
            )
            if is_free:
                candidates.append((cursor, slot_end))

            cursor = slot_end

    # Overlapping windows must not yield overlapping slots
    candidates.sort()
    kept: list[tuple[datetime, datetime]] = []
    for start, end in candidates:
        if kept and overlaps(kept[-1][0], kept[-1][1], start, end):
            continue
        kept.append((start, end))

    return [
        AvailableSlot(
            start=start.astimezone(tz),
            end=end.astimezone(tz),
            owner_id=owner_id,
            owner_name=owner_name,
        )
        for start, end in kept
    ]


def available_dates_in_month(
    active_days: set[int],
    year: int,
    month: int,
    tz: ZoneInfo,
    min_advance_hours: int,
    max_advance_days: int,
    now: datetime,
) -> list[date]:
    """
    Days of a month that can be offered in a public date picker.

    A day qualifies when its weekday has at least one active window and it
    lies between the local date of `now + min_advance_hours` and
    `today + max_advance_days` (both inclusive).
    """
    if not 1 <= month <= 12:
        raise ValidationError("Month must be between 1 and 12", error_code="INVALID_DATE")

    earliest = local_date_of(now + timedelta(hours=min_advance_hours), tz)
    latest = local_date_of(now, tz) + timedelta(days=max_advance_days)

    _, days_in_month = month_calendar.monthrange(year, month)
    dates = []
    for day in range(1, days_in_month + 1):
        candidate = date(year, month, day)
        if earliest <= candidate <= latest and day_of_week(candidate) in active_days:
            dates.append(candidate)
    return dates


# ============================================================================
# Database reads
# ============================================================================


async def get_busy_periods(
    session: AsyncSession,
    calendar_id: UUID,
    range_start: datetime,
    range_end: datetime,
) -> tuple[list[dict[str, Any]], list[dict[str, Any]]]:
    """
    Active bookings and blocks overlapping [range_start, range_end).

    Returns:
        (bookings, blocks), each a list of
        {"start": datetime, "end": datetime, "type": "booking" | "block", "id": UUID}
    """
    booking_result = await session.execute(
        select(Booking.id, Booking.start_datetime, Booking.end_datetime).where(
            Booking.calendar_id == calendar_id,
            Booking.status.in_(ACTIVE_BOOKING_STATUSES),
            Booking.start_datetime < range_end,
            Booking.end_datetime > range_start,
        )
    )
    bookings = [
        {"id": row[0], "start": row[1], "end": row[2], "type": "booking"}
        for row in booking_result.all()
    ]

    block_result = await session.execute(
        select(CalendarBlock.id, CalendarBlock.start_datetime, CalendarBlock.end_datetime).where(
            CalendarBlock.calendar_id == calendar_id,
            CalendarBlock.start_datetime < range_end,
            CalendarBlock.end_datetime > range_start,
        )
    )
    blocks = [
        {"id": row[0], "start": row[1], "end": row[2], "type": "block"}
        for row in block_result.all()
    ]

    return bookings, blocks


async def _slots_for_day(
    session: AsyncSession,
    calendar: Calendar,
    service_type: ServiceType,
    target_date: date,
    min_start: datetime,
) -> list[AvailableSlot]:
    settings = get_settings()
    tz = get_timezone(calendar.timezone)
    day_start, day_end = local_day_bounds(target_date, tz)

    if not service_type.is_active:
        logger.info(
            "No slots: service type is inactive",
            extra={"calendar_id": calendar.id, "service_type_id": service_type.id},
        )
        return []

    if service_type.max_per_day is not None:
        booked = await count_daily_bookings(
            session, calendar.id, service_type.id, day_start, day_end
        )
        if booked >= service_type.max_per_day:
            logger.info(
                f"No slots on {target_date}: daily limit reached ({booked}/{service_type.max_per_day})",
                extra={"calendar_id": calendar.id, "service_type_id": service_type.id},
            )
            return []

    windows = await list_active_windows(calendar.id, day_of_week(target_date), session=session)
    if not windows:
        return []

    bookings, blocks = await get_busy_periods(session, calendar.id, day_start, day_end)

    owners = await list_eligible_owners(session, calendar.id)
    if owners:
        owner_id = owners[0].user_id
        owner_name = owners[0].display_name or settings.OWNER_PLACEHOLDER_NAME
    else:
        owner_id = None
        owner_name = settings.OWNER_PLACEHOLDER_NAME

    slots = generate_slots(
        target_date,
        windows,
        tz,
        duration_minutes=service_type.duration_minutes,
        fit_minutes=service_type.fit_duration_minutes,
        min_start=min_start,
        bookings=bookings,
        blocks=blocks,
        capacity=calendar.max_bookings_per_slot or 1,
        owner_id=owner_id,
        owner_name=owner_name,
    )

    logger.info(
        f"Found {len(slots)} available slots on {target_date}",
        extra={"calendar_id": calendar.id, "service_type_id": service_type.id},
    )
    return slots


async def get_available_slots(
    ctx: TenantContext,
    calendar_id: UUID,
    service_type_id: UUID,
    target_date: date | str,
    now: Optional[datetime] = None,
) -> list[AvailableSlot]:
    """
    Slots for a staff user of the calendar's tenant.

    The earliest slot start is `now + service_type.min_advance_hours`.

    Raises:
        NotFoundError: Unknown calendar or service type for this tenant
        ValidationError: Malformed date
    """
    local_date = coerce_local_date(target_date)
    now = now or datetime.now(UTC)

    async with get_async_session() as session:
        calendar = await get_calendar(session, ctx, calendar_id)
        service_type = await get_service_type(session, calendar.id, service_type_id)
        min_start = now + timedelta(hours=service_type.min_advance_hours or 0)
        return await _slots_for_day(session, calendar, service_type, local_date, min_start)


async def get_public_available_slots(
    slug: str,
    service_type_id: UUID,
    target_date: date | str,
    now: Optional[datetime] = None,
) -> list[AvailableSlot]:
    """
    Slots of a public calendar, clamped to its advance-booking window.

    Dates beyond `today + max_advance_days` or before the local date of
    `now + min_advance_hours` return no slots. Within range the earliest
    slot start is `now + max(calendar, service type) min_advance_hours`.
    """
    local_date = coerce_local_date(target_date)
    now = now or datetime.now(UTC)

    async with get_async_session() as session:
        calendar = await get_public_calendar(session, slug)
        tz = get_timezone(calendar.timezone)

        latest = local_date_of(now, tz) + timedelta(days=calendar.max_advance_days)
        earliest = local_date_of(now + timedelta(hours=calendar.min_advance_hours), tz)
        if local_date > latest or local_date < earliest:
            logger.info(
                f"Date {local_date} outside public booking window ({earliest} - {latest})",
                extra={"calendar_id": calendar.id},
            )
            return []

        service_type = await get_service_type(session, calendar.id, service_type_id)
        advance_hours = max(calendar.min_advance_hours, service_type.min_advance_hours or 0)
        min_start = now + timedelta(hours=advance_hours)
        return await _slots_for_day(session, calendar, service_type, local_date, min_start)


async def get_public_available_dates(
    slug: str,
    year: int,
    month: int,
    now: Optional[datetime] = None,
) -> list[date]:
    """Bookable dates of a public calendar for a month view."""
    now = now or datetime.now(UTC)

    async with get_async_session() as session:
        calendar = await get_public_calendar(session, slug)
        active_days = await get_active_days(calendar.id, session=session)

    return available_dates_in_month(
        active_days,
        year,
        month,
        get_timezone(calendar.timezone),
        calendar.min_advance_hours,
        calendar.max_advance_days,
        now,
    )
