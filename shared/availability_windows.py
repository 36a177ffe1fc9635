"""
Availability Window Store - Read access to a calendar's weekly open windows.

Windows live in the booking_availability table and are the only source of
opening times for slot generation. Day of week: 0=Sunday ... 6=Saturday.

Usage:
    from shared.availability_windows import list_active_windows

    windows = await list_active_windows(calendar_id, day_of_week=1)  # Monday
    for start, end in windows:
        ...

A weekday with no windows simply yields an empty list.
"""

import logging
from collections.abc import Awaitable, Callable
from datetime import time
from typing import Optional, TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from database.connection import get_async_session
from database.models import AvailabilityWindow

logger = logging.getLogger(__name__)

DAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]

T = TypeVar("T")


async def _run(
    fetch: Callable[[AsyncSession], Awaitable[T]],
    session: Optional[AsyncSession],
) -> T:
    if session is not None:
        return await fetch(session)
    async with get_async_session() as sess:
        return await fetch(sess)


async def list_active_windows(
    calendar_id: UUID,
    day_of_week: int,
    session: Optional[AsyncSession] = None,
) -> list[tuple[time, time]]:
    """
    Get the active windows of a calendar for one weekday.

    Args:
        calendar_id: Calendar UUID
        day_of_week: 0=Sunday ... 6=Saturday
        session: Optional existing database session

    Returns:
        List of (start_time, end_time) ordered by start_time.
        Empty list for out-of-range weekdays or days without availability.
    """
    if not 0 <= day_of_week <= 6:
        logger.warning(f"Invalid day_of_week requested: {day_of_week}")
        return []

    async def _fetch(sess: AsyncSession) -> list[tuple[time, time]]:
        result = await sess.execute(
            select(AvailabilityWindow.start_time, AvailabilityWindow.end_time)
            .where(
                AvailabilityWindow.calendar_id == calendar_id,
                AvailabilityWindow.day_of_week == day_of_week,
                AvailabilityWindow.is_active.is_(True),
            )
            .order_by(AvailabilityWindow.start_time)
        )
        return [(row[0], row[1]) for row in result.all()]

    windows = await _run(_fetch, session)
    logger.debug(
        f"Found {len(windows)} active windows on {DAY_NAMES[day_of_week]}",
        extra={"calendar_id": calendar_id},
    )
    return windows


async def list_calendar_windows(
    calendar_id: UUID,
    session: Optional[AsyncSession] = None,
) -> list[AvailabilityWindow]:
    """All windows of a calendar ordered by weekday, then start time."""

    async def _fetch(sess: AsyncSession) -> list[AvailabilityWindow]:
        result = await sess.execute(
            select(AvailabilityWindow)
            .where(AvailabilityWindow.calendar_id == calendar_id)
            .order_by(AvailabilityWindow.day_of_week, AvailabilityWindow.start_time)
        )
        return list(result.scalars().all())

    return await _run(_fetch, session)


async def get_active_days(
    calendar_id: UUID,
    session: Optional[AsyncSession] = None,
) -> set[int]:
    """Weekdays (0=Sunday) that have at least one active window."""

    async def _fetch(sess: AsyncSession) -> set[int]:
        result = await sess.execute(
            select(AvailabilityWindow.day_of_week)
            .where(
                AvailabilityWindow.calendar_id == calendar_id,
                AvailabilityWindow.is_active.is_(True),
            )
            .distinct()
        )
        return {row[0] for row in result.all()}

    return await _run(_fetch, session)
