"""
Owner Allocator - Weighted fair assignment of new bookings to staff.

One policy covers both booking paths; only its parameters differ:
- scope SAME_DAY counts bookings that start on the booking's local day
- scope TRAILING_WINDOW counts bookings created in the last `window_days`

The owner with the lowest `count / weight` wins. Ties go to the owner that
comes first in membership order, so the decision is deterministic for a
given snapshot. With equal weights this degrades to round robin.
"""

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import Enum
from fractions import Fraction
from typing import Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from database.models import Booking, BookingStatus, Calendar
from scheduling.exceptions import NoEligibleOwnerError
from scheduling.services.calendar_service import list_eligible_owners
from scheduling.utils.date_parser import get_timezone, local_date_of, local_day_bounds
from shared.config import get_settings

logger = logging.getLogger(__name__)


class AllocationScope(str, Enum):
    SAME_DAY = "same_day"
    TRAILING_WINDOW = "trailing_window"


@dataclass(frozen=True)
class AllocationPolicy:
    """Which bookings count toward an owner's load."""

    scope: AllocationScope
    window_days: int = 30
    counted_statuses: tuple[BookingStatus, ...] = field(
        default=(BookingStatus.PENDING, BookingStatus.CONFIRMED)
    )


def policy_for(is_public: bool) -> AllocationPolicy:
    """Configured policy for the public or the authenticated booking path."""
    settings = get_settings()
    if is_public:
        return AllocationPolicy(
            scope=AllocationScope(settings.PUBLIC_ALLOCATION_SCOPE),
            window_days=settings.ALLOCATION_WINDOW_DAYS,
            counted_statuses=(
                BookingStatus.PENDING,
                BookingStatus.CONFIRMED,
                BookingStatus.COMPLETED,
            ),
        )
    return AllocationPolicy(
        scope=AllocationScope(settings.AUTHENTICATED_ALLOCATION_SCOPE),
        window_days=settings.ALLOCATION_WINDOW_DAYS,
    )


@dataclass(frozen=True)
class OwnerCandidate:
    user_id: UUID
    weight: int = 1
    display_name: str | None = None


def fairness_score(count: int, weight: int) -> Fraction:
    # Exact arithmetic keeps ties exact (1/2 == 2/4)
    return Fraction(count, max(weight, 1))


def select_owner(
    candidates: Sequence[OwnerCandidate],
    counts: Mapping[UUID, int],
) -> OwnerCandidate:
    """
    Pick the candidate with the lowest count/weight.

    Args:
        candidates: Eligible owners in stable membership order
        counts: Bookings already counted per owner (missing means 0)

    Raises:
        NoEligibleOwnerError: If there are no candidates
    """
    if not candidates:
        raise NoEligibleOwnerError("No staff member of this calendar can receive bookings")
    if len(candidates) == 1:
        return candidates[0]

    # min() keeps the first of equal scores
    return min(
        candidates,
        key=lambda c: fairness_score(counts.get(c.user_id, 0), c.weight),
    )


def scope_bounds(
    policy: AllocationPolicy,
    booking_start: datetime,
    timezone_name: str,
    now: datetime,
) -> tuple[datetime, Optional[datetime]]:
    """
    Time range the policy counts over.

    The trailing window has no upper bound: a booking committed while this
    request waited on the calendar lock may carry a `created_at` after `now`,
    and it must still count.
    """
    if policy.scope == AllocationScope.SAME_DAY:
        tz = get_timezone(timezone_name)
        return local_day_bounds(local_date_of(booking_start, tz), tz)
    return now - timedelta(days=policy.window_days), None


async def count_bookings_per_owner(
    session: AsyncSession,
    calendar_id: UUID,
    owner_ids: Sequence[UUID],
    policy: AllocationPolicy,
    range_start: datetime,
    range_end: Optional[datetime],
) -> dict[UUID, int]:
    column = (
        Booking.start_datetime
        if policy.scope == AllocationScope.SAME_DAY
        else Booking.created_at
    )
    conditions = [
        Booking.calendar_id == calendar_id,
        Booking.assigned_to.in_(owner_ids),
        Booking.status.in_(policy.counted_statuses),
        column >= range_start,
    ]
    if range_end is not None:
        conditions.append(column < range_end)

    result = await session.execute(
        select(Booking.assigned_to, func.count(Booking.id))
        .where(*conditions)
        .group_by(Booking.assigned_to)
    )
    return {row[0]: row[1] for row in result.all()}


async def allocate_owner(
    session: AsyncSession,
    calendar: Calendar,
    booking_start: datetime,
    policy: AllocationPolicy,
    now: Optional[datetime] = None,
) -> OwnerCandidate:
    """
    Choose the owner for a new booking.

    Must run inside the booking transaction, after the calendar lock, so the
    counts it reads are the ones the insert will be judged against.

    Raises:
        NoEligibleOwnerError: If no owner can receive bookings
    """
    now = now or datetime.now(UTC)
    owners = await list_eligible_owners(session, calendar.id)
    candidates = [
        OwnerCandidate(user_id=o.user_id, weight=o.weight or 1, display_name=o.display_name)
        for o in owners
    ]

    if len(candidates) <= 1:
        return select_owner(candidates, {})

    range_start, range_end = scope_bounds(policy, booking_start, calendar.timezone, now)
    counts = await count_bookings_per_owner(
        session,
        calendar.id,
        [c.user_id for c in candidates],
        policy,
        range_start,
        range_end,
    )
    chosen = select_owner(candidates, counts)

    logger.info(
        f"Owner allocated: {chosen.user_id} (scope={policy.scope.value}, "
        f"count={counts.get(chosen.user_id, 0)}, weight={chosen.weight})",
        extra={"calendar_id": calendar.id, "owner_id": chosen.user_id},
    )
    return chosen
