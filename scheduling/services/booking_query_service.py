"""
Booking query service - Tenant-scoped booking lookups.

Read-only: listing with filters and pagination, and single-booking fetch.
`load_booking` is also used by the write paths to load the row they are
about to change.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from database.connection import get_async_session
from database.models import Booking, BookingStatus
from scheduling.context import TenantContext
from scheduling.exceptions import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


@dataclass
class BookingFilters:
    """Optional filters for `list_bookings`. Unset fields are ignored."""

    calendar_id: Optional[UUID] = None
    assigned_to: Optional[UUID] = None
    lead_id: Optional[UUID] = None
    statuses: list[BookingStatus] = field(default_factory=list)
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None


@dataclass
class BookingPage:
    items: list[Booking]
    total: int
    page: int
    limit: int

    @property
    def has_more(self) -> bool:
        return self.page * self.limit < self.total


async def load_booking(
    session: AsyncSession,
    ctx: TenantContext,
    booking_id: UUID,
) -> Booking:
    """
    Fetch a booking of the caller's tenant, with its service type.

    Raises:
        NotFoundError: If the booking does not exist for this tenant
    """
    result = await session.execute(
        select(Booking)
        .options(selectinload(Booking.service_type))
        .where(Booking.id == booking_id, Booking.tenant_id == ctx.tenant_id)
    )
    booking = result.scalar_one_or_none()
    if booking is None:
        raise NotFoundError(
            "Booking not found",
            error_code="BOOKING_NOT_FOUND",
            details={"booking_id": str(booking_id)},
        )
    return booking


async def get_booking(ctx: TenantContext, booking_id: UUID) -> Booking:
    async with get_async_session() as session:
        return await load_booking(session, ctx, booking_id)


async def list_bookings(
    ctx: TenantContext,
    filters: Optional[BookingFilters] = None,
    page: int = 1,
    limit: int = 20,
) -> BookingPage:
    """
    List bookings of the tenant ordered by start time.

    Args:
        ctx: Caller's tenant context
        filters: Optional calendar/owner/lead/status/date filters
        page: 1-based page number
        limit: Page size (1..100)

    Raises:
        ValidationError: Invalid pagination
    """
    if page < 1 or not 1 <= limit <= MAX_PAGE_SIZE:
        raise ValidationError(
            f"page must be >= 1 and limit between 1 and {MAX_PAGE_SIZE}",
            error_code="INVALID_PAGINATION",
        )

    filters = filters or BookingFilters()
    conditions = [Booking.tenant_id == ctx.tenant_id]
    if filters.calendar_id is not None:
        conditions.append(Booking.calendar_id == filters.calendar_id)
    if filters.assigned_to is not None:
        conditions.append(Booking.assigned_to == filters.assigned_to)
    if filters.lead_id is not None:
        conditions.append(Booking.lead_id == filters.lead_id)
    if filters.statuses:
        conditions.append(Booking.status.in_(filters.statuses))
    if filters.date_from is not None:
        conditions.append(Booking.end_datetime > filters.date_from)
    if filters.date_to is not None:
        conditions.append(Booking.start_datetime < filters.date_to)

    async with get_async_session() as session:
        total_result = await session.execute(
            select(func.count(Booking.id)).where(*conditions)
        )
        total = total_result.scalar() or 0

        result = await session.execute(
            select(Booking)
            .options(selectinload(Booking.service_type))
            .where(*conditions)
            .order_by(Booking.start_datetime, Booking.id)
            .offset((page - 1) * limit)
            .limit(limit)
        )
        items = list(result.scalars().all())

    logger.debug(
        f"Listed {len(items)} of {total} bookings (page {page})",
        extra={"tenant_id": ctx.tenant_id},
    )
    return BookingPage(items=items, total=total, page=page, limit=limit)
