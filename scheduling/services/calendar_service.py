"""
Calendar service - Tenant-scoped access to calendars and their configuration.

Two kinds of functions live here:
- Loaders (`get_calendar`, `get_service_type`, `list_eligible_owners`, ...)
  take an open session so the slot generator and booking transaction can
  read everything inside their own transaction.
- Admin operations (`create_calendar`, `set_availability`, `add_owner`,
  `create_block`, ...) open their own session and commit.

Every query is scoped by `TenantContext.tenant_id`; a calendar of another
tenant behaves exactly like a missing one.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, time
from typing import Any
from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from database.connection import get_async_session
from database.models import (
    AvailabilityWindow,
    Booking,
    Calendar,
    CalendarBlock,
    CalendarOwner,
    OwnerRole,
    ServiceType,
)
from scheduling.context import TenantContext
from scheduling.exceptions import ConflictError, NotFoundError, ValidationError
from scheduling.utils.date_parser import ensure_aware, get_timezone, parse_wall_time
from scheduling.utils.slug import generate_slug_from_name, is_valid_slug
from shared.availability_windows import list_calendar_windows
from shared.config import get_settings

logger = logging.getLogger(__name__)

MIN_SERVICE_DURATION_MINUTES = 5
MAX_BOOKINGS_PER_SLOT = 50
MAX_CALENDAR_PAGE_SIZE = 100

UPDATABLE_CALENDAR_FIELDS = {
    "name",
    "description",
    "color",
    "timezone",
    "is_active",
    "is_public",
    "public_slug",
    "min_advance_hours",
    "max_advance_days",
    "max_bookings_per_slot",
}
UPDATABLE_OWNER_FIELDS = {"display_name", "role", "can_receive_bookings", "weight"}
UPDATABLE_SERVICE_TYPE_FIELDS = {
    "name",
    "description",
    "duration_minutes",
    "buffer_before_minutes",
    "buffer_after_minutes",
    "min_advance_hours",
    "max_per_day",
    "color",
    "is_active",
}


# ============================================================================
# Loaders
# ============================================================================


async def get_calendar(
    session: AsyncSession,
    ctx: TenantContext,
    calendar_id: UUID,
) -> Calendar:
    """
    Fetch a calendar of the caller's tenant.

    Raises:
        NotFoundError: If the calendar does not exist for this tenant
    """
    result = await session.execute(
        select(Calendar).where(
            Calendar.id == calendar_id,
            Calendar.tenant_id == ctx.tenant_id,
        )
    )
    calendar = result.scalar_one_or_none()
    if calendar is None:
        raise NotFoundError(
            "Calendar not found",
            error_code="CALENDAR_NOT_FOUND",
            details={"calendar_id": str(calendar_id)},
        )
    return calendar


async def load_calendar_detail(
    session: AsyncSession,
    ctx: TenantContext,
    calendar_id: UUID,
) -> Calendar:
    """Calendar with owners, availability and service types loaded."""
    result = await session.execute(
        select(Calendar)
        .options(
            selectinload(Calendar.owners),
            selectinload(Calendar.availability),
            selectinload(Calendar.service_types),
        )
        .where(Calendar.id == calendar_id, Calendar.tenant_id == ctx.tenant_id)
        .execution_options(populate_existing=True)
    )
    calendar = result.scalar_one_or_none()
    if calendar is None:
        raise NotFoundError(
            "Calendar not found",
            error_code="CALENDAR_NOT_FOUND",
            details={"calendar_id": str(calendar_id)},
        )
    return calendar


async def get_calendar_detail(ctx: TenantContext, calendar_id: UUID) -> Calendar:
    async with get_async_session() as session:
        return await load_calendar_detail(session, ctx, calendar_id)


async def get_public_calendar(session: AsyncSession, slug: str) -> Calendar:
    """
    Fetch an active, public calendar by slug.

    Raises:
        NotFoundError: If no public calendar uses this slug
    """
    result = await session.execute(
        select(Calendar).where(
            Calendar.public_slug == slug,
            Calendar.is_public.is_(True),
            Calendar.is_active.is_(True),
        )
    )
    calendar = result.scalar_one_or_none()
    if calendar is None:
        raise NotFoundError(
            "Calendar not found or not available for public booking",
            error_code="CALENDAR_NOT_FOUND",
            details={"slug": slug},
        )
    return calendar


async def get_service_type(
    session: AsyncSession,
    calendar_id: UUID,
    service_type_id: UUID,
) -> ServiceType:
    """
    Fetch a service type that belongs to the given calendar.

    Raises:
        NotFoundError: If the service type is unknown or belongs to another calendar
    """
    result = await session.execute(
        select(ServiceType).where(
            ServiceType.id == service_type_id,
            ServiceType.calendar_id == calendar_id,
        )
    )
    service_type = result.scalar_one_or_none()
    if service_type is None:
        raise NotFoundError(
            "Service type not found for this calendar",
            error_code="SERVICE_TYPE_NOT_FOUND",
            details={"calendar_id": str(calendar_id), "service_type_id": str(service_type_id)},
        )
    return service_type


async def list_eligible_owners(
    session: AsyncSession,
    calendar_id: UUID,
) -> list[CalendarOwner]:
    """Owners that can receive bookings, in stable membership order."""
    result = await session.execute(
        select(CalendarOwner)
        .where(
            CalendarOwner.calendar_id == calendar_id,
            CalendarOwner.can_receive_bookings.is_(True),
        )
        .order_by(CalendarOwner.created_at, CalendarOwner.id)
    )
    return list(result.scalars().all())


async def list_service_types(
    session: AsyncSession,
    calendar_id: UUID,
    active_only: bool = False,
) -> list[ServiceType]:
    stmt = select(ServiceType).where(ServiceType.calendar_id == calendar_id)
    if active_only:
        stmt = stmt.where(ServiceType.is_active.is_(True))
    result = await session.execute(stmt.order_by(ServiceType.position))
    return list(result.scalars().all())


async def get_public_calendar_profile(slug: str) -> tuple[Calendar, list[ServiceType]]:
    """Public calendar and its active service types, for the booking page."""
    async with get_async_session() as session:
        calendar = await get_public_calendar(session, slug)
        service_types = await list_service_types(session, calendar.id, active_only=True)
    return calendar, service_types


async def is_slug_available(
    session: AsyncSession,
    slug: str,
    exclude_calendar_id: UUID | None = None,
) -> bool:
    """Slugs are unique across all tenants."""
    stmt = select(Calendar.id).where(Calendar.public_slug == slug)
    if exclude_calendar_id is not None:
        stmt = stmt.where(Calendar.id != exclude_calendar_id)
    result = await session.execute(stmt.limit(1))
    return result.first() is None


async def validate_slug_availability(slug: str, exclude_calendar_id: UUID | None = None) -> bool:
    """Check format and uniqueness of a public slug."""
    if not is_valid_slug(slug):
        return False
    async with get_async_session() as session:
        return await is_slug_available(session, slug, exclude_calendar_id)


# ============================================================================
# Validation helpers
# ============================================================================


def _validate_timezone(name: str) -> str:
    try:
        get_timezone(name)
    except ValueError as e:
        raise ValidationError(str(e), error_code="INVALID_TIMEZONE") from e
    return name


def _coerce_time(value: Any) -> time:
    if isinstance(value, time):
        return value
    try:
        return parse_wall_time(str(value))
    except ValueError as e:
        raise ValidationError(str(e), error_code="INVALID_AVAILABILITY") from e


def normalize_window(window: dict[str, Any]) -> dict[str, Any]:
    """
    Validate one availability window definition.

    Raises:
        ValidationError: Invalid weekday or start not before end
    """
    day = window.get("day_of_week")
    if not isinstance(day, int) or not 0 <= day <= 6:
        raise ValidationError(
            "day_of_week must be between 0 (Sunday) and 6 (Saturday)",
            error_code="INVALID_AVAILABILITY",
            details={"day_of_week": day},
        )
    start = _coerce_time(window.get("start_time"))
    end = _coerce_time(window.get("end_time"))
    if start >= end:
        raise ValidationError(
            "Availability window must start before it ends",
            error_code="INVALID_AVAILABILITY",
            details={"start_time": start.isoformat(), "end_time": end.isoformat()},
        )
    return {
        "day_of_week": day,
        "start_time": start,
        "end_time": end,
        "is_active": window.get("is_active", True) is not False,
    }


def _validate_weight(weight: int) -> int:
    if weight is None or int(weight) < 1:
        raise ValidationError("Owner weight must be a positive integer", error_code="INVALID_WEIGHT")
    return int(weight)


def _validate_capacity(value: int) -> int:
    if not 1 <= int(value) <= MAX_BOOKINGS_PER_SLOT:
        raise ValidationError(
            f"max_bookings_per_slot must be between 1 and {MAX_BOOKINGS_PER_SLOT}",
            error_code="INVALID_CAPACITY",
        )
    return int(value)


def _validate_service_type_fields(fields: dict[str, Any]) -> None:
    duration = fields.get("duration_minutes")
    if duration is not None and duration < MIN_SERVICE_DURATION_MINUTES:
        raise ValidationError(
            f"Duration must be at least {MIN_SERVICE_DURATION_MINUTES} minutes",
            error_code="INVALID_DURATION",
        )
    for key in ("buffer_before_minutes", "buffer_after_minutes", "min_advance_hours"):
        if fields.get(key) is not None and fields[key] < 0:
            raise ValidationError(f"{key} cannot be negative", error_code="INVALID_SERVICE_TYPE")
    if fields.get("max_per_day") is not None and fields["max_per_day"] < 1:
        raise ValidationError("max_per_day must be at least 1", error_code="INVALID_SERVICE_TYPE")


async def _resolve_slug(
    session: AsyncSession,
    slug: str | None,
    name: str,
    calendar_id: UUID | None = None,
) -> str:
    candidate = (slug or "").strip() or generate_slug_from_name(name)
    if not is_valid_slug(candidate):
        raise ValidationError(
            "Slug must be at least 3 characters of lowercase letters, digits or hyphens",
            error_code="INVALID_SLUG",
            details={"slug": candidate},
        )
    if not await is_slug_available(session, candidate, calendar_id):
        raise ValidationError(
            "Slug is already in use",
            error_code="SLUG_TAKEN",
            details={"slug": candidate},
        )
    return candidate


# ============================================================================
# Calendar admin operations
# ============================================================================


async def create_calendar(
    ctx: TenantContext,
    *,
    name: str,
    description: str | None = None,
    color: str | None = None,
    timezone: str | None = None,
    is_public: bool = False,
    public_slug: str | None = None,
    min_advance_hours: int | None = None,
    max_advance_days: int | None = None,
    max_bookings_per_slot: int = 1,
    owners: list[dict[str, Any]] | None = None,
    availability: list[dict[str, Any]] | None = None,
) -> Calendar:
    """
    Create a calendar with optional owners and weekly availability.

    A public calendar without an explicit slug gets one generated from its
    name; either way the slug is checked for uniqueness before saving.

    Raises:
        ValidationError: Missing name, bad timezone, bad slug or window
    """
    settings = get_settings()

    if not name or not name.strip():
        raise ValidationError("Calendar name is required", error_code="NAME_REQUIRED")

    windows = [normalize_window(w) for w in (availability or [])]

    async with get_async_session() as session:
        slug = None
        if is_public or public_slug:
            slug = await _resolve_slug(session, public_slug, name)

        calendar = Calendar(
            tenant_id=ctx.tenant_id,
            created_by=ctx.user_id,
            name=name.strip(),
            description=(description or "").strip() or None,
            color=color or "#6366f1",
            timezone=_validate_timezone(timezone or settings.TIMEZONE),
            is_active=True,
            is_public=is_public,
            public_slug=slug,
            min_advance_hours=(
                settings.DEFAULT_MIN_ADVANCE_HOURS if min_advance_hours is None else min_advance_hours
            ),
            max_advance_days=(
                settings.DEFAULT_MAX_ADVANCE_DAYS if max_advance_days is None else max_advance_days
            ),
            max_bookings_per_slot=_validate_capacity(max_bookings_per_slot),
        )
        session.add(calendar)
        await session.flush()

        for owner in owners or []:
            session.add(
                CalendarOwner(
                    calendar_id=calendar.id,
                    user_id=owner["user_id"],
                    display_name=owner.get("display_name"),
                    role=OwnerRole(owner.get("role", OwnerRole.MEMBER.value)),
                    can_receive_bookings=owner.get("can_receive_bookings", True) is not False,
                    weight=_validate_weight(owner.get("weight") or 1),
                )
            )

        for window in windows:
            session.add(AvailabilityWindow(calendar_id=calendar.id, **window))

        await session.commit()
        calendar = await load_calendar_detail(session, ctx, calendar.id)

    logger.info(
        f"Calendar created: {calendar.name}",
        extra={"tenant_id": ctx.tenant_id, "calendar_id": calendar.id},
    )
    return calendar


async def update_calendar(
    ctx: TenantContext,
    calendar_id: UUID,
    changes: dict[str, Any],
) -> Calendar:
    """
    Apply a partial update to a calendar.

    Unknown keys are ignored. A calendar that is or stays public always keeps
    a slug: turning it public without one, or clearing the slug of a public
    calendar, generates one from its name.
    """
    sanitized = {k: v for k, v in changes.items() if k in UPDATABLE_CALENDAR_FIELDS}

    async with get_async_session() as session:
        calendar = await get_calendar(session, ctx, calendar_id)

        if "name" in sanitized:
            if not sanitized["name"] or not sanitized["name"].strip():
                raise ValidationError("Calendar name is required", error_code="NAME_REQUIRED")
            sanitized["name"] = sanitized["name"].strip()
        if "timezone" in sanitized:
            _validate_timezone(sanitized["timezone"])
        if "max_bookings_per_slot" in sanitized:
            sanitized["max_bookings_per_slot"] = _validate_capacity(sanitized["max_bookings_per_slot"])

        slug_requested = bool(sanitized.get("public_slug"))
        slug_cleared = "public_slug" in sanitized and not slug_requested
        stays_public = sanitized.get("is_public", calendar.is_public)
        needs_slug = stays_public and (slug_cleared or not calendar.public_slug)
        if slug_requested or needs_slug:
            sanitized["public_slug"] = await _resolve_slug(
                session,
                sanitized.get("public_slug"),
                sanitized.get("name", calendar.name),
                calendar.id,
            )
        elif slug_cleared:
            sanitized["public_slug"] = None

        for key, value in sanitized.items():
            setattr(calendar, key, value)

        await session.commit()
        calendar = await load_calendar_detail(session, ctx, calendar.id)

    logger.info(
        f"Calendar updated: fields={sorted(sanitized)}",
        extra={"tenant_id": ctx.tenant_id, "calendar_id": calendar_id},
    )
    return calendar


@dataclass
class CalendarPage:
    items: list[Calendar]
    total: int
    page: int
    limit: int

    @property
    def has_more(self) -> bool:
        return self.page * self.limit < self.total


async def list_calendars(
    ctx: TenantContext,
    *,
    is_active: bool | None = None,
    search: str | None = None,
    page: int = 1,
    limit: int = 50,
) -> CalendarPage:
    """
    List the tenant's calendars ordered by name.

    Args:
        ctx: Caller's tenant context
        is_active: Only active (True) or inactive (False) calendars
        search: Case-insensitive substring of the name
        page: 1-based page number
        limit: Page size (1..100)

    Raises:
        ValidationError: Invalid pagination
    """
    if page < 1 or not 1 <= limit <= MAX_CALENDAR_PAGE_SIZE:
        raise ValidationError(
            f"page must be >= 1 and limit between 1 and {MAX_CALENDAR_PAGE_SIZE}",
            error_code="INVALID_PAGINATION",
        )

    conditions = [Calendar.tenant_id == ctx.tenant_id]
    if is_active is not None:
        conditions.append(Calendar.is_active.is_(is_active))
    if search and search.strip():
        conditions.append(Calendar.name.ilike(f"%{search.strip()}%"))

    async with get_async_session() as session:
        total_result = await session.execute(select(func.count(Calendar.id)).where(*conditions))
        total = total_result.scalar() or 0

        result = await session.execute(
            select(Calendar)
            .where(*conditions)
            .order_by(Calendar.name, Calendar.id)
            .offset((page - 1) * limit)
            .limit(limit)
        )
        items = list(result.scalars().all())

    return CalendarPage(items=items, total=total, page=page, limit=limit)


async def delete_calendar(ctx: TenantContext, calendar_id: UUID) -> None:
    """Delete a calendar; owners, windows, service types, blocks and bookings go with it."""
    async with get_async_session() as session:
        calendar = await get_calendar(session, ctx, calendar_id)
        await session.delete(calendar)
        await session.commit()

    logger.info(
        f"Calendar deleted: {calendar.name}",
        extra={"tenant_id": ctx.tenant_id, "calendar_id": calendar_id},
    )


async def get_availability(ctx: TenantContext, calendar_id: UUID) -> list[AvailabilityWindow]:
    """All windows of a calendar, active or not, by weekday then start time."""
    async with get_async_session() as session:
        await get_calendar(session, ctx, calendar_id)
        return await list_calendar_windows(calendar_id, session=session)


async def set_availability(
    ctx: TenantContext,
    calendar_id: UUID,
    windows: list[dict[str, Any]],
) -> list[AvailabilityWindow]:
    """
    Replace all availability windows of a calendar (delete-then-insert).

    Windows are validated before anything is deleted, and the replacement
    happens in a single transaction.
    """
    normalized = [normalize_window(w) for w in windows]

    async with get_async_session() as session:
        await get_calendar(session, ctx, calendar_id)

        await session.execute(
            delete(AvailabilityWindow).where(AvailabilityWindow.calendar_id == calendar_id)
        )
        created = [AvailabilityWindow(calendar_id=calendar_id, **w) for w in normalized]
        session.add_all(created)
        await session.commit()

    created.sort(key=lambda w: (w.day_of_week, w.start_time))
    logger.info(
        f"Availability replaced with {len(created)} windows",
        extra={"tenant_id": ctx.tenant_id, "calendar_id": calendar_id},
    )
    return created


async def list_owners(ctx: TenantContext, calendar_id: UUID) -> list[CalendarOwner]:
    """Every owner of the calendar in membership order, eligible or not."""
    async with get_async_session() as session:
        await get_calendar(session, ctx, calendar_id)
        result = await session.execute(
            select(CalendarOwner)
            .where(CalendarOwner.calendar_id == calendar_id)
            .order_by(CalendarOwner.created_at, CalendarOwner.id)
        )
        return list(result.scalars().all())


async def add_owner(
    ctx: TenantContext,
    calendar_id: UUID,
    *,
    user_id: UUID,
    display_name: str | None = None,
    role: str = OwnerRole.MEMBER.value,
    can_receive_bookings: bool = True,
    weight: int = 1,
) -> CalendarOwner:
    async with get_async_session() as session:
        await get_calendar(session, ctx, calendar_id)
        owner = CalendarOwner(
            calendar_id=calendar_id,
            user_id=user_id,
            display_name=display_name,
            role=OwnerRole(role),
            can_receive_bookings=can_receive_bookings,
            weight=_validate_weight(weight),
        )
        session.add(owner)
        await session.commit()
        await session.refresh(owner)

    logger.info(
        f"Owner {user_id} added (weight={owner.weight})",
        extra={"calendar_id": calendar_id, "owner_id": user_id},
    )
    return owner


async def _get_owner(session: AsyncSession, calendar_id: UUID, owner_id: UUID) -> CalendarOwner:
    result = await session.execute(
        select(CalendarOwner).where(
            CalendarOwner.id == owner_id,
            CalendarOwner.calendar_id == calendar_id,
        )
    )
    owner = result.scalar_one_or_none()
    if owner is None:
        raise NotFoundError(
            "Calendar owner not found",
            error_code="OWNER_NOT_FOUND",
            details={"owner_id": str(owner_id)},
        )
    return owner


async def update_owner(
    ctx: TenantContext,
    calendar_id: UUID,
    owner_id: UUID,
    changes: dict[str, Any],
) -> CalendarOwner:
    sanitized = {k: v for k, v in changes.items() if k in UPDATABLE_OWNER_FIELDS}
    if "weight" in sanitized:
        sanitized["weight"] = _validate_weight(sanitized["weight"])
    if "role" in sanitized:
        sanitized["role"] = OwnerRole(sanitized["role"])

    async with get_async_session() as session:
        await get_calendar(session, ctx, calendar_id)
        owner = await _get_owner(session, calendar_id, owner_id)
        for key, value in sanitized.items():
            setattr(owner, key, value)
        await session.commit()
        await session.refresh(owner)
    return owner


async def remove_owner(ctx: TenantContext, calendar_id: UUID, owner_id: UUID) -> None:
    async with get_async_session() as session:
        await get_calendar(session, ctx, calendar_id)
        owner = await _get_owner(session, calendar_id, owner_id)
        await session.delete(owner)
        await session.commit()

    logger.info("Owner removed", extra={"calendar_id": calendar_id, "owner_id": owner_id})


# ============================================================================
# Service types
# ============================================================================


async def create_service_type(
    ctx: TenantContext,
    calendar_id: UUID,
    *,
    name: str,
    duration_minutes: int,
    description: str | None = None,
    buffer_before_minutes: int = 0,
    buffer_after_minutes: int = 0,
    min_advance_hours: int | None = None,
    max_per_day: int | None = None,
    color: str | None = None,
) -> ServiceType:
    """Create a service type at the end of the calendar's ordering."""
    if not name or not name.strip():
        raise ValidationError("Service type name is required", error_code="NAME_REQUIRED")

    fields = {
        "duration_minutes": duration_minutes,
        "buffer_before_minutes": buffer_before_minutes,
        "buffer_after_minutes": buffer_after_minutes,
        "min_advance_hours": (
            get_settings().DEFAULT_SERVICE_MIN_ADVANCE_HOURS
            if min_advance_hours is None
            else min_advance_hours
        ),
        "max_per_day": max_per_day,
    }
    _validate_service_type_fields(fields)

    async with get_async_session() as session:
        await get_calendar(session, ctx, calendar_id)

        result = await session.execute(
            select(func.max(ServiceType.position)).where(ServiceType.calendar_id == calendar_id)
        )
        last_position = result.scalar()
        next_position = 0 if last_position is None else last_position + 1

        service_type = ServiceType(
            calendar_id=calendar_id,
            name=name.strip(),
            description=(description or "").strip() or None,
            color=color or "#3b82f6",
            is_active=True,
            position=next_position,
            **fields,
        )
        session.add(service_type)
        await session.commit()
        await session.refresh(service_type)

    logger.info(
        f"Service type created: {service_type.name} ({duration_minutes} min)",
        extra={"calendar_id": calendar_id, "service_type_id": service_type.id},
    )
    return service_type


async def update_service_type(
    ctx: TenantContext,
    calendar_id: UUID,
    service_type_id: UUID,
    changes: dict[str, Any],
) -> ServiceType:
    sanitized = {k: v for k, v in changes.items() if k in UPDATABLE_SERVICE_TYPE_FIELDS}
    _validate_service_type_fields(sanitized)

    async with get_async_session() as session:
        await get_calendar(session, ctx, calendar_id)
        service_type = await get_service_type(session, calendar_id, service_type_id)
        for key, value in sanitized.items():
            setattr(service_type, key, value)
        await session.commit()
        await session.refresh(service_type)
    return service_type


async def delete_service_type(ctx: TenantContext, calendar_id: UUID, service_type_id: UUID) -> None:
    """
    Delete a service type that no booking references.

    Raises:
        ConflictError: Bookings exist for it; deactivate it instead
    """
    async with get_async_session() as session:
        await get_calendar(session, ctx, calendar_id)
        service_type = await get_service_type(session, calendar_id, service_type_id)

        result = await session.execute(
            select(func.count(Booking.id)).where(Booking.service_type_id == service_type_id)
        )
        booking_count = result.scalar() or 0
        if booking_count:
            raise ConflictError(
                "Service type has bookings; deactivate it instead",
                error_code="SERVICE_TYPE_IN_USE",
                details={"service_type_id": str(service_type_id), "bookings": booking_count},
            )

        await session.delete(service_type)
        await session.commit()

    logger.info(
        "Service type deleted",
        extra={"calendar_id": calendar_id, "service_type_id": service_type_id},
    )


async def reorder_service_types(
    ctx: TenantContext,
    calendar_id: UUID,
    order: list[UUID],
) -> list[ServiceType]:
    """Set `position` from the given id order; ids of other calendars are ignored."""
    positions = {service_type_id: index for index, service_type_id in enumerate(order)}

    async with get_async_session() as session:
        await get_calendar(session, ctx, calendar_id)
        service_types = await list_service_types(session, calendar_id)
        for service_type in service_types:
            if service_type.id in positions:
                service_type.position = positions[service_type.id]
        await session.commit()

    return sorted(service_types, key=lambda st: st.position)


# ============================================================================
# Blocks
# ============================================================================


async def create_block(
    ctx: TenantContext,
    calendar_id: UUID,
    *,
    start_datetime: datetime,
    end_datetime: datetime,
    reason: str | None = None,
) -> CalendarBlock:
    """
    Block an interval on the whole calendar.

    Naive datetimes are read as calendar wall-clock time.
    """
    async with get_async_session() as session:
        calendar = await get_calendar(session, ctx, calendar_id)
        tz = get_timezone(calendar.timezone)
        start = ensure_aware(start_datetime, tz)
        end = ensure_aware(end_datetime, tz)

        if end <= start:
            raise ValidationError(
                "Block must end after it starts",
                error_code="INVALID_BLOCK",
                details={"start_datetime": start.isoformat(), "end_datetime": end.isoformat()},
            )

        block = CalendarBlock(
            calendar_id=calendar_id,
            start_datetime=start,
            end_datetime=end,
            reason=(reason or "").strip() or None,
            created_by=ctx.user_id,
        )
        session.add(block)
        await session.commit()
        await session.refresh(block)

    logger.info(
        f"Block created: {start.isoformat()} - {end.isoformat()}",
        extra={"calendar_id": calendar_id},
    )
    return block


async def list_blocks(
    ctx: TenantContext,
    calendar_id: UUID,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
) -> list[CalendarBlock]:
    async with get_async_session() as session:
        await get_calendar(session, ctx, calendar_id)
        stmt = select(CalendarBlock).where(CalendarBlock.calendar_id == calendar_id)
        if date_from is not None:
            stmt = stmt.where(CalendarBlock.end_datetime > date_from)
        if date_to is not None:
            stmt = stmt.where(CalendarBlock.start_datetime < date_to)
        result = await session.execute(stmt.order_by(CalendarBlock.start_datetime))
        return list(result.scalars().all())


async def delete_block(ctx: TenantContext, calendar_id: UUID, block_id: UUID) -> None:
    async with get_async_session() as session:
        await get_calendar(session, ctx, calendar_id)
        result = await session.execute(
            select(CalendarBlock).where(
                CalendarBlock.id == block_id,
                CalendarBlock.calendar_id == calendar_id,
            )
        )
        block = result.scalar_one_or_none()
        if block is None:
            raise NotFoundError(
                "Block not found",
                error_code="BLOCK_NOT_FOUND",
                details={"block_id": str(block_id)},
            )
        await session.delete(block)
        await session.commit()
