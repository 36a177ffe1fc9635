"""
Booking Transaction Handler - Create and reschedule bookings atomically.

Every write runs in one database transaction:
1. Load calendar and service type (tenant-scoped)
2. Path checks (client identity; public: contact fields and advance window)
3. Take the per-calendar advisory lock
4. Re-check the interval against active bookings and blocks
5. Enforce the service type's daily limit
6. Allocate an owner (create only)
7. Insert/update, commit

Any failure raises before commit and the session rolls back, so no partial
booking is ever written. Persistence errors are logged and re-raised as-is.
"""

import logging
from datetime import UTC, datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from database.connection import get_async_session
from database.models import ACTIVE_BOOKING_STATUSES, Booking, BookingStatus, Calendar, ServiceType
from scheduling.context import TenantContext
from scheduling.exceptions import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from scheduling.services.booking_query_service import load_booking
from scheduling.services.calendar_service import get_calendar, get_public_calendar, get_service_type
from scheduling.services.owner_allocator import allocate_owner, policy_for
from scheduling.utils.date_parser import ensure_aware, get_timezone, local_date_of, local_day_bounds
from scheduling.utils.intervals import add_minutes
from scheduling.validators.transaction_validators import (
    acquire_calendar_lock,
    validate_advance_notice,
    validate_client_identity,
    validate_daily_limit,
    validate_slot_availability,
)

logger = logging.getLogger(__name__)


class BookingRequest(BaseModel):
    """Input for a new booking. Naive datetimes are calendar wall-clock time."""

    calendar_id: UUID
    service_type_id: UUID
    start_datetime: datetime
    lead_id: Optional[UUID] = None
    client_name: Optional[str] = Field(default=None, max_length=200)
    client_phone: Optional[str] = Field(default=None, max_length=30)
    client_email: Optional[str] = Field(default=None, max_length=255)
    notes: Optional[str] = None


class BookingUpdate(BaseModel):
    """Partial booking update. Only fields that are set are applied."""

    start_datetime: Optional[datetime] = None
    lead_id: Optional[UUID] = None
    client_name: Optional[str] = Field(default=None, max_length=200)
    client_phone: Optional[str] = Field(default=None, max_length=30)
    client_email: Optional[str] = Field(default=None, max_length=255)
    notes: Optional[str] = None


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return value.strip() or None


def _check_client_identity(lead_id: Optional[UUID], client_name: Optional[str]) -> None:
    identity = validate_client_identity(lead_id, client_name)
    if not identity["valid"]:
        raise ValidationError(identity["error_message"], error_code=identity["error_code"])


async def _check_interval(
    session: AsyncSession,
    calendar: Calendar,
    service_type: ServiceType,
    start: datetime,
    end: datetime,
    trace_id: str,
    exclude_booking_id: UUID | None = None,
) -> None:
    """Lock the calendar, then re-validate overlap and the daily limit."""
    await acquire_calendar_lock(session, calendar.id)

    availability = await validate_slot_availability(
        session,
        calendar.id,
        start,
        end,
        capacity=calendar.max_bookings_per_slot or 1,
        exclude_booking_id=exclude_booking_id,
    )
    if not availability["available"]:
        logger.warning(
            f"[{trace_id}] Slot availability validation failed",
            extra={"trace_id": trace_id, "calendar_id": calendar.id},
        )
        raise ConflictError(
            availability["error_message"],
            error_code=availability["error_code"],
            details={
                "start_datetime": start.isoformat(),
                "end_datetime": end.isoformat(),
                "conflicting_booking_ids": [
                    str(b) for b in availability["conflicting_booking_ids"]
                ],
            },
        )

    tz = get_timezone(calendar.timezone)
    day_start, day_end = local_day_bounds(local_date_of(start, tz), tz)
    daily = await validate_daily_limit(
        session,
        calendar.id,
        service_type.id,
        service_type.max_per_day,
        day_start,
        day_end,
        exclude_booking_id=exclude_booking_id,
    )
    if not daily["valid"]:
        raise ConflictError(
            daily["error_message"],
            error_code=daily["error_code"],
            details={"max_per_day": service_type.max_per_day, "count": daily["count"]},
        )


class BookingTransaction:
    """
    Atomic create/reschedule of bookings.

    Staff bookings start CONFIRMED; public bookings start PENDING and need
    staff confirmation.
    """

    @staticmethod
    async def create(
        ctx: TenantContext,
        request: BookingRequest,
        now: Optional[datetime] = None,
    ) -> Booking:
        """
        Create a booking after re-validating the interval and allocating an owner.

        Raises:
            ValidationError: Missing client data, inactive service type, outside
                the advance window (public)
            NotFoundError: Unknown calendar/service type for the tenant
            ConflictError: Interval taken or blocked, or daily limit reached
            NoEligibleOwnerError: Nobody on the calendar can receive bookings
        """
        now = now or datetime.now(UTC)
        client_name = _clean(request.client_name)
        client_phone = _clean(request.client_phone)

        trace_id = f"{request.calendar_id}_{request.start_datetime.isoformat()}"
        logger.info(
            f"[{trace_id}] Starting booking transaction",
            extra={
                "trace_id": trace_id,
                "tenant_id": ctx.tenant_id,
                "calendar_id": request.calendar_id,
                "service_type_id": request.service_type_id,
            },
        )

        _check_client_identity(request.lead_id, client_name)
        if ctx.is_public and not (client_name and client_phone):
            raise ValidationError(
                "Name and phone are required for public bookings",
                error_code="CLIENT_CONTACT_REQUIRED",
            )

        async with get_async_session() as session:
            try:
                calendar = await get_calendar(session, ctx, request.calendar_id)
                if ctx.is_public and not (calendar.is_public and calendar.is_active):
                    raise NotFoundError(
                        "Calendar not found or not available for public booking",
                        error_code="CALENDAR_NOT_FOUND",
                        details={"calendar_id": str(calendar.id)},
                    )

                service_type = await get_service_type(session, calendar.id, request.service_type_id)
                if not service_type.is_active:
                    raise ValidationError(
                        "Service type is not active",
                        error_code="SERVICE_TYPE_INACTIVE",
                        details={"service_type_id": str(service_type.id)},
                    )

                tz = get_timezone(calendar.timezone)
                start = ensure_aware(request.start_datetime, tz)
                end = add_minutes(start, service_type.duration_minutes)

                if ctx.is_public:
                    advance = validate_advance_notice(
                        start,
                        now,
                        max(calendar.min_advance_hours, service_type.min_advance_hours or 0),
                        calendar.max_advance_days,
                        tz=tz,
                    )
                    if not advance["valid"]:
                        logger.warning(
                            f"[{trace_id}] Advance window validation failed",
                            extra={"trace_id": trace_id},
                        )
                        raise ValidationError(
                            advance["error_message"],
                            error_code=advance["error_code"],
                            details={"start_datetime": start.isoformat()},
                        )

                await _check_interval(session, calendar, service_type, start, end, trace_id)

                owner = await allocate_owner(session, calendar, start, policy_for(ctx.is_public), now)

                booking = Booking(
                    tenant_id=calendar.tenant_id,
                    calendar_id=calendar.id,
                    service_type_id=service_type.id,
                    assigned_to=owner.user_id,
                    lead_id=request.lead_id,
                    client_name=client_name,
                    client_phone=client_phone,
                    client_email=_clean(request.client_email),
                    start_datetime=start,
                    end_datetime=end,
                    status=BookingStatus.PENDING if ctx.is_public else BookingStatus.CONFIRMED,
                    notes=_clean(request.notes),
                    created_by=ctx.user_id,
                )
                session.add(booking)
                await session.flush()
                await session.commit()
                await session.refresh(booking)

            except SQLAlchemyError as e:
                logger.error(
                    f"[{trace_id}] Database error: {e}",
                    extra={"trace_id": trace_id},
                    exc_info=True,
                )
                raise

        logger.info(
            f"[{trace_id}] Booking committed ({booking.status.value})",
            extra={
                "trace_id": trace_id,
                "booking_id": booking.id,
                "calendar_id": booking.calendar_id,
                "owner_id": booking.assigned_to,
            },
        )
        return booking

    @staticmethod
    async def create_public(
        slug: str,
        request_data: dict[str, Any],
        now: Optional[datetime] = None,
    ) -> Booking:
        """Resolve a public calendar by slug and create a PENDING booking on it."""
        async with get_async_session() as session:
            calendar = await get_public_calendar(session, slug)

        request = BookingRequest(calendar_id=calendar.id, **request_data)
        return await BookingTransaction.create(TenantContext.public(calendar.tenant_id), request, now)

    @staticmethod
    async def update(
        ctx: TenantContext,
        booking_id: UUID,
        changes: BookingUpdate,
        now: Optional[datetime] = None,
    ) -> Booking:
        """
        Apply a partial update; a new start re-derives the end and re-validates.

        The booking's own interval is excluded from the conflict check. The
        assigned owner never changes here.

        Raises:
            NotFoundError: Unknown booking for the tenant
            InvalidTransitionError: Rescheduling a booking that is not active
            ConflictError: New interval taken or blocked, or daily limit reached
            ValidationError: Update would leave the booking without a client
        """
        fields = changes.model_dump(exclude_unset=True)
        trace_id = f"{booking_id}_update"

        async with get_async_session() as session:
            try:
                booking = await load_booking(session, ctx, booking_id)

                for key in ("client_name", "client_phone", "client_email", "notes"):
                    if key in fields:
                        fields[key] = _clean(fields[key])
                lead_id = fields.get("lead_id", booking.lead_id)
                client_name = fields.get("client_name", booking.client_name)
                _check_client_identity(lead_id, client_name)

                new_start = fields.pop("start_datetime", None)
                if new_start is not None:
                    if booking.status not in ACTIVE_BOOKING_STATUSES:
                        raise InvalidTransitionError(
                            f"Cannot reschedule a {booking.status.value} booking",
                            details={"status": booking.status.value},
                        )

                    calendar = await get_calendar(session, ctx, booking.calendar_id)
                    service_type = await get_service_type(
                        session, calendar.id, booking.service_type_id
                    )
                    start = ensure_aware(new_start, get_timezone(calendar.timezone))
                    end = add_minutes(start, service_type.duration_minutes)

                    await _check_interval(
                        session,
                        calendar,
                        service_type,
                        start,
                        end,
                        trace_id,
                        exclude_booking_id=booking.id,
                    )
                    booking.start_datetime = start
                    booking.end_datetime = end

                for key, value in fields.items():
                    setattr(booking, key, value)

                await session.commit()
                await session.refresh(booking)

            except SQLAlchemyError as e:
                logger.error(
                    f"[{trace_id}] Database error: {e}",
                    extra={"trace_id": trace_id, "booking_id": booking_id},
                    exc_info=True,
                )
                raise

        logger.info(
            f"[{trace_id}] Booking updated",
            extra={"trace_id": trace_id, "booking_id": booking_id},
        )
        return booking
