"""
Public booking endpoints (no authentication).

The calendar is addressed by its public slug; the tenant is taken from the
calendar itself. Bookings created here start as pending.
"""

import logging
from datetime import date
from uuid import UUID

from fastapi import APIRouter, Query, status

from api.models.booking_schemas import (
    AvailableDatesResponse,
    PublicBookingCreate,
    PublicBookingResponse,
    PublicCalendarResponse,
    ServiceTypeResponse,
    SlotResponse,
)
from scheduling.services.availability_service import (
    get_public_available_dates,
    get_public_available_slots,
)
from scheduling.services.calendar_service import get_public_calendar_profile
from scheduling.transactions.booking_transaction import BookingTransaction

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/public/calendars")


@router.get("/{slug}", response_model=PublicCalendarResponse)
async def get_public_calendar(slug: str):
    calendar, service_types = await get_public_calendar_profile(slug)
    return PublicCalendarResponse(
        name=calendar.name,
        description=calendar.description,
        color=calendar.color,
        timezone=calendar.timezone,
        min_advance_hours=calendar.min_advance_hours,
        max_advance_days=calendar.max_advance_days,
        service_types=[ServiceTypeResponse.model_validate(st) for st in service_types],
    )


@router.get("/{slug}/slots", response_model=list[SlotResponse])
async def list_public_slots(slug: str, service_type_id: UUID, date: date):
    slots = await get_public_available_slots(slug, service_type_id, date)
    return [SlotResponse(**slot.to_dict()) for slot in slots]


@router.get("/{slug}/dates", response_model=AvailableDatesResponse)
async def list_public_dates(
    slug: str,
    year: int = Query(ge=2000, le=2100),
    month: int = Query(ge=1, le=12),
):
    dates = await get_public_available_dates(slug, year, month)
    return AvailableDatesResponse(dates=dates)


@router.post(
    "/{slug}/bookings",
    response_model=PublicBookingResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_public_booking(slug: str, body: PublicBookingCreate):
    booking = await BookingTransaction.create_public(slug, body.model_dump())
    logger.info(f"Public booking request received for calendar '{slug}'")
    return PublicBookingResponse.model_validate(booking)
