"""
Booking endpoints for authenticated staff.

Thin adapters over BookingTransaction, the lifecycle service and the query
service; engine errors are mapped to HTTP responses in api.main.
"""

import logging
from datetime import datetime
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Query, status

from api.dependencies import TenantDep
from api.models.booking_schemas import (
    BookingCreate,
    BookingListResponse,
    BookingResponse,
    CancelRequest,
)
from database.models import BookingStatus
from scheduling.services import booking_lifecycle
from scheduling.services.booking_query_service import BookingFilters, get_booking, list_bookings
from scheduling.transactions.booking_transaction import (
    BookingRequest,
    BookingTransaction,
    BookingUpdate,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/bookings")


@router.post("", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(body: BookingCreate, ctx: TenantDep):
    """Create a confirmed booking; the owner is allocated by the engine."""
    booking = await BookingTransaction.create(ctx, BookingRequest(**body.model_dump()))
    return BookingResponse.model_validate(booking)


@router.get("", response_model=BookingListResponse)
async def list_bookings_endpoint(
    ctx: TenantDep,
    calendar_id: UUID | None = None,
    assigned_to: UUID | None = None,
    lead_id: UUID | None = None,
    status_filter: Annotated[list[BookingStatus] | None, Query(alias="status")] = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
):
    filters = BookingFilters(
        calendar_id=calendar_id,
        assigned_to=assigned_to,
        lead_id=lead_id,
        statuses=status_filter or [],
        date_from=date_from,
        date_to=date_to,
    )
    result = await list_bookings(ctx, filters, page=page, limit=limit)
    return BookingListResponse(
        items=[BookingResponse.model_validate(b) for b in result.items],
        total=result.total,
        page=result.page,
        limit=result.limit,
        has_more=result.has_more,
    )


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking_endpoint(booking_id: UUID, ctx: TenantDep):
    booking = await get_booking(ctx, booking_id)
    return BookingResponse.model_validate(booking)


@router.put("/{booking_id}", response_model=BookingResponse)
async def update_booking(booking_id: UUID, body: BookingUpdate, ctx: TenantDep):
    """Update client fields or notes, or reschedule (end is re-derived)."""
    booking = await BookingTransaction.update(ctx, booking_id, body)
    return BookingResponse.model_validate(booking)


@router.post("/{booking_id}/cancel", response_model=BookingResponse)
async def cancel_booking(booking_id: UUID, ctx: TenantDep, body: CancelRequest | None = None):
    reason = body.reason if body else None
    booking = await booking_lifecycle.cancel_booking(ctx, booking_id, reason=reason)
    return BookingResponse.model_validate(booking)


@router.post("/{booking_id}/confirm", response_model=BookingResponse)
async def confirm_booking(booking_id: UUID, ctx: TenantDep):
    booking = await booking_lifecycle.confirm_booking(ctx, booking_id)
    return BookingResponse.model_validate(booking)


@router.post("/{booking_id}/complete", response_model=BookingResponse)
async def complete_booking(booking_id: UUID, ctx: TenantDep):
    booking = await booking_lifecycle.complete_booking(ctx, booking_id)
    return BookingResponse.model_validate(booking)


@router.post("/{booking_id}/no-show", response_model=BookingResponse)
async def mark_no_show(booking_id: UUID, ctx: TenantDep):
    booking = await booking_lifecycle.mark_no_show(ctx, booking_id)
    return BookingResponse.model_validate(booking)
