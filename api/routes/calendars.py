"""
Calendar endpoints for authenticated staff.

Configuration (availability, owners, service types, blocks) and slot
discovery for the tenant's calendars.
"""

import logging
from datetime import date, datetime
from uuid import UUID

from fastapi import APIRouter, Query, Response, status

from api.dependencies import TenantDep
from api.models.booking_schemas import (
    AvailabilityWindowIn,
    AvailabilityWindowResponse,
    BlockCreate,
    BlockResponse,
    CalendarCreate,
    CalendarDetailResponse,
    CalendarListResponse,
    CalendarResponse,
    CalendarUpdate,
    OwnerIn,
    OwnerResponse,
    OwnerUpdate,
    ServiceTypeCreate,
    ServiceTypeReorder,
    ServiceTypeResponse,
    ServiceTypeUpdate,
    SlotResponse,
    SlugAvailabilityResponse,
)
from scheduling.services import calendar_service
from scheduling.services.availability_service import get_available_slots

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/calendars")


@router.get("/slug-availability", response_model=SlugAvailabilityResponse)
async def check_slug_availability(
    ctx: TenantDep,
    slug: str = Query(min_length=1, max_length=100),
    exclude_calendar_id: UUID | None = None,
):
    available = await calendar_service.validate_slug_availability(slug, exclude_calendar_id)
    return SlugAvailabilityResponse(slug=slug, available=available)


@router.get("", response_model=CalendarListResponse)
async def list_calendars(
    ctx: TenantDep,
    is_active: bool | None = None,
    search: str | None = Query(default=None, max_length=200),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=100),
):
    result = await calendar_service.list_calendars(
        ctx, is_active=is_active, search=search, page=page, limit=limit
    )
    return CalendarListResponse(
        items=[CalendarResponse.model_validate(c) for c in result.items],
        total=result.total,
        page=result.page,
        limit=result.limit,
        has_more=result.has_more,
    )


@router.post("", response_model=CalendarDetailResponse, status_code=status.HTTP_201_CREATED)
async def create_calendar(body: CalendarCreate, ctx: TenantDep):
    data = body.model_dump()
    calendar = await calendar_service.create_calendar(ctx, **data)
    return CalendarDetailResponse.model_validate(calendar)


@router.get("/{calendar_id}", response_model=CalendarDetailResponse)
async def get_calendar(calendar_id: UUID, ctx: TenantDep):
    calendar = await calendar_service.get_calendar_detail(ctx, calendar_id)
    return CalendarDetailResponse.model_validate(calendar)


@router.put("/{calendar_id}", response_model=CalendarDetailResponse)
async def update_calendar(calendar_id: UUID, body: CalendarUpdate, ctx: TenantDep):
    calendar = await calendar_service.update_calendar(
        ctx, calendar_id, body.model_dump(exclude_unset=True)
    )
    return CalendarDetailResponse.model_validate(calendar)


@router.delete("/{calendar_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_calendar(calendar_id: UUID, ctx: TenantDep):
    await calendar_service.delete_calendar(ctx, calendar_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{calendar_id}/slots", response_model=list[SlotResponse])
async def list_slots(
    calendar_id: UUID,
    ctx: TenantDep,
    service_type_id: UUID,
    date: date,
):
    """Bookable slots for one calendar-local date."""
    slots = await get_available_slots(ctx, calendar_id, service_type_id, date)
    return [SlotResponse(**slot.to_dict()) for slot in slots]


@router.get("/{calendar_id}/availability", response_model=list[AvailabilityWindowResponse])
async def get_availability(calendar_id: UUID, ctx: TenantDep):
    windows = await calendar_service.get_availability(ctx, calendar_id)
    return [AvailabilityWindowResponse.model_validate(w) for w in windows]


@router.put("/{calendar_id}/availability", response_model=list[AvailabilityWindowResponse])
async def replace_availability(
    calendar_id: UUID,
    body: list[AvailabilityWindowIn],
    ctx: TenantDep,
):
    windows = await calendar_service.set_availability(
        ctx, calendar_id, [w.model_dump() for w in body]
    )
    return [AvailabilityWindowResponse.model_validate(w) for w in windows]


# =============================================================================
# Owners
# =============================================================================


@router.get("/{calendar_id}/owners", response_model=list[OwnerResponse])
async def list_owners(calendar_id: UUID, ctx: TenantDep):
    owners = await calendar_service.list_owners(ctx, calendar_id)
    return [OwnerResponse.model_validate(o) for o in owners]


@router.post(
    "/{calendar_id}/owners",
    response_model=OwnerResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_owner(calendar_id: UUID, body: OwnerIn, ctx: TenantDep):
    data = body.model_dump()
    data["role"] = body.role.value
    owner = await calendar_service.add_owner(ctx, calendar_id, **data)
    return OwnerResponse.model_validate(owner)


@router.put("/{calendar_id}/owners/{owner_id}", response_model=OwnerResponse)
async def update_owner(calendar_id: UUID, owner_id: UUID, body: OwnerUpdate, ctx: TenantDep):
    owner = await calendar_service.update_owner(
        ctx, calendar_id, owner_id, body.model_dump(exclude_unset=True)
    )
    return OwnerResponse.model_validate(owner)


@router.delete("/{calendar_id}/owners/{owner_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_owner(calendar_id: UUID, owner_id: UUID, ctx: TenantDep):
    await calendar_service.remove_owner(ctx, calendar_id, owner_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# =============================================================================
# Service types
# =============================================================================


@router.post(
    "/{calendar_id}/service-types",
    response_model=ServiceTypeResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_service_type(calendar_id: UUID, body: ServiceTypeCreate, ctx: TenantDep):
    service_type = await calendar_service.create_service_type(ctx, calendar_id, **body.model_dump())
    return ServiceTypeResponse.model_validate(service_type)


@router.put("/{calendar_id}/service-types/order", response_model=list[ServiceTypeResponse])
async def reorder_service_types(calendar_id: UUID, body: ServiceTypeReorder, ctx: TenantDep):
    service_types = await calendar_service.reorder_service_types(ctx, calendar_id, body.order)
    return [ServiceTypeResponse.model_validate(st) for st in service_types]


@router.put("/{calendar_id}/service-types/{service_type_id}", response_model=ServiceTypeResponse)
async def update_service_type(
    calendar_id: UUID,
    service_type_id: UUID,
    body: ServiceTypeUpdate,
    ctx: TenantDep,
):
    service_type = await calendar_service.update_service_type(
        ctx, calendar_id, service_type_id, body.model_dump(exclude_unset=True)
    )
    return ServiceTypeResponse.model_validate(service_type)


@router.delete(
    "/{calendar_id}/service-types/{service_type_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def delete_service_type(calendar_id: UUID, service_type_id: UUID, ctx: TenantDep):
    await calendar_service.delete_service_type(ctx, calendar_id, service_type_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# =============================================================================
# Blocks
# =============================================================================


@router.post(
    "/{calendar_id}/blocks",
    response_model=BlockResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_block(calendar_id: UUID, body: BlockCreate, ctx: TenantDep):
    block = await calendar_service.create_block(ctx, calendar_id, **body.model_dump())
    return BlockResponse.model_validate(block)


@router.get("/{calendar_id}/blocks", response_model=list[BlockResponse])
async def list_blocks(
    calendar_id: UUID,
    ctx: TenantDep,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
):
    blocks = await calendar_service.list_blocks(ctx, calendar_id, date_from, date_to)
    return [BlockResponse.model_validate(b) for b in blocks]


@router.delete("/{calendar_id}/blocks/{block_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_block(calendar_id: UUID, block_id: UUID, ctx: TenantDep):
    await calendar_service.delete_block(ctx, calendar_id, block_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
