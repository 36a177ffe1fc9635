"""Pydantic request/response models for the booking API."""

from datetime import date, datetime, time
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from database.models import BookingStatus, OwnerRole
from scheduling.utils.date_parser import get_timezone


# =============================================================================
# Calendars
# =============================================================================


class AvailabilityWindowIn(BaseModel):
    day_of_week: int = Field(ge=0, le=6)
    start_time: time
    end_time: time
    is_active: bool = True


class OwnerIn(BaseModel):
    user_id: UUID
    display_name: str | None = Field(default=None, max_length=200)
    role: OwnerRole = OwnerRole.MEMBER
    can_receive_bookings: bool = True
    weight: int = Field(default=1, ge=1)


class OwnerUpdate(BaseModel):
    display_name: str | None = Field(default=None, max_length=200)
    role: OwnerRole | None = None
    can_receive_bookings: bool | None = None
    weight: int | None = Field(default=None, ge=1)


class CalendarCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: str | None = None
    color: str | None = Field(default=None, pattern=r"^#[0-9a-fA-F]{6}$")
    timezone: str | None = None
    is_public: bool = False
    public_slug: str | None = Field(default=None, max_length=100)
    min_advance_hours: int | None = Field(default=None, ge=0)
    max_advance_days: int | None = Field(default=None, ge=1)
    max_bookings_per_slot: int = Field(default=1, ge=1, le=50)
    owners: list[OwnerIn] = []
    availability: list[AvailabilityWindowIn] = []

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str | None) -> str | None:
        if v is not None:
            get_timezone(v)
        return v


class CalendarUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = None
    color: str | None = Field(default=None, pattern=r"^#[0-9a-fA-F]{6}$")
    timezone: str | None = None
    is_active: bool | None = None
    is_public: bool | None = None
    public_slug: str | None = Field(default=None, max_length=100)
    min_advance_hours: int | None = Field(default=None, ge=0)
    max_advance_days: int | None = Field(default=None, ge=1)
    max_bookings_per_slot: int | None = Field(default=None, ge=1, le=50)

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str | None) -> str | None:
        if v is not None:
            get_timezone(v)
        return v


class ServiceTypeCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: str | None = None
    duration_minutes: int = Field(ge=5)
    buffer_before_minutes: int = Field(default=0, ge=0)
    buffer_after_minutes: int = Field(default=0, ge=0)
    min_advance_hours: int | None = Field(default=None, ge=0)
    max_per_day: int | None = Field(default=None, ge=1)
    color: str | None = Field(default=None, pattern=r"^#[0-9a-fA-F]{6}$")


class ServiceTypeUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = None
    duration_minutes: int | None = Field(default=None, ge=5)
    buffer_before_minutes: int | None = Field(default=None, ge=0)
    buffer_after_minutes: int | None = Field(default=None, ge=0)
    min_advance_hours: int | None = Field(default=None, ge=0)
    max_per_day: int | None = Field(default=None, ge=1)
    color: str | None = Field(default=None, pattern=r"^#[0-9a-fA-F]{6}$")
    is_active: bool | None = None


class ServiceTypeReorder(BaseModel):
    order: list[UUID]


class BlockCreate(BaseModel):
    start_datetime: datetime
    end_datetime: datetime
    reason: str | None = None


class OwnerResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    display_name: str | None
    role: OwnerRole
    can_receive_bookings: bool
    weight: int


class AvailabilityWindowResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    day_of_week: int
    start_time: time
    end_time: time
    is_active: bool


class ServiceTypeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    description: str | None
    duration_minutes: int
    buffer_before_minutes: int
    buffer_after_minutes: int
    min_advance_hours: int
    max_per_day: int | None
    color: str
    is_active: bool
    position: int


class BlockResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    calendar_id: UUID
    start_datetime: datetime
    end_datetime: datetime
    reason: str | None


class CalendarResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    description: str | None
    color: str
    timezone: str
    is_active: bool
    is_public: bool
    public_slug: str | None
    min_advance_hours: int
    max_advance_days: int
    max_bookings_per_slot: int


class CalendarDetailResponse(CalendarResponse):
    owners: list[OwnerResponse] = []
    availability: list[AvailabilityWindowResponse] = []
    service_types: list[ServiceTypeResponse] = []


class CalendarListResponse(BaseModel):
    items: list[CalendarResponse]
    total: int
    page: int
    limit: int
    has_more: bool


class PublicCalendarResponse(BaseModel):
    name: str
    description: str | None
    color: str
    timezone: str
    min_advance_hours: int
    max_advance_days: int
    service_types: list[ServiceTypeResponse]


# =============================================================================
# Slots & bookings
# =============================================================================


class SlotResponse(BaseModel):
    start: datetime
    end: datetime
    time: str
    owner_id: UUID | None
    owner_name: str


class BookingCreate(BaseModel):
    calendar_id: UUID
    service_type_id: UUID
    start_datetime: datetime
    lead_id: UUID | None = None
    client_name: str | None = Field(default=None, max_length=200)
    client_phone: str | None = Field(default=None, max_length=30)
    client_email: str | None = Field(default=None, max_length=255)
    notes: str | None = None


class PublicBookingCreate(BaseModel):
    service_type_id: UUID
    start_datetime: datetime
    client_name: str = Field(min_length=1, max_length=200)
    client_phone: str = Field(min_length=1, max_length=30)
    client_email: str | None = Field(default=None, max_length=255)
    notes: str | None = None


class CancelRequest(BaseModel):
    reason: str | None = None


class BookingResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    calendar_id: UUID
    service_type_id: UUID
    assigned_to: UUID
    lead_id: UUID | None
    client_name: str | None
    client_phone: str | None
    client_email: str | None
    start_datetime: datetime
    end_datetime: datetime
    status: BookingStatus
    notes: str | None
    cancellation_reason: str | None
    created_at: datetime | None = None


class PublicBookingResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    start_datetime: datetime
    end_datetime: datetime
    status: BookingStatus


class BookingListResponse(BaseModel):
    items: list[BookingResponse]
    total: int
    page: int
    limit: int
    has_more: bool


class AvailableDatesResponse(BaseModel):
    dates: list[date]


class SlugAvailabilityResponse(BaseModel):
    slug: str
    available: bool
