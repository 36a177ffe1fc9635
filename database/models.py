"""
SQLAlchemy ORM models for the booking engine tables.

This module defines:
- booking_calendars: bookable resources owned by a tenant
- booking_calendar_owners: staff members that can receive bookings
- booking_availability: recurring weekly open windows
- booking_service_types: bookable offerings with duration and buffers
- booking_blocks: ad-hoc exclusion intervals for a whole calendar
- bookings: committed reservations with lifecycle status

All models use:
- UUID primary keys (auto-generated)
- TIMESTAMP WITH TIME ZONE for datetime fields
- tenant scoping through `tenant_id` on calendars and bookings
"""

from datetime import UTC, datetime, time
from enum import Enum as PyEnum
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import (
    TIME,
    TIMESTAMP,
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy import (
    Enum as SQLEnum,
)
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

# ============================================================================
# Base Class
# ============================================================================


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


# ============================================================================
# Enums
# ============================================================================


class BookingStatus(PyEnum):
    """Booking lifecycle status."""

    PENDING = "pending"        # Public booking awaiting staff confirmation
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"

    def __str__(self):
        return self.value


# Statuses that occupy time on a calendar
ACTIVE_BOOKING_STATUSES = (BookingStatus.PENDING, BookingStatus.CONFIRMED)


class OwnerRole(str, PyEnum):
    """Role of a staff member inside a calendar."""

    ADMIN = "admin"
    MEMBER = "member"


# ============================================================================
# Calendar Models
# ============================================================================


class Calendar(Base):
    """
    Calendar model - A bookable resource for one tenant.

    Groups owners, availability windows, service types, blocks and bookings.
    A calendar can be exposed publicly through its slug.
    """

    __tablename__ = "booking_calendars"

    id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True), primary_key=True, default=uuid4
    )
    tenant_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True), nullable=False, index=True
    )

    # Core fields
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    color: Mapped[str] = mapped_column(String(7), default="#6366f1", nullable=False)
    timezone: Mapped[str] = mapped_column(String(64), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Public booking link
    is_public: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    public_slug: Mapped[str | None] = mapped_column(
        String(100), unique=True, nullable=True
    )
    min_advance_hours: Mapped[int] = mapped_column(Integer, default=2, nullable=False)
    max_advance_days: Mapped[int] = mapped_column(Integer, default=30, nullable=False)

    # Concurrent bookings allowed on overlapping intervals
    max_bookings_per_slot: Mapped[int] = mapped_column(
        Integer, default=1, nullable=False
    )

    created_by: Mapped[UUID | None] = mapped_column(PGUUID(as_uuid=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        server_default=text("CURRENT_TIMESTAMP"),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=lambda: datetime.now(UTC),
        nullable=False,
    )

    # Relationships
    owners: Mapped[list["CalendarOwner"]] = relationship(
        "CalendarOwner",
        back_populates="calendar",
        cascade="all, delete-orphan",
        order_by="CalendarOwner.created_at",
    )
    availability: Mapped[list["AvailabilityWindow"]] = relationship(
        "AvailabilityWindow",
        back_populates="calendar",
        cascade="all, delete-orphan",
    )
    service_types: Mapped[list["ServiceType"]] = relationship(
        "ServiceType",
        back_populates="calendar",
        cascade="all, delete-orphan",
        order_by="ServiceType.position",
    )

    __table_args__ = (
        CheckConstraint("min_advance_hours >= 0", name="check_calendar_min_advance"),
        CheckConstraint("max_advance_days >= 1", name="check_calendar_max_advance"),
        CheckConstraint(
            "max_bookings_per_slot >= 1 AND max_bookings_per_slot <= 50",
            name="check_calendar_max_bookings_per_slot",
        ),
        CheckConstraint(
            "public_slug IS NULL OR (public_slug ~ '^[a-z0-9-]+$' AND length(public_slug) >= 3)",
            name="check_calendar_public_slug_format",
        ),
        Index(
            "idx_booking_calendars_tenant_active",
            "tenant_id",
            postgresql_where=text("is_active = true"),
        ),
    )

    def __repr__(self) -> str:
        return f"<Calendar(id={self.id}, name='{self.name}', tenant_id={self.tenant_id})>"


class CalendarOwner(Base):
    """
    CalendarOwner model - Staff membership in a calendar.

    Owners with `can_receive_bookings` take part in allocation; `weight`
    sets their proportional share of new bookings.
    """

    __tablename__ = "booking_calendar_owners"

    id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True), primary_key=True, default=uuid4
    )
    calendar_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("booking_calendars.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True), nullable=False)
    display_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    role: Mapped[OwnerRole] = mapped_column(
        SQLEnum(
            OwnerRole,
            name="calendar_owner_role",
            create_type=True,
            values_callable=lambda x: [e.value for e in x],
        ),
        default=OwnerRole.MEMBER,
        nullable=False,
    )
    can_receive_bookings: Mapped[bool] = mapped_column(
        Boolean, default=True, nullable=False
    )
    weight: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        server_default=text("CURRENT_TIMESTAMP"),
        nullable=False,
    )

    calendar: Mapped["Calendar"] = relationship("Calendar", back_populates="owners")

    __table_args__ = (
        CheckConstraint("weight >= 1", name="check_owner_weight_positive"),
        UniqueConstraint("calendar_id", "user_id", name="unique_calendar_owner"),
    )

    def __repr__(self) -> str:
        return f"<CalendarOwner(calendar_id={self.calendar_id}, user_id={self.user_id}, weight={self.weight})>"


class AvailabilityWindow(Base):
    """
    Recurring weekly open window of a calendar.

    Day of week: 0=Sunday, 1=Monday, ..., 6=Saturday
    Times are local wall-clock times in the calendar timezone.
    """

    __tablename__ = "booking_availability"

    id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True), primary_key=True, default=uuid4
    )
    calendar_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("booking_calendars.id", ondelete="CASCADE"),
        nullable=False,
    )
    day_of_week: Mapped[int] = mapped_column(Integer, nullable=False)
    start_time: Mapped[time] = mapped_column(TIME, nullable=False)
    end_time: Mapped[time] = mapped_column(TIME, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        server_default=text("CURRENT_TIMESTAMP"),
        nullable=False,
    )

    calendar: Mapped["Calendar"] = relationship("Calendar", back_populates="availability")

    __table_args__ = (
        CheckConstraint("day_of_week >= 0 AND day_of_week <= 6", name="valid_availability_day_of_week"),
        CheckConstraint("start_time < end_time", name="check_availability_start_before_end"),
        Index("idx_booking_availability_calendar_day", "calendar_id", "day_of_week"),
    )

    def __repr__(self) -> str:
        return f"<AvailabilityWindow(day={self.day_of_week}, {self.start_time:%H:%M}-{self.end_time:%H:%M})>"


class ServiceType(Base):
    """
    ServiceType model - A bookable offering of a calendar.

    Buffers only decide whether a slot fits inside a window; the visible
    slot always lasts exactly `duration_minutes`.
    """

    __tablename__ = "booking_service_types"

    id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True), primary_key=True, default=uuid4
    )
    calendar_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("booking_calendars.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    buffer_before_minutes: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    buffer_after_minutes: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    min_advance_hours: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    max_per_day: Mapped[int | None] = mapped_column(Integer, nullable=True)
    color: Mapped[str] = mapped_column(String(7), default="#3b82f6", nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        server_default=text("CURRENT_TIMESTAMP"),
        nullable=False,
    )

    calendar: Mapped["Calendar"] = relationship("Calendar", back_populates="service_types")

    __table_args__ = (
        CheckConstraint("duration_minutes >= 5", name="check_service_type_duration_min"),
        CheckConstraint(
            "buffer_before_minutes >= 0 AND buffer_after_minutes >= 0",
            name="check_service_type_buffers_non_negative",
        ),
        CheckConstraint("max_per_day IS NULL OR max_per_day >= 1", name="check_service_type_max_per_day"),
    )

    @property
    def fit_duration_minutes(self) -> int:
        """Minutes a slot needs inside a window, buffers included."""
        return (
            self.duration_minutes
            + (self.buffer_before_minutes or 0)
            + (self.buffer_after_minutes or 0)
        )

    def __repr__(self) -> str:
        return f"<ServiceType(id={self.id}, name='{self.name}', duration={self.duration_minutes})>"


class CalendarBlock(Base):
    """
    CalendarBlock model - Explicit exclusion interval for a whole calendar.

    Used for holidays, maintenance, etc. Independent of weekly windows.
    """

    __tablename__ = "booking_blocks"

    id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True), primary_key=True, default=uuid4
    )
    calendar_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("booking_calendars.id", ondelete="CASCADE"),
        nullable=False,
    )
    start_datetime: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False
    )
    end_datetime: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False
    )
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[UUID | None] = mapped_column(PGUUID(as_uuid=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        server_default=text("CURRENT_TIMESTAMP"),
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint("end_datetime > start_datetime", name="check_block_end_after_start"),
        Index(
            "idx_booking_blocks_calendar_time",
            "calendar_id",
            "start_datetime",
            "end_datetime",
        ),
    )

    def __repr__(self) -> str:
        return f"<CalendarBlock(id={self.id}, calendar_id={self.calendar_id}, reason='{self.reason}')>"


# ============================================================================
# Transactional Models
# ============================================================================


class Booking(Base):
    """
    Booking model - A committed reservation with lifecycle status.

    `end_datetime` is always derived from `start_datetime` plus the service
    type duration. The client is either a CRM lead reference or free-text
    contact fields.
    """

    __tablename__ = "bookings"

    id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True), primary_key=True, default=uuid4
    )
    tenant_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True), nullable=False, index=True
    )
    calendar_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("booking_calendars.id", ondelete="CASCADE"),
        nullable=False,
    )
    service_type_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("booking_service_types.id", ondelete="RESTRICT"),
        nullable=False,
    )
    assigned_to: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True), nullable=False, index=True
    )

    # Client identity
    lead_id: Mapped[UUID | None] = mapped_column(PGUUID(as_uuid=True), nullable=True, index=True)
    client_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    client_phone: Mapped[str | None] = mapped_column(String(30), nullable=True)
    client_email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Scheduling
    start_datetime: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False
    )
    end_datetime: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False
    )

    status: Mapped[BookingStatus] = mapped_column(
        SQLEnum(
            BookingStatus,
            name="booking_status",
            create_type=True,
            values_callable=lambda x: [e.value for e in x],
        ),
        default=BookingStatus.CONFIRMED,
        nullable=False,
        index=True,
    )

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_by: Mapped[UUID | None] = mapped_column(PGUUID(as_uuid=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        server_default=text("CURRENT_TIMESTAMP"),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=lambda: datetime.now(UTC),
        nullable=False,
    )

    service_type: Mapped[Optional["ServiceType"]] = relationship("ServiceType")

    __table_args__ = (
        CheckConstraint("end_datetime > start_datetime", name="check_booking_end_after_start"),
        CheckConstraint(
            "lead_id IS NOT NULL OR (client_name IS NOT NULL AND length(trim(client_name)) > 0)",
            name="check_booking_client_identity",
        ),
        # Overlap queries: calendar + active status + time range
        Index(
            "idx_bookings_calendar_time_active",
            "calendar_id",
            "start_datetime",
            "end_datetime",
            postgresql_where=text("status IN ('pending', 'confirmed')"),
        ),
        Index("idx_bookings_calendar_created_at", "calendar_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Booking(id={self.id}, calendar_id={self.calendar_id}, status='{self.status.value}')>"
