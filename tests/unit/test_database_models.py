"""
Unit tests for database models.

Tests cover:
- Table names and enum values used by the migration
- Constraints declared on the models
- Derived properties (fit duration)
- Timezone-aware update timestamps
"""

from datetime import timezone

import pytest

from database.models import (
    ACTIVE_BOOKING_STATUSES,
    Base,
    Booking,
    BookingStatus,
    Calendar,
    CalendarOwner,
    OwnerRole,
    ServiceType,
)


def constraint_names(model) -> set[str]:
    return {c.name for c in model.__table__.constraints if c.name}


class TestSchema:
    def test_tables_are_registered(self):
        assert set(Base.metadata.tables) == {
            "booking_calendars",
            "booking_calendar_owners",
            "booking_availability",
            "booking_service_types",
            "booking_blocks",
            "bookings",
        }

    def test_booking_status_values(self):
        assert [s.value for s in BookingStatus] == [
            "pending",
            "confirmed",
            "completed",
            "cancelled",
            "no_show",
        ]
        assert str(BookingStatus.NO_SHOW) == "no_show"

    def test_only_pending_and_confirmed_occupy_time(self):
        assert set(ACTIVE_BOOKING_STATUSES) == {BookingStatus.PENDING, BookingStatus.CONFIRMED}

    def test_owner_roles(self):
        assert {r.value for r in OwnerRole} == {"admin", "member"}

    def test_booking_constraints(self):
        names = constraint_names(Booking)
        assert "check_booking_end_after_start" in names
        assert "check_booking_client_identity" in names

    def test_owner_is_unique_per_calendar(self):
        names = constraint_names(CalendarOwner)
        assert "unique_calendar_owner" in names
        assert "check_owner_weight_positive" in names

    def test_active_overlap_index_is_partial(self):
        index = next(
            i for i in Booking.__table__.indexes if i.name == "idx_bookings_calendar_time_active"
        )
        assert "pending" in str(index.dialect_options["postgresql"]["where"])


class TestDerivedValues:
    def test_fit_duration_includes_buffers(self):
        service_type = ServiceType(
            name="Consulta",
            duration_minutes=30,
            buffer_before_minutes=10,
            buffer_after_minutes=5,
        )

        assert service_type.fit_duration_minutes == 45

    def test_fit_duration_without_buffers(self):
        service_type = ServiceType(name="Consulta", duration_minutes=60)

        assert service_type.fit_duration_minutes == 60

    @pytest.mark.parametrize("model", [Calendar, Booking])
    def test_updated_at_refresh_is_timezone_aware(self, model):
        onupdate = model.__table__.c.updated_at.onupdate

        stamped = onupdate.arg(None)

        assert stamped.tzinfo is not None
        assert stamped.utcoffset() == timezone.utc.utcoffset(None)
