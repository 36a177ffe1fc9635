"""
Unit tests for transaction_validators.py - Business rule validators.

Tests coverage:
- validate_slot_availability() with blocks, bookings, capacity and exclusion
- validate_daily_limit() with and without a limit
- validate_advance_notice() near and far limits
- validate_client_identity()
- acquire_calendar_lock() issues the advisory lock
"""

from datetime import datetime, timedelta
from unittest.mock import MagicMock
from uuid import uuid4

import pytest

from scheduling.validators.transaction_validators import (
    acquire_calendar_lock,
    count_daily_bookings,
    validate_advance_notice,
    validate_client_identity,
    validate_daily_limit,
    validate_slot_availability,
)


def rows(*items):
    result = MagicMock()
    result.all.return_value = list(items)
    return result


def scalar(value):
    result = MagicMock()
    result.scalar.return_value = value
    return result


@pytest.fixture
def ten_am(tz):
    return datetime(2025, 11, 10, 10, 0, tzinfo=tz)


# ============================================================================
# Test validate_slot_availability()
# ============================================================================


class TestValidateSlotAvailability:
    @pytest.mark.asyncio
    async def test_free_interval_is_available(self, mock_session, calendar, ten_am):
        mock_session.execute.side_effect = [rows(), rows()]

        result = await validate_slot_availability(
            mock_session, calendar.id, ten_am, ten_am + timedelta(minutes=30)
        )

        assert result["available"] is True
        assert result["error_code"] is None

    @pytest.mark.asyncio
    async def test_block_exactly_covering_interval_conflicts(self, mock_session, calendar, ten_am):
        end = ten_am + timedelta(minutes=30)
        mock_session.execute.side_effect = [rows((uuid4(), ten_am, end))]

        result = await validate_slot_availability(mock_session, calendar.id, ten_am, end, capacity=10)

        assert result["available"] is False
        assert result["error_code"] == "SLOT_BLOCKED"
        # Bookings are not queried once a block is found
        assert mock_session.execute.await_count == 1

    @pytest.mark.asyncio
    async def test_overlapping_booking_conflicts(self, mock_session, calendar, ten_am):
        booking_id = uuid4()
        mock_session.execute.side_effect = [
            rows(),
            rows((booking_id, ten_am - timedelta(minutes=15), ten_am + timedelta(minutes=15))),
        ]

        result = await validate_slot_availability(
            mock_session, calendar.id, ten_am, ten_am + timedelta(minutes=30)
        )

        assert result["available"] is False
        assert result["error_code"] == "SLOT_TAKEN"
        assert result["conflicting_booking_ids"] == [booking_id]

    @pytest.mark.asyncio
    async def test_touching_booking_is_not_a_conflict(self, mock_session, calendar, ten_am):
        # Returned by a loose query but only touches the interval
        mock_session.execute.side_effect = [
            rows(),
            rows((uuid4(), ten_am - timedelta(minutes=30), ten_am)),
        ]

        result = await validate_slot_availability(
            mock_session, calendar.id, ten_am, ten_am + timedelta(minutes=30)
        )

        assert result["available"] is True

    @pytest.mark.asyncio
    async def test_capacity_allows_overlap_until_full(self, mock_session, calendar, ten_am):
        end = ten_am + timedelta(minutes=30)
        one = rows((uuid4(), ten_am, end))
        two = rows((uuid4(), ten_am, end), (uuid4(), ten_am, end))

        mock_session.execute.side_effect = [rows(), one]
        assert (await validate_slot_availability(mock_session, calendar.id, ten_am, end, capacity=2))[
            "available"
        ] is True

        mock_session.execute.side_effect = [rows(), two]
        assert (await validate_slot_availability(mock_session, calendar.id, ten_am, end, capacity=2))[
            "available"
        ] is False

    @pytest.mark.asyncio
    async def test_exclude_booking_id_is_added_to_query(self, mock_session, calendar, ten_am):
        own_id = uuid4()
        mock_session.execute.side_effect = [rows(), rows()]

        await validate_slot_availability(
            mock_session,
            calendar.id,
            ten_am,
            ten_am + timedelta(minutes=30),
            exclude_booking_id=own_id,
        )

        booking_stmt = mock_session.execute.await_args_list[1].args[0]
        assert "bookings.id !=" in str(booking_stmt)


# ============================================================================
# Test validate_daily_limit()
# ============================================================================


class TestValidateDailyLimit:
    @pytest.mark.asyncio
    async def test_no_limit_skips_query(self, mock_session, calendar, service_type, ten_am):
        result = await validate_daily_limit(
            mock_session, calendar.id, service_type.id, None, ten_am, ten_am + timedelta(days=1)
        )

        assert result["valid"] is True
        mock_session.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_limit_reached(self, mock_session, calendar, service_type, ten_am):
        mock_session.execute.return_value = scalar(2)

        result = await validate_daily_limit(
            mock_session, calendar.id, service_type.id, 2, ten_am, ten_am + timedelta(days=1)
        )

        assert result["valid"] is False
        assert result["error_code"] == "DAILY_LIMIT_REACHED"
        assert result["count"] == 2

    @pytest.mark.asyncio
    async def test_below_limit(self, mock_session, calendar, service_type, ten_am):
        mock_session.execute.return_value = scalar(1)

        result = await validate_daily_limit(
            mock_session, calendar.id, service_type.id, 2, ten_am, ten_am + timedelta(days=1)
        )

        assert result["valid"] is True

    @pytest.mark.asyncio
    async def test_count_treats_null_as_zero(self, mock_session, calendar, service_type, ten_am):
        mock_session.execute.return_value = scalar(None)

        count = await count_daily_bookings(
            mock_session, calendar.id, service_type.id, ten_am, ten_am + timedelta(days=1)
        )

        assert count == 0


# ============================================================================
# Test validate_advance_notice()
# ============================================================================


class TestValidateAdvanceNotice:
    def test_too_soon(self, ten_am):
        result = validate_advance_notice(ten_am + timedelta(hours=1), ten_am, min_advance_hours=2)

        assert result["valid"] is False
        assert result["error_code"] == "TOO_SOON"

    def test_exactly_min_advance_is_valid(self, ten_am):
        result = validate_advance_notice(ten_am + timedelta(hours=2), ten_am, min_advance_hours=2)

        assert result["valid"] is True

    def test_too_far(self, ten_am):
        result = validate_advance_notice(
            ten_am + timedelta(days=31), ten_am, min_advance_hours=2, max_advance_days=30
        )

        assert result["valid"] is False
        assert result["error_code"] == "TOO_FAR"

    def test_last_day_is_bookable_until_local_midnight(self, ten_am, tz):
        late_on_last_day = datetime(2025, 12, 10, 18, 0, tzinfo=tz)  # 30 days after Nov 10

        result = validate_advance_notice(
            late_on_last_day, ten_am, min_advance_hours=2, max_advance_days=30, tz=tz
        )

        assert result["valid"] is True
        assert result["latest"] == datetime(2025, 12, 11, 0, 0, tzinfo=tz)


# ============================================================================
# Test validate_client_identity() and locking
# ============================================================================


class TestValidateClientIdentity:
    def test_lead_reference_is_enough(self):
        assert validate_client_identity(uuid4(), None)["valid"] is True

    def test_client_name_is_enough(self):
        assert validate_client_identity(None, "Maria")["valid"] is True

    @pytest.mark.parametrize("name", [None, "", "   "])
    def test_missing_both_is_invalid(self, name):
        result = validate_client_identity(None, name)

        assert result["valid"] is False
        assert result["error_code"] == "CLIENT_REQUIRED"


class TestAcquireCalendarLock:
    @pytest.mark.asyncio
    async def test_uses_transaction_scoped_advisory_lock(self, mock_session, calendar):
        await acquire_calendar_lock(mock_session, calendar.id)

        stmt = mock_session.execute.await_args.args[0]
        assert "pg_advisory_xact_lock" in str(stmt)
