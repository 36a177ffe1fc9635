"""
Unit tests for booking_transaction.py - Atomic booking create/reschedule.

Tests coverage:
- Staff create: confirmed booking, end derived from service duration
- Public create: pending booking, contact and advance-window checks
- Fail-closed ordering: conflicts and advance errors stop before allocation
- Daily limit, client identity, inactive service type
- Reschedule: re-validation excluding the booking's own id
- Database errors propagate unchanged
"""

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest
from sqlalchemy.exc import IntegrityError

from database.models import BookingStatus
from scheduling.exceptions import (
    ConflictError,
    InvalidTransitionError,
    NoEligibleOwnerError,
    NotFoundError,
    ValidationError,
)
from scheduling.services.owner_allocator import OwnerCandidate
from scheduling.transactions.booking_transaction import (
    BookingRequest,
    BookingTransaction,
    BookingUpdate,
)
from scheduling.utils.intervals import overlaps, to_utc

MODULE = "scheduling.transactions.booking_transaction"

AVAILABLE = {"available": True, "error_code": None, "error_message": None, "conflicting_booking_ids": []}
WITHIN_LIMIT = {"valid": True, "error_code": None, "error_message": None, "count": 0}


# ============================================================================
# Test Fixtures
# ============================================================================


@pytest.fixture
def owner():
    return OwnerCandidate(user_id=uuid4(), weight=1, display_name="Ana")


@pytest.fixture
def patched(session_factory, calendar, service_type, owner):
    with patch(f"{MODULE}.get_async_session", session_factory), \
         patch(f"{MODULE}.get_calendar", new=AsyncMock(return_value=calendar)) as get_calendar, \
         patch(f"{MODULE}.get_public_calendar", new=AsyncMock(return_value=calendar)) as get_public, \
         patch(f"{MODULE}.get_service_type", new=AsyncMock(return_value=service_type)), \
         patch(f"{MODULE}.acquire_calendar_lock", new=AsyncMock()) as lock, \
         patch(f"{MODULE}.validate_slot_availability", new=AsyncMock(return_value=AVAILABLE)) as slot, \
         patch(f"{MODULE}.validate_daily_limit", new=AsyncMock(return_value=WITHIN_LIMIT)) as daily, \
         patch(f"{MODULE}.allocate_owner", new=AsyncMock(return_value=owner)) as allocate, \
         patch(f"{MODULE}.load_booking", new=AsyncMock()) as load_booking:
        yield {
            "get_calendar": get_calendar,
            "get_public_calendar": get_public,
            "lock": lock,
            "validate_slot_availability": slot,
            "validate_daily_limit": daily,
            "allocate_owner": allocate,
            "load_booking": load_booking,
        }


@pytest.fixture
def start(tz):
    return datetime(2025, 11, 10, 10, 0, tzinfo=tz)


@pytest.fixture
def request_at(calendar, service_type):
    def _make(start_datetime, **overrides):
        data = {
            "calendar_id": calendar.id,
            "service_type_id": service_type.id,
            "start_datetime": start_datetime,
            "client_name": "Maria Souza",
            "client_phone": "+5511999990000",
        }
        data.update(overrides)
        return BookingRequest(**data)

    return _make


# ============================================================================
# Staff path
# ============================================================================


class TestCreateStaffBooking:
    @pytest.mark.asyncio
    async def test_creates_confirmed_booking(
        self, patched, mock_session, staff_ctx, start, request_at, owner, now_before_monday
    ):
        booking = await BookingTransaction.create(staff_ctx, request_at(start), now=now_before_monday)

        assert booking.status == BookingStatus.CONFIRMED
        assert booking.assigned_to == owner.user_id
        assert booking.end_datetime - booking.start_datetime == timedelta(minutes=30)
        assert booking.created_by == staff_ctx.user_id
        mock_session.add.assert_called_once_with(booking)
        mock_session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_lock_is_taken_before_conflict_check(
        self, patched, staff_ctx, start, request_at, now_before_monday
    ):
        # Only the call order is checked here; see TestCommitPathGuarantees for
        # two concurrent creates contending for the calendar lock.
        order = []
        patched["lock"].side_effect = lambda *a, **k: order.append("lock")

        async def check(*args, **kwargs):
            order.append("check")
            return AVAILABLE

        patched["validate_slot_availability"].side_effect = check

        await BookingTransaction.create(staff_ctx, request_at(start), now=now_before_monday)

        assert order == ["lock", "check"]

    @pytest.mark.asyncio
    async def test_naive_start_is_calendar_wall_clock(
        self, patched, staff_ctx, request_at, tz, now_before_monday
    ):
        booking = await BookingTransaction.create(
            staff_ctx, request_at(datetime(2025, 11, 10, 10, 0)), now=now_before_monday
        )

        assert booking.start_datetime == datetime(2025, 11, 10, 10, 0, tzinfo=tz)

    @pytest.mark.asyncio
    async def test_block_exact_booking_is_rejected(
        self, patched, mock_session, staff_ctx, start, request_at, now_before_monday
    ):
        patched["validate_slot_availability"].return_value = {
            "available": False,
            "error_code": "SLOT_BLOCKED",
            "error_message": "The requested time is blocked on this calendar",
            "conflicting_booking_ids": [],
        }

        with pytest.raises(ConflictError) as exc_info:
            await BookingTransaction.create(staff_ctx, request_at(start), now=now_before_monday)

        assert exc_info.value.error_code == "SLOT_BLOCKED"
        patched["allocate_owner"].assert_not_awaited()
        mock_session.add.assert_not_called()
        mock_session.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_taken_slot_is_rejected(self, patched, staff_ctx, start, request_at, now_before_monday):
        other = uuid4()
        patched["validate_slot_availability"].return_value = {
            "available": False,
            "error_code": "SLOT_TAKEN",
            "error_message": "The requested time is no longer available",
            "conflicting_booking_ids": [other],
        }

        with pytest.raises(ConflictError) as exc_info:
            await BookingTransaction.create(staff_ctx, request_at(start), now=now_before_monday)

        assert exc_info.value.details["conflicting_booking_ids"] == [str(other)]

    @pytest.mark.asyncio
    async def test_daily_limit_reached(self, patched, staff_ctx, start, request_at, now_before_monday):
        patched["validate_daily_limit"].return_value = {
            "valid": False,
            "error_code": "DAILY_LIMIT_REACHED",
            "error_message": "This service accepts at most 2 bookings per day",
            "count": 2,
        }

        with pytest.raises(ConflictError) as exc_info:
            await BookingTransaction.create(staff_ctx, request_at(start), now=now_before_monday)

        assert exc_info.value.error_code == "DAILY_LIMIT_REACHED"
        patched["allocate_owner"].assert_not_awaited()

    @pytest.mark.asyncio
    async def test_no_eligible_owner_writes_nothing(
        self, patched, mock_session, staff_ctx, start, request_at, now_before_monday
    ):
        patched["allocate_owner"].side_effect = NoEligibleOwnerError("nobody")

        with pytest.raises(NoEligibleOwnerError):
            await BookingTransaction.create(staff_ctx, request_at(start), now=now_before_monday)

        mock_session.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_client_identity(self, patched, staff_ctx, start, request_at):
        with pytest.raises(ValidationError) as exc_info:
            await BookingTransaction.create(staff_ctx, request_at(start, client_name="  "))

        assert exc_info.value.error_code == "CLIENT_REQUIRED"
        patched["get_calendar"].assert_not_awaited()

    @pytest.mark.asyncio
    async def test_lead_reference_without_name_is_accepted(
        self, patched, staff_ctx, start, request_at, now_before_monday
    ):
        lead_id = uuid4()

        booking = await BookingTransaction.create(
            staff_ctx, request_at(start, client_name=None, lead_id=lead_id), now=now_before_monday
        )

        assert booking.lead_id == lead_id
        assert booking.client_name is None

    @pytest.mark.asyncio
    async def test_inactive_service_type(
        self, patched, staff_ctx, start, request_at, service_type, now_before_monday
    ):
        service_type.is_active = False

        with pytest.raises(ValidationError) as exc_info:
            await BookingTransaction.create(staff_ctx, request_at(start), now=now_before_monday)

        assert exc_info.value.error_code == "SERVICE_TYPE_INACTIVE"

    @pytest.mark.asyncio
    async def test_staff_path_skips_advance_window(self, patched, staff_ctx, start, request_at):
        # Ten minutes before the start is fine for staff
        booking = await BookingTransaction.create(
            staff_ctx, request_at(start), now=start - timedelta(minutes=10)
        )

        assert booking.status == BookingStatus.CONFIRMED

    @pytest.mark.asyncio
    async def test_database_error_propagates(
        self, patched, mock_session, staff_ctx, start, request_at, now_before_monday
    ):
        mock_session.commit.side_effect = IntegrityError("INSERT", {}, Exception("violates check"))

        with pytest.raises(IntegrityError):
            await BookingTransaction.create(staff_ctx, request_at(start), now=now_before_monday)


# ============================================================================
# Public path
# ============================================================================


class TestCreatePublicBooking:
    @pytest.mark.asyncio
    async def test_creates_pending_booking(self, patched, public_ctx, start, request_at, now_before_monday):
        booking = await BookingTransaction.create(public_ctx, request_at(start), now=now_before_monday)

        assert booking.status == BookingStatus.PENDING
        assert booking.created_by is None
        policy = patched["allocate_owner"].await_args.args[3]
        assert policy.scope.value == "trailing_window"

    @pytest.mark.asyncio
    async def test_too_soon_rejected_before_allocation(
        self, patched, public_ctx, start, request_at
    ):
        # Calendar requires 2h; only 1h of notice
        with pytest.raises(ValidationError) as exc_info:
            await BookingTransaction.create(
                public_ctx, request_at(start), now=start - timedelta(hours=1)
            )

        assert exc_info.value.error_code == "TOO_SOON"
        patched["lock"].assert_not_awaited()
        patched["allocate_owner"].assert_not_awaited()

    @pytest.mark.asyncio
    async def test_too_far_rejected(self, patched, public_ctx, start, request_at):
        with pytest.raises(ValidationError) as exc_info:
            await BookingTransaction.create(
                public_ctx, request_at(start), now=start - timedelta(days=45)
            )

        assert exc_info.value.error_code == "TOO_FAR"

    @pytest.mark.asyncio
    async def test_phone_required(self, patched, public_ctx, start, request_at):
        with pytest.raises(ValidationError) as exc_info:
            await BookingTransaction.create(public_ctx, request_at(start, client_phone=None))

        assert exc_info.value.error_code == "CLIENT_CONTACT_REQUIRED"

    @pytest.mark.asyncio
    async def test_private_calendar_is_not_found(
        self, patched, public_ctx, start, request_at, calendar, now_before_monday
    ):
        calendar.is_public = False

        with pytest.raises(NotFoundError):
            await BookingTransaction.create(public_ctx, request_at(start), now=now_before_monday)

    @pytest.mark.asyncio
    async def test_create_public_resolves_slug(self, patched, calendar, service_type, start, now_before_monday):
        booking = await BookingTransaction.create_public(
            "clinica-centro",
            {
                "service_type_id": service_type.id,
                "start_datetime": start,
                "client_name": "Maria",
                "client_phone": "+5511999990000",
            },
            now=now_before_monday,
        )

        patched["get_public_calendar"].assert_awaited_once()
        assert booking.tenant_id == calendar.tenant_id
        assert booking.status == BookingStatus.PENDING


# ============================================================================
# Update / reschedule
# ============================================================================


def existing_booking(start, status=BookingStatus.CONFIRMED):
    booking = MagicMock()
    booking.id = uuid4()
    booking.calendar_id = uuid4()
    booking.service_type_id = uuid4()
    booking.status = status
    booking.lead_id = None
    booking.client_name = "Maria"
    booking.start_datetime = start
    booking.end_datetime = start + timedelta(minutes=30)
    return booking


class TestUpdateBooking:
    @pytest.mark.asyncio
    async def test_reschedule_rederives_end_and_excludes_itself(self, patched, staff_ctx, start):
        booking = existing_booking(start)
        patched["load_booking"].return_value = booking
        new_start = start + timedelta(hours=1)

        updated = await BookingTransaction.update(
            staff_ctx, booking.id, BookingUpdate(start_datetime=new_start)
        )

        assert updated.start_datetime == new_start
        assert updated.end_datetime == new_start + timedelta(minutes=30)
        kwargs = patched["validate_slot_availability"].await_args.kwargs
        assert kwargs["exclude_booking_id"] == booking.id
        patched["allocate_owner"].assert_not_awaited()

    @pytest.mark.asyncio
    async def test_reschedule_conflict_keeps_booking(self, patched, mock_session, staff_ctx, start):
        booking = existing_booking(start)
        patched["load_booking"].return_value = booking
        patched["validate_slot_availability"].return_value = {
            "available": False,
            "error_code": "SLOT_TAKEN",
            "error_message": "The requested time is no longer available",
            "conflicting_booking_ids": [],
        }

        with pytest.raises(ConflictError):
            await BookingTransaction.update(
                staff_ctx, booking.id, BookingUpdate(start_datetime=start + timedelta(hours=1))
            )

        assert booking.start_datetime == start
        mock_session.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cannot_reschedule_cancelled_booking(self, patched, staff_ctx, start):
        booking = existing_booking(start, status=BookingStatus.CANCELLED)
        patched["load_booking"].return_value = booking

        with pytest.raises(InvalidTransitionError):
            await BookingTransaction.update(
                staff_ctx, booking.id, BookingUpdate(start_datetime=start + timedelta(hours=1))
            )

    @pytest.mark.asyncio
    async def test_notes_only_update_skips_validation(self, patched, staff_ctx, start):
        booking = existing_booking(start)
        patched["load_booking"].return_value = booking

        updated = await BookingTransaction.update(staff_ctx, booking.id, BookingUpdate(notes=" call first "))

        assert updated.notes == "call first"
        patched["lock"].assert_not_awaited()

    @pytest.mark.asyncio
    async def test_clearing_name_without_lead_is_rejected(self, patched, staff_ctx, start):
        booking = existing_booking(start)
        patched["load_booking"].return_value = booking

        with pytest.raises(ValidationError):
            await BookingTransaction.update(staff_ctx, booking.id, BookingUpdate(client_name=""))


# ============================================================================
# Time arithmetic and serialization
# ============================================================================


class TestCommitPathGuarantees:
    @pytest.mark.asyncio
    async def test_end_is_elapsed_duration_across_dst_change(
        self, patched, staff_ctx, request_at, calendar, service_type, now_before_monday
    ):
        calendar.timezone = "America/New_York"
        service_type.duration_minutes = 60

        # 01:30 EDT on the fall-back day; one hour later the clock reads 01:30 EST
        booking = await BookingTransaction.create(
            staff_ctx, request_at(datetime(2025, 11, 2, 1, 30)), now=now_before_monday
        )

        assert to_utc(booking.end_datetime) - to_utc(booking.start_datetime) == timedelta(hours=1)
        assert booking.start_datetime.utcoffset() == timedelta(hours=-4)
        assert booking.end_datetime.utcoffset() == timedelta(hours=-5)

    @pytest.mark.asyncio
    async def test_concurrent_creates_for_one_slot_commit_once(
        self, patched, staff_ctx, start, request_at, now_before_monday
    ):
        # In PostgreSQL the serialization comes from pg_advisory_xact_lock,
        # which is held until the transaction ends. An asyncio.Lock released
        # when the session closes plays that role here.
        calendar_lock = asyncio.Lock()
        committed = []

        @asynccontextmanager
        async def transaction():
            session = MagicMock()
            session.holds_lock = False
            session.flush = AsyncMock()
            session.refresh = AsyncMock()
            session.commit = AsyncMock(
                side_effect=lambda: committed.append(session.add.call_args.args[0])
            )
            try:
                yield session
            finally:
                if session.holds_lock:
                    calendar_lock.release()

        async def take_lock(session, calendar_id):
            await calendar_lock.acquire()
            session.holds_lock = True

        async def check(session, calendar_id, start_time, end_time, **kwargs):
            await asyncio.sleep(0)
            taken = [
                b.id for b in committed
                if overlaps(start_time, end_time, b.start_datetime, b.end_datetime)
            ]
            if taken:
                return {
                    "available": False,
                    "error_code": "SLOT_TAKEN",
                    "error_message": "Slot already booked",
                    "conflicting_booking_ids": taken,
                }
            return AVAILABLE

        patched["lock"].side_effect = take_lock
        patched["validate_slot_availability"].side_effect = check

        with patch(f"{MODULE}.get_async_session", transaction):
            results = await asyncio.gather(
                BookingTransaction.create(staff_ctx, request_at(start), now=now_before_monday),
                BookingTransaction.create(staff_ctx, request_at(start), now=now_before_monday),
                return_exceptions=True,
            )

        conflicts = [r for r in results if isinstance(r, ConflictError)]
        assert len(committed) == 1
        assert len(conflicts) == 1
        assert conflicts[0].error_code == "SLOT_TAKEN"
        assert not calendar_lock.locked()
