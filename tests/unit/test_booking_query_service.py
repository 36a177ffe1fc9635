"""
Unit tests for booking_query_service.py.
"""

from unittest.mock import MagicMock, patch
from uuid import uuid4

import pytest

from database.models import BookingStatus
from scheduling.exceptions import NotFoundError, ValidationError
from scheduling.services.booking_query_service import (
    BookingFilters,
    BookingPage,
    get_booking,
    list_bookings,
)

MODULE = "scheduling.services.booking_query_service"


class TestBookingPage:
    def test_has_more(self):
        assert BookingPage(items=[], total=45, page=2, limit=20).has_more is True
        assert BookingPage(items=[], total=40, page=2, limit=20).has_more is False


class TestGetBooking:
    @pytest.mark.asyncio
    async def test_other_tenant_is_not_found(self, session_factory, mock_session, staff_ctx):
        result = MagicMock()
        result.scalar_one_or_none.return_value = None
        mock_session.execute.return_value = result

        with patch(f"{MODULE}.get_async_session", session_factory):
            with pytest.raises(NotFoundError) as exc_info:
                await get_booking(staff_ctx, uuid4())

        assert exc_info.value.error_code == "BOOKING_NOT_FOUND"
        sql = str(mock_session.execute.await_args.args[0])
        assert "bookings.tenant_id" in sql


class TestListBookings:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("page, limit", [(0, 20), (1, 0), (1, 101)])
    async def test_invalid_pagination(self, staff_ctx, page, limit):
        with pytest.raises(ValidationError) as exc_info:
            await list_bookings(staff_ctx, page=page, limit=limit)

        assert exc_info.value.error_code == "INVALID_PAGINATION"

    @pytest.mark.asyncio
    async def test_filters_and_offset(self, session_factory, mock_session, staff_ctx):
        count_result = MagicMock()
        count_result.scalar.return_value = 42
        rows_result = MagicMock()
        rows_result.scalars.return_value.all.return_value = []
        mock_session.execute.side_effect = [count_result, rows_result]

        filters = BookingFilters(
            assigned_to=uuid4(),
            statuses=[BookingStatus.PENDING, BookingStatus.CONFIRMED],
        )

        with patch(f"{MODULE}.get_async_session", session_factory):
            page = await list_bookings(staff_ctx, filters, page=3, limit=10)

        assert page.total == 42
        assert page.has_more is True
        list_stmt = mock_session.execute.await_args_list[1].args[0]
        assert "bookings.assigned_to" in str(list_stmt)
        assert "bookings.status IN" in str(list_stmt)
        compiled = str(list_stmt.compile(compile_kwargs={"literal_binds": True}))
        assert "OFFSET 20" in compiled
