"""
Unit tests for shared/availability_windows.py.
"""

from contextlib import asynccontextmanager
from datetime import time
from unittest.mock import MagicMock, patch
from uuid import uuid4

import pytest

from shared.availability_windows import get_active_days, list_active_windows, list_calendar_windows


def rows(*values):
    result = MagicMock()
    result.all.return_value = list(values)
    return result


class TestListActiveWindows:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("day", [-1, 7, 10])
    async def test_invalid_weekday_returns_empty(self, mock_session, day):
        windows = await list_active_windows(uuid4(), day, session=mock_session)

        assert windows == []
        mock_session.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_uses_given_session(self, mock_session):
        mock_session.execute.return_value = rows((time(9), time(12)), (time(14), time(18)))

        windows = await list_active_windows(uuid4(), 1, session=mock_session)

        assert windows == [(time(9), time(12)), (time(14), time(18))]
        sql = str(mock_session.execute.await_args.args[0])
        assert "booking_availability.is_active" in sql
        assert "ORDER BY booking_availability.start_time" in sql

    @pytest.mark.asyncio
    async def test_opens_own_session_when_none_given(self, mock_session):
        mock_session.execute.return_value = rows()
        opened = []

        @asynccontextmanager
        async def fake_session():
            opened.append(True)
            yield mock_session

        with patch("shared.availability_windows.get_async_session", fake_session):
            windows = await list_active_windows(uuid4(), 0)

        assert windows == []
        assert opened == [True]


class TestGetActiveDays:
    @pytest.mark.asyncio
    async def test_returns_distinct_weekdays(self, mock_session):
        mock_session.execute.return_value = rows((1,), (3,), (5,))

        days = await get_active_days(uuid4(), session=mock_session)

        assert days == {1, 3, 5}


class TestListCalendarWindows:
    @pytest.mark.asyncio
    async def test_includes_inactive_windows_in_week_order(self, mock_session):
        windows = [MagicMock(is_active=True), MagicMock(is_active=False)]
        result = MagicMock()
        result.scalars.return_value.all.return_value = windows
        mock_session.execute.return_value = result

        found = await list_calendar_windows(uuid4(), session=mock_session)

        assert found == windows
        sql = str(mock_session.execute.await_args.args[0])
        assert "booking_availability.is_active =" not in sql
        assert "ORDER BY booking_availability.day_of_week, booking_availability.start_time" in sql
