"""
Interval & conflict helpers.

All intervals are half-open: [start, end). Two intervals that only touch
(`a_end == b_start`) do not overlap, and a zero-length interval never
overlaps anything.

Comparisons and arithmetic work on instants. Python compares two datetimes
that share a tzinfo by wall clock, which is wrong across a DST change, so
aware values are moved to UTC first.
"""

from collections.abc import Iterable
from datetime import UTC, datetime, timedelta
from typing import Any


def to_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment
    return moment.astimezone(UTC)


def overlaps(
    a_start: datetime,
    a_end: datetime,
    b_start: datetime,
    b_end: datetime,
) -> bool:
    """
    Check whether [a_start, a_end) and [b_start, b_end) overlap.

    Example:
        >>> overlaps(nine, nine_thirty, nine_thirty, ten)
        False
        >>> overlaps(nine, ten, nine_thirty, ten_thirty)
        True
    """
    a_start, a_end, b_start, b_end = (to_utc(m) for m in (a_start, a_end, b_start, b_end))
    if a_start >= a_end or b_start >= b_end:
        return False
    return a_start < b_end and a_end > b_start


def add_minutes(moment: datetime, minutes: int) -> datetime:
    """
    Add elapsed minutes; the result keeps the input's timezone.

    On a DST change day 01:30 + 60 minutes can read 01:30 or 03:30 on the
    wall clock, but it is always exactly one hour later.
    """
    if moment.tzinfo is None:
        return moment + timedelta(minutes=minutes)
    return (to_utc(moment) + timedelta(minutes=minutes)).astimezone(moment.tzinfo)


def find_overlapping(
    start: datetime,
    end: datetime,
    periods: Iterable[dict[str, Any]],
) -> list[dict[str, Any]]:
    """
    Return the periods that overlap [start, end).

    Periods are dicts with at least "start" and "end" keys, the shape
    produced by the availability service for bookings and blocks.
    """
    return [p for p in periods if overlaps(start, end, p["start"], p["end"])]


def count_overlapping(
    start: datetime,
    end: datetime,
    periods: Iterable[dict[str, Any]],
) -> int:
    return len(find_overlapping(start, end, periods))
