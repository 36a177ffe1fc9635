"""
Calendar-local date and time parsing.

Slot discovery works on calendar-local dates ("2025-11-10"), never on UTC
instants. Dates are built from their explicit year/month/day components so
the weekday can never shift by one when the server runs in another
timezone.

Weekday numbering follows the availability table: 0=Sunday ... 6=Saturday.
"""

import re
from datetime import UTC, date, datetime, time, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

_DATE_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
_TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?$")


def parse_local_date(value: str) -> date:
    """
    Parse a "YYYY-MM-DD" string into a date from its components.

    Raises:
        ValueError: If the string is not a valid calendar date
    """
    match = _DATE_RE.match(value.strip())
    if not match:
        raise ValueError(f"Invalid date format (expected YYYY-MM-DD): {value!r}")
    year, month, day = (int(part) for part in match.groups())
    return date(year, month, day)


def parse_wall_time(value: str) -> time:
    """
    Parse "HH:MM" or "HH:MM:SS" into a time.

    Raises:
        ValueError: If the string is not a valid wall-clock time
    """
    match = _TIME_RE.match(value.strip())
    if not match:
        raise ValueError(f"Invalid time format (expected HH:MM): {value!r}")
    hour, minute, second = match.groups()
    return time(int(hour), int(minute), int(second or 0))


def day_of_week(local_date: date) -> int:
    """Weekday with 0=Sunday, 6=Saturday."""
    return (local_date.weekday() + 1) % 7


def get_timezone(name: str) -> ZoneInfo:
    """
    Resolve an IANA timezone name.

    Raises:
        ValueError: If the name is unknown
    """
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"Unknown timezone: {name!r}") from e


def resolve_wall_clock(moment: datetime) -> datetime:
    """
    Normalize an aware datetime to a wall-clock time that exists.

    Times inside a DST gap move forward by the gap (02:30 on a spring-forward
    day becomes 03:30). Existing times are returned unchanged.
    """
    return moment.astimezone(UTC).astimezone(moment.tzinfo)


def local_datetime(local_date: date, wall_time: time, tz: ZoneInfo) -> datetime:
    """
    Combine a local date and wall-clock time into an aware datetime.

    A time that does not exist on that date (DST gap) resolves to the first
    wall-clock time after the gap.
    """
    moment = datetime(
        local_date.year,
        local_date.month,
        local_date.day,
        wall_time.hour,
        wall_time.minute,
        wall_time.second,
        tzinfo=tz,
    )
    return resolve_wall_clock(moment)


def local_day_bounds(local_date: date, tz: ZoneInfo) -> tuple[datetime, datetime]:
    """Start of the local day and start of the next local day."""
    start = local_datetime(local_date, time(0, 0), tz)
    next_day = local_date + timedelta(days=1)
    end = local_datetime(next_day, time(0, 0), tz)
    return start, end


def ensure_aware(moment: datetime, tz: ZoneInfo) -> datetime:
    """Attach `tz` to naive datetimes (interpreted as calendar wall clock)."""
    if moment.tzinfo is None:
        return resolve_wall_clock(moment.replace(tzinfo=tz))
    return moment


def local_date_of(moment: datetime, tz: ZoneInfo) -> date:
    """Calendar-local date of an instant."""
    return moment.astimezone(tz).date()
