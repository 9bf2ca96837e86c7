"""
Datetime utilities for consistent timezone handling across the application.

All instants handled by the scheduling engine are timezone-aware. Instants are
persisted in UTC; calendar-day arithmetic (day boundaries, weekday lookup,
recurring occurrences) happens in the schedule's local timezone, resolved from
an IANA id with pytz.
"""

import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterator, Optional, Protocol

import pytz

from core.config import DEFAULT_TIMEZONE

logger = logging.getLogger(__name__)

UTC = timezone.utc


class Clock(Protocol):
    """Source of the current instant and the user's local timezone."""

    def now(self) -> datetime:
        ...

    def local_timezone(self) -> str:
        ...


class SystemClock:
    """Clock backed by the system time and the configured default timezone."""

    def __init__(self, timezone_name: str = DEFAULT_TIMEZONE) -> None:
        self._timezone_name = timezone_name

    def now(self) -> datetime:
        return utc_now()

    def local_timezone(self) -> str:
        return self._timezone_name


def utc_now() -> datetime:
    """
    Get the current UTC datetime.

    Returns:
        Current datetime with UTC timezone
    """
    return datetime.now(UTC)


def get_timezone(timezone_name: Optional[str]) -> pytz.BaseTzInfo:
    """
    Resolve an IANA timezone id.

    Empty ids resolve to UTC. Unknown ids are logged and fall back to UTC so a
    malformed persisted configuration never prevents the calendar from rendering.

    Args:
        timezone_name: IANA id such as "America/New_York"

    Returns:
        pytz timezone object
    """
    if not timezone_name:
        return pytz.UTC
    try:
        return pytz.timezone(timezone_name)
    except pytz.UnknownTimeZoneError:
        logger.warning(f"Invalid timezone '{timezone_name}', using UTC")
        return pytz.UTC


def is_valid_timezone(timezone_name: str) -> bool:
    """Check whether a string is a known IANA timezone id."""
    return timezone_name in pytz.all_timezones_set


def ensure_utc(dt: datetime) -> datetime:
    """
    Ensure a datetime is timezone-aware and expressed in UTC.

    Naive datetimes are assumed to already be UTC (this is how SQLite returns
    stored timestamps).
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def to_local(dt: datetime, tz: pytz.BaseTzInfo) -> datetime:
    """Convert an aware datetime to wall-clock time in the given timezone."""
    return ensure_utc(dt).astimezone(tz)


def combine_local(day: date, minute_of_day: int, tz: pytz.BaseTzInfo) -> datetime:
    """
    Anchor a minute-of-day on a calendar day in the given timezone.

    Args:
        day: Calendar day
        minute_of_day: Minutes since local midnight (0-1439)
        tz: Timezone the day is interpreted in

    Returns:
        Timezone-aware datetime
    """
    naive = datetime.combine(day, time(minute_of_day // 60, minute_of_day % 60))
    return tz.localize(naive)


def start_of_local_day(day: date, tz: pytz.BaseTzInfo) -> datetime:
    """Local midnight at the start of a calendar day."""
    return tz.localize(datetime.combine(day, time(0, 0)))


def end_of_local_day(day: date, tz: pytz.BaseTzInfo) -> datetime:
    """Last second of a calendar day (23:59:59) in the given timezone."""
    return tz.localize(datetime.combine(day, time(23, 59, 59)))


def iter_local_dates(start: datetime, end: datetime, tz: pytz.BaseTzInfo) -> Iterator[date]:
    """
    Yield every calendar day fully or partially covered by [start, end].

    Day boundaries are taken at local midnight in the given timezone.
    """
    current = to_local(start, tz).date()
    last = to_local(end, tz).date()
    while current <= last:
        yield current
        current += timedelta(days=1)


def shift_local_days(dt: datetime, days: int, tz: pytz.BaseTzInfo) -> datetime:
    """
    Move an instant by whole calendar days keeping its local wall-clock time.

    Across a DST transition the UTC offset changes but the local time of day
    is preserved.
    """
    local_naive = to_local(dt, tz).replace(tzinfo=None)
    return tz.localize(local_naive + timedelta(days=days))

