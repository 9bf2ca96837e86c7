"""
Minute-of-day arithmetic and duration helpers.

Times of day travel through the system in two spellings: "HH:MM" in the
editing model and "HH:MM:SS" in the persisted recurring-rule entries. Internally
everything is minutes since midnight.
"""

import re
from typing import Tuple

from core.constants import MINUTES_PER_DAY

_TIME_OF_DAY_RE = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?$")


def time_to_minutes(value: str) -> int:
    """
    Convert "HH:MM" or "HH:MM:SS" to minutes since midnight.

    Seconds are ignored.

    Raises:
        ValueError: If the string is not a valid time of day
    """
    match = _TIME_OF_DAY_RE.match(value.strip()) if isinstance(value, str) else None
    if not match:
        raise ValueError(f"Invalid time of day (expected HH:MM): {value!r}")
    hours, minutes = int(match.group(1)), int(match.group(2))
    seconds = int(match.group(3) or 0)
    if hours > 23 or minutes > 59 or seconds > 59:
        raise ValueError(f"Invalid time of day (expected HH:MM): {value!r}")
    return hours * 60 + minutes


def minutes_to_time(minutes: int) -> str:
    """Format minutes since midnight as "HH:MM", wrapping past midnight."""
    hh = (minutes // 60) % 24
    mm = minutes % 60
    return f"{hh:02d}:{mm:02d}"


def minutes_to_time_of_day(minutes: int) -> str:
    """Format minutes since midnight as the persisted "HH:MM:SS" spelling."""
    return f"{minutes_to_time(minutes)}:00"


def window_duration_minutes(start_time: str, end_time: str) -> int:
    """
    Length of a window given as start/end times of day.

    An end time less than or equal to the start wraps past midnight, so
    "22:00"-"02:00" is four hours and "09:00"-"09:00" is a full day.
    """
    diff = time_to_minutes(end_time) - time_to_minutes(start_time)
    if diff <= 0:
        diff += MINUTES_PER_DAY
    return diff


def format_minutes(minutes: int) -> str:
    """Render a duration as "8h" or "1h 30m"."""
    h, m = divmod(minutes, 60)
    return f"{h}h {m}m" if m > 0 else f"{h}h"


def format_duration(start_time: str, end_time: str) -> str:
    """Render the length of a start/end window, e.g. "09:00"-"17:30" -> "8h 30m"."""
    return format_minutes(window_duration_minutes(start_time, end_time))


def duration_to_minutes(value: float, unit: str) -> int:
    """
    Normalize a persisted duration to whole minutes.

    Hours ("h") are converted; every other unit is read as minutes.

    Raises:
        ValueError: If the value is not a number
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"Invalid duration value (expected a number): {value!r}")
    if unit == "h":
        return round(value * 60)
    return round(value)


def minutes_to_duration(minutes: int) -> Tuple[int, str]:
    """
    Choose the persisted spelling of a window length.

    Whole hours are written in hours, anything else in minutes, so decoding
    reproduces the exact minute count.
    """
    if minutes % 60 == 0:
        return minutes // 60, "h"
    return minutes, "min"
