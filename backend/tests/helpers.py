"""
Test utilities for scheduling tests.
"""

from datetime import datetime, timezone
from typing import Iterable, List, Optional

from shared_types.availability import (
    CANONICAL_DAYS,
    AvailabilityConfig,
    DayOfWeek,
    DaySchedule,
    SchedulingParameters,
    TimeWindow,
    WeekSchedule,
)
from shared_types.scheduling import Slot, SlotStatus

UTC = timezone.utc


class FixedClock:
    """Clock frozen at a given instant."""

    def __init__(self, now: datetime, timezone_name: str = "UTC"):
        self._now = now
        self._timezone_name = timezone_name

    def now(self) -> datetime:
        return self._now

    def local_timezone(self) -> str:
        return self._timezone_name


def utc(year: int, month: int, day: int, hour: int = 0, minute: int = 0, second: int = 0) -> datetime:
    return datetime(year, month, day, hour, minute, second, tzinfo=UTC)


def make_week(days: Iterable[DayOfWeek], windows: List[TimeWindow]) -> WeekSchedule:
    """Week with ``windows`` on every day in ``days`` and the rest disabled."""
    selected = set(days)
    return {
        day: DaySchedule(enabled=True, windows=list(windows)) if day in selected else DaySchedule.off()
        for day in CANONICAL_DAYS
    }


def make_params(week: WeekSchedule, timezone_name: Optional[str] = None) -> SchedulingParameters:
    return SchedulingParameters(default=AvailabilityConfig(week=week, timezone=timezone_name))


def block(start: datetime, end: datetime, slot_id: Optional[int] = 1, schedule_id: int = 1) -> Slot:
    return Slot(schedule_id=schedule_id, status=SlotStatus.BUSY_UNAVAILABLE, start=start, end=end, id=slot_id)
