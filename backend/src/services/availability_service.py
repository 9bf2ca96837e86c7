"""
Availability service for expanding and editing weekly availability.

The slot generator here only materializes the declared weekly windows of a
schedule's default configuration as virtual free slots for display. Buffers,
alignment and booking limits are not applied: they are constraints of the
external availability search, whose results are consumed by ``SlotFinder``.
"""

import logging
from datetime import datetime, timedelta
from typing import List, Optional

from core.constants import ADDED_WINDOW_DURATION_MINUTES, ADDED_WINDOW_START_MINUTE
from shared_types.availability import (
    CANONICAL_DAYS,
    DEFAULT_WINDOW,
    AvailabilityConfig,
    DayOfWeek,
    DaySchedule,
    SchedulingParameters,
    TimeWindow,
    WeekSchedule,
)
from shared_types.scheduling import Slot, SlotStatus
from utils.datetime_utils import combine_local, ensure_utc, get_timezone, iter_local_dates

logger = logging.getLogger(__name__)


class AvailabilityService:
    """
    Service class for availability operations.

    Expands configuration into virtual slots and provides the week editing
    operations used by the availability form.
    """

    @staticmethod
    def resolve_timezone(config: Optional[AvailabilityConfig], fallback_timezone: Optional[str]) -> str:
        """The configuration's timezone, or the caller's local timezone when unset."""
        if config is not None and config.timezone:
            return config.timezone
        return fallback_timezone or "UTC"

    @staticmethod
    def generate_availability_slots(
        params: SchedulingParameters,
        range_start: datetime,
        range_end: datetime,
        schedule_id: Optional[int] = None,
        fallback_timezone: Optional[str] = None,
    ) -> List[Slot]:
        """
        Expand the default configuration into virtual free slots.

        For every calendar day touched by ``[range_start, range_end)`` (days
        start at local midnight), each window of an enabled weekday yields one
        slot anchored at that day plus the window start, lasting exactly the
        window duration. Service overrides are never expanded here.

        Args:
            params: Decoded scheduling parameters of the schedule
            range_start: Start of the visible range
            range_end: End of the visible range (exclusive)
            schedule_id: Schedule the slots are attributed to
            fallback_timezone: Local timezone used when the configuration has none

        Returns:
            Virtual slots (no id) in chronological order, in UTC. Empty when the
            schedule has no default configuration.
        """
        if not params.has_default or range_end <= range_start:
            return []

        config = params.effective_default()
        tz = get_timezone(AvailabilityService.resolve_timezone(config, fallback_timezone))

        slots: List[Slot] = []
        last_instant = range_end - timedelta(microseconds=1)
        for day in iter_local_dates(range_start, last_instant, tz):
            day_schedule = config.week.get(DayOfWeek.from_weekday(day.weekday()))
            if day_schedule is None or not day_schedule.enabled:
                continue
            for window in day_schedule.windows or [DEFAULT_WINDOW]:
                start = combine_local(day, window.start_minute, tz)
                slots.append(Slot(
                    schedule_id=schedule_id,
                    status=SlotStatus.FREE,
                    start=ensure_utc(start),
                    end=ensure_utc(start + timedelta(minutes=window.duration_minutes)),
                ))

        slots.sort(key=lambda s: s.start)
        logger.debug(f"Expanded {len(slots)} virtual slots for schedule {schedule_id}")
        return slots

    # ------------------------------------------------------------------
    # Week editing
    # ------------------------------------------------------------------

    @staticmethod
    def _copy_week(week: WeekSchedule) -> WeekSchedule:
        copied: WeekSchedule = {}
        for day in CANONICAL_DAYS:
            source = week.get(day) or DaySchedule.off()
            copied[day] = DaySchedule(enabled=source.enabled, windows=list(source.windows))
        return copied

    @staticmethod
    def set_day_enabled(week: WeekSchedule, day: DayOfWeek, enabled: bool) -> WeekSchedule:
        """Toggle a day. Enabling a day without windows gives it the default window; disabling clears it."""
        updated = AvailabilityService._copy_week(week)
        if enabled:
            updated[day] = DaySchedule(enabled=True, windows=updated[day].windows or [DEFAULT_WINDOW])
        else:
            updated[day] = DaySchedule.off()
        return updated

    @staticmethod
    def add_window(week: WeekSchedule, day: DayOfWeek, window: Optional[TimeWindow] = None) -> WeekSchedule:
        """Append a window to an enabled day (13:00-17:00 unless given)."""
        updated = AvailabilityService._copy_week(week)
        if not updated[day].enabled:
            raise ValueError(f"Cannot add a window to disabled day {day.label}")
        updated[day].windows.append(window or TimeWindow(ADDED_WINDOW_START_MINUTE, ADDED_WINDOW_DURATION_MINUTES))
        return updated

    @staticmethod
    def update_window(week: WeekSchedule, day: DayOfWeek, index: int, start_time: str, end_time: str) -> WeekSchedule:
        """
        Replace one window from "HH:MM" start/end strings.

        Raises:
            ValueError: If a time is malformed or the index does not exist
        """
        updated = AvailabilityService._copy_week(week)
        windows = updated[day].windows
        if not 0 <= index < len(windows):
            raise ValueError(f"{day.label} has no window #{index}")
        windows[index] = TimeWindow.from_times(start_time, end_time)
        return updated

    @staticmethod
    def remove_window(week: WeekSchedule, day: DayOfWeek, index: int) -> WeekSchedule:
        """Remove one window; removing the last window of an enabled day restores the default window."""
        updated = AvailabilityService._copy_week(week)
        windows = updated[day].windows
        if not 0 <= index < len(windows):
            raise ValueError(f"{day.label} has no window #{index}")
        del windows[index]
        if updated[day].enabled and not windows:
            windows.append(DEFAULT_WINDOW)
        return updated

    @staticmethod
    def copy_first_day_to_all(week: WeekSchedule) -> WeekSchedule:
        """
        Copy the windows of the first enabled day (Mon..Sun order) to every other enabled day.

        A week with no enabled day is returned unchanged.
        """
        updated = AvailabilityService._copy_week(week)
        source = next((day for day in CANONICAL_DAYS if updated[day].enabled), None)
        if source is None:
            return updated
        for day in CANONICAL_DAYS:
            if day != source and updated[day].enabled:
                updated[day] = DaySchedule(enabled=True, windows=list(updated[source].windows))
        return updated

