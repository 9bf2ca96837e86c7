"""
Schedule service: the operations behind the calendar.

Combines the resource store with the codec, the slot generator, the merge
engine, the conflict checks and the recurrence service. Conflict checks run
against a snapshot fetched just before the write and are advisory; the
store's own write outcome is what counts.
"""

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import List, Optional

from core.constants import (
    ALL_DAY_BLOCK_MIN_HOURS,
    APPOINTMENT_FETCH_LIMIT,
    DEFAULT_APPOINTMENT_MINUTES,
    SLOT_FETCH_LIMIT,
)
from services.availability_service import AvailabilityService
from services.conflict_service import ConflictService
from services.recurrence_service import RecurrenceService
from services.resource_store import ResourceStore, ResourceStoreError
from services.scheduling_parameters_service import SchedulingParametersService
from shared_types.availability import SchedulingParameters
from shared_types.scheduling import Appointment, Schedule, Slot, SlotStatus
from shared_types.search import SearchCriteria
from utils.datetime_utils import Clock, end_of_local_day, get_timezone, start_of_local_day, to_local
from utils.slot_utils import merge_overlapping_slots

logger = logging.getLogger(__name__)


class PartialBookingError(ResourceStoreError):
    """Raised when a write fails after some occurrences of a series were stored."""

    def __init__(self, created: List[Appointment], requested: int):
        self.created = created
        self.requested = requested
        super().__init__(f"Booked {len(created)} of {requested} occurrence(s) before a write failed")


class SelectionKind(str, Enum):
    APPOINTMENT = "appointment"
    BLOCK = "block"


@dataclass(frozen=True)
class CalendarSelection:
    """What a click or drag on the calendar turns into."""
    kind: SelectionKind
    start: datetime
    end: datetime


class ScheduleService:
    """Calendar operations on one schedule."""

    @staticmethod
    def create_schedule(store: ResourceStore, actor: str) -> Schedule:
        schedule = store.create(Schedule(actor=actor))
        logger.info(f"Created schedule {schedule.id} for {actor}")
        return schedule

    @staticmethod
    def get_scheduling_parameters(schedule: Schedule) -> SchedulingParameters:
        return SchedulingParametersService.parse_schedule_extensions(schedule.extensions)

    @staticmethod
    def schedule_timezone(schedule: Schedule, clock: Clock) -> str:
        """The default configuration's timezone, else the clock's local timezone."""
        params = ScheduleService.get_scheduling_parameters(schedule)
        return AvailabilityService.resolve_timezone(params.default, clock.local_timezone())

    @staticmethod
    def save_availability(store: ResourceStore, schedule_id: int, params: SchedulingParameters) -> Schedule:
        """
        Replace the schedule's scheduling-parameters blocks.

        Unrelated extensions on the schedule are kept.

        Raises:
            ValueError: If overrides are missing or duplicate service types
            ResourceNotFoundError: If the schedule does not exist
            ResourceStoreError: If the update fails
        """
        schedule = store.read(Schedule, schedule_id)
        extensions = SchedulingParametersService.apply_scheduling_parameters(schedule.extensions, params)
        saved = store.update(replace(schedule, extensions=extensions))
        logger.info(f"Saved availability for schedule {schedule_id} ({len(params.overrides)} service override(s))")
        return saved

    @staticmethod
    def expand_availability(
        store: ResourceStore,
        schedule_id: int,
        range_start: datetime,
        range_end: datetime,
        clock: Clock,
    ) -> List[Slot]:
        """Virtual free slots of the default configuration for a visible range."""
        schedule = store.read(Schedule, schedule_id)
        params = ScheduleService.get_scheduling_parameters(schedule)
        return AvailabilityService.generate_availability_slots(
            params, range_start, range_end, schedule_id=schedule_id, fallback_timezone=clock.local_timezone()
        )

    @staticmethod
    def fetch_slots(store: ResourceStore, schedule_id: int, range_start: datetime, range_end: datetime) -> List[Slot]:
        """Persisted slots overlapping a range, as stored."""
        return store.search(
            Slot,
            replace(
                SearchCriteria.overlapping(schedule_id, range_start, range_end, limit=SLOT_FETCH_LIMIT),
                excluded_statuses=frozenset({SlotStatus.ENTERED_IN_ERROR.value}),
            ),
        )

    @staticmethod
    def refresh_slots(store: ResourceStore, schedule_id: int, range_start: datetime, range_end: datetime) -> List[Slot]:
        """Persisted slots overlapping a range, merged for display."""
        return merge_overlapping_slots(ScheduleService.fetch_slots(store, schedule_id, range_start, range_end))

    @staticmethod
    def fetch_appointments(
        store: ResourceStore,
        schedule_id: int,
        range_start: datetime,
        range_end: datetime,
    ) -> List[Appointment]:
        return store.search(
            Appointment,
            SearchCriteria.overlapping(schedule_id, range_start, range_end, limit=APPOINTMENT_FETCH_LIMIT),
        )

    @staticmethod
    def create_appointments(
        store: ResourceStore,
        schedule_id: int,
        start: datetime,
        end: datetime,
        clock: Clock,
        occurrences: int = 1,
        interval_weeks: Optional[int] = None,
        description: Optional[str] = None,
    ) -> List[Appointment]:
        """
        Book an appointment, optionally repeating weekly.

        Every occurrence is checked against blocks and live appointments
        before the first write. Occurrences are then written one by one; a
        store failure stops the loop and is raised, leaving earlier
        occurrences in place.

        Args:
            store: Resource store
            schedule_id: Schedule to book on
            start: First occurrence start
            end: First occurrence end
            clock: Source of the local timezone fallback
            occurrences: Number of occurrences
            interval_weeks: Weeks between occurrences; None or 0 for a single booking
            description: Appointment description

        Returns:
            Created appointments in chronological order

        Raises:
            ValueError: If the interval or recurrence parameters are invalid
            SchedulingConflictError: If any occurrence conflicts
            PartialBookingError: If a write fails after earlier occurrences were stored
            ResourceStoreError: If the first write fails
        """
        schedule = store.read(Schedule, schedule_id)
        timezone_name = ScheduleService.schedule_timezone(schedule, clock)

        planned = RecurrenceService.generate_occurrences(
            start, end, occurrences, interval_weeks,
            timezone_name=timezone_name, schedule_id=schedule_id, description=description,
        )

        span_start, span_end = planned[0].start, planned[-1].end
        slots = ScheduleService.fetch_slots(store, schedule_id, span_start, span_end)
        appointments = ScheduleService.fetch_appointments(store, schedule_id, span_start, span_end)
        for occurrence in planned:
            ConflictService.check_appointment_request(occurrence.start, occurrence.end, slots, appointments)

        created: List[Appointment] = []
        for occurrence in planned:
            try:
                created.append(store.create(occurrence))
            except ResourceStoreError as e:
                if not created:
                    raise
                logger.error(
                    f"Write failed after {len(created)} of {len(planned)} occurrence(s) on schedule {schedule_id}: {e}"
                )
                raise PartialBookingError(created, len(planned)) from e
        logger.info(f"Booked {len(created)} appointment(s) on schedule {schedule_id}")
        return created

    @staticmethod
    def resolve_calendar_selection(
        start: datetime,
        end: Optional[datetime],
        timezone_name: str,
    ) -> CalendarSelection:
        """
        Classify a click or drag on the calendar.

        A single click (no end) is a 60 minute appointment candidate. A
        selection becomes an all-day block candidate when it spans 23 hours or
        more from local midnight, when it is a short selection (2 hours or
        less) starting before 02:00, or when it spans 24 hours or more starting
        before 04:00. All-day candidates cover whole local days, ending at
        23:59:59 on the last selected day.
        """
        if end is None:
            end = start + timedelta(minutes=DEFAULT_APPOINTMENT_MINUTES)

        tz = get_timezone(timezone_name)
        local_start = to_local(start, tz)
        local_end = to_local(end, tz)
        duration = end - start

        starts_at_midnight = local_start.hour == 0 and local_start.minute == 0
        is_full_day_span = duration >= timedelta(hours=ALL_DAY_BLOCK_MIN_HOURS) and starts_at_midnight
        is_top_area_click = local_start.hour < 2 and duration <= timedelta(hours=2)
        is_multi_day_top_drag = duration >= timedelta(hours=24) and local_start.hour < 4

        if not (is_full_day_span or is_top_area_click or is_multi_day_top_drag):
            return CalendarSelection(SelectionKind.APPOINTMENT, start, end)

        first_day = local_start.date()
        if duration >= timedelta(hours=24):
            last_day = local_end.date()
            if local_end.hour == 0 and local_end.minute == 0:
                last_day -= timedelta(days=1)
        else:
            last_day = first_day

        return CalendarSelection(
            SelectionKind.BLOCK,
            start_of_local_day(first_day, tz),
            end_of_local_day(last_day, tz),
        )

