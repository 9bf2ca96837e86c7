"""
Block time service for managing busy-unavailable slots.

A block is a persisted slot with status 'busy-unavailable' built from a
``BlockedTimeRequest``. This service validates requests, creates blocks
(including one-click US federal holiday blocks), lists them and deletes them.
"""

import calendar
import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterable, List, Optional, Sequence, Set, Tuple

from core.constants import APPOINTMENT_FETCH_LIMIT, BLOCK_FETCH_LIMIT
from services.conflict_service import ConflictService
from services.resource_store import ResourceStore, ResourceStoreError
from shared_types.scheduling import (
    Appointment,
    AppointmentStatus,
    BlockedTimeRequest,
    BulkOperationResult,
    Slot,
    SlotStatus,
)
from shared_types.search import SearchCriteria
from utils.datetime_utils import (
    combine_local,
    end_of_local_day,
    get_timezone,
    iter_local_dates,
    start_of_local_day,
)
from utils.time_utils import time_to_minutes

logger = logging.getLogger(__name__)


class BlockValidationError(ValueError):
    """Raised when a block request is malformed. The store is never called."""
    pass


@dataclass(frozen=True)
class Holiday:
    name: str
    date: date


def nth_weekday(year: int, month: int, weekday: int, n: int) -> date:
    """
    Nth occurrence (1-indexed) of a weekday in a month.

    ``weekday`` follows date.weekday() (0=Monday), so nth_weekday(2026, 1, 0, 3)
    is the third Monday of January 2026.
    """
    first = date(year, month, 1)
    offset = (weekday - first.weekday()) % 7
    return first + timedelta(days=offset + 7 * (n - 1))


def last_weekday(year: int, month: int, weekday: int) -> date:
    """Last occurrence of a weekday in a month."""
    last = date(year, month, calendar.monthrange(year, month)[1])
    offset = (last.weekday() - weekday) % 7
    return last - timedelta(days=offset)


def federal_holidays(year: int) -> List[Holiday]:
    """The eleven US federal holidays of a year, in calendar order."""
    return [
        Holiday("New Year's Day", date(year, 1, 1)),
        Holiday("Martin Luther King Jr. Day", nth_weekday(year, 1, calendar.MONDAY, 3)),
        Holiday("Presidents' Day", nth_weekday(year, 2, calendar.MONDAY, 3)),
        Holiday("Memorial Day", last_weekday(year, 5, calendar.MONDAY)),
        Holiday("Juneteenth", date(year, 6, 19)),
        Holiday("Independence Day", date(year, 7, 4)),
        Holiday("Labor Day", nth_weekday(year, 9, calendar.MONDAY, 1)),
        Holiday("Columbus Day", nth_weekday(year, 10, calendar.MONDAY, 2)),
        Holiday("Veterans Day", date(year, 11, 11)),
        Holiday("Thanksgiving", nth_weekday(year, 11, calendar.THURSDAY, 4)),
        Holiday("Christmas Day", date(year, 12, 25)),
    ]


def upcoming_holidays(today: date) -> List[Holiday]:
    """Holidays from today onward; from October, next year's holidays are included too."""
    holidays = federal_holidays(today.year)
    if today.month >= 10:
        holidays += federal_holidays(today.year + 1)
    return [h for h in holidays if h.date >= today]


class BlockTimeService:
    """Creation, listing and deletion of blocked time."""

    @staticmethod
    def build_block_interval(request: BlockedTimeRequest, timezone_name: Optional[str]) -> Tuple[datetime, datetime]:
        """
        Resolve a block request to an interval in the schedule timezone.

        All-day blocks run from 00:00:00 on the start date to 23:59:59 on the
        end date. Timed blocks run from start date + start time to end date +
        end time.

        Args:
            request: Block request
            timezone_name: IANA id of the schedule

        Returns:
            (start, end) as aware datetimes

        Raises:
            BlockValidationError: If dates are reversed, a time is malformed,
                or the end is not after the start
        """
        if request.end_date < request.start_date:
            raise BlockValidationError("End date must be on or after start date")

        tz = get_timezone(timezone_name)
        if request.all_day:
            return start_of_local_day(request.start_date, tz), end_of_local_day(request.end_date, tz)

        try:
            start_minute = time_to_minutes(request.start_time)
            end_minute = time_to_minutes(request.end_time)
        except ValueError as e:
            raise BlockValidationError(str(e)) from e

        if request.start_date == request.end_date and end_minute <= start_minute:
            raise BlockValidationError("End time must be after start time")

        start = combine_local(request.start_date, start_minute, tz)
        end = combine_local(request.end_date, end_minute, tz)
        if end <= start:
            raise BlockValidationError("End time must be after start time")
        return start, end

    @staticmethod
    def build_block_slot(schedule_id: int, request: BlockedTimeRequest, timezone_name: Optional[str]) -> Slot:
        """Unsaved busy-unavailable slot for a block request."""
        start, end = BlockTimeService.build_block_interval(request, timezone_name)
        return Slot(
            schedule_id=schedule_id,
            status=SlotStatus.BUSY_UNAVAILABLE,
            start=start,
            end=end,
            comment=request.comment or None,
        )

    @staticmethod
    def _live_appointments(store: ResourceStore, schedule_id: int, start: datetime, end: datetime) -> List[Appointment]:
        return store.search(
            Appointment,
            SearchCriteria(
                schedule_id=schedule_id,
                excluded_statuses=frozenset({AppointmentStatus.CANCELLED.value}),
                starts_before=end,
                ends_after=start,
                limit=APPOINTMENT_FETCH_LIMIT,
            ),
        )

    @staticmethod
    def create_block(
        store: ResourceStore,
        schedule_id: int,
        request: BlockedTimeRequest,
        timezone_name: Optional[str],
        appointments: Optional[Iterable[Appointment]] = None,
    ) -> Slot:
        """
        Validate, conflict-check and persist a block.

        Args:
            store: Resource store
            schedule_id: Schedule to block
            request: Block request
            timezone_name: IANA id of the schedule
            appointments: Snapshot to check against; fetched from the store when omitted

        Returns:
            The persisted slot

        Raises:
            BlockValidationError: If the request is malformed
            SchedulingConflictError: If a live appointment overlaps the block
            ResourceStoreError: If the write fails
        """
        slot = BlockTimeService.build_block_slot(schedule_id, request, timezone_name)
        return BlockTimeService._persist_block(store, slot, appointments)

    @staticmethod
    def create_block_for_range(
        store: ResourceStore,
        schedule_id: int,
        start: datetime,
        end: datetime,
        comment: Optional[str] = None,
        appointments: Optional[Iterable[Appointment]] = None,
    ) -> Slot:
        """
        Block an explicit interval, as selected on the calendar.

        Raises:
            BlockValidationError: If the end is not after the start
            SchedulingConflictError: If a live appointment overlaps the block
            ResourceStoreError: If the write fails
        """
        if end <= start:
            raise BlockValidationError("End time must be after start time")
        slot = Slot(
            schedule_id=schedule_id,
            status=SlotStatus.BUSY_UNAVAILABLE,
            start=start,
            end=end,
            comment=comment or None,
        )
        return BlockTimeService._persist_block(store, slot, appointments)

    @staticmethod
    def _persist_block(store: ResourceStore, slot: Slot, appointments: Optional[Iterable[Appointment]]) -> Slot:
        if slot.schedule_id is None:
            raise BlockValidationError("A block must belong to a schedule")
        if appointments is None:
            appointments = BlockTimeService._live_appointments(store, slot.schedule_id, slot.start, slot.end)
        ConflictService.check_block_request(slot.start, slot.end, appointments)

        created = store.create(slot)
        logger.info(f"Blocked {created.start.isoformat()} - {created.end.isoformat()} on schedule {slot.schedule_id}")
        return created

    @staticmethod
    def list_blocks(store: ResourceStore, schedule_id: int) -> List[Slot]:
        return store.search(
            Slot,
            SearchCriteria(
                schedule_id=schedule_id,
                statuses=frozenset({SlotStatus.BUSY_UNAVAILABLE.value}),
                limit=BLOCK_FETCH_LIMIT,
            ),
        )

    @staticmethod
    def split_past_blocks(blocks: Sequence[Slot], now: datetime) -> Tuple[List[Slot], List[Slot]]:
        """Split blocks into (upcoming, past); a block is past once its end has passed."""
        upcoming = [b for b in blocks if b.end >= now]
        past = [b for b in blocks if b.end < now]
        return upcoming, past

    @staticmethod
    def already_blocked_dates(blocks: Iterable[Slot], timezone_name: Optional[str]) -> Set[date]:
        """Every local calendar day touched by an existing block."""
        tz = get_timezone(timezone_name)
        dates: Set[date] = set()
        for block in blocks:
            dates.update(iter_local_dates(block.start, block.end, tz))
        return dates

    @staticmethod
    def unblocked_holidays(blocks: Iterable[Slot], today: date, timezone_name: Optional[str]) -> List[Holiday]:
        """Upcoming holidays not yet covered by a block."""
        blocked = BlockTimeService.already_blocked_dates(blocks, timezone_name)
        return [h for h in upcoming_holidays(today) if h.date not in blocked]

    @staticmethod
    def block_holidays(
        store: ResourceStore,
        schedule_id: int,
        holiday_dates: Sequence[date],
        timezone_name: Optional[str],
    ) -> List[Slot]:
        """
        Create one all-day block per selected holiday, named after it.

        Dates already covered by a block are skipped. Every date is
        conflict-checked before the first write.

        Raises:
            BlockValidationError: If no dates are selected
            SchedulingConflictError: If a live appointment falls on a selected date
            ResourceStoreError: If a write fails
        """
        if not holiday_dates:
            raise BlockValidationError("Select at least one holiday")

        names = {}
        for year in {d.year for d in holiday_dates}:
            names.update({h.date: h.name for h in federal_holidays(year)})

        blocked = BlockTimeService.already_blocked_dates(
            BlockTimeService.list_blocks(store, schedule_id), timezone_name
        )

        requests: List[BlockedTimeRequest] = []
        for holiday_date in sorted(set(holiday_dates)):
            if holiday_date in blocked:
                logger.info(f"Skipping {holiday_date.isoformat()}: already blocked on schedule {schedule_id}")
                continue
            requests.append(BlockedTimeRequest(
                start_date=holiday_date,
                end_date=holiday_date,
                all_day=True,
                comment=names.get(holiday_date, "Holiday"),
            ))

        slots = [BlockTimeService.build_block_slot(schedule_id, r, timezone_name) for r in requests]
        for slot in slots:
            appointments = BlockTimeService._live_appointments(store, schedule_id, slot.start, slot.end)
            ConflictService.check_block_request(slot.start, slot.end, appointments)

        created = [store.create(slot) for slot in slots]
        logger.info(f"Blocked {len(created)} holidays on schedule {schedule_id}")
        return created

    @staticmethod
    def _delete_records(store: ResourceStore, record_ids: Iterable[int]) -> BulkOperationResult:
        result = BulkOperationResult()
        for record_id in record_ids:
            try:
                store.delete(Slot, record_id)
                result.completed += 1
            except ResourceStoreError as e:
                logger.exception(f"Failed to delete slot {record_id}: {e}")
                result.failed_ids.append(record_id)
        return result

    @staticmethod
    def delete_block(store: ResourceStore, slot: Slot) -> BulkOperationResult:
        """
        Delete a block, including every record a merged slot covers.

        Raises:
            BlockValidationError: If the slot is virtual or not a block
        """
        if slot.is_virtual:
            raise BlockValidationError("Virtual availability slots cannot be deleted")
        if slot.status != SlotStatus.BUSY_UNAVAILABLE:
            raise BlockValidationError("Only blocked time can be removed")

        result = BlockTimeService._delete_records(store, slot.record_ids)
        logger.info(f"Removed block covering {result.completed} slot(s) on schedule {slot.schedule_id}")
        return result

    @staticmethod
    def clear_past_blocks(store: ResourceStore, schedule_id: int, now: datetime) -> BulkOperationResult:
        """Delete every block that ended before ``now``, continuing past failures."""
        _, past = BlockTimeService.split_past_blocks(BlockTimeService.list_blocks(store, schedule_id), now)
        result = BlockTimeService._delete_records(store, [b.id for b in past if b.id is not None])
        logger.info(f"Cleared {result.completed} of {len(past)} past blocks on schedule {schedule_id}")
        return result
