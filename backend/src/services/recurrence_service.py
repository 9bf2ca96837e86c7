"""
Recurrence service for weekly appointment series.

Generates the occurrences of a recurring booking and cancels a series by its
identifier. Cancellation walks the members one at a time and keeps going past
failures; the caller gets the number actually cancelled.
"""

import logging
import uuid
from dataclasses import replace
from datetime import datetime, timedelta
from typing import List, Optional

from shared_types.scheduling import Appointment, AppointmentStatus, BulkOperationResult
from shared_types.search import SearchCriteria
from services.resource_store import ResourceStore, ResourceStoreError
from utils.datetime_utils import get_timezone, shift_local_days

logger = logging.getLogger(__name__)


class RecurrenceService:
    """Weekly series generation and cancellation."""

    @staticmethod
    def new_series_id() -> str:
        return str(uuid.uuid4())

    @staticmethod
    def generate_occurrences(
        start: datetime,
        end: datetime,
        occurrences: int = 1,
        interval_weeks: Optional[int] = None,
        timezone_name: Optional[str] = None,
        schedule_id: Optional[int] = None,
        description: Optional[str] = None,
    ) -> List[Appointment]:
        """
        Expand a first occurrence into a weekly series.

        Occurrence ``i`` starts ``i * interval_weeks`` weeks after the first and
        keeps its exact duration. When a timezone is given the local wall-clock
        time is kept across DST changes. Every occurrence but the first is
        tagged with one fresh series identifier. A single occurrence, or a
        missing/zero interval, yields just the first occurrence with no series
        identifier.

        Args:
            start: First occurrence start
            end: First occurrence end
            occurrences: Number of occurrences (n >= 1)
            interval_weeks: Weeks between occurrences; None or 0 disables recurrence
            timezone_name: IANA id used for wall-clock preserving shifts
            schedule_id: Schedule the occurrences belong to
            description: Copied onto every occurrence

        Returns:
            Unsaved appointments in chronological order

        Raises:
            ValueError: If the interval is empty or the counts are invalid
        """
        if end <= start:
            raise ValueError("End time must be after start time")
        if occurrences < 1:
            raise ValueError("Occurrence count must be at least 1")
        if interval_weeks is not None and interval_weeks < 0:
            raise ValueError("Interval in weeks must not be negative")

        first = Appointment(start=start, end=end, schedule_id=schedule_id, description=description)
        if occurrences == 1 or not interval_weeks:
            return [first]

        duration = end - start
        tz = get_timezone(timezone_name) if timezone_name else None
        series_id = RecurrenceService.new_series_id()

        result = [first]
        for i in range(1, occurrences):
            days = i * interval_weeks * 7
            if tz is not None:
                occurrence_start = shift_local_days(start, days, tz)
            else:
                occurrence_start = start + timedelta(days=days)
            result.append(replace(
                first,
                start=occurrence_start,
                end=occurrence_start + duration,
                series_id=series_id,
            ))
        return result

    @staticmethod
    def cancel_appointment(store: ResourceStore, appointment_id: int) -> Appointment:
        """
        Cancel one appointment.

        Raises:
            ResourceNotFoundError: If the appointment does not exist
            ResourceStoreError: If the update fails
        """
        appointment = store.read(Appointment, appointment_id)
        if appointment.is_cancelled:
            return appointment
        updated = store.update(replace(appointment, status=AppointmentStatus.CANCELLED))
        logger.info(f"Cancelled appointment {appointment_id}")
        return updated

    @staticmethod
    def cancel_series(store: ResourceStore, series_id: str, schedule_id: Optional[int] = None) -> BulkOperationResult:
        """
        Cancel every live appointment of a series, one at a time.

        Not transactional: a member that fails is logged and recorded in
        ``failed_ids`` and the remaining members are still processed.

        Args:
            store: Resource store
            series_id: Series identifier shared by the occurrences
            schedule_id: Restrict to one schedule

        Returns:
            BulkOperationResult with the number cancelled and the failed ids

        Raises:
            ResourceStoreError: If the members cannot be looked up at all
        """
        members = store.search(
            Appointment,
            SearchCriteria(
                schedule_id=schedule_id,
                series_id=series_id,
                excluded_statuses=frozenset({AppointmentStatus.CANCELLED.value}),
            ),
        )

        result = BulkOperationResult()
        for member in members:
            try:
                store.update(replace(member, status=AppointmentStatus.CANCELLED))
                result.completed += 1
            except ResourceStoreError as e:
                logger.exception(f"Failed to cancel appointment {member.id} of series {series_id}: {e}")
                if member.id is not None:
                    result.failed_ids.append(member.id)

        if result.is_partial:
            logger.warning(
                f"Series {series_id} partially cancelled: {result.completed} of {len(members)} appointments"
            )
        else:
            logger.info(f"Cancelled {result.completed} appointments of series {series_id}")
        return result
