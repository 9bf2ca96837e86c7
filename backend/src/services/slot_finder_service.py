"""
Client for the external availability search.

The search itself (buffers, alignment, booking limits) runs elsewhere; this
module decides the window to search, tags results so they can be told apart
from persisted slots, and drops results of requests that were superseded
before they completed.
"""

import logging
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Awaitable, Callable, List, Optional, Tuple

from core.config import MINIMUM_NOTICE_MINUTES
from core.constants import SEARCH_FALLBACK_DAYS
from shared_types.availability import CodeableConcept
from shared_types.scheduling import Appointment, Slot, SlotStatus
from utils.datetime_utils import Clock, SystemClock

logger = logging.getLogger(__name__)

AvailabilitySearch = Callable[[int, datetime, datetime, Optional[CodeableConcept]], Awaitable[List[Slot]]]


class FetchToken:
    """Cancellation token attached to one search request."""

    def __init__(self) -> None:
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


@dataclass
class CalendarState:
    """Slots, appointments and search results currently shown on the calendar."""
    slots: List[Slot] = field(default_factory=list)
    appointments: List[Appointment] = field(default_factory=list)
    search_results: List[Slot] = field(default_factory=list)


@dataclass
class BookingResult:
    """Records returned by the booking operation for one search result."""
    slots: List[Slot] = field(default_factory=list)
    appointments: List[Appointment] = field(default_factory=list)


class SlotFinder:
    """
    Runs availability searches for one calendar view.

    Only the latest request may deliver results: starting a new search cancels
    the token of the previous one, and a cancelled request resolves to None
    whether it succeeded or failed.
    """

    def __init__(
        self,
        search: AvailabilitySearch,
        clock: Optional[Clock] = None,
        minimum_notice_minutes: int = MINIMUM_NOTICE_MINUTES,
    ):
        self._search = search
        self._clock = clock or SystemClock()
        self._minimum_notice = timedelta(minutes=minimum_notice_minutes)
        self._current: Optional[FetchToken] = None

    @staticmethod
    def compute_search_window(
        range_start: datetime,
        range_end: datetime,
        now: datetime,
        minimum_notice: timedelta,
    ) -> Tuple[datetime, datetime]:
        """
        Window actually searched for a visible range.

        The start is pushed to now + minimum notice. If that leaves nothing of
        the visible range, the search covers one week from the new start.
        """
        earliest = now + minimum_notice
        start = max(range_start, earliest)
        end = range_end if start < range_end else start + timedelta(days=SEARCH_FALLBACK_DAYS)
        return start, end

    def cancel(self) -> None:
        """Cancel the in-flight request, if any."""
        if self._current is not None:
            self._current.cancel()
            self._current = None

    async def find(
        self,
        schedule_id: int,
        range_start: datetime,
        range_end: datetime,
        service_type: Optional[CodeableConcept] = None,
    ) -> Optional[List[Slot]]:
        """
        Search free slots for a visible range.

        Args:
            schedule_id: Schedule to search
            range_start: Start of the visible range
            range_end: End of the visible range
            service_type: Service type filter; None searches the default availability

        Returns:
            Results tagged with transient ids, or None if the request was
            superseded before it completed

        Raises:
            Exception: Whatever the search raised, unless the request was superseded
        """
        self.cancel()
        token = FetchToken()
        self._current = token

        start, end = self.compute_search_window(range_start, range_end, self._clock.now(), self._minimum_notice)
        try:
            results = await self._search(schedule_id, start, end, service_type)
        except Exception:
            if token.cancelled:
                logger.debug(f"Ignoring failure of superseded search for schedule {schedule_id}")
                return None
            raise

        if token.cancelled:
            logger.debug(f"Discarding results of superseded search for schedule {schedule_id}")
            return None

        if self._current is token:
            self._current = None
        return [replace(slot, transient_id=str(uuid.uuid4())) for slot in results]

    @staticmethod
    def apply_booking_result(state: CalendarState, booked: Slot, result: BookingResult) -> CalendarState:
        """
        Update the calendar after a search result was booked.

        The booked search result is removed, returned slots other than 'busy'
        are added to the calendar and returned appointments are prepended.
        """
        return CalendarState(
            slots=[s for s in result.slots if s.status != SlotStatus.BUSY] + state.slots,
            appointments=list(result.appointments) + state.appointments,
            search_results=[s for s in state.search_results if s.transient_id != booked.transient_id],
        )
