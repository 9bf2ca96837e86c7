"""
Shared types for slots, appointments, and the records exchanged with the
resource store.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


def ranges_overlap(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    """
    True iff the half-open ranges [a_start, a_end) and [b_start, b_end) intersect.

    Touching ranges (a_end == b_start) do not overlap, and a zero-length range
    overlaps nothing, itself included.
    """
    if a_start >= a_end or b_start >= b_end:
        return False
    return a_start < b_end and b_start < a_end


@dataclass(frozen=True)
class Interval:
    """
    Closed-open time range ``[start, end)``.

    Callers reject degenerate or negative ranges before constructing one; the
    type itself does not.
    """
    start: datetime
    end: datetime

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def overlaps(self, other: "Interval") -> bool:
        return ranges_overlap(self.start, self.end, other.start, other.end)


class SlotStatus(str, Enum):
    FREE = "free"
    BUSY = "busy"
    BUSY_UNAVAILABLE = "busy-unavailable"
    BUSY_TENTATIVE = "busy-tentative"
    ENTERED_IN_ERROR = "entered-in-error"


class AppointmentStatus(str, Enum):
    PROPOSED = "proposed"
    PENDING = "pending"
    BOOKED = "booked"
    ARRIVED = "arrived"
    FULFILLED = "fulfilled"
    CANCELLED = "cancelled"
    NOSHOW = "noshow"


@dataclass(frozen=True)
class Slot:
    """
    A time slot on a schedule.

    Slots without an ``id`` are virtual: generated for display, never persisted
    and never deletable. ``transient_id`` marks results of the external
    availability search. ``merged_ids`` lists the persisted records a merged
    slot covers.
    """
    schedule_id: Optional[int]
    status: SlotStatus
    start: datetime
    end: datetime
    id: Optional[int] = None
    comment: Optional[str] = None
    transient_id: Optional[str] = None
    merged_ids: Tuple[int, ...] = ()

    @property
    def interval(self) -> Interval:
        return Interval(self.start, self.end)

    @property
    def is_virtual(self) -> bool:
        return self.id is None

    @property
    def is_transient(self) -> bool:
        return self.transient_id is not None

    @property
    def record_ids(self) -> Tuple[int, ...]:
        """Persisted records behind this slot."""
        if self.merged_ids:
            return self.merged_ids
        return (self.id,) if self.id is not None else ()


@dataclass(frozen=True)
class Appointment:
    """
    Appointment as seen by the engine; only the interval, status and series
    identifier take part in scheduling decisions.
    """
    start: datetime
    end: datetime
    status: AppointmentStatus = AppointmentStatus.BOOKED
    schedule_id: Optional[int] = None
    id: Optional[int] = None
    series_id: Optional[str] = None
    description: Optional[str] = None

    @property
    def interval(self) -> Interval:
        return Interval(self.start, self.end)

    @property
    def is_cancelled(self) -> bool:
        return self.status == AppointmentStatus.CANCELLED


@dataclass(frozen=True)
class Schedule:
    """Schedule record owned by the resource store; ``extensions`` is the raw persisted tree."""
    actor: str
    id: Optional[int] = None
    active: bool = True
    extensions: List[Dict[str, Any]] = field(default_factory=list)


@dataclass(frozen=True)
class BlockedTimeRequest:
    """Input for one busy-unavailable slot; not persisted on its own."""
    start_date: date
    end_date: date
    all_day: bool = True
    start_time: str = ""
    end_time: str = ""
    comment: str = ""


@dataclass
class BulkOperationResult:
    """
    Outcome of a best-effort operation over several records.

    ``completed`` counts members that succeeded; ``failed_ids`` lists the ones
    that did not. A non-empty ``failed_ids`` is a partial failure.
    """
    completed: int = 0
    failed_ids: List[int] = field(default_factory=list)

    @property
    def is_partial(self) -> bool:
        return bool(self.failed_ids)

    def to_dict(self) -> Dict[str, Any]:
        return {"completed": self.completed, "failed_ids": list(self.failed_ids)}
