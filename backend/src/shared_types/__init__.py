"""
Shared type definitions for the scheduling backend.

This module contains dataclasses and types that are used across multiple services.
"""

from shared_types.availability import (
    AvailabilityConfig,
    BookingLimit,
    CodeableConcept,
    Coding,
    DaySchedule,
    DayOfWeek,
    PeriodUnit,
    SchedulingParameters,
    TimeWindow,
    WeekSchedule,
)
from shared_types.scheduling import (
    Appointment,
    AppointmentStatus,
    BlockedTimeRequest,
    BulkOperationResult,
    Interval,
    Schedule,
    Slot,
    SlotStatus,
    ranges_overlap,
)
from shared_types.search import SearchCriteria

__all__ = [
    "AvailabilityConfig",
    "BookingLimit",
    "CodeableConcept",
    "Coding",
    "DaySchedule",
    "DayOfWeek",
    "PeriodUnit",
    "SchedulingParameters",
    "TimeWindow",
    "WeekSchedule",
    "Appointment",
    "AppointmentStatus",
    "BlockedTimeRequest",
    "BulkOperationResult",
    "Interval",
    "Schedule",
    "Slot",
    "SlotStatus",
    "ranges_overlap",
    "SearchCriteria",
]
