"""
Services package for shared business logic.

This package contains service classes that encapsulate the scheduling logic
shared across API endpoints.
"""

from .availability_service import AvailabilityService
from .block_time_service import BlockTimeService
from .conflict_service import ConflictService
from .recurrence_service import RecurrenceService
from .schedule_service import ScheduleService
from .scheduling_parameters_service import SchedulingParametersService

__all__ = [
    "AvailabilityService",
    "BlockTimeService",
    "ConflictService",
    "RecurrenceService",
    "ScheduleService",
    "SchedulingParametersService",
]
