# Package initialization
# Import all models to ensure relationships are properly established
from .schedule import Schedule
from .slot import Slot
from .appointment import Appointment

__all__ = [
    "Schedule",
    "Slot",
    "Appointment",
]
