"""
Conflict service for pre-write booking and blocking checks.

These checks run against the last fetched in-memory snapshot of a schedule's
slots and appointments. They are an advisory fast-fail before a write is
issued, not a correctness mechanism: two near-simultaneous requests can both
pass. The resource store must enforce that no two bookings on one schedule
overlap, and a rejection from the store on write is authoritative. Callers
then re-fetch and present the fresh state instead of trusting these checks.
"""

import logging
from datetime import datetime
from enum import Enum
from typing import Iterable, Optional

from shared_types.scheduling import Appointment, Slot, SlotStatus, ranges_overlap

logger = logging.getLogger(__name__)


class ConflictReason(str, Enum):
    BLOCKED = "blocked"
    APPOINTMENT_OVERLAP = "appointment_overlap"
    BLOCK_OVER_APPOINTMENT = "block_over_appointment"


CONFLICT_MESSAGES = {
    ConflictReason.BLOCKED: "This time is blocked. Choose another time or remove the block first.",
    ConflictReason.APPOINTMENT_OVERLAP: "This time overlaps with an existing appointment. Choose another time.",
    ConflictReason.BLOCK_OVER_APPOINTMENT: "You have an appointment during this time. Move or cancel it first to block.",
}


class SchedulingConflictError(Exception):
    """Raised when a candidate interval conflicts with existing blocks or appointments."""

    def __init__(self, reason: ConflictReason, start: datetime, end: datetime, conflicting_id: Optional[int] = None):
        self.reason = reason
        self.start = start
        self.end = end
        self.conflicting_id = conflicting_id
        super().__init__(CONFLICT_MESSAGES[reason])

    @property
    def message(self) -> str:
        return CONFLICT_MESSAGES[self.reason]


class ConflictService:
    """Overlap policies applied before creating appointments and blocks."""

    @staticmethod
    def find_blocking_slot(start: datetime, end: datetime, slots: Iterable[Slot]) -> Optional[Slot]:
        """
        Find a persisted busy-unavailable slot overlapping the candidate interval.

        Virtual slots never block.
        """
        for slot in slots:
            if slot.status != SlotStatus.BUSY_UNAVAILABLE or slot.is_virtual:
                continue
            if ranges_overlap(start, end, slot.start, slot.end):
                return slot
        return None

    @staticmethod
    def find_overlapping_appointment(
        start: datetime,
        end: datetime,
        appointments: Iterable[Appointment],
    ) -> Optional[Appointment]:
        """Find a non-cancelled appointment overlapping the candidate interval."""
        for appointment in appointments:
            if appointment.is_cancelled:
                continue
            if ranges_overlap(start, end, appointment.start, appointment.end):
                return appointment
        return None

    @staticmethod
    def check_appointment_request(
        start: datetime,
        end: datetime,
        slots: Iterable[Slot],
        appointments: Iterable[Appointment],
    ) -> None:
        """
        Validate a new appointment against blocked time and existing appointments.

        Args:
            start: Candidate start
            end: Candidate end
            slots: Fetched slots of the schedule
            appointments: Fetched appointments of the schedule

        Raises:
            SchedulingConflictError: BLOCKED if a block overlaps, APPOINTMENT_OVERLAP
                if a live appointment overlaps. Blocks are checked first.
        """
        blocking = ConflictService.find_blocking_slot(start, end, slots)
        if blocking is not None:
            logger.info(f"Appointment {start.isoformat()}-{end.isoformat()} rejected: overlaps block {blocking.id}")
            raise SchedulingConflictError(ConflictReason.BLOCKED, start, end, blocking.id)

        existing = ConflictService.find_overlapping_appointment(start, end, appointments)
        if existing is not None:
            logger.info(f"Appointment {start.isoformat()}-{end.isoformat()} rejected: overlaps appointment {existing.id}")
            raise SchedulingConflictError(ConflictReason.APPOINTMENT_OVERLAP, start, end, existing.id)

    @staticmethod
    def check_block_request(start: datetime, end: datetime, appointments: Iterable[Appointment]) -> None:
        """
        Validate a new block against existing appointments.

        Raises:
            SchedulingConflictError: BLOCK_OVER_APPOINTMENT if a live appointment overlaps
        """
        existing = ConflictService.find_overlapping_appointment(start, end, appointments)
        if existing is not None:
            logger.info(f"Block {start.isoformat()}-{end.isoformat()} rejected: overlaps appointment {existing.id}")
            raise SchedulingConflictError(ConflictReason.BLOCK_OVER_APPOINTMENT, start, end, existing.id)
