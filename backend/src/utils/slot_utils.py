"""
Slot list helpers used when preparing the calendar view.
"""

from collections import OrderedDict
from dataclasses import replace
from datetime import timedelta
from typing import Dict, List, Optional, Sequence, Tuple

from core.constants import ALL_DAY_BLOCK_MIN_HOURS
from shared_types.scheduling import Slot, SlotStatus, ranges_overlap

__all__ = ["merge_overlapping_slots", "is_all_day_slot", "ranges_overlap", "sort_slots"]

GroupKey = Tuple[Optional[int], SlotStatus]


def sort_slots(slots: Sequence[Slot]) -> List[Slot]:
    """Order slots by start, end, then status value."""
    return sorted(slots, key=lambda s: (s.start, s.end, s.status.value))


def _combine(run: List[Slot]) -> Slot:
    if len(run) == 1:
        return run[0]
    first = run[0]
    ids = sorted({record_id for slot in run for record_id in slot.record_ids})
    return replace(
        first,
        end=max(slot.end for slot in run),
        id=ids[0] if ids else first.id,
        comment=next((slot.comment for slot in run if slot.comment), None),
        merged_ids=tuple(ids),
    )


def merge_overlapping_slots(slots: Sequence[Slot]) -> List[Slot]:
    """
    Collapse overlapping or touching slots of the same schedule and status.

    Slots of different status are never combined, even when their intervals
    touch. A merged slot covers its whole run, keeps the earliest persisted id
    as its own and lists every covered record in ``merged_ids`` so deletion can
    fan out. A slot with nothing to merge is returned unchanged, which makes
    the operation idempotent.

    Args:
        slots: Persisted slots as fetched from the store

    Returns:
        Merged slots sorted by start, end and status
    """
    groups: Dict[GroupKey, List[Slot]] = OrderedDict()
    for slot in slots:
        groups.setdefault((slot.schedule_id, slot.status), []).append(slot)

    result: List[Slot] = []
    for group in groups.values():
        run: List[Slot] = []
        run_end = None
        for slot in sort_slots(group):
            if run and slot.start <= run_end:
                run.append(slot)
                run_end = max(run_end, slot.end)
                continue
            if run:
                result.append(_combine(run))
            run = [slot]
            run_end = slot.end
        if run:
            result.append(_combine(run))

    return sort_slots(result)


def is_all_day_slot(slot: Slot) -> bool:
    """Busy-unavailable slots lasting at least 23 hours render as all-day events."""
    return (
        slot.status == SlotStatus.BUSY_UNAVAILABLE
        and slot.end - slot.start >= timedelta(hours=ALL_DAY_BLOCK_MIN_HOURS)
    )
