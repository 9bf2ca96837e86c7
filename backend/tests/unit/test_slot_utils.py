"""
Unit tests for slot merging.
"""

from datetime import timedelta

from hypothesis import given, strategies as st

from shared_types.scheduling import Slot, SlotStatus
from utils.slot_utils import is_all_day_slot, merge_overlapping_slots, sort_slots
from helpers import block, utc

BASE = utc(2026, 3, 10)


def _slot(start_h, end_h, status=SlotStatus.BUSY_UNAVAILABLE, slot_id=None, schedule_id=1, comment=None):
    return Slot(
        schedule_id=schedule_id,
        status=status,
        start=BASE + timedelta(hours=start_h),
        end=BASE + timedelta(hours=end_h),
        id=slot_id,
        comment=comment,
    )


class TestMergeOverlappingSlots:
    """Test collapsing of overlapping slots."""

    def test_empty(self):
        assert merge_overlapping_slots([]) == []

    def test_overlapping_slots_merge(self):
        merged = merge_overlapping_slots([_slot(9, 11, slot_id=2), _slot(10, 12, slot_id=1)])

        assert len(merged) == 1
        assert (merged[0].start, merged[0].end) == (BASE + timedelta(hours=9), BASE + timedelta(hours=12))
        assert merged[0].id == 1
        assert merged[0].merged_ids == (1, 2)
        assert merged[0].record_ids == (1, 2)

    def test_touching_slots_merge(self):
        merged = merge_overlapping_slots([_slot(9, 10, slot_id=1), _slot(10, 11, slot_id=2)])

        assert len(merged) == 1
        assert merged[0].end == BASE + timedelta(hours=11)

    def test_separated_slots_stay_apart(self):
        slots = [_slot(9, 10, slot_id=1), _slot(11, 12, slot_id=2)]

        assert merge_overlapping_slots(slots) == slots

    def test_different_status_never_merges(self):
        free = _slot(9, 12, status=SlotStatus.FREE, slot_id=1)
        blocked = _slot(10, 11, slot_id=2)

        merged = merge_overlapping_slots([blocked, free])

        assert merged == [free, blocked]

    def test_different_schedules_never_merge(self):
        merged = merge_overlapping_slots([_slot(9, 11, slot_id=1), _slot(10, 12, slot_id=2, schedule_id=2)])

        assert len(merged) == 2

    def test_contained_slot_is_absorbed(self):
        merged = merge_overlapping_slots([_slot(8, 18, slot_id=1), _slot(10, 11, slot_id=2)])

        assert len(merged) == 1
        assert merged[0].end == BASE + timedelta(hours=18)

    def test_first_comment_is_kept(self):
        merged = merge_overlapping_slots([_slot(9, 10, slot_id=1), _slot(9, 11, slot_id=2, comment="Vacation")])

        assert merged[0].comment == "Vacation"

    def test_single_slot_unchanged(self):
        slot = _slot(9, 10, slot_id=7, comment="Lunch")

        assert merge_overlapping_slots([slot]) == [slot]

    def test_result_is_sorted(self):
        merged = merge_overlapping_slots([_slot(13, 14, slot_id=1), _slot(8, 9, slot_id=2), _slot(10, 11, slot_id=3)])

        assert merged == sort_slots(merged)


class TestIsAllDaySlot:
    """Test all-day detection."""

    def test_long_block_is_all_day(self):
        assert is_all_day_slot(block(utc(2026, 3, 10), utc(2026, 3, 10, 23, 59, 59)))

    def test_short_block_is_not(self):
        assert not is_all_day_slot(block(utc(2026, 3, 10, 9), utc(2026, 3, 10, 17)))

    def test_long_free_slot_is_not(self):
        assert not is_all_day_slot(_slot(0, 24, status=SlotStatus.FREE))


slot_strategy = st.builds(
    _slot,
    start_h=st.integers(min_value=0, max_value=40),
    end_h=st.integers(min_value=41, max_value=48) | st.integers(min_value=1, max_value=40),
    status=st.sampled_from([SlotStatus.FREE, SlotStatus.BUSY_UNAVAILABLE, SlotStatus.BUSY]),
    slot_id=st.integers(min_value=1, max_value=1000),
).filter(lambda s: s.start < s.end)


class TestMergeProperties:
    """Property-based tests for merging."""

    @given(slots=st.lists(slot_strategy, max_size=12))
    def test_merge_is_idempotent(self, slots):
        once = merge_overlapping_slots(slots)

        assert merge_overlapping_slots(once) == once

    @given(slots=st.lists(slot_strategy, max_size=12))
    def test_merge_preserves_statuses(self, slots):
        merged = merge_overlapping_slots(slots)

        assert {s.status for s in merged} == {s.status for s in slots}

    @given(slots=st.lists(slot_strategy, max_size=12))
    def test_merged_slots_of_same_status_are_disjoint(self, slots):
        merged = merge_overlapping_slots(slots)

        for i, a in enumerate(merged):
            for b in merged[i + 1:]:
                if a.status == b.status:
                    assert a.end < b.start or b.end < a.start

    @given(slots=st.lists(slot_strategy, max_size=12))
    def test_merge_covers_every_input(self, slots):
        merged = merge_overlapping_slots(slots)

        for slot in slots:
            assert any(
                m.status == slot.status and m.start <= slot.start and slot.end <= m.end for m in merged
            )
