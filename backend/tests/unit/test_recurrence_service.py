"""
Unit tests for weekly series generation and cancellation.
"""

import pytest
from dataclasses import replace
from datetime import datetime, timedelta
from unittest.mock import Mock

import pytz

from services.recurrence_service import RecurrenceService
from services.resource_store import ResourceNotFoundError, ResourceStoreError
from shared_types.scheduling import Appointment, AppointmentStatus
from shared_types.search import SearchCriteria
from helpers import utc


class TestGenerateOccurrences:
    """Test expansion of a booking into a series."""

    def test_biweekly_series(self):
        """Four occurrences every two weeks from Monday 2026-01-05 09:00-10:00."""
        occurrences = RecurrenceService.generate_occurrences(
            utc(2026, 1, 5, 9), utc(2026, 1, 5, 10), occurrences=4, interval_weeks=2
        )

        assert [o.start for o in occurrences] == [
            utc(2026, 1, 5, 9), utc(2026, 1, 19, 9), utc(2026, 2, 2, 9), utc(2026, 2, 16, 9),
        ]
        assert all(o.end - o.start == timedelta(hours=1) for o in occurrences)

    def test_series_id_shared_by_all_but_first(self):
        occurrences = RecurrenceService.generate_occurrences(
            utc(2026, 1, 5, 9), utc(2026, 1, 5, 10), occurrences=4, interval_weeks=2
        )

        assert occurrences[0].series_id is None
        series_ids = {o.series_id for o in occurrences[1:]}
        assert len(series_ids) == 1
        assert None not in series_ids

    def test_each_series_gets_a_fresh_id(self):
        first = RecurrenceService.generate_occurrences(utc(2026, 1, 5, 9), utc(2026, 1, 5, 10), 2, 1)
        second = RecurrenceService.generate_occurrences(utc(2026, 1, 5, 9), utc(2026, 1, 5, 10), 2, 1)

        assert first[1].series_id != second[1].series_id

    @pytest.mark.parametrize("occurrences,interval_weeks", [(1, 2), (3, None), (3, 0)])
    def test_single_occurrence(self, occurrences, interval_weeks):
        result = RecurrenceService.generate_occurrences(
            utc(2026, 1, 5, 9), utc(2026, 1, 5, 10), occurrences=occurrences, interval_weeks=interval_weeks
        )

        assert len(result) == 1
        assert result[0].series_id is None

    def test_fields_are_copied(self):
        result = RecurrenceService.generate_occurrences(
            utc(2026, 1, 5, 9), utc(2026, 1, 5, 10), 2, 1, schedule_id=7, description="Follow-up"
        )

        assert all(o.schedule_id == 7 and o.description == "Follow-up" for o in result)
        assert all(o.status == AppointmentStatus.BOOKED for o in result)

    def test_timezone_keeps_wall_clock_across_dst(self):
        tz = pytz.timezone("America/New_York")
        start = tz.localize(datetime(2026, 3, 2, 9, 0))

        result = RecurrenceService.generate_occurrences(
            start, start + timedelta(minutes=45), 3, 1, timezone_name="America/New_York"
        )

        assert [o.start.astimezone(tz).hour for o in result] == [9, 9, 9]
        assert result[2].start == utc(2026, 3, 16, 13)
        assert all(o.end - o.start == timedelta(minutes=45) for o in result)

    @pytest.mark.parametrize("kwargs", [
        {"occurrences": 0},
        {"occurrences": 2, "interval_weeks": -1},
    ])
    def test_invalid_parameters(self, kwargs):
        with pytest.raises(ValueError):
            RecurrenceService.generate_occurrences(utc(2026, 1, 5, 9), utc(2026, 1, 5, 10), **kwargs)

    def test_empty_interval_rejected(self):
        with pytest.raises(ValueError, match="End time must be after start time"):
            RecurrenceService.generate_occurrences(utc(2026, 1, 5, 10), utc(2026, 1, 5, 10))


def _members(count, series_id="series-1"):
    return [
        Appointment(
            start=utc(2026, 1, 5, 9) + timedelta(weeks=i),
            end=utc(2026, 1, 5, 10) + timedelta(weeks=i),
            id=i + 1,
            series_id=series_id,
            schedule_id=1,
        )
        for i in range(count)
    ]


class TestCancelSeries:
    """Test best-effort series cancellation."""

    def test_all_members_cancelled(self):
        store = Mock()
        store.search.return_value = _members(3)
        store.update.side_effect = lambda record: record

        result = RecurrenceService.cancel_series(store, "series-1", schedule_id=1)

        assert result.completed == 3
        assert result.failed_ids == []
        assert not result.is_partial
        assert all(call.args[0].status == AppointmentStatus.CANCELLED for call in store.update.call_args_list)

    def test_search_excludes_cancelled_members(self):
        store = Mock()
        store.search.return_value = []

        RecurrenceService.cancel_series(store, "series-1", schedule_id=1)

        record_type, criteria = store.search.call_args.args
        assert record_type is Appointment
        assert isinstance(criteria, SearchCriteria)
        assert criteria.series_id == "series-1"
        assert criteria.schedule_id == 1
        assert criteria.excluded_statuses == frozenset({"cancelled"})

    def test_failure_on_one_member_continues(self):
        """A five member series failing on the third member still cancels the other four."""
        store = Mock()
        store.search.return_value = _members(5)

        def update(record):
            if record.id == 3:
                raise ResourceStoreError("write rejected")
            return record

        store.update.side_effect = update

        result = RecurrenceService.cancel_series(store, "series-1")

        assert result.completed == 4
        assert result.failed_ids == [3]
        assert result.is_partial
        assert store.update.call_count == 5
        assert result.to_dict() == {"completed": 4, "failed_ids": [3]}

    def test_search_failure_propagates(self):
        store = Mock()
        store.search.side_effect = ResourceStoreError("search failed")

        with pytest.raises(ResourceStoreError):
            RecurrenceService.cancel_series(store, "series-1")

    def test_unexpected_errors_propagate(self):
        store = Mock()
        store.search.return_value = _members(2)
        store.update.side_effect = KeyError("bug")

        with pytest.raises(KeyError):
            RecurrenceService.cancel_series(store, "series-1")


class TestCancelAppointment:
    """Test cancelling a single appointment."""

    def test_cancel(self):
        store = Mock()
        store.read.return_value = _members(1)[0]
        store.update.side_effect = lambda record: record

        result = RecurrenceService.cancel_appointment(store, 1)

        assert result.status == AppointmentStatus.CANCELLED
        store.read.assert_called_once_with(Appointment, 1)

    def test_already_cancelled_is_not_updated(self):
        store = Mock()
        store.read.return_value = replace(_members(1)[0], status=AppointmentStatus.CANCELLED)

        result = RecurrenceService.cancel_appointment(store, 1)

        assert result.is_cancelled
        store.update.assert_not_called()

    def test_missing_appointment(self):
        store = Mock()
        store.read.side_effect = ResourceNotFoundError("Appointment", 99)

        with pytest.raises(ResourceNotFoundError):
            RecurrenceService.cancel_appointment(store, 99)
