"""
Unit tests for minute-of-day helpers.
"""

import pytest

from utils.time_utils import (
    duration_to_minutes,
    format_duration,
    format_minutes,
    minutes_to_duration,
    minutes_to_time,
    minutes_to_time_of_day,
    time_to_minutes,
    window_duration_minutes,
)


class TestTimeParsing:
    """Test conversion between time strings and minutes."""

    @pytest.mark.parametrize("value,expected", [
        ("00:00", 0),
        ("09:00", 540),
        ("9:30", 570),
        ("17:45:00", 1065),
        ("23:59:59", 1439),
    ])
    def test_time_to_minutes(self, value, expected):
        assert time_to_minutes(value) == expected

    @pytest.mark.parametrize("value", ["", "24:00", "12:60", "noon", "12", "12:00:61"])
    def test_time_to_minutes_rejects_invalid(self, value):
        with pytest.raises(ValueError):
            time_to_minutes(value)

    @pytest.mark.parametrize("value", [None, 900, ["09:00"]])
    def test_time_to_minutes_rejects_non_strings(self, value):
        with pytest.raises(ValueError):
            time_to_minutes(value)

    def test_minutes_to_time(self):
        assert minutes_to_time(540) == "09:00"
        assert minutes_to_time(1065) == "17:45"

    def test_minutes_to_time_wraps_past_midnight(self):
        assert minutes_to_time(26 * 60) == "02:00"

    def test_minutes_to_time_of_day(self):
        assert minutes_to_time_of_day(780) == "13:00:00"


class TestWindowDuration:
    """Test window length calculation."""

    def test_same_day_window(self):
        assert window_duration_minutes("09:00", "17:30") == 510

    def test_window_wrapping_midnight(self):
        assert window_duration_minutes("22:00", "02:00") == 240

    def test_equal_times_are_a_full_day(self):
        assert window_duration_minutes("09:00", "09:00") == 1440

    def test_format_minutes(self):
        assert format_minutes(480) == "8h"
        assert format_minutes(90) == "1h 30m"

    def test_format_duration(self):
        assert format_duration("09:00", "17:30") == "8h 30m"


class TestPersistedDurations:
    """Test duration normalization for persisted entries."""

    def test_hours_are_converted(self):
        assert duration_to_minutes(8, "h") == 480
        assert duration_to_minutes(1.5, "h") == 90

    def test_other_units_are_minutes(self):
        assert duration_to_minutes(45, "min") == 45

    @pytest.mark.parametrize("value", ["8", None, True])
    def test_non_numeric_value_is_rejected(self, value):
        with pytest.raises(ValueError):
            duration_to_minutes(value, "h")

    def test_whole_hours_written_in_hours(self):
        assert minutes_to_duration(480) == (8, "h")

    def test_partial_hours_written_in_minutes(self):
        assert minutes_to_duration(100) == (100, "min")
