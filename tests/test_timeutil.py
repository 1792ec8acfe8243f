"""Tests for local day arithmetic and formatting."""

from datetime import date

import pytest

from focusdial.timeutil import (
    add_days,
    day_bounds,
    day_key,
    day_number,
    day_start_for_key,
    days_between,
    format_duration,
    format_hm,
    format_hms,
    iso_week,
    month_key,
    parse_clock,
    parse_day_key,
    start_of_day,
    start_of_week,
)

from helpers import ts


class TestDayBoundaries:
    """Tests for start_of_day, add_days and day_bounds."""

    def test_start_of_day_is_local_midnight(self):
        """Verify the day starts at local midnight."""
        assert start_of_day(ts(13, 45, 10)) == ts(0)

    def test_start_of_day_at_midnight_is_identity(self):
        assert start_of_day(ts(0)) == ts(0)

    def test_add_days_crosses_month(self):
        """Test adding days across a month end."""
        assert add_days(ts(13), 7) == ts(0, day=1, month=2)

    def test_day_bounds(self):
        """Verify day bounds span midnight to midnight."""
        start, end = day_bounds(ts(9, 30))
        assert start == ts(0)
        assert end == ts(0, day=26)

    def test_start_of_week_is_monday(self):
        """Verify weeks start on Monday."""
        # Jan 25, 2025 is a Saturday
        assert start_of_week(ts(15)) == ts(0, day=20)

    def test_start_of_week_on_monday(self):
        assert start_of_week(ts(8, day=20)) == ts(0, day=20)


class TestDayKeys:
    """Tests for YYYY-MM-DD keys and day numbers."""

    def test_day_key(self):
        """Test day key formatting late in the day."""
        assert day_key(ts(23, 59)) == "2025-01-25"

    def test_parse_day_key_valid(self):
        assert parse_day_key("2025-01-25") == date(2025, 1, 25)

    def test_parse_day_key_strips_whitespace(self):
        """Test that surrounding whitespace is ignored."""
        assert parse_day_key(" 2025-01-25 ") == date(2025, 1, 25)

    @pytest.mark.parametrize("key", ["2025-02-30", "2025-1-5", "yesterday", "", None, 20250125])
    def test_parse_day_key_invalid(self, key):
        """Test that malformed or impossible dates are rejected."""
        assert parse_day_key(key) is None

    def test_day_start_for_key(self):
        """Verify a key maps to its local midnight."""
        assert day_start_for_key("2025-01-25") == ts(0)
        assert day_start_for_key("bad") is None

    def test_days_between(self):
        assert days_between(ts(23), ts(1, day=27)) == 2

    def test_day_number_consecutive(self):
        """Verify day numbers are consecutive across a month end."""
        assert day_number(ts(0, day=1, month=2)) - day_number(ts(23, day=31)) == 1

    def test_iso_week(self):
        """Test ISO week of a Saturday."""
        assert iso_week(ts(12)) == (2025, 4)

    def test_month_key(self):
        assert month_key(ts(12)) == "2025-01"


class TestFormatting:
    """Tests for duration and clock formatting."""

    def test_format_hm(self):
        assert format_hm(150) == "2h 30m"

    def test_format_hm_floors_and_clamps(self):
        """Verify minutes are floored and negatives clamped."""
        assert format_hm(59.9) == "0h 59m"
        assert format_hm(-5) == "0h 0m"

    def test_format_hms(self):
        """Verify the clock format with hours, minutes and seconds."""
        assert format_hms(3_723_000) == "01:02:03"

    def test_format_hms_negative_is_zero(self):
        assert format_hms(-10) == "00:00:00"

    def test_format_duration_zero(self):
        assert format_duration(0) == "0m"

    def test_format_duration_under_minute(self):
        """Test that sub-minute durations read as under a minute."""
        assert format_duration(30_000) == "<1m"

    def test_format_duration_minutes(self):
        assert format_duration(5 * 60_000) == "5m"

    def test_format_duration_hours(self):
        """Test hours and minutes formatting."""
        assert format_duration(90 * 60_000) == "1h 30m"


class TestParseClock:
    """Tests for parse_clock."""

    def test_parse_hh_mm(self):
        """Verify HH:MM on the given day."""
        assert parse_clock("10:30", ts(0)) == ts(10, 30)

    def test_parse_hh_mm_ss(self):
        """Verify HH:MM:SS on the given day."""
        assert parse_clock("10:30:15", ts(0)) == ts(10, 30, 15)

    @pytest.mark.parametrize("text", ["25:00", "10h30", ""])
    def test_parse_invalid(self, text):
        """Test that bad times raise ValueError."""
        with pytest.raises(ValueError, match="Invalid time"):
            parse_clock(text, ts(0))
