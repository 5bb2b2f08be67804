"""Tests for time utilities."""

from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from leadwatch.utils.exceptions import InvalidTimeFormat
from leadwatch.utils.time_utils import (
    format_relative_time,
    instant_of,
    local_date_of,
    next_rollover_at,
    normalize_due,
    parse_hhmm,
)

UTC = ZoneInfo("UTC")


def test_parse_hhmm():
    """Test parsing valid wall-clock times."""
    assert parse_hhmm("09:00") == (9, 0)
    assert parse_hhmm("9:05") == (9, 5)
    assert parse_hhmm("00:00") == (0, 0)
    assert parse_hhmm("23:59") == (23, 59)
    assert parse_hhmm(" 14:30 ") == (14, 30)


@pytest.mark.parametrize("value", ["24:00", "12:60", "9", "09:0", "ab:cd", "", None, "09:00:00"])
def test_parse_hhmm_invalid(value):
    """Test that malformed times raise InvalidTimeFormat."""
    with pytest.raises(InvalidTimeFormat):
        parse_hhmm(value)


def test_instant_of():
    """Test local wall-clock time to UTC instant (UTC+05:30)."""
    instant = instant_of(date(2026, 3, 1), "10:30", 330)

    assert instant == datetime(2026, 3, 1, 5, 0, tzinfo=UTC)


def test_instant_of_early_morning_is_previous_utc_day():
    """Test that local times before the offset fall on the previous UTC day."""
    instant = instant_of(date(2026, 3, 1), "02:00", 330)

    assert instant == datetime(2026, 2, 28, 20, 30, tzinfo=UTC)


def test_local_date_of():
    """Test UTC instant to local business date."""
    # 20:00 UTC is 01:30 the next day in UTC+05:30
    assert local_date_of(datetime(2026, 3, 1, 20, 0, tzinfo=UTC), 330) == date(2026, 3, 2)
    assert local_date_of(datetime(2026, 3, 1, 18, 29, tzinfo=UTC), 330) == date(2026, 3, 1)


def test_round_trip():
    """Test that local_date_of(instant_of(d, t)) reproduces d for every minute of a day."""
    day = date(2026, 12, 31)
    for minutes in range(0, 24 * 60, 7):
        hhmm = f"{minutes // 60:02d}:{minutes % 60:02d}"
        assert local_date_of(instant_of(day, hhmm, 330), 330) == day

    for offset in (-480, 0, 345, 840):
        assert local_date_of(instant_of(day, "00:00", offset), offset) == day
        assert local_date_of(instant_of(day, "23:59", offset), offset) == day


def test_instant_of_invalid_time():
    """Test that instant_of rejects malformed times."""
    with pytest.raises(InvalidTimeFormat):
        instant_of(date(2026, 3, 1), "25:00", 330)


def test_next_rollover_at():
    """Test rollover lands just after the next local midnight."""
    now = instant_of(date(2026, 3, 1), "23:59", 330)

    rollover = next_rollover_at(now, 330, 60)

    assert rollover == instant_of(date(2026, 3, 2), "00:00", 330) + timedelta(seconds=60)
    assert local_date_of(rollover, 330) == date(2026, 3, 2)


def test_normalize_due():
    """Test date-only due values count as end of day."""
    assert normalize_due("2026-03-01") == "2026-03-01T23:59"
    assert normalize_due("2026-03-01T10:00") == "2026-03-01T10:00"
    assert normalize_due("") == ""


def test_format_relative_time():
    """Test relative time formatting."""
    now = datetime(2026, 3, 15, 12, 0, tzinfo=UTC)

    assert format_relative_time(now - timedelta(seconds=20), now) == "just now"
    assert format_relative_time(now - timedelta(minutes=5), now) == "5 minutes ago"
    assert format_relative_time(now - timedelta(hours=2), now) == "2 hours ago"
    assert format_relative_time(now - timedelta(days=1), now) == "1 day ago"
