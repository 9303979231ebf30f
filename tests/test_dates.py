"""Tests for portal date parsing."""
from datetime import date, datetime, timezone

import pytest

from scrapers.dates import format_portal_date, in_persistable_range, parse_date


def utc(year, month, day):
    return datetime(year, month, day, tzinfo=timezone.utc)


class TestParseDate:
    """Text, ISO and serial-number inputs."""

    def test_month_day_year(self):
        assert parse_date("01/03/2025") == utc(2025, 1, 3)

    def test_time_suffix_is_ignored(self):
        assert parse_date("01/03/2025 10:15 AM") == utc(2025, 1, 3)

    def test_two_digit_years(self):
        assert parse_date("1/3/25") == utc(2025, 1, 3)
        assert parse_date("12/31/99") == utc(1999, 12, 31)

    def test_iso(self):
        assert parse_date("2025-01-03") == utc(2025, 1, 3)
        assert parse_date("2025-01-03T08:00:00") == utc(2025, 1, 3)

    def test_spreadsheet_serial(self):
        assert parse_date(45658) == utc(2025, 1, 1)
        assert parse_date(45658.75) == utc(2025, 1, 1)

    def test_digit_strings_are_not_serials(self):
        """A bare year from a portal cell is not a date."""
        assert parse_date("2025") is None
        assert parse_date("45658") is None

    def test_result_is_midnight_utc(self):
        parsed = parse_date("07/04/2024")
        assert parsed.tzinfo == timezone.utc
        assert (parsed.hour, parsed.minute) == (0, 0)

    @pytest.mark.parametrize("raw", [
        None, "", "garbage", "02/30/2025", "13/01/2025", "01/03/2150", 0, 80000, True,
        float("nan"), float("inf"), float("-inf"),
    ])
    def test_unparseable_returns_none(self, raw):
        assert parse_date(raw) is None


class TestPersistableRange:
    def test_in_range_passes(self):
        value = utc(2025, 1, 3)
        assert in_persistable_range(value) is value

    def test_out_of_range_dropped(self):
        assert in_persistable_range(datetime(1850, 1, 1)) is None
        assert in_persistable_range(datetime(2100, 1, 1)) is None
        assert in_persistable_range(None) is None


def test_format_portal_date():
    assert format_portal_date(date(2025, 1, 3)) == "01/03/2025"
