"""Tests for timestamp normalization and display formatting."""
from datetime import date, datetime, timezone

from pharmadesk.core import timefmt
from pharmadesk.core.config import settings
from pharmadesk.core.timefmt import (
    EMPTY_DATE,
    EMPTY_TIME,
    INVALID_LABEL,
    format_date,
    format_datetime,
    format_time,
    to_datetime,
    to_timestamp_pair,
)

APRIL_15 = datetime(2024, 4, 15, 9, 5, tzinfo=timezone.utc)


class ServerTimestamp:
    """Stand-in for a server timestamp handle."""

    def __init__(self, moment):
        self.moment = moment

    def to_datetime(self):
        return self.moment


class BrokenHandle:
    def toDate(self):
        raise RuntimeError("corrupt")


class TestTimestampPair:
    def test_naive_datetime_is_treated_as_utc(self):
        pair = to_timestamp_pair(datetime(2024, 4, 15, 9, 5, 0, 250000))
        assert pair == {"seconds": int(APRIL_15.timestamp()), "nanoseconds": 250_000_000}

    def test_pair_converts_back_to_same_instant(self):
        assert to_datetime(to_timestamp_pair(APRIL_15)) == APRIL_15


class TestToDatetime:
    def test_absent_values(self):
        assert to_datetime(None) is None
        assert to_datetime("") is None

    def test_underscore_pair_shape(self):
        value = {"_seconds": int(APRIL_15.timestamp()), "_nanoseconds": 0}
        assert to_datetime(value) == APRIL_15

    def test_epoch_millis(self):
        assert to_datetime(APRIL_15.timestamp() * 1000) == APRIL_15

    def test_handle_object(self):
        assert to_datetime(ServerTimestamp(APRIL_15)) == APRIL_15


class TestFormatters:
    def test_time_of_day(self):
        assert format_time(APRIL_15) == "09:05 AM"
        assert format_time(datetime(2024, 4, 15, 21, 30)) == "09:30 PM"

    def test_date_from_pair(self):
        assert format_date(to_timestamp_pair(APRIL_15)) == "April 15, 2024"

    def test_plain_date(self):
        assert format_date(date(2024, 4, 15)) == "April 15, 2024"

    def test_datetime_from_handle(self):
        assert format_datetime(ServerTimestamp(APRIL_15)) == "April 15, 2024 at 09:05 AM"

    def test_absent_placeholders(self):
        assert format_time(None) == EMPTY_TIME
        assert format_date(None) == EMPTY_DATE
        assert format_datetime("") == EMPTY_DATE

    def test_strings_are_returned_verbatim(self):
        assert format_date("1980-04-15") == "1980-04-15"
        assert format_time("Yesterday") == "Yesterday"

    def test_unparseable_values_fall_back(self):
        assert format_time({"foo": 1}) == INVALID_LABEL
        assert format_date({"seconds": "soon"}) == INVALID_LABEL
        assert format_datetime(True) == INVALID_LABEL
        assert format_time(object()) == INVALID_LABEL
        assert format_date(BrokenHandle()) == INVALID_LABEL

    def test_out_of_range_epoch_falls_back(self):
        assert format_datetime(10 ** 20) == INVALID_LABEL

    def test_unknown_display_zone_uses_utc(self, monkeypatch):
        monkeypatch.setattr(settings, "DISPLAY_TIMEZONE", "Not/AZone")
        assert timefmt._display_zone() is timezone.utc
        assert format_time(APRIL_15) == "09:05 AM"
