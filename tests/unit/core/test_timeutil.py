"""Tests for timestamp parsing and formatting helpers."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from wellrus.core.timeutil import epoch_millis, parse_timestamp, to_iso


class TestParseTimestamp:
    def test_iso_with_z(self):
        dt = parse_timestamp("2025-11-20T08:00:00.000Z")
        assert dt == datetime(2025, 11, 20, 8, 0, tzinfo=timezone.utc)

    def test_apple_health_format(self):
        dt = parse_timestamp("2025-11-20 08:00:00 -0500")
        assert dt.utcoffset() == timedelta(hours=-5)
        assert dt.astimezone(timezone.utc).hour == 13

    def test_naive_treated_as_utc(self):
        dt = parse_timestamp("2025-11-20T08:00:00")
        assert dt.tzinfo is not None
        assert dt.utcoffset() == timedelta(0)

    def test_datetime_passthrough(self):
        dt = datetime(2025, 1, 1, tzinfo=timezone.utc)
        assert parse_timestamp(dt) == dt

    def test_garbage_returns_none(self):
        assert parse_timestamp("not a date") is None
        assert parse_timestamp("") is None
        assert parse_timestamp(None) is None
        assert parse_timestamp(12345) is None


class TestToIso:
    def test_millisecond_precision_with_z(self):
        dt = datetime(2025, 11, 20, 8, 0, 0, 123456, tzinfo=timezone.utc)
        assert to_iso(dt) == "2025-11-20T08:00:00.123Z"

    def test_converts_to_utc(self):
        dt = datetime(2025, 11, 20, 8, 0, tzinfo=timezone(timedelta(hours=2)))
        assert to_iso(dt) == "2025-11-20T06:00:00.000Z"


def test_epoch_millis():
    assert epoch_millis(datetime(1970, 1, 1, 0, 0, 1, tzinfo=timezone.utc)) == 1000
