"""Tests for duration and timestamp helpers."""

from datetime import datetime, timedelta, timezone

import pytest

from synapsebot.util.time_utils import (
    format_duration,
    humanize_duration,
    is_valid_timeout,
    parse_duration,
    parse_reminder_duration,
    parse_timestamp,
    time_remaining,
    to_iso,
)

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


class TestTimestamps:
    def test_to_iso_uses_milliseconds_and_z(self):
        moment = datetime(2026, 10, 19, 12, 0, 0, 123456, tzinfo=timezone.utc)
        assert to_iso(moment) == "2026-10-19T12:00:00.123Z"

    def test_to_iso_treats_naive_as_utc(self):
        assert to_iso(datetime(2026, 10, 19, 12, 0)) == "2026-10-19T12:00:00.000Z"

    @pytest.mark.parametrize("value", [
        "2026-10-19T12:00:00.000Z",
        "2026-10-19T12:00:00Z",
        "2026-10-19T14:00:00+02:00",
        "2026-10-19T12:00:00",
        NOW.timestamp(),
        int(NOW.timestamp()),
        NOW,
    ])
    def test_parse_timestamp_accepts_stored_forms(self, value):
        assert parse_timestamp(value) == NOW

    @pytest.mark.parametrize("value", [None, "", "tomorrow", True, [], {}])
    def test_parse_timestamp_rejects_garbage(self, value):
        assert parse_timestamp(value) is None

    def test_parse_timestamp_is_aware(self):
        assert parse_timestamp("2026-10-19T12:00:00").tzinfo is not None


class TestDurations:
    @pytest.mark.parametrize("text,expected", [
        ("30s", timedelta(seconds=30)),
        ("10m", timedelta(minutes=10)),
        ("1h", timedelta(hours=1)),
        ("2d", timedelta(days=2)),
        ("1w", timedelta(weeks=1)),
        ("1h30m", timedelta(hours=1, minutes=30)),
        ("1H", timedelta(hours=1)),
    ])
    def test_parse_duration(self, text, expected):
        assert parse_duration(text) == expected

    @pytest.mark.parametrize("text", ["", "abc", "10", "5x", "0m", "1h and more"])
    def test_parse_duration_invalid(self, text):
        assert parse_duration(text) is None

    @pytest.mark.parametrize("text,expected", [
        ("1m", timedelta(minutes=1)),
        ("2h", timedelta(hours=2)),
        ("1d12h30m", timedelta(days=1, hours=12, minutes=30)),
        ("30d", timedelta(days=30)),
    ])
    def test_parse_reminder_duration(self, text, expected):
        assert parse_reminder_duration(text) == expected

    @pytest.mark.parametrize("text", ["", "30s", "24h", "60m", "31d", "1h1h", "30d1m", "0m"])
    def test_parse_reminder_duration_invalid(self, text):
        assert parse_reminder_duration(text) is None

    def test_is_valid_timeout(self):
        assert is_valid_timeout("28d") is True
        assert is_valid_timeout("29d") is False
        assert is_valid_timeout("nope") is False

    def test_format_duration(self):
        assert format_duration(timedelta(days=1, hours=2, minutes=3, seconds=4)) == "1d 2h 3m 4s"
        assert format_duration(timedelta(hours=1)) == "1h"
        assert format_duration(timedelta()) == "0s"
        assert format_duration(timedelta(seconds=-5)) == "0s"

    def test_humanize_duration(self):
        assert humanize_duration(timedelta(days=1, hours=2)) == "1 day, 2 hours"
        assert humanize_duration(timedelta(days=2, minutes=1)) == "2 days, 1 minute"
        assert humanize_duration(timedelta(seconds=30)) == "0 minutes"

    def test_time_remaining(self):
        assert time_remaining(to_iso(NOW + timedelta(hours=1, minutes=5)), now=NOW) == "1h 5m"
        assert time_remaining(to_iso(NOW - timedelta(hours=1)), now=NOW) == "0s"
        assert time_remaining("garbage", now=NOW) == "0s"
