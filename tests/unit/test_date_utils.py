"""
Unit tests for date utility functions.
"""

from datetime import datetime, timezone, timedelta
from feedcrawl.utils.date_utils import get_current_timestamp, parse_timestamp, seconds_since


class TestGetCurrentTimestamp:
    """Tests for get_current_timestamp function."""

    def test_returns_iso_format(self):
        """Test that timestamp is in ISO format."""
        ts = get_current_timestamp()
        # Should be parseable as ISO format
        dt = datetime.fromisoformat(ts.replace('Z', '+00:00'))
        assert isinstance(dt, datetime)

    def test_includes_timezone(self):
        """Test that timestamp includes timezone info."""
        ts = get_current_timestamp()
        assert ts.endswith('+00:00')


class TestParseTimestamp:
    """Tests for parse_timestamp function."""

    def test_round_trip(self):
        ts = get_current_timestamp()
        assert parse_timestamp(ts).tzinfo is not None

    def test_zulu_suffix(self):
        dt = parse_timestamp("2025-01-15T10:30:00Z")
        assert dt == datetime(2025, 1, 15, 10, 30, tzinfo=timezone.utc)

    def test_naive_value_assumed_utc(self):
        dt = parse_timestamp("2025-01-15T10:30:00")
        assert dt.tzinfo == timezone.utc

    def test_invalid_returns_none(self):
        assert parse_timestamp("not a date") is None
        assert parse_timestamp(None) is None
        assert parse_timestamp("") is None


class TestSecondsSince:
    """Tests for seconds_since function."""

    def test_elapsed_seconds(self):
        ten_minutes_ago = (datetime.now(timezone.utc) - timedelta(minutes=10)).isoformat()
        elapsed = seconds_since(ten_minutes_ago)
        assert 595 <= elapsed <= 605

    def test_unparseable(self):
        assert seconds_since("garbage") is None
