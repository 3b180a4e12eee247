"""
Tests for target date parsing and segment construction.
"""

from datetime import date, datetime, timedelta, timezone

import pytest

from cloudsecure_flows.errors import ConfigError, ParseError
from cloudsecure_flows.time_utils import (
    TimeSegment,
    build_segments,
    format_rfc3339,
    format_target_date,
    parse_segment_width,
    parse_target_date,
    yesterday,
)


class TestParseTargetDate:
    """Test target date input handling."""

    def test_explicit_date(self):
        """Test a YYYYMMDD date parses."""
        assert parse_target_date("20240501") == date(2024, 5, 1)

    def test_empty_means_yesterday(self):
        """Test empty and missing input default to yesterday."""
        today = date(2024, 3, 1)

        assert parse_target_date("", today=today) == date(2024, 2, 29)
        assert parse_target_date(None, today=today) == date(2024, 2, 29)
        assert parse_target_date("   ", today=today) == date(2024, 2, 29)

    @pytest.mark.parametrize("value", ["2024-05-01", "240501", "2024050", "abcdefgh", "20241301"])
    def test_invalid_dates(self, value):
        """Test malformed and impossible dates are rejected."""
        with pytest.raises(ParseError):
            parse_target_date(value)

    def test_yesterday(self):
        """Test yesterday relative to a fixed day."""
        assert yesterday(date(2024, 1, 1)) == date(2023, 12, 31)

    def test_format_target_date(self):
        """Test the file name date form."""
        assert format_target_date(date(2024, 5, 1)) == "20240501"


class TestBuildSegments:
    """Test partitioning a day into retrieval segments."""

    @pytest.mark.parametrize("hours", [1, 2, 3, 4, 6, 8, 12, 24])
    def test_segments_cover_day(self, hours):
        """Test segments are contiguous, latest first, and span 24 hours."""
        target = date(2024, 5, 1)
        segments = build_segments(target, hours)

        assert len(segments) == 24 // hours
        assert segments[0].end == datetime(2024, 5, 2, tzinfo=timezone.utc)
        assert segments[-1].start == datetime(2024, 5, 1, tzinfo=timezone.utc)

        for later, earlier in zip(segments, segments[1:]):
            assert earlier.end == later.start
        for segment in segments:
            assert segment.end - segment.start == timedelta(hours=hours)

    def test_default_width_order(self):
        """Test the first segment is the last two hours of the day."""
        segments = build_segments(date(2024, 5, 1), 2)

        assert str(segments[0]) == "2024-05-01T22:00:00Z to 2024-05-02T00:00:00Z"
        assert str(segments[-1]) == "2024-05-01T00:00:00Z to 2024-05-01T02:00:00Z"

    @pytest.mark.parametrize("hours", [5, 7, 0, -2, 25])
    def test_width_must_divide_day(self, hours):
        """Test widths that do not evenly divide a day are rejected."""
        with pytest.raises(ConfigError):
            build_segments(date(2024, 5, 1), hours)

    def test_timedelta_width(self):
        """Test a sub-hour timedelta width."""
        segments = build_segments(date(2024, 5, 1), timedelta(minutes=30))

        assert len(segments) == 48

    def test_invalid_width_type(self):
        """Test a non-numeric width is a config error."""
        with pytest.raises(ConfigError):
            parse_segment_width("2h")


class TestRfc3339:
    """Test timestamp formatting."""

    def test_utc_suffix(self):
        """Test UTC renders with a Z suffix."""
        moment = datetime(2024, 5, 1, 22, tzinfo=timezone.utc)

        assert format_rfc3339(moment) == "2024-05-01T22:00:00Z"

    def test_segment_properties(self):
        """Test segment bounds render as RFC3339."""
        segment = TimeSegment(
            start=datetime(2024, 5, 1, tzinfo=timezone.utc),
            end=datetime(2024, 5, 1, 2, tzinfo=timezone.utc),
        )

        assert segment.start_rfc3339 == "2024-05-01T00:00:00Z"
        assert segment.end_rfc3339 == "2024-05-01T02:00:00Z"
