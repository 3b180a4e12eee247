"""
Time utilities for target dates and retrieval segments.
"""

import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Union

from .errors import ConfigError, ParseError

DAY: timedelta = timedelta(days=1)
DATE_FORMAT = "%Y%m%d"


@dataclass(frozen=True)
class TimeSegment:
    """Half-open time window [start, end)."""

    start: datetime
    end: datetime

    @property
    def start_rfc3339(self) -> str:
        return format_rfc3339(self.start)

    @property
    def end_rfc3339(self) -> str:
        return format_rfc3339(self.end)

    def __str__(self) -> str:
        return f"{self.start_rfc3339} to {self.end_rfc3339}"


def format_rfc3339(moment: datetime) -> str:
    """Format a timezone-aware datetime as RFC3339 ('Z' for UTC)."""
    text = moment.isoformat(timespec="seconds")
    return text.replace("+00:00", "Z")


def yesterday(today: Optional[date] = None) -> date:
    return (today or date.today()) - DAY


def parse_target_date(date_input: Optional[str], today: Optional[date] = None) -> date:
    """
    Parse the date to export.

    Accepts YYYYMMDD; empty or None means yesterday.
    """
    if date_input is None or not date_input.strip():
        return yesterday(today)

    text = date_input.strip()
    if not re.fullmatch(r"\d{8}", text):
        raise ParseError(f"Invalid date format: {date_input}. Use YYYYMMDD")

    try:
        return datetime.strptime(text, DATE_FORMAT).date()
    except ValueError as e:
        raise ParseError(f"Invalid date: {date_input} ({e})")


def format_target_date(target: date) -> str:
    return target.strftime(DATE_FORMAT)


def parse_segment_width(width: Union[int, float, timedelta]) -> timedelta:
    """Accept hours as a number or a timedelta."""
    match width:
        case timedelta():
            return width
        case int() | float():
            return timedelta(hours=width)
        case _:
            raise ConfigError(f"Invalid segment width: {width!r}")


def build_segments(
    target: date, width: Union[int, float, timedelta], tz: timezone = timezone.utc
) -> list[TimeSegment]:
    """
    Partition [target 00:00, target+1 00:00) into equal segments, latest first.
    """
    step = parse_segment_width(width)
    if step <= timedelta(0) or DAY % step:
        raise ConfigError(f"Segment width {step} does not evenly divide 24 hours")

    day_start = datetime.combine(target, time.min, tzinfo=tz)
    count = DAY // step

    return [
        TimeSegment(start=day_start + step * i, end=day_start + step * (i + 1))
        for i in reversed(range(count))
    ]
