"""
Time Ranges

Half-open UTC intervals [start, end) and their wire form.

Ranges are persisted as "[2025-01-06T09:00:00Z,2025-01-06T10:00:00Z)".
Parsing also accepts PostgreSQL's tstzrange text output
('["2025-01-06 09:00:00+00","2025-01-06 10:00:00+00")') and asyncpg
Range objects, since rows come back in whichever shape the driver uses.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from dateutil.parser import isoparse

from ..errors import ParseError, ValidationError


def parse_instant(value: Any) -> datetime:
    """Parse an ISO-8601 instant, normalized to UTC. Naive input is taken as UTC."""
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str) and value.strip():
        try:
            dt = isoparse(value.strip())
        except (ValueError, OverflowError) as e:
            raise ParseError(f"Invalid datetime '{value}': {e}")
    else:
        raise ParseError(f"Invalid datetime: {value!r}")

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_instant(value: datetime) -> str:
    """Format instant as UTC ISO-8601 with a Z suffix"""
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


@dataclass(frozen=True, order=True)
class TimeRange:
    """Half-open interval [start, end) in UTC"""
    start: datetime
    end: datetime

    def __post_init__(self):
        if self.end <= self.start:
            raise ValidationError(
                f"End {format_instant(self.end)} must be after start {format_instant(self.start)}"
            )

    @property
    def duration(self):
        return self.end - self.start

    def overlaps(self, other: "TimeRange") -> bool:
        """Intervals touching at a boundary do not overlap"""
        return self.start < other.end and other.start < self.end

    def to_wire(self) -> str:
        return f"[{format_instant(self.start)},{format_instant(self.end)})"

    def to_dict(self) -> dict:
        return {"start": format_instant(self.start), "end": format_instant(self.end)}

    @classmethod
    def of(cls, start: Any, end: Any) -> "TimeRange":
        return cls(parse_instant(start), parse_instant(end))

    def __str__(self) -> str:
        return self.to_wire()


def parse_time_range(text: str) -> TimeRange:
    """Parse "[start,end)" text. Only the half-open form is accepted."""
    if not isinstance(text, str):
        raise ParseError(f"Invalid time range: {text!r}")

    raw = text.strip()
    if len(raw) < 5 or raw[0] != "[" or raw[-1] != ")":
        raise ParseError(f"Time range must be half-open '[start,end)': {text}")

    parts = raw[1:-1].split(",")
    if len(parts) != 2:
        raise ParseError(f"Time range must have exactly two bounds: {text}")

    start, end = (p.strip().strip('"') for p in parts)
    if not start or not end:
        raise ParseError(f"Unbounded time ranges are not supported: {text}")
    return TimeRange(parse_instant(start), parse_instant(end))


def coerce_time_range(value: Any) -> TimeRange:
    """Accept TimeRange, range text, (start, end) pairs or driver Range objects"""
    if isinstance(value, TimeRange):
        return value
    if isinstance(value, str):
        return parse_time_range(value)
    if isinstance(value, (tuple, list)) and len(value) == 2:
        return TimeRange.of(value[0], value[1])
    if isinstance(value, dict) and "start" in value and "end" in value:
        return TimeRange.of(value["start"], value["end"])
    # asyncpg.Range and similar
    lower = getattr(value, "lower", None)
    upper = getattr(value, "upper", None)
    if lower is not None and upper is not None:
        return TimeRange.of(lower, upper)
    raise ParseError(f"Cannot interpret {value!r} as a time range")
