"""
Recurrence Rule

Structured form of an RFC 5545 RRULE restricted to the subset the
system supports. The wire format stays the RRULE token string; every
operation parses it once into a RecurrenceRule and works on that.
"""
import re
from dataclasses import dataclass, field, replace
from datetime import date, datetime, time, timezone
from enum import Enum
from typing import Optional, Tuple

from ..errors import ParseError


class Frequency(str, Enum):
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"


WEEKDAYS = ("MO", "TU", "WE", "TH", "FR", "SA", "SU")

_DAY_NAMES = {
    "MO": "Monday", "TU": "Tuesday", "WE": "Wednesday", "TH": "Thursday",
    "FR": "Friday", "SA": "Saturday", "SU": "Sunday",
}

_UNIT_NAMES = {
    Frequency.DAILY: ("day", "days"),
    Frequency.WEEKLY: ("week", "weeks"),
    Frequency.MONTHLY: ("month", "months"),
    Frequency.YEARLY: ("year", "years"),
}

_BLOCKED_FREQUENCIES = {"SECONDLY", "MINUTELY", "HOURLY"}

_UNTIL_RE = re.compile(r"^(\d{4})(\d{2})(\d{2})(?:T(\d{2})(\d{2})(\d{2})(Z)?)?$")
_BYDAY_RE = re.compile(r"^([+-]?\d{1,2})?(MO|TU|WE|TH|FR|SA|SU)$")


@dataclass(frozen=True)
class RecurrenceRule:
    """
    Parsed RRULE.

    freq=None means "no recurrence": the rule yields only dtstart.
    until is always a UTC instant (date-only UNTIL means end of that day).
    """
    freq: Optional[Frequency] = None
    interval: int = 1
    count: Optional[int] = None
    until: Optional[datetime] = None
    by_day: Tuple[str, ...] = field(default_factory=tuple)
    by_month_day: Tuple[int, ...] = field(default_factory=tuple)
    by_month: Tuple[int, ...] = field(default_factory=tuple)
    by_set_pos: Tuple[int, ...] = field(default_factory=tuple)

    @property
    def is_single(self) -> bool:
        return self.freq is None

    @property
    def is_bounded(self) -> bool:
        return self.is_single or self.count is not None or self.until is not None

    def format(self) -> str:
        """Serialize back to RRULE tokens (no "RRULE:" prefix)"""
        if self.freq is None:
            return ""
        parts = [f"FREQ={self.freq.value}"]
        if self.interval > 1:
            parts.append(f"INTERVAL={self.interval}")
        if self.by_day:
            parts.append("BYDAY=" + ",".join(self.by_day))
        if self.by_month_day:
            parts.append("BYMONTHDAY=" + ",".join(str(d) for d in self.by_month_day))
        if self.by_month:
            parts.append("BYMONTH=" + ",".join(str(m) for m in self.by_month))
        if self.by_set_pos:
            parts.append("BYSETPOS=" + ",".join(str(p) for p in self.by_set_pos))
        if self.count is not None:
            parts.append(f"COUNT={self.count}")
        if self.until is not None:
            parts.append("UNTIL=" + self.until.strftime("%Y%m%dT%H%M%SZ"))
        return ";".join(parts)

    def with_until(self, last_day: date) -> "RecurrenceRule":
        """
        Copy ending no later than the end of last_day (UTC).

        COUNT and an earlier UNTIL are kept, so the capped rule never
        yields a date the original rule did not.
        """
        until = datetime.combine(last_day, time(23, 59, 59), tzinfo=timezone.utc)
        if self.until is not None:
            until = min(until, self.until)
        return replace(self, until=until)

    def describe(self) -> str:
        """Human-readable description, e.g. 'Every 2 weeks on Monday, 10 times'"""
        if self.freq is None:
            return "Does not repeat"

        singular, plural = _UNIT_NAMES[self.freq]
        if self.interval == 1:
            text = "Daily" if self.freq is Frequency.DAILY else f"Every {singular}"
        else:
            text = f"Every {self.interval} {plural}"

        if self.by_set_pos and self.by_day:
            text += f" on the {_ordinal(self.by_set_pos[0])} {_day_name(self.by_day[0])}"
        elif self.by_day:
            text += " on " + ", ".join(_day_name(d) for d in self.by_day)
        elif self.by_month_day:
            text += " on day " + ", ".join(str(d) for d in self.by_month_day)

        if self.count is not None:
            text += f", {self.count} times"
        elif self.until is not None:
            text += f", until {self.until.date().isoformat()}"
        return text

    def __str__(self) -> str:
        return self.format()


def parse_rrule(text: Optional[str]) -> RecurrenceRule:
    """
    Parse RRULE text into a RecurrenceRule.

    Empty text, or text without FREQ, is a single non-repeating occurrence.
    Raises ParseError for anything outside the supported subset.
    """
    if text is None:
        return RecurrenceRule()

    raw = text.strip()
    if raw.upper().startswith("RRULE:"):
        raw = raw[len("RRULE:"):]
    if not raw:
        return RecurrenceRule()

    tokens = {}
    for part in raw.split(";"):
        if not part:
            continue
        key, sep, value = part.partition("=")
        key = key.strip().upper()
        value = value.strip()
        if not sep or not value:
            raise ParseError(f"Invalid RRULE part '{part}'")
        if key in tokens:
            raise ParseError(f"Duplicate RRULE key {key}")
        tokens[key] = value

    if "FREQ" not in tokens:
        return RecurrenceRule()

    freq_value = tokens.pop("FREQ").upper()
    if freq_value in _BLOCKED_FREQUENCIES:
        raise ParseError(f"FREQ={freq_value} is not allowed. Use DAILY or less frequent.")
    try:
        freq = Frequency(freq_value)
    except ValueError:
        raise ParseError(f"Invalid RRULE FREQ={freq_value}")

    interval = _positive_int(tokens.pop("INTERVAL", "1"), "INTERVAL")
    count = tokens.pop("COUNT", None)
    until = tokens.pop("UNTIL", None)

    by_day = tuple(_parse_by_day(v) for v in _split_list(tokens.pop("BYDAY", "")))
    by_month_day = tuple(
        _bounded_int(v, "BYMONTHDAY", 1, 31, allow_negative=True)
        for v in _split_list(tokens.pop("BYMONTHDAY", ""))
    )
    by_month = tuple(
        _bounded_int(v, "BYMONTH", 1, 12) for v in _split_list(tokens.pop("BYMONTH", ""))
    )
    by_set_pos = tuple(
        _bounded_int(v, "BYSETPOS", 1, 366, allow_negative=True)
        for v in _split_list(tokens.pop("BYSETPOS", ""))
    )

    if tokens:
        raise ParseError(f"Unsupported RRULE parameter(s): {', '.join(sorted(tokens))}")

    return RecurrenceRule(
        freq=freq,
        interval=interval,
        count=_positive_int(count, "COUNT") if count is not None else None,
        until=_parse_until(until) if until is not None else None,
        by_day=by_day,
        by_month_day=by_month_day,
        by_month=by_month,
        by_set_pos=by_set_pos,
    )


def _split_list(value: str):
    return [v.strip() for v in value.split(",") if v.strip()]


def _positive_int(value: str, name: str) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ParseError(f"{name} must be an integer, got '{value}'")
    if number < 1:
        raise ParseError(f"{name} must be a positive integer, got {number}")
    return number


def _bounded_int(value: str, name: str, low: int, high: int, allow_negative: bool = False) -> int:
    try:
        number = int(value)
    except ValueError:
        raise ParseError(f"{name} must be an integer, got '{value}'")
    magnitude = abs(number) if allow_negative else number
    if not low <= magnitude <= high:
        raise ParseError(f"{name} value {number} out of range")
    return number


def _parse_by_day(value: str) -> str:
    match = _BYDAY_RE.match(value.upper())
    if not match:
        raise ParseError(f"Invalid BYDAY value '{value}'")
    return value.upper()


def _parse_until(value: str) -> datetime:
    match = _UNTIL_RE.match(value.upper())
    if not match:
        raise ParseError(f"Invalid UNTIL value '{value}' (expected YYYYMMDD or YYYYMMDDTHHMMSSZ)")
    year, month, day, hour, minute, second, _ = match.groups()
    try:
        if hour is None:
            # Date-only UNTIL includes the whole day
            return datetime(int(year), int(month), int(day), 23, 59, 59, tzinfo=timezone.utc)
        return datetime(
            int(year), int(month), int(day), int(hour), int(minute), int(second),
            tzinfo=timezone.utc,
        )
    except ValueError as e:
        raise ParseError(f"Invalid UNTIL value '{value}': {e}")


def _day_name(code: str) -> str:
    return _DAY_NAMES.get(code[-2:], code)


def _ordinal(pos: int) -> str:
    if pos == -1:
        return "last"
    if pos < 0:
        return f"{_ordinal(-pos)} to last"
    suffix = {1: "st", 2: "nd", 3: "rd"}.get(pos if pos < 20 else pos % 10, "th")
    return f"{pos}{suffix}"
