"""
Recurrence Expander

Turns (dtstart, duration, RRULE) into an ordered, bounded, lazy sequence
of half-open occurrence intervals. Pure and synchronous: the same inputs
always yield the same sequence, so callers may simply call expand() again
to restart it.
"""
import logging
from datetime import datetime, timedelta
from itertools import islice
from typing import Iterator, List, Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dateutil import rrule as du_rrule

from ..cancellation import CancellationToken
from ..errors import ParseError, ValidationError
from .durations import parse_duration
from .ranges import TimeRange, parse_instant
from .rule import Frequency, RecurrenceRule, parse_rrule

logger = logging.getLogger("timeslot.recurrence.expander")

_FREQ_MAP = {
    Frequency.DAILY: du_rrule.DAILY,
    Frequency.WEEKLY: du_rrule.WEEKLY,
    Frequency.MONTHLY: du_rrule.MONTHLY,
    Frequency.YEARLY: du_rrule.YEARLY,
}

_WEEKDAY_MAP = {
    "MO": du_rrule.MO, "TU": du_rrule.TU, "WE": du_rrule.WE, "TH": du_rrule.TH,
    "FR": du_rrule.FR, "SA": du_rrule.SA, "SU": du_rrule.SU,
}


def expand(
    dtstart: Union[str, datetime],
    duration: Union[str, timedelta],
    rrule: Union[str, RecurrenceRule, None],
    limit: Optional[int] = None,
    window_end: Optional[Union[str, datetime]] = None,
    tz: Optional[str] = None,
    cancel: Optional[CancellationToken] = None,
) -> Iterator[TimeRange]:
    """
    Expand a recurrence into occurrence intervals.

    Args:
        dtstart: Anchor instant of the first occurrence
        duration: Length of every occurrence (ISO 8601 or timedelta)
        rrule: RRULE text or an already parsed RecurrenceRule
        limit: Maximum number of intervals to emit
        window_end: Occurrences starting at or after this instant are not emitted
        tz: IANA timezone for wall-clock expansion (DST-stable local times)
        cancel: Checked before each occurrence is produced

    Raises ParseError / ValidationError eagerly, before the first item.
    """
    start = parse_instant(dtstart)
    length = parse_duration(duration)
    rule = rrule if isinstance(rrule, RecurrenceRule) else parse_rrule(rrule)
    end_bound = parse_instant(window_end) if window_end is not None else None

    if limit is not None and limit < 0:
        raise ValidationError("limit must not be negative", field="limit")
    if not rule.is_bounded and limit is None and end_bound is None:
        raise ValidationError(
            "RRULE has neither COUNT nor UNTIL; a limit or window end is required",
            field="limit",
        )

    zone = _load_zone(tz)
    occurrences = _iter_starts(start, rule, zone)
    if limit is not None:
        occurrences = islice(occurrences, limit)
    return _emit(occurrences, length, rule, end_bound, cancel)


def expand_list(*args, **kwargs) -> List[TimeRange]:
    """Materialized form of expand()"""
    return list(expand(*args, **kwargs))


def _emit(starts, length, rule, end_bound, cancel) -> Iterator[TimeRange]:
    for occ_start in starts:
        if cancel is not None:
            cancel.raise_if_cancelled()
        if rule.until is not None and occ_start > rule.until:
            return
        if end_bound is not None and occ_start >= end_bound:
            return
        yield TimeRange(occ_start, occ_start + length)


def _iter_starts(start: datetime, rule: RecurrenceRule, zone: Optional[ZoneInfo]) -> Iterator[datetime]:
    if rule.is_single:
        yield start
        return

    local_start = start.astimezone(zone) if zone is not None else start
    generator = du_rrule.rrule(
        _FREQ_MAP[rule.freq],
        dtstart=local_start,
        interval=rule.interval,
        count=rule.count,
        byweekday=[_weekday(code) for code in rule.by_day] or None,
        bymonthday=list(rule.by_month_day) or None,
        bymonth=list(rule.by_month) or None,
        bysetpos=list(rule.by_set_pos) or None,
        cache=False,
    )
    for occurrence in generator:
        if zone is not None:
            # Re-attach the zone so the UTC offset reflects DST on that date
            occurrence = occurrence.replace(tzinfo=zone)
        yield parse_instant(occurrence)


def _weekday(code: str):
    day = _WEEKDAY_MAP[code[-2:]]
    if len(code) > 2:
        return day(int(code[:-2]))
    return day


def _load_zone(tz: Optional[str]) -> Optional[ZoneInfo]:
    if not tz:
        return None
    try:
        return ZoneInfo(tz)
    except (ZoneInfoNotFoundError, ValueError):
        raise ParseError(f"Unknown timezone '{tz}'")
