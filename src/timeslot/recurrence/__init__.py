"""
Recurrence

RRULE parsing, occurrence expansion, durations and time ranges.
"""
from .rule import Frequency, RecurrenceRule, parse_rrule
from .ranges import TimeRange, parse_time_range, coerce_time_range, parse_instant, format_instant
from .durations import parse_duration, format_duration
from .expander import expand, expand_list

__all__ = [
    'Frequency',
    'RecurrenceRule',
    'parse_rrule',
    'TimeRange',
    'parse_time_range',
    'coerce_time_range',
    'parse_instant',
    'format_instant',
    'parse_duration',
    'format_duration',
    'expand',
    'expand_list',
]
