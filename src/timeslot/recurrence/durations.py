"""
Durations

ISO 8601 duration parsing ("PT1H30M", "P1DT2H") and formatting.
Parsing is delegated to pydantic's timedelta validator, which also accepts
the "HH:MM:SS" form PostgreSQL uses for intervals.
"""
from datetime import timedelta
from typing import Union

from pydantic import TypeAdapter, ValidationError as PydanticValidationError

from ..errors import ParseError, ValidationError

_timedelta_adapter = TypeAdapter(timedelta)


def parse_duration(value: Union[str, timedelta]) -> timedelta:
    """Parse a positive duration"""
    if isinstance(value, timedelta):
        duration = value
    else:
        if not isinstance(value, str) or not value.strip():
            raise ParseError(f"Invalid duration: {value!r}")
        try:
            duration = _timedelta_adapter.validate_python(value.strip())
        except PydanticValidationError:
            raise ParseError(f"Invalid ISO 8601 duration: {value}")

    if duration <= timedelta(0):
        raise ValidationError("Duration must be positive", field="duration")
    return duration


def format_duration(duration: timedelta) -> str:
    """Format timedelta as ISO 8601, e.g. PT1H30M or P1DT2H"""
    total = int(duration.total_seconds())
    days, rem = divmod(total, 86400)
    hours, rem = divmod(rem, 3600)
    minutes, seconds = divmod(rem, 60)

    out = "P"
    if days:
        out += f"{days}D"
    if hours or minutes or seconds or not days:
        out += "T"
        if hours:
            out += f"{hours}H"
        if minutes:
            out += f"{minutes}M"
        if seconds or not (hours or minutes):
            out += f"{seconds}S"
    return out
