"""
Scope Resolver

Maps an edit of one occurrence plus the scope the user picked
(this_only / this_and_future / all) to the engine operation that
carries it out. Pure: no I/O, no clock.
"""
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Dict, Optional, Union

from ..errors import ValidationError
from ..models.series_instance import SeriesMembership
from .series_service import parse_date


class EditScope(str, Enum):
    """How far an occurrence edit reaches"""
    THIS_ONLY = "this_only"
    THIS_AND_FUTURE = "this_and_future"
    ALL = "all"


class EditAction(str, Enum):
    """Engine operation selected for an edit"""
    MODIFY_OCCURRENCE = "modify_occurrence"
    CANCEL_OCCURRENCE = "cancel_occurrence"
    RESCHEDULE_OCCURRENCE = "reschedule_occurrence"
    SPLIT_SERIES = "split_series"
    UPDATE_TEMPLATE = "update_template"


@dataclass
class OccurrenceEdit:
    """
    An edit request for one entity row.

    values: changed entity fields (without the time slot)
    new_time_slot: set when the occurrence moves
    cancel: delete the occurrence instead of editing it
    split_date: for this_and_future, defaults to the occurrence date
    """
    entity_table: str
    entity_id: int
    scope: EditScope
    values: Dict[str, Any] = field(default_factory=dict)
    new_time_slot: Any = None
    cancel: bool = False
    reason: Optional[str] = None
    split_date: Optional[Union[str, date]] = None
    new_dtstart: Any = None
    new_duration: Any = None
    new_rrule: Optional[str] = None


@dataclass
class EditDecision:
    """Which operation to run and with which arguments"""
    action: EditAction
    series_id: Optional[int] = None
    split_date: Optional[date] = None
    arguments: Dict[str, Any] = field(default_factory=dict)


def resolve_edit(edit: OccurrenceEdit, membership: SeriesMembership) -> EditDecision:
    """
    Decide how an occurrence edit is applied.

    Raises ValidationError when the request cannot be honored at the
    chosen scope; a this_and_future edit is never narrowed to this_only.
    """
    try:
        scope = EditScope(edit.scope)
    except ValueError:
        valid = ", ".join(s.value for s in EditScope)
        raise ValidationError(f"Unknown edit scope '{edit.scope}' (expected one of: {valid})", field="scope")
    if not membership.is_member:
        raise ValidationError(
            f"{edit.entity_table} #{edit.entity_id} is not part of a series", field="entity_id"
        )

    if scope is EditScope.THIS_ONLY:
        return _resolve_this_only(edit, membership)
    if scope is EditScope.THIS_AND_FUTURE:
        return _resolve_this_and_future(edit, membership)
    return _resolve_all(edit, membership)


def _resolve_this_only(edit: OccurrenceEdit, membership: SeriesMembership) -> EditDecision:
    if edit.cancel:
        return EditDecision(
            EditAction.CANCEL_OCCURRENCE,
            series_id=membership.series_id,
            arguments={"reason": edit.reason},
        )
    if edit.new_time_slot is not None:
        return EditDecision(
            EditAction.RESCHEDULE_OCCURRENCE,
            series_id=membership.series_id,
            arguments={"new_time_slot": edit.new_time_slot, "values": dict(edit.values)},
        )
    if not edit.values:
        raise ValidationError("Nothing to change for this occurrence", field="values")
    return EditDecision(
        EditAction.MODIFY_OCCURRENCE,
        series_id=membership.series_id,
        arguments={"values": dict(edit.values)},
    )


def _resolve_this_and_future(edit: OccurrenceEdit, membership: SeriesMembership) -> EditDecision:
    if edit.cancel:
        raise ValidationError(
            "Cancelling this and future occurrences is a split; retry with a new schedule "
            "or delete the series",
            field="scope",
        )
    if edit.new_time_slot is not None:
        raise ValidationError(
            "Moving this and future occurrences takes a new start time, not a new time slot",
            field="new_time_slot",
        )
    raw_date = edit.split_date if edit.split_date is not None else membership.occurrence_date
    if raw_date is None:
        raise ValidationError(
            "A split date is required for this and future occurrences; retry with a valid split date",
            field="split_date",
        )
    try:
        split_date = parse_date(raw_date, "split_date")
    except ValidationError:
        raise ValidationError(
            f"Invalid split date '{raw_date}'; retry with a valid split date", field="split_date"
        )
    if edit.new_dtstart is None:
        raise ValidationError(
            "A new start time is required to change this and future occurrences", field="new_dtstart"
        )

    return EditDecision(
        EditAction.SPLIT_SERIES,
        series_id=membership.series_id,
        split_date=split_date,
        arguments={
            "new_dtstart": edit.new_dtstart,
            "new_duration": edit.new_duration,
            "new_template": dict(edit.values) or None,
            "new_rrule": edit.new_rrule,
        },
    )


def _resolve_all(edit: OccurrenceEdit, membership: SeriesMembership) -> EditDecision:
    if edit.cancel:
        raise ValidationError("Cancelling every occurrence means deleting the series", field="scope")
    if edit.new_time_slot is not None:
        raise ValidationError(
            "Moving every occurrence changes the schedule; use this and future instead", field="scope"
        )
    if not edit.values:
        raise ValidationError("Nothing to change for the series", field="values")
    return EditDecision(
        EditAction.UPDATE_TEMPLATE,
        series_id=membership.series_id,
        arguments={"template": dict(edit.values)},
    )
