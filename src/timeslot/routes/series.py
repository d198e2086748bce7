"""
Series Routes

Endpoints for recurring time slot series: previews, group management,
version splits/templates and single-occurrence edits.
"""
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from ..errors import TimeslotError
from ..models.conflict import ConflictScope
from ..models.result import OperationResult
from ..recurrence.ranges import TimeRange
from ..services.engine_service import get_engine_service
from ..services.scope_resolver import EditScope, OccurrenceEdit
from ..services.series_service import CreateSeriesParams, SplitSeriesParams

logger = logging.getLogger("timeslot.routes.series")
router = APIRouter(prefix="/series", tags=["series"])

ERROR_STATUS = {
    "parse_error": 400,
    "validation_error": 400,
    "cancelled": 400,
    "not_found": 404,
    "state_invariant_error": 409,
    "constraint_violation": 409,
    "persistence_error": 500,
}


# ============================================
# Request/Response Models
# ============================================

class PreviewOccurrencesRequest(BaseModel):
    """Schedule to expand for a live preview"""
    rrule: Optional[str] = None
    dtstart: str
    duration: str
    limit: Optional[int] = None
    timezone: Optional[str] = None


class IntervalModel(BaseModel):
    start: str
    end: str


class PreviewConflictsRequest(BaseModel):
    """Candidate intervals checked against one scope"""
    entity_table: str
    scope_column: Optional[str] = None
    scope_value: Optional[Any] = None
    time_slot_column: str = "time_slot"
    intervals: List[IntervalModel]


class CreateSeriesRequest(BaseModel):
    """Create series group request"""
    group_name: str
    entity_table: str
    rrule: str
    dtstart: str
    duration: str
    entity_template: Dict[str, Any] = {}
    group_description: Optional[str] = None
    group_color: Optional[str] = None
    timezone: Optional[str] = None
    time_slot_property: Optional[str] = None
    scope_column: Optional[str] = None
    expand_now: bool = True
    skip_conflicts: bool = False
    limit: Optional[int] = None


class UpdateGroupRequest(BaseModel):
    """Update group display info"""
    display_name: Optional[str] = None
    description: Optional[str] = None
    color: Optional[str] = None


class SplitSeriesRequest(BaseModel):
    """Split current version request"""
    split_date: str
    new_dtstart: str
    new_duration: Optional[str] = None
    new_template: Optional[Dict[str, Any]] = None
    new_rrule: Optional[str] = None
    skip_conflicts: bool = False


class UpdateTemplateRequest(BaseModel):
    template: Dict[str, Any]
    skip_exceptions: bool = True


class ExpandSeriesRequest(BaseModel):
    until: Optional[str] = None


class OccurrenceEditRequest(BaseModel):
    """Edit of one occurrence at a chosen scope"""
    entity_table: str
    entity_id: int
    scope: EditScope = EditScope.THIS_ONLY
    values: Dict[str, Any] = {}
    new_time_slot: Optional[IntervalModel] = None
    cancel: bool = False
    reason: Optional[str] = None
    split_date: Optional[str] = None
    new_dtstart: Optional[str] = None
    new_duration: Optional[str] = None
    new_rrule: Optional[str] = None


class CancelOccurrenceRequest(BaseModel):
    entity_table: str
    entity_id: int
    reason: Optional[str] = None


class RescheduleOccurrenceRequest(BaseModel):
    entity_table: str
    entity_id: int
    new_time_slot: IntervalModel


# ============================================
# Helpers
# ============================================

def _respond(result: OperationResult) -> dict:
    """Return the result body, or raise HTTPException for a failed result"""
    if not result.success:
        status = ERROR_STATUS.get(result.error_kind, 400)
        raise HTTPException(status_code=status, detail=result.message)
    return result.to_dict()


def _raise_for(error: TimeslotError):
    raise HTTPException(status_code=ERROR_STATUS.get(error.kind, 400), detail=error.message)


def _interval(model: IntervalModel) -> TimeRange:
    try:
        return TimeRange.of(model.start, model.end)
    except TimeslotError as e:
        _raise_for(e)


# ============================================
# Previews
# ============================================

@router.post("/preview/occurrences")
async def preview_occurrences(request: PreviewOccurrencesRequest):
    """Expand a schedule without persisting anything"""
    engine = get_engine_service()
    result = engine.recurring_service.preview_occurrences(
        rrule=request.rrule,
        dtstart=request.dtstart,
        duration=request.duration,
        limit=request.limit,
        timezone=request.timezone,
    )
    return _respond(result)


@router.post("/preview/conflicts")
async def preview_conflicts(request: PreviewConflictsRequest):
    """Check candidate intervals against existing rows"""
    engine = get_engine_service()
    scope = ConflictScope(
        entity_table=request.entity_table,
        scope_column=request.scope_column,
        scope_value=request.scope_value,
        time_slot_column=request.time_slot_column,
    )
    intervals = [_interval(i) for i in request.intervals]
    result = await engine.recurring_service.preview_conflicts(scope, intervals)
    return _respond(result)


# ============================================
# Groups
# ============================================

@router.post("")
@router.post("/")
async def create_series(request: CreateSeriesRequest):
    """Create a series group with its first version"""
    engine = get_engine_service()
    params = CreateSeriesParams(**request.model_dump())
    result = await engine.recurring_service.create_series(params)
    return _respond(result)


@router.get("/groups")
async def list_groups(entity_table: Optional[str] = None):
    """List series groups, most recently updated first"""
    engine = get_engine_service()
    groups = await engine.series_service.list_groups(entity_table)
    return [g.to_dict() for g in groups]


@router.get("/groups/{group_id}")
async def get_group(group_id: int):
    """Group summary with version history"""
    engine = get_engine_service()
    try:
        return await engine.series_service.group_summary(group_id)
    except TimeslotError as e:
        _raise_for(e)


@router.patch("/groups/{group_id}")
async def update_group(group_id: int, request: UpdateGroupRequest):
    """Update group name, description or color"""
    engine = get_engine_service()
    result = await engine.series_service.update_series_group_info(
        group_id,
        display_name=request.display_name,
        description=request.description,
        color=request.color,
    )
    return _respond(result)


@router.delete("/groups/{group_id}")
async def delete_group(group_id: int, delete_entities: bool = True):
    """Delete a group with its versions and instances"""
    engine = get_engine_service()
    result = await engine.recurring_service.delete_series_group(group_id, delete_entities)
    return _respond(result)


@router.get("/groups/{group_id}/instances")
async def list_group_instances(group_id: int, filter: str = "all"):
    """Instances of a group: all, upcoming, past or exceptions"""
    engine = get_engine_service()
    try:
        instances = await engine.series_service.list_group_instances(group_id, filter)
    except TimeslotError as e:
        _raise_for(e)
    return [i.to_dict() for i in instances]


# ============================================
# Versions
# ============================================

@router.post("/versions/{series_id}/split")
async def split_series(series_id: int, request: SplitSeriesRequest):
    """Change the schedule or template from a future date onwards"""
    engine = get_engine_service()
    params = SplitSeriesParams(series_id=series_id, **request.model_dump())
    result = await engine.recurring_service.split_series(params)
    return _respond(result)


@router.put("/versions/{series_id}/template")
async def update_template(series_id: int, request: UpdateTemplateRequest):
    """Update a version's template and its future non-exception occurrences"""
    engine = get_engine_service()
    result = await engine.recurring_service.update_series_template(
        series_id, request.template, request.skip_exceptions
    )
    return _respond(result)


@router.post("/versions/{series_id}/expand")
async def expand_series(series_id: int, request: ExpandSeriesRequest):
    """Materialize occurrences that do not exist yet"""
    engine = get_engine_service()
    result = await engine.series_service.expand_series(series_id, request.until)
    return _respond(result)


# ============================================
# Occurrences
# ============================================

@router.get("/membership/{entity_table}/{entity_id}")
async def get_membership(entity_table: str, entity_id: int):
    """Whether an entity row belongs to a series"""
    engine = get_engine_service()
    membership = await engine.recurring_service.get_series_membership(entity_table, entity_id)
    return membership.to_dict()


@router.post("/occurrences/edit")
async def edit_occurrence(request: OccurrenceEditRequest):
    """Apply an occurrence edit at this_only, this_and_future or all scope"""
    engine = get_engine_service()
    edit = OccurrenceEdit(
        entity_table=request.entity_table,
        entity_id=request.entity_id,
        scope=request.scope,
        values=request.values,
        new_time_slot=_interval(request.new_time_slot) if request.new_time_slot else None,
        cancel=request.cancel,
        reason=request.reason,
        split_date=request.split_date,
        new_dtstart=request.new_dtstart,
        new_duration=request.new_duration,
        new_rrule=request.new_rrule,
    )
    result = await engine.recurring_service.apply_occurrence_edit(edit)
    return _respond(result)


@router.post("/occurrences/cancel")
async def cancel_occurrence(request: CancelOccurrenceRequest):
    """Cancel one occurrence"""
    engine = get_engine_service()
    result = await engine.series_service.cancel_occurrence(
        request.entity_table, request.entity_id, request.reason
    )
    return _respond(result)


@router.post("/occurrences/reschedule")
async def reschedule_occurrence(request: RescheduleOccurrenceRequest):
    """Move one occurrence to another time"""
    engine = get_engine_service()
    result = await engine.series_service.reschedule_occurrence(
        request.entity_table, request.entity_id, _interval(request.new_time_slot)
    )
    return _respond(result)
