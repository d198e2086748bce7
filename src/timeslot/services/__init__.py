"""
Timeslot Services

Business logic for recurring time slot series.
"""
from .engine_service import EngineService
from .conflict_service import ConflictService, find_conflicts
from .version_store import SeriesVersionStore
from .series_service import SeriesService, CreateSeriesParams, SplitSeriesParams
from .scope_resolver import EditScope, EditAction, OccurrenceEdit, EditDecision, resolve_edit
from .recurring_service import RecurringService
from .expansion_scheduler import ExpansionScheduler

__all__ = [
    'EngineService',
    'ConflictService',
    'find_conflicts',
    'SeriesVersionStore',
    'SeriesService',
    'CreateSeriesParams',
    'SplitSeriesParams',
    'EditScope',
    'EditAction',
    'OccurrenceEdit',
    'EditDecision',
    'resolve_edit',
    'RecurringService',
    'ExpansionScheduler',
]
