"""
Recurring Service

Interface consumed by UI collaborators: live previews, series
management and scope-resolved occurrence edits. Every call returns data
or an OperationResult; errors never escape as exceptions.
"""
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Sequence, Union

from ..cancellation import CancellationToken
from ..config import Config
from ..errors import TimeslotError, ValidationError
from ..models.conflict import ConflictScope
from ..models.result import OperationResult
from ..models.series_instance import SeriesMembership
from ..recurrence.expander import expand
from ..recurrence.rule import parse_rrule
from .conflict_service import ConflictService
from .scope_resolver import EditAction, OccurrenceEdit, resolve_edit
from .series_service import CreateSeriesParams, SeriesService, SplitSeriesParams

logger = logging.getLogger("timeslot.services.recurring")


class RecurringService:
    """Facade over expansion, conflict preview and the series engine"""

    def __init__(
        self,
        series_service: SeriesService,
        conflict_service: Optional[ConflictService] = None,
        preview_limit: int = Config.PREVIEW_LIMIT,
    ):
        self.series = series_service
        self.conflicts = conflict_service or series_service.conflicts
        self.preview_limit = preview_limit

    # ============================================
    # Previews (read-only)
    # ============================================

    def preview_occurrences(
        self,
        rrule: Optional[str],
        dtstart: Union[str, datetime],
        duration: Union[str, timedelta],
        limit: Optional[int] = None,
        timezone: Optional[str] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> OperationResult:
        """Occurrences of a schedule, capped at `limit` (default PREVIEW_LIMIT)"""
        try:
            rule = parse_rrule(rrule)
            occurrences = list(expand(
                dtstart,
                duration,
                rule,
                limit=self.preview_limit if limit is None else limit,
                tz=timezone,
                cancel=cancel,
            ))
        except TimeslotError as e:
            logger.warning(f"Preview failed for rrule='{rrule}': {e.message}")
            return OperationResult(
                success=False,
                message=f"Failed to generate preview: {e.message}",
                error_kind=e.kind,
            )

        return OperationResult.ok(
            f"{len(occurrences)} occurrences",
            description=rule.describe(),
            occurrences=[o.to_dict() for o in occurrences],
        )

    async def preview_conflicts(
        self,
        scope: ConflictScope,
        intervals: Sequence[Any],
        cancel: Optional[CancellationToken] = None,
    ) -> OperationResult:
        """Conflict flag per candidate interval, in input order"""
        try:
            infos = await self.conflicts.detect_conflicts(scope, intervals, cancel=cancel)
        except TimeslotError as e:
            logger.warning(f"Conflict preview failed on {scope.entity_table}: {e.message}")
            return OperationResult(
                success=False,
                message=f"Failed to check conflicts: {e.message}",
                error_kind=e.kind,
            )

        conflict_count = sum(1 for info in infos if info.has_conflict)
        return OperationResult.ok(
            f"{conflict_count} of {len(infos)} occurrences conflict",
            conflict_count=conflict_count,
            conflicts=[info.to_dict() for info in infos],
        )

    # ============================================
    # Series management
    # ============================================

    async def create_series(self, params: CreateSeriesParams) -> OperationResult:
        return await self.series.create_series(params)

    async def split_series(self, params: SplitSeriesParams) -> OperationResult:
        return await self.series.split_series_from_date(params)

    async def update_series_template(
        self, series_id: int, template: Dict[str, Any], skip_exceptions: bool = True
    ) -> OperationResult:
        return await self.series.update_series_template(series_id, template, skip_exceptions)

    async def delete_series_group(self, group_id: int, delete_entities: bool = True) -> OperationResult:
        return await self.series.delete_series_group(group_id, delete_entities)

    async def get_series_membership(self, entity_table: str, entity_id: int) -> SeriesMembership:
        return await self.series.get_series_membership(entity_table, entity_id)

    # ============================================
    # Occurrence edits
    # ============================================

    async def apply_occurrence_edit(self, edit: OccurrenceEdit) -> OperationResult:
        """
        Apply an edit to one occurrence at the scope the user chose.

        this_only edits the row in place (or cancels / moves it),
        this_and_future splits the series at the occurrence date,
        all updates the version template.
        """
        try:
            membership = await self.series.get_series_membership(edit.entity_table, edit.entity_id)
            decision = resolve_edit(edit, membership)
        except TimeslotError as e:
            logger.warning(f"Edit of {edit.entity_table} #{edit.entity_id} rejected: {e.message}")
            return OperationResult.fail(e)

        logger.info(
            f"Edit of {edit.entity_table} #{edit.entity_id} at scope {edit.scope}: {decision.action.value}"
        )
        args = decision.arguments

        if decision.action is EditAction.CANCEL_OCCURRENCE:
            result = await self.series.cancel_occurrence(edit.entity_table, edit.entity_id, args["reason"])
        elif decision.action is EditAction.RESCHEDULE_OCCURRENCE:
            result = await self.series.reschedule_occurrence(
                edit.entity_table, edit.entity_id, args["new_time_slot"], args["values"]
            )
        elif decision.action is EditAction.MODIFY_OCCURRENCE:
            result = await self.series.edit_occurrence(edit.entity_table, edit.entity_id, args["values"])
        elif decision.action is EditAction.SPLIT_SERIES:
            result = await self.series.split_series_from_date(SplitSeriesParams(
                series_id=decision.series_id,
                split_date=decision.split_date,
                new_dtstart=args["new_dtstart"],
                new_duration=args["new_duration"],
                new_template=args["new_template"],
                new_rrule=args["new_rrule"],
            ))
        elif decision.action is EditAction.UPDATE_TEMPLATE:
            result = await self.series.update_series_template(decision.series_id, args["template"])
        else:
            return OperationResult.fail(ValidationError(f"Unsupported edit action {decision.action}"))

        result.data.setdefault("action", decision.action.value)
        return result
