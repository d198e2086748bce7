"""
Conflict Service

Detects which candidate occurrences overlap bookings already committed
in the same scope. Read-only: one query per call, then pure interval
arithmetic over the fetched rows.
"""
import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence

from ..cancellation import CancellationToken
from ..models.conflict import ConflictInfo, ConflictScope
from ..recurrence.ranges import TimeRange, coerce_time_range
from ..storage.data_access import DataAccess, Filter, FilterOp, eq

logger = logging.getLogger("timeslot.services.conflict")


class ConflictService:
    """Service for conflict detection"""

    def __init__(self, data: DataAccess):
        self.data = data

    async def detect_conflicts(
        self,
        scope: ConflictScope,
        candidates: Sequence[Any],
        cancel: Optional[CancellationToken] = None,
        exclude_ids: Iterable[int] = (),
    ) -> List[ConflictInfo]:
        """
        One ConflictInfo per candidate, in input order.

        Args:
            scope: Table and scope column/value to search
            candidates: TimeRanges or (start, end) pairs
            cancel: Checked between candidates
            exclude_ids: Entity rows to ignore (e.g. rows about to be replaced)
        """
        intervals = [coerce_time_range(c) for c in candidates]
        if not intervals:
            return []

        existing = await self._fetch_existing(scope, intervals, set(exclude_ids))
        results = find_conflicts(intervals, existing, scope.time_slot_column, cancel)

        conflicts = sum(1 for r in results if r.has_conflict)
        logger.info(
            f"Checked {len(results)} occurrences against {len(existing)} rows in "
            f"{scope.entity_table}: {conflicts} conflicts"
        )
        return results

    async def _fetch_existing(
        self,
        scope: ConflictScope,
        intervals: List[TimeRange],
        exclude_ids: set,
    ) -> List[Dict[str, Any]]:
        window = TimeRange(min(i.start for i in intervals), max(i.end for i in intervals))
        filters = [Filter(scope.time_slot_column, FilterOp.OVERLAPS, window)]
        if scope.scope_column:
            filters.insert(0, eq(scope.scope_column, scope.scope_value))

        rows = await self.data.get_rows(scope.entity_table, filters, order_by="id")
        return [row for row in rows if row.get("id") not in exclude_ids]


def find_conflicts(
    intervals: Sequence[TimeRange],
    existing_rows: Sequence[Dict[str, Any]],
    time_slot_column: str = "time_slot",
    cancel: Optional[CancellationToken] = None,
) -> List[ConflictInfo]:
    """Pure overlap check of candidates against already-fetched rows"""
    booked = []
    for row in existing_rows:
        value = row.get(time_slot_column)
        if value is None:
            continue
        booked.append((coerce_time_range(value), row))

    results = []
    for interval in intervals:
        if cancel is not None:
            cancel.raise_if_cancelled()
        info = ConflictInfo(occurrence_start=interval.start, occurrence_end=interval.end)
        for slot, row in booked:
            if interval.overlaps(slot):
                info.has_conflict = True
                info.conflicting_id = row.get("id")
                info.conflicting_display = row.get("display_name") or f"#{row.get('id')}"
                break
        results.append(info)
    return results
