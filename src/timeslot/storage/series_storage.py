"""
Series Storage

Typed access to the series bookkeeping tables
(time_slot_series_groups, time_slot_series, time_slot_instances)
on top of any DataAccess implementation.
"""
import json
import logging
from datetime import date, datetime
from typing import List, Optional, Sequence

from ..models.series_group import SeriesGroup
from ..models.series_instance import ExceptionType, SeriesInstance
from ..models.series_version import SeriesVersion
from ..recurrence.durations import parse_duration
from ..recurrence.ranges import coerce_time_range, parse_instant
from .data_access import DataAccess, Filter, FilterOp, eq

logger = logging.getLogger("timeslot.storage.series")


class SeriesStorage:
    """Storage for SeriesGroup, SeriesVersion and SeriesInstance entities"""

    def __init__(self, data: DataAccess, schema: str = "metadata"):
        self.data = data
        self.groups_table = f"{schema}.time_slot_series_groups"
        self.series_table = f"{schema}.time_slot_series"
        self.instances_table = f"{schema}.time_slot_instances"

    # ============================================
    # Groups
    # ============================================

    async def create_group(self, group: SeriesGroup) -> SeriesGroup:
        """Create a new series group"""
        group.id = await self.data.insert_row(self.groups_table, {
            "display_name": group.display_name,
            "description": group.description,
            "color": group.color,
            "entity_table": group.entity_table,
            "started_on": group.started_on,
            "created_at": group.created_at,
            "updated_at": group.updated_at,
        })
        return group

    async def get_group(self, group_id: int) -> Optional[SeriesGroup]:
        """Get group by ID"""
        row = await self.data.get_row(self.groups_table, group_id)
        return self._row_to_group(row) if row else None

    async def list_groups(self, entity_table: Optional[str] = None) -> List[SeriesGroup]:
        """List groups, most recently updated first"""
        filters = [eq("entity_table", entity_table)] if entity_table else []
        rows = await self.data.get_rows(self.groups_table, filters, order_by="updated_at.desc")
        return [self._row_to_group(row) for row in rows]

    async def update_group(self, group: SeriesGroup) -> SeriesGroup:
        """Update group display info"""
        await self.data.update_row(self.groups_table, group.id, {
            "display_name": group.display_name,
            "description": group.description,
            "color": group.color,
            "updated_at": group.updated_at,
        })
        return group

    async def delete_group(self, group_id: int) -> bool:
        return await self.data.delete_row(self.groups_table, group_id)

    # ============================================
    # Versions
    # ============================================

    async def create_version(self, version: SeriesVersion) -> SeriesVersion:
        """Create a new series version"""
        version.id = await self.data.insert_row(self.series_table, {
            "group_id": version.group_id,
            "version_number": version.version_number,
            "entity_table": version.entity_table,
            "entity_template": version.entity_template,
            "rrule": version.rrule,
            "dtstart": version.dtstart,
            "duration": version.duration,
            "timezone": version.timezone,
            "time_slot_property": version.time_slot_property,
            "terminated_at": version.terminated_at,
            "created_at": version.created_at,
            "template_updated_at": version.template_updated_at,
        })
        return version

    async def get_version(self, series_id: int) -> Optional[SeriesVersion]:
        """Get version by series ID"""
        row = await self.data.get_row(self.series_table, series_id)
        return self._row_to_version(row) if row else None

    async def list_versions(self, group_id: int) -> List[SeriesVersion]:
        """List a group's versions ordered by dtstart"""
        rows = await self.data.get_rows(self.series_table, [eq("group_id", group_id)], order_by="dtstart")
        return [self._row_to_version(row) for row in rows]

    async def update_version(self, version: SeriesVersion) -> SeriesVersion:
        """Update mutable version fields"""
        await self.data.update_row(self.series_table, version.id, {
            "entity_template": version.entity_template,
            "rrule": version.rrule,
            "terminated_at": version.terminated_at,
            "template_updated_at": version.template_updated_at,
        })
        return version

    async def delete_version(self, series_id: int) -> bool:
        return await self.data.delete_row(self.series_table, series_id)

    # ============================================
    # Instances
    # ============================================

    async def create_instance(self, instance: SeriesInstance) -> SeriesInstance:
        """Create a new series instance"""
        instance.id = await self.data.insert_row(self.instances_table, self._instance_values(instance))
        return instance

    async def get_instance(self, instance_id: int) -> Optional[SeriesInstance]:
        row = await self.data.get_row(self.instances_table, instance_id)
        return self._row_to_instance(row) if row else None

    async def list_instances(
        self,
        series_ids: Sequence[int],
        from_date: Optional[date] = None,
        before_date: Optional[date] = None,
        exceptions_only: bool = False,
    ) -> List[SeriesInstance]:
        """List instances of the given versions in ascending occurrence order"""
        if not series_ids:
            return []
        filters = [Filter("series_id", FilterOp.IN, list(series_ids))]
        if from_date is not None:
            filters.append(Filter("occurrence_date", FilterOp.GTE, from_date))
        if before_date is not None:
            filters.append(Filter("occurrence_date", FilterOp.LT, before_date))
        if exceptions_only:
            filters.append(eq("is_exception", True))
        rows = await self.data.get_rows(self.instances_table, filters, order_by="occurrence_date")
        return [self._row_to_instance(row) for row in rows]

    async def find_by_entity(self, entity_table: str, entity_id: int) -> Optional[SeriesInstance]:
        """Find the instance that owns an entity row"""
        rows = await self.data.get_rows(
            self.instances_table,
            [eq("entity_table", entity_table), eq("entity_id", entity_id)],
            limit=1,
        )
        return self._row_to_instance(rows[0]) if rows else None

    async def update_instance(self, instance: SeriesInstance) -> SeriesInstance:
        values = self._instance_values(instance)
        values.pop("created_at")
        await self.data.update_row(self.instances_table, instance.id, values)
        return instance

    async def delete_instance(self, instance_id: int) -> bool:
        return await self.data.delete_row(self.instances_table, instance_id)

    # ============================================
    # Row conversion
    # ============================================

    @staticmethod
    def _instance_values(instance: SeriesInstance) -> dict:
        return {
            "series_id": instance.series_id,
            "occurrence_date": instance.occurrence_date,
            "entity_table": instance.entity_table,
            "entity_id": instance.entity_id,
            "is_exception": instance.is_exception,
            "exception_type": instance.exception_type.value if instance.exception_type else None,
            "original_time_slot": (
                coerce_time_range(instance.original_time_slot) if instance.original_time_slot else None
            ),
            "exception_reason": instance.exception_reason,
            "exception_at": instance.exception_at,
            "created_at": instance.created_at,
        }

    def _row_to_group(self, row) -> SeriesGroup:
        """Convert database row to SeriesGroup"""
        return SeriesGroup(
            id=row["id"],
            display_name=row["display_name"],
            description=row.get("description"),
            color=row.get("color"),
            entity_table=row["entity_table"],
            started_on=_as_date(row.get("started_on")),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def _row_to_version(self, row) -> SeriesVersion:
        """Convert database row to SeriesVersion"""
        template = row["entity_template"] if row["entity_template"] else {}
        if isinstance(template, str):
            template = json.loads(template)

        return SeriesVersion(
            id=row["id"],
            group_id=row["group_id"],
            version_number=row["version_number"],
            entity_table=row["entity_table"],
            entity_template=template,
            rrule=row["rrule"],
            dtstart=parse_instant(row["dtstart"]),
            duration=parse_duration(row["duration"]),
            timezone=row.get("timezone"),
            time_slot_property=row["time_slot_property"],
            terminated_at=parse_instant(row["terminated_at"]) if row.get("terminated_at") else None,
            created_at=row["created_at"],
            template_updated_at=row.get("template_updated_at"),
        )

    def _row_to_instance(self, row) -> SeriesInstance:
        """Convert database row to SeriesInstance"""
        original = row.get("original_time_slot")
        if original is not None and not isinstance(original, str):
            original = coerce_time_range(original).to_wire()

        return SeriesInstance(
            id=row["id"],
            series_id=row["series_id"],
            occurrence_date=_as_date(row["occurrence_date"]),
            entity_table=row["entity_table"],
            entity_id=row.get("entity_id"),
            is_exception=row["is_exception"],
            exception_type=ExceptionType(row["exception_type"]) if row.get("exception_type") else None,
            original_time_slot=original,
            exception_reason=row.get("exception_reason"),
            exception_at=row.get("exception_at"),
            created_at=row["created_at"],
        )


def _as_date(value) -> Optional[date]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value))
