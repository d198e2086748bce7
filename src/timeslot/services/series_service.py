"""
Series Service

Mutation engine over series groups: create, split, template propagation,
deletion, top-up expansion and single-occurrence exceptions.

Every mutation runs inside one data-access transaction and reports an
OperationResult instead of raising past this boundary.
"""
import logging
import re
from dataclasses import dataclass, field, replace
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from ..config import Config
from ..errors import (
    ConstraintViolation,
    NotFoundError,
    StateInvariantError,
    TimeslotError,
    ValidationError,
)
from ..models.conflict import ConflictScope
from ..models.result import OperationResult
from ..models.series_group import SeriesGroup, utcnow
from ..models.series_instance import ExceptionType, SeriesInstance, SeriesMembership
from ..models.series_version import SeriesVersion
from ..recurrence.durations import parse_duration
from ..recurrence.expander import expand_list
from ..recurrence.ranges import TimeRange, coerce_time_range, format_instant, parse_instant
from ..recurrence.rule import RecurrenceRule, parse_rrule
from ..schema.metadata import EntityConfig, SchemaMetadata
from ..schema.templates import schema_drift, validate_template
from ..storage.data_access import DataAccess
from ..storage.series_storage import SeriesStorage
from .conflict_service import ConflictService
from .version_store import SeriesVersionStore

logger = logging.getLogger("timeslot.services.series")

COLOR_PATTERN = re.compile(r"^#[0-9A-Fa-f]{6}$")

INSTANCE_FILTERS = ("all", "upcoming", "past", "exceptions")


@dataclass
class CreateSeriesParams:
    """Group info plus the first version's schedule and template"""
    group_name: str
    entity_table: str
    rrule: str
    dtstart: Union[str, datetime]
    duration: Union[str, timedelta]
    entity_template: Dict[str, Any] = field(default_factory=dict)
    group_description: Optional[str] = None
    group_color: Optional[str] = None
    timezone: Optional[str] = None
    time_slot_property: Optional[str] = None
    scope_column: Optional[str] = None
    expand_now: bool = True
    skip_conflicts: bool = False
    limit: Optional[int] = None


@dataclass
class SplitSeriesParams:
    """New schedule/template taking effect from split_date"""
    series_id: int
    split_date: Union[str, date]
    new_dtstart: Union[str, datetime]
    new_duration: Optional[Union[str, timedelta]] = None
    new_template: Optional[Dict[str, Any]] = None
    new_rrule: Optional[str] = None
    skip_conflicts: bool = False


def parse_date(value: Union[str, date, datetime], name: str = "date") -> date:
    """Accept a date, a datetime (UTC date taken) or ISO text"""
    if isinstance(value, datetime):
        return parse_instant(value).date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError:
        raise ValidationError(f"Invalid {name}: '{value}'", field=name)


def start_of_day(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


class SeriesService:
    """Service for series group mutations"""

    def __init__(
        self,
        storage: SeriesStorage,
        data: DataAccess,
        schema: SchemaMetadata,
        conflicts: Optional[ConflictService] = None,
        versions: Optional[SeriesVersionStore] = None,
        now: Callable[[], datetime] = utcnow,
        materialize_limit: int = Config.MATERIALIZE_LIMIT,
        horizon_days: int = Config.EXPAND_HORIZON_DAYS,
    ):
        self.storage = storage
        self.data = data
        self.schema = schema
        self.conflicts = conflicts or ConflictService(data)
        self.versions = versions or SeriesVersionStore(storage)
        self.now = now
        self.materialize_limit = materialize_limit
        self.horizon_days = horizon_days

    def today(self) -> date:
        return parse_instant(self.now()).date()

    # ============================================
    # Create
    # ============================================

    async def create_series(self, params: CreateSeriesParams) -> OperationResult:
        """
        Create a group, its first version and the materialized instances.

        With skip_conflicts, occurrences that overlap existing rows in the
        scope are recorded as conflict_skipped without an entity row.
        Otherwise every occurrence is inserted and the ones rejected by a
        database constraint become conflict_skipped.
        """
        logger.info(f"Creating series '{params.group_name}' on {params.entity_table}")
        try:
            name = (params.group_name or "").strip()
            if not name:
                raise ValidationError("Group name is required", field="group_name")
            if params.group_color and not COLOR_PATTERN.match(params.group_color):
                raise ValidationError("Color must be in #RRGGBB format", field="group_color")

            rule = parse_rrule(params.rrule)
            dtstart = parse_instant(params.dtstart)
            duration = parse_duration(params.duration)

            config = await self._recurring_config(params.entity_table)
            slot_property = (
                params.time_slot_property
                or config.recurring_property_name
                or Config.DEFAULT_TIME_SLOT_PROPERTY
            )
            template = dict(params.entity_template or {})
            properties = await self.schema.get_properties(params.entity_table)
            validate_template(params.entity_table, template, properties, slot_property)

            scope = self._scope(
                params.entity_table, params.scope_column or config.scope_column, template, slot_property
            )
            if params.skip_conflicts and scope.scope_column and scope.scope_value is None:
                raise ValidationError(
                    f"Template must set {scope.scope_column} to check conflicts",
                    field=scope.scope_column,
                )

            occurrences = []
            if params.expand_now:
                occurrences = self._plan(rule, dtstart, duration, params.timezone, limit=params.limit)

            async with self.data.transaction():
                group = await self.storage.create_group(SeriesGroup(
                    display_name=name,
                    description=params.group_description,
                    color=params.group_color,
                    entity_table=params.entity_table,
                    started_on=occurrences[0].start.date() if occurrences else dtstart.date(),
                ))
                version = await self.versions.create_version(
                    group.id,
                    rule,
                    dtstart,
                    duration,
                    template=template,
                    entity_table=params.entity_table,
                    time_slot_property=slot_property,
                    timezone=params.timezone,
                )
                counts = await self._materialize(version, occurrences, scope, params.skip_conflicts)

        except TimeslotError as e:
            return self._failed("create_series", e)

        message = f"Created series with {counts['instances_created']} occurrences"
        if counts["conflicts_skipped"]:
            message += f" ({counts['conflicts_skipped']} skipped due to conflicts)"
        logger.info(f"Group {group.id}: {message}")
        return OperationResult.ok(message, group_id=group.id, series_id=version.id, **counts)

    # ============================================
    # Split
    # ============================================

    async def split_series_from_date(self, params: SplitSeriesParams) -> OperationResult:
        """
        Terminate the current version at split_date and continue the group
        under a new version.

        Instances dated before split_date are left as they are; instances
        on or after it (and their entity rows) are replaced by occurrences
        of the new version.
        """
        logger.info(f"Splitting series {params.series_id} from {params.split_date}")
        try:
            split_date = parse_date(params.split_date, "split_date")
            tomorrow = self.today() + timedelta(days=1)
            if split_date <= tomorrow:
                raise ValidationError(
                    f"Split date must be after {tomorrow.isoformat()}; "
                    "past and next-day occurrences cannot be changed this way",
                    field="split_date",
                )

            version = await self._get_version(params.series_id)
            chain = await self.versions.load_chain(version.group_id)
            current = chain.current
            if current is None:
                raise StateInvariantError(f"Group {version.group_id} has ended and cannot be split")
            if current.id != version.id:
                raise StateInvariantError(
                    f"Series {version.id} is not the current version of group {version.group_id}"
                )

            boundary = start_of_day(split_date)
            if boundary <= current.dtstart:
                raise StateInvariantError(
                    f"Split date {split_date.isoformat()} is not after the series' first occurrence"
                )

            new_dtstart = parse_instant(params.new_dtstart)
            if new_dtstart < boundary:
                raise ValidationError(
                    f"New start {format_instant(new_dtstart)} is before split date {split_date.isoformat()}",
                    field="new_dtstart",
                )
            duration = parse_duration(params.new_duration) if params.new_duration else current.duration
            old_rule = parse_rrule(current.rrule)
            new_rule = (
                parse_rrule(params.new_rrule) if params.new_rrule
                else self._continuation_rule(current, old_rule, boundary)
            )

            template = {**current.entity_template, **(params.new_template or {})}
            properties = await self.schema.get_properties(current.entity_table)
            validate_template(current.entity_table, template, properties, current.time_slot_property)

            config = await self.schema.get_entity_config(current.entity_table)
            scope = self._scope(
                current.entity_table, config.scope_column if config else None, template,
                current.time_slot_property,
            )
            occurrences = self._plan(new_rule, new_dtstart, duration, current.timezone)
            if not occurrences:
                raise ValidationError("No occurrences remain after the split date", field="split_date")

            async with self.data.transaction():
                replaced = await self._remove_instances(
                    await self.storage.list_instances([current.id], from_date=split_date),
                    delete_entities=True,
                )

                terminated = await self.versions.terminate_version(current.id, boundary)
                if not old_rule.is_single:
                    terminated.rrule = old_rule.with_until(split_date - timedelta(days=1)).format()
                    await self.storage.update_version(terminated)

                new_version = await self.versions.create_version(
                    version.group_id,
                    new_rule,
                    new_dtstart,
                    duration,
                    template=template,
                    entity_table=current.entity_table,
                    time_slot_property=current.time_slot_property,
                    timezone=current.timezone,
                )
                counts = await self._materialize(new_version, occurrences, scope, params.skip_conflicts)

        except TimeslotError as e:
            return self._failed("split_series_from_date", e)

        message = (
            f"Split series from {split_date.isoformat()}: "
            f"{counts['instances_created']} occurrences under the new schedule"
        )
        logger.info(f"Group {version.group_id}: {message} ({replaced} replaced)")
        return OperationResult.ok(
            message,
            group_id=version.group_id,
            old_series_id=current.id,
            new_series_id=new_version.id,
            instances_replaced=replaced,
            **counts,
        )

    def _continuation_rule(
        self, current: SeriesVersion, rule: RecurrenceRule, boundary: datetime
    ) -> RecurrenceRule:
        """Old rule for the new version, with COUNT reduced by what already happened"""
        if rule.count is None:
            return rule
        before = [
            occ for occ in expand_list(current.dtstart, current.duration, rule, tz=current.timezone)
            if occ.start < boundary
        ]
        remaining = rule.count - len(before)
        if remaining <= 0:
            raise ValidationError("No occurrences remain after the split date", field="split_date")
        return replace(rule, count=remaining)

    # ============================================
    # Template
    # ============================================

    async def update_series_template(
        self,
        series_id: int,
        template: Dict[str, Any],
        skip_exceptions: bool = True,
    ) -> OperationResult:
        """
        Merge new defaults into the version template and re-apply them to
        future instances' entity rows.

        Exception instances are left alone unless skip_exceptions is False.
        The time slot column is never overwritten.
        """
        logger.info(f"Updating template of series {series_id}")
        try:
            version = await self._get_version(series_id)
            merged = {**version.entity_template, **(template or {})}
            properties = await self.schema.get_properties(version.entity_table)
            validate_template(version.entity_table, merged, properties, version.time_slot_property)

            values = {k: v for k, v in merged.items() if k != version.time_slot_property}
            updated = skipped = 0

            async with self.data.transaction():
                version.entity_template = merged
                version.template_updated_at = self.now()
                await self.storage.update_version(version)

                instances = await self.storage.list_instances([version.id], from_date=self.today())
                for instance in instances:
                    if instance.entity_id is None:
                        continue
                    if skip_exceptions and instance.is_exception:
                        skipped += 1
                        continue
                    if values and await self.data.update_row(version.entity_table, instance.entity_id, values):
                        updated += 1

        except TimeslotError as e:
            return self._failed("update_series_template", e)

        message = f"Updated template and {updated} future occurrences"
        if skipped:
            message += f" ({skipped} exceptions left unchanged)"
        logger.info(f"Series {series_id}: {message}")
        return OperationResult.ok(message, series_id=series_id, instances_updated=updated, exceptions_skipped=skipped)

    # ============================================
    # Group info / delete
    # ============================================

    async def update_series_group_info(
        self,
        group_id: int,
        display_name: Optional[str] = None,
        description: Optional[str] = None,
        color: Optional[str] = None,
    ) -> OperationResult:
        """Update display fields; a blank name keeps the existing one"""
        try:
            group = await self._get_group(group_id)
            if color is not None and color != "" and not COLOR_PATTERN.match(color):
                raise ValidationError("Color must be in #RRGGBB format", field="color")

            if display_name and display_name.strip():
                group.display_name = display_name.strip()
            if description is not None:
                group.description = description or None
            if color is not None:
                group.color = color or None
            group.updated_at = self.now()

            async with self.data.transaction():
                await self.storage.update_group(group)

        except TimeslotError as e:
            return self._failed("update_series_group_info", e)

        logger.info(f"Updated info of group {group_id}")
        return OperationResult.ok("Series group updated", group_id=group_id)

    async def delete_series_group(self, group_id: int, delete_entities: bool = True) -> OperationResult:
        """
        Remove a group with all versions and instances.

        Entity rows created by the series are deleted through the
        data-access interface when delete_entities is set.
        """
        logger.info(f"Deleting series group {group_id}")
        try:
            await self._get_group(group_id)
            async with self.data.transaction():
                versions = await self.storage.list_versions(group_id)
                instances = await self.storage.list_instances([v.id for v in versions])
                entities = sum(1 for i in instances if i.entity_id is not None) if delete_entities else 0

                await self._remove_instances(instances, delete_entities)
                for version in versions:
                    await self.storage.delete_version(version.id)
                await self.storage.delete_group(group_id)

        except TimeslotError as e:
            return self._failed("delete_series_group", e)

        message = f"Deleted series group with {len(instances)} instances"
        logger.info(f"Group {group_id}: {message}")
        return OperationResult.ok(
            message,
            group_id=group_id,
            versions_deleted=len(versions),
            instances_deleted=len(instances),
            entities_deleted=entities,
        )

    # ============================================
    # Expansion top-up
    # ============================================

    async def expand_series(self, series_id: int, until: Optional[Union[str, datetime]] = None) -> OperationResult:
        """
        Materialize occurrences of a version up to `until` that do not exist yet.

        Defaults to the expansion horizon. Terminated versions never expand
        past their termination.
        """
        try:
            version = await self._get_version(series_id)
            window_end = (
                parse_instant(until) if until is not None
                else start_of_day(self.today() + timedelta(days=self.horizon_days))
            )
            if version.terminated_at is not None:
                window_end = min(window_end, version.terminated_at)

            existing = await self.storage.list_instances([version.id])
            known_dates = {i.occurrence_date for i in existing}
            occurrences = [
                occ for occ in expand_list(
                    version.dtstart,
                    version.duration,
                    version.rrule,
                    limit=self.materialize_limit,
                    window_end=window_end,
                    tz=version.timezone,
                )
                if occ.start.date() not in known_dates
            ]

            config = await self.schema.get_entity_config(version.entity_table)
            scope = self._scope(
                version.entity_table, config.scope_column if config else None,
                version.entity_template, version.time_slot_property,
            )
            async with self.data.transaction():
                counts = await self._materialize(version, occurrences, scope, skip_conflicts=False)

        except TimeslotError as e:
            return self._failed("expand_series", e)

        message = f"Expanded series with {counts['instances_created']} new occurrences"
        logger.info(f"Series {series_id}: {message}")
        return OperationResult.ok(message, series_id=series_id, **counts)

    async def expand_current_versions(self) -> List[OperationResult]:
        """Top up the current version of every group to the horizon"""
        results = []
        for group in await self.storage.list_groups():
            current = await self.versions.get_current_version(group.id)
            if current is None:
                continue
            results.append(await self.expand_series(current.id))
        return results

    # ============================================
    # Single-occurrence exceptions
    # ============================================

    async def edit_occurrence(self, entity_table: str, entity_id: int, values: Dict[str, Any]) -> OperationResult:
        """Edit one entity row in place and mark its instance as modified"""
        try:
            if not values:
                raise ValidationError("Nothing to update", field="values")
            instance = await self.storage.find_by_entity(entity_table, entity_id)

            async with self.data.transaction():
                if not await self.data.update_row(entity_table, entity_id, dict(values)):
                    raise NotFoundError(f"{entity_table} #{entity_id} not found")
                if instance is not None:
                    instance.is_exception = True
                    if instance.exception_type is not ExceptionType.RESCHEDULED:
                        instance.exception_type = ExceptionType.MODIFIED
                    instance.exception_at = self.now()
                    await self.storage.update_instance(instance)

        except TimeslotError as e:
            return self._failed("edit_occurrence", e)

        if instance is None:
            return OperationResult.ok("Record updated", entity_id=entity_id, is_member=False)
        logger.info(f"Occurrence {instance.occurrence_date} of series {instance.series_id} modified")
        return OperationResult.ok("Occurrence updated", entity_id=entity_id, instance_id=instance.id, is_member=True)

    async def cancel_occurrence(
        self, entity_table: str, entity_id: int, reason: Optional[str] = None
    ) -> OperationResult:
        """
        Delete one occurrence's entity row, keeping its instance as a
        cancelled exception so the date is not regenerated.
        """
        try:
            instance = await self._member_instance(entity_table, entity_id)
            async with self.data.transaction():
                await self.data.delete_row(entity_table, entity_id)
                instance.entity_id = None
                instance.is_exception = True
                instance.exception_type = ExceptionType.CANCELLED
                instance.exception_reason = reason
                instance.exception_at = self.now()
                await self.storage.update_instance(instance)

        except TimeslotError as e:
            return self._failed("cancel_occurrence", e)

        logger.info(f"Occurrence {instance.occurrence_date} of series {instance.series_id} cancelled")
        return OperationResult.ok("Occurrence cancelled", instance_id=instance.id)

    async def reschedule_occurrence(
        self,
        entity_table: str,
        entity_id: int,
        new_time_slot: Any,
        values: Optional[Dict[str, Any]] = None,
    ) -> OperationResult:
        """Move one occurrence to a new time range, keeping the original for audit"""
        try:
            new_range = coerce_time_range(new_time_slot)
            instance = await self._member_instance(entity_table, entity_id)
            version = await self._get_version(instance.series_id)

            row = await self.data.get_row(entity_table, entity_id)
            if row is None:
                raise NotFoundError(f"{entity_table} #{entity_id} not found")
            current_slot = row.get(version.time_slot_property)

            async with self.data.transaction():
                await self.data.update_row(
                    entity_table, entity_id, {**(values or {}), version.time_slot_property: new_range}
                )
                if instance.original_time_slot is None and current_slot is not None:
                    instance.original_time_slot = coerce_time_range(current_slot).to_wire()
                instance.is_exception = True
                instance.exception_type = ExceptionType.RESCHEDULED
                instance.exception_at = self.now()
                await self.storage.update_instance(instance)

        except TimeslotError as e:
            return self._failed("reschedule_occurrence", e)

        logger.info(f"Occurrence {instance.occurrence_date} of series {instance.series_id} moved to {new_range}")
        return OperationResult.ok("Occurrence rescheduled", instance_id=instance.id, time_slot=new_range.to_wire())

    # ============================================
    # Queries
    # ============================================

    async def get_series_membership(self, entity_table: str, entity_id: int) -> SeriesMembership:
        """Whether an entity row was generated by a series, and by which version"""
        instance = await self.storage.find_by_entity(entity_table, entity_id)
        if instance is None:
            return SeriesMembership(is_member=False)
        version = await self.storage.get_version(instance.series_id)
        group = await self.storage.get_group(version.group_id) if version else None
        return SeriesMembership(
            is_member=True,
            series_id=instance.series_id,
            group_id=group.id if group else None,
            group_name=group.display_name if group else None,
            group_color=group.color if group else None,
            occurrence_date=instance.occurrence_date,
            is_exception=instance.is_exception,
            exception_type=instance.exception_type,
            original_template=version.entity_template if version else None,
        )

    async def list_group_instances(self, group_id: int, which: str = "all") -> List[SeriesInstance]:
        """Instances of every version of a group, ascending by occurrence_date"""
        if which not in INSTANCE_FILTERS:
            raise ValidationError(
                f"Unknown filter '{which}'; expected one of {', '.join(INSTANCE_FILTERS)}", field="filter"
            )
        await self._get_group(group_id)
        versions = await self.storage.list_versions(group_id)
        ids = [v.id for v in versions]
        today = self.today()
        if which == "upcoming":
            return await self.storage.list_instances(ids, from_date=today)
        if which == "past":
            return await self.storage.list_instances(ids, before_date=today)
        if which == "exceptions":
            return await self.storage.list_instances(ids, exceptions_only=True)
        return await self.storage.list_instances(ids)

    async def group_summary(self, group_id: int) -> Dict[str, Any]:
        """Group info with version history, counts and derived state"""
        group = await self._get_group(group_id)
        chain = await self.versions.load_chain(group_id)
        instances = await self.storage.list_instances([v.id for v in chain])
        current = chain.current

        summary = group.to_dict()
        summary.update({
            "version_count": len(chain),
            "current_version": current.to_dict() if current else None,
            "versions": [v.to_dict() for v in chain],
            "active_instance_count": sum(1 for i in instances if i.entity_id is not None),
            "exception_count": sum(1 for i in instances if i.is_exception),
            "status": "active" if current else "ended",
        })
        if current:
            properties = await self.schema.get_properties(group.entity_table)
            summary["schema_issues"] = schema_drift(
                current.entity_template, properties, current.time_slot_property
            )
        return summary

    async def list_groups(self, entity_table: Optional[str] = None) -> List[SeriesGroup]:
        return await self.storage.list_groups(entity_table)

    # ============================================
    # Helpers
    # ============================================

    def _plan(
        self,
        rule: RecurrenceRule,
        dtstart: datetime,
        duration: timedelta,
        tz: Optional[str],
        limit: Optional[int] = None,
    ) -> List[TimeRange]:
        """Occurrences to materialize: capped by count and, for open rules, the horizon"""
        window_end = None
        if not rule.is_bounded:
            anchor = max(start_of_day(self.today()), dtstart)
            window_end = anchor + timedelta(days=self.horizon_days)
        cap = min(limit, self.materialize_limit) if limit is not None else self.materialize_limit
        return expand_list(dtstart, duration, rule, limit=cap, window_end=window_end, tz=tz)

    async def _materialize(
        self,
        version: SeriesVersion,
        occurrences: Sequence[TimeRange],
        scope: ConflictScope,
        skip_conflicts: bool,
    ) -> Dict[str, int]:
        """Create entity rows and instances in ascending occurrence order"""
        conflicted = set()
        if skip_conflicts and occurrences:
            infos = await self.conflicts.detect_conflicts(scope, occurrences)
            conflicted = {index for index, info in enumerate(infos) if info.has_conflict}

        created = skipped = 0
        for index, occurrence in enumerate(occurrences):
            entity_id = None
            if index not in conflicted:
                record = dict(version.entity_template)
                record[version.time_slot_property] = occurrence
                try:
                    entity_id = await self.data.insert_row(version.entity_table, record)
                except ConstraintViolation as e:
                    logger.warning(f"Occurrence {occurrence} of series {version.id} rejected: {e.message}")

            instance = SeriesInstance(
                series_id=version.id,
                occurrence_date=occurrence.start.date(),
                entity_table=version.entity_table,
                entity_id=entity_id,
            )
            if entity_id is None:
                instance.is_exception = True
                instance.exception_type = ExceptionType.CONFLICT_SKIPPED
                instance.original_time_slot = occurrence.to_wire()
                instance.exception_at = self.now()
                skipped += 1
            else:
                created += 1
            await self.storage.create_instance(instance)

        return {"instances_created": created, "conflicts_skipped": skipped}

    async def _remove_instances(self, instances: Sequence[SeriesInstance], delete_entities: bool) -> int:
        for instance in instances:
            if delete_entities and instance.entity_id is not None:
                await self.data.delete_row(instance.entity_table, instance.entity_id)
            await self.storage.delete_instance(instance.id)
        return len(instances)

    async def _recurring_config(self, entity_table: str) -> EntityConfig:
        config = await self.schema.get_entity_config(entity_table)
        if config is None:
            raise ValidationError(f"Unknown entity '{entity_table}'", field="entity_table")
        if not config.supports_recurring:
            raise ValidationError(f"Entity '{entity_table}' does not support recurring series", field="entity_table")
        return config

    @staticmethod
    def _scope(
        entity_table: str, scope_column: Optional[str], template: Dict[str, Any], slot_property: str
    ) -> ConflictScope:
        return ConflictScope(
            entity_table=entity_table,
            scope_column=scope_column,
            scope_value=template.get(scope_column) if scope_column else None,
            time_slot_column=slot_property,
        )

    async def _get_group(self, group_id: int) -> SeriesGroup:
        group = await self.storage.get_group(group_id)
        if group is None:
            raise NotFoundError(f"Series group {group_id} not found")
        return group

    async def _get_version(self, series_id: int) -> SeriesVersion:
        version = await self.storage.get_version(series_id)
        if version is None:
            raise NotFoundError(f"Series {series_id} not found")
        return version

    async def _member_instance(self, entity_table: str, entity_id: int) -> SeriesInstance:
        instance = await self.storage.find_by_entity(entity_table, entity_id)
        if instance is None:
            raise NotFoundError(f"{entity_table} #{entity_id} is not part of a series")
        return instance

    @staticmethod
    def _failed(operation: str, error: TimeslotError) -> OperationResult:
        if error.kind in ("validation_error", "parse_error"):
            logger.warning(f"{operation} rejected: {error.message}")
        else:
            logger.error(f"{operation} failed ({error.kind}): {error.message}")
        return OperationResult.fail(error)
