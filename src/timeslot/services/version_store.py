"""
Series Version Store

Creates, terminates and looks up series versions while keeping a group's
versions time-disjoint with at most one current version.
"""
import logging
from datetime import datetime, timedelta
from typing import Optional, Union

from ..errors import NotFoundError, StateInvariantError, ValidationError
from ..models.series_version import SeriesVersion, VersionChain
from ..recurrence.durations import parse_duration
from ..recurrence.ranges import format_instant, parse_instant
from ..recurrence.rule import RecurrenceRule, parse_rrule
from ..storage.series_storage import SeriesStorage

logger = logging.getLogger("timeslot.services.version_store")


class SeriesVersionStore:
    """
    Version lifecycle with invariant checks.

    Callers must not run two mutations of the same group concurrently;
    serializing them is the persistence layer's job.
    """

    def __init__(self, storage: SeriesStorage):
        self.storage = storage

    async def load_chain(self, group_id: int) -> VersionChain:
        """All versions of a group as an ordered arena"""
        versions = await self.storage.list_versions(group_id)
        return VersionChain(group_id, versions)

    async def get_current_version(self, group_id: int) -> Optional[SeriesVersion]:
        """The version with terminated_at = None, or None if the group has ended"""
        chain = await self.load_chain(group_id)
        return chain.current

    async def terminate_version(self, version_id: int, at: Union[str, datetime]) -> SeriesVersion:
        """
        Set terminated_at on a current version.

        Raises StateInvariantError if it is already terminated, and
        ValidationError if `at` precedes the version's dtstart.
        """
        version = await self.storage.get_version(version_id)
        if version is None:
            raise NotFoundError(f"Series {version_id} not found")

        at = parse_instant(at)
        if version.terminated_at is not None:
            raise StateInvariantError(
                f"Series {version_id} was already terminated at {format_instant(version.terminated_at)}"
            )
        if at < version.dtstart:
            raise ValidationError(
                f"Termination {format_instant(at)} precedes series start {format_instant(version.dtstart)}",
                field="terminated_at",
            )

        version.terminated_at = at
        await self.storage.update_version(version)
        logger.info(f"Terminated series {version_id} (group {version.group_id}) at {format_instant(at)}")
        return version

    async def create_version(
        self,
        group_id: int,
        rrule: Union[str, RecurrenceRule],
        dtstart: Union[str, datetime],
        duration: Union[str, timedelta],
        template: Optional[dict] = None,
        entity_table: Optional[str] = None,
        time_slot_property: str = "time_slot",
        timezone: Optional[str] = None,
    ) -> SeriesVersion:
        """
        Append a new current version to the group.

        Refuses while another version of the group is still current.
        """
        rule = rrule if isinstance(rrule, RecurrenceRule) else parse_rrule(rrule)
        chain = await self.load_chain(group_id)

        if entity_table is None:
            group = await self.storage.get_group(group_id)
            if group is None:
                raise NotFoundError(f"Group {group_id} not found")
            entity_table = group.entity_table

        version = SeriesVersion(
            group_id=group_id,
            version_number=chain.next_version_number,
            entity_table=entity_table,
            entity_template=dict(template or {}),
            rrule=rule.format(),
            dtstart=parse_instant(dtstart),
            duration=parse_duration(duration),
            timezone=timezone,
            time_slot_property=time_slot_property,
        )
        # Raises StateInvariantError on a second current or overlapping version
        chain.append(version)

        created = await self.storage.create_version(version)
        logger.info(
            f"Created series {created.id} v{created.version_number} for group {group_id}, "
            f"rrule='{created.rrule}', dtstart={format_instant(created.dtstart)}"
        )
        return created
