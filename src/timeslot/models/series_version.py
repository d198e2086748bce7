"""
Series Version Model

One configuration slice (schedule + template) of a series group, and the
VersionChain arena that holds a group's versions in dtstart order.
"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Iterator, List, Optional

from ..errors import StateInvariantError
from ..recurrence.durations import format_duration
from ..recurrence.ranges import format_instant
from .series_group import utcnow


@dataclass
class SeriesVersion:
    """
    Series version entity.

    A version is current while terminated_at is None. Its effective range
    is [dtstart, terminated_at), or open-ended while current.
    """
    id: Optional[int] = None
    group_id: Optional[int] = None
    version_number: int = 1
    entity_table: str = ""
    entity_template: dict = field(default_factory=dict)
    rrule: str = ""
    dtstart: Optional[datetime] = None
    duration: timedelta = timedelta(hours=1)
    timezone: Optional[str] = None                      # IANA name, e.g. "America/New_York"
    time_slot_property: str = "time_slot"
    terminated_at: Optional[datetime] = None

    created_at: datetime = field(default_factory=utcnow)
    template_updated_at: Optional[datetime] = None

    @property
    def is_current(self) -> bool:
        return self.terminated_at is None

    def covers(self, instant: datetime) -> bool:
        """True if instant lies inside this version's own effective range"""
        if instant < self.dtstart:
            return False
        return self.terminated_at is None or instant < self.terminated_at

    def to_dict(self) -> dict:
        """Convert to dictionary for API response"""
        return {
            "series_id": self.id,
            "group_id": self.group_id,
            "version_number": self.version_number,
            "entity_table": self.entity_table,
            "entity_template": self.entity_template,
            "rrule": self.rrule,
            "dtstart": format_instant(self.dtstart) if self.dtstart else None,
            "duration": format_duration(self.duration),
            "timezone": self.timezone,
            "time_slot_property": self.time_slot_property,
            "terminated_at": format_instant(self.terminated_at) if self.terminated_at else None,
            "is_current": self.is_current,
            "created_at": self.created_at.isoformat(),
            "template_updated_at": self.template_updated_at.isoformat() if self.template_updated_at else None,
        }


class VersionChain:
    """
    Ordered arena of one group's versions, sorted by dtstart.

    Only the last slot may be current, so "current" and "previous" are
    index lookups and two current versions cannot be represented.
    """

    def __init__(self, group_id: int, versions: Optional[List[SeriesVersion]] = None):
        self.group_id = group_id
        self._versions: List[SeriesVersion] = []
        for version in sorted(versions or [], key=lambda v: (v.dtstart, v.version_number)):
            self._check_appendable(version)
            self._versions.append(version)

    def __len__(self) -> int:
        return len(self._versions)

    def __iter__(self) -> Iterator[SeriesVersion]:
        return iter(self._versions)

    def __getitem__(self, index: int) -> SeriesVersion:
        return self._versions[index]

    @property
    def current(self) -> Optional[SeriesVersion]:
        if self._versions and self._versions[-1].is_current:
            return self._versions[-1]
        return None

    @property
    def latest(self) -> Optional[SeriesVersion]:
        return self._versions[-1] if self._versions else None

    @property
    def next_version_number(self) -> int:
        return max((v.version_number for v in self._versions), default=0) + 1

    def index_of(self, version_id: int) -> int:
        for index, version in enumerate(self._versions):
            if version.id == version_id:
                return index
        raise KeyError(version_id)

    def previous(self, version_id: int) -> Optional[SeriesVersion]:
        index = self.index_of(version_id)
        return self._versions[index - 1] if index > 0 else None

    def effective_end(self, index: int) -> Optional[datetime]:
        """terminated_at, else the next version's dtstart, else open"""
        version = self._versions[index]
        if version.terminated_at is not None:
            return version.terminated_at
        if index + 1 < len(self._versions):
            return self._versions[index + 1].dtstart
        return None

    def version_at(self, instant: datetime) -> Optional[SeriesVersion]:
        for index, version in enumerate(self._versions):
            end = self.effective_end(index)
            if version.dtstart <= instant and (end is None or instant < end):
                return version
        return None

    def append(self, version: SeriesVersion):
        self._check_appendable(version)
        self._versions.append(version)

    def _check_appendable(self, version: SeriesVersion):
        latest = self.latest
        if latest is None:
            return
        if latest.is_current:
            raise StateInvariantError(
                f"Group {self.group_id} already has current version {latest.id}; terminate it first"
            )
        if version.dtstart < latest.terminated_at:
            raise StateInvariantError(
                f"Version starting {format_instant(version.dtstart)} overlaps version "
                f"{latest.id} ending {format_instant(latest.terminated_at)}"
            )
