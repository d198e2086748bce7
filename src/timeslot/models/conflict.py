"""
Conflict Models

ConflictScope: where to look for competing bookings.
ConflictInfo: per-occurrence preview answer. Never persisted.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from ..recurrence.ranges import format_instant


@dataclass(frozen=True)
class ConflictScope:
    """Rows of entity_table whose scope_column equals scope_value compete for time"""
    entity_table: str
    scope_column: Optional[str] = None                  # e.g. "resource_id"; None = whole table
    scope_value: Any = None
    time_slot_column: str = "time_slot"


@dataclass
class ConflictInfo:
    """Conflict preview for one candidate occurrence"""
    occurrence_start: datetime
    occurrence_end: datetime
    has_conflict: bool = False
    conflicting_id: Optional[int] = None
    conflicting_display: Optional[str] = None           # UI label only

    def to_dict(self) -> dict:
        return {
            "occurrence_start": format_instant(self.occurrence_start),
            "occurrence_end": format_instant(self.occurrence_end),
            "has_conflict": self.has_conflict,
            "conflicting_id": self.conflicting_id,
            "conflicting_display": self.conflicting_display,
        }
