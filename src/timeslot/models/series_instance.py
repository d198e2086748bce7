"""
Series Instance Model

A single materialized occurrence of a series version, plus the
membership answer given to single-entity edit pages.
"""
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Optional

from .series_group import utcnow


class ExceptionType(str, Enum):
    """Why an instance deviates from its version"""
    CANCELLED = "cancelled"                             # user deleted this occurrence
    RESCHEDULED = "rescheduled"                         # moved to a different time
    MODIFIED = "modified"                               # entity data changed from template
    CONFLICT_SKIPPED = "conflict_skipped"               # never created due to conflict


@dataclass
class SeriesInstance:
    """
    Series instance entity.

    entity_id is None when the occurrence has no entity row
    (cancelled or conflict_skipped).
    """
    id: Optional[int] = None
    series_id: Optional[int] = None
    occurrence_date: Optional[date] = None
    entity_table: str = ""
    entity_id: Optional[int] = None
    is_exception: bool = False
    exception_type: Optional[ExceptionType] = None

    # Audit trail for exceptions
    original_time_slot: Optional[str] = None
    exception_reason: Optional[str] = None
    exception_at: Optional[datetime] = None

    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict:
        """Convert to dictionary for API response"""
        return {
            "id": self.id,
            "series_id": self.series_id,
            "occurrence_date": self.occurrence_date.isoformat() if self.occurrence_date else None,
            "entity_table": self.entity_table,
            "entity_id": self.entity_id,
            "is_exception": self.is_exception,
            "exception_type": self.exception_type.value if self.exception_type else None,
            "original_time_slot": self.original_time_slot,
            "exception_reason": self.exception_reason,
            "exception_at": self.exception_at.isoformat() if self.exception_at else None,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class SeriesMembership:
    """Whether an entity row belongs to a series, and where"""
    is_member: bool = False
    series_id: Optional[int] = None
    group_id: Optional[int] = None
    group_name: Optional[str] = None
    group_color: Optional[str] = None
    occurrence_date: Optional[date] = None
    is_exception: bool = False
    exception_type: Optional[ExceptionType] = None
    original_template: Optional[dict] = None

    def to_dict(self) -> dict:
        if not self.is_member:
            return {"is_member": False}
        return {
            "is_member": True,
            "series_id": self.series_id,
            "group_id": self.group_id,
            "group_name": self.group_name,
            "group_color": self.group_color,
            "occurrence_date": self.occurrence_date.isoformat() if self.occurrence_date else None,
            "is_exception": self.is_exception,
            "exception_type": self.exception_type.value if self.exception_type else None,
            "original_template": self.original_template,
        }
