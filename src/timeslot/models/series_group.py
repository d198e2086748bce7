"""
Series Group Model

A named recurring schedule - what users see as "one recurring event".
Owns one or more SeriesVersions ordered by dtstart.
"""
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class SeriesGroup:
    """
    Series group entity.

    started_on is the date of the first occurrence ever generated and
    never moves when later versions are split off.
    """
    id: Optional[int] = None
    display_name: str = ""
    description: Optional[str] = None
    color: Optional[str] = None                         # "#RRGGBB"
    entity_table: str = ""
    started_on: Optional[date] = None

    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict:
        """Convert to dictionary for API response"""
        return {
            "id": self.id,
            "display_name": self.display_name,
            "description": self.description,
            "color": self.color,
            "entity_table": self.entity_table,
            "started_on": self.started_on.isoformat() if self.started_on else None,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }
