"""
Schema Metadata

Entity and property definitions supplied by the schema collaborator:
which column holds an entity's time range, whether the entity supports
recurring series, and which columns a series template may set.
"""
import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from ..storage.base import BaseStorage
from ..storage.data_access import database_errors

logger = logging.getLogger("timeslot.schema")


class RuleKind(str, Enum):
    MIN_LENGTH = "minLength"
    MAX_LENGTH = "maxLength"
    MIN = "min"
    MAX = "max"
    PATTERN = "pattern"


@dataclass(frozen=True)
class ValidationRule:
    """
    One property validation rule.

    Closed set of kinds; check() handles each of them exactly once.
    """
    kind: RuleKind
    value: Any
    message: Optional[str] = None

    def check(self, value: Any) -> Optional[str]:
        """Error message if value violates the rule, else None"""
        if value is None:
            return None

        if self.kind is RuleKind.MIN_LENGTH:
            ok = len(str(value)) >= int(self.value)
            default = f"must be at least {self.value} characters"
        elif self.kind is RuleKind.MAX_LENGTH:
            ok = len(str(value)) <= int(self.value)
            default = f"must be at most {self.value} characters"
        elif self.kind is RuleKind.MIN:
            ok = _as_number(value) is not None and _as_number(value) >= float(self.value)
            default = f"must be at least {self.value}"
        elif self.kind is RuleKind.MAX:
            ok = _as_number(value) is not None and _as_number(value) <= float(self.value)
            default = f"must be at most {self.value}"
        elif self.kind is RuleKind.PATTERN:
            ok = re.fullmatch(str(self.value), str(value)) is not None
            default = "has an invalid format"
        else:
            raise AssertionError(f"Unhandled rule kind {self.kind}")

        return None if ok else (self.message or default)

    @classmethod
    def from_dict(cls, data: dict) -> "ValidationRule":
        return cls(kind=RuleKind(data["type"]), value=data.get("value"), message=data.get("message"))


@dataclass
class PropertyDefinition:
    """A column of an entity table as described by schema metadata"""
    column_name: str
    data_type: str = "text"
    display_name: Optional[str] = None
    is_required: bool = False
    show_on_edit: bool = True
    validation_rules: Tuple[ValidationRule, ...] = field(default_factory=tuple)


@dataclass
class EntityConfig:
    """Recurring-series configuration of an entity table"""
    table_name: str
    display_name: Optional[str] = None
    supports_recurring: bool = False
    recurring_property_name: Optional[str] = None       # time range column
    scope_column: Optional[str] = None                  # column that partitions bookings


class SchemaMetadata(ABC):
    """Schema/metadata collaborator interface"""

    @abstractmethod
    async def get_entity_config(self, table: str) -> Optional[EntityConfig]:
        """Entity configuration, or None if the table is unknown"""

    @abstractmethod
    async def get_properties(self, table: str) -> List[PropertyDefinition]:
        """Property definitions of the table"""


class PostgresSchemaMetadata(BaseStorage, SchemaMetadata):
    """Reads metadata.entities / metadata.properties"""

    async def get_entity_config(self, table: str) -> Optional[EntityConfig]:
        query = """
            SELECT table_name, display_name, supports_recurring, recurring_property_name,
                   recurring_scope_column
            FROM metadata.entities
            WHERE table_name = $1
        """
        async with database_errors("metadata.entities", "select"):
            row = await self.fetchrow(query, table)
        if not row:
            return None
        return EntityConfig(
            table_name=row["table_name"],
            display_name=row["display_name"],
            supports_recurring=bool(row["supports_recurring"]),
            recurring_property_name=row["recurring_property_name"],
            scope_column=row["recurring_scope_column"],
        )

    async def get_properties(self, table: str) -> List[PropertyDefinition]:
        query = """
            SELECT column_name, data_type, display_name, is_nullable, column_default,
                   show_on_edit, validation_rules
            FROM public.schema_properties
            WHERE table_name = $1
            ORDER BY sort_order
        """
        async with database_errors("public.schema_properties", "select"):
            rows = await self.fetch(query, table)
        return [self._row_to_property(row) for row in rows]

    def _row_to_property(self, row) -> PropertyDefinition:
        """Convert database row to PropertyDefinition"""
        rules = row["validation_rules"] or []
        if isinstance(rules, str):
            rules = json.loads(rules)

        parsed: List[ValidationRule] = []
        for rule in rules:
            try:
                parsed.append(ValidationRule.from_dict(rule))
            except (KeyError, ValueError):
                logger.warning(f"Ignoring unknown validation rule {rule} on {row['column_name']}")

        nullable = row["is_nullable"]
        if isinstance(nullable, str):
            nullable = nullable.upper() == "YES"

        return PropertyDefinition(
            column_name=row["column_name"],
            data_type=row["data_type"],
            display_name=row["display_name"],
            is_required=not nullable and row["column_default"] is None,
            show_on_edit=bool(row["show_on_edit"]),
            validation_rules=tuple(parsed),
        )


def _as_number(value: Any) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def properties_by_name(properties: List[PropertyDefinition]) -> Dict[str, PropertyDefinition]:
    return {p.column_name: p for p in properties}
