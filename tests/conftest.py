"""
Pytest configuration and fixtures for timeslot tests.

Provides in-memory collaborators, a fixed clock and wired services.
"""
from datetime import datetime, timezone

import pytest

from src.timeslot.schema.metadata import (
    EntityConfig,
    PropertyDefinition,
    RuleKind,
    ValidationRule,
)
from src.timeslot.services.conflict_service import ConflictService
from src.timeslot.services.recurring_service import RecurringService
from src.timeslot.services.series_service import SeriesService
from src.timeslot.services.version_store import SeriesVersionStore
from src.timeslot.storage.series_storage import SeriesStorage
from tests.fakes import FakeSchemaMetadata, InMemoryDataAccess

# Wednesday; "after tomorrow" means 2025-01-03 or later
FIXED_NOW = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)

BOOKINGS = "bookings"
INSTANCES = "metadata.time_slot_instances"


# ============================================================================
# Collaborator Fixtures
# ============================================================================


@pytest.fixture
def data() -> InMemoryDataAccess:
    """
    In-memory data access with the constraints the SQL schema declares.

    bookings carries an exclusion constraint on time_slot per resource_id.
    """
    data = InMemoryDataAccess()
    data.add_unique(INSTANCES, "series_id", "occurrence_date")
    data.add_unique(INSTANCES, "entity_table", "entity_id")
    data.add_exclusion(BOOKINGS, slot_column="time_slot", scope_column="resource_id")
    return data


@pytest.fixture
def schema() -> FakeSchemaMetadata:
    """Schema metadata for a recurring-capable bookings table and a plain notes table"""
    return FakeSchemaMetadata(
        entities={
            BOOKINGS: EntityConfig(
                table_name=BOOKINGS,
                display_name="Bookings",
                supports_recurring=True,
                recurring_property_name="time_slot",
                scope_column="resource_id",
            ),
            "notes": EntityConfig(table_name="notes", supports_recurring=False),
        },
        properties={
            BOOKINGS: [
                PropertyDefinition("id", "int8", show_on_edit=False, is_required=False),
                PropertyDefinition("resource_id", "int8", "Resource", is_required=True),
                PropertyDefinition(
                    "purpose",
                    "varchar",
                    "Purpose",
                    validation_rules=(ValidationRule(RuleKind.MAX_LENGTH, 40),),
                ),
                PropertyDefinition(
                    "attendee_count",
                    "int4",
                    "Attendees",
                    validation_rules=(ValidationRule(RuleKind.MIN, 1, "needs at least one attendee"),),
                ),
                PropertyDefinition("display_name", "varchar", "Name"),
                PropertyDefinition("time_slot", "tstzrange", "Time", is_required=True),
                PropertyDefinition("created_at", "timestamptz", show_on_edit=False),
            ],
        },
    )


@pytest.fixture
def storage(data: InMemoryDataAccess) -> SeriesStorage:
    return SeriesStorage(data)


@pytest.fixture
def versions(storage: SeriesStorage) -> SeriesVersionStore:
    return SeriesVersionStore(storage)


@pytest.fixture
def conflicts(data: InMemoryDataAccess) -> ConflictService:
    return ConflictService(data)


# ============================================================================
# Service Fixtures
# ============================================================================


@pytest.fixture
def series_service(storage, data, schema, conflicts, versions) -> SeriesService:
    """Mutation engine with a fixed clock"""
    return SeriesService(
        storage=storage,
        data=data,
        schema=schema,
        conflicts=conflicts,
        versions=versions,
        now=lambda: FIXED_NOW,
    )


@pytest.fixture
def recurring_service(series_service: SeriesService) -> RecurringService:
    return RecurringService(series_service)
