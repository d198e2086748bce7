"""
Unit tests for the series mutation engine.

Clock is fixed at 2025-01-01 12:00 UTC (see conftest.FIXED_NOW).
"""
from datetime import date, datetime, timezone

import pytest

from src.timeslot.errors import ValidationError
from src.timeslot.models.series_instance import ExceptionType
from src.timeslot.recurrence.ranges import TimeRange
from src.timeslot.services.expansion_scheduler import ExpansionScheduler
from src.timeslot.services.series_service import CreateSeriesParams, SplitSeriesParams
from tests.conftest import BOOKINGS, FIXED_NOW

UTC = timezone.utc


def at(*args) -> datetime:
    return datetime(*args, tzinfo=UTC)


def weekly(**overrides) -> CreateSeriesParams:
    params = dict(
        group_name="Morning Yoga",
        entity_table=BOOKINGS,
        rrule="FREQ=WEEKLY;COUNT=4",
        dtstart="2025-01-06T09:00:00Z",
        duration="PT1H",
        entity_template={"resource_id": 7, "purpose": "Yoga"},
    )
    params.update(overrides)
    return CreateSeriesParams(**params)


async def instances_of(storage, group_id):
    versions = await storage.list_versions(group_id)
    return await storage.list_instances([v.id for v in versions])


class TestCreateSeries:
    """Tests for create_series"""

    @pytest.mark.asyncio
    async def test_creates_group_version_and_instances(self, series_service, storage, data):
        result = await series_service.create_series(weekly(group_color="#3B82F6"))

        assert result.success, result.message
        assert result.instances_created == 4
        assert result.conflicts_skipped == 0

        group = await storage.get_group(result.group_id)
        assert group.display_name == "Morning Yoga"
        assert group.color == "#3B82F6"
        assert group.started_on == date(2025, 1, 6)

        instances = await instances_of(storage, result.group_id)
        assert [i.occurrence_date.isoformat() for i in instances] == [
            "2025-01-06", "2025-01-13", "2025-01-20", "2025-01-27",
        ]
        assert all(i.entity_id is not None and not i.is_exception for i in instances)

        bookings = data.rows(BOOKINGS)
        assert len(bookings) == 4
        assert bookings[0]["time_slot"] == TimeRange(at(2025, 1, 6, 9), at(2025, 1, 6, 10))
        assert all(b["resource_id"] == 7 and b["purpose"] == "Yoga" for b in bookings)

    @pytest.mark.asyncio
    async def test_skip_conflicts_records_conflict_skipped(self, series_service, storage, data):
        """Third of four weekly occurrences overlaps an existing booking"""
        data.seed(
            BOOKINGS, resource_id=7, display_name="Board meeting",
            time_slot=TimeRange(at(2025, 1, 20, 9, 30), at(2025, 1, 20, 10, 30)),
        )

        result = await series_service.create_series(weekly(skip_conflicts=True))

        assert result.success, result.message
        assert result.instances_created == 3
        assert result.conflicts_skipped == 1

        instances = await instances_of(storage, result.group_id)
        linked = [i for i in instances if i.entity_id is not None]
        skipped = [i for i in instances if i.entity_id is None]
        assert len(linked) == 3
        assert len(skipped) == 1
        assert skipped[0].is_exception
        assert skipped[0].exception_type is ExceptionType.CONFLICT_SKIPPED
        assert skipped[0].occurrence_date == date(2025, 1, 20)
        assert len(data.rows(BOOKINGS)) == 4

    @pytest.mark.asyncio
    async def test_constraint_rejections_become_conflict_skipped(self, series_service, storage, data):
        """Without a pre-check, the rows the database rejects are marked as skipped"""
        data.seed(
            BOOKINGS, resource_id=7,
            time_slot=TimeRange(at(2025, 1, 13, 8), at(2025, 1, 13, 9, 30)),
        )

        result = await series_service.create_series(weekly(skip_conflicts=False))

        assert result.success, result.message
        assert result.instances_created == 3
        assert result.conflicts_skipped == 1
        instances = await instances_of(storage, result.group_id)
        assert [i.exception_type for i in instances] == [
            None, ExceptionType.CONFLICT_SKIPPED, None, None,
        ]

    @pytest.mark.asyncio
    async def test_other_resources_do_not_conflict(self, series_service, data):
        data.seed(
            BOOKINGS, resource_id=8,
            time_slot=TimeRange(at(2025, 1, 20, 9), at(2025, 1, 20, 10)),
        )
        result = await series_service.create_series(weekly(skip_conflicts=True))
        assert result.conflicts_skipped == 0

    @pytest.mark.asyncio
    async def test_open_rule_materializes_to_horizon(self, series_service, storage):
        """Weekly without COUNT/UNTIL stops 90 days after the first occurrence"""
        result = await series_service.create_series(weekly(rrule="FREQ=WEEKLY"))

        assert result.success, result.message
        instances = await instances_of(storage, result.group_id)
        assert len(instances) == 13
        assert instances[-1].occurrence_date == date(2025, 3, 31)

    @pytest.mark.asyncio
    async def test_limit_and_expand_now(self, series_service, storage):
        limited = await series_service.create_series(weekly(limit=2))
        assert limited.instances_created == 2

        deferred = await series_service.create_series(weekly(expand_now=False, group_name="Later"))
        assert deferred.success
        assert deferred.instances_created == 0
        assert await instances_of(storage, deferred.group_id) == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("overrides,kind", [
        ({"group_name": "  "}, "validation_error"),
        ({"group_color": "blue"}, "validation_error"),
        ({"entity_table": "unknown"}, "validation_error"),
        ({"entity_table": "notes"}, "validation_error"),
        ({"entity_template": {"resource_id": 7, "created_at": "2025-01-01"}}, "validation_error"),
        ({"entity_template": {"resource_id": 7, "nickname": "x"}}, "validation_error"),
        ({"entity_template": {"resource_id": 7, "purpose": "x" * 41}}, "validation_error"),
        ({"entity_template": {"resource_id": 7, "attendee_count": 0}}, "validation_error"),
        ({"rrule": "FREQ=MINUTELY"}, "parse_error"),
        ({"dtstart": "soon"}, "parse_error"),
        ({"duration": "PT0S"}, "validation_error"),
    ])
    async def test_invalid_input_creates_nothing(self, series_service, data, overrides, kind):
        result = await series_service.create_series(weekly(**overrides))

        assert not result.success
        assert result.error_kind == kind
        assert data.rows(BOOKINGS) == []
        assert data.rows("metadata.time_slot_series_groups") == []

    @pytest.mark.asyncio
    async def test_skip_conflicts_needs_scope_value(self, series_service):
        result = await series_service.create_series(
            weekly(skip_conflicts=True, entity_template={"purpose": "Yoga"})
        )
        assert not result.success
        assert "resource_id" in result.message

    @pytest.mark.asyncio
    async def test_failure_midway_rolls_everything_back(self, series_service, data):
        """No group, version, instance or booking survives a failed materialization"""
        data.fail_insert(BOOKINGS, after=2)

        result = await series_service.create_series(weekly())

        assert not result.success
        assert result.error_kind == "persistence_error"
        assert data.rows(BOOKINGS) == []
        assert data.rows("metadata.time_slot_series_groups") == []
        assert data.rows("metadata.time_slot_series") == []
        assert data.rows("metadata.time_slot_instances") == []
        assert data.rollbacks == 1


class TestSplitSeries:
    """Tests for split_series_from_date"""

    @pytest.mark.asyncio
    async def test_split_keeps_past_and_regenerates_future(self, series_service, storage, data):
        created = await series_service.create_series(weekly(rrule="FREQ=WEEKLY;COUNT=10"))
        before = await storage.list_instances([created.series_id], before_date=date(2025, 2, 3))
        before_rows = [data.tables[BOOKINGS][i.entity_id] for i in before]

        result = await series_service.split_series_from_date(SplitSeriesParams(
            series_id=created.series_id,
            split_date="2025-02-03",
            new_dtstart="2025-02-04T10:00:00Z",
            new_template={"purpose": "Pilates"},
        ))

        assert result.success, result.message
        assert result.instances_replaced == 6
        assert result.instances_created == 6

        # Everything before the split date is unchanged
        after = await storage.list_instances([created.series_id], before_date=date(2025, 2, 3))
        assert [i.to_dict() for i in after] == [i.to_dict() for i in before]
        assert [data.tables[BOOKINGS][i.entity_id] for i in after] == before_rows
        assert await storage.list_instances([created.series_id], from_date=date(2025, 2, 3)) == []

        # Everything from the split date comes from the new version
        future = await storage.list_instances([result.new_series_id], from_date=date(2025, 2, 3))
        assert [i.occurrence_date.isoformat() for i in future] == [
            "2025-02-04", "2025-02-11", "2025-02-18", "2025-02-25", "2025-03-04", "2025-03-11",
        ]
        for instance in future:
            row = data.tables[BOOKINGS][instance.entity_id]
            assert row["purpose"] == "Pilates"
            assert row["resource_id"] == 7
            assert row["time_slot"].start.hour == 10
        assert len(data.rows(BOOKINGS)) == 10

    @pytest.mark.asyncio
    async def test_split_versions(self, series_service, storage, versions):
        created = await series_service.create_series(weekly(rrule="FREQ=WEEKLY;COUNT=10"))
        result = await series_service.split_series_from_date(SplitSeriesParams(
            series_id=created.series_id,
            split_date=date(2025, 2, 3),
            new_dtstart="2025-02-03T09:00:00Z",
            new_duration="PT90M",
        ))
        assert result.success, result.message

        chain = await versions.load_chain(created.group_id)
        old, new = list(chain)
        assert old.terminated_at == at(2025, 2, 3)
        assert old.rrule == "FREQ=WEEKLY;COUNT=10;UNTIL=20250202T235959Z"
        assert new.is_current
        assert new.version_number == 2
        assert new.rrule == "FREQ=WEEKLY;COUNT=6"
        assert new.entity_template == {"resource_id": 7, "purpose": "Yoga"}

        group = await storage.get_group(created.group_id)
        assert group.started_on == date(2025, 1, 6)

    @pytest.mark.asyncio
    async def test_split_with_new_rule(self, series_service):
        created = await series_service.create_series(weekly(rrule="FREQ=WEEKLY;COUNT=10"))
        result = await series_service.split_series_from_date(SplitSeriesParams(
            series_id=created.series_id,
            split_date="2025-02-03",
            new_dtstart="2025-02-05T09:00:00Z",
            new_rrule="FREQ=DAILY;COUNT=2",
        ))
        assert result.success, result.message
        assert result.instances_created == 2

    @pytest.mark.asyncio
    @pytest.mark.parametrize("split_date", ["2025-01-01", "2025-01-02", "2024-12-30"])
    async def test_split_must_be_after_tomorrow(self, series_service, storage, split_date):
        created = await series_service.create_series(weekly())
        before = await instances_of(storage, created.group_id)

        result = await series_service.split_series_from_date(SplitSeriesParams(
            series_id=created.series_id, split_date=split_date, new_dtstart="2025-02-04T10:00:00Z",
        ))

        assert not result.success
        assert result.error_kind == "validation_error"
        assert await instances_of(storage, created.group_id) == before

    @pytest.mark.asyncio
    async def test_split_before_first_occurrence(self, series_service):
        created = await series_service.create_series(weekly())
        result = await series_service.split_series_from_date(SplitSeriesParams(
            series_id=created.series_id, split_date="2025-01-03", new_dtstart="2025-01-03T09:00:00Z",
        ))
        assert result.error_kind == "state_invariant_error"

    @pytest.mark.asyncio
    async def test_only_current_version_can_be_split(self, series_service):
        created = await series_service.create_series(weekly(rrule="FREQ=WEEKLY;COUNT=10"))
        first = await series_service.split_series_from_date(SplitSeriesParams(
            series_id=created.series_id, split_date="2025-02-03", new_dtstart="2025-02-04T10:00:00Z",
        ))
        assert first.success, first.message

        again = await series_service.split_series_from_date(SplitSeriesParams(
            series_id=created.series_id, split_date="2025-02-17", new_dtstart="2025-02-18T10:00:00Z",
        ))
        assert again.error_kind == "state_invariant_error"

    @pytest.mark.asyncio
    async def test_new_start_before_split_date(self, series_service):
        created = await series_service.create_series(weekly(rrule="FREQ=WEEKLY;COUNT=10"))
        result = await series_service.split_series_from_date(SplitSeriesParams(
            series_id=created.series_id, split_date="2025-02-03", new_dtstart="2025-02-01T10:00:00Z",
        ))
        assert result.error_kind == "validation_error"

    @pytest.mark.asyncio
    async def test_nothing_left_after_split(self, series_service):
        created = await series_service.create_series(weekly(rrule="FREQ=WEEKLY;COUNT=2"))
        result = await series_service.split_series_from_date(SplitSeriesParams(
            series_id=created.series_id, split_date="2025-02-03", new_dtstart="2025-02-04T10:00:00Z",
        ))
        assert result.error_kind == "validation_error"

    @pytest.mark.asyncio
    async def test_nothing_left_after_split_of_until_series(self, series_service, storage, versions):
        """An UNTIL that already passed leaves no occurrences for the new version"""
        created = await series_service.create_series(weekly(rrule="FREQ=WEEKLY;UNTIL=20250120"))
        before = await instances_of(storage, created.group_id)
        assert len(before) == 3

        result = await series_service.split_series_from_date(SplitSeriesParams(
            series_id=created.series_id, split_date="2025-02-03", new_dtstart="2025-02-04T10:00:00Z",
        ))

        assert not result.success
        assert result.error_kind == "validation_error"
        chain = list(await versions.load_chain(created.group_id))
        assert [v.id for v in chain] == [created.series_id]
        assert chain[0].is_current
        assert chain[0].rrule == "FREQ=WEEKLY;UNTIL=20250120T235959Z"
        assert await instances_of(storage, created.group_id) == before

    @pytest.mark.asyncio
    async def test_terminated_version_keeps_its_count(self, series_service, storage):
        """Re-expanding the old version after a split adds nothing past its COUNT"""
        created = await series_service.create_series(weekly(rrule="FREQ=WEEKLY;COUNT=2"))
        split = await series_service.split_series_from_date(SplitSeriesParams(
            series_id=created.series_id,
            split_date="2025-02-03",
            new_dtstart="2025-02-04T10:00:00Z",
            new_rrule="FREQ=DAILY;COUNT=2",
        ))
        assert split.success, split.message

        result = await series_service.expand_series(created.series_id)

        assert result.success, result.message
        assert result.instances_created == 0
        old = await storage.list_instances([created.series_id])
        assert [i.occurrence_date.isoformat() for i in old] == ["2025-01-06", "2025-01-13"]
        version = await storage.get_version(created.series_id)
        assert version.rrule == "FREQ=WEEKLY;COUNT=2;UNTIL=20250202T235959Z"

    @pytest.mark.asyncio
    async def test_unknown_series(self, series_service):
        result = await series_service.split_series_from_date(SplitSeriesParams(
            series_id=404, split_date="2025-02-03", new_dtstart="2025-02-04T10:00:00Z",
        ))
        assert result.error_kind == "not_found"

    @pytest.mark.asyncio
    async def test_failed_split_leaves_series_untouched(self, series_service, storage, versions, data):
        created = await series_service.create_series(weekly(rrule="FREQ=WEEKLY;COUNT=10"))
        before = await instances_of(storage, created.group_id)
        bookings = data.rows(BOOKINGS)
        data.fail_insert(BOOKINGS, after=1)

        result = await series_service.split_series_from_date(SplitSeriesParams(
            series_id=created.series_id, split_date="2025-02-03", new_dtstart="2025-02-04T10:00:00Z",
        ))

        assert not result.success
        assert await instances_of(storage, created.group_id) == before
        assert data.rows(BOOKINGS) == bookings
        current = await versions.get_current_version(created.group_id)
        assert current.id == created.series_id
        assert current.rrule == "FREQ=WEEKLY;COUNT=10"


class TestUpdateTemplate:
    """Tests for update_series_template"""

    @pytest.mark.asyncio
    async def test_exceptions_are_not_clobbered(self, series_service, storage, data):
        """Five future instances, two modified: exactly three rows are rewritten"""
        created = await series_service.create_series(weekly(rrule="FREQ=WEEKLY;COUNT=5"))
        instances = await instances_of(storage, created.group_id)
        for instance in (instances[1], instances[3]):
            edited = await series_service.edit_occurrence(BOOKINGS, instance.entity_id, {"purpose": "Special"})
            assert edited.success, edited.message
        data.queries.clear()

        result = await series_service.update_series_template(created.series_id, {"purpose": "Vinyasa"})

        assert result.success, result.message
        assert result.instances_updated == 3
        assert result.exceptions_skipped == 2
        assert data.queries.count(("update", BOOKINGS)) == 3

        purposes = [data.tables[BOOKINGS][i.entity_id]["purpose"] for i in instances]
        assert purposes == ["Vinyasa", "Special", "Vinyasa", "Special", "Vinyasa"]

        version = await storage.get_version(created.series_id)
        assert version.entity_template == {"resource_id": 7, "purpose": "Vinyasa"}
        assert version.template_updated_at == FIXED_NOW

    @pytest.mark.asyncio
    async def test_past_instances_are_not_rewritten(self, series_service, storage, data):
        created = await series_service.create_series(weekly(dtstart="2024-12-16T09:00:00Z", rrule="FREQ=WEEKLY;COUNT=5"))

        result = await series_service.update_series_template(created.series_id, {"purpose": "New"})

        assert result.instances_updated == 2
        purposes = [b["purpose"] for b in data.rows(BOOKINGS)]
        assert purposes == ["Yoga", "Yoga", "Yoga", "New", "New"]

    @pytest.mark.asyncio
    async def test_time_slot_is_never_overwritten(self, series_service, data):
        created = await series_service.create_series(weekly())
        slots = [b["time_slot"] for b in data.rows(BOOKINGS)]

        await series_service.update_series_template(
            created.series_id, {"time_slot": "[2025-06-01T09:00:00Z,2025-06-01T10:00:00Z)"}
        )

        assert [b["time_slot"] for b in data.rows(BOOKINGS)] == slots

    @pytest.mark.asyncio
    async def test_invalid_template_changes_nothing(self, series_service, storage, data):
        created = await series_service.create_series(weekly())
        rows = data.rows(BOOKINGS)

        result = await series_service.update_series_template(created.series_id, {"updated_by": "me"})

        assert result.error_kind == "validation_error"
        assert data.rows(BOOKINGS) == rows
        version = await storage.get_version(created.series_id)
        assert version.entity_template == {"resource_id": 7, "purpose": "Yoga"}


class TestGroupOperations:
    """Tests for group info, deletion, listing and summary"""

    @pytest.mark.asyncio
    async def test_delete_group(self, series_service, storage, data):
        created = await series_service.create_series(weekly())
        instances = await instances_of(storage, created.group_id)
        await series_service.cancel_occurrence(BOOKINGS, instances[0].entity_id)

        result = await series_service.delete_series_group(created.group_id)

        assert result.success, result.message
        assert result.instances_deleted == 4
        assert result.entities_deleted == 3
        assert data.rows(BOOKINGS) == []
        assert data.rows("metadata.time_slot_instances") == []
        assert data.rows("metadata.time_slot_series") == []
        assert await storage.get_group(created.group_id) is None

    @pytest.mark.asyncio
    async def test_delete_group_keeping_entities(self, series_service, data):
        created = await series_service.create_series(weekly())
        result = await series_service.delete_series_group(created.group_id, delete_entities=False)
        assert result.entities_deleted == 0
        assert len(data.rows(BOOKINGS)) == 4

    @pytest.mark.asyncio
    async def test_delete_unknown_group(self, series_service):
        result = await series_service.delete_series_group(404)
        assert result.error_kind == "not_found"

    @pytest.mark.asyncio
    async def test_update_group_info(self, series_service, storage):
        created = await series_service.create_series(weekly())

        result = await series_service.update_series_group_info(
            created.group_id, display_name="  ", description="Bring a mat", color="#10B981"
        )

        assert result.success, result.message
        group = await storage.get_group(created.group_id)
        assert group.display_name == "Morning Yoga"
        assert group.description == "Bring a mat"
        assert group.color == "#10B981"

    @pytest.mark.asyncio
    async def test_update_group_info_rejects_bad_color(self, series_service):
        created = await series_service.create_series(weekly())
        result = await series_service.update_series_group_info(created.group_id, color="#12345")
        assert result.error_kind == "validation_error"

    @pytest.mark.asyncio
    async def test_list_instances_filters(self, series_service):
        created = await series_service.create_series(
            weekly(dtstart="2024-12-16T09:00:00Z", rrule="FREQ=WEEKLY;COUNT=5")
        )
        upcoming = await series_service.list_group_instances(created.group_id, "upcoming")
        await series_service.cancel_occurrence(BOOKINGS, upcoming[0].entity_id, "Holiday")

        past = await series_service.list_group_instances(created.group_id, "past")
        exceptions = await series_service.list_group_instances(created.group_id, "exceptions")
        everything = await series_service.list_group_instances(created.group_id)

        assert [i.occurrence_date.isoformat() for i in past] == ["2024-12-16", "2024-12-23", "2024-12-30"]
        assert [i.occurrence_date.isoformat() for i in upcoming] == ["2025-01-06", "2025-01-13"]
        assert [i.exception_reason for i in exceptions] == ["Holiday"]
        assert len(everything) == 5

    @pytest.mark.asyncio
    async def test_list_instances_unknown_filter(self, series_service):
        created = await series_service.create_series(weekly())
        with pytest.raises(ValidationError):
            await series_service.list_group_instances(created.group_id, "someday")

    @pytest.mark.asyncio
    async def test_group_summary(self, series_service, versions):
        created = await series_service.create_series(weekly(entity_template={"purpose": "Yoga"}))
        instances = await series_service.list_group_instances(created.group_id)
        await series_service.edit_occurrence(BOOKINGS, instances[0].entity_id, {"purpose": "Yin"})

        summary = await series_service.group_summary(created.group_id)

        assert summary["version_count"] == 1
        assert summary["status"] == "active"
        assert summary["started_on"] == "2025-01-06"
        assert summary["current_version"]["series_id"] == created.series_id
        assert summary["active_instance_count"] == 4
        assert summary["exception_count"] == 1
        assert summary["schema_issues"] == ["resource_id: Required field missing from template"]

        await versions.terminate_version(created.series_id, "2025-02-01T00:00:00Z")
        ended = await series_service.group_summary(created.group_id)
        assert ended["status"] == "ended"
        assert ended["current_version"] is None


class TestOccurrenceExceptions:
    """Tests for cancel / reschedule / edit of one occurrence"""

    @pytest.mark.asyncio
    async def test_cancel_occurrence(self, series_service, storage, data):
        created = await series_service.create_series(weekly())
        target = (await instances_of(storage, created.group_id))[1]

        result = await series_service.cancel_occurrence(BOOKINGS, target.entity_id, "Instructor away")

        assert result.success, result.message
        assert target.entity_id not in data.tables[BOOKINGS]
        instance = await storage.get_instance(target.id)
        assert instance.entity_id is None
        assert instance.is_exception
        assert instance.exception_type is ExceptionType.CANCELLED
        assert instance.exception_reason == "Instructor away"
        assert instance.exception_at == FIXED_NOW

        membership = await series_service.get_series_membership(BOOKINGS, target.entity_id)
        assert not membership.is_member

    @pytest.mark.asyncio
    async def test_cancelled_date_is_not_regenerated(self, series_service, storage):
        created = await series_service.create_series(weekly(rrule="FREQ=WEEKLY", expand_now=False))
        await series_service.expand_series(created.series_id, until="2025-01-31T00:00:00Z")
        target = (await instances_of(storage, created.group_id))[0]
        await series_service.cancel_occurrence(BOOKINGS, target.entity_id)

        again = await series_service.expand_series(created.series_id, until="2025-01-31T00:00:00Z")

        assert again.instances_created == 0

    @pytest.mark.asyncio
    async def test_cancel_non_member(self, series_service, data):
        row_id = data.seed(BOOKINGS, resource_id=7, time_slot=TimeRange(at(2025, 1, 6, 9), at(2025, 1, 6, 10)))
        result = await series_service.cancel_occurrence(BOOKINGS, row_id)
        assert result.error_kind == "not_found"
        assert row_id in data.tables[BOOKINGS]

    @pytest.mark.asyncio
    async def test_reschedule_occurrence(self, series_service, storage, data):
        created = await series_service.create_series(weekly())
        target = (await instances_of(storage, created.group_id))[0]

        result = await series_service.reschedule_occurrence(
            BOOKINGS, target.entity_id, ("2025-01-07T15:00:00Z", "2025-01-07T16:00:00Z")
        )

        assert result.success, result.message
        assert data.tables[BOOKINGS][target.entity_id]["time_slot"] == TimeRange(
            at(2025, 1, 7, 15), at(2025, 1, 7, 16)
        )
        instance = await storage.get_instance(target.id)
        assert instance.exception_type is ExceptionType.RESCHEDULED
        assert instance.original_time_slot == "[2025-01-06T09:00:00Z,2025-01-06T10:00:00Z)"

    @pytest.mark.asyncio
    async def test_reschedule_into_conflict_fails(self, series_service, storage, data):
        created = await series_service.create_series(weekly())
        first, second = (await instances_of(storage, created.group_id))[:2]
        taken = data.tables[BOOKINGS][second.entity_id]["time_slot"]

        result = await series_service.reschedule_occurrence(BOOKINGS, first.entity_id, taken)

        assert result.error_kind == "constraint_violation"
        instance = await storage.get_instance(first.id)
        assert not instance.is_exception

    @pytest.mark.asyncio
    async def test_edit_occurrence_marks_modified(self, series_service, storage, data):
        created = await series_service.create_series(weekly())
        target = (await instances_of(storage, created.group_id))[2]

        result = await series_service.edit_occurrence(BOOKINGS, target.entity_id, {"purpose": "Guest instructor"})

        assert result.success, result.message
        assert data.tables[BOOKINGS][target.entity_id]["purpose"] == "Guest instructor"
        instance = await storage.get_instance(target.id)
        assert instance.is_exception
        assert instance.exception_type is ExceptionType.MODIFIED

    @pytest.mark.asyncio
    async def test_edit_non_member_is_plain_update(self, series_service, data):
        row_id = data.seed(BOOKINGS, resource_id=7, time_slot=TimeRange(at(2025, 1, 6, 9), at(2025, 1, 6, 10)))
        result = await series_service.edit_occurrence(BOOKINGS, row_id, {"purpose": "Ad hoc"})
        assert result.success
        assert result.is_member is False
        assert data.tables[BOOKINGS][row_id]["purpose"] == "Ad hoc"

    @pytest.mark.asyncio
    async def test_membership(self, series_service, storage):
        created = await series_service.create_series(weekly(group_color="#F59E0B"))
        target = (await instances_of(storage, created.group_id))[1]

        membership = await series_service.get_series_membership(BOOKINGS, target.entity_id)

        assert membership.is_member
        assert membership.group_id == created.group_id
        assert membership.series_id == created.series_id
        assert membership.group_name == "Morning Yoga"
        assert membership.group_color == "#F59E0B"
        assert membership.occurrence_date == date(2025, 1, 13)
        assert membership.original_template == {"resource_id": 7, "purpose": "Yoga"}
        assert membership.to_dict()["occurrence_date"] == "2025-01-13"


class TestExpansion:
    """Tests for top-up expansion"""

    @pytest.mark.asyncio
    async def test_expand_is_idempotent(self, series_service):
        created = await series_service.create_series(weekly(rrule="FREQ=WEEKLY", expand_now=False))

        first = await series_service.expand_series(created.series_id, until="2025-01-31T00:00:00Z")
        second = await series_service.expand_series(created.series_id, until="2025-01-31T00:00:00Z")

        assert first.instances_created == 4
        assert second.instances_created == 0

    @pytest.mark.asyncio
    async def test_expand_to_horizon(self, series_service, storage):
        created = await series_service.create_series(weekly(rrule="FREQ=WEEKLY", expand_now=False))
        await series_service.expand_series(created.series_id, until="2025-01-31T00:00:00Z")

        result = await series_service.expand_series(created.series_id)

        assert result.instances_created == 9
        instances = await instances_of(storage, created.group_id)
        assert instances[-1].occurrence_date == date(2025, 3, 31)

    @pytest.mark.asyncio
    async def test_terminated_version_stops_at_termination(self, series_service, versions):
        created = await series_service.create_series(weekly(rrule="FREQ=WEEKLY", expand_now=False))
        await versions.terminate_version(created.series_id, "2025-01-14T00:00:00Z")

        result = await series_service.expand_series(created.series_id)

        assert result.instances_created == 2

    @pytest.mark.asyncio
    async def test_scheduler_run_once(self, series_service):
        await series_service.create_series(weekly(rrule="FREQ=WEEKLY", expand_now=False))
        await series_service.create_series(weekly(
            group_name="Done", rrule="FREQ=WEEKLY;COUNT=2", entity_template={"resource_id": 8},
        ))
        scheduler = ExpansionScheduler(series_service, enabled=False)

        created = await scheduler.run_once()

        assert created == 13
        assert await scheduler.run_once() == 0

    @pytest.mark.asyncio
    async def test_disabled_scheduler_does_not_start(self, series_service):
        scheduler = ExpansionScheduler(series_service, enabled=False)
        await scheduler.start()
        assert not scheduler.is_running
        await scheduler.stop()
