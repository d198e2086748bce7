"""
Unit tests for occurrence edit scope resolution.
"""
from datetime import date

import pytest

from src.timeslot.errors import ValidationError
from src.timeslot.models.series_instance import SeriesMembership
from src.timeslot.services.scope_resolver import (
    EditAction,
    EditScope,
    OccurrenceEdit,
    resolve_edit,
)


@pytest.fixture
def member() -> SeriesMembership:
    return SeriesMembership(
        is_member=True,
        series_id=11,
        group_id=3,
        group_name="Morning Yoga",
        occurrence_date=date(2025, 2, 10),
        original_template={"resource_id": 7},
    )


def edit(scope, **kwargs) -> OccurrenceEdit:
    return OccurrenceEdit(entity_table="bookings", entity_id=42, scope=scope, **kwargs)


class TestThisOnly:
    """Tests for this_only edits"""

    def test_field_change_modifies_occurrence(self, member):
        decision = resolve_edit(edit(EditScope.THIS_ONLY, values={"purpose": "Yin"}), member)
        assert decision.action is EditAction.MODIFY_OCCURRENCE
        assert decision.series_id == 11
        assert decision.arguments == {"values": {"purpose": "Yin"}}

    def test_cancel(self, member):
        decision = resolve_edit(edit(EditScope.THIS_ONLY, cancel=True, reason="Holiday"), member)
        assert decision.action is EditAction.CANCEL_OCCURRENCE
        assert decision.arguments == {"reason": "Holiday"}

    def test_new_time_slot_reschedules(self, member):
        slot = "[2025-02-11T09:00:00Z,2025-02-11T10:00:00Z)"
        decision = resolve_edit(
            edit(EditScope.THIS_ONLY, new_time_slot=slot, values={"purpose": "Moved"}), member
        )
        assert decision.action is EditAction.RESCHEDULE_OCCURRENCE
        assert decision.arguments["new_time_slot"] == slot
        assert decision.arguments["values"] == {"purpose": "Moved"}

    def test_empty_edit_is_rejected(self, member):
        with pytest.raises(ValidationError):
            resolve_edit(edit(EditScope.THIS_ONLY), member)

    def test_scope_given_as_text(self, member):
        decision = resolve_edit(edit("this_only", values={"purpose": "Yin"}), member)
        assert decision.action is EditAction.MODIFY_OCCURRENCE


class TestThisAndFuture:
    """Tests for this_and_future edits"""

    def test_splits_at_occurrence_date(self, member):
        decision = resolve_edit(
            edit(
                EditScope.THIS_AND_FUTURE,
                values={"purpose": "Pilates"},
                new_dtstart="2025-02-11T10:00:00Z",
                new_rrule="FREQ=WEEKLY;BYDAY=TU",
            ),
            member,
        )
        assert decision.action is EditAction.SPLIT_SERIES
        assert decision.split_date == date(2025, 2, 10)
        assert decision.arguments["new_template"] == {"purpose": "Pilates"}
        assert decision.arguments["new_rrule"] == "FREQ=WEEKLY;BYDAY=TU"

    def test_explicit_split_date_wins(self, member):
        decision = resolve_edit(
            edit(EditScope.THIS_AND_FUTURE, split_date="2025-03-03", new_dtstart="2025-03-03T09:00:00Z"),
            member,
        )
        assert decision.split_date == date(2025, 3, 3)
        assert decision.arguments["new_template"] is None

    def test_invalid_split_date_is_not_narrowed(self, member):
        """A bad split date fails with a retry hint instead of editing one occurrence"""
        with pytest.raises(ValidationError) as exc_info:
            resolve_edit(
                edit(EditScope.THIS_AND_FUTURE, split_date="next week", new_dtstart="2025-03-03T09:00:00Z"),
                member,
            )
        assert "retry with a valid split date" in exc_info.value.message
        assert exc_info.value.field == "split_date"

    def test_missing_split_date(self, member):
        member.occurrence_date = None
        with pytest.raises(ValidationError, match="retry with a valid split date"):
            resolve_edit(edit(EditScope.THIS_AND_FUTURE, new_dtstart="2025-03-03T09:00:00Z"), member)

    def test_requires_new_start(self, member):
        with pytest.raises(ValidationError):
            resolve_edit(edit(EditScope.THIS_AND_FUTURE, values={"purpose": "x"}), member)

    def test_cancel_is_rejected(self, member):
        with pytest.raises(ValidationError):
            resolve_edit(edit(EditScope.THIS_AND_FUTURE, cancel=True), member)

    def test_new_time_slot_is_rejected(self, member):
        """A moved slot is not silently dropped from a split"""
        with pytest.raises(ValidationError) as exc_info:
            resolve_edit(
                edit(
                    EditScope.THIS_AND_FUTURE,
                    new_time_slot="[2025-02-11T10:00:00Z,2025-02-11T11:00:00Z)",
                    new_dtstart="2025-02-11T10:00:00Z",
                ),
                member,
            )
        assert exc_info.value.field == "new_time_slot"


class TestAll:
    """Tests for edits applied to the whole series"""

    def test_updates_template(self, member):
        decision = resolve_edit(edit(EditScope.ALL, values={"purpose": "Vinyasa"}), member)
        assert decision.action is EditAction.UPDATE_TEMPLATE
        assert decision.arguments == {"template": {"purpose": "Vinyasa"}}

    @pytest.mark.parametrize("kwargs", [
        {"cancel": True},
        {"new_time_slot": "[2025-02-11T09:00:00Z,2025-02-11T10:00:00Z)", "values": {"purpose": "x"}},
        {},
    ])
    def test_rejected(self, member, kwargs):
        with pytest.raises(ValidationError):
            resolve_edit(edit(EditScope.ALL, **kwargs), member)


def test_non_member_is_rejected():
    with pytest.raises(ValidationError, match="not part of a series"):
        resolve_edit(edit(EditScope.ALL, values={"purpose": "x"}), SeriesMembership(is_member=False))


def test_unknown_scope(member):
    with pytest.raises(ValidationError) as exc_info:
        resolve_edit(edit("everything", values={"purpose": "x"}), member)
    assert exc_info.value.field == "scope"
    assert "this_and_future" in exc_info.value.message
