"""
Template Validation

Checks an entity template (column -> default value) against the
entity's property definitions before it is stored on a series version.
"""
from typing import Any, Dict, List

from ..errors import ValidationError
from .metadata import PropertyDefinition, properties_by_name

BLOCKED_FIELDS = frozenset({"id", "created_at", "created_by", "updated_at", "updated_by"})


def validate_template(
    entity_table: str,
    template: Dict[str, Any],
    properties: List[PropertyDefinition],
    time_slot_property: str,
):
    """
    Raise ValidationError unless every template field is editable and valid.

    The time slot column is ignored: expansion fills it in.
    """
    if not isinstance(template, dict):
        raise ValidationError("Entity template must be an object", field="entity_template")

    by_name = properties_by_name(properties)
    allowed = sorted(
        name for name, prop in by_name.items()
        if prop.show_on_edit and name not in BLOCKED_FIELDS
    )

    for name, value in template.items():
        if name == time_slot_property:
            continue
        prop = by_name.get(name)
        if name in BLOCKED_FIELDS or prop is None or not prop.show_on_edit:
            raise ValidationError(
                f'Template field "{name}" is not allowed for entity {entity_table}. '
                f"Allowed fields: {', '.join(allowed)}",
                field=name,
            )
        for rule in prop.validation_rules:
            error = rule.check(value)
            if error:
                raise ValidationError(f"{prop.display_name or name} {error}", field=name)


def schema_drift(
    template: Dict[str, Any],
    properties: List[PropertyDefinition],
    time_slot_property: str,
) -> List[str]:
    """Issues between a stored template and the current schema (empty if none)"""
    by_name = properties_by_name(properties)
    issues = []
    for prop in properties:
        if (
            prop.is_required
            and prop.column_name not in BLOCKED_FIELDS
            and prop.column_name != time_slot_property
            and prop.column_name not in template
        ):
            issues.append(f"{prop.column_name}: Required field missing from template")
    for name in template:
        if name != time_slot_property and name not in by_name:
            issues.append(f"{name}: Field no longer exists in entity schema")
    return issues
