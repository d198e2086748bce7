"""
Timeslot Schema Layer

Entity/property metadata consumed by the series core.
"""
from .metadata import (
    RuleKind,
    ValidationRule,
    PropertyDefinition,
    EntityConfig,
    SchemaMetadata,
    PostgresSchemaMetadata,
)
from .templates import validate_template, schema_drift

__all__ = [
    'RuleKind',
    'ValidationRule',
    'PropertyDefinition',
    'EntityConfig',
    'SchemaMetadata',
    'PostgresSchemaMetadata',
    'validate_template',
    'schema_drift',
]
