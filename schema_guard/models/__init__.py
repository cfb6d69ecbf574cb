"""Data model: schemas, records, rules, alerts and reports."""

from schema_guard.models.alert import (
    Severity,
    ValidationAlert,
    ValidationReport,
    ValidationSummary,
)
from schema_guard.models.rule import (
    ConditionOperator,
    QuickFix,
    RuleAction,
    RuleCondition,
    RuleDefinition,
    RuleScope,
)
from schema_guard.models.schema import (
    Cardinality,
    DataRecord,
    FieldDefinition,
    FieldType,
    IndexDefinition,
    ReferentialAction,
    RelationDefinition,
    Schema,
    TableData,
    TableDefinition,
)

__all__ = [
    "Cardinality",
    "ConditionOperator",
    "DataRecord",
    "FieldDefinition",
    "FieldType",
    "IndexDefinition",
    "QuickFix",
    "ReferentialAction",
    "RelationDefinition",
    "RuleAction",
    "RuleCondition",
    "RuleDefinition",
    "RuleScope",
    "Schema",
    "Severity",
    "TableData",
    "TableDefinition",
    "ValidationAlert",
    "ValidationReport",
    "ValidationSummary",
]
