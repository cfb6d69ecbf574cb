"""Level C: consequences of the schema's declarations on the data as it stands."""

from typing import Any, Optional

from schema_guard.config import Settings, get_settings
from schema_guard.logging_config import get_logger
from schema_guard.models.alert import Severity, ValidationAlert
from schema_guard.models.schema import (
    NON_TEXT_TYPES,
    FieldDefinition,
    FieldType,
    ReferentialAction,
    RelationDefinition,
    Schema,
    TableData,
    TableDefinition,
)
from schema_guard.services.field_checker import convert_value, is_unset
from schema_guard.services.integrity import strict_key
from schema_guard.services.pointers import data_pointer, record_key, schema_pointer

logger = get_logger(__name__)

REQUIRED_FIELD_MISSING = "REQUIRED_FIELD_MISSING"
ENUM_VALUE_INVALID = "ENUM_VALUE_INVALID"
TYPE_MISMATCH = "TYPE_MISMATCH"
RELATION_DELETE_RESTRICTED = "RELATION_DELETE_RESTRICTED"
RELATION_CASCADE_IMPACT = "RELATION_CASCADE_IMPACT"
RELATION_SET_NULL_IMPACT = "RELATION_SET_NULL_IMPACT"

# onDelete action -> (code, severity, verb)
DELETE_IMPACTS: dict[ReferentialAction, tuple[str, Severity, str]] = {
    ReferentialAction.RESTRICT: (RELATION_DELETE_RESTRICTED, Severity.WARN, "would block the deletion of"),
    ReferentialAction.CASCADE: (RELATION_CASCADE_IMPACT, Severity.INFO, "would be deleted along with"),
    ReferentialAction.SET_NULL: (RELATION_SET_NULL_IMPACT, Severity.INFO, "would lose their reference to"),
}


def _distinct(values: list[Any]) -> list[Any]:
    seen: set = set()
    result = []
    for value in values:
        key = strict_key(value)
        if key not in seen:
            seen.add(key)
            result.append(value)
    return result


class ImpactAnalyzer:
    """Counts how many existing records each declaration affects.

    Used both for live validation and to preview a pending schema edit: pass
    the proposed schema with the current data.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    def analyze(self, schema: Schema, data: TableData) -> list[ValidationAlert]:
        """Run every impact estimate.

        Returns:
            Level C alerts
        """
        alerts: list[ValidationAlert] = []
        seen: set[str] = set()
        for table in schema.tables:
            if table.name in seen:
                continue
            seen.add(table.name)
            records = [(i, r) for i, r in enumerate(data.get(table.name, [])) if isinstance(r, dict)]
            if not records:
                continue
            for field_def in table.fields:
                alerts.extend(self.required_impact(table, field_def, records))
                alerts.extend(self.enum_impact(table, field_def, records))
                alerts.extend(self.type_impact(table, field_def, records))

        for relation in schema.relations:
            alerts.extend(self.relation_impact(schema, relation, data))

        logger.debug("Impact analysis complete", total_alerts=len(alerts))
        return alerts

    def _cap(self, values: list[Any]) -> list[Any]:
        return values[: max(self.settings.max_context_record_ids, 0)]

    def required_impact(
        self,
        table: TableDefinition,
        field_def: FieldDefinition,
        records: list[tuple[int, dict[str, Any]]],
    ) -> list[ValidationAlert]:
        if not field_def.required:
            return []
        missing = [record_key(r, i) for i, r in records if is_unset(r.get(field_def.name))]
        if not missing:
            return []

        quick_fix = None
        suggestion = "Make the field optional or provide values"
        if field_def.has_default:
            quick_fix = {"op": "setDefault", "value": field_def.default}
            suggestion = f"Apply the default value: {field_def.default}"

        return [
            ValidationAlert(
                severity=Severity.ERROR,
                code=REQUIRED_FIELD_MISSING,
                location=data_pointer(table.name, "*", field_def.name),
                message=f"Field '{field_def.name}' is required but {len(missing)} record(s) have no value",
                suggestion=suggestion,
                quickFix=quick_fix,
                context={
                    "table": table.name,
                    "field": field_def.name,
                    "affectedCount": len(missing),
                    "recordIds": self._cap(missing),
                },
            )
        ]

    def enum_impact(
        self,
        table: TableDefinition,
        field_def: FieldDefinition,
        records: list[tuple[int, dict[str, Any]]],
    ) -> list[ValidationAlert]:
        if field_def.type != FieldType.ENUM or field_def.enum_values is None:
            return []
        allowed = list(field_def.enum_values)
        invalid = [
            (record_key(r, i), r.get(field_def.name))
            for i, r in records
            if not is_unset(r.get(field_def.name))
            and not (isinstance(r.get(field_def.name), str) and r.get(field_def.name) in allowed)
        ]
        if not invalid:
            return []

        return [
            ValidationAlert(
                severity=Severity.ERROR,
                code=ENUM_VALUE_INVALID,
                location=data_pointer(table.name, "*", field_def.name),
                message=f"{len(invalid)} record(s) have a value outside the enumeration of '{field_def.name}'",
                suggestion=f"Use one of: {', '.join(allowed)}" if allowed else "Declare the allowed values",
                quickFix={"op": "setValid", "value": allowed[0]} if allowed else None,
                context={
                    "table": table.name,
                    "field": field_def.name,
                    "affectedCount": len(invalid),
                    "allowedValues": allowed,
                    "invalidValues": self._cap(_distinct([v for _, v in invalid])),
                    "recordIds": self._cap([rid for rid, _ in invalid]),
                },
            )
        ]

    def type_impact(
        self,
        table: TableDefinition,
        field_def: FieldDefinition,
        records: list[tuple[int, dict[str, Any]]],
    ) -> list[ValidationAlert]:
        if field_def.type not in NON_TEXT_TYPES:
            return []
        unconvertible = []
        for index, record in records:
            value = record.get(field_def.name)
            if is_unset(value):
                continue
            ok, _ = convert_value(value, field_def.type)
            if not ok:
                unconvertible.append((record_key(record, index), value))
        if not unconvertible:
            return []

        return [
            ValidationAlert(
                severity=Severity.WARN,
                code=TYPE_MISMATCH,
                location=data_pointer(table.name, "*", field_def.name),
                message=(
                    f"{len(unconvertible)} value(s) of '{field_def.name}' cannot be converted "
                    f"to {field_def.type.value}"
                ),
                suggestion="Fix the values or change the field type",
                quickFix={"op": "convertType", "targetType": field_def.type.value},
                context={
                    "table": table.name,
                    "field": field_def.name,
                    "targetType": field_def.type.value,
                    "affectedCount": len(unconvertible),
                    "sampleValues": self._cap(_distinct([v for _, v in unconvertible]))[:5],
                    "recordIds": self._cap([rid for rid, _ in unconvertible]),
                },
            )
        ]

    def relation_impact(
        self, schema: Schema, relation: RelationDefinition, data: TableData
    ) -> list[ValidationAlert]:
        """Children affected when their referenced parents are deleted."""
        if relation.on_delete not in DELETE_IMPACTS:
            return []
        child_table = schema.get_table(relation.from_table)
        if child_table is None or schema.get_table(relation.to_table) is None:
            return []

        parent_keys = {
            strict_key(r.get(relation.to_field))
            for r in data.get(relation.to_table, [])
            if isinstance(r, dict) and not is_unset(r.get(relation.to_field))
        }
        children = []
        referenced: set = set()
        for index, record in enumerate(data.get(relation.from_table, [])):
            if not isinstance(record, dict):
                continue
            value = record.get(relation.from_field)
            if is_unset(value) or strict_key(value) not in parent_keys:
                continue
            children.append(record_key(record, index))
            referenced.add(strict_key(value))
        if not children:
            return []

        code, severity, verb = DELETE_IMPACTS[relation.on_delete]
        context: dict[str, Any] = {
            "table": relation.from_table,
            "field": relation.from_field,
            "relation": relation.id,
            "referencedTable": relation.to_table,
            "onDelete": relation.on_delete.value,
            "affectedCount": len(children),
            "parentCount": len(referenced),
            "recordIds": self._cap(children),
        }
        suggestion = None
        if relation.on_delete == ReferentialAction.SET_NULL:
            child_field = child_table.get_field(relation.from_field)
            if child_field is not None and child_field.required:
                context["fieldRequired"] = True
                suggestion = f"'{relation.from_field}' is required; nulling it will fail validation"

        return [
            ValidationAlert(
                severity=severity,
                code=code,
                location=schema_pointer("relations", relation.id),
                message=(
                    f"{len(children)} record(s) of '{relation.from_table}' {verb} "
                    f"{len(referenced)} referenced record(s) of '{relation.to_table}'"
                ),
                suggestion=suggestion,
                context=context,
            )
        ]
