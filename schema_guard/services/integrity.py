"""Level B: relational integrity across tables."""

from collections import defaultdict
from typing import Any, Hashable, Optional

import orjson

from schema_guard.config import Settings, get_settings
from schema_guard.loader import dumps_json
from schema_guard.logging_config import get_logger
from schema_guard.models.alert import Severity, ValidationAlert
from schema_guard.models.schema import (
    Cardinality,
    RelationDefinition,
    Schema,
    TableData,
    TableDefinition,
)
from schema_guard.services.field_checker import is_unset
from schema_guard.services.pointers import data_pointer, record_key, schema_pointer

logger = get_logger(__name__)

PRIMARY_KEY_MISSING = "PRIMARY_KEY_MISSING"
PRIMARY_KEY_DUPLICATE = "PRIMARY_KEY_DUPLICATE"
UNIQUE_CONSTRAINT_VIOLATION = "UNIQUE_CONSTRAINT_VIOLATION"
FOREIGN_KEY_VIOLATION = "FOREIGN_KEY_VIOLATION"
CARDINALITY_VIOLATION = "CARDINALITY_VIOLATION"

# Relations whose "from" side is "1": a referenced key may be used by one child only
SINGLE_REFERENCE_CARDINALITIES = frozenset({Cardinality.ONE_TO_ONE, Cardinality.ONE_TO_MANY})


def strict_key(value: Any) -> Hashable:
    """Hashable identity of a value that keeps 1, "1" and True apart.

    Integers and floats compare as numbers (1 == 1.0); structured values
    compare by their canonical JSON form.
    """
    if isinstance(value, bool):
        return ("bool", value)
    if isinstance(value, (int, float)):
        return ("number", value)
    if isinstance(value, (dict, list)):
        return ("json", dumps_json(value, option=orjson.OPT_SORT_KEYS, tag_big_ints=True))
    return (type(value).__name__, value)


def _records(data: TableData, table: str) -> list[tuple[int, dict[str, Any]]]:
    """Object records of a table with their positions (non-objects are Level A's concern)."""
    return [(i, r) for i, r in enumerate(data.get(table, [])) if isinstance(r, dict)]


class IntegrityValidator:
    """Checks primary keys, unique constraints, foreign keys and cardinality."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    def validate(self, schema: Schema, data: TableData) -> list[ValidationAlert]:
        """Run every integrity check.

        Returns:
            Level B alerts
        """
        alerts: list[ValidationAlert] = []
        seen: set[str] = set()
        for table in schema.tables:
            if table.name in seen or table.name not in data:
                continue
            seen.add(table.name)
            alerts.extend(self.check_primary_keys(table, data))
            alerts.extend(self.check_unique_fields(table, data))
            alerts.extend(self.check_unique_indexes(table, data))

        for relation in schema.relations:
            if schema.get_table(relation.from_table) is None or schema.get_table(relation.to_table) is None:
                logger.debug("Skipping relation with unknown table", relation=relation.id)
                continue
            alerts.extend(self.check_foreign_keys(relation, data))
            alerts.extend(self.check_cardinality(relation, data))

        logger.debug("Integrity validation complete", total_alerts=len(alerts))
        return alerts

    def _cap(self, record_ids: list[Any]) -> list[Any]:
        limit = max(self.settings.max_context_record_ids, 0)
        return record_ids[:limit]

    def check_primary_keys(self, table: TableDefinition, data: TableData) -> list[ValidationAlert]:
        """Detect missing key components and duplicate key tuples."""
        alerts: list[ValidationAlert] = []
        first_seen: dict[tuple, Any] = {}

        for index, record in _records(data, table.name):
            record_id = record_key(record, index)
            missing = [k for k in table.primary_key if is_unset(record.get(k))]
            for key_field in missing:
                alerts.append(
                    ValidationAlert(
                        severity=Severity.ERROR,
                        code=PRIMARY_KEY_MISSING,
                        location=data_pointer(table.name, record_id, key_field),
                        message=f"Record {record_id} of '{table.name}' has no value for primary key field '{key_field}'",
                        suggestion="Provide a primary key value",
                        context={"table": table.name, "field": key_field, "recordId": record_id},
                    )
                )
            if missing:
                continue

            key = tuple(strict_key(record[k]) for k in table.primary_key)
            if key in first_seen:
                alerts.append(
                    ValidationAlert(
                        severity=Severity.ERROR,
                        code=PRIMARY_KEY_DUPLICATE,
                        location=data_pointer(table.name, record_id),
                        message=f"Duplicate primary key {[record[k] for k in table.primary_key]} in '{table.name}'",
                        suggestion="Give each record a distinct primary key",
                        context={
                            "table": table.name,
                            "recordId": record_id,
                            "primaryKey": list(table.primary_key),
                            "keyValues": [record[k] for k in table.primary_key],
                            "duplicateOf": first_seen[key],
                        },
                    )
                )
            else:
                first_seen[key] = record_id
        return alerts

    def check_unique_fields(self, table: TableDefinition, data: TableData) -> list[ValidationAlert]:
        """One alert per unique field that holds a repeated non-null value."""
        alerts: list[ValidationAlert] = []
        records = _records(data, table.name)

        for field_def in table.fields:
            if not field_def.unique:
                continue
            groups: dict[Hashable, list[tuple[Any, Any]]] = defaultdict(list)
            for index, record in records:
                value = record.get(field_def.name)
                if is_unset(value):
                    continue
                groups[strict_key(value)].append((value, record_key(record, index)))

            duplicates = [g for g in groups.values() if len(g) > 1]
            if not duplicates:
                continue

            record_ids = [rid for group in duplicates for _, rid in group]
            alerts.append(
                ValidationAlert(
                    severity=Severity.ERROR,
                    code=UNIQUE_CONSTRAINT_VIOLATION,
                    location=data_pointer(table.name, "*", field_def.name),
                    message=f"Field '{field_def.name}' must be unique but {len(duplicates)} value(s) are repeated",
                    suggestion="Remove or change the duplicated values",
                    context={
                        "table": table.name,
                        "field": field_def.name,
                        "affectedCount": len(record_ids),
                        "duplicateValues": [group[0][0] for group in duplicates],
                        "recordIds": self._cap(record_ids),
                    },
                )
            )
        return alerts

    def check_unique_indexes(self, table: TableDefinition, data: TableData) -> list[ValidationAlert]:
        """Composite unique indexes, compared as ordered tuples."""
        alerts: list[ValidationAlert] = []
        records = _records(data, table.name)

        for index_def in table.indexes or []:
            if not index_def.unique:
                continue
            groups: dict[tuple, list[Any]] = defaultdict(list)
            for position, record in records:
                values = [record.get(f) for f in index_def.fields]
                if any(is_unset(v) for v in values):
                    continue
                groups[tuple(strict_key(v) for v in values)].append(record_key(record, position))

            duplicates = [ids for ids in groups.values() if len(ids) > 1]
            if not duplicates:
                continue

            record_ids = [rid for ids in duplicates for rid in ids]
            alerts.append(
                ValidationAlert(
                    severity=Severity.ERROR,
                    code=UNIQUE_CONSTRAINT_VIOLATION,
                    location=data_pointer(table.name, "*", ",".join(index_def.fields)),
                    message=f"Unique index '{index_def.name}' on '{table.name}' has repeated values",
                    suggestion="Remove or change the duplicated values",
                    context={
                        "table": table.name,
                        "index": index_def.name,
                        "fields": list(index_def.fields),
                        "affectedCount": len(record_ids),
                        "recordIds": self._cap(record_ids),
                    },
                )
            )
        return alerts

    def check_foreign_keys(self, relation: RelationDefinition, data: TableData) -> list[ValidationAlert]:
        """One alert per child record whose non-null reference has no parent."""
        parent_keys = {
            strict_key(record.get(relation.to_field))
            for _, record in _records(data, relation.to_table)
            if not is_unset(record.get(relation.to_field))
        }

        alerts: list[ValidationAlert] = []
        for index, record in _records(data, relation.from_table):
            value = record.get(relation.from_field)
            if is_unset(value) or strict_key(value) in parent_keys:
                continue
            record_id = record_key(record, index)
            alerts.append(
                ValidationAlert(
                    severity=Severity.ERROR,
                    code=FOREIGN_KEY_VIOLATION,
                    location=data_pointer(relation.from_table, record_id, relation.from_field),
                    message=(
                        f"Invalid reference: {value!r} does not exist in "
                        f"{relation.to_table}.{relation.to_field}"
                    ),
                    suggestion=f"Remove the record or create the referenced row in '{relation.to_table}'",
                    quickFix={"op": "setNull", "field": relation.from_field},
                    context={
                        "table": relation.from_table,
                        "field": relation.from_field,
                        "recordId": record_id,
                        "value": value,
                        "referencedTable": relation.to_table,
                        "referencedField": relation.to_field,
                        "relation": relation.id,
                    },
                )
            )
        return alerts

    def check_cardinality(self, relation: RelationDefinition, data: TableData) -> list[ValidationAlert]:
        """Advisory check that a 1-1 or 1-n key is referenced by one child at most."""
        if relation.cardinality not in SINGLE_REFERENCE_CARDINALITIES:
            return []

        references: dict[Hashable, list[tuple[Any, Any]]] = defaultdict(list)
        for index, record in _records(data, relation.from_table):
            value = record.get(relation.from_field)
            if is_unset(value):
                continue
            references[strict_key(value)].append((value, record_key(record, index)))

        alerts: list[ValidationAlert] = []
        for group in references.values():
            if len(group) < 2:
                continue
            value = group[0][0]
            record_ids = [rid for _, rid in group]
            alerts.append(
                ValidationAlert(
                    severity=Severity.WARN,
                    code=CARDINALITY_VIOLATION,
                    location=schema_pointer("relations", relation.id),
                    message=(
                        f"Relation {relation.label} is declared {relation.cardinality.value} "
                        f"but {len(group)} records reference {value!r}"
                    ),
                    suggestion=f"Make '{relation.from_field}' unique or change the relation cardinality",
                    context={
                        "table": relation.from_table,
                        "field": relation.from_field,
                        "relation": relation.id,
                        "cardinality": relation.cardinality.value,
                        "value": value,
                        "affectedCount": len(group),
                        "recordIds": self._cap(record_ids),
                    },
                )
            )
        return alerts
