"""Input normalisation: accepted document shapes and coercion into models.

Schemas may arrive in the native list-of-tables shape or in the imported
shape (tables keyed by name, ``pk: true`` markers, ``from: "table.field"``
relations). Parts of a schema document that cannot be parsed are skipped
here and reported by the structural validator instead.
"""

import copy
from collections.abc import Mapping
from typing import Any, Optional, Sequence

from pydantic import ValidationError

from schema_guard.exceptions import InvalidInputError, RuleDefinitionError
from schema_guard.logging_config import get_logger
from schema_guard.models.rule import RuleDefinition
from schema_guard.models.schema import (
    RESERVED_ID_FIELD,
    FieldDefinition,
    RelationDefinition,
    Schema,
    TableData,
    TableDefinition,
    normalize_field_type,
)
from schema_guard.services.rule_engine import parse_rules

logger = get_logger(__name__)

# Alternative constraint spellings -> canonical key
FIELD_KEY_ALIASES: dict[str, str] = {
    "pattern": "regex",
    "enum": "enumValues",
    "minimum": "min",
    "minLength": "min",
    "maximum": "max",
    "maxLength": "max",
}

DATA_STORE_KEYS = frozenset({"updatedAt", "data", "version"})


def _normalize_field(raw: Any, name: Optional[str] = None, default_type: Optional[str] = None) -> Any:
    if not isinstance(raw, Mapping):
        return raw
    field_doc = dict(raw)
    if name is not None:
        field_doc.setdefault("name", name)
    for alias, canonical in FIELD_KEY_ALIASES.items():
        if alias in field_doc:
            value = field_doc.pop(alias)
            field_doc.setdefault(canonical, value)
    field_doc.pop("pk", None)
    if "type" in field_doc:
        field_doc["type"] = normalize_field_type(field_doc["type"])
        if hasattr(field_doc["type"], "value"):
            field_doc["type"] = field_doc["type"].value
    elif default_type is not None:
        field_doc["type"] = default_type
    return field_doc


def _primary_key_from_flags(fields: Mapping) -> list[str]:
    flagged = [name for name, config in fields.items() if isinstance(config, Mapping) and config.get("pk") is True]
    return flagged or [RESERVED_ID_FIELD]


def _normalize_table(raw: Any, name: Optional[str] = None) -> Any:
    if not isinstance(raw, Mapping):
        return raw
    table_doc = dict(raw)
    fields = table_doc.get("fields")

    if name is not None:
        # Imported shape: descriptive metadata lives under "dictionary"
        table_doc.setdefault("name", name)
        dictionary = table_doc.pop("dictionary", None)
        if isinstance(dictionary, Mapping):
            for key in ("sensitivity", "owner", "status"):
                if key in dictionary:
                    table_doc.setdefault(key, dictionary[key])

    if isinstance(fields, Mapping):
        table_doc.setdefault("primaryKey", _primary_key_from_flags(fields))
        table_doc["fields"] = [
            _normalize_field(config, name=field_name, default_type="string")
            for field_name, config in fields.items()
        ]
    elif isinstance(fields, list):
        table_doc["fields"] = [_normalize_field(f) for f in fields]
    return table_doc


def _normalize_relation(raw: Any, index: int) -> Any:
    if not isinstance(raw, Mapping):
        return raw
    relation_doc = dict(raw)
    for side in ("from", "to"):
        ref = relation_doc.get(side)
        if f"{side}Table" not in relation_doc and isinstance(ref, str) and "." in ref:
            table, _, field_name = ref.partition(".")
            relation_doc.pop(side)
            relation_doc[f"{side}Table"] = table
            relation_doc[f"{side}Field"] = field_name
    if "note" in relation_doc:
        relation_doc.setdefault("description", relation_doc.pop("note"))
    relation_doc.setdefault("id", f"rel_{index}")
    return relation_doc


def normalize_schema_document(raw: Mapping) -> dict[str, Any]:
    """Convert any accepted schema shape into the native document shape.

    The input is never modified.
    """
    document = copy.deepcopy(dict(raw))
    tables = document.get("tables")
    if isinstance(tables, Mapping):
        document["tables"] = [_normalize_table(config, name=name) for name, config in tables.items()]
    elif isinstance(tables, list):
        document["tables"] = [_normalize_table(t) for t in tables]

    relations = document.get("relations")
    if isinstance(relations, list):
        document["relations"] = [_normalize_relation(r, i) for i, r in enumerate(relations)]
    return document


def _coerce_table(raw: Any) -> Optional[TableDefinition]:
    if not isinstance(raw, Mapping):
        return None
    fields = []
    for raw_field in raw.get("fields") or []:
        try:
            fields.append(FieldDefinition.model_validate(raw_field))
        except ValidationError as e:
            logger.debug("Skipping unparseable field", table=raw.get("name"), errors=e.error_count())
    try:
        return TableDefinition.model_validate({**raw, "fields": fields})
    except ValidationError as e:
        logger.debug("Skipping unparseable table", table=raw.get("name"), errors=e.error_count())
        return None


def coerce_schema(document: Mapping) -> Schema:
    """Parse a native schema document, keeping every part that parses."""
    try:
        return Schema.model_validate(document)
    except ValidationError as e:
        logger.info("Schema document has invalid parts", errors=e.error_count())

    tables = [t for t in (_coerce_table(raw) for raw in _as_list(document.get("tables"))) if t is not None]
    relations = []
    for index, raw in enumerate(_as_list(document.get("relations"))):
        try:
            relation = RelationDefinition.model_validate(raw)
        except ValidationError:
            logger.debug("Skipping unparseable relation", index=index)
            continue
        if not relation.id:
            relation.id = f"rel_{index}"
        relations.append(relation)

    version = document.get("version")
    return Schema(
        version=version if isinstance(version, str) else "1.0.0",
        tables=tables,
        relations=relations,
    )


def _as_list(value: Any) -> list:
    return value if isinstance(value, list) else []


def prepare_schema(schema: Any) -> tuple[Schema, dict[str, Any]]:
    """Get the schema model and the document the meta-schema check runs on.

    Raises:
        InvalidInputError: If the schema is neither a Schema nor a mapping
    """
    if isinstance(schema, Schema):
        return schema, schema.to_document()
    if isinstance(schema, Mapping):
        document = normalize_schema_document(schema)
        return coerce_schema(document), document
    raise InvalidInputError(
        f"schema must be a Schema or a mapping, got {type(schema).__name__}",
        argument="schema",
    )


def unwrap_data_store(data: Mapping) -> Mapping:
    """Unwrap a ``{"updatedAt": ..., "data": {...}}`` data-store document."""
    keys = set(data.keys())
    if "data" in keys and "updatedAt" in keys and keys <= DATA_STORE_KEYS and isinstance(data["data"], Mapping):
        return data["data"]
    return data


def prepare_data(data: Any) -> TableData:
    """Normalise table data to ``table name -> list of records``.

    Records are not copied; the engine never writes to them.

    Raises:
        InvalidInputError: If data is not a mapping
    """
    if not isinstance(data, Mapping):
        raise InvalidInputError(
            f"data must be a mapping of table name to records, got {type(data).__name__}",
            argument="data",
        )
    tables: TableData = {}
    for table_name, records in unwrap_data_store(data).items():
        if records is None:
            tables[str(table_name)] = []
        elif isinstance(records, (list, tuple)):
            tables[str(table_name)] = list(records)
        else:
            # A single record (or a stray scalar, which Level A reports)
            tables[str(table_name)] = [records]
    return tables


def prepare_rules(rules: Optional[Sequence[Any]]) -> list[RuleDefinition]:
    """Parse rules given as models or raw mappings.

    Raises:
        InvalidInputError: If rules is not a list or a rule has the wrong shape
    """
    if rules is None:
        return []
    if not isinstance(rules, (list, tuple)):
        raise InvalidInputError(
            f"rules must be a list, got {type(rules).__name__}",
            argument="rules",
        )
    try:
        return parse_rules(list(rules), unique_ids=False)
    except RuleDefinitionError as e:
        raise InvalidInputError(e.message, argument="rules", details={"rule_id": e.rule_id}) from e
