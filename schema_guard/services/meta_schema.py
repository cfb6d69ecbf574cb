"""JSON meta-schema describing a well-formed schema document."""

from typing import Any

from jsonschema import Draft7Validator

from schema_guard.models.schema import Cardinality, FieldType, ReferentialAction

_NAME = {"type": "string", "minLength": 1}

SCHEMA_DOCUMENT_META_SCHEMA: dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "title": "Catalog schema document",
    "type": "object",
    "required": ["tables"],
    "properties": {
        "version": {"type": "string"},
        "updatedAt": {"type": ["string", "null"]},
        "tables": {"type": "array", "items": {"$ref": "#/definitions/table"}},
        "relations": {"type": "array", "items": {"$ref": "#/definitions/relation"}},
    },
    "definitions": {
        "field": {
            "type": "object",
            "required": ["name", "type"],
            "properties": {
                "name": _NAME,
                "type": {"enum": [t.value for t in FieldType]},
                "required": {"type": "boolean"},
                "unique": {"type": "boolean"},
                "regex": {"type": "string"},
                "min": {"type": "number"},
                "max": {"type": "number"},
                "enumValues": {"type": "array", "items": {"type": "string"}},
            },
        },
        "index": {
            "type": "object",
            "required": ["name", "fields"],
            "properties": {
                "name": _NAME,
                "fields": {"type": "array", "items": {"type": "string"}, "minItems": 1},
                "unique": {"type": "boolean"},
            },
        },
        "table": {
            "type": "object",
            "required": ["name", "fields"],
            "properties": {
                "name": _NAME,
                "primaryKey": {
                    "oneOf": [
                        _NAME,
                        {"type": "array", "items": _NAME, "minItems": 1},
                    ]
                },
                "fields": {
                    "type": "array",
                    "items": {"$ref": "#/definitions/field"},
                    "minItems": 1,
                },
                "indexes": {"type": "array", "items": {"$ref": "#/definitions/index"}},
            },
        },
        "relation": {
            "type": "object",
            "required": ["fromTable", "fromField", "toTable", "toField"],
            "properties": {
                "id": {"type": "string"},
                "fromTable": _NAME,
                "fromField": _NAME,
                "toTable": _NAME,
                "toField": _NAME,
                "cardinality": {"enum": [c.value for c in Cardinality]},
                "onDelete": {"enum": [a.value for a in ReferentialAction]},
                "onUpdate": {"enum": [a.value for a in ReferentialAction]},
            },
        },
    },
}


def build_meta_validator() -> Draft7Validator:
    """Build a fresh validator for schema documents."""
    Draft7Validator.check_schema(SCHEMA_DOCUMENT_META_SCHEMA)
    return Draft7Validator(SCHEMA_DOCUMENT_META_SCHEMA)
