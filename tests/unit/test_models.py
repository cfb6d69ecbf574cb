"""Unit tests for schema, rule and alert models."""

import pytest
from pydantic import ValidationError

from schema_guard.models.alert import Severity, ValidationAlert
from schema_guard.models.rule import QuickFix, RuleDefinition
from schema_guard.models.schema import (
    Cardinality,
    FieldDefinition,
    FieldType,
    RelationDefinition,
    Schema,
    TableDefinition,
)


class TestFieldDefinition:
    """Tests for FieldDefinition."""

    @pytest.mark.parametrize(
        "declared,expected",
        [("text", FieldType.STRING), ("INT", FieldType.INTEGER), ("float", FieldType.NUMBER), ("timestamp", FieldType.DATETIME)],
    )
    def test_type_aliases(self, declared, expected):
        """Test that common type spellings are accepted."""
        assert FieldDefinition(name="f", type=declared).type == expected

    def test_unknown_type(self):
        """Test that an unknown type is rejected."""
        with pytest.raises(ValidationError):
            FieldDefinition(name="f", type="money")

    def test_enum_values_alias(self):
        """Test the camelCase alias."""
        field = FieldDefinition.model_validate({"name": "s", "type": "enum", "enumValues": ["A"]})
        assert field.enum_values == ["A"]
        assert field.to_document()["enumValues"] == ["A"]

    def test_has_default(self):
        """Test that False is a real default."""
        assert FieldDefinition(name="f", type="boolean", default=False).has_default
        assert not FieldDefinition(name="f", type="boolean").has_default


class TestTableDefinition:
    """Tests for TableDefinition."""

    def test_primary_key_defaults_to_id(self):
        """Test the implied ``id`` key."""
        table = TableDefinition(name="T", fields=[FieldDefinition(name="x", type="string")])
        assert table.primary_key == ["id"]
        assert table.declares("id")
        assert table.primary_key_fields == [None]

    def test_primary_key_string(self):
        """Test that a single key may be given as a string."""
        table = TableDefinition.model_validate(
            {"name": "T", "primaryKey": "code", "fields": [{"name": "code", "type": "string"}]}
        )
        assert table.primary_key == ["code"]
        assert table.primary_key_fields[0].name == "code"
        assert not table.declares("missing")


class TestSchema:
    """Tests for Schema."""

    def test_relation_ids_are_assigned(self):
        """Test that relations without an id get a positional one."""
        schema = Schema.model_validate(
            {
                "tables": [],
                "relations": [
                    {"id": "named", "fromTable": "A", "fromField": "b", "toTable": "B", "toField": "id"},
                    {"fromTable": "A", "fromField": "c", "toTable": "C", "toField": "id"},
                ],
            }
        )
        assert [r.id for r in schema.relations] == ["named", "rel_1"]

    def test_relation_defaults(self):
        """Test the default cardinality and label."""
        relation = RelationDefinition(fromTable="Posts", fromField="authorId", toTable="Users", toField="id")
        assert relation.cardinality == Cardinality.MANY_TO_ONE
        assert relation.on_delete is None
        assert relation.label == "Posts.authorId -> Users.id"

    def test_fingerprint_is_deterministic(self, users_schema):
        """Test that equal schemas share a fingerprint."""
        first = Schema.model_validate(users_schema)
        second = Schema.model_validate(users_schema)
        assert first.fingerprint() == second.fingerprint()
        assert first.fingerprint().startswith("schema:")

    def test_fingerprint_changes_with_schema(self, users_schema, blog_schema):
        """Test that different schemas get different fingerprints."""
        assert Schema.model_validate(users_schema).fingerprint() != Schema.model_validate(blog_schema).fingerprint()

    def test_get_table(self, blog_schema):
        """Test table lookup by name."""
        schema = Schema.model_validate(blog_schema)
        assert schema.get_table("Posts").get_field("title").max == 120
        assert schema.get_table("Comments") is None
        assert schema.table_names == ["Users", "Posts"]


class TestAlertModels:
    """Tests for ValidationAlert and rule models."""

    def test_severity_aliases(self):
        """Test that "warning" maps to warn."""
        alert = ValidationAlert(severity="warning", code="X", location="/", message="m")
        assert alert.severity == Severity.WARN

    def test_context_accessors(self):
        """Test the table, field and record shortcuts."""
        alert = ValidationAlert(
            severity="error",
            code="RULE_X",
            location="/data/T/1",
            message="m",
            context={"table": "T", "field": "f", "recordId": 1},
        )
        assert (alert.table, alert.field, alert.record_id) == ("T", "f", 1)
        assert alert.is_rule_alert

    def test_quick_fix_payload_keeps_authored_keys(self):
        """Test that only provided keys are dumped."""
        fix = QuickFix.model_validate({"op": "convertType", "targetType": "integer", "reason": "legacy"})
        assert fix.to_payload() == {"op": "convertType", "targetType": "integer", "reason": "legacy"}

    def test_rule_defaults(self):
        """Test default severity, scope and alert code."""
        rule = RuleDefinition.model_validate({"id": "R", "then": {"message": "m"}})
        assert rule.severity == Severity.WARN
        assert rule.scope.value == "table"
        assert rule.enabled
        assert rule.alert_code == "RULE_R"
