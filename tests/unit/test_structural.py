"""Unit tests for Level A structural validation."""

import copy

import pytest

from schema_guard.cache import CompiledSchemaCache
from schema_guard.services.field_checker import INVALID_DATA_STRUCTURE, INVALID_DEFAULT_VALUE
from schema_guard.services.normalize import prepare_data, prepare_schema
from schema_guard.services.structural import (
    DUPLICATE_FIELD_NAME,
    DUPLICATE_TABLE_NAME,
    INVALID_SCHEMA_STRUCTURE,
    PRIMARY_KEY_UNRESOLVED,
    RELATION_FIELD_UNKNOWN,
    RELATION_TABLE_UNKNOWN,
    StructuralValidator,
)
from tests.conftest import get_test_settings


@pytest.fixture
def validator(settings) -> StructuralValidator:
    return StructuralValidator(settings=settings)


def run(validator, schema, data):
    model, document = prepare_schema(schema)
    return validator.validate(model, prepare_data(data), document)


def codes(alerts) -> list[str]:
    return [a.code for a in alerts]


class TestSchemaDocument:
    """Tests for meta-schema validation of the schema document."""

    def test_valid_schema_has_no_alerts(self, validator, blog_schema, blog_data):
        """Test that a well-formed schema and data produce nothing."""
        assert run(validator, blog_schema, blog_data) == []

    def test_missing_tables_key(self, validator):
        """Test a document without tables."""
        alerts = run(validator, {"version": "1.0.0"}, {})

        assert codes(alerts) == [INVALID_SCHEMA_STRUCTURE]
        assert alerts[0].location == "/schema"
        assert alerts[0].context["keyword"] == "required"

    def test_unknown_field_type(self, validator):
        """Test that an undeclared type is reported with its path."""
        schema = {"tables": [{"name": "T", "fields": [{"name": "x", "type": "money"}]}]}
        alerts = run(validator, schema, {})

        assert INVALID_SCHEMA_STRUCTURE in codes(alerts)
        alert = next(a for a in alerts if a.code == INVALID_SCHEMA_STRUCTURE)
        assert alert.location == "/schema/tables/0/fields/0/type"
        assert alert.severity.value == "error"

    def test_table_without_fields(self, validator):
        """Test that a table must declare at least one field."""
        alerts = run(validator, {"tables": [{"name": "Empty", "fields": []}]}, {})
        assert codes(alerts) == [INVALID_SCHEMA_STRUCTURE]
        assert alerts[0].context["keyword"] == "minItems"

    def test_alerts_are_ordered_by_path(self, validator):
        """Test that meta-schema alerts come out in document order."""
        schema = {
            "tables": [
                {"name": "A", "fields": [{"name": "x", "type": "bad"}]},
                {"name": "B", "fields": [{"name": "y", "type": "worse"}]},
            ]
        }
        alerts = [a for a in run(validator, schema, {}) if a.code == INVALID_SCHEMA_STRUCTURE]
        assert [a.location for a in alerts] == [
            "/schema/tables/0/fields/0/type",
            "/schema/tables/1/fields/0/type",
        ]


class TestSchemaSemantics:
    """Tests for the checks the meta-schema cannot express."""

    def test_duplicate_table_name(self, validator, users_schema):
        """Test a table declared twice."""
        schema = copy.deepcopy(users_schema)
        schema["tables"].append(copy.deepcopy(schema["tables"][0]))
        alerts = run(validator, schema, {})

        assert codes(alerts) == [DUPLICATE_TABLE_NAME]
        assert alerts[0].location == "/schema/tables/Users"

    def test_duplicate_field_name(self, validator, users_schema):
        """Test a field declared twice in one table."""
        schema = copy.deepcopy(users_schema)
        schema["tables"][0]["fields"].append({"name": "email", "type": "string"})
        alerts = run(validator, schema, {})

        assert codes(alerts) == [DUPLICATE_FIELD_NAME]
        assert alerts[0].context == {"table": "Users", "field": "email"}

    def test_unresolved_primary_key(self, validator):
        """Test a primary key naming an undeclared field."""
        schema = {"tables": [{"name": "T", "primaryKey": ["code"], "fields": [{"name": "label", "type": "string"}]}]}
        alerts = run(validator, schema, {})

        assert codes(alerts) == [PRIMARY_KEY_UNRESOLVED]
        assert alerts[0].location == "/schema/tables/T/primaryKey"

    def test_implied_id_primary_key_resolves(self, validator):
        """Test that the default ``id`` key need not be declared."""
        schema = {"tables": [{"name": "T", "fields": [{"name": "label", "type": "string"}]}]}
        assert run(validator, schema, {"T": [{"id": "t1", "label": "x"}]}) == []

    def test_relation_to_unknown_table(self, validator, users_schema):
        """Test a relation whose target table is not declared."""
        schema = copy.deepcopy(users_schema)
        schema["relations"] = [
            {"id": "r", "fromTable": "Users", "fromField": "id", "toTable": "Ghosts", "toField": "id"}
        ]
        alerts = run(validator, schema, {})

        assert codes(alerts) == [RELATION_TABLE_UNKNOWN]
        assert alerts[0].location == "/schema/relations/r"
        assert alerts[0].context["side"] == "to"

    def test_relation_to_unknown_field(self, validator, blog_schema):
        """Test a relation whose field is not declared."""
        schema = copy.deepcopy(blog_schema)
        schema["relations"][0]["fromField"] = "writerId"
        alerts = run(validator, schema, {})

        assert codes(alerts) == [RELATION_FIELD_UNKNOWN]
        assert alerts[0].context["field"] == "writerId"

    def test_invalid_default(self, validator, users_schema):
        """Test a default that breaks the field's own constraints."""
        schema = copy.deepcopy(users_schema)
        schema["tables"][0]["fields"][2]["default"] = 200
        alerts = run(validator, schema, {})

        assert codes(alerts) == [INVALID_DEFAULT_VALUE]
        assert alerts[0].location == "/schema/tables/Users/fields/age/default"


class TestRecords:
    """Tests for per-record checks."""

    def test_field_violations(self, validator, users_schema):
        """Test that every bad value yields one located alert."""
        data = {
            "Users": [
                {"id": "u1", "email": "not-an-email", "age": 200, "status": "ACTIVE"},
                {"id": "u2", "email": "b@example.com", "age": "old", "status": "GONE"},
            ]
        }
        alerts = run(validator, users_schema, data)

        assert codes(alerts) == [INVALID_DATA_STRUCTURE] * 4
        locations = {a.location for a in alerts}
        assert locations == {
            "/data/Users/u1/email",
            "/data/Users/u1/age",
            "/data/Users/u2/age",
            "/data/Users/u2/status",
        }
        assert all(a.context["recordId"] in ("u1", "u2") for a in alerts)

    def test_absent_and_unset_fields_are_not_checked(self, validator, users_schema):
        """Test that missing values are left to the impact analyzer."""
        data = {"Users": [{"id": "u1", "email": "", "status": None}]}
        assert run(validator, users_schema, data) == []

    def test_undeclared_fields_are_ignored(self, validator, users_schema):
        """Test that extra keys on a record are tolerated."""
        data = {"Users": [{"id": "u1", "email": "a@example.com", "status": "ACTIVE", "nickname": 7}]}
        assert run(validator, users_schema, data) == []

    def test_unknown_tables_are_skipped(self, validator, users_schema):
        """Test that data for undeclared tables is ignored."""
        assert run(validator, users_schema, {"Audit": [{"anything": True}]}) == []

    def test_non_object_record(self, validator, users_schema):
        """Test a record that is not an object."""
        alerts = run(validator, users_schema, {"Users": ["u1"]})

        assert codes(alerts) == [INVALID_DATA_STRUCTURE]
        assert alerts[0].location == "/data/Users/#0"
        assert alerts[0].context["keyword"] == "type"

    def test_missing_id_outside_primary_key(self, validator):
        """Test that records must carry an id when the key is not ``id``."""
        schema = {"tables": [{"name": "T", "primaryKey": "code", "fields": [{"name": "code", "type": "string"}]}]}
        alerts = run(validator, schema, {"T": [{"code": "A"}]})

        assert codes(alerts) == [INVALID_DATA_STRUCTURE]
        assert alerts[0].context["keyword"] == "required"
        assert alerts[0].location == "/data/T/#0"

    def test_missing_id_in_primary_key_is_left_to_integrity(self, validator, users_schema):
        """Test that a missing ``id`` key is not double-reported."""
        data = {"Users": [{"email": "a@example.com", "status": "ACTIVE"}]}
        assert run(validator, users_schema, data) == []


class TestCompiledCache:
    """Tests for reuse of compiled schemas."""

    def test_schema_is_compiled_once(self, users_schema):
        """Test that a second validation hits the cache."""
        cache = CompiledSchemaCache(max_size=4)
        validator = StructuralValidator(settings=get_test_settings(), cache=cache)

        run(validator, users_schema, {})
        run(validator, users_schema, {})

        assert validator.cache is cache
        assert len(cache) == 1
        assert cache.stats()["hits"] == 1
        assert cache.stats()["misses"] == 1

    def test_cached_alerts_are_not_shared(self, validator):
        """Test that callers cannot corrupt cached schema alerts."""
        schema = {"tables": [{"name": "T", "primaryKey": "code", "fields": [{"name": "label", "type": "string"}]}]}
        first = run(validator, schema, {})
        first[0].context["tampered"] = True

        second = run(validator, schema, {})
        assert "tampered" not in second[0].context

    def test_different_schemas_get_different_entries(self, validator, users_schema, blog_schema):
        """Test that schema versions never share compiled contracts."""
        run(validator, users_schema, {})
        run(validator, blog_schema, {})
        assert len(validator.cache) == 2

    def test_disabled_cache(self, users_schema):
        """Test that a disabled cache compiles every time."""
        validator = StructuralValidator(settings=get_test_settings(schema_cache_enabled=False))
        run(validator, users_schema, {})
        assert len(validator.cache) == 0
