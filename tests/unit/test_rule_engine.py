"""Unit tests for business rule evaluation and rule files."""

import pytest

from schema_guard.exceptions import RuleDefinitionError
from schema_guard.models.rule import RuleDefinition
from schema_guard.models.schema import Schema
from schema_guard.services.rule_engine import (
    RuleEngine,
    evaluate_condition,
    export_rules_yaml,
    load_rules_file,
    load_rules_yaml,
    parse_rules,
    values_equal,
)


@pytest.fixture
def engine() -> RuleEngine:
    return RuleEngine()


def make_rule(**overrides) -> RuleDefinition:
    data = {
        "id": "R1",
        "table": "Users",
        "when": [],
        "then": {"message": "fired"},
    }
    data.update(overrides)
    return RuleDefinition.model_validate(data)


class TestEvaluateCondition:
    """Tests for the condition interpreter."""

    @pytest.mark.parametrize(
        "operator,left,value,expected",
        [
            ("==", "ACTIVE", "ACTIVE", True),
            ("==", "ACTIVE", "active", False),
            ("==", "42", 42, True),
            ("!=", "a", "b", True),
            ("!=", None, "b", True),
            (">", "10", 9, True),
            (">", "10", "9", True),
            ("<", 3, 3.5, True),
            (">=", 5, 5, True),
            ("<=", 6, 5, False),
            (">", "b", "a", True),
        ],
    )
    def test_comparisons(self, operator, left, value, expected):
        """Test equality and ordering with numeric coercion."""
        assert evaluate_condition(operator, left, value) is expected

    @pytest.mark.parametrize("operator", [">", "<", ">=", "<="])
    def test_ordering_with_missing_value_is_false(self, operator):
        """Test that an absent value never satisfies an ordering."""
        assert evaluate_condition(operator, None, 1) is False
        assert evaluate_condition(operator, "", 1) is False

    def test_exists(self):
        """Test presence checks treat "" as absent."""
        assert evaluate_condition("exists", "x") is True
        assert evaluate_condition("exists", 0) is True
        assert evaluate_condition("exists", "") is False
        assert evaluate_condition("notExists", None) is True
        assert evaluate_condition("notExists", "x") is False

    def test_regex(self):
        """Test regex search against the textual form."""
        assert evaluate_condition("regex", "ada@example.com", r"@example\.com$") is True
        assert evaluate_condition("regex", 12345, r"^\d+$") is True
        assert evaluate_condition("regex", "abc", r"^\d+$") is False

    def test_malformed_regex_is_false(self):
        """Test that a broken pattern never raises."""
        assert evaluate_condition("regex", "abc", "([") is False
        assert evaluate_condition("regex", "abc", None) is False

    def test_membership(self):
        """Test in / notIn with a values list or a list-valued value."""
        assert evaluate_condition("in", "FR", values=["FR", "DE"]) is True
        assert evaluate_condition("in", "ES", value=["FR", "DE"]) is False
        assert evaluate_condition("notIn", "ES", values=["FR", "DE"]) is True
        assert evaluate_condition("in", "1", values=[1, 2]) is True
        assert evaluate_condition("in", None, values=[]) is False

    def test_unknown_operator_is_false(self):
        """Test that an unrecognised operator never holds."""
        assert evaluate_condition("contains", "abc", "a") is False

    def test_missing_values_equal_only_each_other(self):
        """Test equality semantics of absent values."""
        assert values_equal(None, "") is True
        assert values_equal(None, "x") is False
        assert values_equal("x", None) is False


class TestRuleEngine:
    """Tests for rule evaluation over table data."""

    def test_rule_fires_per_matching_record(self, engine, users_schema, active_email_rule):
        """Test one alert per record matching every condition."""
        data = {
            "Users": [
                {"id": "u1", "status": "ACTIVE"},
                {"id": "u2", "status": "ACTIVE", "email": "b@example.com"},
                {"id": "u3", "status": "INACTIVE"},
                {"id": "u4", "status": "ACTIVE", "email": ""},
            ]
        }
        rules = parse_rules([active_email_rule])
        alerts = engine.evaluate(rules, Schema.model_validate(users_schema), data)

        assert [a.record_id for a in alerts] == ["u1", "u4"]
        alert = alerts[0]
        assert alert.code == "RULE_ACTIVE_EMAIL"
        assert alert.is_rule_alert
        assert alert.severity.value == "warn"
        assert alert.location == "/data/Users/u1"
        assert alert.message == "Active users must have an email"
        assert alert.suggestion == "Ask the user for an email address"
        assert alert.quick_fix == {"op": "setDefault", "field": "email", "value": "unknown@example.com"}
        assert alert.context["rule"] == "Active users need an email"

    def test_disabled_rules_are_skipped(self, engine, users_schema):
        """Test that enabled=false silences a rule."""
        rule = make_rule(enabled=False)
        data = {"Users": [{"id": "u1"}]}
        assert engine.evaluate([rule], Schema.model_validate(users_schema), data) == []

    def test_rule_without_conditions_matches_everything(self, engine, users_schema):
        """Test that an empty when clause holds for every record."""
        data = {"Users": [{"id": "u1"}, {"id": "u2"}]}
        alerts = engine.evaluate([make_rule()], Schema.model_validate(users_schema), data)
        assert len(alerts) == 2
        assert alerts[0].context["rule"] == "R1"

    def test_rule_on_table_without_data(self, engine, users_schema):
        """Test that a rule targeting an absent table does nothing."""
        rule = make_rule(table="Orders")
        assert engine.evaluate([rule], Schema.model_validate(users_schema), {"Users": [{"id": "u1"}]}) == []

    def test_global_scope(self, engine, blog_schema, blog_data):
        """Test that global rules run over every table."""
        rule = make_rule(scope="global", table=None, when=[{"field": "id", "operator": "regex", "value": "1$"}])
        alerts = engine.evaluate([rule], Schema.model_validate(blog_schema), blog_data)
        assert [(a.table, a.record_id) for a in alerts] == [("Users", "u1"), ("Posts", "p1")]

    def test_field_scope_inherits_field(self, engine, users_schema):
        """Test that conditions without a field use the rule's field."""
        rule = make_rule(
            scope="field",
            table=None,
            field="age",
            severity="error",
            when=[{"operator": ">", "value": 120}],
        )
        data = {"Users": [{"id": "u1", "age": 130}, {"id": "u2", "age": 30}], "Logs": [{"id": "l1"}]}
        alerts = engine.evaluate([rule], Schema.model_validate(users_schema), data)

        assert len(alerts) == 1
        assert alerts[0].context["field"] == "age"
        assert alerts[0].severity.value == "error"

    def test_non_object_records_are_skipped(self, engine, users_schema):
        """Test that malformed records are left to the structural checks."""
        data = {"Users": ["u1", {"id": "u2"}]}
        alerts = engine.evaluate([make_rule()], Schema.model_validate(users_schema), data)
        assert [a.record_id for a in alerts] == ["u2"]


class TestRuleParsing:
    """Tests for rule definitions and rule files."""

    def test_severity_aliases(self):
        """Test that "warning" and "critical" are accepted."""
        assert make_rule(severity="warning").severity.value == "warn"
        assert make_rule(severity="critical").severity.value == "error"

    def test_invalid_rule(self):
        """Test that a rule without an action is rejected."""
        with pytest.raises(RuleDefinitionError) as exc_info:
            parse_rules([{"id": "BROKEN"}])
        assert exc_info.value.rule_id == "BROKEN"

    def test_unknown_operator_in_definition(self):
        """Test that operators are validated at load time."""
        with pytest.raises(RuleDefinitionError):
            parse_rules([{"id": "R", "when": [{"field": "x", "operator": "like"}], "then": {"message": "m"}}])

    def test_duplicate_ids(self):
        """Test duplicate id detection."""
        rule = {"id": "R", "then": {"message": "m"}}
        with pytest.raises(RuleDefinitionError, match="Duplicate rule id"):
            parse_rules([rule, rule])
        assert len(parse_rules([rule, rule], unique_ids=False)) == 2

    def test_load_yaml(self):
        """Test loading rules under a ``rules`` key."""
        content = """
rules:
  - id: ADULT
    severity: info
    table: Users
    when:
      - {field: age, operator: ">=", value: 18}
    then:
      message: Adult user
"""
        rules = load_rules_yaml(content)

        assert len(rules) == 1
        assert rules[0].id == "ADULT"
        assert rules[0].when[0].operator.value == ">="

    def test_load_bare_list_and_empty(self):
        """Test the alternative document shapes."""
        assert load_rules_yaml("- {id: A, then: {message: m}}")[0].id == "A"
        assert load_rules_yaml("") == []

    def test_load_yaml_without_rules_key(self):
        """Test that a mapping without ``rules`` is rejected."""
        with pytest.raises(RuleDefinitionError, match="rules"):
            load_rules_yaml("checks: []")

    def test_load_invalid_yaml(self):
        """Test that unparseable YAML is rejected."""
        with pytest.raises(RuleDefinitionError, match="Invalid YAML"):
            load_rules_yaml("rules: [unclosed")

    def test_load_file(self, tmp_path, active_email_rule):
        """Test loading rules from a file."""
        path = tmp_path / "rules.yaml"
        path.write_text(export_rules_yaml(parse_rules([active_email_rule])), encoding="utf-8")

        rules = load_rules_file(str(path))
        assert rules[0].id == "ACTIVE_EMAIL"
        assert rules[0].then.quick_fix.to_payload() == active_email_rule["then"]["quickFix"]

    def test_load_missing_file(self, tmp_path):
        """Test the error for a missing file."""
        with pytest.raises(FileNotFoundError):
            load_rules_file(str(tmp_path / "missing.yaml"))

    def test_export_yaml(self, active_email_rule):
        """Test that exported YAML loads back to the same rules."""
        rules = parse_rules([active_email_rule])
        content = export_rules_yaml(rules)

        assert content.startswith("rules:")
        reloaded = load_rules_yaml(content)
        assert [r.to_document() for r in reloaded] == [r.to_document() for r in rules]
