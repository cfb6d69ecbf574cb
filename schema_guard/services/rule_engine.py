"""Business rule evaluation.

Rules are independent condition/action pairs authored by users. A rule fires
for a record when every condition of its ``when`` clause holds.
"""

from pathlib import Path
from typing import Any, Optional, Sequence, Union

import yaml
from pydantic import ValidationError

from schema_guard.exceptions import RuleDefinitionError
from schema_guard.logging_config import get_logger
from schema_guard.models.alert import ValidationAlert
from schema_guard.models.rule import (
    ConditionOperator,
    RuleCondition,
    RuleDefinition,
    RuleScope,
)
from schema_guard.models.schema import Schema, TableData
from schema_guard.services.field_checker import compile_pattern, is_unset, to_number
from schema_guard.services.pointers import data_pointer, record_key

logger = get_logger(__name__)


def _as_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return ""
    return str(value)


def _comparable(left: Any, right: Any) -> tuple[Any, Any]:
    """Numbers when both sides parse as numbers, strings otherwise."""
    left_number, right_number = to_number(left), to_number(right)
    if left_number is not None and right_number is not None:
        return left_number, right_number
    return _as_text(left), _as_text(right)


def values_equal(left: Any, right: Any) -> bool:
    """Equality used by ==, != and membership tests.

    A missing value only equals another missing value.
    """
    if is_unset(left) or is_unset(right):
        return is_unset(left) and is_unset(right)
    a, b = _comparable(left, right)
    return a == b


def evaluate_condition(
    operator: Union[ConditionOperator, str],
    left: Any,
    value: Any = None,
    values: Optional[Sequence[Any]] = None,
) -> bool:
    """Evaluate one condition against a record value.

    Pure function: no state, never raises for malformed operands.

    Args:
        operator: Condition operator
        left: The record's value for the condition field (None when absent)
        value: Right-hand operand for comparisons and regex
        values: Candidate list for in / notIn

    Returns:
        Whether the condition holds
    """
    try:
        op = ConditionOperator(operator)
    except ValueError:
        logger.warning("Unknown rule operator", operator=str(operator))
        return False

    if op == ConditionOperator.EXISTS:
        return not is_unset(left)
    if op == ConditionOperator.NOT_EXISTS:
        return is_unset(left)
    if op == ConditionOperator.EQ:
        return values_equal(left, value)
    if op == ConditionOperator.NE:
        return not values_equal(left, value)
    if op == ConditionOperator.REGEX:
        if value is None:
            return False
        matcher = compile_pattern(_as_text(value))
        return matcher is not None and matcher.search(_as_text(left)) is not None
    if op in (ConditionOperator.IN, ConditionOperator.NOT_IN):
        candidates = values if values is not None else ([] if value is None else value)
        if not isinstance(candidates, (list, tuple, set, frozenset)):
            candidates = [candidates]
        found = any(values_equal(left, candidate) for candidate in candidates)
        return found if op == ConditionOperator.IN else not found

    # Ordering comparisons never hold for missing values
    if is_unset(left) or is_unset(value):
        return False
    a, b = _comparable(left, value)
    if op == ConditionOperator.GT:
        return a > b
    if op == ConditionOperator.LT:
        return a < b
    if op == ConditionOperator.GE:
        return a >= b
    return a <= b


class RuleEngine:
    """Evaluates business rules against table data."""

    def evaluate(
        self,
        rules: Sequence[RuleDefinition],
        schema: Schema,
        data: TableData,
    ) -> list[ValidationAlert]:
        """Evaluate every enabled rule.

        Returns:
            One alert per (rule, matching record), coded ``RULE_<id>``
        """
        alerts: list[ValidationAlert] = []
        for rule in rules:
            if not rule.enabled:
                logger.debug("Skipping disabled rule", rule_id=rule.id)
                continue
            for table in self.target_tables(rule, schema, data):
                for index, record in enumerate(data.get(table, [])):
                    if isinstance(record, dict) and self.matches(rule, record):
                        alerts.append(self._alert(rule, table, record_key(record, index)))

        logger.debug("Rule evaluation complete", rules=len(rules), total_alerts=len(alerts))
        return alerts

    def target_tables(self, rule: RuleDefinition, schema: Schema, data: TableData) -> list[str]:
        """Tables whose records a rule is evaluated against."""
        if rule.scope == RuleScope.GLOBAL:
            return list(data.keys())

        if rule.scope == RuleScope.TABLE:
            if not rule.table:
                logger.warning("Table rule without a table", rule_id=rule.id)
                return []
            return [rule.table] if rule.table in data else []

        # Field scope
        if rule.table:
            return [rule.table] if rule.table in data else []
        if not rule.field:
            logger.warning("Field rule without a field", rule_id=rule.id)
            return []
        targets = []
        for table_name, records in data.items():
            table = schema.get_table(table_name)
            declared = table is not None and table.get_field(rule.field) is not None
            if declared or any(isinstance(r, dict) and rule.field in r for r in records):
                targets.append(table_name)
        return targets

    def matches(self, rule: RuleDefinition, record: dict[str, Any]) -> bool:
        """Check whether all conditions of a rule hold for a record."""
        return all(self._holds(condition, rule, record) for condition in rule.when)

    def _holds(self, condition: RuleCondition, rule: RuleDefinition, record: dict[str, Any]) -> bool:
        field_name = condition.field or rule.field
        left = record.get(field_name) if field_name else None
        return evaluate_condition(condition.operator, left, condition.value, condition.values)

    def _alert(self, rule: RuleDefinition, table: str, record_id: Any) -> ValidationAlert:
        context: dict[str, Any] = {
            "table": table,
            "recordId": record_id,
            "rule": rule.name or rule.id,
        }
        if rule.field:
            context["field"] = rule.field
        quick_fix = rule.then.quick_fix.to_payload() if rule.then.quick_fix else None
        return ValidationAlert(
            severity=rule.severity,
            code=rule.alert_code,
            location=data_pointer(table, record_id),
            message=rule.then.message,
            suggestion=rule.then.suggestion,
            quickFix=quick_fix,
            context=context,
        )


def parse_rules(rules_data: Any, unique_ids: bool = True) -> list[RuleDefinition]:
    """Parse a list of raw rule mappings (or RuleDefinition models).

    Raises:
        RuleDefinitionError: If a rule is malformed or an id repeats
    """
    if not isinstance(rules_data, list):
        raise RuleDefinitionError("Invalid rules: 'rules' must be a list")

    loaded: list[RuleDefinition] = []
    seen_ids: set[str] = set()
    for rule_data in rules_data:
        if isinstance(rule_data, RuleDefinition):
            rule = rule_data
        else:
            rule_id = rule_data.get("id") if isinstance(rule_data, dict) else None
            try:
                rule = RuleDefinition.model_validate(rule_data)
            except ValidationError as e:
                raise RuleDefinitionError(
                    f"Error parsing rule {rule_id or 'unknown'}: {e}",
                    rule_id=rule_id,
                ) from e
        if unique_ids and rule.id in seen_ids:
            raise RuleDefinitionError(f"Duplicate rule id: {rule.id}", rule_id=rule.id)
        seen_ids.add(rule.id)
        loaded.append(rule)
    return loaded


def load_rules_yaml(yaml_content: str) -> list[RuleDefinition]:
    """Load rules from YAML (or JSON) content.

    YAML Format:
    ```yaml
    rules:
      - id: ACTIVE_EMAIL
        name: "Active users need an email"
        severity: warn     # error, warn, info
        scope: table       # table, field, global
        table: Users
        when:
          - {field: status, operator: "==", value: ACTIVE}
          - {field: email, operator: notExists}
        then:
          message: "Active users must have an email"
          quickFix: {op: setDefault, field: email, value: "unknown@example.com"}
    ```
    A bare list of rules is accepted as well.
    """
    try:
        parsed = yaml.safe_load(yaml_content)
    except yaml.YAMLError as e:
        raise RuleDefinitionError(f"Invalid YAML: {e}") from e

    if isinstance(parsed, dict):
        if "rules" not in parsed:
            raise RuleDefinitionError("Invalid YAML: must contain 'rules' key")
        parsed = parsed["rules"]
    elif parsed is None:
        parsed = []
    return parse_rules(parsed)


def load_rules_file(file_path: str) -> list[RuleDefinition]:
    """Load rules from a YAML or JSON file."""
    path = Path(file_path)
    if not path.exists():
        raise FileNotFoundError(f"Rules file not found: {file_path}")
    return load_rules_yaml(path.read_text(encoding="utf-8"))


def export_rules_yaml(rules: Sequence[RuleDefinition]) -> str:
    """Export rules to YAML format."""
    rules_data = {"rules": [r.to_document() for r in rules]}
    return yaml.dump(rules_data, default_flow_style=False, sort_keys=False, allow_unicode=True)
