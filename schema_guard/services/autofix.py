"""Auto-fix: apply an alert's quick fix to a copy of the data.

This is the only component that turns alerts into data changes. The input
data is never modified; the patched copy is re-validated before returning.
"""

import copy
from dataclasses import dataclass
from typing import Any, Callable, Optional, Sequence

from schema_guard.config import Settings, get_settings
from schema_guard.exceptions import QuickFixError
from schema_guard.logging_config import get_logger
from schema_guard.metrics import record_autofix
from schema_guard.models.alert import ValidationAlert, ValidationReport
from schema_guard.models.schema import FieldDefinition, FieldType, Schema, TableData
from schema_guard.services.engine import ValidationEngine
from schema_guard.services.field_checker import convert_value, is_unset
from schema_guard.services.normalize import prepare_data, prepare_schema
from schema_guard.services.pointers import record_key

logger = get_logger(__name__)

# Quick-fix ops applicable to a single record
RECORD_OPS = frozenset({"setDefault", "setValid", "setNull", "removeField", "convertType"})


def _field_type(name: str, code: str) -> FieldType:
    try:
        return FieldType(name)
    except ValueError as e:
        raise QuickFixError(f"Unknown target type: {name}", code=code) from e


@dataclass
class FixResult:
    """Outcome of applying one quick fix."""

    code: str
    data: TableData
    fixed_count: int
    report: ValidationReport

    @property
    def message(self) -> str:
        if self.fixed_count == 0:
            return "No correction needed"
        return f"{self.fixed_count} record(s) fixed"


class AutoFixer:
    """Computes patched data for an alert and confirms it by re-validating."""

    def __init__(self, settings: Optional[Settings] = None, engine: Optional[ValidationEngine] = None):
        self.settings = settings or get_settings()
        self.engine = engine or ValidationEngine(self.settings)
        self._handlers: dict[str, Callable[..., int]] = {
            "REQUIRED_FIELD_MISSING": self._fix_required,
            "ENUM_VALUE_INVALID": self._fix_enum,
            "TYPE_MISMATCH": self._fix_type,
            "FOREIGN_KEY_VIOLATION": self._fix_foreign_key,
        }

    def supports(self, alert: ValidationAlert) -> bool:
        """Check whether an alert can be fixed automatically."""
        if alert.code in self._handlers:
            return True
        return self._record_op(alert) is not None

    def apply(
        self,
        alert: ValidationAlert,
        schema: Any,
        data: Any,
        fix_all: bool = True,
        rules: Optional[Sequence[Any]] = None,
    ) -> FixResult:
        """Apply an alert's fix to a deep copy of ``data``.

        Args:
            alert: The alert to fix
            schema: Schema model or document the alert was produced against
            data: Table name -> records (never modified)
            fix_all: Fix every offending record of the table, not only the
                records listed in the alert
            rules: Rules to include when re-validating

        Returns:
            FixResult with the patched data and a fresh report

        Raises:
            QuickFixError: If the alert cannot be fixed automatically
        """
        schema_model, _ = prepare_schema(schema)
        patched = copy.deepcopy(prepare_data(data))

        handler = self._handlers.get(alert.code)
        if handler is not None:
            fixed = handler(alert, schema_model, patched, fix_all)
        elif self._record_op(alert) is not None:
            fixed = self._fix_record(alert, schema_model, patched)
        else:
            raise QuickFixError(f"Unsupported fix type: {alert.code}", code=alert.code)

        report = self.engine.validate(schema_model, patched, rules)
        record_autofix(alert.code, fixed)
        logger.info(
            "Auto-fix applied",
            code=alert.code,
            table=alert.table,
            field=alert.field,
            fixed_count=fixed,
            remaining_errors=report.summary.errors,
        )
        return FixResult(code=alert.code, data=patched, fixed_count=fixed, report=report)

    def _target(self, alert: ValidationAlert, schema: Schema) -> tuple[str, str, Optional[FieldDefinition]]:
        field_name = (alert.quick_fix or {}).get("field") or alert.field
        if not alert.table or not field_name:
            raise QuickFixError("Alert does not name a table and a field", code=alert.code)
        table = schema.get_table(alert.table)
        field_def = table.get_field(field_name) if table else None
        return alert.table, field_name, field_def

    def _selected(self, alert: ValidationAlert, fix_all: bool) -> Optional[set]:
        """Record ids to patch, or None for every record."""
        if fix_all:
            return None
        ids = list(alert.context.get("recordIds") or [])
        if alert.record_id is not None:
            ids.append(alert.record_id)
        return set(ids)

    def _rows(self, data: TableData, table: str, selected: Optional[set]):
        for index, record in enumerate(data.get(table, [])):
            if not isinstance(record, dict):
                continue
            if selected is not None and record_key(record, index) not in selected:
                continue
            yield record

    def _fix_required(self, alert: ValidationAlert, schema: Schema, data: TableData, fix_all: bool) -> int:
        table, field_name, field_def = self._target(alert, schema)
        quick_fix = alert.quick_fix or {}
        if "value" in quick_fix:
            value = quick_fix["value"]
        elif field_def is not None and field_def.has_default:
            value = field_def.default
        else:
            raise QuickFixError(f"No default value for '{table}.{field_name}'", code=alert.code)

        fixed = 0
        for record in self._rows(data, table, self._selected(alert, fix_all)):
            if is_unset(record.get(field_name)):
                record[field_name] = copy.deepcopy(value)
                fixed += 1
        return fixed

    def _fix_enum(self, alert: ValidationAlert, schema: Schema, data: TableData, fix_all: bool) -> int:
        table, field_name, field_def = self._target(alert, schema)
        allowed = alert.context.get("allowedValues") or (field_def.enum_values if field_def else None) or []
        value = (alert.quick_fix or {}).get("value", allowed[0] if allowed else None)
        if value is None:
            raise QuickFixError(f"No valid enum value for '{table}.{field_name}'", code=alert.code)

        fixed = 0
        for record in self._rows(data, table, self._selected(alert, fix_all)):
            current = record.get(field_name)
            if not is_unset(current) and not (isinstance(current, str) and current in allowed):
                record[field_name] = value
                fixed += 1
        return fixed

    def _fix_type(self, alert: ValidationAlert, schema: Schema, data: TableData, fix_all: bool) -> int:
        table, field_name, field_def = self._target(alert, schema)
        target = (alert.quick_fix or {}).get("targetType") or (field_def.type.value if field_def else None)
        if target is None:
            raise QuickFixError(f"Unknown target type for '{table}.{field_name}'", code=alert.code)
        target_type = _field_type(target, alert.code)

        fixed = 0
        for record in self._rows(data, table, self._selected(alert, fix_all)):
            current = record.get(field_name)
            if is_unset(current):
                continue
            ok, converted = convert_value(current, target_type)
            # Unconvertible values stay as they are and keep being reported
            if ok and (converted != current or type(converted) is not type(current)):
                record[field_name] = converted
                fixed += 1
        return fixed

    def _fix_foreign_key(self, alert: ValidationAlert, schema: Schema, data: TableData, fix_all: bool) -> int:
        table, field_name, _ = self._target(alert, schema)
        if alert.record_id is None:
            raise QuickFixError("Foreign key alert does not name a record", code=alert.code)

        fixed = 0
        for record in self._rows(data, table, {alert.record_id}):
            record[field_name] = None
            fixed += 1
        return fixed

    def _record_op(self, alert: ValidationAlert) -> Optional[str]:
        op = (alert.quick_fix or {}).get("op")
        if op in RECORD_OPS and alert.table and alert.record_id is not None:
            return op
        return None

    def _fix_record(self, alert: ValidationAlert, schema: Schema, data: TableData) -> int:
        """Apply a record-level quick fix, such as one attached to a business rule."""
        op = self._record_op(alert)
        quick_fix = alert.quick_fix or {}
        table, field_name, field_def = self._target(alert, schema)

        fixed = 0
        for record in self._rows(data, table, {alert.record_id}):
            if op in ("setDefault", "setValid"):
                value = quick_fix.get("value")
                if value is None and field_def is not None:
                    value = field_def.default
                record[field_name] = copy.deepcopy(value)
            elif op == "setNull":
                record[field_name] = None
            elif op == "removeField":
                record.pop(field_name, None)
            else:
                target = quick_fix.get("targetType") or (field_def.type.value if field_def else None)
                if target is None:
                    raise QuickFixError(f"Unknown target type for '{table}.{field_name}'", code=alert.code)
                ok, converted = convert_value(record.get(field_name), _field_type(target, alert.code))
                if not ok:
                    continue
                record[field_name] = converted
            fixed += 1
        return fixed
