"""Per-value checks of record fields against their declarations.

The conversion helpers in this module are shared by the impact analyzer and
the auto-fixer, so "convertible" means the same thing everywhere.
"""

import math
import re
from datetime import date, datetime
from functools import lru_cache
from typing import Any, Callable, Optional, Union

import orjson

from schema_guard.logging_config import get_logger
from schema_guard.models.alert import Severity, ValidationAlert
from schema_guard.models.schema import FieldDefinition, FieldType

logger = get_logger(__name__)

INVALID_DATA_STRUCTURE = "INVALID_DATA_STRUCTURE"
INVALID_DEFAULT_VALUE = "INVALID_DEFAULT_VALUE"

BOOLEAN_LITERALS: dict[str, bool] = {
    "true": True,
    "false": False,
    "1": True,
    "0": False,
}


def is_unset(value: Any) -> bool:
    """Check whether a value counts as "not provided" (None or empty string)."""
    return value is None or (isinstance(value, str) and value == "")


@lru_cache(maxsize=256)
def compile_pattern(pattern: str) -> Optional[re.Pattern]:
    """Compile a user-supplied regex, returning None when it is malformed."""
    try:
        return re.compile(pattern)
    except re.error as e:
        logger.warning("Malformed regex pattern skipped", pattern=pattern, error=str(e))
        return None


def to_number(value: Any) -> Optional[Union[int, float]]:
    """Parse a number or numeric string. Booleans and non-finite values are rejected."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return int(text)
        except ValueError:
            pass
        try:
            number = float(text)
        except ValueError:
            return None
        return number if math.isfinite(number) else None
    return None


def is_integral(number: Union[int, float]) -> bool:
    """Check for a whole number; ints of any size qualify without a float round-trip."""
    if isinstance(number, int):
        return True
    return number.is_integer()


def to_boolean(value: Any) -> Optional[bool]:
    """Parse a boolean literal or one of its textual/numeric equivalents."""
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return value == 1
    if isinstance(value, str):
        return BOOLEAN_LITERALS.get(value.strip().lower())
    return None


def parse_temporal(value: Any) -> Optional[Union[date, datetime]]:
    """Parse a date/datetime object or an ISO-8601 string."""
    if isinstance(value, (datetime, date)):
        return value
    if not isinstance(value, str):
        return None
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        pass
    try:
        return date.fromisoformat(text)
    except ValueError:
        return None


def parse_json(value: Any) -> tuple[bool, Any]:
    """Parse an opaque structured value.

    Returns:
        (True, parsed) when the value is structured or parses as JSON,
        (False, None) otherwise.
    """
    if isinstance(value, (dict, list, bool, int, float)):
        return True, value
    if isinstance(value, str):
        try:
            return True, orjson.loads(value)
        except orjson.JSONDecodeError:
            return False, None
    return False, None


def _convert_integer(value: Any) -> tuple[bool, Any]:
    number = to_number(value)
    if number is None or not is_integral(number):
        return False, None
    return True, int(number)


def _convert_number(value: Any) -> tuple[bool, Any]:
    number = to_number(value)
    return (number is not None), number


def _convert_boolean(value: Any) -> tuple[bool, Any]:
    parsed = to_boolean(value)
    return (parsed is not None), parsed


def _convert_date(value: Any) -> tuple[bool, Any]:
    parsed = parse_temporal(value)
    if parsed is None:
        return False, None
    if isinstance(parsed, datetime):
        parsed = parsed.date()
    return True, parsed.isoformat()


def _convert_datetime(value: Any) -> tuple[bool, Any]:
    parsed = parse_temporal(value)
    if parsed is None:
        return False, None
    if not isinstance(parsed, datetime):
        parsed = datetime(parsed.year, parsed.month, parsed.day)
    return True, parsed.isoformat()


def _convert_text(value: Any) -> tuple[bool, Any]:
    if isinstance(value, (dict, list)):
        return False, None
    if isinstance(value, bool):
        return True, "true" if value else "false"
    return True, str(value)


VALUE_CONVERTERS: dict[FieldType, Callable[[Any], tuple[bool, Any]]] = {
    FieldType.STRING: _convert_text,
    FieldType.ENUM: _convert_text,
    FieldType.NUMBER: _convert_number,
    FieldType.INTEGER: _convert_integer,
    FieldType.BOOLEAN: _convert_boolean,
    FieldType.DATE: _convert_date,
    FieldType.DATETIME: _convert_datetime,
    FieldType.JSON: parse_json,
}


def convert_value(value: Any, field_type: FieldType) -> tuple[bool, Any]:
    """Best-effort conversion of a stored value to a field type.

    Dates and datetimes are converted to ISO-8601 strings so the result can
    be written back into JSON-shaped table data.
    """
    return VALUE_CONVERTERS[field_type](value)


class FieldChecker:
    """Validates one scalar value against one field declaration.

    Unset values never produce alerts: required-ness is judged by the impact
    analyzer, not here.
    """

    def __init__(self) -> None:
        self._checks: dict[FieldType, Callable[..., list[ValidationAlert]]] = {
            FieldType.STRING: self._check_string,
            FieldType.NUMBER: self._check_number,
            FieldType.INTEGER: self._check_number,
            FieldType.BOOLEAN: self._check_boolean,
            FieldType.DATE: self._check_temporal,
            FieldType.DATETIME: self._check_temporal,
            FieldType.ENUM: self._check_enum,
            FieldType.JSON: self._check_json,
        }

    @property
    def supported_types(self) -> frozenset[FieldType]:
        return frozenset(self._checks)

    def check(
        self,
        value: Any,
        field: FieldDefinition,
        location: str = "",
        context: Optional[dict[str, Any]] = None,
    ) -> list[ValidationAlert]:
        """Check a value against a field's type and constraints.

        Args:
            value: The stored value (None and "" are treated as unset)
            field: The field declaration
            location: Pointer reported on every alert
            context: Extra context merged into every alert (table, recordId, ...)

        Returns:
            List of INVALID_DATA_STRUCTURE alerts, empty when the value is valid
        """
        if is_unset(value):
            return []
        base_context = {**(context or {}), "field": field.name}
        return self._checks[field.type](value, field, location, base_context)

    def apply_default(self, value: Any, field: FieldDefinition) -> Any:
        """Substitute the declared default for an unset value."""
        if is_unset(value) and field.has_default:
            return field.default
        return value

    def check_default(
        self,
        field: FieldDefinition,
        location: str = "",
        context: Optional[dict[str, Any]] = None,
    ) -> list[ValidationAlert]:
        """Check that a declared default satisfies the field's own constraints."""
        if not field.has_default:
            return []
        alerts = self.check(field.default, field, location, context)
        return [
            alert.model_copy(
                update={
                    "code": INVALID_DEFAULT_VALUE,
                    "message": f"Default value of '{field.name}' is invalid: {alert.message}",
                }
            )
            for alert in alerts
        ]

    def _alert(
        self,
        keyword: str,
        message: str,
        location: str,
        context: dict[str, Any],
        suggestion: Optional[str] = None,
        **extra: Any,
    ) -> ValidationAlert:
        return ValidationAlert(
            severity=Severity.ERROR,
            code=INVALID_DATA_STRUCTURE,
            location=location,
            message=message,
            suggestion=suggestion,
            context={**context, "keyword": keyword, **extra},
        )

    def _check_number(
        self, value: Any, field: FieldDefinition, location: str, context: dict[str, Any]
    ) -> list[ValidationAlert]:
        number = to_number(value)
        if number is None:
            return [
                self._alert(
                    "type",
                    f"Field '{field.name}' must be a number, got {value!r}",
                    location,
                    context,
                    suggestion="Provide a numeric value",
                    expectedType=field.type.value,
                )
            ]

        alerts: list[ValidationAlert] = []
        if field.type == FieldType.INTEGER and not is_integral(number):
            alerts.append(
                self._alert(
                    "integer",
                    f"Field '{field.name}' must be an integer, got {value!r}",
                    location,
                    context,
                    suggestion="Round the value to a whole number",
                    expectedType=field.type.value,
                )
            )
        if field.min is not None and number < field.min:
            alerts.append(
                self._alert(
                    "minimum",
                    f"Field '{field.name}' must be >= {field.min}, got {number}",
                    location,
                    context,
                    limit=field.min,
                )
            )
        if field.max is not None and number > field.max:
            alerts.append(
                self._alert(
                    "maximum",
                    f"Field '{field.name}' must be <= {field.max}, got {number}",
                    location,
                    context,
                    limit=field.max,
                )
            )
        return alerts

    def _check_string(
        self, value: Any, field: FieldDefinition, location: str, context: dict[str, Any]
    ) -> list[ValidationAlert]:
        if not isinstance(value, str):
            return [
                self._alert(
                    "type",
                    f"Field '{field.name}' must be text, got {type(value).__name__}",
                    location,
                    context,
                    expectedType=field.type.value,
                )
            ]

        alerts: list[ValidationAlert] = []
        length = len(value)
        if field.min is not None and length < field.min:
            alerts.append(
                self._alert(
                    "minLength",
                    f"Field '{field.name}' must have at least {field.min} characters",
                    location,
                    context,
                    limit=field.min,
                )
            )
        if field.max is not None and length > field.max:
            alerts.append(
                self._alert(
                    "maxLength",
                    f"Field '{field.name}' must have at most {field.max} characters",
                    location,
                    context,
                    limit=field.max,
                )
            )
        if field.regex:
            matcher = compile_pattern(field.regex)
            if matcher is not None and matcher.search(value) is None:
                alerts.append(
                    self._alert(
                        "pattern",
                        f"Field '{field.name}' does not match pattern {field.regex}",
                        location,
                        context,
                        pattern=field.regex,
                    )
                )
        return alerts

    def _check_boolean(
        self, value: Any, field: FieldDefinition, location: str, context: dict[str, Any]
    ) -> list[ValidationAlert]:
        if to_boolean(value) is None:
            return [
                self._alert(
                    "type",
                    f"Field '{field.name}' must be a boolean, got {value!r}",
                    location,
                    context,
                    suggestion="Use true/false or 1/0",
                    expectedType=field.type.value,
                )
            ]
        return []

    def _check_temporal(
        self, value: Any, field: FieldDefinition, location: str, context: dict[str, Any]
    ) -> list[ValidationAlert]:
        if parse_temporal(value) is None:
            return [
                self._alert(
                    "type",
                    f"Field '{field.name}' must be an ISO-8601 {field.type.value}, got {value!r}",
                    location,
                    context,
                    suggestion="Use the YYYY-MM-DD or YYYY-MM-DDTHH:MM:SS format",
                    expectedType=field.type.value,
                )
            ]
        return []

    def _check_enum(
        self, value: Any, field: FieldDefinition, location: str, context: dict[str, Any]
    ) -> list[ValidationAlert]:
        allowed = field.enum_values or []
        if isinstance(value, str) and value in allowed:
            return []
        return [
            self._alert(
                "enum",
                f"Field '{field.name}' must be one of {allowed}, got {value!r}",
                location,
                context,
                allowedValues=list(allowed),
            )
        ]

    def _check_json(
        self, value: Any, field: FieldDefinition, location: str, context: dict[str, Any]
    ) -> list[ValidationAlert]:
        ok, _ = parse_json(value)
        if not ok:
            return [
                self._alert(
                    "type",
                    f"Field '{field.name}' must be structured JSON",
                    location,
                    context,
                    suggestion="Provide an object, an array or a valid JSON literal",
                    expectedType=field.type.value,
                )
            ]
        return []
