"""Exception hierarchy for schema-guard.

Only precondition failures are raised. Problems found in the schema, the
data or the rules are reported as alerts, never as exceptions.
"""

from typing import Any, Optional


class SchemaGuardError(Exception):
    """Base exception for schema-guard."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        self.message = message
        self.error_code = error_code or "INTERNAL_ERROR"
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Create a standardized error payload."""
        payload: dict[str, Any] = {
            "error": {
                "code": self.error_code,
                "message": self.message,
            }
        }
        if self.details:
            payload["error"]["details"] = self.details
        return payload


class InvalidInputError(SchemaGuardError):
    """An argument to the engine has the wrong shape entirely."""

    def __init__(self, message: str, argument: str, details: Optional[dict] = None):
        super().__init__(
            message=message,
            error_code="INVALID_INPUT",
            details={"argument": argument, **(details or {})},
        )
        self.argument = argument


class RuleDefinitionError(SchemaGuardError):
    """A business rule definition could not be parsed."""

    def __init__(self, message: str, rule_id: Optional[str] = None, details: Optional[dict] = None):
        super().__init__(
            message=message,
            error_code="RULE_DEFINITION_ERROR",
            details={"rule_id": rule_id, **(details or {})},
        )
        self.rule_id = rule_id


class QuickFixError(SchemaGuardError):
    """An alert cannot be fixed automatically."""

    def __init__(self, message: str, code: str, details: Optional[dict] = None):
        super().__init__(
            message=message,
            error_code="QUICK_FIX_ERROR",
            details={"code": code, **(details or {})},
        )
        self.code = code


class DocumentLoadError(SchemaGuardError):
    """A schema, data or rules document could not be read."""

    def __init__(self, message: str, path: str, details: Optional[dict] = None):
        super().__init__(
            message=message,
            error_code="DOCUMENT_LOAD_ERROR",
            details={"path": path, **(details or {})},
        )
        self.path = path
