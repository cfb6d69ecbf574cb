"""schema-guard: three-level validation and business rules for relational data catalogs."""

from schema_guard.exceptions import (
    DocumentLoadError,
    InvalidInputError,
    QuickFixError,
    RuleDefinitionError,
    SchemaGuardError,
)
from schema_guard.models import (
    RuleDefinition,
    Schema,
    Severity,
    ValidationAlert,
    ValidationReport,
)
from schema_guard.services.engine import ValidationEngine, validate

__version__ = "0.3.0"

__all__ = [
    "DocumentLoadError",
    "InvalidInputError",
    "QuickFixError",
    "RuleDefinition",
    "RuleDefinitionError",
    "Schema",
    "SchemaGuardError",
    "Severity",
    "ValidationAlert",
    "ValidationEngine",
    "ValidationReport",
    "validate",
]
