"""Validation services."""

from schema_guard.services.autofix import AutoFixer, FixResult
from schema_guard.services.change_simulation import (
    ChangeSimulation,
    ChangeSimulator,
    MigrationStep,
)
from schema_guard.services.engine import ValidationEngine, validate
from schema_guard.services.field_checker import FieldChecker
from schema_guard.services.impact import ImpactAnalyzer
from schema_guard.services.integrity import IntegrityValidator
from schema_guard.services.report import ReportAggregator
from schema_guard.services.rule_engine import (
    RuleEngine,
    evaluate_condition,
    export_rules_yaml,
    load_rules_file,
    load_rules_yaml,
)
from schema_guard.services.structural import StructuralValidator

__all__ = [
    "AutoFixer",
    "ChangeSimulation",
    "ChangeSimulator",
    "FieldChecker",
    "FixResult",
    "ImpactAnalyzer",
    "IntegrityValidator",
    "MigrationStep",
    "ReportAggregator",
    "RuleEngine",
    "StructuralValidator",
    "ValidationEngine",
    "evaluate_condition",
    "export_rules_yaml",
    "load_rules_file",
    "load_rules_yaml",
    "validate",
]
