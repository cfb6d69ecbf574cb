"""Validation orchestration: the single ``validate`` entry point."""

from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Optional, Sequence

from schema_guard.config import Settings, get_settings
from schema_guard.logging_config import get_logger
from schema_guard.metrics import get_metrics, record_report
from schema_guard.models.alert import ValidationAlert, ValidationReport
from schema_guard.services.change_simulation import ChangeSimulation, ChangeSimulator
from schema_guard.services.impact import ImpactAnalyzer
from schema_guard.services.integrity import IntegrityValidator
from schema_guard.services.normalize import prepare_data, prepare_rules, prepare_schema
from schema_guard.services.report import ReportAggregator
from schema_guard.services.rule_engine import RuleEngine
from schema_guard.services.structural import StructuralValidator

logger = get_logger(__name__)

# Stage order is the order alerts appear in the report
STAGES = ("levelA", "levelB", "levelC", "rules")


class ValidationEngine:
    """Runs the structural, integrity and impact levels plus business rules.

    Every stage runs unconditionally so a caller sees every problem at once.
    The engine only reports: deciding whether errors block a write is left
    to the caller.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        structural: Optional[StructuralValidator] = None,
        integrity: Optional[IntegrityValidator] = None,
        impact: Optional[ImpactAnalyzer] = None,
        rule_engine: Optional[RuleEngine] = None,
        aggregator: Optional[ReportAggregator] = None,
    ):
        self.settings = settings or get_settings()
        self.structural = structural or StructuralValidator(self.settings)
        self.integrity = integrity or IntegrityValidator(self.settings)
        self.impact = impact or ImpactAnalyzer(self.settings)
        self.rule_engine = rule_engine or RuleEngine()
        self.aggregator = aggregator or ReportAggregator()

    def validate(self, schema: Any, data: Any, rules: Optional[Sequence[Any]] = None) -> ValidationReport:
        """Validate data against a schema and a set of business rules.

        Args:
            schema: Schema model or schema document (mapping)
            data: Table name -> records
            rules: Rule models or rule mappings

        Returns:
            A fresh ValidationReport

        Raises:
            InvalidInputError: If an argument has the wrong shape entirely
        """
        schema_model, document = prepare_schema(schema)
        tables = prepare_data(data)
        rule_defs = prepare_rules(rules)

        logger.info(
            "Validation started",
            schema_tables=len(schema_model.tables),
            data_tables=len(tables),
            records=sum(len(records) for records in tables.values()),
            rules=len(rule_defs),
            parallel=self.settings.parallel_enabled,
        )

        stages: dict[str, Callable[[], list[ValidationAlert]]] = {
            "levelA": lambda: self.structural.validate(schema_model, tables, document),
            "levelB": lambda: self.integrity.validate(schema_model, tables),
            "levelC": lambda: self.impact.analyze(schema_model, tables),
            "rules": lambda: self.rule_engine.evaluate(rule_defs, schema_model, tables),
        }

        with get_metrics().time_histogram("validation_duration", stage="total") as timer:
            results = self._run_stages(stages)
            report = self.aggregator.aggregate(
                results["levelA"],
                results["levelB"],
                results["levelC"],
                results["rules"],
            )

        record_report(report)
        logger.info(
            "Validation finished",
            errors=report.summary.errors,
            warnings=report.summary.warnings,
            infos=report.summary.infos,
            duration_ms=round(timer.duration * 1000, 2),
        )
        return report

    def simulate_change(self, current: Any, proposed: Any, data: Any) -> ChangeSimulation:
        """Preview the impact of replacing ``current`` with ``proposed``."""
        return ChangeSimulator(self.settings).simulate(current, proposed, data)

    def _run_stage(self, name: str, stage: Callable[[], list[ValidationAlert]]) -> list[ValidationAlert]:
        with get_metrics().time_histogram("validation_duration", stage=name):
            return stage()

    def _run_stages(self, stages: dict[str, Callable[[], list[ValidationAlert]]]) -> dict[str, list[ValidationAlert]]:
        if self.settings.parallel_enabled and self.settings.max_workers > 1:
            workers = min(self.settings.max_workers, len(stages))
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="schema-guard") as executor:
                futures = {name: executor.submit(self._run_stage, name, stages[name]) for name in STAGES}
                return {name: futures[name].result() for name in STAGES}
        return {name: self._run_stage(name, stages[name]) for name in STAGES}


def validate(
    schema: Any,
    data: Any,
    rules: Optional[Sequence[Any]] = None,
    engine: Optional[ValidationEngine] = None,
) -> ValidationReport:
    """Validate data against a schema and business rules.

    A fresh engine is built per call unless one is passed; reuse an engine
    to share its compiled schema cache across calls.
    """
    return (engine or ValidationEngine()).validate(schema, data, rules)
