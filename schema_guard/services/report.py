"""Merges the alert streams into one report."""

from datetime import datetime, timezone
from typing import Iterable, Optional

from schema_guard.models.alert import (
    Severity,
    ValidationAlert,
    ValidationReport,
    ValidationSummary,
)


def summarize(alerts: Iterable[ValidationAlert]) -> ValidationSummary:
    """Count alerts by severity."""
    summary = ValidationSummary()
    for alert in alerts:
        if alert.severity == Severity.ERROR:
            summary.errors += 1
        elif alert.severity == Severity.WARN:
            summary.warnings += 1
        else:
            summary.infos += 1
    return summary


class ReportAggregator:
    """Builds a ValidationReport from the four alert streams.

    Rule alerts are counted in the summary and listed in ``alerts`` but are
    not partitioned into a level.
    """

    def aggregate(
        self,
        level_a: list[ValidationAlert],
        level_b: list[ValidationAlert],
        level_c: list[ValidationAlert],
        rule_alerts: list[ValidationAlert],
        timestamp: Optional[datetime] = None,
    ) -> ValidationReport:
        alerts = [*level_a, *level_b, *level_c, *rule_alerts]
        moment = timestamp or datetime.now(timezone.utc)
        return ValidationReport(
            timestamp=moment.isoformat(),
            summary=summarize(alerts),
            alerts=alerts,
            levelA=list(level_a),
            levelB=list(level_b),
            levelC=list(level_c),
        )
