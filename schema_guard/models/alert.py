"""Pydantic models for validation alerts and reports."""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

RULE_CODE_PREFIX = "RULE_"


class Severity(str, Enum):
    """Severity levels for alerts and business rules."""

    ERROR = "error"
    WARN = "warn"
    INFO = "info"


SEVERITY_ALIASES = {
    "warning": Severity.WARN,
    "critical": Severity.ERROR,
    "information": Severity.INFO,
}


def normalize_severity(value: Any) -> Any:
    """Accept common spellings of severities ("warning", "critical")."""
    if isinstance(value, str):
        lowered = value.strip().lower()
        return SEVERITY_ALIASES.get(lowered, lowered)
    return value


class ValidationAlert(BaseModel):
    """A single, self-describing problem found by the engine."""

    model_config = ConfigDict(populate_by_name=True)

    severity: Severity
    code: str
    location: str
    message: str
    suggestion: Optional[str] = None
    quick_fix: Optional[dict[str, Any]] = Field(None, alias="quickFix")
    context: dict[str, Any] = Field(default_factory=dict)

    @field_validator("severity", mode="before")
    @classmethod
    def _normalize_severity(cls, value: Any) -> Any:
        return normalize_severity(value)

    @property
    def table(self) -> Optional[str]:
        return self.context.get("table")

    @property
    def field(self) -> Optional[str]:
        return self.context.get("field")

    @property
    def record_id(self) -> Any:
        return self.context.get("recordId")

    @property
    def is_rule_alert(self) -> bool:
        return self.code.startswith(RULE_CODE_PREFIX)

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class ValidationSummary(BaseModel):
    """Alert counts by severity."""

    errors: int = 0
    warnings: int = 0
    infos: int = 0

    @property
    def total(self) -> int:
        return self.errors + self.warnings + self.infos


class ValidationReport(BaseModel):
    """Result of one ``validate`` call.

    ``alerts`` is the union of every stage's alerts. ``level_a``, ``level_b``
    and ``level_c`` are views of the structural, integrity and impact stages;
    business-rule alerts only appear in ``alerts`` (see ``rule_alerts``).
    """

    model_config = ConfigDict(populate_by_name=True)

    timestamp: str
    summary: ValidationSummary
    alerts: list[ValidationAlert] = Field(default_factory=list)
    level_a: list[ValidationAlert] = Field(default_factory=list, alias="levelA")
    level_b: list[ValidationAlert] = Field(default_factory=list, alias="levelB")
    level_c: list[ValidationAlert] = Field(default_factory=list, alias="levelC")

    @property
    def is_valid(self) -> bool:
        """True when no error-severity alert was produced."""
        return self.summary.errors == 0

    @property
    def rule_alerts(self) -> list[ValidationAlert]:
        return [a for a in self.alerts if a.is_rule_alert]

    def by_code(self, code: str) -> list[ValidationAlert]:
        """Get all alerts with the given code."""
        return [a for a in self.alerts if a.code == code]

    def by_severity(self, severity: Severity) -> list[ValidationAlert]:
        """Get all alerts with the given severity."""
        return [a for a in self.alerts if a.severity == severity]

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")
