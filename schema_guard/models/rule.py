"""Pydantic models for user-authored business rules."""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from schema_guard.models.alert import Severity, normalize_severity


class RuleScope(str, Enum):
    """Scope that a rule applies to."""

    TABLE = "table"
    FIELD = "field"
    GLOBAL = "global"


class ConditionOperator(str, Enum):
    """Operators understood by the rule condition interpreter."""

    EQ = "=="
    NE = "!="
    GT = ">"
    LT = "<"
    GE = ">="
    LE = "<="
    REGEX = "regex"
    EXISTS = "exists"
    NOT_EXISTS = "notExists"
    IN = "in"
    NOT_IN = "notIn"


class RuleCondition(BaseModel):
    """One condition of a rule's ``when`` clause."""

    field: Optional[str] = None
    operator: ConditionOperator
    value: Any = None
    values: Optional[list[Any]] = None


class QuickFix(BaseModel):
    """Machine-actionable remediation attached to a rule."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    op: str
    value: Any = None
    field: Optional[str] = None
    target_field: Optional[str] = Field(None, alias="targetField")
    target_type: Optional[str] = Field(None, alias="targetType")

    def to_payload(self) -> dict[str, Any]:
        """Dump exactly the keys the author provided."""
        return self.model_dump(by_alias=True, exclude_unset=True, mode="json")


class RuleAction(BaseModel):
    """The ``then`` clause of a rule."""

    model_config = ConfigDict(populate_by_name=True)

    message: str
    suggestion: Optional[str] = None
    quick_fix: Optional[QuickFix] = Field(None, alias="quickFix")


class RuleDefinition(BaseModel):
    """Definition of a business rule."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str
    name: Optional[str] = None
    description: Optional[str] = None
    severity: Severity = Severity.WARN
    scope: RuleScope = RuleScope.TABLE
    table: Optional[str] = None
    field: Optional[str] = None
    enabled: bool = True
    when: list[RuleCondition] = Field(default_factory=list)
    then: RuleAction

    @field_validator("severity", mode="before")
    @classmethod
    def _normalize_severity(cls, value: Any) -> Any:
        return normalize_severity(value)

    @property
    def alert_code(self) -> str:
        return f"RULE_{self.id}"

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")
