"""Change simulation.

Diffs a current schema against a proposed one and estimates, step by step,
how many existing records each change touches before it is committed.
"""

from dataclasses import dataclass, field as dataclass_field
from datetime import datetime, timezone
from typing import Any, Optional

from schema_guard.config import Settings, get_settings
from schema_guard.logging_config import get_logger
from schema_guard.models.alert import Severity, ValidationAlert
from schema_guard.models.schema import (
    FieldDefinition,
    FieldType,
    RelationDefinition,
    Schema,
    TableData,
)
from schema_guard.services.field_checker import convert_value, is_unset
from schema_guard.services.impact import ImpactAnalyzer
from schema_guard.services.integrity import IntegrityValidator
from schema_guard.services.normalize import prepare_data, prepare_schema

logger = get_logger(__name__)

# Steps that discard stored values
DESTRUCTIVE_STEPS = frozenset({"removeTable", "removeField"})


@dataclass
class MigrationStep:
    """One atomic difference between the current and the proposed schema."""

    kind: str  # addTable, removeTable, addField, removeField, changeType, makeRequired, narrowEnum, addRelation, removeRelation
    table: str
    description: str
    field: Optional[str] = None
    affected_records: int = 0
    details: dict[str, Any] = dataclass_field(default_factory=dict)

    @property
    def is_destructive(self) -> bool:
        return self.kind in DESTRUCTIVE_STEPS


@dataclass
class ChangeSimulation:
    """Result of a change simulation."""

    steps: list[MigrationStep]
    impact: list[ValidationAlert]
    affected_records: int
    risk_level: str  # low, medium, high
    recommendations: list[str]
    warnings: list[str]
    simulated_at: datetime

    @property
    def has_changes(self) -> bool:
        return bool(self.steps)

    def to_dict(self) -> dict[str, Any]:
        return {
            "steps": [
                {
                    "kind": s.kind,
                    "table": s.table,
                    "field": s.field,
                    "description": s.description,
                    "affectedRecords": s.affected_records,
                    "details": s.details,
                }
                for s in self.steps
            ],
            "impact": [a.to_dict() for a in self.impact],
            "affectedRecords": self.affected_records,
            "riskLevel": self.risk_level,
            "recommendations": self.recommendations,
            "warnings": self.warnings,
            "simulatedAt": self.simulated_at.isoformat(),
        }


def _relation_key(relation: RelationDefinition) -> tuple[str, str, str, str]:
    return (relation.from_table, relation.from_field, relation.to_table, relation.to_field)


class ChangeSimulator:
    """Simulate schema changes against existing data."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.impact_analyzer = ImpactAnalyzer(self.settings)
        self.integrity_validator = IntegrityValidator(self.settings)

    def simulate(self, current: Any, proposed: Any, data: Any) -> ChangeSimulation:
        """Run a what-if simulation of replacing ``current`` with ``proposed``.

        Args:
            current: The schema the data was written against
            proposed: The candidate schema
            data: Table name -> records (never modified)

        Returns:
            ChangeSimulation with migration steps, Level C impact of the
            proposed schema, recommendations and a risk level
        """
        current_schema, _ = prepare_schema(current)
        proposed_schema, _ = prepare_schema(proposed)
        tables = prepare_data(data)

        steps = self._diff_tables(current_schema, proposed_schema, tables)
        steps.extend(self._diff_relations(current_schema, proposed_schema, tables))
        impact = self.impact_analyzer.analyze(proposed_schema, tables)

        risk_level = self._risk_level(steps, impact)
        simulation = ChangeSimulation(
            steps=steps,
            impact=impact,
            affected_records=sum(s.affected_records for s in steps),
            risk_level=risk_level,
            recommendations=self._generate_recommendations(steps, risk_level),
            warnings=self._generate_warnings(steps, impact),
            simulated_at=datetime.now(timezone.utc),
        )
        logger.info(
            "Change simulated",
            steps=len(steps),
            affected_records=simulation.affected_records,
            risk_level=risk_level,
        )
        return simulation

    def _records(self, data: TableData, table: str) -> list[dict[str, Any]]:
        return [r for r in data.get(table, []) if isinstance(r, dict)]

    def _diff_tables(self, current: Schema, proposed: Schema, data: TableData) -> list[MigrationStep]:
        steps: list[MigrationStep] = []
        current_names = set(current.table_names)
        proposed_names = set(proposed.table_names)

        for name in current.table_names:
            if name not in proposed_names:
                steps.append(
                    MigrationStep(
                        kind="removeTable",
                        table=name,
                        description=f"Remove table '{name}'",
                        affected_records=len(self._records(data, name)),
                    )
                )
        for name in proposed.table_names:
            if name not in current_names:
                steps.append(MigrationStep(kind="addTable", table=name, description=f"Add table '{name}'"))

        for name in proposed.table_names:
            before = current.get_table(name)
            if before is None:
                continue
            after = proposed.get_table(name)
            records = self._records(data, name)

            for old_field in before.fields:
                if after.get_field(old_field.name) is None:
                    steps.append(
                        MigrationStep(
                            kind="removeField",
                            table=name,
                            field=old_field.name,
                            description=f"Remove field '{name}.{old_field.name}'",
                            affected_records=sum(1 for r in records if not is_unset(r.get(old_field.name))),
                        )
                    )
            for new_field in after.fields:
                old_field = before.get_field(new_field.name)
                if old_field is None:
                    steps.append(self._added_field_step(name, new_field, records))
                else:
                    steps.extend(self._changed_field_steps(name, old_field, new_field, records))
        return steps

    def _added_field_step(
        self, table: str, new_field: FieldDefinition, records: list[dict[str, Any]]
    ) -> MigrationStep:
        affected = 0
        if new_field.required and not new_field.has_default:
            affected = sum(1 for r in records if is_unset(r.get(new_field.name)))
        return MigrationStep(
            kind="addField",
            table=table,
            field=new_field.name,
            description=f"Add field '{table}.{new_field.name}' ({new_field.type.value})",
            affected_records=affected,
            details={"required": new_field.required, "hasDefault": new_field.has_default},
        )

    def _changed_field_steps(
        self,
        table: str,
        old_field: FieldDefinition,
        new_field: FieldDefinition,
        records: list[dict[str, Any]],
    ) -> list[MigrationStep]:
        steps: list[MigrationStep] = []
        name = new_field.name

        if old_field.type != new_field.type:
            unconvertible = sum(
                1
                for r in records
                if not is_unset(r.get(name)) and not convert_value(r.get(name), new_field.type)[0]
            )
            steps.append(
                MigrationStep(
                    kind="changeType",
                    table=table,
                    field=name,
                    description=f"Change type of '{table}.{name}' from {old_field.type.value} to {new_field.type.value}",
                    affected_records=unconvertible,
                    details={"from": old_field.type.value, "to": new_field.type.value},
                )
            )

        if new_field.required and not old_field.required:
            missing = sum(1 for r in records if is_unset(r.get(name)))
            steps.append(
                MigrationStep(
                    kind="makeRequired",
                    table=table,
                    field=name,
                    description=f"Make '{table}.{name}' required",
                    affected_records=missing,
                    details={"hasDefault": new_field.has_default},
                )
            )

        if old_field.type == FieldType.ENUM and new_field.type == FieldType.ENUM:
            removed = [v for v in (old_field.enum_values or []) if v not in (new_field.enum_values or [])]
            if removed:
                steps.append(
                    MigrationStep(
                        kind="narrowEnum",
                        table=table,
                        field=name,
                        description=f"Remove enum value(s) {removed} from '{table}.{name}'",
                        affected_records=sum(1 for r in records if r.get(name) in removed),
                        details={"removedValues": removed},
                    )
                )
        return steps

    def _diff_relations(self, current: Schema, proposed: Schema, data: TableData) -> list[MigrationStep]:
        steps: list[MigrationStep] = []
        current_keys = {_relation_key(r) for r in current.relations}
        proposed_keys = {_relation_key(r) for r in proposed.relations}

        for relation in current.relations:
            if _relation_key(relation) not in proposed_keys:
                steps.append(
                    MigrationStep(
                        kind="removeRelation",
                        table=relation.from_table,
                        field=relation.from_field,
                        description=f"Remove relation {relation.label}",
                    )
                )
        for relation in proposed.relations:
            if _relation_key(relation) in current_keys:
                continue
            orphans = 0
            if proposed.get_table(relation.from_table) and proposed.get_table(relation.to_table):
                orphans = len(self.integrity_validator.check_foreign_keys(relation, data))
            steps.append(
                MigrationStep(
                    kind="addRelation",
                    table=relation.from_table,
                    field=relation.from_field,
                    description=f"Add relation {relation.label}",
                    affected_records=orphans,
                    details={"cardinality": relation.cardinality.value},
                )
            )
        return steps

    def _risk_level(self, steps: list[MigrationStep], impact: list[ValidationAlert]) -> str:
        if any(s.is_destructive and s.affected_records > 0 for s in steps):
            return "high"
        if any(a.severity == Severity.ERROR for a in impact):
            return "high"
        if any(s.affected_records > 0 for s in steps) or impact:
            return "medium"
        return "low"

    def _generate_recommendations(self, steps: list[MigrationStep], risk_level: str) -> list[str]:
        """Generate actionable recommendations."""
        recommendations = []

        if risk_level == "high":
            recommendations.append("⚠️ High-risk change detected. Back up the affected tables first.")

        for step in steps:
            if step.affected_records == 0:
                continue
            target = f"{step.table}.{step.field}" if step.field else step.table
            if step.kind in ("makeRequired", "addField") and not step.details.get("hasDefault"):
                recommendations.append(
                    f"💡 Declare a default for '{target}' or fill {step.affected_records} record(s) first."
                )
            elif step.kind == "changeType":
                recommendations.append(
                    f"💡 Clean {step.affected_records} value(s) of '{target}' that cannot be converted "
                    f"to {step.details['to']}."
                )
            elif step.kind == "narrowEnum":
                recommendations.append(
                    f"💡 Map {step.affected_records} record(s) of '{target}' to a remaining enum value."
                )
            elif step.kind == "addRelation":
                recommendations.append(
                    f"💡 Fix {step.affected_records} orphan reference(s) in '{target}' before adding the relation."
                )

        if not recommendations:
            recommendations.append("✅ Low-risk change. Safe to apply.")

        return recommendations

    def _generate_warnings(self, steps: list[MigrationStep], impact: list[ValidationAlert]) -> list[str]:
        """Generate warnings for potential issues."""
        warnings = []

        for step in steps:
            if step.is_destructive and step.affected_records > 0:
                target = f"{step.table}.{step.field}" if step.field else step.table
                warnings.append(f"🚨 Removing '{target}' discards data of {step.affected_records} record(s).")

        if any(s.kind == "changeType" for s in steps):
            warnings.append("⚠️ Type changes may cause data loss or conversion errors. Validate all data first.")

        errors = [a for a in impact if a.severity == Severity.ERROR]
        if errors:
            warnings.append(f"⚠️ The proposed schema leaves {len(errors)} blocking impact alert(s) on existing data.")

        return warnings
