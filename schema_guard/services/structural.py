"""Level A: structural validation of the schema document and of every record."""

from dataclasses import dataclass, field
from typing import Any, Optional

from schema_guard.cache import CompiledSchemaCache, schema_fingerprint
from schema_guard.config import Settings, get_settings
from schema_guard.logging_config import get_logger
from schema_guard.models.alert import Severity, ValidationAlert
from schema_guard.models.schema import (
    RESERVED_ID_FIELD,
    FieldDefinition,
    Schema,
    TableData,
)
from schema_guard.services.field_checker import (
    INVALID_DATA_STRUCTURE,
    FieldChecker,
    compile_pattern,
    is_unset,
)
from schema_guard.services.meta_schema import build_meta_validator
from schema_guard.services.pointers import data_pointer, record_key, schema_pointer

logger = get_logger(__name__)

INVALID_SCHEMA_STRUCTURE = "INVALID_SCHEMA_STRUCTURE"
DUPLICATE_TABLE_NAME = "DUPLICATE_TABLE_NAME"
DUPLICATE_FIELD_NAME = "DUPLICATE_FIELD_NAME"
PRIMARY_KEY_UNRESOLVED = "PRIMARY_KEY_UNRESOLVED"
RELATION_TABLE_UNKNOWN = "RELATION_TABLE_UNKNOWN"
RELATION_FIELD_UNKNOWN = "RELATION_FIELD_UNKNOWN"


@dataclass(frozen=True)
class TableContract:
    """Structural contract of one table, derived from its declaration."""

    table: str
    fields: tuple[FieldDefinition, ...]
    id_in_primary_key: bool


@dataclass(frozen=True)
class CompiledSchema:
    """Schema-level alerts plus per-table contracts for one schema version."""

    fingerprint: str
    contracts: dict[str, TableContract]
    schema_alerts: tuple[ValidationAlert, ...] = field(default_factory=tuple)


def _schema_alert(code: str, location: str, message: str, **context: Any) -> ValidationAlert:
    return ValidationAlert(
        severity=Severity.ERROR,
        code=code,
        location=location,
        message=message,
        context=context,
    )


class StructuralValidator:
    """Validates the schema document, then every record against its table.

    Each instance owns its meta-schema validator and its compiled schema
    cache, so validators used by different callers never share state.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        checker: Optional[FieldChecker] = None,
        cache: Optional[CompiledSchemaCache] = None,
    ):
        self.settings = settings or get_settings()
        self.checker = checker or FieldChecker()
        self.cache = cache if cache is not None else CompiledSchemaCache(
            max_size=self.settings.schema_cache_size,
            enabled=self.settings.schema_cache_enabled,
        )
        self._meta_validator = build_meta_validator()

    def validate(
        self,
        schema: Schema,
        data: TableData,
        document: Optional[dict[str, Any]] = None,
    ) -> list[ValidationAlert]:
        """Run both structural passes.

        Args:
            schema: Parsed schema model
            data: Table name -> records
            document: The schema document as supplied; defaults to the model's dump

        Returns:
            Level A alerts (all severity error)
        """
        compiled = self.compile(schema, document)
        alerts = [a.model_copy(deep=True) for a in compiled.schema_alerts]
        alerts.extend(self.validate_records(compiled, data))

        logger.debug(
            "Structural validation complete",
            fingerprint=compiled.fingerprint,
            schema_alerts=len(compiled.schema_alerts),
            total_alerts=len(alerts),
        )
        return alerts

    def compile(self, schema: Schema, document: Optional[dict[str, Any]] = None) -> CompiledSchema:
        """Get the compiled form of a schema, using the cache when possible."""
        if document is None:
            document = schema.to_document()
        fingerprint = schema_fingerprint(document)
        return self.cache.get_or_compile(
            fingerprint,
            lambda: self._compile(fingerprint, schema, document),
        )

    def _compile(self, fingerprint: str, schema: Schema, document: dict[str, Any]) -> CompiledSchema:
        alerts = self.validate_document(document)
        alerts.extend(self.validate_semantics(schema))

        contracts: dict[str, TableContract] = {}
        for table in schema.tables:
            if table.name in contracts:
                continue
            contracts[table.name] = TableContract(
                table=table.name,
                fields=tuple(table.fields),
                id_in_primary_key=RESERVED_ID_FIELD in table.primary_key,
            )
        return CompiledSchema(
            fingerprint=fingerprint,
            contracts=contracts,
            schema_alerts=tuple(alerts),
        )

    def validate_document(self, document: Any) -> list[ValidationAlert]:
        """Validate the raw document against the meta-schema."""
        alerts: list[ValidationAlert] = []
        errors = sorted(
            self._meta_validator.iter_errors(document),
            key=lambda e: [str(p) for p in e.absolute_path],
        )
        for error in errors:
            path = list(error.absolute_path)
            alerts.append(
                _schema_alert(
                    INVALID_SCHEMA_STRUCTURE,
                    schema_pointer(*path),
                    f"Invalid schema document: {error.message}",
                    keyword=error.validator,
                    path=[str(p) for p in path],
                )
            )
        return alerts

    def validate_semantics(self, schema: Schema) -> list[ValidationAlert]:
        """Checks the meta-schema cannot express: uniqueness and references."""
        alerts: list[ValidationAlert] = []
        seen_tables: set[str] = set()

        for table in schema.tables:
            if table.name in seen_tables:
                alerts.append(
                    _schema_alert(
                        DUPLICATE_TABLE_NAME,
                        schema_pointer("tables", table.name),
                        f"Table name '{table.name}' is declared more than once",
                        table=table.name,
                    )
                )
                continue
            seen_tables.add(table.name)

            seen_fields: set[str] = set()
            for field_def in table.fields:
                location = schema_pointer("tables", table.name, "fields", field_def.name)
                if field_def.name in seen_fields:
                    alerts.append(
                        _schema_alert(
                            DUPLICATE_FIELD_NAME,
                            location,
                            f"Field name '{field_def.name}' is declared more than once in '{table.name}'",
                            table=table.name,
                            field=field_def.name,
                        )
                    )
                    continue
                seen_fields.add(field_def.name)

                if field_def.regex:
                    # Malformed patterns are logged by compile_pattern and skipped at check time
                    compile_pattern(field_def.regex)
                alerts.extend(
                    self.checker.check_default(
                        field_def,
                        location=f"{location}/default",
                        context={"table": table.name},
                    )
                )

            for key in table.primary_key:
                if not table.declares(key):
                    alerts.append(
                        _schema_alert(
                            PRIMARY_KEY_UNRESOLVED,
                            schema_pointer("tables", table.name, "primaryKey"),
                            f"Primary key of '{table.name}' references undeclared field '{key}'",
                            table=table.name,
                            field=key,
                        )
                    )

        for relation in schema.relations:
            location = schema_pointer("relations", relation.id)
            for side, table_name, field_name in (
                ("from", relation.from_table, relation.from_field),
                ("to", relation.to_table, relation.to_field),
            ):
                table = schema.get_table(table_name)
                if table is None:
                    alerts.append(
                        _schema_alert(
                            RELATION_TABLE_UNKNOWN,
                            location,
                            f"Relation {relation.label} references unknown table '{table_name}'",
                            relation=relation.id,
                            side=side,
                            table=table_name,
                        )
                    )
                elif not table.declares(field_name):
                    alerts.append(
                        _schema_alert(
                            RELATION_FIELD_UNKNOWN,
                            location,
                            f"Relation {relation.label} references unknown field '{table_name}.{field_name}'",
                            relation=relation.id,
                            side=side,
                            table=table_name,
                            field=field_name,
                        )
                    )
        return alerts

    def validate_records(self, compiled: CompiledSchema, data: TableData) -> list[ValidationAlert]:
        """Run the field checker over every declared field of every record."""
        alerts: list[ValidationAlert] = []
        for table_name, records in data.items():
            contract = compiled.contracts.get(table_name)
            if contract is None:
                logger.debug("Skipping table unknown to the schema", table=table_name)
                continue
            for index, record in enumerate(records):
                alerts.extend(self._validate_record(contract, record, index))
        return alerts

    def _validate_record(self, contract: TableContract, record: Any, index: int) -> list[ValidationAlert]:
        record_id = record_key(record, index)
        if not isinstance(record, dict):
            return [
                ValidationAlert(
                    severity=Severity.ERROR,
                    code=INVALID_DATA_STRUCTURE,
                    location=data_pointer(contract.table, record_id),
                    message=f"Record {index} of '{contract.table}' is not an object",
                    context={"table": contract.table, "recordId": record_id, "keyword": "type"},
                )
            ]

        alerts: list[ValidationAlert] = []
        # Records keyed by id are covered by PRIMARY_KEY_MISSING in Level B
        if not contract.id_in_primary_key and is_unset(record.get(RESERVED_ID_FIELD)):
            alerts.append(
                ValidationAlert(
                    severity=Severity.ERROR,
                    code=INVALID_DATA_STRUCTURE,
                    location=data_pointer(contract.table, record_id),
                    message=f"Record {index} of '{contract.table}' has no id",
                    suggestion="Give every record a stable id",
                    context={
                        "table": contract.table,
                        "recordId": record_id,
                        "field": RESERVED_ID_FIELD,
                        "keyword": "required",
                    },
                )
            )

        context = {"table": contract.table, "recordId": record_id}
        for field_def in contract.fields:
            if field_def.name not in record:
                continue
            alerts.extend(
                self.checker.check(
                    record[field_def.name],
                    field_def,
                    location=data_pointer(contract.table, record_id, field_def.name),
                    context=context,
                )
            )
        return alerts
