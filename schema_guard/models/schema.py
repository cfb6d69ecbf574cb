"""Pydantic models for catalog schemas: tables, fields and relations."""

from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# Records are open maps keyed by field name and always carry an ``id``.
DataRecord = dict[str, Any]
TableData = dict[str, list[DataRecord]]

RESERVED_ID_FIELD = "id"

Number = Union[int, float]


class FieldType(str, Enum):
    """Supported field types."""

    STRING = "string"
    NUMBER = "number"
    INTEGER = "integer"
    BOOLEAN = "boolean"
    DATE = "date"
    DATETIME = "datetime"
    ENUM = "enum"
    JSON = "json"


FIELD_TYPE_ALIASES: dict[str, FieldType] = {
    "text": FieldType.STRING,
    "varchar": FieldType.STRING,
    "char": FieldType.STRING,
    "str": FieldType.STRING,
    "int": FieldType.INTEGER,
    "bigint": FieldType.INTEGER,
    "float": FieldType.NUMBER,
    "double": FieldType.NUMBER,
    "decimal": FieldType.NUMBER,
    "bool": FieldType.BOOLEAN,
    "timestamp": FieldType.DATETIME,
    "enumeration": FieldType.ENUM,
    "object": FieldType.JSON,
    "array": FieldType.JSON,
}

# Types whose values are stored as something other than free text
NON_TEXT_TYPES = frozenset(
    {
        FieldType.NUMBER,
        FieldType.INTEGER,
        FieldType.BOOLEAN,
        FieldType.DATE,
        FieldType.DATETIME,
        FieldType.JSON,
    }
)


def normalize_field_type(value: Any) -> Any:
    """Map a declared type name (or one of its aliases) onto FieldType."""
    if isinstance(value, FieldType) or not isinstance(value, str):
        return value
    lowered = value.strip().lower()
    if lowered in FIELD_TYPE_ALIASES:
        return FIELD_TYPE_ALIASES[lowered]
    return lowered


class Cardinality(str, Enum):
    """Declared multiplicity of a relation."""

    ONE_TO_ONE = "1-1"
    ONE_TO_MANY = "1-n"
    MANY_TO_ONE = "n-1"
    MANY_TO_MANY = "n-n"


class ReferentialAction(str, Enum):
    """Referential action applied on delete/update of a parent row."""

    RESTRICT = "restrict"
    CASCADE = "cascade"
    SET_NULL = "setNull"
    NO_ACTION = "noAction"


class CatalogModel(BaseModel):
    """Base model: camelCase aliases, tolerant of unknown keys."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    def to_document(self) -> dict[str, Any]:
        """Dump to a JSON-compatible dict using wire (camelCase) names."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class FieldDefinition(CatalogModel):
    """Definition of one field of a table."""

    name: str = Field(..., description="Field name, unique within its table")
    type: FieldType = Field(..., description="Declared field type")
    label: Optional[str] = None
    description: Optional[str] = None
    required: bool = False
    unique: bool = False
    default: Any = None
    regex: Optional[str] = Field(None, description="Pattern for text fields")
    min: Optional[Number] = Field(None, description="Numeric minimum or minimum length")
    max: Optional[Number] = Field(None, description="Numeric maximum or maximum length")
    enum_values: Optional[list[str]] = Field(None, alias="enumValues")
    sensitivity: Optional[str] = None
    owner: Optional[str] = None
    source: Optional[str] = None
    tags: Optional[list[str]] = None

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, value: Any) -> Any:
        return normalize_field_type(value)

    @property
    def has_default(self) -> bool:
        return self.default is not None


class IndexDefinition(CatalogModel):
    """Secondary index declared on a table."""

    name: str
    fields: list[str]
    unique: bool = False


class TableDefinition(CatalogModel):
    """Definition of one table."""

    name: str = Field(..., description="Table name, unique within the schema")
    label: Optional[str] = None
    description: Optional[str] = None
    fields: list[FieldDefinition] = Field(default_factory=list)
    primary_key: list[str] = Field(
        default_factory=lambda: [RESERVED_ID_FIELD],
        alias="primaryKey",
        description="One or more field names",
    )
    indexes: Optional[list[IndexDefinition]] = None
    sensitivity: Optional[str] = None
    owner: Optional[str] = None
    source: Optional[str] = None
    status: Optional[str] = None
    tags: Optional[list[str]] = None

    @field_validator("primary_key", mode="before")
    @classmethod
    def _normalize_primary_key(cls, value: Union[str, list[str], None]) -> list[str]:
        if value is None or value == "" or value == []:
            return [RESERVED_ID_FIELD]
        if isinstance(value, str):
            return [value]
        return value

    @property
    def field_names(self) -> list[str]:
        return [f.name for f in self.fields]

    @property
    def primary_key_fields(self) -> list[Optional[FieldDefinition]]:
        """Declarations of the key fields (None for the implied ``id``)."""
        return [self.get_field(name) for name in self.primary_key]

    def get_field(self, name: str) -> Optional[FieldDefinition]:
        """Get a field definition by name."""
        for field in self.fields:
            if field.name == name:
                return field
        return None

    def declares(self, name: str) -> bool:
        """Check whether a field is declared (``id`` is always implied)."""
        return name == RESERVED_ID_FIELD or self.get_field(name) is not None


class RelationDefinition(CatalogModel):
    """Foreign-key relation ``fromTable.fromField -> toTable.toField``."""

    id: Optional[str] = None
    name: Optional[str] = None
    from_table: str = Field(..., alias="fromTable")
    from_field: str = Field(..., alias="fromField")
    to_table: str = Field(..., alias="toTable")
    to_field: str = Field(..., alias="toField")
    cardinality: Cardinality = Cardinality.MANY_TO_ONE
    on_delete: Optional[ReferentialAction] = Field(None, alias="onDelete")
    on_update: Optional[ReferentialAction] = Field(None, alias="onUpdate")
    description: Optional[str] = None

    @property
    def label(self) -> str:
        return f"{self.from_table}.{self.from_field} -> {self.to_table}.{self.to_field}"


class Schema(CatalogModel):
    """Declarative description of tables, fields and relations."""

    version: str = "1.0.0"
    updated_at: Optional[str] = Field(None, alias="updatedAt")
    tables: list[TableDefinition] = Field(default_factory=list)
    relations: list[RelationDefinition] = Field(default_factory=list)

    @model_validator(mode="after")
    def _assign_relation_ids(self) -> "Schema":
        for index, relation in enumerate(self.relations):
            if not relation.id:
                relation.id = f"rel_{index}"
        return self

    @property
    def table_names(self) -> list[str]:
        return [t.name for t in self.tables]

    def get_table(self, name: str) -> Optional[TableDefinition]:
        """Get a table definition by name (first match)."""
        for table in self.tables:
            if table.name == name:
                return table
        return None

    def fingerprint(self) -> str:
        """Deterministic fingerprint of the normalised schema document."""
        from schema_guard.cache import schema_fingerprint

        return schema_fingerprint(self.to_document())
