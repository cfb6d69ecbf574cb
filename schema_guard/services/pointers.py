"""Location pointers used by alerts."""

from typing import Any, Optional

from schema_guard.models.schema import RESERVED_ID_FIELD


def record_key(record: Any, index: int) -> Any:
    """Identify a record by its id, or by its position when it has none."""
    if isinstance(record, dict):
        record_id = record.get(RESERVED_ID_FIELD)
        if record_id is not None and record_id != "":
            return record_id
    return f"#{index}"


def data_pointer(table: str, record_id: Any = None, field: Optional[str] = None) -> str:
    """Build a ``/data/<table>/<recordId>/<field>`` pointer."""
    parts = ["", "data", table]
    if record_id is not None:
        parts.append(str(record_id))
    if field is not None:
        parts.append(field)
    return "/".join(parts)


def schema_pointer(*parts: Any) -> str:
    """Build a ``/schema/...`` pointer."""
    return "/".join(["", "schema", *(str(p) for p in parts)])
