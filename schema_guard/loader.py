"""Reading and writing schema, data and rules documents.

The engine performs no I/O; this module is used by the CLI and by callers
that keep their documents on disk.
"""

from pathlib import Path
from typing import Any, Union

import orjson
import yaml

from schema_guard.exceptions import DocumentLoadError

JSON_SUFFIXES = {".json"}
YAML_SUFFIXES = {".yaml", ".yml"}

# Integer range orjson can serialise natively
ORJSON_MIN_INT = -(2**63)
ORJSON_MAX_INT = 2**64 - 1


def _widen_integers(value: Any, tag: bool) -> Any:
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        if ORJSON_MIN_INT <= value <= ORJSON_MAX_INT:
            return value
        return {"$int": str(value)} if tag else str(value)
    if isinstance(value, dict):
        return {
            (str(k) if isinstance(k, int) and not isinstance(k, bool) else k): _widen_integers(v, tag)
            for k, v in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [_widen_integers(v, tag) for v in value]
    return value


def dumps_json(value: Any, option: int = 0, tag_big_ints: bool = False) -> bytes:
    """Serialise with orjson, tolerating integers outside its 64-bit range.

    Such integers are written as decimal strings, or as ``{"$int": "..."}``
    when ``tag_big_ints`` is set so that they never equal a plain string.
    """
    try:
        return orjson.dumps(value, option=option, default=str)
    except orjson.JSONEncodeError:
        return orjson.dumps(_widen_integers(value, tag_big_ints), option=option, default=str)


def load_document(file_path: Union[str, Path]) -> Any:
    """Load a JSON or YAML document, chosen by file suffix.

    Raises:
        DocumentLoadError: If the file is missing, has an unknown suffix or
            does not parse
    """
    path = Path(file_path)
    if not path.exists():
        raise DocumentLoadError(f"File not found: {path}", path=str(path))

    suffix = path.suffix.lower()
    try:
        if suffix in JSON_SUFFIXES:
            return orjson.loads(path.read_bytes())
        if suffix in YAML_SUFFIXES:
            return yaml.safe_load(path.read_text(encoding="utf-8"))
    except orjson.JSONDecodeError as e:
        raise DocumentLoadError(f"Invalid JSON in {path}: {e}", path=str(path)) from e
    except yaml.YAMLError as e:
        raise DocumentLoadError(f"Invalid YAML in {path}: {e}", path=str(path)) from e

    raise DocumentLoadError(
        f"Unsupported document format '{suffix}' (expected .json, .yaml or .yml)",
        path=str(path),
    )


def dump_document(document: Any, file_path: Union[str, Path]) -> Path:
    """Write a document as JSON or YAML, chosen by file suffix."""
    path = Path(file_path)
    suffix = path.suffix.lower()
    if suffix in YAML_SUFFIXES:
        path.write_text(
            yaml.dump(document, default_flow_style=False, sort_keys=False, allow_unicode=True),
            encoding="utf-8",
        )
    elif suffix in JSON_SUFFIXES:
        path.write_bytes(dumps_json(document, option=orjson.OPT_INDENT_2))
    else:
        raise DocumentLoadError(
            f"Unsupported document format '{suffix}' (expected .json, .yaml or .yml)",
            path=str(path),
        )
    return path
