"""Centralized canonical JSON serialization.

This module provides a single function for byte-stable JSON output used
by the CLI and by tests that compare rendered results.

Loaded documents may hold values JSON does not know (paths, dates,
extension scalars, records, non-string keys); ``to_jsonable`` converts
them first.
"""

import datetime
import json
from pathlib import Path
from typing import Any

from pydantic import BaseModel

from yproj._internal.io.yaml_io import ExtScalar
from yproj.kernel.tree_builder import StructRecord


def to_jsonable(obj: Any) -> Any:
    """Convert ``obj`` into plain JSON types. Mapping keys become strings."""
    if isinstance(obj, BaseModel):
        return obj.model_dump(mode="json")
    if isinstance(obj, StructRecord):
        return {"type": obj.type_name, "values": to_jsonable(obj.values)}
    if isinstance(obj, ExtScalar):
        return f"{obj.tag} {obj.value}"
    if isinstance(obj, Path):
        return str(obj)
    if isinstance(obj, (datetime.date, datetime.datetime)):
        return obj.isoformat()
    if isinstance(obj, bytes):
        return obj.decode("utf-8", errors="replace")
    if isinstance(obj, dict):
        return {_key(k): to_jsonable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [to_jsonable(v) for v in obj]
    if isinstance(obj, (set, frozenset)):
        return sorted(to_jsonable(v) for v in obj)
    return obj


def _key(key: Any) -> str:
    if isinstance(key, str):
        return key
    if isinstance(key, ExtScalar):
        return f"{key.tag} {key.value}"
    return json.dumps(to_jsonable(key), sort_keys=True)


def canonical_dumps(obj: Any) -> str:
    """
    Canonical JSON serialization for byte-stable output.

    Rules:
    - UTF-8 encoding
    - Sorted keys
    - Stable separators (",", ":")
    - Deterministic list ordering (lists must already be sorted before calling)
    - No trailing whitespace

    Args:
        obj: Python object to serialize

    Returns:
        Canonical JSON string (UTF-8 encoded)
    """
    return json.dumps(
        to_jsonable(obj),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False  # UTF-8 encoding
    )
