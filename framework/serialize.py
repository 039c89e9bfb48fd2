"""Deterministic JSON encoding, document copies, and content fingerprints."""

from __future__ import annotations

import dataclasses
import hashlib
import json
from enum import Enum
from pathlib import Path
from typing import Any, Mapping


def to_serializable(value: Any) -> Any:
    """Convert engine objects into JSON-compatible primitives."""
    if isinstance(value, Enum):
        return to_serializable(value.value)
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, Path):
        return str(value)
    if hasattr(value, "to_dict") and callable(value.to_dict):
        return to_serializable(value.to_dict())
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return fields_to_dict(value)
    if isinstance(value, Mapping):
        return {str(key): to_serializable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [to_serializable(item) for item in value]
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable.")


def fields_to_dict(instance: Any) -> dict[str, Any]:
    """Serialize dataclass fields one by one, honoring nested `to_dict` hooks."""
    return {field.name: to_serializable(getattr(instance, field.name)) for field in dataclasses.fields(instance)}


def json_dumps(value: Any, *, indent: int | None = None) -> str:
    """Serialize a supported value to a stable JSON string."""
    separators = (",", ":") if indent is None else None
    return json.dumps(
        to_serializable(value),
        sort_keys=True,
        ensure_ascii=True,
        separators=separators,
        indent=indent,
    )


def copy_document(value: Any) -> Any:
    """Return a detached deep copy of a JSON-compatible document."""
    if value is None:
        return None
    return json.loads(json.dumps(value))


def digest(value: Any) -> str:
    """Return the SHA256 hex digest of the stable JSON encoding."""
    return hashlib.sha256(json_dumps(value).encode("utf-8")).hexdigest()


def fingerprint(*parts: Any, length: int = 24) -> str:
    """Return a short content key for a tuple of values.

    Used to key one concluded game so duplicate triggers collapse onto
    the same record.
    """
    return digest(list(parts))[:length]
