"""
Payload helpers — JSON-safe conversion and short previews for log lines.
"""

from __future__ import annotations

import json
from dataclasses import asdict, is_dataclass
from typing import Any

import config


def to_jsonable(value: Any) -> Any:
    """Convert an arbitrary payload into something json.dumps accepts.

    Dataclasses become dicts, datetimes become ISO strings, anything else
    unknown falls back to str().
    """
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if is_dataclass(value) and not isinstance(value, type):
        return to_jsonable(asdict(value))
    if isinstance(value, dict):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [to_jsonable(v) for v in value]
    if hasattr(value, "isoformat"):
        return value.isoformat()
    if hasattr(value, "value"):  # enums
        return to_jsonable(value.value)
    return str(value)


def dumps(value: Any) -> str | None:
    """Serialize a payload for a JSONB column (None stays NULL)."""
    if value is None:
        return None
    return json.dumps(to_jsonable(value))


def preview(value: Any, limit: int | None = None) -> str:
    """Short single-line rendering of a payload for local logging."""
    limit = limit or config.LOG_PREVIEW_CHARS
    if value is None:
        return "none"
    try:
        text = json.dumps(to_jsonable(value))
    except (TypeError, ValueError):
        text = repr(value)
    return text[:limit]
