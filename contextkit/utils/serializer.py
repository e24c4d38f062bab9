"""JSON serialization utilities for token counting and prompt rendering."""

import json
from typing import Any

from pydantic import BaseModel


def is_json_serializable(obj: Any) -> bool:
    """Check if an object is JSON serializable by attempting json.dumps.

    Args:
        obj: Object to check

    Returns:
        True if the object is JSON serializable, False otherwise
    """
    try:
        json.dumps(obj)
        return True
    except (TypeError, ValueError):
        return False


def serialize(obj: Any) -> Any:
    """Serialize an object to a JSON-serializable value.

    Pydantic models are dumped with ``model_dump(mode="json")``. Anything else
    that json.dumps cannot handle falls back to ``safe_serialize``.

    Args:
        obj: Object to serialize

    Returns:
        JSON-serializable value (dict, list, str, int, float, bool, None)
    """
    if isinstance(obj, BaseModel):
        return obj.model_dump(mode="json")
    if is_json_serializable(obj):
        return obj
    return safe_serialize(obj)


def json_serialize(obj: Any) -> str:
    """Serialize an object to a compact JSON string.

    Uses no whitespace between separators so counts match what a JavaScript
    ``JSON.stringify`` of the same payload would produce.
    """
    return json.dumps(
        serialize(obj),
        separators=(",", ":"),
        ensure_ascii=False,
        default=safe_serialize,
    )


def safe_serialize(value):
    """Serialize with fallback for non-serializable values."""
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, (set, frozenset, tuple)):
        return [safe_serialize(v) for v in value]
    if isinstance(value, dict):
        return {str(k): safe_serialize(v) for k, v in value.items()}
    if isinstance(value, list):
        return [safe_serialize(v) for v in value]
    if is_json_serializable(value):
        return value
    if hasattr(value, "isoformat"):
        return value.isoformat()
    if hasattr(value, "__name__"):
        return f"<{value.__name__}>"
    return f"<{type(value).__name__}>"
