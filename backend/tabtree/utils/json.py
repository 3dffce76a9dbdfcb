"""JSON helpers for documents stored as TEXT columns."""

import json
from typing import Any


def parse_json_field(raw: str | dict | None) -> dict[str, Any] | None:
    """Parse a stored JSON object, returning None on failure or empty.

    Returns None for: None, empty string, empty dict, invalid JSON, non-dict JSON.
    """
    if raw is None:
        return None
    if isinstance(raw, dict):
        return raw if raw else None
    if isinstance(raw, str):
        if not raw:
            return None
        try:
            parsed = json.loads(raw)
            if isinstance(parsed, dict) and parsed:
                return parsed
        except (ValueError, TypeError):
            pass
    return None


def json_str(value: dict | list) -> str:
    """Serialize a document compactly for storage."""
    return json.dumps(value, separators=(",", ":"))
