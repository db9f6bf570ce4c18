"""JSON helpers for the attributes column."""

import json
from typing import Any


def parse_attributes(raw: str | dict | None) -> dict[str, Any]:
    """Parse a stored attributes value into a dict.

    Returns {} for: None, empty string, invalid JSON, non-dict JSON.
    """
    if raw is None:
        return {}
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, str):
        if not raw:
            return {}
        try:
            parsed = json.loads(raw)
            if isinstance(parsed, dict):
                return parsed
        except (ValueError, TypeError):
            pass
    return {}


def dump_attributes(value: dict[str, Any] | None) -> str:
    """Serialize attributes for storage. Keys are sorted for stable rows."""
    return json.dumps(value or {}, sort_keys=True)
