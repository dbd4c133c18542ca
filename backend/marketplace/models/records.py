"""
Helpers for mapping raw backend rows into domain models.

Rows arrive as plain mappings with snake_case keys (ORM column dicts,
realtime payloads). Required keys are checked here so a malformed row
fails at the boundary instead of deep inside a service.
"""

from collections.abc import Mapping
from typing import Any

from marketplace.core.exceptions import ValidationError

_MISSING = object()


def require(record: Mapping[str, Any], key: str, kind: str) -> Any:
    """Return record[key] or raise ValidationError if absent or None."""
    value = record.get(key, _MISSING)
    if value is _MISSING or value is None:
        raise ValidationError(
            f"{kind} record is missing required field '{key}'",
            details={"field": key, "record": dict(record)},
        )
    return value


def optional(record: Mapping[str, Any], key: str, default: Any = None) -> Any:
    """Return record[key], falling back to default when absent or None."""
    value = record.get(key)
    return default if value is None else value
