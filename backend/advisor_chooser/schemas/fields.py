"""
Coercion helpers for values that arrive as strings from multipart forms.
"""
import json
from typing import Any, List, Optional

TRUE_STRINGS = {"true", "1", "yes", "on"}
FALSE_STRINGS = {"false", "0", "no", "off", ""}


def coerce_bool(value: Any) -> Any:
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in TRUE_STRINGS:
            return True
        if lowered in FALSE_STRINGS:
            return False
    return value


def coerce_optional_number(value: Any) -> Any:
    """Empty strings and the literal "null" mean no value."""
    if isinstance(value, str):
        stripped = value.strip()
        if stripped == "" or stripped.lower() in ("null", "undefined"):
            return None
        return stripped
    return value


def coerce_string_list(value: Any) -> Optional[List[str]]:
    """
    Accept a JSON-encoded array, a comma separated string, or a real list.

    Blank entries are dropped and surrounding whitespace trimmed.
    """
    if value is None:
        return None
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            return []
        if stripped.startswith("["):
            try:
                value = json.loads(stripped)
            except json.JSONDecodeError as e:
                raise ValueError(f"Invalid JSON array: {e.msg}") from e
        else:
            value = stripped.split(",")
    if not isinstance(value, (list, tuple)):
        raise ValueError("Expected a list of strings")
    return [str(item).strip() for item in value if str(item).strip()]
