"""Internal JSON helper functions not exposed in public API."""

import json
from typing import Dict, Optional, cast

from leanstore.json_helpers import JSONValue
from leanstore.types import MalformedDataError


def dumps_compact(data: JSONValue) -> str:
    """Serialize data to compact JSON for query-string parameters.

    Uses minimal separators and keeps key insertion order, so the output
    mirrors the order in which constraints were added.
    """
    return json.dumps(data, separators=(",", ":"))


def get_str(data: Dict[str, JSONValue], key: str) -> str:
    """Extract string field from parsed JSON dict.

    Validates that the field is actually a string at runtime.

    Raises:
        MalformedDataError: If field is missing or not a string
    """
    value = data.get(key)
    if not isinstance(value, str):
        raise MalformedDataError(
            f"Expected string for field '{key}', got {type(value).__name__}: {value!r}"
        )
    return value


def get_number(data: Dict[str, JSONValue], key: str) -> float:
    """Extract numeric field from parsed JSON dict.

    Note: bool is a subclass of int in Python, so we explicitly reject booleans.

    Raises:
        MalformedDataError: If field is missing, not a number, or is a bool
    """
    value = data.get(key)
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        raise MalformedDataError(
            f"Expected number for field '{key}', got {type(value).__name__}: {value!r}"
        )
    return float(value)


def get_optional_str(data: Dict[str, JSONValue], key: str) -> Optional[str]:
    """Extract optional string field from parsed JSON dict."""
    value = data.get(key)
    return cast(Optional[str], value)
