"""Internal type helpers not exposed in public API."""

import re
import uuid
from datetime import datetime, timezone

from leanstore.types import InternalId, MalformedDataError

# Field names must start with a lowercase letter or a digit
KEY_PATTERN = re.compile(r"^[a-z0-9][a-z0-9_]*$")

# Fields maintained by the backend, never sent in a save body
RESERVED_KEYS = frozenset(["objectId", "createdAt", "updatedAt"])


# Factory functions for branded types


def internal_id_new() -> InternalId:
    """Return a fresh process-local identity token.

    Returns:
        32 lowercase hex characters
    """
    return InternalId(uuid.uuid4().hex)


def validate_key(key: str) -> None:
    """Validate a field name before it is mutated.

    Args:
        key: Field name chosen by the caller

    Raises:
        MalformedDataError: If key is not well-formatted
    """
    if not KEY_PATTERN.match(key):
        raise MalformedDataError("Key is not well-formatted.", {"key": key})


def date_to_iso(value: datetime) -> str:
    """Format datetime as the wire ISO string.

    Naive datetimes are taken as UTC.

    Returns:
        ISO 8601 string with millisecond precision, e.g. '2016-04-19T06:11:27.123Z'
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    utc = value.astimezone(timezone.utc)
    return utc.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc.microsecond // 1000:03d}Z"


def date_from_iso(s: str) -> datetime:
    """Parse wire ISO string into an aware UTC datetime.

    Args:
        s: ISO 8601 string from JSON

    Raises:
        MalformedDataError: If the string is not a valid ISO 8601 instant
    """
    text = s[:-1] + "+00:00" if s.endswith("Z") else s
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as e:
        raise MalformedDataError(f"Invalid ISO date: {s!r}") from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)
