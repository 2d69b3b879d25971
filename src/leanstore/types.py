"""Type definitions for LeanStore."""

from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass
class Config:
    """Client configuration."""

    # REST API version, used to build batch sub-request paths
    api_version: str = "1.1"

    # Optional: read-only mode (disables save and delete)
    read_only: bool = False  # If True, never send write requests

    # Optional: ask the backend to return every field on update
    fetch_when_save: bool = False


# Branded types
# These are nominal types to prevent mixing identifiers from different contexts


class ObjectId(str):
    """Server-assigned object identifier."""

    pass


class InternalId(str):
    """Process-local identity token of a record.

    Assigned at construction and never transmitted to the backend.
    """

    pass


class LeanStoreError(Exception):
    """Base class of all errors raised by LeanStore."""

    def __init__(self, reason: str, user_info: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(reason)
        self.reason = reason
        self.user_info = user_info or {}


class InvalidTypeError(LeanStoreError):
    """Raised when an operation is illegal for a value variant.

    Also raised for illegal operation merges and for referencing a record
    without object ID as a pointer.
    """

    pass


class MalformedDataError(LeanStoreError):
    """Raised when a key or a wire payload is not well-formed."""

    pass


class CircularReferenceError(LeanStoreError):
    """Raised when a record graph contains a cycle."""

    pass


class InconsistencyError(LeanStoreError):
    """Raised when combining queries of different classes."""

    pass


class NotFoundError(LeanStoreError):
    """Raised when a query yields no object."""

    pass


class ReadOnlyError(LeanStoreError):
    """Raised when attempting to write in read-only mode."""

    pass


class RemoteFailure(LeanStoreError):
    """Raised for an error reported by the transport or the backend.

    Carries the backend error code verbatim. Never retried by LeanStore.
    """

    def __init__(
        self, code: int, reason: str, user_info: Optional[Dict[str, Any]] = None
    ) -> None:
        super().__init__(reason, user_info)
        self.code = code

    def __str__(self) -> str:
        return f"[{self.code}] {self.reason}"
