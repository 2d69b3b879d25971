"""Transport contract between LeanStore and the HTTP layer.

LeanStore never performs I/O itself. It hands a Request (method, relative
endpoint path, headers, parameters) to a caller-supplied Transport and
interprets the parsed JSON of the Response. URL assembly, authentication
headers, TLS and retries belong to the transport.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol

from leanstore.json_helpers import JSONObject, JSONValue
from leanstore.types import RemoteFailure


class Method(Enum):
    """HTTP method. GET parameters go to the query string, others to the body."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"


@dataclass
class Request:
    method: Method
    path: str
    parameters: Optional[JSONObject] = None
    headers: Dict[str, str] = field(default_factory=dict)


def error_from_json(value: JSONValue) -> Optional[RemoteFailure]:
    """Extract a business error from a response body.

    The backend reports errors as {"code": <int>, "error": <message>}.
    """
    if not isinstance(value, dict):
        return None
    code = value.get("code")
    message = value.get("error")
    if not isinstance(code, int) or isinstance(code, bool) or not isinstance(message, str):
        return None
    return RemoteFailure(code, message)


@dataclass
class Response:
    """Parsed response of a request.

    error is set by the transport for network failures; business errors are
    read from the body.
    """

    value: JSONValue = None
    error: Optional[RemoteFailure] = None

    @property
    def failure(self) -> Optional[RemoteFailure]:
        if self.error is not None:
            return self.error
        return error_from_json(self.value)

    @property
    def is_success(self) -> bool:
        return self.failure is None

    def get(self, key: str) -> Any:
        return self.value.get(key) if isinstance(self.value, dict) else None

    @property
    def results(self) -> List[JSONValue]:
        results = self.get("results")
        return results if isinstance(results, list) else []

    @property
    def count(self) -> int:
        count = self.get("count")
        return count if isinstance(count, int) and not isinstance(count, bool) else 0


class Transport(Protocol):
    """Sends a request and returns its parsed response.

    May be called from a background thread; callers must not mutate a
    record while a save of that record is in flight.
    """

    def send(self, request: Request) -> Response: ...
