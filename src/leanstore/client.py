"""LeanStore client implementation."""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from leanstore._internal.json_helpers import dumps_compact
from leanstore.json_helpers import JSONObject, JSONValue
from leanstore.profiler import (
    ClassRegistry,
    ObjectProfiler,
    descendants_to_save,
    validate_circular_reference,
)
from leanstore.query import Constraint, Query
from leanstore.record import Record
from leanstore.transport import Method, Request, Response, Transport, error_from_json
from leanstore.types import (
    Config,
    InvalidTypeError,
    NotFoundError,
    ReadOnlyError,
)
from leanstore.values import Value

logger = logging.getLogger(__name__)


@dataclass
class CQLResult:
    """Result of a CQL statement: objects for a select, count for a count."""

    objects: List[Record] = field(default_factory=list)
    count: int = 0


def endpoint(class_name: str) -> str:
    """Relative endpoint of a class."""
    return f"classes/{class_name}"


def object_endpoint(record: Record) -> str:
    """Relative endpoint of a persisted record.

    Raises:
        NotFoundError: If the record has no object ID
    """
    if record.object_id is None:
        raise NotFoundError("Object ID not found.", {"className": record.class_name})
    return f"{endpoint(record.class_name)}/{record.object_id}"


class StorageClient:
    """Main client interface - record persistence and queries over a transport."""

    def __init__(
        self,
        transport: Transport,
        config: Optional[Config] = None,
        registry: Optional[ClassRegistry] = None,
    ) -> None:
        """Initialize client with a transport and configuration."""
        self.transport = transport
        self.config = config if config is not None else Config()
        self.profiler = ObjectProfiler(registry)

    @property
    def registry(self) -> ClassRegistry:
        return self.profiler.registry

    def _request(
        self, method: Method, path: str, parameters: Optional[JSONObject] = None
    ) -> Response:
        """Send a request and raise the failure it reports, if any.

        Raises:
            RemoteFailure: If the transport or the backend reports an error
        """
        logger.debug(f"{method.value} {path}")
        response = self.transport.send(Request(method, path, parameters))
        failure = response.failure
        if failure is not None:
            logger.warning(f"{method.value} {path} failed: {failure}")
            raise failure
        return response

    def _check_writable(self, operation: str) -> None:
        if self.config.read_only:
            raise ReadOnlyError(f"Cannot call {operation}() in read-only mode")

    # -- Records ------------------------------------------------------------

    def save(self, record: Record) -> None:
        """Save record and every descendant record with pending changes.

        The record graph is validated first; a cycle aborts the save before
        any request is sent. Descendants are saved before the records that
        reference them, so they can be embedded as pointers.

        On failure the operation queue of the failed record is kept, so the
        next save retries it wholesale. In-memory fields are not rolled back.

        Raises:
            ReadOnlyError: In read-only mode
            CircularReferenceError: If the record graph contains a cycle
            InvalidTypeError: If a field references a record that cannot be saved first
            RemoteFailure: If a save request fails
        """
        self._check_writable("save")
        validate_circular_reference(record)

        for each in descendants_to_save(record):
            self._save_one(each)

    def _save_one(self, record: Record) -> None:
        if not record.has_pending_changes:
            logger.debug(f"Nothing to save for {record!r}")
            return

        body = self.profiler.serialize(record)

        if record.object_id is None:
            response = self._request(Method.POST, endpoint(record.class_name), body)
        else:
            path = object_endpoint(record)
            if self.config.fetch_when_save:
                path += "?fetchWhenSave=true"
            response = self._request(Method.PUT, path, body)

        if isinstance(response.value, dict):
            self.profiler.update_record(record, response.value)
        record.reset_operations()
        logger.info(f"Saved {record.class_name} {record.object_id}")

    def fetch(self, record: Record) -> None:
        """Fetch record from the backend, replacing pending operations.

        Raises:
            NotFoundError: If the record has no object ID or does not exist
            RemoteFailure: If the request fails
        """
        response = self._request(Method.GET, object_endpoint(record))
        if not isinstance(response.value, dict) or not response.value:
            raise NotFoundError("Object not found.", {"objectId": record.object_id})
        self._apply_fetched(record, response.value)

    def fetch_all(self, records: Sequence[Record]) -> None:
        """Fetch a batch of records in one request.

        Nothing is applied unless every record is fetched successfully.
        """
        items = self._batch(Method.GET, records)
        payloads: List[Dict[str, JSONValue]] = []
        for record, item in zip(records, items):
            if not isinstance(item, dict) or not item:
                raise NotFoundError("Object not found.", {"objectId": record.object_id})
            payloads.append(item)

        for record, payload in zip(records, payloads):
            self._apply_fetched(record, payload)

    def _apply_fetched(self, record: Record, payload: Dict[str, JSONValue]) -> None:
        # Unsaved local fields the payload lacks do not exist on the backend
        record.discard_changes()
        self.profiler.update_record(record, payload)

    def delete(self, record: Record) -> None:
        """Delete record from the backend.

        Raises:
            ReadOnlyError: In read-only mode
            NotFoundError: If the record has no object ID
            RemoteFailure: If the request fails
        """
        self._check_writable("delete")
        self._request(Method.DELETE, object_endpoint(record))
        logger.info(f"Deleted {record.class_name} {record.object_id}")

    def delete_all(self, records: Sequence[Record]) -> None:
        """Delete a batch of records in one request."""
        self._check_writable("delete_all")
        self._batch(Method.DELETE, records)
        logger.info(f"Deleted {len(records)} objects")

    def _batch(self, method: Method, records: Sequence[Record]) -> List[JSONValue]:
        """Run one request per record through the batch endpoint.

        Returns:
            The 'success' payload of each request, in order

        Raises:
            RemoteFailure: If the batch or any of its requests fails
        """
        requests: List[JSONValue] = [
            {"method": method.value, "path": f"/{self.config.api_version}/{object_endpoint(r)}"}
            for r in records
        ]
        response = self._request(Method.POST, "batch", {"requests": requests})

        items = response.value if isinstance(response.value, list) else []
        if len(items) != len(records):
            raise InvalidTypeError("Invalid batch response.", {"expected": len(records)})

        successes: List[JSONValue] = []
        for item in items:
            if not isinstance(item, dict):
                raise InvalidTypeError("Invalid batch response item.")
            failure = error_from_json(item.get("error"))
            if failure is not None:
                raise failure
            successes.append(item.get("success"))
        return successes

    # -- Queries ------------------------------------------------------------

    def find(self, query: Query) -> List[Record]:
        """Query objects."""
        response = self._request(Method.GET, endpoint(query.class_name), query.parameters())
        class_name = response.get("className")
        if not isinstance(class_name, str):
            class_name = query.class_name
        return [
            self.profiler.object_from_dict(item, class_name)
            for item in response.results
            if isinstance(item, dict)
        ]

    def get_first(self, query: Query) -> Record:
        """Get first object of query.

        All constraints other than limit take effect.

        Raises:
            NotFoundError: If no object matches
        """
        first = query.copy()
        first.limit = 1
        objects = self.find(first)
        if not objects:
            raise NotFoundError("Object not found.", {"className": query.class_name})
        return objects[0]

    def get(self, query: Query, object_id: str) -> Record:
        """Get object by object ID, within the constraints of query."""
        by_id = query.copy()
        by_id.where_key("objectId", Constraint.equal_to(object_id))
        return self.get_first(by_id)

    def count(self, query: Query) -> int:
        """Count objects matching query."""
        parameters = query.parameters()
        parameters["count"] = 1
        parameters["limit"] = 0
        response = self._request(Method.GET, endpoint(query.class_name), parameters)
        return response.count

    # -- CQL and cloud functions --------------------------------------------

    def execute_cql(self, cql: str, parameters: Sequence[Any] = ()) -> CQLResult:
        """Execute a CQL statement.

        Args:
            cql: The CQL statement, with '?' placeholders
            parameters: Values for the placeholders

        Returns:
            CQLResult with the selected objects, or the count of a count query
        """
        request: JSONObject = {"cql": cql}
        if parameters:
            request["pvalues"] = dumps_compact(self.profiler.wire_value(list(parameters)))

        response = self._request(Method.GET, "cloudQuery", request)
        class_name = response.get("className")
        if not isinstance(class_name, str):
            class_name = Record.object_class_name()

        objects = [
            self.profiler.object_from_dict(item, class_name)
            for item in response.results
            if isinstance(item, dict)
        ]
        return CQLResult(objects=objects, count=response.count)

    def run_function(self, name: str, parameters: Optional[Dict[str, Any]] = None) -> JSONValue:
        """Call a cloud function and return its raw JSON result."""
        response = self._request(Method.POST, f"functions/{name}", self._encode(parameters))
        return self._function_result(response)

    def rpc_function(self, name: str, parameters: Optional[Dict[str, Any]] = None) -> Value:
        """Call a cloud function by RPC, decoding typed results into values."""
        response = self._request(Method.POST, f"call/{name}", self._encode(parameters))
        return self.profiler.decode(self._function_result(response))

    def _encode(self, parameters: Optional[Dict[str, Any]]) -> Optional[JSONObject]:
        if parameters is None:
            return None
        return {str(key): self.profiler.wire_value(value) for key, value in parameters.items()}

    @staticmethod
    def _function_result(response: Response) -> JSONValue:
        if not isinstance(response.value, dict) or "result" not in response.value:
            raise InvalidTypeError("invalid response data type.")
        return response.value["result"]

