"""Object profiler: mapping between wire documents and values.

The profiler resolves class names through an injected ClassRegistry, decodes
typed wire documents ('__type') into values, builds save bodies for records,
and validates record graphs before they are saved.
"""

import base64
import binascii
from typing import Any, Callable, Dict, Hashable, Iterator, List, Optional, Set, Tuple, Type

from leanstore._internal.json_helpers import get_number, get_optional_str, get_str
from leanstore._internal.types import RESERVED_KEYS, date_from_iso
from leanstore.json_helpers import JSONValue
from leanstore.query import Query
from leanstore.record import Record
from leanstore.types import CircularReferenceError, MalformedDataError
from leanstore.values import Array, Bytes, Date, GeoPoint, Map, Relation, Value, coerce


class ClassRegistry:
    """Registry of record subclasses by remote class name.

    Passed to the profiler explicitly, so separate registries stay isolated.
    """

    def __init__(self) -> None:
        self._classes: Dict[str, Type[Record]] = {}

    def register(self, cls: Type[Record]) -> Type[Record]:
        """Register a record subclass. Usable as a class decorator."""
        self._classes[cls.object_class_name()] = cls
        return cls

    def resolve(self, class_name: str) -> Type[Record]:
        """Return the class registered for class_name, or the generic Record."""
        return self._classes.get(class_name, Record)

    def create(self, class_name: str, object_id: Optional[str] = None) -> Record:
        cls = self.resolve(class_name)
        return cls(class_name=class_name, object_id=object_id)

    def __contains__(self, class_name: str) -> bool:
        return class_name in self._classes


class ObjectProfiler:
    """Bidirectional mapper between wire documents and values."""

    def __init__(self, registry: Optional[ClassRegistry] = None) -> None:
        self.registry = registry if registry is not None else ClassRegistry()
        self._decoders: Dict[str, Callable[[Dict[str, JSONValue]], Value]] = {
            "Object": self._decode_object,
            "Pointer": self._decode_pointer,
            "Relation": self._decode_relation,
            "GeoPoint": self._decode_geo_point,
            "Bytes": self._decode_bytes,
            "Date": self._decode_date,
        }

    # -- Wire → values ------------------------------------------------------

    def decode(self, data: JSONValue) -> Value:
        """Decode a wire value into a value.

        Raises:
            MalformedDataError: If a typed document is malformed or of unknown type
        """
        if isinstance(data, dict):
            return self._decode_dict(data)
        if isinstance(data, list):
            return Array([self.decode(element) for element in data])
        return coerce(data)

    def _decode_dict(self, data: Dict[str, JSONValue]) -> Value:
        type_name = data.get("__type")
        if type_name is None:
            return Map({key: self.decode(value) for key, value in data.items()})
        decoder = self._decoders.get(type_name) if isinstance(type_name, str) else None
        if decoder is None:
            raise MalformedDataError(f"Unknown data type: {type_name!r}")
        return decoder(data)

    def _decode_object(self, data: Dict[str, JSONValue]) -> Value:
        record = self.registry.create(get_str(data, "className"))
        self.update_record(record, data)
        return record

    def _decode_pointer(self, data: Dict[str, JSONValue]) -> Value:
        return self.registry.create(get_str(data, "className"), get_str(data, "objectId"))

    def _decode_relation(self, data: Dict[str, JSONValue]) -> Value:
        return Relation(get_optional_str(data, "className"))

    def _decode_geo_point(self, data: Dict[str, JSONValue]) -> Value:
        return GeoPoint(get_number(data, "latitude"), get_number(data, "longitude"))

    def _decode_bytes(self, data: Dict[str, JSONValue]) -> Value:
        encoded = get_str(data, "base64")
        try:
            return Bytes(base64.b64decode(encoded, validate=True))
        except (binascii.Error, ValueError) as e:
            raise MalformedDataError(f"Invalid base64 data: {encoded!r}") from e

    def _decode_date(self, data: Dict[str, JSONValue]) -> Value:
        return Date(date_from_iso(get_str(data, "iso")))

    def _decode_field(self, key: str, value: JSONValue) -> Value:
        """Decode a top-level field of an object payload.

        The backend sends createdAt and updatedAt as bare ISO strings.
        """
        if key in ("createdAt", "updatedAt") and isinstance(value, str):
            return Date(date_from_iso(value))
        decoded = self.decode(value)
        if key == "ACL" and not isinstance(decoded, Map):
            raise MalformedDataError(f"ACL must be an object, got {type(decoded).__name__}.")
        return decoded

    def update_record(self, record: Record, data: Dict[str, JSONValue]) -> None:
        """Apply a server payload to a record without recording operations."""
        for key, value in data.items():
            if key in ("__type", "className"):
                continue
            decoded = self._decode_field(key, value)
            if isinstance(decoded, Relation):
                decoded = Relation(decoded.target_class_name, key, record)
            record._update(key, decoded)

    def object_from_dict(self, data: Dict[str, JSONValue], class_name: str) -> Record:
        """Rehydrate a record of class_name from an object payload."""
        actual = data.get("className")
        record = self.registry.create(actual if isinstance(actual, str) else class_name)
        self.update_record(record, data)
        record.reset_operations()
        return record

    # -- Values → wire ------------------------------------------------------

    def serialize(self, record: Record) -> Dict[str, JSONValue]:
        """Build the save body of a record.

        A new record emits every non-reserved field as a literal wire value,
        except relation fields, which emit their pending operations. A
        persisted record emits its reduced operation table.

        Raises:
            InvalidTypeError: If a field references a record without object ID
        """
        if record.object_id is not None:
            return record.operations.wire_value()

        pending = record.operations.wire_value()
        body: Dict[str, JSONValue] = {}
        for key, value in record.items():
            if key in RESERVED_KEYS:
                continue
            if isinstance(value, Relation):
                if key in pending:
                    body[key] = pending[key]
                continue
            body[key] = value.wire_value()
        return body

    def wire_value(self, obj: Any) -> JSONValue:
        """Encode values, queries and plain containers of them for the wire."""
        if isinstance(obj, Value):
            return obj.wire_value()
        if isinstance(obj, Query):
            return obj.wire_value()
        if isinstance(obj, dict):
            return {str(key): self.wire_value(value) for key, value in obj.items()}
        if isinstance(obj, (list, tuple)):
            return [self.wire_value(element) for element in obj]
        return coerce(obj).wire_value()


# Record graph validation


def _identity_token(value: Value) -> Optional[Hashable]:
    """Return the identity token of a traversable value, None for leaves."""
    if isinstance(value, Record):
        return ("record", value.internal_id)
    if isinstance(value, (Array, Map)):
        return ("container", id(value))
    return None


def validate_circular_reference(root: Value) -> None:
    """Check that no value reachable from root contains itself.

    Walks children() depth-first with an explicit stack. Only values on the
    current path count, so a record reachable through two independent paths
    is accepted.

    Raises:
        CircularReferenceError: If a value is reached again from its own subtree
    """
    root_token = _identity_token(root)
    if root_token is None:
        return

    path: Set[Hashable] = {root_token}
    stack: List[Tuple[Hashable, Iterator[Value]]] = [(root_token, root.children())]

    while stack:
        token, children = stack[-1]
        child = next(children, None)
        if child is None:
            stack.pop()
            path.discard(token)
            continue

        child_token = _identity_token(child)
        if child_token is None:
            continue
        if child_token in path:
            info = {"className": child.class_name} if isinstance(child, Record) else {}
            raise CircularReferenceError("Circular reference.", info)
        path.add(child_token)
        stack.append((child_token, child.children()))


def descendants_to_save(root: Record) -> List[Record]:
    """Return reachable records with pending changes, children before parents.

    root is always last. The graph must have passed validate_circular_reference.
    """
    result: List[Record] = []
    visited: Set[Hashable] = set()

    def visit(value: Value) -> None:
        token = _identity_token(value)
        if token is None or token in visited:
            return
        visited.add(token)
        for child in value.children():
            visit(child)
        if isinstance(value, Record) and value is not root and value.has_pending_changes:
            result.append(value)

    visit(root)
    result.append(root)
    return result
