"""Record: the compound value mapped to one stored object."""

from typing import Any, ClassVar, Dict, Iterator, List, Optional, Tuple

from leanstore._internal.types import internal_id_new, validate_key
from leanstore.json_helpers import JSONValue
from leanstore.operations import Operation, OperationKind, OperationReducer
from leanstore.types import InternalId, InvalidTypeError, ObjectId
from leanstore.values import Array, Date, Map, Number, Relation, String, Value, coerce


class Record(Value):
    """Mutable, identity-bearing record of a remote class.

    Fields are only mutated through set/unset/increase/append/remove and the
    relation methods, so every mutation is both applied to the field table
    and recorded for the next save.

    Subclasses bind a class name through CLASS_NAME (defaults to the Python
    class name) and are made known to the profiler through a ClassRegistry.
    """

    CLASS_NAME: ClassVar[Optional[str]] = None

    def __init__(self, class_name: Optional[str] = None, object_id: Optional[str] = None) -> None:
        self._fields: Dict[str, Value] = {}
        self._class_name = class_name or self.object_class_name()
        self.internal_id: InternalId = internal_id_new()
        self.operations = OperationReducer()
        if object_id is not None:
            self._fields["objectId"] = String(object_id)

    @classmethod
    def object_class_name(cls) -> str:
        return cls.CLASS_NAME or cls.__name__

    # -- Reserved fields ----------------------------------------------------

    @property
    def class_name(self) -> str:
        return self._class_name

    @property
    def object_id(self) -> Optional[ObjectId]:
        value = self._fields.get("objectId")
        return ObjectId(value.value) if isinstance(value, String) else None

    @property
    def created_at(self) -> Optional[Date]:
        value = self._fields.get("createdAt")
        return value if isinstance(value, Date) else None

    @property
    def updated_at(self) -> Optional[Date]:
        value = self._fields.get("updatedAt")
        return value if isinstance(value, Date) else None

    @property
    def acl(self) -> Optional[Map]:
        value = self._fields.get("ACL")
        return value if isinstance(value, Map) else None

    @acl.setter
    def acl(self, value: Optional[Map]) -> None:
        if value is None:
            self._add_operation(Operation(OperationKind.DELETE, "ACL"))
        else:
            self._add_operation(Operation(OperationKind.SET, "ACL", value))

    @property
    def has_pending_changes(self) -> bool:
        """Whether the record has data to upload.

        A new record always has; a persisted one only with pending operations.
        """
        return self.object_id is None or not self.operations.is_empty

    # -- Value capabilities -------------------------------------------------

    def __eq__(self, other: object) -> bool:
        if other is self:
            return True
        if not isinstance(other, Record) or other.class_name != self.class_name:
            return False
        if self.object_id is not None or other.object_id is not None:
            return self.object_id == other.object_id
        return self._fields == other._fields

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.class_name} objectId={self.object_id}>"

    def json_value(self) -> JSONValue:
        result: Dict[str, JSONValue] = {
            key: value.json_value() for key, value in self._fields.items()
        }
        result["__type"] = "Object"
        result["className"] = self.class_name
        return result

    def wire_value(self) -> JSONValue:
        """Return a Pointer to this record.

        Raises:
            InvalidTypeError: If the record has no object ID yet
        """
        object_id = self.object_id
        if object_id is None:
            raise InvalidTypeError(
                "Cannot reference an object without object ID.",
                {"className": self.class_name},
            )
        return {"__type": "Pointer", "className": self.class_name, "objectId": object_id}

    def children(self) -> Iterator[Value]:
        return iter(list(self._fields.values()))

    # -- Field access -------------------------------------------------------

    def get(self, key: str) -> Optional[Value]:
        return self._fields.get(key)

    def __getitem__(self, key: str) -> Value:
        return self._fields[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self.set(key, value)

    def __contains__(self, key: str) -> bool:
        return key in self._fields

    def keys(self) -> List[str]:
        return list(self._fields)

    def items(self) -> List[Tuple[str, Value]]:
        return list(self._fields.items())

    def relation(self, key: str) -> Relation:
        """Get relation object for key."""
        value = self._fields.get(key)
        if isinstance(value, Relation):
            return Relation(value.target_class_name, key, self)
        return Relation(None, key, self)

    # -- Mutation -----------------------------------------------------------

    def set(self, key: str, value: Any) -> None:
        """Set value for key; None unsets the key.

        Raises:
            MalformedDataError: If key is not well-formatted
        """
        validate_key(key)
        if value is None:
            self._add_operation(Operation(OperationKind.DELETE, key))
        else:
            self._add_operation(Operation(OperationKind.SET, key, coerce(value)))

    def unset(self, key: str) -> None:
        validate_key(key)
        self._add_operation(Operation(OperationKind.DELETE, key))

    def increase(self, key: str, amount: Any = 1) -> None:
        """Increase a number by amount."""
        validate_key(key)
        value = coerce(amount)
        if not isinstance(value, Number):
            raise InvalidTypeError(f"Increment amount must be a number, got {type(value).__name__}.")
        self._add_operation(Operation(OperationKind.INCREMENT, key, value))

    def append(self, key: str, *elements: Any, unique: bool = False) -> None:
        """Append elements into an array.

        With unique, elements already present in the array are not appended.
        """
        validate_key(key)
        kind = OperationKind.ADD_UNIQUE if unique else OperationKind.ADD
        self._add_operation(Operation(kind, key, Array([coerce(e) for e in elements])))

    def remove(self, key: str, *elements: Any) -> None:
        """Remove every occurrence of elements from an array."""
        validate_key(key)
        self._add_operation(
            Operation(OperationKind.REMOVE, key, Array([coerce(e) for e in elements]))
        )

    def insert_relation(self, key: str, record: "Record") -> None:
        validate_key(key)
        self._add_operation(Operation(OperationKind.ADD_RELATION, key, Array([record])))

    def remove_relation(self, key: str, record: "Record") -> None:
        validate_key(key)
        self._add_operation(Operation(OperationKind.REMOVE_RELATION, key, Array([record])))

    def reset_operations(self) -> None:
        """Reset operations, make record unmodified."""
        self.operations.reset()

    def discard_changes(self) -> None:
        """Drop fields changed since the last save, then reset operations.

        Used before applying a fetched payload, which omits fields absent on
        the backend.
        """
        for operation in self.operations.operations():
            self._fields.pop(operation.key, None)
        self.operations.reset()

    def _add_operation(self, operation: Operation) -> None:
        # Compute first: a failing apply or merge must leave both untouched
        updated = self._applied(operation)
        self.operations.reduce(operation)
        if updated is None:
            self._fields.pop(operation.key, None)
        else:
            self._fields[operation.key] = updated

    def _applied(self, operation: Operation) -> Optional[Value]:
        """Return the field value after operation, None meaning absent."""
        current = self._fields.get(operation.key)
        kind = operation.kind

        if kind is OperationKind.SET:
            return operation.value
        if kind is OperationKind.DELETE:
            return None
        value = operation._require_value()

        if kind is OperationKind.INCREMENT:
            return (current if current is not None else Number(0)).add(value)
        if kind in (OperationKind.ADD, OperationKind.ADD_UNIQUE):
            base = current if current is not None else Array()
            return base.concatenate(value, unique=kind is OperationKind.ADD_UNIQUE)
        if kind is OperationKind.REMOVE:
            return current.differ(value) if current is not None else None

        if current is not None and not isinstance(current, Relation):
            raise InvalidTypeError(f"Field '{operation.key}' is not a relation.")
        if kind is OperationKind.REMOVE_RELATION:
            return current
        target = current.target_class_name if current is not None else None
        if target is None:
            targets = [e.class_name for e in value.children() if isinstance(e, Record)]
            target = targets[0] if targets else None
        return Relation(target, operation.key, self)

    def _update(self, key: str, value: Optional[Value]) -> None:
        """Write a field from a server payload without recording an operation."""
        if value is None:
            self._fields.pop(key, None)
        else:
            self._fields[key] = value
