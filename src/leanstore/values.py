"""Value model for LeanStore.

Every field of a record holds one of a closed set of value types. All of them
share one capability set: equality, JSON encoding, wire encoding, child
traversal and the three merge primitives used by the operation reducer.
"""

import base64
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Iterable, Iterator, List, Mapping, Optional, Union

from leanstore._internal.types import date_to_iso
from leanstore.json_helpers import JSONValue
from leanstore.types import InvalidTypeError

if TYPE_CHECKING:
    from leanstore.query import Query
    from leanstore.record import Record


def _json_number(value: float) -> Union[int, float]:
    """Emit integral numbers as JSON integers ('18', not '18.0')."""
    if value.is_integer():
        return int(value)
    return value


class Value(ABC):
    """Base class of every value that can be stored in a record."""

    @abstractmethod
    def json_value(self) -> JSONValue:
        """Return the plain JSON-compatible form."""

    def wire_value(self) -> JSONValue:
        """Return the form used when the value is embedded in a wire document."""
        return self.json_value()

    def children(self) -> Iterator["Value"]:
        """Iterate over directly-contained values."""
        return iter(())

    def add(self, other: "Value") -> "Value":
        raise InvalidTypeError(f"{type(self).__name__} cannot be added.")

    def concatenate(self, other: "Value", unique: bool) -> "Value":
        raise InvalidTypeError(f"{type(self).__name__} cannot be concatenated.")

    def differ(self, other: "Value") -> "Value":
        raise InvalidTypeError(f"{type(self).__name__} cannot be differed.")

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.json_value()!r})"


class Null(Value):
    """Null value."""

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Null)

    def json_value(self) -> JSONValue:
        return None


class Boolean(Value):
    def __init__(self, value: bool = False) -> None:
        self.value = bool(value)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Boolean) and other.value == self.value

    def json_value(self) -> JSONValue:
        return self.value


class Number(Value):
    """Double-precision number."""

    def __init__(self, value: float = 0) -> None:
        self.value = float(value)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Number) and other.value == self.value

    def json_value(self) -> JSONValue:
        return _json_number(self.value)

    def add(self, other: Value) -> Value:
        if not isinstance(other, Number):
            raise InvalidTypeError(f"Number cannot be added with {type(other).__name__}.")
        return Number(self.value + other.value)


class String(Value):
    def __init__(self, value: str = "") -> None:
        self.value = value

    def __eq__(self, other: object) -> bool:
        return isinstance(other, String) and other.value == self.value

    def json_value(self) -> JSONValue:
        return self.value


class Bytes(Value):
    """Byte buffer, embedded inline as base64."""

    def __init__(self, value: bytes = b"") -> None:
        self.value = bytes(value)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Bytes) and other.value == self.value

    def json_value(self) -> JSONValue:
        return {
            "__type": "Bytes",
            "base64": base64.b64encode(self.value).decode("ascii"),
        }


class Array(Value):
    """Ordered list of values.

    The only variant supporting concatenate() and differ().
    """

    def __init__(self, value: Optional[Iterable[Value]] = None) -> None:
        self.value: List[Value] = list(value) if value is not None else []

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Array) and other.value == self.value

    def __iter__(self) -> Iterator[Value]:
        return iter(self.value)

    def __len__(self) -> int:
        return len(self.value)

    def __getitem__(self, index: int) -> Value:
        return self.value[index]

    def json_value(self) -> JSONValue:
        return [element.json_value() for element in self.value]

    def wire_value(self) -> JSONValue:
        return [element.wire_value() for element in self.value]

    def children(self) -> Iterator[Value]:
        return iter(self.value)

    def concatenate(self, other: Value, unique: bool) -> Value:
        """Append elements of other.

        With unique, elements equal to one already present are skipped,
        keeping the order of first occurrence.
        """
        if not isinstance(other, Array):
            raise InvalidTypeError(f"Array cannot be concatenated with {type(other).__name__}.")
        result = list(self.value)
        for element in other.value:
            if unique and element in result:
                continue
            result.append(element)
        return Array(result)

    def differ(self, other: Value) -> Value:
        """Remove every element equal to some element of other."""
        if not isinstance(other, Array):
            raise InvalidTypeError(f"Array cannot be differed with {type(other).__name__}.")
        return Array([element for element in self.value if element not in other.value])


class Map(Value):
    """String-keyed mapping of values."""

    def __init__(self, value: Optional[Mapping[str, Value]] = None) -> None:
        self.value: Dict[str, Value] = dict(value) if value is not None else {}

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Map) and other.value == self.value

    def __iter__(self) -> Iterator[str]:
        return iter(self.value)

    def __len__(self) -> int:
        return len(self.value)

    def __getitem__(self, key: str) -> Value:
        return self.value[key]

    def get(self, key: str) -> Optional[Value]:
        return self.value.get(key)

    def json_value(self) -> JSONValue:
        return {key: element.json_value() for key, element in self.value.items()}

    def wire_value(self) -> JSONValue:
        return {key: element.wire_value() for key, element in self.value.items()}

    def children(self) -> Iterator[Value]:
        return iter(self.value.values())


class DistanceUnit(Enum):
    """Units accepted by geo range constraints."""

    RADIANS = "Radians"
    MILES = "Miles"
    KILOMETERS = "Kilometers"


@dataclass(frozen=True)
class Distance:
    """Distance from a geo point, used by nearby-point constraints."""

    value: float
    unit: DistanceUnit


class GeoPoint(Value):
    def __init__(self, latitude: float = 0, longitude: float = 0) -> None:
        self.latitude = float(latitude)
        self.longitude = float(longitude)

    def __eq__(self, other: object) -> bool:
        return (
            isinstance(other, GeoPoint)
            and other.latitude == self.latitude
            and other.longitude == self.longitude
        )

    def json_value(self) -> JSONValue:
        return {
            "__type": "GeoPoint",
            "latitude": _json_number(self.latitude),
            "longitude": _json_number(self.longitude),
        }


class Date(Value):
    """Instant in time.

    Kept at millisecond precision, the precision of the wire format.
    """

    def __init__(self, value: Optional[datetime] = None) -> None:
        value = value if value is not None else datetime.now().astimezone()
        self.value = value.replace(microsecond=value.microsecond // 1000 * 1000)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Date) and date_to_iso(other.value) == date_to_iso(self.value)

    @property
    def iso_string(self) -> str:
        return date_to_iso(self.value)

    def json_value(self) -> JSONValue:
        return {"__type": "Date", "iso": self.iso_string}


class Relation(Value):
    """One-to-many reference from an owner record to records of a target class.

    A relation only names its target class; related records are never
    held locally, so it has no children.
    """

    def __init__(
        self,
        target_class_name: Optional[str] = None,
        key: Optional[str] = None,
        parent: Optional["Record"] = None,
    ) -> None:
        self.target_class_name = target_class_name
        self.key = key
        self.parent = parent

    def __eq__(self, other: object) -> bool:
        return (
            isinstance(other, Relation)
            and other.target_class_name == self.target_class_name
            and other.key == self.key
        )

    def json_value(self) -> JSONValue:
        result: Dict[str, JSONValue] = {"__type": "Relation"}
        if self.target_class_name is not None:
            result["className"] = self.target_class_name
        return result

    def query(self) -> "Query":
        """Build a query for records related to the owner through this key.

        Raises:
            InvalidTypeError: If the target class, key or owner is unknown
        """
        from leanstore.query import Constraint, Query

        if self.target_class_name is None or self.key is None or self.parent is None:
            raise InvalidTypeError("Relation is not bound to an owner and a target class.")
        return Query(self.target_class_name).where_key(
            self.key, Constraint.related_to(self.parent)
        )


def coerce(obj: Any) -> Value:
    """Convert a plain Python object into a Value.

    Values pass through unchanged; lists and dicts are converted recursively.

    Raises:
        InvalidTypeError: If obj has no corresponding value type
    """
    if isinstance(obj, Value):
        return obj
    if obj is None:
        return Null()
    # bool before int: bool is a subclass of int
    if isinstance(obj, bool):
        return Boolean(obj)
    if isinstance(obj, (int, float)):
        return Number(obj)
    if isinstance(obj, str):
        return String(obj)
    if isinstance(obj, (bytes, bytearray)):
        return Bytes(bytes(obj))
    if isinstance(obj, datetime):
        return Date(obj)
    if isinstance(obj, (list, tuple)):
        return Array([coerce(element) for element in obj])
    if isinstance(obj, dict):
        return Map({str(key): coerce(element) for key, element in obj.items()})
    raise InvalidTypeError(f"Unsupported value type: {type(obj).__name__}")
