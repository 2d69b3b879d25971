"""Query constraint compiler for LeanStore.

A Query collects constraints on the fields of one class and compiles them
into the wire 'where' document plus the include/keys/order/limit/skip
request parameters.
"""

import copy
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from leanstore._internal.json_helpers import dumps_compact
from leanstore.json_helpers import JSONValue
from leanstore.record import Record
from leanstore.types import InconsistencyError, InvalidTypeError
from leanstore.values import Array, Distance, GeoPoint, Value, coerce


class ConstraintKind(Enum):
    INCLUDED = "included"
    SELECTED = "selected"
    EXISTED = "existed"
    NOT_EXISTED = "notExisted"

    EQUAL_TO = "equalTo"
    NOT_EQUAL_TO = "notEqualTo"
    LESS_THAN = "lessThan"
    LESS_THAN_OR_EQUAL_TO = "lessThanOrEqualTo"
    GREATER_THAN = "greaterThan"
    GREATER_THAN_OR_EQUAL_TO = "greaterThanOrEqualTo"

    CONTAINED_IN = "containedIn"
    NOT_CONTAINED_IN = "notContainedIn"
    CONTAINED_ALL_IN = "containedAllIn"
    EQUAL_TO_SIZE = "equalToSize"

    NEARBY_POINT = "nearbyPoint"
    NEARBY_POINT_WITH_RECTANGLE = "nearbyPointWithRectangle"

    MATCHED_QUERY = "matchedQuery"
    NOT_MATCHED_QUERY = "notMatchedQuery"
    MATCHED_QUERY_AND_KEY = "matchedQueryAndKey"
    NOT_MATCHED_QUERY_AND_KEY = "notMatchedQueryAndKey"

    MATCHED_PATTERN = "matchedPattern"
    MATCHED_SUBSTRING = "matchedSubstring"
    PREFIXED_BY = "prefixedBy"
    SUFFIXED_BY = "suffixedBy"

    RELATED_TO = "relatedTo"

    ASCENDING = "ascending"
    DESCENDING = "descending"


def _array(values: Any) -> Array:
    value = coerce(list(values) if isinstance(values, (list, tuple, set)) else values)
    if not isinstance(value, Array):
        raise InvalidTypeError(f"Expected an array, got {type(value).__name__}.")
    return value


@dataclass(frozen=True)
class Constraint:
    """A constraint on one key, built through the factory class methods."""

    kind: ConstraintKind
    arguments: Tuple[Any, ...] = ()

    # Key matching

    @classmethod
    def included(cls) -> "Constraint":
        return cls(ConstraintKind.INCLUDED)

    @classmethod
    def selected(cls) -> "Constraint":
        return cls(ConstraintKind.SELECTED)

    @classmethod
    def existed(cls) -> "Constraint":
        return cls(ConstraintKind.EXISTED)

    @classmethod
    def not_existed(cls) -> "Constraint":
        return cls(ConstraintKind.NOT_EXISTED)

    # Equality and comparison

    @classmethod
    def equal_to(cls, value: Any) -> "Constraint":
        return cls(ConstraintKind.EQUAL_TO, (coerce(value),))

    @classmethod
    def not_equal_to(cls, value: Any) -> "Constraint":
        return cls(ConstraintKind.NOT_EQUAL_TO, (coerce(value),))

    @classmethod
    def less_than(cls, value: Any) -> "Constraint":
        return cls(ConstraintKind.LESS_THAN, (coerce(value),))

    @classmethod
    def less_than_or_equal_to(cls, value: Any) -> "Constraint":
        return cls(ConstraintKind.LESS_THAN_OR_EQUAL_TO, (coerce(value),))

    @classmethod
    def greater_than(cls, value: Any) -> "Constraint":
        return cls(ConstraintKind.GREATER_THAN, (coerce(value),))

    @classmethod
    def greater_than_or_equal_to(cls, value: Any) -> "Constraint":
        return cls(ConstraintKind.GREATER_THAN_OR_EQUAL_TO, (coerce(value),))

    # Array matching

    @classmethod
    def contained_in(cls, values: Any) -> "Constraint":
        return cls(ConstraintKind.CONTAINED_IN, (_array(values),))

    @classmethod
    def not_contained_in(cls, values: Any) -> "Constraint":
        return cls(ConstraintKind.NOT_CONTAINED_IN, (_array(values),))

    @classmethod
    def contained_all_in(cls, values: Any) -> "Constraint":
        return cls(ConstraintKind.CONTAINED_ALL_IN, (_array(values),))

    @classmethod
    def equal_to_size(cls, size: int) -> "Constraint":
        return cls(ConstraintKind.EQUAL_TO_SIZE, (size,))

    # Geo point matching

    @classmethod
    def nearby_point(
        cls,
        point: GeoPoint,
        from_distance: Optional[Distance] = None,
        to_distance: Optional[Distance] = None,
    ) -> "Constraint":
        return cls(ConstraintKind.NEARBY_POINT, (point, from_distance, to_distance))

    @classmethod
    def nearby_point_with_rectangle(cls, southwest: GeoPoint, northeast: GeoPoint) -> "Constraint":
        return cls(ConstraintKind.NEARBY_POINT_WITH_RECTANGLE, (southwest, northeast))

    # Query matching

    @classmethod
    def matched_query(cls, query: "Query") -> "Constraint":
        return cls(ConstraintKind.MATCHED_QUERY, (query.copy(),))

    @classmethod
    def not_matched_query(cls, query: "Query") -> "Constraint":
        return cls(ConstraintKind.NOT_MATCHED_QUERY, (query.copy(),))

    @classmethod
    def matched_query_and_key(cls, query: "Query", key: str) -> "Constraint":
        return cls(ConstraintKind.MATCHED_QUERY_AND_KEY, (query.copy(), key))

    @classmethod
    def not_matched_query_and_key(cls, query: "Query", key: str) -> "Constraint":
        return cls(ConstraintKind.NOT_MATCHED_QUERY_AND_KEY, (query.copy(), key))

    # String matching

    @classmethod
    def matched_pattern(cls, pattern: str, option: Optional[str] = None) -> "Constraint":
        return cls(ConstraintKind.MATCHED_PATTERN, (pattern, option))

    @classmethod
    def matched_substring(cls, string: str) -> "Constraint":
        return cls(ConstraintKind.MATCHED_SUBSTRING, (string,))

    @classmethod
    def prefixed_by(cls, string: str) -> "Constraint":
        return cls(ConstraintKind.PREFIXED_BY, (string,))

    @classmethod
    def suffixed_by(cls, string: str) -> "Constraint":
        return cls(ConstraintKind.SUFFIXED_BY, (string,))

    # Relation and ordering

    @classmethod
    def related_to(cls, record: Record) -> "Constraint":
        return cls(ConstraintKind.RELATED_TO, (record,))

    @classmethod
    def ascending(cls) -> "Constraint":
        return cls(ConstraintKind.ASCENDING)

    @classmethod
    def descending(cls) -> "Constraint":
        return cls(ConstraintKind.DESCENDING)


def _compile(node: Any) -> JSONValue:
    """Compile a constraint tree node into fresh wire structures."""
    if isinstance(node, Value):
        return node.wire_value()
    if isinstance(node, Query):
        return node.wire_value()
    if isinstance(node, dict):
        return {key: _compile(value) for key, value in node.items()}
    if isinstance(node, list):
        return [_compile(value) for value in node]
    return copy.deepcopy(node)


def _nearby(point: GeoPoint, low: Optional[Distance], high: Optional[Distance]) -> Dict[str, Any]:
    document: Dict[str, Any] = {"$nearSphere": point}
    if low is not None:
        document[f"$minDistanceIn{low.unit.value}"] = low.value
    if high is not None:
        document[f"$maxDistanceIn{high.unit.value}"] = high.value
    return document


# Operator document builders, keyed by constraint kind
_OPERATORS: Dict[ConstraintKind, Callable[..., Dict[str, Any]]] = {
    ConstraintKind.EXISTED: lambda: {"$exists": True},
    ConstraintKind.NOT_EXISTED: lambda: {"$exists": False},
    ConstraintKind.NOT_EQUAL_TO: lambda value: {"$ne": value},
    ConstraintKind.LESS_THAN: lambda value: {"$lt": value},
    ConstraintKind.LESS_THAN_OR_EQUAL_TO: lambda value: {"$lte": value},
    ConstraintKind.GREATER_THAN: lambda value: {"$gt": value},
    ConstraintKind.GREATER_THAN_OR_EQUAL_TO: lambda value: {"$gte": value},
    ConstraintKind.CONTAINED_IN: lambda array: {"$in": array},
    ConstraintKind.NOT_CONTAINED_IN: lambda array: {"$nin": array},
    ConstraintKind.CONTAINED_ALL_IN: lambda array: {"$all": array},
    ConstraintKind.EQUAL_TO_SIZE: lambda size: {"$size": size},
    ConstraintKind.NEARBY_POINT: _nearby,
    ConstraintKind.NEARBY_POINT_WITH_RECTANGLE: lambda sw, ne: {"$within": {"$box": [sw, ne]}},
    ConstraintKind.MATCHED_QUERY: lambda query: {"$inQuery": query},
    ConstraintKind.NOT_MATCHED_QUERY: lambda query: {"$notInQuery": query},
    ConstraintKind.MATCHED_QUERY_AND_KEY: lambda query, key: {
        "$select": {"query": query, "key": key}
    },
    ConstraintKind.NOT_MATCHED_QUERY_AND_KEY: lambda query, key: {
        "$dontSelect": {"query": query, "key": key}
    },
    ConstraintKind.MATCHED_PATTERN: lambda pattern, option: {
        "$regex": pattern,
        "$options": option or "",
    },
    ConstraintKind.MATCHED_SUBSTRING: lambda s: {"$regex": re.escape(s)},
    ConstraintKind.PREFIXED_BY: lambda s: {"$regex": f"^{re.escape(s)}"},
    ConstraintKind.SUFFIXED_BY: lambda s: {"$regex": f"{re.escape(s)}$"},
}


class Query:
    """Query for records of one class.

    Constraints are kept as a tree of values and nested queries; compiling
    always builds new wire structures, so a compiled snapshot is unaffected
    by constraints added afterwards.
    """

    def __init__(self, class_name: str) -> None:
        self.class_name = class_name
        self.limit: Optional[int] = None
        self.skip: Optional[int] = None
        self.extra_parameters: Dict[str, JSONValue] = {}

        # Ordered sets: dict keys keep insertion order
        self._included_keys: Dict[str, None] = {}
        self._selected_keys: Dict[str, None] = {}
        self._ordered_keys: List[str] = []

        self._equality_table: Dict[str, Value] = {}
        self._constraints: Dict[str, Any] = {}
        # Compiled trees combined by and_()
        self._conjuncts: List[JSONValue] = []

    def copy(self) -> "Query":
        query = Query(self.class_name)
        query.limit = self.limit
        query.skip = self.skip
        query.extra_parameters = copy.deepcopy(self.extra_parameters)
        query._included_keys = dict(self._included_keys)
        query._selected_keys = dict(self._selected_keys)
        query._ordered_keys = list(self._ordered_keys)
        query._equality_table = dict(self._equality_table)
        query._constraints = {
            key: dict(value) if isinstance(value, dict) else value
            for key, value in self._constraints.items()
        }
        query._conjuncts = copy.deepcopy(self._conjuncts)
        return query

    def where_key(self, key: str, constraint: Constraint) -> "Query":
        """Add constraint on key. Returns the query itself for chaining."""
        kind = constraint.kind
        arguments = constraint.arguments

        if kind is ConstraintKind.INCLUDED:
            self._included_keys[key] = None
        elif kind is ConstraintKind.SELECTED:
            self._selected_keys[key] = None
        elif kind is ConstraintKind.ASCENDING:
            self._append_ordered_key(key, key)
        elif kind is ConstraintKind.DESCENDING:
            self._append_ordered_key(key, f"-{key}")
        elif kind is ConstraintKind.EQUAL_TO:
            # Same key overwrites, different keys accumulate
            self._equality_table[key] = arguments[0]
        elif kind is ConstraintKind.RELATED_TO:
            self._constraints["$relatedTo"] = {"object": arguments[0], "key": key}
        else:
            self._add_constraint(key, _OPERATORS[kind](*arguments))

        return self

    def _append_ordered_key(self, key: str, ordered_key: str) -> None:
        self._ordered_keys = [k for k in self._ordered_keys if k.lstrip("-") != key]
        self._ordered_keys.append(ordered_key)

    def _add_constraint(self, key: str, document: Dict[str, Any]) -> None:
        existing = self._constraints.get(key)
        if isinstance(existing, dict):
            existing.update(document)
        else:
            self._constraints[key] = dict(document)

    # -- Combination --------------------------------------------------------

    def _validate_class_name(self, query: "Query") -> None:
        if query.class_name != self.class_name:
            raise InconsistencyError(
                "Different class names.",
                {"lhs": self.class_name, "rhs": query.class_name},
            )

    def and_(self, query: "Query") -> "Query":
        """Get logic AND of another query.

        Only constraints are combined; limit, skip, included and selected
        keys and ordering of both queries are discarded.

        Raises:
            InconsistencyError: If the queries target different classes
        """
        self._validate_class_name(query)
        result = Query(self.class_name)
        result._conjuncts = [self.where(), query.where()]
        return result

    def or_(self, query: "Query") -> "Query":
        """Get logic OR of another query.

        Raises:
            InconsistencyError: If the queries target different classes
        """
        self._validate_class_name(query)
        result = Query(self.class_name)
        result._constraints["$or"] = [self.where(), query.where()]
        return result

    # -- Compilation --------------------------------------------------------

    def where(self) -> Dict[str, JSONValue]:
        """Compile the constraint tree into a fresh 'where' document."""
        result: Dict[str, JSONValue] = {
            key: _compile(value) for key, value in self._constraints.items()
        }
        conjuncts: List[JSONValue] = copy.deepcopy(self._conjuncts)
        conjuncts.extend(
            {key: value.wire_value()} for key, value in self._equality_table.items()
        )
        if conjuncts:
            result["$and"] = conjuncts
        return result

    def wire_value(self) -> Dict[str, JSONValue]:
        """Return the nested form of the query, as embedded by '$inQuery'."""
        result: Dict[str, JSONValue] = {"className": self.class_name}

        where = self.where()
        if where:
            result["where"] = where
        if self._included_keys:
            result["include"] = ",".join(self._included_keys)
        if self._selected_keys:
            result["keys"] = ",".join(self._selected_keys)
        if self._ordered_keys:
            result["order"] = ",".join(self._ordered_keys)
        if self.limit is not None:
            result["limit"] = self.limit
        if self.skip is not None:
            result["skip"] = self.skip

        result.update(copy.deepcopy(self.extra_parameters))
        return result

    def parameters(self) -> Dict[str, JSONValue]:
        """Return the request parameters, with 'where' encoded as a JSON string."""
        parameters = self.wire_value()
        del parameters["className"]
        if "where" in parameters:
            parameters["where"] = dumps_compact(parameters["where"])
        return parameters

    def __repr__(self) -> str:
        return f"<Query {self.class_name} where={self.where()!r}>"
