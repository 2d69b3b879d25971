"""Operation reduction for LeanStore.

Every mutation of a record is recorded as an Operation. Operations on the
same key are merged into the smallest equivalent set of wire operations, so
that saving the reduced table has the same effect as replaying each
mutation in order.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from leanstore.json_helpers import JSONValue
from leanstore.types import InvalidTypeError
from leanstore.values import Array, Value


class OperationKind(Enum):
    """Kinds of mutation, valued by their wire name."""

    SET = "Set"
    DELETE = "Delete"
    INCREMENT = "Increment"
    ADD = "Add"
    ADD_UNIQUE = "AddUnique"
    REMOVE = "Remove"
    ADD_RELATION = "AddRelation"
    REMOVE_RELATION = "RemoveRelation"

    @property
    def is_relation(self) -> bool:
        return self in (OperationKind.ADD_RELATION, OperationKind.REMOVE_RELATION)


@dataclass(frozen=True)
class Operation:
    """A single mutation intent against one field of a record."""

    kind: OperationKind
    key: str
    value: Optional[Value] = None

    def _require_value(self) -> Value:
        if self.value is None:
            raise InvalidTypeError(f"{self.kind.value} operation requires a value.")
        return self.value

    def wire_value(self) -> JSONValue:
        """Return the wire document of this operation.

        Set emits the plain wire value; every other kind emits an
        '__op' document.
        """
        if self.kind is OperationKind.SET:
            return self._require_value().wire_value()
        if self.kind is OperationKind.DELETE:
            return {"__op": "Delete"}
        if self.kind is OperationKind.INCREMENT:
            return {"__op": "Increment", "amount": self._require_value().json_value()}
        return {"__op": self.kind.value, "objects": self._require_value().wire_value()}


# Merge table
#
# Maps (existing kind, new kind) to a function building the reduced
# operation. Pairs missing from the table cannot be merged.

_Merge = Callable[[Operation, Operation], Operation]

_ABSOLUTE_KINDS = (OperationKind.SET, OperationKind.DELETE)
_RELATIVE_KINDS = (
    OperationKind.INCREMENT,
    OperationKind.ADD,
    OperationKind.ADD_UNIQUE,
    OperationKind.REMOVE,
)


def _replace(existing: Operation, new: Operation) -> Operation:
    return new


def _keep(existing: Operation, new: Operation) -> Operation:
    return existing


def _set_applied(existing: Operation, new: Operation) -> Operation:
    """Fold a relative operation into a pending Set."""
    base = existing._require_value()
    operand = new._require_value()
    if new.kind is OperationKind.INCREMENT:
        value = base.add(operand)
    elif new.kind is OperationKind.REMOVE:
        value = base.differ(operand)
    else:
        value = base.concatenate(operand, unique=new.kind is OperationKind.ADD_UNIQUE)
    return Operation(OperationKind.SET, new.key, value)


def _set_from_absent(existing: Operation, new: Operation) -> Operation:
    """Fold a relative operation into a pending Delete."""
    operand = new._require_value()
    if new.kind is OperationKind.INCREMENT:
        return Operation(OperationKind.SET, new.key, operand)
    value = Array().concatenate(operand, unique=new.kind is OperationKind.ADD_UNIQUE)
    return Operation(OperationKind.SET, new.key, value)


def _sum(existing: Operation, new: Operation) -> Operation:
    value = existing._require_value().add(new._require_value())
    return Operation(OperationKind.INCREMENT, new.key, value)


def _concatenate(existing: Operation, new: Operation) -> Operation:
    value = existing._require_value().concatenate(
        new._require_value(), unique=new.kind is OperationKind.ADD_UNIQUE
    )
    return Operation(new.kind, new.key, value)


def _union(existing: Operation, new: Operation) -> Operation:
    value = existing._require_value().concatenate(new._require_value(), unique=True)
    return Operation(OperationKind.REMOVE, new.key, value)


def _build_merge_table() -> Dict[Tuple[OperationKind, OperationKind], _Merge]:
    table: Dict[Tuple[OperationKind, OperationKind], _Merge] = {}

    for kind in _ABSOLUTE_KINDS + _RELATIVE_KINDS:
        table[(kind, OperationKind.SET)] = _replace
        table[(kind, OperationKind.DELETE)] = _replace

    for kind in _RELATIVE_KINDS:
        table[(OperationKind.SET, kind)] = _set_applied

    table[(OperationKind.DELETE, OperationKind.INCREMENT)] = _set_from_absent
    table[(OperationKind.DELETE, OperationKind.ADD)] = _set_from_absent
    table[(OperationKind.DELETE, OperationKind.ADD_UNIQUE)] = _set_from_absent
    # Removing from an absent field leaves it absent
    table[(OperationKind.DELETE, OperationKind.REMOVE)] = _keep

    table[(OperationKind.INCREMENT, OperationKind.INCREMENT)] = _sum
    table[(OperationKind.ADD, OperationKind.ADD)] = _concatenate
    table[(OperationKind.ADD_UNIQUE, OperationKind.ADD_UNIQUE)] = _concatenate
    table[(OperationKind.REMOVE, OperationKind.REMOVE)] = _union

    return table


MERGE_TABLE = _build_merge_table()


def _merge_relation(existing: List[Operation], new: Operation) -> List[Operation]:
    """Merge a relation operation into the pending relation operations of a key.

    Pending entries of the opposite kind referencing the same records are
    cancelled before the new records are appended.
    """
    if not new.kind.is_relation or any(not op.kind.is_relation for op in existing):
        raise InvalidTypeError(
            f"Cannot mix relation and non-relation operations on key '{new.key}'."
        )

    operand = new._require_value()
    merged: Dict[OperationKind, Operation] = {}

    for op in existing:
        if op.kind is new.kind:
            value = op._require_value().concatenate(operand, unique=True)
            merged[op.kind] = Operation(op.kind, op.key, value)
        else:
            remaining = op._require_value().differ(operand)
            if isinstance(remaining, Array) and len(remaining) > 0:
                merged[op.kind] = Operation(op.kind, op.key, remaining)

    if new.kind not in merged:
        merged[new.kind] = Operation(new.kind, new.key, Array().concatenate(operand, unique=True))

    return [
        merged[kind]
        for kind in (OperationKind.ADD_RELATION, OperationKind.REMOVE_RELATION)
        if kind in merged
    ]


class OperationReducer:
    """Per-key table of reduced operations pending since the last reset."""

    def __init__(self) -> None:
        self._table: Dict[str, List[Operation]] = {}

    @property
    def is_empty(self) -> bool:
        return not self._table

    def __contains__(self, key: str) -> bool:
        return key in self._table

    def reduce(self, operation: Operation) -> None:
        """Merge operation into the table.

        The table is left unchanged when the merge is illegal.

        Raises:
            InvalidTypeError: If operation cannot follow the pending operation of its key
        """
        key = operation.key
        existing = self._table.get(key)

        if not existing:
            self._table[key] = [operation]
            return

        if operation.kind.is_relation or existing[0].kind.is_relation:
            self._table[key] = _merge_relation(existing, operation)
            return

        previous = existing[0]
        merge = MERGE_TABLE.get((previous.kind, operation.kind))
        if merge is None:
            raise InvalidTypeError(
                f"Cannot apply {operation.kind.value} after {previous.kind.value} "
                f"on key '{key}' without saving in between."
            )
        self._table[key] = [merge(previous, operation)]

    def reset(self) -> None:
        self._table.clear()

    def operations(self, key: Optional[str] = None) -> List[Operation]:
        """Return the reduced operations, optionally only those of one key."""
        if key is not None:
            return list(self._table.get(key, []))
        return [op for ops in self._table.values() for op in ops]

    def wire_value(self) -> Dict[str, JSONValue]:
        """Return the update document of the reduced table.

        A key holding both a pending AddRelation and RemoveRelation is
        emitted as a Batch operation.
        """
        result: Dict[str, JSONValue] = {}
        for key, ops in self._table.items():
            if len(ops) == 1:
                result[key] = ops[0].wire_value()
            else:
                result[key] = {"__op": "Batch", "ops": [op.wire_value() for op in ops]}
        return result
