"""Pure unit tests for the value model.

These tests verify equality, JSON and wire encoding, and the three merge
primitives (add, concatenate, differ) of every value type.
"""

from datetime import datetime, timezone

import pytest

from leanstore import (
    Array,
    Boolean,
    Bytes,
    Date,
    GeoPoint,
    InvalidTypeError,
    Map,
    Null,
    Number,
    Record,
    Relation,
    String,
    coerce,
)

# --- Equality Tests ---


def test_array_equality_is_order_sensitive() -> None:
    """Verify arrays compare element by element, in order."""
    assert Array([Number(1), String("a")]) == Array([Number(1), String("a")])
    assert Array([Number(1), String("a")]) != Array([String("a"), Number(1)])


def test_map_equality_is_key_set_sensitive() -> None:
    """Verify maps compare by keys and values, not insertion order."""
    lhs = Map({"a": Number(1), "b": Number(2)})
    rhs = Map({"b": Number(2), "a": Number(1)})

    assert lhs == rhs
    assert lhs != Map({"a": Number(1)})


def test_values_of_different_types_are_not_equal() -> None:
    """Verify Boolean(True) is not Number(1) and Null is only Null."""
    assert Boolean(True) != Number(1)
    assert Null() == Null()
    assert Null() != String("")


def test_persisted_records_compare_by_object_id() -> None:
    """Verify two stubs with the same class and object ID are equal."""
    assert Record("Todo", "abc") == Record("Todo", "abc")
    assert Record("Todo", "abc") != Record("Todo", "xyz")
    assert Record("Todo", "abc") != Record("Note", "abc")


def test_new_records_compare_by_fields() -> None:
    """Verify new records without object ID compare by field table."""
    lhs = Record("Todo")
    rhs = Record("Todo")
    lhs.set("title", "x")
    rhs.set("title", "x")

    assert lhs == rhs

    rhs.set("title", "y")
    assert lhs != rhs


# --- Encoding Tests ---


def test_integral_numbers_encode_as_json_integers() -> None:
    """Verify 18.0 is emitted as 18 and 1.5 stays a float."""
    assert Number(18).json_value() == 18
    assert isinstance(Number(18).json_value(), int)
    assert Number(1.5).json_value() == 1.5


def test_bytes_encode_inline_as_base64() -> None:
    """Verify Bytes wire form is the base64 typed document."""
    assert Bytes(b"hello").wire_value() == {"__type": "Bytes", "base64": "aGVsbG8="}


def test_date_encodes_iso_with_milliseconds() -> None:
    """Verify Date wire form carries an ISO string with 'Z' suffix."""
    value = Date(datetime(2016, 4, 19, 6, 11, 27, 123456, tzinfo=timezone.utc))

    assert value.wire_value() == {"__type": "Date", "iso": "2016-04-19T06:11:27.123Z"}


def test_geo_point_encoding() -> None:
    assert GeoPoint(39.9, 116.4).wire_value() == {
        "__type": "GeoPoint",
        "latitude": 39.9,
        "longitude": 116.4,
    }


def test_relation_encoding() -> None:
    assert Relation("Tag").wire_value() == {"__type": "Relation", "className": "Tag"}


def test_persisted_record_wire_value_is_pointer() -> None:
    """Verify a record with object ID is embedded as a Pointer."""
    assert Record("Todo", "abc").wire_value() == {
        "__type": "Pointer",
        "className": "Todo",
        "objectId": "abc",
    }


def test_new_record_wire_value_raises() -> None:
    """Verify a record without object ID cannot be referenced."""
    with pytest.raises(InvalidTypeError, match="without object ID"):
        Record("Todo").wire_value()


def test_array_wire_value_requires_every_child() -> None:
    """Verify containers propagate the failure of a nested record."""
    with pytest.raises(InvalidTypeError):
        Map({"list": Array([Record("Todo")])}).wire_value()


def test_record_json_value_embeds_fields() -> None:
    record = Record("Todo", "abc")
    record.set("title", "x")

    assert record.json_value() == {
        "objectId": "abc",
        "title": "x",
        "__type": "Object",
        "className": "Todo",
    }


# --- Merge Primitive Tests ---


def test_number_add() -> None:
    assert Number(1).add(Number(2)) == Number(3)


@pytest.mark.parametrize(
    "value",
    [Null(), Boolean(True), String("a"), Bytes(b"x"), Array(), Map(), GeoPoint(), Date()],
)
def test_add_is_only_legal_for_numbers(value: object) -> None:
    """Verify every non-number variant refuses add()."""
    with pytest.raises(InvalidTypeError):
        value.add(Number(1))  # type: ignore[attr-defined]


def test_number_add_rejects_mismatched_operand() -> None:
    with pytest.raises(InvalidTypeError):
        Number(1).add(String("a"))


def test_concatenate_keeps_order() -> None:
    result = Array([Number(1), Number(2)]).concatenate(Array([Number(2), Number(3)]), unique=False)

    assert result == Array([Number(1), Number(2), Number(2), Number(3)])


def test_concatenate_unique_skips_present_elements() -> None:
    """Verify unique concatenation keeps A, then B elements not already present."""
    result = Array([Number(1), Number(2)]).concatenate(
        Array([Number(3), Number(1), Number(3)]), unique=True
    )

    assert result == Array([Number(1), Number(2), Number(3)])


def test_concatenate_does_not_mutate_receiver() -> None:
    base = Array([Number(1)])
    base.concatenate(Array([Number(2)]), unique=False)

    assert base == Array([Number(1)])


def test_differ_removes_every_equal_element() -> None:
    """Verify differ removes all occurrences and preserves order of the rest."""
    result = Array([Number(1), String("a"), Number(1), Number(2)]).differ(Array([Number(1)]))

    assert result == Array([String("a"), Number(2)])


def test_differ_matches_records_by_object_id() -> None:
    result = Array([Record("Tag", "a"), Record("Tag", "b")]).differ(Array([Record("Tag", "a")]))

    assert result == Array([Record("Tag", "b")])


@pytest.mark.parametrize("value", [Number(1), String("a"), Map(), Null()])
def test_concatenate_and_differ_are_only_legal_for_arrays(value: object) -> None:
    with pytest.raises(InvalidTypeError):
        value.concatenate(Array(), unique=False)  # type: ignore[attr-defined]
    with pytest.raises(InvalidTypeError):
        value.differ(Array())  # type: ignore[attr-defined]


def test_array_concatenate_rejects_non_array_operand() -> None:
    with pytest.raises(InvalidTypeError):
        Array().concatenate(Number(1), unique=True)


# --- Children Tests ---


def test_children_of_containers() -> None:
    """Verify children() yields direct elements only."""
    inner = Array([Number(1)])
    outer = Map({"inner": inner, "name": String("x")})

    assert list(outer.children()) == [inner, String("x")]
    assert list(inner.children()) == [Number(1)]
    assert list(Number(1).children()) == []


# --- Coercion Tests ---


def test_coerce_plain_python_objects() -> None:
    """Verify natives map onto the value variants."""
    moment = datetime(2020, 1, 1, tzinfo=timezone.utc)

    assert coerce(None) == Null()
    assert coerce(True) == Boolean(True)
    assert coerce(3) == Number(3)
    assert coerce("s") == String("s")
    assert coerce(b"b") == Bytes(b"b")
    assert coerce(moment) == Date(moment)
    assert coerce([1, "a"]) == Array([Number(1), String("a")])
    assert coerce({"k": [None]}) == Map({"k": Array([Null()])})


def test_coerce_passes_values_through() -> None:
    value = String("x")

    assert coerce(value) is value


def test_coerce_rejects_unknown_types() -> None:
    with pytest.raises(InvalidTypeError):
        coerce(object())
