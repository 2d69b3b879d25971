"""Unit tests for the object profiler and record graph validation."""

from datetime import datetime, timezone

import pytest

from leanstore import (
    Array,
    Bytes,
    CircularReferenceError,
    ClassRegistry,
    Date,
    GeoPoint,
    InvalidTypeError,
    MalformedDataError,
    Map,
    Null,
    Number,
    ObjectProfiler,
    Query,
    Record,
    Relation,
    String,
    descendants_to_save,
    validate_circular_reference,
)

# --- Decoding Tests ---


def test_decode_primitives_and_containers() -> None:
    profiler = ObjectProfiler()

    assert profiler.decode(None) == Null()
    assert profiler.decode(3) == Number(3)
    assert profiler.decode(["a", {"b": True}]) == Array(
        [String("a"), Map({"b": profiler.decode(True)})]
    )


def test_decode_typed_documents() -> None:
    """Verify every '__type' document decodes into its value variant."""
    profiler = ObjectProfiler()

    assert profiler.decode({"__type": "Bytes", "base64": "aGVsbG8="}) == Bytes(b"hello")
    assert profiler.decode({"__type": "Date", "iso": "2016-04-19T06:11:27.123Z"}) == Date(
        datetime(2016, 4, 19, 6, 11, 27, 123000, tzinfo=timezone.utc)
    )
    assert profiler.decode({"__type": "GeoPoint", "latitude": 1, "longitude": 2}) == GeoPoint(1, 2)
    assert profiler.decode({"__type": "Relation", "className": "Tag"}) == Relation("Tag")


def test_decode_pointer_creates_stub() -> None:
    pointer = {"__type": "Pointer", "className": "Todo", "objectId": "abc"}

    record = ObjectProfiler().decode(pointer)

    assert isinstance(record, Record)
    assert record.object_id == "abc"
    assert record.keys() == ["objectId"]


def test_decode_object_uses_registered_subclass() -> None:
    registry = ClassRegistry()

    @registry.register
    class Todo(Record):
        pass

    record = ObjectProfiler(registry).decode(
        {"__type": "Object", "className": "Todo", "objectId": "abc", "title": "x"}
    )

    assert isinstance(record, Todo)
    assert record["title"] == String("x")
    assert "Todo" in registry


def test_registries_are_isolated() -> None:
    registry = ClassRegistry()

    @registry.register
    class Todo(Record):
        pass

    record = ObjectProfiler(ClassRegistry()).decode(
        {"__type": "Pointer", "className": "Todo", "objectId": "abc"}
    )

    assert type(record) is Record


def test_decode_unknown_type_raises() -> None:
    with pytest.raises(MalformedDataError, match="Unknown data type"):
        ObjectProfiler().decode({"__type": "File", "url": "x"})


@pytest.mark.parametrize("encoded", ["not base64!", "é", "aGVsbG8"])
def test_decode_invalid_base64_raises(encoded: str) -> None:
    """Verify malformed and non-ASCII base64 both raise MalformedDataError."""
    with pytest.raises(MalformedDataError):
        ObjectProfiler().decode({"__type": "Bytes", "base64": encoded})


def test_decode_invalid_date_raises() -> None:
    with pytest.raises(MalformedDataError):
        ObjectProfiler().decode({"__type": "Date", "iso": "yesterday"})


def test_decode_missing_field_raises() -> None:
    with pytest.raises(MalformedDataError):
        ObjectProfiler().decode({"__type": "Pointer", "className": "Todo"})


# --- Rehydration Tests ---


def test_object_from_dict_converts_timestamps() -> None:
    """Verify createdAt/updatedAt strings become Dates and no operation is pending."""
    record = ObjectProfiler().object_from_dict(
        {
            "objectId": "abc",
            "createdAt": "2016-04-19T06:11:27.123Z",
            "updatedAt": "2016-04-20T06:11:27.000Z",
            "title": "x",
            "tags": {"__type": "Relation", "className": "Tag"},
        },
        "Todo",
    )

    assert record.class_name == "Todo"
    assert record.object_id == "abc"
    assert record.created_at is not None
    assert record.created_at.iso_string == "2016-04-19T06:11:27.123Z"
    assert record.updated_at is not None
    assert not record.has_pending_changes
    assert record.relation("tags").query().class_name == "Tag"


def test_object_from_dict_rejects_non_object_acl() -> None:
    with pytest.raises(MalformedDataError):
        ObjectProfiler().object_from_dict({"objectId": "abc", "ACL": "public"}, "Todo")


def test_update_record_records_no_operations() -> None:
    record = Record("Todo", "abc")

    ObjectProfiler().update_record(record, {"title": "x", "count": 2})

    assert record["count"] == Number(2)
    assert record.operations.is_empty


# --- Serialization Tests ---


def test_serialize_new_record_emits_literal_fields() -> None:
    record = Record("Todo")
    record.set("title", "x")
    record.increase("likes", 2)
    record.append("tags", "a")

    assert ObjectProfiler().serialize(record) == {"title": "x", "likes": 2, "tags": ["a"]}


def test_serialize_persisted_record_emits_operations() -> None:
    record = Record("Todo", "abc")
    record.increase("likes", 2)
    record.unset("title")

    assert ObjectProfiler().serialize(record) == {
        "likes": {"__op": "Increment", "amount": 2},
        "title": {"__op": "Delete"},
    }


def test_serialize_new_record_emits_relation_operations() -> None:
    record = Record("Todo")
    record.insert_relation("tags", Record("Tag", "t1"))

    assert ObjectProfiler().serialize(record) == {
        "tags": {
            "__op": "AddRelation",
            "objects": [{"__type": "Pointer", "className": "Tag", "objectId": "t1"}],
        }
    }


def test_serialize_embeds_saved_records_as_pointers() -> None:
    record = Record("Todo")
    record.set("owner", Record("User", "u1"))

    assert ObjectProfiler().serialize(record) == {
        "owner": {"__type": "Pointer", "className": "User", "objectId": "u1"}
    }


def test_serialize_unsaved_reference_raises() -> None:
    record = Record("Todo")
    record.set("owner", Record("User"))

    with pytest.raises(InvalidTypeError):
        ObjectProfiler().serialize(record)


def test_serialized_record_rehydrates_to_equal_fields() -> None:
    """Verify a decoded save body yields the same field values."""
    profiler = ObjectProfiler()
    record = Record("Todo")
    record.set("title", "x")
    record.set("blob", b"\x00\x01")
    record.set("when", datetime(2020, 1, 2, 3, 4, 5, tzinfo=timezone.utc))
    record.set("where", GeoPoint(1.5, 2.5))
    record.set("meta", {"nested": [1, "two"]})

    restored = profiler.object_from_dict(profiler.serialize(record), "Todo")

    assert restored == record


# --- Wire Value Tests ---


def test_wire_value_of_plain_parameters() -> None:
    profiler = ObjectProfiler()

    assert profiler.wire_value({"n": 1, "list": [Record("Todo", "abc")]}) == {
        "n": 1,
        "list": [{"__type": "Pointer", "className": "Todo", "objectId": "abc"}],
    }
    assert profiler.wire_value(Query("Todo")) == {"className": "Todo"}


# --- Graph Validation Tests ---


def test_self_reference_is_circular() -> None:
    record = Record("Todo")
    record.set("parent", record)

    with pytest.raises(CircularReferenceError):
        validate_circular_reference(record)


def test_cycle_through_containers_is_circular() -> None:
    """Verify a record reached again through an array and a map is a cycle."""
    a = Record("Todo")
    b = Record("Todo")
    a.set("children", [b])
    b.set("meta", {"back": a})

    with pytest.raises(CircularReferenceError):
        validate_circular_reference(a)


def test_shared_descendant_is_not_circular() -> None:
    """Verify the same record reachable twice without a cycle is accepted."""
    shared = Record("Tag")
    root = Record("Todo")
    root.set("first", shared)
    root.set("second", [shared])

    validate_circular_reference(root)


def test_descendants_are_ordered_children_first() -> None:
    leaf = Record("Tag")
    middle = Record("List")
    middle.set("tag", leaf)
    root = Record("Todo")
    root.set("list", middle)
    root.set("also", [leaf])

    assert descendants_to_save(root) == [leaf, middle, root]


def test_descendants_skip_unchanged_records() -> None:
    saved = Record("Tag", "t1")
    root = Record("Todo", "abc")
    root.set("tag", saved)

    result = descendants_to_save(root)

    assert len(result) == 1
    assert result[0] is root
