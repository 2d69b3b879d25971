"""LeanStore - Client-side data layer for a remote object-storage service."""

from leanstore.client import CQLResult, StorageClient
from leanstore.json_helpers import JSONObject, JSONValue
from leanstore.operations import Operation, OperationKind, OperationReducer
from leanstore.profiler import (
    ClassRegistry,
    ObjectProfiler,
    descendants_to_save,
    validate_circular_reference,
)
from leanstore.query import Constraint, ConstraintKind, Query
from leanstore.record import Record
from leanstore.transport import Method, Request, Response, Transport
from leanstore.types import (
    CircularReferenceError,
    Config,
    InconsistencyError,
    InternalId,
    InvalidTypeError,
    LeanStoreError,
    MalformedDataError,
    NotFoundError,
    ObjectId,
    ReadOnlyError,
    RemoteFailure,
)
from leanstore.values import (
    Array,
    Boolean,
    Bytes,
    Date,
    Distance,
    DistanceUnit,
    GeoPoint,
    Map,
    Null,
    Number,
    Relation,
    String,
    Value,
    coerce,
)

__version__ = "0.1.0"

__all__ = [
    # Client
    "StorageClient",
    "CQLResult",
    # Transport contract
    "Method",
    "Request",
    "Response",
    "Transport",
    # JSON types
    "JSONValue",
    "JSONObject",
    # Values
    "Value",
    "Null",
    "Boolean",
    "Number",
    "String",
    "Bytes",
    "Array",
    "Map",
    "GeoPoint",
    "Distance",
    "DistanceUnit",
    "Date",
    "Relation",
    "Record",
    "coerce",
    # Operations
    "Operation",
    "OperationKind",
    "OperationReducer",
    # Profiler
    "ClassRegistry",
    "ObjectProfiler",
    "descendants_to_save",
    "validate_circular_reference",
    # Query
    "Query",
    "Constraint",
    "ConstraintKind",
    # Core types
    "Config",
    # Branded types
    "ObjectId",
    "InternalId",
    # Exceptions
    "LeanStoreError",
    "InvalidTypeError",
    "MalformedDataError",
    "CircularReferenceError",
    "InconsistencyError",
    "NotFoundError",
    "ReadOnlyError",
    "RemoteFailure",
]
