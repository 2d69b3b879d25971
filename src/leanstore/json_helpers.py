"""Public JSON type definitions for LeanStore.

Only exports types that users need for annotating wire payloads.
Internal helper functions are in leanstore._internal.json_helpers.
"""

from typing import Dict, List, Union

# Represents any valid JSON value
# This is public API - transports return it and users pass it to the profiler
JSONValue = Union[
    None,
    bool,
    int,
    float,
    str,
    List["JSONValue"],
    Dict[str, "JSONValue"],
]

# A JSON object, the shape of every wire document
JSONObject = Dict[str, JSONValue]
