"""
JSON value model.

Payloads are opaque JSON values: ``None``, ``bool``, ``int``/``float``,
``str``, ``list`` or ``dict`` with string keys (insertion ordered). Every
traversal in the query engine goes through the helpers below so the rules for
stepping into a value live in one place.
"""
from typing import Any, Iterator, Union
import orjson

JsonValue = Union[None, bool, int, float, str, list["JsonValue"], dict[str, "JsonValue"]]

# Sentinel distinguishing "resolved to null" from "did not resolve"
MISSING = object()


def render(value: Any) -> str:
    """Render a value as compact JSON text."""
    return orjson.dumps(value).decode("utf-8")


def stringify(value: Any) -> str:
    """Strings pass through unchanged; anything else is JSON-rendered."""
    if isinstance(value, str):
        return value
    return render(value)


def is_container(value: Any) -> bool:
    return isinstance(value, (dict, list))


def step(value: JsonValue, segment: str) -> Any:
    """
    Step one path segment into a value.

    Objects are indexed by key and arrays by decimal index. Returns
    ``MISSING`` when the segment does not exist or the value is a scalar.
    """
    if isinstance(value, dict):
        return value.get(segment, MISSING)
    if isinstance(value, list):
        if not segment.isdecimal():
            return MISSING
        index = int(segment)
        if index >= len(value):
            return MISSING
        return value[index]
    return MISSING


def resolve_path(root: JsonValue, path: str) -> Any:
    """
    Resolve a dot-separated path from ``root``.

    Resolution stops at the first missing segment and yields ``MISSING``.
    """
    current = root
    for segment in path.split("."):
        current = step(current, segment)
        if current is MISSING:
            return MISSING
    return current


def iter_properties(root: JsonValue) -> Iterator[tuple[str, JsonValue]]:
    """
    Yield every ``(key, value)`` object property reachable from ``root``.

    Depth-first over an explicit stack so deeply nested payloads cannot
    exhaust the interpreter's recursion limit. Visit order is unspecified.
    """
    stack = [root]
    while stack:
        current = stack.pop()
        if isinstance(current, dict):
            for key, value in current.items():
                yield key, value
                if is_container(value):
                    stack.append(value)
        elif isinstance(current, list):
            stack.extend(item for item in current if is_container(item))
