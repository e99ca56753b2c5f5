"""Status Tree - tagged object/array/scalar tree for schema-less controller status data.

Invariants:
    - from_json never raises: anything that is not a dict or list becomes a ScalarNode
    - Object field order is the order the controller sent
    - Array items are visited as children with an empty key
"""

from dataclasses import dataclass, field
from typing import Union


@dataclass(frozen=True)
class ScalarNode:
    value: str | int | float | bool | None


@dataclass(frozen=True)
class ArrayNode:
    items: tuple["StatusNode", ...] = ()


@dataclass(frozen=True)
class ObjectNode:
    fields: dict[str, "StatusNode"] = field(default_factory=dict)


StatusNode = Union[ObjectNode, ArrayNode, ScalarNode]


def from_json(value: object) -> StatusNode:
    if isinstance(value, dict):
        return ObjectNode({str(k): from_json(v) for k, v in value.items()})
    if isinstance(value, (list, tuple)):
        return ArrayNode(tuple(from_json(v) for v in value))
    if value is None or isinstance(value, (str, int, float, bool)):
        return ScalarNode(value)
    return ScalarNode(str(value))


def children(node: StatusNode) -> list[tuple[str, StatusNode]]:
    """(key, child) pairs; array items have key ''."""
    if isinstance(node, ObjectNode):
        return list(node.fields.items())
    if isinstance(node, ArrayNode):
        return [("", item) for item in node.items]
    return []


def child(node: StatusNode | None, key: str) -> StatusNode | None:
    if isinstance(node, ObjectNode):
        return node.fields.get(key)
    return None


def find_path(node: StatusNode | None, *keys: str) -> StatusNode | None:
    for key in keys:
        node = child(node, key)
        if node is None:
            return None
    return node


def is_empty(node: StatusNode | None) -> bool:
    if node is None:
        return True
    if isinstance(node, ScalarNode):
        return node.value is None or node.value == ""
    return not children(node)


def scalar_text(node: StatusNode | None) -> str | None:
    """Text of a scalar (bools excluded); None for containers and nulls."""
    if not isinstance(node, ScalarNode) or node.value is None:
        return None
    if isinstance(node.value, bool):
        return None
    return str(node.value)


def collect_names(node: StatusNode | None) -> list[str]:
    """Every object key and string leaf at any depth, trimmed, deduplicated, sorted."""
    if node is None:
        return []
    names: set[str] = set()

    def add(value: str) -> None:
        trimmed = value.strip()
        if trimmed:
            names.add(trimmed)

    stack = [node]
    while stack:
        current = stack.pop()
        for key, item in children(current):
            if key:
                add(key)
            if isinstance(item, ScalarNode) and isinstance(item.value, str):
                add(item.value)
            if children(item):
                stack.append(item)
    return sorted(names)
