"""Lane Heuristics - correlate spool ids with controller lanes in free-form status data.

Invariants:
    - Never raises on malformed input; each step degrades to "not found"
    - Spool id search is first-match-wins over an explicit stack: a node's children are
      checked in order before any subtree is entered, subtrees are entered last-pushed first
    - A lane index is claimed at most once per pass; taken or missing indices fall back to
      the next unused non-negative integer
    - Two lanes with the same spool id: the first lane (in sorted lane-name order) is kept,
      the second becomes a collision warning
"""

from dataclasses import dataclass, field
from typing import Iterable

from spoolsync.core.errors import ConsistencyWarning, ErrorContext
from spoolsync.core.status_tree import (
    ScalarNode,
    StatusNode,
    child,
    children,
    is_empty,
    scalar_text,
)

LANES_OBJECT = "AFC"
LANE_FIELDS = [
    "name",
    "lane",
    "spool_id",
    "loaded_spool_id",
    "spool",
    "spoolman",
    "spoolman_spool_id",
    "metadata",
]


@dataclass(frozen=True)
class LaneInfo:
    lane_index: int
    lane_label: str
    lane_name: str = ""


@dataclass
class LaneResolution:
    ok: bool = True
    lanes: dict[int, LaneInfo] = field(default_factory=dict)
    collisions: list[ConsistencyWarning] = field(default_factory=list)
    unresolved: list[str] = field(default_factory=list)


def lane_object_names(lane_name: str) -> tuple[str, str]:
    """The two object names the controller may use for one lane."""
    return f"AFC_stepper {lane_name}", f"AFC_lane {lane_name}"


def build_lane_query(lane_names: Iterable[str]) -> dict[str, list[str]]:
    objects: dict[str, list[str]] = {}
    for lane_name in lane_names:
        for object_name in lane_object_names(lane_name):
            objects[object_name] = list(LANE_FIELDS)
    return objects


def parse_lane_integer(text: str | None) -> int | None:
    """Whole string as an integer, else all of its digits concatenated, else None."""
    if text is None:
        return None
    trimmed = text.strip()
    if not trimmed:
        return None
    if trimmed.isdigit():
        return int(trimmed)
    digits = "".join(ch for ch in trimmed if ch.isdigit())
    return int(digits) if digits else None


def _integer_value(node: StatusNode | None) -> int | None:
    if not isinstance(node, ScalarNode) or isinstance(node.value, bool):
        return None
    value = node.value
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        return parse_lane_integer(value)
    return None


def _positive_id(node: StatusNode) -> int | None:
    value = _integer_value(node)
    return value if value is not None and value > 0 else None


def _looks_like_spool_id(key_lower: str, spool_related: bool) -> bool:
    return (
        "spool_id" in key_lower
        or "spoolman_id" in key_lower
        or (spool_related and "id" in key_lower)
    )


def find_spool_id(root: StatusNode) -> int | None:
    stack: list[tuple[StatusNode, bool]] = [(root, False)]
    while stack:
        node, spool_related = stack.pop()
        for key, item in children(node):
            key_lower = key.lower()
            item_related = spool_related or "spool" in key_lower
            if _looks_like_spool_id(key_lower, item_related):
                spool_id = _positive_id(item)
                if spool_id is not None:
                    return spool_id
            stack.append((item, item_related))
    return None


def extract_lane_index(lane_name: str, nodes: list[StatusNode]) -> int | None:
    for node in nodes:
        value = _integer_value(child(node, "lane"))
        if value is not None and value >= 0:
            return value
    for node in nodes:
        value = parse_lane_integer(scalar_text(child(node, "name")))
        if value is not None:
            return value
    return parse_lane_integer(lane_name)


def extract_lane_label(lane_name: str, lane_index: int, nodes: list[StatusNode]) -> str:
    for node in nodes:
        label = (scalar_text(child(node, "name")) or "").strip()
        if label:
            return label
    label = lane_name.strip()
    if label:
        return label
    return f"Lane {lane_index}"


class _LaneIndexAllocator:
    def __init__(self):
        self._used: set[int] = set()
        self._next = 0

    def claim(self, preferred: int | None) -> int:
        if preferred is not None and preferred not in self._used:
            self._used.add(preferred)
            if preferred >= self._next:
                self._next = preferred + 1
            return preferred
        while self._next in self._used:
            self._next += 1
        allocated = self._next
        self._used.add(allocated)
        self._next += 1
        return allocated


def resolve_lanes(lane_names: Iterable[str], status: StatusNode | None) -> LaneResolution:
    """Build spool id -> lane placement from a lane-object status response."""
    resolution = LaneResolution()
    if status is None:
        return resolution

    allocator = _LaneIndexAllocator()
    for lane_name in lane_names:
        nodes = [
            node for node in (child(status, name) for name in lane_object_names(lane_name))
            if not is_empty(node)
        ]
        if not nodes:
            continue

        spool_id = next(
            (found for found in (find_spool_id(node) for node in nodes) if found is not None),
            None,
        )
        if spool_id is None:
            resolution.unresolved.append(lane_name)
            continue

        lane_index = allocator.claim(extract_lane_index(lane_name, nodes))
        info = LaneInfo(lane_index, extract_lane_label(lane_name, lane_index, nodes), lane_name)

        kept = resolution.lanes.get(spool_id)
        if kept is not None:
            resolution.collisions.append(ConsistencyWarning(
                f"Spool {spool_id} is assigned to multiple lanes: "
                f"keeping '{kept.lane_name}', ignoring '{lane_name}'",
                "LANE_COLLISION",
                ErrorContext(entity_kind="spool", entity_id=spool_id),
            ))
            continue
        resolution.lanes[spool_id] = info
    return resolution
