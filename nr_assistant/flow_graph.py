"""Upstream traversal over Node-RED flow documents.

A flow document is a flat list of node dicts.  Each node carries ``id``,
``type`` and ``wires``, a list per output port of downstream node ids:

  [
    {"id": "a", "type": "inject",   "wires": [["b"]]},
    {"id": "b", "type": "function", "wires": [["c"], []]},
    {"id": "c", "type": "debug",    "wires": []},
  ]

Wires only point downstream, so every traversal here starts by inverting
them into a reverse graph (child id → parent ids).  Wires may reference ids
that are not in the document; those are tolerated and simply lead nowhere.
"""

from __future__ import annotations

import copy
import logging
from typing import Any, Iterable, Mapping

logger = logging.getLogger("nr_assistant.flow_graph")

FlowNode = Mapping[str, Any]
ReverseGraph = dict[str, list[str]]

# Keys the editor attaches to nodes at runtime; never part of an exported flow.
_INTERNAL_KEYS: tuple[str, ...] = ("_", "_def", "_config", "validationErrors")
_GROUP_INTERNAL_KEYS: tuple[str, ...] = ("_childGroups", "_parentGroup")
_MAX_GROUP_DEPTH: int = 10

_EXHAUSTED = object()


class CircularReferenceError(ValueError):
    """Raised when an upstream walk re-enters a node already on its path."""

    def __init__(self, node_id: str) -> None:
        self.node_id = node_id
        super().__init__(f"Circular reference detected at node {node_id}")


# ---------------------------------------------------------------------------
# Graph construction
# ---------------------------------------------------------------------------


def _downstream_ids(node: FlowNode) -> list[str]:
    """Flatten a node's per-port wire lists into one ordered id list."""
    wires = node.get("wires") if isinstance(node, Mapping) else None
    if not wires:
        return []
    return [target for port in wires if port for target in port]


def build_reverse_graph(nodes: Iterable[FlowNode]) -> ReverseGraph:
    """Map each downstream id to the ids of the nodes wired into it.

    Parent order is discovery order while scanning *nodes*, which keeps
    tie-breaks in ``find_longest_upstream_path`` reproducible.
    """
    reverse: ReverseGraph = {}
    for node in nodes:
        for target in _downstream_ids(node):
            reverse.setdefault(target, []).append(node["id"])
    return reverse


# ---------------------------------------------------------------------------
# Longest upstream path
# ---------------------------------------------------------------------------


def find_longest_upstream_path(graph: Mapping[str, list[str]], start_id: str) -> list[str]:
    """Return the longest chain of ancestors ending at *start_id*.

    The result is oldest-first and includes *start_id* as its last element.
    The longest parent chain wins; on equal length the first parent in
    ``graph[id]`` order is kept.

    The walk uses an explicit stack so very long chains cannot hit the
    interpreter's recursion limit.  ``on_path`` holds only the ids of the
    current descent, so diamonds (two children sharing an ancestor) are fine,
    while re-entering an id still on the path raises
    ``CircularReferenceError``.  Finished nodes are memoized: a node whose
    ancestry was fully explored has no reachable cycle and a fixed answer.

    Raises:
        CircularReferenceError: a cycle is reachable upstream of *start_id*.
    """
    finished: dict[str, list[str]] = {}
    on_path: set[str] = {start_id}
    # frame: [node_id, parent iterator, best parent chain so far]
    stack: list[list[Any]] = [[start_id, iter(graph.get(start_id) or ()), []]]

    while stack:
        frame = stack[-1]
        parent = next(frame[1], _EXHAUSTED)

        if parent is _EXHAUSTED:
            stack.pop()
            node_id = frame[0]
            on_path.discard(node_id)
            chain = [*frame[2], node_id]
            finished[node_id] = chain
            if stack and len(chain) > len(stack[-1][2]):
                stack[-1][2] = chain
            continue

        if parent in on_path:
            raise CircularReferenceError(parent)

        known = finished.get(parent)
        if known is not None:
            if len(known) > len(frame[2]):
                frame[2] = known
            continue

        on_path.add(parent)
        stack.append([parent, iter(graph.get(parent) or ()), []])

    return list(finished[start_id])


def get_longest_upstream_path(nodes: Iterable[FlowNode], final_node_id: str) -> list[FlowNode]:
    """Return the node dicts on the longest path feeding *final_node_id*.

    Oldest ancestor first.  The final node itself is never included, and ids
    with no node in the document (dangling wires) are dropped.  An unknown
    *final_node_id* yields ``[]``.

    Raises:
        CircularReferenceError: propagated from the traversal.
    """
    nodes = list(nodes)
    reverse = build_reverse_graph(nodes)
    by_id = {node["id"]: node for node in nodes if isinstance(node, Mapping) and "id" in node}
    path_ids = find_longest_upstream_path(reverse, final_node_id)
    return [by_id[i] for i in path_ids if i != final_node_id and i in by_id]


# ---------------------------------------------------------------------------
# Flow cleaning
# ---------------------------------------------------------------------------


def clean_flow(flow: FlowNode | list[FlowNode] | None) -> tuple[list[dict[str, Any]], int]:
    """Strip editor-internal properties from a node or list of nodes.

    Group nodes are cleaned recursively (down to ``_MAX_GROUP_DEPTH``) and
    lose their parent/child back-references.  Entries that are not dicts,
    have no ``id`` or repeat an id already seen are dropped.

    Returns ``(cleaned_nodes, node_count)`` where *node_count* includes nested
    group members.  The input is left untouched.
    """
    if not flow:
        return [], 0
    items = flow if isinstance(flow, list) else [flow]
    seen: set[str] = set()
    count = 0

    def _clean(node: Any, depth: int) -> dict[str, Any] | None:
        nonlocal count
        if not isinstance(node, Mapping) or not node.get("id"):
            return None
        if node["id"] in seen or depth > _MAX_GROUP_DEPTH:
            return None
        seen.add(node["id"])
        count += 1

        is_group = node.get("type") == "group"
        skip = _INTERNAL_KEYS + (_GROUP_INTERNAL_KEYS + ("nodes",) if is_group else ())
        cleaned = {k: copy.deepcopy(v) for k, v in node.items() if k not in skip}
        if is_group:
            children = node.get("nodes")
            cleaned["nodes"] = []
            if isinstance(children, list):
                for child in children:
                    kept = _clean(child, depth + 1)
                    if kept is not None:
                        cleaned["nodes"].append(kept)
        return cleaned

    result = [c for c in (_clean(n, 0) for n in items) if c is not None]
    logger.debug("clean_flow kept %d of %d top-level nodes", len(result), len(items))
    return result, count
