"""Nested view of a collection's flat item rows."""

from collections.abc import Iterable, Mapping
from typing import Any


def build_tree(items: Iterable[Mapping[str, Any]]) -> list[dict[str, Any]]:
    """Nest flat ``{id, parent_id, sort_order, ...}`` items under their parents.

    Siblings are ordered by ``(sort_order, id)``. Items whose parent is not in
    the input are treated as roots. Uses an explicit stack, so nesting depth
    is not bounded by the interpreter's recursion limit.
    """
    nodes: dict[int, dict[str, Any]] = {}
    children: dict[int | None, list[int]] = {}
    for item in items:
        node = {key: value for key, value in item.items() if key != "collection_id"}
        node["children"] = []
        item_id = int(item["id"])
        nodes[item_id] = node
        parent = item.get("parent_id")
        children.setdefault(int(parent) if parent is not None else None, []).append(item_id)

    def _order(item_id: int) -> tuple[int, int]:
        return int(nodes[item_id].get("sort_order") or 0), item_id

    root_ids = list(children.get(None, []))
    root_ids.extend(
        item_id
        for parent_id, ids in children.items()
        if parent_id is not None and parent_id not in nodes
        for item_id in ids
    )
    root_ids.sort(key=_order)

    visited: set[int] = set()
    stack = list(root_ids)
    while stack:
        item_id = stack.pop()
        if item_id in visited:
            continue
        visited.add(item_id)
        child_ids = sorted(children.get(item_id, []), key=_order)
        nodes[item_id]["children"] = [nodes[child] for child in child_ids]
        stack.extend(child_ids)
    return [nodes[item_id] for item_id in root_ids]
