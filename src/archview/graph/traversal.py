"""🧭 Graph Traversal - Ancestor/descendant closure for focus mode.

Arches are user-editable, so the graph is not guaranteed to be acyclic.
Walks are iterative and share one visited set keyed by (node, direction):
a node is expanded at most once per direction, which bounds the walk on
cycles while still reaching the descendants of an ancestor that sits on a
cycle through the root.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable
from typing import Literal

from .models import Arch

Direction = Literal["up", "down"]


def _adjacency(arches: Iterable[Arch]) -> tuple[dict[str, list[str]], dict[str, list[str]]]:
    parents: dict[str, list[str]] = {}
    children: dict[str, list[str]] = {}
    for arch in arches:
        parents.setdefault(arch.target, []).append(arch.source)
        children.setdefault(arch.source, []).append(arch.target)
    return parents, children


def _walk(
    root_id: str,
    arches: Iterable[Arch],
    directions: tuple[Direction, ...],
) -> set[str]:
    parents, children = _adjacency(arches)
    neighbours = {"up": parents, "down": children}

    visited: set[tuple[str, Direction]] = set()
    queue: deque[tuple[str, Direction]] = deque()
    for direction in directions:
        visited.add((root_id, direction))
        queue.append((root_id, direction))

    while queue:
        node_id, direction = queue.popleft()
        for next_id in neighbours[direction].get(node_id, ()):
            step = (next_id, direction)
            if step not in visited:
                visited.add(step)
                queue.append(step)

    return {node_id for node_id, _ in visited}


def upstream(root_id: str, arches: Iterable[Arch]) -> set[str]:
    """The root and every node it (transitively) reads from."""
    return _walk(root_id, arches, ("up",))


def downstream(root_id: str, arches: Iterable[Arch]) -> set[str]:
    """The root and every node (transitively) fed by it."""
    return _walk(root_id, arches, ("down",))


def closure(root_id: str, arches: Iterable[Arch]) -> set[str]:
    """Ancestors and descendants of ``root_id``, including the root itself.

    Example:
        # raw -> agg -> report
        closure("agg", arches)   # {"raw", "agg", "report"}
    """
    return _walk(root_id, list(arches), ("up", "down"))
