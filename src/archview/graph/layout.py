"""📐 Layout Engine - Deterministic depth-based tree layout.

Nodes are placed in columns by depth (longest path from any root) and spread
evenly inside each column. Depths are computed with an explicit stack so
deep graphs do not hit the recursion limit, and cycles fall back to depth 0
for the edge that closes the loop.
"""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path

import yaml
from pydantic import BaseModel, Field

from .models import Arch, Position, Table


class CanvasSize(BaseModel):
    """Pixel size of the drawing area."""

    width: float = Field(default=1600, gt=0)
    height: float = Field(default=900, gt=0)


class LayoutConfig(BaseModel):
    """Layout margins and extents, as fractions of the canvas.

    Example (layout.yaml):
        layout:
          start_x: 0.05
          start_y: 0.05
          max_width: 0.9
          max_height: 0.9
    """

    start_x: float = Field(default=0.05, ge=0, le=1)
    start_y: float = Field(default=0.05, ge=0, le=1)
    max_width: float = Field(default=0.9, gt=0, le=1)
    max_height: float = Field(default=0.9, gt=0, le=1)

    @classmethod
    def from_yaml(cls, path: Path | str) -> LayoutConfig:
        """Load configuration from a YAML file."""
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        return cls(**data.get("layout", data))


def compute_depths(node_ids: Iterable[str], arches: Iterable[Arch]) -> dict[str, int]:
    """Longest-path depth of every node reachable through incoming arches.

    Roots (never a target) have depth 0. Any other node sits one level below
    its deepest distinct source. A source whose depth is requested while it
    is still being computed (a cycle) counts as depth 0 for that path.
    """
    incoming: dict[str, list[str]] = {}
    for arch in arches:
        sources = incoming.setdefault(arch.target, [])
        if arch.source not in sources:
            sources.append(arch.source)

    depths: dict[str, int] = {}
    in_progress: set[str] = set()

    for start in node_ids:
        if start in depths:
            continue
        stack = [start]
        while stack:
            node_id = stack[-1]
            if node_id in depths:
                stack.pop()
                continue

            sources = incoming.get(node_id)
            if not sources:
                depths[node_id] = 0
                stack.pop()
                continue

            if node_id not in in_progress:
                in_progress.add(node_id)
                pending = [
                    s for s in sources if s not in depths and s not in in_progress
                ]
                if pending:
                    stack.extend(reversed(pending))
                    continue

            depths[node_id] = 1 + max(depths.get(s, 0) for s in sources)
            in_progress.discard(node_id)
            stack.pop()

    return depths


def layout(
    tables: Iterable[Table],
    arches: Iterable[Arch],
    canvas: CanvasSize | None = None,
    config: LayoutConfig | None = None,
) -> list[Table]:
    """Position tables in depth columns.

    Args:
        tables: Nodes to place
        arches: Edges used to derive depth
        canvas: Drawing area size
        config: Margins and extents

    Returns:
        Copies of the tables with ``position`` set, input order preserved
    """
    tables = list(tables)
    if not tables:
        return []
    canvas = canvas or CanvasSize()
    config = config or LayoutConfig()

    depths = compute_depths([t.id for t in tables], arches)

    columns: dict[int, list[str]] = {}
    for table in tables:
        columns.setdefault(depths.get(table.id, 0), []).append(table.id)
    max_depth = max(columns)

    available_width = canvas.width * config.max_width
    available_height = canvas.height * config.max_height
    start_x = canvas.width * config.start_x
    start_y = canvas.height * config.start_y
    horizontal_gap = available_width / max(max_depth, 1)

    positions: dict[str, Position] = {}
    for depth, column in columns.items():
        x = start_x + depth * horizontal_gap
        vertical_gap = available_height / (len(column) + 1)
        for index, table_id in enumerate(column, start=1):
            positions[table_id] = Position(x=x, y=start_y + index * vertical_gap)

    return [t.model_copy(update={"position": positions[t.id]}) for t in tables]
