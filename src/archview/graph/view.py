"""🎨 View Model - Positioned nodes and styled edges for the renderer."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .models import Arch, Position, Table

ARCH_COLORS = {
    "insert_stage_0": "#4361ee",
    "insert_stage_1": "#4cc9f0",
    "insert_upsert": "#7209b7",
    "insert_custom": "#f72585",
}
DEFAULT_ARCH_COLOR = "#aaa"
ALERT_ARCH_COLOR = "#000000"
ANIMATED_STATUSES = ("pending", "in_progress")

STROKE_WIDTH = 2
ARROW_SIZE = 15


def arch_color(operation_type: str, status: str | None = None, locked: bool = False) -> str:
    """Stroke color for an arch; failures and locked targets turn black."""
    if status == "failure" or status == "locked" or locked:
        return ALERT_ARCH_COLOR
    return ARCH_COLORS.get(operation_type, DEFAULT_ARCH_COLOR)


def is_animated(status: str | None) -> bool:
    return status in ANIMATED_STATUSES


class NodeView(BaseModel):
    id: str
    data: dict[str, Any]
    position: Position
    draggable: bool = True


class EdgeView(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    source: str
    target: str
    animated: bool = False
    stroke_color: str = Field(default=DEFAULT_ARCH_COLOR, serialization_alias="strokeColor")
    stroke_width: int = Field(default=STROKE_WIDTH, serialization_alias="strokeWidth")
    arrow_size: int = Field(default=ARROW_SIZE, serialization_alias="arrowSize")
    data: dict[str, Any] = Field(default_factory=dict)


class GraphView(BaseModel):
    nodes: list[NodeView] = Field(default_factory=list)
    edges: list[EdgeView] = Field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Renderer payload with camelCase edge style keys."""
        return self.model_dump(mode="json", by_alias=True)


def node_view(table: Table, focused_id: str | None = None) -> NodeView:
    data = table.model_dump(mode="json", exclude={"position"})
    data["is_focused"] = focused_id == table.id
    return NodeView(id=table.id, data=data, position=table.position or Position())


def edge_view(arch: Arch, locked: bool = False) -> EdgeView:
    return EdgeView(
        id=arch.arch_id,
        source=arch.source,
        target=arch.target,
        animated=is_animated(arch.status),
        stroke_color=arch_color(arch.operation_type, arch.status, locked),
        data=arch.model_dump(mode="json", exclude={"events"}),
    )


def build_view(
    tables: Iterable[Table],
    arches: Iterable[Arch],
    arch_ids: Iterable[str] | None = None,
    focused_id: str | None = None,
) -> GraphView:
    """Assemble the renderer view model.

    Args:
        tables: Positioned tables to draw
        arches: All arches
        arch_ids: Ids of arches that survived filtering (None = all)
        focused_id: Node currently in focus, flagged in its data
    """
    tables = list(tables)
    visible = set(arch_ids) if arch_ids is not None else None
    locked_ids = {t.id for t in tables if t.locked}

    edges = [
        edge_view(arch, locked=arch.target in locked_ids)
        for arch in arches
        if visible is None or arch.arch_id in visible
    ]
    return GraphView(nodes=[node_view(t, focused_id) for t in tables], edges=edges)
