"""🕸️ Lineage Graph - Derivation, traversal, filtering and layout.

Pure functions over in-memory collections:
- derive_arches / build_tables: operations + events → nodes and edges
- closure: ancestor/descendant set for focus mode
- filter_tables / filter_arches: attribute filters
- layout: depth-based positions
- build_view: renderer view model
"""

from .connection import ArchDraft, ConnectionWorkflow, DoubleClickDetector
from .derivation import build_tables, derive_arches
from .filters import filter_arches, filter_tables, search_tables
from .keys import ArchKey, arch_id, arch_key, stage_0_id
from .layout import CanvasSize, LayoutConfig, compute_depths, layout
from .models import (
    AggregatedEvent,
    Arch,
    ArchEvent,
    Event,
    FilterCriteria,
    LabelMappings,
    Operation,
    Position,
    Table,
    TableColumn,
    TableMappings,
)
from .stats import ArchStatistics, arch_statistics
from .traversal import closure, downstream, upstream
from .view import GraphView, arch_color, build_view

__all__ = [
    "AggregatedEvent",
    "Arch",
    "ArchDraft",
    "ArchEvent",
    "ArchKey",
    "ArchStatistics",
    "CanvasSize",
    "ConnectionWorkflow",
    "DoubleClickDetector",
    "Event",
    "FilterCriteria",
    "GraphView",
    "LabelMappings",
    "LayoutConfig",
    "Operation",
    "Position",
    "Table",
    "TableColumn",
    "TableMappings",
    "arch_color",
    "arch_id",
    "arch_key",
    "arch_statistics",
    "build_tables",
    "build_view",
    "closure",
    "compute_depths",
    "derive_arches",
    "downstream",
    "filter_arches",
    "filter_tables",
    "layout",
    "search_tables",
    "stage_0_id",
    "upstream",
]
