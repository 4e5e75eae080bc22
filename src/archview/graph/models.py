"""🧱 Lineage Models - Tables, arches and the raw records they come from.

One canonical model per entity. Optional fields are explicit ``None`` rather
than "maybe present" attributes, and lazily loaded collections use ``None``
to mean "not fetched yet" (an empty list means "fetched, nothing there").
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from .keys import ArchKey, arch_id, arch_key, is_stage_0_id

OperationType = Literal[
    "insert_stage_0",
    "insert_stage_1",
    "insert_upsert",
    "insert_custom",
    "wait",
]
OperationStatus = Literal["pending", "in_progress", "failure", "hold"]
ArchStatus = Literal["pending", "in_progress", "failure", "hold", "empty"]
ParamsType = Literal["batch_ids", "time_range"]

RAW_INGEST: OperationType = "insert_stage_0"
TRANSFORM: OperationType = "insert_stage_1"
UPSERT: OperationType = "insert_upsert"
CUSTOM_MERGE: OperationType = "insert_custom"
WAIT: OperationType = "wait"


class Position(BaseModel):
    """2-D position of a node on the canvas."""

    x: float = 0.0
    y: float = 0.0


class TableColumn(BaseModel):
    """A column; nested types (arrays, records, maps) hold child columns."""

    name: str
    type: str | list[TableColumn] | dict[str, TableColumn] = "string"


class Table(BaseModel):
    """A node of the lineage graph.

    ``id`` is the join key used by every arch. For real tables it equals
    ``source_id``; stage-0 pseudo nodes use ``stage_0.<source_id>`` and
    factory pseudo nodes use the factory id.
    """

    id: str
    source_id: str
    source_name: str = ""
    datafactory_id: str = ""
    datafactory_name: str = ""
    project_id: str = ""
    project_name: str = ""
    table_name: str = ""
    row_count: int = 0
    size_in_mb: float = 0
    columns: list[TableColumn] | None = None
    last_updated: datetime | None = None
    locked: bool | None = None
    position: Position | None = None
    is_datafactory: bool = False

    @property
    def is_stage_0(self) -> bool:
        return is_stage_0_id(self.id)

    @property
    def columns_loaded(self) -> bool:
        return self.columns is not None

    @property
    def display_name(self) -> str:
        return self.source_name or self.id


class Operation(BaseModel):
    """Current/latest known state of a pipeline edge (operations manager)."""

    source_table_id: str
    sink_table_id: str
    datafactory_id: str = ""
    operation_type: OperationType
    is_running: bool = False
    status: OperationStatus = "pending"
    params_type: ParamsType = "batch_ids"
    created_at: datetime | None = None
    last_update_time: datetime | None = None


class Event(BaseModel):
    """A single historical execution of an operation."""

    source_table_id: str
    sink_table_id: str
    datafactory_id: str = ""
    operation_id: str = ""
    batch_id: int = 0
    operation_type: OperationType
    params_type: ParamsType = "batch_ids"
    params: list[str | int] = Field(default_factory=list)
    rows_added: int = 0
    bytes_added: int = 0
    event_time: datetime


class AggregatedEvent(BaseModel):
    """Rollup of events per (source, sink, factory, operation, params type)."""

    source_table_id: str
    sink_table_id: str
    datafactory_id: str = ""
    operation_type: OperationType
    params_type: ParamsType = "batch_ids"
    total_rows: int = 0
    total_size: int = 0
    batches_count: int = 0
    events_count: int = 0
    last_updated: datetime | None = None


class ArchEvent(BaseModel):
    """One entry of an arch's execution history."""

    timestamp: datetime
    rows_affected: int = 0
    bytes_affected: int = 0
    duration_ms: int = 0
    params_type: ParamsType | None = None
    batch_id: int | None = None

    @classmethod
    def from_event(cls, event: Event) -> ArchEvent:
        return cls(
            timestamp=event.event_time,
            rows_affected=event.rows_added,
            bytes_affected=event.bytes_added,
            params_type=event.params_type,
            batch_id=event.batch_id,
        )


class Transformation(BaseModel):
    """Field-level mapping applied by a transform (stage-1) arch."""

    field_name: str
    function_name: str
    params: list[dict[str, str]] = Field(default_factory=list)
    transformation_type: Literal["replace", "add"] = "add"


class Arch(BaseModel):
    """An edge of the lineage graph.

    ``source``/``target`` are the displayed node ids (possibly synthetic
    stage-0 or factory ids); ``source_table_id``/``sink_table_id`` keep the
    real ids used to query the data-access services.
    """

    source: str
    target: str
    operation_type: OperationType
    status: ArchStatus = "empty"
    id: str | None = None

    source_table_id: str = ""
    sink_table_id: str = ""
    operation: Operation | None = None
    aggregate: AggregatedEvent | None = None

    # Edge metadata, fetched lazily on selection
    primary_key: str | None = None
    order_by: str | None = None
    merge_statement: str | None = None
    sql_query: str | None = None
    transformations: list[Transformation] | None = None
    metadata_loaded: bool = False

    # Execution history, fetched lazily and keyed by the date range used
    events: list[ArchEvent] | None = None
    events_range: tuple[datetime | None, datetime | None] | None = None

    @property
    def arch_id(self) -> str:
        return arch_id(self)

    @property
    def key(self) -> ArchKey:
        return arch_key(self)

    @property
    def is_running(self) -> bool:
        return bool(self.operation and self.operation.is_running)

    def latest_event(self) -> ArchEvent | None:
        """Most recent event by timestamp, or None when there is no history."""
        if not self.events:
            return None
        return max(self.events, key=lambda event: event.timestamp)


class LabelMappings(BaseModel):
    """Id → display label maps returned by the metadata service."""

    datafactories: dict[str, str] = Field(default_factory=dict)
    projects: dict[str, str] = Field(default_factory=dict)
    sources: dict[str, str] = Field(default_factory=dict)
    table_names: dict[str, str] = Field(default_factory=dict)

    def datafactory(self, datafactory_id: str) -> str:
        return self.datafactories.get(datafactory_id) or datafactory_id

    def project(self, project_id: str) -> str:
        return self.projects.get(project_id) or project_id

    def source(self, source_id: str) -> str:
        return self.sources.get(source_id) or source_id

    def table_name(self, source_id: str) -> str:
        return self.table_names.get(source_id) or source_id


class TableMappings(BaseModel):
    """Ownership cross-references built on each load."""

    source_to_project: dict[str, str] = Field(default_factory=dict)
    source_to_datafactory: dict[str, str] = Field(default_factory=dict)
    project_to_datafactory: dict[str, str] = Field(default_factory=dict)
    labels: LabelMappings = Field(default_factory=LabelMappings)


class FilterCriteria(BaseModel):
    """User-selected filters. Absent or empty criteria impose no constraint."""

    datafactory_ids: list[str] | None = None
    project_ids: list[str] | None = None
    locked: bool | None = None
    arch_status: list[ArchStatus] | None = None
    params_type: list[ParamsType] | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None

    # Query-only narrowing, used when fetching the history of one arch
    source_ids: list[str] | None = None
    sink_ids: list[str] | None = None
    operation_types: list[OperationType] | None = None

    @property
    def date_range(self) -> tuple[datetime | None, datetime | None]:
        return (self.start_date, self.end_date)

    def to_query(self) -> dict[str, Any]:
        """Serialize the criteria the event service understands."""
        query: dict[str, Any] = {}
        if self.datafactory_ids:
            query["datafactory_id"] = list(self.datafactory_ids)
        if self.project_ids:
            query["project_id"] = list(self.project_ids)
        if self.params_type:
            query["params_type"] = list(self.params_type)
        if self.source_ids:
            query["source_id"] = list(self.source_ids)
        if self.sink_ids:
            query["sink_id"] = list(self.sink_ids)
        if self.operation_types:
            query["operation_type"] = list(self.operation_types)
        if self.start_date and self.end_date:
            query["time_range"] = [
                self.start_date.isoformat(),
                self.end_date.isoformat(),
            ]
        return query
