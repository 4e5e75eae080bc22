"""📡 Service Contracts - Shapes of the three data-access services.

The engine only consumes these shapes; transports live in ``http`` (REST
clients) and ``memory`` (in-process dataset).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Protocol

from pydantic import BaseModel, Field

from archview.graph.models import (
    AggregatedEvent,
    Event,
    FilterCriteria,
    LabelMappings,
    Operation,
    TableColumn,
    Transformation,
)


class Stage1Metadata(BaseModel):
    """Field mappings of a transform arch."""

    source_table_id: str
    sink_table_id: str
    operation_type: Literal["insert_stage_1"] = "insert_stage_1"
    transformations: list[Transformation] = Field(default_factory=list)


class UpsertMetadata(BaseModel):
    """Primary key and ordering of an upsert arch."""

    source_table_id: str
    sink_table_id: str
    operation_type: Literal["insert_upsert"] = "insert_upsert"
    primary_key: list[str] = Field(default_factory=list)
    order_by: list[str] = Field(default_factory=list)


class CustomMetadata(BaseModel):
    """Query text of a custom-merge arch (kept as an opaque string)."""

    source_table_id: str
    sink_table_id: str
    operation_type: Literal["insert_custom"] = "insert_custom"
    records_query: str = ""
    statement_type: Literal["insert", "merge"] = "insert"
    custom_params: dict[str, str] = Field(default_factory=dict)


class MetadataApi(Protocol):
    def get_label_mappings(self) -> LabelMappings: ...

    def get_table_columns(self, source_id: str) -> list[TableColumn]: ...

    def get_project_ids(self, source_ids: list[str]) -> dict[str, dict[str, str]]: ...

    def get_datafactory_ids(self, source_ids: list[str]) -> dict[str, dict[str, str]]: ...

    def get_stage1_metadata(self, source_table_id: str, sink_table_id: str) -> Stage1Metadata: ...

    def get_upsert_metadata(self, source_table_id: str, sink_table_id: str) -> UpsertMetadata: ...

    def get_custom_metadata(self, source_table_id: str, sink_table_id: str) -> CustomMetadata: ...


class EventsApi(Protocol):
    def get_events_aggregation(
        self, criteria: FilterCriteria | None = None, limit: int | None = None
    ) -> list[AggregatedEvent]: ...

    def get_events(
        self, criteria: FilterCriteria | None = None, limit: int | None = None
    ) -> list[Event]: ...


class OperationsApi(Protocol):
    def get_active_operations(self) -> list[Operation]: ...


@dataclass
class Services:
    """The three collaborators, passed explicitly to a session."""

    metadata: MetadataApi
    events: EventsApi
    operations: OperationsApi

    def close(self) -> None:
        """Close every collaborator that holds a connection (HTTP clients)."""
        for service in (self.metadata, self.events, self.operations):
            close = getattr(service, "close", None)
            if close is not None:
                close()

    def __enter__(self) -> Services:
        return self

    def __exit__(self, *args) -> None:
        self.close()
