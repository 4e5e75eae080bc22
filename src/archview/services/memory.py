"""🧪 In-Memory Services - Data-access services backed by a local dataset.

Used by tests, by ``archview load --mock`` and for offline demos. A
``Dataset`` can be built in code or loaded from YAML:

    operations:
      - source_table_id: orders
        sink_table_id: dim_customers
        operation_type: insert_upsert
        status: in_progress
    events:
      - source_table_id: orders
        sink_table_id: orders
        operation_type: insert_stage_0
        rows_added: 1200
        event_time: 2024-05-01T10:00:00
    datafactories: {orders: retail}
    projects: {orders: staging}
"""

from __future__ import annotations

from datetime import datetime, timedelta
from pathlib import Path

import pandas as pd
import yaml
from pydantic import BaseModel, Field

from archview.errors import ServiceNotFoundError
from archview.graph.models import (
    AggregatedEvent,
    Event,
    FilterCriteria,
    LabelMappings,
    Operation,
    TableColumn,
)

from .base import CustomMetadata, Services, Stage1Metadata, UpsertMetadata

AGGREGATION_KEYS = [
    "source_table_id",
    "sink_table_id",
    "datafactory_id",
    "operation_type",
    "params_type",
]


def metadata_key(source_table_id: str, sink_table_id: str) -> str:
    return f"{source_table_id}:{sink_table_id}"


class Dataset(BaseModel):
    """Everything the three services can answer."""

    operations: list[Operation] = Field(default_factory=list)
    events: list[Event] = Field(default_factory=list)
    labels: LabelMappings = Field(default_factory=LabelMappings)
    columns: dict[str, list[TableColumn]] = Field(default_factory=dict)
    projects: dict[str, str] = Field(default_factory=dict)
    datafactories: dict[str, str] = Field(default_factory=dict)
    stage1_metadata: dict[str, Stage1Metadata] = Field(default_factory=dict)
    upsert_metadata: dict[str, UpsertMetadata] = Field(default_factory=dict)
    custom_metadata: dict[str, CustomMetadata] = Field(default_factory=dict)

    @classmethod
    def from_yaml(cls, path: Path | str) -> Dataset:
        """Load a dataset from a YAML file."""
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        return cls(**data)


def aggregate_events(events: list[Event]) -> list[AggregatedEvent]:
    """Roll events up per (source, sink, factory, operation, params type)."""
    if not events:
        return []

    df = pd.DataFrame([e.model_dump(exclude={"params"}) for e in events])
    grouped = (
        df.groupby(AGGREGATION_KEYS, sort=False)
        .agg(
            total_rows=("rows_added", "sum"),
            total_size=("bytes_added", "sum"),
            batches_count=("batch_id", "nunique"),
            events_count=("batch_id", "size"),
            last_updated=("event_time", "max"),
        )
        .reset_index()
    )

    return [
        AggregatedEvent(
            source_table_id=row.source_table_id,
            sink_table_id=row.sink_table_id,
            datafactory_id=row.datafactory_id,
            operation_type=row.operation_type,
            params_type=row.params_type,
            total_rows=int(row.total_rows),
            total_size=int(row.total_size),
            batches_count=int(row.batches_count),
            events_count=int(row.events_count),
            last_updated=pd.Timestamp(row.last_updated).to_pydatetime(),
        )
        for row in grouped.itertuples(index=False)
    ]


class MemoryMetadataService:
    def __init__(self, dataset: Dataset):
        self.dataset = dataset

    def get_label_mappings(self) -> LabelMappings:
        return self.dataset.labels

    def get_table_columns(self, source_id: str) -> list[TableColumn]:
        if source_id not in self.dataset.columns:
            raise ServiceNotFoundError(f"No columns registered for {source_id}", status_code=404)
        return list(self.dataset.columns[source_id])

    def get_project_ids(self, source_ids: list[str]) -> dict[str, dict[str, str]]:
        return {
            s: {"project_id": self.dataset.projects[s]}
            for s in source_ids
            if s in self.dataset.projects
        }

    def get_datafactory_ids(self, source_ids: list[str]) -> dict[str, dict[str, str]]:
        return {
            s: {"datafactory_id": self.dataset.datafactories[s]}
            for s in source_ids
            if s in self.dataset.datafactories
        }

    def get_stage1_metadata(self, source_table_id: str, sink_table_id: str) -> Stage1Metadata:
        key = metadata_key(source_table_id, sink_table_id)
        return self.dataset.stage1_metadata.get(key) or Stage1Metadata(
            source_table_id=source_table_id, sink_table_id=sink_table_id
        )

    def get_upsert_metadata(self, source_table_id: str, sink_table_id: str) -> UpsertMetadata:
        key = metadata_key(source_table_id, sink_table_id)
        return self.dataset.upsert_metadata.get(key) or UpsertMetadata(
            source_table_id=source_table_id,
            sink_table_id=sink_table_id,
            primary_key=["id"],
            order_by=["created_at"],
        )

    def get_custom_metadata(self, source_table_id: str, sink_table_id: str) -> CustomMetadata:
        key = metadata_key(source_table_id, sink_table_id)
        return self.dataset.custom_metadata.get(key) or CustomMetadata(
            source_table_id=source_table_id,
            sink_table_id=sink_table_id,
            records_query="SELECT * FROM source_table",
        )


class MemoryEventsService:
    def __init__(self, dataset: Dataset):
        self.dataset = dataset

    def _filtered(self, criteria: FilterCriteria | None) -> list[Event]:
        criteria = criteria or FilterCriteria()
        events = list(self.dataset.events)

        if criteria.datafactory_ids:
            wanted = set(criteria.datafactory_ids)
            events = [e for e in events if e.datafactory_id in wanted]
        if criteria.project_ids:
            wanted = set(criteria.project_ids)
            projects = self.dataset.projects
            events = [
                e
                for e in events
                if projects.get(e.source_table_id) in wanted
                or projects.get(e.sink_table_id) in wanted
            ]
        if criteria.params_type:
            wanted = set(criteria.params_type)
            events = [e for e in events if e.params_type in wanted]
        if criteria.source_ids:
            wanted = set(criteria.source_ids)
            events = [e for e in events if e.source_table_id in wanted]
        if criteria.sink_ids:
            wanted = set(criteria.sink_ids)
            events = [e for e in events if e.sink_table_id in wanted]
        if criteria.operation_types:
            wanted = set(criteria.operation_types)
            events = [e for e in events if e.operation_type in wanted]
        if criteria.start_date and criteria.end_date:
            events = [
                e for e in events if criteria.start_date <= e.event_time <= criteria.end_date
            ]
        return events

    def get_events_aggregation(
        self, criteria: FilterCriteria | None = None, limit: int | None = None
    ) -> list[AggregatedEvent]:
        aggregated = aggregate_events(self._filtered(criteria))
        return aggregated[:limit] if limit else aggregated

    def get_events(
        self, criteria: FilterCriteria | None = None, limit: int | None = None
    ) -> list[Event]:
        events = sorted(self._filtered(criteria), key=lambda e: e.event_time, reverse=True)
        return events[:limit] if limit else events


class MemoryOperationsService:
    def __init__(self, dataset: Dataset):
        self.dataset = dataset

    def get_active_operations(self) -> list[Operation]:
        return list(self.dataset.operations)


def memory_services(dataset: Dataset) -> Services:
    """Wire the three in-memory services around one dataset."""
    return Services(
        metadata=MemoryMetadataService(dataset),
        events=MemoryEventsService(dataset),
        operations=MemoryOperationsService(dataset),
    )


def sample_dataset(now: datetime | None = None) -> Dataset:
    """Small retail platform: staging → dimensions → facts."""
    now = now or datetime(2024, 5, 1, 12, 0, 0)
    factory = "retail_data_platform"
    staging, dims, facts = "ecommerce_staging", "ecommerce_dimensions", "ecommerce_facts"

    projects = {
        "staging_orders": staging,
        "staging_order_items": staging,
        "etl_batch_control": staging,
        "dim_customers": dims,
        "dim_products": dims,
        "fact_orders": facts,
        "fact_order_items": facts,
    }

    def event(source: str, sink: str, kind: str, rows: int, hours_ago: int, batch: int) -> Event:
        return Event(
            source_table_id=source,
            sink_table_id=sink,
            datafactory_id=factory,
            operation_id=f"{source}->{sink}",
            batch_id=batch,
            operation_type=kind,
            rows_added=rows,
            bytes_added=rows * 512,
            event_time=now - timedelta(hours=hours_ago),
        )

    events = []
    for batch, hours_ago in enumerate((48, 24, 2), start=1):
        events += [
            event("staging_orders", "staging_orders", "insert_stage_0", 5000, hours_ago, batch),
            event("staging_order_items", "staging_order_items", "insert_stage_0", 12000, hours_ago, batch),
            event("staging_orders", "staging_orders", "insert_stage_1", 5000, hours_ago, batch),
            event("staging_order_items", "staging_order_items", "insert_stage_1", 12000, hours_ago, batch),
            event("staging_orders", "dim_customers", "insert_upsert", 800, hours_ago, batch),
            event("staging_order_items", "dim_products", "insert_upsert", 300, hours_ago, batch),
            event("staging_orders", "fact_orders", "insert_custom", 5000, hours_ago, batch),
        ]

    operations = [
        Operation(
            source_table_id="staging_order_items",
            sink_table_id="fact_order_items",
            datafactory_id=factory,
            operation_type="insert_custom",
            is_running=True,
            status="in_progress",
            created_at=now - timedelta(minutes=30),
            last_update_time=now,
        ),
        Operation(
            source_table_id="staging_orders",
            sink_table_id="dim_customers",
            datafactory_id=factory,
            operation_type="insert_upsert",
            status="failure",
            created_at=now - timedelta(hours=1),
            last_update_time=now,
        ),
        Operation(
            source_table_id="etl_batch_control",
            sink_table_id="etl_batch_control",
            datafactory_id=factory,
            operation_type="wait",
            status="hold",
        ),
    ]

    columns = {
        "staging_orders": [
            TableColumn(name="order_id", type="VARCHAR(50)"),
            TableColumn(name="customer_email", type="VARCHAR(255)"),
            TableColumn(name="order_date", type="TIMESTAMP"),
            TableColumn(name="total_amount", type="DECIMAL(12,2)"),
        ],
        "dim_customers": [
            TableColumn(name="customer_id", type="INTEGER"),
            TableColumn(name="email", type="VARCHAR(255)"),
            TableColumn(name="first_order_date", type="DATE"),
        ],
        "fact_orders": [
            TableColumn(name="order_id", type="VARCHAR(50)"),
            TableColumn(name="customer_id", type="INTEGER"),
            TableColumn(name="order_total", type="DECIMAL(12,2)"),
        ],
    }

    return Dataset(
        operations=operations,
        events=events,
        labels=LabelMappings(
            datafactories={factory: "Retail Data Platform"},
            projects={staging: "Staging", dims: "Dimensions", facts: "Facts"},
            sources={t: t.replace("_", " ").title() for t in projects},
            table_names={t: f"{projects[t]}.{t}" for t in projects},
        ),
        columns=columns,
        projects=projects,
        datafactories={t: factory for t in projects},
        upsert_metadata={
            metadata_key("staging_orders", "dim_customers"): UpsertMetadata(
                source_table_id="staging_orders",
                sink_table_id="dim_customers",
                primary_key=["customer_id"],
                order_by=["order_date"],
            ),
        },
        custom_metadata={
            metadata_key("staging_orders", "fact_orders"): CustomMetadata(
                source_table_id="staging_orders",
                sink_table_id="fact_orders",
                records_query="SELECT order_id, customer_id, total_amount FROM staging_orders",
                statement_type="merge",
            ),
        },
    )
