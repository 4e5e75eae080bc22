"""🔀 Arch Derivation - Reconcile live operations and event history.

Two independent sources describe pipeline edges:

- operations: the current state of an edge (status, running flag)
- events: historical activity, possibly for edges no operation covers

Both are mapped into candidate arches and folded into one deduplicated
list. The raw-ingest buffer of a source is drawn as its own ``stage_0.<id>``
node, so raw-ingest and transform edges are rewritten around it.

Example:
    arches = derive_arches(operations, aggregates, datafactory_lookup)
    tables, mappings = build_tables(
        operations, aggregates, labels, project_lookup, datafactory_lookup
    )
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from datetime import datetime

from .keys import STAGE_0_PREFIX, ArchKey, stage_0_id
from .models import (
    CUSTOM_MERGE,
    RAW_INGEST,
    TRANSFORM,
    UPSERT,
    WAIT,
    AggregatedEvent,
    Arch,
    Event,
    LabelMappings,
    Operation,
    Table,
    TableMappings,
)

logger = logging.getLogger(__name__)

OPERATION_ARCH_TYPES = (TRANSFORM, UPSERT, CUSTOM_MERGE)
EVENT_ARCH_TYPES = (RAW_INGEST, TRANSFORM, UPSERT, CUSTOM_MERGE)

BYTES_PER_MB = 1024 * 1024

# Lookups returned by the metadata service: source id -> {"project_id": ...}
OwnershipLookup = Mapping[str, Mapping[str, str]]


def _owner(lookup: OwnershipLookup | None, source_id: str, field: str) -> str:
    if not lookup:
        return ""
    entry = lookup.get(source_id) or {}
    return entry.get(field) or ""


def arch_from_operation(operation: Operation) -> Arch:
    """Candidate arch for an operation (transform, upsert or custom)."""
    source = operation.source_table_id
    if operation.operation_type == TRANSFORM:
        source = stage_0_id(operation.source_table_id)

    return Arch(
        source=source,
        target=operation.sink_table_id,
        operation_type=operation.operation_type,
        status=operation.status,
        source_table_id=operation.source_table_id,
        sink_table_id=operation.sink_table_id,
        operation=operation,
    )


def arch_from_event(
    event: Event | AggregatedEvent,
    datafactory_lookup: OwnershipLookup | None = None,
) -> Arch:
    """Candidate arch reconstructed purely from history (status ``empty``)."""
    source = event.source_table_id
    target = event.sink_table_id

    if event.operation_type == RAW_INGEST:
        source = (
            _owner(datafactory_lookup, event.source_table_id, "datafactory_id")
            or event.datafactory_id
        )
        target = stage_0_id(event.source_table_id)
    elif event.operation_type == TRANSFORM:
        source = stage_0_id(event.source_table_id)

    return Arch(
        source=source,
        target=target,
        operation_type=event.operation_type,
        status="empty",
        source_table_id=event.source_table_id,
        sink_table_id=event.sink_table_id,
        aggregate=event if isinstance(event, AggregatedEvent) else None,
    )


def merge_arch(existing: Arch | None, incoming: Arch) -> Arch:
    """Resolve two candidates for the same key.

    The existing entry wins unless it is ``empty`` and the incoming one is
    not. A non-empty status is never downgraded back to ``empty``.
    """
    if existing is None:
        return incoming
    if existing.status == "empty" and incoming.status != "empty":
        if incoming.aggregate is None and existing.aggregate is not None:
            return incoming.model_copy(update={"aggregate": existing.aggregate})
        return incoming
    if existing.aggregate is None and incoming.aggregate is not None:
        return existing.model_copy(update={"aggregate": incoming.aggregate})
    return existing


def fold_arches(candidates: Iterable[Arch]) -> list[Arch]:
    """Fold candidates into one arch per structured key, first-seen order."""
    unique: dict[ArchKey, Arch] = {}
    for arch in candidates:
        key = arch.key
        unique[key] = merge_arch(unique.get(key), arch)
    return list(unique.values())


def derive_arches(
    operations: Iterable[Operation],
    events: Iterable[Event | AggregatedEvent],
    datafactory_lookup: OwnershipLookup | None = None,
) -> list[Arch]:
    """Derive the deduplicated arch list from operations and event history.

    Args:
        operations: Active operations (current state)
        events: Aggregated or raw events (history)
        datafactory_lookup: source id -> {"datafactory_id": ...}

    Returns:
        New list of arches, operation-derived entries first
    """
    from_operations = [
        arch_from_operation(op)
        for op in operations
        if op.operation_type in OPERATION_ARCH_TYPES
    ]
    from_events = [
        arch_from_event(event, datafactory_lookup)
        for event in events
        if event.operation_type in EVENT_ARCH_TYPES
    ]

    arches = fold_arches([*from_operations, *from_events])
    logger.debug(
        "Derived %d arches from %d operation and %d event candidates",
        len(arches),
        len(from_operations),
        len(from_events),
    )
    return arches


# =============================================================================
# Node materialization
# =============================================================================


def referenced_table_ids(
    operations: Iterable[Operation],
    events: Iterable[Event | AggregatedEvent],
) -> list[str]:
    """Real table ids referenced by any record, first-seen order."""
    seen: dict[str, None] = {}
    for record in [*operations, *events]:
        for table_id in (record.source_table_id, record.sink_table_id):
            if table_id:
                seen.setdefault(table_id, None)
    return list(seen)


def build_mappings(
    table_ids: Iterable[str],
    labels: LabelMappings,
    project_lookup: OwnershipLookup | None = None,
    datafactory_lookup: OwnershipLookup | None = None,
) -> TableMappings:
    """Cross-reference project and factory ownership of the loaded tables."""
    mappings = TableMappings(labels=labels)
    for source_id in table_ids:
        project_id = _owner(project_lookup, source_id, "project_id")
        datafactory_id = _owner(datafactory_lookup, source_id, "datafactory_id")
        if project_id:
            mappings.source_to_project[source_id] = project_id
            if datafactory_id:
                mappings.project_to_datafactory[project_id] = datafactory_id
        if datafactory_id:
            mappings.source_to_datafactory[source_id] = datafactory_id
    return mappings


def _latest(dates: Iterable[datetime | None]) -> datetime | None:
    known = [d for d in dates if d is not None]
    return max(known) if known else None


def _aggregate_totals(
    events: Iterable[Event | AggregatedEvent],
) -> tuple[int, int, datetime | None]:
    rows = 0
    size = 0
    dates: list[datetime | None] = []
    for event in events:
        if isinstance(event, AggregatedEvent):
            rows += event.total_rows
            size += event.total_size
            dates.append(event.last_updated)
        else:
            rows += event.rows_added
            size += event.bytes_added
            dates.append(event.event_time)
    return rows, size, _latest(dates)


def _owned_table(
    node_id: str,
    source_id: str,
    prefix: str,
    mappings: TableMappings,
    **fields,
) -> Table:
    labels = mappings.labels
    datafactory_id = mappings.source_to_datafactory.get(source_id, "")
    project_id = mappings.source_to_project.get(source_id, "")
    return Table(
        id=node_id,
        source_id=source_id,
        source_name=prefix + labels.source(source_id),
        datafactory_id=datafactory_id,
        datafactory_name=labels.datafactories.get(datafactory_id, ""),
        project_id=project_id,
        project_name=labels.projects.get(project_id, ""),
        table_name=prefix + labels.table_name(source_id),
        **fields,
    )


def build_tables(
    operations: Iterable[Operation],
    events: Iterable[Event | AggregatedEvent],
    labels: LabelMappings | None = None,
    project_lookup: OwnershipLookup | None = None,
    datafactory_lookup: OwnershipLookup | None = None,
    arches: Iterable[Arch] | None = None,
) -> tuple[list[Table], TableMappings]:
    """Materialize every node the derived arches can reference.

    Produces factory pseudo nodes, stage-0 pseudo nodes and real tables, in
    that order. Missing labels fall back to the raw ids.

    Returns:
        (tables, mappings)
    """
    operations = list(operations)
    events = list(events)
    labels = labels or LabelMappings()
    if arches is None:
        arches = derive_arches(operations, events, datafactory_lookup)
    arches = list(arches)

    table_ids = referenced_table_ids(operations, events)
    mappings = build_mappings(table_ids, labels, project_lookup, datafactory_lookup)

    tables: list[Table] = []
    for source_id in table_ids:
        sink_events = [
            e
            for e in events
            if e.sink_table_id == source_id and e.operation_type != RAW_INGEST
        ]
        rows, size, last_updated = _aggregate_totals(sink_events)
        locked = any(
            op.operation_type == WAIT
            and op.source_table_id == source_id
            and op.sink_table_id == source_id
            for op in operations
        )
        tables.append(
            _owned_table(
                source_id,
                source_id,
                "",
                mappings,
                row_count=rows,
                size_in_mb=round(size / BYTES_PER_MB),
                last_updated=last_updated,
                locked=locked,
            )
        )

    # Stage-0 buffers: one per raw-ingest history record and per transform arch
    stage_0_sources: dict[str, None] = {}
    for event in events:
        if event.operation_type == RAW_INGEST and event.source_table_id:
            stage_0_sources.setdefault(event.source_table_id, None)
    for arch in arches:
        if arch.operation_type in (RAW_INGEST, TRANSFORM) and arch.source_table_id:
            stage_0_sources.setdefault(arch.source_table_id, None)

    stage_0_tables: list[Table] = []
    for source_id in stage_0_sources:
        ingest_events = [
            e
            for e in events
            if e.operation_type == RAW_INGEST and e.source_table_id == source_id
        ]
        rows, size, last_updated = _aggregate_totals(ingest_events)
        stage_0_tables.append(
            _owned_table(
                stage_0_id(source_id),
                source_id,
                STAGE_0_PREFIX,
                mappings,
                row_count=rows,
                size_in_mb=round(size / BYTES_PER_MB),
                last_updated=last_updated,
                locked=False,
            )
        )

    # Factory pseudo nodes feed the stage-0 buffers
    datafactory_ids: dict[str, None] = {}
    for table in stage_0_tables:
        if table.datafactory_id:
            datafactory_ids.setdefault(table.datafactory_id, None)
    for arch in arches:
        if arch.operation_type == RAW_INGEST and arch.source:
            datafactory_ids.setdefault(arch.source, None)

    factory_tables = []
    for datafactory_id in datafactory_ids:
        name = labels.datafactory(datafactory_id)
        factory_tables.append(
            Table(
                id=datafactory_id,
                source_id=datafactory_id,
                source_name=name,
                datafactory_id=datafactory_id,
                datafactory_name=name,
                project_id=datafactory_id,
                project_name=name,
                table_name=name,
                is_datafactory=True,
            )
        )

    logger.debug(
        "Materialized %d factory, %d stage-0 and %d table nodes",
        len(factory_tables),
        len(stage_0_tables),
        len(tables),
    )
    return [*factory_tables, *stage_0_tables, *tables], mappings
