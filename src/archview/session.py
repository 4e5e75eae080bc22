"""🧭 Lineage Session - Load, select, focus and connect over one graph.

The session owns the current tables and arches and coordinates the
services, the graph functions and the notifier:

- ``reload()`` pulls operations, events and labels and rebuilds both lists
- ``select_table()`` / ``select_arch()`` lazily fetch details once
- ``focus()`` narrows the view to a node's ancestors and descendants
- ``arm_source()`` / ``create_arch()`` drive manual edge creation

Every reload bumps a generation counter. Results that belong to an older
generation are discarded, so only the latest load is ever displayed.

Example:
    session = LineageSession(create_services(settings))
    session.reload(FilterCriteria(datafactory_ids=["retail_data_platform"]))
    view = session.view()
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime

from pydantic import ValidationError

from archview.errors import InvalidArchError, ServiceError, WorkflowError
from archview.graph.connection import (
    ArchDraft,
    ConnectionWorkflow,
    DoubleClickDetector,
    validate_draft,
)
from archview.graph.derivation import build_tables, derive_arches, referenced_table_ids
from archview.graph.filters import filter_arches, filter_tables
from archview.graph.layout import CanvasSize, LayoutConfig, layout
from archview.graph.models import (
    CUSTOM_MERGE,
    TRANSFORM,
    UPSERT,
    Arch,
    ArchEvent,
    FilterCriteria,
    Operation,
    Table,
    TableMappings,
)
from archview.graph.stats import ArchStatistics, arch_statistics
from archview.graph.traversal import closure
from archview.graph.view import GraphView, build_view
from archview.notifications import Notifier
from archview.services.base import Services

logger = logging.getLogger(__name__)


@dataclass
class Snapshot:
    """Result of one load: brand-new lists, never patched in place."""

    tables: list[Table] = field(default_factory=list)
    arches: list[Arch] = field(default_factory=list)
    mappings: TableMappings = field(default_factory=TableMappings)
    loaded_at: datetime = field(default_factory=datetime.now)


class LineageSession:
    """Interactive state over the lineage graph.

    Args:
        services: Metadata, events and operations collaborators
        notifier: Receives user-facing notices (default: a private Notifier)
        event_limit: Maximum number of event rows requested per query
        double_click_ms: Double-click threshold for focus toggling
        layout_config: Margins used by ``view()``
    """

    def __init__(
        self,
        services: Services,
        notifier: Notifier | None = None,
        event_limit: int = 1000,
        double_click_ms: int = 300,
        layout_config: LayoutConfig | None = None,
    ):
        self.services = services
        self.notifier = notifier or Notifier()
        self.event_limit = event_limit
        self.layout_config = layout_config or LayoutConfig()

        self.tables: list[Table] = []
        self.arches: list[Arch] = []
        self.mappings = TableMappings()
        self.criteria = FilterCriteria()
        self.loaded_at: datetime | None = None

        self.focused_id: str | None = None
        self.selected_arch_id: str | None = None
        self.workflow = ConnectionWorkflow()
        self.clicks = DoubleClickDetector(double_click_ms)

        self.generation = 0
        self.is_loading = False
        self.error: Exception | None = None

    def close(self) -> None:
        """Release the services' connections."""
        self.services.close()

    def __enter__(self) -> LineageSession:
        return self

    def __exit__(self, *args) -> None:
        self.close()

    # =========================================================================
    # Lookups
    # =========================================================================

    def get_table(self, table_id: str) -> Table | None:
        return next((t for t in self.tables if t.id == table_id), None)

    def get_arch(self, arch_id: str) -> Arch | None:
        return next((a for a in self.arches if a.arch_id == arch_id), None)

    @property
    def selected_table(self) -> Table | None:
        if self.workflow.selected_id is None:
            return None
        return self.get_table(self.workflow.selected_id)

    @property
    def selected_arch(self) -> Arch | None:
        if self.selected_arch_id is None:
            return None
        return self.get_arch(self.selected_arch_id)

    def _replace_table(self, table_id: str, **updates) -> Table | None:
        replaced = None
        tables = []
        for table in self.tables:
            if table.id == table_id:
                table = replaced = table.model_copy(update=updates)
            tables.append(table)
        self.tables = tables
        return replaced

    def _replace_arch(self, arch_id: str, **updates) -> Arch | None:
        replaced = None
        arches = []
        for arch in self.arches:
            if arch.arch_id == arch_id:
                arch = replaced = arch.model_copy(update=updates)
            arches.append(arch)
        self.arches = arches
        return replaced

    # =========================================================================
    # Loading
    # =========================================================================

    def begin_reload(self) -> int:
        """Start a new load generation and return its token."""
        self.generation += 1
        self.is_loading = True
        logger.debug("Reload generation %d started", self.generation)
        return self.generation

    def fetch_snapshot(self, criteria: FilterCriteria | None = None) -> Snapshot:
        """Pull everything needed to rebuild the graph."""
        criteria = criteria or FilterCriteria()
        metadata = self.services.metadata

        operations = self.services.operations.get_active_operations()
        events = self.services.events.get_events_aggregation(criteria, self.event_limit)
        labels = metadata.get_label_mappings()

        table_ids = referenced_table_ids(operations, events)
        project_lookup: dict = {}
        datafactory_lookup: dict = {}
        if table_ids:
            project_lookup = metadata.get_project_ids(table_ids)
            datafactory_lookup = metadata.get_datafactory_ids(table_ids)

        arches = derive_arches(operations, events, datafactory_lookup)
        tables, mappings = build_tables(
            operations,
            events,
            labels,
            project_lookup,
            datafactory_lookup,
            arches=arches,
        )
        return Snapshot(tables=tables, arches=arches, mappings=mappings)

    def commit_reload(self, token: int, snapshot: Snapshot) -> bool:
        """Install a snapshot unless a newer reload has started.

        Returns:
            True if the snapshot was installed
        """
        if token != self.generation:
            logger.info("Discarding stale load (generation %d < %d)", token, self.generation)
            return False

        self.tables = snapshot.tables
        self.arches = snapshot.arches
        self.mappings = snapshot.mappings
        self.loaded_at = snapshot.loaded_at
        self.is_loading = False
        self.error = None
        self._forget_missing()
        return True

    def reload(self, criteria: FilterCriteria | None = None) -> bool:
        """Reload tables and arches for the given (or current) criteria.

        On failure, a destructive notice is raised and both lists are reset
        to empty.

        Returns:
            True if this reload's result is now displayed
        """
        if criteria is not None:
            self.criteria = criteria
        token = self.begin_reload()

        try:
            snapshot = self.fetch_snapshot(self.criteria)
        except (ServiceError, ValidationError) as e:
            if token != self.generation:
                return False
            logger.error("Failed to load lineage data: %s", e)
            self.error = e
            self.tables = []
            self.arches = []
            self.mappings = TableMappings()
            self.is_loading = False
            self._forget_missing()
            self.notifier.error("Error Loading Data", str(e))
            return False

        if not self.commit_reload(token, snapshot):
            return False

        self.notifier.info(
            "Data Loaded",
            f"Loaded {len(self.tables)} tables and {len(self.arches)} connections.",
        )
        return True

    def load_snapshot(self, tables: list[Table], arches: list[Arch]) -> None:
        """Replace the graph with externally provided lists (e.g. an import)."""
        tables = list(tables)
        mappings = TableMappings()
        for table in tables:
            if table.is_datafactory or table.is_stage_0:
                continue
            if table.project_id:
                mappings.source_to_project[table.source_id] = table.project_id
                if table.datafactory_id:
                    mappings.project_to_datafactory[table.project_id] = table.datafactory_id
            if table.datafactory_id:
                mappings.source_to_datafactory[table.source_id] = table.datafactory_id

        token = self.begin_reload()
        snapshot = Snapshot(tables=tables, arches=list(arches), mappings=mappings)
        self.commit_reload(token, snapshot)

    def _forget_missing(self) -> None:
        table_ids = {t.id for t in self.tables}
        if self.focused_id is not None and self.focused_id not in table_ids:
            self.focused_id = None
        if self.selected_arch_id is not None and self.get_arch(self.selected_arch_id) is None:
            self.selected_arch_id = None
        self.workflow.forget(table_ids)
        self.clicks.reset()

    # =========================================================================
    # Filters & focus
    # =========================================================================

    def set_filters(self, criteria: FilterCriteria) -> None:
        """Replace the criteria. Changing filters always leaves focus mode."""
        self.criteria = criteria
        self.focused_id = None

    def focus(self, table_id: str) -> bool:
        if self.get_table(table_id) is None:
            return False
        self.focused_id = table_id
        return True

    def reset_focus(self) -> None:
        self.focused_id = None

    def toggle_focus(self, table_id: str) -> None:
        if self.focused_id == table_id:
            self.reset_focus()
        else:
            self.focus(table_id)

    # =========================================================================
    # Selection
    # =========================================================================

    def select_table(self, table_id: str, now: float | None = None) -> Table | None:
        """Handle a node click.

        While a source is armed, clicking another node picks it as target.
        Otherwise the node becomes selected, its columns are fetched once,
        and a double click toggles focus on it.

        Args:
            table_id: Clicked node id
            now: Click time in seconds (default: monotonic clock)
        """
        if self.get_table(table_id) is None:
            return None

        if self.workflow.select(table_id):
            self.notifier.info(
                "Connection Ready",
                f"{self.workflow.source_id} → {self.workflow.target_id}",
            )
            return self.get_table(table_id)

        self.selected_arch_id = None
        if self.clicks.click(table_id, now):
            self.toggle_focus(table_id)

        return self.load_columns(table_id)

    def load_columns(self, table_id: str) -> Table | None:
        """Fetch a node's columns unless they are already loaded."""
        table = self.get_table(table_id)
        if table is None or table.columns is not None:
            return table
        if table.is_datafactory:
            return self._replace_table(table_id, columns=[])

        token = self.generation
        try:
            columns = self.services.metadata.get_table_columns(table.source_id)
        except (ServiceError, ValidationError) as e:
            self.notifier.error("Failed to Load Columns", f"{table.display_name}: {e}")
            return table

        if token != self.generation:
            logger.debug("Discarding columns of %s from generation %d", table_id, token)
            return self.get_table(table_id)
        return self._replace_table(table_id, columns=columns)

    def select_arch(self, arch_id: str) -> Arch | None:
        """Select an edge and fetch its history and metadata when needed."""
        if self.get_arch(arch_id) is None:
            return None

        self.selected_arch_id = arch_id
        self.workflow.selected_id = None
        self.workflow.clear()

        self.load_events(arch_id)
        return self.load_metadata(arch_id)

    def load_events(self, arch_id: str) -> Arch | None:
        """Fetch an edge's event history for the current date range.

        Skipped when events are present and were fetched for the same range.
        """
        arch = self.get_arch(arch_id)
        if arch is None:
            return None
        date_range = self.criteria.date_range
        if arch.events is not None and arch.events_range == date_range:
            return arch

        query = FilterCriteria(
            start_date=self.criteria.start_date,
            end_date=self.criteria.end_date,
            source_ids=[arch.source_table_id],
            sink_ids=[arch.sink_table_id],
            operation_types=[arch.operation_type],
        )
        token = self.generation
        try:
            events = self.services.events.get_events(query, self.event_limit)
        except (ServiceError, ValidationError) as e:
            self.notifier.error("Failed to Load Events", f"{arch_id}: {e}")
            return arch

        if token != self.generation:
            logger.debug("Discarding events of %s from generation %d", arch_id, token)
            return self.get_arch(arch_id)

        history = [
            ArchEvent.from_event(event)
            for event in events
            if event.source_table_id == arch.source_table_id
            and event.sink_table_id == arch.sink_table_id
            and event.operation_type == arch.operation_type
        ]
        history.sort(key=lambda event: event.timestamp, reverse=True)
        return self._replace_arch(arch_id, events=history, events_range=date_range)

    def load_metadata(self, arch_id: str) -> Arch | None:
        """Fetch an edge's metadata (transformations, keys, query) once."""
        arch = self.get_arch(arch_id)
        if arch is None or arch.metadata_loaded:
            return arch

        metadata = self.services.metadata
        source, sink = arch.source_table_id, arch.sink_table_id
        token = self.generation
        updates: dict = {"metadata_loaded": True}
        try:
            if arch.operation_type == TRANSFORM:
                stage1 = metadata.get_stage1_metadata(source, sink)
                updates["transformations"] = stage1.transformations
            elif arch.operation_type == UPSERT:
                upsert = metadata.get_upsert_metadata(source, sink)
                updates["primary_key"] = ", ".join(upsert.primary_key) or None
                updates["order_by"] = ", ".join(upsert.order_by) or None
            elif arch.operation_type == CUSTOM_MERGE:
                custom = metadata.get_custom_metadata(source, sink)
                updates["merge_statement"] = custom.records_query or None
                updates["sql_query"] = custom.records_query or None
        except (ServiceError, ValidationError) as e:
            self.notifier.error("Failed to Load Metadata", f"{arch_id}: {e}")
            return arch

        if token != self.generation:
            logger.debug("Discarding metadata of %s from generation %d", arch_id, token)
            return self.get_arch(arch_id)
        return self._replace_arch(arch_id, **updates)

    def statistics(self, arch_id: str) -> ArchStatistics | None:
        arch = self.get_arch(arch_id)
        if arch is None:
            return None
        return arch_statistics(arch.events)

    # =========================================================================
    # Manual connections
    # =========================================================================

    def arm_source(self) -> bool:
        """Use the selected node as the source of a new connection."""
        if not self.workflow.arm_source():
            return False
        self.notifier.info(
            "Source Selected",
            f"Click another table to connect it to {self.workflow.source_id}.",
        )
        return True

    def clear_connection(self) -> bool:
        return self.workflow.clear()

    def create_arch(
        self,
        operation_type: str | None,
        source: str | None = None,
        target: str | None = None,
        **fields,
    ) -> Arch | None:
        """Create an edge between two displayed nodes.

        Without ``source``/``target`` the pair picked through the connection
        workflow is used, and the workflow returns to idle on success.
        Invalid requests raise a destructive notice and change nothing.

        Returns:
            The new arch, or None if the request was rejected
        """
        from_workflow = source is None and target is None
        try:
            if from_workflow:
                if self.workflow.state != "ready":
                    raise WorkflowError(
                        f"Cannot create a connection while {self.workflow.state}"
                    )
                source, target = self.workflow.source_id, self.workflow.target_id
            draft = validate_draft(
                source=source,
                target=target,
                operation_type=operation_type,
                **fields,
            )
            self._check_draft(draft)
        except (InvalidArchError, WorkflowError) as e:
            self.notifier.error("Failed to Create Connection", str(e))
            return None

        if from_workflow:
            self.workflow.clear()

        arch = self._arch_from_draft(draft)
        self.arches = [*self.arches, arch]
        self.notifier.info(
            "Connection Created",
            f"{draft.source} → {draft.target} ({draft.operation_type})",
        )
        return arch

    def _check_draft(self, draft: ArchDraft) -> None:
        for node_id in (draft.source, draft.target):
            if self.get_table(node_id) is None:
                raise InvalidArchError(f"Unknown table: {node_id}")
        key = (draft.source, draft.target, draft.operation_type)
        if any(arch.key == key for arch in self.arches):
            raise InvalidArchError(
                f"A {draft.operation_type} connection from {draft.source} "
                f"to {draft.target} already exists"
            )

    def _arch_from_draft(self, draft: ArchDraft) -> Arch:
        source = self.get_table(draft.source)
        target = self.get_table(draft.target)
        operation = Operation(
            source_table_id=source.source_id,
            sink_table_id=target.source_id,
            datafactory_id=source.datafactory_id,
            operation_type=draft.operation_type,
            status="pending",
            created_at=datetime.now(),
        )
        return Arch(
            id=str(uuid.uuid4()),
            source=draft.source,
            target=draft.target,
            operation_type=draft.operation_type,
            status="pending",
            source_table_id=source.source_id,
            sink_table_id=target.source_id,
            operation=operation,
            primary_key=draft.primary_key,
            order_by=draft.order_by,
            merge_statement=draft.merge_statement,
            sql_query=draft.sql_query,
            metadata_loaded=True,
            events=[],
            events_range=self.criteria.date_range,
        )

    # =========================================================================
    # View
    # =========================================================================

    def visible_tables(self) -> list[Table]:
        focus = closure(self.focused_id, self.arches) if self.focused_id else None
        return filter_tables(self.tables, self.criteria, self.mappings, focus)

    def view(self, canvas: CanvasSize | None = None) -> GraphView:
        """Filtered, focused and positioned view model for the renderer."""
        tables = self.visible_tables()
        arch_ids = filter_arches(self.arches, tables, self.criteria)
        visible = set(arch_ids)
        positioned = layout(
            tables,
            [a for a in self.arches if a.arch_id in visible],
            canvas,
            self.layout_config,
        )
        return build_view(positioned, self.arches, arch_ids, self.focused_id)
