"""🔗 Connection Workflow - Pick a source, pick a target, create an arch.

States:
- idle: no source armed (clicks only change the selected node)
- source_armed: a source is armed, the next distinct click picks the target
- ready: source and target picked, the creation form can be opened

Example:
    workflow = ConnectionWorkflow()
    workflow.select("orders")
    workflow.arm_source()           # source_armed
    workflow.select("customers")    # ready
    draft = workflow.create("insert_upsert", primary_key="customer_id")
"""

from __future__ import annotations

import time
from typing import Literal

from pydantic import BaseModel, ValidationError, model_validator

from archview.errors import InvalidArchError, WorkflowError

from .models import CUSTOM_MERGE, UPSERT, OperationType

ConnectionState = Literal["idle", "source_armed", "ready"]


class ArchDraft(BaseModel):
    """A manual arch creation request."""

    source: str
    target: str
    operation_type: OperationType
    primary_key: str | None = None
    order_by: str | None = None
    merge_statement: str | None = None
    sql_query: str | None = None

    @model_validator(mode="after")
    def _check_fields(self) -> ArchDraft:
        if not self.source or not self.target:
            raise ValueError("Missing source or target")
        if self.source == self.target:
            raise ValueError("Source and target must be different tables")
        if self.operation_type == UPSERT and not self.primary_key:
            raise ValueError("Primary key is required for upsert operations")
        if self.operation_type == CUSTOM_MERGE and not self.merge_statement:
            raise ValueError("Merge statement is required for custom insertions")
        return self


def validate_draft(**fields) -> ArchDraft:
    """Build an ArchDraft, raising InvalidArchError on any missing field."""
    missing = [
        name
        for name in ("source", "target", "operation_type")
        if not fields.get(name)
    ]
    if missing:
        raise InvalidArchError(f"Missing {', '.join(missing)}")
    try:
        return ArchDraft(**fields)
    except ValidationError as e:
        messages = "; ".join(err["msg"].removeprefix("Value error, ") for err in e.errors())
        raise InvalidArchError(messages) from e


class ConnectionWorkflow:
    """Two-click source → target picking for manual arch creation."""

    def __init__(self) -> None:
        self.selected_id: str | None = None
        self.source_id: str | None = None
        self.target_id: str | None = None

    @property
    def state(self) -> ConnectionState:
        if self.source_id is None:
            return "idle"
        if self.target_id is None:
            return "source_armed"
        return "ready"

    def select(self, node_id: str) -> bool:
        """Handle a node click.

        Returns:
            True when the click picked the target, False otherwise
        """
        if self.source_id is not None and node_id != self.source_id:
            self.target_id = node_id
            self.selected_id = node_id
            return True
        if self.source_id is None:
            self.selected_id = node_id
        return False

    def arm_source(self) -> bool:
        """Arm the selected node as source. No-op without a selection."""
        if self.selected_id is None:
            return False
        self.source_id = self.selected_id
        self.target_id = None
        return True

    def clear(self) -> bool:
        """Cancel the connection. Returns whether anything was armed."""
        was_armed = self.source_id is not None
        self.source_id = None
        self.target_id = None
        return was_armed

    def create(self, operation_type: str | None, **fields) -> ArchDraft:
        """Emit the arch request for the picked pair and return to idle."""
        if self.state != "ready":
            raise WorkflowError(f"Cannot create a connection while {self.state}")
        draft = validate_draft(
            source=self.source_id,
            target=self.target_id,
            operation_type=operation_type,
            **fields,
        )
        self.clear()
        return draft

    def forget(self, node_ids: set[str]) -> None:
        """Drop references to nodes that are no longer displayed."""
        if self.selected_id is not None and self.selected_id not in node_ids:
            self.selected_id = None
        if self.source_id is not None and self.source_id not in node_ids:
            self.clear()
        elif self.target_id is not None and self.target_id not in node_ids:
            self.target_id = None


class DoubleClickDetector:
    """Remembers the last click time per node id."""

    def __init__(self, threshold_ms: int = 300) -> None:
        self.threshold_ms = threshold_ms
        self._last_click: dict[str, float] = {}

    def click(self, node_id: str, now: float | None = None) -> bool:
        """Record a click; True when it follows the previous one quickly."""
        now = time.monotonic() if now is None else now
        last = self._last_click.get(node_id)
        self._last_click[node_id] = now
        return last is not None and (now - last) * 1000 < self.threshold_ms

    def reset(self) -> None:
        self._last_click.clear()
