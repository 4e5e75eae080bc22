"""📊 Arch Statistics - Summaries of an arch's execution history."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime

from .models import ArchEvent


@dataclass
class ArchStatistics:
    """Execution summary shown for a selected arch."""

    count: int = 0
    rows: int = 0
    avg_run_time_ms: float = 0.0
    last_completed: datetime | None = None
    avg_time_between_events_ms: float = 0.0

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "count": self.count,
            "rows": self.rows,
            "avg_run_time_ms": self.avg_run_time_ms,
            "last_completed": self.last_completed.isoformat() if self.last_completed else None,
            "avg_time_between_events_ms": self.avg_time_between_events_ms,
        }


def arch_statistics(events: Iterable[ArchEvent] | None) -> ArchStatistics:
    """Compute statistics over events (order of input does not matter)."""
    ordered = sorted(events or [], key=lambda e: e.timestamp)
    if not ordered:
        return ArchStatistics()

    gaps = [
        (later.timestamp - earlier.timestamp).total_seconds() * 1000
        for earlier, later in zip(ordered, ordered[1:])
    ]
    return ArchStatistics(
        count=len(ordered),
        rows=sum(e.rows_affected for e in ordered),
        avg_run_time_ms=sum(e.duration_ms for e in ordered) / len(ordered),
        last_completed=ordered[-1].timestamp,
        avg_time_between_events_ms=sum(gaps) / len(gaps) if gaps else 0.0,
    )
