"""🧪 Tests for arch statistics."""

from datetime import datetime, timedelta

from archview.graph.models import ArchEvent
from archview.graph.stats import ArchStatistics, arch_statistics


class TestArchStatistics:
    """Tests for arch_statistics."""

    def test_empty(self):
        assert arch_statistics([]) == ArchStatistics()
        assert arch_statistics(None).count == 0

    def test_summary(self):
        start = datetime(2024, 5, 1, 10, 0, 0)
        events = [
            ArchEvent(timestamp=start + timedelta(minutes=10), rows_affected=50, duration_ms=300),
            ArchEvent(timestamp=start, rows_affected=100, duration_ms=100),
            ArchEvent(timestamp=start + timedelta(minutes=30), rows_affected=25, duration_ms=200),
        ]

        stats = arch_statistics(events)

        assert stats.count == 3
        assert stats.rows == 175
        assert stats.avg_run_time_ms == 200
        assert stats.last_completed == start + timedelta(minutes=30)
        # gaps of 10 and 20 minutes
        assert stats.avg_time_between_events_ms == 15 * 60 * 1000

    def test_to_dict(self):
        stats = ArchStatistics(count=1, rows=5, last_completed=datetime(2024, 5, 1))

        assert stats.to_dict()["last_completed"] == "2024-05-01T00:00:00"
        assert stats.to_dict()["rows"] == 5
