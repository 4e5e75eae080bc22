"""🧪 Pytest configuration and shared fixtures."""

from datetime import datetime
from pathlib import Path

import httpx
import pytest

from archview.config import get_settings
from archview.graph.models import Arch, Table
from archview.notifications import Notifier
from archview.services import (
    EventsClient,
    MetadataClient,
    OperationsClient,
    Services,
    memory_services,
    sample_dataset,
)
from archview.session import LineageSession

SAMPLE_NOW = datetime(2024, 5, 1, 12, 0, 0)


@pytest.fixture(scope="session")
def project_root():
    """Get project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def dataset():
    """Sample retail dataset (fresh per test, safe to mutate)."""
    return sample_dataset(now=SAMPLE_NOW)


@pytest.fixture
def services(dataset):
    """In-memory services over the sample dataset."""
    return memory_services(dataset)


@pytest.fixture
def notifier():
    return Notifier()


@pytest.fixture
def session(services, notifier):
    """Session over the sample dataset, not loaded yet."""
    return LineageSession(services, notifier=notifier)


@pytest.fixture
def loaded_session(session):
    """Session with the sample dataset loaded."""
    assert session.reload()
    return session


@pytest.fixture
def http_services():
    """Build HTTP-backed services whose requests all go to one handler."""

    def _make(handler) -> Services:
        transport = httpx.MockTransport(handler)
        return Services(
            metadata=MetadataClient("http://meta/api", client=httpx.Client(transport=transport)),
            events=EventsClient("http://events/api", client=httpx.Client(transport=transport)),
            operations=OperationsClient(
                "http://ops/api", client=httpx.Client(transport=transport)
            ),
        )

    return _make


@pytest.fixture
def make_table():
    """Build a real table node with ownership defaults."""

    def _make(table_id: str, **fields) -> Table:
        fields.setdefault("source_id", table_id)
        fields.setdefault("datafactory_id", "df1")
        fields.setdefault("project_id", "p1")
        return Table(id=table_id, **fields)

    return _make


@pytest.fixture
def make_arch():
    """Build an arch between two node ids."""

    def _make(source: str, target: str, operation_type: str = "insert_upsert", **fields) -> Arch:
        fields.setdefault("source_table_id", source)
        fields.setdefault("sink_table_id", target)
        return Arch(source=source, target=target, operation_type=operation_type, **fields)

    return _make


@pytest.fixture
def sample_dataset_yaml():
    """Minimal dataset for the in-memory services."""
    return """
operations:
  - source_table_id: raw
    sink_table_id: agg
    operation_type: insert_stage_1
    status: in_progress
    is_running: true
events:
  - source_table_id: agg
    sink_table_id: report
    operation_type: insert_upsert
    datafactory_id: df1
    batch_id: 1
    rows_added: 100
    bytes_added: 2097152
    event_time: 2024-05-01T10:00:00
projects: {raw: p1, agg: p1, report: p2}
datafactories: {raw: df1, agg: df1, report: df1}
labels:
  datafactories: {df1: Factory One}
  projects: {p1: Project One}
"""


# Environment setup for tests
@pytest.fixture(autouse=True)
def setup_test_env(monkeypatch):
    """Isolate tests from ARCHVIEW_* variables and cached settings."""
    for name in (
        "ARCHVIEW_USE_MOCK_SERVICES",
        "ARCHVIEW_METADATA_URI",
        "ARCHVIEW_EVENTS_URI",
        "ARCHVIEW_OPERATIONS_URI",
        "ARCHVIEW_EVENT_LIMIT",
        "ARCHVIEW_LAYOUT_FILE",
    ):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
