"""🧪 Tests for LineageSession."""

from datetime import datetime, timedelta

import httpx

from archview.errors import ServiceError
from archview.graph.models import FilterCriteria, TableColumn
from archview.session import LineageSession

SAMPLE_NOW = datetime(2024, 5, 1, 12, 0, 0)

CUSTOM_ARCH = "staging_orders-fact_orders-insert_custom"
UPSERT_ARCH = "staging_orders-dim_customers-insert_upsert"
RUNNING_ARCH = "staging_order_items-fact_order_items-insert_custom"


def count_calls(monkeypatch, service, name):
    """Wrap a service method and record its calls."""
    calls = []
    original = getattr(service, name)

    def wrapper(*args, **kwargs):
        calls.append(args)
        return original(*args, **kwargs)

    monkeypatch.setattr(service, name, wrapper)
    return calls


class FailingOperations:
    def get_active_operations(self):
        raise ServiceError("operations manager unavailable", status_code=503)


class TestReload:
    """Tests for loading the graph."""

    def test_reload_builds_graph(self, loaded_session, notifier):
        session = loaded_session

        assert len(session.tables) == 10
        assert len(session.arches) == 8
        assert not session.is_loading
        assert notifier.notices[-1].title == "Data Loaded"

    def test_operation_state_wins_over_history(self, loaded_session):
        arch = loaded_session.get_arch(UPSERT_ARCH)

        assert arch.status == "failure"
        assert arch.aggregate.events_count == 3

    def test_running_operation(self, loaded_session):
        arch = loaded_session.get_arch(RUNNING_ARCH)

        assert arch.status == "in_progress"
        assert arch.is_running

    def test_wait_hold_locks_table(self, loaded_session):
        assert loaded_session.get_table("etl_batch_control").locked is True
        assert loaded_session.get_table("staging_orders").locked is False

    def test_reload_failure_resets(self, loaded_session, services, notifier):
        services.operations = FailingOperations()

        assert loaded_session.reload() is False
        assert loaded_session.tables == []
        assert loaded_session.arches == []
        assert isinstance(loaded_session.error, ServiceError)
        assert notifier.notices[-1].title == "Error Loading Data"
        assert notifier.notices[-1].is_error

    def test_stale_reload_is_discarded(self, session):
        """Test only the latest reload's result is installed."""
        first = session.begin_reload()
        snapshot = session.fetch_snapshot()
        second = session.begin_reload()

        assert session.commit_reload(first, snapshot) is False
        assert session.tables == []
        assert session.is_loading

        assert session.commit_reload(second, session.fetch_snapshot()) is True
        assert len(session.tables) == 10

    def test_each_reload_builds_new_lists(self, loaded_session):
        tables, arches = loaded_session.tables, loaded_session.arches
        loaded_session.reload()

        assert loaded_session.tables is not tables
        assert loaded_session.arches is not arches

    def test_criteria_are_passed_to_events(self, session, monkeypatch, services):
        calls = count_calls(monkeypatch, services.events, "get_events_aggregation")
        criteria = FilterCriteria(datafactory_ids=["retail_data_platform"])

        session.reload(criteria)

        assert calls == [(criteria, 1000)]
        assert session.criteria == criteria


class TestTableSelection:
    """Tests for select_table and lazy columns."""

    def test_columns_fetched_once(self, loaded_session, services, monkeypatch):
        calls = count_calls(monkeypatch, services.metadata, "get_table_columns")

        table = loaded_session.select_table("staging_orders", now=1.0)
        assert [c.name for c in table.columns][:2] == ["order_id", "customer_email"]

        loaded_session.select_table("staging_orders", now=5.0)
        assert calls == [("staging_orders",)]
        assert loaded_session.selected_table.id == "staging_orders"

    def test_fetch_failure_allows_retry(self, loaded_session, dataset, notifier):
        table = loaded_session.select_table("dim_products", now=1.0)

        assert table.columns is None
        assert notifier.notices[-1].title == "Failed to Load Columns"

        dataset.columns["dim_products"] = [TableColumn(name="product_id", type="INTEGER")]
        table = loaded_session.select_table("dim_products", now=5.0)

        assert [c.name for c in table.columns] == ["product_id"]

    def test_factory_node_has_no_columns(self, loaded_session):
        table = loaded_session.select_table("retail_data_platform", now=1.0)

        assert table.columns == []

    def test_late_columns_are_discarded(self, loaded_session, services, monkeypatch):
        """Test a columns result arriving after a newer reload is dropped."""
        original = services.metadata.get_table_columns

        def slow_columns(source_id):
            loaded_session.begin_reload()
            return original(source_id)

        monkeypatch.setattr(services.metadata, "get_table_columns", slow_columns)

        table = loaded_session.load_columns("staging_orders")

        assert table.columns is None

    def test_unknown_table(self, loaded_session):
        assert loaded_session.select_table("nope") is None

    def test_double_click_toggles_focus(self, loaded_session):
        loaded_session.select_table("dim_customers", now=1.0)
        assert loaded_session.focused_id is None

        loaded_session.select_table("dim_customers", now=1.1)
        assert loaded_session.focused_id == "dim_customers"

        loaded_session.select_table("dim_customers", now=5.0)
        loaded_session.select_table("dim_customers", now=5.1)
        assert loaded_session.focused_id is None


class TestFocusAndView:
    """Tests for focus mode and the view model."""

    def test_full_view(self, loaded_session):
        view = loaded_session.view()

        assert len(view.nodes) == 10
        assert len(view.edges) == 8
        assert all(n.position is not None for n in view.nodes)

    def test_focus_narrows_to_closure(self, loaded_session):
        loaded_session.focus("dim_customers")
        view = loaded_session.view()

        assert {n.id for n in view.nodes} == {
            "retail_data_platform",
            "stage_0.staging_orders",
            "staging_orders",
            "dim_customers",
        }
        assert {e.id for e in view.edges} == {
            "retail_data_platform-stage_0.staging_orders-insert_stage_0",
            "stage_0.staging_orders-staging_orders-insert_stage_1",
            UPSERT_ARCH,
        }

    def test_failed_edge_is_black(self, loaded_session):
        edges = {e.id: e for e in loaded_session.view().edges}

        assert edges[UPSERT_ARCH].stroke_color == "#000000"
        assert edges[RUNNING_ARCH].animated

    def test_filters_clear_focus(self, loaded_session):
        loaded_session.focus("dim_customers")
        loaded_session.set_filters(FilterCriteria(locked=True))

        assert loaded_session.focused_id is None
        assert [n.id for n in loaded_session.view().nodes] == ["etl_batch_control"]

    def test_focus_unknown_table(self, loaded_session):
        assert loaded_session.focus("nope") is False
        assert loaded_session.focused_id is None

    def test_depth_columns(self, loaded_session):
        nodes = {n.id: n.position for n in loaded_session.view().nodes}

        assert nodes["retail_data_platform"].x < nodes["stage_0.staging_orders"].x
        assert nodes["stage_0.staging_orders"].x < nodes["staging_orders"].x
        assert nodes["staging_orders"].x < nodes["fact_orders"].x


class TestArchSelection:
    """Tests for select_arch and lazy details."""

    def test_events_and_metadata_loaded(self, loaded_session):
        arch = loaded_session.select_arch(CUSTOM_ARCH)

        assert len(arch.events) == 3
        assert arch.events[0].timestamp > arch.events[-1].timestamp
        assert arch.merge_statement.startswith("SELECT order_id")
        assert arch.metadata_loaded
        assert loaded_session.selected_arch.arch_id == CUSTOM_ARCH

    def test_upsert_metadata(self, loaded_session):
        arch = loaded_session.select_arch(UPSERT_ARCH)

        assert arch.primary_key == "customer_id"
        assert arch.order_by == "order_date"

    def test_details_fetched_once(self, loaded_session, services, monkeypatch):
        event_calls = count_calls(monkeypatch, services.events, "get_events")
        metadata_calls = count_calls(monkeypatch, services.metadata, "get_custom_metadata")

        loaded_session.select_arch(CUSTOM_ARCH)
        loaded_session.select_arch(CUSTOM_ARCH)

        assert len(event_calls) == 1
        assert len(metadata_calls) == 1

    def test_date_range_change_refetches_events(self, loaded_session):
        loaded_session.select_arch(CUSTOM_ARCH)
        loaded_session.set_filters(
            FilterCriteria(start_date=SAMPLE_NOW - timedelta(hours=30), end_date=SAMPLE_NOW)
        )

        arch = loaded_session.select_arch(CUSTOM_ARCH)

        assert len(arch.events) == 2

    def test_statistics(self, loaded_session):
        loaded_session.select_arch(CUSTOM_ARCH)
        stats = loaded_session.statistics(CUSTOM_ARCH)

        assert stats.count == 3
        assert stats.rows == 15000
        assert stats.avg_time_between_events_ms == 23 * 3600 * 1000

    def test_selecting_arch_cancels_connection(self, loaded_session):
        loaded_session.select_table("staging_orders", now=1.0)
        loaded_session.arm_source()

        loaded_session.select_arch(CUSTOM_ARCH)

        assert loaded_session.workflow.state == "idle"
        assert loaded_session.selected_table is None

    def test_hyphenated_ids_select_their_own_arch(self, session, make_table, make_arch):
        """Test details fetched for one edge never land on a look-alike edge."""
        first = make_arch("a-b", "c")
        second = make_arch("a", "b-c")
        session.load_snapshot(
            [make_table(t) for t in ("a-b", "c", "a", "b-c")],
            [first, second],
        )

        session.select_arch(second.arch_id)

        assert session.selected_arch.target == "b-c"
        assert session.get_arch(second.arch_id).metadata_loaded
        assert session.get_arch(second.arch_id).events == []
        assert not session.get_arch(first.arch_id).metadata_loaded
        assert session.get_arch(first.arch_id).events is None
        assert len({edge.id for edge in session.view().edges}) == 2


class TestManualConnections:
    """Tests for arming a source and creating arches."""

    def test_create_through_workflow(self, loaded_session, notifier):
        session = loaded_session
        session.select_table("staging_orders", now=1.0)
        assert session.arm_source()
        session.select_table("fact_order_items", now=2.0)
        assert session.workflow.state == "ready"
        assert notifier.notices[-1].title == "Connection Ready"

        arch = session.create_arch("insert_upsert", primary_key="order_id")

        assert arch is not None
        assert arch.status == "pending"
        assert arch.events == []
        assert arch.arch_id == arch.id
        assert arch.operation.status == "pending"
        assert session.arches[-1] is arch
        assert len(session.arches) == 9
        assert session.workflow.state == "idle"
        assert notifier.notices[-1].title == "Connection Created"

    def test_target_click_does_not_change_focus(self, loaded_session):
        loaded_session.select_table("staging_orders", now=1.0)
        loaded_session.arm_source()
        loaded_session.select_table("fact_orders", now=2.0)
        loaded_session.select_table("fact_orders", now=2.1)

        assert loaded_session.focused_id is None

    def test_create_requires_ready(self, loaded_session, notifier):
        assert loaded_session.create_arch("insert_stage_1") is None
        assert notifier.notices[-1].title == "Failed to Create Connection"

    def test_invalid_request_changes_nothing(self, loaded_session, notifier):
        arches = loaded_session.arches
        loaded_session.select_table("staging_orders", now=1.0)
        loaded_session.arm_source()
        loaded_session.select_table("fact_orders", now=2.0)

        assert loaded_session.create_arch("insert_custom") is None
        assert loaded_session.arches is arches
        assert loaded_session.workflow.state == "ready"
        assert "Merge statement" in notifier.notices[-1].description

    def test_duplicate_edge_rejected(self, loaded_session, notifier):
        arch = loaded_session.create_arch(
            "insert_upsert",
            source="staging_orders",
            target="dim_customers",
            primary_key="customer_id",
        )

        assert arch is None
        assert "already exists" in notifier.notices[-1].description

    def test_unknown_endpoint_rejected(self, loaded_session):
        arch = loaded_session.create_arch(
            "insert_stage_1", source="staging_orders", target="nope"
        )

        assert arch is None

    def test_new_arch_is_visible(self, loaded_session):
        arch = loaded_session.create_arch(
            "insert_custom",
            source="dim_customers",
            target="fact_orders",
            merge_statement="MERGE INTO fact_orders USING dim_customers ON ...",
        )
        edges = {e.id: e for e in loaded_session.view().edges}

        assert edges[arch.id].animated
        assert edges[arch.id].stroke_color == "#f72585"


class TestLoadSnapshot:
    """Tests for installing an imported graph."""

    def test_drops_state_for_missing_nodes(self, loaded_session):
        loaded_session.focus("dim_customers")
        keep = [t for t in loaded_session.tables if t.id != "dim_customers"]

        loaded_session.load_snapshot(keep, [])

        assert loaded_session.focused_id is None
        assert len(loaded_session.tables) == 9

    def test_rebuilds_project_mappings(self, loaded_session):
        session = LineageSession(loaded_session.services)
        session.load_snapshot(loaded_session.tables, loaded_session.arches)
        session.set_filters(FilterCriteria(project_ids=["ecommerce_dimensions"]))

        ids = {n.id for n in session.view().nodes}

        assert ids == {"retail_data_platform", "dim_customers", "dim_products"}


class TestMalformedServiceReplies:
    """Tests that unusable replies become notices, never exceptions."""

    def test_malformed_columns_leave_table_unloaded(self, http_services, notifier, make_table):
        def handler(request):
            return httpx.Response(200, json=[{"nom": "x"}])

        session = LineageSession(http_services(handler), notifier=notifier)
        session.load_snapshot([make_table("staging_orders")], [])

        table = session.select_table("staging_orders", now=1.0)

        assert table.columns is None
        assert notifier.notices[-1].title == "Failed to Load Columns"

    def test_invalid_column_model_is_reported(self, loaded_session, services, monkeypatch, notifier):
        def bad_columns(source_id):
            return [TableColumn.model_validate({"nom": "x"})]

        monkeypatch.setattr(services.metadata, "get_table_columns", bad_columns)

        table = loaded_session.select_table("staging_orders", now=1.0)

        assert table.columns is None
        assert notifier.notices[-1].is_error

    def test_malformed_details_leave_arch_unloaded(
        self, http_services, notifier, make_table, make_arch
    ):
        def handler(request):
            return httpx.Response(200, json=[{"nom": "x"}])

        arch = make_arch("staging_orders", "dim_customers")
        session = LineageSession(http_services(handler), notifier=notifier)
        session.load_snapshot(
            [make_table("staging_orders"), make_table("dim_customers")], [arch]
        )

        selected = session.select_arch(arch.arch_id)

        assert selected.events is None
        assert not selected.metadata_loaded
        assert [n.title for n in notifier.errors] == [
            "Failed to Load Events",
            "Failed to Load Metadata",
        ]

    def test_non_json_reload_fails_cleanly(self, http_services, notifier):
        def handler(request):
            return httpx.Response(200, text="<html>gateway</html>")

        session = LineageSession(http_services(handler), notifier=notifier)

        assert session.reload() is False
        assert session.tables == []
        assert isinstance(session.error, ServiceError)
        assert notifier.notices[-1].title == "Error Loading Data"


class TestClose:
    """Tests for releasing service connections."""

    def test_context_manager_closes_clients(self, http_services):
        services = http_services(lambda request: httpx.Response(200, json={}))

        with LineageSession(services) as session:
            assert session.services is services

        assert services.metadata._client.is_closed
        assert services.events._client.is_closed
        assert services.operations._client.is_closed
