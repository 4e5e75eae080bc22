"""🧪 Tests for the filter engine."""

from datetime import datetime

import pytest

from archview.graph.filters import (
    available_datafactories,
    available_projects,
    filter_arches,
    filter_tables,
    search_tables,
)
from archview.graph.models import ArchEvent, FilterCriteria, Table, TableMappings


@pytest.fixture
def tables(make_table):
    return [
        Table(
            id="df1",
            source_id="df1",
            datafactory_id="df1",
            project_id="df1",
            is_datafactory=True,
        ),
        make_table("orders", project_id="p1", source_name="Orders"),
        make_table("customers", project_id="p2", locked=True),
        make_table("legacy", datafactory_id="df2", project_id="p3", locked=None),
    ]


@pytest.fixture
def mappings():
    return TableMappings(project_to_datafactory={"p1": "df1", "p2": "df1", "p3": "df2"})


class TestFilterTables:
    """Tests for filter_tables."""

    def test_no_criteria_keeps_everything(self, tables):
        assert filter_tables(tables) == tables

    def test_by_datafactory(self, tables):
        result = filter_tables(tables, FilterCriteria(datafactory_ids=["df1"]))

        assert [t.id for t in result] == ["df1", "orders", "customers"]

    def test_by_project_keeps_owning_factory(self, tables, mappings):
        """Test factory pseudo nodes survive when they own a selected project."""
        result = filter_tables(tables, FilterCriteria(project_ids=["p1"]), mappings)

        assert [t.id for t in result] == ["df1", "orders"]

    def test_by_project_without_mappings_drops_factories(self, tables):
        result = filter_tables(tables, FilterCriteria(project_ids=["p1"]))

        assert [t.id for t in result] == ["orders"]

    def test_locked(self, tables):
        locked = filter_tables(tables, FilterCriteria(locked=True))
        unlocked = filter_tables(tables, FilterCriteria(locked=False))

        assert [t.id for t in locked] == ["customers"]
        assert [t.id for t in unlocked] == ["df1", "orders", "legacy"]

    def test_focus(self, tables):
        result = filter_tables(tables, focus={"orders", "customers"})

        assert [t.id for t in result] == ["orders", "customers"]

    @pytest.mark.parametrize(
        "criteria",
        [
            FilterCriteria(),
            FilterCriteria(datafactory_ids=["df1"]),
            FilterCriteria(project_ids=["p1", "p3"]),
            FilterCriteria(datafactory_ids=["df1"], locked=False),
        ],
    )
    def test_idempotent(self, tables, mappings, criteria):
        once = filter_tables(tables, criteria, mappings)

        assert filter_tables(once, criteria, mappings) == once


class TestFilterArches:
    """Tests for filter_arches."""

    def test_requires_both_endpoints(self, tables, make_arch):
        arches = [make_arch("orders", "customers"), make_arch("orders", "gone")]

        assert filter_arches(arches, tables) == ["orders-customers-insert_upsert"]

    def test_by_status(self, tables, make_arch):
        arches = [
            make_arch("orders", "customers", status="failure"),
            make_arch("orders", "legacy", status="empty"),
        ]

        result = filter_arches(arches, tables, FilterCriteria(arch_status=["failure"]))

        assert result == ["orders-customers-insert_upsert"]

    def test_by_params_type_uses_latest_event(self, tables, make_arch):
        older = ArchEvent(timestamp=datetime(2024, 5, 1), params_type="time_range")
        newer = ArchEvent(timestamp=datetime(2024, 5, 2), params_type="batch_ids")
        arches = [
            make_arch("orders", "customers", events=[newer, older]),
            make_arch("orders", "legacy", events=[older]),
            make_arch("customers", "legacy"),
        ]

        result = filter_arches(arches, tables, FilterCriteria(params_type=["batch_ids"]))

        assert result == ["orders-customers-insert_upsert"]


class TestSearch:
    """Tests for table search and option lists."""

    def test_search_is_case_insensitive(self, tables):
        assert [t.id for t in search_tables(tables, "ORD")] == ["orders"]

    def test_blank_term_finds_nothing(self, tables):
        assert search_tables(tables, "  ") == []

    def test_available_options(self, tables):
        assert available_datafactories(tables) == ["df1", "df2"]
        assert available_projects(tables) == ["p1", "p2", "p3"]
