"""🔍 Filter Engine - Narrow the graph by ownership, lock state and status.

Every rule is a pure narrowing (set intersection), so applying the same
criteria twice, or in another order, yields the same result.
"""

from __future__ import annotations

from collections.abc import Iterable, Set

from .models import Arch, FilterCriteria, Table, TableMappings


def filter_tables(
    tables: Iterable[Table],
    criteria: FilterCriteria | None = None,
    mappings: TableMappings | None = None,
    focus: Set[str] | None = None,
) -> list[Table]:
    """Filter nodes.

    Args:
        tables: Nodes to filter
        criteria: Active filters (None = no filters)
        mappings: Needed to match factory pseudo nodes against projects
        focus: Closure of the focused node, when focus mode is active

    Returns:
        Surviving tables, input order preserved
    """
    criteria = criteria or FilterCriteria()
    filtered = list(tables)

    if focus is not None:
        filtered = [t for t in filtered if t.id in focus]

    if criteria.datafactory_ids:
        datafactory_ids = set(criteria.datafactory_ids)
        filtered = [
            t for t in filtered if t.datafactory_id and t.datafactory_id in datafactory_ids
        ]

    if criteria.project_ids:
        project_ids = set(criteria.project_ids)
        project_to_datafactory = mappings.project_to_datafactory if mappings else {}
        project_factories = {
            project_to_datafactory[p] for p in project_ids if p in project_to_datafactory
        }

        def matches_project(table: Table) -> bool:
            if table.is_datafactory:
                return table.datafactory_id in project_factories
            return bool(table.project_id) and table.project_id in project_ids

        filtered = [t for t in filtered if matches_project(t)]

    if criteria.locked is not None:
        filtered = [t for t in filtered if bool(t.locked) == criteria.locked]

    return filtered


def filter_arches(
    arches: Iterable[Arch],
    tables: Iterable[Table],
    criteria: FilterCriteria | None = None,
) -> list[str]:
    """Ids of arches whose endpoints both survived node filtering.

    Status and params-type criteria narrow further; for params type the
    arch's most recent event decides, and arches with no events fail.
    """
    criteria = criteria or FilterCriteria()
    table_ids = {t.id for t in tables}
    filtered = [a for a in arches if a.source in table_ids and a.target in table_ids]

    if criteria.arch_status:
        statuses = set(criteria.arch_status)
        filtered = [a for a in filtered if (a.status or "empty") in statuses]

    if criteria.params_type:
        params_types = set(criteria.params_type)

        def latest_matches(arch: Arch) -> bool:
            latest = arch.latest_event()
            return latest is not None and latest.params_type in params_types

        filtered = [a for a in filtered if latest_matches(a)]

    return [a.arch_id for a in filtered]


def search_tables(tables: Iterable[Table], term: str) -> list[Table]:
    """Case-insensitive substring search over ids and names."""
    term = term.strip().lower()
    if not term:
        return []

    def haystack(table: Table) -> tuple[str, ...]:
        return (
            table.id,
            table.source_id,
            table.datafactory_id,
            table.project_id,
            table.source_name,
            table.table_name,
        )

    return [t for t in tables if any(term in field.lower() for field in haystack(t))]


def available_datafactories(tables: Iterable[Table]) -> list[str]:
    """Distinct factory ids, first-seen order."""
    return list(dict.fromkeys(t.datafactory_id for t in tables if t.datafactory_id))


def available_projects(tables: Iterable[Table]) -> list[str]:
    """Distinct project ids that are not factory ids."""
    tables = list(tables)
    datafactories = set(available_datafactories(tables))
    return list(
        dict.fromkeys(
            t.project_id
            for t in tables
            if t.project_id and t.project_id not in datafactories
        )
    )
