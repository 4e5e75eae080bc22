"""🔑 Arch Identity - Canonical keys for deduplicating edges.

Operations and historical events describe the same pipeline edge
independently; both must map to the same key so redundant observations
collapse into one arch.

The string form ``"{source}-{target}-{operation_type}"`` is what renderers
and exports use as the edge id. Ids may themselves contain ``-`` (UUIDs
do), so each component escapes ``\\`` and ``-`` with a backslash before
joining: ``a-b`` -> ``c`` becomes ``a\\-b-c-...`` while ``a`` -> ``b-c``
becomes ``a-b\\-c-...``. Ids without either character are unchanged.
"""

from __future__ import annotations

from typing import Any, NamedTuple

STAGE_0_PREFIX = "stage_0."
KEY_SEPARATOR = "-"
ESCAPE = "\\"


def _escape(part: str) -> str:
    return part.replace(ESCAPE, ESCAPE * 2).replace(KEY_SEPARATOR, ESCAPE + KEY_SEPARATOR)


class ArchKey(NamedTuple):
    """Structured identity of an edge."""

    source: str
    target: str
    operation_type: str

    def __str__(self) -> str:
        return KEY_SEPARATOR.join(_escape(part) for part in self)


def _field(record: Any, name: str) -> Any:
    if isinstance(record, dict):
        return record.get(name)
    return getattr(record, name, None)


def arch_key(record: Any) -> ArchKey:
    """Structured (source, target, operation_type) key of an edge-like record."""
    return ArchKey(
        str(_field(record, "source")),
        str(_field(record, "target")),
        str(_field(record, "operation_type")),
    )


def arch_id(record: Any) -> str:
    """Edge id: the explicit ``id`` when present, else the escaped joined key."""
    explicit = _field(record, "id")
    if explicit:
        return str(explicit)
    return str(arch_key(record))


def stage_0_id(source_id: str) -> str:
    """Synthetic id of the raw-ingest buffer node of a source."""
    return f"{STAGE_0_PREFIX}{source_id}"


def is_stage_0_id(node_id: str) -> bool:
    return node_id.startswith(STAGE_0_PREFIX)
