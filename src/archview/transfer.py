"""📦 Import / Export - Save the graph to JSON and load it back.

Document format:

    {
      "tables": [...],
      "arches": [...],
      "version": "1.0",
      "exportedAt": "2024-05-01T12:00:00"
    }
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from archview.errors import ImportValidationError
from archview.graph.models import Arch, Table

logger = logging.getLogger(__name__)

EXPORT_VERSION = "1.0"

REQUIRED_TABLE_FIELDS = ("id", "source_id", "datafactory_id", "project_id")
REQUIRED_ARCH_FIELDS = ("id", "source", "target", "operation_type")


def _arch_record(arch: Arch) -> dict[str, Any]:
    record = arch.model_dump(mode="json")
    record["id"] = arch.arch_id
    record["events"] = record["events"] or []
    return record


def export_document(
    tables: list[Table],
    arches: list[Arch],
    now: datetime | None = None,
) -> dict[str, Any]:
    """Build the export document for the given graph."""
    now = now or datetime.now()
    return {
        "tables": [t.model_dump(mode="json") for t in tables],
        "arches": [_arch_record(a) for a in arches],
        "version": EXPORT_VERSION,
        "exportedAt": now.isoformat(),
    }


def default_export_name(now: datetime | None = None) -> str:
    now = now or datetime.now()
    return f"lineage-export-{now.date().isoformat()}.json"


def write_export(
    path: Path | str,
    tables: list[Table],
    arches: list[Arch],
    now: datetime | None = None,
) -> Path:
    """Write an export document.

    Args:
        path: Target file, or a directory to write a dated file into

    Returns:
        Path of the written file
    """
    path = Path(path)
    if path.is_dir():
        path = path / default_export_name(now)

    document = export_document(tables, arches, now)
    path.write_text(json.dumps(document, indent=2))
    logger.info("Exported %d tables and %d arches to %s", len(tables), len(arches), path)
    return path


def _has_strings(record: Any, fields: tuple[str, ...]) -> bool:
    return isinstance(record, dict) and all(
        isinstance(record.get(name), str) and record.get(name) for name in fields
    )


def import_document(data: Any) -> tuple[list[Table], list[Arch]]:
    """Validate an export document and rebuild tables and arches.

    Raises:
        ImportValidationError: If the document does not match the format
    """
    if (
        not isinstance(data, dict)
        or not isinstance(data.get("tables"), list)
        or not isinstance(data.get("arches"), list)
    ):
        raise ImportValidationError("Invalid data format: Missing tables or arches array")

    if not all(_has_strings(t, REQUIRED_TABLE_FIELDS) for t in data["tables"]):
        raise ImportValidationError("Invalid table data: Missing required properties")

    if not all(
        _has_strings(a, REQUIRED_ARCH_FIELDS) and isinstance(a.get("events"), list)
        for a in data["arches"]
    ):
        raise ImportValidationError("Invalid arch data: Missing required properties")

    try:
        tables = [Table(**t) for t in data["tables"]]
        arches = [Arch(**a) for a in data["arches"]]
    except ValidationError as e:
        raise ImportValidationError(f"Invalid document: {e}") from e

    return tables, arches


def read_import(path: Path | str) -> tuple[list[Table], list[Arch]]:
    """Read and validate an export document from disk."""
    path = Path(path)
    try:
        data = json.loads(path.read_text())
    except json.JSONDecodeError as e:
        raise ImportValidationError(f"Failed to parse imported file: {e}") from e
    except OSError as e:
        raise ImportValidationError(f"Failed to read imported file: {e}") from e

    tables, arches = import_document(data)
    logger.info("Imported %d tables and %d arches from %s", len(tables), len(arches), path)
    return tables, arches
