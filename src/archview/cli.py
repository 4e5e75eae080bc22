#!/usr/bin/env python3
"""
🕸️ archview CLI - Explore data lineage from the terminal.

Usage:
    archview load                 Load lineage from the services
    archview show <file>          Show a filtered, laid-out export
    archview validate <file>      Validate an export document
    archview search <file> <term> Search tables in an export
    archview --help               Show help
"""

import argparse
import logging
import sys
from datetime import datetime
from pathlib import Path

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from archview import __version__
from archview.config import get_settings
from archview.errors import ArchviewError
from archview.graph.filters import filter_arches, search_tables
from archview.graph.models import FilterCriteria
from archview.graph.view import GraphView
from archview.notifications import Notice, Notifier
from archview.services import Dataset, create_services, memory_services
from archview.session import LineageSession
from archview.transfer import read_import, write_export

console = Console()

STATUS_COLORS = {
    "pending": "yellow",
    "in_progress": "cyan",
    "failure": "red",
    "hold": "magenta",
    "empty": "dim",
}


def print_notice(notice: Notice) -> None:
    color = "red" if notice.is_error else "green"
    console.print(f"[{color}]{notice.title}[/{color}] {notice.description}")


def build_criteria(args: argparse.Namespace) -> FilterCriteria:
    """Filter criteria from the shared filter flags."""
    locked = None
    if args.locked:
        locked = True
    elif args.unlocked:
        locked = False
    return FilterCriteria(
        datafactory_ids=args.factory or None,
        project_ids=args.project or None,
        locked=locked,
        arch_status=args.status or None,
        params_type=args.params_type or None,
        start_date=args.start,
        end_date=args.end,
    )


def new_session(notifier: Notifier, mock: bool = False, dataset: Path | None = None) -> LineageSession:
    settings = get_settings()
    if mock or dataset:
        settings = settings.model_copy(update={"use_mock_services": True})
    services = create_services(settings, Dataset.from_yaml(dataset) if dataset else None)
    return LineageSession(
        services,
        notifier=notifier,
        event_limit=settings.event_limit,
        double_click_ms=settings.double_click_ms,
        layout_config=settings.layout_config(),
    )


def print_graph(session: LineageSession) -> None:
    """Print tables and arches as rich tables."""
    tbl = Table(title="📊 Tables", show_header=True, header_style="bold cyan")
    tbl.add_column("Id")
    tbl.add_column("Factory")
    tbl.add_column("Project")
    tbl.add_column("Rows", justify="right")
    tbl.add_column("Size (MB)", justify="right")
    tbl.add_column("Locked")

    visible = session.visible_tables()
    for t in visible:
        tbl.add_row(
            t.id,
            t.datafactory_name or t.datafactory_id,
            t.project_name or t.project_id,
            f"{t.row_count:,}",
            f"{t.size_in_mb:g}",
            "🔒" if t.locked else "",
        )
    console.print(tbl)

    tbl = Table(title="🔗 Arches", show_header=True, header_style="bold cyan")
    tbl.add_column("Source")
    tbl.add_column("Target")
    tbl.add_column("Operation")
    tbl.add_column("Status")

    arch_ids = set(filter_arches(session.arches, visible, session.criteria))
    for a in session.arches:
        if a.arch_id not in arch_ids:
            continue
        color = STATUS_COLORS.get(a.status, "white")
        tbl.add_row(a.source, a.target, a.operation_type, f"[{color}]{a.status}[/{color}]")
    console.print(tbl)


def print_view(view: GraphView) -> None:
    """Print node positions and edge styling."""
    tbl = Table(title="📐 Layout", show_header=True, header_style="bold cyan")
    tbl.add_column("Node")
    tbl.add_column("x", justify="right")
    tbl.add_column("y", justify="right")
    for node in view.nodes:
        marker = " 🎯" if node.data.get("is_focused") else ""
        tbl.add_row(f"{node.id}{marker}", f"{node.position.x:.0f}", f"{node.position.y:.0f}")
    console.print(tbl)

    tbl = Table(title="🔗 Edges", show_header=True, header_style="bold cyan")
    tbl.add_column("Edge")
    tbl.add_column("Color")
    tbl.add_column("Animated")
    for edge in view.edges:
        tbl.add_row(
            edge.id,
            edge.stroke_color,
            "✓" if edge.animated else "",
        )
    console.print(tbl)


def load_lineage(args: argparse.Namespace) -> None:
    """Pull lineage from the services and optionally export it."""
    notifier = Notifier()
    notifier.subscribe(print_notice)
    with new_session(notifier, mock=args.mock, dataset=args.dataset) as session:
        console.print("🕸️ Loading lineage...")
        if not session.reload(build_criteria(args)):
            sys.exit(1)

        print_graph(session)

        if args.output:
            path = write_export(args.output, session.tables, session.arches)
            console.print(f"[green]✓[/green] Exported to [cyan]{path}[/cyan]")


def show_export(args: argparse.Namespace) -> None:
    """Filter, focus and lay out an export document."""
    try:
        tables, arches = read_import(args.file)
    except ArchviewError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)

    # Offline: an export carries everything the view needs
    session = LineageSession(
        memory_services(Dataset()), layout_config=get_settings().layout_config()
    )
    session.load_snapshot(tables, arches)
    session.set_filters(build_criteria(args))
    if args.focus and not session.focus(args.focus):
        console.print(f"[red]Error:[/red] Unknown table: {args.focus}")
        sys.exit(1)

    view = session.view()
    if args.json:
        console.print_json(data=view.to_dict())
    else:
        print_view(view)


def validate_export(args: argparse.Namespace) -> None:
    """Validate an export document."""
    try:
        tables, arches = read_import(args.file)
    except ArchviewError as e:
        console.print(f"[red]❌ {args.file}[/red]")
        console.print(f"   {e}")
        sys.exit(1)

    console.print(
        Panel(
            f"[green]✓[/green] {len(tables)} tables, {len(arches)} arches",
            title=f"✅ {args.file}",
        )
    )


def search_export(args: argparse.Namespace) -> None:
    """Search tables of an export document."""
    try:
        tables, _ = read_import(args.file)
    except ArchviewError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)

    matches = search_tables(tables, args.term)
    if not matches:
        console.print(f"[yellow]No tables match '{args.term}'[/yellow]")
        return

    tbl = Table(title=f"🔍 Matches for '{args.term}'", show_header=True, header_style="bold cyan")
    tbl.add_column("Id")
    tbl.add_column("Name")
    tbl.add_column("Project")
    for t in matches:
        tbl.add_row(t.id, t.table_name, t.project_name or t.project_id)
    console.print(tbl)


def add_filter_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--factory", "-f", action="append", help="Datafactory id (repeatable)")
    parser.add_argument("--project", "-p", action="append", help="Project id (repeatable)")
    locked = parser.add_mutually_exclusive_group()
    locked.add_argument("--locked", action="store_true", help="Only locked tables")
    locked.add_argument("--unlocked", action="store_true", help="Only unlocked tables")
    parser.add_argument(
        "--status",
        "-s",
        action="append",
        choices=list(STATUS_COLORS),
        help="Arch status (repeatable)",
    )
    parser.add_argument(
        "--params-type",
        action="append",
        choices=["batch_ids", "time_range"],
        help="Params type of the latest event (repeatable)",
    )
    parser.add_argument("--start", type=datetime.fromisoformat, help="Start of the date range (ISO)")
    parser.add_argument("--end", type=datetime.fromisoformat, help="End of the date range (ISO)")


def main() -> None:
    """Main CLI entrypoint."""
    parser = argparse.ArgumentParser(
        prog="archview",
        description="🕸️ archview - Data lineage explorer",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  archview load --mock                       Load the built-in sample lineage
  archview load -o lineage.json              Load from the services and export
  archview show lineage.json --focus fact_orders
  archview show lineage.json -s failure --json
  archview validate lineage.json             Check an export document
  archview search lineage.json orders        Find tables by id or name
        """,
    )
    parser.add_argument(
        "--log-level",
        default="warning",
        choices=["debug", "info", "warning", "error"],
        help="Logging level (default: warning)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # load command
    load_parser = subparsers.add_parser("load", help="Load lineage from the services")
    load_parser.add_argument("--mock", action="store_true", help="Use the in-memory sample services")
    load_parser.add_argument("--dataset", type=Path, help="YAML dataset for the in-memory services")
    load_parser.add_argument("--output", "-o", type=Path, help="Export file or directory")
    add_filter_arguments(load_parser)

    # show command
    show_parser = subparsers.add_parser("show", help="Show a filtered, laid-out export")
    show_parser.add_argument("file", type=Path, help="Export document")
    show_parser.add_argument("--focus", help="Only show this table's ancestors and descendants")
    show_parser.add_argument("--json", action="store_true", help="Print the view model as JSON")
    add_filter_arguments(show_parser)

    # validate command
    validate_parser = subparsers.add_parser("validate", help="Validate an export document")
    validate_parser.add_argument("file", type=Path, help="Export document")

    # search command
    search_parser = subparsers.add_parser("search", help="Search tables in an export")
    search_parser.add_argument("file", type=Path, help="Export document")
    search_parser.add_argument("term", help="Case-insensitive search term")

    # version
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    args = parser.parse_args()
    logging.basicConfig(level=args.log_level.upper())

    if args.command == "load":
        load_lineage(args)
    elif args.command == "show":
        show_export(args)
    elif args.command == "validate":
        validate_export(args)
    elif args.command == "search":
        search_export(args)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
