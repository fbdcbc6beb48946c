"""Typer-based CLI for ArchGraph architecture scanning and queries."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import typer
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from . import __version__
from . import cli_query
from .cli_groups import config_grp, project_grp, snapshot_grp
from .cli_query import console, open_queries, resolve_project_root
from .config_manager import get_settings, get_store_path, project_slug
from .hashing import format_file_change_summary
from .scanner import ScanOptions, Scanner
from .storage import ArchitectureStore, ProjectManager, format_timestamp

app = typer.Typer(
    help="ArchGraph: static architecture graph for your codebase.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

# Register command groups
app.add_typer(project_grp, name="project")
app.add_typer(config_grp, name="config")
app.add_typer(snapshot_grp, name="snapshot")

# Register query commands
app.command("trace")(cli_query.trace)
app.command("subgraph")(cli_query.subgraph)
app.command("coverage")(cli_query.coverage)
app.command("rules")(cli_query.rules)
app.command("impact")(cli_query.impact)
app.command("diagram")(cli_query.diagram)


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        typer.echo(f"ArchGraph v{__version__}")
        raise typer.Exit()


def setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    root = logging.getLogger("archgraph")
    root.setLevel(level)
    if not any(isinstance(h, RichHandler) for h in root.handlers):
        root.addHandler(RichHandler(console=console, show_path=False, markup=False))


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", "-V", help="Enable debug logging."),
):
    """ArchGraph: detect components and connections, then query the graph."""
    setup_logging(verbose)


@app.command("scan")
def scan(
    project_path: Optional[Path] = typer.Argument(None, help="Project root (default: current directory)."),
    incremental: bool = typer.Option(False, "--incremental", "-i", help="Skip the scan when no file changed."),
    clear: bool = typer.Option(False, "--clear", help="Wipe stored records before scanning."),
    snapshot: bool = typer.Option(False, "--snapshot", help="Record a snapshot after the scan."),
    workers: Optional[int] = typer.Option(None, "--workers", "-w", min=1, max=64, help="Worker threads."),
):
    """Scan a project and update its architecture store."""
    if project_path is not None and not project_path.is_dir():
        raise typer.BadParameter(f"Not a directory: {project_path}")
    root = (project_path or Path.cwd()).resolve()
    settings = get_settings()
    scanner = Scanner(root, settings=settings)

    with console.status(f"[cyan]Scanning {root}...[/cyan]"):
        report = scanner.scan(ScanOptions(
            incremental=incremental,
            clear_first=clear,
            snapshot=snapshot,
            max_workers=workers,
        ))

    stats = report.stats
    if stats.skipped:
        console.print("[green]✓[/green] No files changed since the last scan; nothing to do.")
        return

    pm = ProjectManager()
    name = project_slug(root)
    pm.register_project(name, root, report.store_path, stats.to_dict())
    pm.set_current_project(name)

    table = Table(title="Scan complete", show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value")
    table.add_row("Components", str(stats.components_found))
    table.add_row("Connections", str(stats.connections_found))
    table.add_row("Files scanned", str(stats.files_scanned))
    table.add_row("Changes", format_file_change_summary(report.changes))
    table.add_row("Records written", str(stats.records_written))
    table.add_row("Warnings", str(stats.warnings_count))
    table.add_row("Duration", f"{stats.scan_duration_ms} ms")
    table.add_row("Store", str(report.store_path))
    if report.snapshot_id:
        table.add_row("Snapshot", report.snapshot_id)
    console.print(table)

    for warning in report.warnings[:10]:
        where = f" ({warning.file})" if warning.file else ""
        console.print(f"[yellow]![/yellow] {warning.type}: {warning.message}{where}", markup=False)
    if len(report.warnings) > 10:
        console.print(f"[dim]... and {len(report.warnings) - 10} more warning(s)[/dim]")


@app.command("status")
def status(project_path: Optional[Path] = typer.Argument(None, help="Project root.")):
    """Show when the project was last scanned and what the store holds."""
    queries = open_queries(project_path)
    data = queries.status().data
    if not data.get("exists"):
        console.print("[yellow]![/yellow] No architecture data found. Run 'archgraph scan' first.")
        raise typer.Exit(code=1)

    stats = queries.store.get_storage_stats()
    last_scan = data.get("last_scan")
    rescan = "[yellow]yes[/yellow]" if data.get("needs_rescan") else "[green]no[/green]"
    lines = [
        f"Project      {queries.project_root}",
        f"Store        {data['store_path']}",
        f"Last scan    {format_timestamp(last_scan) if last_scan else 'never'}",
        f"Components   {data.get('components', 0)}",
        f"Connections  {data.get('connections', 0)}",
        f"Low conf.    {data.get('low_confidence_connections', 0)}",
        f"Snapshots    {stats['snapshots']}",
        f"Size         {stats['total_bytes']:,} bytes",
        f"Rescan due   {rescan}",
    ]
    console.print(Panel.fit("\n".join(lines), title="[bold]ArchGraph status[/bold]", border_style="cyan"))


@app.command("clear")
def clear(
    project_path: Optional[Path] = typer.Argument(None, help="Project root."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation."),
):
    """Delete all stored records and derived artifacts for a project."""
    root = resolve_project_root(project_path)
    store = ArchitectureStore(get_store_path(root), root)
    if not store.exists():
        typer.echo("Nothing to clear.")
        return
    if not yes and not typer.confirm(f"Delete architecture data in {store.store_dir}?"):
        raise typer.Exit(code=1)
    store.clear()
    typer.echo(f"Cleared {store.store_dir}")


if __name__ == "__main__":
    app()
