"""Query commands: trace, subgraph, coverage, rules, impact and diagram."""

from __future__ import annotations

import json
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .config_manager import get_settings
from .coverage import CoverageGap, CoverageReport, format_coverage_output
from .graph_export import EXPORT_FORMATS, write_diagram
from .models import CLASSIFICATIONS, LAYERS
from .queries import NO_STORE_WARNING, ArchitectureQueries, QueryResult
from .storage import ProjectManager
from .trace import DIRECTIONS, TracePath, TraceResult, TraceStep, format_trace_output

console = Console()

SEVERITY_STYLES = {
    "critical": "bold red",
    "high": "red",
    "medium": "yellow",
    "low": "green",
    "error": "red",
    "warning": "yellow",
    "info": "cyan",
}


# ===================================================================
# Shared helpers
# ===================================================================

def resolve_project_root(path: Optional[Path]) -> Path:
    """Explicit path, else the active project, else the working directory."""
    if path is not None:
        if not path.is_dir():
            raise typer.BadParameter(f"Not a directory: {path}")
        return path.resolve()
    pm = ProjectManager()
    current = pm.get_current_project()
    if current:
        entry = pm.get_project(current)
        if entry and Path(entry["path"]).is_dir():
            return Path(entry["path"])
    return Path.cwd()


def open_queries(path: Optional[Path]) -> ArchitectureQueries:
    return ArchitectureQueries(resolve_project_root(path), settings=get_settings())


def echo_json(result: QueryResult) -> None:
    typer.echo(json.dumps(result.to_dict(), indent=2, sort_keys=True))


def _print_warnings(result: QueryResult) -> None:
    for warning in result.warnings:
        console.print(f"[yellow]![/yellow] {warning}")
    if result.error:
        console.print(f"[red]✗[/red] {result.error}")


def _require_store(queries: ArchitectureQueries) -> None:
    if not queries.store.exists():
        console.print(f"[red]✗[/red] {NO_STORE_WARNING}")
        raise typer.Exit(code=1)


def _require_component(queries: ArchitectureQueries, name: str) -> None:
    if queries.resolve(name) is not None:
        return
    console.print(f"[red]✗[/red] Component '{name}' not found.")
    candidates = queries.suggest(name)
    if candidates:
        console.print("\n[bold]Did you mean one of these?[/bold]")
        for candidate in candidates:
            console.print(f"   - {candidate}")
    raise typer.Exit(code=1)


def _check_choice(value: Optional[str], choices, label: str) -> None:
    if value is not None and value not in choices:
        raise typer.BadParameter(f"{label} must be one of: {', '.join(choices)}")


# ===================================================================
# Commands
# ===================================================================

def trace(
    name: str = typer.Argument(..., help="Component name, ID or file path to start from."),
    direction: str = typer.Option("both", "--direction", "-d", help="forward, backward or both."),
    depth: int = typer.Option(5, "--depth", min=1, max=20, help="Maximum path length."),
    classification: Optional[str] = typer.Option(None, "--classification", "-c", help="Only follow edges with this classification."),
    as_json: bool = typer.Option(False, "--json", help="Print the raw query result."),
    path: Optional[Path] = typer.Option(None, "--path", "-p", help="Project root."),
):
    """Trace dataflow paths through a component."""
    _check_choice(direction, DIRECTIONS, "direction")
    _check_choice(classification, CLASSIFICATIONS, "classification")
    queries = open_queries(path)
    result = queries.trace(name, direction=direction, max_depth=depth, classification=classification)
    if as_json:
        echo_json(result)
        return

    _require_store(queries)
    _require_component(queries, name)
    _print_warnings(result)
    data = result.data
    limit = queries.settings.max_results
    if not data["paths"]:
        console.print(f"[dim]No paths found from '{data['query']}'.[/dim]")
        return

    shown = TraceResult(
        query=data["query"],
        paths=[
            TracePath(
                steps=[TraceStep(**step) for step in p["steps"]],
                classification=p.get("classification"),
            )
            for p in data["paths"][:limit]
        ],
        components_touched=data["components_touched"],
        layers_crossed=data["layers_crossed"],
    )
    console.print(format_trace_output(shown), markup=False, highlight=False)
    if len(data["paths"]) > limit:
        console.print(f"[dim]... and {len(data['paths']) - limit} more path(s); use --json for all.[/dim]")


def subgraph(
    focus: Optional[List[str]] = typer.Argument(None, help="Focus components (empty = whole graph)."),
    depth: int = typer.Option(2, "--depth", min=0, max=10, help="BFS depth from the focus set."),
    layer: Optional[List[str]] = typer.Option(None, "--layer", "-l", help="Keep only these layers (repeatable)."),
    classification: Optional[str] = typer.Option(None, "--classification", "-c", help="Keep only edges with this classification."),
    max_nodes: int = typer.Option(50, "--max-nodes", min=1, help="Node cap."),
    as_json: bool = typer.Option(False, "--json", help="Print the raw query result."),
    path: Optional[Path] = typer.Option(None, "--path", "-p", help="Project root."),
):
    """Extract a focused slice of the architecture graph."""
    for value in layer or []:
        _check_choice(value, LAYERS, "layer")
    _check_choice(classification, CLASSIFICATIONS, "classification")
    queries = open_queries(path)
    result = queries.subgraph(
        focus=focus or None, depth=depth, layers=layer or None,
        classification=classification, max_nodes=max_nodes,
    )
    if as_json:
        echo_json(result)
        return

    _require_store(queries)
    _print_warnings(result)
    data = result.data
    table = Table(title=f"Subgraph: {data['stats']['nodes']} nodes, {data['stats']['edges']} edges")
    table.add_column("Component", style="cyan")
    table.add_column("Type")
    table.add_column("Layer")
    for comp in data["components"]:
        table.add_row(comp["name"], comp["type"], comp["layer"])
    console.print(table)
    console.print(Panel(Text(data["diagram_text"]), title="Mermaid", border_style="dim"))


def coverage(
    gaps_only: bool = typer.Option(False, "--gaps-only", help="Only list coverage gaps."),
    as_json: bool = typer.Option(False, "--json", help="Print the raw query result."),
    path: Optional[Path] = typer.Option(None, "--path", "-p", help="Project root."),
):
    """Report file coverage, connection confidence and structural gaps."""
    queries = open_queries(path)
    result = queries.coverage()
    if as_json:
        echo_json(result)
        return

    _require_store(queries)
    _print_warnings(result)
    data = result.data
    report = CoverageReport(
        overall_confidence=data["overall_confidence"],
        total_files_in_project=data["component_coverage"]["total_files_in_project"],
        files_mapped_to_components=data["component_coverage"]["files_mapped_to_components"],
        coverage_percent=data["component_coverage"]["coverage_percent"],
        total_connections=data["connection_coverage"]["total_connections"],
        by_confidence=data["connection_coverage"]["by_confidence"],
        by_classification=data["connection_coverage"]["by_classification"],
        gaps=[CoverageGap(**gap) for gap in data["gaps"]],
    )
    console.print(format_coverage_output(report, gaps_only=gaps_only), markup=False, highlight=False)


def rules(
    as_json: bool = typer.Option(False, "--json", help="Print the raw query result."),
    path: Optional[Path] = typer.Option(None, "--path", "-p", help="Project root."),
):
    """Check built-in and custom architecture rules."""
    queries = open_queries(path)
    result = queries.rules()
    if as_json:
        echo_json(result)
        return

    _require_store(queries)
    _print_warnings(result)
    violations = result.data["violations"]
    if not violations:
        console.print("[green]✓[/green] No architecture rule violations found.")
        return

    table = Table(title=f"Architecture rules: {len(violations)} violation(s)", show_lines=False)
    table.add_column("Severity", width=8)
    table.add_column("Rule", style="cyan")
    table.add_column("Component")
    table.add_column("Message", min_width=30)
    order = {"error": 0, "warning": 1, "info": 2}
    for v in sorted(violations, key=lambda item: order.get(item["severity"], 3)):
        style = SEVERITY_STYLES.get(v["severity"], "white")
        table.add_row(
            f"[{style}]{v['severity']}[/{style}]",
            v["rule_id"],
            v.get("component", ""),
            v["message"],
        )
    console.print(table)


def impact(
    name: str = typer.Argument(..., help="Component name, ID or file path."),
    as_json: bool = typer.Option(False, "--json", help="Print the raw query result."),
    path: Optional[Path] = typer.Option(None, "--path", "-p", help="Project root."),
):
    """Show what depends on a component and how severe a change would be."""
    queries = open_queries(path)
    result = queries.impact(name)
    if as_json:
        echo_json(result)
        return

    _require_store(queries)
    _require_component(queries, name)
    _print_warnings(result)
    data = result.data
    style = SEVERITY_STYLES.get(data["severity"], "white")
    console.print(
        Panel.fit(
            f"[{style}]{data['summary']}[/{style}]",
            title=f"[bold]Impact: {data['component']['name']}[/bold]",
            border_style=style,
        )
    )
    if not data["affected"]:
        return
    table = Table(show_header=True)
    table.add_column("Impact", width=10)
    table.add_column("Component", style="cyan")
    table.add_column("Layer")
    table.add_column("Change required", min_width=30)
    for item in data["affected"]:
        table.add_row(
            item["impact_type"],
            item["component"]["name"],
            item["component"]["layer"],
            item["change_required"],
        )
    console.print(table)


def diagram(
    fmt: str = typer.Option("mermaid", "--format", "-f", help="Export format: mermaid or dot."),
    focus: Optional[List[str]] = typer.Option(None, "--focus", help="Focus component (repeatable)."),
    depth: int = typer.Option(2, "--depth", min=0, max=10, help="BFS depth from the focus set."),
    max_nodes: int = typer.Option(50, "--max-nodes", min=1, help="Node cap."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Output file path."),
    path: Optional[Path] = typer.Option(None, "--path", "-p", help="Project root."),
):
    """Export the architecture graph as Mermaid or Graphviz DOT."""
    fmt = fmt.lower()
    if fmt not in EXPORT_FORMATS:
        raise typer.BadParameter(f"Format must be one of: {', '.join(EXPORT_FORMATS)}")

    queries = open_queries(path)
    _require_store(queries)
    result = queries.subgraph_result(focus=focus or None, depth=depth, max_nodes=max_nodes)
    suffix = "dot" if fmt == "dot" else "mmd"
    if output is None:
        output = queries.store.store_dir / f"architecture.{suffix}"
    write_diagram(result, output, fmt)
    typer.echo(f"Exported {result.stats['nodes']} nodes, {result.stats['edges']} edges to {output}")
