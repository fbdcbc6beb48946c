"""Command groups for organized CLI experience.

Provides logical grouping of commands under:
  archgraph project   - registered projects and the active one
  archgraph config    - TOML settings
  archgraph snapshot  - point-in-time rollups and their diffs
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import typer
from rich.table import Table

from . import config_manager
from .cli_query import console, open_queries, resolve_project_root
from .config_manager import get_store_path, project_slug
from .diff import classify_significance, compute_architecture_diff, format_diff_output
from .storage import ArchitectureStore, ProjectManager, format_timestamp

# ── Project management group ─────────────────────────────────
project_grp = typer.Typer(
    help="Projects: register, switch and forget scanned projects.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

# ── Configuration group ──────────────────────────────────────
config_grp = typer.Typer(
    help="Configuration: storage mode, scan and query defaults.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

# ── Snapshot group ───────────────────────────────────────────
snapshot_grp = typer.Typer(
    help="Snapshots: capture the graph and diff it over time.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ===================================================================
# project
# ===================================================================

@project_grp.command("list")
def project_list():
    """List registered projects."""
    pm = ProjectManager()
    projects = pm.list_projects()
    current = pm.get_current_project()
    if not projects:
        typer.echo("No projects registered yet. Run 'archgraph scan <path>'.")
        raise typer.Exit(code=0)

    table = Table(show_header=True)
    table.add_column("", width=1)
    table.add_column("Name", style="cyan")
    table.add_column("Path")
    table.add_column("Components", justify="right")
    table.add_column("Connections", justify="right")
    table.add_column("Last scan")
    for entry in projects:
        table.add_row(
            "*" if entry["name"] == current else "",
            entry["name"],
            entry["path"],
            str(entry.get("components", "-")),
            str(entry.get("connections", "-")),
            format_timestamp(entry["last_scan"]) if entry.get("last_scan") else "-",
        )
    console.print(table)


@project_grp.command("register")
def project_register(
    project_path: Path = typer.Argument(..., exists=True, file_okay=False, help="Project root."),
    name: Optional[str] = typer.Option(None, "--name", "-n", help="Explicit project name."),
):
    """Register a project without scanning it."""
    pm = ProjectManager()
    root = project_path.resolve()
    project_name = name or project_slug(root)
    pm.register_project(project_name, root, get_store_path(root))
    typer.echo(f"Registered project '{project_name}' at {root}.")


@project_grp.command("use")
def project_use(name: str = typer.Argument(..., help="Project to make active.")):
    """Switch the active project used when --path is omitted."""
    pm = ProjectManager()
    if pm.get_project(name) is None:
        raise typer.BadParameter(f"Project '{name}' not found.")
    pm.set_current_project(name)
    typer.echo(f"Active project: '{name}'.")


@project_grp.command("remove")
def project_remove(name: str = typer.Argument(..., help="Project to forget.")):
    """Forget a project (its store directory is left in place)."""
    pm = ProjectManager()
    if not pm.remove_project(name):
        raise typer.BadParameter(f"Project '{name}' not found.")
    typer.echo(f"Removed project '{name}'.")


# ===================================================================
# config
# ===================================================================

@config_grp.command("show")
def config_show():
    """Show the effective configuration."""
    effective = config_manager.get_effective_config()
    table = Table(title="Effective configuration", show_header=True)
    table.add_column("Key", style="cyan")
    table.add_column("Value")
    for section, values in effective.items():
        for key, value in values.items():
            table.add_row(f"{section}.{key}", json.dumps(value) if isinstance(value, list) else str(value))
    console.print(table)
    console.print(f"[dim]Config file: {config_manager.CONFIG_FILE}[/dim]")


def _split_key(dotted: str):
    if "." not in dotted:
        raise typer.BadParameter("Key must look like <section>.<key>, e.g. query.max_results")
    section, key = dotted.split(".", 1)
    return section, key


@config_grp.command("set")
def config_set(
    key: str = typer.Argument(..., help="Dotted key, e.g. storage.mode."),
    value: str = typer.Argument(..., help="New value."),
):
    """Set a configuration value."""
    section, name = _split_key(key)
    try:
        saved = config_manager.save_config_value(section, name, value)
    except KeyError:
        raise typer.BadParameter(f"Unknown configuration key '{key}'.")
    except ValueError as exc:
        raise typer.BadParameter(str(exc))
    if not saved:
        typer.echo("Failed to write configuration.", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Set {key} = {value}")


@config_grp.command("unset")
def config_unset(key: str = typer.Argument(..., help="Dotted key to reset to its default.")):
    """Remove a configuration value, restoring the default."""
    section, name = _split_key(key)
    if config_manager.unset_config_value(section, name):
        typer.echo(f"Unset {key}")
    else:
        typer.echo(f"{key} was not set.")


# ===================================================================
# snapshot
# ===================================================================

def _open_store(path: Optional[Path]) -> ArchitectureStore:
    queries = open_queries(path)
    if not queries.store.exists():
        console.print("[red]✗[/red] No architecture data found. Run 'archgraph scan' first.")
        raise typer.Exit(code=1)
    return queries.store


@snapshot_grp.command("create")
def snapshot_create(path: Optional[Path] = typer.Option(None, "--path", "-p", help="Project root.")):
    """Capture the current graph as a snapshot."""
    store = _open_store(path)
    snapshot = store.create_snapshot()
    typer.echo(
        f"Created {snapshot['snapshot_id']} "
        f"({snapshot['stats']['total_components']} components, "
        f"{snapshot['stats']['total_connections']} connections)"
    )


@snapshot_grp.command("list")
def snapshot_list(path: Optional[Path] = typer.Option(None, "--path", "-p", help="Project root.")):
    """List stored snapshots, oldest first."""
    store = ArchitectureStore(get_store_path(resolve_project_root(path)))
    snapshots = store.list_snapshots()
    if not snapshots:
        typer.echo("No snapshots yet. Run 'archgraph snapshot create'.")
        return
    for snapshot_id in snapshots:
        typer.echo(snapshot_id)


@snapshot_grp.command("diff")
def snapshot_diff(
    previous: Optional[str] = typer.Argument(None, help="Older snapshot ID (default: latest)."),
    current: Optional[str] = typer.Argument(None, help="Newer snapshot ID (default: the live graph)."),
    as_json: bool = typer.Option(False, "--json", help="Print the diff as JSON."),
    path: Optional[Path] = typer.Option(None, "--path", "-p", help="Project root."),
):
    """Diff two snapshots, or a snapshot against the live graph."""
    store = _open_store(path)
    before = store.load_snapshot(previous) if previous else store.load_latest_snapshot()
    if previous and before is None:
        raise typer.BadParameter(f"Snapshot '{previous}' not found.")
    after = store.load_snapshot(current) if current else store.build_snapshot()
    if after is None:
        raise typer.BadParameter(f"Snapshot '{current}' not found.")

    diff = compute_architecture_diff(before, after)
    significance, triggers = classify_significance(diff)
    if as_json:
        typer.echo(json.dumps({"significance": significance, "triggers": triggers, "diff": diff}, indent=2))
        return
    console.print(format_diff_output(diff, significance, triggers), markup=False, highlight=False)
