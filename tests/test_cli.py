"""CLI tests using Typer's test runner."""

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from archgraph import __version__
from archgraph.cli import app
from archgraph.config_manager import get_settings

runner = CliRunner()


@pytest.fixture
def scanned(sample_project: Path) -> Path:
    result = runner.invoke(app, ["scan", str(sample_project)])
    assert result.exit_code == 0, result.output
    return sample_project


class TestBasics:
    """Tests for top-level options and scan/status/clear."""

    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert f"ArchGraph v{__version__}" in result.output

    def test_help(self):
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "scan" in result.output
        assert "trace" in result.output

    def test_scan(self, sample_project: Path):
        result = runner.invoke(app, ["scan", str(sample_project)])
        assert result.exit_code == 0, result.output
        assert "Scan complete" in result.output
        assert (sample_project / ".archgraph" / "index.json").exists()

    def test_scan_rejects_missing_directory(self, temp_dir: Path):
        result = runner.invoke(app, ["scan", str(temp_dir / "nope")])
        assert result.exit_code != 0

    def test_incremental_rescan_is_skipped(self, scanned: Path):
        result = runner.invoke(app, ["scan", str(scanned), "--incremental"])
        assert result.exit_code == 0
        assert "nothing to do" in result.output

    def test_status(self, scanned: Path):
        result = runner.invoke(app, ["status", str(scanned)])
        assert result.exit_code == 0, result.output
        assert "ArchGraph status" in result.output

    def test_status_without_scan(self, temp_dir: Path):
        result = runner.invoke(app, ["status", str(temp_dir)])
        assert result.exit_code == 1
        assert "archgraph scan" in result.output

    def test_clear(self, scanned: Path):
        result = runner.invoke(app, ["clear", str(scanned), "--yes"])
        assert result.exit_code == 0
        assert "Cleared" in result.output
        assert runner.invoke(app, ["status", str(scanned)]).exit_code == 1


class TestQueryCommands:
    """Tests for trace, subgraph, coverage, rules, impact and diagram."""

    def test_trace_json(self, scanned: Path):
        result = runner.invoke(app, ["trace", "Supabase", "--json", "--path", str(scanned)])
        assert result.exit_code == 0, result.output
        payload = json.loads(result.output)
        assert payload["success"] is True
        names = {s["component"]["name"] for p in payload["data"]["paths"] for s in p["steps"]}
        assert {"Supabase", "server/db.py"} <= names

    def test_trace_text(self, scanned: Path):
        result = runner.invoke(app, ["trace", "Supabase", "--path", str(scanned)])
        assert result.exit_code == 0, result.output
        assert "Dataflow trace: Supabase" in result.output

    def test_trace_unknown_component(self, scanned: Path):
        result = runner.invoke(app, ["trace", "Zzzzzz", "--path", str(scanned)])
        assert result.exit_code == 1
        assert "not found" in result.output

    def test_trace_rejects_bad_direction(self, scanned: Path):
        result = runner.invoke(app, ["trace", "Supabase", "-d", "sideways", "--path", str(scanned)])
        assert result.exit_code == 2

    def test_trace_uses_active_project(self, scanned: Path):
        """scan makes the project active, so --path can be omitted."""
        result = runner.invoke(app, ["trace", "Supabase", "--json"])
        assert result.exit_code == 0, result.output
        assert json.loads(result.output)["data"]["paths"]

    def test_subgraph_json(self, scanned: Path):
        result = runner.invoke(app, ["subgraph", "Supabase", "--depth", "1", "--json", "--path", str(scanned)])
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)["data"]
        assert data["stats"]["nodes"] == 2
        assert data["stats"]["edges"] == 1

    def test_subgraph_table(self, scanned: Path):
        result = runner.invoke(app, ["subgraph", "--path", str(scanned)])
        assert result.exit_code == 0, result.output
        assert "Subgraph:" in result.output
        assert "graph TD" in result.output

    def test_coverage(self, scanned: Path):
        result = runner.invoke(app, ["coverage", "--path", str(scanned)])
        assert result.exit_code == 0, result.output
        assert "Overall confidence" in result.output

    def test_coverage_json(self, scanned: Path):
        result = runner.invoke(app, ["coverage", "--json", "--path", str(scanned)])
        data = json.loads(result.output)["data"]
        assert data["component_coverage"]["total_files_in_project"] == 3
        assert 0.0 <= data["overall_confidence"] <= 1.0

    def test_rules(self, scanned: Path):
        result = runner.invoke(app, ["rules", "--json", "--path", str(scanned)])
        assert result.exit_code == 0, result.output
        summary = json.loads(result.output)["data"]["summary"]
        assert set(summary["by_severity"]) == {"error", "warning", "info"}

    def test_impact(self, scanned: Path):
        result = runner.invoke(app, ["impact", "Supabase", "--path", str(scanned)])
        assert result.exit_code == 0, result.output
        assert "Impact: Supabase" in result.output

    def test_query_without_scan(self, temp_dir: Path):
        result = runner.invoke(app, ["rules", "--path", str(temp_dir)])
        assert result.exit_code == 1
        assert "No architecture data found" in result.output

    def test_diagram_dot(self, scanned: Path):
        result = runner.invoke(app, ["diagram", "--format", "dot", "--path", str(scanned)])
        assert result.exit_code == 0, result.output
        target = scanned / ".archgraph" / "architecture.dot"
        assert target.read_text().startswith("digraph ArchGraph")

    def test_diagram_mermaid_to_file(self, scanned: Path, temp_dir: Path):
        target = temp_dir / "out.mmd"
        result = runner.invoke(app, ["diagram", "--output", str(target), "--path", str(scanned)])
        assert result.exit_code == 0, result.output
        assert target.read_text().startswith("graph TB")

    def test_diagram_rejects_unknown_format(self, scanned: Path):
        result = runner.invoke(app, ["diagram", "--format", "svg", "--path", str(scanned)])
        assert result.exit_code == 2


class TestConfigCommands:
    """Tests for the config group."""

    def test_set_and_unset(self):
        result = runner.invoke(app, ["config", "set", "query.max_results", "10"])
        assert result.exit_code == 0, result.output
        assert get_settings().max_results == 10

        assert "Unset" in runner.invoke(app, ["config", "unset", "query.max_results"]).output
        assert "was not set" in runner.invoke(app, ["config", "unset", "query.max_results"]).output

    def test_set_rejects_unknown_key(self):
        assert runner.invoke(app, ["config", "set", "query.nope", "1"]).exit_code == 2
        assert runner.invoke(app, ["config", "set", "nodots", "1"]).exit_code == 2

    def test_set_rejects_bad_mode(self):
        assert runner.invoke(app, ["config", "set", "storage.mode", "cloud"]).exit_code == 2

    def test_show(self):
        result = runner.invoke(app, ["config", "show"])
        assert result.exit_code == 0
        assert "storage.mode" in result.output


class TestProjectCommands:
    """Tests for the project group."""

    def test_lifecycle(self, temp_dir: Path):
        assert "No projects registered" in runner.invoke(app, ["project", "list"]).output

        result = runner.invoke(app, ["project", "register", str(temp_dir), "--name", "shop"])
        assert result.exit_code == 0, result.output
        assert "Registered project 'shop'" in result.output

        assert runner.invoke(app, ["project", "use", "shop"]).exit_code == 0
        assert "shop" in runner.invoke(app, ["project", "list"]).output

        assert runner.invoke(app, ["project", "remove", "shop"]).exit_code == 0
        assert runner.invoke(app, ["project", "remove", "shop"]).exit_code == 2

    def test_use_unknown_project(self):
        assert runner.invoke(app, ["project", "use", "ghost"]).exit_code == 2


class TestSnapshotCommands:
    """Tests for the snapshot group."""

    def test_create_list_diff(self, scanned: Path):
        result = runner.invoke(app, ["snapshot", "create", "--path", str(scanned)])
        assert result.exit_code == 0, result.output
        assert result.output.startswith("Created SNAP_")

        listed = runner.invoke(app, ["snapshot", "list", "--path", str(scanned)]).output.split()
        assert len(listed) == 1 and listed[0].startswith("SNAP_")

        result = runner.invoke(app, ["snapshot", "diff", "--json", "--path", str(scanned)])
        assert result.exit_code == 0, result.output
        payload = json.loads(result.output)
        assert payload["significance"] == "patch"
        assert payload["diff"]["stats"]["total_changes"] == 0

    def test_diff_without_snapshot_reports_everything_added(self, scanned: Path):
        result = runner.invoke(app, ["snapshot", "diff", "--path", str(scanned)])
        assert result.exit_code == 0, result.output
        assert result.output.startswith("[MAJOR]")

    def test_diff_unknown_snapshot(self, scanned: Path):
        result = runner.invoke(app, ["snapshot", "diff", "SNAP_missing", "--path", str(scanned)])
        assert result.exit_code == 2

    def test_list_empty(self, scanned: Path):
        result = runner.invoke(app, ["snapshot", "list", "--path", str(scanned)])
        assert "No snapshots yet" in result.output
