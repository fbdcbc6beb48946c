"""Tests for the read-only query facade."""

import json
from pathlib import Path

import pytest

from archgraph.queries import NO_STORE_WARNING, ArchitectureQueries
from archgraph.storage import ArchitectureStore


@pytest.fixture
def queries(populated_store: ArchitectureStore) -> ArchitectureQueries:
    return ArchitectureQueries(populated_store.project_path, store=populated_store)


class TestMissingStore:
    """Every query degrades to an empty payload before the first scan."""

    def test_trace(self, temp_dir: Path):
        result = ArchitectureQueries(temp_dir).trace("API")
        assert result.success is True
        assert result.data["paths"] == []
        assert result.warnings == [NO_STORE_WARNING]

    def test_subgraph(self, temp_dir: Path):
        result = ArchitectureQueries(temp_dir).subgraph(focus=["API"])
        assert result.data["stats"] == {"nodes": 0, "edges": 0}
        assert result.warnings == [NO_STORE_WARNING]

    def test_rules_coverage_impact(self, temp_dir: Path):
        queries = ArchitectureQueries(temp_dir)
        assert queries.rules().data["summary"]["total"] == 0
        assert queries.coverage().data["overall_confidence"] == 0.0
        impact = queries.impact("DB")
        assert impact.success is True
        assert impact.data is None

    def test_status(self, temp_dir: Path):
        result = ArchitectureQueries(temp_dir).status()
        assert result.data["exists"] is False
        assert result.data["needs_rescan"] is True


class TestQueries:
    """Tests against a populated store."""

    def test_trace(self, queries: ArchitectureQueries):
        result = queries.trace("api", direction="forward")
        assert result.warnings == []
        steps = result.data["paths"][0]["steps"]
        assert [s["component"]["name"] for s in steps] == ["API", "DB"]
        assert steps[1]["file"] == "src/api/orders.py"

    def test_trace_not_found_suggests(self, queries: ArchitectureQueries):
        result = queries.trace("Apx")
        assert result.success is True
        assert result.data["paths"] == []
        assert result.warnings == ["Component 'Apx' not found. Did you mean: API?"]

    def test_trace_bad_direction_is_reported(self, queries: ArchitectureQueries):
        result = queries.trace("API", direction="sideways")
        assert result.success is False
        assert "direction" in result.error
        assert result.data["paths"] == []

    def test_failed_trace_by_keyword_keeps_query(self, queries: ArchitectureQueries):
        result = queries.trace(name="API", direction="sideways")
        assert result.success is False
        assert result.data["query"] == "API"
        assert result.data["paths"] == []

    def test_malformed_store_files_are_skipped(
        self, queries: ArchitectureQueries, populated_store: ArchitectureStore,
    ):
        (populated_store.components_dir / "COMP_bad.json").write_text(json.dumps({
            "component_id": "COMP_bad", "name": "Bad", "type": "service", "role": "oops",
        }))
        populated_store.file_map_path.write_text(json.dumps({"files": ["x"]}))

        result = queries.trace("API", direction="forward")
        assert result.success is True
        assert result.data["paths"]
        assert queries.rules().data["summary"]["total"] == 1

    def test_subgraph(self, queries: ArchitectureQueries):
        result = queries.subgraph(focus=["DB"], depth=1)
        assert result.data["stats"] == {"nodes": 2, "edges": 1}
        assert result.data["diagram_text"].startswith("graph TD")

    def test_subgraph_unknown_focus_warns(self, queries: ArchitectureQueries):
        result = queries.subgraph(focus=["kafka"])
        assert result.data["stats"]["nodes"] == 0
        assert result.warnings == ["No component matches focus: kafka"]

    def test_rules_include_custom(self, queries: ArchitectureQueries, populated_store: ArchitectureStore):
        assert queries.rules().data["summary"]["total"] == 1
        (populated_store.store_dir / "rules.json").write_text(json.dumps([{
            "id": "no-backend-db",
            "severity": "error",
            "forbidden": {"from": {"layer": "backend"}, "to": {"layer": "database"}},
        }]))
        summary = queries.rules().data["summary"]
        assert summary == {"total": 2, "by_severity": {"error": 1, "warning": 1, "info": 0}}

    def test_impact(self, queries: ArchitectureQueries):
        data = queries.impact("DB").data
        assert data["severity"] == "critical"
        assert data["affected"][0]["component"]["name"] == "API"

    def test_coverage(self, queries: ArchitectureQueries):
        data = queries.coverage().data
        assert data["connection_coverage"]["total_connections"] == 1
        assert data["component_coverage"]["total_files_in_project"] == 0

    def test_status(self, queries: ArchitectureQueries):
        data = queries.status().data
        assert data["exists"] is True
        assert data["components"] == 3
        assert data["low_confidence_connections"] == 0
        assert data["components_by_type"]["database"] == 1
