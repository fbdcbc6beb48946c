"""Tests for storage layer (ProjectManager and ArchitectureStore)."""

import json
from pathlib import Path

import pytest

from archgraph.models import Component, Connection
from archgraph.storage import ArchitectureStore, ProjectManager, prompt_preview
from archgraph.summary import build_summaries, previous_component_names


@pytest.fixture
def store(temp_dir: Path) -> ArchitectureStore:
    return ArchitectureStore(temp_dir / ".archgraph", temp_dir)


class TestProjectManager:
    """Tests for ProjectManager."""

    def test_register_and_list(self, temp_dir: Path):
        pm = ProjectManager()
        assert pm.list_projects() == []
        pm.register_project("shop", temp_dir, temp_dir / ".archgraph", {"components_found": 4})
        projects = pm.list_projects()
        assert [p["name"] for p in projects] == ["shop"]
        assert projects[0]["components"] == 4
        assert projects[0]["path"] == str(temp_dir.resolve())

    def test_current_project(self, temp_dir: Path):
        pm = ProjectManager()
        pm.register_project("shop", temp_dir, temp_dir / ".archgraph")
        assert pm.get_current_project() is None
        pm.set_current_project("shop")
        assert pm.get_current_project() == "shop"

    def test_remove_clears_current(self, temp_dir: Path):
        pm = ProjectManager()
        pm.register_project("shop", temp_dir, temp_dir / ".archgraph")
        pm.set_current_project("shop")
        assert pm.remove_project("shop") is True
        assert pm.get_current_project() is None
        assert pm.remove_project("shop") is False


class TestRecords:
    """Tests for component and connection records."""

    def test_store_and_load(self, store: ArchitectureStore, small_graph):
        components, connections = small_graph
        assert store.store_components(components) == 3
        assert store.store_connections(connections) == 1
        assert {c.name for c in store.load_components()} == {"API", "DB", "Orphan"}
        assert store.load_connections()[0].connection_id == connections[0].connection_id

    def test_one_file_per_record(self, store: ArchitectureStore, api):
        store.store_component(api)
        path = store.components_dir / f"{api.component_id}.json"
        assert json.loads(path.read_text())["name"] == "API"

    def test_rewrite_with_same_facts_is_skipped(self, store: ArchitectureStore):
        """Only timestamps differ, so the file stays byte-identical."""
        first = Component.create("Redis", "database", layer="database", timestamp=1000)
        assert store.store_component(first) is True
        path = store.components_dir / f"{first.component_id}.json"
        before = path.read_bytes()

        again = Component.create("Redis", "database", layer="database", timestamp=9999)
        assert store.store_component(again) is False
        assert path.read_bytes() == before

    def test_changed_facts_keep_creation_time(self, store: ArchitectureStore):
        store.store_component(Component.create("Redis", "database", layer="database", timestamp=1000))
        updated = Component.create("Redis", "database", layer="database", version="7.2", timestamp=5000)
        assert store.store_component(updated) is True
        record = json.loads((store.components_dir / f"{updated.component_id}.json").read_text())
        assert record["version"] == "7.2"
        assert record["timestamp"] == 1000
        assert record["last_updated"] == 5000

    def test_prompt_text_is_kept_out_of_records(self, store: ArchitectureStore):
        prompt = Component.create(
            "SYSTEM_PROMPT", "prompt", metadata={"prompt": "word " * 100, "file": "a.py", "line": 1},
        )
        store.store_component(prompt)
        record = json.loads((store.components_dir / f"{prompt.component_id}.json").read_text())
        assert "prompt" not in record["metadata"]
        assert record["metadata"]["prompt_preview"].endswith("...")

        store.store_prompts([prompt])
        assert store.load_prompts()[prompt.component_id]["content"] == "word " * 100

    def test_corrupt_record_is_skipped(self, store: ArchitectureStore, api):
        store.store_component(api)
        (store.components_dir / "COMP_bad.json").write_text("{not json")
        assert [c.name for c in store.load_components()] == ["API"]

    @pytest.mark.parametrize("payload", [
        {"component_id": "COMP_bad", "name": "n", "role": "oops"},
        {"component_id": "COMP_bad", "name": "n", "source": ["x"]},
        {"component_id": "COMP_bad", "name": "n", "metadata": "x"},
        ["not", "a", "record"],
    ])
    def test_wrong_shape_component_is_skipped(self, store: ArchitectureStore, api, payload):
        store.store_component(api)
        (store.components_dir / "COMP_bad.json").write_text(json.dumps(payload))
        assert [c.name for c in store.load_components()] == ["API"]
        assert store.get_component("COMP_bad") is None

    @pytest.mark.parametrize("payload", [
        {"connection_id": "CONN_bad", "from": "API", "to": {"component_id": "B"}},
        {"connection_id": "CONN_bad", "from": {"component_id": "A", "location": 3}, "to": {"component_id": "B"}},
        {"connection_id": "CONN_bad", "from": {"component_id": "A"}, "to": {"component_id": "B"}, "semantic": "test"},
        {"connection_id": "CONN_bad", "from": {"component_id": "A"}, "to": {"component_id": "B"}, "code_reference": [1]},
    ])
    def test_wrong_shape_connection_is_skipped(self, store: ArchitectureStore, api_to_db, payload):
        store.store_connection(api_to_db)
        (store.connections_dir / "CONN_bad.json").write_text(json.dumps(payload))
        assert [c.connection_id for c in store.load_connections()] == [api_to_db.connection_id]
        assert store.get_connection("CONN_bad") is None

    def test_get_and_delete(self, store: ArchitectureStore, api):
        store.store_component(api)
        assert store.get_component(api.component_id).name == "API"
        assert store.delete_component(api.component_id) is True
        assert store.get_component(api.component_id) is None
        assert store.delete_component(api.component_id) is False


class TestDerivedArtifacts:
    """Tests for index, graph, file map and summary."""

    def test_index(self, populated_store: ArchitectureStore, api, db):
        index = populated_store.load_index()
        assert index["components"]["by_name"]["api"] == api.component_id
        assert index["components"]["by_layer"]["database"] == [db.component_id]
        assert index["stats"]["total_components"] == 3
        assert index["stats"]["total_connections"] == 1
        assert index["stats"]["components_by_type"]["service"] == 1

    def test_graph(self, populated_store: ArchitectureStore, api, db):
        graph = populated_store.load_graph()
        assert len(graph["nodes"]) == 3
        assert graph["edges"][0]["source"] == api.component_id
        assert graph["edges"][0]["target"] == db.component_id

    def test_file_map_owners(self, store: ArchitectureStore):
        pkg = Component.create("express", "framework", config_files=["package.json"])
        llm = Component.create("OpenAI", "llm", layer="external")
        infra = Component.create("Vercel", "infra", layer="infra", config_files=["ENV:VERCEL"])
        call = Connection.create("FILE:src/chat.ts", llm.component_id, "service-call", file="src/chat.ts", line=4)
        files = store.build_file_map([pkg, llm, infra], [call])
        assert files == {"package.json": pkg.component_id, "src/chat.ts": llm.component_id}
        assert store.load_file_map() == files

    def test_malformed_file_map(self, populated_store: ArchitectureStore):
        populated_store.file_map_path.write_text(json.dumps({"files": ["x"]}))
        assert populated_store.load_file_map() == {}
        populated_store.file_map_path.write_text(json.dumps({"files": {"a.py": "COMP_a", "b.py": 3}}))
        assert populated_store.load_file_map() == {"a.py": "COMP_a"}

    def test_malformed_prompts(self, populated_store: ArchitectureStore):
        populated_store.prompts_path.write_text(json.dumps({"prompts": "nope"}))
        assert populated_store.load_prompts() == {}

    def test_summary_written(self, populated_store: ArchitectureStore):
        text = populated_store.summary_path.read_text()
        assert text.startswith("# Architecture Summary")
        assert "| API | service |" in text
        assert not populated_store.summary_full_path.exists()

    def test_summary_compression(self):
        components = [Component.create(f"pkg-{i:03d}", "package") for i in range(200)]
        summary, full = build_summaries(components, [])
        assert full is not None
        assert summary.count("\n") < full.count("\n")
        assert "SUMMARY_FULL.md" in summary
        assert "pkg-199" in full

    def test_summary_tracks_changes(self):
        first, _ = build_summaries([Component.create("a", "package")], [])
        assert previous_component_names(first) == ["a"]
        second, _ = build_summaries([Component.create("b", "package")], [], previous_text=first)
        assert "- Added (1): b" in second
        assert "- Removed (1): a" in second

    def test_prompt_preview(self):
        assert prompt_preview("  short   text ") == "short text"
        assert len(prompt_preview("x" * 500)) == 200


class TestSnapshots:
    """Tests for snapshot creation and listing."""

    def test_create_and_load(self, populated_store: ArchitectureStore):
        snapshot = populated_store.create_snapshot()
        assert snapshot["snapshot_id"].startswith("SNAP_")
        assert snapshot["stats"] == {"total_components": 3, "total_connections": 1}
        assert populated_store.load_latest_snapshot()["snapshot_id"] == snapshot["snapshot_id"]

    def test_same_second_snapshots_do_not_collide(self, populated_store: ArchitectureStore):
        first = populated_store.create_snapshot()
        second = populated_store.create_snapshot()
        assert first["snapshot_id"] != second["snapshot_id"]
        assert len(populated_store.list_snapshots()) == 2

    def test_snapshot_names_connection_endpoints(self, populated_store: ArchitectureStore):
        connection = populated_store.build_snapshot()["connections"][0]
        assert connection["from_name"] == "API"
        assert connection["to_name"] == "DB"
        assert connection["file"] == "src/api/orders.py"


class TestMaintenance:
    def test_status_and_clear(self, populated_store: ArchitectureStore):
        status = populated_store.get_scan_status()
        assert status["components"] == 3
        assert status["needs_rescan"] is False
        populated_store.clear()
        assert not populated_store.exists()
        assert populated_store.get_scan_status()["needs_rescan"] is True

    def test_storage_stats(self, populated_store: ArchitectureStore):
        stats = populated_store.get_storage_stats()
        assert stats["components"] == 3
        assert stats["connections"] == 1
        assert stats["total_bytes"] > 0
