"""Persistence layer for architecture graphs.

Layout of a store directory::

    components/<component_id>.json    one record per component
    connections/<connection_id>.json  one record per connection
    index.json       derived lookup tables and stats
    graph.json       nodes and edges
    file_map.json    file path -> component ID
    prompts.json     full prompt text (kept out of component records)
    hashes.json      content hashes for incremental scans
    SUMMARY.md       human-readable summary (compressed when large)
    SUMMARY_FULL.md  full summary, only when compression kicked in
    snapshots/       point-in-time rollups

Primary records are authoritative; everything else is rebuilt from them.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, TypeVar

from . import config
from .hashing import HASHES_FILENAME
from .models import FILE_PREFIX, Component, Connection, now_ms
from .summary import build_summaries

logger = logging.getLogger(__name__)

STORE_BATCH_SIZE = 50
PROMPT_PREVIEW_CHARS = 200
RESCAN_AFTER_MS = 24 * 60 * 60 * 1000

_VOLATILE_KEYS = {"timestamp", "last_updated", "last_verified"}

T = TypeVar("T")


def _dump(payload: Any) -> str:
    return json.dumps(payload, indent=2, sort_keys=True, ensure_ascii=False) + "\n"


def _write_atomic(path: Path, text: str) -> None:
    """Write *text* via a temp file + rename so readers never see half a record."""
    tmp = path.with_name(f".{path.name}.{os.getpid()}.tmp")
    tmp.write_text(text, encoding="utf-8")
    os.replace(tmp, path)


def _stable(payload: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in payload.items() if k not in _VOLATILE_KEYS}


def prompt_preview(text: str) -> str:
    text = " ".join(text.split())
    if len(text) <= PROMPT_PREVIEW_CHARS:
        return text
    return text[:PROMPT_PREVIEW_CHARS - 3] + "..."


def format_timestamp(ms: Optional[int] = None) -> str:
    return datetime.fromtimestamp((ms if ms is not None else now_ms()) / 1000).isoformat()


# ===================================================================
# ProjectManager  (registry of scanned projects)
# ===================================================================

class ProjectManager:
    """Track scanned projects and the active one across invocations."""

    def __init__(self) -> None:
        config.ensure_base_dirs()

    def _load(self) -> Dict[str, Dict[str, Any]]:
        if not config.PROJECTS_FILE.exists():
            return {}
        try:
            payload = json.loads(config.PROJECTS_FILE.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Ignoring unreadable project registry: %s", exc)
            return {}
        return payload.get("projects", {}) if isinstance(payload, dict) else {}

    def _save(self, projects: Dict[str, Dict[str, Any]]) -> None:
        config.ensure_base_dirs()
        config.PROJECTS_FILE.write_text(
            json.dumps({"version": 1, "projects": projects}, indent=2),
            encoding="utf-8",
        )

    def list_projects(self) -> List[Dict[str, Any]]:
        projects = self._load()
        return [dict(entry, name=name) for name, entry in sorted(projects.items())]

    def register_project(
        self,
        name: str,
        project_path: Path,
        store_path: Path,
        stats: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        projects = self._load()
        entry = projects.get(name, {})
        entry.update({
            "path": str(project_path.resolve()),
            "store": str(store_path),
            "last_scan": now_ms(),
        })
        if stats:
            entry["components"] = stats.get("components_found", entry.get("components", 0))
            entry["connections"] = stats.get("connections_found", entry.get("connections", 0))
        projects[name] = entry
        self._save(projects)
        return dict(entry, name=name)

    def get_project(self, name: str) -> Optional[Dict[str, Any]]:
        entry = self._load().get(name)
        return dict(entry, name=name) if entry else None

    def remove_project(self, name: str) -> bool:
        projects = self._load()
        if name not in projects:
            return False
        del projects[name]
        self._save(projects)
        if self.get_current_project() == name:
            self.unset_current_project()
        return True

    def set_current_project(self, name: str) -> None:
        config.ensure_base_dirs()
        config.STATE_FILE.write_text(
            json.dumps({"current_project": name}, indent=2),
            encoding="utf-8",
        )

    def get_current_project(self) -> Optional[str]:
        if not config.STATE_FILE.exists():
            return None
        try:
            payload = json.loads(config.STATE_FILE.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            return None
        return payload.get("current_project")

    def unset_current_project(self) -> None:
        config.ensure_base_dirs()
        config.STATE_FILE.write_text(
            json.dumps({"current_project": None}, indent=2),
            encoding="utf-8",
        )


# ===================================================================
# ArchitectureStore  (JSON document per record)
# ===================================================================

class ArchitectureStore:
    """File-per-record store for components and connections.

    Every record is written whole and atomically.  Bulk writes are
    batched over a thread pool; records never share files so batches may
    run in any order.
    """

    def __init__(self, store_dir: Path, project_path: Optional[Path] = None) -> None:
        self.store_dir = Path(store_dir)
        self.project_path = project_path
        self.components_dir = self.store_dir / "components"
        self.connections_dir = self.store_dir / "connections"
        self.snapshots_dir = self.store_dir / "snapshots"
        self.index_path = self.store_dir / "index.json"
        self.graph_path = self.store_dir / "graph.json"
        self.file_map_path = self.store_dir / "file_map.json"
        self.prompts_path = self.store_dir / "prompts.json"
        self.summary_path = self.store_dir / "SUMMARY.md"
        self.summary_full_path = self.store_dir / "SUMMARY_FULL.md"

    def exists(self) -> bool:
        return self.components_dir.is_dir() or self.connections_dir.is_dir()

    def ensure_dirs(self) -> None:
        self.components_dir.mkdir(parents=True, exist_ok=True)
        self.connections_dir.mkdir(parents=True, exist_ok=True)

    # ------------------------------------------------------------------
    # Record I/O
    # ------------------------------------------------------------------

    def _write_record(self, path: Path, payload: Dict[str, Any], created_key: str) -> bool:
        """Write *payload* unless the stored record already has the same content.

        Returns True when the file was (re)written.  Timestamps are kept
        from the stored record so unchanged facts stay byte-identical.
        """
        if path.exists():
            try:
                existing = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError):
                existing = None
            if isinstance(existing, dict):
                if _stable(existing) == _stable(payload):
                    return False
                if created_key in existing:
                    payload = dict(payload, **{created_key: existing[created_key]})
        _write_atomic(path, _dump(payload))
        return True

    def _read_records(self, directory: Path, loader: Callable[[Dict[str, Any]], T]) -> List[T]:
        if not directory.is_dir():
            return []
        records: List[T] = []
        for path in sorted(directory.glob("*.json")):
            try:
                records.append(loader(json.loads(path.read_text(encoding="utf-8"))))
            except (OSError, json.JSONDecodeError, AttributeError, KeyError, TypeError, ValueError) as exc:
                logger.warning("Skipping corrupt record %s: %s", path.name, exc)
        return records

    def _batched(self, items: List[T], func: Callable[[T], bool]) -> int:
        written = 0
        with ThreadPoolExecutor(max_workers=config.DEFAULT_MAX_WORKERS) as pool:
            for start in range(0, len(items), STORE_BATCH_SIZE):
                batch = items[start:start + STORE_BATCH_SIZE]
                written += sum(1 for changed in pool.map(func, batch) if changed)
        return written

    # ------------------------------------------------------------------
    # Components
    # ------------------------------------------------------------------

    def _component_payload(self, component: Component) -> Dict[str, Any]:
        payload = component.to_dict()
        metadata = payload.get("metadata")
        if metadata and "prompt" in metadata:
            metadata = dict(metadata)
            metadata["prompt_preview"] = prompt_preview(metadata.pop("prompt") or "")
            payload["metadata"] = metadata
        return payload

    def store_component(self, component: Component) -> bool:
        self.components_dir.mkdir(parents=True, exist_ok=True)
        path = self.components_dir / f"{component.component_id}.json"
        return self._write_record(path, self._component_payload(component), "timestamp")

    def store_components(self, components: Iterable[Component]) -> int:
        """Store many components; returns how many files were written."""
        self.components_dir.mkdir(parents=True, exist_ok=True)
        return self._batched(list(components), self.store_component)

    def load_components(self) -> List[Component]:
        return self._read_records(self.components_dir, Component.from_dict)

    def get_component(self, component_id: str) -> Optional[Component]:
        path = self.components_dir / f"{component_id}.json"
        if not path.exists():
            return None
        try:
            return Component.from_dict(json.loads(path.read_text(encoding="utf-8")))
        except (OSError, json.JSONDecodeError, AttributeError, KeyError, TypeError, ValueError) as exc:
            logger.warning("Cannot read component %s: %s", component_id, exc)
            return None

    def delete_component(self, component_id: str) -> bool:
        path = self.components_dir / f"{component_id}.json"
        if not path.exists():
            return False
        path.unlink()
        return True

    # ------------------------------------------------------------------
    # Connections
    # ------------------------------------------------------------------

    def store_connection(self, connection: Connection) -> bool:
        self.connections_dir.mkdir(parents=True, exist_ok=True)
        path = self.connections_dir / f"{connection.connection_id}.json"
        return self._write_record(path, connection.to_dict(), "timestamp")

    def store_connections(self, connections: Iterable[Connection]) -> int:
        self.connections_dir.mkdir(parents=True, exist_ok=True)
        return self._batched(list(connections), self.store_connection)

    def load_connections(self) -> List[Connection]:
        return self._read_records(self.connections_dir, Connection.from_dict)

    def get_connection(self, connection_id: str) -> Optional[Connection]:
        path = self.connections_dir / f"{connection_id}.json"
        if not path.exists():
            return None
        try:
            return Connection.from_dict(json.loads(path.read_text(encoding="utf-8")))
        except (OSError, json.JSONDecodeError, AttributeError, KeyError, TypeError, ValueError) as exc:
            logger.warning("Cannot read connection %s: %s", connection_id, exc)
            return None

    def delete_connection(self, connection_id: str) -> bool:
        path = self.connections_dir / f"{connection_id}.json"
        if not path.exists():
            return False
        path.unlink()
        return True

    # ------------------------------------------------------------------
    # Derived artifacts
    # ------------------------------------------------------------------

    def build_index(
        self,
        components: Optional[List[Component]] = None,
        connections: Optional[List[Connection]] = None,
    ) -> Dict[str, Any]:
        components = self.load_components() if components is None else components
        connections = self.load_connections() if connections is None else connections

        by_name: Dict[str, str] = {}
        by_type: Dict[str, List[str]] = {}
        by_layer: Dict[str, List[str]] = {}
        by_status: Dict[str, List[str]] = {}
        for comp in components:
            by_name[comp.name.lower()] = comp.component_id
            by_type.setdefault(comp.type, []).append(comp.component_id)
            by_layer.setdefault(comp.role.layer, []).append(comp.component_id)
            by_status.setdefault(comp.status, []).append(comp.component_id)

        conn_by_type: Dict[str, List[str]] = {}
        conn_by_from: Dict[str, List[str]] = {}
        conn_by_to: Dict[str, List[str]] = {}
        for conn in connections:
            conn_by_type.setdefault(conn.connection_type, []).append(conn.connection_id)
            conn_by_from.setdefault(conn.from_id, []).append(conn.connection_id)
            conn_by_to.setdefault(conn.to_id, []).append(conn.connection_id)

        index = {
            "schema_version": config.SCHEMA_VERSION,
            "version": "1.0",
            "last_scan": now_ms(),
            "project_path": str(self.project_path) if self.project_path else "",
            "components": {
                "by_name": by_name,
                "by_type": by_type,
                "by_layer": by_layer,
                "by_status": by_status,
            },
            "connections": {
                "by_type": conn_by_type,
                "by_from": conn_by_from,
                "by_to": conn_by_to,
            },
            "stats": {
                "total_components": len(components),
                "total_connections": len(connections),
                "components_by_type": {k: len(v) for k, v in by_type.items()},
                "connections_by_type": {k: len(v) for k, v in conn_by_type.items()},
                "outdated_count": len(by_status.get("outdated", [])),
                "vulnerable_count": len(by_status.get("vulnerable", [])),
            },
        }
        self.store_dir.mkdir(parents=True, exist_ok=True)
        _write_atomic(self.index_path, _dump(index))
        return index

    def build_graph(
        self,
        components: Optional[List[Component]] = None,
        connections: Optional[List[Connection]] = None,
    ) -> Dict[str, Any]:
        components = self.load_components() if components is None else components
        connections = self.load_connections() if connections is None else connections
        graph = {
            "schema_version": config.SCHEMA_VERSION,
            "nodes": [
                {"id": c.component_id, "name": c.name, "type": c.type, "layer": c.role.layer}
                for c in components
            ],
            "edges": [
                {
                    "id": c.connection_id,
                    "source": c.from_id,
                    "target": c.to_id,
                    "type": c.connection_type,
                    "label": c.description or c.connection_type,
                }
                for c in connections
            ],
            "metadata": {
                "generated_at": now_ms(),
                "component_count": len(components),
                "connection_count": len(connections),
            },
        }
        self.store_dir.mkdir(parents=True, exist_ok=True)
        _write_atomic(self.graph_path, _dump(graph))
        return graph

    def build_file_map(
        self,
        components: Optional[List[Component]] = None,
        connections: Optional[List[Connection]] = None,
    ) -> Dict[str, str]:
        """Map each known file to the component that owns it.

        Sources, later ones overriding earlier ones: component config
        files, the code reference of each connection (attributed to its
        source component), and the explicit from/to locations.
        ``FILE:`` placeholders are not owners and never appear as values.
        """
        components = self.load_components() if components is None else components
        connections = self.load_connections() if connections is None else connections
        files: Dict[str, str] = {}

        def assign(path: Optional[str], component_id: str) -> None:
            if path and not path.startswith("ENV:") and not component_id.startswith(FILE_PREFIX):
                files[path.replace("\\", "/")] = component_id

        for comp in components:
            for path in comp.source.config_files:
                assign(path, comp.component_id)
        for conn in connections:
            if conn.code_reference:
                owner = conn.to_id if conn.from_id.startswith(FILE_PREFIX) else conn.from_id
                assign(conn.code_reference.file, owner)
            if conn.from_ref.location:
                owner = conn.to_id if conn.from_id.startswith(FILE_PREFIX) else conn.from_id
                assign(conn.from_ref.location.file, owner)
            if conn.to_ref.location:
                assign(conn.to_ref.location.file, conn.to_id)

        payload = {
            "schema_version": config.SCHEMA_VERSION,
            "generated_at": now_ms(),
            "files": dict(sorted(files.items())),
        }
        self.store_dir.mkdir(parents=True, exist_ok=True)
        _write_atomic(self.file_map_path, _dump(payload))
        return payload["files"]

    def store_prompts(self, components: Iterable[Component]) -> Dict[str, Dict[str, Any]]:
        """Write full prompt text for prompt components to ``prompts.json``."""
        prompts: Dict[str, Dict[str, Any]] = {}
        for comp in components:
            if comp.type != "prompt" or "prompt" not in comp.metadata:
                continue
            prompts[comp.component_id] = {
                "name": comp.name,
                "file": comp.metadata.get("file"),
                "line": comp.metadata.get("line"),
                "function": comp.metadata.get("function"),
                "kind": comp.metadata.get("kind"),
                "content": comp.metadata.get("prompt", ""),
            }
        if not prompts and not self.prompts_path.exists():
            return prompts
        payload = {"schema_version": config.SCHEMA_VERSION, "prompts": prompts}
        self.store_dir.mkdir(parents=True, exist_ok=True)
        _write_atomic(self.prompts_path, _dump(payload))
        return prompts

    def build_summary(
        self,
        components: Optional[List[Component]] = None,
        connections: Optional[List[Connection]] = None,
    ) -> Path:
        """Write SUMMARY.md (and SUMMARY_FULL.md when the report is long)."""
        components = self.load_components() if components is None else components
        connections = self.load_connections() if connections is None else connections
        previous = None
        if self.summary_path.exists():
            try:
                previous = self.summary_path.read_text(encoding="utf-8")
            except OSError:
                previous = None

        summary, full = build_summaries(
            components,
            connections,
            project_path=str(self.project_path) if self.project_path else "",
            previous_text=previous,
            prompts=self.load_prompts(),
        )
        self.store_dir.mkdir(parents=True, exist_ok=True)
        _write_atomic(self.summary_path, summary)
        if full is not None:
            _write_atomic(self.summary_full_path, full)
        elif self.summary_full_path.exists():
            self.summary_full_path.unlink()
        return self.summary_path

    def rebuild_all(
        self,
        components: Optional[List[Component]] = None,
        connections: Optional[List[Connection]] = None,
    ) -> Dict[str, Any]:
        """Regenerate every derived artifact from the primary records."""
        components = self.load_components() if components is None else components
        connections = self.load_connections() if connections is None else connections
        index = self.build_index(components, connections)
        self.build_graph(components, connections)
        self.build_file_map(components, connections)
        self.build_summary(components, connections)
        return index

    # ------------------------------------------------------------------
    # Derived readers
    # ------------------------------------------------------------------

    def _load_json(self, path: Path) -> Optional[Dict[str, Any]]:
        if not path.exists():
            return None
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Cannot read %s: %s", path.name, exc)
            return None
        return payload if isinstance(payload, dict) else None

    def load_index(self) -> Optional[Dict[str, Any]]:
        return self._load_json(self.index_path)

    def load_graph(self) -> Optional[Dict[str, Any]]:
        return self._load_json(self.graph_path)

    def _load_section(self, path: Path, key: str) -> Dict[str, Any]:
        payload = self._load_json(path) or {}
        section = payload.get(key) or {}
        if not isinstance(section, dict):
            logger.warning("Ignoring malformed %s: '%s' is not an object", path.name, key)
            return {}
        return dict(section)

    def load_file_map(self) -> Dict[str, str]:
        files = self._load_section(self.file_map_path, "files")
        return {path: owner for path, owner in files.items() if isinstance(owner, str)}

    def load_prompts(self) -> Dict[str, Dict[str, Any]]:
        return self._load_section(self.prompts_path, "prompts")

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def build_snapshot(
        self,
        components: Optional[List[Component]] = None,
        connections: Optional[List[Connection]] = None,
        snapshot_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        components = self.load_components() if components is None else components
        connections = self.load_connections() if connections is None else connections
        names = {c.component_id: c.name for c in components}

        def name_of(component_id: str) -> str:
            if component_id in names:
                return names[component_id]
            if component_id.startswith(FILE_PREFIX):
                return component_id[len(FILE_PREFIX):]
            return component_id

        return {
            "snapshot_id": snapshot_id or f"SNAP_{datetime.now().strftime('%Y%m%d%H%M%S')}",
            "version": "2.0",
            "timestamp": now_ms(),
            "components": [
                {
                    "id": c.component_id,
                    "name": c.name,
                    "type": c.type,
                    "version": c.version,
                    "status": c.status,
                    "layer": c.role.layer,
                    "critical": c.role.critical,
                }
                for c in components
            ],
            "connections": [
                {
                    "id": c.connection_id,
                    "from": c.from_id,
                    "to": c.to_id,
                    "type": c.connection_type,
                    "from_name": name_of(c.from_id),
                    "to_name": name_of(c.to_id),
                    "file": c.file,
                }
                for c in connections
            ],
            "stats": {
                "total_components": len(components),
                "total_connections": len(connections),
            },
        }

    def create_snapshot(
        self,
        components: Optional[List[Component]] = None,
        connections: Optional[List[Connection]] = None,
    ) -> Dict[str, Any]:
        snapshot = self.build_snapshot(components, connections)
        self.snapshots_dir.mkdir(parents=True, exist_ok=True)
        path = self.snapshots_dir / f"{snapshot['snapshot_id']}.json"
        counter = 1
        while path.exists():
            counter += 1
            snapshot["snapshot_id"] = f"{snapshot['snapshot_id'].split('__')[0]}__{counter}"
            path = self.snapshots_dir / f"{snapshot['snapshot_id']}.json"
        _write_atomic(path, _dump(snapshot))
        return snapshot

    def list_snapshots(self) -> List[str]:
        if not self.snapshots_dir.is_dir():
            return []
        return sorted(p.stem for p in self.snapshots_dir.glob("SNAP_*.json"))

    def load_snapshot(self, snapshot_id: str) -> Optional[Dict[str, Any]]:
        return self._load_json(self.snapshots_dir / f"{snapshot_id}.json")

    def load_latest_snapshot(self) -> Optional[Dict[str, Any]]:
        snapshots = self.list_snapshots()
        return self.load_snapshot(snapshots[-1]) if snapshots else None

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def get_storage_stats(self) -> Dict[str, Any]:
        def count(directory: Path) -> int:
            return len(list(directory.glob("*.json"))) if directory.is_dir() else 0

        total_bytes = 0
        if self.store_dir.is_dir():
            for path in self.store_dir.rglob("*"):
                if path.is_file():
                    total_bytes += path.stat().st_size
        return {
            "store_path": str(self.store_dir),
            "components": count(self.components_dir),
            "connections": count(self.connections_dir),
            "snapshots": count(self.snapshots_dir),
            "total_bytes": total_bytes,
        }

    def get_scan_status(self) -> Dict[str, Any]:
        index = self.load_index()
        if not index:
            return {"last_scan": None, "components": 0, "connections": 0, "needs_rescan": True}
        last_scan = index.get("last_scan")
        stats = index.get("stats", {})
        return {
            "last_scan": last_scan,
            "last_scan_iso": format_timestamp(last_scan) if last_scan else None,
            "components": stats.get("total_components", 0),
            "connections": stats.get("total_connections", 0),
            "needs_rescan": not last_scan or now_ms() - int(last_scan) > RESCAN_AFTER_MS,
        }

    def clear(self, keep_hashes: bool = False) -> None:
        """Remove every record and derived artifact from the store."""
        for directory in (self.components_dir, self.connections_dir):
            if directory.is_dir():
                shutil.rmtree(directory)
        for path in (
            self.index_path, self.graph_path, self.file_map_path, self.prompts_path,
            self.summary_path, self.summary_full_path,
        ):
            if path.exists():
                path.unlink()
        hashes = self.store_dir / HASHES_FILENAME
        if not keep_hashes and hashes.exists():
            hashes.unlink()
