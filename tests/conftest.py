"""Pytest configuration and fixtures for ArchGraph tests."""

import shutil
import tempfile
from pathlib import Path
from typing import Generator, List

import pytest

from archgraph.config_manager import get_store_path
from archgraph.models import Component, Connection
from archgraph.storage import ArchitectureStore


@pytest.fixture(autouse=True)
def _isolated_home(tmp_path_factory, monkeypatch):
    """Point the registry, state and config paths at a throwaway directory."""
    home = tmp_path_factory.mktemp("archgraph_home")
    monkeypatch.setattr("archgraph.config.BASE_DIR", home)
    monkeypatch.setattr("archgraph.config.SHARED_STORE_DIR", home / "projects")
    monkeypatch.setattr("archgraph.config.PROJECTS_FILE", home / "projects.json")
    monkeypatch.setattr("archgraph.config.STATE_FILE", home / "state.json")
    monkeypatch.setattr("archgraph.config_manager.CONFIG_FILE", home / "config.toml")
    for var in (
        "ARCHGRAPH_MODE", "ARCHGRAPH_PATH", "ARCHGRAPH_CONFIDENCE",
        "ARCHGRAPH_MAX_RESULTS", "ARCHGRAPH_WORKERS",
        "RAILWAY_ENVIRONMENT", "VERCEL",
    ):
        monkeypatch.delenv(var, raising=False)
    return home


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    tmp = Path(tempfile.mkdtemp())
    yield tmp
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def sample_project_path() -> Path:
    """Get path to the pristine sample project."""
    return Path(__file__).parent / "fixtures" / "sample_project"


@pytest.fixture
def sample_project(temp_dir: Path, sample_project_path: Path) -> Path:
    """Writable copy of the sample project (scans create ``.archgraph/`` inside it)."""
    target = temp_dir / "sample_project"
    shutil.copytree(sample_project_path, target)
    return target


# ---------------------------------------------------------------------------
# Small hand-built graphs
# ---------------------------------------------------------------------------

@pytest.fixture
def api() -> Component:
    return Component.create("API", "service", layer="backend", purpose="HTTP API", timestamp=1000)


@pytest.fixture
def db() -> Component:
    return Component.create("DB", "database", layer="database", purpose="Primary database", timestamp=1000)


@pytest.fixture
def orphan() -> Component:
    return Component.create("Orphan", "package", layer="backend", timestamp=1000)


@pytest.fixture
def api_to_db(api: Component, db: Component) -> Connection:
    return Connection.create(
        api.component_id,
        db.component_id,
        "service-call",
        file="src/api/orders.py",
        line=12,
        symbol="load_orders",
        confidence=0.9,
        timestamp=1000,
    )


@pytest.fixture
def small_graph(api, db, orphan, api_to_db):
    """``API -> DB`` plus an unconnected ``Orphan``."""
    return [api, db, orphan], [api_to_db]


def _make_chain(names: List[str], layer: str = "backend"):
    components = [Component.create(name, "service", layer=layer, timestamp=1000) for name in names]
    connections = [
        Connection.create(a.component_id, b.component_id, "service-call", timestamp=1000)
        for a, b in zip(components, components[1:])
    ]
    return components, connections


@pytest.fixture
def make_chain():
    """Factory: components ``names[0] -> names[1] -> ...`` joined by service calls."""
    return _make_chain


@pytest.fixture
def populated_store(temp_dir: Path, small_graph) -> ArchitectureStore:
    """Store for ``temp_dir/project`` holding the small graph, derived files built."""
    project = temp_dir / "project"
    project.mkdir()
    store = ArchitectureStore(get_store_path(project), project)
    components, connections = small_graph
    store.store_components(components)
    store.store_connections(connections)
    store.rebuild_all()
    return store
