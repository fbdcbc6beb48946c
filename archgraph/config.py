"""Configuration paths and defaults for ArchGraph storage."""

from __future__ import annotations

import os
from pathlib import Path

BASE_DIR = Path(os.environ.get("ARCHGRAPH_HOME", str(Path.home() / ".archgraph"))).expanduser()
SHARED_STORE_DIR = BASE_DIR / "projects"
PROJECTS_FILE = BASE_DIR / "projects.json"
STATE_FILE = BASE_DIR / "state.json"

# Per-project store directory name used in local mode
LOCAL_STORE_DIRNAME = ".archgraph"

SCHEMA_VERSION = "1.0.0"
HASH_MANIFEST_VERSION = "1.0"

DEFAULT_CONFIDENCE_THRESHOLD = 0.6
DEFAULT_CONFIDENCE_FLOOR = 0.5
DEFAULT_MAX_RESULTS = 20
DEFAULT_MAX_WORKERS = 4

# Files/dirs never walked by any detector
EXCLUDED_DIRS = {
    "node_modules", "dist", "build", ".next", "__pycache__", "venv",
    ".venv", ".git", LOCAL_STORE_DIRNAME, "vendor", "target", "coverage",
    ".tox", ".mypy_cache", ".pytest_cache",
}
FIXTURE_DIRS = {"fixtures", "__fixtures__", "__mocks__"}

SCAN_EXTENSIONS = (".ts", ".tsx", ".js", ".jsx", ".py")
COVERAGE_EXTENSIONS = (
    ".ts", ".tsx", ".js", ".jsx", ".py", ".rb", ".go", ".rs",
    ".swift", ".java", ".kt",
)


def ensure_base_dirs() -> None:
    """Create base directories for shared storage if needed."""
    BASE_DIR.mkdir(parents=True, exist_ok=True)
    SHARED_STORE_DIR.mkdir(parents=True, exist_ok=True)
