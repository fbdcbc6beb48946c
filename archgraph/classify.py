"""Semantic classification of connections (production, test, admin, ...)."""

from __future__ import annotations

import re
from typing import Dict, Iterable, List, Optional

from .models import FILE_PREFIX, Component, Connection, SemanticInfo, synthetic_file_component

PATH_CONFIDENCE = 0.9
NAME_CONFIDENCE = 0.7
DEFAULT_CONFIDENCE = 0.5
MISSING_ENDPOINT_CONFIDENCE = 0.3

PRODUCTION_LAYERS = {"frontend", "backend", "database"}

# Checked in order; the first match wins
PATH_RULES = [
    ("test", re.compile(r"(__tests__|\.test\.|\.spec\.|(^|/)tests?/|(^|/)testing/|(^|/)test_[^/]*\.py$|_test\.py$)")),
    ("migration", re.compile(r"((^|/)migrations?/|(^|/)migrate|\.migration\.|(^|/)seeds?/)")),
    ("dev-only", re.compile(r"((^|/)scripts/|(^|/)dev/|\.dev\.|webpack\.config|vite\.config|rollup\.config|jest\.config|eslint|prettier|\.storybook)")),
    ("admin", re.compile(r"((^|/)admin/|(^|/)dashboard/|(^|/)internal/|(^|/)backoffice/)")),
    ("analytics", re.compile(r"((^|/)analytics/|(^|/)tracking/|(^|/)telemetry/|(^|/)metrics/|(^|/)monitoring/)")),
]


def _candidate_paths(conn: Connection, from_component: Component) -> List[str]:
    paths: List[Optional[str]] = [
        conn.code_reference.file if conn.code_reference else None,
        conn.from_ref.location.file if conn.from_ref.location else None,
        conn.to_ref.location.file if conn.to_ref.location else None,
    ]
    paths.extend(from_component.source.config_files)
    return [p.replace("\\", "/").lower() for p in paths if p]


def classify_path(path: str) -> Optional[str]:
    lower = path.replace("\\", "/").lower()
    for classification, pattern in PATH_RULES:
        if pattern.search(lower):
            return classification
    return None


def classify_connection(conn: Connection, from_component: Component, to_component: Component) -> SemanticInfo:
    """Classify one connection from file paths, then names, then layers."""
    for path in _candidate_paths(conn, from_component):
        classification = classify_path(path)
        if classification:
            return SemanticInfo(classification, PATH_CONFIDENCE)

    from_name = from_component.name.lower()
    to_name = to_component.name.lower()
    if "test" in from_name or "test" in to_name:
        return SemanticInfo("test", NAME_CONFIDENCE)
    if "admin" in from_name or "admin" in to_name:
        return SemanticInfo("admin", NAME_CONFIDENCE)
    if any(word in name for word in ("analytics", "metric") for name in (from_name, to_name)):
        return SemanticInfo("analytics", NAME_CONFIDENCE)

    if from_component.role.layer in PRODUCTION_LAYERS or to_component.role.layer in PRODUCTION_LAYERS:
        return SemanticInfo("production", DEFAULT_CONFIDENCE)
    return SemanticInfo("unknown", DEFAULT_CONFIDENCE)


def _lookup(component_id: str, by_id: Dict[str, Component]) -> Optional[Component]:
    if component_id in by_id:
        return by_id[component_id]
    if component_id.startswith(FILE_PREFIX):
        return synthetic_file_component(component_id)
    return None


def classify_all_connections(
    connections: Iterable[Connection],
    components: Iterable[Component],
) -> Dict[str, SemanticInfo]:
    """Classification per connection ID.

    ``FILE:`` endpoints are classified through their synthetic file
    component; any other unresolved endpoint yields ``unknown``.
    """
    by_id = {c.component_id: c for c in components}
    result: Dict[str, SemanticInfo] = {}
    for conn in connections:
        from_c = _lookup(conn.from_id, by_id)
        to_c = _lookup(conn.to_id, by_id)
        if from_c and to_c:
            result[conn.connection_id] = classify_connection(conn, from_c, to_c)
        else:
            result[conn.connection_id] = SemanticInfo("unknown", MISSING_ENDPOINT_CONFIDENCE)
    return result
