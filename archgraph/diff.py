"""Structured diffs between architecture snapshots."""

from __future__ import annotations

import re
from typing import Any, Dict, List, Optional, Tuple

MAJOR_TRIGGERS = ("layer-change", "high-churn", "new-layer")
MINOR_TRIGGERS = ("new-package", "connection-change", "version-bump")
CRITICAL_LAYERS = {"database", "infra"}
PACKAGE_TYPES = {"package"}
HIGH_CHURN_RATIO = 0.2

_MAJOR_BUMP_RE = re.compile(r"^version: (\d+)\.\d+\.\d+ -> (\d+)\.\d+\.\d+")


def _component_key(component: Dict[str, Any]) -> str:
    return f"{component.get('name')}|{component.get('type')}"


def _connection_key(connection: Dict[str, Any]) -> str:
    return f"{connection.get('from_name')}|{connection.get('to_name')}|{connection.get('type')}"


def _component_change(component: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "name": component.get("name"),
        "type": component.get("type"),
        "layer": component.get("layer"),
        "version": component.get("version"),
    }


def _connection_change(connection: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "from_name": connection.get("from_name"),
        "to_name": connection.get("to_name"),
        "type": connection.get("type"),
        "file": connection.get("file"),
    }


def compute_architecture_diff(previous: Optional[Dict[str, Any]], current: Dict[str, Any]) -> Dict[str, Any]:
    """Diff two snapshots.

    Components are matched by ``name|type`` and connections by
    ``from_name|to_name|type``, so the diff is insensitive to ID
    changes.  A component is modified when its version, status or layer
    changed.
    """
    prev_components = {_component_key(c): c for c in (previous or {}).get("components", [])}
    curr_components = {_component_key(c): c for c in current.get("components", [])}
    prev_connections = {_connection_key(c): c for c in (previous or {}).get("connections", [])}
    curr_connections = {_connection_key(c): c for c in current.get("connections", [])}

    added: List[Dict[str, Any]] = []
    modified: List[Dict[str, Any]] = []
    for key, curr in curr_components.items():
        prev = prev_components.get(key)
        if prev is None:
            added.append(_component_change(curr))
            continue
        changes: List[str] = []
        if prev.get("version") != curr.get("version") and (prev.get("version") or curr.get("version")):
            changes.append(f"version: {prev.get('version') or '-'} -> {curr.get('version') or '-'}")
        if prev.get("status") != curr.get("status"):
            changes.append(f"status: {prev.get('status')} -> {curr.get('status')}")
        if prev.get("layer") != curr.get("layer"):
            changes.append(f"layer: {prev.get('layer')} -> {curr.get('layer')}")
        if changes:
            modified.append({"name": curr.get("name"), "type": curr.get("type"), "changes": changes})

    removed = [_component_change(prev) for key, prev in prev_components.items() if key not in curr_components]
    added_connections = [
        _connection_change(c) for key, c in curr_connections.items() if key not in prev_connections
    ]
    removed_connections = [
        _connection_change(c) for key, c in prev_connections.items() if key not in curr_connections
    ]

    total = len(added) + len(removed) + len(modified) + len(added_connections) + len(removed_connections)
    return {
        "components": {"added": added, "removed": removed, "modified": modified},
        "connections": {"added": added_connections, "removed": removed_connections},
        "stats": {
            "total_changes": total,
            "components_before": len((previous or {}).get("components", [])),
            "components_after": len(current.get("components", [])),
            "connections_before": len((previous or {}).get("connections", [])),
            "connections_after": len(current.get("connections", [])),
            "layers_before": sorted({str(c.get("layer")) for c in prev_components.values()}),
        },
    }


def classify_significance(diff: Dict[str, Any]) -> Tuple[str, List[str]]:
    """Return ``(significance, triggers)``; significance is major, minor or patch."""
    components = diff["components"]
    connections = diff["connections"]
    stats = diff["stats"]
    triggers: List[str] = []

    if any(c.get("layer") in CRITICAL_LAYERS for c in components["added"] + components["removed"]):
        triggers.append("layer-change")

    before = stats["components_before"] or 1
    churn = len(components["added"]) + len(components["removed"]) + len(components["modified"])
    if churn / before > HIGH_CHURN_RATIO:
        triggers.append("high-churn")

    added_layers = {c.get("layer") for c in components["added"]}
    if added_layers and stats["components_before"] > 0:
        existing_layers = set(stats.get("layers_before") or [])
        if any(layer not in existing_layers for layer in added_layers):
            triggers.append("new-layer")

    if any(c.get("type") in PACKAGE_TYPES for c in components["added"]):
        triggers.append("new-package")

    if connections["added"] or connections["removed"]:
        triggers.append("connection-change")

    for change in components["modified"]:
        for line in change["changes"]:
            match = _MAJOR_BUMP_RE.match(line)
            if match and match.group(1) != match.group(2):
                triggers.append("version-bump")
                break
        if "version-bump" in triggers:
            break

    if not triggers and stats["total_changes"] > 0:
        triggers.append("metadata-only")

    if any(t in MAJOR_TRIGGERS for t in triggers):
        return "major", triggers
    if any(t in MINOR_TRIGGERS for t in triggers):
        return "minor", triggers
    return "patch", triggers


def format_diff_output(diff: Dict[str, Any], significance: str, triggers: List[str]) -> str:
    stats = diff["stats"]
    lines = [
        f"[{significance.upper()}] Triggers: {', '.join(triggers) or 'none'}",
        f"Components: {stats['components_before']} -> {stats['components_after']}",
        f"Connections: {stats['connections_before']} -> {stats['connections_after']}",
        "",
    ]
    for comp in diff["components"]["added"]:
        version = f" v{comp['version']}" if comp.get("version") else ""
        lines.append(f"  + {comp['name']}{version} ({comp['type']}, {comp['layer']})")
    for comp in diff["components"]["removed"]:
        lines.append(f"  - {comp['name']} ({comp['type']}, {comp['layer']})")
    for comp in diff["components"]["modified"]:
        lines.append(f"  ~ {comp['name']} ({comp['type']}): {', '.join(comp['changes'])}")
    for conn in diff["connections"]["added"]:
        lines.append(f"  + {conn['from_name']} -> {conn['to_name']} [{conn['type']}]")
    for conn in diff["connections"]["removed"]:
        lines.append(f"  - {conn['from_name']} -> {conn['to_name']} [{conn['type']}]")
    if stats["total_changes"] == 0:
        lines.append("No changes detected.")
    return "\n".join(lines)
