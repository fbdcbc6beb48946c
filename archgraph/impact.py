"""Severity-scored impact analysis for a single component."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from .models import (
    FILE_PREFIX,
    Component,
    Connection,
    compact_component,
    compact_connection,
    synthetic_file_component,
)

SEVERITY_LEVELS = ("critical", "high", "medium", "low")
CRITICAL_LAYERS = {"database", "infra"}


@dataclass
class AffectedComponent:
    component: Component
    connection: Connection
    impact_type: str
    change_required: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "component": compact_component(self.component),
            "connection": compact_connection(self.connection),
            "impact_type": self.impact_type,
            "change_required": self.change_required,
        }


@dataclass
class ImpactReport:
    component: Component
    severity: str
    affected: List[AffectedComponent] = field(default_factory=list)
    total_files_affected: int = 0
    summary: str = ""

    @property
    def direct(self) -> List[AffectedComponent]:
        return [a for a in self.affected if a.impact_type == "direct"]

    @property
    def transitive(self) -> List[AffectedComponent]:
        return [a for a in self.affected if a.impact_type == "transitive"]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "component": compact_component(self.component),
            "severity": self.severity,
            "affected": [a.to_dict() for a in self.affected],
            "total_files_affected": self.total_files_affected,
            "summary": self.summary,
        }


def compute_severity(component: Component, dependent_count: int) -> str:
    """critical > high > medium > low, from layer, fan-in and the critical flag."""
    layer = component.role.layer
    if layer in CRITICAL_LAYERS or dependent_count > 5 or component.role.critical:
        return "critical"
    if layer == "backend" or 3 <= dependent_count <= 5:
        return "high"
    if dependent_count == 2:
        return "medium"
    return "low"


def _plural(count: int, word: str) -> str:
    return f"{count} {word}" if count == 1 else f"{count} {word}s"


def compute_impact(
    component: Component,
    components: Sequence[Component],
    connections: Sequence[Connection],
) -> ImpactReport:
    """Direct dependents plus one transitive level.

    Dependents are the sources of connections pointing at *component*;
    ``FILE:`` sources count as synthetic file components.
    """
    by_id: Dict[str, Component] = {c.component_id: c for c in components}

    def lookup(component_id: str) -> Optional[Component]:
        if component_id in by_id:
            return by_id[component_id]
        if component_id.startswith(FILE_PREFIX):
            return synthetic_file_component(component_id)
        return None

    affected: List[AffectedComponent] = []
    files = set()
    direct_ids: List[str] = []

    for conn in connections:
        if conn.to_id != component.component_id:
            continue
        dependent = lookup(conn.from_id)
        if dependent is None:
            continue
        if dependent.component_id not in direct_ids:
            direct_ids.append(dependent.component_id)
        affected.append(AffectedComponent(
            component=dependent,
            connection=conn,
            impact_type="direct",
            change_required=f"Uses {component.name} via {conn.connection_type} at {conn.file or 'unknown'}",
        ))
        if conn.file:
            files.add(conn.file)

    direct_set = set(direct_ids)
    for direct_id in direct_ids:
        via = lookup(direct_id)
        for conn in connections:
            if conn.to_id != direct_id:
                continue
            if conn.from_id in direct_set or conn.from_id == component.component_id:
                continue
            dependent = lookup(conn.from_id)
            if dependent is None:
                continue
            affected.append(AffectedComponent(
                component=dependent,
                connection=conn,
                impact_type="transitive",
                change_required=f"Indirectly affected via {via.name if via else direct_id}",
            ))
            if conn.file:
                files.add(conn.file)

    severity = compute_severity(component, len(direct_ids))
    transitive = sum(1 for a in affected if a.impact_type == "transitive")
    summary = (
        f"{severity.upper()}: {_plural(len(direct_ids), 'direct dependent')}, "
        f"{transitive} transitive, {_plural(len(files), 'file')} affected"
    )
    return ImpactReport(
        component=component,
        severity=severity,
        affected=affected,
        total_files_affected=len(files),
        summary=summary,
    )
