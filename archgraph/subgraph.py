"""Focused subgraph extraction and its Mermaid rendering."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Set

from .models import (
    FILE_PREFIX,
    Component,
    Connection,
    compact_component,
    compact_connection,
    synthetic_file_component,
)
from .resolve import resolve_component

DEFAULT_DEPTH = 2
DEFAULT_MAX_NODES = 50
MERMAID_LABEL_CHARS = 40

_MERMAID_ID_RE = re.compile(r"[^a-zA-Z0-9_]")


@dataclass
class SubgraphResult:
    components: List[Component] = field(default_factory=list)
    connections: List[Connection] = field(default_factory=list)
    focus_ids: List[str] = field(default_factory=list)

    @property
    def stats(self) -> Dict[str, int]:
        return {"nodes": len(self.components), "edges": len(self.connections)}

    def to_dict(self, include_diagram: bool = True) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "components": [compact_component(c) for c in self.components],
            "connections": [compact_connection(c) for c in self.connections],
            "stats": self.stats,
        }
        if include_diagram:
            payload["diagram_text"] = subgraph_to_mermaid(self)
        return payload


def _with_file_nodes(components: Sequence[Component], connections: Sequence[Connection]) -> List[Component]:
    """Components plus synthetic nodes for every ``FILE:`` endpoint."""
    known = {c.component_id for c in components}
    nodes = list(components)
    for conn in connections:
        for ref in (conn.from_id, conn.to_id):
            if ref.startswith(FILE_PREFIX) and ref not in known:
                known.add(ref)
                nodes.append(synthetic_file_component(ref))
    return nodes


def extract_subgraph(
    components: Sequence[Component],
    connections: Sequence[Connection],
    focus: Optional[Sequence[str]] = None,
    depth: int = DEFAULT_DEPTH,
    layers: Optional[Sequence[str]] = None,
    classification: Optional[str] = None,
    max_nodes: int = DEFAULT_MAX_NODES,
    file_map: Optional[Dict[str, str]] = None,
) -> SubgraphResult:
    """Slice of the graph around *focus*.

    Filters run in a fixed order: BFS reachability (both directions)
    from the resolved focus set, layer allow-list, edge closure,
    classification, node cap.  Edges are re-filtered after the cap so no
    returned edge points outside the returned nodes.  Unresolvable focus
    names yield an empty result; no focus means the whole graph.
    """
    nodes = _with_file_nodes(components, connections)

    if focus:
        focus_ids: List[str] = []
        for query in focus:
            match = resolve_component(query, components, file_map)
            if match and match.component_id not in focus_ids:
                focus_ids.append(match.component_id)
        if not focus_ids:
            return SubgraphResult()

        selected: Set[str] = set(focus_ids)
        frontier = list(focus_ids)
        for _ in range(max(0, depth)):
            next_frontier: List[str] = []
            for node_id in frontier:
                for conn in connections:
                    if conn.from_id == node_id and conn.to_id not in selected:
                        selected.add(conn.to_id)
                        next_frontier.append(conn.to_id)
                    if conn.to_id == node_id and conn.from_id not in selected:
                        selected.add(conn.from_id)
                        next_frontier.append(conn.from_id)
            frontier = next_frontier
    else:
        focus_ids = []
        selected = {c.component_id for c in nodes}

    if layers:
        allowed = set(layers)
        selected = {c.component_id for c in nodes if c.component_id in selected and c.role.layer in allowed}

    edges = [c for c in connections if c.from_id in selected and c.to_id in selected]
    if classification:
        edges = [c for c in edges if c.classification == classification]

    kept = [c for c in nodes if c.component_id in selected][:max(0, max_nodes)]
    kept_ids = {c.component_id for c in kept}
    edges = [c for c in edges if c.from_id in kept_ids and c.to_id in kept_ids]
    return SubgraphResult(components=kept, connections=edges, focus_ids=focus_ids)


def mermaid_id(component_id: str) -> str:
    return _MERMAID_ID_RE.sub("_", component_id)


def mermaid_label(name: str) -> str:
    return name.replace('"', "'")[:MERMAID_LABEL_CHARS]


def subgraph_to_mermaid(result: SubgraphResult) -> str:
    """Mermaid ``graph TD`` text; node and edge order follow the result."""
    lines = ["graph TD", ""]
    for comp in result.components:
        lines.append(f'  {mermaid_id(comp.component_id)}["{mermaid_label(comp.name)}"]')
    lines.append("")
    for conn in result.connections:
        lines.append(f"  {mermaid_id(conn.from_id)} --> {mermaid_id(conn.to_id)}")
    return "\n".join(lines)
