"""Bounded bidirectional path tracing over the architecture graph."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, FrozenSet, List, Optional, Sequence, Tuple

from .models import (
    FILE_PREFIX,
    Component,
    Connection,
    compact_component,
    compact_connection,
    synthetic_file_component,
)

DIRECTIONS = ("forward", "backward", "both")
DEFAULT_MAX_DEPTH = 5


@dataclass
class TraceStep:
    component: Dict[str, Any]
    connection: Optional[Dict[str, Any]] = None
    file: Optional[str] = None
    line: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"component": self.component}
        if self.connection is not None:
            payload["connection"] = self.connection
        if self.file:
            payload["file"] = self.file
        if self.line is not None:
            payload["line"] = self.line
        return payload


@dataclass
class TracePath:
    steps: List[TraceStep]
    classification: Optional[str] = None

    @property
    def component_ids(self) -> Tuple[str, ...]:
        return tuple(step.component["id"] for step in self.steps)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"steps": [s.to_dict() for s in self.steps]}
        if self.classification:
            payload["classification"] = self.classification
        return payload


@dataclass
class TraceResult:
    query: str
    paths: List[TracePath] = field(default_factory=list)
    components_touched: List[str] = field(default_factory=list)
    layers_crossed: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "query": self.query,
            "paths": [p.to_dict() for p in self.paths],
            "components_touched": list(self.components_touched),
            "layers_crossed": list(self.layers_crossed),
        }


def empty_trace(query: str = "") -> TraceResult:
    return TraceResult(query=query)


def majority_classification(labels: Sequence[str]) -> Optional[str]:
    """Most frequent label; ties go to the label seen first."""
    counts: Dict[str, int] = {}
    for label in labels:
        counts[label] = counts.get(label, 0) + 1
    best: Optional[str] = None
    for label, count in counts.items():
        if best is None or count > counts[best]:
            best = label
    return best


def _dedupe(paths: List[TracePath]) -> List[TracePath]:
    seen = set()
    unique: List[TracePath] = []
    for path in paths:
        key = path.component_ids
        if key not in seen:
            seen.add(key)
            unique.append(path)
    return unique


def trace_dataflow(
    start: Component,
    components: Sequence[Component],
    connections: Sequence[Connection],
    direction: str = "both",
    max_depth: int = DEFAULT_MAX_DEPTH,
    classification: Optional[str] = None,
) -> TraceResult:
    """Breadth-first path search from *start*.

    Every queued path carries its own visited set, so a component can
    appear in several paths but never twice in one.  Paths end at
    *max_depth* or at a dead end (including one produced by the
    classification filter).  ``FILE:`` endpoints are materialized as
    synthetic file components as they are reached.
    """
    if direction not in DIRECTIONS:
        raise ValueError(f"direction must be one of {', '.join(DIRECTIONS)}")

    by_id: Dict[str, Component] = {c.component_id: c for c in components}
    outgoing: Dict[str, List[Connection]] = {}
    incoming: Dict[str, List[Connection]] = {}
    for conn in connections:
        outgoing.setdefault(conn.from_id, []).append(conn)
        incoming.setdefault(conn.to_id, []).append(conn)

    def lookup(component_id: str) -> Optional[Component]:
        comp = by_id.get(component_id)
        if comp is None and component_id.startswith(FILE_PREFIX):
            comp = synthetic_file_component(component_id)
            by_id[component_id] = comp
        return comp

    touched: List[str] = [start.component_id]
    layers: List[str] = [start.role.layer]
    paths: List[TracePath] = []

    queue: Deque[Tuple[str, List[TraceStep], FrozenSet[str]]] = deque()
    queue.append((start.component_id, [TraceStep(component=compact_component(start))], frozenset([start.component_id])))

    while queue:
        current_id, steps, visited = queue.popleft()
        depth = len(steps) - 1
        if depth >= max_depth:
            if len(steps) > 1:
                paths.append(TracePath(steps=steps))
            continue

        candidates: List[Tuple[Connection, str]] = []
        if direction in ("forward", "both"):
            for conn in outgoing.get(current_id, []):
                if conn.to_id not in visited:
                    candidates.append((conn, conn.to_id))
        if direction in ("backward", "both"):
            for conn in incoming.get(current_id, []):
                if conn.from_id not in visited:
                    candidates.append((conn, conn.from_id))
        if classification:
            candidates = [(c, n) for c, n in candidates if c.classification == classification]

        followed = 0
        for conn, next_id in candidates:
            next_comp = lookup(next_id)
            if next_comp is None:
                continue
            followed += 1
            if next_id not in touched:
                touched.append(next_id)
            if next_comp.role.layer not in layers:
                layers.append(next_comp.role.layer)
            step = TraceStep(
                component=compact_component(next_comp),
                connection=compact_connection(conn),
                file=conn.file,
                line=conn.line,
            )
            queue.append((next_id, steps + [step], visited | {next_id}))

        if followed == 0 and len(steps) > 1:
            paths.append(TracePath(steps=steps))

    unique = _dedupe(paths)
    for path in unique:
        labels = [
            step.connection["classification"]
            for step in path.steps
            if step.connection and step.connection.get("classification")
        ]
        path.classification = majority_classification(labels)

    return TraceResult(
        query=start.name,
        paths=unique,
        components_touched=touched,
        layers_crossed=layers,
    )


def format_trace_output(result: TraceResult) -> str:
    lines = [
        f"Dataflow trace: {result.query}",
        "",
        f"Components touched: {len(result.components_touched)}",
        f"Layers crossed: {' -> '.join(result.layers_crossed)}",
        f"Paths found: {len(result.paths)}",
        "",
    ]
    for number, path in enumerate(result.paths, start=1):
        tag = f" [{path.classification}]" if path.classification else ""
        lines.append(f"Path {number}{tag}:")
        for index, step in enumerate(path.steps):
            prefix = "  " if index == 0 else "  -> "
            ref = ""
            if step.file:
                ref = f" ({step.file}:{step.line})" if step.line else f" ({step.file})"
            lines.append(f"{prefix}{step.component['name']} [{step.component['layer']}]{ref}")
        lines.append("")
    return "\n".join(lines)
