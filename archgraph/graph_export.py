"""Graph export helpers for Mermaid and Graphviz DOT outputs."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, List

from .subgraph import SubgraphResult, mermaid_id, mermaid_label

EXPORT_FORMATS = ("mermaid", "dot")

LAYER_TITLES = {
    "frontend": "Frontend",
    "backend": "Backend",
    "database": "Database",
    "queue": "Queue",
    "infra": "Infrastructure",
    "external": "External Services",
    "shared": "Shared",
}

LAYER_STYLES = {
    "frontend": "fill:#bbdefb,stroke:#1976d2",
    "backend": "fill:#c8e6c9,stroke:#388e3c",
    "database": "fill:#ffe0b2,stroke:#f57c00",
    "queue": "fill:#e1bee7,stroke:#7b1fa2",
    "infra": "fill:#cfd8dc,stroke:#455a64",
    "external": "fill:#ffccbc,stroke:#e64a19",
    "shared": "fill:#f5f5f5,stroke:#9e9e9e",
}

# (mermaid arrow, label)
EDGE_STYLES = {
    "service-call": ("-->", "uses"),
    "imports": ("-->", ""),
    "observes": ("-.->", "observes"),
    "conforms-to": ("-->", "conforms"),
    "stores": ("-->", "stores"),
    "requires-entitlement": ("-.->", "requires"),
    "prompt-location": ("-.->", "defines"),
    "prompt-usage": ("-.->", "uses prompt"),
    "hosts": ("==>", "hosts"),
}


def _layer_order(layer: str) -> int:
    order = list(LAYER_TITLES)
    return order.index(layer) if layer in order else len(order)


def export_mermaid(result: SubgraphResult, direction: str = "TB") -> str:
    """Mermaid flowchart with one ``subgraph`` block per layer."""
    lines = [f"graph {direction}", ""]
    by_layer: Dict[str, List] = {}
    for comp in result.components:
        by_layer.setdefault(comp.role.layer, []).append(comp)

    for layer in sorted(by_layer, key=lambda name: (_layer_order(name), name)):
        lines.append(f"  subgraph {LAYER_TITLES.get(layer, layer.capitalize()).replace(' ', '_')}")
        for comp in by_layer[layer]:
            lines.append(f'    {mermaid_id(comp.component_id)}["{mermaid_label(comp.name)}"]')
        lines.append("  end")
        lines.append("")

    for conn in result.connections:
        arrow, label = EDGE_STYLES.get(conn.connection_type, ("-->", ""))
        source = mermaid_id(conn.from_id)
        target = mermaid_id(conn.to_id)
        if label:
            lines.append(f"  {source} {arrow}|{label}| {target}")
        else:
            lines.append(f"  {source} {arrow} {target}")

    if by_layer:
        lines.append("")
        for layer in sorted(by_layer, key=lambda name: (_layer_order(name), name)):
            if layer in LAYER_STYLES:
                lines.append(f"  classDef {layer} {LAYER_STYLES[layer]}")
        for layer, comps in sorted(by_layer.items()):
            if layer in LAYER_STYLES:
                ids = ",".join(mermaid_id(c.component_id) for c in comps)
                lines.append(f"  class {ids} {layer}")
    return "\n".join(lines) + "\n"


def export_dot(result: SubgraphResult) -> str:
    lines = ["digraph ArchGraph {"]
    lines.append("  rankdir=LR;")

    for comp in result.components:
        label = f"{comp.type}\\n{comp.name}"
        lines.append(f'  "{_esc(comp.component_id)}" [label="{_esc(label)}"];')

    known = {c.component_id for c in result.components}
    for conn in result.connections:
        if conn.from_id not in known or conn.to_id not in known:
            continue
        lines.append(
            f'  "{_esc(conn.from_id)}" -> "{_esc(conn.to_id)}" [label="{_esc(conn.connection_type)}"];'
        )

    lines.append("}")
    return "\n".join(lines) + "\n"


def write_diagram(result: SubgraphResult, output_file: Path, fmt: str = "mermaid") -> Path:
    fmt = fmt.lower()
    if fmt not in EXPORT_FORMATS:
        raise ValueError(f"Format must be one of: {', '.join(EXPORT_FORMATS)}")
    text = export_dot(result) if fmt == "dot" else export_mermaid(result)
    output_file.parent.mkdir(parents=True, exist_ok=True)
    output_file.write_text(text, encoding="utf-8")
    return output_file


def _esc(text: str) -> str:
    return text.replace('"', '\\"')
