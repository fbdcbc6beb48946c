"""Markdown architecture summary, with size-triggered compression."""

from __future__ import annotations

import json
import re
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence, Tuple

from .models import FILE_PREFIX, Component, Connection

SUMMARY_LINE_LIMIT = 150
FULL_TOP_N = 20
COMPRESSED_TOP_N = 10

LAYER_ORDER = ("frontend", "backend", "database", "queue", "infra", "external", "shared")

_NAMES_MARKER = "archgraph-components:"
_NAMES_RE = re.compile(r"<!--\s*archgraph-components:\s*(\[.*?\])\s*-->", re.DOTALL)


def _cell(value: object) -> str:
    return str(value if value not in (None, "") else "-").replace("|", "\\|").replace("\n", " ")


def _display_name(component_id: str, by_id: Dict[str, Component]) -> str:
    if component_id in by_id:
        return by_id[component_id].name
    if component_id.startswith(FILE_PREFIX):
        return component_id[len(FILE_PREFIX):]
    return component_id


def previous_component_names(previous_text: Optional[str]) -> Optional[List[str]]:
    """Component names recorded in an earlier SUMMARY.md, if any."""
    if not previous_text:
        return None
    match = _NAMES_RE.search(previous_text)
    if not match:
        return None
    try:
        names = json.loads(match.group(1))
    except json.JSONDecodeError:
        return None
    return [str(n) for n in names] if isinstance(names, list) else None


def _more(lines: List[str], remaining: int, pointer: Optional[str]) -> None:
    if remaining > 0:
        suffix = f" (see `{pointer}`)" if pointer else ""
        lines.append(f"_... and {remaining} more{suffix}_")


def render_summary(
    components: Sequence[Component],
    connections: Sequence[Connection],
    project_path: str = "",
    previous_text: Optional[str] = None,
    prompts: Optional[Dict[str, Dict]] = None,
    top_n: Optional[int] = None,
    connections_top_n: int = FULL_TOP_N,
    prompts_top_n: int = FULL_TOP_N,
    pointer: Optional[str] = None,
    generated_at: Optional[str] = None,
) -> str:
    """Render the architecture summary.

    Args:
        top_n: Max rows per layer and AI routing table (``None`` = all).
        pointer: File mentioned in "... and N more" lines when truncated.
    """
    by_id = {c.component_id: c for c in components}
    generated_at = generated_at or datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")
    lines: List[str] = [
        "# Architecture Summary",
        "",
        f"> Generated {generated_at} | {len(components)} components | {len(connections)} connections",
    ]
    if project_path:
        lines.append(f"> Project: `{project_path}`")
    lines.append("")

    # Components by layer
    lines.append("## Components by Layer")
    lines.append("")
    grouped: Dict[str, List[Component]] = {}
    for comp in components:
        grouped.setdefault(comp.role.layer, []).append(comp)
    layers = [layer for layer in LAYER_ORDER if layer in grouped]
    layers += sorted(layer for layer in grouped if layer not in LAYER_ORDER)
    if not layers:
        lines.append("_No components detected._")
        lines.append("")
    for layer in layers:
        items = sorted(grouped[layer], key=lambda c: (-c.source.confidence, c.name.lower()))
        shown = items if top_n is None else items[:top_n]
        lines.append(f"### {layer.capitalize()} ({len(items)})")
        lines.append("")
        lines.append("| Name | Type | Version | Status | Confidence |")
        lines.append("|------|------|---------|--------|------------|")
        for comp in shown:
            lines.append(
                f"| {_cell(comp.name)} | {comp.type} | {_cell(comp.version)} | "
                f"{comp.status} | {comp.source.confidence:.2f} |"
            )
        _more(lines, len(items) - len(shown), pointer)
        lines.append("")

    # AI / LLM routing
    llm_ids = {c.component_id for c in components if c.type == "llm"}
    ai_connections = [c for c in connections if c.to_id in llm_ids]
    if ai_connections:
        shown_ai = ai_connections if top_n is None else ai_connections[:top_n]
        lines.append("## AI / LLM Routing")
        lines.append("")
        lines.append("| From | LLM | Type | File | Line |")
        lines.append("|------|-----|------|------|------|")
        for conn in shown_ai:
            lines.append(
                f"| {_cell(_display_name(conn.from_id, by_id))} | {_cell(_display_name(conn.to_id, by_id))} | "
                f"{conn.connection_type} | {_cell(conn.file)} | {_cell(conn.line)} |"
            )
        _more(lines, len(ai_connections) - len(shown_ai), pointer)
        lines.append("")

    # Connections
    lines.append(f"## Connections ({len(connections)})")
    lines.append("")
    if connections:
        ranked = sorted(connections, key=lambda c: (-c.confidence, c.connection_id))
        shown_conns = ranked[:connections_top_n]
        lines.append("| From | To | Type | File | Confidence |")
        lines.append("|------|----|------|------|------------|")
        for conn in shown_conns:
            lines.append(
                f"| {_cell(_display_name(conn.from_id, by_id))} | {_cell(_display_name(conn.to_id, by_id))} | "
                f"{conn.connection_type} | {_cell(conn.file)} | {conn.confidence:.2f} |"
            )
        _more(lines, len(ranked) - len(shown_conns), pointer or "connections/")
    else:
        lines.append("_No connections detected._")
    lines.append("")

    # Changes since last scan
    lines.append("## Changes Since Last Scan")
    lines.append("")
    current_names = sorted({c.name for c in components})
    previous_names = previous_component_names(previous_text)
    if previous_names is None:
        lines.append("_First scan, no previous summary to compare._")
    else:
        added = sorted(set(current_names) - set(previous_names))
        removed = sorted(set(previous_names) - set(current_names))
        if not added and not removed:
            lines.append("_No component changes._")
        if added:
            lines.append(f"- Added ({len(added)}): {', '.join(added[:FULL_TOP_N])}")
        if removed:
            lines.append(f"- Removed ({len(removed)}): {', '.join(removed[:FULL_TOP_N])}")
    lines.append("")

    # Prompts
    prompt_components = sorted(
        (c for c in components if c.type == "prompt"), key=lambda c: c.name.lower(),
    )
    if prompt_components:
        shown_prompts = prompt_components[:prompts_top_n]
        lines.append(f"## Prompts ({len(prompt_components)})")
        lines.append("")
        lines.append("| Name | File | Line | Preview |")
        lines.append("|------|------|------|---------|")
        for comp in shown_prompts:
            meta = comp.metadata
            full = (prompts or {}).get(comp.component_id, {})
            preview = meta.get("prompt_preview") or full.get("content") or meta.get("prompt") or ""
            preview = " ".join(str(preview).split())[:60]
            lines.append(
                f"| {_cell(comp.name)} | {_cell(meta.get('file'))} | {_cell(meta.get('line'))} | {_cell(preview)} |"
            )
        _more(lines, len(prompt_components) - len(shown_prompts), pointer or "prompts.json")
        lines.append("")

    # Pointers
    lines.append("## Detail Pointers")
    lines.append("")
    lines.append("- `index.json`: lookup tables and stats")
    lines.append("- `graph.json`: nodes and edges")
    lines.append("- `file_map.json`: file to component map")
    lines.append("- `components/<id>.json`, `connections/<id>.json`: full records")
    if prompt_components:
        lines.append("- `prompts.json`: full prompt text")
    if pointer:
        lines.append(f"- `{pointer}`: uncompressed summary")
    lines.append("")
    lines.append(f"<!-- {_NAMES_MARKER} {json.dumps(current_names)} -->")
    return "\n".join(lines) + "\n"


def build_summaries(
    components: Sequence[Component],
    connections: Sequence[Connection],
    project_path: str = "",
    previous_text: Optional[str] = None,
    prompts: Optional[Dict[str, Dict]] = None,
    line_limit: int = SUMMARY_LINE_LIMIT,
) -> Tuple[str, Optional[str]]:
    """Return ``(summary, full_summary_or_None)``.

    When the full report stays within *line_limit* lines it is the
    summary and no secondary file is needed.
    """
    generated_at = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")
    full = render_summary(
        components, connections, project_path, previous_text, prompts,
        generated_at=generated_at,
    )
    if full.count("\n") <= line_limit:
        return full, None

    compressed = render_summary(
        components, connections, project_path, previous_text, prompts,
        top_n=COMPRESSED_TOP_N,
        connections_top_n=COMPRESSED_TOP_N,
        prompts_top_n=COMPRESSED_TOP_N,
        pointer="SUMMARY_FULL.md",
        generated_at=generated_at,
    )
    return compressed, full
