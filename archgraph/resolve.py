"""Resolve user queries (IDs, names, file paths) to components."""

from __future__ import annotations

from typing import Dict, List, Optional, Sequence

from .models import Component


def normalize_path(path: str) -> str:
    """Forward slashes, no leading ``./``, lower case."""
    path = path.replace("\\", "/")
    if path.startswith("./"):
        path = path[2:]
    return path.lower()


def _by_id(components: Sequence[Component], component_id: str) -> Optional[Component]:
    for comp in components:
        if comp.component_id == component_id:
            return comp
    return None


def resolve_component(
    query: str,
    components: Sequence[Component],
    file_map: Optional[Dict[str, str]] = None,
) -> Optional[Component]:
    """Return the component *query* refers to, or ``None``.

    Resolution order:
      1. exact component ID
      2. exact name (case-insensitive)
      3. file map, exact path
      4. name substring (case-insensitive)
      5. file map, path substring
      6. a component's own config files, path substring
    """
    if not query or not components:
        return None

    match = _by_id(components, query)
    if match:
        return match

    lower = query.lower()
    for comp in components:
        if comp.name.lower() == lower:
            return comp

    normalized = normalize_path(query)
    if file_map:
        component_id = file_map.get(normalized) or file_map.get(query)
        if component_id:
            match = _by_id(components, component_id)
            if match:
                return match
        for path, component_id in file_map.items():
            if normalize_path(path) == normalized:
                match = _by_id(components, component_id)
                if match:
                    return match

    for comp in components:
        if lower in comp.name.lower():
            return comp

    if file_map:
        for path, component_id in file_map.items():
            if normalized in normalize_path(path):
                match = _by_id(components, component_id)
                if match:
                    return match

    for comp in components:
        for path in comp.source.config_files:
            if normalized in normalize_path(path):
                return comp
    return None


def find_candidates(query: str, components: Sequence[Component], limit: int = 5) -> List[str]:
    """Closest component names for "did you mean" hints."""
    lower = query.lower()
    scored = []
    for comp in components:
        name = comp.name.lower()
        score = 0.0
        if lower in name or name in lower:
            score += 3
        prefix = 0
        for a, b in zip(name, lower):
            if a != b:
                break
            prefix += 1
        score += prefix
        score -= abs(len(name) - len(lower)) * 0.5
        if score > 0:
            scored.append((score, comp.name))
    # sort is stable, so equal scores keep component order
    scored.sort(key=lambda item: -item[0])
    return [name for _, name in scored[:limit]]
