"""Read-only query facade over a persisted architecture store.

Every method loads the store once, runs one algorithm on that in-memory
copy and wraps the outcome in a :class:`QueryResult`.  A missing store
or an unknown component is not an error: the payload is simply empty.
"""

from __future__ import annotations

import functools
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from .config_manager import ArchGraphSettings, get_rules_path, get_settings, get_store_path
from .coverage import CoverageReport, compute_coverage
from .impact import compute_impact
from .models import Component, Connection
from .resolve import find_candidates, resolve_component
from .rules import check_rules, get_builtin_rules, load_custom_rules, summarize_violations
from .storage import ArchitectureStore
from .subgraph import DEFAULT_DEPTH, DEFAULT_MAX_NODES, SubgraphResult, extract_subgraph
from .trace import DEFAULT_MAX_DEPTH, empty_trace, trace_dataflow

logger = logging.getLogger(__name__)

NO_STORE_WARNING = "No architecture data found. Run 'archgraph scan' first."


@dataclass
class QueryResult:
    success: bool = True
    data: Any = None
    warnings: List[str] = field(default_factory=list)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"success": self.success, "data": self.data}
        if self.warnings:
            payload["warnings"] = list(self.warnings)
        if self.error:
            payload["error"] = self.error
        return payload


def _empty_rules() -> Dict[str, Any]:
    return {"violations": [], "summary": summarize_violations([])}


def _guarded(empty: Callable[..., Any]) -> Callable:
    """Turn unexpected exceptions into ``success=False`` with an empty payload."""

    def decorator(method: Callable[..., QueryResult]) -> Callable[..., QueryResult]:
        @functools.wraps(method)
        def wrapper(self: "ArchitectureQueries", *args: Any, **kwargs: Any) -> QueryResult:
            try:
                return method(self, *args, **kwargs)
            except Exception as exc:
                logger.warning("%s query failed: %s", method.__name__, exc)
                return QueryResult(success=False, data=empty(*args, **kwargs), error=str(exc))
        return wrapper

    return decorator


class ArchitectureQueries:
    """Queries for one project's store."""

    def __init__(
        self,
        project_root: Path,
        store: Optional[ArchitectureStore] = None,
        settings: Optional[ArchGraphSettings] = None,
    ) -> None:
        self.project_root = Path(project_root).resolve()
        self.settings = settings or get_settings()
        self.store = store or ArchitectureStore(
            get_store_path(self.project_root, self.settings), self.project_root,
        )

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load(self) -> Tuple[List[Component], List[Connection], List[str]]:
        if not self.store.exists():
            return [], [], [NO_STORE_WARNING]
        return self.store.load_components(), self.store.load_connections(), []

    def resolve(self, name: str) -> Optional[Component]:
        components, _, _ = self.load()
        return resolve_component(name, components, self.store.load_file_map())

    def suggest(self, name: str) -> List[str]:
        components, _, _ = self.load()
        return find_candidates(name, components)

    def _not_found(self, name: str, components: Sequence[Component]) -> str:
        hint = find_candidates(name, components)
        message = f"Component '{name}' not found."
        if hint:
            message += f" Did you mean: {', '.join(hint)}?"
        return message

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @_guarded(lambda *a, **k: empty_trace(k.get("name", a[0] if a else "")).to_dict())
    def trace(
        self,
        name: str,
        direction: str = "both",
        max_depth: int = DEFAULT_MAX_DEPTH,
        classification: Optional[str] = None,
    ) -> QueryResult:
        components, connections, warnings = self.load()
        start = resolve_component(name, components, self.store.load_file_map()) if components else None
        if start is None:
            if components:
                warnings.append(self._not_found(name, components))
            return QueryResult(data=empty_trace(name).to_dict(), warnings=warnings)
        result = trace_dataflow(start, components, connections, direction, max_depth, classification)
        return QueryResult(data=result.to_dict(), warnings=warnings)

    @_guarded(lambda *a, **k: SubgraphResult().to_dict())
    def subgraph(
        self,
        focus: Optional[Sequence[str]] = None,
        depth: int = DEFAULT_DEPTH,
        layers: Optional[Sequence[str]] = None,
        classification: Optional[str] = None,
        max_nodes: int = DEFAULT_MAX_NODES,
    ) -> QueryResult:
        components, connections, warnings = self.load()
        file_map = self.store.load_file_map()
        result = extract_subgraph(
            components, connections,
            focus=focus, depth=depth, layers=layers,
            classification=classification, max_nodes=max_nodes, file_map=file_map,
        )
        if focus and components and not result.focus_ids:
            warnings.append(f"No component matches focus: {', '.join(focus)}")
        return QueryResult(data=result.to_dict(), warnings=warnings)

    def subgraph_result(
        self,
        focus: Optional[Sequence[str]] = None,
        depth: int = DEFAULT_DEPTH,
        layers: Optional[Sequence[str]] = None,
        classification: Optional[str] = None,
        max_nodes: int = DEFAULT_MAX_NODES,
    ) -> SubgraphResult:
        """Same as :meth:`subgraph` but returns the model objects."""
        components, connections, _ = self.load()
        return extract_subgraph(
            components, connections,
            focus=focus, depth=depth, layers=layers,
            classification=classification, max_nodes=max_nodes,
            file_map=self.store.load_file_map(),
        )

    @_guarded(lambda *a, **k: CoverageReport().to_dict())
    def coverage(self) -> QueryResult:
        components, connections, warnings = self.load()
        if warnings:
            return QueryResult(data=CoverageReport().to_dict(), warnings=warnings)
        report = compute_coverage(
            components, connections,
            project_root=self.project_root,
            file_map=self.store.load_file_map(),
        )
        return QueryResult(data=report.to_dict(), warnings=warnings)

    @_guarded(lambda *a, **k: _empty_rules())
    def rules(self) -> QueryResult:
        components, connections, warnings = self.load()
        rules = get_builtin_rules() + load_custom_rules(get_rules_path(self.store.store_dir))
        violations = check_rules(components, connections, rules)
        return QueryResult(
            data={
                "violations": [v.to_dict() for v in violations],
                "summary": summarize_violations(violations),
            },
            warnings=warnings,
        )

    @_guarded(lambda *a, **k: None)
    def impact(self, name: str) -> QueryResult:
        components, connections, warnings = self.load()
        target = resolve_component(name, components, self.store.load_file_map()) if components else None
        if target is None:
            if components:
                warnings.append(self._not_found(name, components))
            return QueryResult(data=None, warnings=warnings)
        return QueryResult(data=compute_impact(target, components, connections).to_dict(), warnings=warnings)

    @_guarded(lambda *a, **k: {})
    def status(self) -> QueryResult:
        status = self.store.get_scan_status()
        status["store_path"] = str(self.store.store_dir)
        status["exists"] = self.store.exists()
        warnings = [] if status["exists"] else [NO_STORE_WARNING]
        if status["exists"]:
            connections = self.store.load_connections()
            status["low_confidence_connections"] = sum(
                1 for c in connections if c.confidence < self.settings.confidence_threshold
            )
            index = self.store.load_index() or {}
            status["components_by_type"] = index.get("stats", {}).get("components_by_type", {})
        return QueryResult(data=status, warnings=warnings)
