"""Architecture coverage and confidence reporting."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from . import config
from .detectors import iter_source_files
from .models import Component, Connection

logger = logging.getLogger(__name__)

HIGH_CONFIDENCE = 0.8
LOW_CONFIDENCE = 0.5
UNMAPPED_SAMPLE = 20
CONNECTION_WEIGHT = 0.6
COVERAGE_WEIGHT = 0.4
GAPS_SHOWN_PER_TYPE = 10

NO_OUTGOING_EXEMPT_LAYERS = {"database", "external"}


@dataclass
class CoverageGap:
    type: str
    target: str
    message: str

    def to_dict(self) -> Dict[str, str]:
        return {"type": self.type, "target": self.target, "message": self.message}


@dataclass
class CoverageReport:
    overall_confidence: float = 0.0
    total_files_in_project: int = 0
    files_mapped_to_components: int = 0
    coverage_percent: int = 0
    total_connections: int = 0
    by_confidence: Dict[str, int] = field(default_factory=lambda: {"high": 0, "medium": 0, "low": 0})
    by_classification: Dict[str, int] = field(default_factory=dict)
    gaps: List[CoverageGap] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "overall_confidence": self.overall_confidence,
            "component_coverage": {
                "total_files_in_project": self.total_files_in_project,
                "files_mapped_to_components": self.files_mapped_to_components,
                "coverage_percent": self.coverage_percent,
            },
            "connection_coverage": {
                "total_connections": self.total_connections,
                "by_confidence": dict(self.by_confidence),
                "by_classification": dict(self.by_classification),
            },
            "gaps": [g.to_dict() for g in self.gaps],
        }


def discover_project_files(project_root: Optional[Path]) -> List[str]:
    if project_root is None or not Path(project_root).is_dir():
        return []
    return list(iter_source_files(Path(project_root), config.COVERAGE_EXTENSIONS, skip_fixtures=False))


def compute_coverage(
    components: Sequence[Component],
    connections: Sequence[Connection],
    project_root: Optional[Path] = None,
    file_map: Optional[Dict[str, str]] = None,
    project_files: Optional[Sequence[str]] = None,
) -> CoverageReport:
    """Build the coverage report.

    Only project source files present in *file_map* count as mapped, so
    the coverage ratio never exceeds 1.  ``overall_confidence`` blends
    mean connection confidence (60%) with file coverage (40%) and is 0
    for a graph without connections.
    """
    files = list(project_files) if project_files is not None else discover_project_files(project_root)
    mapped_keys = {path.lower() for path in (file_map or {})}
    mapped = [path for path in files if path.lower() in mapped_keys]
    coverage_ratio = len(mapped) / len(files) if files else 0.0

    report = CoverageReport(
        total_files_in_project=len(files),
        files_mapped_to_components=len(mapped),
        coverage_percent=int(round(coverage_ratio * 100)),
        total_connections=len(connections),
    )

    for conn in connections:
        if conn.confidence >= HIGH_CONFIDENCE:
            report.by_confidence["high"] += 1
        elif conn.confidence >= LOW_CONFIDENCE:
            report.by_confidence["medium"] += 1
        else:
            report.by_confidence["low"] += 1
        label = conn.classification or "unclassified"
        report.by_classification[label] = report.by_classification.get(label, 0) + 1

    # Gaps
    if file_map is not None:
        unmapped = [path for path in files if path.lower() not in mapped_keys]
        for path in unmapped[:UNMAPPED_SAMPLE]:
            report.gaps.append(CoverageGap("unmapped-file", path, f"{path} is not tracked by any component"))

    incoming: Dict[str, int] = {}
    outgoing: Dict[str, int] = {}
    for conn in connections:
        incoming[conn.to_id] = incoming.get(conn.to_id, 0) + 1
        outgoing[conn.from_id] = outgoing.get(conn.from_id, 0) + 1

    for comp in components:
        if comp.role.layer != "external" and not incoming.get(comp.component_id):
            report.gaps.append(CoverageGap(
                "zero-consumers", comp.name, f"{comp.name} has 0 incoming connections",
            ))
    for comp in components:
        if comp.role.layer not in NO_OUTGOING_EXEMPT_LAYERS and not outgoing.get(comp.component_id):
            report.gaps.append(CoverageGap(
                "no-outgoing", comp.name, f"{comp.name} has 0 outgoing connections",
            ))
    for conn in connections:
        if conn.confidence < LOW_CONFIDENCE:
            report.gaps.append(CoverageGap(
                "low-confidence-connection",
                conn.connection_id,
                f"Connection {conn.from_id} -> {conn.to_id} has low confidence ({conn.confidence})",
            ))

    if connections:
        mean_confidence = sum(c.confidence for c in connections) / len(connections)
        overall = CONNECTION_WEIGHT * mean_confidence + COVERAGE_WEIGHT * coverage_ratio
        report.overall_confidence = round(min(1.0, max(0.0, overall)), 2)
    logger.debug(
        "Coverage: %d/%d files mapped, overall %.2f",
        report.files_mapped_to_components, report.total_files_in_project, report.overall_confidence,
    )
    return report


def format_coverage_output(report: CoverageReport, gaps_only: bool = False) -> str:
    lines: List[str] = []
    if not gaps_only:
        lines.extend([
            "Architecture coverage report",
            "",
            f"Overall confidence: {round(report.overall_confidence * 100)}%",
            "",
            "FILE COVERAGE:",
            f"  Project files: {report.total_files_in_project}",
            f"  Mapped to components: {report.files_mapped_to_components}",
            f"  Coverage: {report.coverage_percent}%",
            "",
            "CONNECTION CONFIDENCE:",
            f"  High (>=0.8): {report.by_confidence['high']}",
            f"  Medium (0.5-0.8): {report.by_confidence['medium']}",
            f"  Low (<0.5): {report.by_confidence['low']}",
        ])
        if report.by_classification:
            lines.append("")
            lines.append("BY CLASSIFICATION:")
            for label, count in report.by_classification.items():
                lines.append(f"  {label}: {count}")
        lines.append("")

    if not report.gaps:
        lines.append("No coverage gaps detected.")
        return "\n".join(lines)

    lines.append(f"GAPS ({len(report.gaps)}):")
    grouped: Dict[str, List[CoverageGap]] = {}
    for gap in report.gaps:
        grouped.setdefault(gap.type, []).append(gap)
    for gap_type, gaps in grouped.items():
        lines.append(f"  {gap_type} ({len(gaps)}):")
        for gap in gaps[:GAPS_SHOWN_PER_TYPE]:
            lines.append(f"    - {gap.message}")
        if len(gaps) > GAPS_SHOWN_PER_TYPE:
            lines.append(f"    ... and {len(gaps) - GAPS_SHOWN_PER_TYPE} more")
    return "\n".join(lines)
