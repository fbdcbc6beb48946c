"""Scan orchestration: detectors -> confidence filter -> graph store."""

from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from .classify import classify_all_connections
from .confidence import ConfidenceConfig, merge_confidence
from .config_manager import ArchGraphSettings, get_settings, get_store_path
from .detectors import DetectorContext, DetectorSpec, iter_source_files, run_detectors
from .hashing import compute_file_hashes, detect_file_changes, load_hashes, save_hashes
from .models import (
    FILE_PREFIX,
    Component,
    Connection,
    FileChangeResult,
    ScanWarning,
    now_ms,
)
from .storage import ArchitectureStore

logger = logging.getLogger(__name__)


@dataclass
class ScanOptions:
    incremental: bool = False
    clear_first: bool = False
    snapshot: bool = False
    max_workers: Optional[int] = None
    confidence: Optional[ConfidenceConfig] = None
    detectors: Optional[Sequence[DetectorSpec]] = None


@dataclass
class ScanStats:
    scan_duration_ms: int = 0
    components_found: int = 0
    connections_found: int = 0
    warnings_count: int = 0
    files_scanned: int = 0
    files_changed: int = 0
    records_written: int = 0
    skipped: bool = False

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


@dataclass
class ScanReport:
    stats: ScanStats
    store_path: Path
    changes: FileChangeResult
    warnings: List[ScanWarning] = field(default_factory=list)
    snapshot_id: Optional[str] = None


def deduplicate_components(components: Sequence[Component]) -> List[Component]:
    """One component per ID; confidence is the max seen, files/tags are unioned."""
    merged: Dict[str, Component] = {}
    for comp in components:
        existing = merged.get(comp.component_id)
        if existing is None:
            merged[comp.component_id] = comp
            continue
        if comp.source.confidence > existing.source.confidence:
            comp.source.config_files = list(dict.fromkeys(existing.source.config_files + comp.source.config_files))
            comp.tags = list(dict.fromkeys(existing.tags + comp.tags))
            merged[comp.component_id] = comp
        else:
            existing.source.config_files = list(dict.fromkeys(existing.source.config_files + comp.source.config_files))
            existing.tags = list(dict.fromkeys(existing.tags + comp.tags))
            existing.source.confidence = merge_confidence(existing.source.confidence, comp.source.confidence)
            if existing.version is None and comp.version:
                existing.version = comp.version
    return list(merged.values())


def deduplicate_connections(connections: Sequence[Connection]) -> List[Connection]:
    merged: Dict[str, Connection] = {}
    for conn in connections:
        existing = merged.get(conn.connection_id)
        if existing is None or conn.confidence > existing.confidence:
            merged[conn.connection_id] = conn
    return list(merged.values())


class Scanner:
    """Run a full or incremental scan of one project."""

    def __init__(
        self,
        project_root: Path,
        store_dir: Optional[Path] = None,
        settings: Optional[ArchGraphSettings] = None,
    ) -> None:
        self.project_root = Path(project_root).resolve()
        self.settings = settings or get_settings()
        self.store_dir = Path(store_dir) if store_dir else get_store_path(self.project_root, self.settings)
        self.store = ArchitectureStore(self.store_dir, self.project_root)

    def scan(self, options: Optional[ScanOptions] = None) -> ScanReport:
        options = options or ScanOptions()
        started = time.monotonic()
        workers = options.max_workers or self.settings.max_workers
        confidence = options.confidence or ConfidenceConfig(floor=self.settings.confidence_floor)
        stats = ScanStats()

        # Phase 0: file discovery and change detection
        source_files = list(iter_source_files(self.project_root, exclude=self.settings.exclude))
        stats.files_scanned = len(source_files)
        hashes = compute_file_hashes(self.project_root, source_files, workers)
        previous = None if options.clear_first else load_hashes(self.store_dir)
        changes = detect_file_changes(hashes, previous)
        stats.files_changed = changes.changed_count
        logger.info("Discovered %d source files (%d changed)", len(source_files), changes.changed_count)

        if options.incremental and previous is not None and not changes.has_changes and self.store.exists():
            stats.skipped = True
            stats.scan_duration_ms = int((time.monotonic() - started) * 1000)
            logger.info("No files changed since last scan; skipping")
            return ScanReport(stats=stats, store_path=self.store_dir, changes=changes)

        if options.clear_first:
            self.store.clear()

        # Phases 1-3: detectors
        ctx = DetectorContext(
            confidence=confidence,
            exclude=self.settings.exclude,
            timestamp=now_ms(),
            source_files=source_files,
        )
        result = run_detectors(self.project_root, options.detectors, ctx, workers)

        # Phase 4: merge, filter, classify, store
        components = [
            c for c in deduplicate_components(result.components)
            if c.source.confidence >= confidence.floor
        ]
        component_ids = {c.component_id for c in components}
        connections: List[Connection] = []
        for conn in deduplicate_connections(result.connections):
            if conn.confidence < confidence.floor:
                continue
            dangling = [
                ref for ref in (conn.from_id, conn.to_id)
                if ref not in component_ids and not ref.startswith(FILE_PREFIX)
            ]
            if dangling:
                logger.debug("Dropping %s: unknown endpoint %s", conn.connection_id, dangling[0])
                continue
            connections.append(conn)

        semantics = classify_all_connections(connections, components)
        for conn in connections:
            conn.semantic = semantics.get(conn.connection_id)

        components.sort(key=lambda c: c.component_id)
        connections.sort(key=lambda c: c.connection_id)
        self.store.ensure_dirs()
        stats.records_written = self.store.store_components(components) + self.store.store_connections(connections)
        self.store.store_prompts(components)

        all_components = self.store.load_components()
        all_connections = self.store.load_connections()
        self.store.rebuild_all(all_components, all_connections)

        snapshot_id = None
        if options.snapshot:
            snapshot_id = self.store.create_snapshot(all_components, all_connections)["snapshot_id"]

        # Phase 5: remember hashes for the next incremental run
        save_hashes(self.store_dir, self.project_root, hashes)

        stats.components_found = len(components)
        stats.connections_found = len(connections)
        stats.warnings_count = len(result.warnings)
        stats.scan_duration_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            "Scan complete: %d components, %d connections, %d warnings",
            stats.components_found, stats.connections_found, stats.warnings_count,
        )
        return ScanReport(
            stats=stats,
            store_path=self.store_dir,
            changes=changes,
            warnings=result.warnings,
            snapshot_id=snapshot_id,
        )


def scan(
    project_root: Path,
    options: Optional[ScanOptions] = None,
    store_dir: Optional[Path] = None,
    settings: Optional[ArchGraphSettings] = None,
) -> ScanReport:
    """Convenience wrapper around :class:`Scanner`."""
    return Scanner(project_root, store_dir=store_dir, settings=settings).scan(options)
