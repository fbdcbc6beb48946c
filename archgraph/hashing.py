"""Content hashing and change detection for incremental scans."""

from __future__ import annotations

import hashlib
import json
import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from . import config
from .models import FileChangeResult, FileHashRecord, now_ms

logger = logging.getLogger(__name__)

HASH_BATCH_SIZE = 100
HASHES_FILENAME = "hashes.json"


def compute_file_hash(path: Path) -> str:
    """SHA-256 hex digest of a file's bytes."""
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(65536), b""):
            digest.update(chunk)
    return digest.hexdigest()


def _hash_one(project_root: Path, rel: str, timestamp: int) -> Tuple[str, Optional[FileHashRecord]]:
    path = project_root / rel
    try:
        return rel, FileHashRecord(
            hash=compute_file_hash(path),
            last_scanned=timestamp,
            size=path.stat().st_size,
        )
    except OSError as exc:
        logger.debug("Cannot hash %s: %s", path, exc)
        return rel, None


def compute_file_hashes(
    project_root: Path,
    files: Iterable[str],
    max_workers: int = config.DEFAULT_MAX_WORKERS,
) -> Dict[str, Optional[FileHashRecord]]:
    """Hash *files* (project-relative) in bounded batches.

    Unreadable files map to ``None`` so callers can tell "gone" from
    "present but unreadable".
    """
    files = list(files)
    timestamp = now_ms()
    hashes: Dict[str, Optional[FileHashRecord]] = {}
    with ThreadPoolExecutor(max_workers=max(1, max_workers)) as pool:
        for start in range(0, len(files), HASH_BATCH_SIZE):
            batch = files[start:start + HASH_BATCH_SIZE]
            for rel, record in pool.map(lambda r: _hash_one(project_root, r, timestamp), batch):
                hashes[rel] = record
    return hashes


def detect_file_changes(
    current: Dict[str, Optional[FileHashRecord]],
    previous: Optional[Dict[str, FileHashRecord]],
) -> FileChangeResult:
    """Classify current files against the previous manifest.

    With no previous manifest every current file is ``added``.  A file
    that was known before but cannot be hashed now counts as
    ``modified``; a file that was unknown and cannot be hashed is
    skipped.
    """
    result = FileChangeResult()
    if previous is None:
        result.added = sorted(rel for rel, record in current.items() if record is not None)
        return result

    for rel in sorted(current):
        record = current[rel]
        before = previous.get(rel)
        if before is None:
            if record is not None:
                result.added.append(rel)
        elif record is None or record.hash != before.hash:
            result.modified.append(rel)
        else:
            result.unchanged.append(rel)

    result.removed = sorted(rel for rel in previous if rel not in current)
    return result


def build_hash_manifest(
    project_root: Path,
    hashes: Dict[str, Optional[FileHashRecord]],
) -> Dict:
    return {
        "version": config.HASH_MANIFEST_VERSION,
        "generatedAt": now_ms(),
        "projectPath": str(project_root),
        "files": {
            rel: record.to_dict()
            for rel, record in sorted(hashes.items())
            if record is not None
        },
    }


def save_hashes(store_dir: Path, project_root: Path, hashes: Dict[str, Optional[FileHashRecord]]) -> Path:
    store_dir.mkdir(parents=True, exist_ok=True)
    path = store_dir / HASHES_FILENAME
    path.write_text(json.dumps(build_hash_manifest(project_root, hashes), indent=2), encoding="utf-8")
    return path


def load_hashes(store_dir: Path) -> Optional[Dict[str, FileHashRecord]]:
    """Previous manifest's file records, or ``None`` on first scan."""
    path = store_dir / HASHES_FILENAME
    if not path.exists():
        return None
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning("Ignoring unreadable hash manifest %s: %s", path, exc)
        return None
    files = payload.get("files") if isinstance(payload, dict) else None
    if not isinstance(files, dict):
        logger.warning("Ignoring malformed hash manifest %s: no 'files' object", path)
        return None
    try:
        return {rel: FileHashRecord.from_dict(record) for rel, record in files.items()}
    except (AttributeError, TypeError, ValueError) as exc:
        logger.warning("Ignoring malformed hash manifest %s: %s", path, exc)
        return None


def format_file_change_summary(changes: FileChangeResult) -> str:
    parts: List[str] = []
    if changes.added:
        parts.append(f"{len(changes.added)} added")
    if changes.modified:
        parts.append(f"{len(changes.modified)} modified")
    if changes.removed:
        parts.append(f"{len(changes.removed)} removed")
    return ", ".join(parts) if parts else "No files changed"
