"""Detector registry and shared helpers for file enumeration.

A detector is a plain function ``(project_root, ctx) -> ScanResult``.
Detectors are registered once, in order, into :data:`DETECTORS`; the
runner executes every applicable detector independently so one failing
detector never aborts the others.
"""

from __future__ import annotations

import logging
import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Set, Tuple

from . import config
from .confidence import DEFAULT_CONFIDENCE, ConfidenceConfig, ConfidenceEngine
from .models import ScanResult, ScanWarning

logger = logging.getLogger(__name__)


@dataclass
class DetectorContext:
    """Read-only inputs shared by all detectors in one scan."""

    confidence: ConfidenceConfig = DEFAULT_CONFIDENCE
    exclude: Sequence[str] = ()
    timestamp: Optional[int] = None
    source_files: Optional[List[str]] = None

    @property
    def engine(self) -> ConfidenceEngine:
        return ConfidenceEngine(self.confidence)


DetectorFunc = Callable[[Path, DetectorContext], ScanResult]


@dataclass(frozen=True)
class DetectorSpec:
    name: str
    capability: str
    func: DetectorFunc = field(compare=False)


# ---------------------------------------------------------------------------
# Capabilities
# ---------------------------------------------------------------------------

_PYTHON_MANIFESTS = ("requirements.txt", "pyproject.toml", "setup.py", "Pipfile")

CAPABILITIES: Dict[str, Callable[[Path], bool]] = {
    "source": lambda root: True,
    "infra": lambda root: True,
    "npm": lambda root: (root / "package.json").is_file(),
    "python": lambda root: any((root / name).is_file() for name in _PYTHON_MANIFESTS)
    or any(root.glob("requirements*.txt")),
}


def has_capability(project_root: Path, capability: str) -> bool:
    check = CAPABILITIES.get(capability)
    if check is None:
        logger.warning("Unknown detector capability %r", capability)
        return False
    return check(project_root)


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

DETECTORS: List[DetectorSpec] = []


def register_detector(name: str, capability: str = "source") -> Callable[[DetectorFunc], DetectorFunc]:
    """Decorator adding a detector function to :data:`DETECTORS`."""

    def decorator(func: DetectorFunc) -> DetectorFunc:
        if any(spec.name == name for spec in DETECTORS):
            raise ValueError(f"Detector '{name}' is already registered")
        DETECTORS.append(DetectorSpec(name=name, capability=capability, func=func))
        return func

    return decorator


def default_detectors() -> List[DetectorSpec]:
    """Registry contents after importing the built-in detector modules."""
    from . import infrastructure, packages, prompts, service_calls  # noqa: F401

    return list(DETECTORS)


def _run_one(spec: DetectorSpec, project_root: Path, ctx: DetectorContext) -> ScanResult:
    try:
        result = spec.func(project_root, ctx)
        if not isinstance(result, ScanResult):
            raise TypeError(f"returned {type(result).__name__}, expected ScanResult")
    except Exception as exc:
        logger.warning("Detector '%s' failed: %s", spec.name, exc)
        return ScanResult(warnings=[
            ScanWarning(type="detector_error", message=f"{spec.name}: {exc}"),
        ])
    logger.debug(
        "Detector '%s': %d components, %d connections",
        spec.name, len(result.components), len(result.connections),
    )
    return result


def run_detectors(
    project_root: Path,
    detectors: Optional[Sequence[DetectorSpec]] = None,
    ctx: Optional[DetectorContext] = None,
    max_workers: int = config.DEFAULT_MAX_WORKERS,
) -> ScanResult:
    """Run every applicable detector and merge their results.

    Each detector writes into its own result buffer; buffers are merged
    in registry order after all workers finish, so the output does not
    depend on scheduling.
    """
    detectors = default_detectors() if detectors is None else list(detectors)
    ctx = ctx or DetectorContext()
    applicable = [spec for spec in detectors if has_capability(project_root, spec.capability)]

    merged = ScanResult()
    if not applicable:
        return merged

    with ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(applicable)))) as pool:
        futures = [pool.submit(_run_one, spec, project_root, ctx) for spec in applicable]
        for future in futures:
            merged.extend(future.result())
    return merged


# ---------------------------------------------------------------------------
# File helpers
# ---------------------------------------------------------------------------

def _is_excluded(parts: Tuple[str, ...], extra: Set[str], skip_fixtures: bool) -> bool:
    for part in parts[:-1]:
        if part in config.EXCLUDED_DIRS or part in extra:
            return True
        if skip_fixtures and part in config.FIXTURE_DIRS:
            return True
    return False


def iter_source_files(
    project_root: Path,
    extensions: Iterable[str] = config.SCAN_EXTENSIONS,
    exclude: Sequence[str] = (),
    skip_fixtures: bool = True,
) -> Iterator[str]:
    """Yield project-relative POSIX paths of source files, sorted."""
    exts = {e.lower() for e in extensions}
    extra = set(exclude)
    found: List[str] = []
    for path in project_root.rglob("*"):
        if path.suffix.lower() not in exts:
            continue
        rel = path.relative_to(project_root)
        if _is_excluded(rel.parts, extra, skip_fixtures):
            continue
        if not path.is_file():
            continue
        found.append(rel.as_posix())
    yield from sorted(found)


def source_files_for(project_root: Path, ctx: DetectorContext) -> List[str]:
    if ctx.source_files is not None:
        return ctx.source_files
    return list(iter_source_files(project_root, exclude=ctx.exclude))


def read_text(path: Path, warnings: List[ScanWarning], rel: Optional[str] = None) -> Optional[str]:
    """Read a file as UTF-8; on failure record a warning and return None."""
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        logger.debug("Skipping unreadable file %s: %s", path, exc)
        warnings.append(ScanWarning(type="read_error", message=str(exc), file=rel or str(path)))
        return None


_FUNCTION_PATTERNS = (
    re.compile(r"(?:async\s+)?def\s+(\w+)\s*\("),
    re.compile(r"(?:async\s+)?function\s*\*?\s*(\w+)\s*\("),
    re.compile(r"(?:const|let|var)\s+(\w+)\s*=\s*(?:async\s*)?(?:function\b|\([^)]*\)\s*=>|\w+\s*=>)"),
    re.compile(r"^\s*(?:public\s+|private\s+|protected\s+|static\s+)*(?:async\s+)?(\w+)\s*\([^)]*\)\s*(?::\s*[\w<>\[\], |]+)?\s*\{"),
)
_NOT_FUNCTIONS = {"if", "for", "while", "switch", "catch", "return", "with", "elif"}


def extract_function_name(lines: Sequence[str], index: int, lookback: int = 20) -> Optional[str]:
    """Name of the closest enclosing function definition above *index*."""
    for i in range(index, max(-1, index - lookback - 1), -1):
        line = lines[i]
        for pattern in _FUNCTION_PATTERNS:
            match = pattern.search(line)
            if match and match.group(1) not in _NOT_FUNCTIONS:
                return match.group(1)
    return None


def iter_pattern_hits(lines: Sequence[str], patterns: Sequence[re.Pattern]) -> Iterator[Tuple[int, re.Pattern, re.Match]]:
    """First matching pattern per line, as ``(index, pattern, match)``."""
    for index, line in enumerate(lines):
        for pattern in patterns:
            match = pattern.search(line)
            if match:
                yield index, pattern, match
                break
