"""Core data models shared by detectors, the graph store and queries."""

from __future__ import annotations

import hashlib
import re
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

COMPONENT_TYPES = (
    "package", "framework", "service", "database", "queue", "llm",
    "prompt", "infra", "file", "other",
)
LAYERS = ("frontend", "backend", "database", "queue", "infra", "external", "shared")
STATUSES = ("active", "outdated", "deprecated", "vulnerable", "unused", "removed")
CONNECTION_TYPES = (
    "service-call", "imports", "observes", "conforms-to", "stores",
    "requires-entitlement", "prompt-location", "prompt-usage", "hosts", "other",
)
CLASSIFICATIONS = (
    "production", "test", "admin", "analytics", "dev-only", "migration", "unknown",
)

FILE_PREFIX = "FILE:"

_ID_SAFE_RE = re.compile(r"[^a-z0-9]+")
_FRONTEND_EXTS = (".tsx", ".jsx", ".vue", ".svelte")
_FRONTEND_DIRS = ("components/", "pages/", "app/")


def now_ms() -> int:
    return int(time.time() * 1000)


def normalize_name(name: str) -> str:
    return " ".join(name.strip().lower().split())


def generate_component_id(component_type: str, name: str) -> str:
    """Deterministic component ID derived from ``(type, normalized name)``.

    The readable middle part is truncated; uniqueness comes from the
    sha256 suffix over the full normalized name.
    """
    normalized = normalize_name(name)
    readable = _ID_SAFE_RE.sub("_", normalized).strip("_")[:20] or "unnamed"
    digest = hashlib.sha256(f"{component_type}|{normalized}".encode("utf-8")).hexdigest()
    return f"COMP_{component_type}_{readable}_{digest[:10]}"


def generate_connection_id(
    connection_type: str,
    from_id: str,
    to_id: str,
    file: str = "",
    line: Optional[int] = None,
    symbol: str = "",
) -> str:
    raw = "|".join([connection_type, from_id, to_id, file or "", str(line or ""), symbol or ""])
    digest = hashlib.sha256(raw.encode("utf-8")).hexdigest()
    return f"CONN_{connection_type.replace('-', '_')}_{digest[:16]}"


def _drop_none(payload: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in payload.items() if v is not None}


def _section(payload: Dict[str, Any], key: str) -> Dict[str, Any]:
    """Nested object at *key*; anything but an object or null is a malformed record."""
    if not isinstance(payload, dict):
        raise TypeError(f"record must be an object, got {type(payload).__name__}")
    value = payload.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"'{key}' must be an object, got {type(value).__name__}")
    return value


# ===================================================================
# Components
# ===================================================================

@dataclass
class ComponentRole:
    purpose: str = ""
    layer: str = "backend"
    critical: bool = False


@dataclass
class ComponentSource:
    detection_method: str = "auto"
    config_files: List[str] = field(default_factory=list)
    confidence: float = 1.0


@dataclass
class Component:
    component_id: str
    name: str
    type: str
    role: ComponentRole = field(default_factory=ComponentRole)
    source: ComponentSource = field(default_factory=ComponentSource)
    version: Optional[str] = None
    status: str = "active"
    tags: List[str] = field(default_factory=list)
    timestamp: int = 0
    last_updated: int = 0
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def create(
        cls,
        name: str,
        component_type: str,
        *,
        purpose: str = "",
        layer: str = "backend",
        critical: bool = False,
        confidence: float = 1.0,
        config_files: Optional[List[str]] = None,
        version: Optional[str] = None,
        tags: Optional[List[str]] = None,
        metadata: Optional[Dict[str, Any]] = None,
        detection_method: str = "auto",
        timestamp: Optional[int] = None,
    ) -> "Component":
        ts = timestamp if timestamp is not None else now_ms()
        return cls(
            component_id=generate_component_id(component_type, name),
            name=name,
            type=component_type,
            role=ComponentRole(purpose=purpose, layer=layer, critical=critical),
            source=ComponentSource(
                detection_method=detection_method,
                config_files=list(config_files or []),
                confidence=confidence,
            ),
            version=version,
            tags=list(tags or []),
            timestamp=ts,
            last_updated=ts,
            metadata=dict(metadata or {}),
        )

    @property
    def layer(self) -> str:
        return self.role.layer

    @property
    def confidence(self) -> float:
        return self.source.confidence

    @property
    def is_synthetic(self) -> bool:
        return bool(self.metadata.get("synthetic"))

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none({
            "component_id": self.component_id,
            "name": self.name,
            "type": self.type,
            "role": {
                "purpose": self.role.purpose,
                "layer": self.role.layer,
                "critical": self.role.critical,
            },
            "source": {
                "detection_method": self.source.detection_method,
                "config_files": list(self.source.config_files),
                "confidence": self.source.confidence,
            },
            "version": self.version,
            "status": self.status,
            "tags": list(self.tags),
            "timestamp": self.timestamp,
            "last_updated": self.last_updated,
            "metadata": dict(self.metadata) if self.metadata else None,
        })

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "Component":
        role = _section(payload, "role")
        source = _section(payload, "source")
        return cls(
            component_id=payload["component_id"],
            name=payload["name"],
            type=payload.get("type", "other"),
            role=ComponentRole(
                purpose=role.get("purpose", ""),
                layer=role.get("layer", "backend"),
                critical=bool(role.get("critical", False)),
            ),
            source=ComponentSource(
                detection_method=source.get("detection_method", "auto"),
                config_files=list(source.get("config_files") or []),
                confidence=float(source.get("confidence", 1.0)),
            ),
            version=payload.get("version"),
            status=payload.get("status", "active"),
            tags=list(payload.get("tags") or []),
            timestamp=int(payload.get("timestamp", 0)),
            last_updated=int(payload.get("last_updated", 0)),
            metadata=dict(_section(payload, "metadata")),
        )


def infer_file_layer(path: str) -> str:
    lower = path.replace("\\", "/").lower()
    if lower.endswith(_FRONTEND_EXTS):
        return "frontend"
    if any(lower.startswith(d) or f"/{d}" in lower for d in _FRONTEND_DIRS):
        return "frontend"
    return "backend"


def synthetic_file_component(component_id: str) -> Component:
    """Materialize a ``FILE:<path>`` endpoint as a throwaway file component.

    Synthetic components exist only inside query results and are never
    written to the store.
    """
    path = component_id[len(FILE_PREFIX):] if component_id.startswith(FILE_PREFIX) else component_id
    return Component(
        component_id=component_id,
        name=path,
        type="file",
        role=ComponentRole(purpose="Source file", layer=infer_file_layer(path), critical=False),
        source=ComponentSource(detection_method="synthetic", config_files=[path], confidence=1.0),
        metadata={"synthetic": True},
    )


# ===================================================================
# Connections
# ===================================================================

@dataclass
class CodeLocation:
    file: str
    line: Optional[int] = None
    function: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none({"file": self.file, "line": self.line, "function": self.function})

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "CodeLocation":
        return cls(file=payload.get("file", ""), line=payload.get("line"), function=payload.get("function"))


@dataclass
class ComponentRef:
    component_id: str
    location: Optional[CodeLocation] = None

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none({
            "component_id": self.component_id,
            "location": self.location.to_dict() if self.location else None,
        })

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "ComponentRef":
        location = _section(payload, "location")
        return cls(
            component_id=payload["component_id"],
            location=CodeLocation.from_dict(location) if location else None,
        )


@dataclass
class CodeReference:
    file: str
    symbol: str = ""
    symbol_type: Optional[str] = None
    line_start: Optional[int] = None
    line_end: Optional[int] = None
    code_snippet: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none({
            "file": self.file,
            "symbol": self.symbol,
            "symbol_type": self.symbol_type,
            "line_start": self.line_start,
            "line_end": self.line_end,
            "code_snippet": self.code_snippet,
        })

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "CodeReference":
        return cls(
            file=payload.get("file", ""),
            symbol=payload.get("symbol", ""),
            symbol_type=payload.get("symbol_type"),
            line_start=payload.get("line_start"),
            line_end=payload.get("line_end"),
            code_snippet=payload.get("code_snippet"),
        )


@dataclass
class SemanticInfo:
    classification: str = "unknown"
    confidence: float = 0.5


@dataclass
class Connection:
    connection_id: str
    from_ref: ComponentRef
    to_ref: ComponentRef
    connection_type: str
    code_reference: Optional[CodeReference] = None
    description: str = ""
    detected_from: str = ""
    confidence: float = 1.0
    semantic: Optional[SemanticInfo] = None
    timestamp: int = 0
    last_verified: int = 0

    @classmethod
    def create(
        cls,
        from_id: str,
        to_id: str,
        connection_type: str,
        *,
        file: str = "",
        line: Optional[int] = None,
        function: Optional[str] = None,
        symbol: str = "",
        symbol_type: Optional[str] = None,
        snippet: Optional[str] = None,
        description: str = "",
        detected_from: str = "",
        confidence: float = 1.0,
        timestamp: Optional[int] = None,
    ) -> "Connection":
        ts = timestamp if timestamp is not None else now_ms()
        location = CodeLocation(file=file, line=line, function=function) if file else None
        return cls(
            connection_id=generate_connection_id(connection_type, from_id, to_id, file, line, symbol),
            from_ref=ComponentRef(component_id=from_id, location=location),
            to_ref=ComponentRef(component_id=to_id),
            connection_type=connection_type,
            code_reference=CodeReference(
                file=file,
                symbol=symbol,
                symbol_type=symbol_type,
                line_start=line,
                code_snippet=snippet,
            ) if file else None,
            description=description,
            detected_from=detected_from,
            confidence=confidence,
            timestamp=ts,
            last_verified=ts,
        )

    @property
    def from_id(self) -> str:
        return self.from_ref.component_id

    @property
    def to_id(self) -> str:
        return self.to_ref.component_id

    @property
    def classification(self) -> Optional[str]:
        return self.semantic.classification if self.semantic else None

    @property
    def file(self) -> Optional[str]:
        if self.code_reference and self.code_reference.file:
            return self.code_reference.file
        if self.from_ref.location:
            return self.from_ref.location.file
        return None

    @property
    def line(self) -> Optional[int]:
        if self.code_reference and self.code_reference.line_start:
            return self.code_reference.line_start
        if self.from_ref.location:
            return self.from_ref.location.line
        return None

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none({
            "connection_id": self.connection_id,
            "from": self.from_ref.to_dict(),
            "to": self.to_ref.to_dict(),
            "connection_type": self.connection_type,
            "code_reference": self.code_reference.to_dict() if self.code_reference else None,
            "description": self.description,
            "detected_from": self.detected_from,
            "confidence": self.confidence,
            "semantic": {
                "classification": self.semantic.classification,
                "confidence": self.semantic.confidence,
            } if self.semantic else None,
            "timestamp": self.timestamp,
            "last_verified": self.last_verified,
        })

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "Connection":
        code_ref = _section(payload, "code_reference")
        semantic = _section(payload, "semantic")
        return cls(
            connection_id=payload["connection_id"],
            from_ref=ComponentRef.from_dict(_section(payload, "from")),
            to_ref=ComponentRef.from_dict(_section(payload, "to")),
            connection_type=payload.get("connection_type", "other"),
            code_reference=CodeReference.from_dict(code_ref) if code_ref else None,
            description=payload.get("description", ""),
            detected_from=payload.get("detected_from", ""),
            confidence=float(payload.get("confidence", 1.0)),
            semantic=SemanticInfo(
                classification=semantic.get("classification", "unknown"),
                confidence=float(semantic.get("confidence", 0.5)),
            ) if semantic else None,
            timestamp=int(payload.get("timestamp", 0)),
            last_verified=int(payload.get("last_verified", 0)),
        )


def compact_component(component: Component) -> Dict[str, Any]:
    """Small dict form used in query results."""
    return _drop_none({
        "id": component.component_id,
        "name": component.name,
        "type": component.type,
        "layer": component.role.layer,
        "status": component.status,
        "version": component.version,
    })


def compact_connection(connection: Connection) -> Dict[str, Any]:
    return _drop_none({
        "id": connection.connection_id,
        "type": connection.connection_type,
        "from": connection.from_id,
        "to": connection.to_id,
        "file": connection.file,
        "line": connection.line,
        "symbol": connection.code_reference.symbol if connection.code_reference else None,
        "classification": connection.classification,
    })


# ===================================================================
# Scan results
# ===================================================================

@dataclass
class ScanWarning:
    type: str
    message: str
    file: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none({"type": self.type, "message": self.message, "file": self.file})


@dataclass
class ScanResult:
    components: List[Component] = field(default_factory=list)
    connections: List[Connection] = field(default_factory=list)
    warnings: List[ScanWarning] = field(default_factory=list)

    def extend(self, other: "ScanResult") -> None:
        self.components.extend(other.components)
        self.connections.extend(other.connections)
        self.warnings.extend(other.warnings)


@dataclass
class FileHashRecord:
    hash: str
    last_scanned: int
    size: int

    def to_dict(self) -> Dict[str, Any]:
        return {"hash": self.hash, "lastScanned": self.last_scanned, "size": self.size}

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "FileHashRecord":
        return cls(
            hash=payload.get("hash", ""),
            last_scanned=int(payload.get("lastScanned", 0)),
            size=int(payload.get("size", 0)),
        )


@dataclass
class FileChangeResult:
    added: List[str] = field(default_factory=list)
    modified: List[str] = field(default_factory=list)
    removed: List[str] = field(default_factory=list)
    unchanged: List[str] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return bool(self.added or self.modified or self.removed)

    @property
    def changed_count(self) -> int:
        return len(self.added) + len(self.modified) + len(self.removed)

    def to_dict(self) -> Dict[str, List[str]]:
        return {
            "added": list(self.added),
            "modified": list(self.modified),
            "removed": list(self.removed),
            "unchanged": list(self.unchanged),
        }
