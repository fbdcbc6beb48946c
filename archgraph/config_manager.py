"""Configuration manager for ArchGraph using TOML files."""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import toml

from . import config

logger = logging.getLogger(__name__)


CONFIG_FILE = config.BASE_DIR / "config.toml"

STORAGE_MODES = ("local", "shared")

# Default configuration, one table per TOML section
DEFAULT_CONFIG: Dict[str, Dict[str, Any]] = {
    "storage": {
        "mode": "local",
        "path": "",
    },
    "scan": {
        "confidence_floor": config.DEFAULT_CONFIDENCE_FLOOR,
        "max_workers": config.DEFAULT_MAX_WORKERS,
        "exclude": [],
    },
    "query": {
        "confidence_threshold": config.DEFAULT_CONFIDENCE_THRESHOLD,
        "max_results": config.DEFAULT_MAX_RESULTS,
    },
}

# Environment overrides: variable -> (section, key, caster)
ENV_OVERRIDES = {
    "ARCHGRAPH_MODE": ("storage", "mode", str),
    "ARCHGRAPH_PATH": ("storage", "path", str),
    "ARCHGRAPH_CONFIDENCE": ("query", "confidence_threshold", float),
    "ARCHGRAPH_MAX_RESULTS": ("query", "max_results", int),
    "ARCHGRAPH_WORKERS": ("scan", "max_workers", int),
}


@dataclass
class ArchGraphSettings:
    mode: str = "local"
    storage_path: str = ""
    confidence_floor: float = config.DEFAULT_CONFIDENCE_FLOOR
    confidence_threshold: float = config.DEFAULT_CONFIDENCE_THRESHOLD
    max_results: int = config.DEFAULT_MAX_RESULTS
    max_workers: int = config.DEFAULT_MAX_WORKERS
    exclude: List[str] = field(default_factory=list)


def load_full_config() -> Dict[str, Any]:
    """Load the entire TOML config (all sections)."""
    if not CONFIG_FILE.exists():
        return {}
    try:
        with open(CONFIG_FILE, "r", encoding="utf-8") as f:
            return toml.load(f)
    except (OSError, toml.TomlDecodeError) as exc:
        logger.warning("Ignoring unreadable config file %s: %s", CONFIG_FILE, exc)
        return {}


def _save_full_config(payload: Dict[str, Any]) -> bool:
    """Write entire config dict to TOML file, preserving all sections."""
    CONFIG_FILE.parent.mkdir(parents=True, exist_ok=True)
    try:
        with open(CONFIG_FILE, "w", encoding="utf-8") as f:
            toml.dump(payload, f)
        return True
    except OSError as exc:
        logger.warning("Failed to write config file %s: %s", CONFIG_FILE, exc)
        return False


def _cast_value(section: str, key: str, raw: Any) -> Any:
    default = DEFAULT_CONFIG.get(section, {}).get(key)
    if isinstance(default, bool):
        return str(raw).lower() in ("1", "true", "yes", "on")
    if isinstance(default, int):
        return int(raw)
    if isinstance(default, float):
        return float(raw)
    if isinstance(default, list):
        if isinstance(raw, list):
            return raw
        return [part.strip() for part in str(raw).split(",") if part.strip()]
    return raw


def save_config_value(section: str, key: str, value: Any) -> bool:
    """Set ``[section].key`` in the TOML file.

    Values are cast to the type of the built-in default so that
    ``archgraph config set query max_results 50`` stores an integer.

    Raises:
        KeyError: if the section/key pair is unknown.
        ValueError: if the value cannot be cast.
    """
    if section not in DEFAULT_CONFIG or key not in DEFAULT_CONFIG[section]:
        raise KeyError(f"{section}.{key}")
    cast = _cast_value(section, key, value)
    if section == "storage" and key == "mode" and cast not in STORAGE_MODES:
        raise ValueError(f"mode must be one of: {', '.join(STORAGE_MODES)}")

    payload = load_full_config()
    payload.setdefault(section, {})[key] = cast
    return _save_full_config(payload)


def unset_config_value(section: str, key: str) -> bool:
    """Remove ``[section].key`` from the TOML file, restoring the default."""
    payload = load_full_config()
    if key not in payload.get(section, {}):
        return False
    del payload[section][key]
    if not payload[section]:
        del payload[section]
    return _save_full_config(payload)


def get_effective_config() -> Dict[str, Dict[str, Any]]:
    """Defaults, overlaid by the TOML file, overlaid by the environment."""
    merged: Dict[str, Dict[str, Any]] = {
        section: dict(values) for section, values in DEFAULT_CONFIG.items()
    }
    for section, values in load_full_config().items():
        if section in merged and isinstance(values, dict):
            merged[section].update(values)

    for env_var, (section, key, caster) in ENV_OVERRIDES.items():
        raw = os.environ.get(env_var)
        if raw is None or raw == "":
            continue
        try:
            merged[section][key] = caster(raw)
        except ValueError:
            logger.warning("Ignoring invalid %s=%r", env_var, raw)
    return merged


def _setting(merged: Dict[str, Dict[str, Any]], section: str, key: str, caster: Callable[[Any], Any]) -> Any:
    """``merged[section][key]`` cast with *caster*, or the built-in default if it will not cast."""
    value = merged[section].get(key)
    try:
        return caster(value)
    except (TypeError, ValueError):
        logger.warning("Ignoring invalid %s.%s=%r", section, key, value)
        return caster(DEFAULT_CONFIG[section][key])


def get_settings() -> ArchGraphSettings:
    """Resolve the effective settings for this process."""
    merged = get_effective_config()
    mode = merged["storage"]["mode"]
    if mode not in STORAGE_MODES:
        logger.warning("Unknown storage mode %r, falling back to 'local'", mode)
        mode = "local"
    exclude = merged["scan"].get("exclude") or []
    if not isinstance(exclude, list):
        logger.warning("Ignoring invalid scan.exclude=%r", exclude)
        exclude = []

    return ArchGraphSettings(
        mode=mode,
        storage_path=merged["storage"].get("path") or "",
        confidence_floor=_setting(merged, "scan", "confidence_floor", float),
        confidence_threshold=_setting(merged, "query", "confidence_threshold", float),
        max_results=_setting(merged, "query", "max_results", int),
        max_workers=max(1, _setting(merged, "scan", "max_workers", int)),
        exclude=[str(pattern) for pattern in exclude],
    )


def project_slug(project_root: Path) -> str:
    """Directory-safe project name used for shared-mode storage."""
    return re.sub(r"[^A-Za-z0-9_.-]", "_", project_root.resolve().name) or "project"


def get_store_path(project_root: Path, settings: Optional[ArchGraphSettings] = None) -> Path:
    """Return the architecture store directory for *project_root*.

    Local mode keeps the store inside the project (``.archgraph/``);
    shared mode keeps it under ``$ARCHGRAPH_HOME/projects/<name>``.
    An explicit storage path always wins.
    """
    settings = settings or get_settings()
    if settings.storage_path:
        return Path(settings.storage_path).expanduser()
    if settings.mode == "shared":
        return config.SHARED_STORE_DIR / project_slug(project_root)
    return project_root / config.LOCAL_STORE_DIRNAME


def get_rules_path(store_dir: Path) -> Path:
    return store_dir / "rules.json"
