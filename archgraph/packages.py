"""Package manifest detectors for npm and pip projects."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple

import toml

from .detectors import DetectorContext, read_text, register_detector
from .models import Component, ScanResult, ScanWarning, now_ms

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PackageSignature:
    component_type: str
    layer: str
    purpose: str
    critical: bool


NPM_SIGNATURES: Dict[str, PackageSignature] = {
    # Frontend
    "next": PackageSignature("framework", "frontend", "React framework with SSR", True),
    "react": PackageSignature("package", "frontend", "UI library", True),
    "vue": PackageSignature("framework", "frontend", "Vue.js framework", True),
    "svelte": PackageSignature("framework", "frontend", "Svelte framework", True),
    "@angular/core": PackageSignature("framework", "frontend", "Angular framework", True),
    # Backend
    "express": PackageSignature("framework", "backend", "Node.js web framework", True),
    "fastify": PackageSignature("framework", "backend", "Fast Node.js framework", True),
    "hono": PackageSignature("framework", "backend", "Lightweight web framework", True),
    "koa": PackageSignature("framework", "backend", "Koa web framework", True),
    "@nestjs/core": PackageSignature("framework", "backend", "NestJS framework", True),
    # Databases
    "prisma": PackageSignature("database", "database", "Prisma ORM", True),
    "@prisma/client": PackageSignature("database", "database", "Prisma client", True),
    "drizzle-orm": PackageSignature("database", "database", "Drizzle ORM", True),
    "mongoose": PackageSignature("database", "database", "MongoDB ODM", True),
    "pg": PackageSignature("database", "database", "PostgreSQL client", True),
    "mysql2": PackageSignature("database", "database", "MySQL client", True),
    "@supabase/supabase-js": PackageSignature("service", "database", "Supabase client", True),
    "redis": PackageSignature("database", "database", "Redis client", False),
    "ioredis": PackageSignature("database", "database", "Redis client", False),
    # Queues
    "bullmq": PackageSignature("queue", "queue", "BullMQ job queue", True),
    "bull": PackageSignature("queue", "queue", "Bull job queue", True),
    "@aws-sdk/client-sqs": PackageSignature("queue", "queue", "AWS SQS client", True),
    # External services
    "stripe": PackageSignature("service", "external", "Stripe payments", True),
    "@anthropic-ai/sdk": PackageSignature("llm", "external", "Claude AI SDK", True),
    "openai": PackageSignature("llm", "external", "OpenAI SDK", True),
    "ai": PackageSignature("llm", "external", "Vercel AI SDK", True),
    "twilio": PackageSignature("service", "external", "Twilio SMS/Voice", False),
    "@sendgrid/mail": PackageSignature("service", "external", "SendGrid email", False),
    "nodemailer": PackageSignature("service", "external", "Email sending", False),
    # Infrastructure
    "@aws-sdk/client-s3": PackageSignature("infra", "infra", "AWS S3 storage", False),
    "@vercel/kv": PackageSignature("infra", "infra", "Vercel KV storage", False),
    "@vercel/blob": PackageSignature("infra", "infra", "Vercel Blob storage", False),
}

PYTHON_SIGNATURES: Dict[str, PackageSignature] = {
    # Web frameworks
    "django": PackageSignature("framework", "backend", "Django web framework", True),
    "flask": PackageSignature("framework", "backend", "Flask web framework", True),
    "fastapi": PackageSignature("framework", "backend", "FastAPI framework", True),
    "starlette": PackageSignature("framework", "backend", "Starlette ASGI framework", True),
    "tornado": PackageSignature("framework", "backend", "Tornado async framework", True),
    # Databases
    "sqlalchemy": PackageSignature("database", "database", "SQLAlchemy ORM", True),
    "psycopg2": PackageSignature("database", "database", "PostgreSQL adapter", True),
    "psycopg2-binary": PackageSignature("database", "database", "PostgreSQL adapter", True),
    "psycopg": PackageSignature("database", "database", "PostgreSQL adapter", True),
    "pymongo": PackageSignature("database", "database", "MongoDB driver", True),
    "redis": PackageSignature("database", "database", "Redis client", False),
    "prisma": PackageSignature("database", "database", "Prisma Python client", True),
    "supabase": PackageSignature("service", "database", "Supabase client", True),
    # Queues
    "celery": PackageSignature("queue", "queue", "Celery task queue", True),
    "rq": PackageSignature("queue", "queue", "Redis Queue", True),
    "dramatiq": PackageSignature("queue", "queue", "Dramatiq task queue", True),
    # AI / ML
    "anthropic": PackageSignature("llm", "external", "Claude AI SDK", True),
    "openai": PackageSignature("llm", "external", "OpenAI SDK", True),
    "langchain": PackageSignature("llm", "external", "LangChain framework", True),
    "transformers": PackageSignature("package", "backend", "Hugging Face Transformers", False),
    # External services
    "stripe": PackageSignature("service", "external", "Stripe payments", True),
    "twilio": PackageSignature("service", "external", "Twilio SMS/Voice", False),
    "sendgrid": PackageSignature("service", "external", "SendGrid email", False),
    "boto3": PackageSignature("infra", "infra", "AWS SDK", False),
    "google-cloud-storage": PackageSignature("infra", "infra", "Google Cloud Storage", False),
}

_VERSION_PREFIX_RE = re.compile(r"^[\^~>=<!\s]+")
_REQUIREMENT_RE = re.compile(r"^([a-zA-Z0-9_.-]+)\s*([@<>=!~]+.*)?$")
_EXTRAS_RE = re.compile(r"\[[^\]]*\]")


def clean_version(spec: str) -> Optional[str]:
    """Strip range operators from a version specifier (``^1.2.3`` -> ``1.2.3``)."""
    if not spec:
        return None
    first = spec.split(",")[0].strip()
    cleaned = _VERSION_PREFIX_RE.sub("", first).strip()
    return cleaned or None


def _package_component(
    name: str,
    version: Optional[str],
    category: str,
    manifest: str,
    signatures: Dict[str, PackageSignature],
    ecosystem: str,
    timestamp: int,
) -> Component:
    signature = signatures.get(name.lower())
    component_type = signature.component_type if signature else "package"
    layer = signature.layer if signature else "backend"
    return Component.create(
        name,
        component_type,
        purpose=signature.purpose if signature else f"{ecosystem} package",
        layer=layer,
        critical=signature.critical if signature else category == "core",
        confidence=1.0,
        config_files=[manifest],
        version=version,
        tags=[category, component_type, layer, ecosystem],
        metadata={"ecosystem": ecosystem, "category": category},
        timestamp=timestamp,
    )


# ---------------------------------------------------------------------------
# npm
# ---------------------------------------------------------------------------

@register_detector("npm-packages", capability="npm")
def scan_npm_packages(project_root: Path, ctx: DetectorContext) -> ScanResult:
    """Components for every dependency declared in ``package.json``."""
    result = ScanResult()
    manifest = "package.json"
    text = read_text(project_root / manifest, result.warnings, manifest)
    if text is None:
        return result
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        result.warnings.append(ScanWarning(
            type="parse_error", message=f"Failed to parse package.json: {exc}", file=manifest,
        ))
        return result

    timestamp = ctx.timestamp if ctx.timestamp is not None else now_ms()
    for section, category in (("dependencies", "core"), ("devDependencies", "dev")):
        deps = payload.get(section) or {}
        if not isinstance(deps, dict):
            continue
        for name, version in sorted(deps.items()):
            result.components.append(_package_component(
                name, clean_version(str(version)), category, manifest,
                NPM_SIGNATURES, "npm", timestamp,
            ))
    return result


# ---------------------------------------------------------------------------
# pip
# ---------------------------------------------------------------------------

def parse_requirement_line(line: str) -> Optional[Tuple[str, Optional[str]]]:
    """Parse one ``requirements.txt`` line into ``(name, version)``.

    Comments, option lines (``-r``, ``-e``, ``--index-url``) and URLs
    return ``None``.  Extras and environment markers are dropped.
    """
    line = line.split("#", 1)[0].strip()
    if not line or line.startswith("-") or "://" in line:
        return None
    line = line.split(";", 1)[0].strip()
    line = _EXTRAS_RE.sub("", line)
    match = _REQUIREMENT_RE.match(line)
    if not match:
        return None
    name = match.group(1)
    spec = match.group(2)
    if spec and spec.startswith("@"):
        return name, None
    return name, clean_version(spec) if spec else None


def _requirements_files(project_root: Path) -> List[Path]:
    return sorted(p for p in project_root.glob("requirements*.txt") if p.is_file())


def _iter_pyproject_deps(payload: Dict) -> Iterator[Tuple[str, Optional[str], str]]:
    project = payload.get("project") or {}
    for entry in project.get("dependencies") or []:
        parsed = parse_requirement_line(str(entry))
        if parsed:
            yield parsed[0], parsed[1], "core"
    for extra_deps in (project.get("optional-dependencies") or {}).values():
        for entry in extra_deps or []:
            parsed = parse_requirement_line(str(entry))
            if parsed:
                yield parsed[0], parsed[1], "dev"

    poetry = (payload.get("tool") or {}).get("poetry") or {}
    for section, category in (("dependencies", "core"), ("dev-dependencies", "dev")):
        for name, spec in (poetry.get(section) or {}).items():
            if name.lower() == "python":
                continue
            version = spec.get("version", "") if isinstance(spec, dict) else str(spec)
            yield name, clean_version(version), category


@register_detector("pip-packages", capability="python")
def scan_pip_packages(project_root: Path, ctx: DetectorContext) -> ScanResult:
    """Components for Python dependencies from requirements files and pyproject."""
    result = ScanResult()
    timestamp = ctx.timestamp if ctx.timestamp is not None else now_ms()
    seen: Dict[str, Component] = {}

    def add(name: str, version: Optional[str], category: str, manifest: str) -> None:
        key = name.lower().replace("_", "-")
        if key in seen:
            existing = seen[key]
            if manifest not in existing.source.config_files:
                existing.source.config_files.append(manifest)
            return
        component = _package_component(
            key, version, category, manifest, PYTHON_SIGNATURES, "pip", timestamp,
        )
        seen[key] = component
        result.components.append(component)

    for path in _requirements_files(project_root):
        rel = path.relative_to(project_root).as_posix()
        text = read_text(path, result.warnings, rel)
        if text is None:
            continue
        category = "dev" if "dev" in path.name or "test" in path.name else "core"
        for line in text.splitlines():
            parsed = parse_requirement_line(line)
            if parsed:
                add(parsed[0], parsed[1], category, rel)

    pyproject = project_root / "pyproject.toml"
    if pyproject.is_file():
        text = read_text(pyproject, result.warnings, "pyproject.toml")
        if text is not None:
            try:
                payload = toml.loads(text)
            except toml.TomlDecodeError as exc:
                result.warnings.append(ScanWarning(
                    type="parse_error", message=f"Failed to parse pyproject.toml: {exc}",
                    file="pyproject.toml",
                ))
            else:
                for name, version, category in _iter_pyproject_deps(payload):
                    add(name, version, category, "pyproject.toml")
    return result
