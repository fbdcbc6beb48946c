"""Infrastructure detector: deployment, CI and IaC signature files."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Tuple

from .detectors import DetectorContext, register_detector
from .models import Component, ScanResult, ScanWarning, now_ms

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InfraSignature:
    name: str
    files: Tuple[str, ...]
    purpose: str
    env_vars: Tuple[str, ...] = ()


INFRA_SIGNATURES: List[InfraSignature] = [
    # Deployment platforms
    InfraSignature("Railway", ("railway.toml", "railway.json", ".railway"), "Railway deployment", ("RAILWAY_ENVIRONMENT",)),
    InfraSignature("Vercel", ("vercel.json", ".vercel"), "Vercel deployment", ("VERCEL",)),
    InfraSignature("Netlify", ("netlify.toml", ".netlify"), "Netlify deployment"),
    InfraSignature("Heroku", ("Procfile", "app.json", "heroku.yml"), "Heroku deployment"),
    InfraSignature("Fly.io", ("fly.toml",), "Fly.io deployment"),
    InfraSignature("Render", ("render.yaml",), "Render deployment"),
    # Containers
    InfraSignature("Docker", ("Dockerfile", "docker-compose.yml", "docker-compose.yaml", ".dockerignore"), "Container runtime"),
    InfraSignature("Kubernetes", ("k8s", "kubernetes", "helm"), "Container orchestration"),
    # CI/CD
    InfraSignature("GitHub Actions", (".github/workflows",), "CI/CD pipelines"),
    InfraSignature("GitLab CI", (".gitlab-ci.yml",), "CI/CD pipelines"),
    InfraSignature("CircleCI", (".circleci/config.yml",), "CI/CD pipelines"),
    # Serverless / IaC
    InfraSignature("Serverless Framework", ("serverless.yml", "serverless.yaml"), "Serverless deployment"),
    InfraSignature("AWS SAM", ("sam.yaml", "template.yaml"), "AWS serverless application"),
    InfraSignature("AWS CDK", ("cdk.json",), "AWS infrastructure as code"),
    InfraSignature("Terraform", ("main.tf", "terraform.tf", ".terraform", "*.tf"), "Infrastructure as code"),
    InfraSignature("Pulumi", ("Pulumi.yaml",), "Infrastructure as code"),
]


def detect_signature(project_root: Path, signature: InfraSignature) -> List[str]:
    """Config files (or ``ENV:<var>`` markers) proving *signature* is present."""
    found: List[str] = []
    for entry in signature.files:
        if entry.startswith("*"):
            suffix = entry[1:]
            try:
                found.extend(sorted(p.name for p in project_root.iterdir() if p.name.endswith(suffix)))
            except OSError as exc:
                logger.debug("Cannot list %s: %s", project_root, exc)
        elif (project_root / entry).exists():
            found.append(entry)

    if found:
        return list(dict.fromkeys(found))
    for env_var in signature.env_vars:
        if os.environ.get(env_var):
            return [f"ENV:{env_var}"]
    return []


@register_detector("infrastructure", capability="infra")
def scan_infrastructure(project_root: Path, ctx: DetectorContext) -> ScanResult:
    result = ScanResult()
    timestamp = ctx.timestamp if ctx.timestamp is not None else now_ms()
    for signature in INFRA_SIGNATURES:
        try:
            config_files = detect_signature(project_root, signature)
        except OSError as exc:
            result.warnings.append(ScanWarning(type="read_error", message=f"{signature.name}: {exc}"))
            continue
        if not config_files:
            continue
        result.components.append(Component.create(
            signature.name,
            "infra",
            purpose=signature.purpose,
            layer="infra",
            critical=True,
            confidence=1.0,
            config_files=config_files,
            tags=["infra", signature.name.lower()],
            timestamp=timestamp,
        ))
    return result
