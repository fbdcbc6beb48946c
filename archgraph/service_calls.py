"""Service call detector: external APIs, databases and queues used in code."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Tuple

from .confidence import RawHit
from .detectors import (
    DetectorContext,
    extract_function_name,
    iter_pattern_hits,
    read_text,
    register_detector,
    source_files_for,
)
from .models import FILE_PREFIX, Component, Connection, ScanResult, now_ms

logger = logging.getLogger(__name__)

COMPONENT_CONFIDENCE = 0.9
CONNECTION_CONFIDENCE = 0.85
SNIPPET_LENGTH = 100


@dataclass(frozen=True)
class ServicePattern:
    service_name: str
    component_type: str
    layer: str
    purpose: str
    patterns: Tuple[str, ...]
    import_signature: Tuple[str, ...] = ()
    compiled: Tuple[re.Pattern, ...] = field(init=False, compare=False, repr=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "compiled", tuple(re.compile(p) for p in self.patterns))


SERVICE_PATTERNS: List[ServicePattern] = [
    # AI providers
    ServicePattern(
        service_name="Claude (Anthropic)",
        component_type="llm",
        layer="external",
        purpose="Claude AI API",
        patterns=(
            r"anthropic\.messages\.create",
            r"anthropic\.completions\.create",
            r"\bAnthropic\(",
        ),
        import_signature=(
            r"^\s*(?:from\s+anthropic\s+import|import\s+anthropic)",
            r"['\"]@anthropic-ai/sdk['\"]",
        ),
    ),
    ServicePattern(
        service_name="OpenAI",
        component_type="llm",
        layer="external",
        purpose="OpenAI API",
        patterns=(
            r"openai\.chat\.completions\.create",
            r"\.chat\.completions\.create\(",
            r"openai\.completions\.create",
            r"\bOpenAI\(",
            r"OpenAIApi\(",
        ),
        import_signature=(
            r"^\s*(?:from\s+openai\s+import|import\s+openai)",
            r"['\"]openai['\"]",
        ),
    ),
    # Payments
    ServicePattern(
        service_name="Stripe",
        component_type="service",
        layer="external",
        purpose="Stripe payments",
        patterns=(
            r"stripe\.(?:customers|paymentIntents|subscriptions|invoices|checkout)\.",
            r"stripe\.(?:Customer|PaymentIntent|Subscription|Invoice|checkout)\.",
            r"new Stripe\(",
        ),
        import_signature=(r"^\s*import\s+stripe", r"['\"]stripe['\"]"),
    ),
    # Databases
    ServicePattern(
        service_name="Supabase",
        component_type="database",
        layer="database",
        purpose="Supabase backend",
        patterns=(
            r"supabase\.from\(",
            r"supabase\.table\(",
            r"createClient\(\s*process\.env\.SUPABASE",
            r"supabase\.auth\.",
            r"supabase\.storage\.",
        ),
        import_signature=(r"['\"]@supabase/supabase-js['\"]", r"^\s*from\s+supabase\s+import"),
    ),
    ServicePattern(
        service_name="Firebase",
        component_type="database",
        layer="database",
        purpose="Firebase backend",
        patterns=(
            r"firebase\.firestore\(",
            r"firebase\.auth\(",
            r"initializeApp\(",
            r"getFirestore\(",
        ),
    ),
    # Queues
    ServicePattern(
        service_name="BullMQ",
        component_type="queue",
        layer="queue",
        purpose="BullMQ job queue",
        patterns=(r"new Queue\(", r"new Worker\(", r"Queue\.add\("),
        import_signature=(r"['\"]bullmq['\"]",),
    ),
    ServicePattern(
        service_name="Celery",
        component_type="queue",
        layer="queue",
        purpose="Celery task queue",
        patterns=(
            r"@(?:celery|app|shared)_?task\b",
            r"@celery\.task",
            r"celery\.send_task",
            r"\.delay\(",
            r"\.apply_async\(",
        ),
        import_signature=(r"^\s*(?:from\s+celery\s+import|import\s+celery)",),
    ),
    # Communication
    ServicePattern(
        service_name="Twilio",
        component_type="service",
        layer="external",
        purpose="Twilio SMS/Voice",
        patterns=(r"twilio\.messages\.create", r"new Twilio\(", r"twilio\.calls\."),
        import_signature=(r"^\s*from\s+twilio", r"['\"]twilio['\"]"),
    ),
    ServicePattern(
        service_name="SendGrid",
        component_type="service",
        layer="external",
        purpose="SendGrid email",
        patterns=(r"sgMail\.send\(", r"SendGridAPIClient\(", r"sendgrid\.send\("),
        import_signature=(r"['\"]@sendgrid/mail['\"]", r"^\s*from\s+sendgrid"),
    ),
    # Storage
    ServicePattern(
        service_name="AWS S3",
        component_type="infra",
        layer="infra",
        purpose="AWS S3 storage",
        patterns=(
            r"new S3Client\(",
            r"PutObjectCommand\(",
            r"GetObjectCommand\(",
            r"boto3\.client\(\s*['\"]s3['\"]",
            r"\.put_object\(",
        ),
        import_signature=(r"['\"]@aws-sdk/client-s3['\"]", r"^\s*import\s+boto3", r"^\s*from\s+boto3"),
    ),
]


def _service_component(pattern: ServicePattern, timestamp: int) -> Component:
    return Component.create(
        pattern.service_name,
        pattern.component_type,
        purpose=pattern.purpose,
        layer=pattern.layer,
        critical=True,
        confidence=COMPONENT_CONFIDENCE,
        tags=[pattern.component_type, pattern.layer],
        timestamp=timestamp,
    )


def scan_file_for_services(
    rel: str,
    text: str,
    ctx: DetectorContext,
    patterns: List[ServicePattern] = SERVICE_PATTERNS,
) -> ScanResult:
    """Detect service calls in one file's text.

    The service component is created at most once per file; its stored
    confidence is the best hit seen for that service in this file.
    """
    result = ScanResult()
    timestamp = ctx.timestamp if ctx.timestamp is not None else now_ms()
    engine = ctx.engine
    lines = text.split("\n")
    file_ctx = engine.prepare(rel, lines)
    found: Dict[str, Component] = {}

    for service in patterns:
        for index, regex, match in iter_pattern_hits(lines, service.compiled):
            line = lines[index]
            component_hit = RawHit(
                detector="service-calls",
                pattern=regex.pattern,
                file=rel,
                line=index + 1,
                column=match.start(),
                matched_text=match.group(0),
                line_text=line,
                base_confidence=COMPONENT_CONFIDENCE,
            )
            component_score = engine.evaluate(file_ctx, component_hit, text, service.import_signature)
            if component_score is None:
                continue

            component = found.get(service.service_name)
            if component is None:
                component = _service_component(service, timestamp)
                component.source.confidence = component_score
                found[service.service_name] = component
                result.components.append(component)
            else:
                component.source.confidence = max(component.source.confidence, component_score)

            connection_hit = RawHit(
                detector="service-calls",
                pattern=regex.pattern,
                file=rel,
                line=index + 1,
                column=match.start(),
                matched_text=match.group(0),
                line_text=line,
                base_confidence=CONNECTION_CONFIDENCE,
            )
            connection_score = engine.evaluate(file_ctx, connection_hit, text, service.import_signature)
            if connection_score is None:
                continue

            function_name = extract_function_name(lines, index)
            result.connections.append(Connection.create(
                f"{FILE_PREFIX}{rel}",
                component.component_id,
                "service-call",
                file=rel,
                line=index + 1,
                function=function_name,
                symbol=function_name or f"anonymous_{index + 1}",
                symbol_type="function" if function_name else None,
                snippet=line.strip()[:SNIPPET_LENGTH],
                description=f"Calls {service.service_name}",
                detected_from=f"Pattern: {regex.pattern}",
                confidence=connection_score,
                timestamp=timestamp,
            ))
    return result


@register_detector("service-calls", capability="source")
def scan_service_calls(project_root: Path, ctx: DetectorContext) -> ScanResult:
    """Scan every source file for known service call patterns."""
    result = ScanResult()
    for rel in source_files_for(project_root, ctx):
        text = read_text(project_root / rel, result.warnings, rel)
        if text is None:
            continue
        result.extend(scan_file_for_services(rel, text, ctx))
    return result
