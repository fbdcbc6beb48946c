"""Prompt detector: locates AI prompt definitions and where they are used."""

from __future__ import annotations

import logging
import re
from pathlib import Path, PurePosixPath
from typing import Dict, List, Optional, Sequence, Tuple

from .confidence import RawHit, has_import
from .detectors import (
    DetectorContext,
    extract_function_name,
    read_text,
    register_detector,
    source_files_for,
)
from .models import FILE_PREFIX, Component, Connection, ScanResult, now_ms
from .service_calls import SERVICE_PATTERNS

logger = logging.getLogger(__name__)

PROMPT_CONFIDENCE = 0.8
LOCATION_CONFIDENCE = 0.75
USAGE_CONFIDENCE = 0.7
MAX_PROMPT_CHARS = 4000

# (kind, pattern); the first group, when present, is the prompt variable name
PROMPT_PATTERNS: List[Tuple[str, re.Pattern]] = [
    ("assignment", re.compile(
        r"\b(system_prompt|SYSTEM_PROMPT|[A-Za-z_]\w*_PROMPT|[a-z_]\w*[Pp]rompt)\s*[:=]\s*(?:[fr]?(?:\"\"\"|'''|[`'\"]))"
    )),
    ("assignment", re.compile(r"\b(prompt)\s*[:=]\s*(?:[fr]?(?:\"\"\"|'''|[`'\"]))")),
    ("message", re.compile(r"[\"']?role[\"']?\s*:\s*[\"'](?:system|user|assistant)[\"']")),
    ("content", re.compile(r"\bcontent\s*:\s*[`'\"][^`'\"]{50,}")),
]

_CONTENT_RE = re.compile(r"[\"']?content[\"']?\s*[:=]\s*[fr]?(\"\"\"|'''|[`'\"])")
_OPEN_QUOTE_RE = re.compile(r"[fr]?(\"\"\"|'''|[`'\"])")


def _read_literal(lines: Sequence[str], index: int, start: int, quote: str) -> str:
    """Collect a string literal opened at ``lines[index][start:]``."""
    multiline = quote in ('"""', "'''", "`")
    chunks: List[str] = []
    i = index
    text = lines[index][start:]
    while True:
        end = text.find(quote)
        while end > 0 and text[end - 1] == "\\" and len(quote) == 1:
            end = text.find(quote, end + 1)
        if end >= 0:
            chunks.append(text[:end])
            break
        chunks.append(text)
        i += 1
        if not multiline or i >= len(lines) or sum(len(c) for c in chunks) > MAX_PROMPT_CHARS:
            break
        text = lines[i]
    return "\n".join(chunks)[:MAX_PROMPT_CHARS]


def extract_prompt_text(lines: Sequence[str], index: int, match_end: int, kind: str) -> str:
    """Best-effort prompt body for a hit on ``lines[index]``."""
    if kind == "message":
        for i in range(max(0, index - 2), min(len(lines), index + 4)):
            content = _CONTENT_RE.search(lines[i])
            if content:
                return _read_literal(lines, i, content.end(), content.group(1)).strip()
        return ""
    line = lines[index]
    if kind == "content":
        content = _CONTENT_RE.search(line)
        if content:
            return _read_literal(lines, index, content.end(), content.group(1)).strip()
        return ""
    opener = _OPEN_QUOTE_RE.search(line, max(0, match_end - 4))
    if not opener:
        return ""
    return _read_literal(lines, index, opener.end(), opener.group(1)).strip()


def extract_prompt_name(lines: Sequence[str], index: int, rel: str, variable: Optional[str]) -> str:
    if variable and variable.lower() != "prompt":
        return variable
    function = extract_function_name(lines, index, lookback=5)
    if function:
        return f"{function}_prompt"
    return f"{PurePosixPath(rel).stem}_prompt_L{index + 1}"


def _llm_ids_for_file(text: str) -> List[str]:
    ids: List[str] = []
    for service in SERVICE_PATTERNS:
        if service.component_type != "llm":
            continue
        if has_import(text, service.import_signature) or any(p.search(text) for p in service.compiled):
            ids.append(Component.create(service.service_name, service.component_type).component_id)
    return ids


def scan_file_for_prompts(rel: str, text: str, ctx: DetectorContext) -> ScanResult:
    result = ScanResult()
    timestamp = ctx.timestamp if ctx.timestamp is not None else now_ms()
    engine = ctx.engine
    lines = text.split("\n")
    file_ctx = engine.prepare(rel, lines)
    prompts: Dict[str, Component] = {}
    llm_ids: Optional[List[str]] = None

    for index, line in enumerate(lines):
        for kind, pattern in PROMPT_PATTERNS:
            match = pattern.search(line)
            if not match:
                continue
            hit = RawHit(
                detector="prompts",
                pattern=pattern.pattern,
                file=rel,
                line=index + 1,
                column=match.start(),
                matched_text=match.group(0),
                line_text=line,
                base_confidence=PROMPT_CONFIDENCE,
            )
            score = engine.evaluate(file_ctx, hit, text)
            if score is None:
                break

            variable = match.group(1) if pattern.groups else None
            name = extract_prompt_name(lines, index, rel, variable)
            body = extract_prompt_text(lines, index, match.end(), kind)
            function = extract_function_name(lines, index)

            component = prompts.get(name)
            if component is None:
                component = Component.create(
                    name,
                    "prompt",
                    purpose="AI prompt definition",
                    layer="backend",
                    critical=True,
                    confidence=score,
                    config_files=[rel],
                    tags=["prompt", "ai"],
                    metadata={
                        "prompt": body,
                        "kind": kind,
                        "file": rel,
                        "line": index + 1,
                        "function": function,
                    },
                    timestamp=timestamp,
                )
                prompts[name] = component
                result.components.append(component)
            else:
                component.source.confidence = max(component.source.confidence, score)
                if body and body not in component.metadata.get("prompt", ""):
                    joined = "\n\n".join(p for p in (component.metadata.get("prompt"), body) if p)
                    component.metadata["prompt"] = joined[:MAX_PROMPT_CHARS]

            location_score = min(score, LOCATION_CONFIDENCE)
            if location_score >= ctx.confidence.floor:
                result.connections.append(Connection.create(
                    f"{FILE_PREFIX}{rel}",
                    component.component_id,
                    "prompt-location",
                    file=rel,
                    line=index + 1,
                    function=function,
                    symbol=name,
                    symbol_type="variable",
                    snippet=line.strip()[:100],
                    description=f"Prompt defined: {name}",
                    detected_from="Prompt pattern detection",
                    confidence=location_score,
                    timestamp=timestamp,
                ))
            break

    if prompts:
        llm_ids = _llm_ids_for_file(text)
    for component in prompts.values():
        for llm_id in llm_ids or []:
            result.connections.append(Connection.create(
                component.component_id,
                llm_id,
                "prompt-usage",
                file=rel,
                line=component.metadata.get("line"),
                symbol=component.name,
                description=f"{component.name} is sent to an LLM",
                detected_from="Prompt and LLM call in the same file",
                confidence=min(component.source.confidence, USAGE_CONFIDENCE),
                timestamp=timestamp,
            ))
    return result


@register_detector("prompts", capability="source")
def scan_prompts(project_root: Path, ctx: DetectorContext) -> ScanResult:
    """Scan source files for prompt definitions."""
    result = ScanResult()
    for rel in source_files_for(project_root, ctx):
        text = read_text(project_root / rel, result.warnings, rel)
        if text is None:
            continue
        result.extend(scan_file_for_prompts(rel, text, ctx))
    return result

