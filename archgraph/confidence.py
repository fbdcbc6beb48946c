"""Confidence scoring shared by every detector.

A raw pattern hit goes through three adjustments before it may become a
component or connection:

1. Position in the line: hits inside comments or example/snippet strings
   are discarded, hits inside ordinary string literals are penalized.
2. File role: documentation, generated and structured-config files carry
   a fixed penalty.
3. Import corroboration: detectors that know how a service is normally
   imported are penalized when the file lacks that import.

The result is clamped to ``[0, 1]`` and anything under the floor is
dropped.  All knobs live on :class:`ConfidenceConfig` so callers (and
tests) can pass their own values.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Iterable, List, Optional, Sequence

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ConfidenceConfig:
    floor: float = 0.5
    string_penalty: float = 0.3
    docs_penalty: float = 0.4
    generated_penalty: float = 0.3
    structured_config_penalty: float = 0.1
    missing_import_penalty: float = 0.2


DEFAULT_CONFIDENCE = ConfidenceConfig()

POSITION_CODE = "code"
POSITION_COMMENT = "comment"
POSITION_STRING = "string"
POSITION_EXAMPLE = "example"

ROLE_SOURCE = "source"
ROLE_DOCS = "docs"
ROLE_GENERATED = "generated"
ROLE_STRUCTURED = "structured-config"


@dataclass
class RawHit:
    """A single regex match reported by a detector, before scoring."""

    detector: str
    pattern: str
    file: str
    line: int  # 1-based
    column: int  # 0-based offset of the match in the line
    matched_text: str
    line_text: str
    base_confidence: float


# ---------------------------------------------------------------------------
# File roles
# ---------------------------------------------------------------------------

_DOC_EXTS = {".md", ".mdx", ".rst", ".txt", ".adoc"}
_DOC_DIRS = {"docs", "doc", "documentation"}
_GENERATED_SUFFIXES = (".d.ts", ".min.js", ".min.css", ".map", "_pb2.py", ".pb.go")
_GENERATED_DIRS = {"generated", "__generated__", ".generated"}
_STRUCTURED_EXTS = {".json", ".yaml", ".yml", ".toml"}
_HASH_COMMENT_EXTS = {".py", ".rb", ".yaml", ".yml", ".toml", ".sh", ".cfg", ".ini"}


def file_role(path: str) -> str:
    """Classify a file by what it is for, judged from its path only."""
    posix = PurePosixPath(path.replace("\\", "/").lower())
    name = posix.name
    parts = set(posix.parts[:-1])

    if name.endswith(_GENERATED_SUFFIXES) or ".generated." in name or parts & _GENERATED_DIRS:
        return ROLE_GENERATED
    if posix.suffix in _DOC_EXTS or parts & _DOC_DIRS:
        return ROLE_DOCS
    if posix.suffix in _STRUCTURED_EXTS:
        return ROLE_STRUCTURED
    return ROLE_SOURCE


def file_role_penalty(path: str, cfg: ConfidenceConfig = DEFAULT_CONFIDENCE) -> float:
    role = file_role(path)
    if role == ROLE_DOCS:
        return cfg.docs_penalty
    if role == ROLE_GENERATED:
        return cfg.generated_penalty
    if role == ROLE_STRUCTURED:
        return cfg.structured_config_penalty
    return 0.0


# ---------------------------------------------------------------------------
# Position in line
# ---------------------------------------------------------------------------

_EXAMPLE_KEY_RE = re.compile(r"\b(?:examples?|snippets?|samples?|usage|demo)\b['\"]?\s*[:=]", re.IGNORECASE)
_CALL_SYNTAX_RE = re.compile(r"[\w$.]+\s*\(")


@dataclass(frozen=True)
class CommentStyle:
    hash_comments: bool
    slash_comments: bool
    triple_quotes: bool
    template_strings: bool


def comment_style(path: str) -> CommentStyle:
    suffix = PurePosixPath(path.replace("\\", "/").lower()).suffix
    if suffix in _HASH_COMMENT_EXTS:
        return CommentStyle(
            hash_comments=True,
            slash_comments=False,
            triple_quotes=suffix == ".py",
            template_strings=False,
        )
    return CommentStyle(hash_comments=False, slash_comments=True, triple_quotes=False, template_strings=True)


def _scan_line(line: str, state: Optional[str], style: CommentStyle, column: Optional[int] = None):
    """Walk *line* starting in *state*.

    *state* is ``None`` (plain code) or the open delimiter carried over
    from a previous line: ``/*``, a triple quote or a backtick.

    Returns ``(position_at_column, end_state)``.  ``position_at_column``
    is ``None`` when *column* is ``None``.
    """
    position: Optional[str] = None
    quote: Optional[str] = state if state == "`" else None
    if quote:
        state = None
    i = 0
    n = len(line)

    while i < n:
        if column is not None and position is None and i >= column:
            if state == "/*":
                position = POSITION_COMMENT
            elif state or quote:
                position = POSITION_STRING
            else:
                position = POSITION_CODE

        ch = line[i]
        if state == "/*":
            if line.startswith("*/", i):
                state = None
                i += 2
                continue
        elif state in ('"""', "'''"):
            if line.startswith(state, i):
                state = None
                i += 3
                continue
            if ch == "\\":
                i += 2
                continue
        elif quote:
            if ch == "\\":
                i += 2
                continue
            if ch == quote:
                quote = None
        else:
            if (style.slash_comments and line.startswith("//", i)) or (style.hash_comments and ch == "#"):
                if column is not None and position is None:
                    position = POSITION_COMMENT
                break
            if style.slash_comments and line.startswith("/*", i):
                state = "/*"
                i += 2
                continue
            if style.triple_quotes and (line.startswith('"""', i) or line.startswith("'''", i)):
                state = line[i:i + 3]
                i += 3
                continue
            if ch in ("'", '"') or (ch == "`" and style.template_strings):
                quote = ch
        i += 1

    if column is not None and position is None:
        if state == "/*":
            position = POSITION_COMMENT
        elif state or quote:
            position = POSITION_STRING
        else:
            position = POSITION_CODE

    if quote == "`":
        return position, "`"
    return position, state


def line_start_states(lines: Sequence[str], style: CommentStyle) -> List[Optional[str]]:
    """Open-delimiter state at the start of each line."""
    states: List[Optional[str]] = []
    state: Optional[str] = None
    for line in lines:
        states.append(state)
        _, state = _scan_line(line, state, style)
    return states


def _string_tail(line: str, column: int) -> str:
    """Text from *column* up to the next quote character on the line."""
    match = re.search(r"['\"`]", line[column:])
    return line[column:column + match.start()] if match else line[column:]


def _looks_like_example(lines: Sequence[str], index: int, column: int, matched_text: str) -> bool:
    window = lines[max(0, index - 1):index + 1]
    if any(_EXAMPLE_KEY_RE.search(text) for text in window):
        return True
    literal = matched_text + _string_tail(lines[index], column + len(matched_text))
    return bool(_CALL_SYNTAX_RE.search(literal))


def classify_position(
    lines: Sequence[str],
    index: int,
    column: int,
    matched_text: str,
    style: CommentStyle,
    start_states: Optional[Sequence[Optional[str]]] = None,
) -> str:
    """Return where a match sits: code, comment, string or example."""
    if start_states is None:
        start_states = line_start_states(lines[:index + 1], style)
    position, _ = _scan_line(lines[index], start_states[index], style, column)
    if position == POSITION_STRING and _looks_like_example(lines, index, column, matched_text):
        return POSITION_EXAMPLE
    return position or POSITION_CODE


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------


def has_import(file_text: str, import_signature: Iterable[str]) -> bool:
    return any(re.search(sig, file_text, re.MULTILINE) for sig in import_signature)


def score_hit(
    hit: RawHit,
    position: str,
    file_text: str,
    import_signature: Optional[Sequence[str]] = None,
    cfg: ConfidenceConfig = DEFAULT_CONFIDENCE,
) -> float:
    """Final confidence for *hit*; 0.0 means discarded outright."""
    if position in (POSITION_COMMENT, POSITION_EXAMPLE):
        return 0.0

    score = hit.base_confidence
    if position == POSITION_STRING:
        score -= cfg.string_penalty
    score -= file_role_penalty(hit.file, cfg)
    # Detectors without a signature are not penalized
    if import_signature and not has_import(file_text, import_signature):
        score -= cfg.missing_import_penalty
    return round(min(1.0, max(0.0, score)), 4)


def accept(score: float, cfg: ConfidenceConfig = DEFAULT_CONFIDENCE) -> bool:
    return score > 0.0 and score >= cfg.floor


def merge_confidence(current: float, observed: float) -> float:
    """Stored confidence never decreases on re-detection."""
    return max(current, observed)


class ConfidenceEngine:
    """Per-file scoring helper used by line-oriented detectors.

    Computing block-comment state is linear in the file, so the engine
    caches it per file and scores any number of hits against it.
    """

    def __init__(self, cfg: ConfidenceConfig = DEFAULT_CONFIDENCE) -> None:
        self.cfg = cfg

    def prepare(self, path: str, lines: Sequence[str]) -> "FileContext":
        style = comment_style(path)
        return FileContext(path, lines, style, line_start_states(lines, style))

    def evaluate(
        self,
        ctx: "FileContext",
        hit: RawHit,
        file_text: str,
        import_signature: Optional[Sequence[str]] = None,
    ) -> Optional[float]:
        """Score *hit*; ``None`` when it falls below the floor."""
        position = classify_position(
            ctx.lines, hit.line - 1, hit.column, hit.matched_text, ctx.style, ctx.start_states,
        )
        score = score_hit(hit, position, file_text, import_signature, self.cfg)
        return score if accept(score, self.cfg) else None


@dataclass
class FileContext:
    path: str
    lines: Sequence[str]
    style: CommentStyle
    start_states: Sequence[Optional[str]]
