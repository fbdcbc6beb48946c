"""Tests for the confidence engine."""

import pytest

from archgraph.confidence import (
    POSITION_CODE,
    POSITION_COMMENT,
    POSITION_EXAMPLE,
    POSITION_STRING,
    ROLE_DOCS,
    ROLE_GENERATED,
    ROLE_SOURCE,
    ROLE_STRUCTURED,
    ConfidenceConfig,
    ConfidenceEngine,
    RawHit,
    accept,
    classify_position,
    comment_style,
    file_role,
    merge_confidence,
    score_hit,
)


def _hit(file: str, line_text: str, matched: str, base: float = 0.9, line: int = 1) -> RawHit:
    return RawHit(
        detector="test",
        pattern=matched,
        file=file,
        line=line,
        column=line_text.index(matched),
        matched_text=matched,
        line_text=line_text,
        base_confidence=base,
    )


def _position(path: str, lines, index: int, matched: str) -> str:
    column = lines[index].index(matched)
    return classify_position(lines, index, column, matched, comment_style(path))


class TestFileRole:
    """Tests for path-based file roles."""

    @pytest.mark.parametrize("path,role", [
        ("src/server.py", ROLE_SOURCE),
        ("README.md", ROLE_DOCS),
        ("docs/guide/setup.ts", ROLE_DOCS),
        ("types/api.d.ts", ROLE_GENERATED),
        ("proto/user_pb2.py", ROLE_GENERATED),
        ("src/__generated__/schema.ts", ROLE_GENERATED),
        ("config/app.yaml", ROLE_STRUCTURED),
        ("package.json", ROLE_STRUCTURED),
    ])
    def test_roles(self, path, role):
        assert file_role(path) == role


class TestPosition:
    """Tests for comment, string and example detection."""

    def test_code(self):
        lines = ["client = Anthropic()"]
        assert _position("a.py", lines, 0, "Anthropic(") == POSITION_CODE

    def test_hash_comment(self):
        lines = ["# client = Anthropic()"]
        assert _position("a.py", lines, 0, "Anthropic(") == POSITION_COMMENT

    def test_slash_comment(self):
        lines = ["const x = 1; // openai.chat.completions.create(...)"]
        assert _position("a.ts", lines, 0, "openai.chat") == POSITION_COMMENT

    def test_block_comment_spans_lines(self):
        """A hit inside a multi-line /* */ block is a comment."""
        lines = ["/*", " * stripe.customers.create(", " */", "run();"]
        assert _position("a.ts", lines, 1, "stripe.customers") == POSITION_COMMENT

    def test_hash_is_not_a_comment_in_js(self):
        """'#' only starts a comment for hash-comment languages."""
        lines = ["const el = '#root'; stripe.customers.list()"]
        assert _position("a.js", lines, 0, "stripe.customers") == POSITION_CODE

    def test_plain_string(self):
        lines = ['label = "powered by Anthropic today"']
        assert _position("a.py", lines, 0, "Anthropic") == POSITION_STRING

    def test_example_string_with_call_syntax(self):
        """Call syntax inside a string literal reads as a code sample."""
        lines = ['HELP = "use stripe.customers.create(name) to add one"']
        assert _position("a.py", lines, 0, "stripe.customers") == POSITION_EXAMPLE

    def test_example_key(self):
        lines = ['  example: "supabase.from"']
        assert _position("a.ts", lines, 0, "supabase.from") == POSITION_EXAMPLE

    def test_python_docstring(self):
        """Text inside a triple-quoted block is a string, not code."""
        lines = ['"""', "Talks to the Anthropic API.", '"""', "x = 1"]
        assert _position("a.py", lines, 1, "Anthropic") == POSITION_STRING


class TestScoring:
    """Tests for score_hit and accept."""

    def test_code_hit_keeps_base(self):
        hit = _hit("src/a.py", "client = Anthropic()", "Anthropic(")
        assert score_hit(hit, POSITION_CODE, "client = Anthropic()") == 0.9

    def test_comment_scores_zero(self):
        hit = _hit("src/a.py", "# Anthropic()", "Anthropic(")
        assert score_hit(hit, POSITION_COMMENT, "") == 0.0

    def test_example_scores_zero(self):
        hit = _hit("src/a.py", "x = 'Anthropic()'", "Anthropic(")
        assert score_hit(hit, POSITION_EXAMPLE, "") == 0.0

    def test_string_penalty(self):
        hit = _hit("src/a.py", "x = 'Anthropic'", "Anthropic")
        assert score_hit(hit, POSITION_STRING, "") == pytest.approx(0.6)

    def test_docs_penalty(self):
        hit = _hit("docs/usage.md", "Anthropic()", "Anthropic(")
        assert score_hit(hit, POSITION_CODE, "") == pytest.approx(0.5)

    def test_missing_import_penalty(self):
        """A signature that the file does not satisfy costs 0.2."""
        text = "client = Anthropic()"
        hit = _hit("src/a.py", text, "Anthropic(")
        assert score_hit(hit, POSITION_CODE, text, [r"^from anthropic import"]) == pytest.approx(0.7)

    def test_import_present(self):
        text = "from anthropic import Anthropic\nclient = Anthropic()"
        hit = _hit("src/a.py", "client = Anthropic()", "Anthropic(", line=2)
        assert score_hit(hit, POSITION_CODE, text, [r"^from anthropic import"]) == pytest.approx(0.9)

    def test_penalties_clamp_at_zero(self):
        cfg = ConfidenceConfig(string_penalty=1.0)
        hit = _hit("docs/a.md", "'x'", "x", base=0.5)
        assert score_hit(hit, POSITION_STRING, "", cfg=cfg) == 0.0

    def test_floor(self):
        assert accept(0.5)
        assert not accept(0.49)
        assert not accept(0.0, ConfidenceConfig(floor=0.0))

    def test_merge_never_decreases(self):
        assert merge_confidence(0.9, 0.6) == 0.9
        assert merge_confidence(0.6, 0.9) == 0.9


class TestEngine:
    """Tests for ConfidenceEngine.evaluate."""

    def test_drops_comment_hits(self):
        engine = ConfidenceEngine()
        lines = ["# Anthropic()"]
        ctx = engine.prepare("a.py", lines)
        assert engine.evaluate(ctx, _hit("a.py", lines[0], "Anthropic("), lines[0]) is None

    def test_custom_floor(self):
        """Raising the floor rejects hits the default would keep."""
        lines = ["x = 'Anthropic'"]
        hit = _hit("a.py", lines[0], "Anthropic")
        default = ConfidenceEngine()
        strict = ConfidenceEngine(ConfidenceConfig(floor=0.8))
        assert default.evaluate(default.prepare("a.py", lines), hit, lines[0]) == pytest.approx(0.6)
        assert strict.evaluate(strict.prepare("a.py", lines), hit, lines[0]) is None
