"""Tests for content hashing and change detection."""

import hashlib
from pathlib import Path

import pytest

from archgraph.hashing import (
    compute_file_hash,
    compute_file_hashes,
    detect_file_changes,
    format_file_change_summary,
    load_hashes,
    save_hashes,
)
from archgraph.models import FileChangeResult, FileHashRecord


def _write(root: Path, rel: str, text: str) -> None:
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)


class TestHashing:
    """Tests for hashing files."""

    def test_sha256(self, temp_dir: Path):
        _write(temp_dir, "a.py", "print('hi')\n")
        assert compute_file_hash(temp_dir / "a.py") == hashlib.sha256(b"print('hi')\n").hexdigest()

    def test_missing_file_maps_to_none(self, temp_dir: Path):
        _write(temp_dir, "a.py", "x")
        hashes = compute_file_hashes(temp_dir, ["a.py", "gone.py"])
        assert hashes["a.py"].size == 1
        assert hashes["gone.py"] is None

    def test_manifest_round_trip(self, temp_dir: Path):
        _write(temp_dir, "src/a.py", "x = 1\n")
        hashes = compute_file_hashes(temp_dir, ["src/a.py"])
        store = temp_dir / ".archgraph"
        save_hashes(store, temp_dir, hashes)
        loaded = load_hashes(store)
        assert loaded["src/a.py"].hash == hashes["src/a.py"].hash

    def test_no_manifest(self, temp_dir: Path):
        assert load_hashes(temp_dir) is None

    def test_corrupt_manifest(self, temp_dir: Path):
        (temp_dir / "hashes.json").write_text("{broken")
        assert load_hashes(temp_dir) is None

    @pytest.mark.parametrize("text", [
        "[]",
        '{"files": ["a.py"]}',
        '{"files": {"a.py": "deadbeef"}}',
        '{"files": {"a.py": {"hash": "h", "size": "big"}}}',
    ])
    def test_malformed_manifest_means_first_scan(self, temp_dir: Path, text: str):
        (temp_dir / "hashes.json").write_text(text)
        assert load_hashes(temp_dir) is None


class TestChangeDetection:
    """Tests for detect_file_changes."""

    def test_first_scan_everything_added(self):
        current = {"a.py": FileHashRecord("h1", 1, 1), "b.py": FileHashRecord("h2", 1, 1)}
        changes = detect_file_changes(current, None)
        assert changes.added == ["a.py", "b.py"]
        assert not changes.modified and not changes.removed

    def test_classification(self):
        previous = {
            "same.py": FileHashRecord("h1", 1, 1),
            "edit.py": FileHashRecord("h2", 1, 1),
            "gone.py": FileHashRecord("h3", 1, 1),
        }
        current = {
            "same.py": FileHashRecord("h1", 2, 1),
            "edit.py": FileHashRecord("h2b", 2, 1),
            "new.py": FileHashRecord("h4", 2, 1),
        }
        changes = detect_file_changes(current, previous)
        assert changes.unchanged == ["same.py"]
        assert changes.modified == ["edit.py"]
        assert changes.added == ["new.py"]
        assert changes.removed == ["gone.py"]

    def test_unreadable_known_file_is_modified(self):
        previous = {"a.py": FileHashRecord("h1", 1, 1)}
        changes = detect_file_changes({"a.py": None}, previous)
        assert changes.modified == ["a.py"]

    def test_unreadable_new_file_is_skipped(self):
        changes = detect_file_changes({"a.py": None}, {})
        assert changes.to_dict() == {"added": [], "modified": [], "removed": [], "unchanged": []}

    def test_unchanged_tree_has_no_changes(self, temp_dir: Path):
        """Hashing the same bytes twice never reports a change."""
        _write(temp_dir, "a.py", "x = 1\n")
        _write(temp_dir, "b/c.ts", "export const c = 2;\n")
        files = ["a.py", "b/c.ts"]
        first = compute_file_hashes(temp_dir, files)
        save_hashes(temp_dir / "store", temp_dir, first)
        second = compute_file_hashes(temp_dir, files)
        changes = detect_file_changes(second, load_hashes(temp_dir / "store"))
        assert not changes.has_changes
        assert changes.unchanged == files

    def test_edit_is_detected(self, temp_dir: Path):
        _write(temp_dir, "a.py", "x = 1\n")
        first = compute_file_hashes(temp_dir, ["a.py"])
        _write(temp_dir, "a.py", "x = 2\n")
        second = compute_file_hashes(temp_dir, ["a.py"])
        assert detect_file_changes(second, first).modified == ["a.py"]


class TestSummary:
    def test_format(self):
        changes = FileChangeResult(added=["a"], modified=["b", "c"])
        assert format_file_change_summary(changes) == "1 added, 2 modified"
        assert format_file_change_summary(FileChangeResult()) == "No files changed"
