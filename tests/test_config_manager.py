"""Tests for TOML configuration and store location."""

from pathlib import Path

import pytest

from archgraph import config, config_manager
from archgraph.config_manager import (
    ArchGraphSettings,
    get_settings,
    get_store_path,
    load_full_config,
    save_config_value,
    unset_config_value,
)


class TestConfigFile:
    """Tests for reading and writing config.toml."""

    def test_defaults(self):
        settings = get_settings()
        assert settings.mode == "local"
        assert settings.confidence_floor == config.DEFAULT_CONFIDENCE_FLOOR
        assert settings.max_results == config.DEFAULT_MAX_RESULTS

    def test_values_are_cast(self):
        assert save_config_value("query", "max_results", "7") is True
        assert save_config_value("scan", "exclude", "legacy, generated") is True
        assert load_full_config()["query"]["max_results"] == 7
        assert get_settings().exclude == ["legacy", "generated"]

    def test_unknown_key(self):
        with pytest.raises(KeyError):
            save_config_value("query", "colour", "blue")

    def test_bad_mode(self):
        with pytest.raises(ValueError):
            save_config_value("storage", "mode", "cloud")

    def test_unset(self):
        save_config_value("query", "max_results", "7")
        assert unset_config_value("query", "max_results") is True
        assert unset_config_value("query", "max_results") is False
        assert get_settings().max_results == config.DEFAULT_MAX_RESULTS

    def test_unreadable_file_is_ignored(self):
        config_manager.CONFIG_FILE.write_text("[query\nbroken")
        assert load_full_config() == {}

    def test_hand_edited_bad_values_fall_back(self):
        config_manager.CONFIG_FILE.write_text(
            '[scan]\nconfidence_floor = "abc"\nmax_workers = [2]\nexclude = "legacy"\n'
            '[query]\nmax_results = "lots"\n'
        )
        settings = get_settings()
        assert settings.confidence_floor == config.DEFAULT_CONFIDENCE_FLOOR
        assert settings.max_workers == config.DEFAULT_MAX_WORKERS
        assert settings.max_results == config.DEFAULT_MAX_RESULTS
        assert settings.exclude == []


class TestEnvironment:
    """Tests for environment overrides."""

    def test_override(self, monkeypatch):
        monkeypatch.setenv("ARCHGRAPH_MAX_RESULTS", "3")
        monkeypatch.setenv("ARCHGRAPH_MODE", "shared")
        settings = get_settings()
        assert settings.max_results == 3
        assert settings.mode == "shared"

    def test_invalid_value_is_ignored(self, monkeypatch):
        monkeypatch.setenv("ARCHGRAPH_CONFIDENCE", "high")
        assert get_settings().confidence_threshold == config.DEFAULT_CONFIDENCE_THRESHOLD


class TestStorePath:
    """Tests for get_store_path."""

    def test_local(self, temp_dir: Path):
        assert get_store_path(temp_dir, ArchGraphSettings()) == temp_dir / ".archgraph"

    def test_shared(self, temp_dir: Path):
        project = temp_dir / "my shop"
        project.mkdir()
        path = get_store_path(project, ArchGraphSettings(mode="shared"))
        assert path == config.SHARED_STORE_DIR / "my_shop"

    def test_explicit_path_wins(self, temp_dir: Path):
        settings = ArchGraphSettings(mode="shared", storage_path=str(temp_dir / "graphs"))
        assert get_store_path(temp_dir, settings) == temp_dir / "graphs"
