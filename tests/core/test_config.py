# tests/core/test_config.py
"""Tests for prioritizer.core: config discovery, read_config, write_config."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from prioritizer.core import PRIORITIZER_DIR_NAME, find_prioritizer_root, read_config, write_config


class TestFindRoot:
    def test_finds_in_cwd(self, prioritizer_project: Path) -> None:
        assert find_prioritizer_root(prioritizer_project) == prioritizer_project / PRIORITIZER_DIR_NAME

    def test_walks_up(self, prioritizer_project: Path) -> None:
        nested = prioritizer_project / "a" / "b"
        nested.mkdir(parents=True)
        assert find_prioritizer_root(nested) == (prioritizer_project / PRIORITIZER_DIR_NAME).resolve()

    def test_missing(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            find_prioritizer_root(tmp_path)


class TestReadConfig:
    def test_roundtrip(self, tmp_path: Path) -> None:
        write_config(tmp_path, {"name": "p", "version": 1, "scheme": "rice", "list_id": "l1"})
        config = read_config(tmp_path)
        assert config["scheme"] == "rice"
        assert config["list_id"] == "l1"

    def test_missing_file_gets_defaults(self, tmp_path: Path) -> None:
        config = read_config(tmp_path)
        assert config["scheme"] == "weighted"
        assert config["version"] == 1

    def test_corrupt_file_gets_defaults(self, tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
        (tmp_path / "config.json").write_text("{not json")
        with caplog.at_level(logging.WARNING, logger="prioritizer.core"):
            config = read_config(tmp_path)
        assert config["scheme"] == "weighted"
        assert "Failed to read" in caplog.text

    def test_non_object_gets_defaults(self, tmp_path: Path) -> None:
        (tmp_path / "config.json").write_text(json.dumps(["a", "b"]))
        assert read_config(tmp_path)["scheme"] == "weighted"

    def test_written_as_indented_json(self, tmp_path: Path) -> None:
        write_config(tmp_path, {"name": "p"})
        assert (tmp_path / "config.json").read_text() == '{\n  "name": "p"\n}\n'
