"""Fixtures for CLI interface tests."""

from __future__ import annotations

import os
from collections.abc import Generator
from pathlib import Path

import pytest
from click.testing import CliRunner

from prioritizer.cli import cli
from tests._fakes import FakeCardAPI, card


@pytest.fixture
def cli_in_project(tmp_path: Path, cli_runner: CliRunner) -> Generator[tuple[CliRunner, Path], None, None]:
    """Initialize an empty prioritizer project in tmp_path and return (runner, project_root)."""
    original_cwd = os.getcwd()
    os.chdir(str(tmp_path))
    result = cli_runner.invoke(cli, ["init", "--empty", "--name", "test"])
    assert result.exit_code == 0
    yield cli_runner, tmp_path
    os.chdir(original_cwd)


@pytest.fixture
def fake_board(monkeypatch: pytest.MonkeyPatch) -> FakeCardAPI:
    """Route every board command to one in-memory card API."""
    api = FakeCardAPI([card("c-live", "Live card", "Board notes\n\nprio-meta: impact=5", short_id=3)])
    monkeypatch.setattr("prioritizer.cli_commands.board.get_card_api", lambda _config: api)
    return api


def _extract_id(add_output: str) -> str:
    """Extract record ID from 'Added uc-abc123: Name (score N)' output."""
    return add_output.split(":")[0].replace("Added ", "").strip()
