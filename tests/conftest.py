"""Shared pytest fixtures for prioritizer tests."""

from __future__ import annotations

from pathlib import Path

import pytest
from click.testing import CliRunner

from prioritizer.core import PRIORITIZER_DIR_NAME, RecordStore, RemoteRef, write_config
from prioritizer.scoring import WeightConfig
from tests._fakes import FakeCardAPI, MemoryBlobStore


@pytest.fixture
def store() -> RecordStore:
    """Empty store on the weighted scheme."""
    return RecordStore(scheme="weighted")


@pytest.fixture
def rice_store() -> RecordStore:
    return RecordStore(scheme="rice")


@pytest.fixture
def weights() -> WeightConfig:
    return WeightConfig.defaults("weighted")


@pytest.fixture
def populated_store(store: RecordStore) -> RecordStore:
    """Store with three records: A (strong), B (middling), C (weak).

    A and B are selected; B is linked to card ``c-b``.
    """
    a = store.create("Churn prediction", "Flag at-risk accounts", {"impact": 5, "align": 5, "feasibility": 4}, seed=3)
    b = store.create("Invoice OCR", "Scan supplier invoices", seed=3, remote_ref=RemoteRef(card_id="c-b", short_id=7, short_link="sl-b"))
    store.create("Chatbot for HR", "", {"impact": 1, "align": 1, "feasibility": 1}, seed=2)
    store.set_selected(a.id, True)
    store.set_selected(b.id, True)
    return store


@pytest.fixture
def populated_ids(populated_store: RecordStore) -> dict[str, str]:
    """Record ids of populated_store keyed "a", "b", "c"."""
    keys = {"Churn prediction": "a", "Invoice OCR": "b", "Chatbot for HR": "c"}
    return {keys[r.name]: r.id for r in populated_store.records()}


@pytest.fixture
def card_api() -> FakeCardAPI:
    return FakeCardAPI()


@pytest.fixture
def blob_store() -> MemoryBlobStore:
    return MemoryBlobStore()


@pytest.fixture
def prioritizer_project(tmp_path: Path) -> Path:
    """A tmp directory set up as a prioritizer project (.prioritizer/ with config).

    Returns the project root (parent of .prioritizer/).
    """
    project_dir = tmp_path / PRIORITIZER_DIR_NAME
    project_dir.mkdir()
    write_config(project_dir, {"name": "proj", "version": 1, "scheme": "weighted"})
    return tmp_path


@pytest.fixture
def cli_runner() -> CliRunner:
    """Click CLI test runner."""
    return CliRunner()
