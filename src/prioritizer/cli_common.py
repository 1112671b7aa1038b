"""Shared CLI helpers used by ``cli.py`` and the ``cli_commands`` modules.

Provides project discovery, the async session (store + persistence), the
card API client factory and uniform error output.
"""

from __future__ import annotations

import asyncio
import contextlib
import json as json_mod
import sys
from collections.abc import AsyncIterator, Coroutine, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, NoReturn, TypeVar

import click

from prioritizer.core import (
    PRIORITIZER_DIR_NAME,
    SNAPSHOT_FILENAME,
    RecordStore,
    UseCaseRecord,
    find_prioritizer_root,
    read_config,
    search,
    sort,
)
from prioritizer.logging import setup_logging
from prioritizer.persistence import (
    DEFAULT_DEBOUNCE_SECONDS,
    DEFAULT_SAVE_INTERVAL_SECONDS,
    BlobStore,
    FileBlobStore,
    HttpBlobStore,
    LocalSnapshot,
    PersistenceCoordinator,
)
from prioritizer.remote import TRELLO_API_BASE, TrelloClient
from prioritizer.scoring import DEFAULT_SCHEME, ScoredRecord, score_records
from prioritizer.types.core import ProjectConfig

T = TypeVar("T")


def get_project_dir() -> Path:
    """Discover .prioritizer/ or exit with a hint."""
    try:
        return find_prioritizer_root()
    except FileNotFoundError:
        click.echo(f"No {PRIORITIZER_DIR_NAME}/ found. Run 'prioritizer init' first.", err=True)
        sys.exit(1)


def fail(message: str, *, as_json: bool = False) -> NoReturn:
    if as_json:
        click.echo(json_mod.dumps({"error": message}))
    else:
        click.echo(f"Error: {message}", err=True)
    sys.exit(1)


def run(coro: Coroutine[Any, Any, T]) -> T:
    return asyncio.run(coro)


def parse_assignments(pairs: tuple[str, ...], *, as_json: bool = False) -> dict[str, str]:
    """Parse repeated ``key=value`` options."""
    result: dict[str, str] = {}
    for pair in pairs:
        if "=" not in pair:
            fail(f"Invalid format: {pair} (expected key=value)", as_json=as_json)
        k, v = pair.split("=", 1)
        result[k.strip()] = v.strip()
    return result


def build_remote_store(project_dir: Path, config: Mapping[str, Any]) -> BlobStore | None:
    """Remote snapshot backend from config: ``storage_url`` wins over ``storage_path``."""
    url = config.get("storage_url")
    if url:
        return HttpBlobStore(str(url))
    path = config.get("storage_path")
    if path:
        candidate = Path(str(path))
        return FileBlobStore(candidate if candidate.is_absolute() else project_dir.parent / candidate)
    return None


def get_card_api(config: Mapping[str, Any]) -> TrelloClient:
    return TrelloClient.from_env(base_url=str(config.get("api_base") or TRELLO_API_BASE))


@dataclass
class Session:
    project_dir: Path
    config: ProjectConfig
    store: RecordStore
    coordinator: PersistenceCoordinator
    messages: list[str] = field(default_factory=list)

    def find(self, ref: str) -> UseCaseRecord:
        """Record by full id or unique id prefix. Raises KeyError."""
        if ref in self.store:
            return self.store.get(ref)
        matches = [r for r in self.store.records() if r.id.startswith(ref)]
        if len(matches) == 1:
            return matches[0]
        if matches:
            msg = f"Ambiguous record id prefix: {ref}"
            raise KeyError(msg)
        msg = f"Record not found: {ref}"
        raise KeyError(msg)


@contextlib.asynccontextmanager
async def open_session(*, load_remote: bool = True) -> AsyncIterator[Session]:
    """Load the workspace, yield it, then flush pending saves.

    Persistence problems are reported on stderr but never fail the command.
    """
    project_dir = get_project_dir()
    setup_logging(project_dir)
    config = read_config(project_dir)
    store = RecordStore(scheme=str(config.get("scheme", DEFAULT_SCHEME)))
    remote = build_remote_store(project_dir, config)
    messages: list[str] = []
    coordinator = PersistenceCoordinator(
        store,
        local=LocalSnapshot(project_dir / SNAPSHOT_FILENAME),
        remote=remote,
        debounce_seconds=float(config.get("debounce_seconds", DEFAULT_DEBOUNCE_SECONDS)),
        save_interval_seconds=float(config.get("save_interval_seconds", DEFAULT_SAVE_INTERVAL_SECONDS)),
        on_status=messages.append,
    )
    session = Session(project_dir=project_dir, config=config, store=store, coordinator=coordinator, messages=messages)
    try:
        await coordinator.start(load_remote=load_remote, periodic=False)
        yield session
    finally:
        await coordinator.stop(flush=True)
        if isinstance(remote, HttpBlobStore):
            await remote.aclose()
        for message in messages:
            if "failed" in message.lower():
                click.echo(message, err=True)


def sort_keys(session: Session) -> list[str]:
    return ["score", "effort", "value", "name", *session.store.scheme.factor_keys]


def ranked(session: Session, *, sort_key: str = "score", direction: str = "desc", query: str = "") -> list[ScoredRecord]:
    """Scored records under the current weights, filtered by *query* and sorted."""
    if sort_key not in sort_keys(session):
        msg = f"Unknown sort key '{sort_key}'. Valid keys: {', '.join(sort_keys(session))}"
        raise ValueError(msg)
    scored = score_records(session.store.records(), session.coordinator.weights)
    return sort(search(scored, query), sort_key, "asc" if direction == "asc" else "desc")


def error_text(exc: BaseException) -> str:
    """Message for *exc*; KeyError's repr quoting is dropped."""
    if isinstance(exc, KeyError) and exc.args:
        return str(exc.args[0])
    return str(exc)
