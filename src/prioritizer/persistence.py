"""Local and remote mirrors of the workspace (records + weights + theme).

Two mirrors are kept:

* a local snapshot file, rewritten synchronously on every change. While the
  remote blob lags behind it the file carries ``"pending": true``;
* a remote blob store reached through ``load()`` / ``save(blob)``.

At start-up the remote snapshot wins: if it holds anything it replaces local
state, including edits made while the load was in flight. The exception is a
pending local snapshot, which is pushed instead of overwritten. After that every
change schedules one debounced remote save (bursts coalesce into a single
write), and a periodic unconditional save runs as a safety net.

Failures never propagate into editing code; they become ``status`` messages.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import os
from collections.abc import Callable
from pathlib import Path
from typing import Any, Protocol

import httpx

from prioritizer.core import RecordStore, StoreEvent
from prioritizer.scoring import WeightConfig
from prioritizer.types.core import SnapshotDict

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 1.5
DEFAULT_SAVE_INTERVAL_SECONDS = 30.0
THEMES = frozenset({"light", "dark"})

SEED_ROWS: tuple[tuple[str, str, int], ...] = (
    ("Autonomous Case Triage in Service Cloud", "Auto-classify, route, and draft replies to reduce handle time", 4),
    ("Sales Email Agent for Pipeline Acceleration", "Auto-personalize emails and suggest next best actions", 3),
)


class PersistenceError(Exception):
    """Local snapshot or remote blob storage could not be read or written."""


def write_atomic(path: Path, content: str) -> None:
    """Write content to path atomically via temp file + os.replace()."""
    tmp = path.with_suffix(path.suffix + ".tmp")
    try:
        tmp.write_text(content, encoding="utf-8")
        os.replace(tmp, path)
    except BaseException:
        with contextlib.suppress(OSError):
            tmp.unlink()
        raise


def is_empty(snapshot: SnapshotDict | None) -> bool:
    return not snapshot or (not snapshot.get("rows") and not snapshot.get("weights"))


def snapshot_theme(snapshot: SnapshotDict | dict[str, Any]) -> str | None:
    """Theme stored in *snapshot*; accepts the older boolean ``dark`` key."""
    theme = snapshot.get("theme")
    if theme in THEMES:
        return str(theme)
    dark = snapshot.get("dark")
    if isinstance(dark, bool):
        return "dark" if dark else "light"
    return None


# ---------------------------------------------------------------------------
# Storage backends
# ---------------------------------------------------------------------------


class BlobStore(Protocol):
    """Single-document store. Both methods raise PersistenceError on failure."""

    async def load(self) -> SnapshotDict | None: ...

    async def save(self, snapshot: SnapshotDict) -> None: ...


class LocalSnapshot:
    """Synchronous JSON snapshot file (``.prioritizer/snapshot.json``)."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def read(self) -> SnapshotDict | None:
        """Return the stored snapshot; missing or corrupt files read as None."""
        if not self.path.exists():
            return None
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as exc:
            logger.warning("Ignoring unreadable local snapshot %s: %s", self.path, exc)
            return None
        if not isinstance(data, dict):
            logger.warning("Ignoring local snapshot %s: expected a JSON object", self.path)
            return None
        result: SnapshotDict = data  # type: ignore[assignment]
        return result

    def write(self, snapshot: SnapshotDict) -> None:
        try:
            write_atomic(self.path, json.dumps(snapshot, indent=2, default=str) + "\n")
        except OSError as exc:
            msg = f"Cannot write local snapshot {self.path}: {exc}"
            raise PersistenceError(msg) from exc

    def clear(self) -> None:
        with contextlib.suppress(FileNotFoundError):
            self.path.unlink()


class FileBlobStore:
    """BlobStore over one JSON document on disk.

    Saves merge top-level keys into the existing document (last write wins per
    key), the same replace-with-merge behaviour as the hosted document store.
    """

    def __init__(self, path: Path) -> None:
        self.path = path

    async def load(self) -> SnapshotDict | None:
        if not self.path.exists():
            return None
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as exc:
            msg = f"Cannot read {self.path}: {exc}"
            raise PersistenceError(msg) from exc
        if not isinstance(data, dict):
            msg = f"Corrupt snapshot {self.path}: expected a JSON object"
            raise PersistenceError(msg)
        result: SnapshotDict = data  # type: ignore[assignment]
        return result

    async def save(self, snapshot: SnapshotDict) -> None:
        existing: dict[str, Any] = {}
        if self.path.exists():
            with contextlib.suppress(json.JSONDecodeError, OSError):
                loaded = json.loads(self.path.read_text(encoding="utf-8"))
                if isinstance(loaded, dict):
                    existing = loaded
        merged = {**existing, **snapshot}
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            write_atomic(self.path, json.dumps(merged, indent=2, default=str) + "\n")
        except OSError as exc:
            msg = f"Cannot write {self.path}: {exc}"
            raise PersistenceError(msg) from exc


class HttpBlobStore:
    """BlobStore over the storage endpoints: ``GET {base}/load``, ``POST {base}/save``.

    ``load`` answers ``{"data": {...}, "updatedAt": ...}``; ``save`` takes
    ``{"data": {...}}``. Errors come back as ``{"error": "..."}``.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 15.0,
        headers: dict[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(base_url=base_url.rstrip("/"), timeout=timeout, headers=headers, transport=transport)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> HttpBlobStore:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.aclose()

    @staticmethod
    def _error_of(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text.strip() or str(response.status_code)
        if isinstance(body, dict) and body.get("error"):
            return str(body["error"])
        return str(response.status_code)

    async def load(self) -> SnapshotDict | None:
        try:
            response = await self._client.get("/load")
        except httpx.HTTPError as exc:
            msg = f"GET /load failed: {exc}"
            raise PersistenceError(msg) from exc
        if response.is_error:
            msg = f"GET /load returned {response.status_code}: {self._error_of(response)}"
            raise PersistenceError(msg)
        try:
            body = response.json()
        except ValueError as exc:
            msg = "GET /load returned a non-JSON body"
            raise PersistenceError(msg) from exc
        data = body.get("data") if isinstance(body, dict) else None
        if not isinstance(data, dict):
            return None
        result: SnapshotDict = data  # type: ignore[assignment]
        return result

    async def save(self, snapshot: SnapshotDict) -> None:
        try:
            response = await self._client.post("/save", json={"data": snapshot})
        except httpx.HTTPError as exc:
            msg = f"POST /save failed: {exc}"
            raise PersistenceError(msg) from exc
        if response.is_error:
            msg = f"POST /save returned {response.status_code}: {self._error_of(response)}"
            raise PersistenceError(msg)


# ---------------------------------------------------------------------------
# Coordinator
# ---------------------------------------------------------------------------


class PersistenceCoordinator:
    """Keeps the local snapshot and the remote blob in step with a RecordStore.

    Remote saves stay paused until a remote load has succeeded so that a
    failed or slow load can never overwrite the remote document with stale
    local data. ``save_now(force=True)`` bypasses the pause.
    """

    def __init__(
        self,
        store: RecordStore,
        *,
        local: LocalSnapshot | None = None,
        remote: BlobStore | None = None,
        weights: WeightConfig | None = None,
        theme: str = "light",
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        save_interval_seconds: float = DEFAULT_SAVE_INTERVAL_SECONDS,
        on_status: Callable[[str], None] | None = None,
    ) -> None:
        self.store = store
        self.local = local
        self.remote = remote
        self._weights = weights or WeightConfig.defaults(store.scheme.name)
        self._theme = theme if theme in THEMES else "light"
        self.debounce_seconds = debounce_seconds
        self.save_interval_seconds = save_interval_seconds
        self._on_status = on_status
        self.status = ""
        self.dirty = False
        self._generation = 0
        self._applying = False
        self._remote_loaded = remote is None
        self._timer: asyncio.TimerHandle | None = None
        self._periodic: asyncio.Task[None] | None = None
        self._tasks: set[asyncio.Task[Any]] = set()
        self._unsubscribe: Callable[[], None] | None = None

    # -- state ---------------------------------------------------------------

    @property
    def weights(self) -> WeightConfig:
        return self._weights

    @property
    def theme(self) -> str:
        return self._theme

    @property
    def remote_loaded(self) -> bool:
        return self._remote_loaded

    def set_weights(self, weights: WeightConfig) -> None:
        if weights.scheme != self.store.scheme.name:
            msg = f"Weights are for scheme '{weights.scheme}', store uses '{self.store.scheme.name}'"
            raise ValueError(msg)
        if weights != self._weights:
            self._weights = weights
            self._changed()

    def set_theme(self, theme: str) -> None:
        if theme not in THEMES:
            msg = f"Unknown theme '{theme}'. Valid themes: {', '.join(sorted(THEMES))}"
            raise ValueError(msg)
        if theme != self._theme:
            self._theme = theme
            self._changed()

    def snapshot(self) -> SnapshotDict:
        return {
            "rows": [dict(r) for r in self.store.to_rows()],
            "weights": dict(self._weights.weights),
            "scheme": self.store.scheme.name,
            "theme": self._theme,
        }

    def _set_status(self, message: str) -> None:
        self.status = message
        if self._on_status is not None:
            self._on_status(message)

    # -- lifecycle -----------------------------------------------------------

    async def start(self, *, load_remote: bool = True, periodic: bool = True) -> None:
        """Apply the local snapshot, subscribe to the store, then load the remote one.

        A local snapshot marked ``pending`` holds edits the remote blob never
        received. It is kept and pushed instead of being overwritten by the
        remote copy.
        """
        pending = False
        if self.local is not None:
            cached = self.local.read()
            if cached is not None:
                self._apply(cached)
                pending = self.remote is not None and cached.get("pending") is True
        if pending:
            self.dirty = True
        if self._unsubscribe is None:
            self._unsubscribe = self.store.subscribe(self._on_store_event)
        if self.remote is not None and load_remote:
            if pending:
                await self._push_pending()
            else:
                await self.load_remote()
        if periodic and self.remote is not None and self.save_interval_seconds > 0 and self._periodic is None:
            self._periodic = asyncio.get_running_loop().create_task(self._periodic_save())

    async def stop(self, *, flush: bool = True) -> None:
        self._cancel_timer()
        if self._periodic is not None:
            self._periodic.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._periodic
            self._periodic = None
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        if flush and self.dirty and self._remote_loaded:
            await self.save_now()
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    # -- change handling -----------------------------------------------------

    def _on_store_event(self, event: StoreEvent) -> None:
        if not self._applying:
            self._changed()

    def _changed(self) -> None:
        self._generation += 1
        self.dirty = True
        self._write_local()
        if self.remote is not None and self._remote_loaded:
            self._schedule_save()

    def _write_local(self) -> None:
        if self.local is None:
            return
        snapshot = self.snapshot()
        if self.dirty and self.remote is not None:
            snapshot["pending"] = True
        try:
            self.local.write(snapshot)
        except PersistenceError as exc:
            logger.warning("Local snapshot write failed: %s", exc, extra={"op": "local_save", "error": str(exc)})
            self._set_status(f"Local save failed: {exc}")

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _schedule_save(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop (synchronous caller): the change stays dirty until stop()/save_now().
            return
        self._cancel_timer()
        self._timer = loop.call_later(self.debounce_seconds, self._fire)

    def _fire(self) -> None:
        self._timer = None
        task = asyncio.get_running_loop().create_task(self.save_now())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _periodic_save(self) -> None:
        while True:
            await asyncio.sleep(self.save_interval_seconds)
            await self.save_now()

    # -- remote --------------------------------------------------------------

    async def save_now(self, *, force: bool = False) -> bool:
        """Write the current state to the remote blob. Returns False on failure or skip."""
        if self.remote is None:
            return True
        if not self._remote_loaded and not force:
            logger.debug("Remote save skipped: remote snapshot not loaded yet")
            return False
        generation = self._generation
        try:
            await self.remote.save(self.snapshot())
        except PersistenceError as exc:
            logger.warning("Remote save failed: %s", exc, extra={"op": "remote_save", "error": str(exc)})
            self._set_status(f"Save failed: {exc}")
            return False
        if self._generation == generation:
            self.dirty = False
            self._write_local()
        self._remote_loaded = True
        self._set_status("Saved to remote storage.")
        return True

    async def _push_pending(self) -> bool:
        logger.info(
            "Local snapshot has unsaved changes; keeping it over the remote copy",
            extra={"op": "remote_load"},
        )
        self._remote_loaded = True
        return await self.save_now()

    async def load_remote(self) -> bool:
        """Load the remote snapshot; a non-empty one overwrites local state."""
        if self.remote is None:
            return False
        try:
            snapshot = await self.remote.load()
        except PersistenceError as exc:
            logger.warning("Remote load failed: %s", exc, extra={"op": "remote_load", "error": str(exc)})
            self._set_status(f"Load failed: {exc}")
            return False
        self._remote_loaded = True
        if snapshot is None or is_empty(snapshot):
            self._set_status("Remote storage is empty; keeping local data.")
            if len(self.store):
                self._changed()
            return True
        self._cancel_timer()
        self._apply(snapshot)
        self.dirty = False
        self._write_local()
        self._set_status("Loaded from remote storage.")
        return True

    def _apply(self, snapshot: SnapshotDict | dict[str, Any]) -> None:
        self._applying = True
        try:
            rows = snapshot.get("rows")
            if isinstance(rows, list):
                self.store.load_rows(r for r in rows if isinstance(r, dict))
            weights = snapshot.get("weights")
            if isinstance(weights, dict):
                self._weights = WeightConfig.from_dict(weights, scheme=self.store.scheme.name)
            theme = snapshot_theme(snapshot)
            if theme is not None:
                self._theme = theme
        finally:
            self._applying = False

    def import_snapshot(self, snapshot: SnapshotDict | dict[str, Any]) -> None:
        """Replace rows and/or weights with an imported document; omitted parts stay."""
        scheme = snapshot.get("scheme")
        if scheme is not None and scheme != self.store.scheme.name:
            msg = f"File is for scheme '{scheme}', this workspace uses '{self.store.scheme.name}'"
            raise ValueError(msg)
        self._apply(snapshot)
        self._changed()
        self._set_status("Imported from file.")

    def reset(self) -> None:
        """Restore default weights, light theme and the seed records."""
        self._applying = True
        try:
            self.store.replace_all([])
            for name, notes, seed in SEED_ROWS:
                self.store.create(name, notes, seed=seed)
            self._weights = WeightConfig.defaults(self.store.scheme.name)
            self._theme = "light"
        finally:
            self._applying = False
        self._changed()
        self._set_status("Data reset (local).")
