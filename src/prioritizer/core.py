"""Use case records and the in-memory record store.

Convention-based discovery: each project has a `.prioritizer/` directory
containing `config.json` (scheme, board/list choice, storage settings) and
`snapshot.json` (the local mirror written by the persistence coordinator).

The RecordStore owns no I/O. Anything that wants to react to edits (the
persistence coordinator, a UI) subscribes to its change notifications.
"""

from __future__ import annotations

import json
import logging
import math
import uuid
from collections.abc import Callable, Collection, Iterable, Mapping, Sequence
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Literal, TypeVar

from prioritizer.scoring import DEFAULT_SCHEME, ScoringScheme, default_factors, get_scheme
from prioritizer.types.core import ISOTimestamp, ProjectConfig, RecordDict, RemoteRefDict
from prioritizer.validation import sanitize_name

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Convention-based discovery
# ---------------------------------------------------------------------------

PRIORITIZER_DIR_NAME = ".prioritizer"
CONFIG_FILENAME = "config.json"
SNAPSHOT_FILENAME = "snapshot.json"


def find_prioritizer_root(start: Path | None = None) -> Path:
    """Walk up from start (default cwd) looking for .prioritizer/ directory.

    Returns the .prioritizer/ directory path (not the project root).
    """
    current = (start or Path.cwd()).resolve()
    for parent in [current, *current.parents]:
        candidate = parent / PRIORITIZER_DIR_NAME
        if candidate.is_dir():
            return candidate
    msg = f"No {PRIORITIZER_DIR_NAME}/ directory found in {current} or any parent"
    raise FileNotFoundError(msg)


def read_config(project_dir: Path) -> ProjectConfig:
    """Read .prioritizer/config.json. Returns defaults if missing or corrupt."""
    defaults = ProjectConfig(version=1, scheme=DEFAULT_SCHEME)
    config_path = project_dir / CONFIG_FILENAME
    if not config_path.exists():
        return defaults
    try:
        result: ProjectConfig = json.loads(config_path.read_text())
    except (json.JSONDecodeError, OSError) as exc:
        logger.warning("Failed to read %s, using defaults: %s", config_path, exc)
        return defaults
    if not isinstance(result, dict):
        logger.warning("Ignoring %s: expected a JSON object", config_path)
        return defaults
    return result


def write_config(project_dir: Path, config: Mapping[str, Any] | ProjectConfig) -> None:
    """Write .prioritizer/config.json."""
    config_path = project_dir / CONFIG_FILENAME
    config_path.write_text(json.dumps(config, indent=2) + "\n")


def _now_iso() -> ISOTimestamp:
    return ISOTimestamp(datetime.now(UTC).isoformat())


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


class DuplicateRemoteRefError(ValueError):
    """A second record tried to claim a card that another record already owns."""


@dataclass(frozen=True)
class RemoteRef:
    """Ownership link from a local record to a card on the board."""

    card_id: str
    short_id: int | None = None
    short_link: str = ""

    @property
    def target(self) -> str:
        """Identifier usable in card API calls."""
        return self.card_id or self.short_link

    @property
    def label(self) -> str:
        """Human-readable reference written into card metadata."""
        if self.short_id is not None:
            return f"#{self.short_id}"
        return self.short_link or self.card_id

    def to_dict(self) -> RemoteRefDict:
        return {"card_id": self.card_id, "short_id": self.short_id, "short_link": self.short_link}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> RemoteRef | None:
        if not data:
            return None
        card_id = str(data.get("card_id") or "")
        short_link = str(data.get("short_link") or "")
        if not card_id and not short_link:
            return None
        short_id = data.get("short_id")
        if isinstance(short_id, bool) or not str(short_id).isdigit():
            short_id = None
        return cls(
            card_id=card_id,
            short_id=int(short_id) if short_id is not None else None,
            short_link=short_link,
        )


_RESERVED_KEYS = frozenset({"id", "name", "notes", "selected", "imported", "remote_ref", "created_at", "updated_at"})


@dataclass
class UseCaseRecord:
    id: str
    name: str
    notes: str = ""
    factors: dict[str, int] = field(default_factory=dict)
    selected: bool = False
    imported: bool = False
    remote_ref: RemoteRef | None = None
    created_at: str = ""
    updated_at: str = ""

    def sort_value(self, key: str) -> Any:
        if key == "name":
            return self.name.lower()
        if key == "notes":
            return self.notes.lower()
        value = self.factors.get(key, 0)
        return value if isinstance(value, int | float) else 0

    def to_dict(self) -> RecordDict:
        row: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "notes": self.notes,
            **self.factors,
            "selected": self.selected,
            "imported": self.imported,
            "remote_ref": self.remote_ref.to_dict() if self.remote_ref is not None else None,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
        return row  # type: ignore[return-value]

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], *, factor_keys: Collection[str] | None = None) -> UseCaseRecord:
        """Rebuild from a snapshot row.

        Numeric keys become factors: every non-reserved one, or only those in
        *factor_keys* when given (so an exported ``score`` column is dropped).
        Non-finite numbers are skipped.
        """
        if not data.get("id"):
            msg = "Record row is missing an id"
            raise ValueError(msg)
        factors: dict[str, int] = {}
        for key, value in data.items():
            if key in _RESERVED_KEYS or isinstance(value, bool):
                continue
            if factor_keys is not None and key not in factor_keys:
                continue
            if isinstance(value, int | float) and math.isfinite(value):
                factors[key] = int(value)
        return cls(
            id=str(data["id"]),
            name=str(data.get("name") or ""),
            notes=str(data.get("notes") or ""),
            factors=factors,
            selected=bool(data.get("selected", False)),
            imported=bool(data.get("imported", False)),
            remote_ref=RemoteRef.from_dict(data.get("remote_ref")),
            created_at=str(data.get("created_at") or ""),
            updated_at=str(data.get("updated_at") or ""),
        )


# ---------------------------------------------------------------------------
# RecordStore
# ---------------------------------------------------------------------------

EventKind = Literal["created", "updated", "deleted", "selection", "remote", "reset"]


@dataclass(frozen=True)
class StoreEvent:
    kind: EventKind
    record_id: str | None = None


Listener = Callable[[StoreEvent], None]

_PATCHABLE = frozenset({"name", "notes", "factors", "imported"})


class RecordStore:
    """Ordered collection of use case records for one scoring scheme.

    Insertion order is the base display order; views sort on top of it.
    Every mutation is announced to subscribers after it has been applied.
    """

    def __init__(self, *, scheme: str = DEFAULT_SCHEME) -> None:
        self._scheme = get_scheme(scheme)
        self._records: dict[str, UseCaseRecord] = {}
        self._by_card: dict[str, str] = {}
        self._retired: set[str] = set()
        self._listeners: list[Listener] = []

    @property
    def scheme(self) -> ScoringScheme:
        return self._scheme

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, record_id: object) -> bool:
        return record_id in self._records

    # -- notifications -------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register *listener*; returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, kind: EventKind, record_id: str | None = None) -> None:
        event = StoreEvent(kind, record_id)
        for listener in list(self._listeners):
            listener(event)

    # -- reads ---------------------------------------------------------------

    def get(self, record_id: str) -> UseCaseRecord:
        try:
            return self._records[record_id]
        except KeyError:
            msg = f"Record not found: {record_id}"
            raise KeyError(msg) from None

    def records(self) -> list[UseCaseRecord]:
        return list(self._records.values())

    def selected(self) -> list[UseCaseRecord]:
        return [r for r in self._records.values() if r.selected]

    def find_by_remote(self, card_id: str) -> UseCaseRecord | None:
        record_id = self._by_card.get(card_id)
        return self._records.get(record_id) if record_id is not None else None

    def to_rows(self) -> list[RecordDict]:
        return [r.to_dict() for r in self._records.values()]

    # -- writes --------------------------------------------------------------

    def _generate_unique_id(self) -> str:
        for _ in range(10):
            candidate = f"uc-{uuid.uuid4().hex[:10]}"
            if candidate not in self._records and candidate not in self._retired:
                return candidate
        return f"uc-{uuid.uuid4().hex[:16]}"

    def _validate_factors(self, factors: Mapping[str, Any]) -> dict[str, int]:
        return {key: self._scheme.factor(key).coerce(value) for key, value in factors.items()}

    def create(
        self,
        name: str,
        notes: str = "",
        factors: Mapping[str, Any] | None = None,
        *,
        seed: int | None = None,
        imported: bool = False,
        remote_ref: RemoteRef | None = None,
        front: bool = False,
    ) -> UseCaseRecord:
        cleaned, err = sanitize_name(name)
        if err:
            raise ValueError(err)
        values = default_factors(self._scheme, seed)
        values.update(self._validate_factors(factors or {}))
        now = _now_iso()
        record = UseCaseRecord(
            id=self._generate_unique_id(),
            name=cleaned,
            notes=notes,
            factors=values,
            imported=imported,
            created_at=now,
            updated_at=now,
        )
        if remote_ref is not None:
            self._claim(remote_ref.card_id, record.id)
            record.remote_ref = remote_ref
        self._insert(record, front=front)
        self._index(record)
        self._notify("created", record.id)
        return record

    def add(self, record: UseCaseRecord, *, front: bool = False) -> UseCaseRecord:
        """Insert an existing record (e.g. one rebuilt from a snapshot)."""
        if record.id in self._records or record.id in self._retired:
            msg = f"Record id already used: {record.id}"
            raise ValueError(msg)
        if record.remote_ref is not None:
            self._claim(record.remote_ref.card_id, record.id)
        self._insert(record, front=front)
        self._index(record)
        self._notify("created", record.id)
        return record

    def _insert(self, record: UseCaseRecord, *, front: bool) -> None:
        if front:
            self._records = {record.id: record, **self._records}
        else:
            self._records[record.id] = record

    def update(self, record_id: str, **patch: Any) -> UseCaseRecord:
        """Apply a partial update. ``factors`` merges key by key."""
        record = self.get(record_id)
        unknown = set(patch) - _PATCHABLE
        if unknown:
            msg = f"Cannot patch fields: {', '.join(sorted(unknown))}"
            raise ValueError(msg)

        # Validate everything before touching the record.
        changes: dict[str, Any] = {}
        if "name" in patch:
            cleaned, err = sanitize_name(patch["name"])
            if err:
                raise ValueError(err)
            changes["name"] = cleaned
        if "notes" in patch:
            changes["notes"] = str(patch["notes"] or "")
        if "factors" in patch:
            changes["factors"] = {**record.factors, **self._validate_factors(patch["factors"] or {})}
        if "imported" in patch:
            changes["imported"] = bool(patch["imported"])

        if all(getattr(record, k) == v for k, v in changes.items()):
            return record
        for key, value in changes.items():
            setattr(record, key, value)
        record.updated_at = _now_iso()
        self._notify("updated", record_id)
        return record

    def delete(self, record_id: str) -> UseCaseRecord:
        """Remove a record locally. The remote card, if any, is left alone."""
        record = self.get(record_id)
        del self._records[record_id]
        self._retired.add(record_id)
        if record.remote_ref is not None:
            self._by_card.pop(record.remote_ref.card_id, None)
        self._notify("deleted", record_id)
        return record

    def set_selected(self, record_id: str, selected: bool) -> UseCaseRecord:
        record = self.get(record_id)
        if record.selected != selected:
            record.selected = selected
            self._notify("selection", record_id)
        return record

    def select_all(self, record_ids: Iterable[str] | None = None) -> int:
        targets = list(record_ids) if record_ids is not None else list(self._records)
        changed = 0
        for record_id in targets:
            record = self.get(record_id)
            if not record.selected:
                record.selected = True
                changed += 1
        if changed:
            self._notify("selection")
        return changed

    def clear_selection(self) -> int:
        changed = 0
        for record in self._records.values():
            if record.selected:
                record.selected = False
                changed += 1
        if changed:
            self._notify("selection")
        return changed

    def _index(self, record: UseCaseRecord) -> None:
        if record.remote_ref is not None and record.remote_ref.card_id:
            self._by_card[record.remote_ref.card_id] = record.id

    def _claim(self, card_id: str, record_id: str) -> None:
        owner = self._by_card.get(card_id)
        if owner is not None and owner != record_id:
            msg = f"Card {card_id} is already linked to record {owner}"
            raise DuplicateRemoteRefError(msg)

    def attach_remote(self, record_id: str, ref: RemoteRef) -> UseCaseRecord:
        """Link *record_id* to a card, replacing any previous link it had."""
        record = self.get(record_id)
        if ref.card_id:
            self._claim(ref.card_id, record_id)
        if record.remote_ref is not None:
            self._by_card.pop(record.remote_ref.card_id, None)
        record.remote_ref = ref
        record.imported = True
        if ref.card_id:
            self._by_card[ref.card_id] = record_id
        record.updated_at = _now_iso()
        self._notify("remote", record_id)
        return record

    def detach_remote(self, record_id: str) -> UseCaseRecord:
        record = self.get(record_id)
        if record.remote_ref is None:
            return record
        self._by_card.pop(record.remote_ref.card_id, None)
        record.remote_ref = None
        record.updated_at = _now_iso()
        self._notify("remote", record_id)
        return record

    def replace_all(self, records: Iterable[UseCaseRecord]) -> None:
        """Swap the whole collection (snapshot load). Fires one ``reset`` event.

        Rows claiming a card already claimed earlier in *records* lose their link.
        """
        self._records = {}
        self._by_card = {}
        for record in records:
            if record.id in self._records:
                logger.warning("Dropping duplicate record id %s from snapshot", record.id)
                continue
            ref = record.remote_ref
            if ref is not None and ref.card_id:
                if ref.card_id in self._by_card:
                    logger.warning(
                        "Record %s claims card %s already linked to %s; unlinking",
                        record.id,
                        ref.card_id,
                        self._by_card[ref.card_id],
                    )
                    record = replace(record, remote_ref=None)
                else:
                    self._by_card[ref.card_id] = record.id
            self._records[record.id] = record
        self._notify("reset")

    def load_rows(self, rows: Iterable[Mapping[str, Any]]) -> None:
        records: list[UseCaseRecord] = []
        for row in rows:
            try:
                records.append(UseCaseRecord.from_dict(row, factor_keys=self._scheme.factor_keys))
            except (ValueError, OverflowError) as exc:
                logger.warning("Skipping unreadable snapshot row: %s", exc)
        self.replace_all(records)


# ---------------------------------------------------------------------------
# Projections
# ---------------------------------------------------------------------------

SortDirection = Literal["asc", "desc"]
T = TypeVar("T")


def _record_of(item: Any) -> UseCaseRecord:
    return item.record if hasattr(item, "record") else item


def search(items: Sequence[T], query: str) -> list[T]:
    """Case-insensitive substring match over name + notes. Blank query matches all."""
    needle = (query or "").strip().lower()
    if not needle:
        return list(items)
    return [i for i in items if needle in _record_of(i).name.lower() or needle in _record_of(i).notes.lower()]


def sort(items: Sequence[T], key: str = "score", direction: SortDirection = "desc") -> list[T]:
    """Stable sort by *key*. Equal values keep their prior relative order."""
    if direction not in ("asc", "desc"):
        msg = f"direction must be 'asc' or 'desc', got {direction!r}"
        raise ValueError(msg)

    def value(item: Any) -> Any:
        return item.sort_value(key)

    return sorted(items, key=value, reverse=(direction == "desc"))
