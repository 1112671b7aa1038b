"""Foundational TypedDicts for dataclass to_dict() returns."""

from __future__ import annotations

from typing import NewType, NotRequired, TypedDict

ISOTimestamp = NewType("ISOTimestamp", str)


class ProjectConfig(TypedDict, total=False):
    """Shape of .prioritizer/config.json."""

    name: str
    version: int
    scheme: str
    board_id: str
    list_id: str
    api_base: str
    storage_url: str
    storage_path: str
    debounce_seconds: float
    save_interval_seconds: float


class RemoteRefDict(TypedDict):
    card_id: str
    short_id: int | None
    short_link: str


class RecordDict(TypedDict):
    """Serialised UseCaseRecord.

    Factor values sit beside the fixed keys (flat), matching the row shape
    older snapshots were written in.
    """

    id: str
    name: str
    notes: str
    selected: bool
    imported: bool
    remote_ref: RemoteRefDict | None
    created_at: ISOTimestamp
    updated_at: ISOTimestamp


class WeightConfigDict(TypedDict):
    scheme: str
    weights: dict[str, float]


class SnapshotDict(TypedDict):
    """Document mirrored to the local snapshot file and the remote blob store."""

    rows: list[dict[str, object]]
    weights: dict[str, float] | None
    scheme: NotRequired[str]
    theme: NotRequired[str]
    # Local file only: edits the remote blob has not received yet.
    pending: NotRequired[bool]
