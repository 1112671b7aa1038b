"""TypedDicts for report objects returned by sync, ordering and import."""

from __future__ import annotations

from typing import TypedDict

from prioritizer.types.core import RemoteRefDict


class ScoredRecordDict(TypedDict):
    """Record plus derived metrics, as printed by ``list --json`` and exports."""

    id: str
    name: str
    notes: str
    factors: dict[str, int]
    selected: bool
    imported: bool
    remote_ref: RemoteRefDict | None
    score: int
    effort: float
    value: float
    color: str


class SyncReportDict(TypedDict):
    created: int
    updated: int
    copied: int
    failed: int
    first_error: str | None


class OrderReportDict(TypedDict):
    moved: int
    total: int
    completed: bool
    error: str | None


class ImportReportDict(TypedDict):
    added: int
    refreshed: int
    unchanged: int
