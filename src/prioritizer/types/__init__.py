# IMPORT CONSTRAINT: types/ modules must only import from typing, stdlib, and each other.
# NEVER import from core.py or any service module; this prevents circular imports.
"""Typed return-value contracts for prioritizer core and report objects."""

from __future__ import annotations

from prioritizer.types.api import (
    ImportReportDict,
    OrderReportDict,
    ScoredRecordDict,
    SyncReportDict,
)
from prioritizer.types.core import (
    ISOTimestamp,
    ProjectConfig,
    RecordDict,
    RemoteRefDict,
    SnapshotDict,
    WeightConfigDict,
)

__all__ = [
    "ISOTimestamp",
    "ImportReportDict",
    "OrderReportDict",
    "ProjectConfig",
    "RecordDict",
    "RemoteRefDict",
    "ScoredRecordDict",
    "SnapshotDict",
    "SyncReportDict",
    "WeightConfigDict",
]
