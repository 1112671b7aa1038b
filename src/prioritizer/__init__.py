"""Prioritizer: score a use case backlog and mirror it onto a kanban board."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("prioritizer")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"

from prioritizer.core import RecordStore, RemoteRef, UseCaseRecord
from prioritizer.scoring import WeightConfig, compute_score

__all__ = ["RecordStore", "RemoteRef", "UseCaseRecord", "WeightConfig", "__version__", "compute_score"]
