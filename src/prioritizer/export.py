"""JSON and CSV export of the scored backlog, and JSON import of an export."""

from __future__ import annotations

import csv
import io
import json
from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Any

from prioritizer.core import UseCaseRecord, sort
from prioritizer.scoring import WeightConfig, score_records
from prioritizer.types.core import SnapshotDict


def export_filename(extension: str) -> str:
    return f"prioritization-{datetime.now(UTC).date().isoformat()}.{extension}"


def export_json(records: Iterable[UseCaseRecord], weights: WeightConfig) -> str:
    """``{"scheme", "weights", "rows"}`` with each row carrying its score."""
    scored = sort(score_records(records, weights), "score", "desc")
    payload = {
        "scheme": weights.scheme,
        "weights": dict(weights.weights),
        "rows": [{**s.record.to_dict(), "score": s.score} for s in scored],
    }
    return json.dumps(payload, indent=2, default=str) + "\n"


def export_csv(records: Iterable[UseCaseRecord], weights: WeightConfig) -> str:
    """One row per record, highest score first."""
    scheme = weights.definition
    buf = io.StringIO()
    writer = csv.writer(buf, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
    writer.writerow(["Name", "Score", *[f.label for f in scheme.factors], "Notes"])
    for s in sort(score_records(records, weights), "score", "desc"):
        writer.writerow(
            [
                s.record.name,
                s.score,
                *[s.record.factors.get(f.key, "") for f in scheme.factors],
                s.record.notes,
            ]
        )
    return buf.getvalue()


def import_json(text: str) -> SnapshotDict:
    """Parse a JSON export back into a snapshot document.

    Keeps whichever of ``rows``, ``weights``, ``scheme`` and ``theme`` the file
    carries. Raises ValueError when the text is not an export.
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        msg = f"Invalid JSON file: {exc}"
        raise ValueError(msg) from exc
    if not isinstance(data, dict):
        msg = "Invalid JSON file: expected an object with rows and/or weights"
        raise ValueError(msg)
    rows = data.get("rows")
    weights = data.get("weights")
    if rows is None and weights is None:
        msg = "Invalid JSON file: it has neither rows nor weights"
        raise ValueError(msg)
    if rows is not None and not isinstance(rows, list):
        msg = "Invalid JSON file: rows must be a list"
        raise ValueError(msg)
    if weights is not None and not isinstance(weights, dict):
        msg = "Invalid JSON file: weights must be an object"
        raise ValueError(msg)
    result: dict[str, Any] = {key: data[key] for key in ("rows", "weights", "scheme", "theme") if key in data}
    return result  # type: ignore[return-value]
