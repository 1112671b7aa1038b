"""Replay the local ranking onto the board using only "move card to top".

To end with ``[r1, r2, ..., rn]`` top-down, the cards are moved to the top in
reverse: ``rn`` first, ``r1`` last. Each move pushes the previous one down by
one place.

The run stops at the first failed move. Moves already made are not undone,
so the report says how far it got.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from prioritizer.remote import CardAPI, RemoteCallError

if TYPE_CHECKING:
    from prioritizer.core import UseCaseRecord
    from prioritizer.types.api import OrderReportDict

logger = logging.getLogger(__name__)


@dataclass
class OrderReport:
    moved: int = 0
    total: int = 0
    error: str | None = None

    @property
    def completed(self) -> bool:
        return self.error is None and self.moved == self.total

    def to_dict(self) -> OrderReportDict:
        return {"moved": self.moved, "total": self.total, "completed": self.completed, "error": self.error}

    def status_line(self) -> str:
        if self.completed:
            return f"Reordered {self.total} card(s) on the board."
        return f"Reorder stopped after {self.moved} of {self.total} move(s): {self.error}"


class OrderSynchronizer:
    def __init__(self, api: CardAPI) -> None:
        self._api = api

    async def apply(self, items: Sequence[UseCaseRecord | Any]) -> OrderReport:
        """Make the board order match *items* (highest priority first).

        Accepts records or scored records; entries without a card are skipped.
        """
        targets: list[str] = []
        for item in items:
            record = item.record if hasattr(item, "record") else item
            ref = record.remote_ref
            if ref is not None and ref.target:
                targets.append(ref.target)

        report = OrderReport(total=len(targets))
        for card_id in reversed(targets):
            try:
                await self._api.move_card_to_top(card_id)
            except RemoteCallError as exc:
                report.error = f"moving card {card_id} failed: {exc}"
                logger.warning(
                    "Reorder aborted after %d of %d moves",
                    report.moved,
                    report.total,
                    extra={"op": "reorder", "card_id": card_id, "error": str(exc)},
                )
                return report
            report.moved += 1
        logger.info("Reordered %d cards", report.total, extra={"op": "reorder"})
        return report
