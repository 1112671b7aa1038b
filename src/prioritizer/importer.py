"""Import cards from a board list into the record store."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from prioritizer import metadata
from prioritizer.core import RecordStore, RemoteRef
from prioritizer.remote import CardAPI, RemoteCard
from prioritizer.scoring import default_factors

if TYPE_CHECKING:
    from prioritizer.types.api import ImportReportDict

logger = logging.getLogger(__name__)

# Seed for factors a card carries no metadata for.
IMPORT_SEED = 3


@dataclass
class ImportReport:
    added: int = 0
    refreshed: int = 0
    unchanged: int = 0

    def to_dict(self) -> ImportReportDict:
        return {"added": self.added, "refreshed": self.refreshed, "unchanged": self.unchanged}

    def status_line(self) -> str:
        return f"Imported {self.added} card(s), refreshed {self.refreshed}, {self.unchanged} unchanged."


def card_factors(store: RecordStore, card: RemoteCard, *, with_defaults: bool = True) -> dict[str, int]:
    """Factor values carried in *card*'s description.

    With *with_defaults*, factors that are absent or invalid are filled from
    the scheme defaults; otherwise only the decoded values are returned.
    """
    values = default_factors(store.scheme, IMPORT_SEED) if with_defaults else {}
    decoded = metadata.decode(card.description)
    if decoded is None:
        return values
    if decoded.get("scheme", store.scheme.name) != store.scheme.name:
        logger.info("Card %s was scored with scheme %s; using defaults", card.id, decoded.get("scheme"), extra={"card_id": card.id})
        return values
    for key, raw in metadata.factor_fields(decoded, store.scheme.factor_keys).items():
        try:
            values[key] = store.scheme.factor(key).coerce(raw)
        except ValueError as exc:
            logger.debug("Card %s: ignoring %s (%s)", card.id, key, exc, extra={"card_id": card.id})
    return values


def _card_name(card: RemoteCard) -> str:
    return " ".join("".join(ch if ch.isprintable() else " " for ch in card.name).split()) or "Card"


async def import_list(store: RecordStore, api: CardAPI, list_id: str) -> ImportReport:
    """Pull every card in *list_id* into *store*.

    Cards already linked to a record refresh that record's text and factors.
    New cards are inserted at the front in board order.
    """
    cards = await api.list_cards(list_id)
    report = ImportReport()
    new_cards: list[RemoteCard] = []

    for card in cards:
        if card.closed:
            continue
        existing = store.find_by_remote(card.id)
        if existing is None:
            new_cards.append(card)
            continue
        name = _card_name(card) if card.name.strip() else existing.name
        notes = metadata.strip(card.description)
        factors = card_factors(store, card, with_defaults=False)
        if existing.name == name and existing.notes == notes and existing.factors == {**existing.factors, **factors}:
            report.unchanged += 1
            continue
        store.update(existing.id, name=name, notes=notes, factors=factors)
        report.refreshed += 1

    # Insert in reverse so the first card on the board ends up first locally.
    for card in reversed(new_cards):
        store.create(
            _card_name(card),
            metadata.strip(card.description),
            card_factors(store, card),
            imported=True,
            remote_ref=RemoteRef(card_id=card.id, short_id=card.short_id, short_link=card.short_link),
            front=True,
        )
        report.added += 1

    logger.info("%s", report.status_line(), extra={"op": "import"})
    return report
