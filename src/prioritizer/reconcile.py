"""Push selected records onto the board.

Each selected record is classified once, synchronously, before any remote
call is made:

* no ``remote_ref``          -> CREATE in the destination list
* ``remote_ref`` present     -> UPDATE the linked card

An UPDATE that the board rejects (card deleted, archived, no permission, any
non-success status) falls back to a COPY when a destination list is set: a
new card is created from the old one and the record is re-pointed at it.

Items run one at a time, CREATEs first. A failing item is counted and the
batch moves on; only the first error message is kept for the status line.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Sequence
from dataclasses import dataclass, field
from time import perf_counter
from typing import TYPE_CHECKING

from prioritizer import metadata
from prioritizer.core import DuplicateRemoteRefError, RecordStore, RemoteRef, UseCaseRecord
from prioritizer.remote import CardAPI, RemoteCallError, RemoteCard
from prioritizer.scoring import compute_score

if TYPE_CHECKING:
    from prioritizer.scoring import WeightConfig
    from prioritizer.types.api import SyncReportDict

logger = logging.getLogger(__name__)


class SyncValidationError(ValueError):
    """The batch cannot start: nothing selected, or CREATEs without a destination list."""


@dataclass
class SyncReport:
    created: int = 0
    updated: int = 0
    copied: int = 0
    failed: int = 0
    first_error: str | None = None

    @property
    def ok(self) -> bool:
        return self.failed == 0

    def fail(self, record: UseCaseRecord, message: str) -> None:
        self.failed += 1
        if self.first_error is None:
            self.first_error = f"{record.name}: {message}"

    def to_dict(self) -> SyncReportDict:
        return {
            "created": self.created,
            "updated": self.updated,
            "copied": self.copied,
            "failed": self.failed,
            "first_error": self.first_error,
        }

    def status_line(self) -> str:
        line = f"Created {self.created}, updated {self.updated}, copied {self.copied} card(s)"
        if self.failed:
            line += f"; {self.failed} failed (first error: {self.first_error})"
        return line + "."


@dataclass
class SyncPlan:
    creates: list[UseCaseRecord] = field(default_factory=list)
    updates: list[UseCaseRecord] = field(default_factory=list)
    conflicts: list[UseCaseRecord] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.creates) + len(self.updates) + len(self.conflicts)


def classify(records: Sequence[UseCaseRecord]) -> SyncPlan:
    """Split selected records into CREATE / UPDATE; a card claimed twice is a conflict."""
    plan = SyncPlan()
    seen: set[str] = set()
    for record in records:
        if not record.selected:
            continue
        ref = record.remote_ref
        if ref is None or not ref.target:
            plan.creates.append(record)
            continue
        if ref.target in seen:
            plan.conflicts.append(record)
            continue
        seen.add(ref.target)
        plan.updates.append(record)
    return plan


class RemoteSyncReconciler:
    def __init__(self, store: RecordStore, api: CardAPI, *, weights: WeightConfig | None = None) -> None:
        self._store = store
        self._api = api
        self._weights = weights

    def plan(self, records: Sequence[UseCaseRecord] | None = None, *, list_id: str | None = None) -> SyncPlan:
        """Classify the batch and run pre-flight validation. Makes no remote calls."""
        candidates = self._store.selected() if records is None else list(records)
        plan = classify(candidates)
        if not len(plan):
            msg = "Select one or more records first"
            raise SyncValidationError(msg)
        if plan.creates and not list_id:
            names = ", ".join(r.name for r in plan.creates[:3])
            more = f" and {len(plan.creates) - 3} more" if len(plan.creates) > 3 else ""
            msg = f"Choose a destination list before pushing new cards ({names}{more})"
            raise SyncValidationError(msg)
        return plan

    async def push(self, records: Sequence[UseCaseRecord] | None = None, *, list_id: str | None = None) -> SyncReport:
        plan = self.plan(records, list_id=list_id)
        report = SyncReport()
        start = perf_counter()

        for record in plan.conflicts:
            ref = record.remote_ref
            report.fail(record, f"card {ref.target if ref else '?'} is linked to another selected record")

        if list_id:
            for record in plan.creates:
                await self._create(record, list_id, report)

        for record in plan.updates:
            await self._update(record, list_id, report)

        logger.info(
            "Push finished: %s",
            report.status_line(),
            extra={"op": "push", "duration_ms": round((perf_counter() - start) * 1000, 1)},
        )
        return report

    # -- helpers -------------------------------------------------------------

    def _description(self, record: UseCaseRecord, ref: str) -> str:
        scheme = self._store.scheme
        fields: dict[str, object] = {"ref": ref, "scheme": scheme.name}
        fields.update({k: v for k, v in record.factors.items() if k in scheme.factor_keys})
        if self._weights is not None and self._weights.scheme == scheme.name:
            fields["score"] = compute_score(record, self._weights).score
        return metadata.embed(record.notes, fields)

    def _link(self, record: UseCaseRecord, card: RemoteCard) -> RemoteRef:
        ref = RemoteRef(card_id=card.id, short_id=card.short_id, short_link=card.short_link)
        try:
            self._store.attach_remote(record.id, ref)
        except KeyError:
            # Deleted locally while the call was in flight; the card stays on the board.
            logger.warning("Record %s vanished before card %s could be linked", record.id, card.id, extra={"record_id": record.id, "card_id": card.id})
        return ref

    async def _restamp(self, record: UseCaseRecord, ref: RemoteRef) -> None:
        """Best-effort rewrite of the card's metadata with its permanent reference."""
        try:
            await self._api.update_card(ref.target, description=self._description(record, ref.label))
        except RemoteCallError as exc:
            logger.warning(
                "Could not restamp card %s: %s",
                ref.target,
                exc,
                extra={"record_id": record.id, "card_id": ref.target, "error": str(exc)},
            )

    async def _create(self, record: UseCaseRecord, list_id: str, report: SyncReport) -> None:
        temporary = f"tmp-{uuid.uuid4().hex[:8]}"
        try:
            card = await self._api.create_card(list_id, record.name, self._description(record, temporary))
        except RemoteCallError as exc:
            report.fail(record, str(exc))
            return
        try:
            ref = self._link(record, card)
        except DuplicateRemoteRefError as exc:
            report.fail(record, str(exc))
            return
        report.created += 1
        if ref.short_id is not None or ref.short_link:
            await self._restamp(record, ref)

    async def _update(self, record: UseCaseRecord, list_id: str | None, report: SyncReport) -> None:
        ref = record.remote_ref
        if ref is None:
            # Unlinked locally after classification.
            report.fail(record, f"record {record.id} is no longer linked to a card")
            return
        description = self._description(record, ref.label)
        try:
            card = await self._api.update_card(ref.target, name=record.name, description=description, list_id=list_id)
            if card.closed:
                msg = f"card {ref.target} is archived"
                raise RemoteCallError(msg)
        except RemoteCallError as exc:
            if not list_id:
                report.fail(record, str(exc))
                return
            logger.info(
                "Update of card %s failed (%s); copying into list %s",
                ref.target,
                exc,
                list_id,
                extra={"record_id": record.id, "card_id": ref.target, "error": str(exc)},
            )
            await self._copy(record, ref, list_id, description, report)
            return

        refreshed = RemoteRef(
            card_id=card.id or ref.card_id,
            short_id=card.short_id if card.short_id is not None else ref.short_id,
            short_link=card.short_link or ref.short_link,
        )
        if refreshed != ref:
            try:
                self._store.attach_remote(record.id, refreshed)
            except (KeyError, DuplicateRemoteRefError) as exc:
                logger.warning("Could not refresh link for record %s: %s", record.id, exc, extra={"record_id": record.id})
        report.updated += 1

    async def _copy(self, record: UseCaseRecord, old: RemoteRef, list_id: str, description: str, report: SyncReport) -> None:
        try:
            card = await self._api.create_card(list_id, record.name, description, source_card_id=old.target)
        except RemoteCallError as exc:
            report.fail(record, f"update failed and copy failed: {exc}")
            return
        try:
            ref = self._link(record, card)
        except DuplicateRemoteRefError as exc:
            report.fail(record, str(exc))
            return
        report.copied += 1
        if ref.label != old.label:
            await self._restamp(record, ref)
