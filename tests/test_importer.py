"""Tests for importing board cards into the record store."""

from __future__ import annotations

from prioritizer import metadata
from prioritizer.core import RecordStore, RemoteRef
from prioritizer.importer import IMPORT_SEED, card_factors, import_list
from tests._fakes import FakeCardAPI, card


class TestCardFactors:
    def test_no_metadata_uses_seed(self, store: RecordStore) -> None:
        factors = card_factors(store, card("c1", description="plain notes"))
        assert all(v == IMPORT_SEED for v in factors.values())

    def test_decoded_values_override_seed(self, store: RecordStore) -> None:
        desc = "notes\n\nprio-meta: ref=#4; impact=5; risk=1"
        factors = card_factors(store, card("c1", description=desc))
        assert factors["impact"] == 5
        assert factors["risk"] == 1
        assert factors["ttv"] == IMPORT_SEED

    def test_out_of_range_value_ignored(self, store: RecordStore) -> None:
        factors = card_factors(store, card("c1", description="prio-meta: impact=9; align=4"))
        assert factors["impact"] == IMPORT_SEED
        assert factors["align"] == 4

    def test_other_scheme_ignored(self, store: RecordStore) -> None:
        factors = card_factors(store, card("c1", description="prio-meta: scheme=rice; impact=5"))
        assert factors["impact"] == IMPORT_SEED

    def test_without_defaults(self, store: RecordStore) -> None:
        assert card_factors(store, card("c1", description="prio-meta: impact=2"), with_defaults=False) == {"impact": 2}
        assert card_factors(store, card("c1"), with_defaults=False) == {}


class TestImportList:
    async def test_new_cards_added_in_board_order(self, store: RecordStore) -> None:
        store.create("Existing local")
        api = FakeCardAPI([card("c1", "First"), card("c2", "Second"), card("c3", "Elsewhere", list_id="l2")])
        report = await import_list(store, api, "l1")
        assert report.added == 2
        assert [r.name for r in store.records()] == ["First", "Second", "Existing local"]

    async def test_new_records_linked_and_flagged(self, store: RecordStore) -> None:
        api = FakeCardAPI([card("c1", "First", "Notes here\n\nprio-meta: impact=4", short_id=9)])
        await import_list(store, api, "l1")
        record = store.find_by_remote("c1")
        assert record is not None
        assert record.imported
        assert record.remote_ref == RemoteRef(card_id="c1", short_id=9, short_link="sl-c1")
        assert record.notes == "Notes here"
        assert record.factors["impact"] == 4
        assert not record.selected

    async def test_archived_cards_skipped(self, store: RecordStore) -> None:
        api = FakeCardAPI([card("c1", "Live"), card("c2", "Old", closed=True)])
        report = await import_list(store, api, "l1")
        assert report.added == 1
        assert store.find_by_remote("c2") is None

    async def test_reimport_refreshes_instead_of_duplicating(self, store: RecordStore) -> None:
        api = FakeCardAPI([card("c1", "First", "prio-meta: impact=2")])
        await import_list(store, api, "l1")
        api.cards["c1"] = card("c1", "First renamed", "New notes\n\nprio-meta: impact=5")
        report = await import_list(store, api, "l1")
        assert report.refreshed == 1
        assert report.added == 0
        assert len(store) == 1
        record = store.find_by_remote("c1")
        assert record is not None
        assert record.name == "First renamed"
        assert record.notes == "New notes"
        assert record.factors["impact"] == 5

    async def test_refresh_keeps_local_factors_without_metadata(self, store: RecordStore) -> None:
        record = store.create("Local", factors={"impact": 5, "align": 1}, remote_ref=RemoteRef(card_id="c1"))
        api = FakeCardAPI([card("c1", "Local", "")])
        report = await import_list(store, api, "l1")
        assert report.unchanged == 1
        assert record.factors["impact"] == 5
        assert record.factors["align"] == 1

    async def test_pushed_card_roundtrips(self, store: RecordStore) -> None:
        desc = metadata.embed("Prose", {"ref": "#3", "scheme": "weighted", "impact": 1, "buyin": 5})
        api = FakeCardAPI([card("c9", "Pushed", desc)])
        await import_list(store, api, "l1")
        record = store.find_by_remote("c9")
        assert record is not None
        assert record.factors["impact"] == 1
        assert record.factors["buyin"] == 5
        assert record.notes == "Prose"

    async def test_blank_card_name(self, store: RecordStore) -> None:
        api = FakeCardAPI([card("c1", " ")])
        await import_list(store, api, "l1")
        record = store.find_by_remote("c1")
        assert record is not None
        assert record.name == "Card"
