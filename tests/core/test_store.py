"""Tests for RecordStore CRUD, selection, remote links and projections."""

from __future__ import annotations

import json

import pytest

from prioritizer.core import (
    DuplicateRemoteRefError,
    RecordStore,
    RemoteRef,
    StoreEvent,
    UseCaseRecord,
    search,
    sort,
)


class TestCreate:
    def test_defaults_seed_every_factor(self, store: RecordStore) -> None:
        record = store.create("Forecasting")
        assert set(record.factors) == set(store.scheme.factor_keys)
        assert all(v == 3 for v in record.factors.values())

    def test_explicit_factors_override_seed(self, store: RecordStore) -> None:
        record = store.create("Forecasting", factors={"impact": "5"}, seed=1)
        assert record.factors["impact"] == 5
        assert record.factors["ttv"] == 1

    def test_name_is_sanitized(self, store: RecordStore) -> None:
        assert store.create("  Spaced  ").name == "Spaced"

    def test_empty_name_rejected(self, store: RecordStore) -> None:
        with pytest.raises(ValueError, match="empty"):
            store.create("   ")

    def test_out_of_range_factor_rejected(self, store: RecordStore) -> None:
        with pytest.raises(ValueError, match="between 0 and 5"):
            store.create("Forecasting", factors={"impact": 9})
        assert len(store) == 0

    def test_unknown_factor_rejected(self, store: RecordStore) -> None:
        with pytest.raises(ValueError, match="Unknown factor"):
            store.create("Forecasting", factors={"reach": 3})

    def test_front_insert(self, store: RecordStore) -> None:
        store.create("First")
        store.create("Second", front=True)
        assert [r.name for r in store.records()] == ["Second", "First"]

    def test_ids_are_unique(self, store: RecordStore) -> None:
        ids = {store.create(f"R{i}").id for i in range(50)}
        assert len(ids) == 50

    def test_timestamps_set(self, store: RecordStore) -> None:
        record = store.create("Forecasting")
        assert record.created_at
        assert record.created_at == record.updated_at


class TestUpdate:
    def test_partial_patch_preserves_other_fields(self, store: RecordStore) -> None:
        record = store.create("Forecasting", "notes", {"impact": 4})
        store.update(record.id, name="Demand forecasting")
        assert record.name == "Demand forecasting"
        assert record.notes == "notes"
        assert record.factors["impact"] == 4

    def test_factor_patch_merges(self, store: RecordStore) -> None:
        record = store.create("Forecasting", factors={"impact": 4, "align": 2})
        store.update(record.id, factors={"align": 5})
        assert record.factors["impact"] == 4
        assert record.factors["align"] == 5

    def test_invalid_patch_changes_nothing(self, store: RecordStore) -> None:
        record = store.create("Forecasting", factors={"impact": 4})
        with pytest.raises(ValueError):
            store.update(record.id, name="Renamed", factors={"impact": 11})
        assert record.name == "Forecasting"
        assert record.factors["impact"] == 4

    def test_unpatchable_field(self, store: RecordStore) -> None:
        record = store.create("Forecasting")
        with pytest.raises(ValueError, match="Cannot patch"):
            store.update(record.id, selected=True)

    def test_missing_record(self, store: RecordStore) -> None:
        with pytest.raises(KeyError, match="Record not found"):
            store.update("uc-nope", name="x")

    def test_noop_patch_fires_no_event(self, store: RecordStore) -> None:
        record = store.create("Forecasting")
        events: list[StoreEvent] = []
        store.subscribe(events.append)
        store.update(record.id, name="Forecasting")
        assert events == []


class TestDelete:
    def test_delete(self, store: RecordStore) -> None:
        record = store.create("Forecasting")
        store.delete(record.id)
        assert record.id not in store
        with pytest.raises(KeyError):
            store.get(record.id)

    def test_deleted_id_not_reused(self, store: RecordStore) -> None:
        record = store.create("Forecasting")
        store.delete(record.id)
        with pytest.raises(ValueError, match="already used"):
            store.add(UseCaseRecord(id=record.id, name="Again"))

    def test_delete_releases_card(self, store: RecordStore) -> None:
        record = store.create("Forecasting", remote_ref=RemoteRef(card_id="c1"))
        store.delete(record.id)
        assert store.find_by_remote("c1") is None
        store.create("Other", remote_ref=RemoteRef(card_id="c1"))


class TestSelection:
    def test_selection_leaves_factors_alone(self, store: RecordStore) -> None:
        record = store.create("Forecasting", factors={"impact": 4})
        before = dict(record.factors)
        store.set_selected(record.id, True)
        assert record.selected
        assert record.factors == before

    def test_select_all_and_clear(self, store: RecordStore) -> None:
        for name in ("A", "B", "C"):
            store.create(name)
        assert store.select_all() == 3
        assert len(store.selected()) == 3
        assert store.clear_selection() == 3
        assert store.selected() == []

    def test_selection_event(self, store: RecordStore) -> None:
        record = store.create("Forecasting")
        events: list[StoreEvent] = []
        store.subscribe(events.append)
        store.set_selected(record.id, True)
        store.set_selected(record.id, True)
        assert events == [StoreEvent("selection", record.id)]


class TestRemoteLinks:
    def test_attach_marks_imported(self, store: RecordStore) -> None:
        record = store.create("Forecasting")
        store.attach_remote(record.id, RemoteRef(card_id="c1", short_id=4))
        assert record.imported
        assert store.find_by_remote("c1") is record

    def test_second_claim_rejected(self, store: RecordStore) -> None:
        store.create("A", remote_ref=RemoteRef(card_id="c1"))
        b = store.create("B")
        with pytest.raises(DuplicateRemoteRefError):
            store.attach_remote(b.id, RemoteRef(card_id="c1"))
        assert b.remote_ref is None

    def test_create_with_claimed_card_rejected(self, store: RecordStore) -> None:
        store.create("A", remote_ref=RemoteRef(card_id="c1"))
        with pytest.raises(DuplicateRemoteRefError):
            store.create("B", remote_ref=RemoteRef(card_id="c1"))

    def test_relink_releases_old_card(self, store: RecordStore) -> None:
        record = store.create("A", remote_ref=RemoteRef(card_id="c1"))
        store.attach_remote(record.id, RemoteRef(card_id="c2"))
        assert store.find_by_remote("c1") is None
        assert store.find_by_remote("c2") is record

    def test_detach(self, store: RecordStore) -> None:
        record = store.create("A", remote_ref=RemoteRef(card_id="c1"))
        store.detach_remote(record.id)
        assert record.remote_ref is None
        assert store.find_by_remote("c1") is None

    def test_ref_label(self) -> None:
        assert RemoteRef(card_id="abc", short_id=12).label == "#12"
        assert RemoteRef(card_id="abc", short_link="xYz").label == "xYz"
        assert RemoteRef(card_id="", short_link="xYz").target == "xYz"


class TestSnapshotRows:
    def test_rows_roundtrip(self, populated_store: RecordStore) -> None:
        rows = populated_store.to_rows()
        other = RecordStore(scheme="weighted")
        other.load_rows(rows)
        assert [r.to_dict() for r in other.records()] == [r.to_dict() for r in populated_store.records()]
        assert other.find_by_remote("c-b") is not None

    def test_rows_are_flat(self, store: RecordStore) -> None:
        store.create("A", factors={"impact": 2})
        row = store.to_rows()[0]
        assert row["impact"] == 2  # type: ignore[typeddict-item]
        assert "factors" not in row

    def test_duplicate_card_claims_unlinked_on_load(self, store: RecordStore) -> None:
        rows = [
            {"id": "uc-1", "name": "A", "remote_ref": {"card_id": "c1"}},
            {"id": "uc-2", "name": "B", "remote_ref": {"card_id": "c1"}},
        ]
        store.load_rows(rows)
        assert store.get("uc-1").remote_ref is not None
        assert store.get("uc-2").remote_ref is None

    def test_unreadable_rows_skipped(self, store: RecordStore) -> None:
        store.load_rows([{"name": "no id"}, {"id": "uc-1", "name": "ok"}])
        assert [r.id for r in store.records()] == ["uc-1"]

    def test_non_finite_values_skipped(self, store: RecordStore) -> None:
        rows = json.loads('[{"id": "uc-1", "name": "A", "impact": Infinity, "risk": NaN, "align": 4}]')
        store.load_rows(rows)
        record = store.get("uc-1")
        assert "impact" not in record.factors
        assert "risk" not in record.factors
        assert record.factors["align"] == 4

    def test_only_scheme_factors_loaded(self, store: RecordStore) -> None:
        store.load_rows([{"id": "uc-1", "name": "A", "impact": 2, "score": 77, "reach": 3}])
        assert store.get("uc-1").factors == {"impact": 2}

    def test_from_dict_without_scheme_keeps_numeric_keys(self) -> None:
        record = UseCaseRecord.from_dict({"id": "uc-1", "name": "A", "impact": 2.0, "custom": 1, "selected": True})
        assert record.factors == {"impact": 2, "custom": 1}
        assert record.selected

    def test_load_fires_single_reset(self, store: RecordStore) -> None:
        events: list[StoreEvent] = []
        store.subscribe(events.append)
        store.load_rows([{"id": "uc-1", "name": "A"}, {"id": "uc-2", "name": "B"}])
        assert events == [StoreEvent("reset")]

    def test_unsubscribe(self, store: RecordStore) -> None:
        events: list[StoreEvent] = []
        unsubscribe = store.subscribe(events.append)
        unsubscribe()
        store.create("A")
        assert events == []


class TestProjections:
    def test_search_matches_name_and_notes(self, populated_store: RecordStore) -> None:
        assert [r.name for r in search(populated_store.records(), "INVOICE")] == ["Invoice OCR"]
        assert [r.name for r in search(populated_store.records(), "at-risk")] == ["Churn prediction"]

    def test_blank_search_is_identity(self, populated_store: RecordStore) -> None:
        assert search(populated_store.records(), "  ") == populated_store.records()

    def test_sort_by_name_case_insensitive(self, store: RecordStore) -> None:
        for name in ("banana", "Apple", "cherry"):
            store.create(name)
        assert [r.name for r in sort(store.records(), "name", "asc")] == ["Apple", "banana", "cherry"]

    def test_sort_is_stable(self, store: RecordStore) -> None:
        for name in ("first", "second", "third"):
            store.create(name, factors={"impact": 2})
        ordered = sort(store.records(), "impact", "desc")
        assert [r.name for r in ordered] == ["first", "second", "third"]

    def test_sort_numeric(self, store: RecordStore) -> None:
        store.create("low", factors={"impact": 1})
        store.create("high", factors={"impact": 5})
        assert [r.name for r in sort(store.records(), "impact", "desc")] == ["high", "low"]

    def test_bad_direction(self, store: RecordStore) -> None:
        with pytest.raises(ValueError, match="direction"):
            sort(store.records(), "name", "sideways")  # type: ignore[arg-type]
