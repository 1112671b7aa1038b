"""Tests for replaying the local ranking onto the board."""

from __future__ import annotations

from prioritizer.core import RecordStore, RemoteRef, sort
from prioritizer.ordering import OrderSynchronizer
from prioritizer.scoring import WeightConfig, score_records
from tests._fakes import FakeCardAPI, card


def _linked(store: RecordStore, *names: str) -> None:
    for name in names:
        store.create(name, remote_ref=RemoteRef(card_id=f"c-{name.lower()}"))


class TestOrderSynchronizer:
    async def test_moves_in_reverse(self, store: RecordStore) -> None:
        _linked(store, "A", "B", "C")
        api = FakeCardAPI([card("c-c"), card("c-a"), card("c-b")])
        report = await OrderSynchronizer(api).apply(store.records())
        assert api.calls_of("move_card_to_top") == ["c-c", "c-b", "c-a"]
        assert api.order == ["c-a", "c-b", "c-c"]
        assert report.completed
        assert report.to_dict() == {"moved": 3, "total": 3, "completed": True, "error": None}

    async def test_unlinked_records_skipped(self, store: RecordStore) -> None:
        _linked(store, "A")
        store.create("Local only")
        api = FakeCardAPI([card("c-a")])
        report = await OrderSynchronizer(api).apply(store.records())
        assert report.total == 1
        assert api.calls_of("move_card_to_top") == ["c-a"]

    async def test_stops_on_first_failure(self, store: RecordStore) -> None:
        _linked(store, "A", "B", "C")
        api = FakeCardAPI([card("c-a"), card("c-b"), card("c-c")])
        api.fail_moves.add("c-b")
        report = await OrderSynchronizer(api).apply(store.records())
        assert api.calls_of("move_card_to_top") == ["c-c", "c-b"]
        assert report.moved == 1
        assert not report.completed
        assert "c-b" in (report.error or "")
        assert "stopped after 1 of 3" in report.status_line()

    async def test_accepts_scored_records(self, store: RecordStore, weights: WeightConfig) -> None:
        low = store.create("Low", factors={"impact": 1}, remote_ref=RemoteRef(card_id="c-low"))
        high = store.create("High", factors={"impact": 5}, remote_ref=RemoteRef(card_id="c-high"))
        api = FakeCardAPI([card("c-low"), card("c-high")])
        ranked = sort(score_records([low, high], weights), "score", "desc")
        await OrderSynchronizer(api).apply(ranked)
        assert api.order[:2] == ["c-high", "c-low"]

    async def test_empty(self) -> None:
        api = FakeCardAPI()
        report = await OrderSynchronizer(api).apply([])
        assert report.completed
        assert api.calls == []
