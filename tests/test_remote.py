"""Tests for the Trello-backed card API client."""

from __future__ import annotations

from collections.abc import Callable

import httpx
import pytest

from prioritizer.remote import RemoteCallError, RemoteCard, TrelloClient

Handler = Callable[[httpx.Request], httpx.Response]


def _client(handler: Handler) -> TrelloClient:
    return TrelloClient(key="k", token="t", base_url="https://trello.test/1", transport=httpx.MockTransport(handler))


CARD = {
    "id": "5f00",
    "name": "Churn model",
    "desc": "notes",
    "idShort": 12,
    "shortLink": "AbC",
    "idList": "l1",
    "pos": 16384,
    "closed": False,
}


class TestRemoteCard:
    def test_from_api(self) -> None:
        card = RemoteCard.from_api(CARD)
        assert card == RemoteCard(
            id="5f00",
            name="Churn model",
            description="notes",
            short_id=12,
            short_link="AbC",
            list_id="l1",
            position=16384.0,
            closed=False,
        )

    def test_missing_fields(self) -> None:
        card = RemoteCard.from_api({"id": "x", "idShort": "7", "pos": "top"})
        assert card.short_id is None
        assert card.position == 0.0
        assert card.description == ""


class TestTrelloClient:
    async def test_credentials_sent_as_query_params(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=[{"id": "b1", "name": "Roadmap"}])

        async with _client(handler) as client:
            boards = await client.list_boards()
        assert [b.name for b in boards] == ["Roadmap"]
        assert seen[0].url.path == "/1/members/me/boards"
        assert seen[0].url.params["key"] == "k"
        assert seen[0].url.params["token"] == "t"

    async def test_list_lists(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/1/boards/b1/lists"
            return httpx.Response(200, json=[{"id": "l1", "name": "Backlog"}])

        async with _client(handler) as client:
            lists = await client.list_lists("b1")
        assert lists[0].id == "l1"
        assert lists[0].board_id == "b1"

    async def test_list_cards(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/1/lists/l1/cards"
            return httpx.Response(200, json=[CARD])

        async with _client(handler) as client:
            cards = await client.list_cards("l1")
        assert cards[0].short_id == 12

    async def test_create_card(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.method == "POST"
            assert request.url.path == "/1/cards"
            assert request.url.params["idList"] == "l1"
            assert request.url.params["name"] == "Churn model"
            assert "idCardSource" not in request.url.params
            return httpx.Response(200, json=CARD)

        async with _client(handler) as client:
            card = await client.create_card("l1", "Churn model", "notes")
        assert card.id == "5f00"

    async def test_copy_card(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.params["idCardSource"] == "old1"
            assert request.url.params["keepFromSource"] == "all"
            return httpx.Response(200, json=CARD)

        async with _client(handler) as client:
            await client.create_card("l1", "Churn model", "notes", source_card_id="old1")

    async def test_update_card_sends_only_given_fields(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.method == "PUT"
            assert request.url.path == "/1/cards/5f00"
            assert request.url.params["desc"] == "new"
            assert "name" not in request.url.params
            assert "idList" not in request.url.params
            return httpx.Response(200, json=CARD)

        async with _client(handler) as client:
            await client.update_card("5f00", description="new")

    async def test_move_to_top(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.method == "PUT"
            assert request.url.params["pos"] == "top"
            return httpx.Response(200, json=CARD)

        async with _client(handler) as client:
            await client.move_card_to_top("5f00")

    async def test_error_status(self) -> None:
        async with _client(lambda _r: httpx.Response(404, text="The requested resource was not found.")) as client:
            with pytest.raises(RemoteCallError) as excinfo:
                await client.update_card("gone", name="x")
        assert excinfo.value.status == 404
        assert "not found" in str(excinfo.value)

    async def test_transport_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectTimeout("timed out", request=request)

        async with _client(handler) as client:
            with pytest.raises(RemoteCallError) as excinfo:
                await client.list_boards()
        assert excinfo.value.status is None

    async def test_create_without_card_payload(self) -> None:
        async with _client(lambda _r: httpx.Response(200, json={})) as client:
            with pytest.raises(RemoteCallError, match="returned no card"):
                await client.create_card("l1", "x", "")

    async def test_non_json_body(self) -> None:
        async with _client(lambda _r: httpx.Response(200, text="<html>")) as client:
            with pytest.raises(RemoteCallError, match="non-JSON"):
                await client.list_boards()

    def test_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TRELLO_KEY", "envkey")
        monkeypatch.setenv("TRELLO_TOKEN", "envtoken")
        client = TrelloClient.from_env(base_url="https://proxy.test/trello")
        assert client._client.params["key"] == "envkey"
        assert str(client._client.base_url).startswith("https://proxy.test/trello")
