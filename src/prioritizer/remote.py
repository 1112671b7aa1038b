"""Remote card API: the narrow capability set used against the board.

The board is owned by someone else and reachable only through list / create /
update / move-to-top calls with no transactional guarantees. ``CardAPI`` is
the seam the reconciler, order synchronizer and importer depend on;
``TrelloClient`` is the production implementation over ``httpx``.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from time import perf_counter
from typing import Any, Protocol

import httpx

logger = logging.getLogger(__name__)

TRELLO_API_BASE = "https://api.trello.com/1"
DEFAULT_TIMEOUT = 15.0


class RemoteCallError(Exception):
    """A card API call returned a non-success status or never completed."""

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


@dataclass(frozen=True)
class Board:
    id: str
    name: str


@dataclass(frozen=True)
class CardList:
    id: str
    name: str
    board_id: str = ""


@dataclass(frozen=True)
class RemoteCard:
    id: str
    name: str = ""
    description: str = ""
    short_id: int | None = None
    short_link: str = ""
    list_id: str = ""
    position: float = 0.0
    closed: bool = False

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> RemoteCard:
        """Build from a Trello card payload."""
        short_id = data.get("idShort")
        pos = data.get("pos")
        return cls(
            id=str(data.get("id") or ""),
            name=str(data.get("name") or ""),
            description=str(data.get("desc") or ""),
            short_id=short_id if isinstance(short_id, int) and not isinstance(short_id, bool) else None,
            short_link=str(data.get("shortLink") or ""),
            list_id=str(data.get("idList") or ""),
            position=float(pos) if isinstance(pos, int | float) else 0.0,
            closed=bool(data.get("closed", False)),
        )


class CardAPI(Protocol):
    """Operations the core needs from the board. All calls raise RemoteCallError on failure."""

    async def list_boards(self) -> list[Board]: ...

    async def list_lists(self, board_id: str) -> list[CardList]: ...

    async def list_cards(self, list_id: str) -> list[RemoteCard]: ...

    async def create_card(
        self,
        list_id: str,
        name: str,
        description: str,
        *,
        source_card_id: str | None = None,
    ) -> RemoteCard: ...

    async def update_card(
        self,
        card_id: str,
        *,
        name: str | None = None,
        description: str | None = None,
        list_id: str | None = None,
    ) -> RemoteCard: ...

    async def move_card_to_top(self, card_id: str) -> None: ...


class TrelloClient:
    """CardAPI over the Trello REST API (or a proxy exposing the same paths).

    Credentials go out as ``key``/``token`` query parameters. Pass a custom
    *transport* to route requests somewhere other than the network.
    """

    def __init__(
        self,
        *,
        key: str | None = None,
        token: str | None = None,
        base_url: str = TRELLO_API_BASE,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        params: dict[str, str] = {}
        if key:
            params["key"] = key
        if token:
            params["token"] = token
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            params=params,
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_env(cls, *, base_url: str | None = None, transport: httpx.AsyncBaseTransport | None = None) -> TrelloClient:
        """Build a client from TRELLO_KEY / TRELLO_TOKEN."""
        return cls(
            key=os.environ.get("TRELLO_KEY"),
            token=os.environ.get("TRELLO_TOKEN"),
            base_url=base_url or TRELLO_API_BASE,
            transport=transport,
        )

    async def __aenter__(self) -> TrelloClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, *, params: dict[str, Any] | None = None) -> Any:
        start = perf_counter()
        try:
            response = await self._client.request(method, path, params=params)
        except httpx.HTTPError as exc:
            logger.warning(
                "Card API %s %s failed: %s",
                method,
                path,
                exc,
                extra={"op": f"{method} {path}", "error": str(exc)},
            )
            msg = f"{method} {path} failed: {exc}"
            raise RemoteCallError(msg) from exc
        duration_ms = round((perf_counter() - start) * 1000, 1)
        if response.is_error:
            body = response.text.strip() or response.reason_phrase
            logger.warning(
                "Card API %s %s returned %s",
                method,
                path,
                response.status_code,
                extra={"op": f"{method} {path}", "duration_ms": duration_ms, "error": body},
            )
            msg = f"{method} {path} returned {response.status_code}: {body}"
            raise RemoteCallError(msg, status=response.status_code)
        logger.debug("Card API %s %s ok", method, path, extra={"op": f"{method} {path}", "duration_ms": duration_ms})
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            msg = f"{method} {path} returned a non-JSON body"
            raise RemoteCallError(msg, status=response.status_code) from exc

    async def list_boards(self) -> list[Board]:
        data = await self._request("GET", "/members/me/boards", params={"fields": "name"})
        return [Board(id=str(b["id"]), name=str(b.get("name") or "")) for b in data or []]

    async def list_lists(self, board_id: str) -> list[CardList]:
        data = await self._request("GET", f"/boards/{board_id}/lists", params={"fields": "name,idBoard"})
        return [CardList(id=str(item["id"]), name=str(item.get("name") or ""), board_id=str(item.get("idBoard") or board_id)) for item in data or []]

    async def list_cards(self, list_id: str) -> list[RemoteCard]:
        data = await self._request("GET", f"/lists/{list_id}/cards")
        return [RemoteCard.from_api(c) for c in data or []]

    async def create_card(
        self,
        list_id: str,
        name: str,
        description: str,
        *,
        source_card_id: str | None = None,
    ) -> RemoteCard:
        params: dict[str, Any] = {"idList": list_id, "name": name, "desc": description}
        if source_card_id:
            params["idCardSource"] = source_card_id
            params["keepFromSource"] = "all"
        data = await self._request("POST", "/cards", params=params)
        return _card_or_error(data, "POST /cards")

    async def update_card(
        self,
        card_id: str,
        *,
        name: str | None = None,
        description: str | None = None,
        list_id: str | None = None,
    ) -> RemoteCard:
        params: dict[str, Any] = {}
        if name is not None:
            params["name"] = name
        if description is not None:
            params["desc"] = description
        if list_id:
            params["idList"] = list_id
        data = await self._request("PUT", f"/cards/{card_id}", params=params)
        return _card_or_error(data, f"PUT /cards/{card_id}")

    async def move_card_to_top(self, card_id: str) -> None:
        await self._request("PUT", f"/cards/{card_id}", params={"pos": "top"})


def _card_or_error(data: Any, op: str) -> RemoteCard:
    if not isinstance(data, dict) or not data.get("id"):
        msg = f"{op} returned no card"
        raise RemoteCallError(msg)
    return RemoteCard.from_api(data)
