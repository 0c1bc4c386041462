"""Async client for the Cinetrack HTTP API."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from .errors import ErrorKind, kind_for_status
from .models import (
    MarkWatchedRequest,
    SearchPage,
    WatchedItem,
    WatchedItemCreate,
    WatchedItemUpdate,
    WatchlistItem,
    WatchlistItemCreate,
)
from .utils import extract_error_message

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """A request to the API completed with a non-success status."""

    def __init__(self, status_code: int, message: str, kind: ErrorKind) -> None:
        self.status_code = status_code
        self.message = message
        self.kind = kind
        super().__init__(message)


class CinetrackApiClient:
    """Thin wrapper translating API calls into typed models.

    The caller owns ``http_client``; its base URL, cookies and timeouts are
    used as configured.
    """

    def __init__(self, http_client: httpx.AsyncClient) -> None:
        self._client = http_client

    async def search(self, query: str) -> SearchPage:
        data = await self._request("GET", "/search", params={"query": query})
        return SearchPage.model_validate(data)

    async def list_watchlist(self) -> list[WatchlistItem]:
        data = await self._request("GET", "/watchlist")
        return [WatchlistItem.model_validate(entry) for entry in data or []]

    async def add_watchlist_item(self, payload: WatchlistItemCreate) -> WatchlistItem:
        data = await self._request("POST", "/watchlist", json=_dump(payload))
        return WatchlistItem.model_validate(data)

    async def remove_watchlist_item(self, item_id: int) -> None:
        await self._request("DELETE", "/watchlist", params={"id": item_id})

    async def mark_watched(
        self, watchlist_id: int, payload: MarkWatchedRequest
    ) -> WatchedItem:
        data = await self._request(
            "POST", f"/watchlist/{watchlist_id}/watched", json=_dump(payload)
        )
        return WatchedItem.model_validate(data)

    async def list_watched(self) -> list[WatchedItem]:
        data = await self._request("GET", "/watched")
        return [WatchedItem.model_validate(entry) for entry in data or []]

    async def add_watched(self, payload: WatchedItemCreate) -> WatchedItem:
        data = await self._request("POST", "/watched", json=_dump(payload))
        return WatchedItem.model_validate(data)

    async def update_watched(
        self, item_id: int, payload: WatchedItemUpdate
    ) -> WatchedItem:
        data = await self._request(
            "PATCH",
            f"/watched/{item_id}",
            json=payload.model_dump(
                mode="json", by_alias=True, include=payload.model_fields_set
            ),
        )
        return WatchedItem.model_validate(data)

    async def delete_watched(self, item_id: int) -> None:
        await self._request("DELETE", f"/watched/{item_id}")

    async def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        response = await self._client.request(method, url, **kwargs)
        data = _response_json(response)
        if response.status_code >= 400:
            reported = data.get("kind") if isinstance(data, dict) else None
            message = extract_error_message(
                data, fallback=response.reason_phrase or None
            )
            logger.debug(
                "%s %s failed with %s: %s", method, url, response.status_code, message
            )
            raise ApiError(
                response.status_code,
                message,
                kind_for_status(response.status_code, reported),
            )
        return data


def _dump(payload: Any) -> dict[str, Any]:
    return payload.model_dump(mode="json", by_alias=True, exclude_none=True)


def _response_json(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None
