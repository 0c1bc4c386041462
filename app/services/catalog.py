"""Search client for The Movie Database (TMDB)."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from ..config import DEFAULT_PLACEHOLDER_IMAGE, Settings
from ..errors import CatalogUnavailable
from ..models import SearchPage, SearchResult

logger = logging.getLogger(__name__)

IMAGE_BASE_URL = "https://image.tmdb.org/t/p/w500"
SEARCH_ENDPOINT = "/search/multi"


def image_url(
    path: str | None,
    *,
    base_url: str = IMAGE_BASE_URL,
    placeholder: str = DEFAULT_PLACEHOLDER_IMAGE,
) -> str:
    """Return a displayable poster URL, or the placeholder when there is none."""

    if not path:
        return placeholder
    return f"{base_url}{path}"


class MediaCatalogClient:
    """Client translating free-text queries into movie and series results."""

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient):
        self._settings = settings
        self._client = http_client

    def image_url(self, path: str | None) -> str:
        return image_url(
            path,
            base_url=self._settings.tmdb_image_base_url,
            placeholder=self._settings.placeholder_image,
        )

    async def search(self, query: str | None) -> SearchPage:
        """Return the first page of movie and series matches for ``query``.

        Empty or whitespace-only queries short-circuit without touching the
        network. Upstream
        failures raise :class:`CatalogUnavailable`; there is no retry.
        """

        if not query or not query.strip():
            return SearchPage.empty()
        if not self._settings.tmdb_api_key:
            raise CatalogUnavailable("TMDB API key is not configured")

        params = {
            "query": query,
            "include_adult": "false",
            "page": 1,
            "api_key": self._settings.tmdb_api_key,
        }
        try:
            response = await self._client.get(SEARCH_ENDPOINT, params=params)
        except httpx.HTTPError as exc:
            logger.warning("TMDB search for %r could not be sent: %s", query, exc)
            raise CatalogUnavailable(str(exc) or "TMDB request failed") from exc

        if response.status_code >= 400:
            logger.warning(
                "TMDB search for %r failed with status %s", query, response.status_code
            )
            raise CatalogUnavailable(f"TMDB API error: {response.reason_phrase}")

        try:
            payload = response.json()
        except ValueError as exc:
            raise CatalogUnavailable("TMDB returned an unreadable response") from exc
        if not isinstance(payload, dict):
            raise CatalogUnavailable("TMDB returned an unexpected payload")

        return SearchPage(
            page=self._coerce_int(payload.get("page"), default=1),
            results=self._filter_results(payload.get("results")),
            total_pages=self._coerce_int(payload.get("total_pages"), default=0),
            total_results=self._coerce_int(payload.get("total_results"), default=0),
        )

    @staticmethod
    def _filter_results(raw_results: Any) -> list[SearchResult]:
        if not isinstance(raw_results, list):
            return []
        results: list[SearchResult] = []
        for entry in raw_results:
            if not isinstance(entry, dict):
                continue
            result = SearchResult.from_tmdb(entry)
            if result is not None:
                results.append(result)
        return results

    @staticmethod
    def _coerce_int(value: Any, *, default: int) -> int:
        try:
            return int(value)
        except (TypeError, ValueError):
            return default
