"""Client-side application state with optimistic updates.

The store is the client's projection of the server's watchlist and watched
collections plus the latest search results. Mutations are applied locally
before the network call and then either confirmed or compensated:

``Idle -> Optimistic -> Confirmed | RolledBack``

Every public coroutine returns a :class:`Confirmed` or :class:`RolledBack`
outcome instead of raising, and records failures on a per-operation
:class:`OperationStatus` so the presentation layer can surface them.
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Literal, Union

import pydantic

from .client import ApiError, CinetrackApiClient
from .errors import ErrorKind
from .models import (
    MarkWatchedRequest,
    SearchPage,
    SearchResult,
    WatchedItem,
    WatchedItemCreate,
    WatchedItemUpdate,
    WatchlistItem,
    WatchlistItemCreate,
)
from .utils import GENERIC_ERROR_MESSAGE, describe_validation_errors, utcnow

logger = logging.getLogger(__name__)

Operation = Literal[
    "search",
    "fetch_watchlist",
    "add_watchlist",
    "remove_watchlist",
    "mark_watched",
    "fetch_watched",
    "add_watched",
    "update_watched",
    "delete_watched",
]

OPERATIONS: tuple[Operation, ...] = (
    "search",
    "fetch_watchlist",
    "add_watchlist",
    "remove_watchlist",
    "mark_watched",
    "fetch_watched",
    "add_watched",
    "update_watched",
    "delete_watched",
)

Listener = Callable[["AppStore"], None]


@dataclass(slots=True)
class OperationStatus:
    """Loading flag and last error of one operation category."""

    in_flight: int = 0
    error: str | None = None

    @property
    def loading(self) -> bool:
        return self.in_flight > 0


@dataclass(frozen=True, slots=True)
class Optimistic:
    """A local change awaiting confirmation, with what is needed to undo it."""

    snapshot: Any
    index: int | None = None


@dataclass(frozen=True, slots=True)
class Confirmed:
    """The server accepted the operation; ``record`` is its authoritative result."""

    record: Any = None


@dataclass(frozen=True, slots=True)
class RolledBack:
    """The operation failed and every optimistic change was undone."""

    error: str
    kind: ErrorKind = ErrorKind.UNKNOWN


Outcome = Union[Confirmed, RolledBack]


class TemporaryIdAllocator:
    """Hands out strictly negative ids that never collide with server ids."""

    def __init__(self, start: int = -1) -> None:
        if start >= 0:
            raise ValueError("Temporary ids must be negative")
        self._counter = itertools.count(start, -1)

    def allocate(self) -> int:
        return next(self._counter)

    @staticmethod
    def is_temporary(item_id: int) -> bool:
        return item_id < 0


class AppStore:
    """Single-writer in-memory store shared by the presentation layer."""

    def __init__(
        self,
        api: CinetrackApiClient,
        *,
        id_allocator: TemporaryIdAllocator | None = None,
    ) -> None:
        self._api = api
        self._ids = id_allocator or TemporaryIdAllocator()
        self._listeners: list[Listener] = []
        self.search_results: list[SearchResult] = []
        self.watchlist: list[WatchlistItem] = []
        self.watched: list[WatchedItem] = []
        self.status: dict[Operation, OperationStatus] = {
            name: OperationStatus() for name in OPERATIONS
        }

    # Observation ---------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call ``listener`` after every state change; returns an unsubscribe hook."""

        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def is_loading(self, operation: Operation) -> bool:
        return self.status[operation].loading

    def error(self, operation: Operation) -> str | None:
        return self.status[operation].error

    def clear_error(self, operation: Operation) -> None:
        self.status[operation].error = None
        self._notify()

    def reset(self) -> None:
        """Forget all collections and statuses, e.g. after signing out."""

        self.search_results = []
        self.watchlist = []
        self.watched = []
        self.status = {name: OperationStatus() for name in OPERATIONS}
        self._notify()

    # Search --------------------------------------------------------------------

    async def search(self, query: str | None) -> Outcome:
        """Replace the search results; the last call to resolve wins."""

        if not query or not query.strip():
            self.search_results = []
            self._notify()
            return Confirmed(SearchPage.empty())

        self._begin("search")
        try:
            page = await self._api.search(query)
        except Exception as exc:
            return self._fail("search", exc)
        self.search_results = list(page.results)
        self._finish("search")
        return Confirmed(page)

    # Watchlist -----------------------------------------------------------------

    async def fetch_watchlist(self) -> Outcome:
        """Reload the watchlist; on failure the stale copy stays visible."""

        self._begin("fetch_watchlist")
        try:
            items = await self._api.list_watchlist()
        except Exception as exc:
            return self._fail("fetch_watchlist", exc)
        self.watchlist = list(items)
        self._finish("fetch_watchlist")
        return Confirmed(items)

    async def add_watchlist_item(
        self,
        catalog_id: int,
        title: str,
        poster_path: str | None = None,
        kind: str = "movie",
    ) -> Outcome:
        try:
            payload = WatchlistItemCreate(
                catalog_id=catalog_id, title=title, poster_path=poster_path, kind=kind
            )
        except pydantic.ValidationError as exc:
            return self._reject("add_watchlist", exc)

        pending = Optimistic(
            WatchlistItem(
                id=self._ids.allocate(),
                catalog_id=payload.catalog_id,
                title=payload.title,
                poster_path=payload.poster_path,
                kind=payload.kind,
            )
        )
        self.watchlist = [*self.watchlist, pending.snapshot]
        self._begin("add_watchlist")

        try:
            record = await self._api.add_watchlist_item(payload)
        except Exception as exc:
            self.watchlist = _without(self.watchlist, pending.snapshot.id)
            return self._fail("add_watchlist", exc)

        self.watchlist = _swap(self.watchlist, pending.snapshot.id, record)
        self._finish("add_watchlist")
        return Confirmed(record)

    async def add_to_watchlist(self, result: SearchResult) -> Outcome:
        """Add a search result to the watchlist."""

        return await self.add_watchlist_item(
            result.catalog_id, result.title, result.poster_path, result.kind
        )

    async def remove_watchlist_item(self, item_id: int) -> Outcome:
        if TemporaryIdAllocator.is_temporary(item_id):
            return self._refuse_unconfirmed("remove_watchlist")
        pending = _capture(self.watchlist, item_id)
        if pending is not None:
            self.watchlist = _without(self.watchlist, item_id)
        self._begin("remove_watchlist")

        try:
            await self._api.remove_watchlist_item(item_id)
        except Exception as exc:
            if pending is not None:
                self.watchlist = _reinsert(self.watchlist, pending)
            return self._fail("remove_watchlist", exc)

        self._finish("remove_watchlist")
        return Confirmed(pending.snapshot if pending is not None else None)

    async def mark_watched(
        self,
        item: WatchlistItem,
        *,
        rating: int | None = None,
        notes: str | None = None,
        watched_at: datetime | None = None,
    ) -> Outcome:
        """Promote a watchlist entry to the watched collection."""

        if TemporaryIdAllocator.is_temporary(item.id):
            return self._refuse_unconfirmed("mark_watched")
        try:
            details = MarkWatchedRequest(
                rating=rating, notes=notes, watched_at=watched_at
            )
        except pydantic.ValidationError as exc:
            return self._reject("mark_watched", exc)

        removed = _capture(self.watchlist, item.id)
        placeholder = WatchedItem(
            id=self._ids.allocate(),
            catalog_id=item.catalog_id,
            title=item.title,
            poster_path=item.poster_path,
            kind=item.kind,
            rating=details.rating,
            notes=details.notes,
            watched_at=details.watched_at or utcnow(),
        )
        self.watchlist = _without(self.watchlist, item.id)
        self.watched = [*self.watched, placeholder]
        self._begin("mark_watched")

        try:
            record = await self._api.mark_watched(item.id, details)
        except Exception as exc:
            self.watched = _without(self.watched, placeholder.id)
            if removed is not None:
                self.watchlist = _reinsert(self.watchlist, removed)
            return self._fail("mark_watched", exc)

        self.watched = _swap(self.watched, placeholder.id, record)
        self._finish("mark_watched")
        return Confirmed(record)

    # Watched -------------------------------------------------------------------

    async def fetch_watched(self) -> Outcome:
        self._begin("fetch_watched")
        try:
            items = await self._api.list_watched()
        except Exception as exc:
            return self._fail("fetch_watched", exc)
        self.watched = list(items)
        self._finish("fetch_watched")
        return Confirmed(items)

    async def add_watched(
        self,
        catalog_id: int,
        title: str,
        poster_path: str | None = None,
        kind: str = "movie",
        *,
        rating: int | None = None,
        notes: str | None = None,
        watched_at: datetime | None = None,
    ) -> Outcome:
        try:
            payload = WatchedItemCreate(
                catalog_id=catalog_id,
                title=title,
                poster_path=poster_path,
                kind=kind,
                rating=rating,
                notes=notes,
                watched_at=watched_at,
            )
        except pydantic.ValidationError as exc:
            return self._reject("add_watched", exc)

        placeholder = WatchedItem(
            id=self._ids.allocate(),
            catalog_id=payload.catalog_id,
            title=payload.title,
            poster_path=payload.poster_path,
            kind=payload.kind,
            rating=payload.rating,
            notes=payload.notes,
            watched_at=payload.watched_at or utcnow(),
        )
        self.watched = [*self.watched, placeholder]
        self._begin("add_watched")

        try:
            record = await self._api.add_watched(payload)
        except Exception as exc:
            self.watched = _without(self.watched, placeholder.id)
            return self._fail("add_watched", exc)

        self.watched = _swap(self.watched, placeholder.id, record)
        self._finish("add_watched")
        return Confirmed(record)

    async def update_watched(self, item_id: int, **changes: Any) -> Outcome:
        """Edit title, rating, notes or watched date of a watched entry."""

        try:
            update = WatchedItemUpdate(**changes)
        except pydantic.ValidationError as exc:
            return self._reject("update_watched", exc)

        previous = _capture(self.watched, item_id)
        if previous is not None:
            patched = previous.snapshot.model_copy(update=update.changes())
            self.watched = _replace(self.watched, item_id, patched)
        self._begin("update_watched")

        try:
            record = await self._api.update_watched(item_id, update)
        except Exception as exc:
            if previous is not None:
                self.watched = _replace(self.watched, item_id, previous.snapshot)
            return self._fail("update_watched", exc)

        self.watched = _replace(self.watched, item_id, record)
        self._finish("update_watched")
        return Confirmed(record)

    async def delete_watched(self, item_id: int) -> Outcome:
        if TemporaryIdAllocator.is_temporary(item_id):
            return self._refuse_unconfirmed("delete_watched")
        pending = _capture(self.watched, item_id)
        if pending is not None:
            self.watched = _without(self.watched, item_id)
        self._begin("delete_watched")

        try:
            await self._api.delete_watched(item_id)
        except Exception as exc:
            if pending is not None:
                self.watched = _reinsert(self.watched, pending)
            return self._fail("delete_watched", exc)

        self._finish("delete_watched")
        return Confirmed(pending.snapshot if pending is not None else None)

    # Bookkeeping ---------------------------------------------------------------

    def _begin(self, operation: Operation) -> None:
        status = self.status[operation]
        status.in_flight += 1
        status.error = None
        self._notify()

    def _finish(self, operation: Operation, error: str | None = None) -> None:
        status = self.status[operation]
        status.in_flight = max(0, status.in_flight - 1)
        status.error = error
        self._notify()

    def _fail(self, operation: Operation, exc: Exception) -> RolledBack:
        message, kind = _describe_failure(exc)
        logger.warning("%s failed: %s", operation, message)
        self._finish(operation, message)
        return RolledBack(message, kind)

    def _reject(
        self, operation: Operation, exc: pydantic.ValidationError
    ) -> RolledBack:
        message = describe_validation_errors(exc.errors())
        return self._reject_message(operation, message, ErrorKind.VALIDATION)

    def _refuse_unconfirmed(self, operation: Operation) -> RolledBack:
        # Temporary ids are unknown to the server until the add confirms.
        return self._reject_message(
            operation, "Item is still being saved", ErrorKind.VALIDATION
        )

    def _reject_message(
        self, operation: Operation, message: str, kind: ErrorKind
    ) -> RolledBack:
        self.status[operation].error = message
        self._notify()
        return RolledBack(message, kind)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                logger.exception("Store listener %r failed", listener)


def _describe_failure(exc: Exception) -> tuple[str, ErrorKind]:
    if isinstance(exc, ApiError):
        return exc.message or GENERIC_ERROR_MESSAGE, exc.kind
    # Transport failures (httpx.HTTPError) and malformed payloads land here.
    return str(exc) or GENERIC_ERROR_MESSAGE, ErrorKind.UNKNOWN


def _capture(items: list[Any], item_id: int) -> Optimistic | None:
    for index, item in enumerate(items):
        if item.id == item_id:
            return Optimistic(item, index)
    return None


def _without(items: list[Any], item_id: int) -> list[Any]:
    return [item for item in items if item.id != item_id]


def _swap(items: list[Any], item_id: int, record: Any) -> list[Any]:
    """Replace the entry ``item_id`` with ``record``; append if it vanished."""

    replaced = False
    swapped: list[Any] = []
    for item in items:
        if item.id == item_id:
            if not replaced:
                swapped.append(record)
                replaced = True
            continue
        if item.id == record.id and item.id != item_id:
            continue
        swapped.append(item)
    if not replaced:
        swapped.append(record)
    return swapped


def _replace(items: list[Any], item_id: int, record: Any) -> list[Any]:
    """Replace the entry ``item_id`` with ``record``; a vanished entry stays gone."""

    return [record if item.id == item_id else item for item in items]


def _reinsert(items: list[Any], captured: Optimistic) -> list[Any]:
    record = captured.snapshot
    if any(item.id == record.id for item in items):
        return items
    index = len(items) if captured.index is None else min(captured.index, len(items))
    return [*items[:index], record, *items[index:]]
