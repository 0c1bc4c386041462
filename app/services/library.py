"""User-scoped watchlist and watched persistence."""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..db_models import WatchedEntry, WatchlistEntry
from ..errors import Conflict, NotFound
from ..models import (
    MarkWatchedRequest,
    RemovalConfirmation,
    WatchedItem,
    WatchedItemCreate,
    WatchedItemUpdate,
    WatchlistItem,
    WatchlistItemCreate,
)
from ..utils import utcnow

logger = logging.getLogger(__name__)

DUPLICATE_WATCHLIST_MESSAGE = "Item already exists in watchlist"


class LibraryService:
    """CRUD over a user's watchlist and watched collections.

    Every operation is scoped to ``user_id``; rows owned by someone else are
    reported as missing.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    # Watchlist -----------------------------------------------------------------

    async def list_watchlist(self, user_id: str) -> list[WatchlistItem]:
        async with self._session_factory() as session:
            stmt = (
                select(WatchlistEntry)
                .where(WatchlistEntry.user_id == user_id)
                .order_by(WatchlistEntry.id)
            )
            result = await session.execute(stmt)
            return [WatchlistItem.model_validate(row) for row in result.scalars().all()]

    async def add_watchlist_item(
        self, user_id: str, request: WatchlistItemCreate
    ) -> WatchlistItem:
        """Persist a new watchlist entry, rejecting duplicate catalog ids."""

        async with self._session_factory() as session:
            stmt = select(WatchlistEntry.id).where(
                WatchlistEntry.user_id == user_id,
                WatchlistEntry.catalog_id == request.catalog_id,
            )
            existing = await session.execute(stmt.limit(1))
            if existing.scalar_one_or_none() is not None:
                logger.warning(
                    "Watchlist duplicate: user_id=%s catalog_id=%s",
                    user_id,
                    request.catalog_id,
                )
                raise Conflict(DUPLICATE_WATCHLIST_MESSAGE)

            entry = WatchlistEntry(
                user_id=user_id,
                catalog_id=request.catalog_id,
                title=request.title,
                poster_path=request.poster_path,
                kind=request.kind,
            )
            session.add(entry)
            try:
                await session.commit()
            except IntegrityError as exc:
                # A concurrent insert won the race past the check above.
                await session.rollback()
                raise Conflict(DUPLICATE_WATCHLIST_MESSAGE) from exc
            await session.refresh(entry)

        logger.info(
            "Watchlist add: user_id=%s catalog_id=%s id=%s",
            user_id,
            entry.catalog_id,
            entry.id,
        )
        return WatchlistItem.model_validate(entry)

    async def remove_watchlist_item(
        self, user_id: str, item_id: int
    ) -> RemovalConfirmation:
        async with self._session_factory() as session:
            entry = await self._owned(session, WatchlistEntry, user_id, item_id)
            if entry is None:
                logger.warning(
                    "Watchlist remove failed: user_id=%s id=%s not found",
                    user_id,
                    item_id,
                )
                raise NotFound("Watchlist item not found")
            await session.delete(entry)
            await session.commit()

        logger.info("Watchlist remove: user_id=%s id=%s", user_id, item_id)
        return RemovalConfirmation(message="Item removed from watchlist", id=item_id)

    async def mark_watched(
        self, user_id: str, watchlist_id: int, request: MarkWatchedRequest
    ) -> WatchedItem:
        """Move a watchlist entry into the watched collection in one commit."""

        async with self._session_factory() as session:
            entry = await self._owned(session, WatchlistEntry, user_id, watchlist_id)
            if entry is None:
                raise NotFound("Watchlist item not found")
            watched = WatchedEntry(
                user_id=user_id,
                catalog_id=entry.catalog_id,
                title=entry.title,
                poster_path=entry.poster_path,
                kind=entry.kind,
                rating=request.rating,
                notes=request.notes,
                watched_at=request.watched_at or utcnow(),
            )
            session.add(watched)
            await session.delete(entry)
            await session.commit()
            await session.refresh(watched)

        logger.info(
            "Watchlist promoted: user_id=%s watchlist_id=%s watched_id=%s",
            user_id,
            watchlist_id,
            watched.id,
        )
        return WatchedItem.model_validate(watched)

    # Watched -------------------------------------------------------------------

    async def list_watched(self, user_id: str) -> list[WatchedItem]:
        async with self._session_factory() as session:
            stmt = (
                select(WatchedEntry)
                .where(WatchedEntry.user_id == user_id)
                .order_by(WatchedEntry.watched_at.desc(), WatchedEntry.id.desc())
            )
            result = await session.execute(stmt)
            return [WatchedItem.model_validate(row) for row in result.scalars().all()]

    async def add_watched(
        self, user_id: str, request: WatchedItemCreate
    ) -> WatchedItem:
        async with self._session_factory() as session:
            entry = WatchedEntry(
                user_id=user_id,
                catalog_id=request.catalog_id,
                title=request.title,
                poster_path=request.poster_path,
                kind=request.kind,
                rating=request.rating,
                notes=request.notes,
                watched_at=request.watched_at or utcnow(),
            )
            session.add(entry)
            await session.commit()
            await session.refresh(entry)

        logger.info("Watched add: user_id=%s id=%s", user_id, entry.id)
        return WatchedItem.model_validate(entry)

    async def update_watched(
        self, user_id: str, item_id: int, request: WatchedItemUpdate
    ) -> WatchedItem:
        async with self._session_factory() as session:
            entry = await self._owned(session, WatchedEntry, user_id, item_id)
            if entry is None:
                raise NotFound("Watched item not found")
            for name, value in request.changes().items():
                setattr(entry, name, value)
            await session.commit()
            await session.refresh(entry)

        logger.info("Watched update: user_id=%s id=%s", user_id, item_id)
        return WatchedItem.model_validate(entry)

    async def delete_watched(self, user_id: str, item_id: int) -> RemovalConfirmation:
        async with self._session_factory() as session:
            entry = await self._owned(session, WatchedEntry, user_id, item_id)
            if entry is None:
                raise NotFound("Watched item not found")
            await session.delete(entry)
            await session.commit()

        logger.info("Watched delete: user_id=%s id=%s", user_id, item_id)
        return RemovalConfirmation(message="Item removed from watched", id=item_id)

    @staticmethod
    async def _owned(session: AsyncSession, model, user_id: str, item_id: int):
        entry = await session.get(model, item_id)
        if entry is None or entry.user_id != user_id:
            return None
        return entry
