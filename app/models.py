"""Pydantic models describing API payloads and client-side state."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from .utils import clean_optional_text, normalize_kind

ContentKind = Literal["movie", "series"]


class ApiModel(BaseModel):
    """Base model exchanging camelCase keys on the wire."""

    model_config = ConfigDict(
        populate_by_name=True,
        alias_generator=to_camel,
        from_attributes=True,
    )


class SearchResult(ApiModel):
    """A movie or series returned by the media catalog."""

    catalog_id: int
    title: str
    poster_path: str | None = None
    kind: ContentKind
    overview: str | None = None
    release_date: str | None = None

    @classmethod
    def from_tmdb(cls, entry: dict[str, Any]) -> "SearchResult | None":
        """Normalise a raw TMDB multi-search entry; ``None`` for other kinds."""

        kind = normalize_kind(entry.get("media_type"))
        if kind is None:
            return None
        raw_id = entry.get("id")
        title = entry.get("title") or entry.get("name")
        if raw_id is None or not isinstance(title, str) or not title.strip():
            return None
        try:
            catalog_id = int(raw_id)
        except (TypeError, ValueError):
            return None
        try:
            return cls(
                catalog_id=catalog_id,
                title=title.strip(),
                poster_path=entry.get("poster_path") or None,
                kind=kind,
                overview=entry.get("overview") or None,
                release_date=entry.get("release_date")
                or entry.get("first_air_date")
                or None,
            )
        except ValidationError:
            return None


class SearchPage(BaseModel):
    """First page of a catalog search, keyed the way TMDB pages are."""

    page: int = 1
    results: list[SearchResult] = Field(default_factory=list)
    total_pages: int = 0
    total_results: int = 0

    @classmethod
    def empty(cls) -> "SearchPage":
        return cls(page=1, results=[], total_pages=0, total_results=0)


class _MediaFields(ApiModel):
    catalog_id: int = Field(gt=0)
    title: str = Field(min_length=1, max_length=255)
    poster_path: str | None = Field(default=None, max_length=255)
    kind: ContentKind

    @field_validator("title", mode="before")
    @classmethod
    def _strip_title(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator("poster_path", mode="before")
    @classmethod
    def _blank_poster_is_missing(cls, value: object) -> object:
        return clean_optional_text(value)

    @field_validator("kind", mode="before")
    @classmethod
    def _normalise_kind(cls, value: object) -> object:
        normalised = normalize_kind(value)
        if normalised is None:
            raise ValueError("kind must be 'movie' or 'series'")
        return normalised


class WatchlistItemCreate(_MediaFields):
    """Request body for adding an entry to the watchlist."""


class WatchlistItem(ApiModel):
    """A watchlist entry; negative ids mark optimistic, unconfirmed entries."""

    id: int
    catalog_id: int
    title: str
    poster_path: str | None = None
    kind: ContentKind
    created_at: datetime | None = None


class WatchedItemCreate(_MediaFields):
    """Request body for recording something as watched."""

    rating: int | None = Field(default=None, ge=1, le=10)
    notes: str | None = None
    watched_at: datetime | None = None

    @field_validator("notes", mode="before")
    @classmethod
    def _blank_notes_are_missing(cls, value: object) -> object:
        return clean_optional_text(value)


class WatchedItemUpdate(ApiModel):
    """Partial update of a watched entry.

    Only fields present in the payload are applied; an explicit ``null``
    clears the rating or notes.
    """

    title: str | None = Field(default=None, min_length=1, max_length=255)
    rating: int | None = Field(default=None, ge=1, le=10)
    notes: str | None = None
    watched_at: datetime | None = None

    @field_validator("title", mode="before")
    @classmethod
    def _strip_title(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip()
        return value

    @model_validator(mode="after")
    def _reject_null_required(self) -> "WatchedItemUpdate":
        for name in ("title", "watched_at"):
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{to_camel(name)} may not be null")
        return self

    def changes(self) -> dict[str, Any]:
        """Return the explicitly supplied fields keyed by attribute name."""

        return {name: getattr(self, name) for name in self.model_fields_set}


class MarkWatchedRequest(ApiModel):
    """Optional details supplied when promoting a watchlist entry."""

    rating: int | None = Field(default=None, ge=1, le=10)
    notes: str | None = None
    watched_at: datetime | None = None


class WatchedItem(ApiModel):
    """A watched entry; negative ids mark optimistic, unconfirmed entries."""

    id: int
    catalog_id: int
    title: str
    poster_path: str | None = None
    kind: ContentKind
    rating: int | None = None
    notes: str | None = None
    watched_at: datetime
    created_at: datetime | None = None
    updated_at: datetime | None = None


class Credentials(ApiModel):
    """Email/password pair; presence is checked by the auth service."""

    email: str | None = None
    password: str | None = None


class RegisterRequest(Credentials):
    name: str | None = Field(default=None, max_length=120)


class UserPublic(ApiModel):
    id: str
    email: str
    name: str | None = None
    created_at: datetime | None = None


class RemovalConfirmation(BaseModel):
    message: str
    id: int
