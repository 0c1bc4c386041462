"""Domain errors shared by the request handlers and the client store."""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Stable identifiers rendered in error payloads."""

    VALIDATION = "validation_error"
    UNAUTHENTICATED = "unauthenticated"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    CATALOG_UNAVAILABLE = "catalog_unavailable"
    UNKNOWN = "unknown"


class CinetrackError(Exception):
    """Base error carrying the HTTP status it maps to."""

    kind: ErrorKind = ErrorKind.UNKNOWN
    status_code: int = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None, **details: Any) -> None:
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"error": self.message, "kind": self.kind.value}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(CinetrackError):
    """A required field is missing or malformed."""

    kind = ErrorKind.VALIDATION
    status_code = 400
    default_message = "Invalid request"


class Unauthenticated(CinetrackError):
    kind = ErrorKind.UNAUTHENTICATED
    status_code = 401
    default_message = "Unauthorized"


class Conflict(CinetrackError):
    kind = ErrorKind.CONFLICT
    status_code = 409
    default_message = "Item already exists"


class NotFound(CinetrackError):
    kind = ErrorKind.NOT_FOUND
    status_code = 404
    default_message = "Item not found"


class CatalogUnavailable(CinetrackError):
    """The upstream search API failed or could not be reached."""

    kind = ErrorKind.CATALOG_UNAVAILABLE
    status_code = 500
    default_message = "Failed to fetch from TMDB"


class UnknownError(CinetrackError):
    pass


_STATUS_TO_KIND: dict[int, ErrorKind] = {
    ValidationError.status_code: ErrorKind.VALIDATION,
    Unauthenticated.status_code: ErrorKind.UNAUTHENTICATED,
    Conflict.status_code: ErrorKind.CONFLICT,
    NotFound.status_code: ErrorKind.NOT_FOUND,
}


def kind_for_status(status_code: int, reported: str | None = None) -> ErrorKind:
    """Resolve the error kind of a failed response.

    The kind reported by the server wins; otherwise the HTTP status decides.
    """

    if reported:
        try:
            return ErrorKind(reported)
        except ValueError:
            pass
    return _STATUS_TO_KIND.get(status_code, ErrorKind.UNKNOWN)
