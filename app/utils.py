"""Utility helpers for the Cinetrack service."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, Mapping

_KIND_ALIASES = {
    "movie": "movie",
    "series": "series",
    "tv": "series",
}

GENERIC_ERROR_MESSAGE = "Something went wrong"


def normalize_kind(value: object) -> str | None:
    """Map catalog media types onto ``movie``/``series``; ``None`` otherwise."""

    if not isinstance(value, str):
        return None
    return _KIND_ALIASES.get(value.strip().lower())


def clean_optional_text(value: object) -> object:
    """Treat blank strings as missing values."""

    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return value


def parse_item_id(raw: str | None) -> int:
    """Parse an item identifier from a query parameter.

    Raises ``ValueError`` with a user facing message when absent or invalid.
    """

    if raw is None or not raw.strip():
        raise ValueError("id parameter is required")
    try:
        item_id = int(raw.strip(), 10)
    except ValueError as exc:
        raise ValueError("Invalid id parameter") from exc
    return item_id


def extract_error_message(payload: Any, fallback: str | None = None) -> str:
    """Pull a human readable message out of an error response body."""

    if isinstance(payload, Mapping):
        for key in ("error", "message", "detail"):
            value = payload.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    elif isinstance(payload, str) and payload.strip():
        return payload.strip()
    return fallback or GENERIC_ERROR_MESSAGE


def describe_validation_errors(errors: Iterable[Mapping[str, Any]]) -> str:
    """Condense pydantic error entries into a single sentence."""

    missing: list[str] = []
    messages: list[str] = []
    for error in errors:
        location = [
            str(part) for part in error.get("loc", ()) if part not in ("body", "query")
        ]
        field = ".".join(location)
        if error.get("type") == "missing" and field:
            missing.append(field)
            continue
        message = str(error.get("msg") or "Invalid value")
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        messages.append(f"{field}: {message}" if field else message)

    if missing:
        if len(missing) == 1:
            return f"{missing[0]} is required"
        if len(missing) == 2:
            return f"{missing[0]} and {missing[1]} are required"
        return f"{', '.join(missing[:-1])}, and {missing[-1]} are required"
    if messages:
        return "; ".join(messages)
    return "Invalid request"


def utcnow() -> datetime:
    """Naive UTC timestamp matching the stored column type."""

    return datetime.utcnow()
