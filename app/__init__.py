"""Cinetrack watchlist service and client package.

``app`` and ``create_app`` are resolved lazily so that importing the client
modules does not build the FastAPI application.
"""

from __future__ import annotations

from importlib import import_module
from typing import Any

__all__ = ["app", "create_app"]


def __getattr__(name: str) -> Any:
    if name in __all__:
        return getattr(import_module("app.main"), name)
    raise AttributeError(f"module 'app' has no attribute {name!r}")
