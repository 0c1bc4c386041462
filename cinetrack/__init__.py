"""Cinetrack: watchlist service plus the client used to drive it.

Server side: ``app`` and ``create_app`` build the FastAPI application.
Client side: ``CinetrackApiClient`` talks to a running server and ``AppStore``
keeps an optimistic local copy of the user's collections.
"""

from __future__ import annotations

from app.client import ApiError, CinetrackApiClient
from app.main import app, create_app
from app.store import AppStore, Confirmed, RolledBack

__all__ = [
    "ApiError",
    "AppStore",
    "CinetrackApiClient",
    "Confirmed",
    "RolledBack",
    "app",
    "create_app",
]
