"""Run the Cinetrack API with ``python -m cinetrack`` or the ``cinetrack`` script."""

from __future__ import annotations

import logging

import uvicorn

from app.config import get_settings

logger = logging.getLogger("cinetrack")


def main() -> None:
    settings = get_settings()
    if not settings.tmdb_api_key:
        logger.warning("TMDB_API_KEY is not set; searches will fail until it is configured")
    uvicorn.run(
        "app.main:app",
        host=settings.server_host,
        port=settings.server_port,
        reload=settings.environment == "development",
    )


if __name__ == "__main__":  # pragma: no cover - runtime entrypoint
    main()
