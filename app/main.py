"""Entry point for the FastAPI-powered tracking service."""

from __future__ import annotations

import logging
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Any

import httpx
from fastapi import Body, Depends, FastAPI, Query, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import errors
from .config import Settings, settings
from .database import Database
from .db_models import User
from .models import (
    Credentials,
    MarkWatchedRequest,
    RegisterRequest,
    RemovalConfirmation,
    SearchPage,
    UserPublic,
    WatchedItem,
    WatchedItemCreate,
    WatchedItemUpdate,
    WatchlistItem,
    WatchlistItemCreate,
)
from .services.auth import AuthService
from .services.catalog import MediaCatalogClient
from .services.library import LibraryService
from .utils import describe_validation_errors, parse_item_id

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app: FastAPI


@asynccontextmanager
async def lifespan(fastapi_app: FastAPI):
    exit_stack = AsyncExitStack()
    tmdb_http_client = await exit_stack.enter_async_context(
        httpx.AsyncClient(
            base_url=str(settings.tmdb_api_url),
            timeout=httpx.Timeout(15.0, connect=5.0),
        )
    )
    database = Database(settings.database_url)
    await database.create_all()

    fastapi_app.state.settings = settings
    fastapi_app.state.database = database
    fastapi_app.state.catalog_client = MediaCatalogClient(settings, tmdb_http_client)
    fastapi_app.state.auth_service = AuthService(settings, database.session_factory)
    fastapi_app.state.library_service = LibraryService(database.session_factory)

    try:
        yield
    finally:  # pragma: no cover - teardown path exercised at runtime
        await database.dispose()
        await exit_stack.aclose()


def create_app() -> FastAPI:
    fastapi_app = FastAPI(
        title=settings.app_name,
        description="Track the movies and series you want to watch and have watched",
        version="1.0.0",
        lifespan=lifespan,
    )

    allow_all = "*" in settings.cors_origins
    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=not allow_all,
        allow_methods=["GET", "POST", "PATCH", "DELETE"],
        allow_headers=["*"],
    )

    register_routes(fastapi_app)
    return fastapi_app


def get_settings_for(fastapi_app: FastAPI) -> Settings:
    configured = getattr(fastapi_app.state, "settings", None)
    if isinstance(configured, Settings):
        return configured
    return settings


def get_catalog_client(fastapi_app: FastAPI) -> MediaCatalogClient:
    client = getattr(fastapi_app.state, "catalog_client", None)
    if not isinstance(client, MediaCatalogClient):
        raise RuntimeError("Catalog client not initialised")
    return client


def get_auth_service(fastapi_app: FastAPI) -> AuthService:
    service = getattr(fastapi_app.state, "auth_service", None)
    if not isinstance(service, AuthService):
        raise RuntimeError("Auth service not initialised")
    return service


def get_library_service(fastapi_app: FastAPI) -> LibraryService:
    service = getattr(fastapi_app.state, "library_service", None)
    if not isinstance(service, LibraryService):
        raise RuntimeError("Library service not initialised")
    return service


def register_exception_handlers(fastapi_app: FastAPI) -> None:
    @fastapi_app.exception_handler(errors.CinetrackError)
    async def _domain_error(_: Request, exc: errors.CinetrackError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=exc.to_payload())

    @fastapi_app.exception_handler(RequestValidationError)
    async def _request_validation_error(
        _: Request, exc: RequestValidationError
    ) -> JSONResponse:
        error = errors.ValidationError(describe_validation_errors(exc.errors()))
        return JSONResponse(status_code=error.status_code, content=error.to_payload())

    @fastapi_app.exception_handler(Exception)
    async def _unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(
            "Unhandled error for %s %s", request.method, request.url.path, exc_info=exc
        )
        error = errors.UnknownError()
        return JSONResponse(status_code=error.status_code, content=error.to_payload())


def register_routes(fastapi_app: FastAPI) -> None:
    register_exception_handlers(fastapi_app)

    async def current_user(request: Request) -> User:
        token = _session_token(request, get_settings_for(fastapi_app))
        return await get_auth_service(fastapi_app).resolve_user(token)

    @fastapi_app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    # Identity ----------------------------------------------------------------

    @fastapi_app.post("/auth/register", status_code=status.HTTP_201_CREATED)
    async def register(payload: RegisterRequest, response: Response) -> dict[str, Any]:
        user, token = await get_auth_service(fastapi_app).register(payload)
        _set_session_cookie(response, token, get_settings_for(fastapi_app))
        return {"user": _user_payload(user)}

    @fastapi_app.post("/auth/login")
    async def login(payload: Credentials, response: Response) -> dict[str, Any]:
        user, token = await get_auth_service(fastapi_app).login(payload)
        _set_session_cookie(response, token, get_settings_for(fastapi_app))
        return {"user": _user_payload(user)}

    @fastapi_app.post("/auth/logout")
    async def logout(request: Request, response: Response) -> dict[str, str]:
        current_settings = get_settings_for(fastapi_app)
        await get_auth_service(fastapi_app).logout(
            _session_token(request, current_settings)
        )
        response.delete_cookie(current_settings.session_cookie_name)
        return {"message": "Signed out"}

    @fastapi_app.get("/auth/me")
    async def me(user: User = Depends(current_user)) -> dict[str, Any]:
        return {"user": _user_payload(user)}

    @fastapi_app.delete("/auth/me")
    async def delete_account(
        response: Response, user: User = Depends(current_user)
    ) -> dict[str, str]:
        await get_auth_service(fastapi_app).delete_user(user.id)
        response.delete_cookie(get_settings_for(fastapi_app).session_cookie_name)
        return {"message": "Account deleted"}

    # Catalog -----------------------------------------------------------------

    @fastapi_app.get("/search", response_model=SearchPage)
    async def search(query: str | None = Query(default=None)) -> SearchPage:
        if not query or not query.strip():
            raise errors.ValidationError("Query parameter is required")
        try:
            return await get_catalog_client(fastapi_app).search(query)
        except errors.CatalogUnavailable as exc:
            logger.error("Error in TMDB search: %s", exc.message)
            raise errors.CatalogUnavailable(
                "Failed to fetch from TMDB", reason=exc.message
            ) from exc

    # Watchlist ---------------------------------------------------------------

    @fastapi_app.get("/watchlist", response_model=list[WatchlistItem])
    async def list_watchlist(user: User = Depends(current_user)) -> list[WatchlistItem]:
        return await get_library_service(fastapi_app).list_watchlist(user.id)

    @fastapi_app.post(
        "/watchlist",
        response_model=WatchlistItem,
        status_code=status.HTTP_201_CREATED,
    )
    async def add_watchlist_item(
        payload: WatchlistItemCreate, user: User = Depends(current_user)
    ) -> WatchlistItem:
        return await get_library_service(fastapi_app).add_watchlist_item(
            user.id, payload
        )

    @fastapi_app.delete("/watchlist", response_model=RemovalConfirmation)
    async def remove_watchlist_item(
        item_id: str | None = Query(default=None, alias="id"),
        user: User = Depends(current_user),
    ) -> RemovalConfirmation:
        try:
            parsed_id = parse_item_id(item_id)
        except ValueError as exc:
            raise errors.ValidationError(str(exc)) from exc
        return await get_library_service(fastapi_app).remove_watchlist_item(
            user.id, parsed_id
        )

    @fastapi_app.post(
        "/watchlist/{item_id}/watched",
        response_model=WatchedItem,
        status_code=status.HTTP_201_CREATED,
    )
    async def mark_watched(
        item_id: int,
        payload: MarkWatchedRequest | None = Body(default=None),
        user: User = Depends(current_user),
    ) -> WatchedItem:
        return await get_library_service(fastapi_app).mark_watched(
            user.id, item_id, payload or MarkWatchedRequest()
        )

    # Watched -----------------------------------------------------------------

    @fastapi_app.get("/watched", response_model=list[WatchedItem])
    async def list_watched(user: User = Depends(current_user)) -> list[WatchedItem]:
        return await get_library_service(fastapi_app).list_watched(user.id)

    @fastapi_app.post(
        "/watched",
        response_model=WatchedItem,
        status_code=status.HTTP_201_CREATED,
    )
    async def add_watched(
        payload: WatchedItemCreate, user: User = Depends(current_user)
    ) -> WatchedItem:
        return await get_library_service(fastapi_app).add_watched(user.id, payload)

    @fastapi_app.patch("/watched/{item_id}", response_model=WatchedItem)
    async def update_watched(
        item_id: int,
        payload: WatchedItemUpdate,
        user: User = Depends(current_user),
    ) -> WatchedItem:
        return await get_library_service(fastapi_app).update_watched(
            user.id, item_id, payload
        )

    @fastapi_app.delete("/watched/{item_id}", response_model=RemovalConfirmation)
    async def delete_watched(
        item_id: int, user: User = Depends(current_user)
    ) -> RemovalConfirmation:
        return await get_library_service(fastapi_app).delete_watched(user.id, item_id)


def _session_token(request: Request, current_settings: Settings) -> str | None:
    authorization = request.headers.get("authorization") or ""
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    return request.cookies.get(current_settings.session_cookie_name) or None


def _set_session_cookie(
    response: Response, token: str, current_settings: Settings
) -> None:
    response.set_cookie(
        current_settings.session_cookie_name,
        token,
        max_age=current_settings.session_max_age_seconds,
        httponly=True,
        samesite="lax",
        secure=current_settings.environment == "production",
    )


def _user_payload(user: User) -> dict[str, Any]:
    return UserPublic.model_validate(user).model_dump(mode="json", by_alias=True)


app = create_app()


if __name__ == "__main__":  # pragma: no cover - manual execution
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.server_host,
        port=settings.server_port,
        reload=settings.environment == "development",
    )
