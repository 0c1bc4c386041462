"""End-to-end behaviour of the HTTP routes against a temporary database."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Iterator

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.config import Settings
from app.database import Database
from app.errors import CatalogUnavailable
from app.main import register_routes
from app.models import SearchPage, SearchResult
from app.services.auth import AuthService
from app.services.catalog import MediaCatalogClient
from app.services.library import LibraryService

DUNE = {"catalogId": 42, "title": "Dune", "posterPath": "/dune.jpg", "kind": "movie"}


class StubCatalogClient(MediaCatalogClient):
    """Catalog client answering from memory instead of TMDB."""

    def __init__(self) -> None:
        # Deliberately skip super().__init__ to avoid building an HTTP client.
        self.queries: list[str | None] = []
        self.failure: str | None = None

    async def search(self, query: str | None) -> SearchPage:  # type: ignore[override]
        self.queries.append(query)
        if self.failure:
            raise CatalogUnavailable(self.failure)
        return SearchPage(
            page=1,
            results=[
                SearchResult(catalog_id=42, title="Dune", kind="movie"),
                SearchResult(catalog_id=90228, title="Dune: Prophecy", kind="series"),
            ],
            total_pages=1,
            total_results=2,
        )


def build_app(tmp_path) -> FastAPI:
    settings = Settings(_env_file=None, BCRYPT_ROUNDS=4, ENVIRONMENT="development")
    catalog = StubCatalogClient()

    @asynccontextmanager
    async def lifespan(fastapi_app: FastAPI):
        database = Database(f"sqlite+aiosqlite:///{tmp_path / 'api.db'}")
        await database.create_all()
        fastapi_app.state.settings = settings
        fastapi_app.state.catalog_client = catalog
        fastapi_app.state.auth_service = AuthService(settings, database.session_factory)
        fastapi_app.state.library_service = LibraryService(database.session_factory)
        try:
            yield
        finally:
            await database.dispose()

    app = FastAPI(lifespan=lifespan)
    register_routes(app)
    return app


@pytest.fixture
def client(tmp_path) -> Iterator[TestClient]:
    with TestClient(build_app(tmp_path)) as test_client:
        yield test_client


def _register(client: TestClient, email: str = "alice@example.com") -> dict:
    response = client.post(
        "/auth/register", json={"email": email, "password": "hunter22", "name": "Alice"}
    )
    assert response.status_code == 201
    return response.json()["user"]


def test_healthcheck(client: TestClient) -> None:
    assert client.get("/healthz").json() == {"status": "ok"}


def test_watchlist_requires_session(client: TestClient) -> None:
    response = client.get("/watchlist")

    assert response.status_code == 401
    assert response.json() == {"error": "Unauthorized", "kind": "unauthenticated"}


def test_register_sets_session_cookie(client: TestClient) -> None:
    user = _register(client)

    assert user["email"] == "alice@example.com"
    assert "passwordHash" not in user
    assert client.cookies.get("cinetrack_session")
    assert client.get("/auth/me").json()["user"]["id"] == user["id"]


def test_register_missing_password(client: TestClient) -> None:
    response = client.post("/auth/register", json={"email": "alice@example.com"})

    assert response.status_code == 400
    assert response.json()["error"] == "Email and password are required"


def test_login_and_logout(client: TestClient) -> None:
    _register(client)
    client.post("/auth/logout")
    assert client.get("/auth/me").status_code == 401

    rejected = client.post(
        "/auth/login", json={"email": "alice@example.com", "password": "wrong"}
    )
    assert rejected.status_code == 401
    assert rejected.json()["error"] == "Invalid email or password"

    accepted = client.post(
        "/auth/login", json={"email": "alice@example.com", "password": "hunter22"}
    )
    assert accepted.status_code == 200
    assert client.get("/auth/me").status_code == 200


def test_bearer_token_is_accepted(client: TestClient) -> None:
    _register(client)
    token = client.cookies.get("cinetrack_session")
    client.cookies.clear()

    response = client.get("/watchlist", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 200
    assert response.json() == []


def test_watchlist_add_duplicate_and_remove(client: TestClient) -> None:
    _register(client)

    created = client.post("/watchlist", json=DUNE)
    assert created.status_code == 201
    item = created.json()
    assert item["catalogId"] == 42
    assert item["posterPath"] == "/dune.jpg"
    assert isinstance(item["id"], int)

    duplicate = client.post("/watchlist", json=DUNE)
    assert duplicate.status_code == 409
    assert duplicate.json() == {
        "error": "Item already exists in watchlist",
        "kind": "conflict",
    }

    assert [entry["id"] for entry in client.get("/watchlist").json()] == [item["id"]]

    removed = client.delete("/watchlist", params={"id": item["id"]})
    assert removed.status_code == 200
    assert removed.json() == {"message": "Item removed from watchlist", "id": item["id"]}
    assert client.get("/watchlist").json() == []

    missing = client.delete("/watchlist", params={"id": item["id"]})
    assert missing.status_code == 404
    assert missing.json()["error"] == "Watchlist item not found"


def test_watchlist_add_rejects_missing_fields(client: TestClient) -> None:
    _register(client)

    response = client.post("/watchlist", json={"title": "Dune"})

    assert response.status_code == 400
    payload = response.json()
    assert payload["kind"] == "validation_error"
    assert "catalogId" in payload["error"]


@pytest.mark.parametrize(
    ("params", "message"),
    [({}, "id parameter is required"), ({"id": "abc"}, "Invalid id parameter")],
)
def test_watchlist_remove_validates_id(client: TestClient, params, message) -> None:
    _register(client)

    response = client.delete("/watchlist", params=params)

    assert response.status_code == 400
    assert response.json()["error"] == message


def test_users_cannot_touch_each_others_items(client: TestClient) -> None:
    _register(client, "alice@example.com")
    alice = {"Authorization": f"Bearer {client.cookies.get('cinetrack_session')}"}
    client.cookies.clear()
    _register(client, "bob@example.com")
    bob = {"Authorization": f"Bearer {client.cookies.get('cinetrack_session')}"}
    client.cookies.clear()

    item = client.post("/watchlist", json=DUNE, headers=alice).json()

    assert client.get("/watchlist", headers=bob).json() == []
    assert client.delete("/watchlist", params={"id": item["id"]}, headers=bob).status_code == 404
    assert client.post("/watchlist", json=DUNE, headers=bob).status_code == 201
    assert len(client.get("/watchlist", headers=alice).json()) == 1


def test_mark_watched_then_edit_and_delete(client: TestClient) -> None:
    _register(client)
    item = client.post("/watchlist", json=DUNE).json()

    promoted = client.post(f"/watchlist/{item['id']}/watched", json={"rating": 9})
    assert promoted.status_code == 201
    watched = promoted.json()
    assert watched["catalogId"] == 42
    assert watched["rating"] == 9
    assert client.get("/watchlist").json() == []

    edited = client.patch(f"/watched/{watched['id']}", json={"notes": "Spice"})
    assert edited.status_code == 200
    assert edited.json()["notes"] == "Spice"
    assert edited.json()["rating"] == 9

    invalid = client.patch(f"/watched/{watched['id']}", json={"rating": 42})
    assert invalid.status_code == 400

    deleted = client.delete(f"/watched/{watched['id']}")
    assert deleted.status_code == 200
    assert client.get("/watched").json() == []
    assert client.delete(f"/watched/{watched['id']}").status_code == 404


def test_mark_watched_without_body(client: TestClient) -> None:
    _register(client)
    item = client.post("/watchlist", json=DUNE).json()

    response = client.post(f"/watchlist/{item['id']}/watched")

    assert response.status_code == 201
    assert response.json()["rating"] is None
    assert client.post(f"/watchlist/{item['id']}/watched").status_code == 404


def test_add_watched_directly(client: TestClient) -> None:
    _register(client)

    response = client.post(
        "/watched", json={**DUNE, "rating": 7, "watchedAt": "2024-03-01T20:00:00"}
    )

    assert response.status_code == 201
    listed = client.get("/watched").json()
    assert [entry["title"] for entry in listed] == ["Dune"]
    assert listed[0]["watchedAt"].startswith("2024-03-01T20:00:00")


def test_delete_account_cascades(client: TestClient) -> None:
    _register(client)
    client.post("/watchlist", json=DUNE)

    response = client.delete("/auth/me")

    assert response.status_code == 200
    assert client.get("/watchlist").status_code == 401
    _register(client)
    assert client.get("/watchlist").json() == []


@pytest.mark.parametrize("params", [{}, {"query": ""}, {"query": "   "}])
def test_search_requires_query(client: TestClient, params) -> None:
    response = client.get("/search", params=params)

    assert response.status_code == 400
    assert response.json()["error"] == "Query parameter is required"


def test_search_returns_catalog_page(client: TestClient) -> None:
    response = client.get("/search", params={"query": "dune"})

    assert response.status_code == 200
    payload = response.json()
    assert payload["total_results"] == 2
    assert [result["catalogId"] for result in payload["results"]] == [42, 90228]
    assert [result["kind"] for result in payload["results"]] == ["movie", "series"]


def test_search_upstream_failure(client: TestClient) -> None:
    client.app.state.catalog_client.failure = "TMDB API error: Service Unavailable"

    response = client.get("/search", params={"query": "dune"})

    assert response.status_code == 500
    assert response.json() == {
        "error": "Failed to fetch from TMDB",
        "kind": "catalog_unavailable",
        "details": {"reason": "TMDB API error: Service Unavailable"},
    }


def test_package_exposes_application_and_client() -> None:
    import cinetrack

    application = cinetrack.create_app()

    assert {"/watchlist", "/search", "/auth/login"} <= {
        route.path for route in application.routes
    }
    assert cinetrack.AppStore is not None
