"""Configuration settings behaviour tests."""

from __future__ import annotations

import pytest

from app.config import DEFAULT_PLACEHOLDER_IMAGE, Settings


def test_defaults_without_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("TMDB_API_KEY", "CORS_ORIGINS", "SESSION_COOKIE_NAME"):
        monkeypatch.delenv(name, raising=False)

    settings = Settings(_env_file=None)

    assert settings.tmdb_api_key is None
    assert str(settings.tmdb_api_url).startswith("https://api.themoviedb.org/3")
    assert settings.placeholder_image == DEFAULT_PLACEHOLDER_IMAGE
    assert settings.cors_origins == ("*",)
    assert settings.session_cookie_name == "cinetrack_session"


def test_blank_api_key_is_treated_as_missing() -> None:
    settings = Settings(_env_file=None, TMDB_API_KEY="   ")

    assert settings.tmdb_api_key is None


def test_cors_origins_accept_comma_separated_string() -> None:
    """Origins are trimmed, deduplicated and stripped of trailing slashes."""

    settings = Settings(
        _env_file=None,
        CORS_ORIGINS="https://a.example/, https://b.example,https://a.example",
    )

    assert settings.cors_origins == ("https://a.example", "https://b.example")


def test_cors_origins_read_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CORS_ORIGINS", "http://localhost:5173")

    settings = Settings(_env_file=None)

    assert settings.cors_origins == ("http://localhost:5173",)


def test_blank_cors_origins_fall_back_to_wildcard() -> None:
    settings = Settings(_env_file=None, CORS_ORIGINS=" , ")

    assert settings.cors_origins == ("*",)


def test_image_base_url_trailing_slash_removed() -> None:
    settings = Settings(_env_file=None, TMDB_IMAGE_BASE_URL="https://img.example/w92/")

    assert settings.tmdb_image_base_url == "https://img.example/w92"


@pytest.mark.parametrize("rounds", [3, 17])
def test_bcrypt_rounds_bounds(rounds: int) -> None:
    with pytest.raises(ValueError):
        Settings(_env_file=None, BCRYPT_ROUNDS=rounds)


def test_short_session_lifetime_rejected() -> None:
    with pytest.raises(ValueError):
        Settings(_env_file=None, SESSION_MAX_AGE=10)
