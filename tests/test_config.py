"""Tests for settings parsing."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from quill.config import Settings


@pytest.mark.parametrize(
    ("sync_url", "async_url"),
    [
        ("sqlite:///./data/quill.db", "sqlite+aiosqlite:///./data/quill.db"),
        ("postgresql://u:p@db/quill", "postgresql+asyncpg://u:p@db/quill"),
        ("postgresql+psycopg://u:p@db/quill", "postgresql+asyncpg://u:p@db/quill"),
    ],
)
def test_async_url_is_derived(monkeypatch, sync_url, async_url):
    monkeypatch.setenv("DATABASE_URL", sync_url)
    monkeypatch.delenv("ASYNC_DATABASE_URL", raising=False)
    assert Settings().resolved_async_database_url == async_url


def test_allowed_origins_from_json_list(monkeypatch):
    monkeypatch.setenv("ALLOWED_ORIGINS", '["https://a.example", "https://b.example"]')
    assert Settings().cors_origins == ["https://a.example", "https://b.example"]


def test_production_requires_long_secret(monkeypatch):
    monkeypatch.setenv("ENVIRONMENT", "production")
    monkeypatch.setenv("SECRET_KEY", "too-short")
    with pytest.raises(ValidationError):
        Settings()


def test_queue_defaults():
    settings = Settings()
    assert settings.publish_queue_name == "post.publish"
    assert settings.jwt_lifetime_seconds == 900
    assert settings.refresh_token_lifetime_seconds == 7 * 24 * 3600
