"""Test fixtures for API and database."""

from __future__ import annotations

import os
from datetime import UTC, datetime, timedelta
from pathlib import Path

TESTS_ROOT = Path(__file__).parent

# Configure the app *before* importing quill modules: settings and engines are
# built at import time.
os.environ.setdefault("DATABASE_URL", "sqlite:///test_quill.db")
os.environ["QUEUE_BACKEND"] = "memory"
os.environ["PUBLISH_WORKER_ENABLED"] = "false"
os.environ.setdefault("SECRET_KEY", "test-secret-key-with-at-least-32-characters")
os.environ.pop("ADMIN_EMAIL", None)

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from quill.database import Base, SessionLocal, engine  # noqa: E402
from quill.main import app  # noqa: E402
from quill.models import Post, User  # noqa: E402
from quill.security.rate_limit import limiter  # noqa: E402

# Disable rate limiting in tests to prevent cross-test 429 flakes
limiter.enabled = False

TEST_DB_PATH = Path("test_quill.db")
PASSWORD = "correct-horse-battery"


class FakeClock:
    """Settable clock for time-dependent components."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now += timedelta(seconds=seconds)
        return self.now


@pytest.fixture(scope="session")
def client():
    if TEST_DB_PATH.exists():
        TEST_DB_PATH.unlink()

    with TestClient(app) as test_client:
        yield test_client

    engine.dispose()
    if TEST_DB_PATH.exists():
        TEST_DB_PATH.unlink()


@pytest.fixture
def db_session(client):
    session = SessionLocal()
    try:
        yield session
    finally:
        # Ensure database state is isolated between tests
        session.rollback()
        for table in reversed(Base.metadata.sorted_tables):
            session.execute(table.delete())
        session.commit()
        session.close()


def register_user(
    client: TestClient, email: str, username: str, password: str = PASSWORD
) -> dict:
    response = client.post(
        "/api/v1/auth/register",
        json={"email": email, "username": username, "password": password},
    )
    assert response.status_code == 201, response.text
    return response.json()["data"]


def _account(data: dict) -> dict:
    return {
        "id": data["user"]["id"],
        "email": data["user"]["email"],
        "refresh_token": data["refresh_token"],
        "headers": {"Authorization": f"Bearer {data['access_token']}"},
    }


@pytest.fixture
def author(client, db_session) -> dict:
    return _account(register_user(client, "author@example.com", "author"))


@pytest.fixture
def other_user(client, db_session) -> dict:
    return _account(register_user(client, "reader@example.com", "reader"))


# ── Standalone in-memory database for unit tests ────────────────


@pytest.fixture
def memory_session_factory():
    test_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=test_engine)
    factory = sessionmaker(bind=test_engine, autoflush=False, autocommit=False)
    yield factory
    test_engine.dispose()


@pytest.fixture
def memory_db(memory_session_factory):
    session = memory_session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_user(memory_db):
    def _make_user(username: str = "alice") -> User:
        user = User(
            email=f"{username}@example.com",
            hashed_password="not-a-real-hash",
            username=username,
        )
        memory_db.add(user)
        memory_db.commit()
        memory_db.refresh(user)
        return user

    return _make_user


@pytest.fixture
def make_post(memory_db):
    def _make_post(author: User, title: str = "First Post", **fields) -> Post:
        post = Post(
            author_id=author.id,
            title=title,
            slug=fields.pop("slug", title.lower().replace(" ", "-")),
            content=fields.pop("content", "Enough content to be valid."),
            **fields,
        )
        memory_db.add(post)
        memory_db.commit()
        memory_db.refresh(post)
        return post

    return _make_post


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()
