"""Synchronous SQLAlchemy session helpers."""

from __future__ import annotations

from collections.abc import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from quill.config import settings


class Base(DeclarativeBase):
    """Declarative base class for ORM models."""


def enable_sqlite_foreign_keys(target: Engine) -> None:
    """Turn on FK enforcement for every new SQLite connection of ``target``.

    SQLite ignores ``ON DELETE CASCADE`` on posts and refresh tokens unless
    the pragma is set per connection.
    """
    if target.dialect.name != "sqlite":
        return

    @event.listens_for(target, "connect")
    def _set_pragma(dbapi_connection, connection_record) -> None:
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


_database_url = settings.resolved_database_url
engine_kwargs: dict[str, object] = {
    "echo": settings.db_echo,
    "pool_pre_ping": True,
}
if _database_url.startswith("sqlite"):
    # The publish worker touches the database from a worker thread.
    engine_kwargs["connect_args"] = {"check_same_thread": False}

engine: Engine = create_engine(_database_url, **engine_kwargs)
enable_sqlite_foreign_keys(engine)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)


def get_db() -> Iterator[Session]:
    """Yield a scoped session for dependency injection."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
