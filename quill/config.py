"""Application settings."""

from __future__ import annotations

import json
from functools import cached_property
from typing import Literal

from pydantic import AliasChoices, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central configuration entrypoint for the API and the publish worker."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Environment
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = True

    # Server
    allowed_origins: list[str] = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]

    # Observability
    log_level: str = "INFO"
    log_format: Literal["json", "text"] = "json"
    metrics_username: str = "prometheus"
    metrics_password: str | None = None

    # Database
    database_url: str = Field(
        default="sqlite:///./data/quill.db",
        validation_alias=AliasChoices("DATABASE_URL"),
    )
    async_database_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices("ASYNC_DATABASE_URL"),
    )
    db_echo: bool = Field(
        default=False,
        validation_alias=AliasChoices("DB_ECHO", "SQL_ECHO"),
    )

    # Security
    secret_key: str = Field(
        default="dev-secret-change-me-dev-secret-change-me",
        validation_alias=AliasChoices("SECRET_KEY", "JWT_SECRET"),
    )
    jwt_lifetime_seconds: int = Field(
        default=15 * 60,
        validation_alias=AliasChoices("JWT_LIFETIME_SECONDS", "JWT_ACCESS_TTL"),
    )
    refresh_token_lifetime_seconds: int = Field(
        default=7 * 24 * 60 * 60,
        validation_alias=AliasChoices(
            "REFRESH_TOKEN_LIFETIME_SECONDS", "JWT_REFRESH_TTL"
        ),
    )
    admin_email: str | None = None
    admin_username: str = "admin"
    admin_password: str | None = None

    # Publish queue
    queue_backend: Literal["memory", "redis"] = "memory"
    redis_url: str = "redis://localhost:6379/0"
    publish_queue_name: str = "post.publish"
    publish_worker_enabled: bool = True
    publish_poll_interval: float = 1.0
    publish_batch_size: int = 10
    publish_visibility_timeout: float = 60.0
    publish_max_attempts: int = 10
    publish_retry_backoff: float = 2.0
    publish_max_backoff: float = 300.0

    @field_validator("allowed_origins", mode="before")
    @classmethod
    def parse_allowed_origins(cls, value: str | list[str] | None) -> list[str]:
        """Normalize ALLOWED_ORIGINS env input into a list."""
        if isinstance(value, list):
            return value
        if isinstance(value, str):
            raw = value.strip()
            if not raw:
                return []
            if raw.startswith("["):
                try:
                    parsed = json.loads(raw)
                    if isinstance(parsed, list):
                        return parsed
                except json.JSONDecodeError:
                    pass
            return [item.strip() for item in raw.split(",") if item.strip()]
        return []

    @model_validator(mode="after")
    def check_production_secret(self) -> Settings:
        """Refuse to boot production with a short signing secret."""
        if self.is_production and len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters")
        return self

    @property
    def is_production(self) -> bool:
        """Return True when running in production."""
        return self.environment == "production"

    @property
    def cors_origins(self) -> list[str]:
        """Expose allowed CORS origins for middleware wiring."""
        return self.allowed_origins

    @cached_property
    def resolved_database_url(self) -> str:
        """Return the primary sync SQLAlchemy URL."""
        return self.database_url

    @cached_property
    def resolved_async_database_url(self) -> str:
        """Return the async SQLAlchemy URL derived from the sync configuration."""
        if self.async_database_url:
            return self.async_database_url
        base_url = self.resolved_database_url
        if base_url.startswith("sqlite:///"):
            return base_url.replace("sqlite:///", "sqlite+aiosqlite:///")
        for prefix in ("postgresql+psycopg://", "postgresql://"):
            if base_url.startswith(prefix):
                return base_url.replace(prefix, "postgresql+asyncpg://", 1)
        return base_url


settings = Settings()
