"""Pydantic schemas for posts."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from uuid import UUID

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


class PostStatus(str, Enum):
    """Post status."""

    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"


def ensure_aware(value: datetime | None) -> datetime | None:
    """Read naive timestamps as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class PostCreate(BaseModel):
    """Schema for creating a post."""

    title: str = Field(..., min_length=3, max_length=255)
    content: str = Field(..., min_length=10)
    excerpt: str | None = Field(default=None, max_length=500)
    status: PostStatus = PostStatus.DRAFT

    @field_validator("status")
    @classmethod
    def _creatable_status(cls, value: PostStatus) -> PostStatus:
        if value is PostStatus.ARCHIVED:
            raise ValueError("A post can only be created as draft or published")
        return value


class PostUpdate(BaseModel):
    """Schema for a partial post update.

    ``scheduled_for`` only makes sense alongside ``status=published``; it is
    the earliest instant at which the publish worker may flip the post.
    """

    title: str | None = Field(default=None, min_length=3, max_length=255)
    content: str | None = Field(default=None, min_length=10)
    excerpt: str | None = Field(default=None, max_length=500)
    status: PostStatus | None = None
    scheduled_for: datetime | None = None

    @field_validator("scheduled_for")
    @classmethod
    def _aware_schedule(cls, value: datetime | None) -> datetime | None:
        return ensure_aware(value)

    @model_validator(mode="after")
    def _schedule_requires_publish(self) -> PostUpdate:
        if self.scheduled_for is not None and self.status is not PostStatus.PUBLISHED:
            raise ValueError("scheduled_for requires status 'published'")
        return self


class PostListQuery(BaseModel):
    """Filters and pagination for listing posts."""

    status: PostStatus | None = None
    author_id: UUID | None = None
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1, le=100)


class PostAuthor(BaseModel):
    """Minimal author information embedded in a post."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    username: str


class PostOut(BaseModel):
    """Post output schema; ``id`` is the public UUID."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(validation_alias=AliasChoices("uuid", "id"))
    title: str
    slug: str
    content: str
    excerpt: str | None = None
    status: PostStatus
    published_at: datetime | None = None
    created_at: datetime
    updated_at: datetime
    author: PostAuthor


class PostPage(BaseModel):
    """One page of posts plus the total number of matches."""

    posts: list[PostOut]
    total_count: int
    page: int
    limit: int


class MessageOut(BaseModel):
    message: str
