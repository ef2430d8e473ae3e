"""Persistence for posts."""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from datetime import datetime
from typing import TYPE_CHECKING, Any
from uuid import UUID

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError

from quill.errors import PostNotFoundError, SlugTakenError
from quill.models.post import Post
from quill.schemas.post import PostStatus
from quill.utils.clock import Clock, utc_now

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)


class _Unset:
    """Marker for fields a partial update leaves untouched."""

    def __repr__(self) -> str:
        return "UNSET"


UNSET: Any = _Unset()


@dataclass
class PostChanges:
    """Sparse set of column writes for ``PostStore.update``.

    The fields are the complete list of updatable columns; anything left as
    ``UNSET`` is not written. ``None`` is a real value (it clears ``excerpt``
    or ``published_at``).
    """

    title: str = UNSET
    slug: str = UNSET
    content: str = UNSET
    excerpt: str | None = UNSET
    status: PostStatus = UNSET
    published_at: datetime | None = UNSET

    def values(self) -> dict[str, Any]:
        values = {}
        for field in fields(self):
            value = getattr(self, field.name)
            if value is UNSET:
                continue
            if isinstance(value, PostStatus):
                value = value.value
            values[field.name] = value
        return values

    def __bool__(self) -> bool:
        return bool(self.values())


def _is_slug_violation(exc: IntegrityError) -> bool:
    return "slug" in str(exc.orig).lower()


class PostStore:
    """Repository for ``Post`` rows.

    Methods take the caller's session so several calls can share one
    transaction; ``commit=False`` leaves the transaction open.
    """

    def __init__(self, clock: Clock = utc_now) -> None:
        self._clock = clock

    def create(self, db: Session, post: Post) -> Post:
        """Insert a post and return it with generated id, uuid and timestamps.

        Raises:
            SlugTakenError: Another post already uses ``post.slug``
        """
        db.add(post)
        try:
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            if _is_slug_violation(exc):
                raise SlugTakenError() from exc
            raise
        db.refresh(post)
        return post

    def get_by_identifier(self, db: Session, post_uuid: UUID) -> Post:
        post = db.query(Post).filter(Post.uuid == post_uuid).first()
        if post is None:
            raise PostNotFoundError()
        return post

    def get_by_slug(self, db: Session, slug: str) -> Post:
        post = db.query(Post).filter(Post.slug == slug).first()
        if post is None:
            raise PostNotFoundError()
        return post

    def list(
        self,
        db: Session,
        *,
        status: PostStatus | None = None,
        author_id: UUID | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> tuple[list[Post], int]:
        """Return one page of posts, newest first, and the total match count.

        Args:
            db: Database session
            status: Only posts in this status
            author_id: Only posts written by this user
            page: 1-based page number
            limit: Page size

        Returns:
            Tuple of (posts on the page, total matching posts)
        """
        filters = []
        if status is not None:
            filters.append(Post.status == status.value)
        if author_id is not None:
            filters.append(Post.author_id == author_id)

        total = db.query(func.count(Post.id)).filter(*filters).scalar() or 0
        posts = (
            db.query(Post)
            .filter(*filters)
            .order_by(Post.created_at.desc(), Post.id.desc())
            .limit(limit)
            .offset((page - 1) * limit)
            .all()
        )
        return posts, total

    def update(
        self,
        db: Session,
        post_uuid: UUID,
        changes: PostChanges,
        *,
        commit: bool = True,
    ) -> Post:
        """Write exactly the fields set in ``changes`` and return the fresh row.

        Raises:
            PostNotFoundError: No post has ``post_uuid``
            SlugTakenError: The new slug collides with another post
        """
        values = changes.values()
        if not values:
            return self.get_by_identifier(db, post_uuid)

        values["updated_at"] = self._clock()
        stmt = (
            update(Post)
            .where(Post.uuid == post_uuid)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        try:
            result = db.execute(stmt)
            db.flush()
        except IntegrityError as exc:
            db.rollback()
            if _is_slug_violation(exc):
                raise SlugTakenError() from exc
            raise
        if result.rowcount == 0:
            raise PostNotFoundError()

        if commit:
            db.commit()
        db.expire_all()
        return self.get_by_identifier(db, post_uuid)

    def delete(self, db: Session, post_uuid: UUID) -> None:
        deleted = db.query(Post).filter(Post.uuid == post_uuid).delete(
            synchronize_session=False
        )
        if deleted == 0:
            db.rollback()
            raise PostNotFoundError()
        db.commit()

    def publish_if_draft(
        self, db: Session, post_uuid: UUID, published_at: datetime
    ) -> int:
        """Flip a draft to published; a no-op for any other status.

        Returns:
            Number of rows changed (0 or 1)
        """
        stmt = (
            update(Post)
            .where(Post.uuid == post_uuid, Post.status == PostStatus.DRAFT.value)
            .values(
                status=PostStatus.PUBLISHED.value,
                published_at=published_at,
                updated_at=published_at,
            )
            .execution_options(synchronize_session=False)
        )
        result = db.execute(stmt)
        db.commit()
        return result.rowcount
