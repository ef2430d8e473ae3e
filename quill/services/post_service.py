"""Post lifecycle: validation, ownership and the deferred publish step."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING
from uuid import UUID

from quill.errors import (
    ForbiddenError,
    PostAlreadyPublishedError,
    PostNotFoundError,
    PublishUnavailableError,
    ValidationFailedError,
)
from quill.models.post import Post
from quill.schemas.events import PublishEvent
from quill.schemas.post import (
    PostCreate,
    PostListQuery,
    PostOut,
    PostPage,
    PostStatus,
    PostUpdate,
)
from quill.services.post_store import PostChanges, PostStore
from quill.services.publisher import PostPublisher
from quill.services.queue import QueueError
from quill.services.status_policy import validate_transition
from quill.utils.clock import Clock, utc_now
from quill.utils.slug import generate_slug

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

    from quill.models.user import User

logger = logging.getLogger(__name__)


def _slug_for(title: str) -> str:
    slug = generate_slug(title)
    if not slug:
        raise ValidationFailedError("Title must contain at least one letter or digit")
    return slug


class PostService:
    """Orchestrates post operations on top of ``PostStore``.

    Holds no post state between calls; every operation re-reads the row.
    Moving a post to ``published`` never writes the status here: it enqueues a
    ``PublishEvent`` and the publish worker performs the flip later.
    """

    def __init__(
        self,
        store: PostStore,
        publisher: PostPublisher,
        clock: Clock = utc_now,
    ) -> None:
        self.store = store
        self.publisher = publisher
        self._clock = clock

    def create(self, db: Session, author: User, payload: PostCreate) -> Post:
        post = Post(
            author_id=author.id,
            title=payload.title,
            slug=_slug_for(payload.title),
            content=payload.content,
            excerpt=payload.excerpt,
            status=payload.status.value,
        )
        if payload.status is PostStatus.PUBLISHED:
            post.published_at = self._clock()
        created = self.store.create(db, post)
        logger.info(
            "Created post",
            extra={"post_id": str(created.uuid), "status": created.status},
        )
        return self.store.get_by_identifier(db, created.uuid)

    def get(self, db: Session, id_or_slug: str) -> Post:
        """Look a post up by public UUID, falling back to its slug."""
        try:
            post_uuid = UUID(id_or_slug)
        except ValueError:
            return self.store.get_by_slug(db, id_or_slug)
        try:
            return self.store.get_by_identifier(db, post_uuid)
        except PostNotFoundError:
            return self.store.get_by_slug(db, id_or_slug)

    def list(self, db: Session, query: PostListQuery) -> PostPage:
        posts, total = self.store.list(
            db,
            status=query.status,
            author_id=query.author_id,
            page=query.page,
            limit=query.limit,
        )
        return PostPage(
            posts=[PostOut.model_validate(post) for post in posts],
            total_count=total,
            page=query.page,
            limit=query.limit,
        )

    async def request_update(
        self,
        db: Session,
        requester: User,
        post_id: UUID,
        payload: PostUpdate,
    ) -> Post:
        """Apply a partial update on behalf of ``requester``.

        A request for ``published`` is turned into a queued ``PublishEvent``;
        the returned post keeps its current status until the worker runs.
        Every other field change is written in the same transaction as the
        enqueue, so either both happen or neither does.

        Args:
            db: Database session
            requester: Authenticated user asking for the change
            post_id: Public UUID of the post
            payload: Partial update; unset fields stay untouched

        Returns:
            The post as stored after the update

        Raises:
            PostNotFoundError: No such post
            ForbiddenError: ``requester`` is not the author
            PostAlreadyPublishedError: Publishing an already published post
            InvalidStatusChangeError: The status policy rejects the change
            SlugTakenError: The new title's slug belongs to another post
            PublishUnavailableError: The publish event could not be queued
        """
        post = self.store.get_by_identifier(db, post_id)
        if post.author_id != requester.id:
            raise ForbiddenError()

        changes = PostChanges()
        event: PublishEvent | None = None
        current = PostStatus(post.status)

        if payload.status is PostStatus.PUBLISHED:
            if current is PostStatus.PUBLISHED:
                raise PostAlreadyPublishedError()
            validate_transition(current, PostStatus.PUBLISHED)
            event = PublishEvent(
                post_identifier=post.uuid,
                author_identifier=requester.id,
                requested_at=self._clock(),
                scheduled_for=payload.scheduled_for,
            )
        elif payload.status is not None:
            validate_transition(current, payload.status)
            if payload.status is not current:
                changes.status = payload.status
                changes.published_at = None

        if payload.title is not None:
            changes.title = payload.title
            changes.slug = _slug_for(payload.title)
        if payload.content is not None:
            changes.content = payload.content
        if "excerpt" in payload.model_fields_set:
            changes.excerpt = payload.excerpt

        updated = self.store.update(db, post_id, changes, commit=False)

        if event is not None:
            try:
                await self.publisher.publish(event)
            except QueueError as exc:
                db.rollback()
                logger.error(
                    "Could not queue publish event",
                    extra={"post_id": str(post_id), "error": str(exc)},
                )
                raise PublishUnavailableError() from exc

        db.commit()
        db.refresh(updated)
        return updated

    def delete(self, db: Session, requester: User, post_id: UUID) -> None:
        post = self.store.get_by_identifier(db, post_id)
        if post.author_id != requester.id:
            raise ForbiddenError()
        self.store.delete(db, post_id)
        logger.info("Deleted post", extra={"post_id": str(post_id)})
