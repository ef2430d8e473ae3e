"""Tests for the post repository."""

from __future__ import annotations

from datetime import UTC, datetime
from uuid import uuid4

import pytest

from quill.errors import PostNotFoundError, SlugTakenError
from quill.models.post import Post
from quill.schemas.post import PostStatus
from quill.services.post_store import UNSET, PostChanges, PostStore


@pytest.fixture
def store() -> PostStore:
    return PostStore()


class TestPostChanges:
    def test_only_set_fields_are_written(self):
        changes = PostChanges(title="New", excerpt=None, status=PostStatus.ARCHIVED)
        assert changes.values() == {
            "title": "New",
            "excerpt": None,
            "status": "archived",
        }

    def test_empty_changes_are_falsy(self):
        assert not PostChanges()
        assert PostChanges().slug is UNSET


class TestCreateAndRead:
    def test_create_assigns_identity_and_timestamps(self, store, memory_db, make_user):
        alice = make_user()
        post = store.create(
            memory_db,
            Post(
                author_id=alice.id,
                title="Hello",
                slug="hello",
                content="Body of the post",
            ),
        )
        assert post.id is not None
        assert post.uuid is not None
        assert post.status == "draft"
        assert post.created_at is not None
        assert store.get_by_slug(memory_db, "hello").uuid == post.uuid
        assert store.get_by_identifier(memory_db, post.uuid).author.username == "alice"

    def test_duplicate_slug(self, store, memory_db, make_user, make_post):
        alice = make_user()
        make_post(alice, "Hello", slug="hello")
        with pytest.raises(SlugTakenError):
            store.create(
                memory_db,
                Post(author_id=alice.id, title="Hi", slug="hello", content="x" * 12),
            )

    def test_missing_post(self, store, memory_db):
        with pytest.raises(PostNotFoundError):
            store.get_by_identifier(memory_db, uuid4())
        with pytest.raises(PostNotFoundError):
            store.get_by_slug(memory_db, "nothing-here")


class TestList:
    def test_newest_first_with_independent_total(
        self, store, memory_db, make_user, make_post
    ):
        alice = make_user()
        posts = [make_post(alice, f"Post {i}") for i in range(5)]

        page, total = store.list(memory_db, page=1, limit=2)
        assert total == 5
        assert [p.slug for p in page] == [posts[4].slug, posts[3].slug]

        last_page, total = store.list(memory_db, page=3, limit=2)
        assert total == 5
        assert [p.slug for p in last_page] == [posts[0].slug]

    def test_filters(self, store, memory_db, make_user, make_post):
        alice, bob = make_user("alice"), make_user("bob")
        make_post(alice, "Alice draft")
        make_post(alice, "Alice live", status="published")
        make_post(bob, "Bob live", status="published")

        _, total = store.list(memory_db, status=PostStatus.PUBLISHED)
        assert total == 2
        posts, total = store.list(
            memory_db, status=PostStatus.PUBLISHED, author_id=alice.id
        )
        assert total == 1
        assert posts[0].slug == "alice-live"


class TestUpdate:
    def test_partial_update(self, store, memory_db, make_user, make_post):
        alice = make_user()
        post = make_post(alice, "Hello", excerpt="Teaser")

        updated = store.update(
            memory_db, post.uuid, PostChanges(content="Brand new content", excerpt=None)
        )
        assert updated.content == "Brand new content"
        assert updated.excerpt is None
        assert updated.title == "Hello"

    def test_no_changes_returns_current_row(
        self, store, memory_db, make_user, make_post
    ):
        post = make_post(make_user())
        assert store.update(memory_db, post.uuid, PostChanges()).uuid == post.uuid

    def test_missing_post(self, store, memory_db):
        with pytest.raises(PostNotFoundError):
            store.update(memory_db, uuid4(), PostChanges(title="Nope"))

    def test_slug_collision(self, store, memory_db, make_user, make_post):
        alice = make_user()
        make_post(alice, "Taken", slug="taken")
        post = make_post(alice, "Free", slug="free")
        with pytest.raises(SlugTakenError):
            store.update(memory_db, post.uuid, PostChanges(slug="taken"))
        assert store.get_by_identifier(memory_db, post.uuid).slug == "free"

    def test_uncommitted_update_can_be_rolled_back(
        self, store, memory_db, make_user, make_post
    ):
        post = make_post(make_user(), "Original")
        store.update(memory_db, post.uuid, PostChanges(title="Changed"), commit=False)
        memory_db.rollback()
        assert store.get_by_identifier(memory_db, post.uuid).title == "Original"

    def test_updated_at_comes_from_clock(
        self, memory_db, make_user, make_post, fake_clock
    ):
        store = PostStore(clock=fake_clock)
        post = make_post(make_user())
        fake_clock.advance(90)

        updated = store.update(memory_db, post.uuid, PostChanges(title="Later"))
        assert updated.updated_at.replace(tzinfo=UTC) == fake_clock.now


class TestDelete:
    def test_delete(self, store, memory_db, make_user, make_post):
        post = make_post(make_user())
        store.delete(memory_db, post.uuid)
        with pytest.raises(PostNotFoundError):
            store.get_by_identifier(memory_db, post.uuid)

    def test_delete_missing(self, store, memory_db):
        with pytest.raises(PostNotFoundError):
            store.delete(memory_db, uuid4())


class TestPublishIfDraft:
    def test_flips_draft_once(self, store, memory_db, make_user, make_post):
        post = make_post(make_user())
        when = datetime(2026, 5, 1, 8, 0, tzinfo=UTC)

        assert store.publish_if_draft(memory_db, post.uuid, when) == 1
        assert store.publish_if_draft(memory_db, post.uuid, when) == 0

        memory_db.expire_all()
        published = store.get_by_identifier(memory_db, post.uuid)
        assert published.status == "published"
        assert published.published_at.replace(tzinfo=UTC) == when

    def test_ignores_archived_and_missing(self, store, memory_db, make_user, make_post):
        post = make_post(make_user(), status="archived")
        now = datetime.now(UTC)
        assert store.publish_if_draft(memory_db, post.uuid, now) == 0
        assert store.publish_if_draft(memory_db, uuid4(), now) == 0
