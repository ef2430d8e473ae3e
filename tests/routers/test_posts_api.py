"""Tests for post endpoints."""

from __future__ import annotations

import asyncio
from uuid import uuid4

import pytest

from quill.database import SessionLocal
from quill.main import app
from quill.services.publish_worker import PublishWorker

POSTS = "/api/v1/posts"


def _create(client, account, title="Hello World", **fields) -> dict:
    payload = {"title": title, "content": "Some meaningful content", **fields}
    response = client.post(POSTS, json=payload, headers=account["headers"])
    assert response.status_code == 201, response.text
    return response.json()["data"]


def _error(response) -> str:
    body = response.json()
    assert body["success"] is False
    return body["error"]["code"]


def _drain_publish_queue() -> int:
    worker = PublishWorker(
        app.state.publish_queue, app.state.post_store, SessionLocal
    )
    return asyncio.run(worker.run_once())


class TestCreatePost:
    def test_creates_draft(self, client, author):
        post = _create(client, author, excerpt="Short teaser")
        assert post["status"] == "draft"
        assert post["slug"] == "hello-world"
        assert post["published_at"] is None
        assert post["excerpt"] == "Short teaser"
        assert post["author"] == {"id": author["id"], "username": "author"}

    def test_creates_published(self, client, author):
        post = _create(client, author, status="published")
        assert post["status"] == "published"
        assert post["published_at"] is not None

    def test_requires_auth(self, client, db_session):
        response = client.post(
            POSTS, json={"title": "Hello", "content": "Some meaningful content"}
        )
        assert response.status_code == 401
        assert _error(response) == "UNAUTHORIZED"

    def test_duplicate_slug(self, client, author):
        _create(client, author, "Same Title")
        response = client.post(
            POSTS,
            json={"title": "Same title!", "content": "Some meaningful content"},
            headers=author["headers"],
        )
        assert response.status_code == 409
        assert _error(response) == "SLUG_TAKEN"

    @pytest.mark.parametrize(
        "payload",
        [
            {"title": "Hi", "content": "Some meaningful content"},
            {"title": "Hello", "content": "short"},
            {
                "title": "Hello",
                "content": "Some meaningful content",
                "status": "archived",
            },
            {"title": "!!!", "content": "Some meaningful content"},
        ],
    )
    def test_validation(self, client, author, payload):
        response = client.post(POSTS, json=payload, headers=author["headers"])
        assert response.status_code == 400
        assert _error(response) == "VALIDATION_FAILED"


class TestReadPosts:
    def test_get_by_id_and_slug(self, client, author):
        post = _create(client, author)
        by_id = client.get(f"{POSTS}/{post['id']}")
        by_slug = client.get(f"{POSTS}/{post['slug']}")
        assert by_id.status_code == by_slug.status_code == 200
        assert by_id.json()["data"]["id"] == by_slug.json()["data"]["id"] == post["id"]

    def test_not_found(self, client, db_session):
        response = client.get(f"{POSTS}/{uuid4()}")
        assert response.status_code == 404
        assert _error(response) == "POST_NOT_FOUND"

    def test_list_paginates_newest_first(self, client, author):
        for i in range(3):
            _create(client, author, f"Post number {i}")

        response = client.get(POSTS, params={"page": 1, "limit": 2})
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["total_count"] == 3
        assert (data["page"], data["limit"]) == (1, 2)
        assert [p["slug"] for p in data["posts"]] == ["post-number-2", "post-number-1"]

    def test_list_filters(self, client, author, other_user):
        _create(client, author, "Author draft")
        _create(client, author, "Author live", status="published")
        _create(client, other_user, "Reader live", status="published")

        data = client.get(
            POSTS, params={"status": "published", "author_id": author["id"]}
        ).json()["data"]
        assert data["total_count"] == 1
        assert data["posts"][0]["slug"] == "author-live"

    @pytest.mark.parametrize(
        "params", [{"limit": 0}, {"limit": 101}, {"page": 0}, {"status": "gone"}]
    )
    def test_list_rejects_bad_query(self, client, db_session, params):
        response = client.get(POSTS, params=params)
        assert response.status_code == 400
        assert _error(response) == "VALIDATION_FAILED"


class TestUpdatePost:
    def test_edit_fields(self, client, author):
        post = _create(client, author, excerpt="Teaser")
        response = client.put(
            f"{POSTS}/{post['id']}",
            json={"title": "Fresh Title", "excerpt": None},
            headers=author["headers"],
        )
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["title"] == "Fresh Title"
        assert data["slug"] == "fresh-title"
        assert data["excerpt"] is None
        assert data["content"] == post["content"]

    def test_publish_happens_in_worker(self, client, author):
        post = _create(client, author)
        response = client.put(
            f"{POSTS}/{post['id']}",
            json={"status": "published"},
            headers=author["headers"],
        )
        assert response.status_code == 200
        assert response.json()["data"]["status"] == "draft"

        assert _drain_publish_queue() >= 1
        published = client.get(f"{POSTS}/{post['id']}").json()["data"]
        assert published["status"] == "published"
        assert published["published_at"] is not None

    def test_scheduled_publish_stays_draft(self, client, author):
        post = _create(client, author)
        response = client.put(
            f"{POSTS}/{post['id']}",
            json={"status": "published", "scheduled_for": "2999-01-01T00:00:00Z"},
            headers=author["headers"],
        )
        assert response.status_code == 200

        _drain_publish_queue()
        still = client.get(f"{POSTS}/{post['id']}").json()["data"]
        assert still["status"] == "draft"

    def test_unpublish_then_republish_round_trip(self, client, author):
        post = _create(client, author, status="published")
        url = f"{POSTS}/{post['id']}"
        headers = author["headers"]
        assert post["published_at"] is not None

        drafted = client.put(url, json={"status": "draft"}, headers=headers)
        assert drafted.json()["data"]["status"] == "draft"
        assert drafted.json()["data"]["published_at"] is None

        requested = client.put(url, json={"status": "published"}, headers=headers)
        assert requested.status_code == 200
        assert requested.json()["data"]["status"] == "draft"

        assert _drain_publish_queue() >= 1
        republished = client.get(url).json()["data"]
        assert republished["status"] == "published"
        assert republished["published_at"] is not None

    def test_schedule_without_publish(self, client, author):
        post = _create(client, author)
        response = client.put(
            f"{POSTS}/{post['id']}",
            json={"scheduled_for": "2999-01-01T00:00:00Z"},
            headers=author["headers"],
        )
        assert response.status_code == 400
        assert _error(response) == "VALIDATION_FAILED"

    def test_already_published(self, client, author):
        post = _create(client, author, status="published")
        response = client.put(
            f"{POSTS}/{post['id']}",
            json={"status": "published"},
            headers=author["headers"],
        )
        assert response.status_code == 409
        assert _error(response) == "POST_ALREADY_PUBLISHED"

    def test_archived_cannot_be_published(self, client, author):
        post = _create(client, author)
        url = f"{POSTS}/{post['id']}"
        headers = author["headers"]
        archived = client.put(url, json={"status": "archived"}, headers=headers)
        assert archived.json()["data"]["status"] == "archived"

        response = client.put(url, json={"status": "published"}, headers=headers)
        assert response.status_code == 409
        assert _error(response) == "INVALID_STATUS_CHANGE"

    def test_unpublish(self, client, author):
        post = _create(client, author, status="published")
        response = client.put(
            f"{POSTS}/{post['id']}", json={"status": "draft"}, headers=author["headers"]
        )
        data = response.json()["data"]
        assert data["status"] == "draft"
        assert data["published_at"] is None

    def test_not_the_author(self, client, author, other_user):
        post = _create(client, author)
        response = client.put(
            f"{POSTS}/{post['id']}",
            json={"title": "Stolen post"},
            headers=other_user["headers"],
        )
        assert response.status_code == 403
        assert _error(response) == "FORBIDDEN"

    def test_missing_post(self, client, author):
        response = client.put(
            f"{POSTS}/{uuid4()}", json={"title": "Nothing"}, headers=author["headers"]
        )
        assert response.status_code == 404
        assert _error(response) == "POST_NOT_FOUND"


class TestDeletePost:
    def test_delete(self, client, author):
        post = _create(client, author)
        response = client.delete(f"{POSTS}/{post['id']}", headers=author["headers"])
        assert response.status_code == 200
        assert response.json()["data"] == {"message": "Post deleted successfully"}
        assert client.get(f"{POSTS}/{post['id']}").status_code == 404

    def test_not_the_author(self, client, author, other_user):
        post = _create(client, author)
        response = client.delete(
            f"{POSTS}/{post['id']}", headers=other_user["headers"]
        )
        assert response.status_code == 403
