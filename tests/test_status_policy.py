"""Tests for the post status transition table."""

from __future__ import annotations

import pytest

from quill.errors import InvalidStatusChangeError
from quill.schemas.post import PostStatus
from quill.services.status_policy import allowed_transitions, validate_transition

DRAFT, PUBLISHED, ARCHIVED = PostStatus.DRAFT, PostStatus.PUBLISHED, PostStatus.ARCHIVED

LEGAL = {
    (DRAFT, DRAFT),
    (DRAFT, PUBLISHED),
    (DRAFT, ARCHIVED),
    (PUBLISHED, PUBLISHED),
    (PUBLISHED, DRAFT),
    (PUBLISHED, ARCHIVED),
    (ARCHIVED, ARCHIVED),
    (ARCHIVED, DRAFT),
}


@pytest.mark.parametrize("current", list(PostStatus))
@pytest.mark.parametrize("requested", list(PostStatus))
def test_transition_grid(current: PostStatus, requested: PostStatus):
    if (current, requested) in LEGAL:
        assert validate_transition(current, requested) is None
    else:
        with pytest.raises(InvalidStatusChangeError):
            validate_transition(current, requested)


def test_archived_cannot_be_published_directly():
    with pytest.raises(InvalidStatusChangeError) as exc_info:
        validate_transition(ARCHIVED, PUBLISHED)
    assert exc_info.value.code == "INVALID_STATUS_CHANGE"
    assert "archived" in exc_info.value.message


def test_allowed_transitions_excludes_current_status():
    for status in PostStatus:
        assert status not in allowed_transitions(status)
    assert allowed_transitions(ARCHIVED) == frozenset({DRAFT})
