"""Post status transition rules."""

from __future__ import annotations

from quill.errors import InvalidStatusChangeError
from quill.schemas.post import PostStatus

ALLOWED_TRANSITIONS: dict[PostStatus, frozenset[PostStatus]] = {
    PostStatus.DRAFT: frozenset({PostStatus.PUBLISHED, PostStatus.ARCHIVED}),
    PostStatus.PUBLISHED: frozenset({PostStatus.DRAFT, PostStatus.ARCHIVED}),
    PostStatus.ARCHIVED: frozenset({PostStatus.DRAFT}),
}


def allowed_transitions(current: PostStatus) -> frozenset[PostStatus]:
    """Return the statuses reachable from ``current`` in one step."""
    return ALLOWED_TRANSITIONS[current]


def validate_transition(current: PostStatus, requested: PostStatus) -> None:
    """Raise ``InvalidStatusChangeError`` unless ``current -> requested`` is legal.

    Requesting the current status is always accepted.
    """
    if current == requested:
        return
    if requested not in ALLOWED_TRANSITIONS[current]:
        raise InvalidStatusChangeError(
            f"Cannot change status from '{current.value}' to '{requested.value}'"
        )
