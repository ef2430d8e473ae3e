"""URL slug helpers."""

from __future__ import annotations

from slugify import slugify

SLUG_MAX_LENGTH = 255


def generate_slug(title: str) -> str:
    """Generate URL-safe slug from title.

    Lowercases, transliterates accented characters, collapses every run of
    non-alphanumeric characters into a single ``-`` and trims the ends.

    Args:
        title: Post title

    Returns:
        URL-safe slug, possibly empty when the title has no letters or digits
    """
    return slugify(title, max_length=SLUG_MAX_LENGTH)
