"""
Core data types for the post archiver.

This module defines the records passed between pipeline stages:
- Post: A post decoded from the page's embedded payload
- ExtractResult: Outcome of one URL processed by the batch runner
- DateFilter: Predicate over sitemap last-modified dates
"""

from __future__ import annotations

from dataclasses import dataclass
import re
from typing import Any


_POST_ID_RE = re.compile(r"/p/([^/?#]+)")


@dataclass
class Post:
    """A single post as published on the platform.

    An empty slug means no post was extracted (already processed, or the
    page did not carry one). Callers treat that as a skip, not a failure.

    Attributes:
        id: Numeric post id
        publication_id: Numeric id of the owning publication
        type: Post type reported by the platform ("newsletter", "podcast", ...)
        slug: URL slug, unique within a publication and used as the folder name
        post_date: ISO 8601 publication timestamp
        canonical_url: Canonical URL of the post
        previous_post_slug: Slug of the previous post, if any
        next_post_slug: Slug of the next post, if any
        cover_image: Cover image URL, if any
        description: Subtitle/description text
        word_count: Word count reported by the platform
        title: Post title
        body_html: Raw HTML fragment of the post body
    """
    id: int = 0
    publication_id: int = 0
    type: str = ""
    slug: str = ""
    post_date: str = ""
    canonical_url: str = ""
    previous_post_slug: str = ""
    next_post_slug: str = ""
    cover_image: str = ""
    description: str = ""
    word_count: int = 0
    title: str = ""
    body_html: str = ""

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> "Post":
        """Build a Post from the payload's ``post`` object.

        Missing keys and JSON nulls fall back to the field defaults.
        """
        return cls(
            id=_as_int(data.get("id")),
            publication_id=_as_int(data.get("publication_id")),
            type=_as_str(data.get("type")),
            slug=_as_str(data.get("slug")),
            post_date=_as_str(data.get("post_date")),
            canonical_url=_as_str(data.get("canonical_url")),
            previous_post_slug=_as_str(data.get("previous_post_slug")),
            next_post_slug=_as_str(data.get("next_post_slug")),
            cover_image=_as_str(data.get("cover_image")),
            description=_as_str(data.get("description")),
            word_count=_as_int(data.get("wordcount")),
            title=_as_str(data.get("title")),
            body_html=_as_str(data.get("body_html")),
        )

    @property
    def found(self) -> bool:
        return bool(self.slug)


@dataclass
class ExtractResult:
    """Outcome of processing one URL in a batch.

    Exactly one of these is produced per input URL.

    Attributes:
        url: The post URL that was processed
        status: "ok", "skipped" or "failed"
        post: The extracted post when status is "ok"
        error: The exception that failed the post when status is "failed"
    """
    url: str
    status: str = "ok"
    post: Post | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    def fail(self, error: Exception) -> None:
        """Mark a delivered result as failed, e.g. when storing the post failed."""
        self.status = "failed"
        self.error = error


@dataclass(frozen=True)
class DateFilter:
    """Exclusive date-range predicate over ISO 8601 strings.

    Dates are compared lexicographically, so bounds should use the same
    format as the sitemap's lastmod values (e.g. "2024-01-31").
    """
    before: str | None = None
    after: str | None = None

    def __call__(self, date: str) -> bool:
        if self.after and not date > self.after:
            return False
        if self.before and not date < self.before:
            return False
        return True


def make_date_filter(before: str | None, after: str | None) -> DateFilter | None:
    """Return a DateFilter for the given bounds, or None when both are empty."""
    if not before and not after:
        return None
    return DateFilter(before=before or None, after=after or None)


def extract_post_id(url: str) -> str:
    """Return the identifier segment following ``/p/`` in a post URL.

    Example:
        >>> extract_post_id("https://example.substack.com/p/hello-world?s=r")
        'hello-world'
    """
    match = _POST_ID_RE.search(url)
    if match:
        return match.group(1)
    return ""


def _as_int(value: Any) -> int:
    if value is None or isinstance(value, bool):
        return 0
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def _as_str(value: Any) -> str:
    if value is None:
        return ""
    return str(value)
