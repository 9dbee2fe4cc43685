"""
Post extraction from a post page's embedded preload payload.

Post pages carry the full post record in a script element of the form::

    window._preloads = JSON.parse("{\\"post\\": {...}}")

The argument is a JSON string literal whose content is itself JSON, so the
payload is decoded twice: once to unescape the string literal and once to
parse the object it contains.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from bs4 import BeautifulSoup

from ..config import MediaConfig
from ..core.errors import DecodeError, ParseError
from ..core.ledger import DedupLedger
from ..core.types import Post, extract_post_id
from ..utils.logging import log_event
from .fetcher import Fetcher
from .media import download_media, find_media_urls, rewrite_media_urls

logger = logging.getLogger(__name__)

PRELOAD_MARKER = "window._preloads"
JSON_PARSE_OPEN = 'JSON.parse("'
JSON_PARSE_CLOSE = '")'


def find_script_content(page_html: str | bytes) -> str | None:
    """Return the text of the first script holding the preload payload."""
    soup = BeautifulSoup(page_html, "html.parser")
    for script in soup.find_all("script"):
        text = script.string or script.get_text()
        if PRELOAD_MARKER in text and "JSON.parse(" in text:
            return text
    return None


def extract_json_string(script_content: str) -> str:
    """Return the escaped string literal passed to ``JSON.parse``.

    Raises:
        ParseError: If the call markers are missing or out of order
    """
    start = script_content.find(JSON_PARSE_OPEN)
    end = script_content.rfind(JSON_PARSE_CLOSE)
    if start == -1 or end == -1 or start + len(JSON_PARSE_OPEN) > end:
        raise ParseError("failed to extract JSON string from preload script")
    return script_content[start + len(JSON_PARSE_OPEN):end]


def decode_payload(json_string: str) -> dict[str, Any]:
    """Decode the double-encoded preload payload.

    Raises:
        DecodeError: If either decoding stage fails or the result is not
            a JSON object
    """
    try:
        inner = json.loads(f'"{json_string}"')
    except json.JSONDecodeError as exc:
        raise DecodeError(f"malformed payload string literal: {exc}") from exc
    try:
        data = json.loads(inner)
    except json.JSONDecodeError as exc:
        raise DecodeError(f"malformed payload JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise DecodeError(f"payload is a {type(data).__name__}, expected an object")
    return data


def parse_post_page(page_html: str | bytes) -> Post:
    """Decode the Post embedded in a post page.

    Returns an empty Post when the payload has no ``post`` object.

    Raises:
        ParseError: If no preload script is found
        DecodeError: If the payload is malformed
    """
    script_content = find_script_content(page_html)
    if not script_content:
        raise ParseError("preload script not found in page")
    data = decode_payload(extract_json_string(script_content))
    post_data = data.get("post")
    if not isinstance(post_data, dict):
        return Post()
    post = Post.from_payload(post_data)
    if post.slug in (".", "..") or "/" in post.slug or "\\" in post.slug:
        raise ParseError(f"refusing unsafe post slug: {post.slug!r}")
    return post


class PostExtractor:
    """Extracts posts and localises their media.

    The extractor only reads the ledger unless ``commit`` is requested, so
    several extractions may share one ledger while a batch is running.

    Attributes:
        fetcher: Shared HTTP fetcher
        ledger: Processed-post ledger
        media: Media download settings
    """

    def __init__(
        self,
        fetcher: Fetcher,
        ledger: DedupLedger,
        media: MediaConfig | None = None,
    ):
        self.fetcher = fetcher
        self.ledger = ledger
        self.media = media or MediaConfig()

    def is_processed(self, url: str) -> bool:
        post_id = extract_post_id(url)
        return bool(post_id) and post_id in self.ledger

    async def extract(
        self,
        url: str,
        output_dir: Path,
        force: bool = False,
        commit: bool = True,
    ) -> Post:
        """Extract one post and download its media into ``output_dir/<slug>``.

        Args:
            url: Post URL (must contain ``/p/<identifier>``)
            output_dir: Root output directory
            force: Re-extract even if the identifier is in the ledger
            commit: Append the identifier to the ledger on success; batch
                callers pass False and commit once at the end

        Returns:
            The post with media references rewritten, or an empty Post if
            it was already processed or the page held no post

        Raises:
            FetchError: If the page cannot be fetched
            ParseError: If the page has no payload
            DecodeError: If the payload is malformed
            MediaError: If a media download fails under the "fail" policy
            LedgerError: If committing to the ledger fails
        """
        post_id = extract_post_id(url)
        if not force and self.is_processed(url):
            log_event(logger, f"Post {post_id} already downloaded, skipping", event="post_skipped", url=url)
            return Post()

        log_event(logger, f"Extracting {url}", level=logging.DEBUG, event="extract_start", url=url)
        page = await self.fetcher.fetch(url)
        post = parse_post_page(page)
        if not post.found:
            return post

        post_folder = output_dir / post.slug
        post_folder.mkdir(parents=True, exist_ok=True)
        if self.media.enabled:
            media_urls = find_media_urls(post.body_html)
            if media_urls:
                mapping = await download_media(
                    self.fetcher,
                    media_urls,
                    post_folder,
                    on_error=self.media.on_error,
                )
                post.body_html = rewrite_media_urls(post.body_html, mapping)

        if commit and post_id:
            self.ledger.commit([post_id])

        log_event(
            logger,
            f"Extracted {post.slug}",
            level=logging.DEBUG,
            event="extract_complete",
            url=url,
            slug=post.slug,
        )
        return post
