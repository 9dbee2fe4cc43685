"""
Post discovery through a publication's sitemap.

The publication exposes ``<base>/sitemap.xml`` listing every page with its
last-modified date. Post pages are the entries whose location contains
``/p/``; everything else (about page, archive, podcasts index) is dropped.
"""

from __future__ import annotations

import asyncio
import logging
from urllib.parse import urlparse, urlunparse

from bs4 import BeautifulSoup

from ..core.errors import ParseError, RunCancelledError
from ..core.types import DateFilter
from ..utils.logging import log_event
from .fetcher import Fetcher

logger = logging.getLogger(__name__)

POST_PATH_MARKER = "/p/"


def base_url(url: str) -> str:
    """Reduce a publication or post URL to ``scheme://host``.

    Raises:
        ValueError: If the URL has no scheme or host
    """
    parsed = urlparse(url.strip())
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError(f"Invalid URL: {url!r}")
    return f"{parsed.scheme}://{parsed.netloc}"


def sitemap_url(pub_url: str) -> str:
    """Return the sitemap location for a publication URL.

    Example:
        >>> sitemap_url("https://example.substack.com")
        'https://example.substack.com/sitemap.xml'
    """
    parsed = urlparse(pub_url.strip())
    if not parsed.scheme or not parsed.netloc:
        raise ValueError(f"Invalid URL: {pub_url!r}")
    path = parsed.path.rstrip("/") + "/sitemap.xml"
    return urlunparse((parsed.scheme, parsed.netloc, path, "", "", ""))


def parse_sitemap(
    content: bytes | str,
    date_filter: DateFilter | None = None,
    cancel_event: asyncio.Event | None = None,
) -> list[str]:
    """Return post URLs from a sitemap document, in document order.

    Args:
        content: Raw sitemap XML
        date_filter: Optional predicate over each entry's lastmod value
        cancel_event: Checked before every entry; when set the scan stops

    Returns:
        Locations containing ``/p/`` that pass the date filter

    Raises:
        ParseError: If the document is not a ``<urlset>`` sitemap
        RunCancelledError: If cancel_event is set during the scan
    """
    soup = BeautifulSoup(content, "xml")
    if soup.find("urlset") is None:
        raise ParseError("sitemap does not contain a <urlset> element")

    urls: list[str] = []
    for entry in soup.find_all("url"):
        if cancel_event is not None and cancel_event.is_set():
            raise RunCancelledError("sitemap scan cancelled")
        loc = entry.find("loc")
        if loc is None:
            continue
        location = loc.get_text(strip=True)
        if POST_PATH_MARKER not in location:
            continue
        if date_filter is not None:
            lastmod = entry.find("lastmod")
            if not date_filter(lastmod.get_text(strip=True) if lastmod else ""):
                continue
        urls.append(location)
    return urls


async def discover(
    fetcher: Fetcher,
    pub_url: str,
    date_filter: DateFilter | None = None,
    cancel_event: asyncio.Event | None = None,
) -> list[str]:
    """Fetch a publication's sitemap and list its post URLs.

    Args:
        fetcher: Shared HTTP fetcher
        pub_url: Publication URL (scheme and host are enough)
        date_filter: Optional lastmod predicate, None admits all entries
        cancel_event: Cooperative cancellation signal

    Returns:
        Post URLs in sitemap order; empty if none match

    Raises:
        FetchError: If the sitemap cannot be fetched
        ParseError: If the sitemap is not in the expected shape
        RunCancelledError: If cancel_event is set before the scan completes
    """
    location = sitemap_url(pub_url)
    log_event(logger, "Discover start", event="discover_start", url=location)

    content = await fetcher.fetch(location)
    urls = parse_sitemap(content, date_filter, cancel_event)

    log_event(
        logger,
        f"Found {len(urls)} posts",
        event="discover_complete",
        url=location,
        count=len(urls),
        before=date_filter.before if date_filter else None,
        after=date_filter.after if date_filter else None,
    )
    return urls
