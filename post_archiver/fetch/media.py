"""
Media localisation for post bodies.

Images referenced by ``<img src>`` in a post body are downloaded into the
post folder and the body is rewritten to point at the local files.
"""

from __future__ import annotations

import html
import logging
from pathlib import Path
import re
from urllib.parse import unquote, urlsplit

from bs4 import BeautifulSoup

from ..core.errors import FetchError, MediaError
from ..utils.logging import log_event
from .fetcher import Fetcher

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = (".jpeg", ".jpg", ".png", ".gif", ".webp")
DEFAULT_EXTENSION = ".jpg"

_UNSAFE_CHARS_RE = re.compile(r"[^\w.\-]+")
# Characters that may follow a complete URL reference in markup.
_REFERENCE_END = r"(?=[\"'\s,)<>]|&quot;|&#39;|$)"


def resolve_media_src(src: str) -> str:
    """Return the absolute download URL for an image source, or "" to skip it.

    Protocol-relative sources (``//cdn...``) are fetched over https.
    Relative paths and ``data:`` URIs are left alone.
    """
    src = src.strip()
    if src.startswith("//"):
        return "https:" + src
    if src.startswith(("http://", "https://")):
        return src
    return ""


def find_media_urls(body_html: str) -> list[str]:
    """Return the distinct remote image sources in a body, in document order."""
    soup = BeautifulSoup(body_html, "html.parser")
    urls: list[str] = []
    for img in soup.find_all("img"):
        src = resolve_media_src(img.get("src") or "")
        if src and src not in urls:
            urls.append(src)
    return urls


def media_filename(url: str) -> str:
    """Derive a local filename from a media URL.

    Query and fragment are dropped and the last path segment is used after
    percent-decoding, so CDN URLs that wrap the original image location keep
    the original name. Names without a known image extension get ``.jpg``.

    Example:
        >>> media_filename("https://cdn.example.com/fetch/w_600/https%3A%2F%2Fs3.example.com%2Fimg%2Fcat.png?v=2")
        'cat.png'
    """
    path = unquote(urlsplit(url).path)
    name = path.rsplit("/", 1)[-1]
    name = name.split("?", 1)[0].split("#", 1)[0]
    name = _UNSAFE_CHARS_RE.sub("_", name).strip("._")
    if not name:
        name = "image"
    if name.lower().endswith(IMAGE_EXTENSIONS):
        return name
    return name + DEFAULT_EXTENSION


def unique_filename(name: str, used: set[str]) -> str:
    """Return name, or name with a ``-N`` suffix if it is already taken."""
    if name not in used:
        return name
    stem, dot, ext = name.rpartition(".")
    if not dot:
        stem, ext = name, ""
    counter = 1
    while True:
        candidate = f"{stem}-{counter}{dot}{ext}"
        if candidate not in used:
            return candidate
        counter += 1


def _reference_forms(url: str) -> list[str]:
    forms = [url, html.escape(url, quote=False)]
    if url.startswith("https://"):
        relative = url[len("https:"):]
        forms += [relative, html.escape(relative, quote=False)]
    return list(dict.fromkeys(forms))


def rewrite_media_urls(body_html: str, mapping: dict[str, str]) -> str:
    """Replace each downloaded media URL in the body with its local filename.

    The raw URL, its HTML-escaped form (``&`` as ``&amp;``) and, for https
    URLs, the protocol-relative form are replaced. A URL is only replaced as
    a whole reference, so a downloaded URL that prefixes another one (e.g.
    ``a.png`` and a failed ``a.png?w=2``) leaves the longer one intact.
    """
    for original in sorted(mapping, key=len, reverse=True):
        local = mapping[original]
        for form in _reference_forms(original):
            pattern = re.compile(r"(?<![\w:/])" + re.escape(form) + _REFERENCE_END)
            body_html = pattern.sub(lambda _match: local, body_html)
    return body_html


async def download_media(
    fetcher: Fetcher,
    urls: list[str],
    folder: Path,
    on_error: str = "fail",
) -> dict[str, str]:
    """Download each media URL into folder.

    Args:
        fetcher: Shared HTTP fetcher
        urls: Distinct media URLs to download
        folder: Post folder the files are written to
        on_error: "fail" raises on the first broken asset; "warn" logs it
                  and leaves that URL out of the returned mapping

    Returns:
        Mapping of original URL to local filename

    Raises:
        MediaError: On a failed download when on_error is "fail"
    """
    downloaded: dict[str, str] = {}
    used: set[str] = set()
    folder.mkdir(parents=True, exist_ok=True)

    for url in urls:
        name = unique_filename(media_filename(url), used)
        try:
            size = await fetcher.download(url, folder / name)
        except (FetchError, OSError) as exc:
            if on_error == "fail":
                raise MediaError(url, str(exc)) from exc
            log_event(
                logger,
                f"Media download failed, keeping remote URL: {url}",
                level=logging.WARNING,
                event="media_failed",
                url=url,
                error=str(exc),
            )
            continue
        used.add(name)
        downloaded[url] = name
        logger.debug("Downloaded %s -> %s (%d bytes)", url, name, size)

    return downloaded
