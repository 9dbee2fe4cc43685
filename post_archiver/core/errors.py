"""Exception types raised by the extraction pipeline.

Every failure the pipeline can report derives from PostArchiverError so
callers can catch one type at the CLI boundary. A post that was already
processed is not an error and never raises.
"""

from __future__ import annotations


class PostArchiverError(Exception):
    """Base class for all pipeline errors."""


class FetchError(PostArchiverError):
    """Network or HTTP failure while fetching a URL.

    Attributes:
        url: The URL that was requested
        status_code: HTTP status code, or None for transport-level failures
    """

    def __init__(self, url: str, message: str, status_code: int | None = None):
        super().__init__(f"failed to fetch {url}: {message}")
        self.url = url
        self.status_code = status_code


class ParseError(PostArchiverError):
    """A sitemap or post page was not in the expected shape."""


class DecodeError(ParseError):
    """The embedded double-encoded JSON payload could not be decoded."""


class MediaError(PostArchiverError):
    """A media asset referenced by a post could not be downloaded or written."""

    def __init__(self, url: str, message: str):
        super().__init__(f"failed to download media {url}: {message}")
        self.url = url


class LedgerError(PostArchiverError):
    """The ledger file could not be read or appended to."""


class RunCancelledError(PostArchiverError):
    """The run was cancelled while work was still pending."""
