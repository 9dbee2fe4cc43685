"""
HTTP fetching on a shared httpx.AsyncClient.

One Fetcher is opened per run and shared by every stage (sitemap, post
pages, media). Requests are made once: there are no retries and nothing is
cached. Cancelling the awaiting task aborts the request in flight.
"""

from __future__ import annotations

from pathlib import Path

import httpx

from ..config import FetchConfig
from ..core.errors import FetchError


class Fetcher:
    """Async HTTP GET client that raises FetchError on any failure.

    Attributes:
        cfg: Fetch configuration (timeout, user agent, proxy handling)
    """

    def __init__(self, cfg: FetchConfig | None = None, client: httpx.AsyncClient | None = None):
        self.cfg = cfg or FetchConfig()
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=self.cfg.timeout_seconds,
            headers={"User-Agent": self.cfg.user_agent},
            follow_redirects=True,
            trust_env=self.cfg.trust_env,
        )

    async def __aenter__(self) -> "Fetcher":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def fetch(self, url: str) -> bytes:
        """GET a URL and return the response body.

        Raises:
            FetchError: On transport failure or an HTTP status >= 400
        """
        try:
            resp = await self._client.get(url)
        except httpx.HTTPError as exc:
            raise FetchError(url, f"{type(exc).__name__}: {exc}") from exc
        _raise_for_status(url, resp)
        return resp.content

    async def download(self, url: str, path: Path) -> int:
        """Stream a URL into a file, returning the number of bytes written.

        A partially written file is removed when the download fails or is
        cancelled.

        Raises:
            FetchError: On transport failure or an HTTP status >= 400
            OSError: If the file cannot be written
        """
        written = 0
        completed = False
        try:
            async with self._client.stream("GET", url) as resp:
                _raise_for_status(url, resp)
                with path.open("wb") as handle:
                    async for chunk in resp.aiter_bytes():
                        handle.write(chunk)
                        written += len(chunk)
            completed = True
        except httpx.HTTPError as exc:
            raise FetchError(url, f"{type(exc).__name__}: {exc}") from exc
        finally:
            if not completed:
                path.unlink(missing_ok=True)
        return written


def _raise_for_status(url: str, resp: httpx.Response) -> None:
    if resp.status_code >= 400:
        raise FetchError(url, f"HTTP {resp.status_code}", status_code=resp.status_code)
