"""
Concurrent extraction of many posts.

Each URL gets its own task, but at most ``concurrency`` of them are inside
the extractor at any time. Results are streamed in completion order and the
ledger is appended to once, after every task has finished.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Sequence
import logging
from pathlib import Path

from .core.errors import RunCancelledError
from .core.types import ExtractResult, extract_post_id
from .fetch.extractor import PostExtractor
from .utils.logging import log_event

logger = logging.getLogger(__name__)


class BatchRunner:
    """Runs a PostExtractor over a list of URLs with a bounded worker pool.

    Workers never write to the ledger. Identifiers of successful results
    are collected once the consumer is done with them and committed by the
    coordinator after all workers joined, including when the run is
    cancelled or the consumer stops early. A consumer that fails to store a
    delivered post calls ``result.fail(exc)`` before asking for the next
    result, and that post is not recorded. Posts extracted but never
    delivered are not recorded either, so the next run picks them up again.

    Attributes:
        extractor: The extractor used for each URL
        concurrency: Maximum number of extractions in flight
        cancel_event: Optional signal checked between result deliveries
    """

    def __init__(
        self,
        extractor: PostExtractor,
        concurrency: int = 8,
        cancel_event: asyncio.Event | None = None,
    ):
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.extractor = extractor
        self.concurrency = concurrency
        self.cancel_event = cancel_event

    async def run_all(
        self,
        urls: Sequence[str],
        output_dir: Path,
        force: bool = False,
    ) -> AsyncIterator[ExtractResult]:
        """Extract every URL and yield one ExtractResult per URL.

        URLs whose identifier is already in the ledger (and not forced) are
        reported as "skipped" without being fetched. Failures are reported
        as "failed" results and never stop the batch.

        Closing the iterator early, cancelling the consuming task, or setting
        ``cancel_event`` cancels all unfinished extractions.

        Raises:
            RunCancelledError: If cancel_event is set before all results
                were delivered
            LedgerError: If the final ledger append fails
        """
        semaphore = asyncio.Semaphore(self.concurrency)
        completed: list[str] = []

        async def _run_single(url: str) -> ExtractResult:
            if not force and self.extractor.is_processed(url):
                log_event(
                    logger,
                    f"Post {extract_post_id(url)} already downloaded, skipping",
                    event="post_skipped",
                    url=url,
                )
                return ExtractResult(url=url, status="skipped")

            async with semaphore:
                try:
                    post = await self.extractor.extract(url, output_dir, force=force, commit=False)
                except Exception as exc:  # noqa: BLE001
                    log_event(
                        logger,
                        f"Error downloading post {url}: {exc}",
                        level=logging.WARNING,
                        event="extract_failed",
                        url=url,
                        error=str(exc),
                        error_type=type(exc).__name__,
                    )
                    return ExtractResult(url=url, status="failed", error=exc)

            if not post.found:
                return ExtractResult(url=url, status="skipped")
            return ExtractResult(url=url, status="ok", post=post)

        tasks = [asyncio.create_task(_run_single(url)) for url in urls]
        try:
            for next_done in asyncio.as_completed(tasks):
                if self.cancel_event is not None and self.cancel_event.is_set():
                    raise RunCancelledError("batch cancelled")
                result = await next_done
                try:
                    yield result
                finally:
                    post_id = extract_post_id(result.url)
                    if result.ok and post_id:
                        completed.append(post_id)
        finally:
            pending = [task for task in tasks if not task.done()]
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

            new_ids = self.extractor.ledger.commit(completed)
            log_event(
                logger,
                f"Recorded {len(new_ids)} new posts in ledger",
                level=logging.DEBUG,
                event="ledger_commit",
                count=len(new_ids),
                ledger=str(self.extractor.ledger.path),
            )
