"""
Pipeline orchestration for the post archiver.

This module coordinates the download workflow:
1. Load the ledger of already processed posts
2. Discover post URLs from the sitemap (archive mode) or take one post URL
3. Extract posts concurrently, downloading their media
4. Render each post and write it to the output folder
5. Record newly processed posts in the ledger

The configuration object is built once by the caller and passed down; no
stage keeps module-level state.
"""

from __future__ import annotations

import asyncio
from contextlib import aclosing
from dataclasses import dataclass, field
import logging
from pathlib import Path
import signal
import time

from rich.console import Console
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
    TimeRemainingColumn,
)

from .batch import BatchRunner
from .config import AppConfig
from .core.ledger import DedupLedger
from .core.types import ExtractResult, extract_post_id, make_date_filter
from .fetch.extractor import PostExtractor
from .fetch.fetcher import Fetcher
from .fetch.sitemap import POST_PATH_MARKER, base_url, discover
from .output.renderer import post_output_path, write_post
from .utils.logging import log_event, setup_logging


@dataclass
class DownloadSummary:
    """Counts collected during a download run.

    Attributes:
        found: Number of post URLs considered
        downloaded: Posts extracted and written
        skipped: Posts already in the ledger or without content
        failed: Posts that failed to extract or write
        written: Paths of the rendered post files
        dry_run: Whether the run stopped after discovery
    """
    found: int = 0
    downloaded: int = 0
    skipped: int = 0
    failed: int = 0
    written: list[Path] = field(default_factory=list)
    dry_run: bool = False


def is_post_url(url: str) -> bool:
    return POST_PATH_MARKER in url


def run_download(
    url: str,
    output_dir: Path,
    cfg: AppConfig,
    before: str | None = None,
    after: str | None = None,
    force: bool = False,
    dry_run: bool = False,
    show_progress: bool = True,
    console: Console | None = None,
) -> DownloadSummary:
    """Download a single post or a publication's whole archive.

    A URL containing ``/p/`` is treated as one post; anything else as a
    publication whose sitemap is scanned for posts.

    Args:
        url: Post URL or publication URL
        output_dir: Root directory for post folders
        cfg: Application configuration
        before: Only posts last modified before this ISO date (archive mode)
        after: Only posts last modified after this ISO date (archive mode)
        force: Re-download posts already in the ledger
        dry_run: Stop after discovery without downloading
        show_progress: Whether to display a progress bar
        console: Rich console for output (creates default if None)

    Returns:
        DownloadSummary with counts and written paths

    Raises:
        ValueError: If the URL or configuration is invalid
        PostArchiverError: On failures that abort the run
    """
    cfg.validate()
    base_url(url)
    console = console or Console()
    logger = setup_logging(cfg.logging, output_dir, console=console)
    return asyncio.run(
        _run_download_async(
            url,
            output_dir,
            cfg,
            logger,
            before=before,
            after=after,
            force=force,
            dry_run=dry_run,
            show_progress=show_progress,
            console=console,
        )
    )


def run_list(
    url: str,
    cfg: AppConfig,
    before: str | None = None,
    after: str | None = None,
    console: Console | None = None,
) -> list[str]:
    """List the post URLs of a publication from its sitemap.

    Raises:
        ValueError: If the URL is invalid
        PostArchiverError: If the sitemap cannot be fetched or parsed
    """
    pub_url = base_url(url)
    setup_logging(cfg.logging, None, console=console)
    return asyncio.run(_run_list_async(pub_url, cfg, before, after))


async def _run_list_async(
    pub_url: str,
    cfg: AppConfig,
    before: str | None,
    after: str | None,
) -> list[str]:
    async with Fetcher(cfg.fetch) as fetcher:
        return await discover(fetcher, pub_url, make_date_filter(before, after))


async def _run_download_async(
    url: str,
    output_dir: Path,
    cfg: AppConfig,
    logger: logging.Logger,
    before: str | None = None,
    after: str | None = None,
    force: bool = False,
    dry_run: bool = False,
    show_progress: bool = True,
    console: Console | None = None,
) -> DownloadSummary:
    start_time = time.monotonic()
    ledger = DedupLedger.load(Path(cfg.ledger.path))
    summary = DownloadSummary(dry_run=dry_run)
    cancel_event = asyncio.Event()
    handles_term = _install_stop_handler(cancel_event, logger)
    try:
        await _download(
            url, output_dir, cfg, logger, ledger, summary, cancel_event,
            before, after, force, dry_run, show_progress, console,
        )
    finally:
        if handles_term:
            asyncio.get_running_loop().remove_signal_handler(signal.SIGTERM)

    log_event(
        logger,
        f"Downloaded {summary.downloaded} posts out of {summary.found} "
        f"in {time.monotonic() - start_time:.1f}s",
        event="run_complete",
        found=summary.found,
        downloaded=summary.downloaded,
        skipped=summary.skipped,
        failed=summary.failed,
    )
    return summary


def _install_stop_handler(cancel_event: asyncio.Event, logger: logging.Logger) -> bool:
    """Set cancel_event on SIGTERM so discovery and the batch stop cleanly.

    Returns False where the loop cannot watch signals (non-Unix, or not the
    main thread).
    """

    def _stop() -> None:
        log_event(logger, "Termination requested, stopping...", level=logging.WARNING, event="stop_requested")
        cancel_event.set()

    try:
        asyncio.get_running_loop().add_signal_handler(signal.SIGTERM, _stop)
    except (NotImplementedError, RuntimeError):
        return False
    return True


async def _download(
    url: str,
    output_dir: Path,
    cfg: AppConfig,
    logger: logging.Logger,
    ledger: DedupLedger,
    summary: DownloadSummary,
    cancel_event: asyncio.Event,
    before: str | None,
    after: str | None,
    force: bool,
    dry_run: bool,
    show_progress: bool,
    console: Console | None,
) -> None:
    async with Fetcher(cfg.fetch) as fetcher:
        extractor = PostExtractor(fetcher, ledger, cfg.media)

        if is_post_url(url):
            summary.found = 1
            if before or after:
                logger.warning("--before and --after are ignored when downloading a single post")
            if dry_run:
                log_event(logger, "Dry run, exiting...", event="dry_run", count=1)
                return
            post = await extractor.extract(url, output_dir, force=force, commit=False)
            if not post.found:
                summary.skipped = 1
                log_event(logger, "No post was downloaded", event="post_skipped", url=url)
                return
            path = post_output_path(output_dir, post, cfg.output.format)
            write_post(post, path, cfg.output.format, cfg.output.with_title)
            ledger.commit([extract_post_id(url)])
            summary.downloaded = 1
            summary.written.append(path)
            log_event(logger, f"Wrote {path}", event="post_written", path=str(path), slug=post.slug)
        else:
            urls = await discover(
                fetcher, base_url(url), make_date_filter(before, after), cancel_event=cancel_event
            )
            summary.found = len(urls)
            if not urls:
                log_event(logger, "No posts found, exiting...", event="no_posts", url=url)
                return
            if dry_run:
                log_event(logger, f"Found {len(urls)} posts. Dry run, exiting...", event="dry_run", count=len(urls))
                return

            runner = BatchRunner(extractor, cfg.run.concurrency, cancel_event=cancel_event)
            await _download_all(
                runner, urls, output_dir, cfg, logger, summary, force, show_progress, console
            )


async def _download_all(
    runner: BatchRunner,
    urls: list[str],
    output_dir: Path,
    cfg: AppConfig,
    logger: logging.Logger,
    summary: DownloadSummary,
    force: bool,
    show_progress: bool,
    console: Console | None,
) -> None:
    progress: Progress | None = None
    task_id = None
    if show_progress:
        progress = Progress(
            SpinnerColumn(),
            TextColumn("{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            TimeRemainingColumn(),
            console=console or Console(),
        )
        progress.start()
        task_id = progress.add_task("Downloading", total=len(urls))

    try:
        async with aclosing(runner.run_all(urls, output_dir, force=force)) as results:
            async for result in results:
                if result.status == "skipped":
                    summary.skipped += 1
                elif result.status == "failed":
                    summary.failed += 1
                elif result.post is not None:
                    _write(result, output_dir, cfg, logger, summary)
                if progress is not None and task_id is not None:
                    progress.advance(task_id, 1)
    finally:
        if progress is not None:
            progress.stop()


def _write(
    result: ExtractResult,
    output_dir: Path,
    cfg: AppConfig,
    logger: logging.Logger,
    summary: DownloadSummary,
) -> None:
    post = result.post
    path = post_output_path(output_dir, post, cfg.output.format)
    try:
        write_post(post, path, cfg.output.format, cfg.output.with_title)
    except OSError as exc:
        result.fail(exc)
        summary.failed += 1
        log_event(
            logger,
            f"Failed to write {path}: {exc}",
            level=logging.ERROR,
            event="write_failed",
            path=str(path),
            error=str(exc),
        )
        return
    summary.downloaded += 1
    summary.written.append(path)
    log_event(logger, f"Wrote {path}", level=logging.DEBUG, event="post_written", path=str(path), slug=post.slug)
