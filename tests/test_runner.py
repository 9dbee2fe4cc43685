"""End-to-end tests for the download pipeline with a fake HTTP transport."""

from __future__ import annotations

import asyncio
import json
import logging
import os
from pathlib import Path
import signal

import httpx
import pytest
from typer.testing import CliRunner

from post_archiver import __version__
from post_archiver import runner
from post_archiver.cli import app
from post_archiver.config import AppConfig
from post_archiver.core.errors import DecodeError
from post_archiver.fetch.fetcher import Fetcher


SITE = "https://example.substack.com"


def _post_page(slug: str, body: str = "<p>Body text</p>") -> str:
    payload = json.dumps({"post": {"id": 1, "slug": slug, "title": f"Title {slug}", "body_html": body}})
    literal = json.dumps(payload)[1:-1]
    return f'<html><script>window._preloads = JSON.parse("{literal}")</script></html>'


def _sitemap(*entries: tuple[str, str]) -> str:
    items = "".join(f"<url><loc>{SITE}{path}</loc><lastmod>{date}</lastmod></url>" for path, date in entries)
    return f'<?xml version="1.0"?><urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">{items}</urlset>'


def _config(tmp_path: Path, fmt: str = "md") -> AppConfig:
    cfg = AppConfig()
    cfg.ledger.path = str(tmp_path / "ledger.log")
    cfg.output.format = fmt
    cfg.logging.console = False
    return cfg


def _install_transport(monkeypatch, handler) -> list[str]:
    requested: list[str] = []

    def recording(request: httpx.Request) -> httpx.Response:
        requested.append(request.url.path)
        return handler(request)

    def fake_fetcher(cfg=None):
        fetcher = Fetcher(cfg, client=httpx.AsyncClient(transport=httpx.MockTransport(recording)))
        fetcher._owns_client = True  # noqa: SLF001
        return fetcher

    monkeypatch.setattr(runner, "Fetcher", fake_fetcher)
    return requested


def _site_handler(request: httpx.Request) -> httpx.Response:
    if request.url.path == "/sitemap.xml":
        return httpx.Response(
            200,
            text=_sitemap(
                ("/p/first", "2024-01-10"),
                ("/archive", "2024-01-11"),
                ("/p/second", "2024-02-20"),
                ("/p/third", "2024-03-30"),
            ),
        )
    slug = request.url.path.rsplit("/", 1)[-1]
    return httpx.Response(200, text=_post_page(slug))


def test_archive_download_writes_posts_and_skips_on_rerun(tmp_path: Path, monkeypatch):
    requested = _install_transport(monkeypatch, _site_handler)
    cfg = _config(tmp_path)
    out = tmp_path / "out"

    summary = runner.run_download(SITE, out, cfg, show_progress=False)

    assert summary.found == 3
    assert summary.downloaded == 3
    assert summary.failed == 0
    assert (out / "first" / "first.md").read_text(encoding="utf-8").startswith("# Title first")
    assert sorted(Path(cfg.ledger.path).read_text(encoding="utf-8").splitlines()) == [
        "first",
        "second",
        "third",
    ]

    requested.clear()
    rerun = runner.run_download(SITE, out, cfg, show_progress=False)

    assert rerun.downloaded == 0
    assert rerun.skipped == 3
    assert requested == ["/sitemap.xml"]


def test_archive_download_applies_date_filter(tmp_path: Path, monkeypatch):
    _install_transport(monkeypatch, _site_handler)
    cfg = _config(tmp_path, fmt="txt")

    summary = runner.run_download(
        SITE, tmp_path, cfg, after="2024-01-10", before="2024-03-30", show_progress=False
    )

    assert summary.found == 1
    assert summary.written == [tmp_path / "second" / "second.txt"]


def test_dry_run_does_not_fetch_posts(tmp_path: Path, monkeypatch):
    requested = _install_transport(monkeypatch, _site_handler)

    summary = runner.run_download(SITE, tmp_path, _config(tmp_path), dry_run=True, show_progress=False)

    assert summary.dry_run
    assert summary.found == 3
    assert requested == ["/sitemap.xml"]
    assert not Path(_config(tmp_path).ledger.path).exists()


def test_single_post_download(tmp_path: Path, monkeypatch):
    _install_transport(monkeypatch, _site_handler)
    cfg = _config(tmp_path, fmt="html")

    summary = runner.run_download(f"{SITE}/p/solo", tmp_path, cfg, show_progress=False)

    assert summary.written == [tmp_path / "solo" / "solo.html"]
    assert (tmp_path / "solo" / "solo.html").read_text(encoding="utf-8").startswith("<h1>Title solo</h1>")
    assert Path(cfg.ledger.path).read_text(encoding="utf-8") == "solo\n"


def test_single_post_errors_are_raised(tmp_path: Path, monkeypatch):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text='<script>window._preloads = JSON.parse("{broken")</script>')

    _install_transport(monkeypatch, handler)

    with pytest.raises(DecodeError):
        runner.run_download(f"{SITE}/p/solo", tmp_path, _config(tmp_path), show_progress=False)


def test_archive_failures_are_counted_not_raised(tmp_path: Path, monkeypatch):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/p/second":
            return httpx.Response(503)
        return _site_handler(request)

    _install_transport(monkeypatch, handler)

    summary = runner.run_download(SITE, tmp_path, _config(tmp_path), show_progress=False)

    assert summary.downloaded == 2
    assert summary.failed == 1


def test_run_list_returns_post_urls(tmp_path: Path, monkeypatch):
    _install_transport(monkeypatch, _site_handler)

    urls = runner.run_list(f"{SITE}/p/ignored", _config(tmp_path), before="2024-03-01")

    assert urls == [f"{SITE}/p/first", f"{SITE}/p/second"]


def test_cli_version():
    result = CliRunner().invoke(app, ["version"])

    assert result.exit_code == 0
    assert __version__ in result.stdout


def test_cli_rejects_invalid_url(tmp_path: Path):
    result = CliRunner().invoke(
        app, ["download", "--url", "not-a-url", "--ledger-file", str(tmp_path / "l.log"), "--no-progress"]
    )

    assert result.exit_code == 1
    assert "Invalid URL" in result.stdout


def test_cli_rejects_unknown_format(tmp_path: Path):
    result = CliRunner().invoke(
        app, ["download", "-u", SITE, "-f", "pdf", "--ledger-file", str(tmp_path / "l.log")]
    )

    assert result.exit_code == 1
    assert "Unknown output format" in result.stdout


def test_archive_posts_that_fail_to_write_are_not_recorded(tmp_path: Path, monkeypatch):
    _install_transport(monkeypatch, _site_handler)
    cfg = _config(tmp_path)

    def failing_write(*args, **kwargs):
        raise OSError("disk full")

    monkeypatch.setattr(runner, "write_post", failing_write)

    summary = runner.run_download(SITE, tmp_path / "out", cfg, show_progress=False)

    assert summary.failed == 3
    assert summary.downloaded == 0
    assert not Path(cfg.ledger.path).exists()

    monkeypatch.undo()
    _install_transport(monkeypatch, _site_handler)
    retry = runner.run_download(SITE, tmp_path / "out", cfg, show_progress=False)

    assert retry.downloaded == 3
    assert retry.skipped == 0


def test_single_post_write_failure_is_raised_and_not_recorded(tmp_path: Path, monkeypatch):
    _install_transport(monkeypatch, _site_handler)
    cfg = _config(tmp_path)

    def failing_write(*args, **kwargs):
        raise OSError("disk full")

    monkeypatch.setattr(runner, "write_post", failing_write)

    with pytest.raises(OSError):
        runner.run_download(f"{SITE}/p/solo", tmp_path, cfg, show_progress=False)

    assert not Path(cfg.ledger.path).exists()


def test_archive_download_shares_one_cancel_event(tmp_path: Path, monkeypatch):
    _install_transport(monkeypatch, _site_handler)
    events: list[asyncio.Event] = []
    real_discover = runner.discover
    real_batch_runner = runner.BatchRunner

    async def recording_discover(*args, **kwargs):
        events.append(kwargs["cancel_event"])
        return await real_discover(*args, **kwargs)

    def recording_batch_runner(*args, **kwargs):
        events.append(kwargs["cancel_event"])
        return real_batch_runner(*args, **kwargs)

    monkeypatch.setattr(runner, "discover", recording_discover)
    monkeypatch.setattr(runner, "BatchRunner", recording_batch_runner)

    runner.run_download(SITE, tmp_path, _config(tmp_path), show_progress=False)

    assert len(events) == 2
    assert isinstance(events[0], asyncio.Event)
    assert events[0] is events[1]


def test_sigterm_sets_cancel_event():
    async def _run() -> bool | None:
        cancel_event = asyncio.Event()
        if not runner._install_stop_handler(cancel_event, logging.getLogger("test")):  # noqa: SLF001
            return None
        try:
            os.kill(os.getpid(), signal.SIGTERM)
            await asyncio.wait_for(cancel_event.wait(), timeout=1)
        finally:
            asyncio.get_running_loop().remove_signal_handler(signal.SIGTERM)
        return cancel_event.is_set()

    outcome = asyncio.run(_run())
    if outcome is None:
        pytest.skip("event loop cannot watch signals here")
    assert outcome
