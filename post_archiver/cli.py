"""
Command-line interface for the post archiver.

Uses Typer to provide ``download``, ``list`` and ``version`` commands.
Options override the values loaded from the optional YAML config file.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console

from . import __version__
from .config import AppConfig, load_config
from .core.errors import PostArchiverError, RunCancelledError
from .runner import run_download, run_list

app = typer.Typer(add_completion=False, help="Download posts from a hosted publication.")
console = Console()


@app.command()
def download(
    url: str = typer.Option(..., "--url", "-u", help="Post URL or publication URL."),
    format: str | None = typer.Option(
        None, "--format", "-f", help="Output format: html, md or txt."
    ),
    output: Path = typer.Option(Path("."), "--output", "-o", help="Download directory."),
    dry_run: bool = typer.Option(False, "--dry-run", "-d", help="Only report what would be downloaded."),
    force: bool = typer.Option(False, "--force", help="Re-download posts already in the ledger."),
    ledger_file: Path | None = typer.Option(
        None, "--ledger-file", help="File tracking downloaded posts."
    ),
    before: str | None = typer.Option(
        None, "--before", help="Only posts last modified before this date (YYYY-MM-DD)."
    ),
    after: str | None = typer.Option(
        None, "--after", help="Only posts last modified after this date (YYYY-MM-DD)."
    ),
    config: Path | None = typer.Option(None, "--config", "-c", exists=True, help="YAML config file."),
    concurrency: int | None = typer.Option(
        None, "--concurrency", min=1, help="Maximum posts downloaded in parallel."
    ),
    media_errors: str | None = typer.Option(
        None, "--media-errors", help="On a broken image: fail the post or warn and continue."
    ),
    media: bool | None = typer.Option(
        None, "--media/--no-media", help="Download images and rewrite their references."
    ),
    progress: bool = typer.Option(True, "--progress/--no-progress"),
    log_level: str | None = typer.Option(None, "--log-level", help="Logging level."),
    log_file: bool | None = typer.Option(
        None, "--log-file/--no-log-file", help="Write a run log into the output directory."
    ),
):
    """Download a single post or the entire public archive.

    Pass the URL of one post (containing /p/) or the main URL of the
    publication to download every post listed in its sitemap.
    """
    cfg = _load(config)
    if format:
        cfg.output.format = format
    if ledger_file is not None:
        cfg.ledger.path = str(ledger_file)
    if concurrency is not None:
        cfg.run.concurrency = concurrency
    if media_errors:
        cfg.media.on_error = media_errors
    if media is not None:
        cfg.media.enabled = media
    if log_level:
        cfg.logging.level = log_level
    if log_file is not None:
        cfg.logging.file = log_file

    try:
        summary = run_download(
            url,
            output,
            cfg,
            before=before,
            after=after,
            force=force,
            dry_run=dry_run,
            show_progress=progress,
            console=console,
        )
    except RunCancelledError:
        console.print("[yellow]Stopped before all posts were downloaded[/yellow]")
        raise typer.Exit(code=143)
    except (PostArchiverError, OSError, ValueError) as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(code=1)
    except KeyboardInterrupt:
        console.print("[yellow]Cancelled[/yellow]")
        raise typer.Exit(code=130)

    if summary.dry_run:
        console.print(f"Found {summary.found} posts")
        return
    console.print(
        f"Downloaded {summary.downloaded} posts, skipped {summary.skipped}, "
        f"failed {summary.failed}, out of {summary.found}"
    )


@app.command("list")
def list_posts(
    url: str = typer.Argument(..., help="Publication URL."),
    before: str | None = typer.Option(None, "--before", help="Only posts before this date."),
    after: str | None = typer.Option(None, "--after", help="Only posts after this date."),
    config: Path | None = typer.Option(None, "--config", "-c", exists=True, help="YAML config file."),
):
    """List the posts of a publication."""
    cfg = _load(config)
    try:
        urls = run_list(url, cfg, before=before, after=after, console=console)
    except (PostArchiverError, OSError, ValueError) as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(code=1)
    except KeyboardInterrupt:
        raise typer.Exit(code=130)
    for post_url in urls:
        typer.echo(post_url)


@app.command()
def version():
    """Print the version number."""
    typer.echo(__version__)


def _load(config: Path | None) -> AppConfig:
    try:
        return load_config(str(config) if config else None)
    except (OSError, ValueError, TypeError) as exc:
        console.print(f"[red]Invalid config:[/red] {exc}")
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
