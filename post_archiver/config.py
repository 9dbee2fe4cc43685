"""
Configuration management using YAML files and dataclasses.

This module defines all configuration dataclasses and provides loading
from YAML files with defaults. Configuration sections:
- FetchConfig: HTTP fetching settings
- RunConfig: Batch concurrency settings
- MediaConfig: Media download settings and failure policy
- LedgerConfig: Location of the processed-posts ledger
- OutputConfig: Output format settings
- LoggingConfig: Logging behavior
- AppConfig: Root configuration container
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import yaml


OUTPUT_FORMATS = ("html", "md", "txt")
MEDIA_ERROR_POLICIES = ("fail", "warn")


@dataclass
class FetchConfig:
    """Configuration for HTTP fetching.

    Attributes:
        timeout_seconds: HTTP request timeout
        user_agent: HTTP User-Agent header string
        trust_env: Whether to respect system proxy settings
    """

    timeout_seconds: float = 20.0
    user_agent: str = (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/120.0.0.0 Safari/537.36"
    )
    trust_env: bool = True


@dataclass
class RunConfig:
    """Configuration for batch extraction.

    Attributes:
        concurrency: Maximum number of posts extracted at the same time
    """

    concurrency: int = 8


@dataclass
class MediaConfig:
    """Configuration for downloading images referenced by posts.

    Attributes:
        enabled: Whether to download media and rewrite references
        on_error: "fail" to fail the whole post on a broken image,
                  "warn" to log it and keep the remote URL
    """

    enabled: bool = True
    on_error: str = "fail"


@dataclass
class LedgerConfig:
    """Configuration for duplicate avoidance across runs.

    Attributes:
        path: File that records processed post identifiers
    """

    path: str = "downloaded_posts.log"


@dataclass
class OutputConfig:
    """Configuration for output generation.

    Attributes:
        format: "html", "md" or "txt"
        with_title: Whether to prepend the post title to the body
    """

    format: str = "html"
    with_title: bool = True


@dataclass
class LoggingConfig:
    """Configuration for logging behavior.

    Attributes:
        level: Logging level ("DEBUG", "INFO", "WARNING", "ERROR")
        console: Whether to log to console
        file: Whether to log to a file in the output directory
        format: Log file format ("jsonl" or "plain")
        filename: Name of the log file
    """

    level: str = "INFO"
    console: bool = True
    file: bool = False
    format: str = "jsonl"
    filename: str = "run.jsonl"


@dataclass
class AppConfig:
    """Root configuration container aggregating all config sections."""

    fetch: FetchConfig = field(default_factory=FetchConfig)
    run: RunConfig = field(default_factory=RunConfig)
    media: MediaConfig = field(default_factory=MediaConfig)
    ledger: LedgerConfig = field(default_factory=LedgerConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def validate(self) -> None:
        """Reject values the pipeline cannot act on.

        Raises:
            ValueError: On an unknown output format, media policy or a
                non-positive concurrency
        """
        if self.output.format not in OUTPUT_FORMATS:
            raise ValueError(
                f"Unknown output format: {self.output.format} "
                f"(expected one of {', '.join(OUTPUT_FORMATS)})"
            )
        if self.media.on_error not in MEDIA_ERROR_POLICIES:
            raise ValueError(
                f"Unknown media error policy: {self.media.on_error} "
                f"(expected one of {', '.join(MEDIA_ERROR_POLICIES)})"
            )
        if self.run.concurrency < 1:
            raise ValueError("run.concurrency must be at least 1")


def load_config(path: str | None) -> AppConfig:
    """Load configuration from a YAML file with defaults."""
    if not path:
        return AppConfig()

    with open(path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}

    return _merge_config(AppConfig(), raw)


def _merge_config(base: AppConfig, raw: dict[str, Any]) -> AppConfig:
    """Merge raw YAML config into base AppConfig."""
    data = _asdict(base)
    for key, value in raw.items():
        if key not in data:
            continue
        if isinstance(value, dict) and isinstance(data[key], dict):
            data[key].update(value)
        else:
            data[key] = value
    return _fromdict(data)


def _asdict(cfg: AppConfig) -> dict[str, Any]:
    """Convert AppConfig to nested dictionary."""
    return {
        "fetch": {
            "timeout_seconds": cfg.fetch.timeout_seconds,
            "user_agent": cfg.fetch.user_agent,
            "trust_env": cfg.fetch.trust_env,
        },
        "run": {
            "concurrency": cfg.run.concurrency,
        },
        "media": {
            "enabled": cfg.media.enabled,
            "on_error": cfg.media.on_error,
        },
        "ledger": {
            "path": cfg.ledger.path,
        },
        "output": {
            "format": cfg.output.format,
            "with_title": cfg.output.with_title,
        },
        "logging": {
            "level": cfg.logging.level,
            "console": cfg.logging.console,
            "file": cfg.logging.file,
            "format": cfg.logging.format,
            "filename": cfg.logging.filename,
        },
    }


def _fromdict(data: dict[str, Any]) -> AppConfig:
    """Reconstruct AppConfig from nested dictionary."""
    return AppConfig(
        fetch=FetchConfig(**data["fetch"]),
        run=RunConfig(**data["run"]),
        media=MediaConfig(**data["media"]),
        ledger=LedgerConfig(**data["ledger"]),
        output=OutputConfig(**data["output"]),
        logging=LoggingConfig(**data["logging"]),
    )
