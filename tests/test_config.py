"""Tests for YAML configuration loading."""

from pathlib import Path

import pytest

from post_archiver.config import AppConfig, load_config


def test_load_config_without_path_returns_defaults():
    cfg = load_config(None)

    assert cfg.output.format == "html"
    assert cfg.run.concurrency == 8
    assert cfg.media.on_error == "fail"
    assert cfg.ledger.path == "downloaded_posts.log"


def test_load_config_returns_independent_instances():
    first = load_config(None)
    first.output.format = "md"

    assert load_config(None).output.format == "html"


def test_load_config_merges_sections(tmp_path: Path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "run:\n"
        "  concurrency: 3\n"
        "media:\n"
        "  on_error: warn\n"
        "output:\n"
        "  format: md\n"
        "unknown_section:\n"
        "  key: value\n",
        encoding="utf-8",
    )

    cfg = load_config(str(path))

    assert cfg.run.concurrency == 3
    assert cfg.media.on_error == "warn"
    assert cfg.media.enabled is True
    assert cfg.output.format == "md"
    assert cfg.fetch.timeout_seconds == 20.0


def test_load_empty_config_file(tmp_path: Path):
    path = tmp_path / "empty.yaml"
    path.write_text("", encoding="utf-8")

    assert load_config(str(path)) == AppConfig()


@pytest.mark.parametrize(
    ("section", "key", "value"),
    [
        ("output", "format", "pdf"),
        ("media", "on_error", "ignore"),
        ("run", "concurrency", 0),
    ],
)
def test_validate_rejects_bad_values(section, key, value):
    cfg = AppConfig()
    setattr(getattr(cfg, section), key, value)

    with pytest.raises(ValueError):
        cfg.validate()
