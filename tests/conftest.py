"""Pytest configuration and fixtures."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from gogcli import paths


@pytest.fixture(autouse=True)
def isolated_paths(tmp_path: Path, monkeypatch):
    """Keep config, token, and log files out of the real home directory."""
    config_dir = tmp_path / "config"
    cache_dir = tmp_path / "cache"
    monkeypatch.setattr(paths, "CONFIG_DIR", config_dir)
    monkeypatch.setattr(paths, "CONFIG_FILE", config_dir / "config.json")
    monkeypatch.setattr(paths, "LOG_FILE", cache_dir / "gogcli.log")
    monkeypatch.setenv("GOGCLI_LOG", "none")
    return config_dir


@pytest.fixture(autouse=True)
def reset_logging():
    """Drop handlers bound to streams captured by a finished test."""
    yield
    root = logging.getLogger("gogcli")
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()


@pytest.fixture
def attachment_file(tmp_path: Path) -> Path:
    path = tmp_path / "notes.txt"
    path.write_bytes(b"abc")
    return path
