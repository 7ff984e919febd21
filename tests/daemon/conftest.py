"""Shared fixtures for daemon tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from pathdex.config.models import PathdexConfig, ServerConfig
from pathdex.config.store import ConfigStore
from pathdex.daemon.lifecycle import ServerController


@pytest.fixture
def watched(tmp_path: Path) -> Path:
    """
    tmp/
        docs/
            report.pdf
            readme.md
            scratch.tmp
            sub/
                f.txt
    """
    root = tmp_path / "docs"
    (root / "sub").mkdir(parents=True)
    (root / "report.pdf").write_text("r")
    (root / "readme.md").write_text("m")
    (root / "scratch.tmp").write_text("t")
    (root / "sub" / "f.txt").write_text("f")
    return root


@pytest.fixture
def config_file(tmp_path: Path, watched: Path) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(
        "ignored:\n"
        "  - '*.tmp'\n"
        "directories:\n"
        f"  - path: {watched}\n"
        "    recurse: true\n"
    )
    return path


@pytest.fixture
def controller(tmp_path: Path, config_file: Path) -> ServerController:
    """Controller with the config loaded but nothing indexed or watched yet."""
    store = ConfigStore(config_file)
    store.replace(store.load())
    config = PathdexConfig(
        server=ServerConfig(socket_path=str(tmp_path / "d.sock"), request_timeout_sec=0.5)
    )
    return ServerController(config_store=store, config=config)
