"""Shared fixtures for CLI tests."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest


@pytest.fixture(autouse=True)
def isolated_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the CLI away from the real user config and runtime dir."""
    monkeypatch.setenv("PATHDEX_CONFIG", str(tmp_path / "no-config.yaml"))
    monkeypatch.setenv("XDG_RUNTIME_DIR", str(tmp_path))
    monkeypatch.delenv("PATHDEX__SERVER__SOCKET_PATH", raising=False)


@pytest.fixture
def mock_client() -> Iterator[MagicMock]:
    """IpcClient used by daemon_client(), replaced with a mock."""
    with patch("pathdex.cli.utils.IpcClient") as client_cls:
        client = MagicMock()
        client_cls.return_value.__enter__.return_value = client
        client.client_cls = client_cls
        yield client
