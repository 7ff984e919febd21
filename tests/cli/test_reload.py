"""Tests for pathdex reload / reindex commands."""

from __future__ import annotations

from unittest.mock import MagicMock

from click.testing import CliRunner

from pathdex.cli.main import cli
from pathdex.core.errors import ConfigError

runner = CliRunner()


class TestReloadCommand:
    """pathdex reload command tests."""

    def test_given_valid_config_when_reload_then_succeeds(self, mock_client: MagicMock) -> None:
        mock_client.reload_config.return_value = {
            "ok": True,
            "added": ["/new"],
            "removed": ["/old"],
            "changed": [],
            "unchanged": [],
            "failed": [],
        }
        result = runner.invoke(cli, ["reload"])
        assert result.exit_code == 0, result.output
        mock_client.reload_config.assert_called_once()
        # Reloads can take as long as a traversal
        assert mock_client.client_cls.call_args.kwargs["timeout"] is None

    def test_given_invalid_config_when_reload_then_fails(self, mock_client: MagicMock) -> None:
        mock_client.reload_config.side_effect = ConfigError.file_not_found("/c.yaml")
        result = runner.invoke(cli, ["reload"])
        assert result.exit_code == 1
        assert "Config file not found: /c.yaml" in result.output


class TestReindexCommand:
    """pathdex reindex command tests."""

    def test_given_daemon_when_reindex_then_requests_full_index(
        self, mock_client: MagicMock
    ) -> None:
        mock_client.full_index.return_value = {"ok": True, "changed": ["/a", "/b"], "failed": []}
        result = runner.invoke(cli, ["reindex"])
        assert result.exit_code == 0, result.output
        mock_client.full_index.assert_called_once()
