"""Tests for pathdex down command."""

from __future__ import annotations

from collections.abc import Iterator
from unittest.mock import MagicMock, patch

import pytest
from click.testing import CliRunner

from pathdex.cli.main import cli
from pathdex.core.errors import IpcError

runner = CliRunner()


@pytest.fixture
def down_client() -> Iterator[MagicMock]:
    with patch("pathdex.cli.down.IpcClient") as client_cls:
        client = MagicMock()
        client_cls.return_value.__enter__.return_value = client
        yield client


class TestDownCommand:
    """pathdex down command tests."""

    @patch("pathdex.cli.down.read_pid", return_value=None)
    def test_given_daemon_answers_when_down_then_requests_shutdown(
        self, _mock_pid: MagicMock, down_client: MagicMock
    ) -> None:
        result = runner.invoke(cli, ["down"])
        assert result.exit_code == 0
        down_client.shutdown.assert_called_once()
        assert "Daemon stopped." in result.output

    @patch("pathdex.cli.down.is_server_running", side_effect=[True, False])
    @patch("pathdex.cli.down.read_pid", return_value=99)
    def test_given_pid_when_down_then_waits_for_exit(
        self, _mock_pid: MagicMock, _mock_running: MagicMock, down_client: MagicMock
    ) -> None:
        result = runner.invoke(cli, ["down"])
        assert result.exit_code == 0
        assert "Daemon stopped." in result.output

    @patch("pathdex.cli.down.is_server_running", return_value=False)
    @patch("pathdex.cli.down.read_pid", return_value=None)
    def test_given_no_daemon_when_down_then_reports_not_running(
        self, _mock_pid: MagicMock, _mock_running: MagicMock, down_client: MagicMock
    ) -> None:
        down_client.shutdown.side_effect = IpcError.unreachable("/x.sock", "refused")
        result = runner.invoke(cli, ["down"])
        assert result.exit_code == 0
        assert "not running" in result.output

    @patch("pathdex.cli.down.stop_daemon", return_value=True)
    @patch("pathdex.cli.down.is_server_running", side_effect=[True, False])
    @patch("pathdex.cli.down.read_pid", return_value=99)
    def test_given_unresponsive_daemon_when_down_then_sends_sigterm(
        self,
        _mock_pid: MagicMock,
        _mock_running: MagicMock,
        mock_stop: MagicMock,
        down_client: MagicMock,
    ) -> None:
        down_client.shutdown.side_effect = IpcError.unreachable("/x.sock", "timed out")
        result = runner.invoke(cli, ["down"])
        assert result.exit_code == 0, result.output
        mock_stop.assert_called_once()
        assert "sending SIGTERM (PID 99)" in result.output
        assert "Daemon stopped." in result.output

    @patch("pathdex.cli.down.time.sleep")
    @patch("pathdex.cli.down.is_server_running", return_value=True)
    @patch("pathdex.cli.down.read_pid", return_value=99)
    def test_given_daemon_never_exits_when_down_then_fails(
        self,
        _mock_pid: MagicMock,
        _mock_running: MagicMock,
        _mock_sleep: MagicMock,
        down_client: MagicMock,
    ) -> None:
        result = runner.invoke(cli, ["down"])
        assert result.exit_code == 1
        assert "did not stop" in result.output
