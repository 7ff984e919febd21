"""Tests for daemon/client.py module.

Uses httpx.MockTransport in place of the Unix socket.
"""

from __future__ import annotations

import json
from collections.abc import Callable

import httpx
import pytest

from pathdex.config.constants import IPC_ROUTE, REQUEST_ID_HEADER
from pathdex.core.errors import ConfigError, ErrorCode, IpcError
from pathdex.core.logging import clear_request_id, set_request_id
from pathdex.daemon.client import IpcClient
from pathdex.index.query import CaseOption, FileType

Handler = Callable[[httpx.Request], httpx.Response]


def _client(handler: Handler) -> IpcClient:
    return IpcClient("/tmp/test.sock", transport=httpx.MockTransport(handler))


class TestRequests:
    """Tests for request encoding."""

    def test_query_body(self) -> None:
        seen: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.method == "POST"
            assert request.url.path == IPC_ROUTE
            seen.append(json.loads(request.content))
            return httpx.Response(200, json={"entries": [{"path": "/d/a", "is_directory": False}]})

        with _client(handler) as client:
            entries = client.query(
                ["report"],
                substring="rep",
                file_type=FileType.FILES,
                case=CaseOption.IGNORE,
                root="/d",
                limit=5,
            )

        assert entries == [{"path": "/d/a", "is_directory": False}]
        assert seen == [
            {
                "kind": "query",
                "filter": "rep",
                "terms": ["report"],
                "case": "ignore",
                "type": "files",
                "root": "/d",
                "limit": 5,
            }
        ]

    @pytest.mark.parametrize(
        ("call", "kind"),
        [
            (lambda c: c.reload_config(), "reload-config"),
            (lambda c: c.full_index(), "full-index"),
            (lambda c: c.shutdown(), "shutdown"),
            (lambda c: c.get_index(), "get-index"),
        ],
    )
    def test_command_kinds(self, call: Callable[[IpcClient], object], kind: str) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert json.loads(request.content) == {"kind": kind}
            return httpx.Response(200, json={"ok": True, "entries": []})

        with _client(handler) as client:
            call(client)

    def test_get_index_path(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert json.loads(request.content) == {"kind": "get-index", "path": "/d/sub"}
            return httpx.Response(200, json={"entries": []})

        with _client(handler) as client:
            assert client.get_index("/d/sub") == []

    def test_forwards_request_id(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.headers[REQUEST_ID_HEADER] == "cli-42"
            return httpx.Response(200, json={"status": "healthy"})

        set_request_id("cli-42")
        try:
            with _client(handler) as client:
                assert client.health() == {"status": "healthy"}
        finally:
            clear_request_id()


class TestErrors:
    """Tests for error decoding."""

    def test_daemon_error_rebuilt(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            body = ConfigError.file_not_found("/c.yaml").to_dict()
            return httpx.Response(422, json=body)

        with _client(handler) as client, pytest.raises(ConfigError) as exc_info:
            client.reload_config()
        assert exc_info.value.code == ErrorCode.CONFIG_FILE_NOT_FOUND
        assert exc_info.value.details == {"path": "/c.yaml"}

    def test_not_found(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404, json=IpcError.not_found("/x").to_dict())

        with _client(handler) as client, pytest.raises(IpcError) as exc_info:
            client.get_index("/x")
        assert exc_info.value.code == ErrorCode.IPC_NOT_FOUND

    def test_unreachable(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("No such file or directory", request=request)

        with _client(handler) as client:
            with pytest.raises(IpcError) as exc_info:
                client.status()
            assert exc_info.value.code == ErrorCode.IPC_UNREACHABLE
            assert client.is_alive() is False

    def test_non_json_response(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(502, content=b"<html>bad gateway</html>")

        with _client(handler) as client, pytest.raises(IpcError) as exc_info:
            client.status()
        assert exc_info.value.code == ErrorCode.IPC_MALFORMED_REQUEST

    def test_non_object_response(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=[1, 2, 3])

        with _client(handler) as client, pytest.raises(IpcError):
            client.health()

    def test_is_alive(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"status": "healthy"})

        with _client(handler) as client:
            assert client.is_alive() is True
