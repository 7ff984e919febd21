"""Tests for daemon/routes.py module.

Covers:
- create_routes() function
- /health and /status endpoints
- POST /ipc for every request kind
- Error status mapping (400, 404, 408, 422, 500)
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Iterator
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from starlette.requests import Request
from starlette.testclient import TestClient

from pathdex.config.constants import IPC_ROUTE
from pathdex.core.errors import ConfigError, ErrorCode, InternalError, IpcError, PathdexError
from pathdex.daemon.app import create_app
from pathdex.daemon.lifecycle import ServerController
from pathdex.daemon.routes import create_routes, error_response
from pathdex.index.models import IndexEntry


@pytest.fixture
def client(controller: ServerController) -> Iterator[TestClient]:
    with TestClient(create_app(controller)) as test_client:
        yield test_client


def _index(client: TestClient) -> None:
    """Populate the index through the reload command."""
    response = client.post(IPC_ROUTE, json={"kind": "reload-config"})
    assert response.status_code == 200


def _paths(response_json: dict) -> list[str]:
    return [e["path"] for e in response_json["entries"]]


class TestCreateRoutes:
    """Tests for create_routes function."""

    def test_route_paths(self, controller: ServerController) -> None:
        routes = create_routes(controller)
        assert [r.path for r in routes] == ["/health", "/status", IPC_ROUTE]


class TestErrorResponse:
    """Tests for error_response()."""

    @pytest.mark.parametrize(
        ("error", "status_code"),
        [
            (IpcError.malformed("bad"), 400),
            (IpcError.not_found("/x"), 404),
            (IpcError.timeout(1.0), 408),
            (ConfigError.file_not_found("/c.yaml"), 422),
            (InternalError.unexpected("boom"), 500),
        ],
    )
    def test_status_codes(self, error: PathdexError, status_code: int) -> None:
        assert error_response(error).status_code == status_code


class TestDiagnostics:
    """Tests for /health and /status."""

    def test_health(self, client: TestClient) -> None:
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert "version" in data
        assert data["uptime_seconds"] >= 0

    def test_status(self, client: TestClient, controller: ServerController, watched: Path) -> None:
        _index(client)
        data = client.get("/status").json()
        assert data["entries"] == 4
        assert data["config_generation"] == 2
        assert data["indexing"] is False
        assert data["runtime"]["pid"] > 0
        assert data["watcher"]["roots"][0]["path"] == str(watched)
        assert data["last_reload"]["ok"] is True

    def test_ipc_rejects_get(self, client: TestClient) -> None:
        assert client.get(IPC_ROUTE).status_code == 405


class TestIpcQuery:
    """Tests for query requests."""

    def test_filter(self, client: TestClient, controller: ServerController, watched: Path) -> None:
        _index(client)
        response = client.post(IPC_ROUTE, json={"kind": "query", "filter": "report"})
        assert response.status_code == 200
        assert _paths(response.json()) == [str(watched / "report.pdf")]

    def test_entries_carry_kind(
        self, client: TestClient, controller: ServerController, watched: Path
    ) -> None:
        _index(client)
        response = client.post(IPC_ROUTE, json={"kind": "query", "type": "dirs"})
        assert response.json()["entries"] == [{"path": str(watched / "sub"), "is_directory": True}]

    def test_ignored_never_returned(self, client: TestClient, controller: ServerController) -> None:
        _index(client)
        response = client.post(IPC_ROUTE, json={"kind": "query", "filter": "scratch"})
        assert response.json() == {"entries": []}

    def test_empty_index(self, client: TestClient) -> None:
        response = client.post(IPC_ROUTE, json={"kind": "query", "terms": ["anything"]})
        assert response.status_code == 200
        assert response.json() == {"entries": []}

    def test_reads_latest_store_contents(
        self, client: TestClient, controller: ServerController
    ) -> None:
        controller.store.upsert(IndexEntry(path="/elsewhere/new.txt", is_directory=False))
        response = client.post(IPC_ROUTE, json={"kind": "query", "filter": "new"})
        assert _paths(response.json()) == ["/elsewhere/new.txt"]


class TestIpcGetIndex:
    """Tests for get-index requests."""

    def test_whole_index_sorted(
        self, client: TestClient, controller: ServerController, watched: Path
    ) -> None:
        _index(client)
        response = client.post(IPC_ROUTE, json={"kind": "get-index"})
        assert _paths(response.json()) == [
            str(watched / "readme.md"),
            str(watched / "report.pdf"),
            str(watched / "sub"),
            str(watched / "sub" / "f.txt"),
        ]

    def test_below_directory(
        self, client: TestClient, controller: ServerController, watched: Path
    ) -> None:
        _index(client)
        response = client.post(IPC_ROUTE, json={"kind": "get-index", "path": str(watched / "sub")})
        assert _paths(response.json()) == [str(watched / "sub" / "f.txt")]

    def test_unknown_path(self, client: TestClient, controller: ServerController) -> None:
        _index(client)
        response = client.post(IPC_ROUTE, json={"kind": "get-index", "path": "/not/indexed"})
        assert response.status_code == 404
        assert response.json()["code"] == "IPC_NOT_FOUND"


class TestIpcCommands:
    """Tests for reload-config, full-index and shutdown."""

    def test_reload_reports_roots(
        self, client: TestClient, controller: ServerController, watched: Path
    ) -> None:
        response = client.post(IPC_ROUTE, json={"kind": "reload-config"})
        data = response.json()
        assert data["ok"] is True
        assert data["added"] == [str(watched)]
        assert data["failed"] == []

    def test_reload_error_keeps_previous_config(
        self,
        client: TestClient,
        controller: ServerController,
        config_file: Path,
        watched: Path,
    ) -> None:
        _index(client)
        active = controller.config_store.active()
        config_file.write_text("ignored: ['[broken']\n")

        response = client.post(IPC_ROUTE, json={"kind": "reload-config"})

        assert response.status_code == 422
        assert response.json()["code"] == "CONFIG_INVALID_PATTERN"
        assert controller.config_store.active() is active
        assert controller.last_reload is not None and controller.last_reload["ok"] is False
        assert str(watched / "report.pdf") in controller.store

    def test_reload_purges_removed_root(
        self,
        client: TestClient,
        controller: ServerController,
        config_file: Path,
        tmp_path: Path,
        watched: Path,
    ) -> None:
        _index(client)
        other = tmp_path / "other"
        other.mkdir()
        config_file.write_text(f"directories:\n  - path: {other}\n    recurse: false\n")

        data = client.post(IPC_ROUTE, json={"kind": "reload-config"}).json()

        assert data["removed"] == [str(watched)]
        assert len(controller.store) == 0

    def test_full_index(
        self, client: TestClient, controller: ServerController, watched: Path
    ) -> None:
        _index(client)
        (watched / "late.txt").write_text("l")
        data = client.post(IPC_ROUTE, json={"kind": "full-index"}).json()
        assert data["ok"] is True
        assert data["changed"] == [str(watched)]
        assert str(watched / "late.txt") in controller.store

    def test_shutdown_after_reply(self, client: TestClient, controller: ServerController) -> None:
        on_shutdown = MagicMock()
        controller.on_shutdown = on_shutdown
        response = client.post(IPC_ROUTE, json={"kind": "shutdown"})
        assert response.json() == {"ok": True}
        on_shutdown.assert_called_once()


class TestIpcErrors:
    """Tests for malformed, slow and crashing requests."""

    def test_malformed_json(self, client: TestClient) -> None:
        response = client.post(IPC_ROUTE, content=b"{not json")
        assert response.status_code == 400
        data = response.json()
        assert data["ok"] is False
        assert data["code"] == "IPC_MALFORMED_REQUEST"

    def test_unknown_kind(self, client: TestClient) -> None:
        response = client.post(IPC_ROUTE, json={"kind": "format-disk"})
        assert response.status_code == 400

    def test_slow_body_times_out(
        self, client: TestClient, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        async def slow_body(self: Request) -> bytes:
            await asyncio.sleep(5)
            return b""

        monkeypatch.setattr(Request, "body", slow_body)
        started = time.monotonic()
        response = client.post(IPC_ROUTE, json={"kind": "get-index"})
        assert response.status_code == 408
        assert response.json()["code"] == ErrorCode.IPC_REQUEST_TIMEOUT.name
        assert response.headers["connection"] == "close"
        assert time.monotonic() - started < 5

    def test_unexpected_exception(
        self, client: TestClient, controller: ServerController, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        def explode(path: str | None = None) -> list[IndexEntry]:
            raise RuntimeError("disk on fire")

        monkeypatch.setattr(controller, "get_index", explode)
        response = client.post(IPC_ROUTE, json={"kind": "get-index"})
        assert response.status_code == 500
        assert response.json()["code"] == "INTERNAL_ERROR"
        assert "disk on fire" in response.json()["error"]

    def test_server_keeps_serving_after_errors(self, client: TestClient) -> None:
        client.post(IPC_ROUTE, content=b"garbage")
        assert client.get("/health").status_code == 200
