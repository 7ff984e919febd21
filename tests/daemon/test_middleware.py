"""Tests for daemon/middleware.py module.

Covers:
- RequestIdMiddleware reusing a valid client id
- Generating an id when none (or a malformed one) is sent
- Request id bound for the duration of the request only
"""

from __future__ import annotations

import pytest
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route
from starlette.testclient import TestClient

from pathdex.config.constants import REQUEST_ID_HEADER
from pathdex.core.logging import get_request_id
from pathdex.daemon.middleware import RequestIdMiddleware


@pytest.fixture
def client() -> TestClient:
    async def echo(request: Request) -> JSONResponse:
        _ = request
        return JSONResponse({"request_id": get_request_id()})

    app = Starlette(routes=[Route("/echo", echo)])
    app.add_middleware(RequestIdMiddleware)
    return TestClient(app)


class TestRequestIdMiddleware:
    """Tests for RequestIdMiddleware class."""

    def test_reuses_client_id(self, client: TestClient) -> None:
        response = client.get("/echo", headers={REQUEST_ID_HEADER: "cli-1234.a_b"})
        assert response.headers[REQUEST_ID_HEADER] == "cli-1234.a_b"
        assert response.json()["request_id"] == "cli-1234.a_b"

    def test_generates_id(self, client: TestClient) -> None:
        response = client.get("/echo")
        request_id = response.headers[REQUEST_ID_HEADER]
        assert request_id
        assert response.json()["request_id"] == request_id

    @pytest.mark.parametrize("bad", ["has space", "x" * 65, "semi;colon"])
    def test_replaces_malformed_id(self, client: TestClient, bad: str) -> None:
        response = client.get("/echo", headers={REQUEST_ID_HEADER: bad})
        assert response.headers[REQUEST_ID_HEADER] != bad

    def test_ids_differ_between_requests(self, client: TestClient) -> None:
        first = client.get("/echo").headers[REQUEST_ID_HEADER]
        second = client.get("/echo").headers[REQUEST_ID_HEADER]
        assert first != second

    def test_cleared_after_request(self, client: TestClient) -> None:
        client.get("/echo", headers={REQUEST_ID_HEADER: "abc"})
        assert get_request_id() is None
