"""Synchronous IPC client for the pathdex daemon.

Talks HTTP over the daemon's Unix socket. Each call is one request and one
response; every failure surfaces as a PathdexError subclass.
"""

from __future__ import annotations

from collections.abc import Iterable
from types import TracebackType
from typing import Any

import httpx

from pathdex.config.constants import IPC_BASE_URL, IPC_ROUTE, REQUEST_ID_HEADER
from pathdex.core.errors import IpcError, PathdexError, error_from_dict
from pathdex.core.logging import get_request_id
from pathdex.daemon.protocol import (
    FullIndexRequest,
    GetIndexRequest,
    IpcRequest,
    QueryRequest,
    ReloadConfigRequest,
    ShutdownRequest,
    encode_request,
)
from pathdex.index.query import CaseOption, FileType

DEFAULT_TIMEOUT_SEC = 30.0


class IpcClient:
    """Client for the daemon's request/response protocol.

    Usage::

        with IpcClient(socket_path) as client:
            entries = client.query(["report"], file_type=FileType.FILES)
    """

    def __init__(
        self,
        socket_path: str,
        *,
        timeout: float | None = DEFAULT_TIMEOUT_SEC,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.socket_path = socket_path
        self._client = httpx.Client(
            transport=transport or httpx.HTTPTransport(uds=socket_path),
            base_url=IPC_BASE_URL,
            timeout=httpx.Timeout(timeout, connect=5.0),
        )

    def __enter__(self) -> IpcClient:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def _headers(self) -> dict[str, str]:
        request_id = get_request_id()
        return {REQUEST_ID_HEADER: request_id} if request_id else {}

    def _send(self, method: str, url: str, **kwargs: Any) -> dict[str, Any]:
        try:
            response = self._client.request(method, url, headers=self._headers(), **kwargs)
        except httpx.TransportError as e:
            raise IpcError.unreachable(self.socket_path, str(e) or type(e).__name__) from e

        try:
            payload = response.json()
        except ValueError as e:
            reason = f"daemon sent a non-JSON response ({response.status_code})"
            raise IpcError.malformed(reason) from e
        if not isinstance(payload, dict):
            raise IpcError.malformed("daemon sent a non-object response")
        if response.is_error or payload.get("ok") is False:
            raise error_from_dict(payload)
        return payload

    def request(self, message: IpcRequest) -> dict[str, Any]:
        """Send one IPC request and return the decoded success payload.

        Raises:
            IpcError: Daemon unreachable, or request/response malformed.
            PathdexError: Any error the daemon reported for this request.
        """
        return self._send("POST", IPC_ROUTE, json=encode_request(message))

    # -----------------------------------------------------------------
    # Commands
    # -----------------------------------------------------------------

    def query(
        self,
        terms: Iterable[str] = (),
        *,
        substring: str | None = None,
        file_type: FileType = FileType.ALL,
        case: CaseOption = CaseOption.SMART,
        root: str | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        message = QueryRequest(
            filter=substring,
            terms=tuple(terms),
            case=case,
            type=file_type,
            root=root,
            limit=limit,
        )
        return list(self.request(message)["entries"])

    def get_index(self, path: str | None = None) -> list[dict[str, Any]]:
        return list(self.request(GetIndexRequest(path=path))["entries"])

    def reload_config(self) -> dict[str, Any]:
        return self.request(ReloadConfigRequest())

    def full_index(self) -> dict[str, Any]:
        return self.request(FullIndexRequest())

    def shutdown(self) -> dict[str, Any]:
        return self.request(ShutdownRequest())

    def status(self) -> dict[str, Any]:
        return self._send("GET", "/status")

    def health(self) -> dict[str, Any]:
        return self._send("GET", "/health")

    def is_alive(self) -> bool:
        try:
            self.health()
        except PathdexError:
            return False
        return True
