"""HTTP connection protocol with a deadline on the request head.

uvicorn only times out connections that sit idle between requests. A client
that connects and then stops partway through its request line or headers is
never released. RequestHeadTimeoutProtocol arms a timer while a request head
is outstanding; when it fires the client gets a 408 and the connection is
closed. Request bodies are bounded separately by the /ipc route.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any

import h11
import structlog
from uvicorn.protocols.http.h11_impl import H11Protocol

from pathdex.core.errors import IpcError

logger = structlog.get_logger()


def _timeout_reply(timeout: float) -> bytes:
    body = json.dumps(IpcError.timeout(timeout).to_dict()).encode()
    head = (
        "HTTP/1.1 408 Request Timeout\r\n"
        "content-type: application/json\r\n"
        "connection: close\r\n"
        f"content-length: {len(body)}\r\n\r\n"
    )
    return head.encode("ascii") + body


class RequestHeadTimeoutProtocol(H11Protocol):
    head_timeout: float = 10.0

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._head_timer: asyncio.TimerHandle | None = None

    def connection_made(self, transport: asyncio.Transport) -> None:  # type: ignore[override]
        super().connection_made(transport)
        self._arm_head_timer()

    def data_received(self, data: bytes) -> None:
        super().data_received(data)
        if self.transport.is_closing() or self.conn.their_state is not h11.IDLE:
            self._cancel_head_timer()
        else:
            # Start of a later request on a kept-alive connection
            self._arm_head_timer()

    def connection_lost(self, exc: Exception | None) -> None:
        self._cancel_head_timer()
        super().connection_lost(exc)

    def _arm_head_timer(self) -> None:
        if self._head_timer is None:
            self._head_timer = self.loop.call_later(self.head_timeout, self._on_head_timeout)

    def _cancel_head_timer(self) -> None:
        if self._head_timer is not None:
            self._head_timer.cancel()
            self._head_timer = None

    def _on_head_timeout(self) -> None:
        self._head_timer = None
        if self.transport.is_closing() or self.conn.their_state is not h11.IDLE:
            return
        logger.warning("ipc_request_timeout", phase="head", timeout_sec=self.head_timeout)
        self.transport.write(_timeout_reply(self.head_timeout))
        self.transport.close()


def request_head_timeout_protocol(timeout: float) -> type[RequestHeadTimeoutProtocol]:
    """Protocol class for uvicorn's ``http`` option with the given head deadline."""
    return type(
        "RequestHeadTimeoutProtocol",
        (RequestHeadTimeoutProtocol,),
        {"head_timeout": timeout},
    )
