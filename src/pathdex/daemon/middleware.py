"""HTTP middleware for request correlation."""

from __future__ import annotations

import re
from collections.abc import Awaitable, Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from pathdex.config.constants import REQUEST_ID_HEADER
from pathdex.core.logging import clear_request_id, set_request_id

# Type alias for the call_next function
CallNext = Callable[[Request], Awaitable[Response]]

_VALID_REQUEST_ID = re.compile(r"^[A-Za-z0-9_.-]{1,64}$")


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Bind a request id for the duration of each request and echo it back.

    A well-formed id sent by the client is reused; otherwise one is generated.
    """

    async def dispatch(self, request: Request, call_next: CallNext) -> Response:
        supplied = request.headers.get(REQUEST_ID_HEADER)
        if supplied is not None and not _VALID_REQUEST_ID.match(supplied):
            supplied = None
        request_id = set_request_id(supplied)
        try:
            response = await call_next(request)
        finally:
            clear_request_id()
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
