"""HTTP routes for the pathdex daemon.

``POST /ipc`` carries every client command. ``/health`` and ``/status`` are
read-only diagnostics.
"""

from __future__ import annotations

import asyncio
import importlib.metadata
import os
import sys
import time
from typing import TYPE_CHECKING, Any

import structlog
from starlette.background import BackgroundTask
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from pathdex.config.constants import IPC_ROUTE
from pathdex.core.errors import ErrorCode, InternalError, IpcError, PathdexError
from pathdex.daemon.protocol import (
    FullIndexRequest,
    GetIndexRequest,
    IpcRequest,
    QueryRequest,
    ReloadConfigRequest,
    ShutdownRequest,
    entries_response,
    ok_response,
    parse_request,
)

if TYPE_CHECKING:
    from pathdex.daemon.lifecycle import ServerController

logger = structlog.get_logger()

_HTTP_STATUS: dict[ErrorCode, int] = {
    ErrorCode.IPC_MALFORMED_REQUEST: 400,
    ErrorCode.IPC_NOT_FOUND: 404,
    ErrorCode.IPC_REQUEST_TIMEOUT: 408,
}


def _get_version() -> str:
    """Get package version from installed metadata."""
    try:
        return importlib.metadata.version("pathdex")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _get_runtime_info() -> dict[str, Any]:
    """Get Python runtime information."""
    return {
        "python_version": sys.version.split()[0],
        "pid": os.getpid(),
    }


def error_response(error: PathdexError) -> JSONResponse:
    if error.code in _HTTP_STATUS:
        status_code = _HTTP_STATUS[error.code]
    elif 2000 <= error.code < 3000:
        status_code = 422
    else:
        status_code = 500
    return JSONResponse(error.to_dict(), status_code=status_code)


def create_routes(controller: ServerController) -> list[Route]:
    """Create HTTP routes bound to the daemon controller."""
    start_time = time.time()
    version = _get_version()
    request_timeout = controller.config.server.request_timeout_sec

    async def health(request: Request) -> JSONResponse:
        """Liveness check. For detailed diagnostics, use /status instead."""
        _ = request  # unused
        return JSONResponse(
            {
                "status": "healthy",
                "version": version,
                "uptime_seconds": round(time.time() - start_time, 1),
            }
        )

    async def status(request: Request) -> JSONResponse:
        """Detailed status endpoint with index and watch diagnostics."""
        _ = request  # unused
        response: dict[str, Any] = {
            "version": version,
            "uptime_seconds": round(time.time() - start_time, 1),
            "runtime": _get_runtime_info(),
            **controller.status(),
        }
        return JSONResponse(response)

    async def dispatch(message: IpcRequest) -> JSONResponse:
        match message:
            case QueryRequest():
                query = message.to_query()
                entries = await asyncio.to_thread(query.run, controller.store)
                logger.debug("query_done", results=len(entries), terms=len(query.terms))
                return JSONResponse(entries_response(entries))
            case GetIndexRequest():
                entries = await asyncio.to_thread(controller.get_index, message.path)
                return JSONResponse(entries_response(entries))
            case ReloadConfigRequest():
                result = await controller.reload_config()
                return JSONResponse(ok_response(**result.to_dict()))
            case FullIndexRequest():
                result = await controller.full_index()
                return JSONResponse(ok_response(**result.to_dict()))
            case ShutdownRequest():
                # Exit once the reply has been written
                return JSONResponse(
                    ok_response(), background=BackgroundTask(controller.request_shutdown)
                )
        raise IpcError.malformed(f"unsupported request kind: {message.kind}")

    async def ipc(request: Request) -> JSONResponse:
        """Single request/response endpoint for all client commands."""
        try:
            async with asyncio.timeout(request_timeout):
                body = await request.body()
        except TimeoutError:
            error = IpcError.timeout(request_timeout)
            logger.warning("ipc_request_timeout", timeout_sec=request_timeout)
            response = error_response(error)
            response.headers["Connection"] = "close"
            return response

        try:
            message = parse_request(body)
            logger.debug("ipc_request", kind=message.kind)
            return await dispatch(message)
        except PathdexError as e:
            logger.info("ipc_request_failed", code=e.error_name, error=e.message)
            return error_response(e)
        except Exception as e:
            logger.exception("ipc_request_crashed")
            return error_response(InternalError.unexpected(str(e)))

    return [
        Route("/health", health, methods=["GET"]),
        Route("/status", status, methods=["GET"]),
        Route(IPC_ROUTE, ipc, methods=["POST"]),
    ]
