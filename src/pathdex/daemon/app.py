"""Starlette application factory."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from starlette.applications import Starlette
from starlette.routing import BaseRoute

from pathdex.daemon.middleware import RequestIdMiddleware
from pathdex.daemon.routes import create_routes

if TYPE_CHECKING:
    from pathdex.daemon.lifecycle import ServerController


def create_app(controller: ServerController) -> Starlette:
    """Create the Starlette application serving the IPC protocol."""
    routes: list[BaseRoute] = list(create_routes(controller))

    @asynccontextmanager
    async def lifespan(_app: Starlette) -> AsyncIterator[None]:
        yield
        # Controller stop is handled in run_server finally block
        # to ensure it runs even if lifespan exit times out

    app = Starlette(routes=routes, lifespan=lifespan)
    app.add_middleware(RequestIdMiddleware)
    return app
