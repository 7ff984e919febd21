"""CLI utilities."""

from __future__ import annotations

import os
from collections.abc import Iterator
from contextlib import contextmanager
from typing import NoReturn

import click

from pathdex.config.constants import default_socket_path
from pathdex.config.loader import load_settings
from pathdex.core.errors import ConfigError, ErrorCode, PathdexError
from pathdex.core.logging import get_logger
from pathdex.daemon.client import DEFAULT_TIMEOUT_SEC, IpcClient

logger = get_logger("cli")


def resolve_socket_path(ctx: click.Context, override: str | None = None) -> str:
    """Socket the CLI should talk to.

    Precedence: explicit option > PATHDEX__SERVER__SOCKET_PATH > config
    document > per-user default.
    """
    obj = ctx.find_root().obj or {}
    explicit = override or obj.get("socket_path")
    if explicit:
        return os.path.abspath(os.path.expanduser(explicit))
    try:
        return load_settings().server.socket_path
    except ConfigError as e:
        # Clients still work with a broken config document
        logger.debug("socket_from_config_failed", error=e.message)
        return default_socket_path()


def fail(error: PathdexError) -> NoReturn:
    """Exit with a one-line message for a pathdex error."""
    if error.code == ErrorCode.IPC_UNREACHABLE:
        socket_path = error.details.get("socket_path", "")
        raise click.ClickException(f"Daemon is not running (no answer on {socket_path}).")
    raise click.ClickException(error.message)


@contextmanager
def daemon_client(
    ctx: click.Context, *, timeout: float | None = DEFAULT_TIMEOUT_SEC
) -> Iterator[IpcClient]:
    """IpcClient for the resolved socket; pathdex errors become CLI errors."""
    with IpcClient(resolve_socket_path(ctx), timeout=timeout) as client:
        try:
            yield client
        except PathdexError as e:
            fail(e)
