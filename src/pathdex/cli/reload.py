"""pathdex reload / reindex commands - re-read config, rebuild the index."""

from __future__ import annotations

from typing import Any

import click

from pathdex.cli.utils import daemon_client
from pathdex.core.progress import pluralize, status


def _report(result: dict[str, Any]) -> None:
    for key in ("added", "removed", "changed"):
        paths = result.get(key) or []
        if paths:
            status(f"{pluralize(len(paths), 'root')} {key}: {', '.join(paths)}")
    for path in result.get("failed") or []:
        status(f"Cannot watch {path}", style="warning")


@click.command()
@click.pass_context
def reload_command(ctx: click.Context) -> None:
    """Re-read the config document and apply it without restarting.

    If the new document is invalid the daemon keeps its current config.
    """
    with daemon_client(ctx, timeout=None) as client:
        result = client.reload_config()
    status("Configuration reloaded", style="success")
    _report(result)


@click.command()
@click.pass_context
def reindex_command(ctx: click.Context) -> None:
    """Rebuild the whole index from the filesystem."""
    with daemon_client(ctx, timeout=None) as client:
        result = client.full_index()
    roots = result.get("changed") or []
    status(f"Re-indexed {pluralize(len(roots), 'root')}", style="success")
    _report({"failed": result.get("failed")})
