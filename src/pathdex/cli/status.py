"""pathdex status command - show daemon status."""

from __future__ import annotations

import json

import click

from pathdex.cli.utils import resolve_socket_path
from pathdex.core.errors import PathdexError
from pathdex.core.progress import format_duration, pluralize
from pathdex.daemon.client import IpcClient
from pathdex.daemon.lifecycle import is_server_running, read_pid


@click.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def status_command(ctx: click.Context, as_json: bool) -> None:
    """Show pathdex daemon status."""
    socket_path = resolve_socket_path(ctx)

    try:
        with IpcClient(socket_path, timeout=5.0) as client:
            status_data = client.status()
    except PathdexError as e:
        pid = read_pid(socket_path)
        running = pid is not None and is_server_running(socket_path)
        if as_json:
            payload = {"running": running, "socket_path": socket_path, "error": e.message}
            if running:
                payload["pid"] = pid
            click.echo(json.dumps(payload))
        elif running:
            click.echo(f"Daemon: running (PID {pid}, socket {socket_path})")
            click.echo(f"Status: unavailable ({e.message})")
        else:
            click.echo("Daemon: not running")
            click.echo(f"Socket: {socket_path}")
        return

    if as_json:
        click.echo(json.dumps({"running": True, **status_data}))
        return

    runtime = status_data.get("runtime", {})
    click.echo(f"Daemon: running (PID {runtime.get('pid', '?')}, socket {socket_path})")
    click.echo(f"Version: {status_data.get('version', 'unknown')}")
    click.echo(f"Uptime: {format_duration(float(status_data.get('uptime_seconds', 0)))}")
    click.echo(f"Config: {status_data.get('config_path', 'unknown')}")

    entries = int(status_data.get("entries", 0))
    suffix = " (initial indexing in progress)" if status_data.get("indexing") else ""
    click.echo(f"Index: {pluralize(entries, 'entry', 'entries')}{suffix}")

    watcher = status_data.get("watcher", {})
    mode = "polling" if watcher.get("polling") else "native"
    state = "active" if watcher.get("running") else "stopped"
    subscriptions = pluralize(int(watcher.get("subscriptions", 0)), "directory", "directories")
    click.echo(f"Watcher: {state} ({mode}, {subscriptions})")
    for root in watcher.get("roots", []):
        count = pluralize(int(root.get("entries", 0)), "entry", "entries")
        click.echo(f"  {root['path']}: {root['state']}, {count}")
        if root.get("error"):
            click.echo(f"    Error: {root['error']}")

    last_reload = status_data.get("last_reload")
    if last_reload:
        if last_reload.get("ok"):
            click.echo("Last reload: ok")
        else:
            click.echo(f"Last reload: failed ({last_reload.get('error')})")
