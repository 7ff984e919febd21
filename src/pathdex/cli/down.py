"""pathdex down command - stop the daemon."""

from __future__ import annotations

import time

import click

from pathdex.cli.utils import resolve_socket_path
from pathdex.core.errors import PathdexError
from pathdex.daemon.client import IpcClient
from pathdex.daemon.lifecycle import is_server_running, read_pid, stop_daemon


@click.command()
@click.pass_context
def down_command(ctx: click.Context) -> None:
    """Stop the pathdex daemon.

    Sends a shutdown request over the socket, falling back to SIGTERM via
    the PID file if the daemon does not answer.
    """
    socket_path = resolve_socket_path(ctx)
    pid = read_pid(socket_path)

    try:
        with IpcClient(socket_path, timeout=5.0) as client:
            client.shutdown()
        requested = True
    except PathdexError:
        requested = False

    if not requested:
        if pid is None or not is_server_running(socket_path):
            click.echo("Daemon is not running.")
            return
        click.echo(f"Daemon not answering, sending SIGTERM (PID {pid})...")
        if not stop_daemon(socket_path):
            click.echo("Failed to send stop signal.", err=True)
            raise SystemExit(1)
    else:
        click.echo(f"Stopping daemon (socket {socket_path})...")

    if pid is None:
        click.echo("Daemon stopped.")
        return

    # Wait for process to exit (up to 5 seconds)
    for _ in range(50):
        if not is_server_running(socket_path):
            click.echo("Daemon stopped.")
            return
        time.sleep(0.1)

    click.echo("Daemon did not stop within 5 seconds.", err=True)
    raise SystemExit(1)
