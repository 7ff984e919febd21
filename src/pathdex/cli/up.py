"""pathdex up command - run the daemon in the foreground."""

from __future__ import annotations

import asyncio
from pathlib import Path

import click

from pathdex.cli.utils import resolve_socket_path
from pathdex.config.constants import default_config_path
from pathdex.config.loader import load_settings, parse_index_config, read_document
from pathdex.config.models import IndexConfig, LoggingConfig, PathdexConfig, ServerConfig
from pathdex.config.store import ConfigStore
from pathdex.core.errors import ConfigError
from pathdex.core.progress import get_console, pluralize


def _print_banner(config: PathdexConfig, index_config: IndexConfig, source: Path) -> None:
    """Print startup banner with socket and watched roots using Rich."""
    from importlib.metadata import PackageNotFoundError, version

    try:
        ver = version("pathdex")
    except PackageNotFoundError:
        ver = "dev"
    console = get_console()

    banner_width = 64
    rule_line = "─" * banner_width

    console.print()
    console.print(rule_line, style="dim cyan", highlight=False)
    console.print(
        f"pathdex v{ver} · Ready".center(banner_width), style="bold cyan", highlight=False
    )
    console.print(rule_line, style="dim cyan", highlight=False)
    console.print()

    roots = pluralize(len(index_config.directories), "directory", "directories")
    console.print(f"  Socket:          {config.server.socket_path}", style="green", highlight=False)
    console.print(f"  Config:          {source}", highlight=False)
    console.print(f"  Watching:        {roots}", highlight=False)
    for directory in index_config.directories:
        mode = "recursive" if directory.recurse else "top level"
        console.print(f"    {directory.path} ({mode})", style="dim", highlight=False)
    console.print()


def load_startup_config(
    source: Path, socket_override: str | None = None
) -> tuple[IndexConfig, PathdexConfig]:
    """Read the config document once and derive both configs from it.

    Raises:
        ConfigError: If the document is missing or invalid. Fatal at startup.
    """
    document = read_document(source)
    index_config = parse_index_config(document)
    config = load_settings(source, document=document)
    if socket_override is not None:
        config.server = ServerConfig.model_validate(
            {**config.server.model_dump(), "socket_path": socket_override}
        )
    return index_config, config


@click.command()
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Config document (default: $PATHDEX_CONFIG or ~/.config/pathdex/config.yaml)",
)
@click.option("--socket", "socket_path", default=None, metavar="PATH", help="Socket to listen on")
@click.pass_context
def up_command(ctx: click.Context, config_path: Path | None, socket_path: str | None) -> None:
    """Start the pathdex daemon. Runs in foreground.

    If already running, reports the existing instance. An invalid config
    document is fatal.
    """
    from pathdex.core.logging import configure_logging
    from pathdex.daemon.lifecycle import is_server_running, read_pid, run_server

    source = (config_path or default_config_path()).expanduser()
    root_obj = ctx.find_root().obj or {}
    override = socket_path or root_obj.get("socket_path")
    if override is not None:
        override = resolve_socket_path(ctx, override)

    try:
        index_config, config = load_startup_config(source, override)
    except ConfigError as e:
        raise click.ClickException(str(e)) from e

    socket = config.server.socket_path
    if is_server_running(socket):
        click.echo(f"Already running (PID {read_pid(socket)}, socket {socket})")
        return

    logging_config = config.logging
    if root_obj.get("verbose"):
        logging_config = LoggingConfig(level="DEBUG", outputs=logging_config.outputs)
    configure_logging(config=logging_config)

    _print_banner(config, index_config, source)

    config_store = ConfigStore(source, initial=index_config)
    try:
        asyncio.run(run_server(config, config_store))
    except KeyboardInterrupt:
        click.echo("\nStopped")
