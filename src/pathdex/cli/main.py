"""Pathdex CLI - pathdex command."""

from importlib.metadata import PackageNotFoundError, version

import click

from pathdex.cli.down import down_command
from pathdex.cli.query import get_index_command, query_command
from pathdex.cli.reload import reindex_command, reload_command
from pathdex.cli.status import status_command
from pathdex.cli.up import up_command
from pathdex.core.logging import configure_logging


def _version() -> str:
    try:
        return version("pathdex")
    except PackageNotFoundError:
        return "dev"


@click.group()
@click.version_option(version=_version(), prog_name="pathdex")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.option(
    "--socket",
    "socket_path",
    default=None,
    metavar="PATH",
    help="Daemon socket (default: from config, env, or $XDG_RUNTIME_DIR/pathdex.sock)",
)
@click.pass_context
def cli(ctx: click.Context, verbose: bool, socket_path: str | None) -> None:
    """Pathdex - background file indexing daemon and query client."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["socket_path"] = socket_path
    configure_logging(level="DEBUG" if verbose else "WARNING")


cli.add_command(up_command, name="up")
cli.add_command(down_command, name="down")
cli.add_command(status_command, name="status")
cli.add_command(reload_command, name="reload")
cli.add_command(reindex_command, name="reindex")
cli.add_command(get_index_command, name="get-index")
cli.add_command(query_command, name="query")


if __name__ == "__main__":
    cli()
