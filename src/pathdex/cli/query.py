"""pathdex query / get-index commands - read the index."""

from __future__ import annotations

import json
import os
from collections.abc import Iterable
from typing import Any

import click

from pathdex.cli.utils import daemon_client
from pathdex.config.constants import QUERY_LIMIT_MAX
from pathdex.index.query import CaseOption, FileType

OUTPUT_FORMATS = ("json", "list")


def render_entries(entries: Iterable[dict[str, Any]], output_format: str) -> str:
    """Render entries as pretty JSON or one path per line ("/" marks directories)."""
    if output_format == "json":
        return json.dumps(list(entries), indent=2)
    lines = [
        entry["path"] + "/" if entry.get("is_directory") else entry["path"] for entry in entries
    ]
    return "\n".join(lines)


def _echo_entries(entries: list[dict[str, Any]], output_format: str) -> None:
    if output_format == "list" and not entries:
        return
    click.echo(render_entries(entries, output_format))


format_option = click.option(
    "--format",
    "output_format",
    type=click.Choice(OUTPUT_FORMATS),
    default="json",
    show_default=True,
    help="json for tools, list for one path per line",
)


@click.command()
@click.argument("terms", nargs=-1)
@click.option("--filter", "substring", default=None, help="Basename must contain this text")
@click.option(
    "--type",
    "file_type",
    type=click.Choice([t.value for t in FileType]),
    default=FileType.ALL.value,
    show_default=True,
)
@click.option(
    "--case",
    type=click.Choice([c.value for c in CaseOption]),
    default=CaseOption.SMART.value,
    show_default=True,
    help="smart: case-insensitive unless a term has an uppercase letter",
)
@click.option("--root", default=None, metavar="PATH", help="Only entries below this directory")
@click.option("--limit", type=click.IntRange(0, QUERY_LIMIT_MAX), default=None)
@format_option
@click.pass_context
def query_command(
    ctx: click.Context,
    terms: tuple[str, ...],
    substring: str | None,
    file_type: str,
    case: str,
    root: str | None,
    limit: int | None,
    output_format: str,
) -> None:
    """Search the index.

    \b
    TERMS:
      word     basename contains word (best when it starts with it)
      /word    some parent directory contains word
      //word   the direct parent directory contains word
      word/    exact match instead of contains
      /        directories only
      f/       files only
    """
    if root is not None:
        root = os.path.abspath(os.path.expanduser(root))
    with daemon_client(ctx) as client:
        entries = client.query(
            terms,
            substring=substring,
            file_type=FileType(file_type),
            case=CaseOption(case),
            root=root,
            limit=limit,
        )
    _echo_entries(entries, output_format)


@click.command()
@click.argument("path", required=False, default=None)
@format_option
@click.pass_context
def get_index_command(ctx: click.Context, path: str | None, output_format: str) -> None:
    """Dump the index, or everything below PATH."""
    if path is not None:
        path = os.path.abspath(os.path.expanduser(path))
    with daemon_client(ctx) as client:
        entries = client.get_index(path)
    _echo_entries(entries, output_format)
