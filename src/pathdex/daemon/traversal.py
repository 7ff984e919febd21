"""Directory traversal for populating the index.

Walks a directory with os.scandir, applying the root's PathMatcher before
anything is recorded: ignored entries are skipped and ignored directories are
never descended into. Symbolic links are recorded but never followed.

A directory that cannot be read is logged and skipped; traversal continues
with its siblings. Only a failure to read the starting directory itself is
raised to the caller.
"""

from __future__ import annotations

import os
from collections.abc import Iterable
from dataclasses import dataclass, field

import structlog

from pathdex.core.errors import TraversalError
from pathdex.index.matcher import PathMatcher
from pathdex.index.models import IndexEntry

logger = structlog.get_logger()


@dataclass
class TraversalResult:
    """Everything found below one starting directory."""

    start: str
    entries: list[IndexEntry] = field(default_factory=list)
    # Directories that were listed successfully and should be subscribed
    directories: list[str] = field(default_factory=list)
    errors: list[TraversalError] = field(default_factory=list)
    ignored: int = 0


def _entry_from_dirent(dirent: os.DirEntry[str], root: str) -> IndexEntry | None:
    try:
        is_dir = dirent.is_dir()
        mtime: float | None = dirent.stat(follow_symlinks=False).st_mtime
    except OSError:
        # Vanished between listing and stat
        return None
    return IndexEntry(path=dirent.path, is_directory=is_dir, root=root, mtime=mtime)


def entry_for_path(path: str, root: str) -> IndexEntry | None:
    """Current filesystem state of a single path, or None if it does not exist."""
    try:
        st = os.lstat(path)
    except OSError:
        return None
    is_dir = os.path.isdir(path)
    return IndexEntry(path=path, is_directory=is_dir, root=root, mtime=st.st_mtime)


def is_descendable(path: str) -> bool:
    """Real directories only; symlinked directories are never followed."""
    return os.path.isdir(path) and not os.path.islink(path)


def traverse(
    start: str,
    *,
    root: str,
    matcher: PathMatcher,
    recurse: bool,
) -> TraversalResult:
    """Collect entries below start (start itself is not included).

    Args:
        start: Directory to list. Either a watched root or a directory below it.
        root: Watched root that will own the entries.
        matcher: Ignore rules for that root.
        recurse: Descend into subdirectories.

    Raises:
        TraversalError: If start itself cannot be listed.
    """
    result = TraversalResult(start=start)
    stack = [start]

    while stack:
        current = stack.pop()
        try:
            with os.scandir(current) as it:
                children = list(it)
        except OSError as e:
            error = TraversalError.for_path(current, e.strerror or str(e))
            if current == start:
                raise error from e
            logger.warning("traversal_error", path=current, error=error.message)
            result.errors.append(error)
            continue

        result.directories.append(current)

        for dirent in children:
            entry = _entry_from_dirent(dirent, root)
            if entry is None:
                continue
            if matcher.is_ignored(entry.path, is_dir=entry.is_directory):
                result.ignored += 1
                continue
            result.entries.append(entry)
            if recurse and entry.is_directory and not dirent.is_symlink():
                stack.append(entry.path)

    logger.debug(
        "traversal_done",
        start=start,
        entries=len(result.entries),
        directories=len(result.directories),
        ignored=result.ignored,
        errors=len(result.errors),
    )
    return result


def list_children(directories: Iterable[str]) -> dict[str, dict[str, bool] | None]:
    """One-level listing of several directories.

    Maps each directory to {child path: is_dir}. None marks an unreadable
    directory.
    """
    listings: dict[str, dict[str, bool] | None] = {}
    for directory in directories:
        children: dict[str, bool] = {}
        try:
            with os.scandir(directory) as it:
                for dirent in it:
                    try:
                        children[dirent.path] = dirent.is_dir()
                    except OSError:
                        children[dirent.path] = False
        except OSError:
            listings[directory] = None
            continue
        listings[directory] = children
    return listings
