"""Ignore pattern matching for watched directories.

Single source of truth for path exclusion, used by:
- Traversal (pruning ignored directories before descending)
- FileWatcher (filtering change notifications before they reach the index)
- Config validation (rejecting malformed patterns at load time)

Pattern dialect:
- Shell globs evaluated with fnmatch semantics, case-sensitive
- Patterns without "/" match any single path component, from the watched
  root's own name downwards (e.g. "node_modules", "*.tmp")
- Patterns containing "/" match the full absolute path of the entry or of
  any of its ancestors below the root (e.g. "/home/*/private")
- A trailing "/" restricts the pattern to directories (e.g. "build/")

A path is ignored if ANY pattern matches. Because ancestors are matched too,
everything below an ignored directory is ignored as well.
"""

from __future__ import annotations

import fnmatch
import os
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

__all__ = [
    "InvalidPatternError",
    "PathMatcher",
    "compile_pattern",
    "matches",
    "validate_pattern",
]


class InvalidPatternError(ValueError):
    """Raised for ignore patterns that cannot be compiled."""


@dataclass(frozen=True, slots=True)
class CompiledPattern:
    """A validated ignore pattern."""

    raw: str
    regex: re.Pattern[str]
    dir_only: bool
    anchored: bool

    def matches_name(self, name: str, *, is_dir: bool) -> bool:
        if self.dir_only and not is_dir:
            return False
        return self.regex.match(name) is not None


def _find_unterminated_set(pattern: str) -> int | None:
    """Return the index of a "[" with no closing "]", mirroring fnmatch's parser."""
    i, n = 0, len(pattern)
    while i < n:
        if pattern[i] == "[":
            j = i + 1
            if j < n and pattern[j] == "!":
                j += 1
            if j < n and pattern[j] == "]":
                j += 1
            while j < n and pattern[j] != "]":
                j += 1
            if j >= n:
                return i
            i = j + 1
        else:
            i += 1
    return None


def validate_pattern(pattern: str) -> str:
    """Check a pattern and return it unchanged.

    Raises:
        InvalidPatternError: For empty patterns, patterns containing NUL,
            a bare "/", or an unterminated "[" character set.
    """
    if not isinstance(pattern, str):
        raise InvalidPatternError(f"pattern must be a string, got {type(pattern).__name__}")
    if not pattern.strip():
        raise InvalidPatternError("pattern must not be empty")
    if "\x00" in pattern:
        raise InvalidPatternError(f"pattern contains a NUL character: {pattern!r}")
    if pattern.strip("/") == "":
        raise InvalidPatternError(f"pattern matches nothing: {pattern!r}")
    pos = _find_unterminated_set(pattern)
    if pos is not None:
        raise InvalidPatternError(f"unterminated character set at position {pos} in {pattern!r}")
    return pattern


def compile_pattern(pattern: str) -> CompiledPattern:
    """Validate and compile a single ignore pattern."""
    validate_pattern(pattern)
    dir_only = pattern.endswith("/")
    glob = pattern.rstrip("/") if dir_only else pattern
    return CompiledPattern(
        raw=pattern,
        regex=re.compile(fnmatch.translate(glob)),
        dir_only=dir_only,
        anchored="/" in glob,
    )


def _path_chain(path: str, root: str | None) -> list[str]:
    """Return the root (or filesystem top) followed by every ancestor down to path."""
    path = os.path.normpath(path)
    if root is not None:
        root = os.path.normpath(root)
        if path == root:
            return [root]
        if path.startswith(root.rstrip(os.sep) + os.sep):
            rel = path[len(root.rstrip(os.sep)) + 1 :]
            chain = [root]
            current = root
            for part in rel.split(os.sep):
                current = os.path.join(current, part)
                chain.append(current)
            return chain
    chain = []
    current = path
    while True:
        chain.append(current)
        parent = os.path.dirname(current)
        if parent == current:
            break
        current = parent
    chain.reverse()
    # Drop the bare filesystem anchor, it has no name to match against
    return [p for p in chain if os.path.basename(p)]


def _matches_compiled(
    path: str,
    patterns: Sequence[CompiledPattern],
    *,
    root: str | None,
    is_dir: bool,
) -> bool:
    if not patterns:
        return False
    chain = _path_chain(path, root)
    last = len(chain) - 1
    for i, candidate in enumerate(chain):
        candidate_is_dir = is_dir if i == last else True
        name = os.path.basename(candidate)
        for pattern in patterns:
            if not pattern.anchored and not name:
                continue
            target = candidate if pattern.anchored else name
            if pattern.matches_name(target, is_dir=candidate_is_dir):
                return True
    return False


def matches(
    path: str,
    patterns: Iterable[str],
    *,
    root: str | None = None,
    is_dir: bool = False,
) -> bool:
    """Return True if path is ignored by any of the patterns.

    Args:
        path: Absolute path to evaluate.
        patterns: Raw glob patterns (validated on the fly).
        root: Watched root the path belongs to. Component matching starts at
            the root's own name; without a root every component is considered.
        is_dir: Whether path itself is a directory (for "dir/" patterns).
    """
    compiled = [compile_pattern(p) for p in patterns]
    return _matches_compiled(path, compiled, root=root, is_dir=is_dir)


class PathMatcher:
    """Compiled global + directory-scoped ignore patterns for one watched root."""

    __slots__ = ("_root", "_patterns")

    def __init__(self, root: str, patterns: Iterable[str] = ()) -> None:
        self._root = os.path.normpath(root)
        seen: set[str] = set()
        compiled: list[CompiledPattern] = []
        for raw in patterns:
            if raw in seen:
                continue
            seen.add(raw)
            compiled.append(compile_pattern(raw))
        self._patterns: tuple[CompiledPattern, ...] = tuple(compiled)

    @classmethod
    def for_root(
        cls, root: str, global_ignored: Iterable[str], scoped_ignored: Iterable[str]
    ) -> PathMatcher:
        return cls(root, [*global_ignored, *scoped_ignored])

    @property
    def root(self) -> str:
        return self._root

    @property
    def patterns(self) -> tuple[str, ...]:
        return tuple(p.raw for p in self._patterns)

    def is_ignored(self, path: str, *, is_dir: bool = False) -> bool:
        return _matches_compiled(path, self._patterns, root=self._root, is_dir=is_dir)

    def __repr__(self) -> str:
        return f"PathMatcher(root={self._root!r}, patterns={list(self.patterns)!r})"
