"""Index data model."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True, slots=True)
class IndexEntry:
    """One indexed filesystem path.

    Parent/child relationships are not stored: they follow from path
    prefixes and are computed on demand.

    Attributes:
        path: Absolute path, unique key within the store.
        is_directory: Whether the path is (or points to) a directory.
        root: Watched root that owns this entry.
        mtime: Modification time at indexing, informational only.
    """

    path: str
    is_directory: bool
    root: str = ""
    mtime: float | None = None

    @property
    def name(self) -> str:
        return os.path.basename(self.path)

    @property
    def parent(self) -> str:
        return os.path.dirname(self.path)

    def to_dict(self) -> dict[str, Any]:
        """Wire representation shared by IPC responses and CLI output."""
        return {"path": self.path, "is_directory": self.is_directory}


def is_within(path: str, prefix: str) -> bool:
    """True if path equals prefix or lies below it (component-wise)."""
    if path == prefix:
        return True
    base = prefix if prefix.endswith(os.sep) else prefix + os.sep
    return path.startswith(base)
