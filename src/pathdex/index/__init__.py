"""In-memory path index: entries, store, ignore matching and queries."""

from pathdex.index.matcher import InvalidPatternError, PathMatcher, matches
from pathdex.index.models import IndexEntry
from pathdex.index.query import CaseOption, FileType, Query
from pathdex.index.store import IndexSnapshot, IndexStore

__all__ = [
    "CaseOption",
    "FileType",
    "IndexEntry",
    "IndexSnapshot",
    "IndexStore",
    "InvalidPatternError",
    "PathMatcher",
    "Query",
    "matches",
]
