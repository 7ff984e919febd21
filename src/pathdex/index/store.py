"""Thread-safe in-memory index of watched paths.

All mutations and reads go through a single lock, so every operation is
serializable with respect to every other. Critical sections are short: the
lock is never held across I/O. Readers get an immutable snapshot and filter
it outside the lock.
"""

from __future__ import annotations

import threading
from collections import Counter
from collections.abc import Callable, Iterable, Iterator

from pathdex.index.models import IndexEntry, is_within

EntryPredicate = Callable[[IndexEntry], bool]


def _match_all(_entry: IndexEntry) -> bool:
    return True


class IndexSnapshot:
    """Entries captured at a single point in time, filtered lazily.

    Iterating twice yields the same entries: the snapshot holds an immutable
    tuple and re-applies the predicate on each pass.
    """

    __slots__ = ("_entries", "_predicate", "version")

    def __init__(
        self,
        entries: tuple[IndexEntry, ...],
        predicate: EntryPredicate,
        version: int,
    ) -> None:
        self._entries = entries
        self._predicate = predicate
        self.version = version

    def __iter__(self) -> Iterator[IndexEntry]:
        predicate = self._predicate
        return (entry for entry in self._entries if predicate(entry))

    def to_list(self) -> list[IndexEntry]:
        return list(self)


class IndexStore:
    """Authoritative mapping of path -> IndexEntry.

    Mutations: upsert, remove, remove_prefix, remove_root, replace_root.
    Reads: get, snapshot_matching, list_prefix, stats.
    """

    def __init__(self) -> None:
        self._entries: dict[str, IndexEntry] = {}
        self._lock = threading.Lock()
        self._version = 0
        self._cached: tuple[IndexEntry, ...] | None = None

    def _touch(self) -> None:
        # Caller holds the lock
        self._version += 1
        self._cached = None

    @property
    def version(self) -> int:
        """Incremented by every mutation that changed the contents."""
        return self._version

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, path: object) -> bool:
        with self._lock:
            return path in self._entries

    def get(self, path: str) -> IndexEntry | None:
        with self._lock:
            return self._entries.get(path)

    # -----------------------------------------------------------------
    # Mutations
    # -----------------------------------------------------------------

    def upsert(self, entry: IndexEntry) -> bool:
        """Insert or replace the entry at entry.path. Returns True if anything changed."""
        with self._lock:
            if self._entries.get(entry.path) == entry:
                return False
            self._entries[entry.path] = entry
            self._touch()
            return True

    def upsert_many(self, entries: Iterable[IndexEntry]) -> int:
        """Insert or replace several entries in one critical section."""
        batch = list(entries)
        changed = 0
        with self._lock:
            for entry in batch:
                if self._entries.get(entry.path) != entry:
                    self._entries[entry.path] = entry
                    changed += 1
            if changed:
                self._touch()
        return changed

    def remove(self, path: str) -> bool:
        """Remove exactly one entry. No-op if absent."""
        with self._lock:
            if self._entries.pop(path, None) is None:
                return False
            self._touch()
            return True

    def remove_prefix(self, prefix: str, *, root: str | None = None) -> int:
        """Remove prefix and every entry below it. Returns the number removed.

        With root, only entries owned by that watched root are removed.
        """
        with self._lock:
            doomed = [
                p
                for p, e in self._entries.items()
                if is_within(p, prefix) and (root is None or e.root == root)
            ]
            for path in doomed:
                del self._entries[path]
            if doomed:
                self._touch()
            return len(doomed)

    def remove_root(self, root: str) -> int:
        """Remove every entry owned by a watched root."""
        with self._lock:
            doomed = [p for p, e in self._entries.items() if e.root == root]
            for path in doomed:
                del self._entries[path]
            if doomed:
                self._touch()
            return len(doomed)

    def replace_root(self, root: str, entries: Iterable[IndexEntry]) -> tuple[int, int]:
        """Atomically swap all entries of a root for a freshly traversed set.

        Readers observe either the complete old set or the complete new set.

        Returns:
            (entries now owned by the root, entries dropped that were not re-added)
        """
        batch = {entry.path: entry for entry in entries}
        with self._lock:
            old = [p for p, e in self._entries.items() if e.root == root]
            dropped = 0
            for path in old:
                if path not in batch:
                    dropped += 1
                del self._entries[path]
            self._entries.update(batch)
            self._touch()
        return len(batch), dropped

    # -----------------------------------------------------------------
    # Reads
    # -----------------------------------------------------------------

    def snapshot_matching(self, predicate: EntryPredicate | None = None) -> IndexSnapshot:
        """Consistent view of all entries satisfying predicate.

        Only the capture happens under the lock; filtering is lazy and runs
        whenever the snapshot is iterated.
        """
        with self._lock:
            if self._cached is None:
                self._cached = tuple(self._entries.values())
            entries = self._cached
            version = self._version
        return IndexSnapshot(entries, predicate or _match_all, version)

    def list_all(self) -> list[IndexEntry]:
        return self.snapshot_matching().to_list()

    def list_prefix(self, prefix: str) -> list[IndexEntry]:
        """Entries strictly below prefix."""
        return self.snapshot_matching(
            lambda e: e.path != prefix and is_within(e.path, prefix)
        ).to_list()

    def count_by_root(self) -> dict[str, int]:
        with self._lock:
            return dict(Counter(e.root for e in self._entries.values()))
