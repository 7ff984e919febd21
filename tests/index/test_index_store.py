"""Tests for index/store.py module.

Covers:
- Upsert/remove idempotence
- Prefix removal by path component
- Root ownership for nested roots
- Atomic replace_root
- Snapshot consistency under concurrent mutation
"""

from __future__ import annotations

import threading

import pytest

from pathdex.index.models import IndexEntry, is_within
from pathdex.index.store import IndexStore


def _file(path: str, root: str = "/w") -> IndexEntry:
    return IndexEntry(path=path, is_directory=False, root=root)


def _dir(path: str, root: str = "/w") -> IndexEntry:
    return IndexEntry(path=path, is_directory=True, root=root)


@pytest.fixture
def store() -> IndexStore:
    s = IndexStore()
    s.upsert_many(
        [
            _dir("/w/a"),
            _file("/w/a/x.txt"),
            _dir("/w/a/sub"),
            _file("/w/a/sub/y.txt"),
            _file("/w/ab.txt"),
        ]
    )
    return s


class TestIndexEntry:
    """Tests for IndexEntry and is_within()."""

    def test_name_and_parent(self) -> None:
        entry = _file("/w/a/x.txt")
        assert entry.name == "x.txt"
        assert entry.parent == "/w/a"

    def test_to_dict(self) -> None:
        assert _dir("/w/a").to_dict() == {"path": "/w/a", "is_directory": True}

    def test_is_within_component_wise(self) -> None:
        assert is_within("/w/a", "/w/a")
        assert is_within("/w/a/b", "/w/a")
        assert is_within("/w/a/b", "/w/a/")
        assert not is_within("/w/ab", "/w/a")


class TestMutations:
    """Tests for IndexStore mutations."""

    def test_upsert_is_idempotent(self) -> None:
        store = IndexStore()
        assert store.upsert(_file("/w/f")) is True
        version = store.version
        assert store.upsert(_file("/w/f")) is False
        assert store.version == version
        assert len(store) == 1

    def test_upsert_replaces_kind(self) -> None:
        store = IndexStore()
        store.upsert(_file("/w/f"))
        assert store.upsert(_dir("/w/f")) is True
        entry = store.get("/w/f")
        assert entry is not None and entry.is_directory

    def test_upsert_many_counts_changes(self, store: IndexStore) -> None:
        assert store.upsert_many([_file("/w/a/x.txt"), _file("/w/new")]) == 1

    def test_remove(self, store: IndexStore) -> None:
        assert store.remove("/w/ab.txt") is True
        assert store.remove("/w/ab.txt") is False
        assert "/w/ab.txt" not in store

    def test_remove_is_exact(self, store: IndexStore) -> None:
        store.remove("/w/a")
        assert "/w/a/x.txt" in store

    def test_remove_prefix(self, store: IndexStore) -> None:
        removed = store.remove_prefix("/w/a")
        assert removed == 4
        assert [e.path for e in store.list_all()] == ["/w/ab.txt"]

    def test_remove_prefix_idempotent(self, store: IndexStore) -> None:
        store.remove_prefix("/w/a")
        assert store.remove_prefix("/w/a") == 0

    def test_remove_prefix_respects_root(self) -> None:
        """A nested root's entries survive removal of the outer root's subtree."""
        store = IndexStore()
        store.upsert_many([_dir("/w/a"), _file("/w/a/f"), _file("/w/a/inner/g", root="/w/a/inner")])
        store.remove_prefix("/w/a", root="/w")
        assert [e.path for e in store.list_all()] == ["/w/a/inner/g"]

    def test_remove_root(self) -> None:
        store = IndexStore()
        store.upsert_many([_file("/w/f"), _file("/v/g", root="/v")])
        assert store.remove_root("/w") == 1
        assert store.remove_root("/w") == 0
        assert [e.path for e in store.list_all()] == ["/v/g"]

    def test_replace_root(self, store: IndexStore) -> None:
        store.upsert(_file("/v/keep", root="/v"))
        count, dropped = store.replace_root("/w", [_dir("/w/a"), _file("/w/new")])
        assert count == 2
        assert dropped == 4
        assert sorted(e.path for e in store.list_all()) == ["/v/keep", "/w/a", "/w/new"]


class TestReads:
    """Tests for IndexStore reads."""

    def test_list_prefix_excludes_prefix(self, store: IndexStore) -> None:
        paths = sorted(e.path for e in store.list_prefix("/w/a"))
        assert paths == ["/w/a/sub", "/w/a/sub/y.txt", "/w/a/x.txt"]

    def test_snapshot_is_stable(self, store: IndexStore) -> None:
        snapshot = store.snapshot_matching(lambda e: not e.is_directory)
        store.remove_prefix("/w")
        first = [e.path for e in snapshot]
        assert first == [e.path for e in snapshot]
        assert len(first) == 3

    def test_snapshot_version(self, store: IndexStore) -> None:
        before = store.snapshot_matching().version
        store.upsert(_file("/w/z"))
        assert store.snapshot_matching().version == before + 1

    def test_count_by_root(self) -> None:
        store = IndexStore()
        store.upsert_many([_file("/w/f"), _file("/w/g"), _file("/v/h", root="/v")])
        assert store.count_by_root() == {"/w": 2, "/v": 1}


class TestConcurrency:
    """Readers never observe a partially replaced root."""

    def test_replace_root_atomic_for_readers(self) -> None:
        store = IndexStore()
        old = [_file(f"/w/old{i}") for i in range(200)]
        new = [_file(f"/w/new{i}") for i in range(200)]
        store.replace_root("/w", old)
        stop = threading.Event()
        observed: list[tuple[int, int]] = []

        def reader() -> None:
            while not stop.is_set():
                paths = [e.path for e in store.snapshot_matching()]
                n_old = sum(p.startswith("/w/old") for p in paths)
                observed.append((n_old, len(paths) - n_old))

        thread = threading.Thread(target=reader)
        thread.start()
        for i in range(50):
            store.replace_root("/w", new if i % 2 == 0 else old)
        stop.set()
        thread.join()

        assert observed
        assert all(counts in ((200, 0), (0, 200)) for counts in observed)
