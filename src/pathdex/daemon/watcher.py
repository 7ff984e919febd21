"""File watcher keeping the index in sync with the filesystem.

Design:
- Python traverses each watched root with PathMatcher pruning
- Every directory that was listed gets a non-recursive subscription
- All subscriptions share one awatch session (one inotify watch per dir)
- A changed subscription set starts a new session before the old one is
  stopped; the old session's undelivered changes are recovered by listing
  every watched directory once the new session is watching
- Change batches are applied state-based: each changed path is looked up on
  disk and the index is made to match, shallowest path first
- Falls back to polling for cross-filesystem mounts (WSL /mnt/*, network)

All index mutations made here run under one asyncio lock, so event batches,
config reconciliation and rescans never interleave.
"""

from __future__ import annotations

import asyncio
import contextlib
import os
import time
from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

import structlog
from watchfiles import Change, awatch

from pathdex.config.models import IndexConfig, WatchedDirectory, WatcherConfig
from pathdex.core.errors import TraversalError, WatchSubscriptionError
from pathdex.daemon.traversal import entry_for_path, is_descendable, list_children, traverse
from pathdex.index.matcher import PathMatcher
from pathdex.index.models import is_within
from pathdex.index.store import IndexStore

logger = structlog.get_logger()

# Session recovery
SESSION_RETRY_SEC = 1.0
MAX_SESSION_FAILURES = 3


def _is_cross_filesystem(path: str) -> bool:
    """Detect if path is on a cross-filesystem mount (WSL /mnt/*, network drives, etc.)."""
    path_str = str(Path(path).resolve())
    # WSL accessing Windows filesystem: /mnt/c/, /mnt/d/, etc.
    # Must be single letter followed by / (not /mnt/data/ which is a regular mount)
    if (
        path_str.startswith("/mnt/")
        and len(path_str) > 6
        and path_str[5].isalpha()
        and path_str[6] == "/"
    ):
        return True
    if path_str.startswith("/run/user/") and "/gvfs" in path_str:
        return True
    return path_str.startswith(("/media/", "/net/"))


def _depth_order(paths: Iterable[str]) -> list[str]:
    """Shallowest first, so a directory is handled before its contents."""
    return sorted(paths, key=lambda p: (p.count(os.sep), p))


class RootState(str, Enum):
    PENDING = "pending"
    WATCHING = "watching"
    FAILED = "failed"


class Outcome(str, Enum):
    INDEXED = "indexed"
    REMOVED = "removed"
    IGNORED = "ignored"
    SKIPPED = "skipped"


def _summarize_outcomes(outcomes: Counter[Outcome]) -> str:
    """Summarize a batch like "3 paths indexed, 1 removed"."""
    parts: list[str] = []
    for outcome in (Outcome.INDEXED, Outcome.REMOVED, Outcome.IGNORED):
        count = outcomes.get(outcome, 0)
        if not count:
            continue
        if not parts:
            noun = "path" if count == 1 else "paths"
            parts.append(f"{count} {noun} {outcome.value}")
        else:
            parts.append(f"{count} {outcome.value}")
    return ", ".join(parts) or "no changes"


@dataclass
class RootWatch:
    """Watch state of one configured root."""

    directory: WatchedDirectory
    matcher: PathMatcher
    state: RootState = RootState.PENDING
    error: str | None = None

    @property
    def path(self) -> str:
        return self.directory.path

    def to_dict(self, entries: int = 0) -> dict[str, Any]:
        return {
            "path": self.path,
            "recurse": self.directory.recurse,
            "state": self.state.value,
            "entries": entries,
            "error": self.error,
        }


@dataclass
class ReconcileResult:
    """What a config application or full re-index did to each root."""

    added: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    changed: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)
    errors: list[WatchSubscriptionError] = field(default_factory=list)

    @property
    def failed(self) -> list[str]:
        return [str(e.details.get("path", "")) for e in self.errors]

    def to_dict(self) -> dict[str, Any]:
        return {
            "added": self.added,
            "removed": self.removed,
            "changed": self.changed,
            "unchanged": self.unchanged,
            "failed": self.failed,
        }


@dataclass
class _WatchSession:
    directories: frozenset[str]
    polling: bool
    stop_event: asyncio.Event = field(default_factory=asyncio.Event)
    task: asyncio.Task[None] | None = None


@dataclass
class FileWatcher:
    """Maintains IndexStore from the configured roots and their change notifications.

    Lifecycle:
    - apply_config() reconciles roots with a new IndexConfig (also used for
      the initial population)
    - start() begins watching; apply_config() on a stopped watcher only
      updates the index
    - rebuild() re-traverses every root (full re-index)
    - stop() ends all sessions and background tasks
    """

    store: IndexStore
    config: WatcherConfig = field(default_factory=WatcherConfig)
    stop_timeout: float = 2.0

    _index_config: IndexConfig = field(default_factory=IndexConfig, init=False)
    _roots: dict[str, RootWatch] = field(default_factory=dict, init=False)
    # Subscribed directory -> owning root
    _subscriptions: dict[str, str] = field(default_factory=dict, init=False)
    # Subscribed since the last session started, not yet watched
    _dirty: set[str] = field(default_factory=set, init=False)
    _mutation_lock: asyncio.Lock = field(default_factory=asyncio.Lock, init=False)
    _running: bool = field(default=False, init=False)
    _session: _WatchSession | None = field(default=None, init=False)
    _retired: set[asyncio.Task[None]] = field(default_factory=set, init=False)
    _background: set[asyncio.Task[None]] = field(default_factory=set, init=False)
    _catch_up_pending: set[str] = field(default_factory=set, init=False)
    _catch_up_task: asyncio.Task[None] | None = field(default=None, init=False)
    _rescan_task: asyncio.Task[None] | None = field(default=None, init=False)
    _failures: int = field(default=0, init=False)
    _polling_fallback: bool = field(default=False, init=False)
    _batches: int = field(default=0, init=False)
    _last_batch_at: float | None = field(default=None, init=False)

    @property
    def running(self) -> bool:
        return self._running

    @property
    def index_config(self) -> IndexConfig:
        """The IndexConfig the index currently reflects."""
        return self._index_config

    @property
    def subscriptions(self) -> frozenset[str]:
        return frozenset(self._subscriptions)

    def root_state(self, path: str) -> RootState | None:
        watch = self._roots.get(path)
        return watch.state if watch is not None else None

    # -----------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------

    async def start(self) -> None:
        """Start watching the current subscriptions."""
        if self._running:
            return
        self._running = True
        if self.config.rescan_interval_sec > 0:
            self._rescan_task = asyncio.create_task(self._rescan_loop())
        logger.info(
            "file_watcher_started",
            debounce_ms=self.config.debounce_ms,
            polling=self._should_poll(),
            rescan_interval_sec=self.config.rescan_interval_sec,
        )
        async with self._mutation_lock:
            self._dirty.update(self._subscriptions)
            await self._resubscribe()

    async def stop(self) -> None:
        """Stop all sessions and background work."""
        if not self._running:
            return
        self._running = False

        tasks: list[asyncio.Task[None]] = []
        if self._session is not None:
            self._session.stop_event.set()
            if self._session.task is not None:
                tasks.append(self._session.task)
            self._session = None
        tasks.extend(self._retired)

        for task in (self._rescan_task, *self._background):
            if task is not None and not task.done():
                task.cancel()
                tasks.append(task)
        self._rescan_task = None

        if tasks:
            _done, pending = await asyncio.wait(tasks, timeout=self.stop_timeout)
            for task in pending:
                task.cancel()
            for task in pending:
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        self._retired.clear()
        self._background.clear()
        self._catch_up_pending.clear()
        self._catch_up_task = None
        logger.info("file_watcher_stopped")

    # -----------------------------------------------------------------
    # Config reconciliation
    # -----------------------------------------------------------------

    async def apply_config(self, config: IndexConfig) -> ReconcileResult:
        """Bring roots, subscriptions and index in line with config.

        Removed roots are purged. Added roots, roots whose settings changed
        (including any change to the global ignores) and previously failed
        roots are traversed and swapped in one at a time with replace_root.
        Unchanged roots are left alone.
        """
        async with self._mutation_lock:
            result = await self._reconcile(config)
            await self._resubscribe()

        logger.info(
            "config_applied",
            added=len(result.added),
            removed=len(result.removed),
            changed=len(result.changed),
            unchanged=len(result.unchanged),
            failed=len(result.errors),
            entries=len(self.store),
        )
        return result

    async def rebuild(self, *, reason: str = "request") -> ReconcileResult:
        """Re-traverse every root and atomically replace its entries."""
        started = time.monotonic()
        result = ReconcileResult()
        async with self._mutation_lock:
            config = self._index_config
            for directory in config.directories:
                error = await self._index_root(directory, config.matcher_for(directory))
                result.changed.append(directory.path)
                if error is not None:
                    result.errors.append(error)
            await self._resubscribe()

        logger.info(
            "full_index_done",
            reason=reason,
            roots=len(result.changed),
            failed=len(result.errors),
            entries=len(self.store),
            duration_ms=round((time.monotonic() - started) * 1000),
        )
        return result

    async def _reconcile(self, config: IndexConfig) -> ReconcileResult:
        # Caller holds the mutation lock
        result = ReconcileResult()
        old = self._index_config
        old_dirs = {d.path: d for d in old.directories}
        new_dirs = {d.path: d for d in config.directories}
        globals_changed = old.ignored != config.ignored

        for path in old_dirs:
            if path in new_dirs:
                continue
            self._release_root(path)
            purged = self.store.remove_root(path)
            self._roots.pop(path, None)
            result.removed.append(path)
            logger.info("root_removed", root=path, purged=purged)

        for path, directory in new_dirs.items():
            previous = old_dirs.get(path)
            watch = self._roots.get(path)
            if (
                previous == directory
                and not globals_changed
                and watch is not None
                and watch.state is RootState.WATCHING
            ):
                result.unchanged.append(path)
                continue
            error = await self._index_root(directory, config.matcher_for(directory))
            if previous is None:
                result.added.append(path)
            else:
                result.changed.append(path)
            if error is not None:
                result.errors.append(error)

        self._index_config = config
        return result

    async def _index_root(
        self, directory: WatchedDirectory, matcher: PathMatcher
    ) -> WatchSubscriptionError | None:
        """Traverse a root and swap its entries and subscriptions in."""
        path = directory.path
        watch = RootWatch(directory=directory, matcher=matcher)
        self._roots[path] = watch
        try:
            traversal = await asyncio.to_thread(
                traverse, path, root=path, matcher=matcher, recurse=directory.recurse
            )
        except TraversalError as e:
            return self._fail_root(path, str(e.details.get("reason", e.message)))

        count, dropped = self.store.replace_root(path, traversal.entries)
        previous = self._release_root(path)
        for subdir in traversal.directories:
            self._subscriptions[subdir] = path
        self._dirty.update(set(traversal.directories) - previous)
        watch.state = RootState.WATCHING
        logger.info(
            "root_indexed",
            root=path,
            recurse=directory.recurse,
            entries=count,
            dropped=dropped,
            directories=len(traversal.directories),
            ignored=traversal.ignored,
            errors=len(traversal.errors),
        )
        return None

    def _fail_root(self, path: str, reason: str) -> WatchSubscriptionError:
        """Mark a root failed and purge everything it owns."""
        error = WatchSubscriptionError.for_path(path, reason)
        self._release_root(path)
        purged = self.store.remove_root(path)
        watch = self._roots.get(path)
        if watch is not None:
            watch.state = RootState.FAILED
            watch.error = error.message
        logger.error("watch_subscription_failed", root=path, error=error.message, purged=purged)
        return error

    def _release_root(self, root: str) -> set[str]:
        released = {d for d, owner in self._subscriptions.items() if owner == root}
        for directory in released:
            del self._subscriptions[directory]
        return released

    def _release_subscriptions(self, prefix: str, *, root: str | None = None) -> list[str]:
        released = [
            d
            for d, owner in self._subscriptions.items()
            if is_within(d, prefix) and (root is None or owner == root)
        ]
        for directory in released:
            del self._subscriptions[directory]
        return released

    def _drop(self, path: str, *, root: str | None = None) -> int:
        """Remove path and everything below it from the index and the watch set."""
        removed = self.store.remove_prefix(path, root=root)
        for directory in self._release_subscriptions(path, root=root):
            watch = self._roots.get(directory)
            if watch is not None and watch.state is RootState.WATCHING:
                self._fail_root(directory, "directory was removed")
        return removed

    # -----------------------------------------------------------------
    # Sessions
    # -----------------------------------------------------------------

    def _should_poll(self) -> bool:
        if self.config.force_polling or self._polling_fallback:
            return True
        return any(_is_cross_filesystem(path) for path in self._roots)

    async def _resubscribe(self) -> None:
        """Replace the watch session if the subscription set changed."""
        # Caller holds the mutation lock
        if not self._running:
            self._dirty.clear()
            return
        directories = frozenset(self._subscriptions)
        current = self._session
        if current is not None and current.directories == directories and not self._dirty:
            return

        fresh = frozenset(self._dirty & directories)
        self._dirty.clear()

        session: _WatchSession | None = None
        if directories:
            session = _WatchSession(directories=directories, polling=self._should_poll())
            session.task = asyncio.create_task(self._run_session(session))
            # Let the new session register its watches before the old one stops
            await asyncio.sleep(0)
        self._session = session

        if current is not None:
            current.stop_event.set()
            if current.task is not None and not current.task.done():
                self._retired.add(current.task)
                current.task.add_done_callback(self._retired.discard)

        # The retiring session drops whatever it had not delivered yet, so every
        # directory is listed again once the new session is watching
        pending = directories if current is not None else fresh
        if session is not None and pending:
            self._schedule_catch_up(pending)

        logger.debug(
            "watch_session_started",
            directories=len(directories),
            fresh=len(fresh),
            polling=session.polling if session else None,
        )

    async def _run_session(self, session: _WatchSession) -> None:
        try:
            async for changes in awatch(
                *sorted(session.directories),
                watch_filter=None,
                debounce=self.config.debounce_ms,
                step=self.config.step_ms,
                stop_event=session.stop_event,
                recursive=False,
                force_polling=session.polling,
                poll_delay_ms=self.config.poll_delay_ms,
                ignore_permission_denied=True,
            ):
                await self._handle_changes(changes)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if session.stop_event.is_set() or not self._running:
                return
            logger.error(
                "watch_session_failed",
                error=str(e),
                directories=len(session.directories),
                polling=session.polling,
            )
            await self._recover(session)

    async def _recover(self, session: _WatchSession) -> None:
        """Drop subscriptions that can no longer be watched and start over."""
        self._failures += 1
        await asyncio.sleep(SESSION_RETRY_SEC * min(self._failures, MAX_SESSION_FAILURES))
        async with self._mutation_lock:
            if not self._running or session is not self._session:
                return
            self._validate_subscriptions()
            if self._failures >= MAX_SESSION_FAILURES and not self._polling_fallback:
                self._polling_fallback = True
                logger.warning("watch_polling_fallback", failures=self._failures)
            # Changes during the outage are only visible by listing again
            self._session = None
            self._dirty.update(self._subscriptions)
            await self._resubscribe()

    def _validate_subscriptions(self) -> None:
        for directory, owner in list(self._subscriptions.items()):
            if directory not in self._subscriptions:
                continue
            if is_descendable(directory) and os.access(directory, os.R_OK | os.X_OK):
                continue
            if directory == owner:
                self._fail_root(owner, "directory is no longer readable")
                continue
            entry = entry_for_path(directory, owner)
            removed = self._drop(directory, root=owner)
            if entry is not None:
                self.store.upsert(entry)
            logger.warning("watch_dropped", path=directory, root=owner, removed=removed)

    # -----------------------------------------------------------------
    # Change handling
    # -----------------------------------------------------------------

    async def _handle_changes(self, changes: set[tuple[Change, str]]) -> None:
        by_path: dict[str, set[Change]] = {}
        for change, raw_path in changes:
            by_path.setdefault(os.path.normpath(raw_path), set()).add(change)

        outcomes: Counter[Outcome] = Counter()
        async with self._mutation_lock:
            for path in _depth_order(by_path):
                replaced = Change.deleted in by_path[path]
                outcomes[await self._apply_path(path, replaced=replaced)] += 1
            await self._resubscribe()

        self._failures = 0
        self._batches += 1
        self._last_batch_at = time.time()
        if outcomes.keys() - {Outcome.SKIPPED}:
            logger.info(
                "changes_applied",
                count=len(by_path),
                summary=_summarize_outcomes(outcomes),
            )
        else:
            logger.debug("changes_skipped", count=len(by_path))

    async def _apply_path(self, path: str, *, replaced: bool = False) -> Outcome:
        """Make the index match the current filesystem state of path.

        Args:
            path: Changed path reported by a watch session.
            replaced: The path was reported deleted. If it exists now it is
                a new object and anything known about the old one is stale.
        """
        # Caller holds the mutation lock
        owner = self._subscriptions.get(os.path.dirname(path))
        if owner is None:
            # A subscribed directory reporting on itself
            if path in self._subscriptions and not is_descendable(path):
                self._drop(path)
                return Outcome.REMOVED
            return Outcome.SKIPPED

        watch = self._roots.get(owner)
        if watch is None or watch.state is not RootState.WATCHING:
            return Outcome.SKIPPED

        entry = entry_for_path(path, owner)
        if entry is None:
            self._drop(path)
            return Outcome.REMOVED

        if watch.matcher.is_ignored(path, is_dir=entry.is_directory):
            self._drop(path, root=owner)
            return Outcome.IGNORED

        previous = self.store.get(path)
        if (
            replaced
            or (previous is not None and previous.is_directory != entry.is_directory)
            or (path in self._subscriptions and not is_descendable(path))
        ):
            self._drop(path, root=owner)

        self.store.upsert(entry)
        if watch.directory.recurse and path not in self._subscriptions and is_descendable(path):
            await self._index_subtree(path, watch)
        return Outcome.INDEXED

    async def _index_subtree(self, path: str, watch: RootWatch) -> None:
        """Traverse and subscribe a directory that appeared below a recursive root."""
        try:
            traversal = await asyncio.to_thread(
                traverse, path, root=watch.path, matcher=watch.matcher, recurse=True
            )
        except TraversalError as e:
            logger.warning("traversal_error", path=path, error=e.message)
            return
        self.store.upsert_many(traversal.entries)
        for directory in traversal.directories:
            self._subscriptions[directory] = watch.path
            self._dirty.add(directory)
        logger.debug("subtree_indexed", path=path, entries=len(traversal.entries))

    def _schedule_catch_up(self, directories: Iterable[str]) -> None:
        self._catch_up_pending.update(directories)
        if self._catch_up_task is None or self._catch_up_task.done():
            task = asyncio.create_task(self._catch_up())
            self._catch_up_task = task
            self._background.add(task)
            task.add_done_callback(self._background.discard)

    async def _catch_up(self) -> None:
        """List watched directories once and apply whatever their listing disagrees with."""
        while self._catch_up_pending and self._running:
            directories = sorted(self._catch_up_pending)
            self._catch_up_pending.clear()
            listings = await asyncio.to_thread(list_children, directories)
            async with self._mutation_lock:
                if not self._running:
                    return
                outcomes = await self._apply_listings(listings)
                await self._resubscribe()

            if outcomes.keys() - {Outcome.SKIPPED, Outcome.IGNORED}:
                logger.info(
                    "catch_up_applied",
                    directories=len(listings),
                    summary=_summarize_outcomes(outcomes),
                )

    async def _apply_listings(
        self, listings: dict[str, dict[str, bool] | None]
    ) -> Counter[Outcome]:
        # Caller holds the mutation lock
        indexed: dict[str, dict[str, bool]] = {}
        for entry in self.store.snapshot_matching(lambda e: e.parent in listings):
            indexed.setdefault(entry.parent, {})[entry.path] = entry.is_directory

        stale: set[str] = set()
        for directory, children in listings.items():
            owner = self._subscriptions.get(directory)
            if owner is None:
                continue
            if children is None:
                stale.add(directory)
                continue
            watch = self._roots.get(owner)
            visible = {
                path: is_dir
                for path, is_dir in children.items()
                if watch is None or not watch.matcher.is_ignored(path, is_dir=is_dir)
            }
            known = indexed.get(directory, {})
            stale |= visible.keys() ^ known.keys()
            stale |= {p for p in visible.keys() & known.keys() if visible[p] != known[p]}

        outcomes: Counter[Outcome] = Counter()
        for path in _depth_order(stale):
            outcomes[await self._apply_path(path)] += 1
        return outcomes

    async def _rescan_loop(self) -> None:
        """Periodic safety-net re-index for changes notifications missed."""
        try:
            while self._running:
                await asyncio.sleep(self.config.rescan_interval_sec)
                await self.rebuild(reason="periodic")
        except asyncio.CancelledError:
            pass

    # -----------------------------------------------------------------
    # Introspection
    # -----------------------------------------------------------------

    def status(self) -> dict[str, Any]:
        counts = self.store.count_by_root()
        session = self._session
        return {
            "running": self._running,
            "polling": session.polling if session is not None else self._should_poll(),
            "subscriptions": len(self._subscriptions),
            "batches": self._batches,
            "last_batch_at": self._last_batch_at,
            "roots": [
                watch.to_dict(entries=counts.get(path, 0)) for path, watch in self._roots.items()
            ],
        }
