"""Daemon lifecycle management."""

from __future__ import annotations

import asyncio
import contextlib
import os
import signal
import socket
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog
import uvicorn

from pathdex.config.constants import PID_SUFFIX
from pathdex.config.models import PathdexConfig
from pathdex.config.store import ConfigStore
from pathdex.core.errors import ConfigError, IpcError
from pathdex.daemon.connection import request_head_timeout_protocol
from pathdex.daemon.watcher import FileWatcher, ReconcileResult
from pathdex.index.models import IndexEntry
from pathdex.index.store import IndexStore

logger = structlog.get_logger()


@dataclass
class ServerController:
    """
    Orchestrates daemon components.

    Components:
    - ConfigStore: Active index configuration and its source document
    - IndexStore: In-memory index shared with the IPC routes
    - FileWatcher: Traversal and change notifications feeding the index
    """

    config_store: ConfigStore
    config: PathdexConfig = field(default_factory=PathdexConfig)
    store: IndexStore = field(default_factory=IndexStore)
    on_shutdown: Callable[[], None] | None = None

    watcher: FileWatcher = field(init=False)
    last_reload: dict[str, Any] | None = field(default=None, init=False)
    _reload_lock: asyncio.Lock = field(default_factory=asyncio.Lock, init=False)
    _shutdown_event: asyncio.Event = field(default_factory=asyncio.Event, init=False)
    _initial_task: asyncio.Task[None] | None = field(default=None, init=False)

    def __post_init__(self) -> None:
        """Initialize components."""
        self.watcher = FileWatcher(
            store=self.store,
            config=self.config.watcher,
            stop_timeout=self.config.timeouts.watcher_stop_sec,
        )

    @property
    def indexing(self) -> bool:
        """True while the initial population is still running."""
        return self._initial_task is not None and not self._initial_task.done()

    async def start(self, *, wait: bool = False) -> None:
        """Start watching and populate the index from the active config.

        The initial population runs in the background so clients can connect
        immediately. Pass wait=True to block until it has finished.
        """
        logger.info(
            "server_starting",
            config=str(self.config_store.source),
            socket=self.config.server.socket_path,
        )
        await self.watcher.start()
        self._initial_task = asyncio.create_task(self._populate())
        if wait:
            await self._initial_task
        logger.info("server_started")

    async def _populate(self) -> None:
        async with self._reload_lock:
            result = await self.watcher.apply_config(self.config_store.active())
        logger.info(
            "initial_index_done",
            entries=len(self.store),
            roots=len(result.added),
            failed=len(result.errors),
        )

    async def stop(self) -> None:
        """Stop all daemon components gracefully."""
        logger.info("server_stopping")

        if self._initial_task is not None and not self._initial_task.done():
            self._initial_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._initial_task

        # Stop with timeout to prevent hanging
        try:
            async with asyncio.timeout(self.config.timeouts.server_stop_sec):
                await self.watcher.stop()
        except TimeoutError:
            logger.warning(
                "server_stop_timeout",
                message=f"Shutdown timed out after {self.config.timeouts.server_stop_sec}s",
            )

        self._shutdown_event.set()
        logger.info("server_stopped")

    def wait_for_shutdown(self) -> asyncio.Event:
        """Get the shutdown event for external coordination."""
        return self._shutdown_event

    def request_shutdown(self) -> None:
        """Ask the server loop to exit (IPC shutdown command)."""
        logger.info("shutdown_requested")
        if self.on_shutdown is not None:
            self.on_shutdown()

    # -----------------------------------------------------------------
    # Commands
    # -----------------------------------------------------------------

    async def reload_config(self) -> ReconcileResult:
        """Re-read the config document and reconcile the watcher with it.

        Runs to completion even if the requesting client goes away. On a
        ConfigError the previous configuration stays active.

        Raises:
            ConfigError: If the document cannot be read or is invalid.
        """
        return await asyncio.shield(self._reload())

    async def _reload(self) -> ReconcileResult:
        async with self._reload_lock:
            started = time.monotonic()
            try:
                config = await asyncio.to_thread(self.config_store.load)
            except ConfigError as e:
                self.last_reload = {"ok": False, "error": e.message, "at": time.time()}
                logger.error("reload_failed", code=e.error_name, error=e.message)
                raise

            self.config_store.replace(config)
            result = await self.watcher.apply_config(config)
            self.last_reload = {"ok": True, "at": time.time(), **result.to_dict()}
            logger.info(
                "reload_done",
                generation=self.config_store.generation,
                duration_ms=round((time.monotonic() - started) * 1000),
            )
            return result

    async def full_index(self) -> ReconcileResult:
        """Re-traverse every root from scratch."""
        return await asyncio.shield(self._full_index())

    async def _full_index(self) -> ReconcileResult:
        async with self._reload_lock:
            return await self.watcher.rebuild()

    def get_index(self, path: str | None = None) -> list[IndexEntry]:
        """Entries sorted by path: everything, or strictly below path.

        Raises:
            IpcError: If path is neither a watched root nor an indexed directory.
        """
        if path is None:
            return sorted(self.store.list_all(), key=lambda e: e.path)
        entry = self.store.get(path)
        is_root = path in self.watcher.index_config.root_paths
        if not is_root and (entry is None or not entry.is_directory):
            raise IpcError.not_found(path)
        return sorted(self.store.list_prefix(path), key=lambda e: e.path)

    def status(self) -> dict[str, Any]:
        return {
            "socket_path": self.config.server.socket_path,
            "config_path": str(self.config_store.source),
            "config_generation": self.config_store.generation,
            "indexing": self.indexing,
            "entries": len(self.store),
            "last_reload": self.last_reload,
            "watcher": self.watcher.status(),
        }


# =============================================================================
# PID file and socket helpers
# =============================================================================


def pid_file_path(socket_path: str) -> Path:
    return Path(socket_path + PID_SUFFIX)


def write_pid_file(socket_path: str) -> None:
    """Write the PID file next to the socket for daemon discovery."""
    pid_path = pid_file_path(socket_path)
    pid_path.write_text(str(os.getpid()))
    logger.debug("pid_file_written", pid_path=str(pid_path))


def remove_pid_file(socket_path: str) -> None:
    with contextlib.suppress(FileNotFoundError):
        pid_file_path(socket_path).unlink()


def read_pid(socket_path: str) -> int | None:
    """Read daemon PID. Returns None if there is no readable PID file."""
    try:
        return int(pid_file_path(socket_path).read_text().strip())
    except (OSError, ValueError):
        return None


def is_server_running(socket_path: str) -> bool:
    """Check if daemon is running by verifying PID file and process."""
    pid = read_pid(socket_path)
    if pid is None:
        return False

    try:
        os.kill(pid, 0)
        return True
    except (OSError, ProcessLookupError):
        # Process doesn't exist - clean up stale files
        remove_pid_file(socket_path)
        return False


def stop_daemon(socket_path: str) -> bool:
    """Stop a running daemon by sending SIGTERM. Returns True if signalled."""
    pid = read_pid(socket_path)
    if pid is None:
        return False

    try:
        os.kill(pid, signal.SIGTERM)
        logger.info("daemon_stop_signal_sent", pid=pid)
        return True
    except (OSError, ProcessLookupError):
        remove_pid_file(socket_path)
        return False


def bind_socket(socket_path: str) -> socket.socket:
    """Bind the listening Unix socket, replacing a stale socket file.

    The socket is only accessible to the current user.
    """
    with contextlib.suppress(FileNotFoundError):
        os.unlink(socket_path)
    os.makedirs(os.path.dirname(socket_path) or ".", exist_ok=True)
    sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    try:
        sock.bind(socket_path)
        os.chmod(socket_path, 0o600)
    except OSError:
        sock.close()
        raise
    return sock


async def run_server(config: PathdexConfig, config_store: ConfigStore) -> None:
    """Run the daemon until shutdown signal or IPC shutdown request."""
    from pathdex.daemon.app import create_app

    socket_path = config.server.socket_path
    controller = ServerController(config_store=config_store, config=config)
    app = create_app(controller)

    # Configure uvicorn
    uvicorn_config = uvicorn.Config(
        app,
        log_level="warning",  # Use structlog instead
        ws="none",
        lifespan="on",
        http=request_head_timeout_protocol(config.server.request_timeout_sec),
    )
    server = uvicorn.Server(uvicorn_config)
    controller.on_shutdown = lambda: setattr(server, "should_exit", True)

    sock = bind_socket(socket_path)
    write_pid_file(socket_path)

    # Setup signal handlers with force exit on second signal
    loop = asyncio.get_running_loop()
    shutdown_count = 0
    force_exit_task: asyncio.Task[None] | None = None
    reload_tasks: set[asyncio.Task[Any]] = set()

    async def force_exit_after_timeout() -> None:
        """Force exit if graceful shutdown takes too long."""
        await asyncio.sleep(config.timeouts.force_exit_sec)
        logger.info("forcing_exit_after_timeout")
        server.force_exit = True

    def signal_handler() -> None:
        nonlocal shutdown_count, force_exit_task
        shutdown_count += 1
        logger.info("shutdown_signal_received", count=shutdown_count)
        server.should_exit = True
        if shutdown_count == 1:
            # Schedule force exit after timeout
            force_exit_task = loop.create_task(force_exit_after_timeout())
        else:
            # Second signal - force immediate exit
            server.force_exit = True
            if force_exit_task:
                force_exit_task.cancel()

    async def reload_on_signal() -> None:
        with contextlib.suppress(ConfigError):
            await controller.reload_config()

    def hangup_handler() -> None:
        logger.info("reload_signal_received")
        task = loop.create_task(reload_on_signal())
        reload_tasks.add(task)
        task.add_done_callback(reload_tasks.discard)

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler)
    loop.add_signal_handler(signal.SIGHUP, hangup_handler)

    try:
        await controller.start()
        await server.serve(sockets=[sock])
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM, signal.SIGHUP):
            loop.remove_signal_handler(sig)
        await controller.stop()
        sock.close()
        remove_pid_file(socket_path)
        with contextlib.suppress(FileNotFoundError):
            os.unlink(socket_path)
