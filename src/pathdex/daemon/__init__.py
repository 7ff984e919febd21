"""Pathdex daemon - IPC server over a Unix socket with file watching."""

from pathdex.daemon.app import create_app
from pathdex.daemon.client import IpcClient
from pathdex.daemon.lifecycle import ServerController
from pathdex.daemon.watcher import FileWatcher

__all__ = [
    "FileWatcher",
    "IpcClient",
    "ServerController",
    "create_app",
]
