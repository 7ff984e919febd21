"""Configuration constants.

This module contains truly constant values that should NOT be user-configurable.
These are protocol constraints and implementation details.

For configurable values, see models.py (ServerConfig, WatcherConfig, etc.).
"""

import os
from pathlib import Path

# =============================================================================
# Locations
# =============================================================================

CONFIG_ENV_VAR = "PATHDEX_CONFIG"
"""Environment variable overriding the config document location."""

DEFAULT_CONFIG_PATH = Path("~/.config/pathdex/config.yaml")
"""Config document location when PATHDEX_CONFIG is unset."""

SOCKET_NAME = "pathdex.sock"

PID_SUFFIX = ".pid"
"""PID file lives next to the socket: <socket_path>.pid"""

# =============================================================================
# IPC Protocol
# =============================================================================

IPC_ROUTE = "/ipc"
"""Single request/response endpoint for client commands."""

IPC_BASE_URL = "http://pathdex"
"""Host part is irrelevant over a Unix socket, but httpx needs a URL."""

REQUEST_ID_HEADER = "X-Pathdex-Request-Id"

SOCKET_PATH_MAX = 107
"""sun_path is 108 bytes on Linux, including the terminating NUL."""

QUERY_LIMIT_MAX = 100_000
"""Upper bound for the per-request result limit."""

# =============================================================================
# Index document keys
# =============================================================================

INDEX_KEYS = frozenset({"ignored", "directories"})
"""Top-level keys of the config document that form the reloadable index config."""


def default_socket_path() -> str:
    """Per-user socket location: $XDG_RUNTIME_DIR if set, else /tmp."""
    runtime_dir = os.environ.get("XDG_RUNTIME_DIR")
    if runtime_dir:
        return os.path.join(runtime_dir, SOCKET_NAME)
    return f"/tmp/pathdex-{os.getuid()}.sock"


def default_config_path() -> Path:
    env = os.environ.get(CONFIG_ENV_VAR)
    if env:
        return Path(env).expanduser()
    return DEFAULT_CONFIG_PATH.expanduser()
