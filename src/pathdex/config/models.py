"""Pydantic configuration models.

Two kinds of configuration live in the same YAML document:

1. The index configuration (``ignored`` + ``directories``): an immutable
   snapshot that is re-read and atomically swapped on every reload.
2. Daemon tuning (``logging``, ``server``, ``watcher``, ``timeouts``): read
   once at startup. Environment variables take precedence over the document.

Environment Variable Format:
    PATHDEX__<SECTION>__<KEY>=<VALUE>

Examples:
    PATHDEX__LOGGING__LEVEL=DEBUG
    PATHDEX__SERVER__SOCKET_PATH=/run/user/1000/pathdex.sock
    PATHDEX__WATCHER__FORCE_POLLING=true
"""

import os
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from pathdex.config.constants import SOCKET_PATH_MAX, default_socket_path
from pathdex.index.matcher import PathMatcher, validate_pattern

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


def _dedupe_patterns(patterns: tuple[str, ...]) -> tuple[str, ...]:
    """Validate patterns, dropping repeats while keeping first-seen order."""
    seen: dict[str, None] = {}
    for pattern in patterns:
        validate_pattern(pattern)
        seen.setdefault(pattern, None)
    return tuple(seen)


def _is_within(path: str, ancestor: str) -> bool:
    return path == ancestor or path.startswith(ancestor.rstrip(os.sep) + os.sep)


# =============================================================================
# Index configuration (reloadable)
# =============================================================================


class WatchedDirectory(BaseModel):
    """One configured root."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    path: str
    recurse: bool
    ignored: tuple[str, ...] = ()

    @field_validator("path")
    @classmethod
    def validate_path(cls, v: str) -> str:
        expanded = os.path.expandvars(os.path.expanduser(v.strip()))
        if not expanded:
            raise ValueError("path must not be empty")
        if not os.path.isabs(expanded):
            raise ValueError(f"path must be absolute (or start with ~): {v}")
        normalized = os.path.normpath(expanded)
        if not os.path.isdir(normalized):
            raise ValueError(f"not an existing directory: {normalized}")
        if not os.access(normalized, os.R_OK | os.X_OK):
            raise ValueError(f"directory is not readable: {normalized}")
        return normalized

    @field_validator("ignored")
    @classmethod
    def validate_ignored(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        return _dedupe_patterns(v)


class IndexConfig(BaseModel):
    """Full index configuration snapshot: global ignores + watched roots.

    Immutable once active. A reload builds a new instance and replaces the
    old one as a whole.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    ignored: tuple[str, ...] = ()
    directories: tuple[WatchedDirectory, ...] = ()

    @field_validator("ignored")
    @classmethod
    def validate_ignored(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        return _dedupe_patterns(v)

    @model_validator(mode="after")
    def validate_roots(self) -> "IndexConfig":
        seen: dict[str, WatchedDirectory] = {}
        for directory in self.directories:
            if directory.path in seen:
                raise ValueError(f"directory configured twice: {directory.path}")
            for other in seen.values():
                if other.recurse and _is_within(directory.path, other.path):
                    raise ValueError(
                        f"{directory.path} is inside recursively watched {other.path}"
                    )
                if directory.recurse and _is_within(other.path, directory.path):
                    raise ValueError(
                        f"{other.path} is inside recursively watched {directory.path}"
                    )
            seen[directory.path] = directory
        return self

    def matcher_for(self, directory: WatchedDirectory) -> PathMatcher:
        """Global patterns followed by the root's own patterns."""
        return PathMatcher.for_root(directory.path, self.ignored, directory.ignored)

    @property
    def root_paths(self) -> tuple[str, ...]:
        return tuple(d.path for d in self.directories)


# =============================================================================
# Daemon configuration (startup only)
# =============================================================================


class LogOutputConfig(BaseModel):
    """Single logging output configuration."""

    format: Literal["json", "console"] = "console"
    destination: str = "stderr"  # stderr, stdout, or absolute file path
    level: LogLevel | None = None  # Inherits from parent if None

    @field_validator("destination")
    @classmethod
    def validate_destination(cls, v: str) -> str:
        if v in ("stderr", "stdout"):
            return v
        path = Path(v).expanduser()
        if not path.is_absolute():
            raise ValueError(f"File destination must be absolute path: {v}")
        return str(path)


class LoggingConfig(BaseModel):
    """Logging configuration.

    Env vars:
        PATHDEX__LOGGING__LEVEL: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """

    level: LogLevel = Field(
        default="INFO",
        description="Root log level. DEBUG logs every indexed path.",
    )
    outputs: list[LogOutputConfig] = Field(default_factory=lambda: [LogOutputConfig()])


class ServerConfig(BaseModel):
    """IPC server configuration.

    Env vars:
        PATHDEX__SERVER__SOCKET_PATH: Unix socket the daemon listens on
        PATHDEX__SERVER__REQUEST_TIMEOUT_SEC: Max time to receive a request (head and body)
    """

    socket_path: str = Field(
        default_factory=default_socket_path,
        description="Unix domain socket path. Defaults to $XDG_RUNTIME_DIR/pathdex.sock.",
    )
    request_timeout_sec: float = Field(
        default=10.0,
        gt=0,
        description="A client that does not finish sending its request within this "
        "window is answered with a timeout error and disconnected.",
    )

    @field_validator("socket_path")
    @classmethod
    def validate_socket_path(cls, v: str) -> str:
        path = os.path.expanduser(v)
        if not os.path.isabs(path):
            raise ValueError(f"Socket path must be absolute: {v}")
        if len(os.fsencode(path)) > SOCKET_PATH_MAX:
            raise ValueError(f"Socket path longer than {SOCKET_PATH_MAX} bytes: {v}")
        return path


class WatcherConfig(BaseModel):
    """Filesystem watcher configuration.

    Env vars:
        PATHDEX__WATCHER__DEBOUNCE_MS: Window for grouping change notifications
        PATHDEX__WATCHER__FORCE_POLLING: Poll instead of using native notifications
        PATHDEX__WATCHER__RESCAN_INTERVAL_SEC: Periodic full rescan (0 disables)
    """

    debounce_ms: int = Field(
        default=200,
        ge=0,
        description="Changes arriving within this window are applied as one batch.",
    )
    step_ms: int = Field(
        default=50,
        gt=0,
        description="How often the notification backend is checked for new changes.",
    )
    force_polling: bool = Field(
        default=False,
        description="Poll for changes. Enabled automatically for network and WSL mounts.",
    )
    poll_delay_ms: int = Field(
        default=300,
        gt=0,
        description="Polling interval when polling is active.",
    )
    rescan_interval_sec: float = Field(
        default=0.0,
        ge=0,
        description="Re-traverse every root on this interval as a safety net. 0 disables. "
        "RISK: Large trees make each rescan expensive.",
    )


class TimeoutsConfig(BaseModel):
    """Timeout configuration for daemon components."""

    server_stop_sec: float = Field(
        default=5.0,
        description="Component shutdown timeout.",
    )
    force_exit_sec: float = Field(
        default=3.0,
        description="Force exit timeout after graceful shutdown fails.",
    )
    watcher_stop_sec: float = Field(
        default=2.0,
        description="File watcher shutdown timeout.",
    )


class PathdexConfig(BaseModel):
    """Root daemon configuration (everything except the index snapshot)."""

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    watcher: WatcherConfig = Field(default_factory=WatcherConfig)
    timeouts: TimeoutsConfig = Field(default_factory=TimeoutsConfig)
