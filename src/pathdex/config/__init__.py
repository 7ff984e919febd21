"""Config module exports."""

from pathdex.config.loader import load_index_config, load_settings, parse_index_config
from pathdex.config.models import (
    IndexConfig,
    LoggingConfig,
    PathdexConfig,
    ServerConfig,
    WatchedDirectory,
    WatcherConfig,
)
from pathdex.config.store import ConfigStore

__all__ = [
    "ConfigStore",
    "IndexConfig",
    "LoggingConfig",
    "PathdexConfig",
    "ServerConfig",
    "WatchedDirectory",
    "WatcherConfig",
    "load_index_config",
    "load_settings",
    "parse_index_config",
]
