"""Holder of the active index configuration."""

from __future__ import annotations

import threading
from pathlib import Path

import structlog

from pathdex.config.loader import load_index_config
from pathdex.config.models import IndexConfig

logger = structlog.get_logger()


class ConfigStore:
    """Owns the active IndexConfig and knows where to re-read it from.

    ``active()`` is a plain attribute read: readers always see either the old
    or the new snapshot, never a partially applied one. ``replace()`` swaps the
    whole snapshot at once.
    """

    def __init__(self, source: Path, initial: IndexConfig | None = None) -> None:
        self._source = source
        self._lock = threading.Lock()
        self._active = initial if initial is not None else IndexConfig()
        self._generation = 0 if initial is None else 1

    @property
    def source(self) -> Path:
        return self._source

    @property
    def generation(self) -> int:
        """Number of snapshots that have been activated."""
        return self._generation

    def load(self, source: Path | None = None) -> IndexConfig:
        """Read and validate a new snapshot without activating it.

        Raises:
            ConfigError: If the document is missing, malformed, or invalid.
        """
        return load_index_config(source or self._source)

    def active(self) -> IndexConfig:
        return self._active

    def replace(self, config: IndexConfig) -> IndexConfig:
        """Activate a new snapshot and return the previous one."""
        with self._lock:
            previous = self._active
            self._active = config
            self._generation += 1
        logger.info(
            "config_activated",
            generation=self._generation,
            directories=len(config.directories),
            ignored=len(config.ignored),
        )
        return previous
