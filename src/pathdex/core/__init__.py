"""Core module exports."""

from pathdex.core.errors import (
    ConfigError,
    ErrorCode,
    InternalError,
    IpcError,
    PathdexError,
    TraversalError,
    WatchSubscriptionError,
)
from pathdex.core.logging import (
    clear_request_id,
    configure_logging,
    get_logger,
    get_request_id,
    set_request_id,
)
from pathdex.core.progress import pluralize, status

__all__ = [
    # Errors
    "ConfigError",
    "ErrorCode",
    "InternalError",
    "IpcError",
    "PathdexError",
    "TraversalError",
    "WatchSubscriptionError",
    # Logging
    "clear_request_id",
    "configure_logging",
    "get_logger",
    "get_request_id",
    "set_request_id",
    # Console
    "pluralize",
    "status",
]
