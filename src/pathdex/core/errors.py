"""Pathdex error types with typed error codes.

Error code ranges:
- 2xxx: Config
- 3xxx: Watch / traversal
- 4xxx: IPC
- 9xxx: Internal
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any


class ErrorCode(IntEnum):
    """Typed error codes for programmatic handling."""

    # Config (2xxx)
    CONFIG_PARSE_ERROR = 2001
    CONFIG_INVALID_VALUE = 2002
    CONFIG_MISSING_REQUIRED = 2003
    CONFIG_FILE_NOT_FOUND = 2004
    CONFIG_INVALID_DIRECTORY = 2005
    CONFIG_INVALID_PATTERN = 2006

    # Watch (3xxx)
    WATCH_SUBSCRIPTION_FAILED = 3001
    TRAVERSAL_FAILED = 3002

    # IPC (4xxx)
    IPC_MALFORMED_REQUEST = 4001
    IPC_NOT_FOUND = 4004
    IPC_REQUEST_TIMEOUT = 4008
    IPC_UNREACHABLE = 4010

    # Internal (9xxx)
    INTERNAL_ERROR = 9001


@dataclass(frozen=True, slots=True)
class PathdexError(Exception):
    """Base error with structured context for IPC responses."""

    code: ErrorCode
    message: str
    retryable: bool = False
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def error_name(self) -> str:
        """String identifier for logging (e.g., 'CONFIG_PARSE_ERROR')."""
        return self.code.name

    def to_dict(self) -> dict[str, Any]:
        """Serialize for IPC error responses."""
        return {
            "ok": False,
            "error": self.message,
            "code": self.error_name,
            "details": self.details,
        }

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.error_name}: {self.message}"


class ConfigError(PathdexError):
    """Configuration-related errors."""

    @classmethod
    def parse_error(cls, path: str, reason: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_PARSE_ERROR,
            message=f"Failed to parse config at {path}: {reason}",
            details={"path": path, "reason": reason},
        )

    @classmethod
    def invalid_value(cls, field: str, value: Any, reason: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_INVALID_VALUE,
            message=f"Invalid value for '{field}': {reason}",
            details={"field": field, "value": str(value), "reason": reason},
        )

    @classmethod
    def missing_required(cls, field: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_MISSING_REQUIRED,
            message=f"Missing required config field: {field}",
            details={"field": field},
        )

    @classmethod
    def file_not_found(cls, path: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_FILE_NOT_FOUND,
            message=f"Config file not found: {path}",
            details={"path": path},
        )

    @classmethod
    def invalid_directory(cls, field: str, value: Any, reason: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_INVALID_DIRECTORY,
            message=f"Invalid watched directory at '{field}': {reason}",
            details={"field": field, "value": str(value), "reason": reason},
        )

    @classmethod
    def invalid_pattern(cls, field: str, value: Any, reason: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_INVALID_PATTERN,
            message=f"Invalid ignore pattern at '{field}': {reason}",
            details={"field": field, "value": str(value), "reason": reason},
        )


class WatchSubscriptionError(PathdexError):
    """A native change subscription could not be established."""

    @classmethod
    def for_path(cls, path: str, reason: str) -> "WatchSubscriptionError":
        return cls(
            code=ErrorCode.WATCH_SUBSCRIPTION_FAILED,
            message=f"Cannot watch {path}: {reason}",
            retryable=True,
            details={"path": path, "reason": reason},
        )


class TraversalError(PathdexError):
    """A directory could not be read while populating the index."""

    @classmethod
    def for_path(cls, path: str, reason: str) -> "TraversalError":
        return cls(
            code=ErrorCode.TRAVERSAL_FAILED,
            message=f"Cannot read directory {path}: {reason}",
            retryable=True,
            details={"path": path, "reason": reason},
        )


class IpcError(PathdexError):
    """Malformed requests and transport failures."""

    @classmethod
    def malformed(cls, reason: str) -> "IpcError":
        return cls(
            code=ErrorCode.IPC_MALFORMED_REQUEST,
            message=f"Malformed request: {reason}",
            details={"reason": reason},
        )

    @classmethod
    def not_found(cls, path: str) -> "IpcError":
        return cls(
            code=ErrorCode.IPC_NOT_FOUND,
            message=f"Path is not indexed: {path}",
            details={"path": path},
        )

    @classmethod
    def timeout(cls, seconds: float) -> "IpcError":
        return cls(
            code=ErrorCode.IPC_REQUEST_TIMEOUT,
            message=f"Request not received within {seconds}s",
            retryable=True,
            details={"timeout_sec": seconds},
        )

    @classmethod
    def unreachable(cls, socket_path: str, reason: str) -> "IpcError":
        return cls(
            code=ErrorCode.IPC_UNREACHABLE,
            message=f"Daemon not reachable at {socket_path}: {reason}",
            retryable=True,
            details={"socket_path": socket_path, "reason": reason},
        )


class InternalError(PathdexError):
    """Internal/unexpected errors."""

    @classmethod
    def unexpected(cls, reason: str, **details: Any) -> "InternalError":
        return cls(
            code=ErrorCode.INTERNAL_ERROR,
            message=f"Internal error: {reason}",
            details=details,
        )


_ERROR_CLASSES: tuple[tuple[int, type[PathdexError]], ...] = (
    (2000, ConfigError),
    (3001, WatchSubscriptionError),
    (3002, TraversalError),
    (4000, IpcError),
    (9000, InternalError),
)


def error_from_dict(data: dict[str, Any]) -> PathdexError:
    """Rebuild an error from its to_dict() form (client side of IPC)."""
    try:
        code = ErrorCode[str(data.get("code"))]
    except KeyError:
        code = ErrorCode.INTERNAL_ERROR
    error_cls: type[PathdexError] = PathdexError
    for floor, candidate in _ERROR_CLASSES:
        if code.value >= floor:
            error_cls = candidate
    details = data.get("details")
    return error_cls(
        code=code,
        message=str(data.get("error", code.name)),
        details=details if isinstance(details, dict) else {},
    )
