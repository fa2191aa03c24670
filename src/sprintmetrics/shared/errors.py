"""SprintMetrics Error Handling Module

This module defines the error handling system for SprintMetrics, providing
structured error classes with context information.

The error hierarchy follows these principles:
- One Source of Truth: All error codes are defined in ErrorCode enum
- Structured Context: ErrorContext provides additional information
- Proper Exception Chaining: Original exceptions are preserved
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Any, Union

# Type alias for primitive context values (str, int, float, bool only)
PrimitiveContextValue = Union[str, int, float, bool]

# Default keys to mask in safe_dict
SAFE_DICT_MASK_KEYS: tuple[str, ...] = ("token",)


class ErrorCode(str, Enum):
    """Error codes for SprintMetrics.

    This enum serves as the single source of truth for all error codes
    used throughout the application.
    """

    # File System Errors
    FILE_READ_ERROR = "FILE_READ_ERROR"
    FILE_WRITE_ERROR = "FILE_WRITE_ERROR"
    PATH_TRAVERSAL = "PATH_TRAVERSAL"

    # Transport Errors
    NETWORK_ERROR = "NETWORK_ERROR"
    API_RATE_LIMIT = "API_RATE_LIMIT"
    API_REQUEST_FAILED = "API_REQUEST_FAILED"
    API_SERVER_ERROR = "API_SERVER_ERROR"
    API_TIMEOUT = "API_TIMEOUT"
    GRAPHQL_ERROR = "GRAPHQL_ERROR"

    # GitLab Domain Errors
    SCOPE_NOT_FOUND = "SCOPE_NOT_FOUND"
    ITERATION_NOT_FOUND = "ITERATION_NOT_FOUND"
    ISSUE_NOT_FOUND = "ISSUE_NOT_FOUND"
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"

    # Validation Errors
    VALIDATION_ERROR = "VALIDATION_ERROR"

    # Cache Errors
    CACHE_CORRUPTED = "CACHE_CORRUPTED"

    # Metric Store Errors
    METRICS_STORE_CORRUPTED = "METRICS_STORE_CORRUPTED"

    # Configuration Errors
    CONFIG_MISSING = "CONFIG_MISSING"
    CONFIG_INVALID = "CONFIG_INVALID"


def _coerce_primitives(value: Any | None) -> dict[str, PrimitiveContextValue] | None:
    """Coerce additional_data values to primitives.

    Converts Path, Enum, Decimal to primitive types. None values are dropped.

    Raises:
        TypeError: If value is not a dict or contains unconvertible types
    """
    if value is None:
        return None

    if not isinstance(value, dict):
        error_msg = f"additional_data must be dict, got {type(value).__name__}"
        raise TypeError(error_msg)

    coerced: dict[str, PrimitiveContextValue] = {}
    for key, val in value.items():
        if val is None:
            continue
        if isinstance(val, (str, int, float, bool)):
            coerced[key] = val
        elif isinstance(val, Path):
            coerced[key] = str(val)
        elif isinstance(val, Enum):
            coerced[key] = val.value
        elif isinstance(val, Decimal):
            coerced[key] = float(val)
        else:
            error_msg = (
                f"Cannot coerce {type(val).__name__} to primitive type. "
                f"Only str, int, float, bool, Path, Enum, Decimal are allowed."
            )
            raise TypeError(error_msg)

    return coerced


@dataclass(frozen=True)
class ErrorContext:
    """Context information for errors.

    Only primitive types (str, int, float, bool) are allowed in
    additional_data so that contexts always serialize cleanly into
    structured log records.

    Attributes:
        file_path: Optional file path associated with the error
        operation: Optional operation name that caused the error
        additional_data: Optional dict with primitive values only
    """

    file_path: str | None = None
    operation: str | None = None
    additional_data: dict[str, PrimitiveContextValue] | None = None

    def __post_init__(self) -> None:
        if self.additional_data is not None:
            coerced = _coerce_primitives(self.additional_data)
            object.__setattr__(self, "additional_data", coerced)

    def safe_dict(self, *, mask_keys: tuple[str, ...] | None = None) -> dict[str, Any]:
        """Export context as dict, dropping masked keys from additional_data.

        The returned dict always carries an ``additional_data`` key.

        Example:
            >>> ErrorContext(operation="cache_get").safe_dict()
            {'operation': 'cache_get', 'additional_data': {}}
        """
        if mask_keys is None:
            mask_keys = SAFE_DICT_MASK_KEYS

        data: dict[str, Any] = {}
        if self.file_path is not None:
            data["file_path"] = self.file_path
        if self.operation is not None:
            data["operation"] = self.operation

        additional = self.additional_data or {}
        data["additional_data"] = {
            key: val for key, val in additional.items() if key not in mask_keys
        }
        return data


class SprintMetricsError(Exception):
    """Base exception class for all SprintMetrics errors."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        context: ErrorContext | None = None,
        original_error: Exception | None = None,
    ) -> None:
        """Initialize SprintMetricsError.

        Args:
            code: Error code from ErrorCode enum
            message: Human-readable error message
            context: Additional context information
            original_error: Original exception that caused this error
        """
        self.code = code
        self.message = message
        self.context = context or ErrorContext()
        self.original_error = original_error
        super().__init__(f"{code.value}: {message}")

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging."""
        return {
            "code": self.code.value,
            "message": self.message,
            "context": self.context.safe_dict(),
            "original_error": str(self.original_error) if self.original_error else None,
        }


class DomainError(SprintMetricsError):
    """Domain-specific errors.

    These errors occur when business rules are violated or the data
    handed to us does not satisfy domain constraints.

    Examples:
    - Corrupted cache entry
    - Unknown iteration id
    - Invalid metric values
    """


class InfrastructureError(SprintMetricsError):
    """Infrastructure-related errors.

    These errors occur when interacting with external systems
    like the file system or the GitLab API.
    """


class ApplicationError(SprintMetricsError):
    """Application-level errors, typically configuration problems."""


class TransportErrorKind(str, Enum):
    """Category of a normalized GraphQL transport failure."""

    GRAPHQL_FIELD_ERROR = "graphql_field_error"
    HTTP_STATUS_ERROR = "http_status_error"
    NETWORK_ERROR = "network_error"


class TransportError(InfrastructureError):
    """Normalized failure of a GraphQL request.

    Attributes:
        kind: Which layer failed (GraphQL body, HTTP status or network)
        retryable: Whether repeating the identical request may succeed
        status: HTTP status code, when one was received
        messages: Individual GraphQL error messages, when present
        retry_after: Seconds the server asked us to wait, when sent
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        *,
        kind: TransportErrorKind,
        retryable: bool = False,
        status: int | None = None,
        messages: list[str] | None = None,
        retry_after: float | None = None,
        context: ErrorContext | None = None,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(code, message, context, original_error)
        self.kind = kind
        self.retryable = retryable
        self.status = status
        self.messages = messages or []
        self.retry_after = retry_after


class ScopeNotFoundError(DomainError):
    """Raised when no group path prefix resolves to a GitLab group."""

    def __init__(
        self,
        path: str,
        context: ErrorContext | None = None,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(
            ErrorCode.SCOPE_NOT_FOUND,
            f"Group not found: {path}",
            context,
            original_error,
        )
        self.path = path


class IterationNotFoundError(DomainError):
    """Raised when an iteration id is not present in the group's iteration list."""

    def __init__(self, iteration_id: str, context: ErrorContext | None = None) -> None:
        super().__init__(
            ErrorCode.ITERATION_NOT_FOUND,
            f"Iteration not found: {iteration_id}",
            context,
        )
        self.iteration_id = iteration_id


class CacheCorruptionError(DomainError):
    """Raised when a cache file exists but cannot be decoded as a cache entry."""

    def __init__(
        self,
        key: str,
        reason: str,
        context: ErrorContext | None = None,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(
            ErrorCode.CACHE_CORRUPTED,
            f"Cache file corrupted for iteration {key}: {reason}",
            context,
            original_error,
        )
        self.key = key


class PathTraversalError(DomainError):
    """Raised when a key-derived path escapes its storage directory."""

    def __init__(self, key: str, context: ErrorContext | None = None) -> None:
        super().__init__(
            ErrorCode.PATH_TRAVERSAL,
            f"Invalid cache key: path traversal detected ({key!r})",
            context,
        )
        self.key = key


# Convenience functions for common error scenarios
def create_validation_error(
    message: str,
    field: str | None = None,
    operation: str | None = None,
    original_error: Exception | None = None,
) -> DomainError:
    """Create a validation error with context."""
    additional_data: dict[str, PrimitiveContextValue] | None = (
        {"field": field} if field else None
    )
    context = ErrorContext(
        operation=operation,
        additional_data=additional_data,
    )
    return DomainError(
        ErrorCode.VALIDATION_ERROR,
        message,
        context,
        original_error,
    )


def create_config_error(
    message: str,
    config_key: str | None = None,
    operation: str | None = None,
    original_error: Exception | None = None,
) -> ApplicationError:
    """Create a configuration error with context."""
    additional_data: dict[str, PrimitiveContextValue] | None = (
        {"config_key": config_key} if config_key else None
    )
    context = ErrorContext(
        operation=operation,
        additional_data=additional_data,
    )
    return ApplicationError(
        ErrorCode.CONFIG_INVALID,
        message,
        context,
        original_error,
    )


def create_file_error(
    message: str,
    file_path: str,
    operation: str | None = None,
    original_error: Exception | None = None,
    *,
    write: bool = False,
) -> InfrastructureError:
    """Create a file read/write error with context."""
    context = ErrorContext(
        file_path=file_path,
        operation=operation,
    )
    return InfrastructureError(
        ErrorCode.FILE_WRITE_ERROR if write else ErrorCode.FILE_READ_ERROR,
        message,
        context,
        original_error,
    )
