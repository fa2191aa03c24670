"""
Tests for the SprintMetrics error hierarchy.

Covers ErrorContext coercion and masking, the base error and its
domain-specific subclasses, and the convenience constructors.
"""

from decimal import Decimal
from enum import Enum
from pathlib import Path

import pytest

from sprintmetrics.shared.errors import (
    ApplicationError,
    CacheCorruptionError,
    DomainError,
    ErrorCode,
    ErrorContext,
    InfrastructureError,
    IterationNotFoundError,
    PathTraversalError,
    ScopeNotFoundError,
    SprintMetricsError,
    TransportError,
    TransportErrorKind,
    create_config_error,
    create_file_error,
    create_validation_error,
)


class Color(Enum):
    RED = "red"


class TestErrorContext:
    """Test cases for the ErrorContext frozen dataclass."""

    def test_empty_context(self):
        context = ErrorContext()

        assert context.file_path is None
        assert context.operation is None
        assert context.additional_data is None
        assert context.safe_dict() == {"additional_data": {}}

    def test_additional_data_is_coerced(self):
        context = ErrorContext(
            additional_data={
                "path": Path("/tmp/cache"),
                "color": Color.RED,
                "ratio": Decimal("1.5"),
                "count": 3,
                "dropped": None,
            }
        )

        assert context.additional_data == {
            "path": str(Path("/tmp/cache")),
            "color": "red",
            "ratio": 1.5,
            "count": 3,
        }

    def test_rejects_non_primitive_values(self):
        with pytest.raises(TypeError, match="Cannot coerce list"):
            ErrorContext(additional_data={"items": [1, 2]})

    def test_rejects_non_dict(self):
        with pytest.raises(TypeError, match="must be dict"):
            ErrorContext(additional_data="nope")  # type: ignore[arg-type]

    def test_frozen(self):
        context = ErrorContext(operation="cache_get")

        with pytest.raises(AttributeError):
            context.operation = "cache_set"  # type: ignore[misc]

    def test_safe_dict_masks_token(self):
        context = ErrorContext(
            file_path="/tmp/x.json",
            operation="cache_get",
            additional_data={"token": "glpat-secret", "key": "k"},
        )

        assert context.safe_dict() == {
            "file_path": "/tmp/x.json",
            "operation": "cache_get",
            "additional_data": {"key": "k"},
        }
        assert context.safe_dict(mask_keys=("key",))["additional_data"] == {
            "token": "glpat-secret"
        }


class TestSprintMetricsError:
    """Test the base error."""

    def test_str_and_to_dict(self):
        original = ValueError("bad")
        error = DomainError(
            ErrorCode.VALIDATION_ERROR,
            "Invalid value",
            ErrorContext(operation="validate"),
            original,
        )

        assert str(error) == "VALIDATION_ERROR: Invalid value"
        assert error.to_dict() == {
            "code": "VALIDATION_ERROR",
            "message": "Invalid value",
            "context": {"operation": "validate", "additional_data": {}},
            "original_error": "bad",
        }

    def test_default_context(self):
        error = InfrastructureError(ErrorCode.NETWORK_ERROR, "down")

        assert isinstance(error.context, ErrorContext)
        assert error.to_dict()["original_error"] is None

    @pytest.mark.parametrize("cls", [DomainError, InfrastructureError, ApplicationError])
    def test_hierarchy(self, cls):
        assert issubclass(cls, SprintMetricsError)


class TestSpecificErrors:
    """Test the domain-specific error types."""

    def test_transport_error(self):
        error = TransportError(
            ErrorCode.API_RATE_LIMIT,
            "GitLab API Error (fetching issues): 429 Too Many Requests",
            kind=TransportErrorKind.HTTP_STATUS_ERROR,
            retryable=True,
            status=429,
            retry_after=3.0,
        )

        assert isinstance(error, InfrastructureError)
        assert error.retryable is True
        assert error.status == 429
        assert error.messages == []
        assert error.retry_after == 3.0

    def test_scope_not_found(self):
        error = ScopeNotFoundError("acme")

        assert isinstance(error, DomainError)
        assert error.code == ErrorCode.SCOPE_NOT_FOUND
        assert error.path == "acme"
        assert "acme" in error.message

    def test_iteration_not_found(self):
        error = IterationNotFoundError("gid://gitlab/Iteration/9")

        assert error.code == ErrorCode.ITERATION_NOT_FOUND
        assert error.iteration_id == "gid://gitlab/Iteration/9"

    def test_cache_corruption(self):
        error = CacheCorruptionError("gid://gitlab/Iteration/1", "unexpected end of data")

        assert error.code == ErrorCode.CACHE_CORRUPTED
        assert error.key == "gid://gitlab/Iteration/1"
        assert "corrupted" in error.message
        assert "unexpected end of data" in error.message

    def test_path_traversal(self):
        error = PathTraversalError("../etc/passwd")

        assert error.code == ErrorCode.PATH_TRAVERSAL
        assert "path traversal" in error.message


class TestConvenienceFunctions:
    """Test the error constructors."""

    def test_create_validation_error(self):
        error = create_validation_error("Key must not be empty", field="key", operation="cache")

        assert isinstance(error, DomainError)
        assert error.code == ErrorCode.VALIDATION_ERROR
        assert error.context.operation == "cache"
        assert error.context.additional_data == {"field": "key"}

    def test_create_config_error(self):
        error = create_config_error("TTL must be non-negative", config_key="ttl_hours")

        assert isinstance(error, ApplicationError)
        assert error.code == ErrorCode.CONFIG_INVALID
        assert error.context.additional_data == {"config_key": "ttl_hours"}

    @pytest.mark.parametrize(
        ("write", "code"),
        [(False, ErrorCode.FILE_READ_ERROR), (True, ErrorCode.FILE_WRITE_ERROR)],
    )
    def test_create_file_error(self, write, code):
        error = create_file_error("failed", "/tmp/x.json", write=write)

        assert isinstance(error, InfrastructureError)
        assert error.code == code
        assert error.context.file_path == "/tmp/x.json"
