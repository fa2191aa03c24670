"""SprintMetrics Shared Module.

This package contains constants, error types and logging helpers used
across SprintMetrics.
"""

__all__ = ["constants", "dates", "errors", "logging"]
