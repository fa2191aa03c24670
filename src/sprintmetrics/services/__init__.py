"""Services module for SprintMetrics.

This module contains the GitLab GraphQL clients, the iteration cache, the
metric store, rate limiting and the cached data provider that ties them
together.
"""

__all__ = ["cache", "gitlab", "metrics_store", "provider", "rate_limiter"]
