"""
SprintMetrics Constants Module

Centralized constants for cache behaviour, GitLab query shapes and HTTP
handling, so that magic values live in one place.
"""

from .cache import BASE_HOUR, BASE_MINUTE, BASE_SECOND, CacheConfig, CacheStatusConfig
from .gitlab import GitLabConfig, IncidentConfig, PaginationConfig, StatusChangeConfig
from .http_codes import ContentTypes, HTTPHeaders, HTTPStatusCodes

__all__ = [
    "BASE_HOUR",
    "BASE_MINUTE",
    "BASE_SECOND",
    "CacheConfig",
    "CacheStatusConfig",
    "ContentTypes",
    "GitLabConfig",
    "HTTPHeaders",
    "HTTPStatusCodes",
    "IncidentConfig",
    "PaginationConfig",
    "StatusChangeConfig",
]
