"""GitLab GraphQL clients.

The executor is the only component that talks HTTP; the domain clients
build queries, walk cursor pagination and shape the resulting nodes.
"""

from sprintmetrics.services.gitlab.error_transformer import (
    is_retryable_network_error,
    is_retryable_status,
    normalize_transport_error,
)
from sprintmetrics.services.gitlab.executor import GraphQLExecutor
from sprintmetrics.services.gitlab.incident_client import IncidentClient
from sprintmetrics.services.gitlab.issue_client import IssueClient
from sprintmetrics.services.gitlab.iteration_client import IterationClient
from sprintmetrics.services.gitlab.merge_request_client import MergeRequestClient
from sprintmetrics.services.gitlab.pagination import Page, paginate_connection
from sprintmetrics.services.gitlab.pipeline_client import PipelineClient

__all__ = [
    "GraphQLExecutor",
    "IncidentClient",
    "IssueClient",
    "IterationClient",
    "MergeRequestClient",
    "Page",
    "PipelineClient",
    "is_retryable_network_error",
    "is_retryable_status",
    "normalize_transport_error",
    "paginate_connection",
]
