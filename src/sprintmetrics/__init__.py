"""
SprintMetrics - GitLab iteration delivery metrics

Fetches iteration data from a GitLab group through its GraphQL API, keeps it
in a TTL-aware file cache and computes velocity, cycle time, lead time,
deployment frequency, MTTR and change failure rate.
"""

__version__ = "0.1.0"
__author__ = "SprintMetrics Team"

__all__ = ["__version__"]
