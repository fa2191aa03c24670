"""
Core components for SprintMetrics.

Metric calculators, incident timeline analysis and the use cases built on
top of the cached iteration data. Submodules are imported directly, e.g.
``from sprintmetrics.core.metrics import build_metric``.
"""

__all__ = ["cache_status", "incidents", "metrics", "metrics_service"]
