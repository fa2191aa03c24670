"""Delivery metric calculators and the persisted Metric model.

All calculators are pure functions over the raw GitLab nodes held in an
``IterationPayload``. Durations are reported in days, except MTTR which is
in hours.
"""

from __future__ import annotations

import math
import secrets
import string
import time
from dataclasses import dataclass
from typing import Any

from pydantic import Field, ValidationError

from sprintmetrics.core.incidents import calculate_mttr
from sprintmetrics.services.cache.models import CamelModel, IterationPayload
from sprintmetrics.shared.constants import GitLabConfig
from sprintmetrics.shared.dates import (
    SECONDS_PER_DAY,
    days_between,
    parse_timestamp,
    to_iso,
    try_parse_timestamp,
    utc_now,
)
from sprintmetrics.shared.errors import create_validation_error

_ID_ALPHABET = string.ascii_lowercase + string.digits


def generate_metric_id() -> str:
    """``metric-<epoch ms>-<9 random base36 chars>``."""
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"metric-{int(time.time() * 1000)}-{suffix}"


class Metric(CamelModel):
    """Metrics of one iteration as stored in ``metrics.json``."""

    id: str = Field(default_factory=generate_metric_id)
    iteration_id: str = Field(min_length=1)
    iteration_title: str = Field(min_length=1)
    start_date: str = Field(min_length=1)
    end_date: str = Field(min_length=1)

    velocity_points: float = Field(default=0, ge=0)
    velocity_stories: int = Field(default=0, ge=0)
    cycle_time_avg: float = Field(default=0, ge=0)
    cycle_time_p50: float = Field(default=0, ge=0)
    cycle_time_p90: float = Field(default=0, ge=0)
    deployment_frequency: float = Field(default=0, ge=0)
    lead_time_avg: float = Field(default=0, ge=0)
    lead_time_p50: float = Field(default=0, ge=0)
    lead_time_p90: float = Field(default=0, ge=0)
    mttr_avg: float = Field(default=0, ge=0)
    change_failure_rate: float = Field(default=0, ge=0)

    issue_count: int = Field(default=0, ge=0)
    mr_count: int = Field(default=0, ge=0)
    deployment_count: int = Field(default=0, ge=0)
    incident_count: int = Field(default=0, ge=0)

    created_at: str = Field(default_factory=lambda: to_iso(utc_now()))


@dataclass(frozen=True)
class Velocity:
    points: float
    stories: int


@dataclass(frozen=True)
class Distribution:
    """Average and percentiles of a set of durations."""

    avg: float
    p50: float
    p90: float

    @classmethod
    def empty(cls) -> Distribution:
        return cls(avg=0.0, p50=0.0, p90=0.0)

    @classmethod
    def of(cls, values: list[float]) -> Distribution:
        if not values:
            return cls.empty()
        return cls(
            avg=sum(values) / len(values),
            p50=quantile(values, 0.5),
            p90=quantile(values, 0.9),
        )


def quantile(values: list[float], p: float) -> float:
    """Quantile of ``values`` using the nearest-rank rule with midpoint on ties.

    For ``n`` values and ``idx = n * p``: a fractional ``idx`` selects the
    ``ceil(idx)``-th smallest value; an integral ``idx`` averages the
    ``idx``-th and next value when ``n`` is even.

    Raises:
        ValueError: If values is empty or p is outside [0, 1]
    """
    if not values:
        msg = "quantile requires at least one value"
        raise ValueError(msg)
    if p < 0 or p > 1:
        msg = f"quantile must be between 0 and 1, got: {p}"
        raise ValueError(msg)

    ordered = sorted(values)
    count = len(ordered)
    if p == 1:
        return ordered[-1]
    if p == 0:
        return ordered[0]

    idx = count * p
    if idx != int(idx):
        return ordered[math.ceil(idx) - 1]
    idx = int(idx)
    if count % 2 == 0:
        return (ordered[idx - 1] + ordered[idx]) / 2
    return ordered[idx]


def _is_closed(issue: dict[str, Any]) -> bool:
    return (issue.get("state") or "").lower() == "closed"


def _is_merged(merge_request: dict[str, Any]) -> bool:
    return (merge_request.get("state") or "").lower() == "merged"


def calculate_sprint_days(start_date: str, end_date: str) -> int:
    """Calendar days of an iteration, both ends included."""
    elapsed = parse_timestamp(end_date) - parse_timestamp(start_date)
    return math.ceil(elapsed.total_seconds() / SECONDS_PER_DAY) + 1


def calculate_velocity(issues: list[dict[str, Any]]) -> Velocity:
    closed = [issue for issue in issues if _is_closed(issue)]
    return Velocity(
        points=sum(issue.get("weight") or 0 for issue in closed),
        stories=len(closed),
    )


def calculate_cycle_time(issues: list[dict[str, Any]]) -> Distribution:
    """Days from start of work to close for closed issues.

    Work starts at ``inProgressAt`` when the issue ever entered an
    in-progress status, otherwise at ``createdAt``.
    """
    durations: list[float] = []
    for issue in issues:
        if not _is_closed(issue):
            continue
        started = try_parse_timestamp(issue.get("inProgressAt")) or try_parse_timestamp(
            issue.get("createdAt")
        )
        closed = try_parse_timestamp(issue.get("closedAt"))
        if started is None or closed is None:
            continue
        durations.append(max(days_between(started, closed), 0.0))
    return Distribution.of(durations)


def calculate_lead_time(merge_requests: list[dict[str, Any]]) -> Distribution:
    """Days from MR creation to merge."""
    durations: list[float] = []
    for merge_request in merge_requests:
        if not _is_merged(merge_request):
            continue
        created = try_parse_timestamp(merge_request.get("createdAt"))
        merged = try_parse_timestamp(merge_request.get("mergedAt"))
        if created is None or merged is None:
            continue
        durations.append(days_between(created, merged))
    return Distribution.of(durations)


def count_deployments(
    merge_requests: list[dict[str, Any]],
    branches: tuple[str, ...] = GitLabConfig.DEFAULT_BRANCHES,
) -> int:
    """Merged MRs targeting a production branch."""
    return sum(
        1
        for merge_request in merge_requests
        if _is_merged(merge_request)
        and (merge_request.get("targetBranch") or "").lower() in branches
    )


def calculate_deployment_frequency(
    merge_requests: list[dict[str, Any]],
    sprint_days: int,
) -> float:
    """Deployments per sprint day, ``0`` for an empty window."""
    if sprint_days <= 0:
        return 0.0
    return count_deployments(merge_requests) / sprint_days


def calculate_change_failure_rate(incidents: list[dict[str, Any]], deployments: int) -> float:
    """Incidents per deployment, as a percentage."""
    if deployments == 0:
        return 0.0
    return len(incidents) / deployments * 100


def build_metric(payload: IterationPayload) -> Metric:
    """Compute every metric of one iteration payload.

    Raises:
        DomainError: If the iteration lacks its dates or a value is invalid
    """
    metadata = payload.metadata
    if not metadata.start_date or not metadata.due_date:
        raise create_validation_error(
            message=f"Iteration {payload.iteration_id} has no start or due date",
            field="startDate" if not metadata.start_date else "dueDate",
            operation="build_metric",
        )

    sprint_days = calculate_sprint_days(metadata.start_date, metadata.due_date)
    velocity = calculate_velocity(payload.issues)
    cycle_time = calculate_cycle_time(payload.issues)
    lead_time = calculate_lead_time(payload.merge_requests)
    deployments = count_deployments(payload.merge_requests)

    try:
        return Metric(
            iteration_id=payload.iteration_id,
            # Untitled iterations (automatic cadences) are shown by their dates.
            iteration_title=metadata.title or f"{metadata.start_date} - {metadata.due_date}",
            start_date=metadata.start_date,
            end_date=metadata.due_date,
            velocity_points=velocity.points,
            velocity_stories=velocity.stories,
            cycle_time_avg=cycle_time.avg,
            cycle_time_p50=cycle_time.p50,
            cycle_time_p90=cycle_time.p90,
            deployment_frequency=calculate_deployment_frequency(
                payload.merge_requests, sprint_days
            ),
            lead_time_avg=lead_time.avg,
            lead_time_p50=lead_time.p50,
            lead_time_p90=lead_time.p90,
            mttr_avg=calculate_mttr(payload.incidents),
            change_failure_rate=calculate_change_failure_rate(payload.incidents, deployments),
            issue_count=len(payload.issues),
            mr_count=len(payload.merge_requests),
            deployment_count=deployments,
            incident_count=len(payload.incidents),
        )
    except ValidationError as e:
        raise create_validation_error(
            message=f"Invalid metric values for iteration {payload.iteration_id}",
            operation="build_metric",
            original_error=e,
        ) from e


__all__ = [
    "Distribution",
    "Metric",
    "Velocity",
    "build_metric",
    "calculate_change_failure_rate",
    "calculate_cycle_time",
    "calculate_deployment_frequency",
    "calculate_lead_time",
    "calculate_sprint_days",
    "calculate_velocity",
    "count_deployments",
    "generate_metric_id",
    "quantile",
]
