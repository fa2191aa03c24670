"""Incident timeline analysis.

Incident times come from tagged timeline events when they exist and fall
back to the issue's own timestamps otherwise:

* start: "start time" tag, else ``createdAt``
* end: "end time", "stop time", "impact mitigated" tags, else ``closedAt``
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Any
from urllib.parse import urlparse

from sprintmetrics.shared.constants import IncidentConfig
from sprintmetrics.shared.dates import hours_between, try_parse_timestamp

_MR_RE = re.compile(IncidentConfig.MR_URL_PATTERN)
_COMMIT_RE = re.compile(IncidentConfig.COMMIT_URL_PATTERN)

# (tag, source label) in order of precedence
_END_TAGS = (
    (IncidentConfig.TAG_END_TIME, "timeline_end"),
    (IncidentConfig.TAG_STOP_TIME, "timeline_stop"),
    (IncidentConfig.TAG_IMPACT_MITIGATED, "timeline_mitigated"),
)


def _event_tags(event: dict[str, Any]) -> list[str]:
    tags = (event.get("timelineEventTags") or {}).get("nodes") or []
    return [str(tag.get("name", "")).lower() for tag in tags]


def find_timeline_event_by_tag(
    timeline_events: list[dict[str, Any]] | None,
    tag_name: str,
) -> dict[str, Any] | None:
    """First event carrying a tag whose name contains ``tag_name`` (case-insensitive)."""
    needle = tag_name.lower()
    for event in timeline_events or []:
        if any(needle in tag for tag in _event_tags(event)):
            return event
    return None


def get_actual_start_time(
    incident: dict[str, Any],
    timeline_events: list[dict[str, Any]] | None = None,
) -> str | None:
    start_event = find_timeline_event_by_tag(timeline_events, IncidentConfig.TAG_START_TIME)
    if start_event and start_event.get("occurredAt"):
        return start_event["occurredAt"]
    return incident.get("createdAt")


def get_actual_end_time(
    incident: dict[str, Any],
    timeline_events: list[dict[str, Any]] | None = None,
) -> tuple[str | None, str | None]:
    """Return ``(end_time, source)``; both ``None`` while the incident is open."""
    for tag, source in _END_TAGS:
        event = find_timeline_event_by_tag(timeline_events, tag)
        if event and event.get("occurredAt"):
            return event["occurredAt"], source
    if incident.get("closedAt"):
        return incident["closedAt"], "closed"
    return None, None


def calculate_downtime(
    incident: dict[str, Any],
    timeline_events: list[dict[str, Any]] | None = None,
) -> float:
    """Hours between actual start and end, ``0`` when either is unknown."""
    if timeline_events is None:
        timeline_events = incident.get("timelineEvents") or []
    start = try_parse_timestamp(get_actual_start_time(incident, timeline_events))
    end_time, _ = get_actual_end_time(incident, timeline_events)
    end = try_parse_timestamp(end_time)
    if start is None or end is None:
        return 0.0
    return max(hours_between(start, end), 0.0)


def calculate_mttr(incidents: list[dict[str, Any]]) -> float:
    """Mean downtime in hours over closed incidents."""
    closed = [i for i in incidents if i.get("closedAt") and i.get("createdAt")]
    if not closed:
        return 0.0
    return sum(calculate_downtime(incident) for incident in closed) / len(closed)


def extract_project_path(web_url: str | None) -> str | None:
    """Project path of a GitLab web URL, e.g. ``group/app`` for ``.../group/app/-/issues/1``."""
    if not web_url:
        return None
    path = urlparse(web_url).path
    project_path = path.split(IncidentConfig.PROJECT_PATH_SEPARATOR)[0].strip("/")
    return project_path or None


def extract_change_link(
    timeline_events: list[dict[str, Any]] | None,
) -> dict[str, str] | None:
    """Merge request or commit linked from the "start time" event note.

    Merge request links take precedence over commit links.
    """
    start_event = find_timeline_event_by_tag(timeline_events, IncidentConfig.TAG_START_TIME)
    if not start_event or not start_event.get("note"):
        return None

    note = start_event["note"]
    mr_match = _MR_RE.search(note)
    if mr_match:
        return {
            "type": "merge_request",
            "url": mr_match.group(0),
            "project": mr_match.group(2),
            "id": mr_match.group(3),
        }

    commit_match = _COMMIT_RE.search(note)
    if commit_match:
        return {
            "type": "commit",
            "url": commit_match.group(0),
            "project": commit_match.group(2),
            "sha": commit_match.group(3),
        }
    return None


def is_active_during(
    incident: dict[str, Any],
    timeline_events: list[dict[str, Any]],
    start: datetime,
    end: datetime,
) -> bool:
    """Whether the incident belongs to the window ``[start, end]``.

    With a tagged start time only that time counts. Otherwise the incident
    qualifies when it was created, closed or updated inside the window.
    """

    def inside(value: str | None) -> bool:
        parsed = try_parse_timestamp(value)
        return parsed is not None and start <= parsed <= end

    if find_timeline_event_by_tag(timeline_events, IncidentConfig.TAG_START_TIME):
        return inside(get_actual_start_time(incident, timeline_events))

    return (
        inside(incident.get("createdAt"))
        or inside(incident.get("closedAt"))
        or inside(incident.get("updatedAt"))
    )


def enrich_incident(
    incident: dict[str, Any],
    timeline_events: list[dict[str, Any]],
) -> dict[str, Any]:
    """Attach actual times, their sources, timeline events and the change link."""
    start_event = find_timeline_event_by_tag(timeline_events, IncidentConfig.TAG_START_TIME)
    end_time, end_source = get_actual_end_time(incident, timeline_events)
    return {
        **incident,
        "actualStartTime": get_actual_start_time(incident, timeline_events),
        "actualEndTime": end_time,
        "startTimeSource": "timeline" if start_event else "created",
        "endTimeSource": end_source,
        "hasTimelineEvents": bool(timeline_events),
        "timelineEvents": list(timeline_events),
        "changeLink": extract_change_link(timeline_events),
        "changeDate": None,
    }


__all__ = [
    "calculate_downtime",
    "calculate_mttr",
    "enrich_incident",
    "extract_change_link",
    "extract_project_path",
    "find_timeline_event_by_tag",
    "get_actual_end_time",
    "get_actual_start_time",
    "is_active_during",
]
