"""Work item status change extraction from issue notes.

GitLab records status transitions as system notes with
``systemNoteMetadata.action == "work_item_status"`` and a body like
``set status to **In progress**``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from sprintmetrics.shared.constants import StatusChangeConfig
from sprintmetrics.shared.dates import try_parse_timestamp

_STATUS_RE = re.compile(StatusChangeConfig.STATUS_PATTERN)
_IN_PROGRESS_RE = re.compile(StatusChangeConfig.IN_PROGRESS_PATTERN, re.IGNORECASE)


@dataclass(frozen=True)
class StatusChange:
    status: str
    timestamp: str
    body: str


_LATEST = datetime.max.replace(tzinfo=timezone.utc)


def _sort_key(change: StatusChange) -> datetime:
    return try_parse_timestamp(change.timestamp) or _LATEST


def parse_status_changes(notes: list[dict[str, Any]]) -> list[StatusChange]:
    """Return status changes found in ``notes``, oldest first."""
    changes: list[StatusChange] = []
    for note in notes:
        if not note.get("system"):
            continue
        metadata = note.get("systemNoteMetadata") or {}
        if metadata.get("action") != StatusChangeConfig.SYSTEM_NOTE_ACTION:
            continue

        body = note.get("body") or ""
        match = _STATUS_RE.search(body)
        if match is None:
            continue
        changes.append(
            StatusChange(
                status=match.group(1),
                timestamp=note.get("createdAt") or "",
                body=body,
            )
        )

    changes.sort(key=_sort_key)
    return changes


def is_in_progress_status(status: str) -> bool:
    """Case-insensitive match against in progress / in-progress / wip / working."""
    return _IN_PROGRESS_RE.search(status) is not None


def extract_in_progress_timestamp(notes: list[dict[str, Any]]) -> str | None:
    """Timestamp of the first move into an in-progress status, if any."""
    for change in parse_status_changes(notes):
        if is_in_progress_status(change.status):
            return change.timestamp
    return None


__all__ = [
    "StatusChange",
    "extract_in_progress_timestamp",
    "is_in_progress_status",
    "parse_status_changes",
]
