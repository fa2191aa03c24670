"""Timestamp helpers shared by the cache, clients and metric calculators."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

SECONDS_PER_HOUR = 3600
SECONDS_PER_DAY = 86400


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp or date; naive values are taken as UTC.

    Accepts the trailing ``Z`` GitLab uses.

    Raises:
        ValueError: If the value is not ISO-8601
    """
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def try_parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return parse_timestamp(value)
    except ValueError:
        return None


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat()


def days_between(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / SECONDS_PER_DAY


def hours_between(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / SECONDS_PER_HOUR


def window_start(value: str) -> datetime:
    """Start of a reporting window given as a date or timestamp."""
    return parse_timestamp(value)


def window_end(value: str) -> datetime:
    """End of a reporting window; a bare date covers that whole day.

    Raises:
        ValueError: If the value is not ISO-8601
    """
    parsed = parse_timestamp(value)
    if len(value.strip()) == len("YYYY-MM-DD"):
        return parsed + timedelta(days=1) - timedelta(microseconds=1)
    return parsed
