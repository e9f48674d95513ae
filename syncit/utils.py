"""Utility functions for the application."""

from __future__ import annotations

import datetime
import time


def utcnow() -> datetime.datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.datetime.now(datetime.timezone.utc)


def to_iso(value: datetime.datetime) -> str:
    """Serialize a datetime as an ISO-8601 string in UTC.

    Naive datetimes are taken to be UTC already.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=datetime.timezone.utc)
    return value.astimezone(datetime.timezone.utc).isoformat()


def parse_timestamp(value, default=None) -> datetime.datetime:
    """Parse an ISO-8601 string (or datetime) into an aware UTC datetime.

    Accepts the ``Z`` suffix written by JavaScript clients. Falls back to
    ``default`` (or now) when the value is missing or unparseable.
    """
    if isinstance(value, datetime.datetime):
        parsed = value
    elif isinstance(value, str) and value:
        try:
            parsed = datetime.datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return default or utcnow()
    else:
        return default or utcnow()

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=datetime.timezone.utc)
    return parsed.astimezone(datetime.timezone.utc)


def timestamp_id() -> int:
    """Return a millisecond timestamp usable as a group or event id."""
    return int(time.time() * 1000)


def make_initials(name: str) -> str:
    """Build up to two initials from a display name."""
    parts = [part for part in (name or "").split() if part]
    return "".join(part[0] for part in parts[:2]).upper()
