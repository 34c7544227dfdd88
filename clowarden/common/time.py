"""Timestamp helpers."""

from __future__ import annotations

import datetime as dt


def utcnow() -> dt.datetime:
    """Return the current time as an aware UTC datetime."""
    return dt.datetime.now(dt.UTC)


def parse_utc_timestamp(value: str | None, *, field: str) -> dt.datetime | None:
    """Parse an ISO 8601 timestamp that must carry a timezone.

    GitHub emits ``Z`` suffixed timestamps which older ``fromisoformat``
    releases reject, so the suffix is rewritten first.

    Raises
    ------
    ValueError
        If the value is not ISO 8601 or has no timezone.

    """
    if value is None:
        return None
    parsed = dt.datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        msg = f"{field} must include timezone information, got {value!r}"
        raise ValueError(msg)
    return parsed.astimezone(dt.UTC)
