"""Time helpers.

All timestamps in dataset-sync are naive datetimes in UTC, so they compare
and serialize consistently between the local stores and the hub.
"""

from __future__ import annotations

from datetime import UTC, datetime


def utcnow() -> datetime:
    """Return the current UTC time as a naive datetime."""
    return datetime.now(UTC).replace(tzinfo=None)


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse an ISO timestamp, dropping any timezone after converting to UTC.

    Returns None for empty input.
    """
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(UTC).replace(tzinfo=None)
    return parsed
