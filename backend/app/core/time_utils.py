from __future__ import annotations

from datetime import datetime, timezone


def utcnow() -> datetime:
    """Server-side 'now' in UTC (aware)."""
    return datetime.now(timezone.utc)


def as_utc(dt: datetime | None) -> datetime | None:
    """Normalize a stored datetime to aware UTC.

    Some backends (SQLite) hand back naive values for timezone-aware
    columns; those are interpreted as UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)
