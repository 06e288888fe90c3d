# app/utils/time.py
from __future__ import annotations

from datetime import date, datetime, timezone

UTC = timezone.utc


def utcnow() -> datetime:
    return datetime.now(UTC)


def utc_today() -> date:
    return utcnow().date()


def as_utc_naive(dt: datetime | None) -> datetime | None:
    """
    Comparable form of a timestamp.

    SQLite hands back naive values while freshly built ORM objects still hold
    aware ones; both are normalised to naive UTC before any ordering.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(UTC).replace(tzinfo=None)
