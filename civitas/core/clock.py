"""Timezone helpers shared by the store, the sweep and the scheduler."""

from __future__ import annotations

from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """
    Return ``value`` as an aware UTC datetime.

    Naive values are assumed to already be UTC; SQLite hands back naive
    datetimes even for ``DateTime(timezone=True)`` columns.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
