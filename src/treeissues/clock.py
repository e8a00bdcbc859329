"""Timestamps for issue mutations."""

from __future__ import annotations

from datetime import datetime, timedelta

_TICK = timedelta(microseconds=1)


def utcnow() -> datetime:
    """Return the current local time with its UTC offset attached."""
    return datetime.now().astimezone()


def next_timestamp(previous: datetime, now: datetime | None = None) -> datetime:
    """Return a mutation timestamp strictly later than *previous*.

    Two mutations landing on the same clock tick (or a clock that stepped
    backwards) still get ordered ``updated_at`` values.
    """
    candidate = now if now is not None else utcnow()
    if candidate <= previous:
        return previous + _TICK
    return candidate
