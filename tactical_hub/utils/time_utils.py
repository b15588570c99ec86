"""
Time helpers shared by connectors, engines and the hub.

All timestamps inside the hub are timezone-aware UTC ``datetime`` objects.
Configuration expresses durations in milliseconds; ``ms()`` converts them.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(tz=timezone.utc)


def ms(milliseconds: int | float) -> timedelta:
    """Convert a millisecond duration from config into a ``timedelta``."""
    return timedelta(milliseconds=milliseconds)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_timestamp(value: str | int | float | datetime) -> datetime:
    """Parse an ISO-8601 string, epoch seconds/milliseconds, or datetime.

    Epoch values above 10^11 are treated as milliseconds.

    Raises:
        ValueError: If ``value`` cannot be interpreted as a timestamp.
    """
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, (int, float)):
        seconds = value / 1000.0 if value > 1e11 else float(value)
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return ensure_utc(datetime.fromisoformat(text))


def age_seconds(then: datetime, now: datetime) -> float:
    """Seconds elapsed from ``then`` to ``now`` (negative if in the future)."""
    return (now - then).total_seconds()
