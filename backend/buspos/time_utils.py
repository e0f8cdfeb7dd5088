"""
Clock helpers.

All timestamps are stored as naive UTC. Lock expiry comparisons and report
ranges use the same representation, so naive values must never carry a
local offset.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional, Union


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def add_ms(dt: datetime, milliseconds: int) -> datetime:
    return dt + timedelta(milliseconds=milliseconds)


def as_naive_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Union[str, datetime, None]) -> Optional[datetime]:
    """
    Normalize an ISO-8601 string (or datetime) to naive UTC.

    Empty input gives None. Naive strings are read as UTC; a trailing "Z"
    or explicit offset is converted. Raises ValueError on garbage.
    """
    if value is None or isinstance(value, datetime):
        return as_naive_utc(value) if value else None

    text = value.strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"

    return as_naive_utc(datetime.fromisoformat(text))


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """Serialize to second-precision ISO-8601 with a trailing 'Z'."""
    if dt is None:
        return None
    return as_naive_utc(dt).replace(microsecond=0).isoformat() + "Z"
