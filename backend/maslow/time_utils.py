from __future__ import annotations

from datetime import date, datetime, time, timezone
from typing import Optional


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_slot_time(value: str) -> time:
    """Parse a 24h "HH:MM" slot string."""
    hour, minute = value.split(":")
    return time(int(hour), int(minute))


def combine_slot(day: date, slot: str) -> datetime:
    """Booking start as UTC-naive datetime from a calendar day and an "HH:MM" slot."""
    return datetime.combine(day, parse_slot_time(slot))


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """
    Serializes datetime to ISO-8601 with trailing 'Z'.
    If dt is naive, it is treated as UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt_utc = dt.astimezone(timezone.utc).replace(microsecond=0)
    return dt_utc.isoformat().replace("+00:00", "Z")
