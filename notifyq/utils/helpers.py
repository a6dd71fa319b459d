"""
Helper utilities
"""

from typing import Optional
from datetime import datetime, timedelta, timezone

def utcnow() -> datetime:
    """
    Current time as a naive UTC datetime

    All timestamp columns store naive UTC so SQLite and PostgreSQL
    compare them the same way.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)

def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Normalise an aware datetime to naive UTC

    Naive values are assumed to already be UTC.
    """
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)

def floor_to_hour(value: datetime) -> datetime:
    """Start of the hour bucket containing value"""
    return value.replace(minute=0, second=0, microsecond=0)

def next_interval_boundary(now: datetime, minutes: int) -> datetime:
    """
    Next wall-clock boundary of a fixed minute interval

    Args:
        now: Reference time
        minutes: Interval length, e.g. 60 for the top of the next hour

    Returns:
        First boundary strictly after now
    """
    minutes = max(int(minutes), 1)
    minutes_to_next = minutes - (now.minute % minutes)
    base = now.replace(second=0, microsecond=0)
    return base + timedelta(minutes=minutes_to_next)

def mask_phone(phone: str) -> str:
    """
    Mask phone number for privacy

    Args:
        phone: Phone number

    Returns:
        Masked phone number
    """
    if len(phone) >= 10:
        return f"{phone[:3]}****{phone[-3:]}"
    return "****"
