"""Time-window helpers shared by the rate, signup and quota checks.

All instants are naive UTC, matching how the tables store them.
"""
import math
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Optional

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def today(now: Optional[datetime] = None) -> date:
    return (now or utcnow()).date()


def window_start(window_hours: float, now: Optional[datetime] = None) -> datetime:
    """Start of a sliding window ending at `now`."""
    return (now or utcnow()) - timedelta(hours=window_hours)


def window_reset(oldest: datetime, window_hours: float) -> datetime:
    """When the oldest in-window event drops out and frees a slot."""
    return oldest + timedelta(hours=window_hours)


def seconds_until(instant: datetime, now: Optional[datetime] = None) -> int:
    remaining = (instant - (now or utcnow())).total_seconds()
    return max(0, math.ceil(remaining))
