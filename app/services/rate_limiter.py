"""
IP-based sliding-window rate limiter for analysis requests.

The window is measured backwards from "now" over the ip_logs table, so the reset time
is when the oldest in-window request ages out, not the start of a fixed bucket.
Checking does not write; callers record the request through the event log.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.services.event_log import EventLogStore
from app.utils.clock import Clock, utcnow, window_reset, window_start

logger = logging.getLogger(__name__)

DEFAULT_MAX_REQUESTS = 5
DEFAULT_WINDOW_HOURS = 24


@dataclass
class RateLimitResult:
    limited: bool
    remaining: int
    reset_time: Optional[datetime]
    count: int
    store_unavailable: bool = False


class RateLimiter:
    def __init__(self, db: Session, clock: Clock = utcnow, open_on_error: bool = True):
        self.events = EventLogStore(db, clock)
        self.clock = clock
        self.open_on_error = open_on_error

    def check(
        self,
        ip: str,
        max_requests: int = DEFAULT_MAX_REQUESTS,
        window_hours: int = DEFAULT_WINDOW_HOURS,
    ) -> RateLimitResult:
        """Count `ip`'s requests in the sliding window and decide whether it is over its limit."""
        since = window_start(window_hours, self.clock())
        try:
            count = self.events.count_requests(ip, since)
            limited = count >= max_requests
            reset_time = None
            if limited:
                oldest = self.events.oldest_request(ip, since)
                if oldest is not None:
                    reset_time = window_reset(oldest, window_hours)
        except SQLAlchemyError as e:
            self.events.db.rollback()
            if self.open_on_error:
                logger.warning("[RATE LIMIT] Store unavailable, allowing IP %s: %s", ip, e)
                return RateLimitResult(limited=False, remaining=max_requests, reset_time=None, count=0)
            logger.warning("[RATE LIMIT] Store unavailable, blocking IP %s: %s", ip, e)
            return RateLimitResult(
                limited=True, remaining=0, reset_time=None, count=0, store_unavailable=True
            )

        return RateLimitResult(
            limited=limited,
            remaining=max(0, max_requests - count),
            reset_time=reset_time,
            count=count,
        )

    def record(self, ip: str, user_agent: Optional[str] = None) -> bool:
        return self.events.record_request(ip, user_agent=user_agent)
