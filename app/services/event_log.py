"""
Append-only event logs backing the admission decisions.

- ip_logs: one row per analysis attempt that reaches the rate-limit stage; the rate
  limiter counts these. Purged after the retention window.
- usage_logs: audit row for every attempt (blocked, failed, successful); admin view.

Writes here never raise into the request: a lost log row is reported and logged,
the caller decides what to do with it.
"""
import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.client_request_event import ClientRequestEvent
from app.models.usage_log import UsageLog
from app.utils.clock import Clock, utcnow

logger = logging.getLogger(__name__)

MAX_USAGE_LOG_ROWS = 500


class EventLogStore:
    def __init__(self, db: Session, clock: Clock = utcnow):
        self.db = db
        self.clock = clock

    # --- Client request events (rate limiting) ---

    def record_request(self, ip: str, user_agent: Optional[str] = None) -> bool:
        """Append a request event for `ip`. Returns False if the store rejected the write."""
        try:
            self.db.add(ClientRequestEvent(
                ip_address=ip,
                timestamp=self.clock(),
                user_agent=user_agent,
            ))
            self.db.commit()
            return True
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("[IP LOG] Failed to log request for IP %s: %s", ip, e)
            return False

    def _requests_since(self, ip: str, since: datetime):
        return self.db.query(ClientRequestEvent).filter(
            ClientRequestEvent.ip_address == ip,
            ClientRequestEvent.timestamp >= since
        )

    def count_requests(self, ip: str, since: datetime) -> int:
        return self._requests_since(ip, since).count()

    def oldest_request(self, ip: str, since: datetime) -> Optional[datetime]:
        event = self._requests_since(ip, since).order_by(
            ClientRequestEvent.timestamp.asc()
        ).first()
        return event.timestamp if event else None

    def purge_older_than(self, days: int) -> int:
        """Delete request events older than `days`. Returns how many rows went."""
        cutoff = self.clock() - timedelta(days=days)
        deleted = self.db.query(ClientRequestEvent).filter(
            ClientRequestEvent.timestamp < cutoff
        ).delete(synchronize_session=False)
        self.db.commit()
        if deleted:
            logger.info("[CLEANUP] Removed %s IP log(s) older than %s days", deleted, days)
        return deleted

    # --- Usage audit log ---

    def record_usage_attempt(
        self,
        user_id: Optional[str],
        ip: str,
        video_type: Optional[str],
        success: bool,
        verdict: Optional[str] = None,
    ) -> bool:
        try:
            self.db.add(UsageLog(
                user_id=user_id,
                ip_address=ip,
                video_type=video_type,
                success=success,
                verdict=verdict,
                timestamp=self.clock(),
            ))
            self.db.commit()
            return True
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("[USAGE LOG] Failed to log usage attempt (user=%s, ip=%s): %s", user_id, ip, e)
            return False

    def list_usage_logs(
        self,
        user_id: Optional[str] = None,
        ip_address: Optional[str] = None,
        verdict: Optional[str] = None,
        date: Optional[str] = None,
        limit: int = MAX_USAGE_LOG_ROWS,
    ) -> list[UsageLog]:
        """
        Usage log rows, newest first.
        `verdict` is a case-insensitive substring match; `date` (YYYY-MM-DD) selects one UTC day.
        """
        query = self.db.query(UsageLog)
        if user_id:
            query = query.filter(UsageLog.user_id == user_id)
        if ip_address:
            query = query.filter(UsageLog.ip_address == ip_address.lower())
        if verdict:
            query = query.filter(UsageLog.verdict.ilike(f"%{verdict}%"))
        if date:
            day_start = datetime.strptime(date, "%Y-%m-%d")
            query = query.filter(
                UsageLog.timestamp >= day_start,
                UsageLog.timestamp < day_start + timedelta(days=1)
            )
        return query.order_by(UsageLog.timestamp.desc()).limit(min(limit, MAX_USAGE_LOG_ROWS)).all()
