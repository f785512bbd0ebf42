"""
Signup abuse prevention: temp-email domain blocking and per-IP signup throttling.

The two checks are independent; evaluate_signup() combines them for the identity
provider webhook, and /signup-verify calls them directly as a pre-check.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.blocked_email_domain import BlockedEmailDomain
from app.models.signup_event import SignupEvent
from app.utils.clock import Clock, utcnow, window_reset, window_start
from app.utils.disposable_email import extract_email_domain, is_disposable_domain

logger = logging.getLogger(__name__)

DEFAULT_MAX_SIGNUPS = 2
DEFAULT_WINDOW_HOURS = 24

BLOCK_REASON_TEMP_EMAIL = "Temporary email domain"
BLOCK_REASON_IP_LIMIT = "IP signup rate limit exceeded"


@dataclass
class SignupLimitResult:
    allowed: bool
    count: int
    reason: Optional[str] = None
    reset_time: Optional[datetime] = None


@dataclass
class SignupDecision:
    allowed: bool
    reason: Optional[str] = None
    reset_time: Optional[datetime] = None
    count: int = 0


class SignupGuard:
    def __init__(self, db: Session, clock: Clock = utcnow, open_on_error: bool = True):
        self.db = db
        self.clock = clock
        self.open_on_error = open_on_error

    def is_blocked_domain(self, email: str) -> bool:
        """
        True if the email's domain is blocked, either by an active blocked_email_domains
        row or by the bundled disposable-email list. Malformed emails are not blocked.
        """
        domain = extract_email_domain(email)
        if not domain:
            return False
        if is_disposable_domain(domain):
            return True
        try:
            row = self.db.query(BlockedEmailDomain).filter(
                BlockedEmailDomain.domain == domain,
                BlockedEmailDomain.active.is_(True)
            ).first()
            return row is not None
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.warning("[SIGNUP GUARD] Domain lookup failed for %s: %s", domain, e)
            return not self.open_on_error

    def check_signup_limit(
        self,
        ip: str,
        max_signups: int = DEFAULT_MAX_SIGNUPS,
        window_hours: int = DEFAULT_WINDOW_HOURS,
    ) -> SignupLimitResult:
        """Count non-blocked signups from `ip` in the sliding window."""
        since = window_start(window_hours, self.clock())
        try:
            in_window = self.db.query(SignupEvent).filter(
                SignupEvent.ip_address == ip,
                SignupEvent.blocked.is_(False),
                SignupEvent.created_at >= since
            )
            count = in_window.count()
            if count < max_signups:
                return SignupLimitResult(allowed=True, count=count)

            oldest = in_window.order_by(SignupEvent.created_at.asc()).first()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.warning("[SIGNUP GUARD] Signup count failed for IP %s: %s", ip, e)
            if self.open_on_error:
                return SignupLimitResult(allowed=True, count=0)
            return SignupLimitResult(allowed=False, count=0, reason="Signup verification unavailable")

        return SignupLimitResult(
            allowed=False,
            count=count,
            reason=f"Maximum {max_signups} signups per {window_hours} hours from this IP",
            reset_time=window_reset(oldest.created_at, window_hours) if oldest else None,
        )

    def log_signup(
        self,
        user_id: Optional[str],
        ip: str,
        email: str,
        user_agent: Optional[str],
        blocked: bool,
        block_reason: Optional[str] = None,
    ) -> None:
        """Record a signup attempt. Committed before the caller returns its verdict."""
        self.db.add(SignupEvent(
            user_id=user_id,
            ip_address=ip,
            email=email,
            email_domain=extract_email_domain(email),
            user_agent=user_agent,
            blocked=blocked,
            block_reason=block_reason,
            created_at=self.clock(),
        ))
        self.db.commit()

    def evaluate_signup(
        self,
        user_id: Optional[str],
        ip: str,
        email: str,
        user_agent: Optional[str] = None,
        block_temp_domains: bool = True,
        max_signups: int = DEFAULT_MAX_SIGNUPS,
        window_hours: int = DEFAULT_WINDOW_HOURS,
    ) -> SignupDecision:
        """Decide on a new account and log it, allowed or blocked."""
        if block_temp_domains and self.is_blocked_domain(email):
            logger.info("[SIGNUP BLOCKED] Temporary email domain: %s", extract_email_domain(email))
            self._log_quietly(user_id, ip, email, user_agent, True, BLOCK_REASON_TEMP_EMAIL)
            return SignupDecision(allowed=False, reason=BLOCK_REASON_TEMP_EMAIL)

        limit = self.check_signup_limit(ip, max_signups, window_hours)
        if not limit.allowed:
            logger.info("[SIGNUP BLOCKED] Rate limit exceeded for IP: %s, Reason: %s", ip, limit.reason)
            self._log_quietly(user_id, ip, email, user_agent, True, BLOCK_REASON_IP_LIMIT)
            return SignupDecision(
                allowed=False,
                reason=limit.reason,
                reset_time=limit.reset_time,
                count=limit.count,
            )

        logger.info("[SIGNUP ALLOWED] User %s from IP %s", user_id, ip)
        self._log_quietly(user_id, ip, email, user_agent, False)
        return SignupDecision(allowed=True, count=limit.count + 1)

    def _log_quietly(self, user_id, ip, email, user_agent, blocked, block_reason=None) -> None:
        try:
            self.log_signup(user_id, ip, email, user_agent, blocked, block_reason)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("[SIGNUP LOG] Failed to record signup for user %s from IP %s: %s", user_id, ip, e)
