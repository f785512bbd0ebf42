"""
Admission control for analysis requests.

Gates run in a fixed order and the first denial wins:
1. one-time free scan (signed-in, non-paid users)   -> 403
2. IP rate limit (everyone)                         -> 429
3. daily plan quota (signed-in users)               -> 402
A gate whose store fails under a closed policy denies with its own
*_unavailable reason (503).
The order decides which message a blocked user sees and must not change.

Quota is only consumed by record_success(); a failed analysis keeps the IP log
entry written at admission but costs no plan usage.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import AdmissionSettings
from app.models.analysis import Analysis
from app.services.analysis_engine import AnalysisResult
from app.services.event_log import EventLogStore
from app.services.quota_manager import (
    REASON_QUOTA_UNAVAILABLE,
    QuotaManager,
    QuotaUnavailableError,
    UsageConflictError,
    effective_plan_type,
)
from app.services.rate_limiter import RateLimiter
from app.utils.clock import Clock, seconds_until, utcnow

logger = logging.getLogger(__name__)

DEFAULT_RETRY_AFTER_SECONDS = 3600


class DenyReason(str, Enum):
    FREE_SCAN_USED = "free_scan_used"
    RATE_LIMITED = "rate_limited"
    USAGE_LIMIT_REACHED = "usage_limit_reached"
    RATE_LIMIT_UNAVAILABLE = "rate_limit_unavailable"
    QUOTA_UNAVAILABLE = "quota_unavailable"


@dataclass
class AdmissionDecision:
    allowed: bool
    ip: str
    user_id: Optional[str] = None
    video_type: str = "upload"
    plan: Optional[str] = None
    reason: Optional[DenyReason] = None
    message: Optional[str] = None
    # Rate limit details
    remaining: Optional[int] = None
    reset_time: Optional[datetime] = None
    retry_after: Optional[int] = None
    # Quota details
    usage: Optional[int] = None
    limit: Optional[int] = None
    quota_reason: Optional[str] = None


class AdmissionController:
    def __init__(self, db: Session, settings: AdmissionSettings, clock: Clock = utcnow):
        self.db = db
        self.settings = settings
        self.clock = clock
        self.events = EventLogStore(db, clock)
        self.rate_limiter = RateLimiter(db, clock, open_on_error=settings.rate_limit_fail_open)
        self.quota = QuotaManager(db, clock, open_on_error=settings.quota_fail_open)

    def admit(
        self,
        ip: str,
        user_id: Optional[str] = None,
        user_agent: Optional[str] = None,
        video_type: str = "upload",
    ) -> AdmissionDecision:
        user_id = user_id or None

        # 1. One-time free scan: a hard business rule, checked first
        try:
            free_scan_used = bool(user_id) and self.quota.check_free_scan_consumed(user_id)
        except QuotaUnavailableError:
            return self._deny(self._quota_unavailable(ip, user_id, video_type), "BLOCKED: Quota unavailable")
        if free_scan_used:
            logger.info("[FREE SCAN] User %s already used their free scan", user_id)
            return self._deny(AdmissionDecision(
                allowed=False,
                ip=ip,
                user_id=user_id,
                video_type=video_type,
                plan="free",
                reason=DenyReason.FREE_SCAN_USED,
                message="Your free scan has already been used. Please upgrade to continue.",
            ), "BLOCKED: Free scan used")

        # 2. IP rate limit, for anonymous and signed-in traffic alike
        max_requests = self.settings.rate_limit_requests
        window_hours = self.settings.rate_limit_window_hours
        rate = self.rate_limiter.check(ip, max_requests, window_hours)
        self.rate_limiter.record(ip, user_agent=user_agent)
        if rate.store_unavailable:
            return self._deny(AdmissionDecision(
                allowed=False,
                ip=ip,
                user_id=user_id,
                video_type=video_type,
                reason=DenyReason.RATE_LIMIT_UNAVAILABLE,
                message="Rate limit verification is temporarily unavailable. Please try again shortly.",
                remaining=0,
            ), "BLOCKED: Rate limit unavailable")
        if rate.limited:
            logger.warning(
                "[RATE LIMIT] IP %s exceeded limit. Count: %s, Remaining: %s",
                ip, rate.count, rate.remaining
            )
            retry_after = (
                seconds_until(rate.reset_time, self.clock())
                if rate.reset_time else DEFAULT_RETRY_AFTER_SECONDS
            )
            return self._deny(AdmissionDecision(
                allowed=False,
                ip=ip,
                user_id=user_id,
                video_type=video_type,
                reason=DenyReason.RATE_LIMITED,
                message=f"Maximum {max_requests} analysis requests per {window_hours} hours exceeded",
                remaining=rate.remaining,
                reset_time=rate.reset_time,
                retry_after=retry_after,
            ), "BLOCKED: Rate limit")

        # 3. Daily plan quota: recoverable tomorrow (or by upgrading)
        plan = None
        if user_id:
            quota = self.quota.check_quota(user_id)
            if quota.reason == REASON_QUOTA_UNAVAILABLE:
                return self._deny(self._quota_unavailable(ip, user_id, video_type), "BLOCKED: Quota unavailable")
            if not quota.allowed:
                logger.warning(
                    "[QUOTA EXCEEDED] User: %s, Plan: %s, Usage: %s/%s",
                    user_id, quota.plan, quota.usage, quota.limit
                )
                return self._deny(AdmissionDecision(
                    allowed=False,
                    ip=ip,
                    user_id=user_id,
                    video_type=video_type,
                    plan=quota.plan,
                    reason=DenyReason.USAGE_LIMIT_REACHED,
                    message=quota.message,
                    usage=quota.usage,
                    limit=quota.limit,
                    quota_reason=quota.reason,
                ), "BLOCKED: Usage limit")
            plan = quota.plan
            logger.info("[PRICING OK] User: %s, Usage: %s/%s, Plan: %s", user_id, quota.usage, quota.limit, plan)

        return AdmissionDecision(
            allowed=True,
            ip=ip,
            user_id=user_id,
            video_type=video_type,
            plan=plan,
            remaining=max(0, rate.remaining - 1),
        )

    def _quota_unavailable(self, ip: str, user_id: str, video_type: str) -> AdmissionDecision:
        return AdmissionDecision(
            allowed=False,
            ip=ip,
            user_id=user_id,
            video_type=video_type,
            reason=DenyReason.QUOTA_UNAVAILABLE,
            message="Usage verification is temporarily unavailable. Please try again shortly.",
            quota_reason=REASON_QUOTA_UNAVAILABLE,
        )

    def _deny(self, decision: AdmissionDecision, verdict: str) -> AdmissionDecision:
        self.events.record_usage_attempt(decision.user_id, decision.ip, decision.video_type, False, verdict)
        return decision

    def record_success(
        self,
        decision: AdmissionDecision,
        result: AnalysisResult,
        video_name: Optional[str] = None,
    ) -> None:
        """Consume quota for a completed analysis and write the audit trail."""
        user_id = decision.user_id
        if user_id:
            self._increment_usage(user_id)
            try:
                plan_type = effective_plan_type(self.quota.get_plan(user_id))
                self.quota.record_plan_scan(user_id, plan_type, ip=decision.ip)
                self.db.add(Analysis(
                    user_id=user_id,
                    video_name=video_name,
                    verdict=result.verdict,
                    confidence=result.confidence,
                    reasoning=result.reasoning,
                    raw_result=result.raw,
                    created_at=self.clock(),
                ))
                self.db.commit()
                logger.info("[USAGE LOGGED] User: %s, Input: %s, Plan: %s", user_id, decision.video_type, plan_type)
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error("[USAGE INCONSISTENCY] Could not record scan for user %s: %s", user_id, e)

        self.events.record_usage_attempt(
            user_id,
            decision.ip,
            decision.video_type,
            True,
            f"{result.verdict} – {result.confidence}",
        )

    def record_blocked(self, decision: AdmissionDecision, detail: str) -> None:
        """Admitted, but the input was rejected before any analysis ran."""
        self.events.record_usage_attempt(
            decision.user_id,
            decision.ip,
            decision.video_type,
            False,
            f"BLOCKED: {detail}",
        )

    def record_failure(self, decision: AdmissionDecision, detail: str) -> None:
        """A failed analysis is logged but consumes no quota."""
        self.events.record_usage_attempt(
            decision.user_id,
            decision.ip,
            decision.video_type,
            False,
            f"FAIL: {detail}",
        )

    def _increment_usage(self, user_id: str) -> None:
        # One retry, then report the lost increment instead of dropping it silently
        for attempt in (1, 2):
            try:
                self.quota.increment_usage(user_id)
                return
            except (SQLAlchemyError, UsageConflictError) as e:
                self.db.rollback()
                if attempt == 2:
                    logger.error(
                        "[USAGE INCONSISTENCY] Analysis completed but usage increment failed for user %s: %s",
                        user_id, e
                    )
                else:
                    logger.warning("[USAGE] Increment failed for user %s, retrying: %s", user_id, e)
