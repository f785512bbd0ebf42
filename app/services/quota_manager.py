"""
Plan resolution and per-user analysis quotas.

Two free-tier rules coexist:
- the daily limit from PLAN_LIMITS (free = 1/day, resets every calendar day), and
- the one-time free scan marker in scan_usage, which never resets.
For free-plan users the marker dominates: once it exists the user is denied
regardless of today's counter. Paid plans skip the marker entirely.
"""
import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.plan_limits import FREE_PLAN, get_daily_limit, is_paid_plan, is_within_limit
from app.models.daily_usage import DailyUsage
from app.models.free_scan_usage import FreeScanUsage
from app.models.user_plan import UserPlan
from app.utils.clock import Clock, today, utcnow

logger = logging.getLogger(__name__)

# Concurrent first-of-day increments can collide on the unique (user_id, usage_date) row
MAX_INCREMENT_ATTEMPTS = 3

REASON_FREE_PLAN_EXHAUSTED = "free_plan_exhausted"
REASON_DAILY_CAP_REACHED = "daily_cap_reached"
REASON_QUOTA_UNAVAILABLE = "quota_unavailable"


class UsageConflictError(Exception):
    """Daily usage could not be incremented after repeated insert conflicts."""


class QuotaUnavailableError(Exception):
    """The store failed and the quota policy is closed, so no verdict can be given."""


@dataclass
class UsageToday:
    count: int
    date: date


@dataclass
class QuotaResult:
    allowed: bool
    usage: int
    limit: int
    plan: str
    reason: Optional[str] = None
    message: Optional[str] = None


def effective_plan_type(plan: UserPlan) -> str:
    """Inactive plans fall back to free limits."""
    if plan.status != "active":
        return FREE_PLAN
    return plan.plan_type or FREE_PLAN


class QuotaManager:
    def __init__(self, db: Session, clock: Clock = utcnow, open_on_error: bool = True):
        self.db = db
        self.clock = clock
        self.open_on_error = open_on_error

    def _find_plan(self, user_id: str) -> Optional[UserPlan]:
        return self.db.query(UserPlan).filter(UserPlan.user_id == user_id).first()

    def get_plan(self, user_id: str) -> UserPlan:
        """
        Get the user's plan, creating a free/active row on first lookup.
        If a concurrent request created the row first, the insert hits the primary key
        and we re-read theirs.
        """
        plan = self._find_plan(user_id)
        if plan:
            return plan

        try:
            plan = UserPlan(
                user_id=user_id,
                plan_type=FREE_PLAN,
                status="active",
                created_at=self.clock(),
                updated_at=self.clock(),
            )
            self.db.add(plan)
            self.db.commit()
            self.db.refresh(plan)
            logger.info("[PLAN] Created default free plan for user %s", user_id)
            return plan
        except IntegrityError:
            self.db.rollback()
            logger.info("[PLAN] Plan for user %s created concurrently, re-reading", user_id)
            plan = self._find_plan(user_id)
            if plan is None:
                raise
            return plan

    def get_usage_today(self, user_id: str) -> UsageToday:
        usage_date = today(self.clock())
        row = self.db.query(DailyUsage).filter(
            DailyUsage.user_id == user_id,
            DailyUsage.usage_date == usage_date
        ).first()
        return UsageToday(count=row.analysis_count if row else 0, date=usage_date)

    def check_quota(self, user_id: str) -> QuotaResult:
        """Decide whether the user may run one more analysis today."""
        try:
            plan_type = effective_plan_type(self.get_plan(user_id))
            usage = self.get_usage_today(user_id).count
        except SQLAlchemyError as e:
            self.db.rollback()
            limit = get_daily_limit(FREE_PLAN)
            if self.open_on_error:
                logger.warning("[QUOTA] Store unavailable, allowing user %s: %s", user_id, e)
                return QuotaResult(allowed=True, usage=0, limit=limit, plan=FREE_PLAN)
            logger.warning("[QUOTA] Store unavailable, blocking user %s: %s", user_id, e)
            return QuotaResult(
                allowed=False,
                usage=0,
                limit=limit,
                plan=FREE_PLAN,
                reason=REASON_QUOTA_UNAVAILABLE,
                message="Usage verification is temporarily unavailable. Please try again shortly.",
            )

        limit = get_daily_limit(plan_type)
        if is_within_limit(usage, limit):
            return QuotaResult(allowed=True, usage=usage, limit=limit, plan=plan_type)

        if plan_type == FREE_PLAN:
            return QuotaResult(
                allowed=False,
                usage=usage,
                limit=limit,
                plan=plan_type,
                reason=REASON_FREE_PLAN_EXHAUSTED,
                message=f"Free plan includes {limit} analysis per day. Upgrade to continue.",
            )
        return QuotaResult(
            allowed=False,
            usage=usage,
            limit=limit,
            plan=plan_type,
            reason=REASON_DAILY_CAP_REACHED,
            message=f"Daily limit of {limit} analyses reached on the {plan_type} plan. Try again tomorrow.",
        )

    def check_free_scan_consumed(self, user_id: str) -> bool:
        """
        True if a non-paid user has already used their one lifetime free scan.
        On a store error this is False when failing open; failing closed raises
        QuotaUnavailableError, since the plan (paid or not) is unknown.
        """
        try:
            if is_paid_plan(effective_plan_type(self.get_plan(user_id))):
                return False
            marker = self.db.query(FreeScanUsage.id).filter(
                FreeScanUsage.user_id == user_id,
                FreeScanUsage.used_free_scan.is_(True)
            ).first()
            return marker is not None
        except SQLAlchemyError as e:
            self.db.rollback()
            if self.open_on_error:
                logger.warning("[FREE SCAN] Store unavailable, allowing user %s: %s", user_id, e)
                return False
            logger.warning("[FREE SCAN] Store unavailable, blocking user %s: %s", user_id, e)
            raise QuotaUnavailableError(f"Free scan status unavailable for user {user_id}") from e

    def increment_usage(self, user_id: str) -> None:
        """
        Add one analysis to today's counter.
        The UPDATE is a single atomic statement; the INSERT for a user's first analysis
        of the day retries as an UPDATE if another request inserted the row first.
        """
        usage_date = today(self.clock())
        for attempt in range(1, MAX_INCREMENT_ATTEMPTS + 1):
            updated = self.db.query(DailyUsage).filter(
                DailyUsage.user_id == user_id,
                DailyUsage.usage_date == usage_date
            ).update(
                {DailyUsage.analysis_count: DailyUsage.analysis_count + 1},
                synchronize_session=False
            )
            if updated:
                self.db.commit()
                return

            try:
                self.db.add(DailyUsage(user_id=user_id, usage_date=usage_date, analysis_count=1))
                self.db.commit()
                return
            except IntegrityError:
                self.db.rollback()
                logger.info(
                    "[USAGE] Concurrent first increment for user %s on %s (attempt %s)",
                    user_id, usage_date, attempt
                )

        raise UsageConflictError(
            f"Could not increment usage for user {user_id} on {usage_date} "
            f"after {MAX_INCREMENT_ATTEMPTS} attempts"
        )

    def record_plan_scan(self, user_id: str, plan_type: str, ip: Optional[str] = None) -> None:
        """Stamp last_scan_at; free-plan scans also consume the one-time free scan."""
        plan = self.get_plan(user_id)
        plan.last_scan_at = self.clock()
        self.db.commit()

        if plan_type != FREE_PLAN:
            return

        existing = self.db.query(FreeScanUsage.id).filter(FreeScanUsage.user_id == user_id).first()
        if existing:
            return
        try:
            self.db.add(FreeScanUsage(
                user_id=user_id,
                ip_address=ip,
                used_free_scan=True,
                created_at=self.clock(),
            ))
            self.db.commit()
            logger.info("[FREE SCAN] Marked free scan as used for user %s", user_id)
        except IntegrityError:
            # Marker written by a concurrent request; one marker is all we need
            self.db.rollback()

    def set_plan(self, user_id: str, plan_type: str, stripe_customer_id: Optional[str] = None) -> UserPlan:
        """Apply a completed checkout: the user moves to `plan_type`, active."""
        plan = self.get_plan(user_id)
        plan.plan_type = plan_type
        plan.status = "active"
        plan.last_scan_at = self.clock()
        if stripe_customer_id:
            plan.stripe_customer_id = stripe_customer_id
        self.db.commit()
        self.db.refresh(plan)
        logger.info("[PLAN] User %s moved to %s plan", user_id, plan_type)
        return plan
