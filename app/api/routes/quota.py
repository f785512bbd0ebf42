"""
Quota display for the frontend: current plan, today's usage and whether another scan is possible.
Limits come from the same PLAN_LIMITS table the admission check uses.
"""
import logging

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import AdmissionSettings, get_settings
from app.core.plan_limits import FREE_PLAN, get_daily_limit, is_within_limit
from app.db.session import get_db
from app.schemas.quota import QuotaCheckRequest, QuotaCheckResponse
from app.services.quota_manager import QuotaManager, QuotaUnavailableError, effective_plan_type

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/check-quota", response_model=QuotaCheckResponse)
def check_quota(
    body: QuotaCheckRequest,
    db: Session = Depends(get_db),
    settings: AdmissionSettings = Depends(get_settings),
):
    user_id = (body.userId or "").strip()
    if not user_id:
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": "User ID required"})

    quota = QuotaManager(db, open_on_error=settings.quota_fail_open)
    try:
        plan = quota.get_plan(user_id)
        usage = quota.get_usage_today(user_id)
    except SQLAlchemyError as e:
        db.rollback()
        logger.warning("[QUOTA CHECK] Store unavailable for user %s, returning free defaults: %s", user_id, e)
        return QuotaCheckResponse(
            plan=FREE_PLAN,
            status="active",
            usage=0,
            limit=get_daily_limit(FREE_PLAN),
            canAnalyze=True,
        )

    plan_type = effective_plan_type(plan)
    limit = get_daily_limit(plan_type)
    try:
        can_analyze = is_within_limit(usage.count, limit) and not quota.check_free_scan_consumed(user_id)
    except QuotaUnavailableError:
        can_analyze = False
    logger.info("[QUOTA CHECK] User: %s, Plan: %s, Usage: %s/%s", user_id, plan_type, usage.count, limit)

    return QuotaCheckResponse(
        plan=plan_type,
        status=plan.status,
        usage=usage.count,
        limit=limit,
        canAnalyze=can_analyze,
    )
