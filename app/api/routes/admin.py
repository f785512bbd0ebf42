"""
Admin audit view over usage logs. Staff accounts only.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.dependencies.auth import require_admin
from app.schemas.admission import UsageLogEntry, UsageLogsResponse
from app.services.event_log import EventLogStore

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/admin/usage-logs", response_model=UsageLogsResponse)
def list_usage_logs(
    user_id: Optional[str] = Query(None),
    ip_address: Optional[str] = Query(None),
    verdict: Optional[str] = Query(None),
    date: Optional[str] = Query(None, description="UTC day, YYYY-MM-DD"),
    db: Session = Depends(get_db),
    admin: dict = Depends(require_admin),
):
    try:
        rows = EventLogStore(db).list_usage_logs(
            user_id=user_id,
            ip_address=ip_address,
            verdict=verdict,
            date=date,
        )
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid date, expected YYYY-MM-DD"
        )
    except SQLAlchemyError as e:
        logger.error("[ADMIN] Failed to load usage logs: %s", e)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e)
        )

    logger.info("[ADMIN] %s listed %s usage log rows", admin.get("email"), len(rows))
    return UsageLogsResponse(logs=[
        UsageLogEntry(
            id=row.id,
            user_id=row.user_id,
            ip_address=row.ip_address,
            video_type=row.video_type,
            success=row.success,
            verdict=row.verdict,
            timestamp=row.timestamp.isoformat() + "Z" if row.timestamp else None,
        )
        for row in rows
    ])
