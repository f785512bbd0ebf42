"""
Retention sweep for the per-IP request log.
There is no scheduler: a fraction of completed analyses queue the sweep as a
background task, each with its own session since the request session is gone by then.
"""
import logging
import random
from typing import Callable

from fastapi import BackgroundTasks
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.db.session import SessionLocal
from app.services.event_log import EventLogStore

logger = logging.getLogger(__name__)


def cleanup_old_logs(older_than_days: int = 7, session_factory: Callable[[], Session] = SessionLocal) -> int:
    db = session_factory()
    try:
        return EventLogStore(db).purge_older_than(older_than_days)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("[CLEANUP] Failed to clean up old IP logs: %s", e)
        return 0
    finally:
        db.close()


def maybe_schedule_cleanup(
    background_tasks: BackgroundTasks,
    probability: float,
    older_than_days: int,
    session_factory: Callable[[], Session] = SessionLocal,
) -> bool:
    """Queue the sweep with the given probability. Returns True if queued."""
    if probability <= 0 or random.random() >= probability:
        return False
    background_tasks.add_task(cleanup_old_logs, older_than_days, session_factory)
    return True
