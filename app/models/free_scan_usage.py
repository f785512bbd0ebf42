"""
Model for the one-time free scan marker.
Once a row exists for a free-plan user, no further free analyses are granted,
whatever the daily counters say.
"""
from sqlalchemy import Column, Integer, String, Boolean, DateTime
from app.db.base import Base
from app.utils.clock import utcnow


class FreeScanUsage(Base):
    __tablename__ = "scan_usage"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, nullable=False, unique=True, index=True)
    ip_address = Column(String(255), nullable=True)  # Audit only
    used_free_scan = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
