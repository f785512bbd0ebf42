"""
Model for per-user, per-calendar-day analysis counters.
Counts only grow within a day; a new day starts a new row.
"""
from sqlalchemy import Column, Integer, String, Date, UniqueConstraint
from app.db.base import Base


class DailyUsage(Base):
    __tablename__ = "daily_usage"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, nullable=False, index=True)
    usage_date = Column(Date, nullable=False)
    analysis_count = Column(Integer, default=0, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "usage_date", name="uq_daily_usage_user_date"),
    )
