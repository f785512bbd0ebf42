"""
Model for the analysis attempt audit log shown in the admin view.
Every attempt is recorded: blocked, failed and successful.
"""
from sqlalchemy import Column, Integer, String, Boolean, DateTime
from app.db.base import Base
from app.utils.clock import utcnow


class UsageLog(Base):
    __tablename__ = "usage_logs"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, nullable=True, index=True)  # Null for anonymous attempts
    ip_address = Column(String(255), nullable=False, index=True)
    video_type = Column(String, nullable=True)  # "upload" or "url"
    success = Column(Boolean, default=False, nullable=False)
    verdict = Column(String, nullable=True)  # Model verdict, or "BLOCKED: ..." / "FAIL: ..."
    timestamp = Column(DateTime, default=utcnow, nullable=False, index=True)

    def __repr__(self):
        return f"<UsageLog(user_id={self.user_id}, ip={self.ip_address}, success={self.success}, verdict={self.verdict})>"
