from sqlalchemy import Column, Integer, String, JSON, DateTime
from app.db.base import Base
from app.utils.clock import utcnow


class Analysis(Base):
    __tablename__ = "analyses"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, nullable=False, index=True)
    video_name = Column(String, nullable=True)  # Upload filename or source URL
    verdict = Column(String, nullable=True)
    confidence = Column(String, nullable=True)  # Model reports a percentage string, e.g. "91%"
    reasoning = Column(String, nullable=True)
    raw_result = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)
