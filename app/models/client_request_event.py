"""
Model for the per-IP request log behind analysis rate limiting.
One row per analysis attempt that reaches the rate-limit stage; rows are never updated
and are purged after the retention window by the cleanup sweep.
"""
from sqlalchemy import Column, Integer, String, DateTime, Index
from app.db.base import Base
from app.utils.clock import utcnow


class ClientRequestEvent(Base):
    __tablename__ = "ip_logs"

    id = Column(Integer, primary_key=True, index=True)
    ip_address = Column(String(255), nullable=False)  # Canonical, lower-cased client IP
    timestamp = Column(DateTime, default=utcnow, nullable=False, index=True)
    user_agent = Column(String, nullable=True)

    __table_args__ = (
        # Window lookups: WHERE ip_address = ? AND timestamp >= ?
        Index("ix_ip_logs_ip_address_timestamp", "ip_address", "timestamp"),
    )

    def __repr__(self):
        return f"<ClientRequestEvent(ip={self.ip_address}, timestamp={self.timestamp})>"
