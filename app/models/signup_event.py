"""
Audit trail of account creation attempts (allowed and blocked).
Non-blocked rows also feed the per-IP signup throttle.
"""
from sqlalchemy import Column, Integer, String, Boolean, DateTime, Index
from app.db.base import Base
from app.utils.clock import utcnow


class SignupEvent(Base):
    __tablename__ = "account_signups"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, nullable=True, index=True)  # Identity provider user ID (absent on pre-checks)
    ip_address = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False)
    email_domain = Column(String(255), nullable=True, index=True)
    user_agent = Column(String, nullable=True)
    blocked = Column(Boolean, default=False, nullable=False)
    block_reason = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index("ix_account_signups_ip_address_created_at", "ip_address", "created_at"),
    )

    def __repr__(self):
        return f"<SignupEvent(user_id={self.user_id}, ip={self.ip_address}, blocked={self.blocked})>"
