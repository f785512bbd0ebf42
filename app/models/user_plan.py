from sqlalchemy import Column, String, DateTime
from app.db.base import Base
from app.utils.clock import utcnow


class UserPlan(Base):
    __tablename__ = "user_plans"

    # One row per user: the primary key is what makes lazy creation race-safe
    user_id = Column(String, primary_key=True, nullable=False)
    plan_type = Column(String, nullable=False, default="free")
    status = Column(String, nullable=False, default="active")
    last_scan_at = Column(DateTime, nullable=True)
    stripe_customer_id = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<UserPlan(user_id={self.user_id}, plan_type={self.plan_type}, status={self.status})>"
