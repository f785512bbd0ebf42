from sqlalchemy import Column, String, Boolean
from app.db.base import Base


class BlockedEmailDomain(Base):
    __tablename__ = "blocked_email_domains"

    domain = Column(String(255), primary_key=True, nullable=False)  # Lower-cased, no "@"
    active = Column(Boolean, default=True, nullable=False)
