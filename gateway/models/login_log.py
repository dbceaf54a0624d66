"""Login audit trail."""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String

from gateway.database import Base, utcnow


class LoginLog(Base):
    """Append-only record of an authentication or federation attempt."""
    __tablename__ = "login_logs"

    id = Column(Integer, primary_key=True)
    user_id = Column(String(32), ForeignKey("users.id", ondelete="SET NULL"), index=True)
    email = Column(String)
    ip_address = Column(String, nullable=False, default="unknown")
    user_agent = Column(String, nullable=False, default="unknown")
    success = Column(Boolean, nullable=False)
    event = Column(String, nullable=False, default="login")
    reason = Column(String)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
