"""Refresh token allowlist."""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String

from gateway.database import Base, utcnow


class RefreshToken(Base):
    """A refresh token issued to a user; valid while unrevoked and unexpired."""
    __tablename__ = "refresh_tokens"

    id = Column(Integer, primary_key=True)
    token = Column(String, unique=True, index=True, nullable=False)
    user_id = Column(String(32), ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    is_revoked = Column(Boolean, nullable=False, default=False)
    revoked_at = Column(DateTime)
    created_at = Column(DateTime, nullable=False, default=utcnow)
