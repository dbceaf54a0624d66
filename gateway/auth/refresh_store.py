"""Database-backed allowlist of issued refresh tokens.

A token moves from issued to either revoked or expired and never back. The
rotation used by the refresh endpoint is a single conditional update plus an
insert inside one transaction, so two concurrent refreshes presenting the same
token cannot both succeed.
"""

import logging
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from gateway.core.errors import TokenRevoked
from gateway.database import as_naive_utc, utcnow
from gateway.models.refresh_token import RefreshToken

logger = logging.getLogger(__name__)


class RefreshTokenStore:
    def __init__(self, db: Session):
        self.db = db

    def persist(self, token: str, user_id: str, expires_at: datetime) -> RefreshToken:
        row = RefreshToken(token=token, user_id=user_id, expires_at=as_naive_utc(expires_at))
        self.db.add(row)
        self.db.commit()
        return row

    def get(self, token: str) -> RefreshToken | None:
        return self.db.execute(select(RefreshToken).where(RefreshToken.token == token)).scalar_one_or_none()

    def is_valid(self, token: str) -> bool:
        row = self.get(token)
        return row is not None and not row.is_revoked and row.expires_at > utcnow()

    def revoke(self, token: str) -> bool:
        """Revoke ``token``. Returns False when it was unknown or already revoked."""
        now = utcnow()
        result = self.db.execute(
            update(RefreshToken)
            .where(RefreshToken.token == token, RefreshToken.is_revoked.is_(False))
            .values(is_revoked=True, revoked_at=now)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        return result.rowcount == 1

    def rotate(self, presented: str, replacement: str, user_id: str, expires_at: datetime) -> RefreshToken:
        now = utcnow()
        try:
            result = self.db.execute(
                update(RefreshToken)
                .where(
                    RefreshToken.token == presented,
                    RefreshToken.user_id == user_id,
                    RefreshToken.is_revoked.is_(False),
                    RefreshToken.expires_at > now,
                )
                .values(is_revoked=True, revoked_at=now)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise TokenRevoked("Refresh token was revoked or rotated concurrently")
            row = RefreshToken(token=replacement, user_id=user_id, expires_at=as_naive_utc(expires_at))
            self.db.add(row)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        logger.info("Rotated refresh token for user %s", user_id)
        return row
