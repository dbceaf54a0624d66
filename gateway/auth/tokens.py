import time
import uuid
from datetime import datetime, timedelta, timezone

from gateway.auth.jwt_handler import ACCESS_TOKEN_TYPE, REFRESH_TOKEN_TYPE, encode_token
from gateway.auth.refresh_store import RefreshTokenStore
from gateway.core.config import Settings
from gateway.models.user import Role, User


def _role_value(role: Role | str) -> str:
    return role.value if isinstance(role, Role) else str(role)


class TokenIssuer:
    """Mints access tokens and persisted refresh tokens."""

    def __init__(self, settings: Settings, store: RefreshTokenStore):
        self.settings = settings
        self.store = store

    @property
    def access_ttl(self) -> timedelta:
        return timedelta(minutes=self.settings.ACCESS_TOKEN_EXPIRES_MINUTES)

    @property
    def refresh_ttl(self) -> timedelta:
        return timedelta(days=self.settings.REFRESH_TOKEN_EXPIRES_DAYS)

    def issue_access_token(self, user: User) -> str:
        payload = {
            "type": ACCESS_TOKEN_TYPE,
            "userId": user.id,
            "email": user.email,
            "role": _role_value(user.role),
            "hsscId": user.hssc_id,
        }
        return encode_token(payload, self.settings.JWT_SECRET, self.settings.JWT_ALGORITHM, self.access_ttl)

    def build_refresh_token(self, user: User) -> tuple[str, datetime]:
        """Sign a refresh token without persisting it."""
        payload = {
            "type": REFRESH_TOKEN_TYPE,
            "userId": user.id,
            "tokenVersion": int(time.time() * 1000),
            "jti": uuid.uuid4().hex,
        }
        expires_at = datetime.now(timezone.utc) + self.refresh_ttl
        token = encode_token(payload, self.settings.JWT_REFRESH_SECRET, self.settings.JWT_ALGORITHM, self.refresh_ttl)
        return token, expires_at

    def issue_refresh_token(self, user: User) -> str:
        token, expires_at = self.build_refresh_token(user)
        self.store.persist(token, user.id, expires_at)
        return token
