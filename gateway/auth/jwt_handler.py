from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

import jwt

from gateway.core.config import Settings
from gateway.core.errors import ConfigurationError, ExpiredToken, InvalidToken

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"


@dataclass(frozen=True)
class AccessClaims:
    user_id: str
    email: str
    role: str
    hssc_id: str
    expires_at: datetime


@dataclass(frozen=True)
class RefreshClaims:
    user_id: str
    token_version: int
    expires_at: datetime


def encode_token(payload: dict[str, Any], secret: str, algorithm: str, expires_in: timedelta) -> str:
    if not secret:
        raise ConfigurationError("Signing secret is not configured")
    now = datetime.now(timezone.utc)
    claims = {**payload, "iat": now, "exp": now + expires_in}
    return jwt.encode(claims, secret, algorithm=algorithm)


def decode_token(token: str, secret: str, algorithm: str) -> dict[str, Any]:
    if not secret:
        raise ConfigurationError("Signing secret is not configured")
    try:
        return jwt.decode(
            token,
            secret,
            algorithms=[algorithm],
            options={"require": ["exp", "iat"]},
        )
    except jwt.ExpiredSignatureError as exc:
        raise ExpiredToken(str(exc)) from exc
    except jwt.InvalidTokenError as exc:
        raise InvalidToken(str(exc)) from exc


def _expiry(payload: dict[str, Any]) -> datetime:
    return datetime.fromtimestamp(payload["exp"], tz=timezone.utc)


def _require_str(payload: dict[str, Any], key: str) -> str:
    value = payload.get(key)
    if not isinstance(value, str) or not value:
        raise InvalidToken(f"Token claim {key!r} is missing")
    return value


class TokenVerifier:
    """Checks signature and expiry of bearer tokens. Holds no store state."""

    def __init__(self, settings: Settings):
        self.settings = settings

    def verify_access(self, token: str) -> AccessClaims:
        payload = decode_token(token, self.settings.JWT_SECRET, self.settings.JWT_ALGORITHM)
        if payload.get("type") != ACCESS_TOKEN_TYPE:
            raise InvalidToken("Not an access token")
        return AccessClaims(
            user_id=_require_str(payload, "userId"),
            email=_require_str(payload, "email"),
            role=_require_str(payload, "role"),
            hssc_id=payload.get("hsscId") or "",
            expires_at=_expiry(payload),
        )

    def verify_refresh(self, token: str) -> RefreshClaims:
        """Signature and expiry only; the caller must also consult the refresh store."""
        payload = decode_token(token, self.settings.JWT_REFRESH_SECRET, self.settings.JWT_ALGORITHM)
        if payload.get("type") != REFRESH_TOKEN_TYPE:
            raise InvalidToken("Not a refresh token")
        token_version = payload.get("tokenVersion")
        if not isinstance(token_version, int):
            raise InvalidToken("Token claim 'tokenVersion' is missing")
        return RefreshClaims(
            user_id=_require_str(payload, "userId"),
            token_version=token_version,
            expires_at=_expiry(payload),
        )

