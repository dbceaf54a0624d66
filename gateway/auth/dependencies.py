from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from gateway.auth.audit import ClientInfo
from gateway.auth.jwt_handler import AccessClaims, TokenVerifier
from gateway.auth.notifications import LoggingResetNotifier, ResetNotifier
from gateway.auth.refresh_store import RefreshTokenStore
from gateway.auth.service import AuthService
from gateway.auth.sso import LearnWorldsClient, SSOMinter
from gateway.auth.tokens import TokenIssuer
from gateway.core.config import Settings, get_settings
from gateway.core.errors import InvalidToken
from gateway.database import get_db
from gateway.models.user import User, is_admin

security = HTTPBearer(auto_error=False)


def get_token_verifier(settings: Settings = Depends(get_settings)) -> TokenVerifier:
    return TokenVerifier(settings)


def get_token_issuer(settings: Settings = Depends(get_settings), db: Session = Depends(get_db)) -> TokenIssuer:
    return TokenIssuer(settings, RefreshTokenStore(db))


def get_auth_service(settings: Settings = Depends(get_settings), db: Session = Depends(get_db)) -> AuthService:
    return AuthService(settings, db)


def get_reset_notifier() -> ResetNotifier:
    return LoggingResetNotifier()


def get_sso_minter(settings: Settings = Depends(get_settings)) -> SSOMinter:
    return SSOMinter(settings)


def get_learnworlds_client(settings: Settings = Depends(get_settings)) -> LearnWorldsClient:
    return LearnWorldsClient(settings)


def get_client_info(request: Request) -> ClientInfo:
    forwarded = request.headers.get("x-forwarded-for", "")
    ip_address = forwarded.split(",")[0].strip() or (request.client.host if request.client else "unknown")
    return ClientInfo(
        ip_address=ip_address or "unknown",
        user_agent=request.headers.get("user-agent", "unknown"),
    )


def load_active_user(db: Session, claims: AccessClaims) -> User:
    user = db.get(User, claims.user_id)
    if user is None or not user.is_active:
        raise InvalidToken("User not found or inactive")
    return user


def get_current_claims(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    verifier: TokenVerifier = Depends(get_token_verifier),
) -> AccessClaims:
    if credentials is None or credentials.scheme.lower() != "bearer" or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return verifier.verify_access(credentials.credentials)


def get_current_user(
    claims: AccessClaims = Depends(get_current_claims),
    db: Session = Depends(get_db),
) -> User:
    return load_active_user(db, claims)


def require_admin(current_user: User = Depends(get_current_user)) -> User:
    if not is_admin(current_user.role):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return current_user
