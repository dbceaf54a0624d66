"""Login, refresh, logout and password reset flows built from the auth components."""

import hashlib
import logging
import secrets
from dataclasses import dataclass
from datetime import date, timedelta

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from gateway.auth.audit import ClientInfo, record_login
from gateway.auth.credentials import CredentialVerifier, get_user_by_email, normalize_email
from gateway.auth.jwt_handler import TokenVerifier
from gateway.auth.notifications import ResetNotifier, redact_email
from gateway.auth.passwords import hash_password, verify_password
from gateway.auth.refresh_store import RefreshTokenStore
from gateway.auth.sso import append_query
from gateway.auth.tokens import TokenIssuer
from gateway.core.config import Settings
from gateway.core.errors import (
    BadPassword,
    InvalidResetToken,
    InvalidToken,
    TokenRevoked,
    UserAlreadyExists,
)
from gateway.database import utcnow
from gateway.models.user import InstituteCategory, Role, User


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    user: User


@dataclass(frozen=True)
class Registration:
    full_name: str
    email: str
    password: str
    mobile_number: str
    hssc_id: str
    role: Role
    institute_name: str
    institute_category: InstituteCategory
    pincode: str
    gender: str | None = None
    date_of_birth: date | None = None
    alternate_email: str | None = None
    address: str | None = None
    profile_picture: str | None = None


logger = logging.getLogger(__name__)


def hash_reset_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class AuthService:
    def __init__(self, settings: Settings, db: Session):
        self.settings = settings
        self.db = db
        self.store = RefreshTokenStore(db)
        self.issuer = TokenIssuer(settings, self.store)
        self.verifier = TokenVerifier(settings)

    def login(self, email: str, password: str, client: ClientInfo | None = None) -> TokenPair:
        client = client or ClientInfo()
        user = CredentialVerifier(self.db).verify(email, password, client)
        pair = self.issue_tokens(user)
        user.last_login_at = utcnow()
        self.db.commit()
        record_login(self.db, client=client, success=True, user_id=user.id, email=user.email)
        logger.info("User %s logged in", user.id)
        return pair

    def issue_tokens(self, user: User) -> TokenPair:
        access_token = self.issuer.issue_access_token(user)
        refresh_token = self.issuer.issue_refresh_token(user)
        return TokenPair(access_token=access_token, refresh_token=refresh_token, user=user)

    def refresh(self, refresh_token: str) -> TokenPair:
        claims = self.verifier.verify_refresh(refresh_token)
        stored = self.store.get(refresh_token)
        if stored is None or stored.user_id != claims.user_id:
            raise InvalidToken("Refresh token is not on the allowlist")
        if stored.is_revoked or stored.expires_at <= utcnow():
            raise TokenRevoked("Refresh token is revoked or expired")

        user = self.db.get(User, claims.user_id)
        if user is None or not user.is_active:
            raise InvalidToken("Refresh for missing or deactivated account")

        replacement, expires_at = self.issuer.build_refresh_token(user)
        self.store.rotate(refresh_token, replacement, user.id, expires_at)
        access_token = self.issuer.issue_access_token(user)
        return TokenPair(access_token=access_token, refresh_token=replacement, user=user)

    def logout(self, refresh_token: str | None) -> None:
        if not refresh_token:
            return
        if self.store.revoke(refresh_token):
            logger.info("Refresh token revoked on logout")

    def register(self, registration: Registration) -> User:
        email = normalize_email(registration.email)
        if get_user_by_email(self.db, email) is not None:
            raise UserAlreadyExists(f"Email {email} already registered")
        if self.db.query(User).filter(User.hssc_id == registration.hssc_id).first() is not None:
            raise UserAlreadyExists(f"HSSC ID {registration.hssc_id} already registered")

        user = User(
            full_name=registration.full_name.strip(),
            email=email,
            password=hash_password(registration.password, self.settings.BCRYPT_ROUNDS),
            role=registration.role,
            hssc_id=registration.hssc_id,
            mobile_number=registration.mobile_number,
            institute_name=registration.institute_name,
            institute_category=registration.institute_category,
            pincode=registration.pincode,
            gender=registration.gender,
            date_of_birth=registration.date_of_birth,
            alternate_email=registration.alternate_email or None,
            address=registration.address,
            profile_picture=registration.profile_picture or None,
        )
        self.db.add(user)
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise UserAlreadyExists(f"Concurrent registration for {email}") from exc
        self.db.refresh(user)
        return user

    def change_password(self, user: User, current_password: str | None, new_password: str) -> None:
        # Externally authenticated accounts may set a first password without one.
        if not user.has_external_password:
            if not verify_password(current_password or "", user.password):
                raise BadPassword("Current password is incorrect")
        user.password = hash_password(new_password, self.settings.BCRYPT_ROUNDS)
        self.db.commit()

    def request_password_reset(self, email: str, notifier: ResetNotifier) -> None:
        """Issue a single-use reset link; unknown accounts are ignored so callers cannot tell them apart."""
        user = get_user_by_email(self.db, email)
        if user is None or not user.is_active:
            logger.info("Password reset requested for unknown or inactive account")
            return

        token = secrets.token_hex(32)
        user.reset_token = hash_reset_token(token)
        user.reset_token_expiry = utcnow() + timedelta(minutes=self.settings.PASSWORD_RESET_EXPIRES_MINUTES)
        self.db.commit()

        reset_url = append_query(
            f"{self.settings.FRONTEND_URL.rstrip('/')}/reset-password",
            {"token": token, "email": user.email},
        )
        try:
            notifier.send_password_reset(user.email, user.full_name, reset_url)
        except Exception:
            logger.exception("Password reset delivery failed for user %s", user.id)
            return
        logger.info("Password reset issued for user %s", user.id)

    def validate_reset_token(self, email: str, token: str) -> User:
        user = self.db.execute(
            select(User).where(
                User.email == normalize_email(email),
                User.reset_token == hash_reset_token(token),
                User.reset_token_expiry > utcnow(),
                User.is_active.is_(True),
            )
        ).scalar_one_or_none()
        if user is None:
            raise InvalidResetToken("Reset token does not match an outstanding request")
        return user

    def reset_password(self, email: str, token: str, new_password: str) -> None:
        password_hash = hash_password(new_password, self.settings.BCRYPT_ROUNDS)
        # Clearing the token in the same statement makes each link usable once.
        result = self.db.execute(
            update(User)
            .where(
                User.email == normalize_email(email),
                User.reset_token == hash_reset_token(token),
                User.reset_token_expiry > utcnow(),
                User.is_active.is_(True),
            )
            .values(password=password_hash, reset_token=None, reset_token_expiry=None, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        if result.rowcount != 1:
            raise InvalidResetToken("Reset token was used, expired or never issued")
        logger.info("Password reset completed for %s", redact_email(normalize_email(email)))
