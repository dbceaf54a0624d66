import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from gateway.auth.audit import ClientInfo, record_login
from gateway.auth.passwords import verify_password
from gateway.core.errors import AccountInactive, BadPassword, InvalidCredentials, UserNotFound, WrongProvider
from gateway.models.user import User

logger = logging.getLogger(__name__)


def normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


def get_user_by_email(db: Session, email: str) -> User | None:
    return db.execute(select(User).where(User.email == normalize_email(email))).scalar_one_or_none()


class CredentialVerifier:
    def __init__(self, db: Session):
        self.db = db

    def verify(self, email: str, password: str, client: ClientInfo | None = None) -> User:
        """Return the user owning these credentials.

        Raises a subclass of ``InvalidCredentials`` naming the failed check and
        records the failed attempt in the login log.
        """
        client = client or ClientInfo()
        normalized = normalize_email(email)
        user = get_user_by_email(self.db, normalized)
        try:
            if user is None:
                raise UserNotFound(f"No account for {normalized}")
            if not user.is_active:
                raise AccountInactive(f"Account {user.id} is deactivated")
            if user.has_external_password:
                raise WrongProvider(f"Account {user.id} signs in through an external provider")
            if not verify_password(password or "", user.password):
                raise BadPassword(f"Wrong password for account {user.id}")
        except InvalidCredentials as exc:
            logger.info("Login rejected: %s", exc.reason)
            record_login(
                self.db,
                client=client,
                success=False,
                user_id=user.id if user is not None else None,
                email=normalized,
                reason=exc.reason,
            )
            raise
        return user
