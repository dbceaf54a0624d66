"""Create an ADMIN account, or reset the password of an existing one.

Usage:
    python -m gateway.create_admin admin@hssc.org 'Admin@123' --name "HSSC Administrator"
"""
import argparse
import logging
import sys
import uuid

from sqlalchemy.orm import Session

from gateway.auth.credentials import get_user_by_email, normalize_email
from gateway.auth.passwords import hash_password
from gateway.core.config import get_settings
from gateway.core.logging import configure_logging
from gateway.database import build_engine, build_session_factory, init_schema
from gateway.models.user import InstituteCategory, Role, User

logger = logging.getLogger(__name__)


def upsert_admin(db: Session, email: str, password: str, full_name: str, rounds: int) -> tuple[User, bool]:
    email = normalize_email(email)
    user = get_user_by_email(db, email)
    created = user is None
    if created:
        user = User(
            email=email,
            full_name=full_name,
            hssc_id=f"HSSC_ADMIN_{uuid.uuid4().hex[:8].upper()}",
            institute_name="Hydrocarbon Sector Skill Council",
            institute_category=InstituteCategory.INDUSTRY,
            email_verified=True,
        )
        db.add(user)
    user.password = hash_password(password, rounds)
    user.role = Role.ADMIN
    user.is_active = True
    db.commit()
    db.refresh(user)
    return user, created


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("email")
    parser.add_argument("password")
    parser.add_argument("--name", default="HSSC Administrator")
    args = parser.parse_args(argv)

    settings = get_settings()
    configure_logging(settings)
    engine = build_engine(settings)
    init_schema(engine)
    with build_session_factory(engine)() as db:
        user, created = upsert_admin(db, args.email, args.password, args.name, settings.BCRYPT_ROUNDS)
    engine.dispose()
    logger.info("%s admin account %s", "Created" if created else "Updated", user.email)
    return 0


if __name__ == "__main__":
    sys.exit(main())
