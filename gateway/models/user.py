"""User model definitions."""

import enum
import uuid

from sqlalchemy import Boolean, Column, Date, DateTime, Enum, String

from gateway.database import Base, utcnow


class Role(str, enum.Enum):
    STUDENT = "STUDENT"
    TEACHER = "TEACHER"
    ADMIN = "ADMIN"
    LMS_ADMIN = "LMS_ADMIN"


class InstituteCategory(str, enum.Enum):
    SCHOOL = "SCHOOL"
    COLLEGE = "COLLEGE"
    PRIVATE = "PRIVATE"
    INDUSTRY = "INDUSTRY"
    OTHER = "OTHER"


ADMIN_ROLES = frozenset({Role.ADMIN, Role.LMS_ADMIN})

# Stored in place of a bcrypt hash for accounts that authenticate elsewhere.
OAUTH_PASSWORD_SENTINEL = "oauth_user"
SAML_PASSWORD_SENTINEL = "saml_user"
EXTERNAL_PASSWORD_SENTINELS = frozenset({OAUTH_PASSWORD_SENTINEL, SAML_PASSWORD_SENTINEL, ""})


def is_admin(role: Role | str | None) -> bool:
    """Single authorization predicate for admin-only operations."""
    if role is None:
        return False
    try:
        return Role(role) in ADMIN_ROLES
    except ValueError:
        return False


def is_external_password(password: str | None) -> bool:
    return password is None or password in EXTERNAL_PASSWORD_SENTINELS


def _new_id() -> str:
    return uuid.uuid4().hex


class User(Base):
    """Represents an identity known to the gateway."""
    __tablename__ = "users"

    id = Column(String(32), primary_key=True, default=_new_id)
    full_name = Column(String, nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    password = Column(String, nullable=False, default="")
    role = Column(Enum(Role, name="user_role"), nullable=False, default=Role.STUDENT)
    hssc_id = Column(String, unique=True, index=True, nullable=False)
    mobile_number = Column(String, nullable=False, default="")
    institute_name = Column(String, nullable=False, default="")
    institute_category = Column(
        Enum(InstituteCategory, name="institute_category"),
        nullable=False,
        default=InstituteCategory.OTHER,
    )
    pincode = Column(String, nullable=False, default="")
    gender = Column(String)
    date_of_birth = Column(Date)
    alternate_email = Column(String)
    address = Column(String)
    profile_picture = Column(String)
    is_active = Column(Boolean, nullable=False, default=True)
    email_verified = Column(Boolean, nullable=False, default=False)
    last_login_at = Column(DateTime)
    # sha256 hex digest of the outstanding reset token; the token itself is never stored.
    reset_token = Column(String(64))
    reset_token_expiry = Column(DateTime)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    @property
    def has_external_password(self) -> bool:
        return is_external_password(self.password)
