import re
from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel

from gateway.models.user import InstituteCategory, Role, User

PASSWORD_PATTERN = re.compile(r"^(?=.*[A-Z])(?=.*\d)(?=.*[@$!%*?&])")
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True, alias_generator=to_camel, populate_by_name=True)

    id: str
    full_name: str
    email: str
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
    is_active: bool
    email_verified: bool
    last_login_at: datetime | None = None
    created_at: datetime | None = None


def serialize_user(user: User) -> dict:
    return UserResponse.model_validate(user).model_dump(by_alias=True, mode="json")


class ProfileUpdate(BaseModel):
    """Fields a user may change on their own profile."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    full_name: str | None = None
    mobile_number: str | None = None
    institute_name: str | None = None
    institute_category: InstituteCategory | None = None
    pincode: str | None = None
    gender: str | None = None
    date_of_birth: date | None = None
    alternate_email: str | None = None
    address: str | None = None
    profile_picture: str | None = None

    @field_validator("full_name")
    @classmethod
    def validate_full_name(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip()
        if len(normalized) < 2:
            raise ValueError("Full name must be at least 2 characters")
        return normalized

    @field_validator("mobile_number")
    @classmethod
    def validate_mobile_number(cls, value: str | None) -> str | None:
        if value is not None and not re.fullmatch(r"\d{10}", value):
            raise ValueError("Mobile number must be 10 digits")
        return value

    @field_validator("alternate_email")
    @classmethod
    def validate_alternate_email(cls, value: str | None) -> str | None:
        if not value:
            return None
        return validate_email_address(value)

    @field_validator("pincode")
    @classmethod
    def validate_pincode(cls, value: str | None) -> str | None:
        if value is not None and not re.fullmatch(r"\d{6}", value):
            raise ValueError("Pincode must be 6 digits")
        return value


class AdminUserUpdate(ProfileUpdate):
    email: str | None = None
    hssc_id: str | None = None
    role: Role | None = None
    is_active: bool | None = None
    email_verified: bool | None = None

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str | None) -> str | None:
        return validate_email_address(value) if value is not None else None


class NewUserFields(BaseModel):
    """Account fields shared by self-registration and admin creation."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    full_name: str
    email: str
    mobile_number: str
    hssc_id: str
    password: str
    role: Role
    institute_name: str
    institute_category: InstituteCategory
    pincode: str
    gender: str | None = None
    date_of_birth: date | None = None
    alternate_email: str | None = None
    address: str | None = None

    @field_validator("full_name")
    @classmethod
    def validate_full_name(cls, value: str) -> str:
        normalized = value.strip()
        if len(normalized) < 2:
            raise ValueError("Full name must be at least 2 characters")
        return normalized

    @field_validator("email")
    @classmethod
    def validate_email(cls, value: str) -> str:
        return validate_email_address(value)

    @field_validator("alternate_email")
    @classmethod
    def validate_alternate_email(cls, value: str | None) -> str | None:
        return validate_email_address(value) if value else None

    @field_validator("mobile_number")
    @classmethod
    def validate_mobile_number(cls, value: str) -> str:
        if len(value) != 10 or not value.isdigit():
            raise ValueError("Mobile number must be 10 digits")
        return value

    @field_validator("hssc_id", "institute_name")
    @classmethod
    def require_value(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("Field is required")
        return normalized

    @field_validator("pincode")
    @classmethod
    def validate_pincode(cls, value: str) -> str:
        if len(value) != 6 or not value.isdigit():
            raise ValueError("Pincode must be 6 digits")
        return value

    @field_validator("password")
    @classmethod
    def validate_password(cls, value: str) -> str:
        return validate_password_strength(value)


class AdminUserCreate(NewUserFields):
    profile_picture: str | None = None


def validate_password_strength(value: str) -> str:
    if len(value) < 8:
        raise ValueError("Password must be at least 8 characters")
    if not PASSWORD_PATTERN.match(value):
        raise ValueError(
            "Password must contain at least 1 uppercase letter, 1 number, and 1 special character"
        )
    return value


def validate_email_address(value: str) -> str:
    normalized = value.strip().lower()
    if not EMAIL_PATTERN.match(normalized):
        raise ValueError("Invalid email address")
    return normalized
