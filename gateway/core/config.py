import os
from functools import lru_cache

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_list(value: str | None, default: list[str]) -> tuple[str, ...]:
    if not value:
        return tuple(default)
    return tuple(item.strip() for item in value.split(",") if item.strip())


class Settings(BaseModel):
    """Process-wide configuration, built once at startup and passed to components."""

    model_config = ConfigDict(frozen=True)

    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"
    DATABASE_URL: str = "sqlite:///./gateway.db"
    CORS_ORIGINS: tuple[str, ...] = ("http://localhost:3000",)

    JWT_SECRET: str = ""
    JWT_REFRESH_SECRET: str = ""
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRES_MINUTES: int = 15
    REFRESH_TOKEN_EXPIRES_DAYS: int = 7
    BCRYPT_ROUNDS: int = 12
    PASSWORD_RESET_EXPIRES_MINUTES: int = 60

    LMS_CLIENT_SECRET: str = ""
    LMS_CLIENT_ID: str = ""
    LMS_ACCESS_TOKEN: str = ""
    LMS_AUTH_URL: str = ""
    SSO_TOKEN_EXPIRES_MINUTES: int = 5
    LMS_HTTP_TIMEOUT_SECONDS: float = 10.0

    FRONTEND_URL: str = "http://localhost:3000"
    SAML_DEFAULT_REDIRECT: str = "/dashboard"

    SAML_STRICT: bool = True
    SAML_DEBUG: bool = False
    SAML_SP_ENTITY_ID: str = "http://localhost:8000/api/saml/metadata"
    SAML_SP_ACS_URL: str = "http://localhost:8000/api/saml/acs"
    SAML_SP_SLO_URL: str = "http://localhost:8000/api/saml/logout"
    SAML_SP_X509CERT: str = ""
    SAML_SP_PRIVATE_KEY: str = ""
    SAML_SP_NAMEID_FORMAT: str = "urn:oasis:names:tc:SAML:1.1:nameid-format:emailAddress"
    SAML_IDP_ENTITY_ID: str = ""
    SAML_IDP_SSO_URL: str = ""
    SAML_IDP_SLO_URL: str = ""
    SAML_IDP_X509CERT: str = ""
    SAML_IDP_METADATA_PATH: str = ""

    @property
    def is_production(self) -> bool:
        return self.APP_ENV.lower() == "production"

    @classmethod
    def from_env(cls) -> "Settings":
        sp_base_url = os.getenv("SAML_SP_BASE_URL", "http://localhost:8000")
        return cls(
            APP_ENV=os.getenv("APP_ENV", "development"),
            LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO"),
            DATABASE_URL=os.getenv("DATABASE_URL", "sqlite:///./gateway.db"),
            CORS_ORIGINS=_get_list(os.getenv("CORS_ORIGINS"), ["http://localhost:3000"]),
            JWT_SECRET=os.getenv("JWT_SECRET", ""),
            JWT_REFRESH_SECRET=os.getenv("JWT_REFRESH_SECRET", ""),
            JWT_ALGORITHM=os.getenv("JWT_ALGORITHM", "HS256"),
            ACCESS_TOKEN_EXPIRES_MINUTES=int(os.getenv("ACCESS_TOKEN_EXPIRES_MINUTES", "15")),
            REFRESH_TOKEN_EXPIRES_DAYS=int(os.getenv("REFRESH_TOKEN_EXPIRES_DAYS", "7")),
            BCRYPT_ROUNDS=int(os.getenv("BCRYPT_ROUNDS", "12")),
            PASSWORD_RESET_EXPIRES_MINUTES=int(os.getenv("PASSWORD_RESET_EXPIRES_MINUTES", "60")),
            LMS_CLIENT_SECRET=os.getenv("LMS_CLIENT_SECRET", ""),
            LMS_CLIENT_ID=os.getenv("LMS_CLIENT_ID", ""),
            LMS_ACCESS_TOKEN=os.getenv("LMS_ACCESS_TOKEN", ""),
            LMS_AUTH_URL=os.getenv("LMS_AUTH_URL", ""),
            SSO_TOKEN_EXPIRES_MINUTES=int(os.getenv("SSO_TOKEN_EXPIRES_MINUTES", "5")),
            LMS_HTTP_TIMEOUT_SECONDS=float(os.getenv("LMS_HTTP_TIMEOUT_SECONDS", "10")),
            FRONTEND_URL=os.getenv("FRONTEND_URL", "http://localhost:3000"),
            SAML_DEFAULT_REDIRECT=os.getenv("SAML_DEFAULT_REDIRECT", "/dashboard"),
            SAML_STRICT=_get_bool(os.getenv("SAML_STRICT"), default=True),
            SAML_DEBUG=_get_bool(os.getenv("SAML_DEBUG"), default=False),
            SAML_SP_ENTITY_ID=os.getenv("SAML_SP_ENTITY_ID", f"{sp_base_url}/api/saml/metadata"),
            SAML_SP_ACS_URL=os.getenv("SAML_SP_ACS_URL", f"{sp_base_url}/api/saml/acs"),
            SAML_SP_SLO_URL=os.getenv("SAML_SP_SLO_URL", f"{sp_base_url}/api/saml/logout"),
            SAML_SP_X509CERT=os.getenv("SAML_SP_X509CERT", ""),
            SAML_SP_PRIVATE_KEY=os.getenv("SAML_SP_PRIVATE_KEY", ""),
            SAML_SP_NAMEID_FORMAT=os.getenv(
                "SAML_SP_NAMEID_FORMAT",
                "urn:oasis:names:tc:SAML:1.1:nameid-format:emailAddress",
            ),
            SAML_IDP_ENTITY_ID=os.getenv("SAML_IDP_ENTITY_ID", ""),
            SAML_IDP_SSO_URL=os.getenv("SAML_IDP_SSO_URL", ""),
            SAML_IDP_SLO_URL=os.getenv("SAML_IDP_SLO_URL", ""),
            SAML_IDP_X509CERT=os.getenv("SAML_IDP_X509CERT", ""),
            SAML_IDP_METADATA_PATH=os.getenv("SAML_IDP_METADATA_PATH", ""),
        )


def validate_runtime_config(settings: Settings) -> None:
    if not settings.is_production:
        return
    missing = [
        name
        for name in ("JWT_SECRET", "JWT_REFRESH_SECRET")
        if not getattr(settings, name)
    ]
    if missing:
        raise RuntimeError(f"{', '.join(missing)} must be set in production.")
    if settings.JWT_SECRET == settings.JWT_REFRESH_SECRET:
        raise RuntimeError("JWT_SECRET and JWT_REFRESH_SECRET must differ in production.")


@lru_cache
def get_settings() -> Settings:
    load_dotenv()
    return Settings.from_env()
