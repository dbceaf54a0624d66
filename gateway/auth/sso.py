"""LMS federation: SSO assertions for LearnWorlds and its SSO API."""

import logging
from datetime import date, timedelta
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

import httpx

from gateway.auth.jwt_handler import encode_token
from gateway.core.config import Settings
from gateway.core.errors import ConfigurationError, InvalidRedirect, UpstreamUnavailable
from gateway.models.user import User

logger = logging.getLogger(__name__)


def split_full_name(full_name: str | None) -> tuple[str, str]:
    first, _, last = (full_name or "").strip().partition(" ")
    return first, last.strip()


def _isoformat(value: date | None) -> str | None:
    return value.isoformat() if value is not None else None


def _enum_value(value: Any) -> Any:
    return getattr(value, "value", value)


def build_sso_claims(user: User) -> dict[str, Any]:
    first_name, last_name = split_full_name(user.full_name)
    return {
        "user_id": user.id,
        "email": user.email,
        "name": user.full_name,
        "role": _enum_value(user.role),
        "hssc_id": user.hssc_id,
        "institute": user.institute_name,
        "institute_category": _enum_value(user.institute_category),
        "first_name": first_name,
        "last_name": last_name,
        "username": user.email,
        "avatar": user.profile_picture or "",
        "custom_fields": {
            "mobile_number": user.mobile_number,
            "pincode": user.pincode,
            "gender": user.gender,
            "date_of_birth": _isoformat(user.date_of_birth),
            "alternate_email": user.alternate_email,
            "address": user.address,
        },
    }


def append_query(url: str, params: dict[str, str]) -> str:
    parsed = urlparse(url)
    query = dict(parse_qsl(parsed.query))
    query.update(params)
    return urlunparse(parsed._replace(query=urlencode(query)))


class SSOMinter:
    """Signs LMS-facing assertions with the secret shared with the LMS.

    The gateway never reads these tokens back; the LMS is the only verifier.
    """

    def __init__(self, settings: Settings):
        self.settings = settings

    def mint(self, user: User) -> str:
        if not self.settings.LMS_CLIENT_SECRET:
            raise ConfigurationError("LMS_CLIENT_SECRET is not configured")
        return encode_token(
            build_sso_claims(user),
            self.settings.LMS_CLIENT_SECRET,
            self.settings.JWT_ALGORITHM,
            timedelta(minutes=self.settings.SSO_TOKEN_EXPIRES_MINUTES),
        )

    def resolve_target(self, redirect_url: str | None) -> str:
        """Pick the LMS landing URL; caller-supplied URLs must stay on the LMS host."""
        if not self.settings.LMS_AUTH_URL:
            raise ConfigurationError("LMS_AUTH_URL is not configured")
        if not redirect_url:
            return self.settings.LMS_AUTH_URL
        allowed_host = urlparse(self.settings.LMS_AUTH_URL).netloc.lower()
        parsed = urlparse(redirect_url)
        if parsed.scheme not in {"http", "https"} or parsed.netloc.lower() != allowed_host:
            raise InvalidRedirect(f"Rejected redirect to {parsed.netloc}")
        return redirect_url

    def build_sso_url(self, user: User, redirect_url: str | None = None) -> str:
        target = self.resolve_target(redirect_url)
        return append_query(target, {"sso_token": self.mint(user)})


class LearnWorldsClient:
    """Client for the LearnWorlds ``/admin/api/sso`` endpoint."""

    def __init__(self, settings: Settings, transport: httpx.BaseTransport | None = None):
        self.settings = settings
        self.transport = transport

    def create_sso_url(self, *, user_id: str, email: str, username: str, redirect_url: str | None) -> dict[str, Any]:
        if not (self.settings.LMS_CLIENT_ID and self.settings.LMS_ACCESS_TOKEN and self.settings.LMS_AUTH_URL):
            raise ConfigurationError("LearnWorlds credentials not configured")

        endpoint = f"{self.settings.LMS_AUTH_URL.rstrip('/')}/admin/api/sso"
        headers = {
            "Lw-Client": self.settings.LMS_CLIENT_ID,
            "Authorization": f"Bearer {self.settings.LMS_ACCESS_TOKEN}",
        }
        body = {"email": email, "username": username, "redirectUrl": redirect_url, "user_id": user_id}
        try:
            with httpx.Client(
                timeout=self.settings.LMS_HTTP_TIMEOUT_SECONDS,
                transport=self.transport,
                follow_redirects=False,
            ) as client:
                response = client.post(endpoint, json=body, headers=headers)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as exc:
            logger.error("LearnWorlds SSO API returned %s", exc.response.status_code)
            raise UpstreamUnavailable(f"LearnWorlds SSO failed: {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            logger.error("LearnWorlds SSO API unreachable: %s", exc)
            raise UpstreamUnavailable("LearnWorlds SSO API unreachable") from exc
        except ValueError as exc:
            raise UpstreamUnavailable("LearnWorlds SSO API returned invalid JSON") from exc

        if not isinstance(data, dict) or not data.get("url"):
            raise UpstreamUnavailable("LearnWorlds SSO API response has no url")
        return {"success": True, "url": data["url"], "user_id": data.get("user_id", user_id)}

