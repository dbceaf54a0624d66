import base64
import binascii
import copy
import logging
import uuid
from dataclasses import dataclass
from functools import lru_cache
from urllib.parse import urlparse

from lxml import etree
from onelogin.saml2.auth import OneLogin_Saml2_Auth
from onelogin.saml2.errors import OneLogin_Saml2_Error
from onelogin.saml2.idp_metadata_parser import OneLogin_Saml2_IdPMetadataParser
from onelogin.saml2.settings import OneLogin_Saml2_Settings
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from gateway.auth.audit import ClientInfo, record_login
from gateway.auth.credentials import get_user_by_email, normalize_email
from gateway.auth.tokens import TokenIssuer
from gateway.core.config import Settings
from gateway.core.errors import (
    AccountInactive,
    ConfigurationError,
    InvalidCredentials,
    MalformedSAMLResponse,
    UpstreamUnavailable,
)
from gateway.database import utcnow
from gateway.models.user import SAML_PASSWORD_SENTINEL, InstituteCategory, Role, User

logger = logging.getLogger(__name__)

METADATA_FETCH_TIMEOUT_SECONDS = 10
SAMLP_NAMESPACE = "urn:oasis:names:tc:SAML:2.0:protocol"
EMAIL_ATTRIBUTES = (
    "email",
    "Email",
    "mail",
    "http://schemas.xmlsoap.org/ws/2005/05/identity/claims/emailaddress",
)
NAME_ATTRIBUTES = (
    "displayName",
    "name",
    "cn",
    "http://schemas.xmlsoap.org/ws/2005/05/identity/claims/name",
)


def build_saml_settings(settings: Settings) -> dict:
    base_settings = {
        "strict": settings.SAML_STRICT,
        "debug": settings.SAML_DEBUG,
        "sp": {
            "entityId": settings.SAML_SP_ENTITY_ID,
            "assertionConsumerService": {
                "url": settings.SAML_SP_ACS_URL,
                "binding": "urn:oasis:names:tc:SAML:2.0:bindings:HTTP-POST",
            },
            "singleLogoutService": {
                "url": settings.SAML_SP_SLO_URL,
                "binding": "urn:oasis:names:tc:SAML:2.0:bindings:HTTP-Redirect",
            },
            "x509cert": settings.SAML_SP_X509CERT,
            "privateKey": settings.SAML_SP_PRIVATE_KEY,
            "NameIDFormat": settings.SAML_SP_NAMEID_FORMAT,
        },
        "idp": {
            "entityId": settings.SAML_IDP_ENTITY_ID,
            "singleSignOnService": {
                "url": settings.SAML_IDP_SSO_URL,
                "binding": "urn:oasis:names:tc:SAML:2.0:bindings:HTTP-Redirect",
            },
            "singleLogoutService": {
                "url": settings.SAML_IDP_SLO_URL,
                "binding": "urn:oasis:names:tc:SAML:2.0:bindings:HTTP-Redirect",
            },
            "x509cert": settings.SAML_IDP_X509CERT,
        },
        "security": {
            "wantAssertionsSigned": True,
            "wantMessagesSigned": False,
        },
    }
    if settings.SAML_IDP_METADATA_PATH:
        idp_data = copy.deepcopy(load_idp_metadata(settings.SAML_IDP_METADATA_PATH))
        return OneLogin_Saml2_IdPMetadataParser.merge_settings(base_settings, idp_data)
    return base_settings


@lru_cache(maxsize=8)
def load_idp_metadata(source: str) -> dict:
    """Fetch and parse IdP metadata once per process; failures are not cached."""
    remote = source.startswith(("http://", "https://"))
    try:
        if remote:
            return OneLogin_Saml2_IdPMetadataParser.parse_remote(source, timeout=METADATA_FETCH_TIMEOUT_SECONDS)
        with open(source, encoding="utf-8") as metadata_file:
            return OneLogin_Saml2_IdPMetadataParser.parse(metadata_file.read())
    except OSError as exc:
        if remote:
            logger.error("IdP metadata fetch from %s failed: %s", source, exc)
            raise UpstreamUnavailable("IdP metadata could not be fetched") from exc
        raise ConfigurationError(f"IdP metadata file {source} is not readable") from exc
    except (OneLogin_Saml2_Error, etree.XMLSyntaxError, ValueError) as exc:
        raise ConfigurationError(f"IdP metadata from {source} is invalid: {exc}") from exc


def init_saml_auth(request_data: dict, settings: Settings) -> OneLogin_Saml2_Auth:
    saml_settings = build_saml_settings(settings)
    try:
        return OneLogin_Saml2_Auth(request_data, saml_settings)
    except OneLogin_Saml2_Error as exc:
        raise ConfigurationError(f"SAML settings are incomplete: {exc}") from exc


def build_request_data(url: str, host: str, path: str, query_params: dict, form_data: dict) -> dict:
    parsed = urlparse(url)
    scheme = "https" if parsed.scheme == "https" else "http"
    port = parsed.port or (443 if scheme == "https" else 80)
    return {
        "https": "on" if scheme == "https" else "off",
        "http_host": host,
        "server_port": str(port),
        "script_name": path,
        "get_data": query_params,
        "post_data": form_data,
    }


def generate_sp_metadata(settings: Settings) -> tuple[str, list[str]]:
    try:
        saml_settings = OneLogin_Saml2_Settings(build_saml_settings(settings), sp_validation_only=True)
    except OneLogin_Saml2_Error as exc:
        raise ConfigurationError(f"SP settings are invalid: {exc}") from exc
    metadata = saml_settings.get_sp_metadata()
    errors = saml_settings.validate_metadata(metadata)
    if isinstance(metadata, bytes):
        metadata = metadata.decode("utf-8")
    return metadata, errors


def decode_saml_response(raw: str | None) -> bytes:
    """Base64-decode a posted SAMLResponse and check it is a samlp:Response document."""
    if not raw:
        raise MalformedSAMLResponse("No SAML response provided")
    try:
        document = base64.b64decode(raw, validate=False)
    except (binascii.Error, ValueError) as exc:
        raise MalformedSAMLResponse("SAMLResponse is not valid base64") from exc
    parser = etree.XMLParser(resolve_entities=False, no_network=True)
    try:
        root = etree.fromstring(document, parser=parser)
    except etree.XMLSyntaxError as exc:
        raise MalformedSAMLResponse("SAMLResponse is not well-formed XML") from exc
    if root.tag != f"{{{SAMLP_NAMESPACE}}}Response":
        raise MalformedSAMLResponse(f"Unexpected SAML root element {root.tag}")
    return document


def _has_unsafe_characters(value: str) -> bool:
    # Browsers read "\" as "/" and drop tabs and newlines, turning "/\host" into "//host".
    return "\\" in value or any(ord(char) < 0x20 or ord(char) == 0x7F for char in value)


def safe_relay_state(relay_state: str | None, settings: Settings) -> str:
    """Only follow RelayState to local paths or the configured frontend."""
    if not relay_state:
        return settings.SAML_DEFAULT_REDIRECT
    if _has_unsafe_characters(relay_state):
        logger.warning("Ignoring RelayState with unsafe characters")
        return settings.SAML_DEFAULT_REDIRECT
    try:
        parsed = urlparse(relay_state)
    except ValueError:
        logger.warning("Ignoring unparsable RelayState")
        return settings.SAML_DEFAULT_REDIRECT
    if not parsed.scheme and not parsed.netloc and relay_state.startswith("/") and not relay_state.startswith("//"):
        return relay_state
    frontend = urlparse(settings.FRONTEND_URL)
    if parsed.scheme in {"http", "https"} and parsed.netloc.lower() == frontend.netloc.lower():
        return relay_state
    logger.warning("Ignoring off-site RelayState %s", parsed.netloc)
    return settings.SAML_DEFAULT_REDIRECT


def _first_attribute(attributes: dict, names: tuple[str, ...]) -> str | None:
    for name in names:
        values = attributes.get(name) or []
        if values and values[0]:
            return values[0].strip()
    return None


@dataclass(frozen=True)
class SAMLIdentity:
    email: str
    name: str | None
    name_id: str | None


@dataclass(frozen=True)
class SAMLLoginResult:
    access_token: str
    refresh_token: str
    redirect_target: str
    user: User
    created: bool


class SAMLBridge:
    """Turns a verified SAML assertion into a local user and a token pair."""

    def __init__(self, settings: Settings, db: Session, issuer: TokenIssuer):
        self.settings = settings
        self.db = db
        self.issuer = issuer

    def authenticate(self, request_data: dict) -> SAMLIdentity:
        decode_saml_response(request_data.get("post_data", {}).get("SAMLResponse"))

        auth = init_saml_auth(request_data, self.settings)
        auth.process_response()
        errors = auth.get_errors()
        if errors:
            logger.warning("SAML response rejected: %s (%s)", errors, auth.get_last_error_reason())
            raise MalformedSAMLResponse(f"SAML validation errors: {errors}")
        if not auth.is_authenticated():
            raise InvalidCredentials("SAML authentication failed")

        attributes = auth.get_attributes() or {}
        name_id = auth.get_nameid()
        email = normalize_email(_first_attribute(attributes, EMAIL_ATTRIBUTES) or name_id)
        if not email or "@" not in email:
            raise MalformedSAMLResponse("Email not found in SAML response")
        return SAMLIdentity(email=email, name=_first_attribute(attributes, NAME_ATTRIBUTES), name_id=name_id)

    def find_or_provision(self, identity: SAMLIdentity) -> tuple[User, bool]:
        user = get_user_by_email(self.db, identity.email)
        if user is not None:
            return user, False

        user = User(
            email=identity.email,
            full_name=identity.name or identity.email.split("@")[0],
            hssc_id=f"SAML_{uuid.uuid4().hex}",
            role=Role.STUDENT,
            institute_name="SAML User",
            institute_category=InstituteCategory.OTHER,
            password=SAML_PASSWORD_SENTINEL,
            is_active=True,
            email_verified=True,
        )
        self.db.add(user)
        try:
            self.db.commit()
        except IntegrityError:
            # Another ACS request provisioned the same email first.
            self.db.rollback()
            existing = get_user_by_email(self.db, identity.email)
            if existing is None:
                raise
            return existing, False
        logger.info("Provisioned SAML user %s", user.id)
        return user, True

    def handle_acs(self, request_data: dict, client: ClientInfo | None = None) -> SAMLLoginResult:
        client = client or ClientInfo()
        identity = self.authenticate(request_data)
        user, created = self.find_or_provision(identity)
        if not user.is_active:
            record_login(
                self.db,
                client=client,
                success=False,
                user_id=user.id,
                email=user.email,
                event="saml",
                reason=AccountInactive.reason,
            )
            raise AccountInactive(f"Account {user.id} is deactivated")

        access_token = self.issuer.issue_access_token(user)
        refresh_token = self.issuer.issue_refresh_token(user)
        user.last_login_at = utcnow()
        self.db.commit()
        record_login(self.db, client=client, success=True, user_id=user.id, email=user.email, event="saml")

        relay_state = request_data.get("post_data", {}).get("RelayState")
        return SAMLLoginResult(
            access_token=access_token,
            refresh_token=refresh_token,
            redirect_target=safe_relay_state(relay_state, self.settings),
            user=user,
            created=created,
        )
