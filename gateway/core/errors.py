"""Error taxonomy shared by the auth core and the HTTP layer.

Each error carries the HTTP status it maps to and a public ``message`` that is
safe to return to callers. Anything more specific belongs in ``detail``, which
is only ever logged.
"""


class GatewayError(Exception):
    status_code = 500
    message = "Internal server error"
    code = "internal_error"

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.message
        super().__init__(self.detail)


class InvalidCredentials(GatewayError):
    status_code = 401
    message = "Invalid email or password"
    code = "invalid_credentials"
    reason = "invalid_credentials"


class UserNotFound(InvalidCredentials):
    reason = "user_not_found"


class AccountInactive(InvalidCredentials):
    reason = "account_inactive"


class WrongProvider(InvalidCredentials):
    reason = "wrong_provider"


class BadPassword(InvalidCredentials):
    reason = "bad_password"


class InvalidToken(GatewayError):
    status_code = 401
    message = "Invalid token"
    code = "invalid_token"


class ExpiredToken(GatewayError):
    status_code = 401
    message = "Token expired"
    code = "token_expired"


class TokenRevoked(InvalidToken):
    message = "Refresh token is invalid or expired"
    code = "token_revoked"


class MalformedSAMLResponse(GatewayError):
    status_code = 400
    message = "Invalid SAML response"
    code = "malformed_saml_response"


class ConfigurationError(GatewayError):
    status_code = 500
    message = "Server is not configured for this operation"
    code = "configuration_error"


class UpstreamUnavailable(GatewayError):
    status_code = 503
    message = "Upstream service unavailable, please retry"
    code = "upstream_unavailable"


class UserAlreadyExists(GatewayError):
    status_code = 409
    message = "Email address already registered"
    code = "user_already_exists"


class InvalidResetToken(GatewayError):
    status_code = 400
    message = "Invalid or expired reset token"
    code = "invalid_reset_token"


class InvalidRedirect(GatewayError):
    status_code = 400
    message = "redirect_url must point at the configured LMS"
    code = "invalid_redirect"
