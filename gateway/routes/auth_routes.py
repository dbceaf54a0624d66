from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, field_validator

from gateway.auth.audit import ClientInfo
from gateway.auth.dependencies import get_auth_service, get_client_info, get_current_user, get_reset_notifier
from gateway.auth.notifications import ResetNotifier
from gateway.auth.service import AuthService, Registration, TokenPair
from gateway.models.user import Role, User
from gateway.routes.schemas import NewUserFields, serialize_user, validate_password_strength

router = APIRouter(tags=['auth'])

SELF_REGISTRATION_ROLES = {Role.STUDENT, Role.TEACHER}


class LoginRequest(BaseModel):
    email: str
    password: str

    @field_validator('email')
    @classmethod
    def normalize_email(cls, value: str) -> str:
        normalized = value.strip().lower()
        if not normalized:
            raise ValueError('Email and password are required')
        return normalized

    @field_validator('password')
    @classmethod
    def require_password(cls, value: str) -> str:
        if not value:
            raise ValueError('Email and password are required')
        return value


class RefreshRequest(BaseModel):
    refreshToken: str


class LogoutRequest(BaseModel):
    refreshToken: str | None = None


class RegisterRequest(NewUserFields):
    @field_validator('role')
    @classmethod
    def validate_role(cls, value: Role) -> Role:
        if value not in SELF_REGISTRATION_ROLES:
            raise ValueError('Role is not available for registration')
        return value


class ForgotPasswordRequest(BaseModel):
    email: str

    @field_validator('email')
    @classmethod
    def require_email(cls, value: str) -> str:
        normalized = value.strip().lower()
        if not normalized:
            raise ValueError('Email is required')
        return normalized


class ResetTokenRequest(BaseModel):
    email: str
    token: str

    @field_validator('email', 'token')
    @classmethod
    def require_value(cls, value: str) -> str:
        if not value.strip():
            raise ValueError('Token and email are required')
        return value.strip()


class ResetPasswordRequest(ResetTokenRequest):
    password: str

    @field_validator('password')
    @classmethod
    def validate_password(cls, value: str) -> str:
        return validate_password_strength(value)


def token_response(message: str, pair: TokenPair) -> dict:
    return {
        'message': message,
        'user': serialize_user(pair.user),
        'accessToken': pair.access_token,
        'refreshToken': pair.refresh_token,
    }


@router.post('/login')
def login(
    payload: LoginRequest,
    service: AuthService = Depends(get_auth_service),
    client: ClientInfo = Depends(get_client_info),
):
    pair = service.login(payload.email, payload.password, client)
    return token_response('Login successful', pair)


@router.post('/refresh')
def refresh(payload: RefreshRequest, service: AuthService = Depends(get_auth_service)):
    pair = service.refresh(payload.refreshToken)
    return token_response('Tokens refreshed successfully', pair)


@router.post('/logout')
def logout(payload: LogoutRequest | None = None, service: AuthService = Depends(get_auth_service)):
    service.logout(payload.refreshToken if payload else None)
    return {'message': 'Logged out successfully'}


@router.post('/register', status_code=status.HTTP_201_CREATED)
def register(payload: RegisterRequest, service: AuthService = Depends(get_auth_service)):
    user = service.register(Registration(**payload.model_dump()))
    return {'message': 'User registered successfully', 'user': serialize_user(user)}


@router.get('/me')
def me(current_user: User = Depends(get_current_user)):
    return {'user': serialize_user(current_user)}



@router.post('/forgot-password')
def forgot_password(
    payload: ForgotPasswordRequest,
    service: AuthService = Depends(get_auth_service),
    notifier: ResetNotifier = Depends(get_reset_notifier),
):
    service.request_password_reset(payload.email, notifier)
    return {'message': 'If an account with this email exists, a password reset link has been sent.'}


@router.post('/validate-reset-token')
def validate_reset_token(payload: ResetTokenRequest, service: AuthService = Depends(get_auth_service)):
    service.validate_reset_token(payload.email, payload.token)
    return {'message': 'Token is valid'}


@router.post('/reset-password')
def reset_password(payload: ResetPasswordRequest, service: AuthService = Depends(get_auth_service)):
    service.reset_password(payload.email, payload.token, payload.password)
    return {'message': 'Password reset successfully'}
