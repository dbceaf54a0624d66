from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from gateway.auth.dependencies import get_auth_service, get_current_user
from gateway.auth.service import AuthService
from gateway.core.errors import BadPassword
from gateway.database import get_db
from gateway.models.user import User
from gateway.routes.schemas import ProfileUpdate, serialize_user, validate_password_strength

router = APIRouter(tags=['user'])


class ChangePasswordRequest(BaseModel):
    currentPassword: str | None = None
    newPassword: str

    @field_validator('newPassword')
    @classmethod
    def validate_new_password(cls, value: str) -> str:
        return validate_password_strength(value)


def apply_updates(user: User, updates: BaseModel) -> None:
    columns = User.__table__.columns
    for field_name, value in updates.model_dump(exclude_unset=True).items():
        if value is None and not columns[field_name].nullable:
            continue
        setattr(user, field_name, value)


@router.get('/profile')
def get_profile(current_user: User = Depends(get_current_user)):
    return {'user': serialize_user(current_user)}


@router.put('/profile')
def update_profile(
    payload: ProfileUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    apply_updates(current_user, payload)
    db.commit()
    db.refresh(current_user)
    return {'message': 'Profile updated successfully', 'user': serialize_user(current_user)}


@router.post('/change-password')
def change_password(
    payload: ChangePasswordRequest,
    current_user: User = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
):
    try:
        service.change_password(current_user, payload.currentPassword, payload.newPassword)
    except BadPassword as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Current password is incorrect') from exc
    return {'message': 'Password changed successfully'}
