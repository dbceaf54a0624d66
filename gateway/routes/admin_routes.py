import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from gateway.auth.dependencies import get_auth_service, require_admin
from gateway.auth.service import AuthService, Registration
from gateway.database import get_db
from gateway.models.user import Role, User
from gateway.routes.schemas import AdminUserCreate, AdminUserUpdate, serialize_user
from gateway.routes.user_routes import apply_updates

router = APIRouter(tags=['admin'])

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


def get_user_or_404(db: Session, user_id: str) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='User not found')
    return user


@router.get('/users')
def list_users(
    search: str | None = Query(default=None),
    role: Role | None = Query(default=None),
    is_active: bool | None = Query(default=None, alias='isActive'),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=MAX_PAGE_SIZE),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    query = select(User)
    if search:
        pattern = f'%{search.strip().lower()}%'
        query = query.where(
            or_(
                func.lower(User.full_name).like(pattern),
                User.email.like(pattern),
                func.lower(User.hssc_id).like(pattern),
            )
        )
    if role is not None:
        query = query.where(User.role == role)
    if is_active is not None:
        query = query.where(User.is_active.is_(is_active))

    total = db.execute(select(func.count()).select_from(query.subquery())).scalar_one()
    users = db.execute(
        query.order_by(User.created_at.desc()).offset((page - 1) * limit).limit(limit)
    ).scalars().all()
    return {
        'users': [serialize_user(user) for user in users],
        'pagination': {
            'page': page,
            'limit': limit,
            'total': total,
            'pages': (total + limit - 1) // limit,
        },
    }


@router.post('/users', status_code=status.HTTP_201_CREATED)
def create_user(
    payload: AdminUserCreate,
    admin: User = Depends(require_admin),
    service: AuthService = Depends(get_auth_service),
):
    user = service.register(Registration(**payload.model_dump()))
    logger.info('Admin %s created %s user %s', admin.id, user.role.value, user.id)
    return {'message': 'User created successfully', 'user': serialize_user(user)}


@router.get('/users/{user_id}')
def get_user(user_id: str, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    return {'user': serialize_user(get_user_or_404(db, user_id))}


@router.put('/users/{user_id}')
def update_user(
    user_id: str,
    payload: AdminUserUpdate,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    user = get_user_or_404(db, user_id)
    if user.id == admin.id and (payload.is_active is False or (payload.role is not None and payload.role != admin.role)):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Cannot deactivate or change the role of your own account',
        )
    apply_updates(user, payload)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail='Email or HSSC ID already in use') from exc
    db.refresh(user)
    logger.info('Admin %s updated user %s', admin.id, user.id)
    return {'message': 'User updated successfully', 'user': serialize_user(user)}


@router.delete('/users/{user_id}')
def delete_user(user_id: str, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    user = get_user_or_404(db, user_id)
    if user.id == admin.id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Cannot delete your own account')
    db.delete(user)
    db.commit()
    logger.warning('Admin %s deleted user %s', admin.id, user_id)
    return {'message': 'User deleted successfully'}
