import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import RedirectResponse
from pydantic import BaseModel
from sqlalchemy.orm import Session

from gateway.auth.audit import ClientInfo, record_login
from gateway.auth.dependencies import (
    get_client_info,
    get_current_user,
    get_learnworlds_client,
    get_sso_minter,
    get_token_verifier,
    load_active_user,
)
from gateway.auth.jwt_handler import TokenVerifier
from gateway.auth.sso import LearnWorldsClient, SSOMinter
from gateway.database import get_db
from gateway.models.user import User

router = APIRouter(tags=['sso'])

logger = logging.getLogger(__name__)


class LMSSSORequest(BaseModel):
    redirect_url: str | None = None


class LearnWorldsSSORequest(BaseModel):
    redirectUrl: str | None = None


def mint_sso_url(minter: SSOMinter, db: Session, user: User, redirect_url: str | None, client: ClientInfo) -> str:
    sso_url = minter.build_sso_url(user, redirect_url)
    record_login(db, client=client, success=True, user_id=user.id, email=user.email, event='sso')
    logger.info('Minted LMS SSO token for user %s', user.id)
    return sso_url


@router.get('/lms')
def lms_sso_redirect(
    token: str | None = Query(default=None),
    redirect_url: str | None = Query(default=None),
    verifier: TokenVerifier = Depends(get_token_verifier),
    minter: SSOMinter = Depends(get_sso_minter),
    db: Session = Depends(get_db),
    client: ClientInfo = Depends(get_client_info),
):
    if not token:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Token is required')
    user = load_active_user(db, verifier.verify_access(token))
    return RedirectResponse(url=mint_sso_url(minter, db, user, redirect_url, client))


@router.post('/lms')
def lms_sso_url(
    payload: LMSSSORequest | None = None,
    current_user: User = Depends(get_current_user),
    minter: SSOMinter = Depends(get_sso_minter),
    db: Session = Depends(get_db),
    client: ClientInfo = Depends(get_client_info),
):
    redirect_url = payload.redirect_url if payload else None
    sso_url = mint_sso_url(minter, db, current_user, redirect_url, client)
    return {
        'message': 'SSO token generated successfully',
        'sso_url': sso_url,
        'user': {
            'id': current_user.id,
            'email': current_user.email,
            'name': current_user.full_name,
            'role': current_user.role.value,
            'hsscId': current_user.hssc_id,
        },
    }


@router.post('/learnworlds')
def learnworlds_sso(
    payload: LearnWorldsSSORequest,
    current_user: User = Depends(get_current_user),
    lms_client: LearnWorldsClient = Depends(get_learnworlds_client),
    db: Session = Depends(get_db),
    client: ClientInfo = Depends(get_client_info),
):
    result = lms_client.create_sso_url(
        user_id=current_user.id,
        email=current_user.email,
        username=current_user.full_name,
        redirect_url=payload.redirectUrl,
    )
    record_login(db, client=client, success=True, user_id=current_user.id, email=current_user.email, event='sso')
    logger.info('Created LearnWorlds SSO url for user %s', current_user.id)
    return result
