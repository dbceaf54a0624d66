import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import HTMLResponse, RedirectResponse, Response
from sqlalchemy.orm import Session

from gateway.auth import saml
from gateway.auth.audit import ClientInfo
from gateway.auth.dependencies import get_client_info, get_token_issuer
from gateway.auth.tokens import TokenIssuer
from gateway.core.config import Settings, get_settings
from gateway.database import get_db

router = APIRouter(tags=['saml'])

logger = logging.getLogger(__name__)

HANDOFF_PAGE = """<!DOCTYPE html>
<html>
  <head>
    <title>SSO Authentication</title>
  </head>
  <body>
    <script>
      localStorage.setItem('accessToken', {access_token});
      localStorage.setItem('refreshToken', {refresh_token});
      window.location.replace({redirect_target});
    </script>
    <p>Authenticating...</p>
  </body>
</html>
"""


def _js_string(value: str) -> str:
    # JSON string literal that cannot close the surrounding <script> element.
    return json.dumps(value).replace('<', '\\u003c').replace('>', '\\u003e').replace('&', '\\u0026')


def render_handoff_page(access_token: str, refresh_token: str, redirect_target: str) -> str:
    return HANDOFF_PAGE.format(
        access_token=_js_string(access_token),
        refresh_token=_js_string(refresh_token),
        redirect_target=_js_string(redirect_target),
    )


async def prepare_saml_request(request: Request) -> dict:
    form_data = await request.form()
    return saml.build_request_data(
        url=str(request.url),
        host=request.headers.get('host', ''),
        path=request.url.path,
        query_params=dict(request.query_params),
        form_data=dict(form_data),
    )


@router.get('/login')
async def saml_login(request: Request, settings: Settings = Depends(get_settings)):
    request_data = await prepare_saml_request(request)
    auth = saml.init_saml_auth(request_data, settings)
    relay_state = saml.safe_relay_state(request.query_params.get('RelayState'), settings)
    return RedirectResponse(url=auth.login(return_to=relay_state))


@router.post('/acs')
async def saml_acs(
    request: Request,
    settings: Settings = Depends(get_settings),
    db: Session = Depends(get_db),
    issuer: TokenIssuer = Depends(get_token_issuer),
    client: ClientInfo = Depends(get_client_info),
):
    request_data = await prepare_saml_request(request)
    bridge = saml.SAMLBridge(settings, db, issuer)
    result = bridge.handle_acs(request_data, client)
    page = render_handoff_page(result.access_token, result.refresh_token, result.redirect_target)
    return HTMLResponse(content=page, headers={'Cache-Control': 'no-store'})


@router.get('/metadata')
def saml_metadata(settings: Settings = Depends(get_settings)):
    metadata, errors = saml.generate_sp_metadata(settings)
    if errors:
        logger.error('SP metadata validation failed: %s', errors)
        raise HTTPException(status_code=500, detail={'metadata_errors': errors})
    return Response(content=metadata, media_type='application/xml')


@router.get('/logout')
async def saml_logout(request: Request, settings: Settings = Depends(get_settings)):
    request_data = await prepare_saml_request(request)
    auth = saml.init_saml_auth(request_data, settings)
    return RedirectResponse(url=auth.logout(return_to=settings.FRONTEND_URL))
