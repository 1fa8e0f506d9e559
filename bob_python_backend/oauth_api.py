"""OAuth 2.0 PKCE login endpoints for the Twitter authorization server."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import RedirectResponse

from bob_python_backend.dependencies import SocialClientFactory, get_oauth_exchanger, get_social_client_factory
from bob_python_backend.errors import BobError
from bob_python_backend.schemas import (
    ERROR_RESPONSES,
    AuthorizationRequest,
    OAuthCallbackRequest,
    RefreshResponse,
    TokenResponse,
)
from bob_python_backend.services.oauth_service import OAuthExchanger

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/oauth", tags=["oauth"], responses=ERROR_RESPONSES)


async def _complete_login(
    code: Optional[str],
    state: Optional[str],
    exchanger: OAuthExchanger,
    social_factory: SocialClientFactory,
) -> TokenResponse:
    tokens = await exchanger.exchange_code(code, state)
    try:
        user = await social_factory(tokens.access_token).me()
        tokens.user_id = str(user.get("id"))
        tokens.username = user.get("username")
    except BobError as exc:
        # The login itself succeeded; the profile lookup is informational.
        logger.warning("[OAUTH] User lookup after token exchange failed: %s", exc)
    return tokens


@router.get("/request_token")
async def request_token(exchanger: OAuthExchanger = Depends(get_oauth_exchanger)):
    authorization = await exchanger.start_authorization()
    return RedirectResponse(authorization.url, status_code=302)


@router.post("/init", response_model=AuthorizationRequest)
async def init_oauth(exchanger: OAuthExchanger = Depends(get_oauth_exchanger)):
    return await exchanger.start_authorization()


@router.get("/callback", response_model=TokenResponse)
async def oauth_callback_query(
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    exchanger: OAuthExchanger = Depends(get_oauth_exchanger),
    social_factory: SocialClientFactory = Depends(get_social_client_factory),
):
    return await _complete_login(code, state, exchanger, social_factory)


@router.post("/callback", response_model=TokenResponse)
async def oauth_callback(
    body: Optional[OAuthCallbackRequest] = None,
    exchanger: OAuthExchanger = Depends(get_oauth_exchanger),
    social_factory: SocialClientFactory = Depends(get_social_client_factory),
):
    body = body or OAuthCallbackRequest()
    try:
        return await _complete_login(body.code, body.state, exchanger, social_factory)
    except (BobError, HTTPException):
        raise
    except Exception as exc:
        logger.exception("[OAUTH] Unexpected callback failure: %s", exc)
        raise HTTPException(status_code=500, detail=f"An unexpected error occurred: {str(exc)}")


@router.post("/refresh", response_model=RefreshResponse)
async def refresh_token(exchanger: OAuthExchanger = Depends(get_oauth_exchanger)):
    access_token = await exchanger.refresh()
    return RefreshResponse(access_token=access_token)
