from typing import Optional

from fastapi import APIRouter, Body, Depends, Response, status
from fastapi.responses import RedirectResponse
from sqlmodel import Session

from app.api.deps import get_auth_service, get_current_claims, get_oauth_client, rate_limit
from app.db.session import get_session
from app.schemas.auth import (
    AuthenticationResponse,
    LoginRequest,
    LogoutRequest,
    RefreshRequest,
    RegisterRequest,
)
from app.services.auth_service import AuthSessionService
from app.services.oauth_service import GoogleOAuthClient
from app.services.token_signer import TokenClaims

router = APIRouter(prefix='/auth', tags=['auth'])


@router.post(
    '/register',
    response_model=AuthenticationResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit('register'))],
)
def register(
    payload: RegisterRequest,
    session: Session = Depends(get_session),
    service: AuthSessionService = Depends(get_auth_service),
) -> AuthenticationResponse:
    return service.register(session, payload).to_response()


@router.post(
    '/login',
    response_model=AuthenticationResponse,
    dependencies=[Depends(rate_limit('login'))],
)
def login(
    payload: LoginRequest,
    session: Session = Depends(get_session),
    service: AuthSessionService = Depends(get_auth_service),
) -> AuthenticationResponse:
    return service.login(session, payload.email, payload.password).to_response()


@router.post(
    '/refresh-token',
    response_model=AuthenticationResponse,
    dependencies=[Depends(rate_limit('refresh-token'))],
)
def refresh_token(
    payload: RefreshRequest,
    session: Session = Depends(get_session),
    service: AuthSessionService = Depends(get_auth_service),
) -> AuthenticationResponse:
    return service.refresh(session, payload.refresh_token).to_response()


@router.post('/logout', status_code=status.HTTP_204_NO_CONTENT)
def logout(
    payload: Optional[LogoutRequest] = Body(default=None),
    session: Session = Depends(get_session),
    service: AuthSessionService = Depends(get_auth_service),
) -> Response:
    service.logout(session, payload.refresh_token if payload else None)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post('/logout-all', status_code=status.HTTP_204_NO_CONTENT)
def logout_all(
    claims: TokenClaims = Depends(get_current_claims),
    session: Session = Depends(get_session),
    service: AuthSessionService = Depends(get_auth_service),
) -> Response:
    service.logout_everywhere(session, claims.subject)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get(
    '/oauth2/google/authorize',
    dependencies=[Depends(rate_limit('oauth'))],
)
def google_authorize(client: GoogleOAuthClient = Depends(get_oauth_client)) -> RedirectResponse:
    return RedirectResponse(client.authorization_url())


@router.get(
    '/oauth2/google/callback',
    response_model=AuthenticationResponse,
    dependencies=[Depends(rate_limit('oauth'))],
)
def google_callback(
    code: str,
    state: str,
    session: Session = Depends(get_session),
    client: GoogleOAuthClient = Depends(get_oauth_client),
    service: AuthSessionService = Depends(get_auth_service),
) -> AuthenticationResponse:
    profile = client.fetch_profile(code, state)
    return service.login_with_oauth(session, profile).to_response()
