from typing import Callable, Optional

from fastapi import Depends, Request, Response
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlmodel import Session

from app.core.errors import InvalidSignature, PermissionDenied, RateLimitExceeded
from app.core.providers import AuthComponents
from app.core.rate_limit import Denied, get_client_ip
from app.db.session import get_session
from app.models.enums import Capability
from app.models.user import User
from app.services.auth_service import AuthSessionService, get_user
from app.services.oauth_service import GoogleOAuthClient
from app.services.token_signer import TokenClaims

bearer = HTTPBearer(auto_error=False)


def get_components(request: Request) -> AuthComponents:
    return request.app.state.auth


def get_auth_service(components: AuthComponents = Depends(get_components)) -> AuthSessionService:
    return components.auth_service


def get_oauth_client(components: AuthComponents = Depends(get_components)) -> GoogleOAuthClient:
    return components.oauth_client


def get_current_claims(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    components: AuthComponents = Depends(get_components),
) -> TokenClaims:
    if credentials is None or credentials.scheme.lower() != 'bearer':
        raise InvalidSignature('missing bearer token')
    return components.signer.verify(credentials.credentials)


def get_current_user(
    claims: TokenClaims = Depends(get_current_claims),
    session: Session = Depends(get_session),
) -> User:
    user = get_user(session, claims.subject)
    if user is None or not user.is_active:
        raise InvalidSignature('principal unavailable')
    return user


def require_capability(capability: Capability) -> Callable[..., TokenClaims]:
    def dep(claims: TokenClaims = Depends(get_current_claims)) -> TokenClaims:
        if capability not in claims.capabilities:
            raise PermissionDenied(f'missing {capability.value}')
        return claims

    return dep


def rate_limit(scope: str) -> Callable[..., None]:
    def dep(
        request: Request,
        response: Response,
        components: AuthComponents = Depends(get_components),
    ) -> None:
        if not components.rate_limit_enabled:
            return
        policy = components.rate_limits[scope]
        decision = components.rate_limiter.try_acquire(
            scope, get_client_ip(request), policy.capacity, policy.window_seconds
        )
        if isinstance(decision, Denied):
            raise RateLimitExceeded(decision.retry_after, scope=scope)
        response.headers['X-Rate-Limit-Limit'] = str(policy.capacity)
        response.headers['X-Rate-Limit-Remaining'] = str(decision.remaining)

    return dep
