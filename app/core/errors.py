"""Authentication error taxonomy and its HTTP rendering.

Every expected failure carries a fixed client-facing ``detail``. Anything
more specific (why a refresh token was refused, which provider call failed)
lives on the exception as ``reason`` and is only ever logged.
"""
import math
from enum import Enum
from typing import Optional

from fastapi import Request, status
from fastapi.responses import JSONResponse
from loguru import logger


class ConfigurationError(RuntimeError):
    """Raised at startup when security settings are unusable."""


class AuthError(Exception):
    status_code: int = status.HTTP_401_UNAUTHORIZED
    code: str = 'AUTH_ERROR'
    detail: str = 'Unauthorized'

    def __init__(self, reason: Optional[str] = None) -> None:
        super().__init__(self.detail)
        self.reason = reason

    def headers(self) -> Optional[dict[str, str]]:
        return None


class InvalidCredentials(AuthError):
    code = 'INVALID_CREDENTIALS'
    detail = 'Invalid email or password'


class RegistrationConflict(AuthError):
    status_code = status.HTTP_409_CONFLICT
    code = 'REGISTRATION_FAILED'
    detail = 'Registration failed'


class TokenError(AuthError):
    code = 'INVALID_TOKEN'
    detail = 'Invalid token'


class InvalidSignature(TokenError):
    pass


class TokenExpired(TokenError):
    pass


class RefreshTokenReason(str, Enum):
    NOT_FOUND = 'not_found'
    EXPIRED = 'expired'
    REVOKED = 'revoked'
    OWNER_UNAVAILABLE = 'owner_unavailable'


class RefreshTokenInvalid(AuthError):
    code = 'INVALID_REFRESH_TOKEN'
    detail = 'Invalid refresh token. Please log in again'

    def __init__(self, reason: RefreshTokenReason) -> None:
        super().__init__(reason.value)
        self.reason_code = reason


class OAuthError(AuthError):
    code = 'OAUTH_FAILED'
    detail = 'OAuth login failed'


class OAuthNotConfigured(OAuthError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = 'OAUTH_UNAVAILABLE'
    detail = 'OAuth login is not available'


class PermissionDenied(AuthError):
    status_code = status.HTTP_403_FORBIDDEN
    code = 'FORBIDDEN'
    detail = 'Forbidden'


class RateLimitExceeded(AuthError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    code = 'RATE_LIMIT_EXCEEDED'

    def __init__(self, retry_after: float, scope: str = '') -> None:
        self.retry_after_seconds = max(1, math.ceil(retry_after))
        self.detail = f'Rate limit exceeded. Try again in {self.retry_after_seconds} seconds.'
        super().__init__(scope or None)

    def headers(self) -> Optional[dict[str, str]]:
        value = str(self.retry_after_seconds)
        return {'Retry-After': value, 'X-Rate-Limit-Retry-After-Seconds': value}


def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    if exc.reason:
        logger.info(
            '{} {} rejected: code={} reason={}',
            request.method,
            request.url.path,
            exc.code,
            exc.reason,
        )
    return JSONResponse(
        status_code=exc.status_code,
        content={'detail': exc.detail, 'code': exc.code},
        headers=exc.headers(),
    )
