from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from app.core.config import Settings
from app.core.rate_limit import RateLimiter
from app.core.security import PasswordHasher
from app.services.auth_service import AuthSessionService
from app.services.oauth_service import GoogleOAuthClient
from app.services.refresh_token_service import RefreshTokenManager
from app.services.token_signer import TokenSigner


@dataclass(frozen=True)
class RateLimitPolicy:
    capacity: int
    window_seconds: int


@dataclass(frozen=True)
class AuthComponents:
    signer: TokenSigner
    refresh_tokens: RefreshTokenManager
    auth_service: AuthSessionService
    rate_limiter: RateLimiter
    oauth_client: GoogleOAuthClient
    rate_limits: dict[str, RateLimitPolicy]
    rate_limit_enabled: bool


def rate_limit_policies(settings: Settings) -> dict[str, RateLimitPolicy]:
    return {
        'login': RateLimitPolicy(
            settings.RATE_LIMIT_LOGIN_CAPACITY, settings.RATE_LIMIT_LOGIN_WINDOW_SECONDS
        ),
        'register': RateLimitPolicy(
            settings.RATE_LIMIT_REGISTER_CAPACITY, settings.RATE_LIMIT_REGISTER_WINDOW_SECONDS
        ),
        'refresh-token': RateLimitPolicy(
            settings.RATE_LIMIT_REFRESH_CAPACITY, settings.RATE_LIMIT_REFRESH_WINDOW_SECONDS
        ),
        'oauth': RateLimitPolicy(
            settings.RATE_LIMIT_OAUTH_CAPACITY, settings.RATE_LIMIT_OAUTH_WINDOW_SECONDS
        ),
    }


def build_auth_components(settings: Settings) -> AuthComponents:
    """Create the process-wide auth objects. Raises ConfigurationError on a weak secret."""
    signer = TokenSigner(
        settings.SECRET_KEY,
        algorithm=settings.ALGORITHM,
        access_ttl=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
    )
    refresh_tokens = RefreshTokenManager(
        refresh_ttl=timedelta(minutes=settings.REFRESH_TOKEN_EXPIRE_MINUTES),
    )
    hasher = PasswordHasher(rounds=settings.PASSWORD_HASH_ROUNDS)
    return AuthComponents(
        signer=signer,
        refresh_tokens=refresh_tokens,
        auth_service=AuthSessionService(signer, refresh_tokens, hasher),
        rate_limiter=RateLimiter(idle_ttl=settings.RATE_LIMIT_IDLE_SECONDS),
        oauth_client=GoogleOAuthClient(
            client_id=settings.GOOGLE_CLIENT_ID,
            client_secret=settings.GOOGLE_CLIENT_SECRET,
            redirect_uri=settings.GOOGLE_REDIRECT_URI,
            signer=signer,
            state_ttl=timedelta(minutes=settings.OAUTH_STATE_EXPIRE_MINUTES),
        ),
        rate_limits=rate_limit_policies(settings),
        rate_limit_enabled=settings.RATE_LIMIT_ENABLED,
    )
