from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

from jose import JWTError, jwt

from app.core.errors import ConfigurationError, InvalidSignature, TokenExpired
from app.models.base import utc_now
from app.models.enums import ROLE_CAPABILITIES, Capability, UserRole

MIN_SECRET_BYTES = 32
HMAC_ALGORITHMS = frozenset({'HS256', 'HS384', 'HS512'})
ACCESS_TOKEN_TYPE = 'access'
OAUTH_STATE_TOKEN_TYPE = 'oauth_state'
RESERVED_CLAIMS = frozenset({'sub', 'role', 'type', 'iat', 'exp'})


@dataclass(frozen=True)
class TokenClaims:
    subject: str
    role: UserRole
    issued_at: datetime
    expires_at: datetime
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def capabilities(self) -> frozenset[Capability]:
        return ROLE_CAPABILITIES[self.role]


class TokenSigner:
    """Stateless HMAC signer for access tokens.

    Verification never touches the database: the signature and the ``exp``
    claim are all that is checked, so every instance sharing the secret
    accepts the same tokens.
    """

    def __init__(
        self,
        secret: Optional[str],
        algorithm: str = 'HS256',
        access_ttl: timedelta = timedelta(minutes=15),
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        if not secret or len(secret.encode('utf-8')) < MIN_SECRET_BYTES:
            raise ConfigurationError(
                f'SECRET_KEY must be set to at least {MIN_SECRET_BYTES} bytes (256 bits)'
            )
        if algorithm not in HMAC_ALGORITHMS:
            raise ConfigurationError(f'Unsupported signing algorithm: {algorithm}')
        self._secret = secret
        self._algorithm = algorithm
        self._access_ttl = access_ttl
        self._clock = clock

    @property
    def access_ttl(self) -> timedelta:
        return self._access_ttl

    def sign(
        self,
        subject: str,
        role: UserRole,
        extra_claims: Optional[dict[str, Any]] = None,
        expires_in: Optional[timedelta] = None,
    ) -> str:
        payload: dict[str, Any] = {}
        for key, value in (extra_claims or {}).items():
            if key in RESERVED_CLAIMS:
                raise ValueError(f'Claim {key!r} is reserved')
            payload[key] = value
        payload['sub'] = subject
        payload['role'] = UserRole(role).value
        return self._encode(payload, ACCESS_TOKEN_TYPE, expires_in or self._access_ttl)

    def verify(self, token: str) -> TokenClaims:
        payload = self._decode(token, ACCESS_TOKEN_TYPE)
        subject = payload.get('sub')
        if not isinstance(subject, str) or not subject:
            raise InvalidSignature('missing subject')
        try:
            role = UserRole(payload.get('role'))
        except ValueError as exc:
            raise InvalidSignature('unknown role') from exc
        extra = {key: value for key, value in payload.items() if key not in RESERVED_CLAIMS}
        return TokenClaims(
            subject=subject,
            role=role,
            issued_at=_from_timestamp(payload['iat']),
            expires_at=_from_timestamp(payload['exp']),
            extra=extra,
        )

    def sign_state(self, nonce: str, expires_in: timedelta) -> str:
        return self._encode({'nonce': nonce}, OAUTH_STATE_TOKEN_TYPE, expires_in)

    def verify_state(self, state: str) -> str:
        payload = self._decode(state, OAUTH_STATE_TOKEN_TYPE)
        nonce = payload.get('nonce')
        if not isinstance(nonce, str) or not nonce:
            raise InvalidSignature('missing nonce')
        return nonce

    def _encode(self, payload: dict[str, Any], token_type: str, expires_in: timedelta) -> str:
        now = self._clock()
        claims = dict(payload)
        claims['type'] = token_type
        claims['iat'] = int(now.timestamp())
        claims['exp'] = int((now + expires_in).timestamp())
        return jwt.encode(claims, self._secret, algorithm=self._algorithm)

    def _decode(self, token: str, token_type: str) -> dict[str, Any]:
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options={'verify_exp': False},
            )
        except JWTError as exc:
            raise InvalidSignature('signature check failed') from exc
        if payload.get('type') != token_type:
            raise InvalidSignature('unexpected token type')
        expires_at = payload.get('exp')
        if not isinstance(expires_at, int) or not isinstance(payload.get('iat'), int):
            raise InvalidSignature('missing timestamps')
        if self._clock().timestamp() > expires_at:
            raise TokenExpired('token expired')
        return payload


def _from_timestamp(value: int) -> datetime:
    return datetime.fromtimestamp(value, tz=timezone.utc)
