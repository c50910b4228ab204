from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from loguru import logger
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from app.core.errors import (
    InvalidCredentials,
    RefreshTokenInvalid,
    RefreshTokenReason,
    RegistrationConflict,
)
from app.core.security import PasswordHasher
from app.models.enums import AuthProvider, UserRole
from app.models.user import User
from app.schemas.auth import AuthenticationResponse, OAuthProfile, RegisterRequest
from app.services.refresh_token_service import RefreshTokenManager
from app.services.token_signer import TokenSigner


@dataclass(frozen=True)
class AuthSession:
    access_token: str
    refresh_token: str
    user: User

    def to_response(self) -> AuthenticationResponse:
        return AuthenticationResponse(
            access_token=self.access_token,
            refresh_token=self.refresh_token,
            email=self.user.email,
            first_name=self.user.first_name,
            last_name=self.user.last_name,
            provider=self.user.provider,
            role=self.user.role,
        )


def normalize_email(email: str) -> str:
    return email.strip().lower()


def find_user_by_email(session: Session, email: str) -> Optional[User]:
    statement = select(User).where(func.lower(User.email) == normalize_email(email))
    return session.exec(statement).first()


def email_exists(session: Session, email: str) -> bool:
    return find_user_by_email(session, email) is not None


def get_user(session: Session, user_id: str) -> Optional[User]:
    return session.exec(select(User).where(User.id == user_id)).first()


class AuthSessionService:
    """Turns verified credentials into an access token plus refresh token."""

    def __init__(
        self,
        signer: TokenSigner,
        refresh_tokens: RefreshTokenManager,
        hasher: PasswordHasher,
    ) -> None:
        self.signer = signer
        self.refresh_tokens = refresh_tokens
        self.hasher = hasher

    def register(self, session: Session, payload: RegisterRequest) -> AuthSession:
        if email_exists(session, payload.email):
            raise RegistrationConflict('email already registered')
        user = User(
            email=normalize_email(payload.email),
            hashed_password=self.hasher.hash(payload.password),
            first_name=payload.first_name.strip(),
            last_name=payload.last_name.strip(),
            role=UserRole.USER,
            provider=AuthProvider.LOCAL,
        )
        session.add(user)
        try:
            session.commit()
        except IntegrityError as exc:
            session.rollback()
            raise RegistrationConflict('email registered concurrently') from exc
        session.refresh(user)
        logger.info('Registered user {}', user.id)
        return self._start_session(session, user)

    def login(self, session: Session, email: str, password: str) -> AuthSession:
        user = find_user_by_email(session, email)
        # Always run one bcrypt comparison so a missing account costs the same.
        hashed_password = user.hashed_password if user is not None else None
        password_ok = self.hasher.verify(password, hashed_password)
        if user is None:
            raise InvalidCredentials('unknown identity')
        if not password_ok:
            raise InvalidCredentials('password mismatch')
        if not user.is_active:
            raise InvalidCredentials('inactive account')
        return self._start_session(session, user)

    def login_with_oauth(self, session: Session, profile: OAuthProfile) -> AuthSession:
        user = find_user_by_email(session, profile.email)
        if user is None:
            user = User(
                email=normalize_email(profile.email),
                hashed_password=None,
                first_name=profile.given_name.strip(),
                last_name=profile.family_name.strip(),
                role=UserRole.USER,
                provider=AuthProvider.GOOGLE,
            )
            session.add(user)
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                user = find_user_by_email(session, profile.email)
                if user is None:
                    raise
            else:
                session.refresh(user)
                logger.info('Created user {} from {} login', user.id, AuthProvider.GOOGLE.value)
        if not user.is_active:
            raise InvalidCredentials('inactive account')
        return self._start_session(session, user)

    def refresh(self, session: Session, presented_refresh_token: str) -> AuthSession:
        record = self.refresh_tokens.rotate(session, presented_refresh_token)
        user = get_user(session, record.user_id)
        if user is None or not user.is_active:
            self.refresh_tokens.revoke_by_value(session, record.token)
            raise RefreshTokenInvalid(RefreshTokenReason.OWNER_UNAVAILABLE)
        return AuthSession(
            access_token=self._access_token_for(user),
            refresh_token=record.token,
            user=user,
        )

    def logout(self, session: Session, presented_refresh_token: Optional[str]) -> None:
        if not presented_refresh_token:
            return
        self.refresh_tokens.revoke_by_value(session, presented_refresh_token)

    def logout_everywhere(self, session: Session, user_id: str) -> int:
        return self.refresh_tokens.revoke_all(session, user_id)

    def _start_session(self, session: Session, user: User) -> AuthSession:
        record = self.refresh_tokens.issue(session, user.id)
        session.refresh(user)
        return AuthSession(
            access_token=self._access_token_for(user),
            refresh_token=record.token,
            user=user,
        )

    def _access_token_for(self, user: User) -> str:
        return self.signer.sign(
            user.id,
            user.role,
            extra_claims={'email': user.email, 'provider': AuthProvider(user.provider).value},
        )
