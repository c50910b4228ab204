"""Refresh-token rotation.

A token is usable while it is neither revoked nor expired. Rotation, logout,
expiry and reuse detection all end in ``revoked=True`` and nothing turns a
record back. Issuing a token revokes every other live token of the same user,
so each user has at most one usable refresh token at any time.
"""
from __future__ import annotations

import secrets
import threading
from datetime import datetime, timedelta
from typing import Callable, Optional

from loguru import logger
from sqlmodel import Session

from app.core.errors import RefreshTokenInvalid, RefreshTokenReason
from app.core.logging import security_logger
from app.models.base import ensure_utc, utc_now
from app.models.refresh_token import RefreshToken
from app.services import refresh_token_store as store

TOKEN_BYTES = 32
# Matches the refresh_tokens.token column; longer values cannot be on record.
MAX_TOKEN_LENGTH = 128
LOCK_STRIPES = 64


def generate_token_value() -> str:
    return secrets.token_urlsafe(TOKEN_BYTES)


def _lookup(session: Session, presented: str) -> Optional[RefreshToken]:
    if not presented or len(presented) > MAX_TOKEN_LENGTH:
        return None
    return store.get_by_token(session, presented)


class _UserLocks:
    """Fixed pool of locks; users hashing to the same stripe share one."""

    def __init__(self, stripes: int = LOCK_STRIPES) -> None:
        self._locks = tuple(threading.Lock() for _ in range(stripes))

    def get(self, user_id: str) -> threading.Lock:
        return self._locks[hash(user_id) % len(self._locks)]


class RefreshTokenManager:
    def __init__(
        self,
        refresh_ttl: timedelta = timedelta(days=7),
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._refresh_ttl = refresh_ttl
        self._clock = clock
        self._user_locks = _UserLocks()

    def issue(self, session: Session, user_id: str) -> RefreshToken:
        with self._user_locks.get(user_id):
            store.lock_owner(session, user_id)
            record = self._replace_active(session, user_id)
            session.commit()
        session.refresh(record)
        logger.info('Issued refresh token {} for user {}', record.id, user_id)
        return record

    def rotate(self, session: Session, presented: str) -> RefreshToken:
        found = _lookup(session, presented)
        if found is None:
            raise RefreshTokenInvalid(RefreshTokenReason.NOT_FOUND)
        record_id, user_id = found.id, found.user_id

        with self._user_locks.get(user_id):
            store.lock_owner(session, user_id)
            session.refresh(found)
            if ensure_utc(found.expires_at) <= self._clock():
                store.mark_revoked_if_active(session, record_id)
                session.commit()
                logger.info('Refresh token {} presented after expiry', record_id)
                raise RefreshTokenInvalid(RefreshTokenReason.EXPIRED)
            if found.revoked or not store.mark_revoked_if_active(session, record_id):
                # Already rotated or logged out, possibly by another process
                # between our read and the update.
                self._handle_reuse(session, record_id, user_id)
            record = self._replace_active(session, user_id)
            session.commit()

        session.refresh(record)
        logger.info('Rotated refresh token {} into {} for user {}', record_id, record.id, user_id)
        return record

    def revoke_by_value(self, session: Session, presented: str) -> bool:
        found = _lookup(session, presented)
        if found is None:
            return False
        revoked = store.mark_revoked_if_active(session, found.id)
        session.commit()
        if revoked:
            logger.info('Revoked refresh token {} for user {}', found.id, found.user_id)
        return revoked

    def active_for_user(self, session: Session, user_id: str) -> list[RefreshToken]:
        return store.list_active_for_user(session, user_id, self._clock())

    def revoke_all(self, session: Session, user_id: str) -> int:
        with self._user_locks.get(user_id):
            count = store.revoke_all_for_user(session, user_id)
            session.commit()
        return count

    def sweep_expired(self, session: Session, now: Optional[datetime] = None) -> int:
        removed = store.delete_expired(session, now or self._clock())
        session.commit()
        if removed:
            logger.info('Removed {} expired refresh tokens', removed)
        return removed

    def _replace_active(self, session: Session, user_id: str) -> RefreshToken:
        store.revoke_all_for_user(session, user_id)
        return store.add_token(
            session,
            user_id=user_id,
            token=generate_token_value(),
            expires_at=self._clock() + self._refresh_ttl,
        )

    def _handle_reuse(self, session: Session, record_id: str, user_id: str) -> None:
        # A revoked token came back: either a client race or a replayed
        # stolen token. Both end the whole chain for that user.
        revoked = store.revoke_all_for_user(session, user_id)
        session.commit()
        security_logger.warning(
            'Refresh token reuse detected: token_id={} user_id={} revoked_active={}',
            record_id,
            user_id,
            revoked,
        )
        raise RefreshTokenInvalid(RefreshTokenReason.REVOKED)
