from datetime import datetime
from typing import Optional

from sqlalchemy import delete, update
from sqlmodel import Session, select

from app.models.refresh_token import RefreshToken
from app.models.user import User


def get_by_token(session: Session, token: str) -> Optional[RefreshToken]:
    return session.exec(select(RefreshToken).where(RefreshToken.token == token)).first()


def list_active_for_user(session: Session, user_id: str, now: datetime) -> list[RefreshToken]:
    statement = select(RefreshToken).where(
        (RefreshToken.user_id == user_id)
        & (RefreshToken.revoked.is_(False))
        & (RefreshToken.expires_at > now)
    )
    return list(session.exec(statement).all())


def lock_owner(session: Session, user_id: str) -> Optional[User]:
    # Row lock on MySQL/Postgres; SQLite ignores FOR UPDATE.
    statement = select(User).where(User.id == user_id).with_for_update()
    return session.exec(statement).first()


def add_token(session: Session, *, user_id: str, token: str, expires_at: datetime) -> RefreshToken:
    record = RefreshToken(token=token, user_id=user_id, expires_at=expires_at)
    session.add(record)
    return record


def revoke_all_for_user(session: Session, user_id: str) -> int:
    statement = (
        update(RefreshToken)
        .where((RefreshToken.user_id == user_id) & (RefreshToken.revoked.is_(False)))
        .values(revoked=True)
        .execution_options(synchronize_session=False)
    )
    return session.exec(statement).rowcount


def mark_revoked_if_active(session: Session, record_id: str) -> bool:
    """Compare-and-set revoked false -> true. Only one caller can win."""
    statement = (
        update(RefreshToken)
        .where((RefreshToken.id == record_id) & (RefreshToken.revoked.is_(False)))
        .values(revoked=True)
        .execution_options(synchronize_session=False)
    )
    return session.exec(statement).rowcount == 1


def delete_expired(session: Session, now: datetime) -> int:
    statement = (
        delete(RefreshToken)
        .where(RefreshToken.expires_at < now)
        .execution_options(synchronize_session=False)
    )
    return session.exec(statement).rowcount
