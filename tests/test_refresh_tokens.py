import threading
from datetime import timedelta

import pytest
from loguru import logger
from sqlmodel import Session, select

from app.core.errors import RefreshTokenInvalid, RefreshTokenReason
from app.db.session import engine
from app.models.refresh_token import RefreshToken
from app.services.refresh_token_service import RefreshTokenManager


def _reload(session: Session, token: str) -> RefreshToken:
    session.expire_all()
    return session.exec(select(RefreshToken).where(RefreshToken.token == token)).one()


def test_issue_revokes_previous_token(session, manager, make_user):
    user = make_user()
    first = manager.issue(session, user.id)
    second = manager.issue(session, user.id)

    assert _reload(session, first.token).revoked is True
    assert _reload(session, second.token).revoked is False
    assert [record.id for record in manager.active_for_user(session, user.id)] == [second.id]


def test_issue_sets_expiry_from_ttl(session, manager, make_user, clock):
    user = make_user()
    record = manager.issue(session, user.id)
    assert len(record.token) >= 43
    assert record.expires_at.replace(tzinfo=None) == (clock.now + timedelta(days=7)).replace(tzinfo=None)


def test_issue_keeps_users_independent(session, manager, make_user):
    alice = make_user('alice@x.com')
    bob = make_user('bob@x.com')
    alice_token = manager.issue(session, alice.id)
    manager.issue(session, bob.id)
    assert _reload(session, alice_token.token).revoked is False


def test_rotate_unknown_token(session, manager):
    with pytest.raises(RefreshTokenInvalid) as exc_info:
        manager.rotate(session, 'does-not-exist')
    assert exc_info.value.reason_code is RefreshTokenReason.NOT_FOUND


def test_rotate_expired_token_is_not_resurrectable(session, manager, make_user, clock):
    user = make_user()
    record = manager.issue(session, user.id)
    clock.advance(days=7, seconds=1)

    with pytest.raises(RefreshTokenInvalid) as exc_info:
        manager.rotate(session, record.token)
    assert exc_info.value.reason_code is RefreshTokenReason.EXPIRED
    assert _reload(session, record.token).revoked is True

    clock.now = clock.now - timedelta(days=1)
    with pytest.raises(RefreshTokenInvalid):
        manager.rotate(session, record.token)


def test_rotate_valid_token_replaces_it(session, manager, make_user):
    user = make_user()
    original = manager.issue(session, user.id)

    rotated = manager.rotate(session, original.token)

    assert rotated.token != original.token
    assert rotated.user_id == user.id
    assert _reload(session, original.token).revoked is True
    assert _reload(session, rotated.token).revoked is False


def test_replayed_token_is_refused_and_ends_the_chain(session, manager, make_user):
    user = make_user()
    original = manager.issue(session, user.id)
    rotated = manager.rotate(session, original.token)

    with pytest.raises(RefreshTokenInvalid) as exc_info:
        manager.rotate(session, original.token)

    assert exc_info.value.reason_code is RefreshTokenReason.REVOKED
    assert _reload(session, rotated.token).revoked is True
    assert manager.active_for_user(session, user.id) == []


def test_reuse_is_logged_without_token_value(session, manager, make_user):
    user = make_user()
    original = manager.issue(session, user.id)
    manager.rotate(session, original.token)

    messages: list[str] = []
    sink_id = logger.add(lambda message: messages.append(str(message)), level='DEBUG')
    try:
        with pytest.raises(RefreshTokenInvalid) as exc_info:
            manager.rotate(session, original.token)
    finally:
        logger.remove(sink_id)

    assert any('reuse detected' in message for message in messages)
    assert all(original.token not in message for message in messages)
    assert original.token not in str(exc_info.value)


def test_concurrent_rotation_has_exactly_one_winner(manager, make_user):
    user_id = make_user().id
    with Session(engine) as setup:
        original = manager.issue(setup, user_id).token

    barrier = threading.Barrier(4)
    outcomes: list[str] = []
    outcomes_lock = threading.Lock()

    def attempt() -> None:
        with Session(engine) as own_session:
            barrier.wait()
            try:
                manager.rotate(own_session, original)
                result = 'rotated'
            except RefreshTokenInvalid:
                result = 'refused'
        with outcomes_lock:
            outcomes.append(result)

    threads = [threading.Thread(target=attempt) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    assert sorted(outcomes) == ['refused', 'refused', 'refused', 'rotated']


def test_concurrent_issue_leaves_single_active_token(manager, make_user):
    user_id = make_user().id
    barrier = threading.Barrier(4)

    def attempt() -> None:
        with Session(engine) as own_session:
            barrier.wait()
            manager.issue(own_session, user_id)

    threads = [threading.Thread(target=attempt) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    with Session(engine) as check:
        assert len(manager.active_for_user(check, user_id)) == 1


def test_revoke_by_value_is_idempotent(session, manager, make_user):
    user = make_user()
    record = manager.issue(session, user.id)

    assert manager.revoke_by_value(session, record.token) is True
    assert manager.revoke_by_value(session, record.token) is False
    assert manager.revoke_by_value(session, 'unknown-token') is False
    with pytest.raises(RefreshTokenInvalid):
        manager.rotate(session, record.token)


def test_sweep_deletes_only_expired_tokens(session, make_user, clock):
    user = make_user()
    short_lived = RefreshTokenManager(refresh_ttl=timedelta(hours=1), clock=clock)
    old_id = short_lived.issue(session, user.id).id
    other = make_user('other@x.com')
    clock.advance(minutes=30)
    fresh_id = short_lived.issue(session, other.id).id
    clock.advance(minutes=45)

    removed = short_lived.sweep_expired(session)

    assert removed == 1
    session.expire_all()
    remaining = {record.id for record in session.exec(select(RefreshToken)).all()}
    assert remaining == {fresh_id}
    assert old_id not in remaining
    assert short_lived.sweep_expired(session) == 0


def test_oversized_token_is_treated_as_unknown(session, manager, make_user):
    user = make_user()
    record = manager.issue(session, user.id)

    with pytest.raises(RefreshTokenInvalid) as exc_info:
        manager.rotate(session, 'x' * 600)
    assert exc_info.value.reason_code is RefreshTokenReason.NOT_FOUND
    assert manager.revoke_by_value(session, 'x' * 600) is False
    assert _reload(session, record.token).revoked is False


def test_user_locks_come_from_a_fixed_pool():
    manager = RefreshTokenManager()
    locks = {id(manager._user_locks.get(f'user-{n}')) for n in range(1000)}

    assert len(locks) <= 64
    assert manager._user_locks.get('user-7') is manager._user_locks.get('user-7')
