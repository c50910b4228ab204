import threading

import pytest

from app.core.rate_limit import Admitted, Denied, RateLimiter


def test_fresh_key_admits_capacity_then_denies(monotonic):
    limiter = RateLimiter(clock=monotonic)

    decisions = [limiter.try_acquire('login', '10.0.0.1', 5, 60) for _ in range(6)]

    assert decisions[:5] == [Admitted(remaining=n) for n in (4, 3, 2, 1, 0)]
    assert isinstance(decisions[5], Denied)
    assert decisions[5].retry_after == pytest.approx(12.0)


def test_bucket_refills_after_full_window(monotonic):
    limiter = RateLimiter(clock=monotonic)
    for _ in range(3):
        limiter.try_acquire('login', 'k', 3, 30)
    assert isinstance(limiter.try_acquire('login', 'k', 3, 30), Denied)

    monotonic.advance(30)

    admitted = [limiter.try_acquire('login', 'k', 3, 30) for _ in range(3)]
    assert all(isinstance(decision, Admitted) for decision in admitted)
    assert isinstance(limiter.try_acquire('login', 'k', 3, 30), Denied)


def test_refill_is_proportional(monotonic):
    limiter = RateLimiter(clock=monotonic)
    for _ in range(4):
        limiter.try_acquire('refresh-token', 'k', 4, 40)

    monotonic.advance(5)
    denied = limiter.try_acquire('refresh-token', 'k', 4, 40)
    assert isinstance(denied, Denied)
    assert denied.retry_after == pytest.approx(5.0)

    monotonic.advance(5)
    assert limiter.try_acquire('refresh-token', 'k', 4, 40) == Admitted(remaining=0)


def test_scopes_and_keys_are_independent(monotonic):
    limiter = RateLimiter(clock=monotonic)
    assert isinstance(limiter.try_acquire('login', 'a', 1, 60), Admitted)
    assert isinstance(limiter.try_acquire('login', 'a', 1, 60), Denied)
    assert isinstance(limiter.try_acquire('login', 'b', 1, 60), Admitted)
    assert isinstance(limiter.try_acquire('register', 'a', 1, 60), Admitted)


def test_idle_buckets_are_evicted_and_recreated_full(monotonic):
    limiter = RateLimiter(idle_ttl=10, clock=monotonic)
    limiter.try_acquire('login', 'a', 2, 60)
    limiter.try_acquire('login', 'a', 2, 60)
    limiter.try_acquire('login', 'b', 2, 60)

    monotonic.advance(65)
    assert limiter.evict_idle() == 0

    limiter.try_acquire('login', 'b', 2, 60)
    monotonic.advance(10)
    assert limiter.evict_idle() == 1
    assert len(limiter) == 1

    assert limiter.try_acquire('login', 'a', 2, 60) == Admitted(remaining=1)


def test_invalid_policy_is_rejected(monotonic):
    limiter = RateLimiter(clock=monotonic)
    with pytest.raises(ValueError):
        limiter.try_acquire('login', 'a', 0, 60)


def test_concurrent_requests_never_exceed_capacity(monotonic):
    limiter = RateLimiter(clock=monotonic)
    barrier = threading.Barrier(16)
    admitted: list[bool] = []
    lock = threading.Lock()

    def attempt() -> None:
        barrier.wait()
        decision = limiter.try_acquire('login', 'shared', 5, 60)
        with lock:
            admitted.append(isinstance(decision, Admitted))

    threads = [threading.Thread(target=attempt) for _ in range(16)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)

    assert admitted.count(True) == 5
    assert admitted.count(False) == 11


def test_eviction_during_lookup_does_not_grant_a_second_bucket(monkeypatch, monotonic):
    limiter = RateLimiter(idle_ttl=10, clock=monotonic)
    limiter.try_acquire('login', 'k', 2, 60)
    monotonic.advance(75)

    lookup = limiter._bucket_for
    evicted: list[int] = []

    def lookup_then_evict(*args):
        bucket = lookup(*args)
        if not evicted:
            evicted.append(limiter.evict_idle())
        return bucket

    monkeypatch.setattr(limiter, '_bucket_for', lookup_then_evict)

    decisions = [limiter.try_acquire('login', 'k', 2, 60) for _ in range(4)]

    assert evicted == [1]
    assert [isinstance(decision, Admitted) for decision in decisions] == [True, True, False, False]
    assert len(limiter) == 1
