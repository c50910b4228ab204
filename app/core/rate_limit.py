"""
Token-bucket admission control.

Buckets are keyed by ``(scope, key)`` so one client gets an independent
budget per endpoint class, e.g. ``("login", "1.2.3.4")``.
"""
from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Optional, Union

from fastapi import Request
from loguru import logger


@dataclass(frozen=True)
class Admitted:
    remaining: int


@dataclass(frozen=True)
class Denied:
    retry_after: float


Decision = Union[Admitted, Denied]


@dataclass
class _Bucket:
    capacity: int
    refill_window: float
    tokens: float
    updated_at: float
    lock: threading.Lock = field(default_factory=threading.Lock)

    @property
    def rate(self) -> float:
        return self.capacity / self.refill_window

    def refill(self, now: float) -> None:
        elapsed = max(0.0, now - self.updated_at)
        self.tokens = min(float(self.capacity), self.tokens + elapsed * self.rate)
        self.updated_at = now


class RateLimiter:
    def __init__(self, idle_ttl: float = 60.0, clock: Callable[[], float] = time.monotonic) -> None:
        self._idle_ttl = idle_ttl
        self._clock = clock
        self._buckets: dict[tuple[str, str], _Bucket] = {}
        self._lock = threading.Lock()

    def try_acquire(self, scope: str, key: str, capacity: int, refill_window: float) -> Decision:
        if capacity < 1 or refill_window <= 0:
            raise ValueError('capacity must be >= 1 and refill_window > 0')
        while True:
            bucket = self._bucket_for(scope, key, capacity, refill_window)
            with bucket.lock:
                # Evicted or replaced while we waited; start over on the live one.
                if self._buckets.get((scope, key)) is not bucket:
                    continue
                return self._consume(bucket)

    def _consume(self, bucket: _Bucket) -> Decision:
        bucket.refill(self._clock())
        if bucket.tokens >= 1.0:
            bucket.tokens -= 1.0
            return Admitted(remaining=int(bucket.tokens))
        return Denied(retry_after=(1.0 - bucket.tokens) / bucket.rate)

    def evict_idle(self, now: Optional[float] = None) -> int:
        now = self._clock() if now is None else now
        with self._lock:
            stale = [
                bucket_key
                for bucket_key, bucket in self._buckets.items()
                if now - bucket.updated_at > bucket.refill_window + self._idle_ttl
                and not bucket.lock.locked()
            ]
            for bucket_key in stale:
                del self._buckets[bucket_key]
        if stale:
            logger.debug('Evicted {} idle rate-limit buckets', len(stale))
        return len(stale)

    def __len__(self) -> int:
        return len(self._buckets)

    def _bucket_for(self, scope: str, key: str, capacity: int, refill_window: float) -> _Bucket:
        bucket_key = (scope, key)
        with self._lock:
            bucket = self._buckets.get(bucket_key)
            if bucket is None or bucket.capacity != capacity or bucket.refill_window != refill_window:
                bucket = _Bucket(
                    capacity=capacity,
                    refill_window=float(refill_window),
                    tokens=float(capacity),
                    updated_at=self._clock(),
                )
                self._buckets[bucket_key] = bucket
            return bucket


def get_client_ip(request: Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip

    if request.client:
        return request.client.host

    return "unknown"
