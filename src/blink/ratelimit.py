"""Per-client token-bucket admission control for the execute endpoint."""

from __future__ import annotations

import logging
import math
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from fastapi import Request
from slowapi.util import get_remote_address

from blink.config import Settings
from blink.errors import RateLimited

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RateBucket:
    tokens: float
    refilled_at: float
    last_seen: float


class TokenBucketLimiter:
    """Token bucket per client key.

    Rejection is immediate; nothing is queued. Buckets idle for longer than
    ``idle_ttl`` seconds are swept so the map does not grow without bound.
    A single lock guards the map; the critical section is a few float ops.
    """

    def __init__(
        self,
        rate: float,
        burst: int,
        *,
        idle_ttl: float = 600.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if rate <= 0 or burst <= 0:
            raise ValueError("rate and burst must be positive")
        self.rate = float(rate)
        self.burst = int(burst)
        self.idle_ttl = idle_ttl
        self._clock = clock
        self._buckets: dict[str, RateBucket] = {}
        self._lock = threading.Lock()
        self._last_sweep = clock()

    @classmethod
    def from_settings(cls, settings: Settings) -> TokenBucketLimiter:
        return cls(
            settings.rate_limit_rps,
            settings.rate_limit_burst,
            idle_ttl=settings.rate_limit_idle_ttl,
        )

    def __len__(self) -> int:
        with self._lock:
            return len(self._buckets)

    def _refill(self, bucket: RateBucket, now: float) -> None:
        elapsed = max(0.0, now - bucket.refilled_at)
        bucket.tokens = min(float(self.burst), bucket.tokens + elapsed * self.rate)
        bucket.refilled_at = now

    def allow(self, key: str) -> bool:
        """Consume one token for ``key`` if one is available."""
        with self._lock:
            now = self._clock()
            self._maybe_sweep(now)
            bucket = self._buckets.get(key)
            if bucket is None:
                bucket = RateBucket(tokens=float(self.burst), refilled_at=now, last_seen=now)
                self._buckets[key] = bucket
            else:
                self._refill(bucket, now)
            bucket.last_seen = now
            if bucket.tokens >= 1.0:
                bucket.tokens -= 1.0
                return True
            return False

    def retry_after(self, key: str) -> float:
        """Seconds until ``key`` would next be admitted."""
        with self._lock:
            bucket = self._buckets.get(key)
            if bucket is None:
                return 0.0
            missing = max(0.0, 1.0 - bucket.tokens)
            return missing / self.rate

    def acquire(self, key: str) -> None:
        if self.allow(key):
            return
        retry_after = self.retry_after(key)
        logger.warning("rate limit exceeded for %s (retry in %.2fs)", key, retry_after)
        raise RateLimited(key, retry_after=retry_after)

    def _maybe_sweep(self, now: float) -> None:
        if self.idle_ttl <= 0 or now - self._last_sweep < self.idle_ttl:
            return
        self._last_sweep = now
        cutoff = now - self.idle_ttl
        stale = [key for key, bucket in self._buckets.items() if bucket.last_seen < cutoff]
        for key in stale:
            del self._buckets[key]
        if stale:
            logger.debug("evicted %d idle rate-limit buckets", len(stale))

    def sweep(self) -> int:
        """Force an eviction pass; returns the number of buckets removed."""
        with self._lock:
            before = len(self._buckets)
            self._last_sweep = float("-inf")
            self._maybe_sweep(self._clock())
            return before - len(self._buckets)


def retry_after_header(seconds: float) -> str:
    return str(max(1, math.ceil(seconds)))


def enforce_execute_rate_limit(request: Request) -> None:
    """FastAPI dependency: admit the caller or raise RateLimited (429)."""
    limiter: TokenBucketLimiter = request.app.state.execute_limiter
    limiter.acquire(get_remote_address(request))
