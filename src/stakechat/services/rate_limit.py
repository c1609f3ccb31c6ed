"""Fixed-window request counters keyed by wallet or client address.

The memory store keeps counters in process memory and is only correct for a
single-instance deployment; counters reset on restart. Multi-instance
deployments must set ``RATE_LIMIT_BACKEND=redis`` so every instance shares
one store.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import Enum
from threading import Lock
from typing import Any, Final, Protocol

import redis

from stakechat.core.settings import settings

logger = logging.getLogger(__name__)

_PRUNE_EVERY_HITS: Final[int] = 1_000


@dataclass(frozen=True)
class RateLimitCounter:
    """Request count for one key inside the current window."""

    count: int
    window_start: float


class RateLimitOutcome(str, Enum):
    ALLOWED = "allowed"
    DENIED = "denied"


@dataclass(frozen=True)
class RateLimitDecision:
    """Result of a single rate-limit check."""

    outcome: RateLimitOutcome
    count: int
    limit: int
    retry_after_seconds: int

    @property
    def allowed(self) -> bool:
        return self.outcome is RateLimitOutcome.ALLOWED


class CounterStore(Protocol):
    """Atomic read-compare-increment-or-reset primitive."""

    def hit(self, key: str, window_seconds: int, now: float) -> RateLimitCounter: ...


class MemoryCounterStore:
    """Process-local counters guarded by a lock."""

    def __init__(self) -> None:
        # Counter plus the window it was counted under.
        self._counters: dict[str, tuple[RateLimitCounter, int]] = {}
        self._lock = Lock()
        self._hits = 0

    def hit(self, key: str, window_seconds: int, now: float) -> RateLimitCounter:
        with self._lock:
            self._hits += 1
            if self._hits % _PRUNE_EVERY_HITS == 0:
                self._prune(now)

            entry = self._counters.get(key)
            current = entry[0] if entry is not None else None
            if current is None or now - current.window_start > window_seconds:
                updated = RateLimitCounter(count=1, window_start=now)
            else:
                updated = RateLimitCounter(count=current.count + 1, window_start=current.window_start)
            # Count and window are replaced together, never independently.
            self._counters[key] = (updated, window_seconds)
            return updated

    def _prune(self, now: float) -> None:
        expired = [
            key
            for key, (counter, window_seconds) in self._counters.items()
            if now - counter.window_start > window_seconds
        ]
        for key in expired:
            del self._counters[key]

    def clear(self) -> None:
        with self._lock:
            self._counters.clear()
            self._hits = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._counters)


class RedisCounterStore:
    """Counters shared through Redis; the window clock is the key TTL."""

    def __init__(self, client: Any) -> None:
        self._redis = client

    def hit(self, key: str, window_seconds: int, now: float) -> RateLimitCounter:
        pipe = self._redis.pipeline(transaction=True)
        pipe.incr(key)
        pipe.expire(key, int(window_seconds), nx=True)
        pipe.ttl(key)
        count, _, ttl = pipe.execute()
        remaining = int(ttl) if ttl is not None and int(ttl) >= 0 else int(window_seconds)
        return RateLimitCounter(
            count=int(count),
            window_start=now - (int(window_seconds) - remaining),
        )


class RateLimiter:
    """Fixed-window limiter for one class of caller."""

    def __init__(
        self,
        name: str,
        *,
        limit: int,
        window_seconds: int,
        store: CounterStore | None = None,
    ) -> None:
        self.name = name
        self.limit = limit
        self.window_seconds = window_seconds
        self._store: CounterStore = store or get_counter_store()

    def check(self, key: str, now: float | None = None) -> RateLimitDecision:
        """Count one request for ``key`` and decide whether it may proceed."""
        timestamp = time.time() if now is None else now
        store_key = f"ratelimit:{self.name}:{key}"

        try:
            counter = self._store.hit(store_key, self.window_seconds, timestamp)
        except redis.RedisError as exc:
            logger.error("Rate-limit store failed (%s); falling back to process memory", exc)
            self._store = _MEMORY_STORE
            counter = self._store.hit(store_key, self.window_seconds, timestamp)

        retry_after = max(0, int(counter.window_start + self.window_seconds - timestamp))
        if counter.count > self.limit:
            logger.info(
                "Rate limit %s exceeded for %s (%d/%d)",
                self.name,
                key,
                counter.count,
                self.limit,
            )
            return RateLimitDecision(RateLimitOutcome.DENIED, counter.count, self.limit, retry_after)
        return RateLimitDecision(RateLimitOutcome.ALLOWED, counter.count, self.limit, retry_after)


_MEMORY_STORE: Final[MemoryCounterStore] = MemoryCounterStore()
_SHARED_STORE: CounterStore | None = None


def get_counter_store() -> CounterStore:
    """Return the configured counter store."""
    global _SHARED_STORE
    if _SHARED_STORE is None:
        if settings.rate_limit_backend == "redis":
            _SHARED_STORE = RedisCounterStore(redis.from_url(settings.redis_url))  # type: ignore[no-untyped-call]
        else:
            logger.info("Rate limits use process memory; single-instance deployments only")
            _SHARED_STORE = _MEMORY_STORE
    return _SHARED_STORE


def get_wallet_rate_limiter() -> RateLimiter:
    """Return the limiter for authenticated wallets without stake."""
    return RateLimiter(
        "wallet",
        limit=settings.rate_limit,
        window_seconds=settings.rate_window_seconds,
    )


def get_anonymous_rate_limiter() -> RateLimiter:
    """Return the limiter for anonymous callers keyed by network address."""
    return RateLimiter(
        "anonymous",
        limit=settings.anonymous_rate_limit,
        window_seconds=settings.anonymous_window_seconds,
    )
