"""
Sliding-window request limiter keyed by caller identity.

Each identity may make ``limit`` requests in any ``window_seconds`` span. When
the counter store is unreachable the limiter fails open: requests are allowed
and the decision is marked ``degraded``.
"""

from __future__ import annotations

import logging
import math
import threading
import time
import uuid
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

from redis import Redis
from redis.exceptions import RedisError

from app.config import RateLimitSettings
from app.scraping.errors import RateLimitBackendError
from app.scraping.logging_utils import log_event

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WindowState:
    """
    Raw backend answer: entries in the window and the oldest entry timestamp.
    """

    count: int
    oldest: float | None
    recorded: bool


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    reset_at: float
    retry_after: int | None = None
    degraded: bool = False

    def headers(self) -> dict[str, str]:
        values = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(int(math.ceil(self.reset_at))),
        }
        if self.retry_after is not None:
            values["Retry-After"] = str(self.retry_after)
        return values


class RateLimitBackend(Protocol):
    name: str

    def hit(self, key: str, *, now: float, window_seconds: int, limit: int) -> WindowState:
        """Trim the window, record a request if under ``limit`` and report state."""

    def peek(self, key: str, *, now: float, window_seconds: int) -> WindowState:
        ...

    def reset(self, key: str) -> None:
        ...


class InMemoryRateLimitBackend:
    name = "memory"

    # Idle identities are swept after this many hits.
    SWEEP_EVERY = 256

    def __init__(self) -> None:
        self._windows: dict[str, deque[float]] = {}
        self._lock = threading.Lock()
        self._hits_since_sweep = 0

    def hit(self, key: str, *, now: float, window_seconds: int, limit: int) -> WindowState:
        with self._lock:
            window = self._trimmed(key, now=now, window_seconds=window_seconds)
            recorded = len(window) < limit
            if recorded:
                window.append(now)
            if window:
                self._windows[key] = window
            else:
                self._windows.pop(key, None)

            self._hits_since_sweep += 1
            if self._hits_since_sweep >= self.SWEEP_EVERY:
                self._sweep(now=now, window_seconds=window_seconds)
            return WindowState(
                count=len(window),
                oldest=window[0] if window else None,
                recorded=recorded,
            )

    def peek(self, key: str, *, now: float, window_seconds: int) -> WindowState:
        with self._lock:
            window = self._trimmed(key, now=now, window_seconds=window_seconds)
            if not window:
                self._windows.pop(key, None)
            return WindowState(
                count=len(window),
                oldest=window[0] if window else None,
                recorded=False,
            )

    def reset(self, key: str) -> None:
        with self._lock:
            self._windows.pop(key, None)

    def _trimmed(self, key: str, *, now: float, window_seconds: int) -> deque[float]:
        window = self._windows.get(key) or deque()
        cutoff = now - window_seconds
        while window and window[0] <= cutoff:
            window.popleft()
        return window

    def _sweep(self, *, now: float, window_seconds: int) -> None:
        cutoff = now - window_seconds
        stale = [key for key, window in self._windows.items() if not window or window[-1] <= cutoff]
        for key in stale:
            del self._windows[key]
        self._hits_since_sweep = 0


# KEYS[1] = window key; ARGV = now_ms, window_ms, limit, member
_SLIDING_WINDOW_SCRIPT = """
local key = KEYS[1]
local now = tonumber(ARGV[1])
local window = tonumber(ARGV[2])
local limit = tonumber(ARGV[3])
redis.call('ZREMRANGEBYSCORE', key, '-inf', now - window)
local count = redis.call('ZCARD', key)
local recorded = 0
if count < limit then
    redis.call('ZADD', key, now, ARGV[4])
    count = count + 1
    recorded = 1
end
redis.call('PEXPIRE', key, window)
local oldest = redis.call('ZRANGE', key, 0, 0, 'WITHSCORES')
local oldest_score = -1
if oldest[2] then
    oldest_score = tonumber(oldest[2])
end
return {count, recorded, oldest_score}
"""


class RedisRateLimitBackend:
    """
    Sorted-set sliding log; trim, count and add run atomically in one script.
    """

    name = "redis"

    def __init__(self, client: Redis) -> None:
        self._client = client
        self._script = client.register_script(_SLIDING_WINDOW_SCRIPT)

    @classmethod
    def from_url(cls, redis_url: str, *, socket_timeout_seconds: float) -> "RedisRateLimitBackend":
        client = Redis.from_url(
            redis_url,
            decode_responses=True,
            socket_timeout=socket_timeout_seconds,
            socket_connect_timeout=socket_timeout_seconds,
        )
        return cls(client)

    def hit(self, key: str, *, now: float, window_seconds: int, limit: int) -> WindowState:
        now_ms = int(now * 1000)
        member = f"{now_ms}-{uuid.uuid4().hex}"
        try:
            count, recorded, oldest_ms = self._script(
                keys=[key],
                args=[now_ms, window_seconds * 1000, limit, member],
            )
        except RedisError as exc:
            raise RateLimitBackendError(f"Redis rate limit script failed: {exc}") from exc
        return WindowState(
            count=int(count),
            oldest=_seconds_or_none(oldest_ms),
            recorded=bool(int(recorded)),
        )

    def peek(self, key: str, *, now: float, window_seconds: int) -> WindowState:
        now_ms = int(now * 1000)
        try:
            count = self._client.zcount(key, f"({now_ms - window_seconds * 1000}", "+inf")
            oldest = self._client.zrangebyscore(
                key,
                f"({now_ms - window_seconds * 1000}",
                "+inf",
                start=0,
                num=1,
                withscores=True,
            )
        except RedisError as exc:
            raise RateLimitBackendError(f"Redis rate limit peek failed: {exc}") from exc
        oldest_score = oldest[0][1] if oldest else None
        return WindowState(
            count=int(count),
            oldest=_seconds_or_none(oldest_score),
            recorded=False,
        )

    def reset(self, key: str) -> None:
        try:
            self._client.delete(key)
        except RedisError as exc:
            raise RateLimitBackendError(f"Redis rate limit reset failed: {exc}") from exc


def _seconds_or_none(score_ms: float | int | str | None) -> float | None:
    if score_ms is None:
        return None
    value = float(score_ms)
    if value < 0:
        return None
    return value / 1000.0


class SlidingWindowRateLimiter:
    """
    Per-identity limiter; ``check_limit`` consumes one request when allowed.
    """

    def __init__(
        self,
        *,
        backend: RateLimitBackend,
        limit: int = 60,
        window_seconds: int = 60,
        key_prefix: str = "pricescrape:ratelimit:",
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._backend = backend
        self._limit = max(1, limit)
        self._window_seconds = max(1, window_seconds)
        self._prefix = key_prefix
        self._clock = clock

    @property
    def limit(self) -> int:
        return self._limit

    def check_limit(self, identity: str) -> RateLimitDecision:
        now = self._clock()
        try:
            state = self._backend.hit(
                self._key(identity),
                now=now,
                window_seconds=self._window_seconds,
                limit=self._limit,
            )
        except RateLimitBackendError as exc:
            return self._fail_open(identity, now, exc)

        decision = self._decision(state, now=now, allowed=state.recorded)
        if not decision.allowed:
            log_event(
                logger,
                logging.INFO,
                "rate_limit_exceeded",
                identity=identity,
                limit=self._limit,
                retry_after=decision.retry_after,
            )
        return decision

    def get_stats(self, identity: str) -> RateLimitDecision:
        """
        Current window state for ``identity`` without consuming a request.
        """

        now = self._clock()
        try:
            state = self._backend.peek(
                self._key(identity),
                now=now,
                window_seconds=self._window_seconds,
            )
        except RateLimitBackendError as exc:
            return self._fail_open(identity, now, exc)
        return self._decision(state, now=now, allowed=state.count < self._limit)

    def reset(self, identity: str) -> None:
        try:
            self._backend.reset(self._key(identity))
        except RateLimitBackendError as exc:
            log_event(
                logger,
                logging.WARNING,
                "rate_limit_backend_unavailable",
                identity=identity,
                operation="reset",
                error=str(exc),
            )

    def _decision(self, state: WindowState, *, now: float, allowed: bool) -> RateLimitDecision:
        oldest = state.oldest if state.oldest is not None else now
        reset_at = oldest + self._window_seconds
        remaining = max(0, self._limit - state.count)
        if allowed:
            return RateLimitDecision(
                allowed=True,
                limit=self._limit,
                remaining=remaining,
                reset_at=reset_at,
            )
        return RateLimitDecision(
            allowed=False,
            limit=self._limit,
            remaining=0,
            reset_at=reset_at,
            retry_after=max(1, int(math.ceil(reset_at - now))),
        )

    def _fail_open(self, identity: str, now: float, exc: Exception) -> RateLimitDecision:
        log_event(
            logger,
            logging.WARNING,
            "rate_limit_backend_unavailable",
            identity=identity,
            error=str(exc),
        )
        return RateLimitDecision(
            allowed=True,
            limit=self._limit,
            remaining=self._limit,
            reset_at=now + self._window_seconds,
            degraded=True,
        )

    def _key(self, identity: str) -> str:
        return f"{self._prefix}{identity}"


def build_rate_limiter(
    settings: RateLimitSettings,
    *,
    redis_url: str | None,
    socket_timeout_seconds: float = 2.0,
) -> SlidingWindowRateLimiter:
    """
    Redis-backed limiter when a Redis URL is configured, in-process otherwise.
    """

    if redis_url:
        backend: RateLimitBackend = RedisRateLimitBackend.from_url(
            redis_url,
            socket_timeout_seconds=socket_timeout_seconds,
        )
    else:
        backend = InMemoryRateLimitBackend()
    return SlidingWindowRateLimiter(
        backend=backend,
        limit=settings.requests_per_window,
        window_seconds=settings.window_seconds,
        key_prefix=settings.key_prefix,
    )
