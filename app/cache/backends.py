"""
Key-value storage backends for the cache gateway.

Backends store already-serialized strings and raise ``CacheBackendError`` for
any storage failure; deciding what to do about it is the gateway's job.
"""

from __future__ import annotations

import fnmatch
import threading
import time
from collections.abc import Callable
from typing import Any, Protocol

from redis import Redis
from redis.exceptions import RedisError

from app.scraping.errors import CacheBackendError

_SCAN_BATCH = 500


class CacheBackend(Protocol):
    name: str

    def get(self, key: str) -> str | None:
        ...

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        ...

    def delete(self, key: str) -> int:
        ...

    def delete_pattern(self, pattern: str) -> int:
        ...

    def ttl(self, key: str) -> int | None:
        ...

    def expire(self, key: str, ttl_seconds: int) -> bool:
        ...

    def stats(self, prefix: str) -> dict[str, Any]:
        ...


class InMemoryCacheBackend:
    """
    Process-local backend with monotonic expiry, used when Redis is not configured.
    """

    name = "memory"

    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: dict[str, tuple[str, float]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> str | None:
        with self._lock:
            entry = self._live_entry(key)
            return entry[0] if entry else None

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        with self._lock:
            self._entries[key] = (value, self._clock() + ttl_seconds)

    def delete(self, key: str) -> int:
        with self._lock:
            return 1 if self._entries.pop(key, None) is not None else 0

    def delete_pattern(self, pattern: str) -> int:
        with self._lock:
            matched = [key for key in self._entries if fnmatch.fnmatchcase(key, pattern)]
            for key in matched:
                del self._entries[key]
            return len(matched)

    def ttl(self, key: str) -> int | None:
        with self._lock:
            entry = self._live_entry(key)
            if entry is None:
                return None
            return max(0, int(entry[1] - self._clock()))

    def expire(self, key: str, ttl_seconds: int) -> bool:
        with self._lock:
            entry = self._live_entry(key)
            if entry is None:
                return False
            self._entries[key] = (entry[0], self._clock() + ttl_seconds)
            return True

    def stats(self, prefix: str) -> dict[str, Any]:
        with self._lock:
            now = self._clock()
            keys = sum(
                1
                for key, (_, expires_at) in self._entries.items()
                if key.startswith(prefix) and expires_at > now
            )
        return {"backend": self.name, "connected": True, "keys": keys}

    def _live_entry(self, key: str) -> tuple[str, float] | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry[1] <= self._clock():
            del self._entries[key]
            return None
        return entry


class RedisCacheBackend:
    """
    Redis-backed storage; every key carries a TTL.
    """

    name = "redis"

    def __init__(self, client: Redis) -> None:
        self._client = client

    @classmethod
    def from_url(cls, redis_url: str, *, socket_timeout_seconds: float) -> "RedisCacheBackend":
        client = Redis.from_url(
            redis_url,
            decode_responses=True,
            socket_timeout=socket_timeout_seconds,
            socket_connect_timeout=socket_timeout_seconds,
        )
        return cls(client)

    def get(self, key: str) -> str | None:
        try:
            return self._client.get(key)
        except RedisError as exc:
            raise CacheBackendError(f"Redis GET failed: {exc}") from exc

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        try:
            self._client.setex(key, ttl_seconds, value)
        except RedisError as exc:
            raise CacheBackendError(f"Redis SETEX failed: {exc}") from exc

    def delete(self, key: str) -> int:
        try:
            return int(self._client.delete(key))
        except RedisError as exc:
            raise CacheBackendError(f"Redis DEL failed: {exc}") from exc

    def delete_pattern(self, pattern: str) -> int:
        # SCAN instead of KEYS so large keyspaces do not block the server.
        try:
            deleted = 0
            batch: list[str] = []
            for key in self._client.scan_iter(match=pattern, count=_SCAN_BATCH):
                batch.append(key)
                if len(batch) >= _SCAN_BATCH:
                    deleted += int(self._client.delete(*batch))
                    batch = []
            if batch:
                deleted += int(self._client.delete(*batch))
            return deleted
        except RedisError as exc:
            raise CacheBackendError(f"Redis pattern delete failed: {exc}") from exc

    def ttl(self, key: str) -> int | None:
        try:
            remaining = int(self._client.ttl(key))
        except RedisError as exc:
            raise CacheBackendError(f"Redis TTL failed: {exc}") from exc
        # -2 means the key does not exist; -1 means it has no expiry.
        if remaining == -2:
            return None
        return remaining

    def expire(self, key: str, ttl_seconds: int) -> bool:
        try:
            return bool(self._client.expire(key, ttl_seconds))
        except RedisError as exc:
            raise CacheBackendError(f"Redis EXPIRE failed: {exc}") from exc

    def stats(self, prefix: str) -> dict[str, Any]:
        try:
            keys = sum(1 for _ in self._client.scan_iter(match=f"{prefix}*", count=_SCAN_BATCH))
            info = self._client.info("memory")
        except RedisError as exc:
            raise CacheBackendError(f"Redis stats failed: {exc}") from exc
        return {
            "backend": self.name,
            "connected": True,
            "keys": keys,
            "memory_used": info.get("used_memory_human"),
        }
