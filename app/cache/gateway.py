"""
Cache-aside gateway in front of a cache backend.

Cache trouble never fails a scrape: backend errors are logged and the caller's
compute function runs directly.
"""

from __future__ import annotations

import hashlib
import json
import logging
import threading
from collections.abc import Callable
from typing import Any

from app.cache.backends import CacheBackend, InMemoryCacheBackend, RedisCacheBackend
from app.config import CacheSettings
from app.scraping.errors import CacheBackendError
from app.scraping.logging_utils import log_event

logger = logging.getLogger(__name__)

_LOCK_STRIPES = 64


def _digest(value: str, length: int) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()[:length]


def scrape_cache_key(url: str, hint: str) -> str:
    """
    Key for one (url, hint) scrape result, relative to the gateway prefix.
    """

    return f"scraping:{_digest(url, 32)}:{_digest(hint or '', 16)}"


def scrape_cache_pattern(url: str | None = None) -> str:
    if url is None:
        return "scraping:*"
    return f"scraping:{_digest(url, 32)}:*"


class CacheGateway:
    """
    JSON value cache with TTLs, single-flight computes and hit/miss counters.
    """

    def __init__(
        self,
        *,
        backend: CacheBackend | None,
        key_prefix: str = "pricescrape:",
        default_ttl_seconds: int = 3600,
    ) -> None:
        self._backend = backend
        self._prefix = key_prefix
        self._default_ttl = default_ttl_seconds
        self._locks = [threading.Lock() for _ in range(_LOCK_STRIPES)]
        self._counter_lock = threading.Lock()
        self._counters = {"hits": 0, "misses": 0, "errors": 0}

    @property
    def enabled(self) -> bool:
        return self._backend is not None

    def get_or_set(
        self,
        key: str,
        compute: Callable[[], Any],
        ttl_seconds: int | None = None,
    ) -> tuple[Any, bool]:
        """
        Return ``(value, from_cache)``.

        Exceptions raised by ``compute`` propagate and nothing is stored.
        """

        if self._backend is None:
            return compute(), False

        cached = self.get(key)
        if cached is not None:
            return cached, True

        with self._lock_for(key):
            # Another caller may have filled the key while this one waited.
            cached = self.get(key, count=False)
            if cached is not None:
                return cached, True
            value = compute()
            self.set(key, value, ttl_seconds)
            return value, False

    def get(self, key: str, *, count: bool = True) -> Any | None:
        if self._backend is None:
            return None
        try:
            raw = self._backend.get(self._full_key(key))
        except CacheBackendError as exc:
            self._record_error("get", key, exc)
            return None

        if raw is None:
            if count:
                self._increment("misses")
            return None
        try:
            value = json.loads(raw)
        except ValueError as exc:
            self._record_error("decode", key, exc)
            return None
        if count:
            self._increment("hits")
        return value

    def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> bool:
        if self._backend is None:
            return False
        ttl = ttl_seconds or self._default_ttl
        try:
            self._backend.set(self._full_key(key), json.dumps(value, default=str), ttl)
        except CacheBackendError as exc:
            self._record_error("set", key, exc)
            return False
        return True

    def delete(self, key: str) -> int:
        if self._backend is None:
            return 0
        try:
            return self._backend.delete(self._full_key(key))
        except CacheBackendError as exc:
            self._record_error("delete", key, exc)
            return 0

    def delete_pattern(self, pattern: str) -> int:
        if self._backend is None:
            return 0
        try:
            deleted = self._backend.delete_pattern(self._full_key(pattern))
        except CacheBackendError as exc:
            self._record_error("delete_pattern", pattern, exc)
            return 0
        log_event(logger, logging.INFO, "cache_pattern_deleted", pattern=pattern, deleted=deleted)
        return deleted

    def clear(self) -> int:
        return self.delete_pattern("*")

    def get_ttl(self, key: str) -> int | None:
        if self._backend is None:
            return None
        try:
            return self._backend.ttl(self._full_key(key))
        except CacheBackendError as exc:
            self._record_error("ttl", key, exc)
            return None

    def update_ttl(self, key: str, ttl_seconds: int) -> bool:
        if self._backend is None:
            return False
        try:
            return self._backend.expire(self._full_key(key), ttl_seconds)
        except CacheBackendError as exc:
            self._record_error("expire", key, exc)
            return False

    def get_stats(self) -> dict[str, Any]:
        with self._counter_lock:
            counters = dict(self._counters)
        if self._backend is None:
            return {"backend": None, "connected": False, "keys": 0, **counters}

        try:
            backend_stats = self._backend.stats(self._prefix)
        except CacheBackendError as exc:
            self._record_error("stats", "*", exc)
            backend_stats = {"backend": self._backend.name, "connected": False, "keys": 0}
        return {**backend_stats, **counters}

    def _full_key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    def _lock_for(self, key: str) -> threading.Lock:
        return self._locks[hash(key) % _LOCK_STRIPES]

    def _increment(self, counter: str) -> None:
        with self._counter_lock:
            self._counters[counter] += 1

    def _record_error(self, operation: str, key: str, exc: Exception) -> None:
        self._increment("errors")
        log_event(
            logger,
            logging.WARNING,
            "cache_backend_error",
            operation=operation,
            key=key,
            error=str(exc),
        )


def build_cache_gateway(settings: CacheSettings) -> CacheGateway:
    """
    Redis-backed gateway when ``REDIS_URL`` is set, in-process otherwise.
    """

    if settings.redis_url:
        backend: CacheBackend = RedisCacheBackend.from_url(
            settings.redis_url,
            socket_timeout_seconds=settings.socket_timeout_seconds,
        )
    else:
        backend = InMemoryCacheBackend()
    log_event(logger, logging.INFO, "cache_backend_selected", backend=backend.name)
    return CacheGateway(
        backend=backend,
        key_prefix=settings.key_prefix,
        default_ttl_seconds=settings.default_ttl_seconds,
    )
