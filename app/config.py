"""
app/config.py

Application-level configuration helpers.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from db.config import load_env_files


@lru_cache(maxsize=1)
def _load_env_once() -> None:
    """
    Ensure project `.env` files are loaded once before reading app settings.
    """

    load_env_files()


def _get_bool_env(name: str, default: bool) -> bool:
    """
    Read a boolean from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    return raw_value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int_env(name: str, default: int) -> int:
    """
    Read an integer from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return int(raw_value)
    except ValueError:
        return default


def _get_float_env(name: str, default: float) -> float:
    """
    Read a float from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return float(raw_value)
    except ValueError:
        return default


def _get_str_env(name: str, default: str) -> str:
    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return default
    stripped = value.strip()
    return stripped if stripped else default


def _get_optional_str_env(name: str) -> str | None:
    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return None
    stripped = value.strip()
    return stripped if stripped else None


@dataclass(frozen=True)
class CacheSettings:
    """
    Shared result cache settings. No Redis URL means in-process caching.
    """

    redis_url: str | None = None
    key_prefix: str = "pricescrape:"
    default_ttl_seconds: int = 3600
    socket_timeout_seconds: float = 2.0


@dataclass(frozen=True)
class RateLimitSettings:
    """
    Sliding-window limiter settings applied per caller identity.
    """

    requests_per_window: int = 60
    window_seconds: int = 60
    key_prefix: str = "pricescrape:ratelimit:"
    service_identity: str = "scheduler"
    max_wait_seconds: float = 30.0


@dataclass(frozen=True)
class SchedulerSettings:
    """
    Periodic batch scrape settings.
    """

    enabled: bool = True
    poll_interval_minutes: int = 15
    batch_size: int = 50
    inter_item_delay_seconds: float = 2.0
    default_interval_hours: int = 24


@lru_cache(maxsize=1)
def get_cache_settings() -> CacheSettings:
    """
    Return cached result-cache settings from environment variables.
    """

    return CacheSettings(
        redis_url=_get_optional_str_env("REDIS_URL"),
        key_prefix=_get_str_env("CACHE_KEY_PREFIX", "pricescrape:"),
        default_ttl_seconds=max(1, _get_int_env("CACHE_DEFAULT_TTL_SECONDS", 3600)),
        socket_timeout_seconds=max(0.1, _get_float_env("REDIS_SOCKET_TIMEOUT_SECONDS", 2.0)),
    )


@lru_cache(maxsize=1)
def get_rate_limit_settings() -> RateLimitSettings:
    """
    Return rate limiter settings from environment variables.
    """

    return RateLimitSettings(
        requests_per_window=max(1, _get_int_env("RATE_LIMIT_REQUESTS_PER_MINUTE", 60)),
        window_seconds=max(1, _get_int_env("RATE_LIMIT_WINDOW_SECONDS", 60)),
        key_prefix=_get_str_env("RATE_LIMIT_PREFIX", "pricescrape:ratelimit:"),
        service_identity=_get_str_env("RATE_LIMIT_SERVICE_IDENTITY", "scheduler"),
        max_wait_seconds=max(0.0, _get_float_env("RATE_LIMIT_MAX_WAIT_SECONDS", 30.0)),
    )


@lru_cache(maxsize=1)
def get_scheduler_settings() -> SchedulerSettings:
    """
    Return scheduler settings from environment variables.
    """

    return SchedulerSettings(
        enabled=_get_bool_env("SCHEDULER_ENABLED", True),
        poll_interval_minutes=max(1, _get_int_env("SCHEDULER_POLL_INTERVAL_MINUTES", 15)),
        batch_size=max(1, _get_int_env("SCHEDULER_BATCH_SIZE", 50)),
        inter_item_delay_seconds=max(0.0, _get_float_env("SCHEDULER_INTER_ITEM_DELAY_SECONDS", 2.0)),
        default_interval_hours=max(1, _get_int_env("DEFAULT_INTERVAL_HOURS", 24)),
    )
