"""
Environment loader for price scraping settings.
"""

from __future__ import annotations

from functools import lru_cache

from app.config import _get_float_env, _get_int_env, _get_optional_str_env, _get_str_env
from app.scraping.config.models import DEFAULT_USER_AGENT, ScrapingSettings

# Fetch timeouts stay in single-digit seconds so one slow host cannot stall a batch.
_MIN_TIMEOUT_SECONDS = 1.0
_MAX_TIMEOUT_SECONDS = 9.9


def _clamp_timeout(seconds: float) -> float:
    return min(_MAX_TIMEOUT_SECONDS, max(_MIN_TIMEOUT_SECONDS, seconds))


@lru_cache(maxsize=1)
def get_scraping_settings() -> ScrapingSettings:
    """
    Return cached scraper settings from environment variables.
    """

    timeout = _get_float_env("PRICE_SCRAPE_TIMEOUT_SECONDS", 8.0)
    proxy_timeout = _get_float_env("PRICE_SCRAPE_PROXY_TIMEOUT_SECONDS", 9.0)
    return ScrapingSettings(
        user_agent=_get_str_env("PRICE_SCRAPE_USER_AGENT", DEFAULT_USER_AGENT),
        accept_language=_get_str_env("PRICE_SCRAPE_ACCEPT_LANGUAGE", "tr-TR,tr;q=0.9,en;q=0.8"),
        timeout_seconds=_clamp_timeout(timeout),
        proxy_url=_get_optional_str_env("PRICE_SCRAPE_PROXY_URL"),
        proxy_timeout_seconds=_clamp_timeout(proxy_timeout),
        max_retries=max(0, _get_int_env("PRICE_SCRAPE_MAX_RETRIES", 0)),
        backoff_initial_seconds=max(0.1, _get_float_env("PRICE_SCRAPE_BACKOFF_INITIAL_SECONDS", 0.5)),
        backoff_multiplier=max(1.0, _get_float_env("PRICE_SCRAPE_BACKOFF_MULTIPLIER", 2.0)),
        cache_ttl_seconds=max(1, _get_int_env("PRICE_SCRAPE_CACHE_TTL_SECONDS", 3600)),
        html_preview_chars=max(0, _get_int_env("PRICE_SCRAPE_HTML_PREVIEW_CHARS", 1000)),
    )
