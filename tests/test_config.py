"""
tests/test_config.py

Environment-driven settings loaders.
"""

from __future__ import annotations

from collections.abc import Iterator

import pytest

from app.config import get_cache_settings, get_rate_limit_settings, get_scheduler_settings
from app.scraping.config import get_scraping_settings

_LOADERS = (get_cache_settings, get_rate_limit_settings, get_scheduler_settings, get_scraping_settings)


@pytest.fixture(autouse=True)
def _fresh_settings() -> Iterator[None]:
    for loader in _LOADERS:
        loader.cache_clear()
    yield
    for loader in _LOADERS:
        loader.cache_clear()


@pytest.mark.parametrize(("raw", "expected"), [("30", 9.9), ("0.2", 1.0), ("5", 5.0), ("slow", 8.0)])
def test_fetch_timeout_is_clamped(monkeypatch: pytest.MonkeyPatch, raw: str, expected: float) -> None:
    monkeypatch.setenv("PRICE_SCRAPE_TIMEOUT_SECONDS", raw)

    assert get_scraping_settings().timeout_seconds == expected


@pytest.mark.parametrize(("raw", "expected"), [("15", 9.9), ("0", 1.0), ("4.5", 4.5), ("", 9.0)])
def test_proxy_timeout_is_clamped(monkeypatch: pytest.MonkeyPatch, raw: str, expected: float) -> None:
    monkeypatch.setenv("PRICE_SCRAPE_PROXY_TIMEOUT_SECONDS", raw)

    assert get_scraping_settings().proxy_timeout_seconds == expected


def test_blank_proxy_means_direct_only(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PRICE_SCRAPE_PROXY_URL", "   ")

    assert get_scraping_settings().proxy_url is None


def test_request_headers_follow_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PRICE_SCRAPE_USER_AGENT", "PriceBot/1.0")

    headers = get_scraping_settings().request_headers()

    assert headers["User-Agent"] == "PriceBot/1.0"
    assert headers["Accept-Language"].startswith("tr-TR")


def test_scheduler_and_rate_limit_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SCHEDULER_ENABLED", "false")
    monkeypatch.setenv("SCHEDULER_BATCH_SIZE", "0")
    monkeypatch.setenv("RATE_LIMIT_REQUESTS_PER_MINUTE", "120")
    monkeypatch.setenv("REDIS_URL", "redis://cache:6379/0")

    scheduler = get_scheduler_settings()
    rate_limit = get_rate_limit_settings()

    assert scheduler.enabled is False
    assert scheduler.batch_size == 1
    assert rate_limit.requests_per_window == 120
    assert get_cache_settings().redis_url == "redis://cache:6379/0"
