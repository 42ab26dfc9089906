"""
Scraping configuration models.
"""

from __future__ import annotations

from dataclasses import dataclass

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


@dataclass(frozen=True)
class ScrapingSettings:
    """
    Runtime settings for fetching and extracting product prices.
    """

    user_agent: str = DEFAULT_USER_AGENT
    accept_language: str = "tr-TR,tr;q=0.9,en;q=0.8"
    timeout_seconds: float = 8.0
    proxy_url: str | None = None
    proxy_timeout_seconds: float = 9.0
    max_retries: int = 0
    backoff_initial_seconds: float = 0.5
    backoff_multiplier: float = 2.0
    cache_ttl_seconds: int = 3600
    html_preview_chars: int = 1000

    def request_headers(self) -> dict[str, str]:
        """
        Browser-like header set sent on every fetch.
        """

        return {
            "User-Agent": self.user_agent,
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
            "Accept-Language": self.accept_language,
            "Accept-Encoding": "gzip, deflate",
            "Connection": "keep-alive",
            "Upgrade-Insecure-Requests": "1",
        }
