"""
Exception taxonomy for the price scraping pipeline.

Fetch and extraction failures are normally carried inside a ``ScrapeOutcome``;
the exceptions below are raised at the seams where a failure has to stop a
code path (cache writes, admin input validation, gateway backends).
"""

from __future__ import annotations


class ScrapingError(Exception):
    """Base class for scraping pipeline failures."""


class TransportError(ScrapingError):
    """Raised when no HTML could be obtained for a URL."""

    def __init__(self, message: str, *, url: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class NoPriceFoundError(ScrapingError):
    """Raised when HTML was fetched but no price candidate survived filtering."""


class InvalidHintError(ScrapingError, ValueError):
    """Raised when a location hint is empty or contains an unparsable selector."""

    def __init__(self, message: str, *, fragments: list[str] | None = None) -> None:
        super().__init__(message)
        self.fragments = fragments or []


class CacheBackendError(ScrapingError):
    """Raised by cache backends; swallowed by the cache gateway."""


class RateLimitBackendError(ScrapingError):
    """Raised by rate limit backends; the limiter fails open on it."""
