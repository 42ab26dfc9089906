"""
Shared scraping runtime data models.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from app.scraping.errors import NoPriceFoundError, TransportError

NO_PRICE_MESSAGE = "No price found for hint"


class ExtractionMode(str, Enum):
    """
    FAST stops at the first strategy that yields a price (interactive tests);
    BEST_EFFORT evaluates every strategy before choosing (batch runs).
    """

    FAST = "fast"
    BEST_EFFORT = "best_effort"


class ErrorType:
    TRANSPORT = "transport"
    NO_PRICE = "no_price"
    RATE_LIMITED = "rate_limited"
    INTERNAL = "internal"


@dataclass(frozen=True)
class PriceCandidate:
    value: Decimal
    strategy: str
    source: str


@dataclass(frozen=True)
class ExtractionResult:
    """
    Output of one extractor pass over a page.
    """

    price: Decimal | None
    strategy: str | None = None
    title: str | None = None
    availability: str | None = None
    image: str | None = None
    candidates: list[PriceCandidate] = field(default_factory=list)


@dataclass(frozen=True)
class FetchResult:
    html: str
    status_code: int
    transport: str


@dataclass(frozen=True)
class ScrapeOutcome:
    """
    Result of one Scrape Engine invocation, shaped like a ScrapeAttempt row.
    """

    url: str
    hint: str
    success: bool
    scraped_at: datetime
    elapsed_ms: int
    price: Decimal | None = None
    title: str | None = None
    availability: str | None = None
    image: str | None = None
    strategy: str | None = None
    error: str | None = None
    error_type: str | None = None
    from_cache: bool = False
    debug: dict[str, Any] | None = None
    html_preview: str | None = None

    def raise_for_failure(self) -> None:
        """
        Raise the exception matching a failed outcome; no-op on success.
        """

        if self.success:
            return
        if self.error_type == ErrorType.TRANSPORT:
            raise TransportError(self.error or "Fetch failed", url=self.url)
        raise NoPriceFoundError(self.error or NO_PRICE_MESSAGE)

    def to_cache_payload(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "hint": self.hint,
            "price": str(self.price) if self.price is not None else None,
            "title": self.title,
            "availability": self.availability,
            "image": self.image,
            "strategy": self.strategy,
            "scraped_at": self.scraped_at.isoformat(),
            "elapsed_ms": self.elapsed_ms,
        }

    @classmethod
    def from_cache_payload(cls, payload: dict[str, Any]) -> "ScrapeOutcome":
        price = payload.get("price")
        return cls(
            url=payload["url"],
            hint=payload.get("hint", ""),
            success=True,
            scraped_at=datetime.fromisoformat(payload["scraped_at"]),
            elapsed_ms=int(payload.get("elapsed_ms", 0)),
            price=Decimal(price) if price is not None else None,
            title=payload.get("title"),
            availability=payload.get("availability"),
            image=payload.get("image"),
            strategy=payload.get("strategy"),
            from_cache=True,
        )

    def with_cache_flag(self, from_cache: bool) -> "ScrapeOutcome":
        return replace(self, from_cache=from_cache)

    def snapshot(self) -> dict[str, Any]:
        """
        JSON-safe summary stored on the tracked URL after each run.
        """

        return {
            "success": self.success,
            "price": str(self.price) if self.price is not None else None,
            "title": self.title,
            "availability": self.availability,
            "error": self.error,
            "error_type": self.error_type,
            "strategy": self.strategy,
            "elapsed_ms": self.elapsed_ms,
            "scraped_at": self.scraped_at.isoformat(),
        }
