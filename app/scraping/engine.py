"""
Price scrape engine: fetch one page, extract one price.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from datetime import datetime, timezone

from app.scraping.config.models import ScrapingSettings
from app.scraping.errors import TransportError
from app.scraping.extractor import PriceExtractor
from app.scraping.fetcher import Fetcher
from app.scraping.logging_utils import elapsed_ms, log_event
from app.scraping.types import (
    NO_PRICE_MESSAGE,
    ErrorType,
    ExtractionMode,
    FetchResult,
    ScrapeOutcome,
)

logger = logging.getLogger(__name__)


class ScrapeEngine:
    """
    Turns (url, hint, mode) into a ``ScrapeOutcome``.

    Fetch and extraction failures are returned as failed outcomes, never
    raised, so every caller can record them the same way.
    """

    def __init__(
        self,
        *,
        settings: ScrapingSettings,
        fetcher: Fetcher | None = None,
        extractor: PriceExtractor | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._settings = settings
        self._fetcher = fetcher or Fetcher(settings=settings)
        self._extractor = extractor or PriceExtractor()
        self._sleep = sleep

    def scrape(
        self,
        url: str,
        hint: str,
        mode: ExtractionMode = ExtractionMode.BEST_EFFORT,
        *,
        debug: bool = False,
    ) -> ScrapeOutcome:
        started = time.perf_counter()
        scraped_at = datetime.now(timezone.utc)

        try:
            fetched = self._fetch_with_retry(url)
        except TransportError as exc:
            outcome = ScrapeOutcome(
                url=url,
                hint=hint,
                success=False,
                scraped_at=scraped_at,
                elapsed_ms=elapsed_ms(started),
                error=str(exc),
                error_type=ErrorType.TRANSPORT,
            )
            log_event(
                logger,
                logging.WARNING,
                "scrape_failed",
                url=url,
                error_type=outcome.error_type,
                error=outcome.error,
                elapsed_ms=outcome.elapsed_ms,
            )
            return outcome

        extraction = self._extractor.extract(fetched.html, hint, mode)
        if extraction.price is None:
            outcome = ScrapeOutcome(
                url=url,
                hint=hint,
                success=False,
                scraped_at=scraped_at,
                elapsed_ms=elapsed_ms(started),
                title=extraction.title,
                availability=extraction.availability,
                image=extraction.image,
                error=NO_PRICE_MESSAGE,
                error_type=ErrorType.NO_PRICE,
                debug=self._extractor.debug_snapshot(fetched.html) if debug else None,
                html_preview=self._preview(fetched.html) if debug else None,
            )
            log_event(
                logger,
                logging.INFO,
                "scrape_failed",
                url=url,
                error_type=outcome.error_type,
                transport=fetched.transport,
                elapsed_ms=outcome.elapsed_ms,
            )
            return outcome

        outcome = ScrapeOutcome(
            url=url,
            hint=hint,
            success=True,
            scraped_at=scraped_at,
            elapsed_ms=elapsed_ms(started),
            price=extraction.price,
            title=extraction.title,
            availability=extraction.availability,
            image=extraction.image,
            strategy=extraction.strategy,
        )
        log_event(
            logger,
            logging.INFO,
            "scrape_succeeded",
            url=url,
            price=outcome.price,
            strategy=outcome.strategy,
            mode=mode.value,
            transport=fetched.transport,
            elapsed_ms=outcome.elapsed_ms,
        )
        return outcome

    def _fetch_with_retry(self, url: str) -> FetchResult:
        max_retries = self._settings.max_retries
        for attempt in range(max_retries + 1):
            try:
                return self._fetcher.fetch(url)
            except TransportError:
                if attempt >= max_retries:
                    raise
            backoff_seconds = self._settings.backoff_initial_seconds * (
                self._settings.backoff_multiplier**attempt
            )
            log_event(
                logger,
                logging.INFO,
                "fetch_retry_scheduled",
                url=url,
                attempt=attempt + 1,
                backoff_seconds=backoff_seconds,
            )
            self._sleep(backoff_seconds)
        raise TransportError(f"Failed to fetch {url}", url=url)

    def _preview(self, html: str) -> str:
        return html[: self._settings.html_preview_chars]
