"""
tests/test_engine.py

ScrapeEngine outcomes, retry policy and debug payloads.
"""

from __future__ import annotations

from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from app.scraping.config import ScrapingSettings
from app.scraping.engine import ScrapeEngine
from app.scraping.errors import NoPriceFoundError, TransportError
from app.scraping.types import NO_PRICE_MESSAGE, ErrorType, ExtractionMode, FetchResult
from tests.conftest import FakeFetcher, SleepRecorder

URL = "https://shop.example.com/urun/tugla"
PRICED = '<html><head><title>Tuğla</title></head><body><span class="price">1.250,00 TL</span></body></html>'
UNPRICED = "<html><head><title>Tuğla</title></head><body><p>Stokta</p></body></html>"


def _engine(fetcher: object, **settings: object) -> tuple[ScrapeEngine, SleepRecorder]:
    sleeper = SleepRecorder()
    engine = ScrapeEngine(
        settings=ScrapingSettings(**settings),
        fetcher=fetcher,  # type: ignore[arg-type]
        sleep=sleeper,
    )
    return engine, sleeper


def test_successful_scrape() -> None:
    engine, _ = _engine(FakeFetcher({URL: PRICED}))

    outcome = engine.scrape(URL, ".price", ExtractionMode.FAST)

    assert outcome.success is True
    assert outcome.price == Decimal("1250.00")
    assert outcome.title == "Tuğla"
    assert outcome.error is None
    assert outcome.error_type is None
    assert outcome.elapsed_ms >= 0
    assert outcome.scraped_at.tzinfo is not None


def test_transport_failure_skips_extraction() -> None:
    extractor = MagicMock()
    engine = ScrapeEngine(
        settings=ScrapingSettings(),
        fetcher=FakeFetcher(),  # type: ignore[arg-type]
        extractor=extractor,
    )

    outcome = engine.scrape(URL, ".price")

    assert outcome.success is False
    assert outcome.error_type == ErrorType.TRANSPORT
    assert "404" in (outcome.error or "")
    extractor.extract.assert_not_called()


def test_no_price_uses_fixed_message_and_keeps_metadata() -> None:
    engine, _ = _engine(FakeFetcher({URL: UNPRICED}))

    outcome = engine.scrape(URL, ".price")

    assert outcome.success is False
    assert outcome.error == NO_PRICE_MESSAGE
    assert outcome.error_type == ErrorType.NO_PRICE
    assert outcome.title == "Tuğla"
    assert outcome.debug is None
    assert outcome.html_preview is None


def test_debug_details_on_failed_extraction() -> None:
    engine, _ = _engine(FakeFetcher({URL: UNPRICED}), html_preview_chars=20)

    outcome = engine.scrape(URL, ".price", ExtractionMode.FAST, debug=True)

    assert outcome.html_preview == UNPRICED[:20]
    assert outcome.debug is not None
    assert outcome.debug["total_elements"] > 0


def test_retries_with_exponential_backoff() -> None:
    fetcher = MagicMock()
    fetcher.fetch.side_effect = [
        TransportError("timeout", url=URL),
        TransportError("timeout", url=URL),
        FetchResult(html=PRICED, status_code=200, transport="direct"),
    ]
    engine, sleeper = _engine(fetcher, max_retries=2, backoff_initial_seconds=0.5, backoff_multiplier=2.0)

    outcome = engine.scrape(URL, ".price")

    assert outcome.success is True
    assert fetcher.fetch.call_count == 3
    assert sleeper.calls == [0.5, 1.0]


def test_retries_exhausted() -> None:
    fetcher = FakeFetcher({URL: TransportError("refused", url=URL)})
    engine, sleeper = _engine(fetcher, max_retries=1)

    outcome = engine.scrape(URL, ".price")

    assert outcome.success is False
    assert outcome.error_type == ErrorType.TRANSPORT
    assert fetcher.calls == [URL, URL]
    assert len(sleeper.calls) == 1


def test_no_retry_by_default() -> None:
    fetcher = FakeFetcher()
    engine, sleeper = _engine(fetcher)

    engine.scrape(URL, ".price")

    assert fetcher.calls == [URL]
    assert sleeper.calls == []


class TestOutcomeHelpers:
    def test_raise_for_failure(self) -> None:
        engine, _ = _engine(FakeFetcher({URL: UNPRICED}))
        with pytest.raises(NoPriceFoundError):
            engine.scrape(URL, ".price").raise_for_failure()

        engine, _ = _engine(FakeFetcher())
        with pytest.raises(TransportError):
            engine.scrape(URL, ".price").raise_for_failure()

    def test_cache_payload_restores_outcome(self) -> None:
        engine, _ = _engine(FakeFetcher({URL: PRICED}))
        outcome = engine.scrape(URL, ".price")

        restored = type(outcome).from_cache_payload(outcome.to_cache_payload())

        assert restored.from_cache is True
        assert restored.price == outcome.price
        assert restored.scraped_at == outcome.scraped_at
        assert restored.title == outcome.title
