"""
app/services/price_scraping_service.py

Service facade over the scrape engine, result cache, rate limiter and batch
runner. Every trigger (HTTP, scheduler, CLI) goes through this class.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from functools import lru_cache
from typing import Any, Protocol
from urllib.parse import urlparse

from fastapi import BackgroundTasks
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.cache import CacheGateway, build_cache_gateway, scrape_cache_key, scrape_cache_pattern
from app.config import (
    RateLimitSettings,
    SchedulerSettings,
    get_cache_settings,
    get_rate_limit_settings,
    get_scheduler_settings,
)
from app.domain.price_scraping import BatchItemResult, BatchSummary
from app.scraping.config import ScrapingSettings, get_scraping_settings
from app.scraping.engine import ScrapeEngine
from app.scraping.errors import NoPriceFoundError, TransportError
from app.scraping.logging_utils import log_event
from app.scraping.rate_limiter import RateLimitDecision, SlidingWindowRateLimiter, build_rate_limiter
from app.scraping.selectors import SelectorResolver
from app.scraping.types import ExtractionMode, ScrapeOutcome
from app.services.batch_runner import BatchRunner
from db.models.price_record import PriceRecord, PriceSource
from db.models.scrape_attempt import ScrapeAttempt, ScrapeTrigger
from db.models.tracked_url import MAX_INTERVAL_HOURS, TrackedURL
from db.repositories.errors import PersistenceError
from db.repositories.price_record_repository import PriceRecordRepository
from db.repositories.scrape_attempt_repository import ScrapeAttemptRepository
from db.repositories.tracked_url_repository import TrackedURLRepository

logger = logging.getLogger(__name__)

_ALLOWED_SCHEMES = {"http", "https"}


class TaskExecutor(Protocol):
    def submit(self, task: Callable[..., None], *args: Any, **kwargs: Any) -> None:
        ...


class FastAPIBackgroundTaskExecutor:
    def __init__(self, background_tasks: BackgroundTasks) -> None:
        self._background_tasks = background_tasks

    def submit(self, task: Callable[..., None], *args: Any, **kwargs: Any) -> None:
        self._background_tasks.add_task(task, *args, **kwargs)


def validate_target_url(url: str) -> str:
    """
    Return the stripped URL or raise ``ValueError`` for a non-HTTP target.
    """

    candidate = (url or "").strip()
    parsed = urlparse(candidate)
    if parsed.scheme.lower() not in _ALLOWED_SCHEMES or not parsed.netloc:
        raise ValueError(f"URL must be an absolute http(s) URL: {url!r}")
    return candidate


def validate_interval_hours(interval_hours: int) -> int:
    if not 0 < interval_hours <= MAX_INTERVAL_HOURS:
        raise ValueError(f"interval_hours must be between 1 and {MAX_INTERVAL_HOURS}: {interval_hours}")
    return interval_hours


@contextmanager
def _unit_of_work(db: Session) -> Iterator[None]:
    try:
        yield
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise PersistenceError(f"Database write failed: {exc}") from exc
    except Exception:
        db.rollback()
        raise


class PriceScrapingService:
    """
    Runs test, on-demand and scheduled scrapes and manages tracked URLs.
    """

    def __init__(
        self,
        *,
        scraping_settings: ScrapingSettings,
        scheduler_settings: SchedulerSettings,
        rate_limit_settings: RateLimitSettings,
        cache: CacheGateway,
        rate_limiter: SlidingWindowRateLimiter,
        engine: ScrapeEngine | None = None,
        batch_runner: BatchRunner | None = None,
        session_factory: Callable[[], Session] | None = None,
    ) -> None:
        self._scraping_settings = scraping_settings
        self._scheduler_settings = scheduler_settings
        self._rate_limit_settings = rate_limit_settings
        self._cache = cache
        self._rate_limiter = rate_limiter
        self._engine = engine or ScrapeEngine(settings=scraping_settings)
        self._batch_runner = batch_runner or BatchRunner(
            engine=self._engine,
            rate_limiter=rate_limiter,
            scheduler_settings=scheduler_settings,
            rate_limit_settings=rate_limit_settings,
        )
        if session_factory is None:
            from db.session import SessionLocal

            self._session_factory = SessionLocal
        else:
            self._session_factory = session_factory

    # ------------------------------------------------------------------
    # Scraping
    # ------------------------------------------------------------------

    def test_scrape(self, url: str, hint: str, *, db: Session | None = None) -> ScrapeOutcome:
        """
        Interactive hint check: FAST mode, no cache, debug details on failure.
        """

        url = validate_target_url(url)
        SelectorResolver.validate_hint(hint)
        outcome = self._engine.scrape(url, hint, ExtractionMode.FAST, debug=True)
        if db is not None:
            self._record_adhoc_attempt(db, outcome, trigger=ScrapeTrigger.TEST)
        return outcome

    def scrape_price(self, url: str, hint: str, *, db: Session | None = None) -> ScrapeOutcome:
        """
        BEST_EFFORT scrape behind the result cache. Failures are never cached.
        """

        url = validate_target_url(url)
        SelectorResolver.validate_hint(hint)
        computed: list[ScrapeOutcome] = []

        def compute() -> dict[str, Any]:
            outcome = self._engine.scrape(url, hint, ExtractionMode.BEST_EFFORT)
            computed.append(outcome)
            outcome.raise_for_failure()
            return outcome.to_cache_payload()

        try:
            payload, from_cache = self._cache.get_or_set(
                scrape_cache_key(url, hint),
                compute,
                self._scraping_settings.cache_ttl_seconds,
            )
        except (TransportError, NoPriceFoundError):
            outcome = computed[-1]
        else:
            outcome = ScrapeOutcome.from_cache_payload(payload) if from_cache else computed[-1]

        if computed and db is not None:
            self._record_adhoc_attempt(db, computed[-1], trigger=ScrapeTrigger.ON_DEMAND)
        return outcome

    def run_batch(self, db: Session, *, limit: int | None = None) -> BatchSummary:
        return self._batch_runner.run_batch(db, limit=limit)

    def launch_batch(self, executor: TaskExecutor, *, limit: int | None = None) -> None:
        """
        Schedule a batch in the background; it opens its own session.
        """

        executor.submit(self._run_batch_job, limit)
        log_event(logger, logging.INFO, "batch_launched", limit=limit)

    def run_one(self, db: Session, tracked_url_id: uuid.UUID) -> BatchItemResult:
        return self._batch_runner.run_one(db, tracked_url_id)

    # ------------------------------------------------------------------
    # Cache and rate limiting
    # ------------------------------------------------------------------

    def get_cache_stats(self) -> dict[str, Any]:
        return self._cache.get_stats()

    def clear_cache(self, url: str | None = None) -> int:
        return self._cache.delete_pattern(scrape_cache_pattern(url))

    def check_rate_limit(self, identity: str) -> RateLimitDecision:
        return self._rate_limiter.check_limit(identity)

    def get_rate_limit_stats(self, identity: str) -> RateLimitDecision:
        return self._rate_limiter.get_stats(identity)

    # ------------------------------------------------------------------
    # Tracked URLs
    # ------------------------------------------------------------------

    def create_tracked_url(
        self,
        db: Session,
        *,
        url: str,
        hint: str,
        material_key: str,
        interval_hours: int | None = None,
        price_multiplier: Decimal | None = None,
        is_active: bool = True,
        auto_scraping_enabled: bool = True,
    ) -> TrackedURL:
        url = validate_target_url(url)
        hint = ", ".join(SelectorResolver.validate_hint(hint))
        with _unit_of_work(db):
            tracked_url = TrackedURLRepository(db).create(
                url=url,
                hint=hint,
                material_key=material_key.strip(),
                interval_hours=validate_interval_hours(
                    interval_hours or self._scheduler_settings.default_interval_hours
                ),
                price_multiplier=price_multiplier if price_multiplier is not None else Decimal("1"),
                is_active=is_active,
                auto_scraping_enabled=auto_scraping_enabled,
            )
        log_event(logger, logging.INFO, "tracked_url_created", tracked_url_id=tracked_url.id, url=url)
        return tracked_url

    def list_tracked_urls(
        self,
        db: Session,
        *,
        active_only: bool = False,
        limit: int = 100,
        offset: int = 0,
    ) -> list[TrackedURL]:
        return TrackedURLRepository(db).list_all(active_only=active_only, limit=limit, offset=offset)

    def get_tracked_url(self, db: Session, tracked_url_id: uuid.UUID) -> TrackedURL:
        return TrackedURLRepository(db).get_or_raise(tracked_url_id)

    def update_tracked_url(
        self,
        db: Session,
        tracked_url_id: uuid.UUID,
        changes: Mapping[str, Any],
    ) -> TrackedURL:
        cleaned = dict(changes)
        if "url" in cleaned:
            cleaned["url"] = validate_target_url(cleaned["url"])
        if "hint" in cleaned:
            cleaned["hint"] = ", ".join(SelectorResolver.validate_hint(cleaned["hint"]))
        if "material_key" in cleaned:
            cleaned["material_key"] = cleaned["material_key"].strip()
        if cleaned.get("interval_hours") is not None:
            cleaned["interval_hours"] = validate_interval_hours(cleaned["interval_hours"])

        repository = TrackedURLRepository(db)
        previous_url = repository.get_or_raise(tracked_url_id).url
        with _unit_of_work(db):
            tracked_url = repository.update(tracked_url_id, cleaned)
        if "url" in cleaned or "hint" in cleaned:
            self.clear_cache(previous_url)
        return tracked_url

    def delete_tracked_url(self, db: Session, tracked_url_id: uuid.UUID) -> None:
        with _unit_of_work(db):
            TrackedURLRepository(db).delete(tracked_url_id)
        log_event(logger, logging.INFO, "tracked_url_deleted", tracked_url_id=tracked_url_id)

    def get_history(
        self,
        db: Session,
        tracked_url_id: uuid.UUID,
        *,
        limit: int = 50,
    ) -> list[ScrapeAttempt]:
        TrackedURLRepository(db).get_or_raise(tracked_url_id)
        return ScrapeAttemptRepository(db).list_for_tracked_url(tracked_url_id, limit=limit)

    def schedule_all_now(self, db: Session) -> int:
        """
        Make every active auto-scraping URL due on the next batch.
        """

        with _unit_of_work(db):
            scheduled = TrackedURLRepository(db).schedule_all_now(now=datetime.now(timezone.utc))
        log_event(logger, logging.INFO, "tracked_urls_scheduled_now", count=scheduled)
        return scheduled

    # ------------------------------------------------------------------
    # Material prices
    # ------------------------------------------------------------------

    def list_prices(self, db: Session, *, limit: int = 100, offset: int = 0) -> list[PriceRecord]:
        return PriceRecordRepository(db).list_all(limit=limit, offset=offset)

    def set_manual_price(self, db: Session, material_key: str, unit_price: Decimal) -> PriceRecord:
        if unit_price <= 0:
            raise ValueError("unit_price must be positive.")
        with _unit_of_work(db):
            record = PriceRecordRepository(db).upsert(
                material_key=material_key.strip(),
                unit_price=unit_price.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP),
                source=PriceSource.MANUAL,
            )
        return record

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _record_adhoc_attempt(self, db: Session, outcome: ScrapeOutcome, *, trigger: str) -> None:
        try:
            with _unit_of_work(db):
                ScrapeAttemptRepository(db).record(outcome, trigger=trigger)
        except PersistenceError as exc:
            log_event(
                logger,
                logging.ERROR,
                "scrape_attempt_persist_failed",
                url=outcome.url,
                trigger=trigger,
                error=str(exc),
            )

    def _run_batch_job(self, limit: int | None) -> None:
        with self._session_factory() as db:
            try:
                self._batch_runner.run_batch(db, limit=limit)
            except Exception:
                db.rollback()
                logger.exception("Background price batch failed")


@lru_cache(maxsize=1)
def get_price_scraping_service() -> PriceScrapingService:
    """
    Build and cache the price scraping service.
    """

    cache_settings = get_cache_settings()
    rate_limit_settings = get_rate_limit_settings()
    return PriceScrapingService(
        scraping_settings=get_scraping_settings(),
        scheduler_settings=get_scheduler_settings(),
        rate_limit_settings=rate_limit_settings,
        cache=build_cache_gateway(cache_settings),
        rate_limiter=build_rate_limiter(
            rate_limit_settings,
            redis_url=cache_settings.redis_url,
            socket_timeout_seconds=cache_settings.socket_timeout_seconds,
        ),
    )
