"""
app/services/batch_runner.py

Sequential runner for due tracked URLs.

Per item: scrape in BEST_EFFORT mode without the cache, record the attempt,
update the material price on success, then always reschedule. An item that
raises is rolled back, then recorded as an INTERNAL failure and rescheduled
in a fresh transaction, so a URL that fails forever is retried once per
interval and never blocks the queue.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Callable
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from app.config import RateLimitSettings, SchedulerSettings
from app.domain.price_scraping import BatchItemResult, BatchSummary, compute_final_price
from app.scraping.engine import ScrapeEngine
from app.scraping.logging_utils import log_event
from app.scraping.rate_limiter import SlidingWindowRateLimiter
from app.scraping.types import ErrorType, ExtractionMode, ScrapeOutcome
from db.models.price_record import PriceSource
from db.models.scrape_attempt import ScrapeTrigger
from db.models.tracked_url import TrackedURL
from db.repositories.errors import PersistenceError
from db.repositories.price_record_repository import PriceRecordRepository
from db.repositories.scrape_attempt_repository import ScrapeAttemptRepository
from db.repositories.tracked_url_repository import TrackedURLRepository

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class BatchRunner:
    def __init__(
        self,
        *,
        engine: ScrapeEngine,
        rate_limiter: SlidingWindowRateLimiter,
        scheduler_settings: SchedulerSettings,
        rate_limit_settings: RateLimitSettings,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._engine = engine
        self._rate_limiter = rate_limiter
        self._scheduler_settings = scheduler_settings
        self._rate_limit_settings = rate_limit_settings
        self._sleep = sleep
        self._clock = clock

    def run_batch(self, db: Session, *, limit: int | None = None) -> BatchSummary:
        started_at = self._clock()
        batch_size = self._scheduler_settings.batch_size
        if limit is not None:
            batch_size = max(1, min(limit, batch_size))

        due = TrackedURLRepository(db).list_due(now=started_at, limit=batch_size)
        log_event(logger, logging.INFO, "batch_started", due=len(due), batch_size=batch_size)

        details: list[BatchItemResult] = []
        skipped = 0
        delay = self._scheduler_settings.inter_item_delay_seconds
        for index, tracked_url in enumerate(due):
            if index > 0 and delay > 0:
                self._sleep(delay)

            if not self._acquire_slot():
                skipped = len(due) - index
                log_event(
                    logger,
                    logging.WARNING,
                    "batch_stopped_rate_limited",
                    processed=index,
                    skipped=skipped,
                )
                break

            # Read before processing; a rollback expires the instance.
            tracked_url_id = tracked_url.id
            url = tracked_url.url
            hint = tracked_url.hint
            material_key = tracked_url.material_key
            started = time.monotonic()
            try:
                result = self._process(db, tracked_url, trigger=ScrapeTrigger.BATCH)
            except Exception as exc:
                db.rollback()
                logger.exception("Batch item failed id=%s url=%s", tracked_url_id, url)
                outcome = ScrapeOutcome(
                    url=url,
                    hint=hint,
                    success=False,
                    scraped_at=self._clock(),
                    elapsed_ms=int((time.monotonic() - started) * 1000),
                    error=f"{type(exc).__name__}: {exc}",
                    error_type=ErrorType.INTERNAL,
                )
                next_due_at = self._record_internal_failure(db, tracked_url_id, outcome)
                result = BatchItemResult(
                    tracked_url_id=tracked_url_id,
                    url=url,
                    material_key=material_key,
                    success=False,
                    error=outcome.error,
                    error_type=ErrorType.INTERNAL,
                    next_due_at=next_due_at,
                )
            details.append(result)

        summary = BatchSummary(
            attempted=len(details),
            succeeded=sum(1 for item in details if item.success),
            failed=sum(1 for item in details if not item.success),
            skipped=skipped,
            started_at=started_at,
            finished_at=self._clock(),
            details=details,
        )
        log_event(
            logger,
            logging.INFO,
            "batch_completed",
            attempted=summary.attempted,
            succeeded=summary.succeeded,
            failed=summary.failed,
            skipped=summary.skipped,
        )
        return summary

    def run_one(self, db: Session, tracked_url_id: uuid.UUID) -> BatchItemResult:
        """
        Run one tracked URL now, regardless of its schedule or flags.

        Raises ``TrackedURLNotFoundError`` for an unknown id.
        """

        tracked_url = TrackedURLRepository(db).get_or_raise(tracked_url_id)
        try:
            return self._process(db, tracked_url, trigger=ScrapeTrigger.MANUAL)
        except Exception:
            db.rollback()
            raise

    def _acquire_slot(self) -> bool:
        identity = self._rate_limit_settings.service_identity
        max_wait = self._rate_limit_settings.max_wait_seconds
        waited = 0.0
        while True:
            decision = self._rate_limiter.check_limit(identity)
            if decision.allowed:
                return True
            retry_after = float(decision.retry_after or 1)
            if waited + retry_after > max_wait:
                return False
            log_event(
                logger,
                logging.INFO,
                "batch_rate_limit_wait",
                identity=identity,
                retry_after=retry_after,
            )
            self._sleep(retry_after)
            waited += retry_after

    def _record_internal_failure(
        self,
        db: Session,
        tracked_url_id: uuid.UUID,
        outcome: ScrapeOutcome,
    ) -> datetime | None:
        """
        After a rollback, store the failed attempt and still reschedule the item
        so an item that keeps crashing runs once per interval.
        """

        try:
            ScrapeAttemptRepository(db).record(
                outcome,
                trigger=ScrapeTrigger.BATCH,
                tracked_url_id=tracked_url_id,
            )
            tracked_url = TrackedURLRepository(db).get_or_raise(tracked_url_id)
            TrackedURLRepository(db).mark_run(tracked_url, ran_at=outcome.scraped_at, snapshot=outcome.snapshot())
            db.commit()
        except Exception as exc:
            db.rollback()
            log_event(
                logger,
                logging.ERROR,
                "batch_failure_record_failed",
                tracked_url_id=tracked_url_id,
                error=f"{type(exc).__name__}: {exc}",
            )
            return None
        return tracked_url.next_due_at

    def _process(self, db: Session, tracked_url: TrackedURL, *, trigger: str) -> BatchItemResult:
        outcome = self._engine.scrape(
            tracked_url.url,
            tracked_url.hint,
            ExtractionMode.BEST_EFFORT,
        )

        final_price = None
        if outcome.success and outcome.price is not None:
            final_price = compute_final_price(outcome.price, tracked_url.price_multiplier)

        try:
            ScrapeAttemptRepository(db).record(
                outcome,
                trigger=trigger,
                tracked_url_id=tracked_url.id,
                final_price=final_price,
            )
        except PersistenceError as exc:
            log_event(
                logger,
                logging.ERROR,
                "scrape_attempt_persist_failed",
                tracked_url_id=tracked_url.id,
                error=str(exc),
            )

        price_updated = False
        if final_price is not None:
            try:
                PriceRecordRepository(db).upsert(
                    material_key=tracked_url.material_key,
                    unit_price=final_price,
                    source=PriceSource.SCRAPED,
                    tracked_url_id=tracked_url.id,
                )
                price_updated = True
            except PersistenceError as exc:
                log_event(
                    logger,
                    logging.ERROR,
                    "price_record_upsert_failed",
                    tracked_url_id=tracked_url.id,
                    material_key=tracked_url.material_key,
                    error=str(exc),
                )

        snapshot = outcome.snapshot()
        snapshot["final_price"] = str(final_price) if final_price is not None else None
        snapshot["price_updated"] = price_updated
        TrackedURLRepository(db).mark_run(tracked_url, ran_at=self._clock(), snapshot=snapshot)
        db.commit()

        log_event(
            logger,
            logging.INFO,
            "batch_item_completed",
            tracked_url_id=tracked_url.id,
            trigger=trigger,
            success=outcome.success,
            price=outcome.price,
            final_price=final_price,
            error_type=outcome.error_type,
            next_due_at=tracked_url.next_due_at,
        )
        return BatchItemResult(
            tracked_url_id=tracked_url.id,
            url=tracked_url.url,
            material_key=tracked_url.material_key,
            success=outcome.success,
            price=outcome.price,
            final_price=final_price,
            price_updated=price_updated,
            error=outcome.error,
            error_type=outcome.error_type,
            next_due_at=tracked_url.next_due_at,
        )
