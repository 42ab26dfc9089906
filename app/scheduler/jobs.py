"""
app/scheduler/jobs.py

APScheduler-based poller for due price scrapes.

Schedule
--------
  price_scrape_batch: every SCHEDULER_POLL_INTERVAL_MINUTES (default 15)

Each tick processes the tracked URLs whose ``next_due_at`` has passed. Per-URL
intervals live on the rows, so the poll interval only bounds how late a due
URL can be picked up.

Lifecycle
---------
Call ``build_scheduler()`` once to get a configured ``BackgroundScheduler``.
Start it on app boot; shut it down gracefully on app shutdown.
The scheduler is wired into FastAPI via the ``lifespan`` context in main.py.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from apscheduler.schedulers.background import BackgroundScheduler
from sqlalchemy.orm import Session

from app.config import get_scheduler_settings
from app.services.price_scraping_service import get_price_scraping_service
from db.session import SessionLocal

logger = logging.getLogger(__name__)

PRICE_SCRAPE_JOB_ID = "price_scrape_batch"


@contextmanager
def _session_scope() -> Iterator[Session]:
    """Yield a fresh session and ensure it is closed on exit."""
    session: Session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


def run_price_scrape_batch() -> None:
    """
    Scrape every due tracked URL once. Failures are logged, never raised,
    so one bad tick does not unschedule the job.
    """
    logger.info("Scheduler: price_scrape_batch starting")

    with _session_scope() as db:
        try:
            summary = get_price_scraping_service().run_batch(db)
        except Exception:  # noqa: BLE001
            db.rollback()
            logger.exception("Scheduler: price_scrape_batch failed")
            return

    logger.info(
        "Scheduler: price_scrape_batch complete attempted=%s succeeded=%s failed=%s skipped=%s",
        summary.attempted,
        summary.succeeded,
        summary.failed,
        summary.skipped,
    )


def build_scheduler() -> BackgroundScheduler:
    """
    Build and register the price scrape job.

    Returns a configured but *not yet started* ``BackgroundScheduler``.
    ``max_instances=1`` and ``coalesce=True`` keep a slow batch from
    overlapping the next tick; missed ticks collapse into one run.
    """
    settings = get_scheduler_settings()
    scheduler = BackgroundScheduler(timezone="UTC")

    scheduler.add_job(
        run_price_scrape_batch,
        trigger="interval",
        minutes=settings.poll_interval_minutes,
        id=PRICE_SCRAPE_JOB_ID,
        name="Scheduled price scraping",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        misfire_grace_time=settings.poll_interval_minutes * 60,
    )

    return scheduler
