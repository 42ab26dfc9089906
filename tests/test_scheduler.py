"""
tests/test_scheduler.py

Job registration and failure containment for the batch poller.
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from app.config import SchedulerSettings
from app.scheduler import jobs


def test_build_scheduler_registers_single_interval_job(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(jobs, "get_scheduler_settings", lambda: SchedulerSettings(poll_interval_minutes=5))

    scheduler = jobs.build_scheduler()

    job = scheduler.get_job(jobs.PRICE_SCRAPE_JOB_ID)
    assert job is not None
    assert job.max_instances == 1
    assert job.coalesce is True
    assert job.trigger.interval.total_seconds() == 300


def test_batch_failure_is_logged_not_raised(monkeypatch: pytest.MonkeyPatch) -> None:
    session = MagicMock()
    service = MagicMock()
    service.run_batch.side_effect = RuntimeError("database went away")
    monkeypatch.setattr(jobs, "SessionLocal", lambda: session)
    monkeypatch.setattr(jobs, "get_price_scraping_service", lambda: service)

    jobs.run_price_scrape_batch()

    session.rollback.assert_called_once()
    session.close.assert_called_once()


def test_batch_runs_with_fresh_session(monkeypatch: pytest.MonkeyPatch) -> None:
    session = MagicMock()
    service = MagicMock()
    service.run_batch.return_value = MagicMock(attempted=2, succeeded=1, failed=1, skipped=0)
    monkeypatch.setattr(jobs, "SessionLocal", lambda: session)
    monkeypatch.setattr(jobs, "get_price_scraping_service", lambda: service)

    jobs.run_price_scrape_batch()

    service.run_batch.assert_called_once_with(session)
    session.close.assert_called_once()
