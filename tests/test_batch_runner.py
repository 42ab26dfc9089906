"""
tests/test_batch_runner.py

Scheduled batch semantics over an in-memory SQLite database.
"""

from __future__ import annotations

import uuid
from datetime import timedelta
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.config import RateLimitSettings, SchedulerSettings
from app.scraping.config import ScrapingSettings
from app.scraping.engine import ScrapeEngine
from app.scraping.types import ErrorType
from app.services.batch_runner import BatchRunner
from db.models import PriceRecord, ScrapeAttempt, TrackedURL
from db.models.tracked_url import MAX_INTERVAL_HOURS
from db.repositories import TrackedURLNotFoundError, TrackedURLRepository
from tests.conftest import NOW, FakeClock, FakeFetcher, SleepRecorder

PRICED_URL = "https://shop.example.com/urun/tugla"
BROKEN_URL = "https://shop.example.com/urun/kaldirildi"
PRICED_PAGE = '<html><body><h1>Tuğla</h1><span class="price">1.250,00 TL</span></body></html>'


def _track(
    db: Session,
    url: str,
    *,
    material_key: str = "tugla",
    multiplier: str = "1",
    next_due_at=None,
    is_active: bool = True,
    auto_scraping_enabled: bool = True,
) -> TrackedURL:
    tracked_url = TrackedURLRepository(db).create(
        url=url,
        hint=".price",
        material_key=material_key,
        interval_hours=24,
        price_multiplier=Decimal(multiplier),
        is_active=is_active,
        auto_scraping_enabled=auto_scraping_enabled,
    )
    tracked_url.next_due_at = next_due_at
    db.commit()
    return tracked_url


def _runner(
    fetcher: FakeFetcher,
    clock: FakeClock,
    sleeper: SleepRecorder,
    make_rate_limiter,
    *,
    limit: int = 100,
    scheduler_settings: SchedulerSettings | None = None,
    rate_limit_settings: RateLimitSettings | None = None,
) -> BatchRunner:
    return BatchRunner(
        engine=ScrapeEngine(settings=ScrapingSettings(max_retries=0), fetcher=fetcher, sleep=lambda seconds: None),  # type: ignore[arg-type]
        rate_limiter=make_rate_limiter(limit=limit),
        scheduler_settings=scheduler_settings
        or SchedulerSettings(batch_size=50, inter_item_delay_seconds=0.0),
        rate_limit_settings=rate_limit_settings or RateLimitSettings(max_wait_seconds=0.0),
        sleep=sleeper,
        clock=clock,
    )


@pytest.fixture()
def runner(fetcher, clock, sleeper, make_rate_limiter) -> BatchRunner:
    return _runner(fetcher, clock, sleeper, make_rate_limiter)


def test_successful_item_updates_price_history_and_schedule(
    db_session: Session, fetcher: FakeFetcher, runner: BatchRunner
) -> None:
    fetcher.pages[PRICED_URL] = PRICED_PAGE
    tracked = _track(db_session, PRICED_URL, material_key="tugla-19", multiplier="1.1")

    summary = runner.run_batch(db_session)

    assert (summary.attempted, summary.succeeded, summary.failed, summary.skipped) == (1, 1, 0, 0)
    item = summary.details[0]
    assert item.price == Decimal("1250.00")
    assert item.final_price == Decimal("1375.00")
    assert item.price_updated is True

    record = db_session.scalars(select(PriceRecord).where(PriceRecord.material_key == "tugla-19")).one()
    assert record.unit_price == Decimal("1375.00")
    assert record.source == "scraped"
    assert record.tracked_url_id == tracked.id

    attempt = db_session.scalars(select(ScrapeAttempt)).one()
    assert attempt.trigger == "batch"
    assert attempt.success is True
    assert attempt.tracked_url_id == tracked.id

    db_session.refresh(tracked)
    assert tracked.last_run_at == NOW
    assert tracked.next_due_at == NOW + timedelta(hours=24)
    assert tracked.last_result["final_price"] == "1375.00"


def test_failing_url_is_rescheduled_once_per_interval(
    db_session: Session, clock: FakeClock, runner: BatchRunner
) -> None:
    tracked = _track(db_session, BROKEN_URL)

    first = runner.run_batch(db_session)
    assert (first.attempted, first.failed) == (1, 1)
    assert first.details[0].error_type == ErrorType.TRANSPORT
    db_session.refresh(tracked)
    assert tracked.next_due_at == NOW + timedelta(hours=24)

    clock.now = NOW + timedelta(hours=1)
    assert runner.run_batch(db_session).attempted == 0

    clock.now = NOW + timedelta(hours=24)
    third = runner.run_batch(db_session)
    assert third.attempted == 1
    db_session.refresh(tracked)
    assert tracked.next_due_at == NOW + timedelta(hours=48)
    assert db_session.scalars(select(PriceRecord)).all() == []


def test_due_selection_and_order(db_session: Session, fetcher: FakeFetcher, runner: BatchRunner) -> None:
    urls = {name: f"https://shop.example.com/{name}" for name in ("late", "never", "early", "future")}
    for url in urls.values():
        fetcher.pages[url] = PRICED_PAGE
    _track(db_session, urls["late"], material_key="a", next_due_at=NOW - timedelta(hours=1))
    _track(db_session, urls["never"], material_key="b")
    _track(db_session, urls["early"], material_key="c", next_due_at=NOW - timedelta(days=2))
    _track(db_session, urls["future"], material_key="d", next_due_at=NOW + timedelta(hours=1))
    _track(db_session, "https://shop.example.com/inactive", material_key="e", is_active=False)
    _track(db_session, "https://shop.example.com/manual", material_key="f", auto_scraping_enabled=False)

    summary = runner.run_batch(db_session)

    assert [item.url for item in summary.details] == [urls["never"], urls["early"], urls["late"]]


def test_limit_caps_batch(db_session: Session, fetcher: FakeFetcher, runner: BatchRunner) -> None:
    for index in range(4):
        url = f"https://shop.example.com/p/{index}"
        fetcher.pages[url] = PRICED_PAGE
        _track(db_session, url, material_key=f"m{index}")

    summary = runner.run_batch(db_session, limit=2)

    assert summary.attempted == 2
    remaining_due = TrackedURLRepository(db_session).list_due(now=NOW, limit=10)
    assert len(remaining_due) == 2


def test_inter_item_delay(
    db_session: Session, fetcher: FakeFetcher, clock, sleeper: SleepRecorder, make_rate_limiter
) -> None:
    runner = _runner(
        fetcher,
        clock,
        sleeper,
        make_rate_limiter,
        scheduler_settings=SchedulerSettings(batch_size=50, inter_item_delay_seconds=2.0),
    )
    for index in range(3):
        _track(db_session, f"https://shop.example.com/d/{index}", material_key=f"d{index}")

    runner.run_batch(db_session)

    assert sleeper.calls == [2.0, 2.0]


def test_rate_limit_stops_batch_and_leaves_rest_due(
    db_session: Session, fetcher: FakeFetcher, clock, sleeper: SleepRecorder, make_rate_limiter
) -> None:
    runner = _runner(fetcher, clock, sleeper, make_rate_limiter, limit=1)
    for index in range(3):
        _track(db_session, f"https://shop.example.com/r/{index}", material_key=f"r{index}")

    summary = runner.run_batch(db_session)

    assert summary.attempted == 1
    assert summary.skipped == 2
    assert len(TrackedURLRepository(db_session).list_due(now=NOW, limit=10)) == 2
    assert sleeper.calls == []


def test_rate_limit_wait_within_budget(
    db_session: Session, fetcher: FakeFetcher, clock, sleeper: SleepRecorder
) -> None:
    limiter = MagicMock()
    limiter.check_limit.side_effect = [
        MagicMock(allowed=False, retry_after=3),
        MagicMock(allowed=True, retry_after=None),
    ]
    runner = BatchRunner(
        engine=ScrapeEngine(settings=ScrapingSettings(max_retries=0), fetcher=fetcher, sleep=lambda seconds: None),  # type: ignore[arg-type]
        rate_limiter=limiter,
        scheduler_settings=SchedulerSettings(inter_item_delay_seconds=0.0),
        rate_limit_settings=RateLimitSettings(max_wait_seconds=10.0),
        sleep=sleeper,
        clock=clock,
    )
    _track(db_session, BROKEN_URL)

    summary = runner.run_batch(db_session)

    assert summary.attempted == 1
    assert sleeper.calls == [3.0]
    limiter.check_limit.assert_called_with("scheduler")


def test_unexpected_error_is_isolated_per_item(
    db_session: Session, fetcher: FakeFetcher, runner: BatchRunner
) -> None:
    good_url = "https://shop.example.com/good"
    fetcher.pages[good_url] = PRICED_PAGE
    fetcher.pages[BROKEN_URL] = RuntimeError("parser exploded")  # type: ignore[assignment]
    _track(db_session, BROKEN_URL, material_key="bad", next_due_at=NOW - timedelta(hours=2))
    _track(db_session, good_url, material_key="good", next_due_at=NOW - timedelta(hours=1))

    summary = runner.run_batch(db_session)

    assert summary.attempted == 2
    assert summary.details[0].error_type == ErrorType.INTERNAL
    assert "parser exploded" in (summary.details[0].error or "")
    assert summary.details[0].next_due_at == NOW + timedelta(hours=24)
    assert summary.details[1].success is True


def test_crashing_item_is_recorded_and_rescheduled(
    db_session: Session, fetcher: FakeFetcher, runner: BatchRunner
) -> None:
    fetcher.pages[BROKEN_URL] = RuntimeError("parser exploded")  # type: ignore[assignment]
    tracked = _track(db_session, BROKEN_URL, next_due_at=NOW - timedelta(hours=1))

    first = runner.run_batch(db_session)
    second = runner.run_batch(db_session)

    assert first.attempted == 1
    assert second.attempted == 0
    assert fetcher.calls == [BROKEN_URL]
    attempt = db_session.scalars(select(ScrapeAttempt)).one()
    assert attempt.success is False
    assert attempt.trigger == "batch"
    assert attempt.error_type == ErrorType.INTERNAL
    db_session.refresh(tracked)
    assert tracked.next_due_at == NOW + timedelta(hours=24)
    assert tracked.last_result["error_type"] == ErrorType.INTERNAL


def test_crash_after_attempt_insert_keeps_one_attempt_row(
    db_session: Session,
    fetcher: FakeFetcher,
    runner: BatchRunner,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    fetcher.pages[PRICED_URL] = PRICED_PAGE
    tracked = _track(db_session, PRICED_URL, next_due_at=NOW - timedelta(hours=1))
    monkeypatch.setattr(
        "app.services.batch_runner.PriceRecordRepository.upsert",
        MagicMock(side_effect=RuntimeError("upsert crashed")),
    )

    summary = runner.run_batch(db_session)

    assert summary.details[0].error_type == ErrorType.INTERNAL
    attempts = db_session.scalars(select(ScrapeAttempt)).all()
    assert len(attempts) == 1
    assert attempts[0].error_type == ErrorType.INTERNAL
    assert db_session.scalars(select(PriceRecord)).all() == []
    db_session.refresh(tracked)
    assert tracked.next_due_at == NOW + timedelta(hours=24)


def test_oversized_interval_is_capped_when_rescheduling(db_session: Session) -> None:
    tracked = TrackedURL(
        url=PRICED_URL,
        hint=".price",
        material_key="tugla",
        interval_hours=2_000_000_000,
        price_multiplier=Decimal("1"),
    )

    TrackedURLRepository(db_session).mark_run(tracked, ran_at=NOW, snapshot={})

    assert tracked.next_due_at == NOW + timedelta(hours=MAX_INTERVAL_HOURS)


class TestRunOne:
    def test_unknown_id(self, db_session: Session, runner: BatchRunner) -> None:
        with pytest.raises(TrackedURLNotFoundError):
            runner.run_one(db_session, uuid.uuid4())

    def test_runs_inactive_url_with_manual_trigger(
        self, db_session: Session, fetcher: FakeFetcher, runner: BatchRunner
    ) -> None:
        fetcher.pages[PRICED_URL] = PRICED_PAGE
        tracked = _track(
            db_session,
            PRICED_URL,
            next_due_at=NOW + timedelta(days=3),
            is_active=False,
            auto_scraping_enabled=False,
        )

        result = runner.run_one(db_session, tracked.id)

        assert result.success is True
        assert result.next_due_at == NOW + timedelta(hours=24)
        attempt = db_session.scalars(select(ScrapeAttempt)).one()
        assert attempt.trigger == "manual"
