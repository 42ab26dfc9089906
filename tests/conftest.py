"""
Shared fixtures: SQLite session factory, fake transport and service builders.

SQLite needs the pysqlite SAVEPOINT recipe (driver-level autocommit plus an
explicit BEGIN) so repository savepoints behave like they do on PostgreSQL.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from datetime import datetime, timezone

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

import db.models  # noqa: F401  registers models on Base.metadata
from app.cache import CacheGateway, InMemoryCacheBackend
from app.config import RateLimitSettings, SchedulerSettings
from app.scraping.config import ScrapingSettings
from app.scraping.engine import ScrapeEngine
from app.scraping.errors import TransportError
from app.scraping.rate_limiter import InMemoryRateLimitBackend, SlidingWindowRateLimiter
from app.scraping.types import FetchResult
from app.services.batch_runner import BatchRunner
from app.services.price_scraping_service import PriceScrapingService
from db.base import Base

NOW = datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc)


class FakeFetcher:
    """
    Serves canned HTML per URL; an exception value is raised instead.
    Unknown URLs fail like a 404.
    """

    def __init__(self, pages: dict[str, str | Exception] | None = None) -> None:
        self.pages: dict[str, str | Exception] = dict(pages or {})
        self.calls: list[str] = []

    def fetch(self, url: str) -> FetchResult:
        self.calls.append(url)
        page = self.pages.get(url)
        if isinstance(page, Exception):
            raise page
        if page is None:
            raise TransportError(f"Direct fetch failed: 404 Client Error for url: {url}", url=url, status_code=404)
        return FetchResult(html=page, status_code=200, transport="direct")


class FakeClock:
    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class SleepRecorder:
    def __init__(self) -> None:
        self.calls: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture()
def engine() -> Iterator[Engine]:
    sqlite_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(sqlite_engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(sqlite_engine, "begin")
    def _emit_begin(connection) -> None:
        connection.exec_driver_sql("BEGIN")

    Base.metadata.create_all(sqlite_engine)
    yield sqlite_engine
    sqlite_engine.dispose()


@pytest.fixture()
def session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, class_=Session, autoflush=False, expire_on_commit=False)


@pytest.fixture()
def db_session(session_factory: sessionmaker[Session]) -> Iterator[Session]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def sleeper() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture()
def fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture()
def scraping_settings() -> ScrapingSettings:
    return ScrapingSettings(max_retries=0, html_preview_chars=200)


@pytest.fixture()
def scheduler_settings() -> SchedulerSettings:
    return SchedulerSettings(batch_size=50, inter_item_delay_seconds=0.0, default_interval_hours=24)


@pytest.fixture()
def rate_limit_settings() -> RateLimitSettings:
    return RateLimitSettings(requests_per_window=100, window_seconds=60, max_wait_seconds=0.0)


@pytest.fixture()
def make_rate_limiter() -> Callable[..., SlidingWindowRateLimiter]:
    def _make(limit: int = 100, window_seconds: int = 60) -> SlidingWindowRateLimiter:
        return SlidingWindowRateLimiter(
            backend=InMemoryRateLimitBackend(),
            limit=limit,
            window_seconds=window_seconds,
        )

    return _make


@pytest.fixture()
def scrape_engine(scraping_settings: ScrapingSettings, fetcher: FakeFetcher) -> ScrapeEngine:
    return ScrapeEngine(settings=scraping_settings, fetcher=fetcher, sleep=lambda seconds: None)


@pytest.fixture()
def make_service(
    scraping_settings: ScrapingSettings,
    scheduler_settings: SchedulerSettings,
    rate_limit_settings: RateLimitSettings,
    scrape_engine: ScrapeEngine,
    session_factory: sessionmaker[Session],
    clock: FakeClock,
    sleeper: SleepRecorder,
) -> Callable[..., PriceScrapingService]:
    def _make(rate_limit: int = 100) -> PriceScrapingService:
        rate_limiter = SlidingWindowRateLimiter(
            backend=InMemoryRateLimitBackend(),
            limit=rate_limit,
            window_seconds=rate_limit_settings.window_seconds,
        )
        runner = BatchRunner(
            engine=scrape_engine,
            rate_limiter=rate_limiter,
            scheduler_settings=scheduler_settings,
            rate_limit_settings=rate_limit_settings,
            sleep=sleeper,
            clock=clock,
        )
        return PriceScrapingService(
            scraping_settings=scraping_settings,
            scheduler_settings=scheduler_settings,
            rate_limit_settings=rate_limit_settings,
            cache=CacheGateway(backend=InMemoryCacheBackend(), key_prefix="test:"),
            rate_limiter=rate_limiter,
            engine=scrape_engine,
            batch_runner=runner,
            session_factory=session_factory,
        )

    return _make
