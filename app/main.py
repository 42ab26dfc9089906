from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from collections.abc import AsyncIterator
from urllib.parse import urlparse

from fastapi import FastAPI

from app.schemas.health import HealthResponse

_NUMERIC_ENV_VARS: dict[str, type] = {
    "PRICE_SCRAPE_TIMEOUT_SECONDS": float,
    "PRICE_SCRAPE_PROXY_TIMEOUT_SECONDS": float,
    "PRICE_SCRAPE_MAX_RETRIES": int,
    "PRICE_SCRAPE_CACHE_TTL_SECONDS": int,
    "RATE_LIMIT_REQUESTS_PER_MINUTE": int,
    "RATE_LIMIT_WINDOW_SECONDS": int,
    "RATE_LIMIT_MAX_WAIT_SECONDS": float,
    "SCHEDULER_POLL_INTERVAL_MINUTES": int,
    "SCHEDULER_BATCH_SIZE": int,
    "SCHEDULER_INTER_ITEM_DELAY_SECONDS": float,
    "DEFAULT_INTERVAL_HOURS": int,
}


def _validate_env() -> None:
    """
    Validate all required environment variables at startup.

    Runs before any service or database connection is initialised.
    Raises RuntimeError listing every missing or invalid variable so the
    operator can fix all problems in one restart cycle.

    Rules:
    - A PostgreSQL database URL must be configured.
    - REDIS_URL, when set, must use the redis://, rediss:// or unix:// scheme.
    - PRICE_SCRAPE_PROXY_URL, when set, must be an http(s) URL.
    - Numeric tuning variables, when set, must parse.
    """

    from db.config import load_env_files

    load_env_files()

    errors: list[str] = []

    # --- Database URL ---------------------------------------------------
    database_url = (
        os.getenv("DATABASE_URL", "").strip()
        or os.getenv("CLOUD_DATABASE_URL", "").strip()
        or os.getenv("LOCAL_DATABASE_URL", "").strip()
    )
    if not database_url:
        errors.append(
            "No database URL configured. Set DATABASE_URL, CLOUD_DATABASE_URL "
            "or LOCAL_DATABASE_URL."
        )
    elif not database_url.startswith(("postgres://", "postgresql")):
        errors.append("The database URL must point at PostgreSQL.")

    # --- Redis ----------------------------------------------------------
    redis_url = os.getenv("REDIS_URL", "").strip()
    if redis_url and urlparse(redis_url).scheme not in {"redis", "rediss", "unix"}:
        errors.append(f"REDIS_URL has an unsupported scheme: {redis_url.split(':', 1)[0]!r}.")

    # --- Proxy relay ----------------------------------------------------
    proxy_url = os.getenv("PRICE_SCRAPE_PROXY_URL", "").strip()
    if proxy_url and urlparse(proxy_url).scheme not in {"http", "https"}:
        errors.append("PRICE_SCRAPE_PROXY_URL must be an http(s) URL.")

    # --- Numeric tuning -------------------------------------------------
    for name, parser in _NUMERIC_ENV_VARS.items():
        raw = os.getenv(name)
        if raw is None:
            continue
        try:
            parser(raw.strip())
        except ValueError:
            errors.append(f"{name}={raw!r} is not a valid {parser.__name__}.")

    if errors:
        raise RuntimeError(
            "Startup validation failed: missing or invalid environment variables:\n"
            + "\n".join(f"  - {e}" for e in errors)
        )


def _configure_logging() -> None:
    """
    Configure root logging once for the API process.
    """

    log_level = os.getenv("LOG_LEVEL", "INFO").strip().upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def _check_db() -> None:
    """Open a session and run SELECT 1. Raises RuntimeError if the DB is unreachable."""
    from sqlalchemy import text

    from db.session import SessionLocal

    try:
        db = SessionLocal()
        try:
            db.execute(text("SELECT 1"))
        finally:
            db.close()
    except Exception as exc:
        raise RuntimeError("Database unavailable.") from exc


def _check_schema() -> None:
    """
    Every table registered on Base.metadata must exist in the database.
    Missing tables abort startup; run 'alembic upgrade head' first.

    Does NOT auto-migrate.
    """
    from sqlalchemy import inspect as sa_inspect

    import db.models  # noqa: F401  registers all ORM models on Base.metadata
    from db.base import Base
    from db.session import get_engine

    inspector = sa_inspect(get_engine())
    actual: set[str] = set(inspector.get_table_names())
    expected: set[str] = set(Base.metadata.tables.keys())
    missing = expected - actual

    if missing:
        log = logging.getLogger(__name__)
        log.critical(
            "Schema mismatch: %d table(s) defined in ORM metadata are absent from "
            "the database: %s. Run 'alembic upgrade head' and restart.",
            len(missing),
            ", ".join(sorted(missing)),
        )
        raise RuntimeError(
            f"Schema mismatch: {len(missing)} table(s) missing from the database "
            f"({', '.join(sorted(missing))}). Run migrations and restart."
        )


@asynccontextmanager
async def _lifespan(application: FastAPI) -> AsyncIterator[None]:
    """Validate DB connectivity and schema, start the scheduler on boot; shut it down on exit."""
    log = logging.getLogger(__name__)
    _check_db()
    from db.config import mask_database_url, resolve_database_url

    log.info("Database connectivity confirmed target=%s", mask_database_url(resolve_database_url()))
    _check_schema()
    log.info("Database schema validated")

    from app.config import get_scheduler_settings

    if not get_scheduler_settings().enabled:
        log.info("Scheduler disabled by SCHEDULER_ENABLED")
        application.state.scheduler = None
        yield
        return

    from app.scheduler.jobs import build_scheduler

    scheduler = build_scheduler()
    scheduler.start()
    application.state.scheduler = scheduler
    log.info("Scheduler started with %d jobs", len(scheduler.get_jobs()))
    try:
        yield
    finally:
        scheduler.shutdown(wait=True)
        log.info("Scheduler shut down")


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.
    """

    _validate_env()
    _configure_logging()

    application = FastAPI(
        title="Material Price Scraper API",
        version="1.0.0",
        lifespan=_lifespan,
    )

    from app.api.routers import (
        material_prices_router,
        price_scraping_router,
        tracked_urls_router,
    )

    application.include_router(price_scraping_router)
    application.include_router(tracked_urls_router)
    application.include_router(material_prices_router)

    @application.get("/health", response_model=HealthResponse)
    def healthcheck() -> HealthResponse:
        scheduler = getattr(application.state, "scheduler", None)
        if scheduler is None:
            return HealthResponse()
        return HealthResponse(
            scheduler_running=bool(scheduler.running),
            scheduled_jobs=len(scheduler.get_jobs()),
        )

    return application


app = create_app()
