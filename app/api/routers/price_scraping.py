"""
app/api/routers/price_scraping.py

Scrape, batch, cache and rate limit endpoints.
"""

from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from app.api.dependencies import enforce_rate_limit, get_client_identity
from app.schemas.price_scraping import (
    BatchAcceptedResponse,
    BatchSummaryResponse,
    CacheClearResponse,
    CacheStatsResponse,
    RateLimitStatsResponse,
    ScrapeRequest,
    ScrapeResponse,
)
from app.services.price_scraping_service import (
    FastAPIBackgroundTaskExecutor,
    PriceScrapingService,
    get_price_scraping_service,
)
from db.repositories.errors import PersistenceError
from db.session import get_db

router = APIRouter(prefix="/scraping", tags=["price-scraping"])


@router.post(
    "/test",
    response_model=ScrapeResponse,
    dependencies=[Depends(enforce_rate_limit)],
)
def test_scrape(
    payload: ScrapeRequest,
    db: Session = Depends(get_db),
    scraping_service: PriceScrapingService = Depends(get_price_scraping_service),
) -> ScrapeResponse:
    """
    Check a URL and hint interactively; failures include debug details.
    """

    try:
        outcome = scraping_service.test_scrape(payload.url, payload.hint, db=db)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return ScrapeResponse.from_outcome(outcome)


@router.post(
    "/price",
    response_model=ScrapeResponse,
    dependencies=[Depends(enforce_rate_limit)],
)
def scrape_price(
    payload: ScrapeRequest,
    db: Session = Depends(get_db),
    scraping_service: PriceScrapingService = Depends(get_price_scraping_service),
) -> ScrapeResponse:
    try:
        outcome = scraping_service.scrape_price(payload.url, payload.hint, db=db)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return ScrapeResponse.from_outcome(outcome)


@router.post(
    "/batch",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=BatchAcceptedResponse,
)
def launch_batch(
    background_tasks: BackgroundTasks,
    limit: int | None = Query(default=None, ge=1, le=1000),
    scraping_service: PriceScrapingService = Depends(get_price_scraping_service),
) -> BatchAcceptedResponse:
    """
    Start a batch in the background and return immediately.
    """

    scraping_service.launch_batch(FastAPIBackgroundTaskExecutor(background_tasks), limit=limit)
    return BatchAcceptedResponse(limit=limit)


@router.post("/batch/run", response_model=BatchSummaryResponse)
def run_batch(
    limit: int | None = Query(default=None, ge=1, le=1000),
    db: Session = Depends(get_db),
    scraping_service: PriceScrapingService = Depends(get_price_scraping_service),
) -> BatchSummaryResponse:
    """
    Run a batch synchronously; used by external cron triggers.
    """

    try:
        summary = scraping_service.run_batch(db, limit=limit)
    except PersistenceError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc
    return BatchSummaryResponse.from_summary(summary)


@router.get("/cache", response_model=CacheStatsResponse)
def get_cache_stats(
    scraping_service: PriceScrapingService = Depends(get_price_scraping_service),
) -> CacheStatsResponse:
    return CacheStatsResponse(**scraping_service.get_cache_stats())


@router.delete("/cache", response_model=CacheClearResponse)
def clear_cache(
    url: str | None = Query(default=None, description="Only clear entries for this URL"),
    scraping_service: PriceScrapingService = Depends(get_price_scraping_service),
) -> CacheClearResponse:
    return CacheClearResponse(deleted=scraping_service.clear_cache(url), url=url)


@router.get("/rate-limit", response_model=RateLimitStatsResponse)
def get_rate_limit_stats(
    identity: str | None = Query(default=None, description="Defaults to the calling client"),
    client_identity: str = Depends(get_client_identity),
    scraping_service: PriceScrapingService = Depends(get_price_scraping_service),
) -> RateLimitStatsResponse:
    target = identity or client_identity
    decision = scraping_service.get_rate_limit_stats(target)
    return RateLimitStatsResponse.from_decision(target, decision)
