"""
app/api/routers/tracked_urls.py

Admin endpoints for tracked URLs and their scrape history.
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.orm import Session

from app.api.dependencies import enforce_rate_limit
from app.schemas.price_scraping import (
    BatchItemResponse,
    ScheduleNowResponse,
    ScrapeAttemptResponse,
    TrackedURLCreateRequest,
    TrackedURLResponse,
    TrackedURLUpdateRequest,
)
from app.services.price_scraping_service import PriceScrapingService, get_price_scraping_service
from db.repositories.errors import PersistenceError, TrackedURLInUseError, TrackedURLNotFoundError
from db.session import get_db

router = APIRouter(prefix="/tracked-urls", tags=["tracked-urls"])


def _http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, TrackedURLNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, TrackedURLInUseError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, ValueError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


@router.post("", status_code=status.HTTP_201_CREATED, response_model=TrackedURLResponse)
def create_tracked_url(
    payload: TrackedURLCreateRequest,
    db: Session = Depends(get_db),
    scraping_service: PriceScrapingService = Depends(get_price_scraping_service),
) -> TrackedURLResponse:
    try:
        tracked_url = scraping_service.create_tracked_url(
            db,
            url=payload.url,
            hint=payload.hint,
            material_key=payload.material_key,
            interval_hours=payload.interval_hours,
            price_multiplier=payload.price_multiplier,
            is_active=payload.is_active,
            auto_scraping_enabled=payload.auto_scraping_enabled,
        )
    except (ValueError, PersistenceError) as exc:
        raise _http_error(exc) from exc
    return TrackedURLResponse.model_validate(tracked_url)


@router.get("", response_model=list[TrackedURLResponse])
def list_tracked_urls(
    active_only: bool = Query(default=False),
    limit: int = Query(default=100, ge=1, le=1000),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    scraping_service: PriceScrapingService = Depends(get_price_scraping_service),
) -> list[TrackedURLResponse]:
    rows = scraping_service.list_tracked_urls(db, active_only=active_only, limit=limit, offset=offset)
    return [TrackedURLResponse.model_validate(row) for row in rows]


@router.post("/schedule-now", response_model=ScheduleNowResponse)
def schedule_all_now(
    db: Session = Depends(get_db),
    scraping_service: PriceScrapingService = Depends(get_price_scraping_service),
) -> ScheduleNowResponse:
    """
    Make every active URL due on the next batch.
    """

    try:
        scheduled = scraping_service.schedule_all_now(db)
    except PersistenceError as exc:
        raise _http_error(exc) from exc
    return ScheduleNowResponse(scheduled=scheduled)


@router.get("/{tracked_url_id}", response_model=TrackedURLResponse)
def get_tracked_url(
    tracked_url_id: UUID,
    db: Session = Depends(get_db),
    scraping_service: PriceScrapingService = Depends(get_price_scraping_service),
) -> TrackedURLResponse:
    try:
        tracked_url = scraping_service.get_tracked_url(db, tracked_url_id)
    except TrackedURLNotFoundError as exc:
        raise _http_error(exc) from exc
    return TrackedURLResponse.model_validate(tracked_url)


@router.patch("/{tracked_url_id}", response_model=TrackedURLResponse)
def update_tracked_url(
    tracked_url_id: UUID,
    payload: TrackedURLUpdateRequest,
    db: Session = Depends(get_db),
    scraping_service: PriceScrapingService = Depends(get_price_scraping_service),
) -> TrackedURLResponse:
    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    try:
        tracked_url = scraping_service.update_tracked_url(db, tracked_url_id, changes)
    except (ValueError, PersistenceError) as exc:
        raise _http_error(exc) from exc
    return TrackedURLResponse.model_validate(tracked_url)


@router.delete("/{tracked_url_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_tracked_url(
    tracked_url_id: UUID,
    db: Session = Depends(get_db),
    scraping_service: PriceScrapingService = Depends(get_price_scraping_service),
) -> Response:
    try:
        scraping_service.delete_tracked_url(db, tracked_url_id)
    except PersistenceError as exc:
        raise _http_error(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{tracked_url_id}/history", response_model=list[ScrapeAttemptResponse])
def get_history(
    tracked_url_id: UUID,
    limit: int = Query(default=50, ge=1, le=500),
    db: Session = Depends(get_db),
    scraping_service: PriceScrapingService = Depends(get_price_scraping_service),
) -> list[ScrapeAttemptResponse]:
    try:
        attempts = scraping_service.get_history(db, tracked_url_id, limit=limit)
    except TrackedURLNotFoundError as exc:
        raise _http_error(exc) from exc
    return [ScrapeAttemptResponse.model_validate(attempt) for attempt in attempts]


@router.post(
    "/{tracked_url_id}/run",
    response_model=BatchItemResponse,
    dependencies=[Depends(enforce_rate_limit)],
)
def run_tracked_url(
    tracked_url_id: UUID,
    db: Session = Depends(get_db),
    scraping_service: PriceScrapingService = Depends(get_price_scraping_service),
) -> BatchItemResponse:
    """
    Scrape one tracked URL now and reschedule it.
    """

    try:
        result = scraping_service.run_one(db, tracked_url_id)
    except PersistenceError as exc:
        raise _http_error(exc) from exc
    return BatchItemResponse.from_result(result)
