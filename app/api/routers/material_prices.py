"""
app/api/routers/material_prices.py

Material unit price listing and manual overrides.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status
from sqlalchemy.orm import Session

from app.schemas.price_scraping import ManualPriceRequest, PriceRecordResponse
from app.services.price_scraping_service import PriceScrapingService, get_price_scraping_service
from db.repositories.errors import PersistenceError
from db.session import get_db

router = APIRouter(prefix="/material-prices", tags=["material-prices"])


@router.get("", response_model=list[PriceRecordResponse])
def list_prices(
    limit: int = Query(default=100, ge=1, le=1000),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    scraping_service: PriceScrapingService = Depends(get_price_scraping_service),
) -> list[PriceRecordResponse]:
    rows = scraping_service.list_prices(db, limit=limit, offset=offset)
    return [PriceRecordResponse.model_validate(row) for row in rows]


@router.put("/{material_key}", response_model=PriceRecordResponse)
def set_manual_price(
    payload: ManualPriceRequest,
    material_key: str = Path(..., min_length=1, max_length=255),
    db: Session = Depends(get_db),
    scraping_service: PriceScrapingService = Depends(get_price_scraping_service),
) -> PriceRecordResponse:
    try:
        record = scraping_service.set_manual_price(db, material_key, payload.unit_price)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except PersistenceError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc
    return PriceRecordResponse.model_validate(record)
