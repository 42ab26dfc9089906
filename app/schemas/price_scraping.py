"""
app/schemas/price_scraping.py

Request and response schemas for price scraping endpoints.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.domain.price_scraping import BatchItemResult, BatchSummary
from app.scraping.rate_limiter import RateLimitDecision
from app.scraping.types import ScrapeOutcome
from db.models.tracked_url import MAX_INTERVAL_HOURS


class ScrapeRequest(BaseModel):
    url: str = Field(..., min_length=1, max_length=2048)
    hint: str = Field(..., min_length=1, description="Comma-joined CSS selectors locating the price")


class ScrapeResponse(BaseModel):
    url: str
    hint: str
    success: bool
    price: Decimal | None = None
    title: str | None = None
    availability: str | None = None
    image: str | None = None
    strategy: str | None = None
    error: str | None = None
    error_type: str | None = None
    elapsed_ms: int = Field(..., ge=0)
    scraped_at: datetime
    from_cache: bool = False
    debug_info: dict[str, Any] | None = None
    html_preview: str | None = None

    @classmethod
    def from_outcome(cls, outcome: ScrapeOutcome) -> "ScrapeResponse":
        return cls(
            url=outcome.url,
            hint=outcome.hint,
            success=outcome.success,
            price=outcome.price,
            title=outcome.title,
            availability=outcome.availability,
            image=outcome.image,
            strategy=outcome.strategy,
            error=outcome.error,
            error_type=outcome.error_type,
            elapsed_ms=outcome.elapsed_ms,
            scraped_at=outcome.scraped_at,
            from_cache=outcome.from_cache,
            debug_info=outcome.debug,
            html_preview=outcome.html_preview,
        )


class BatchItemResponse(BaseModel):
    tracked_url_id: UUID
    url: str
    material_key: str
    success: bool
    price: Decimal | None = None
    final_price: Decimal | None = None
    price_updated: bool = False
    error: str | None = None
    error_type: str | None = None
    next_due_at: datetime | None = None

    @classmethod
    def from_result(cls, result: BatchItemResult) -> "BatchItemResponse":
        return cls(
            tracked_url_id=result.tracked_url_id,
            url=result.url,
            material_key=result.material_key,
            success=result.success,
            price=result.price,
            final_price=result.final_price,
            price_updated=result.price_updated,
            error=result.error,
            error_type=result.error_type,
            next_due_at=result.next_due_at,
        )


class BatchSummaryResponse(BaseModel):
    attempted: int = Field(..., ge=0)
    succeeded: int = Field(..., ge=0)
    failed: int = Field(..., ge=0)
    skipped: int = Field(..., ge=0)
    started_at: datetime
    finished_at: datetime
    details: list[BatchItemResponse] = Field(default_factory=list)

    @classmethod
    def from_summary(cls, summary: BatchSummary) -> "BatchSummaryResponse":
        return cls(
            attempted=summary.attempted,
            succeeded=summary.succeeded,
            failed=summary.failed,
            skipped=summary.skipped,
            started_at=summary.started_at,
            finished_at=summary.finished_at,
            details=[BatchItemResponse.from_result(item) for item in summary.details],
        )


class BatchAcceptedResponse(BaseModel):
    status: str = "accepted"
    limit: int | None = None


class CacheStatsResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    backend: str | None = None
    connected: bool
    keys: int = Field(..., ge=0)
    hits: int = Field(..., ge=0)
    misses: int = Field(..., ge=0)
    errors: int = Field(..., ge=0)


class CacheClearResponse(BaseModel):
    deleted: int = Field(..., ge=0)
    url: str | None = None


class RateLimitStatsResponse(BaseModel):
    identity: str
    allowed: bool
    limit: int
    remaining: int
    reset_at: datetime
    retry_after: int | None = None
    degraded: bool = False

    @classmethod
    def from_decision(cls, identity: str, decision: RateLimitDecision) -> "RateLimitStatsResponse":
        return cls(
            identity=identity,
            allowed=decision.allowed,
            limit=decision.limit,
            remaining=decision.remaining,
            reset_at=datetime.fromtimestamp(decision.reset_at, tz=timezone.utc),
            retry_after=decision.retry_after,
            degraded=decision.degraded,
        )


class TrackedURLCreateRequest(BaseModel):
    url: str = Field(..., min_length=1, max_length=2048)
    hint: str = Field(..., min_length=1)
    material_key: str = Field(..., min_length=1, max_length=255)
    interval_hours: int | None = Field(default=None, gt=0, le=MAX_INTERVAL_HOURS)
    price_multiplier: Decimal | None = Field(default=None, gt=0)
    is_active: bool = True
    auto_scraping_enabled: bool = True


class TrackedURLUpdateRequest(BaseModel):
    url: str | None = Field(default=None, min_length=1, max_length=2048)
    hint: str | None = Field(default=None, min_length=1)
    material_key: str | None = Field(default=None, min_length=1, max_length=255)
    interval_hours: int | None = Field(default=None, gt=0, le=MAX_INTERVAL_HOURS)
    price_multiplier: Decimal | None = Field(default=None, gt=0)
    is_active: bool | None = None
    auto_scraping_enabled: bool | None = None


class TrackedURLResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    url: str
    hint: str
    material_key: str
    is_active: bool
    auto_scraping_enabled: bool
    interval_hours: int
    price_multiplier: Decimal
    last_run_at: datetime | None = None
    next_due_at: datetime | None = None
    last_result: dict[str, Any] | None = None
    created_at: datetime
    updated_at: datetime


class ScheduleNowResponse(BaseModel):
    scheduled: int = Field(..., ge=0)


class ScrapeAttemptResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    tracked_url_id: UUID | None = None
    url: str
    hint: str
    trigger: str
    success: bool
    price: Decimal | None = None
    final_price: Decimal | None = None
    title: str | None = None
    availability: str | None = None
    image_url: str | None = None
    strategy: str | None = None
    error_type: str | None = None
    error_message: str | None = None
    elapsed_ms: int
    scraped_at: datetime


class PriceRecordResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    material_key: str
    unit_price: Decimal
    source: str
    tracked_url_id: UUID | None = None
    updated_at: datetime


class ManualPriceRequest(BaseModel):
    unit_price: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
