"""
app/domain/price_scraping.py

Domain models for scheduled price scraping runs.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

_CENT = Decimal("0.01")


def compute_final_price(price: Decimal, multiplier: Decimal | int | str) -> Decimal:
    """
    Scraped price times the per-URL multiplier, rounded to cents.
    """

    return (price * Decimal(str(multiplier))).quantize(_CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class BatchItemResult:
    """
    Outcome of processing one tracked URL.
    """

    tracked_url_id: uuid.UUID
    url: str
    material_key: str
    success: bool
    price: Decimal | None = None
    final_price: Decimal | None = None
    price_updated: bool = False
    error: str | None = None
    error_type: str | None = None
    next_due_at: datetime | None = None


@dataclass(frozen=True)
class BatchSummary:
    attempted: int
    succeeded: int
    failed: int
    skipped: int
    started_at: datetime
    finished_at: datetime
    details: list[BatchItemResult] = field(default_factory=list)
