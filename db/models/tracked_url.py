"""
db/models/tracked_url.py

Product pages registered for periodic price scraping.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import Boolean, CheckConstraint, Index, Integer, Numeric, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, JSONType, TimestampMixin, UTCDateTime

DEFAULT_INTERVAL_HOURS = 24
MAX_INTERVAL_HOURS = 8760


class TrackedURL(Base, TimestampMixin):
    """
    One product page plus the operator's location hint for its price.

    ``material_key`` names the PriceRecord a successful scrape updates.
    ``next_due_at`` is NULL until the first run, which makes a new row due
    immediately.
    """

    __tablename__ = "tracked_urls"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    url: Mapped[str] = mapped_column(Text, nullable=False)
    hint: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="Comma-joined CSS selector fragments locating the price",
    )
    material_key: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    auto_scraping_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    interval_hours: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=DEFAULT_INTERVAL_HOURS,
    )
    price_multiplier: Mapped[Decimal] = mapped_column(
        Numeric(10, 4),
        nullable=False,
        default=Decimal("1"),
        comment="Applied to the scraped price before it is written to price_records",
    )
    last_run_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    next_due_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    last_result: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)

    __table_args__ = (
        CheckConstraint(
            f"interval_hours > 0 AND interval_hours <= {MAX_INTERVAL_HOURS}",
            name="ck_tracked_urls_interval_range",
        ),
        CheckConstraint("price_multiplier > 0", name="ck_tracked_urls_multiplier_positive"),
        CheckConstraint(
            "next_due_at IS NULL OR last_run_at IS NULL OR next_due_at >= last_run_at",
            name="ck_tracked_urls_next_after_last",
        ),
        Index("ix_tracked_urls_due", "is_active", "auto_scraping_enabled", "next_due_at"),
        Index("ix_tracked_urls_material_key", "material_key"),
    )
