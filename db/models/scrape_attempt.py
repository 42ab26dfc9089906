"""
db/models/scrape_attempt.py

Append-only history of scrape engine invocations.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, ForeignKey, Index, Integer, Numeric, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, UTCDateTime, utc_now


class ScrapeTrigger:
    TEST = "test"
    ON_DEMAND = "on_demand"
    BATCH = "batch"
    MANUAL = "manual"


class ScrapeAttempt(Base):
    __tablename__ = "scrape_attempts"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    tracked_url_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("tracked_urls.id", ondelete="RESTRICT"),
        nullable=True,
        comment="NULL for ad-hoc test and on-demand scrapes",
    )
    url: Mapped[str] = mapped_column(Text, nullable=False)
    hint: Mapped[str] = mapped_column(Text, nullable=False, default="")
    trigger: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        comment="test, on_demand, batch, manual",
    )
    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    price: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    final_price: Mapped[Decimal | None] = mapped_column(
        Numeric(12, 2),
        nullable=True,
        comment="price * multiplier for tracked URL runs",
    )
    title: Mapped[str | None] = mapped_column(Text, nullable=True)
    availability: Mapped[str | None] = mapped_column(String(255), nullable=True)
    image_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    strategy: Mapped[str | None] = mapped_column(String(32), nullable=True)
    error_type: Mapped[str | None] = mapped_column(String(32), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    elapsed_ms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    scraped_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
        default=utc_now,
    )

    __table_args__ = (
        Index("ix_scrape_attempts_tracked_url_scraped_at", "tracked_url_id", "scraped_at"),
        Index("ix_scrape_attempts_scraped_at", "scraped_at"),
    )
