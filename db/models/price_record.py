"""
db/models/price_record.py

Current unit price per material, read by the pricing tables.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import ForeignKey, Numeric, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, UTCDateTime, utc_now

UPSERT_CONSTRAINT = "uq_price_records_material_key"


class PriceSource:
    MANUAL = "manual"
    SCRAPED = "scraped"


class PriceRecord(Base):
    """
    Exactly one row per ``material_key``; scrapes and manual edits upsert it.
    """

    __tablename__ = "price_records"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    material_key: Mapped[str] = mapped_column(String(255), nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    source: Mapped[str] = mapped_column(String(16), nullable=False, default=PriceSource.MANUAL)
    tracked_url_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("tracked_urls.id", ondelete="SET NULL"),
        nullable=True,
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
    )

    __table_args__ = (
        UniqueConstraint("material_key", name=UPSERT_CONSTRAINT),
    )
