"""
Repository for per-material unit prices.

Upsert semantics: writing a ``material_key`` that already exists replaces its
price, source and timestamp instead of raising a duplicate-key error.
"""

from __future__ import annotations

import uuid
from decimal import Decimal
from typing import Any

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from db.base import utc_now
from db.models.price_record import PriceRecord, PriceSource
from db.repositories.errors import PersistenceError


class PriceRecordRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def upsert(
        self,
        *,
        material_key: str,
        unit_price: Decimal,
        source: str = PriceSource.SCRAPED,
        tracked_url_id: uuid.UUID | None = None,
    ) -> PriceRecord:
        now = utc_now()
        stmt = (
            self._insert()
            .values(
                id=uuid.uuid4(),
                material_key=material_key,
                unit_price=unit_price,
                source=source,
                tracked_url_id=tracked_url_id,
                updated_at=now,
            )
            .on_conflict_do_update(
                index_elements=[PriceRecord.material_key],
                set_={
                    "unit_price": unit_price,
                    "source": source,
                    "tracked_url_id": tracked_url_id,
                    "updated_at": now,
                },
            )
            .returning(PriceRecord)
            .execution_options(populate_existing=True)
        )
        try:
            with self._transaction_context():
                row: PriceRecord = self._session.scalars(stmt).one()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to upsert price for '{material_key}': {exc}") from exc
        return row

    def get(self, material_key: str) -> PriceRecord | None:
        stmt = select(PriceRecord).where(PriceRecord.material_key == material_key)
        return self._session.scalars(stmt).one_or_none()

    def list_all(self, *, limit: int = 100, offset: int = 0) -> list[PriceRecord]:
        stmt = (
            select(PriceRecord)
            .order_by(PriceRecord.material_key.asc())
            .offset(max(0, offset))
            .limit(max(1, limit))
        )
        return list(self._session.scalars(stmt).all())

    def _insert(self) -> Any:
        dialect = self._session.get_bind().dialect.name
        if dialect == "postgresql":
            return postgresql.insert(PriceRecord)
        if dialect == "sqlite":
            return sqlite.insert(PriceRecord)
        raise PersistenceError(f"Price upsert is not supported on dialect '{dialect}'.")

    def _transaction_context(self) -> Any:
        if self._session.in_transaction():
            return self._session.begin_nested()
        return self._session.begin()
