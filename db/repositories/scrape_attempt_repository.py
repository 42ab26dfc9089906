"""
Repository for the append-only scrape attempt history.
"""

from __future__ import annotations

import uuid
from decimal import Decimal
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.scraping.types import ScrapeOutcome
from db.models.scrape_attempt import ScrapeAttempt
from db.repositories.errors import PersistenceError


class ScrapeAttemptRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def record(
        self,
        outcome: ScrapeOutcome,
        *,
        trigger: str,
        tracked_url_id: uuid.UUID | None = None,
        final_price: Decimal | None = None,
    ) -> ScrapeAttempt:
        """
        Insert one attempt inside a savepoint so a failure here leaves the
        caller's transaction usable.
        """

        attempt = ScrapeAttempt(
            tracked_url_id=tracked_url_id,
            url=outcome.url,
            hint=outcome.hint,
            trigger=trigger,
            success=outcome.success,
            price=outcome.price,
            final_price=final_price,
            title=outcome.title,
            availability=outcome.availability,
            image_url=outcome.image,
            strategy=outcome.strategy,
            error_type=outcome.error_type,
            error_message=outcome.error,
            elapsed_ms=outcome.elapsed_ms,
            scraped_at=outcome.scraped_at,
        )
        try:
            with self._transaction_context():
                self._session.add(attempt)
                self._session.flush()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to record scrape attempt: {exc}") from exc
        return attempt

    def list_for_tracked_url(
        self,
        tracked_url_id: uuid.UUID,
        *,
        limit: int = 50,
    ) -> list[ScrapeAttempt]:
        stmt = (
            select(ScrapeAttempt)
            .where(ScrapeAttempt.tracked_url_id == tracked_url_id)
            .order_by(ScrapeAttempt.scraped_at.desc())
            .limit(max(1, limit))
        )
        return list(self._session.scalars(stmt).all())

    def _transaction_context(self) -> Any:
        if self._session.in_transaction():
            return self._session.begin_nested()
        return self._session.begin()
