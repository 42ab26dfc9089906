"""
Repository for tracked URL registration and scheduling state.
"""

from __future__ import annotations

import uuid
from collections.abc import Mapping
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import Select, and_, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from db.models.scrape_attempt import ScrapeAttempt
from db.models.tracked_url import MAX_INTERVAL_HOURS, TrackedURL
from db.repositories.errors import (
    PersistenceError,
    TrackedURLInUseError,
    TrackedURLNotFoundError,
)

_UPDATABLE_FIELDS = frozenset(
    {
        "url",
        "hint",
        "material_key",
        "is_active",
        "auto_scraping_enabled",
        "interval_hours",
        "price_multiplier",
    }
)


class TrackedURLRepository:
    """
    The caller controls commit/rollback; this repository only flushes.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    def create(
        self,
        *,
        url: str,
        hint: str,
        material_key: str,
        interval_hours: int,
        price_multiplier: Any,
        is_active: bool = True,
        auto_scraping_enabled: bool = True,
    ) -> TrackedURL:
        tracked_url = TrackedURL(
            url=url,
            hint=hint,
            material_key=material_key,
            interval_hours=interval_hours,
            price_multiplier=price_multiplier,
            is_active=is_active,
            auto_scraping_enabled=auto_scraping_enabled,
        )
        self._session.add(tracked_url)
        self._flush("create")
        return tracked_url

    def get(self, tracked_url_id: uuid.UUID) -> TrackedURL | None:
        return self._session.get(TrackedURL, tracked_url_id)

    def get_or_raise(self, tracked_url_id: uuid.UUID) -> TrackedURL:
        tracked_url = self.get(tracked_url_id)
        if tracked_url is None:
            raise TrackedURLNotFoundError(f"Tracked URL {tracked_url_id} does not exist.")
        return tracked_url

    def list_all(
        self,
        *,
        active_only: bool = False,
        limit: int = 100,
        offset: int = 0,
    ) -> list[TrackedURL]:
        stmt: Select[tuple[TrackedURL]] = select(TrackedURL)
        if active_only:
            stmt = stmt.where(TrackedURL.is_active.is_(True))
        stmt = stmt.order_by(TrackedURL.created_at.desc()).offset(max(0, offset)).limit(max(1, limit))
        return list(self._session.scalars(stmt).all())

    def list_due(self, *, now: datetime, limit: int) -> list[TrackedURL]:
        """
        Active, auto-scraping rows whose ``next_due_at`` has passed.

        Never-run rows (NULL ``next_due_at``) sort first, then oldest due first.
        """

        stmt = (
            select(TrackedURL)
            .where(
                and_(
                    TrackedURL.is_active.is_(True),
                    TrackedURL.auto_scraping_enabled.is_(True),
                    or_(TrackedURL.next_due_at.is_(None), TrackedURL.next_due_at <= now),
                )
            )
            .order_by(
                TrackedURL.next_due_at.is_not(None),
                TrackedURL.next_due_at.asc(),
                TrackedURL.created_at.asc(),
            )
            .limit(max(1, limit))
        )
        return list(self._session.scalars(stmt).all())

    def update(self, tracked_url_id: uuid.UUID, changes: Mapping[str, Any]) -> TrackedURL:
        tracked_url = self.get_or_raise(tracked_url_id)
        for field_name, value in changes.items():
            if field_name not in _UPDATABLE_FIELDS:
                raise ValueError(f"Field '{field_name}' cannot be updated.")
            setattr(tracked_url, field_name, value)
        self._flush("update")
        return tracked_url

    def delete(self, tracked_url_id: uuid.UUID) -> None:
        tracked_url = self.get_or_raise(tracked_url_id)
        has_history = self._session.scalar(
            select(ScrapeAttempt.id).where(ScrapeAttempt.tracked_url_id == tracked_url_id).limit(1)
        )
        if has_history is not None:
            raise TrackedURLInUseError(
                f"Tracked URL {tracked_url_id} has scrape history and cannot be deleted; "
                "deactivate it instead."
            )
        self._session.delete(tracked_url)
        self._flush("delete")

    def mark_run(
        self,
        tracked_url: TrackedURL,
        *,
        ran_at: datetime,
        snapshot: dict[str, Any],
    ) -> TrackedURL:
        """
        Record a finished run and push ``next_due_at`` one interval forward.

        The interval is capped at ``MAX_INTERVAL_HOURS`` so the due time cannot overflow.
        """

        tracked_url.last_run_at = ran_at
        interval_hours = min(tracked_url.interval_hours, MAX_INTERVAL_HOURS)
        tracked_url.next_due_at = ran_at + timedelta(hours=interval_hours)
        tracked_url.last_result = snapshot
        self._flush("mark_run")
        return tracked_url

    def schedule_all_now(self, *, now: datetime) -> int:
        """
        Make every active auto-scraping row due immediately.
        """

        stmt = (
            update(TrackedURL)
            .where(
                TrackedURL.is_active.is_(True),
                TrackedURL.auto_scraping_enabled.is_(True),
            )
            .values(next_due_at=now)
            .execution_options(synchronize_session=False)
        )
        try:
            self._session.flush()
            result = self._session.execute(stmt)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to schedule tracked URLs: {exc}") from exc
        # Loaded rows still hold the old next_due_at.
        self._session.expire_all()
        return int(result.rowcount or 0)

    def _flush(self, operation: str) -> None:
        try:
            self._session.flush()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Tracked URL {operation} failed: {exc}") from exc
