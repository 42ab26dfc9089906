"""
Model package exports.

Import all SQLAlchemy models here so metadata registration and Alembic
autogeneration work without extra imports.
"""

from db.models.price_record import PriceRecord, PriceSource
from db.models.scrape_attempt import ScrapeAttempt, ScrapeTrigger
from db.models.tracked_url import TrackedURL

__all__ = [
    "TrackedURL",
    "ScrapeAttempt",
    "ScrapeTrigger",
    "PriceRecord",
    "PriceSource",
]
