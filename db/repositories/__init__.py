"""
Repository layer exports.
"""

from db.repositories.errors import PersistenceError, TrackedURLInUseError, TrackedURLNotFoundError
from db.repositories.price_record_repository import PriceRecordRepository
from db.repositories.scrape_attempt_repository import ScrapeAttemptRepository
from db.repositories.tracked_url_repository import TrackedURLRepository

__all__ = [
    "TrackedURLRepository",
    "ScrapeAttemptRepository",
    "PriceRecordRepository",
    "PersistenceError",
    "TrackedURLNotFoundError",
    "TrackedURLInUseError",
]
