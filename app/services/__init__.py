"""
app/services package marker.
"""

from app.services.batch_runner import BatchRunner
from app.services.price_scraping_service import (
    FastAPIBackgroundTaskExecutor,
    PriceScrapingService,
    TaskExecutor,
    get_price_scraping_service,
)

__all__ = [
    "BatchRunner",
    "FastAPIBackgroundTaskExecutor",
    "PriceScrapingService",
    "TaskExecutor",
    "get_price_scraping_service",
]
