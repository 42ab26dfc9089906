"""
app/schemas package marker.
"""

from app.schemas.health import HealthResponse
from app.schemas.price_scraping import (
    BatchAcceptedResponse,
    BatchSummaryResponse,
    ScrapeResponse,
    TrackedURLResponse,
)

__all__ = [
    "BatchAcceptedResponse",
    "BatchSummaryResponse",
    "HealthResponse",
    "ScrapeResponse",
    "TrackedURLResponse",
]
