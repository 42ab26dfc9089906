"""
app/domain package marker.
"""

from app.domain.price_scraping import BatchItemResult, BatchSummary, compute_final_price

__all__ = [
    "BatchItemResult",
    "BatchSummary",
    "compute_final_price",
]
