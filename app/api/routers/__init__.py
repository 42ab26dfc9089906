"""
app/api/routers package marker.
"""

from app.api.routers.material_prices import router as material_prices_router
from app.api.routers.price_scraping import router as price_scraping_router
from app.api.routers.tracked_urls import router as tracked_urls_router

__all__ = [
    "material_prices_router",
    "price_scraping_router",
    "tracked_urls_router",
]
