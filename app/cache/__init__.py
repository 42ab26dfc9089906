"""
Result cache for scraped prices.
"""

from app.cache.backends import CacheBackend, InMemoryCacheBackend, RedisCacheBackend
from app.cache.gateway import CacheGateway, build_cache_gateway, scrape_cache_key, scrape_cache_pattern

__all__ = [
    "CacheBackend",
    "CacheGateway",
    "InMemoryCacheBackend",
    "RedisCacheBackend",
    "build_cache_gateway",
    "scrape_cache_key",
    "scrape_cache_pattern",
]
