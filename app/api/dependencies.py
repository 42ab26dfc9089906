"""
app/api/dependencies.py

Shared FastAPI dependencies for caller identity and rate limiting.
"""

from __future__ import annotations

from fastapi import Depends, HTTPException, Request, Response, status

from app.scraping.rate_limiter import RateLimitDecision
from app.services.price_scraping_service import PriceScrapingService, get_price_scraping_service

UNKNOWN_CLIENT = "unknown"


def get_client_identity(request: Request) -> str:
    """
    Best-effort client IP: first X-Forwarded-For hop, then X-Real-IP, then the socket peer.
    """

    forwarded_for = request.headers.get("x-forwarded-for", "")
    first_hop = forwarded_for.split(",")[0].strip()
    if first_hop:
        return first_hop

    real_ip = request.headers.get("x-real-ip", "").strip()
    if real_ip:
        return real_ip

    if request.client is not None and request.client.host:
        return request.client.host
    return UNKNOWN_CLIENT


def enforce_rate_limit(
    response: Response,
    identity: str = Depends(get_client_identity),
    scraping_service: PriceScrapingService = Depends(get_price_scraping_service),
) -> RateLimitDecision:
    """
    Consume one request for the caller or answer 429 with ``Retry-After``.
    """

    decision = scraping_service.check_rate_limit(identity)
    if not decision.allowed:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={
                "error": "rate_limited",
                "message": "Too many requests. Please retry later.",
                "retry_after": decision.retry_after,
            },
            headers=decision.headers(),
        )

    for name, value in decision.headers().items():
        response.headers[name] = value
    return decision
