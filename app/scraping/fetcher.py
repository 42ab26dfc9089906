"""
HTTP transport for product pages.

A direct GET is tried first. When a relay is configured, a failed direct
fetch gets exactly one second chance through it; hosts that block datacenter
traffic are usually reachable from the relay.
"""

from __future__ import annotations

import logging
from typing import Any

import requests

from app.scraping.config.models import ScrapingSettings
from app.scraping.errors import TransportError
from app.scraping.logging_utils import log_event
from app.scraping.types import FetchResult

logger = logging.getLogger(__name__)

TRANSPORT_DIRECT = "direct"
TRANSPORT_PROXY = "proxy"


class Fetcher:
    """
    Fetch HTML with browser-like headers and an optional proxy relay fallback.
    """

    def __init__(
        self,
        *,
        settings: ScrapingSettings,
        session: requests.Session | None = None,
    ) -> None:
        self._settings = settings
        self._session = session or requests.Session()
        self._headers = settings.request_headers()

    def fetch(self, url: str) -> FetchResult:
        try:
            return self._fetch_direct(url)
        except requests.RequestException as exc:
            status_code = _status_from(exc)
            primary_error = f"Direct fetch failed: {exc}"
            log_event(
                logger,
                logging.WARNING,
                "fetch_primary_failed",
                url=url,
                status_code=status_code,
                error=str(exc),
            )

        if not self._settings.proxy_url:
            raise TransportError(primary_error, url=url, status_code=status_code)

        try:
            return self._fetch_via_proxy(url)
        except (requests.RequestException, ValueError) as exc:
            log_event(logger, logging.WARNING, "fetch_proxy_failed", url=url, error=str(exc))
            raise TransportError(
                f"{primary_error}; proxy fetch failed: {exc}",
                url=url,
                status_code=status_code,
            ) from exc

    def _fetch_direct(self, url: str) -> FetchResult:
        response = self._session.get(
            url,
            headers=self._headers,
            timeout=self._settings.timeout_seconds,
            allow_redirects=True,
        )
        response.raise_for_status()
        return FetchResult(
            html=response.text,
            status_code=response.status_code,
            transport=TRANSPORT_DIRECT,
        )

    def _fetch_via_proxy(self, url: str) -> FetchResult:
        response = self._session.post(
            self._settings.proxy_url,
            json={"url": url, "headers": self._headers},
            timeout=self._settings.proxy_timeout_seconds,
        )
        response.raise_for_status()
        payload: Any = response.json()
        if not isinstance(payload, dict):
            raise ValueError("Proxy relay returned a non-object payload.")
        if not payload.get("success"):
            raise ValueError(str(payload.get("error") or "Proxy relay reported failure."))

        data = payload.get("data") or {}
        html = data.get("html") if isinstance(data, dict) else None
        if not isinstance(html, str) or not html:
            raise ValueError("Proxy relay returned no HTML.")

        log_event(logger, logging.INFO, "fetch_proxy_succeeded", url=url, length=len(html))
        return FetchResult(html=html, status_code=response.status_code, transport=TRANSPORT_PROXY)


def _status_from(exc: requests.RequestException) -> int | None:
    response = getattr(exc, "response", None)
    if response is None:
        return None
    return response.status_code
