"""
Multi-strategy price extraction.

Strategy categories run in a fixed order: the operator hint, a catalog of
common price selectors, price meta tags, then JSON-LD structured data. Each
category contributes the candidates of its first successful probe.

In BEST_EFFORT mode the highest candidate across all categories wins. Larger
numbers are more often the real sale price than incidental ratings or
quantities; downstream pricing depends on this choice, so it must not be
changed without product-owner sign-off.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from decimal import Decimal, InvalidOperation
from typing import Any

from bs4 import BeautifulSoup

from app.scraping.logging_utils import log_event
from app.scraping.number_parser import NumberParser
from app.scraping.selectors import (
    AVAILABILITY_SELECTORS,
    COMMON_PRICE_SELECTORS,
    DEBUG_SELECTORS,
    IMAGE_META_SELECTORS,
    IMAGE_SELECTORS,
    JSON_LD_SELECTOR,
    PRICE_META_SELECTORS,
    TITLE_SELECTORS,
    SelectorResolver,
)
from app.scraping.types import ExtractionMode, ExtractionResult, PriceCandidate

logger = logging.getLogger(__name__)

STRATEGY_EXPLICIT = "explicit"
STRATEGY_CATALOG = "catalog"
STRATEGY_META = "meta"
STRATEGY_STRUCTURED = "structured"

STRUCTURED_PRICE_FIELDS: tuple[str, ...] = (
    "price",
    "offers",
    "lowPrice",
    "highPrice",
    "priceRange",
    "priceSpecification",
    "value",
    "amount",
    "cost",
)
STRUCTURED_MAX_DEPTH = 4

OUT_OF_STOCK_KEYWORDS: tuple[str, ...] = ("tükendi", "stokta yok", "out of stock", "unavailable")
IN_STOCK_KEYWORDS: tuple[str, ...] = ("stokta", "mevcut", "in stock", "available")
OUT_OF_STOCK_LABEL = "Tükendi"
IN_STOCK_LABEL = "Stokta"

_MAX_TITLE_LENGTH = 200
# Longer matches are whole containers, not stock labels.
_MAX_AVAILABILITY_LENGTH = 120


class PriceExtractor:
    """
    Pure extraction over (html, hint, mode); performs no I/O.
    """

    def __init__(
        self,
        *,
        parser: NumberParser | None = None,
        resolver: SelectorResolver | None = None,
        catalog: tuple[str, ...] = COMMON_PRICE_SELECTORS,
    ) -> None:
        self._parser = parser or NumberParser()
        self._resolver = resolver or SelectorResolver()
        self._catalog = catalog

    def extract(
        self,
        html: str,
        hint: str | None,
        mode: ExtractionMode = ExtractionMode.BEST_EFFORT,
    ) -> ExtractionResult:
        soup = self._resolver.parse_html(html)

        strategies: list[tuple[str, Callable[[], list[PriceCandidate]]]] = [
            (STRATEGY_EXPLICIT, lambda: self._explicit_candidates(soup, hint)),
            (STRATEGY_CATALOG, lambda: self._catalog_candidates(soup)),
            (STRATEGY_META, lambda: self._meta_candidates(soup)),
            (STRATEGY_STRUCTURED, lambda: self._structured_candidates(soup)),
        ]

        collected: list[PriceCandidate] = []
        for name, probe in strategies:
            found = probe()
            if not found:
                continue
            collected.extend(found)
            if mode is ExtractionMode.FAST:
                break

        best = max(collected, key=lambda candidate: candidate.value) if collected else None
        result = ExtractionResult(
            price=best.value if best else None,
            strategy=best.strategy if best else None,
            title=self._title(soup),
            availability=self._availability(soup),
            image=self._image(soup),
            candidates=collected,
        )
        log_event(
            logger,
            logging.DEBUG,
            "price_extracted",
            mode=mode.value,
            price=result.price,
            strategy=result.strategy,
            candidate_count=len(collected),
        )
        return result

    def debug_snapshot(self, html: str) -> dict[str, Any]:
        """
        Element counts that help an operator fix a hint that found nothing.
        """

        soup = self._resolver.parse_html(html)
        resolver = self._resolver
        return {
            "total_elements": len(soup.find_all(True)),
            "price_elements": resolver.count(soup, '[class*="price"], [id*="price"], [data-price]'),
            "meta_tags": resolver.count(soup, 'meta[property*="price"], meta[name*="price"]'),
            "json_ld_scripts": resolver.count(soup, JSON_LD_SELECTOR),
            "common_selectors": {
                selector: resolver.count(soup, selector) for selector in DEBUG_SELECTORS
            },
        }

    def _explicit_candidates(self, soup: BeautifulSoup, hint: str | None) -> list[PriceCandidate]:
        text = self._resolver.hint_text(soup, hint)
        return self._wrap(self._parser.candidates(text), STRATEGY_EXPLICIT, hint or "")

    def _catalog_candidates(self, soup: BeautifulSoup) -> list[PriceCandidate]:
        for selector in self._catalog:
            text = self._resolver.text_for(soup, selector)
            found = self._parser.candidates(text)
            if found:
                return self._wrap(found, STRATEGY_CATALOG, selector)
        return []

    def _meta_candidates(self, soup: BeautifulSoup) -> list[PriceCandidate]:
        for selector in PRICE_META_SELECTORS:
            content = self._resolver.first_attribute(soup, selector, "content")
            found = self._parser.candidates(content)
            if found:
                return self._wrap(found, STRATEGY_META, selector)
        return []

    def _structured_candidates(self, soup: BeautifulSoup) -> list[PriceCandidate]:
        for index, block in enumerate(self._resolver.json_ld_blocks(soup)):
            found = self._structured_values(block, depth=0)
            if found:
                return self._wrap(found, STRATEGY_STRUCTURED, f"json-ld[{index}]")
        return []

    def _structured_values(self, node: Any, *, depth: int) -> list[Decimal]:
        if depth > STRUCTURED_MAX_DEPTH:
            return []

        if isinstance(node, list):
            values: list[Decimal] = []
            for item in node:
                values.extend(self._structured_values(item, depth=depth + 1))
            return values

        if not isinstance(node, dict):
            return []

        values = []
        graph = node.get("@graph")
        if isinstance(graph, list):
            values.extend(self._structured_values(graph, depth=depth + 1))

        for field_name in STRUCTURED_PRICE_FIELDS:
            value = node.get(field_name)
            if value is None or isinstance(value, bool):
                continue
            if isinstance(value, (int, float)):
                number = _number_from_json(value)
                if number is not None and self._parser.in_band(number):
                    values.append(number)
            elif isinstance(value, str):
                values.extend(self._parser.candidates(value))
            elif isinstance(value, (dict, list)):
                values.extend(self._structured_values(value, depth=depth + 1))
        return values

    def _title(self, soup: BeautifulSoup) -> str | None:
        for selector in TITLE_SELECTORS:
            text = self._resolver.first_text(soup, selector)
            if text and len(text) < _MAX_TITLE_LENGTH:
                return text
        return None

    def _availability(self, soup: BeautifulSoup) -> str | None:
        for selector in AVAILABILITY_SELECTORS:
            text = self._resolver.first_text(soup, selector)
            if text and len(text) <= _MAX_AVAILABILITY_LENGTH:
                return text

        body = soup.body or soup
        body_text = body.get_text(" ", strip=True).lower()
        if any(keyword in body_text for keyword in OUT_OF_STOCK_KEYWORDS):
            return OUT_OF_STOCK_LABEL
        if any(keyword in body_text for keyword in IN_STOCK_KEYWORDS):
            return IN_STOCK_LABEL
        return None

    def _image(self, soup: BeautifulSoup) -> str | None:
        for selector in IMAGE_SELECTORS:
            src = self._resolver.first_attribute(soup, selector, "src", "data-src")
            if src and src.startswith("http"):
                return src

        for selector in IMAGE_META_SELECTORS:
            content = self._resolver.first_attribute(soup, selector, "content")
            if content and content.startswith("http"):
                return content
        return None

    @staticmethod
    def _wrap(values: list[Decimal], strategy: str, source: str) -> list[PriceCandidate]:
        return [PriceCandidate(value=value, strategy=strategy, source=source) for value in values]


def _number_from_json(value: int | float) -> Decimal | None:
    try:
        number = Decimal(str(value))
    except InvalidOperation:
        return None
    return number if number.is_finite() else None
