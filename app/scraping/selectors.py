"""
BeautifulSoup-based selector resolution for price pages.

Holds the fixed selector catalogs the extractor falls back to and the helpers
that turn an operator hint into matched element texts.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from bs4 import BeautifulSoup, Tag
from soupsieve import SelectorSyntaxError

from app.scraping.errors import InvalidHintError
from app.scraping.logging_utils import log_event

logger = logging.getLogger(__name__)

COMMON_PRICE_SELECTORS: tuple[str, ...] = (
    ".price",
    ".product-price",
    ".current-price",
    ".sale-price",
    ".final-price",
    ".price-current",
    ".price-now",
    ".price-value",
    ".price-amount",
    ".cost",
    ".amount",
    ".value",
    ".fiyat",
    ".tutar",
    "#price",
    "#product-price",
    "#current-price",
    "#final-price",
    "[data-price]",
    '[data-testid*="price"]',
    '[data-testid*="Price"]',
    '[class*="price"]',
    '[class*="Price"]',
    '[class*="PRICE"]',
    "[data-value]",
    "[data-amount]",
    "[data-cost]",
    ".price-box",
    ".price-container",
    ".price-wrapper",
    ".product-cost",
    ".item-price",
    ".listing-price",
    ".offer-price",
    ".discount-price",
    ".special-price",
    ".urun-fiyat",
    ".fiyat-bilgisi",
    ".fiyat-detay",
    ".satis-fiyati",
    ".indirimli-fiyat",
    ".kampanya-fiyat",
    ".number",
    ".numeric",
    ".currency",
    ".money",
)

PRICE_META_SELECTORS: tuple[str, ...] = (
    'meta[property="product:price:amount"]',
    'meta[name="price"]',
    'meta[property="og:price:amount"]',
    'meta[property="product:price"]',
    'meta[name="twitter:data1"]',
    'meta[itemprop="price"]',
)

TITLE_SELECTORS: tuple[str, ...] = (
    "title",
    "h1",
    "h2",
    ".product-title",
    ".product-name",
    '[data-testid*="title"]',
    '[class*="title"]',
    ".name",
    ".heading",
)

AVAILABILITY_SELECTORS: tuple[str, ...] = (
    ".stock",
    ".availability",
    ".inventory",
    '[data-testid*="stock"]',
    '[class*="stock"]',
    ".status",
    ".condition",
)

IMAGE_SELECTORS: tuple[str, ...] = (
    ".product-image img",
    ".product-photo img",
    ".main-image img",
    '[data-testid*="image"] img',
    ".gallery img",
    ".slider img",
)

IMAGE_META_SELECTORS: tuple[str, ...] = (
    'meta[property="og:image"]',
    'meta[name="image"]',
)

DEBUG_SELECTORS: tuple[str, ...] = (
    ".price",
    ".product-price",
    ".current-price",
    "[data-price]",
    '[class*="price"]',
)

JSON_LD_SELECTOR = 'script[type="application/ld+json"]'


class SelectorResolver:
    """
    Resolve hint fragments and catalog selectors against parsed HTML.
    """

    @staticmethod
    def parse_html(html: str) -> BeautifulSoup:
        return BeautifulSoup(html or "", "html.parser")

    @staticmethod
    def split_hint(hint: str | None) -> list[str]:
        """
        Split a comma-joined hint into trimmed selector fragments.
        """

        if not hint:
            return []
        return [fragment.strip() for fragment in hint.split(",") if fragment.strip()]

    @classmethod
    def validate_hint(cls, hint: str | None) -> list[str]:
        """
        Return the hint fragments or raise ``InvalidHintError``.

        Used where a hint enters the system (admin create/update) so that a
        malformed selector is rejected instead of silently matching nothing.
        """

        fragments = cls.split_hint(hint)
        if not fragments:
            raise InvalidHintError("Hint must contain at least one selector.")

        probe = BeautifulSoup("", "html.parser")
        invalid: list[str] = []
        for fragment in fragments:
            try:
                probe.select(fragment)
            except SelectorSyntaxError:
                invalid.append(fragment)
        if invalid:
            raise InvalidHintError(
                f"Hint contains invalid selectors: {', '.join(invalid)}",
                fragments=invalid,
            )
        return fragments

    @staticmethod
    def select(soup: BeautifulSoup, selector: str) -> list[Tag]:
        try:
            return list(soup.select(selector))
        except SelectorSyntaxError as exc:
            log_event(
                logger,
                logging.WARNING,
                "selector_syntax_error",
                selector=selector,
                error=str(exc),
            )
            return []

    @classmethod
    def text_for(cls, soup: BeautifulSoup, selector: str) -> str:
        """
        Concatenated text of every element matching ``selector``.
        """

        texts = [
            clean_text(node.get_text(" ", strip=True))
            for node in cls.select(soup, selector)
        ]
        return " ".join(text for text in texts if text)

    @classmethod
    def hint_text(cls, soup: BeautifulSoup, hint: str | None) -> str:
        parts = [cls.text_for(soup, fragment) for fragment in cls.split_hint(hint)]
        return " ".join(part for part in parts if part)

    @classmethod
    def first_text(cls, soup: BeautifulSoup, selector: str) -> str | None:
        matches = cls.select(soup, selector)
        if not matches:
            return None
        text = clean_text(matches[0].get_text(" ", strip=True))
        return text or None

    @classmethod
    def first_attribute(
        cls,
        soup: BeautifulSoup,
        selector: str,
        *attributes: str,
    ) -> str | None:
        for node in cls.select(soup, selector):
            for attribute in attributes:
                value = node.get(attribute)
                if isinstance(value, list):
                    value = " ".join(value)
                if isinstance(value, str) and value.strip():
                    return value.strip()
        return None

    @classmethod
    def json_ld_blocks(cls, soup: BeautifulSoup) -> list[Any]:
        """
        Parsed JSON-LD script payloads; unparsable blocks are skipped.
        """

        blocks: list[Any] = []
        for script in cls.select(soup, JSON_LD_SELECTOR):
            raw = script.string if script.string is not None else script.get_text()
            if not raw or not raw.strip():
                continue
            try:
                blocks.append(json.loads(raw))
            except ValueError:
                log_event(logger, logging.DEBUG, "json_ld_parse_failed", length=len(raw))
                continue
        return blocks

    @classmethod
    def count(cls, soup: BeautifulSoup, selector: str) -> int:
        return len(cls.select(soup, selector))


def clean_text(value: str) -> str:
    return re.sub(r"\s+", " ", value).strip()
