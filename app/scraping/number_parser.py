"""
Locale-aware price number parsing.

Turns free text such as ``"3.900,00 TL"`` or ``"₺1,250.00"`` into a
``Decimal``. Candidates outside the sanity band are dropped because regexes
routinely capture element indices, years and phone number fragments.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from decimal import Decimal, InvalidOperation

CURRENCY_MARKERS: tuple[str, ...] = ("TL", "₺")

MIN_PRICE = Decimal("0.01")
MAX_PRICE = Decimal("100000")

_NUMBER_TOKEN = re.compile(r"\d+(?:[.,]\d+)*")
_THOUSANDS_GROUP = re.compile(r"\d{3}")


def _marker_pattern(markers: Iterable[str]) -> re.Pattern[str]:
    parts: list[str] = []
    for marker in markers:
        escaped = re.escape(marker)
        if marker.isalpha():
            escaped = rf"\b{escaped}\b"
        parts.append(escaped)
    return re.compile("|".join(parts), flags=re.IGNORECASE)


class NumberParser:
    """
    Extract price-like decimals from text.

    The admin locale writes ``.`` as thousands separator and ``,`` as decimal
    separator, so a lone dot followed by exactly three digits is read as
    thousands grouping (``1.250`` -> ``1250``). Structured data written with a
    dot decimal (``1250.00``) still parses as expected.
    """

    def __init__(
        self,
        *,
        currency_markers: Iterable[str] = CURRENCY_MARKERS,
        min_value: Decimal = MIN_PRICE,
        max_value: Decimal = MAX_PRICE,
    ) -> None:
        self._markers = _marker_pattern(currency_markers)
        self._min_value = min_value
        self._max_value = max_value

    def parse(self, text: str | None) -> Decimal | None:
        """
        Return the highest surviving candidate in ``text`` or ``None``.
        """

        found = self.candidates(text)
        if not found:
            return None
        return max(found)

    def candidates(self, text: str | None) -> list[Decimal]:
        """
        Return every in-band numeric candidate in order of appearance.
        """

        if not text:
            return []
        cleaned = self._markers.sub(" ", text)
        results: list[Decimal] = []
        for match in _NUMBER_TOKEN.finditer(cleaned):
            value = normalize_number(match.group(0))
            if value is None:
                continue
            if self.in_band(value):
                results.append(value)
        return results

    def in_band(self, value: Decimal) -> bool:
        return self._min_value < value < self._max_value


def normalize_number(token: str) -> Decimal | None:
    """
    Convert one digit/separator token to a ``Decimal``.

    Returns ``None`` for tokens whose grouping cannot be a number
    (``19.10.2026``, ``1.25.3``).
    """

    has_dot = "." in token
    has_comma = "," in token

    if has_dot and has_comma:
        decimal_sep = "," if token.rfind(",") > token.rfind(".") else "."
        thousands_sep = "." if decimal_sep == "," else ","
        integer_part, _, fraction = token.rpartition(decimal_sep)
        if thousands_sep not in integer_part or decimal_sep in integer_part:
            return None
        digits = _join_groups(integer_part.split(thousands_sep))
        if digits is None:
            return None
        return _to_decimal(f"{digits}.{fraction}")

    if has_comma:
        parts = token.split(",")
        if len(parts) == 2:
            return _to_decimal(f"{parts[0]}.{parts[1]}")
        digits = _join_groups(parts)
        return _to_decimal(digits) if digits is not None else None

    if has_dot:
        parts = token.split(".")
        if len(parts) == 2 and len(parts[1]) != 3:
            return _to_decimal(token)
        digits = _join_groups(parts)
        return _to_decimal(digits) if digits is not None else None

    return _to_decimal(token)


def _join_groups(groups: list[str]) -> str | None:
    head, *tail = groups
    if not head or len(head) > 3:
        return None
    if not all(_THOUSANDS_GROUP.fullmatch(group) for group in tail):
        return None
    return head + "".join(tail)


def _to_decimal(raw: str) -> Decimal | None:
    try:
        return Decimal(raw)
    except InvalidOperation:
        return None
