"""Price extraction from free text and currency code normalization."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional, Pattern, Sequence, Tuple

KNOWN_CURRENCIES = {"USD", "EUR", "GBP", "CAD", "AUD", "CHF", "JPY", "SEK", "DKK", "NOK"}

# Tried in order; the first pattern that yields a number wins.
PRICE_PATTERNS: Sequence[Tuple[Pattern[str], str]] = (
    (re.compile(r"\$\s*([\d,]+(?:\.\d{2})?)"), "USD"),
    (re.compile(r"€\s*([\d,]+(?:\.\d{2})?)"), "EUR"),
    (re.compile(r"£\s*([\d,]+(?:\.\d{2})?)"), "GBP"),
    (re.compile(r"([\d,]+(?:\.\d{2})?)\s*USD\b"), "USD"),
    (re.compile(r"([\d,]+(?:\.\d{2})?)\s*EUR\b"), "EUR"),
)


@dataclass(frozen=True)
class PriceMatch:
    price_text: str
    value: float
    currency: str


def extract_price(text: Optional[str]) -> Optional[PriceMatch]:
    """Parse the first recognizable price out of ``text``.

    Returns None (never a zero price) when nothing matches.
    """
    if not text:
        return None
    for pattern, currency in PRICE_PATTERNS:
        match = pattern.search(text)
        if not match:
            continue
        digits = match.group(1).replace(",", "")
        try:
            value = float(digits)
        except ValueError:
            continue
        return PriceMatch(price_text=match.group(0).strip(), value=value, currency=currency)
    return None


def normalize_currency_code(code: Optional[str]) -> Optional[str]:
    if not code:
        return None
    trimmed = code.strip().upper()
    if len(trimmed) != 3 or not trimmed.isalpha():
        return None
    if trimmed not in KNOWN_CURRENCIES:
        return None
    return trimmed


__all__ = [
    "KNOWN_CURRENCIES",
    "PRICE_PATTERNS",
    "PriceMatch",
    "extract_price",
    "normalize_currency_code",
]
