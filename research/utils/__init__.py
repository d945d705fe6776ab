"""Utility helpers for domains, dedup keys and price parsing."""

from .url import (
    COMPOUND_TLDS,
    dedup_key,
    extract_domain,
    extract_root_domain,
    normalize_url,
    root_domain_for_url,
)
from .price import (
    KNOWN_CURRENCIES,
    PriceMatch,
    extract_price,
    normalize_currency_code,
)

__all__ = [
    "COMPOUND_TLDS",
    "dedup_key",
    "extract_domain",
    "extract_root_domain",
    "normalize_url",
    "root_domain_for_url",
    "KNOWN_CURRENCIES",
    "PriceMatch",
    "extract_price",
    "normalize_currency_code",
]
