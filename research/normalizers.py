"""Convert raw provider hits into ``UnifiedSearchResult`` records."""

from __future__ import annotations

from typing import Iterable, List, Optional, Tuple

from research.dealers import SellerDomainIndex
from research.models import SellerMatch, UnifiedSearchResult
from research.providers.base import RawVisualMatch, RawWebResult
from research.utils.price import extract_price, normalize_currency_code
from research.utils.url import extract_domain, normalize_url

_SYMBOL_CURRENCIES = {"$": "USD", "€": "EUR", "£": "GBP"}


def _currency_from(raw: Optional[str]) -> Optional[str]:
    if not raw:
        return None
    raw = raw.strip()
    return _SYMBOL_CURRENCIES.get(raw) or normalize_currency_code(raw)


def _price_from_texts(*texts: Optional[str]) -> Tuple[Optional[str], Optional[float], Optional[str]]:
    for text in texts:
        match = extract_price(text)
        if match is not None:
            return match.price_text, match.value, match.currency
    return None, None, None


def _seller_fields(match: SellerMatch) -> dict:
    return {
        "seller_id": match.seller_id,
        "seller_name": match.seller_name,
        "reliability_tier": match.reliability_tier,
        "is_known_seller": match.is_known,
    }


def visual_to_unified(raw: RawVisualMatch, index: SellerDomainIndex) -> UnifiedSearchResult:
    url = normalize_url(raw.link)
    price, price_value, currency = raw.price, raw.extracted_price, _currency_from(raw.currency)
    if price_value is None:
        text_price, text_value, text_currency = _price_from_texts(raw.price, raw.title)
        if text_value is not None:
            price = price or text_price
            price_value = text_value
            currency = currency or text_currency
    if price_value is not None and price_value <= 0:
        price_value = None
    if price_value is not None and currency is None:
        currency = "USD"

    return UnifiedSearchResult(
        title=raw.title,
        url=url,
        domain=extract_domain(url),
        source="visual",
        original_source=raw.source,
        price=price,
        price_value=price_value,
        currency=currency,
        thumbnail=raw.thumbnail,
        **_seller_fields(index.match(url)),
    )


def web_to_unified(raw: RawWebResult, index: SellerDomainIndex) -> UnifiedSearchResult:
    url = normalize_url(raw.link)
    # Snippets carry listing prices more often than titles do.
    price, price_value, currency = _price_from_texts(raw.snippet, raw.title)

    return UnifiedSearchResult(
        title=raw.title,
        url=url,
        domain=extract_domain(url),
        snippet=raw.snippet,
        source="web",
        price=price,
        price_value=price_value,
        currency=currency,
        thumbnail=raw.image_url,
        **_seller_fields(index.match(url)),
    )


def normalize_visual_results(
    raws: Iterable[RawVisualMatch], index: SellerDomainIndex, limit: Optional[int] = None
) -> List[UnifiedSearchResult]:
    results = [visual_to_unified(raw, index) for raw in raws if raw.link]
    return results[:limit] if limit is not None else results


def normalize_web_results(
    raws: Iterable[RawWebResult], index: SellerDomainIndex, limit: Optional[int] = None
) -> List[UnifiedSearchResult]:
    results = [web_to_unified(raw, index) for raw in raws if raw.link]
    return results[:limit] if limit is not None else results
