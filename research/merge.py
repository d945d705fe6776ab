"""Merge, deduplicate and rank unified results from both search stages."""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Tuple

from research.models import UnifiedSearchResult
from research.utils.url import dedup_key

_FILL_FIELDS = ("snippet", "original_source", "thumbnail", "seller_id", "seller_name", "reliability_tier")
_PRICE_FIELDS = ("price", "price_value", "currency")
_VERIFICATION_FIELDS = ("visually_verified", "visual_match", "same_image", "same_style", "visual_explanation")


def merge_records(existing: UnifiedSearchResult, incoming: UnifiedSearchResult) -> UnifiedSearchResult:
    """Combine two records for the same URL without losing price or verification data.

    Image-search records take precedence over web records; gaps in the kept
    record are filled from the other one. ``merge_records(r, r) == r``.
    """
    if incoming.source == "visual" and existing.source == "web":
        primary, secondary = incoming, existing
    else:
        primary, secondary = existing, incoming

    updates: Dict[str, Any] = {}
    for field in _FILL_FIELDS:
        if getattr(primary, field) is None and getattr(secondary, field) is not None:
            updates[field] = getattr(secondary, field)
    if secondary.is_known_seller and not primary.is_known_seller:
        updates["is_known_seller"] = True

    # Price fields travel together so text, value and currency stay consistent.
    if not primary.has_price and secondary.has_price:
        for field in _PRICE_FIELDS:
            updates[field] = getattr(secondary, field)

    if secondary.visually_verified and not primary.visually_verified:
        for field in _VERIFICATION_FIELDS:
            updates[field] = getattr(secondary, field)

    if not updates:
        return primary
    return primary.model_copy(update=updates)


def deduplicate_results(results: Iterable[UnifiedSearchResult]) -> List[UnifiedSearchResult]:
    """One record per normalized URL, in first-seen order."""
    merged: Dict[str, UnifiedSearchResult] = {}
    for result in results:
        key = dedup_key(result.url)
        if not key:
            continue
        current = merged.get(key)
        merged[key] = result if current is None else merge_records(current, result)
    return list(merged.values())


def ranking_key(result: UnifiedSearchResult) -> Tuple:
    verified = result.visually_verified
    return (
        0 if result.same_image else 1,
        0 if verified else 1,
        -(result.visual_match or 0) if verified else 0,
        0 if result.is_known_seller else 1,
        result.reliability_tier if result.reliability_tier is not None else 99,
        0 if result.has_price else 1,
        0 if result.source == "visual" else 1,
    )


def sort_results(results: Iterable[UnifiedSearchResult]) -> List[UnifiedSearchResult]:
    """Confirmed matches, then verified by score, then known sellers by tier.

    Stable: records that tie keep their incoming order.
    """
    return sorted(results, key=ranking_key)
