"""Weighted attribution consensus and price summaries over parsed results.

Each qualifying result casts one vote per field, weighted by the reliability
of its seller and by how confident the parser was that the result describes
the researched item. Votes are grouped on a normalized value; the heaviest
group wins.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from research.models import (
    SOLD_STATUSES,
    AttributionConsensus,
    FieldConsensus,
    ParsedResult,
    PriceBand,
    PricePoint,
    PriceSummary,
)

TIER_DECAY = 0.15
UNKNOWN_TIER_WEIGHT = 0.5
MAX_CONSENSUS_CONFIDENCE = 0.95
MIN_TIER_WEIGHT = 0.1

CONSENSUS_FIELDS: Dict[str, str] = {
    "artist": "extracted_artist",
    "date": "extracted_date",
    "technique": "extracted_technique",
}


def tier_weight(tier: Optional[int]) -> float:
    """1.0 for tier 1, minus TIER_DECAY per step; unknown sellers get 0.5."""
    if tier is None:
        return UNKNOWN_TIER_WEIGHT
    return max(MIN_TIER_WEIGHT, round(1.0 - (tier - 1) * TIER_DECAY, 4))


def normalize_field_value(value: str) -> str:
    return " ".join(value.lower().split())


def _field_consensus(votes: Sequence[Tuple[ParsedResult, str]]) -> Optional[FieldConsensus]:
    groups: Dict[str, List[Tuple[ParsedResult, str, float]]] = {}
    total_weight = 0.0
    for result, value in votes:
        normalized = normalize_field_value(value)
        if not normalized:
            continue
        weight = tier_weight(result.reliability_tier) * result.match_confidence
        groups.setdefault(normalized, []).append((result, value, weight))
        total_weight += weight

    if not groups:
        return None

    winner_key = None
    winner_weight = -1.0
    # Strict comparison: on a tie the first group seen wins.
    for key, members in groups.items():
        group_weight = sum(weight for _, _, weight in members)
        if group_weight > winner_weight:
            winner_key, winner_weight = key, group_weight

    members = groups[winner_key]
    display = min(
        members,
        key=lambda m: m[0].reliability_tier if m[0].reliability_tier is not None else 99,
    )[1].strip()

    sources: List[str] = []
    for result, _, _ in members:
        label = result.source_label
        if label not in sources:
            sources.append(label)

    confidence = winner_weight / total_weight if total_weight > 0 else 0.0
    return FieldConsensus(
        value=display,
        normalized_value=winner_key,
        sources=sources,
        weighted_confidence=round(min(MAX_CONSENSUS_CONFIDENCE, confidence), 4),
        agreement_count=len(members),
    )


def calculate_attribution_consensus(
    parsed: Iterable[ParsedResult],
    min_match_confidence: float = 0.5,
) -> AttributionConsensus:
    """Weighted vote on artist, date and technique.

    Only results with ``match_confidence`` strictly above the floor vote.
    """
    qualifying = [r for r in parsed if r.match_confidence > min_match_confidence]
    fields: Dict[str, Optional[FieldConsensus]] = {}
    for name, attr in CONSENSUS_FIELDS.items():
        votes = [(r, getattr(r, attr)) for r in qualifying if getattr(r, attr)]
        fields[name] = _field_consensus(votes)
    return AttributionConsensus(**fields)


def _price_band(points: Sequence[PricePoint]) -> Optional[PriceBand]:
    if not points:
        return None
    prices = [p.price for p in points]
    currencies: List[str] = []
    sources: List[str] = []
    for point in points:
        if point.currency not in currencies:
            currencies.append(point.currency)
        if point.source not in sources:
            sources.append(point.source)
    return PriceBand(
        low=min(prices),
        high=max(prices),
        average=round(sum(prices) / len(prices), 2),
        count=len(prices),
        currencies=currencies,
        sources=sources,
    )


def calculate_price_summary(parsed: Iterable[ParsedResult]) -> PriceSummary:
    """Split positive prices into current listings and sold/realized prices."""
    all_prices: List[PricePoint] = []
    for result in parsed:
        if result.price is None or result.price <= 0:
            continue
        all_prices.append(
            PricePoint(
                price=result.price,
                currency=result.currency or "USD",
                status=result.status,
                source=result.source_label,
                url=result.url,
            )
        )

    current = [p for p in all_prices if p.status == "for_sale"]
    sold = [p for p in all_prices if p.status in SOLD_STATUSES]
    return PriceSummary(
        current_listings=_price_band(current),
        sold_prices=_price_band(sold),
        all_prices=all_prices,
    )
