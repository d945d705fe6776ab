"""Candidate-title extraction from image-search hits and follow-up query synthesis."""

from __future__ import annotations

import re
from typing import Iterable, List, Sequence, Set

from research.models import ExtractedTitle, UnifiedSearchResult

MIN_TITLE_LENGTH = 10
MIN_QUERY_LENGTH = 10
MAX_TITLES = 10
BOILERPLATE_MARKERS = ("ebay", "etsy", "search results")

_NON_QUERY_CHARS = re.compile(r"[^\w\s-]")
_WHITESPACE = re.compile(r"\s+")


def title_confidence(result: UnifiedSearchResult) -> float:
    confidence = 0.5
    if result.is_known_seller:
        confidence += 0.2
        if result.reliability_tier is not None and result.reliability_tier <= 2:
            confidence += 0.2
    return round(confidence, 2)


def extract_titles(results: Iterable[UnifiedSearchResult], limit: int = MAX_TITLES) -> List[ExtractedTitle]:
    """Pick distinct, non-generic titles, most reliable sources first."""
    seen: Set[str] = set()
    titles: List[ExtractedTitle] = []

    for result in results:
        title = (result.title or "").strip()
        if len(title) < MIN_TITLE_LENGTH:
            continue
        normalized = title.lower()
        if normalized in seen:
            continue
        if any(marker in normalized for marker in BOILERPLATE_MARKERS):
            continue
        seen.add(normalized)
        titles.append(
            ExtractedTitle(
                title=title,
                source=result.original_source or result.domain,
                confidence=title_confidence(result),
            )
        )

    # sorted() is stable, so equal-confidence titles keep provider order.
    titles = sorted(titles, key=lambda t: t.confidence, reverse=True)
    return titles[:limit]


def clean_query(text: str) -> str:
    return _WHITESPACE.sub(" ", _NON_QUERY_CHARS.sub("", text)).strip()


def generate_queries(
    titles: Sequence[ExtractedTitle],
    max_queries: int = 3,
    keyword: str = "poster",
) -> List[str]:
    """Turn the top ``max_queries`` titles into text-search queries."""
    queries: List[str] = []
    seen: Set[str] = set()
    for extracted in titles[:max_queries]:
        query = clean_query(extracted.title)
        if keyword and keyword.lower() not in query.lower():
            query = f"{query} {keyword}".strip()
        if len(query) < MIN_QUERY_LENGTH:
            continue
        key = query.lower()
        if key in seen:
            continue
        seen.add(key)
        queries.append(query)
    return queries
