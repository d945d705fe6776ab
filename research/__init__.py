"""Poster research aggregation: image + web search, seller matching, consensus."""

from research.config import ResearchSettings, get_settings
from research.consensus import calculate_attribution_consensus, calculate_price_summary, tier_weight
from research.dealers import (
    InMemorySellerRegistry,
    SellerDomainIndex,
    SellerFilters,
    SellerRegistry,
    build_seller_index,
    generate_seller_search_url,
    group_sellers_by_tier,
)
from research.merge import deduplicate_results, merge_records, sort_results
from research.models import (
    AttributionConsensus,
    ExtractedTitle,
    FieldConsensus,
    ItemContext,
    MultiStageSearchOptions,
    MultiStageSearchResponse,
    ParsedResult,
    ParsedResultsResponse,
    PriceSummary,
    ResearchStatus,
    Seller,
    SellerMatch,
    UnifiedSearchResult,
    VisualMatchResult,
)
from research.parser import ResultParser
from research.service import MultiStageSearchService
from research.titles import extract_titles, generate_queries
from research.visual import VisualComparator, batch_compare_images

__all__ = [
    "AttributionConsensus",
    "ExtractedTitle",
    "FieldConsensus",
    "InMemorySellerRegistry",
    "ItemContext",
    "MultiStageSearchOptions",
    "MultiStageSearchResponse",
    "MultiStageSearchService",
    "ParsedResult",
    "ParsedResultsResponse",
    "PriceSummary",
    "ResearchSettings",
    "ResearchStatus",
    "ResultParser",
    "Seller",
    "SellerDomainIndex",
    "SellerFilters",
    "SellerMatch",
    "SellerRegistry",
    "UnifiedSearchResult",
    "VisualComparator",
    "VisualMatchResult",
    "batch_compare_images",
    "build_seller_index",
    "calculate_attribution_consensus",
    "calculate_price_summary",
    "deduplicate_results",
    "extract_titles",
    "generate_queries",
    "generate_seller_search_url",
    "get_settings",
    "group_sellers_by_tier",
    "merge_records",
    "sort_results",
    "tier_weight",
]
