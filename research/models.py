"""Typed models for the multi-stage research pipeline."""

from __future__ import annotations

import re
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

SellerCategory = Literal[
    "dealer",
    "auction_house",
    "gallery",
    "marketplace",
    "aggregator",
    "research_institution",
    "other",
]
ResultSource = Literal["visual", "web"]
SaleStatus = Literal["for_sale", "out_of_stock", "sold", "auction_result", "unknown"]

SOLD_STATUSES = ("sold", "out_of_stock", "auction_result")

_SLUG_PATTERN = re.compile(r"[^a-z0-9]+")


def slugify_seller_name(name: str) -> str:
    """Derive the normalized seller identifier from its display name."""
    return _SLUG_PATTERN.sub("-", (name or "").lower()).strip("-")


class Seller(BaseModel):
    """A registered dealer, auction house, gallery, marketplace or institution."""

    id: int
    name: str
    slug: str = ""
    category: SellerCategory = "dealer"
    website: Optional[str] = None
    reliability_tier: int = Field(..., ge=1, le=6)
    attribution_weight: float = Field(0.7, ge=0.0, le=1.0)
    pricing_weight: float = Field(0.7, ge=0.0, le=1.0)
    can_research: bool = True
    can_price: bool = True
    can_procure: bool = False
    can_be_source: bool = False
    search_url_template: Optional[str] = None
    specializations: List[str] = Field(default_factory=list)
    is_active: bool = True

    @model_validator(mode="after")
    def _derive_slug(self) -> "Seller":
        if not self.slug:
            self.slug = slugify_seller_name(self.name)
        return self

    @field_validator("search_url_template")
    @classmethod
    def _require_query_placeholder(cls, value: Optional[str]) -> Optional[str]:
        if value and "{query}" not in value:
            raise ValueError("search_url_template must contain a {query} placeholder")
        return value or None


class SellerMatch(BaseModel):
    seller_id: Optional[int] = None
    seller_name: Optional[str] = None
    reliability_tier: Optional[int] = None
    is_known: bool = False


class KnowledgeGraph(BaseModel):
    title: Optional[str] = None
    type: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None


class UnifiedSearchResult(BaseModel):
    """One normalized finding from either search provider."""

    title: str
    url: str
    domain: str
    snippet: Optional[str] = None

    source: ResultSource
    original_source: Optional[str] = None

    price: Optional[str] = None
    price_value: Optional[float] = Field(None, ge=0)
    currency: Optional[str] = None

    thumbnail: Optional[str] = None

    seller_id: Optional[int] = None
    seller_name: Optional[str] = None
    reliability_tier: Optional[int] = None
    is_known_seller: bool = False

    visually_verified: bool = False
    visual_match: Optional[float] = Field(None, ge=0, le=100)
    same_image: Optional[bool] = None
    same_style: Optional[bool] = None
    visual_explanation: Optional[str] = None

    @property
    def has_price(self) -> bool:
        return self.price_value is not None and self.price_value > 0

    @property
    def source_label(self) -> str:
        return self.seller_name or self.original_source or self.domain


class ExtractedTitle(BaseModel):
    title: str
    source: str
    confidence: float = Field(..., ge=0.0, le=1.0)


class ItemContext(BaseModel):
    """What is known about the item being researched."""

    title: str
    artist: Optional[str] = None
    date: Optional[str] = None
    dimensions: Optional[str] = None
    technique: Optional[str] = None
    image_url: Optional[str] = None


class ParsedResult(BaseModel):
    url: str
    title: str
    domain: str

    extracted_artist: Optional[str] = None
    extracted_date: Optional[str] = None
    extracted_dimensions: Optional[str] = None
    extracted_technique: Optional[str] = None

    price: Optional[float] = Field(None, ge=0)
    currency: str = "USD"
    price_text: Optional[str] = None

    status: SaleStatus = "unknown"
    status_confidence: float = Field(0.5, ge=0.0, le=1.0)

    match_confidence: float = Field(0.5, ge=0.0, le=1.0)
    match_reason: Optional[str] = None

    seller_id: Optional[int] = None
    seller_name: Optional[str] = None
    reliability_tier: Optional[int] = None

    @property
    def source_label(self) -> str:
        return self.seller_name or self.domain


class FieldConsensus(BaseModel):
    value: str
    normalized_value: str
    sources: List[str] = Field(default_factory=list)
    weighted_confidence: float = Field(..., ge=0.0, le=0.95)
    agreement_count: int = Field(..., ge=1)


class AttributionConsensus(BaseModel):
    """Weighted-vote winners; a field stays None when nothing voted for it."""

    artist: Optional[FieldConsensus] = None
    date: Optional[FieldConsensus] = None
    technique: Optional[FieldConsensus] = None

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class PricePoint(BaseModel):
    price: float
    currency: str
    status: SaleStatus
    source: str
    url: str


class PriceBand(BaseModel):
    low: float
    high: float
    average: float
    count: int
    currencies: List[str] = Field(default_factory=list)
    sources: List[str] = Field(default_factory=list)


class PriceSummary(BaseModel):
    current_listings: Optional[PriceBand] = None
    sold_prices: Optional[PriceBand] = None
    all_prices: List[PricePoint] = Field(default_factory=list)


class ParsedResultsResponse(BaseModel):
    results: List[ParsedResult] = Field(default_factory=list)
    consensus: AttributionConsensus = Field(default_factory=AttributionConsensus)
    price_summary: PriceSummary = Field(default_factory=PriceSummary)
    tokens_used: int = 0
    used_ai: bool = False


class VisualMatchResult(BaseModel):
    visual_match: float = Field(..., ge=0, le=100)
    same_image: bool = False
    same_style: bool = False
    explanation: str = "No explanation provided"


class VisualVerificationSummary(BaseModel):
    enabled: bool = True
    results_verified: int = 0
    confirmed_matches: int = 0
    high_match_count: int = 0


class MultiStageSearchOptions(BaseModel):
    """Caller-facing knobs for one research session."""

    image_url: Optional[str] = None
    query: Optional[str] = None
    query_variations: List[str] = Field(default_factory=list)

    max_visual_results: int = Field(20, ge=0)
    max_web_results: int = Field(20, ge=0)
    max_web_queries: int = Field(3, ge=0)
    include_web_search: bool = True

    enable_visual_verification: bool = False
    max_visual_verifications: int = Field(10, ge=0)
    visual_verification_threshold: float = Field(0, ge=0, le=100)

    parse_with_ai: bool = False
    item_context: Optional[ItemContext] = None

    seller_ids: Optional[List[int]] = None

    @field_validator("query_variations", mode="before")
    @classmethod
    def _clean_variations(cls, value: Optional[List[str]]) -> List[str]:
        if value is None:
            return []
        return [str(item).strip() for item in value if item and str(item).strip()]

    def has_search_input(self) -> bool:
        return bool(self.image_url or (self.query and self.query.strip()) or self.query_variations)


class MultiStageSearchResponse(BaseModel):
    """The session-level output contract."""

    success: bool
    error: Optional[str] = None
    configured: bool = True
    image_url: Optional[str] = None

    visual_results: List[UnifiedSearchResult] = Field(default_factory=list)
    web_results: List[UnifiedSearchResult] = Field(default_factory=list)
    results: List[UnifiedSearchResult] = Field(default_factory=list)

    extracted_titles: List[ExtractedTitle] = Field(default_factory=list)
    knowledge_graph: Optional[KnowledgeGraph] = None
    unknown_domains: List[str] = Field(default_factory=list)
    visual_verification: Optional[VisualVerificationSummary] = None
    parsed_results: Optional[ParsedResultsResponse] = None

    total_results: int = 0
    credits_used: int = 0
    search_time: float = 0.0


class ResearchStatus(BaseModel):
    configured: bool
    provider: str
    features: Dict[str, bool] = Field(default_factory=dict)
    message: str
