"""Provider-agnostic request/response types for search adapters."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence

from pydantic import BaseModel, Field

from research.exceptions import ProviderErrorKind
from research.models import KnowledgeGraph


class RawVisualMatch(BaseModel):
    """A single image-search hit as the provider reported it."""

    title: str = ""
    link: str = ""
    source: Optional[str] = None
    thumbnail: Optional[str] = None
    price: Optional[str] = None
    extracted_price: Optional[float] = None
    currency: Optional[str] = None
    position: Optional[int] = None


class RawWebResult(BaseModel):
    title: str = ""
    link: str = ""
    snippet: Optional[str] = None
    position: Optional[int] = None
    date: Optional[str] = None
    image_url: Optional[str] = None


class ProviderResponse(BaseModel):
    """Common envelope: adapters report failures here instead of raising."""

    credits_used: int = 0
    search_time: float = 0.0
    error: Optional[str] = None
    error_kind: Optional[ProviderErrorKind] = None
    retryable: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def configured(self) -> bool:
        return self.error_kind != "not_configured"


class VisualSearchResponse(ProviderResponse):
    results: List[RawVisualMatch] = Field(default_factory=list)
    knowledge_graph: Optional[KnowledgeGraph] = None


class TextSearchResponse(ProviderResponse):
    query: str = ""
    results: List[RawWebResult] = Field(default_factory=list)


class MultiTextSearchResponse(BaseModel):
    results: List[RawWebResult] = Field(default_factory=list)
    total_credits_used: int = 0
    errors: List[str] = Field(default_factory=list)
    rate_limited: bool = False


class SearchProvider(ABC):
    """Image + text search backend used by the multi-stage pipeline."""

    name: str = "provider"

    @abstractmethod
    def is_configured(self) -> bool:
        ...

    @abstractmethod
    async def visual_search(self, image_url: str, **kwargs: Any) -> VisualSearchResponse:
        ...

    @abstractmethod
    async def text_search(self, query: str, max_results: int = 20, **kwargs: Any) -> TextSearchResponse:
        ...

    async def text_search_multiple(
        self,
        queries: Sequence[str],
        max_results_per_query: int = 10,
    ) -> MultiTextSearchResponse:
        """Run queries one after another, deduplicating on exact URL.

        Per-query failures are collected; the batch never aborts.
        """
        seen: Dict[str, bool] = {}
        combined = MultiTextSearchResponse()

        for query in queries:
            response = await self.text_search(query, max_results=max_results_per_query)
            combined.total_credits_used += response.credits_used
            if response.error:
                combined.errors.append(f'Query "{query}": {response.error}')
                if response.error_kind == "rate_limited":
                    combined.rate_limited = True
                continue
            for item in response.results:
                if not item.link or item.link in seen:
                    continue
                seen[item.link] = True
                combined.results.append(item)

        return combined
