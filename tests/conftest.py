from typing import List, Optional, Sequence, Union

import pytest

from research.config import ResearchSettings
from research.dealers import InMemorySellerRegistry, SellerDomainIndex
from research.exceptions import LLMError
from research.llm import LLMCompletion
from research.models import Seller, UnifiedSearchResult


class FakeLLM:
    """Scripted LLM: returns (or raises) queued replies in order."""

    def __init__(self, replies: Sequence[Union[str, Exception]] = (), configured: bool = True):
        self.replies = list(replies)
        self.configured = configured
        self.prompts: List[str] = []
        self.image_calls: List[List[str]] = []

    def is_configured(self) -> bool:
        return self.configured

    def _next(self) -> LLMCompletion:
        if not self.replies:
            raise LLMError("no scripted reply")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return LLMCompletion(text=reply, input_tokens=100, output_tokens=20)

    async def complete(self, prompt: str, max_tokens: int = 4096) -> LLMCompletion:
        self.prompts.append(prompt)
        return self._next()

    async def complete_with_images(self, prompt: str, image_urls: Sequence[str], max_tokens: int = 500) -> LLMCompletion:
        self.prompts.append(prompt)
        self.image_calls.append(list(image_urls))
        return self._next()


@pytest.fixture
def sellers() -> List[Seller]:
    return [
        Seller(id=1, name="Heritage Auctions", category="auction_house", website="https://www.ha.com", reliability_tier=1),
        Seller(
            id=2,
            name="Potter & Potter Auctions",
            category="auction_house",
            website="https://potterauctions.com",
            reliability_tier=2,
            search_url_template="https://potterauctions.com/search?q={query}",
        ),
        Seller(id=3, name="Example Prints", website="https://www.example.co.uk", reliability_tier=3),
        Seller(id=4, name="Closed Gallery", category="gallery", website="https://closedgallery.com", reliability_tier=4, is_active=False),
        Seller(id=5, name="Etsy", category="marketplace", website="https://www.etsy.com", reliability_tier=6, can_procure=True),
    ]


@pytest.fixture
def registry(sellers) -> InMemorySellerRegistry:
    return InMemorySellerRegistry(sellers)


@pytest.fixture
def seller_index(sellers) -> SellerDomainIndex:
    return SellerDomainIndex.from_sellers([s for s in sellers if s.is_active])


@pytest.fixture
def settings() -> ResearchSettings:
    return ResearchSettings(serper_api_key="test-serper-key", anthropic_api_key="test-anthropic-key")


@pytest.fixture
def make_result():
    def _make(
        url: str = "https://www.ha.com/lot/1",
        title: str = "Jean Carlu America's Answer Production 1942",
        source: str = "visual",
        price_value: Optional[float] = None,
        **kwargs,
    ) -> UnifiedSearchResult:
        domain = kwargs.pop("domain", url.split("/")[2].replace("www.", ""))
        if price_value is not None:
            kwargs.setdefault("price", f"${price_value:,.0f}")
            kwargs.setdefault("currency", "USD")
        return UnifiedSearchResult(
            title=title, url=url, domain=domain, source=source, price_value=price_value, **kwargs
        )

    return _make


@pytest.fixture
def fake_llm():
    return FakeLLM
