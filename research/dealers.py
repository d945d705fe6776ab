"""Seller registry access and root-domain matching of search results."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Protocol, Sequence, Union
from urllib.parse import quote

from pydantic import ValidationError

from research.exceptions import RegistryError
from research.models import Seller, SellerCategory, SellerMatch
from research.utils.url import extract_root_domain, root_domain_for_url

logger = logging.getLogger(__name__)


@dataclass
class SellerFilters:
    """Registry query filters. ``None`` means "don't filter on this"."""

    active_only: bool = True
    can_research: Optional[bool] = None
    can_price: Optional[bool] = None
    can_procure: Optional[bool] = None
    can_be_source: Optional[bool] = None
    categories: Optional[Sequence[SellerCategory]] = None
    exclude_categories: Optional[Sequence[SellerCategory]] = None
    specialization: Optional[str] = None
    max_tier: Optional[int] = None
    ids: Optional[Sequence[int]] = None

    def matches(self, seller: Seller) -> bool:
        if self.active_only and not seller.is_active:
            return False
        for flag in ("can_research", "can_price", "can_procure", "can_be_source"):
            wanted = getattr(self, flag)
            if wanted is not None and getattr(seller, flag) != wanted:
                return False
        if self.categories and seller.category not in self.categories:
            return False
        if self.exclude_categories and seller.category in self.exclude_categories:
            return False
        if self.specialization and self.specialization not in seller.specializations:
            return False
        if self.max_tier is not None and seller.reliability_tier > self.max_tier:
            return False
        if self.ids is not None and seller.id not in self.ids:
            return False
        return True


class SellerRegistry(Protocol):
    """Read access to the seller database."""

    async def list_sellers(self, filters: Optional[SellerFilters] = None) -> List[Seller]:
        ...


class InMemorySellerRegistry:
    """Registry backed by a list, ordered by tier then name like the database view."""

    def __init__(self, sellers: Iterable[Seller]):
        self._sellers = sorted(sellers, key=lambda s: (s.reliability_tier, s.name.lower()))

    @classmethod
    def from_json_file(cls, path: Union[str, Path]) -> "InMemorySellerRegistry":
        """Load sellers from a JSON list (or ``{"sellers": [...]}``)."""
        try:
            data = json.loads(Path(path).read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise RegistryError(f"Could not read seller file {path}: {e}") from e
        if isinstance(data, dict):
            data = data.get("sellers", [])
        if not isinstance(data, list):
            raise RegistryError(f"Seller file {path} must contain a list of sellers")
        try:
            sellers = [Seller.model_validate(item) for item in data]
        except ValidationError as e:
            raise RegistryError(f"Invalid seller record in {path}: {e}") from e
        return cls(sellers)

    async def list_sellers(self, filters: Optional[SellerFilters] = None) -> List[Seller]:
        filters = filters or SellerFilters()
        return [seller for seller in self._sellers if filters.matches(seller)]


class SellerDomainIndex:
    """Root domain -> seller lookup, rebuilt for every research session."""

    def __init__(self, by_domain: Optional[Dict[str, Seller]] = None):
        self._by_domain: Dict[str, Seller] = dict(by_domain or {})

    @classmethod
    def from_sellers(cls, sellers: Iterable[Seller]) -> "SellerDomainIndex":
        by_domain: Dict[str, Seller] = {}
        for seller in sellers:
            if not seller.website:
                continue
            domain = root_domain_for_url(seller.website)
            if not domain:
                continue
            current = by_domain.get(domain)
            # Two sellers on one domain: the more reliable one wins.
            if current is None or seller.reliability_tier < current.reliability_tier:
                by_domain[domain] = seller
        return cls(by_domain)

    def __len__(self) -> int:
        return len(self._by_domain)

    def __contains__(self, domain: object) -> bool:
        return isinstance(domain, str) and extract_root_domain(domain) in self._by_domain

    def __iter__(self) -> Iterator[str]:
        return iter(self._by_domain)

    def get(self, domain: str) -> Optional[Seller]:
        return self._by_domain.get(extract_root_domain(domain))

    def match(self, url: str) -> SellerMatch:
        """Match a result URL by exact root-domain equality."""
        if not url:
            return SellerMatch()
        seller = self._by_domain.get(root_domain_for_url(url))
        if seller is None:
            return SellerMatch()
        return SellerMatch(
            seller_id=seller.id,
            seller_name=seller.name,
            reliability_tier=seller.reliability_tier,
            is_known=True,
        )


async def build_seller_index(
    registry: SellerRegistry,
    seller_ids: Optional[Sequence[int]] = None,
) -> SellerDomainIndex:
    """Read active sellers and index them. Registry errors propagate."""
    filters = SellerFilters(active_only=True, ids=list(seller_ids) if seller_ids else None)
    sellers = await registry.list_sellers(filters)
    index = SellerDomainIndex.from_sellers(sellers)
    logger.info(f"[dealers] Indexed {len(index)} seller domains from {len(sellers)} sellers")
    return index


def generate_seller_search_url(seller: Seller, query: str) -> Optional[str]:
    if not seller.search_url_template:
        return None
    return seller.search_url_template.replace("{query}", quote(query, safe=""))


def group_sellers_by_tier(sellers: Iterable[Seller]) -> Dict[int, List[Seller]]:
    grouped: Dict[int, List[Seller]] = {}
    for seller in sellers:
        grouped.setdefault(seller.reliability_tier, []).append(seller)
    return dict(sorted(grouped.items()))
