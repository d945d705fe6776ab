import json

import pytest

from research.dealers import (
    InMemorySellerRegistry,
    SellerDomainIndex,
    SellerFilters,
    build_seller_index,
    generate_seller_search_url,
    group_sellers_by_tier,
)
from research.exceptions import RegistryError
from research.models import Seller, slugify_seller_name
from research.utils.url import extract_root_domain, root_domain_for_url


class TestRootDomain:
    def test_strips_subdomains(self):
        assert extract_root_domain("auctions.potterauctions.com") == "potterauctions.com"
        assert extract_root_domain("www.ha.com") == "ha.com"

    def test_compound_tld_keeps_three_labels(self):
        assert extract_root_domain("auctions.example.co.uk") == "example.co.uk"
        assert extract_root_domain("shop.dealer.com.au") == "dealer.com.au"

    def test_two_label_compound_is_left_alone(self):
        assert extract_root_domain("co.uk") == "co.uk"

    def test_from_url(self):
        assert root_domain_for_url("https://WWW.Example.co.uk/path?q=1") == "example.co.uk"
        assert root_domain_for_url("potterauctions.com/lot/5") == "potterauctions.com"


class TestSellerDomainIndex:
    def test_subdomain_matches_registered_seller(self, seller_index):
        match = seller_index.match("https://auctions.potterauctions.com/x")
        assert match.is_known is True
        assert match.seller_id == 2
        assert match.seller_name == "Potter & Potter Auctions"
        assert match.reliability_tier == 2

    def test_compound_tld_matches_registrable_domain_only(self, seller_index):
        match = seller_index.match("https://auctions.example.co.uk/lot")
        assert match.is_known is True
        assert match.seller_id == 3

        unrelated = seller_index.match("https://other.co.uk/lot")
        assert unrelated.is_known is False

    def test_unregistered_domain_never_matches(self, seller_index):
        match = seller_index.match("https://randomposters.net/item/9")
        assert match.is_known is False
        assert match.seller_id is None
        assert match.reliability_tier is None

    def test_empty_url(self, seller_index):
        assert seller_index.match("").is_known is False

    def test_lower_tier_wins_on_shared_domain(self):
        sellers = [
            Seller(id=1, name="Aggregator View", website="https://ha.com", reliability_tier=5),
            Seller(id=2, name="Heritage", website="https://www.ha.com", reliability_tier=1),
        ]
        index = SellerDomainIndex.from_sellers(sellers)
        assert len(index) == 1
        assert index.match("https://ha.com/x").seller_id == 2

    def test_sellers_without_website_are_skipped(self):
        index = SellerDomainIndex.from_sellers([Seller(id=9, name="No Site", reliability_tier=3)])
        assert len(index) == 0

    def test_contains(self, seller_index):
        assert "potterauctions.com" in seller_index
        assert "shop.potterauctions.com" in seller_index
        assert "nowhere.org" not in seller_index


class TestRegistry:
    @pytest.mark.asyncio
    async def test_build_index_uses_active_sellers_only(self, registry):
        index = await build_seller_index(registry)
        assert "closedgallery.com" not in index
        assert "ha.com" in index

    @pytest.mark.asyncio
    async def test_build_index_restricted_to_ids(self, registry):
        index = await build_seller_index(registry, [2])
        assert len(index) == 1
        assert index.match("https://potterauctions.com/lot").is_known

    @pytest.mark.asyncio
    async def test_registry_errors_propagate(self):
        class BrokenRegistry:
            async def list_sellers(self, filters=None):
                raise RegistryError("database unavailable")

        with pytest.raises(RegistryError):
            await build_seller_index(BrokenRegistry())

    @pytest.mark.asyncio
    async def test_filters(self, registry):
        auction_houses = await registry.list_sellers(SellerFilters(categories=["auction_house"]))
        assert [s.id for s in auction_houses] == [1, 2]

        top_tier = await registry.list_sellers(SellerFilters(max_tier=2))
        assert {s.id for s in top_tier} == {1, 2}

        procurers = await registry.list_sellers(SellerFilters(can_procure=True))
        assert [s.id for s in procurers] == [5]

        everything = await registry.list_sellers(SellerFilters(active_only=False))
        assert len(everything) == 5

    def test_from_json_file(self, tmp_path):
        path = tmp_path / "sellers.json"
        path.write_text(
            json.dumps({"sellers": [{"id": 7, "name": "Poster Gallery NYC", "website": "postergallery.com", "reliability_tier": 2}]})
        )
        registry = InMemorySellerRegistry.from_json_file(path)
        assert registry._sellers[0].slug == "poster-gallery-nyc"

    def test_from_json_file_rejects_invalid_tier(self, tmp_path):
        path = tmp_path / "sellers.json"
        path.write_text(json.dumps([{"id": 1, "name": "Bad", "reliability_tier": 9}]))
        with pytest.raises(RegistryError):
            InMemorySellerRegistry.from_json_file(path)


class TestSellerHelpers:
    def test_slug(self):
        assert slugify_seller_name("Potter & Potter Auctions") == "potter-potter-auctions"

    def test_search_url_is_encoded(self, sellers):
        url = generate_seller_search_url(sellers[1], "Carlu & Co poster")
        assert url == "https://potterauctions.com/search?q=Carlu%20%26%20Co%20poster"

    def test_search_url_without_template(self, sellers):
        assert generate_seller_search_url(sellers[0], "anything") is None

    def test_template_requires_placeholder(self):
        with pytest.raises(ValueError):
            Seller(id=1, name="X", reliability_tier=1, search_url_template="https://x.com/search")

    def test_group_by_tier(self, sellers):
        grouped = group_sellers_by_tier(sellers)
        assert list(grouped.keys()) == [1, 2, 3, 4, 6]
        assert [s.id for s in grouped[6]] == [5]
