import json

import pytest

from research.exceptions import LLMError, LLMResponseError
from research.models import ItemContext
from research.parser import (
    ResultParser,
    build_parsing_prompt,
    classify_sale_status,
    heuristic_parse,
    parse_ai_response,
)


@pytest.fixture
def context():
    return ItemContext(title="America's Answer! Production", artist="Jean Carlu", date="1942")


class TestHeuristics:
    @pytest.mark.parametrize(
        "text, status, confidence",
        [
            ("SOLD - Jean Carlu poster", "sold", 0.8),
            ("This item is no longer available", "sold", 0.8),
            ("out of stock - $850", "out_of_stock", 0.8),
            ("Currently unavailable", "out_of_stock", 0.8),
            ("Hammer price $1,100", "auction_result", 0.9),
            ("Price realized: $2,000", "auction_result", 0.9),
            ("Add to cart", "for_sale", 0.8),
            ("In stock and ready to ship", "for_sale", 0.8),
            ("Carlu biography", "unknown", 0.5),
        ],
    )
    def test_classify_sale_status(self, text, status, confidence):
        assert classify_sale_status(text) == (status, confidence)

    def test_sold_requires_whole_word(self):
        assert classify_sale_status("Offered by Soldier Field Posters")[0] == "unknown"

    def test_out_of_stock_with_price_lands_in_sold_band(self, make_result, settings):
        result = make_result(url="https://randomposters.net/p/1", title="Carlu poster", snippet="out of stock - $850")
        parsed = heuristic_parse(result)

        assert parsed.status == "out_of_stock"
        assert parsed.status_confidence >= 0.7
        assert parsed.price == 850
        assert parsed.match_confidence == 0.5

    @pytest.mark.asyncio
    async def test_heuristic_path_feeds_price_summary(self, make_result, settings, context):
        parser = ResultParser(None, settings)
        result = make_result(url="https://randomposters.net/p/1", title="Carlu poster", snippet="out of stock - $850")

        response = await parser.parse_results([result], context)

        assert response.used_ai is False
        assert response.tokens_used == 0
        assert response.price_summary.sold_prices.count == 1
        assert response.price_summary.sold_prices.low == 850
        # Heuristic matches sit exactly at the floor and never vote.
        assert response.consensus.to_dict() == {}


class TestAIParsing:
    def _reply(self, items):
        return "Here is the analysis:\n```json\n" + json.dumps({"results": items}) + "\n```"

    @pytest.mark.asyncio
    async def test_ai_results_are_validated_and_merged(self, make_result, settings, context, fake_llm):
        results = [
            make_result(url="https://www.ha.com/lot/1", seller_name="Heritage Auctions", reliability_tier=1,
                        is_known_seller=True, price_value=1500.0),
            make_result(url="https://randomposters.net/p/2"),
        ]
        llm = fake_llm([
            self._reply([
                {"index": 0, "match_confidence": 0.92, "extracted_artist": "Jean Carlu", "extracted_date": 1942,
                 "status": "sold", "status_confidence": 95, "price": None},
            ])
        ])
        parser = ResultParser(llm, settings)

        response = await parser.parse_results(results, context)

        assert response.used_ai is True
        assert response.tokens_used == 120
        assert len(response.results) == 1
        parsed = response.results[0]
        assert parsed.url == "https://www.ha.com/lot/1"
        assert parsed.seller_name == "Heritage Auctions"
        assert parsed.extracted_date == "1942"
        assert parsed.status_confidence == 0.95
        assert parsed.price == 1500.0
        assert response.consensus.artist.value == "Jean Carlu"
        assert response.price_summary.sold_prices.low == 1500.0
        assert "Jean Carlu" in llm.prompts[0]

    @pytest.mark.asyncio
    async def test_malformed_json_falls_back(self, make_result, settings, context, fake_llm):
        llm = fake_llm(["I could not find any matches, sorry."])
        response = await ResultParser(llm, settings).parse_results([make_result()], context)
        assert response.used_ai is False
        assert response.results[0].match_confidence == 0.5

    @pytest.mark.asyncio
    async def test_invalid_schema_falls_back(self, make_result, settings, context, fake_llm):
        llm = fake_llm([self._reply([{"index": 0, "match_confidence": "very high"}])])
        response = await ResultParser(llm, settings).parse_results([make_result()], context)
        assert response.used_ai is False

    @pytest.mark.asyncio
    async def test_llm_error_falls_back(self, make_result, settings, context, fake_llm):
        llm = fake_llm([LLMError("Anthropic API returned 529")])
        response = await ResultParser(llm, settings).parse_results([make_result()], context)
        assert response.used_ai is False
        assert len(response.results) == 1

    @pytest.mark.asyncio
    async def test_unconfigured_llm_is_not_called(self, make_result, settings, context, fake_llm):
        llm = fake_llm(configured=False)
        response = await ResultParser(llm, settings).parse_results([make_result()], context)
        assert llm.prompts == []
        assert response.used_ai is False

    @pytest.mark.asyncio
    async def test_empty_input(self, settings, context, fake_llm):
        llm = fake_llm()
        response = await ResultParser(llm, settings).parse_results([], context)
        assert response.results == []
        assert llm.prompts == []

    def test_out_of_range_index_is_rejected(self, make_result):
        with pytest.raises(LLMResponseError):
            parse_ai_response(json.dumps({"results": [{"index": 3, "match_confidence": 0.9}]}), [make_result()])

    def test_duplicate_indexes_keep_first(self, make_result):
        text = json.dumps({"results": [
            {"index": 0, "match_confidence": 0.9, "extracted_artist": "Carlu"},
            {"index": 0, "match_confidence": 0.1, "extracted_artist": "Someone else"},
        ]})
        parsed = parse_ai_response(text, [make_result()])
        assert [p.extracted_artist for p in parsed] == ["Carlu"]

    def test_bare_array_reply_is_accepted(self, make_result):
        text = 'Here you go:\n```json\n[{"index": 0, "match_confidence": 0.8, "extracted_artist": "Carlu"}]\n```'
        parsed = parse_ai_response(text, [make_result()])
        assert [p.extracted_artist for p in parsed] == ["Carlu"]

    def test_bare_array_with_bad_item_is_rejected(self, make_result):
        with pytest.raises(LLMResponseError):
            parse_ai_response('[{"index": 0}]', [make_result()])

    def test_prompt_is_batched(self, make_result, context):
        results = [make_result(url=f"https://s{i}.com/p") for i in range(3)]
        prompt = build_parsing_prompt(results, context)
        assert '"index": 2' in prompt
        assert "out of stock" in prompt.lower()
        assert "Known Artist: Jean Carlu" in prompt

    @pytest.mark.asyncio
    async def test_batch_limit(self, make_result, context, fake_llm):
        from research.config import ResearchSettings

        settings = ResearchSettings(anthropic_api_key="k", max_parse_batch=2)
        llm = fake_llm(configured=False)
        results = [make_result(url=f"https://s{i}.com/p") for i in range(5)]
        response = await ResultParser(llm, settings).parse_results(results, context)
        assert len(response.results) == 2
