"""Structured extraction from search results: AI-assisted with a heuristic fallback."""

from __future__ import annotations

import json
import logging
import re
from typing import Any, List, Optional, Sequence, Tuple

from pydantic import BaseModel, Field, ValidationError, field_validator

from research.config import ResearchSettings
from research.consensus import calculate_attribution_consensus, calculate_price_summary
from research.exceptions import LLMError, LLMResponseError
from research.llm import LLMClient, extract_json, extract_json_array
from research.models import (
    ItemContext,
    ParsedResult,
    ParsedResultsResponse,
    SaleStatus,
    UnifiedSearchResult,
)
from research.utils.price import extract_price

logger = logging.getLogger(__name__)

_SOLD_WORD = re.compile(r"\bsold\b")


def classify_sale_status(text: str) -> Tuple[SaleStatus, float]:
    """Keyword rules, checked in priority order, on lowercased text."""
    text = (text or "").lower()
    if _SOLD_WORD.search(text) or "no longer available" in text:
        return "sold", 0.8
    if "out of stock" in text or "unavailable" in text:
        return "out_of_stock", 0.8
    if "hammer price" in text or "realized" in text:
        return "auction_result", 0.9
    if "add to cart" in text or "buy now" in text or "in stock" in text:
        return "for_sale", 0.8
    return "unknown", 0.5


def heuristic_parse(result: UnifiedSearchResult) -> ParsedResult:
    text = f"{result.title} {result.snippet or ''}"
    status, status_confidence = classify_sale_status(text)

    price, currency, price_text = result.price_value, result.currency, result.price
    if price is None:
        match = extract_price(text)
        if match is not None:
            price, currency, price_text = match.value, match.currency, match.price_text

    return ParsedResult(
        url=result.url,
        title=result.title,
        domain=result.domain,
        price=price,
        currency=currency or "USD",
        price_text=price_text,
        status=status,
        status_confidence=status_confidence,
        match_confidence=0.5,
        match_reason="Keyword heuristics (AI parsing unavailable)",
        seller_id=result.seller_id,
        seller_name=result.seller_name,
        reliability_tier=result.reliability_tier,
    )


def _scale_confidence(value: Any) -> Any:
    # Models occasionally answer on a 0-100 scale.
    if isinstance(value, (int, float)) and 1 < value <= 100:
        return value / 100.0
    return value


class AIParsedItem(BaseModel):
    index: int = Field(..., ge=0)
    match_confidence: float = Field(..., ge=0.0, le=1.0)
    match_reason: Optional[str] = None
    extracted_artist: Optional[str] = None
    extracted_date: Optional[str] = None
    extracted_dimensions: Optional[str] = None
    extracted_technique: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    currency: Optional[str] = None
    price_text: Optional[str] = None
    status: SaleStatus = "unknown"
    status_confidence: float = Field(0.5, ge=0.0, le=1.0)

    @field_validator("match_confidence", "status_confidence", mode="before")
    @classmethod
    def _percent_to_fraction(cls, value: Any) -> Any:
        return _scale_confidence(value)

    @field_validator("extracted_date", mode="before")
    @classmethod
    def _date_as_text(cls, value: Any) -> Any:
        if isinstance(value, int):
            return str(value)
        return value


class AIParsingPayload(BaseModel):
    results: List[AIParsedItem] = Field(default_factory=list)


def build_parsing_prompt(results: Sequence[UnifiedSearchResult], context: ItemContext) -> str:
    rows = [
        {
            "index": i,
            "title": r.title,
            "snippet": r.snippet or "",
            "url": r.url,
            "domain": r.domain,
            "price": r.price or "",
            "seller": r.seller_name or r.original_source or r.domain,
            "reliability_tier": r.reliability_tier,
        }
        for i, r in enumerate(results)
    ]

    lines = [
        "You are analyzing search results for a vintage poster research tool. "
        "Extract structured data from these search results.",
        "",
        "POSTER BEING RESEARCHED:",
        f"Title: {context.title}",
        f"Known Artist: {context.artist}" if context.artist else "Artist: Unknown",
    ]
    if context.date:
        lines.append(f"Date: {context.date}")
    if context.dimensions:
        lines.append(f"Dimensions: {context.dimensions}")
    if context.technique:
        lines.append(f"Technique: {context.technique}")

    lines += [
        "",
        "SEARCH RESULTS TO ANALYZE:",
        json.dumps(rows, indent=2),
        "",
        "For each result, decide:",
        "1. Is this the SAME item as the poster being researched?",
        "2. What artist, date, dimensions and printing technique does it state?",
        "3. What is the sale status (for_sale, out_of_stock, sold, auction_result, unknown)?",
        '   An "out of stock" or "sold" listing that still shows a price is a realized price. Report it.',
        "4. What is the price, if any?",
        "",
        "Respond with JSON only, in exactly this format:",
        "{",
        '  "results": [',
        "    {",
        '      "index": 0,',
        '      "match_confidence": 0.85,',
        '      "match_reason": "Title matches, same artist attribution",',
        '      "extracted_artist": "Jean Carlu",',
        '      "extracted_date": "1941",',
        '      "extracted_dimensions": null,',
        '      "extracted_technique": "offset lithograph",',
        '      "price": 1200,',
        '      "currency": "USD",',
        '      "price_text": "$1,200",',
        '      "status": "for_sale",',
        '      "status_confidence": 0.95',
        "    }",
        "  ]",
        "}",
        "",
        "Confidences are between 0 and 1. Use the index from the input list.",
        'Return {"results": []} if no result matches.',
    ]
    return "\n".join(lines)


def _merge_ai_item(item: AIParsedItem, source: UnifiedSearchResult) -> ParsedResult:
    return ParsedResult(
        url=source.url,
        title=source.title,
        domain=source.domain,
        extracted_artist=item.extracted_artist or None,
        extracted_date=item.extracted_date or None,
        extracted_dimensions=item.extracted_dimensions or None,
        extracted_technique=item.extracted_technique or None,
        price=item.price if item.price is not None else source.price_value,
        currency=(item.currency or source.currency or "USD").upper(),
        price_text=item.price_text or source.price,
        status=item.status,
        status_confidence=item.status_confidence,
        match_confidence=item.match_confidence,
        match_reason=item.match_reason,
        seller_id=source.seller_id,
        seller_name=source.seller_name,
        reliability_tier=source.reliability_tier,
    )


def _load_ai_payload(text: str) -> dict:
    # A bare `[...]` reply is the results list without its wrapper object.
    first_bracket = text.find("[")
    first_brace = text.find("{")
    if first_bracket != -1 and (first_brace == -1 or first_bracket < first_brace):
        return {"results": extract_json_array(text)}
    return extract_json(text)


def parse_ai_response(text: str, batch: Sequence[UnifiedSearchResult]) -> List[ParsedResult]:
    """Validate the model's JSON against the batch it was given.

    Accepts either ``{"results": [...]}`` or a bare array. Raises
    ``LLMResponseError`` on any structural problem.
    """
    try:
        payload = AIParsingPayload.model_validate(_load_ai_payload(text))
    except ValidationError as e:
        raise LLMResponseError(f"AI parsing response failed validation: {e.error_count()} errors") from e

    parsed: List[ParsedResult] = []
    seen = set()
    for item in payload.results:
        if item.index >= len(batch):
            raise LLMResponseError(f"AI parsing response referenced unknown index {item.index}")
        if item.index in seen:
            continue
        seen.add(item.index)
        parsed.append(_merge_ai_item(item, batch[item.index]))
    return parsed


class ResultParser:
    """Stage 3: per-result extraction plus consensus and price summary."""

    def __init__(self, llm: Optional[LLMClient], settings: ResearchSettings):
        self.llm = llm
        self.max_batch = settings.max_parse_batch
        self.min_match_confidence = settings.min_consensus_confidence

    async def parse_results(
        self, results: Sequence[UnifiedSearchResult], context: ItemContext
    ) -> ParsedResultsResponse:
        if not results:
            return ParsedResultsResponse()

        batch = list(results[: self.max_batch])
        parsed: Optional[List[ParsedResult]] = None
        tokens_used = 0

        if self.llm is not None and self.llm.is_configured():
            try:
                completion = await self.llm.complete(build_parsing_prompt(batch, context), max_tokens=4096)
                tokens_used = completion.total_tokens
                parsed = parse_ai_response(completion.text, batch)
            except LLMError as e:
                logger.warning(f"[ResultParser] AI parsing failed, using heuristics: {e}")
                parsed = None
        else:
            logger.info("[ResultParser] AI parsing not configured, using heuristics")

        used_ai = parsed is not None
        if parsed is None:
            parsed = [heuristic_parse(result) for result in batch]

        return ParsedResultsResponse(
            results=parsed,
            consensus=calculate_attribution_consensus(parsed, self.min_match_confidence),
            price_summary=calculate_price_summary(parsed),
            tokens_used=tokens_used,
            used_ai=used_ai,
        )
