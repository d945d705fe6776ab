"""Serper.dev adapter: Google Lens image search and Google web search.

Every call returns a structured response. Nothing is raised past this module:
missing credentials, auth failures, rate limits, non-2xx statuses, malformed
bodies and transport errors all come back as ``error``/``error_kind`` with the
credit count the provider would bill for.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Optional, Sequence, Tuple, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from observability.metrics import (
    search_provider_credits_total,
    search_provider_duration_seconds,
    search_provider_errors_total,
    search_results_count,
)
from research.config import ResearchSettings
from research.exceptions import ProviderErrorKind, redact_secrets
from research.models import KnowledgeGraph
from research.providers.base import (
    RawVisualMatch,
    RawWebResult,
    SearchProvider,
    TextSearchResponse,
    VisualSearchResponse,
)
from research.utils.url import extract_domain

logger = logging.getLogger(__name__)

ItemT = TypeVar("ItemT", bound=BaseModel)

NOT_CONFIGURED_MESSAGE = "Serper API is not configured. Add SERPER_API_KEY to environment variables."
AUTH_MESSAGE = "Invalid Serper API key. Check your SERPER_API_KEY."
RATE_LIMIT_MESSAGE = "Serper API rate limit exceeded. Try again later."


def _parse_price(raw: Any) -> Tuple[Optional[str], Optional[float], Optional[str]]:
    """Lens prices arrive as a dict, a plain string, or a bare number."""
    if raw is None:
        return None, None, None
    if isinstance(raw, dict):
        text = raw.get("value")
        extracted = raw.get("extracted_value", raw.get("extracted"))
        currency = raw.get("currency")
        try:
            value = float(extracted) if extracted is not None else None
        except (TypeError, ValueError):
            value = None
        if text is None and value is not None:
            text = f"{currency or '$'}{value:,.2f}"
        return (str(text) if text is not None else None), value, currency
    if isinstance(raw, (int, float)):
        return f"${float(raw):,.2f}", float(raw), None
    text = str(raw).strip()
    return (text or None), None, None


def _knowledge_graph_fields(data: Any) -> Optional[Dict[str, Any]]:
    if not isinstance(data, dict) or not data:
        return None
    images = data.get("images") or []
    image_url = data.get("imageUrl")
    if not image_url and isinstance(images, list) and images:
        first = images[0]
        image_url = first.get("url") if isinstance(first, dict) else first
    return {
        "title": data.get("title"),
        "type": data.get("type"),
        "description": data.get("description"),
        "image_url": image_url if isinstance(image_url, str) else None,
    }


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = {}
    message = body.get("message") if isinstance(body, dict) else None
    return message or f"API error: {response.status_code}"


def classify_status(status_code: int) -> Tuple[ProviderErrorKind, int, bool]:
    """Map a non-2xx status to (error_kind, credits_used, retryable).

    Only a rejected key (401) is free; a 403 still reached the provider.
    """
    if status_code == 401:
        return "auth", 0, False
    if status_code == 403:
        return "auth", 1, False
    if status_code == 429:
        return "rate_limited", 1, True
    return "provider_error", 1, False


class SerperProvider(SearchProvider):
    """Serper search backend."""

    name = "serper"

    def __init__(
        self,
        settings: ResearchSettings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings
        self.api_key = settings.serper_api_key
        self.base_url = settings.serper_base_url.rstrip("/")
        self.country = settings.serper_country
        self.timeout = settings.http_timeout_seconds
        self._transport = transport

    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _headers(self) -> Dict[str, str]:
        return {"X-API-KEY": self.api_key or "", "Content-Type": "application/json"}

    async def _post(
        self, operation: str, path: str, payload: Dict[str, Any]
    ) -> Tuple[Optional[Dict[str, Any]], Dict[str, Any]]:
        """POST to Serper; return (body, envelope fields).

        ``body`` is None whenever ``envelope`` carries an error.
        """
        started = time.monotonic()
        envelope: Dict[str, Any] = {"credits_used": 0}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(f"{self.base_url}{path}", json=payload, headers=self._headers())
        except httpx.HTTPError as e:
            elapsed = time.monotonic() - started
            message = redact_secrets(f"{type(e).__name__}: {e}") or "Search request failed"
            logger.warning(f"[SerperProvider] {operation} transport error: {message}")
            search_provider_errors_total.labels(provider=self.name, error_type="transport").inc()
            envelope.update(search_time=elapsed, error=message, error_kind="transport")
            return None, envelope

        elapsed = time.monotonic() - started
        envelope["search_time"] = elapsed
        search_provider_duration_seconds.labels(provider=self.name, operation=operation).observe(elapsed)

        if response.status_code >= 400:
            kind, credits, retryable = classify_status(response.status_code)
            if kind == "auth":
                message = AUTH_MESSAGE
            elif kind == "rate_limited":
                message = RATE_LIMIT_MESSAGE
            else:
                message = redact_secrets(_error_message(response))
            logger.warning(
                f"[SerperProvider] {operation} failed: status={response.status_code} kind={kind}"
            )
            search_provider_errors_total.labels(provider=self.name, error_type=kind).inc()
            self._record_credits(credits)
            envelope.update(credits_used=credits, error=message, error_kind=kind, retryable=retryable)
            return None, envelope

        self._record_credits(1)
        envelope["credits_used"] = 1
        try:
            body = response.json()
        except ValueError:
            body = None
        if not isinstance(body, dict):
            logger.warning(f"[SerperProvider] {operation} returned a malformed body")
            search_provider_errors_total.labels(provider=self.name, error_type="malformed").inc()
            envelope.update(error="Malformed response from Serper", error_kind="provider_error")
            return None, envelope
        return body, envelope

    def _record_credits(self, credits: int) -> None:
        if credits:
            search_provider_credits_total.labels(provider=self.name).inc(credits)

    def _build_item(self, model: Type[ItemT], operation: str, **fields: Any) -> Optional[ItemT]:
        """Validate one provider item; a malformed item is dropped, not raised."""
        try:
            return model(**fields)
        except ValidationError as e:
            logger.warning(
                f"[SerperProvider] {operation} skipped malformed {model.__name__}: "
                f"{e.error_count()} invalid field(s)"
            )
            search_provider_errors_total.labels(provider=self.name, error_type="malformed").inc()
            return None

    async def visual_search(self, image_url: str, **kwargs: Any) -> VisualSearchResponse:
        if not self.is_configured():
            return VisualSearchResponse(error=NOT_CONFIGURED_MESSAGE, error_kind="not_configured")

        country = kwargs.get("country") or self.country
        logger.info(f"[SerperProvider] Lens search: {image_url[:80]!r}")
        body, envelope = await self._post("lens", "/lens", {"url": image_url, "gl": country})
        if body is None:
            return VisualSearchResponse(**envelope)

        items = body.get("visual_matches") or body.get("organic") or []
        if not isinstance(items, list):
            items = []
        results: List[RawVisualMatch] = []
        for index, item in enumerate(items):
            if not isinstance(item, dict):
                continue
            link = item.get("link")
            if not link or not isinstance(link, str):
                continue
            price_text, price_value, currency = _parse_price(item.get("price"))
            match = self._build_item(
                RawVisualMatch,
                "lens",
                title=item.get("title") or "",
                link=link,
                source=item.get("source") or extract_domain(link),
                thumbnail=item.get("thumbnail") or item.get("thumbnailUrl") or item.get("imageUrl"),
                price=price_text,
                extracted_price=price_value,
                currency=currency,
                position=item.get("position") or index + 1,
            )
            if match is not None:
                results.append(match)

        knowledge_graph = None
        graph_fields = _knowledge_graph_fields(body.get("knowledge_graph") or body.get("knowledgeGraph"))
        if graph_fields is not None:
            knowledge_graph = self._build_item(KnowledgeGraph, "lens", **graph_fields)
        search_results_count.labels(provider=self.name, operation="lens").observe(len(results))
        logger.info(
            f"[SerperProvider] Lens search returned {len(results)} matches"
            f" (knowledge_graph={knowledge_graph is not None})"
        )
        return VisualSearchResponse(results=results, knowledge_graph=knowledge_graph, **envelope)

    async def text_search(self, query: str, max_results: int = 20, **kwargs: Any) -> TextSearchResponse:
        if not self.is_configured():
            return TextSearchResponse(query=query, error=NOT_CONFIGURED_MESSAGE, error_kind="not_configured")

        domains: Sequence[str] = kwargs.get("domains") or ()
        full_query = query
        if domains:
            restriction = " OR ".join(f"site:{d}" for d in domains)
            full_query = f"{query} ({restriction})"

        payload = {
            "q": full_query,
            "num": max(1, min(int(max_results), 100)),
            "page": int(kwargs.get("page") or 1),
            "gl": kwargs.get("country") or self.country,
        }
        logger.info(f"[SerperProvider] Web search: {full_query[:100]!r} num={payload['num']}")
        body, envelope = await self._post("search", "/search", payload)
        if body is None:
            return TextSearchResponse(query=query, **envelope)

        items = body.get("organic") or []
        if not isinstance(items, list):
            items = []
        results: List[RawWebResult] = []
        for index, item in enumerate(items):
            if not isinstance(item, dict):
                continue
            link = item.get("link")
            if not link or not isinstance(link, str):
                continue
            result = self._build_item(
                RawWebResult,
                "search",
                title=item.get("title") or "",
                link=link,
                snippet=item.get("snippet"),
                position=item.get("position") or index + 1,
                date=item.get("date"),
                image_url=item.get("imageUrl"),
            )
            if result is not None:
                results.append(result)

        search_results_count.labels(provider=self.name, operation="search").observe(len(results))
        return TextSearchResponse(query=query, results=results, **envelope)
