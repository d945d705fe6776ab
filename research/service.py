"""Multi-stage research orchestration.

Stage 1 image search, title extraction, Stage 2 text search, merge/dedup/sort,
optional Stage 3 AI parsing with consensus, optional Stage 4 visual
re-verification. Stages run in order; each one degrades to fewer results
instead of failing the session.
"""

from __future__ import annotations

import logging
import math
import time
from typing import List, Optional

from observability.logging import correlation_id_context
from observability.metrics import research_searches_total
from research.config import ResearchSettings
from research.dealers import SellerRegistry, build_seller_index
from research.llm import AnthropicClient, LLMClient
from research.merge import deduplicate_results, sort_results
from research.models import (
    ExtractedTitle,
    ItemContext,
    KnowledgeGraph,
    MultiStageSearchOptions,
    MultiStageSearchResponse,
    ParsedResultsResponse,
    ResearchStatus,
    UnifiedSearchResult,
    VisualVerificationSummary,
)
from research.normalizers import normalize_visual_results, normalize_web_results
from research.parser import ResultParser
from research.providers.base import SearchProvider
from research.providers.serper import NOT_CONFIGURED_MESSAGE, SerperProvider
from research.telemetry import LoggingObserver, ResearchObserver, SearchMetricsCollector
from research.titles import extract_titles, generate_queries
from research.visual import (
    VisualComparator,
    apply_visual_results,
    batch_compare_images,
    filter_by_visual_threshold,
    summarize_verification,
)

logger = logging.getLogger(__name__)

MISSING_INPUT_MESSAGE = "Provide an image URL, a query, or query variations to search."


def _unique_queries(queries: List[str]) -> List[str]:
    seen = set()
    unique: List[str] = []
    for query in queries:
        cleaned = (query or "").strip()
        key = cleaned.lower()
        if cleaned and key not in seen:
            seen.add(key)
            unique.append(cleaned)
    return unique


def _collect_unknown_domains(*groups: List[UnifiedSearchResult]) -> List[str]:
    domains: List[str] = []
    for group in groups:
        for result in group:
            if not result.is_known_seller and result.domain and result.domain not in domains:
                domains.append(result.domain)
    return domains


class MultiStageSearchService:
    def __init__(
        self,
        settings: ResearchSettings,
        registry: SellerRegistry,
        provider: Optional[SearchProvider] = None,
        llm: Optional[LLMClient] = None,
        parser: Optional[ResultParser] = None,
        comparator: Optional[VisualComparator] = None,
        observer: Optional[ResearchObserver] = None,
    ):
        self.settings = settings
        self.registry = registry
        self.provider = provider or SerperProvider(settings)
        self.llm = llm or AnthropicClient(settings)
        self.parser = parser or ResultParser(self.llm, settings)
        self.comparator = comparator or VisualComparator(self.llm)
        self.observer = observer or LoggingObserver()

    def status(self) -> ResearchStatus:
        configured = self.provider.is_configured()
        ai_configured = self.llm.is_configured()
        if configured:
            message = "Multi-stage search is ready: image search + web search + title extraction"
        else:
            message = NOT_CONFIGURED_MESSAGE
        return ResearchStatus(
            configured=configured,
            provider=self.provider.name,
            features={
                "visual": configured,
                "web": configured,
                "multi_stage": configured,
                "ai_parsing": ai_configured,
                "visual_verification": configured and self.comparator.is_configured(),
            },
            message=message,
        )

    async def search(self, options: MultiStageSearchOptions) -> MultiStageSearchResponse:
        with correlation_id_context():
            collector = SearchMetricsCollector(self.observer)
            with collector.track_search(has_image=bool(options.image_url), query=options.query or ""):
                response = await self._search(options, collector)
            research_searches_total.labels(outcome=collector.metrics.outcome).inc()
            return response

    async def _search(
        self, options: MultiStageSearchOptions, collector: SearchMetricsCollector
    ) -> MultiStageSearchResponse:
        started = time.monotonic()

        if not options.has_search_input():
            collector.record_outcome("invalid_request")
            return MultiStageSearchResponse(
                success=False,
                error=MISSING_INPUT_MESSAGE,
                configured=self.provider.is_configured(),
                image_url=options.image_url,
            )

        if not self.provider.is_configured():
            collector.record_outcome("not_configured")
            return MultiStageSearchResponse(
                success=False,
                error=NOT_CONFIGURED_MESSAGE,
                configured=False,
                image_url=options.image_url,
            )

        credits_used = 0
        visual_results: List[UnifiedSearchResult] = []
        web_results: List[UnifiedSearchResult] = []
        extracted_titles: List[ExtractedTitle] = []
        knowledge_graph: Optional[KnowledgeGraph] = None

        # Registry failures propagate.
        with collector.track_stage("sellers") as stage:
            index = await build_seller_index(self.registry, options.seller_ids)
            stage["result_count"] = len(index)

        if options.image_url:
            with collector.track_stage("visual_search") as stage:
                response = await self.provider.visual_search(options.image_url)
                credits_used += response.credits_used
                stage["credits_used"] = response.credits_used
                if response.error:
                    stage["error"] = response.error
                else:
                    knowledge_graph = response.knowledge_graph
                    visual_results = normalize_visual_results(
                        response.results, index, limit=options.max_visual_results
                    )
                    stage["result_count"] = len(visual_results)

            with collector.track_stage("titles") as stage:
                extracted_titles = extract_titles(visual_results)
                stage["result_count"] = len(extracted_titles)
        else:
            collector.skip_stage("visual_search", "no image")

        queries: List[str] = []
        if options.include_web_search:
            queries = self._build_queries(options, extracted_titles)

        if queries:
            with collector.track_stage("web_search", queries=len(queries)) as stage:
                per_query = max(1, math.ceil(options.max_web_results / len(queries)))
                multi = await self.provider.text_search_multiple(queries, max_results_per_query=per_query)
                credits_used += multi.total_credits_used
                stage["credits_used"] = multi.total_credits_used
                web_results = normalize_web_results(multi.results, index, limit=options.max_web_results)
                stage["result_count"] = len(web_results)
                if multi.errors:
                    for error in multi.errors:
                        logger.warning(f"[MultiStageSearch] {error}")
                    if not multi.results:
                        stage["error"] = "; ".join(multi.errors)
            collector.record_queries(len(queries))
        else:
            reason = "disabled" if not options.include_web_search else "no queries"
            collector.skip_stage("web_search", reason)

        with collector.track_stage("merge") as stage:
            results = sort_results(deduplicate_results(visual_results + web_results))
            stage["result_count"] = len(results)
        collector.record_results(len(visual_results), len(web_results), len(results))

        parsed_results: Optional[ParsedResultsResponse] = None
        if options.parse_with_ai and results:
            with collector.track_stage("parse") as stage:
                context = self._item_context(options, knowledge_graph, extracted_titles)
                parsed_results = await self.parser.parse_results(results, context)
                stage["result_count"] = len(parsed_results.results)
        elif options.parse_with_ai:
            collector.skip_stage("parse", "no results")

        verification: Optional[VisualVerificationSummary] = None
        if options.enable_visual_verification and options.image_url:
            results, verification = await self._verify(options, results, collector)
        elif options.enable_visual_verification:
            collector.skip_stage("visual_verification", "no image")

        return MultiStageSearchResponse(
            success=True,
            configured=True,
            image_url=options.image_url,
            visual_results=visual_results,
            web_results=web_results,
            results=results,
            extracted_titles=extracted_titles,
            knowledge_graph=knowledge_graph,
            unknown_domains=_collect_unknown_domains(visual_results, web_results),
            visual_verification=verification,
            parsed_results=parsed_results,
            total_results=len(results),
            credits_used=credits_used,
            search_time=round(time.monotonic() - started, 3),
        )

    def _build_queries(self, options: MultiStageSearchOptions, titles: List[ExtractedTitle]) -> List[str]:
        """Caller queries first, then generated ones up to ``max_web_queries``."""
        queries: List[str] = []
        if options.query:
            queries.append(options.query)
        queries.extend(options.query_variations)
        queries = _unique_queries(queries)

        remaining = options.max_web_queries - len(queries)
        if titles and remaining > 0:
            queries.extend(generate_queries(titles, remaining, keyword=self.settings.category_keyword))
        return _unique_queries(queries)[: options.max_web_queries]

    def _item_context(
        self,
        options: MultiStageSearchOptions,
        knowledge_graph: Optional[KnowledgeGraph],
        titles: List[ExtractedTitle],
    ) -> ItemContext:
        if options.item_context is not None:
            return options.item_context
        title = options.query
        if not title and knowledge_graph is not None:
            title = knowledge_graph.title
        if not title and titles:
            title = titles[0].title
        return ItemContext(title=title or "Unknown poster", image_url=options.image_url)

    async def _verify(
        self,
        options: MultiStageSearchOptions,
        results: List[UnifiedSearchResult],
        collector: SearchMetricsCollector,
    ):
        if not self.comparator.is_configured():
            collector.skip_stage("visual_verification", "vision service not configured")
            return results, VisualVerificationSummary(enabled=False)

        candidates = [r for r in results if r.thumbnail][: options.max_visual_verifications]
        if not candidates:
            collector.skip_stage("visual_verification", "no thumbnails")
            return results, summarize_verification(results)

        with collector.track_stage("visual_verification", candidates=len(candidates)) as stage:
            matches = await batch_compare_images(
                self.comparator,
                options.image_url,
                [r.thumbnail for r in candidates],
                max_concurrent=self.settings.max_visual_concurrency,
                timeout_seconds=self.settings.llm_timeout_seconds,
            )
            results = sort_results(apply_visual_results(results, matches))
            results = filter_by_visual_threshold(results, options.visual_verification_threshold)
            stage["result_count"] = len(matches)
        return results, summarize_verification(results)
