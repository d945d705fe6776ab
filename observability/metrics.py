"""
Prometheus metrics for the research pipeline.

Provides RED metrics (Rate, Errors, Duration) for the external services the
pipeline calls, plus provider credit accounting.
"""

from prometheus_client import (
    Counter,
    Histogram,
    REGISTRY,
)

# Use the default registry
metrics_registry = REGISTRY

# Search Provider Metrics
search_provider_duration_seconds = Histogram(
    "research_search_provider_duration_seconds",
    "Search provider API duration in seconds",
    ["provider", "operation"],
    buckets=[0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0],
    registry=metrics_registry,
)

search_provider_errors_total = Counter(
    "research_search_provider_errors_total",
    "Total search provider errors",
    ["provider", "error_type"],
    registry=metrics_registry,
)

search_provider_credits_total = Counter(
    "research_search_provider_credits_total",
    "Billable provider credits consumed",
    ["provider"],
    registry=metrics_registry,
)

search_results_count = Histogram(
    "research_search_results_count",
    "Number of search results returned",
    ["provider", "operation"],
    buckets=[0, 1, 5, 10, 20, 50, 100],
    registry=metrics_registry,
)

# External API Metrics
llm_api_duration_seconds = Histogram(
    "research_llm_api_duration_seconds",
    "LLM API call duration in seconds",
    ["provider", "model"],
    buckets=[0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0],
    registry=metrics_registry,
)

llm_api_errors_total = Counter(
    "research_llm_api_errors_total",
    "Total LLM API errors",
    ["provider", "error_type"],
    registry=metrics_registry,
)

llm_tokens_used_total = Counter(
    "research_llm_tokens_used_total",
    "Total tokens consumed from LLM APIs",
    ["provider", "model", "token_type"],  # token_type: input, output
    registry=metrics_registry,
)

# Pipeline Metrics
research_searches_total = Counter(
    "research_searches_total",
    "Total multi-stage searches by outcome",
    ["outcome"],  # ok, not_configured, invalid_request
    registry=metrics_registry,
)

visual_comparisons_total = Counter(
    "research_visual_comparisons_total",
    "Pairwise image comparisons by outcome",
    ["outcome"],  # ok, error
    registry=metrics_registry,
)
